import os
import subprocess
from click.testing import CliRunner
from depwire.CLI.main import cli

FIXTURE = os.path.join(os.path.dirname(__file__), "..", "fixtures", "two_service", "docker-compose.yml")


def invoke(*args):
    runner = CliRunner()
    return runner.invoke(cli, ['--runtime', 'memory', *args], obj={})


def test_cli_help():
    result = CliRunner().invoke(cli, ['--help'])
    assert result.exit_code == 0
    assert 'Start services' in result.output


def test_cli_up_no_file():
    result = invoke('-f', 'non_existent.yml', 'up')
    assert result.exit_code == 1
    assert 'Error: non_existent.yml not found.' in result.output


def test_cli_validate():
    result = invoke('-f', FIXTURE, 'validate')
    assert result.exit_code == 0, result.output
    assert 'is valid' in result.output


def test_cli_validate_reports_every_problem(tmp_path):
    compose_file = tmp_path / "docker-compose.yml"
    compose_file.write_text("""
services:
  a: {build: ./gone, depends_on: [b], ports: ["80:80"]}
  b: {image: b, depends_on: [a], ports: ["80:80"]}
""")
    result = invoke('-f', str(compose_file), 'validate')
    assert result.exit_code == 1
    assert 'Circular dependency detected' in result.output
    assert 'Host port 80/tcp' in result.output
    assert "Build context './gone'" in result.output


def test_cli_plan():
    result = invoke('-f', FIXTURE, '-p', 'demo', 'plan')
    assert result.exit_code == 0, result.output
    assert 'Start order: flask-api -> streamlit-app' in result.output
    assert 'create_network' in result.output


def test_cli_up_dry_run():
    result = invoke('-f', FIXTURE, 'up')
    assert result.exit_code == 0, result.output
    assert result.output.index('Started flask-api') < result.output.index('Started streamlit-app')


def test_cli_down_and_ps():
    assert invoke('-f', FIXTURE, 'down').exit_code == 0
    result = invoke('-f', FIXTURE, 'ps')
    assert result.exit_code == 0
    assert 'flask-api' in result.output
    assert 'pending' in result.output


def test_cli_config_interpolates(tmp_path, monkeypatch):
    monkeypatch.setenv('API_TAG', '1.2.3')
    compose_file = tmp_path / "docker-compose.yml"
    compose_file.write_text("services:\n  api:\n    image: api:${API_TAG}\n")
    result = invoke('-f', str(compose_file), 'config')
    assert result.exit_code == 0
    assert 'image: api:1.2.3' in result.output


def test_cli_convert(tmp_path):
    out = tmp_path / "units"
    result = invoke('-f', FIXTURE, '-p', 'demo', 'convert', '--type', 'systemd', '-o', str(out))
    assert result.exit_code == 0, result.output
    assert (out / "demo-streamlit-app.service").exists()


def test_cli_convert_help():
    result = CliRunner().invoke(cli, ['convert', '--help'])
    assert result.exit_code == 0
    assert '--type' in result.output


def test_cli_up_waits_for_declared_health_check(tmp_path):
    compose_file = tmp_path / "docker-compose.yml"
    compose_file.write_text("""
services:
  db:
    image: postgres
    healthcheck:
      test: ["CMD", "pg_isready"]
  api:
    image: api
    depends_on:
      db:
        condition: service_healthy
""")
    result = invoke('-f', str(compose_file), 'up')
    assert result.exit_code == 0, result.output
    assert 'Started db' in result.output
    assert 'Started api' in result.output


def test_cli_malformed_descriptor(tmp_path):
    compose_file = tmp_path / "docker-compose.yml"
    compose_file.write_text("services:\n  api:\n    image: api\n    depends_on: {db: x}\n  db: {image: db}\n")
    result = invoke('-f', str(compose_file), 'config')
    assert result.exit_code == 1
    assert "Error: Dependency 'db' of service 'api' must be a mapping" in result.output


def test_cli_plan_unknown_service():
    result = invoke('-f', FIXTURE, 'plan', 'nope')
    assert result.exit_code == 1
    assert 'Error: No such service: nope' in result.output


def test_cli_ps_without_docker(monkeypatch):
    def missing(*args, **kwargs):
        raise FileNotFoundError("docker")

    monkeypatch.setattr(subprocess, 'run', missing)
    result = CliRunner().invoke(cli, ['--runtime', 'docker', '-f', FIXTURE, 'ps'], obj={})
    assert result.exit_code == 1
    assert 'Error: docker executable not found' in result.output
