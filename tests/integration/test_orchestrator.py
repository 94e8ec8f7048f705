import os
import socket
import pytest
from depwire.MANAGERS.readiness_probe import ReadinessProbe
from depwire.MANAGERS.service_orchestrator import ServiceOrchestrator
from depwire.PARSERS.compose_parser import ComposeParser
from depwire.RUNTIMES.memory_runtime import InMemoryRuntime
from depwire.exceptions import ValidationError

FIXTURE = os.path.join(os.path.dirname(__file__), "..", "fixtures", "two_service", "docker-compose.yml")


def load_fixture():
    return ComposeParser(context={}).parse(FIXTURE, project_name="demo")


def descriptor(content):
    return ComposeParser(context={}).parse_from_string(content, project_name="demo")


def orchestrator(config, runtime, timeout=5.0, **kwargs):
    probe = ReadinessProbe(runtime, timeout=timeout, initial_wait=0.01, sleep=lambda s: None)
    return ServiceOrchestrator(config, runtime=runtime, probe=probe, **kwargs)


def test_two_service_up_down():
    runtime = InMemoryRuntime()
    orch = ServiceOrchestrator(load_fixture(), runtime=runtime)

    result = orch.up()
    assert result.success
    assert result.started == ['flask-api', 'streamlit-app']
    assert runtime.events == [
        ("build", "demo-flask-api"),
        ("build", "demo-streamlit-app"),
        ("create_network", "demo_app-network"),
        ("start", "demo-flask-api-1"),
        ("start", "demo-streamlit-app-1"),
    ]

    app = runtime.containers["demo-streamlit-app-1"]
    assert app["networks"] == {"demo_app-network": ["streamlit-app"]}
    assert app["environment"]["FLASK_API_HOST"] == "flask-api"
    assert [(p.host_port, p.container_port) for p in app["ports"]] == [(8501, 8501)]
    assert runtime.images["demo-flask-api"].endswith("Flask app")

    # launched, nothing more is claimed
    assert orch.ps() == {'flask-api': 'running', 'streamlit-app': 'running'}
    resolver = orch.network_manager
    assert resolver.reverse_lookup(resolver.resolve_hostname("flask-api", "streamlit-app")) == "flask-api"

    assert orch.down() == ['streamlit-app', 'flask-api']
    assert runtime.events[-3:] == [
        ("stop", "demo-streamlit-app-1"),
        ("stop", "demo-flask-api-1"),
        ("remove_network", "demo_app-network"),
    ]
    assert orch.ps() == {'flask-api': 'stopped', 'streamlit-app': 'stopped'}
    assert orch.network_manager.networks == {}


def test_existing_network_is_reused():
    runtime = InMemoryRuntime()
    runtime.create_network("demo_app-network", "bridge")
    runtime.events.clear()

    ServiceOrchestrator(load_fixture(), runtime=runtime).up()
    assert ("create_network", "demo_app-network") not in runtime.events


def test_missing_build_context_aborts_before_start(tmp_path):
    config = ComposeParser(context={}).parse_from_string(
        "services:\n  api:\n    build: ./missing\n  ui:\n    image: ui\n", base_dir=str(tmp_path))
    runtime = InMemoryRuntime()
    with pytest.raises(ValidationError):
        ServiceOrchestrator(config, runtime=runtime).up()
    assert runtime.events == []


def test_cycle_aborts_before_start():
    runtime = InMemoryRuntime()
    config = descriptor("""
services:
  a: {image: a, depends_on: [b]}
  b: {image: b, depends_on: [a]}
""")
    with pytest.raises(ValidationError, match="Circular dependency"):
        ServiceOrchestrator(config, runtime=runtime).up()
    assert runtime.events == []


def test_host_port_collision_only_affects_dependents():
    config_text = """
services:
  a: {image: a, ports: ["%d:80"]}
  b: {image: b, depends_on: [a]}
  c: {image: c, ports: ["%d:80"]}
"""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('', 0))
        s.listen(1)
        taken = s.getsockname()[1]
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as free:
            free.bind(('', 0))
            free_port = free.getsockname()[1]

        runtime = InMemoryRuntime()
        orch = ServiceOrchestrator(descriptor(config_text % (taken, free_port)), runtime=runtime,
                                   check_host_ports=True)
        result = orch.up()

    assert result.failed == ['a']
    assert result.skipped == ['b']
    assert result.started == ['c']
    assert "already in use" in result.errors['a']
    assert orch.ps() == {'a': 'failed', 'b': 'skipped', 'c': 'running'}


def test_runtime_failure_skips_dependents_and_releases_ports():
    runtime = InMemoryRuntime(fail_start=["demo-flask-api-1"])
    orch = ServiceOrchestrator(load_fixture(), runtime=runtime)
    result = orch.up()
    assert result.failed == ['flask-api']
    assert result.skipped == ['streamlit-app']
    assert orch.port_manager.bindings('flask-api') == []
    assert 'flask-api' not in orch.network_manager.service_networks


HEALTHY = """
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
  admin:
    image: admin
"""


def test_waits_for_healthy_dependency():
    runtime = InMemoryRuntime(health={"demo-db-1": [False, False, True]})
    result = orchestrator(descriptor(HEALTHY), runtime).up()
    assert result.started == ['db', 'api', 'admin']
    assert runtime.health["demo-db-1"] == [True]


def test_declared_health_check_is_enough_for_a_dry_run():
    runtime = InMemoryRuntime()
    orch = orchestrator(descriptor(HEALTHY), runtime)
    result = orch.up()
    assert result.started == ['db', 'api', 'admin']
    assert orch.ps() == {'db': 'healthy', 'api': 'running', 'admin': 'running'}


def test_readiness_timeout_fails_dependent_only():
    runtime = InMemoryRuntime(health={"demo-db-1": [False]})
    orch = orchestrator(descriptor(HEALTHY), runtime, timeout=0)
    result = orch.up()
    assert result.started == ['db', 'admin']
    assert result.failed == ['api']
    assert "gave up waiting for 'db'" in result.errors['api']


def test_optional_dependency_does_not_block():
    runtime = InMemoryRuntime(fail_start=["demo-migrate-1"])
    config = descriptor("""
services:
  migrate: {image: migrate}
  api:
    image: api
    depends_on:
      migrate:
        condition: service_started
        required: false
""")
    result = orchestrator(config, runtime).up()
    assert result.failed == ['migrate']
    assert result.started == ['api']


def test_up_subset_starts_dependencies():
    runtime = InMemoryRuntime()
    config = descriptor("""
services:
  db: {image: db}
  api: {image: api, depends_on: [db]}
  docs: {image: docs}
""")
    result = ServiceOrchestrator(config, runtime=runtime).up(['api'])
    assert result.started == ['db', 'api']
    assert "demo-docs-1" not in runtime.containers


class TestPlan:
    """The plan is computed without touching the runtime."""

    def test_plan_for_two_services(self):
        runtime = InMemoryRuntime()
        plan = ServiceOrchestrator(load_fixture(), runtime=runtime).plan()
        assert plan.start_order == ['flask-api', 'streamlit-app']
        kinds = [(step.kind.value, step.target) for step in plan.steps]
        assert kinds == [
            ("build", "flask-api"),
            ("build", "streamlit-app"),
            ("create_network", "app-network"),
            ("bind_ports", "flask-api"),
            ("start", "flask-api"),
            ("bind_ports", "streamlit-app"),
            ("start", "streamlit-app"),
        ]
        assert runtime.events == []

    def test_removing_dependency_keeps_ports_and_networks(self):
        config = load_fixture()
        before = ServiceOrchestrator(config).plan()
        after = ServiceOrchestrator(config.without_dependency('streamlit-app', 'flask-api')).plan()

        assert after.port_bindings == before.port_bindings
        assert after.network_membership == before.network_membership
        assert before.network_membership == {'app-network': ['flask-api', 'streamlit-app']}

    def test_wait_steps_for_readiness_conditions(self):
        plan = ServiceOrchestrator(descriptor(HEALTHY)).plan()
        waits = [step for step in plan.steps if step.kind.value == "wait_ready"]
        assert len(waits) == 1
        assert waits[0].target == 'db'
        assert "service_healthy" in waits[0].detail
