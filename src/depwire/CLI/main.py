"""
Command Line Interface for depwire.
"""
import os

import click

from ..CONVERTERS.to_compose import ComposeExporter
from ..CONVERTERS.to_systemd import SystemdConverter
from ..MANAGERS.service_orchestrator import ServiceOrchestrator
from ..PARSERS.compose_parser import ComposeParser
from ..RUNNERS.descriptor_validator import DescriptorValidator
from ..RUNTIMES.docker_runtime import DockerCliRuntime
from ..RUNTIMES.memory_runtime import InMemoryRuntime
from ..UTILS.logging_setup import configure_logging
from ..exceptions import DepwireError, ValidationError


RUNTIMES = {
    'docker': DockerCliRuntime,
    'memory': InMemoryRuntime,
}


@click.group()
@click.option('--file', '-f', default='docker-compose.yml', envvar='DEPWIRE_FILE',
              show_default=True, help='Deployment descriptor path')
@click.option('--project-name', '-p', envvar='DEPWIRE_PROJECT_NAME', help='Project name')
@click.option('--env-file', type=click.Path(dir_okay=False), help='Interpolation variables file')
@click.option('--runtime', type=click.Choice(sorted(RUNTIMES)), default='docker', envvar='DEPWIRE_RUNTIME',
              show_default=True, help='Container runtime, "memory" for a dry run')
@click.option('--verbose', '-v', count=True, help='Increase log verbosity')
@click.pass_context
def cli(ctx, file, project_name, env_file, runtime, verbose):
    """
    depwire - deployment descriptor wiring.

    Validates a compose style deployment descriptor and brings its
    services up in dependency order.
    """
    configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj['file'] = file
    ctx.obj['project_name'] = project_name
    ctx.obj['env_file'] = env_file
    ctx.obj['runtime'] = runtime


def _load(ctx):
    if 'descriptor' in ctx.obj:
        return ctx.obj['descriptor']
    file = ctx.obj['file']
    if not os.path.exists(file):
        raise click.ClickException(f"{file} not found.")
    try:
        parser = ComposeParser(env_file=ctx.obj['env_file'])
        ctx.obj['descriptor'] = parser.parse(file, project_name=ctx.obj['project_name'])
    except DepwireError as e:
        raise click.ClickException(str(e))
    return ctx.obj['descriptor']


def _orchestrator(ctx, timeout=60.0):
    descriptor = _load(ctx)
    runtime = RUNTIMES[ctx.obj['runtime']]()
    return ServiceOrchestrator(descriptor, runtime=runtime, readiness_timeout=timeout,
                               check_host_ports=ctx.obj['runtime'] == 'docker')


@cli.command()
@click.option('--skip-build-check', is_flag=True, help='Do not require build contexts to exist')
@click.pass_context
def validate(ctx, skip_build_check):
    """Check the descriptor for wiring errors."""
    descriptor = _load(ctx)
    try:
        warnings = DescriptorValidator(descriptor).validate(check_build_contexts=not skip_build_check)
    except ValidationError as e:
        for error in e.errors:
            click.echo(f"Error: {error}", err=True)
        ctx.exit(1)
    for warning in warnings:
        click.echo(f"Warning: {warning}", err=True)
    click.echo(f"{ctx.obj['file']} is valid.")


@cli.command()
@click.argument('services', nargs=-1)
@click.pass_context
def plan(ctx, services):
    """Show start order and the steps `up` would take."""
    try:
        deployment_plan = _orchestrator(ctx).plan(services or None)
    except DepwireError as e:
        raise click.ClickException(str(e))
    except KeyError as e:
        raise click.ClickException(e.args[0])
    click.echo(f"Start order: {' -> '.join(deployment_plan.start_order)}")
    for i, step in enumerate(deployment_plan.steps, 1):
        click.echo(f"{i:3}. {step}")


@cli.command()
@click.pass_context
def config(ctx):
    """Print the normalized, interpolated descriptor."""
    click.echo(ComposeExporter(_load(ctx)).to_yaml(), nl=False)


@cli.command()
@click.argument('services', nargs=-1)
@click.option('--timeout', '-t', default=60.0, show_default=True,
              help='Seconds to wait for each dependency to become ready')
@click.option('--no-build', is_flag=True, help='Do not build images')
@click.pass_context
def up(ctx, services, timeout, no_build):
    """Start services defined in the descriptor."""
    orchestrator = _orchestrator(ctx, timeout)
    try:
        result = orchestrator.up(services or None, check_build_contexts=not no_build, build=not no_build)
    except ValidationError as e:
        for error in e.errors:
            click.echo(f"Error: {error}", err=True)
        ctx.exit(1)
    except DepwireError as e:
        raise click.ClickException(str(e))
    except KeyError as e:
        raise click.ClickException(e.args[0])

    for name in result.started:
        click.echo(f"Started {name}")
    for name in result.failed:
        click.echo(f"Failed  {name}: {result.errors[name]}", err=True)
    for name in result.skipped:
        click.echo(f"Skipped {name}", err=True)
    if not result.success:
        ctx.exit(1)


@cli.command()
@click.pass_context
def down(ctx):
    """Stop all services and remove their networks."""
    try:
        _orchestrator(ctx).down()
    except DepwireError as e:
        raise click.ClickException(str(e))
    click.echo("Services stopped.")


@cli.command()
@click.pass_context
def ps(ctx):
    """List service status"""
    try:
        status = _orchestrator(ctx).ps()
    except DepwireError as e:
        raise click.ClickException(str(e))
    click.echo(f"{'SERVICE':20} {'STATUS':12}")
    click.echo("-" * 33)
    for name, state in status.items():
        click.echo(f"{name:20} {state:12}")


@cli.command()
@click.option('--type', '-t', type=click.Choice(['systemd', 'compose']), default='systemd')
@click.option('--out', '-o', default='dist', help='Output directory')
@click.pass_context
def convert(ctx, type, out):
    """Convert to native format"""
    descriptor = _load(ctx)
    try:
        if type == 'systemd':
            SystemdConverter(descriptor).convert(out)
        else:
            os.makedirs(out, exist_ok=True)
            with open(os.path.join(out, 'docker-compose.yml'), 'w') as f:
                f.write(ComposeExporter(descriptor).to_yaml())
    except DepwireError as e:
        raise click.ClickException(str(e))
    click.echo(f"Wrote {type} files to {out}")


def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})


if __name__ == '__main__':
    main()
