"""CLI interface for sshscript"""

import logging
import signal
import sys
import threading
from contextlib import contextmanager

import click

from sshscript.core.config import Config, Phase
from sshscript.core.context import Context
from sshscript.core.diagnostics import LoggingSink
from sshscript.core.errors import ProvisionError
from sshscript.core.orchestrator import Orchestrator
from sshscript.core.provisioner import Provisioner
from sshscript.core.retry import parse_duration

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

PHASES = [phase.value for phase in Phase] + ["delete"]


def _load_config(config: str, env_file: tuple) -> Config:
    env_files = list(env_file) if env_file else None
    return Config(config, env_files=env_files)


@contextmanager
def _operation_context(deadline: str):
    """Context for one CLI invocation; Ctrl-C cancels it instead of killing the process"""
    ctx = Context.with_timeout(parse_duration(deadline)) if deadline else Context.background()

    if threading.current_thread() is not threading.main_thread():
        yield ctx
        return

    def _cancel(signum, frame):
        click.echo("\nCancelling...", err=True)
        ctx.cancel()

    previous = signal.signal(signal.SIGINT, _cancel)
    try:
        yield ctx
    finally:
        signal.signal(signal.SIGINT, previous)


config_option = click.option(
    "-c",
    "--config",
    required=True,
    type=click.Path(exists=True),
    help="Path to script YAML file",
)
env_file_option = click.option(
    "-e",
    "--env-file",
    multiple=True,
    type=click.Path(exists=True),
    help="Load environment variables from file (can be used multiple times)",
)
deadline_option = click.option(
    "--deadline",
    default=None,
    help="Abort retrying after this duration (e.g. 30m); default: retry until interrupted",
)
skip_host_verification_option = click.option(
    "--skip-host-verification",
    is_flag=True,
    help="Skip SSH host key verification (insecure, only for testing)",
)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug mode with verbose output",
)
@click.version_option(package_name="sshscript")
@click.pass_context
def cli(ctx, debug):
    """sshscript - provision a remote host over SSH

    Uploads files and runs lifecycle commands with retries until they
    succeed or the deadline passes.
    """
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug

    if debug:
        logging.getLogger().setLevel(logging.DEBUG)


@cli.command()
@config_option
@click.option(
    "-p",
    "--phase",
    type=click.Choice(PHASES),
    default=Phase.CREATE.value,
    show_default=True,
    help="Lifecycle phase to run",
)
@env_file_option
@deadline_option
@skip_host_verification_option
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    help="Enable verbose logging",
)
@click.pass_context
def run(ctx, config: str, phase: str, env_file: tuple, deadline: str,
        skip_host_verification: bool, verbose: bool):
    """Run one lifecycle phase of a script

    Examples:
        sshscript run -c script.yaml
        sshscript run -c script.yaml -p destroy --deadline 10m
    """
    if verbose or ctx.obj.get("debug"):
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        cfg = _load_config(config, env_file)
        if not cfg.validate():
            click.echo("✗ Configuration validation failed")
            sys.exit(1)

        orchestrator = Orchestrator(cfg, sink=LoggingSink(), skip_host_verification=skip_host_verification)
        with _operation_context(deadline) as op_ctx:
            result = orchestrator.run_phase(Phase.parse(phase), op_ctx)

    except (ProvisionError, OSError) as e:
        click.echo(f"\n✗ Error: {e}")
        sys.exit(1)

    if result.output:
        click.echo(result.output, nl=not result.output.endswith("\n"))

    if result.ok:
        click.echo(f"✓ {result.phase.value} completed successfully")
        sys.exit(0)

    for diagnostic in result.diagnostics:
        click.echo(f"✗ {diagnostic}")
    sys.exit(1)


@cli.command("exec")
@config_option
@click.argument("commands", nargs=-1, required=True)
@env_file_option
@deadline_option
@skip_host_verification_option
def exec_command(config: str, commands: tuple, env_file: tuple, deadline: str,
                 skip_host_verification: bool):
    """Run ad-hoc commands on the script's host with the same retry policy

    Examples:
        sshscript exec -c script.yaml "uname -a"
        sshscript exec -c script.yaml "systemctl restart nginx" "systemctl is-active nginx"
    """
    try:
        cfg = _load_config(config, env_file)
        with _operation_context(deadline) as op_ctx, \
                Provisioner(cfg.connection, cfg.retry_policy, sink=LoggingSink(),
                            skip_host_verification=skip_host_verification) as provisioner:
            output = provisioner.execute(list(commands), op_ctx)
    except (ProvisionError, OSError) as e:
        click.echo(f"✗ Error: {e}")
        sys.exit(1)

    click.echo(output, nl=not output.endswith("\n"))
    sys.exit(0)


@cli.command()
@config_option
@env_file_option
def validate(config: str, env_file: tuple):
    """Validate a script file without connecting

    Examples:
        sshscript validate -c script.yaml
        sshscript validate -c script.yaml -e .env.prod
    """
    try:
        cfg = _load_config(config, env_file)

        problems = cfg.problems()
        if problems:
            for problem in problems:
                click.echo(f"  - {problem}")
            click.echo("✗ Configuration validation failed")
            sys.exit(1)

        connection = cfg.connection
        policy = cfg.retry_policy
        click.echo("✓ Configuration is valid")
        click.echo(f"  Host: {connection.user}@{connection.address}")
        click.echo(f"  Timeout: {policy.timeout}s, retry delay: {policy.retry_delay}s")
        click.echo(f"  Files: {len(cfg.files)}")
        for phase in Phase:
            click.echo(f"  {phase.value} commands: {len(cfg.commands_for(phase))}")

        sys.exit(0)

    except (ProvisionError, OSError) as e:
        click.echo(f"✗ Error: {e}")
        sys.exit(1)


def main():
    """Entry point for CLI"""
    cli()


if __name__ == "__main__":
    main()
