"""
STACKCTL - Command Line

Point d'entrée `stackctl`:

    stackctl --env-file .env validate
    stackctl --env-file .env plan
    stackctl --env-file .env deploy --with-cutover

Le journal JSON part sur stderr (et optionnellement dans un fichier); stdout
ne reçoit que les résultats destinés à l'automatisation.
"""

import asyncio
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional

import click

from src.core.config_loader import ConfigLoader, ConfigSourceError
from src.deployment.deployment_pipeline import DeploymentPipeline, PipelineOptions, PipelineResult
from src.deployment.failure_reporter import FailureReporter
from src.deployment.interfaces import ExitCode
from src.logging.interfaces import LogConfig, LogLevel
from src.logging.structured_logger import StructuredLogger

LEVELS = ["DEBUG", "INFO", "WARN", "ERROR", "CRITICAL"]


def build_logger(level: str = "INFO", log_file: Optional[Path] = None) -> StructuredLogger:
    """Logger de l'exécution: stderr, plus le fichier de run s'il est demandé."""

    def output(line: str) -> None:
        click.echo(line, err=True)
        if log_file is not None:
            with open(log_file, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    config = LogConfig(min_level=LogLevel.from_name(level), default_component="cli")
    return StructuredLogger("stackctl", config=config, output_handler=output)


@contextmanager
def handle_errors(logger: StructuredLogger) -> Iterator[None]:
    """Exceptions non prévues: journalisées puis code rollout fatal."""
    try:
        yield
    except ConfigSourceError as e:
        logger.error("Configuration source unreadable", error=str(e))
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(ExitCode.CONFIG_INVALID)
    except Exception as e:
        logger.critical("Unexpected error", error_type=type(e).__name__, error=str(e))
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(ExitCode.ROLLOUT_FATAL)


def _env_source(ctx: click.Context) -> Optional[Path]:
    return ctx.obj["env_file"]


def _run_pipeline(ctx: click.Context, options: PipelineOptions, show: Callable[[PipelineResult], None]) -> None:
    logger: StructuredLogger = ctx.obj["logger"]
    with handle_errors(logger):
        result = asyncio.run(DeploymentPipeline(logger).run(options))
    show(result)
    if result.error:
        click.secho(f"Error: {result.error}", fg="red", err=True)
    sys.exit(int(result.exit_code))


def _show_summary(result: PipelineResult) -> None:
    if result.summary is not None:
        click.echo(FailureReporter.render(result.summary))
    if result.report_path is not None:
        click.echo(f"Report: {result.report_path}", err=True)


def _show_cutover(result: PipelineResult) -> None:
    if result.cutover is None:
        return
    cutover = result.cutover
    click.echo(
        f"Cutover: {cutover.final_state.value}"
        f" ({' -> '.join(state.value for state in cutover.transitions) or 'no transition'})"
    )
    if cutover.certificate is not None:
        click.echo(
            f"Certificate: {cutover.certificate.fingerprint}"
            f" expires {cutover.certificate.not_after.isoformat()}"
        )


@click.group()
@click.option(
    "--env-file",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="STACKCTL_ENV_FILE",
    default=None,
    help="Environment bundle (KEY=value). Defaults to the process environment.",
)
@click.option("--log-level", type=click.Choice(LEVELS, case_sensitive=False), default="INFO")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also append JSON log lines to this file",
)
@click.pass_context
def main(ctx: click.Context, env_file: Optional[Path], log_level: str, log_file: Optional[Path]) -> None:
    """Provision, roll out and certify a multi-service container stack."""
    ctx.ensure_object(dict)
    ctx.obj["env_file"] = env_file
    ctx.obj["logger"] = build_logger(log_level, log_file)


@main.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Validate the environment bundle and list every finding."""
    logger: StructuredLogger = ctx.obj["logger"]
    with handle_errors(logger):
        result = ConfigLoader(logger=logger).validate(_env_source(ctx))

    for finding in result.errors + result.warnings + result.infos:
        click.echo(f"{finding.severity.value:<8} {finding.key}: {finding.message}")
    if not result.valid:
        click.secho(f"{len(result.errors)} blocking finding(s)", fg="red", err=True)
        sys.exit(ExitCode.CONFIG_INVALID)
    click.secho("Configuration valid", fg="green", err=True)


@main.command()
@click.option("--manifest", type=click.Path(dir_okay=False, path_type=Path), default=None)
@click.pass_context
def plan(ctx: click.Context, manifest: Optional[Path]) -> None:
    """Show the tier plan without changing anything."""

    def show(result: PipelineResult) -> None:
        for tier in result.plan:
            services = ", ".join(
                f"{s['name']} ({s['criticality']}, {s['probe']})" for s in tier["services"]
            )
            click.echo(f"tier {tier['tier']} {tier['name']}: {services or '-'}")

    options = PipelineOptions(env_source=_env_source(ctx), manifest_path=manifest, dry_run=True)
    _run_pipeline(ctx, options, show)


@main.command()
@click.pass_context
def provision(ctx: click.Context) -> None:
    """Create directories and the isolated network, check host resources."""

    def show(result: PipelineResult) -> None:
        if result.provision is None:
            return
        for path, action in sorted(result.provision.directories.items()):
            click.echo(f"{action.value:<9} {path}")
        for warning in result.provision.warnings:
            click.secho(f"warning: {warning}", fg="yellow", err=True)

    options = PipelineOptions(env_source=_env_source(ctx), rollout=False)
    _run_pipeline(ctx, options, show)


@main.command()
@click.option("--manifest", type=click.Path(dir_okay=False, path_type=Path), default=None)
@click.pass_context
def rollout(ctx: click.Context, manifest: Optional[Path]) -> None:
    """Start services tier by tier and wait for readiness."""
    options = PipelineOptions(env_source=_env_source(ctx), manifest_path=manifest, provision=False)
    _run_pipeline(ctx, options, _show_summary)


@main.command()
@click.option("--force", is_flag=True, help="Issue a new certificate even if the current one is valid")
@click.option("--staging/--production", default=None, help="ACME environment (default: SSL_STAGING)")
@click.pass_context
def cutover(ctx: click.Context, force: bool, staging: Optional[bool]) -> None:
    """Issue or renew the certificate and switch the proxy to production."""
    options = PipelineOptions(
        env_source=_env_source(ctx),
        provision=False,
        rollout=False,
        cutover=True,
        force_renewal=force,
        staging=staging,
    )
    _run_pipeline(ctx, options, _show_cutover)


@main.command()
@click.option("--manifest", type=click.Path(dir_okay=False, path_type=Path), default=None)
@click.option("--with-cutover", is_flag=True, help="Run the certificate cutover after a successful rollout")
@click.option("--force", is_flag=True, help="Force certificate renewal during the cutover")
@click.option("--staging/--production", default=None, help="ACME environment (default: SSL_STAGING)")
@click.option("--dry-run", is_flag=True, help="Validate and show the plan without executing")
@click.pass_context
def deploy(
    ctx: click.Context,
    manifest: Optional[Path],
    with_cutover: bool,
    force: bool,
    staging: Optional[bool],
    dry_run: bool,
) -> None:
    """Full run: validate, provision, roll out, then optionally cut over."""

    def show(result: PipelineResult) -> None:
        _show_summary(result)
        _show_cutover(result)

    options = PipelineOptions(
        env_source=_env_source(ctx),
        manifest_path=manifest,
        cutover=with_cutover,
        force_renewal=force,
        staging=staging,
        dry_run=dry_run,
    )
    _run_pipeline(ctx, options, show)


if __name__ == "__main__":
    main()
