"""serviceuser CLI: provision team service accounts and emit a kubeconfig.

Usage::

    serviceuser --team payments --clusters dev-a,dev-b --create > payments.kubeconfig
    serviceuser --team payments --rotate
    serviceuser --team payments --revoke

The merged kubeconfig is written to stdout (or ``--output``); all log
output goes to stderr.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import NoReturn

import click
import pydantic

from serviceuser import __version__
from serviceuser.config import ProjectConfig, build_run_config, load_config, split_clusters
from serviceuser.errors import OutputError, ValidationError
from serviceuser.kubeconfig import assembler
from serviceuser.log import configure_logging
from serviceuser.models import Kubeconfig
from serviceuser.runner.orchestrator import Orchestrator


def _fail(message: str) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _load_project(config_path: str | None) -> ProjectConfig:
    """Load serviceuser.yaml (explicit path or auto-discovered)."""
    try:
        return load_config(config_path)
    except (OSError, ValueError, pydantic.ValidationError) as exc:
        _fail(f"cannot load config: {exc}")


@click.command()
@click.version_option(version=__version__)
@click.option("--team", default=None, help="Team name that will own the configuration file.")
@click.option(
    "--clusters", multiple=True,
    help="Which clusters to operate on, comma separated. The first becomes the default context.",
)
@click.option("--create", is_flag=True, help="Create service accounts that do not exist.")
@click.option(
    "--rotate", is_flag=True,
    help="Rotate secret tokens that are already present in cluster. "
    "This will invalidate old tokens.",
)
@click.option("--revoke", is_flag=True, help="Delete any tokens that belong to this team.")
@click.option("--debug", is_flag=True, help="Print debugging information.")
@click.option(
    "--kubeconfig", envvar="KUBECONFIG", default=None,
    help="Kubeconfig holding a context for every cluster (default: $KUBECONFIG).",
)
@click.option("--namespace", default=None, help="Namespace of the service accounts.")
@click.option(
    "--config", "config_path", default=None,
    type=click.Path(dir_okay=False),
    help="Path to serviceuser.yaml (default: auto-discover).",
)
@click.option(
    "--output", "-o", "output", default=None,
    type=click.Path(dir_okay=False, writable=True),
    help="Write the kubeconfig to this file instead of stdout.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    team: str | None,
    clusters: tuple[str, ...],
    create: bool,
    rotate: bool,
    revoke: bool,
    debug: bool,
    kubeconfig: str | None,
    namespace: str | None,
    config_path: str | None,
    output: str | None,
) -> None:
    """Generate a kubeconfig for a team's service accounts across clusters."""
    logger = configure_logging(debug)

    project = _load_project(config_path)
    try:
        run_config = build_run_config(
            team,
            clusters=split_clusters(clusters) if clusters else None,
            create=create,
            rotate=rotate,
            revoke=revoke,
            debug=debug,
            namespace=namespace,
            kubeconfig=kubeconfig,
            project=project,
        )
    except ValidationError as exc:
        click.echo(ctx.get_usage(), err=True)
        _fail(str(exc))

    logger.debug(
        "team=%s mode=%s clusters=%s namespace=%s",
        run_config.team, run_config.mode.value, ",".join(run_config.clusters),
        run_config.namespace,
    )

    report = Orchestrator(run_config).run()
    if not report.ok:
        sys.exit(1)
    if report.kubeconfig is None:
        return

    try:
        if output is None:
            assembler.write(report.kubeconfig, sys.stdout)
        else:
            _write_file(Path(output), report.kubeconfig)
    except OutputError as exc:
        logger.error("%s", exc)
        sys.exit(1)

    logger.info("configuration file successfully written to %s", output or "stdout")


def _write_file(path: Path, document: Kubeconfig) -> None:
    try:
        with path.open("w", encoding="utf-8") as fh:
            assembler.write(document, fh)
    except OSError as exc:
        raise OutputError(f"while writing {path}: {exc}") from exc
