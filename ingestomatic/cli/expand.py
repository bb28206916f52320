"""List the loadable entries of a ZIP / TAR archive without loading them."""

from __future__ import annotations

from pathlib import Path

import click
import structlog

from ingestomatic.pipelines.archive import expand_archive
from ingestomatic.readers import DefaultFormatReader
from ingestomatic.utils.display import echo_banner, echo_success
from ingestomatic.utils.errors import ExpansionError

log = structlog.get_logger()


@click.command(
    name="expand",
    help="List the supported files inside an archive.",
    context_settings=dict(help_option_names=["-h", "--help"], max_content_width=120),
)
@click.argument("archive", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.pass_obj
def cli(ctx_obj, archive: Path) -> None:  # noqa: D401 – Click callback naming rule
    """Entry-point for ``ingestomatic-cli expand``.

    Raises:
        click.ClickException: When the archive is corrupt or nested too deeply.
    """
    cfg = ctx_obj["cfg"]
    supported = {*DefaultFormatReader(cfg).supported_extensions(), *cfg.pipeline_extensions()}

    echo_banner(f"Expand {archive.name}")
    try:
        entries = expand_archive(
            archive.name,
            archive.read_bytes(),
            supported,
            containers=cfg.container_extensions,
            max_depth=cfg.max_archive_depth,
        )
    except ExpansionError as exc:
        raise click.ClickException(str(exc)) from exc

    for entry in entries:
        click.echo(f"  • {entry.name} ({len(entry.data)} bytes)")
    log.info("archive expanded", archive=str(archive), entries=len(entries))
    echo_success(f"{len(entries)} supported file(s)")


__all__ = ["cli"]
