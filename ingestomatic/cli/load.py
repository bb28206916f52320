"""Run the full load pipeline over local files and remote URLs.

The command is exposed as ``ingestomatic-cli load``. Files and URLs are
submitted as one batch, every item is driven to a settled state, and the
ready items are assembled into an in-memory scene. The exit status is 1
when any item ended in ``error``.

Key flags
------------
* ``--url NAME=URL``      – add a remote item named *NAME*.
* ``--auth``              – send the configured credential with every URL.
* ``--raw-info NAME=SHAPE`` – shape of a headerless ``.raw`` volume, written as
  ``X,Y,Z:DX,DY,DZ:TYPE`` with an optional ``:big`` / ``:little`` suffix.
* ``--overlay NAME`` / ``--annotation NAME`` – route *NAME* as a label overlay
  or measurement set instead of a primary dataset.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Dict, List, Tuple

import click
import structlog
from pydantic import ValidationError

from ingestomatic.config.schema import IngestConfig
from ingestomatic.models import (
    AttachmentMeta,
    AttachmentRole,
    FileSource,
    ItemState,
    RawVolumeInfo,
    RemoteSource,
)
from ingestomatic.pipelines.assemble import Assembler, AssemblyResult
from ingestomatic.pipelines.queue import LoadQueue
from ingestomatic.scene import InMemoryScene
from ingestomatic.utils.display import (
    echo_banner,
    echo_item,
    echo_progress,
    echo_section,
    echo_success,
)

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# option parsing helpers
# ---------------------------------------------------------------------------
def _split_pair(raw: str, flag: str) -> Tuple[str, str]:
    name, sep, value = raw.partition("=")
    if not sep or not name or not value:
        raise click.BadParameter(f"expected NAME=VALUE, got '{raw}'", param_hint=flag)
    return name.strip(), value.strip()


def _floats(text: str) -> Tuple[float, ...]:
    return tuple(float(v) for v in text.split(","))


def parse_raw_info(text: str) -> RawVolumeInfo:
    """Parse ``X,Y,Z:DX,DY,DZ:TYPE[:ORDER]`` into :class:`RawVolumeInfo`.

    Raises:
        click.BadParameter: On a malformed or invalid value.
    """
    parts = text.split(":")
    if len(parts) not in (3, 4):
        raise click.BadParameter(
            f"expected X,Y,Z:DX,DY,DZ:TYPE, got '{text}'", param_hint="--raw-info"
        )
    try:
        info = {
            "dimensions": tuple(int(v) for v in parts[0].split(",")),
            "spacing": _floats(parts[1]),
            "elementType": parts[2].strip().lower(),
        }
        if len(parts) == 4:
            info["byte_order"] = parts[3].strip().lower()
        return RawVolumeInfo.model_validate(info)
    except (ValueError, ValidationError) as exc:
        raise click.BadParameter(f"'{text}': {exc}", param_hint="--raw-info") from exc


def _iter_files(paths: Tuple[Path, ...]) -> List[Path]:
    out: List[Path] = []
    for p in paths:
        if p.is_dir():
            out.extend(sorted(f for f in p.rglob("*") if f.is_file()))
        else:
            out.append(p)
    return out


def build_sources(
    paths: Tuple[Path, ...],
    urls: Tuple[str, ...],
    *,
    auth: bool,
    raw_info: Dict[str, RawVolumeInfo],
    roles: Dict[str, AttachmentRole],
) -> list:
    """Turn command-line arguments into a submission batch."""

    def _meta(name: str) -> AttachmentMeta:
        return AttachmentMeta(role=roles.get(name, AttachmentRole.UNTAGGED))

    sources: list = [
        FileSource(
            name=f.name,
            data=f.read_bytes(),
            attachment=_meta(f.name),
            extra_info=raw_info.get(f.name),
        )
        for f in _iter_files(paths)
    ]
    for raw in urls:
        name, url = _split_pair(raw, "--url")
        sources.append(
            RemoteSource(
                name=name,
                url=url,
                auth_required=auth,
                attachment=_meta(name),
                extra_info=raw_info.get(name),
            )
        )
    return sources


# ---------------------------------------------------------------------------
# pipeline run
# ---------------------------------------------------------------------------
async def _run(cfg: IngestConfig, sources: list, scene: InMemoryScene) -> Tuple[LoadQueue, AssemblyResult, bool]:
    queue = LoadQueue(config=cfg)
    try:
        await queue.submit(sources)

        echo_section("Items")
        for item in queue.items:
            echo_item(item)
        if len(queue.progress):
            echo_progress(queue.progress.aggregate(), "download")

        failed = queue.any_errors
        result = await queue.load(Assembler(scene, config=cfg))
    finally:
        queue.downloader.close()
    return queue, result, failed


@click.command(
    name="load",
    help="Load files and URLs into an in-memory scene and report the outcome.",
    context_settings=dict(help_option_names=["-h", "--help"], max_content_width=120),
)
@click.argument("paths", type=click.Path(path_type=Path, exists=True), nargs=-1)
@click.option("--url", "urls", multiple=True, metavar="NAME=URL", help="Remote item to download.")
@click.option("--auth", is_flag=True, help="Send the configured credential with every URL.")
@click.option(
    "--raw-info",
    "raw_values",
    multiple=True,
    metavar="NAME=X,Y,Z:DX,DY,DZ:TYPE",
    help="Shape of a headerless .raw volume.",
)
@click.option("--overlay", "overlays", multiple=True, metavar="NAME", help="Load NAME as a label overlay.")
@click.option("--annotation", "annotations", multiple=True, metavar="NAME", help="Load NAME as measurements.")
@click.pass_obj
def cli(  # noqa: D401 – Click callback naming rule
    ctx_obj,
    paths: Tuple[Path, ...],
    urls: Tuple[str, ...],
    auth: bool,
    raw_values: Tuple[str, ...],
    overlays: Tuple[str, ...],
    annotations: Tuple[str, ...],
) -> None:
    """Entry-point for ``ingestomatic-cli load``.

    Args:
        ctx_obj:     Click context with global flags already parsed.
        paths:       Files or directories to load.
        urls:        ``NAME=URL`` remote items.
        auth:        Mark every remote item as requiring authentication.
        raw_values:  ``NAME=X,Y,Z:DX,DY,DZ:TYPE`` raw-volume shapes.
        overlays:    Names routed as label overlays.
        annotations: Names routed as measurement sets.
    """
    cfg: IngestConfig = ctx_obj["cfg"]
    if not paths and not urls:
        raise click.UsageError("Nothing to load: pass PATHS and/or --url.")

    raw_info = {
        name: parse_raw_info(value)
        for name, value in (_split_pair(r, "--raw-info") for r in raw_values)
    }
    roles: Dict[str, AttachmentRole] = {n: AttachmentRole.LABEL_OVERLAY for n in overlays}
    roles.update({n: AttachmentRole.ANNOTATION for n in annotations})

    echo_banner("Load")
    sources = build_sources(paths, urls, auth=auth, raw_info=raw_info, roles=roles)
    log.info("submitting batch", sources=len(sources))

    scene = InMemoryScene()
    queue, result, failed = asyncio.run(_run(cfg, sources, scene))

    echo_section("Scene")
    if result.restored_snapshot:
        click.echo(f"  restored session from {result.restored_snapshot}")
    click.echo(f"  primaries:   {len(result.primary_ids)}")
    click.echo(f"  overlays:    {len(result.overlays)}")
    click.echo(f"  annotations: {result.annotations}")
    for item_id in result.orphaned:
        click.secho(f"  orphaned:    {item_id}", fg="yellow")
    for item_id in result.failed:
        click.secho(f"  failed:      {item_id}", fg="red")

    waiting = [i.name for i in queue.items if i.state is ItemState.NEEDS_INFO]
    if waiting:
        click.secho(
            "  waiting for --raw-info: " + ", ".join(waiting), fg="yellow"
        )

    if failed:
        log.warning("load finished with errors")
        raise SystemExit(1)
    echo_success("Load complete")


__all__ = ["cli", "parse_raw_info", "build_sources"]
