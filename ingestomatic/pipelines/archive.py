"""
In-memory expansion of ZIP / TAR containers.

:func:`expand_archive` turns one container into a flat list of
:class:`~ingestomatic.models.FileSource` entries, keeping only members whose
extension is supported. Directory structure is flattened to base names and
nested containers are expanded in place, so the output never holds a
container. Nothing touches the file-system.

Adversarial archives are bounded two ways, both controlled by *max_depth*:

* member paths nested deeper than *max_depth* directories;
* containers nested inside containers deeper than *max_depth* levels.

Either case, like a corrupt container, raises
:class:`~ingestomatic.utils.errors.ExpansionError` for this archive only.
"""

from __future__ import annotations

import io
import logging
import tarfile
import zipfile
import zlib
from typing import Collection, Iterator, List, Tuple

from ingestomatic.models import FileSource
from ingestomatic.utils.errors import ExpansionError
from ingestomatic.utils.naming import basename, container_suffix, get_extension

log = logging.getLogger(__name__)

DEFAULT_CONTAINERS: Tuple[str, ...] = ("zip", "tar", "tgz", "tar.gz")


# ---------------------------------------------------------------------------
# 1 – member iteration
# ---------------------------------------------------------------------------


def _zip_members(data: bytes) -> Iterator[Tuple[str, bytes]]:
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        for info in zf.infolist():
            if info.is_dir():
                continue
            yield info.filename, zf.read(info)


def _tar_members(data: bytes) -> Iterator[Tuple[str, bytes]]:
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as tf:
        for member in tf.getmembers():
            # Links and device entries carry no payload of their own.
            if not member.isfile():
                continue
            fh = tf.extractfile(member)
            if fh is None:
                continue
            yield member.name, fh.read()


def _members(name: str, data: bytes) -> List[Tuple[str, bytes]]:
    """Return ``(path, bytes)`` for every regular file inside the container."""
    try:
        if get_extension(name) == "zip" or zipfile.is_zipfile(io.BytesIO(data)):
            return list(_zip_members(data))
        return list(_tar_members(data))
    # Damaged compressed members only fail once they are read, with zlib's
    # own error or NotImplementedError for an unknown compression method.
    except (
        zipfile.BadZipFile,
        zipfile.LargeZipFile,
        tarfile.TarError,
        zlib.error,
        NotImplementedError,
        EOFError,
        OSError,
    ) as exc:
        raise ExpansionError(f"Cannot open archive {name}: {exc}") from exc


def _dir_depth(path: str) -> int:
    return len([p for p in path.strip("/").split("/") if p]) - 1


# ---------------------------------------------------------------------------
# 2 – public entry point
# ---------------------------------------------------------------------------


def expand_archive(
    name: str,
    data: bytes,
    supported: Collection[str],
    *,
    containers: Collection[str] = DEFAULT_CONTAINERS,
    max_depth: int = 8,
    _level: int = 0,
) -> List[FileSource]:
    """Return the supported leaf files of the container *name*.

    Args:
        name: Container file name; its extension selects ZIP vs. TAR.
        data: Raw container bytes.
        supported: Extensions (lower-case, no dot) to keep. Container
            extensions listed here are expanded recursively.
        containers: Extensions treated as containers. Compound entries such
            as ``tar.gz`` match on the full suffix.
        max_depth: Maximum directory and container nesting depth.

    Returns:
        Files in archive order, named by their base name.

    Raises:
        ExpansionError: If the container is corrupt or nested too deeply.
    """
    if _level >= max_depth:
        raise ExpansionError(
            f"Archive {name} nests containers deeper than {max_depth} levels"
        )

    out: List[FileSource] = []
    for path, payload in _members(name, data):
        if _dir_depth(path) > max_depth:
            raise ExpansionError(
                f"Archive {name} nests directories deeper than {max_depth} levels"
            )
        leaf = basename(path)
        suffix = container_suffix(leaf, containers)
        ext = suffix or get_extension(leaf)
        if ext not in supported:
            log.debug("Skipping unsupported archive member %s", path)
            continue
        if suffix is not None:
            out.extend(
                expand_archive(
                    leaf,
                    payload,
                    supported,
                    containers=containers,
                    max_depth=max_depth,
                    _level=_level + 1,
                )
            )
            continue
        out.append(FileSource(name=leaf, data=payload))

    log.debug("Expanded %s into %d file(s)", name, len(out))
    return out


__all__ = ["expand_archive", "DEFAULT_CONTAINERS"]
