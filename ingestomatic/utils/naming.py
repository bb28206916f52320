"""Filename helpers shared by the classifier, the readers and the assembler."""

from __future__ import annotations

from typing import Iterable, Optional

__all__ = ["get_extension", "container_suffix", "basename", "unique_name"]


def get_extension(filename: str) -> str:
    """Return the lower-cased text after the last dot of *filename*.

    Only the final segment counts, so ``scan.nii.gz`` yields ``gz``. Names
    without a dot yield an empty string.

        >>> get_extension("CT0001.DCM")
        'dcm'
        >>> get_extension("README")
        ''
    """
    i = filename.rfind(".")
    if i > -1:
        return filename[i + 1 :].lower()
    return ""


def container_suffix(filename: str, containers: Iterable[str]) -> Optional[str]:
    """Return the entry of *containers* that *filename* ends with, or ``None``.

    Matching is on the whole suffix, so ``tar.gz`` is recognised even though
    :func:`get_extension` only sees ``gz``. Longer entries win.

        >>> container_suffix("study.TAR.GZ", ["gz", "tar.gz"])
        'tar.gz'
    """
    lower = filename.lower()
    for ext in sorted(containers, key=len, reverse=True):
        if lower.endswith("." + ext):
            return ext
    return None


def basename(path: str) -> str:
    """Return the last component of a ``/``-separated archive member path."""
    return path.rstrip("/").rsplit("/", 1)[-1]


def unique_name(name: str, taken: Iterable[str]) -> str:
    """Return *name*, suffixed with ``#2``, ``#3`` … until it is not in *taken*."""
    used = set(taken)
    if name not in used:
        return name
    n = 2
    while f"{name}#{n}" in used:
        n += 1
    return f"{name}#{n}"
