"""
Public façade for the *pipelines* sub-package.

The stages, in the order a batch flows through them:

* **Expansion / classification**
    * :func:`expand_archive`
    * :func:`classify`

* **Loading**
    * :class:`LoadQueue` – per-item state machine and batch driver
    * :func:`decode_raw_volume`
    * :class:`Downloader`, :class:`TransferProgress`
    * :class:`ProgressStore`

* **Assembly**
    * :class:`Assembler`, :class:`AssemblyResult`

Importing from ``ingestomatic.pipelines`` rather than individual modules keeps
call-sites stable even when underlying filenames change.
"""

from __future__ import annotations

# (1) Expand → (2) Classify → (3) Load → (4) Assemble.
from .archive import expand_archive
from .classify import classify
from .raw import decode_raw_volume
from .download import Downloader, TransferProgress
from .progress import ProgressStore
from .assemble import Assembler, AssemblyResult
from .queue import LoadQueue

__all__: list[str] = [
    "expand_archive",
    "classify",
    "decode_raw_volume",
    "Downloader",
    "TransferProgress",
    "ProgressStore",
    "Assembler",
    "AssemblyResult",
    "LoadQueue",
]
