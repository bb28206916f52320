"""
ingestomatic package initialisation.

1. **Expose the version string** – ``ingestomatic.__version__`` is resolved
   from the installed distribution metadata.
2. **Re-export the entry points** most callers need::

       from ingestomatic import LoadQueue, Assembler, load_config
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__: str = version("ingestomatic")
except PackageNotFoundError:
    # Source tree without an installed wheel.
    __version__ = "0.0.0"

from .config import load_config  # noqa: E402
from .pipelines import Assembler, LoadQueue  # noqa: E402

__all__: list[str] = ["load_config", "LoadQueue", "Assembler", "__version__"]
