"""Expose the project-wide Click group for the ``ingestomatic-cli`` script.

The module:

* declares a single Click *group* called :pyfunc:`main`;
* wires common global flags (project root, YAML override, verbosity);
* sets up logging via :pyfunc:`ingestomatic.utils.logging.setup_logging`;
* loads the ingest configuration and stashes it in the Click context;
* registers every sub-command located in sibling modules lazily.
"""

from __future__ import annotations

import importlib
import os
from pathlib import Path
from typing import Any, Dict

import click

from ingestomatic import __version__
from ingestomatic.config import load_config
from ingestomatic.utils.logging import setup_logging


class LazyGroup(click.Group):
    """Click group that imports sub-commands lazily."""

    def __init__(self, *args, **kwargs):
        self._lazy: dict[str, str] = {}
        super().__init__(*args, **kwargs)

    def set_lazy_command(self, name: str, target: str) -> None:
        """Register *name* to be imported from ``target`` on first use."""
        self._lazy[name] = target

    def list_commands(self, ctx):
        return sorted({*super().list_commands(ctx), *self._lazy})

    def get_command(self, ctx, cmd_name):  # noqa: D401 - Click signature
        cmd = super().get_command(ctx, cmd_name)
        if cmd is not None:
            return cmd
        target = self._lazy.get(cmd_name)
        if not target:
            return None
        module_name, attr = target.split(":", 1)
        cmd = getattr(importlib.import_module(module_name), attr)
        self.add_command(cmd, name=cmd_name)
        return cmd


# ─────────────────────────────────────────────────────────────────────────────
# Context settings shared by the entire Click hierarchy
# ─────────────────────────────────────────────────────────────────────────────
_CTX: Dict[str, Any] = dict(
    help_option_names=["-h", "--help"],
    show_default=True,
    max_content_width=120,
)


@click.group(
    cls=LazyGroup,
    context_settings=_CTX,
    help="""\b
ingestomatic-cli – load medical-imaging files into a scene.
""",
)
@click.version_option(__version__)
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Explicit ingest YAML (overrides <root>/config/ingest.yaml).",
)
@click.option(
    "-r",
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    help="Project directory holding config/ingest.yaml and logs/.",
)
@click.option("-v", "--verbose", is_flag=True, help="INFO-level console output.")
@click.option("--debug", is_flag=True, help="DEBUG console + JSON logfile.")
@click.option(
    "--save-logfile",
    type=click.Path(dir_okay=False, writable=True, path_type=Path),
    help="Mirror console output into this plain-text file.",
)
@click.pass_context
def main(  # noqa: D401 – Click requires the callback to be named “main”.
    ctx: click.Context,
    config_path: Path | None,
    root: Path | None,
    verbose: bool,
    debug: bool,
    save_logfile: Path | None,
) -> None:
    """Root command executed by *ingestomatic-cli*.

    Args:
        ctx: Click runtime context that carries objects across sub-commands.
        config_path: Explicit ingest YAML.
        root: Project directory. Falls back to ``$INGESTOMATIC_ROOT``; when
            neither is given logs go to the package folder.
        verbose: Emit INFO-level messages on the console.
        debug: Emit DEBUG-level messages and rich tracebacks.
        save_logfile: Optional plain-text mirror of console output.

    Raises:
        click.ClickException: When the configuration cannot be loaded.
    """
    env_root = os.environ.get("INGESTOMATIC_ROOT")
    root = root or (Path(env_root) if env_root else None)
    if root is not None:
        root = root.expanduser().resolve()

    # Logging must be configured before any output is produced ----------------
    setup_logging(
        log_root=root if root is not None and root.exists() else None,
        verbose=verbose,
        debug=debug,
        extra_text_log=save_logfile,
    )

    try:
        cfg = load_config(config_path=config_path, root=root)
    except RuntimeError as exc:
        raise click.ClickException(str(exc)) from exc

    ctx.obj = {
        "root": root,
        "cfg": cfg,
        "verbose": verbose,
        "debug": debug,
    }


main.set_lazy_command("load", "ingestomatic.cli.load:cli")
main.set_lazy_command("expand", "ingestomatic.cli.expand:cli")

cli = main
__all__: list[str] = ["main"]
