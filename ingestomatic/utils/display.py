"""Utility functions to print formatted CLI messages."""

from __future__ import annotations

from typing import Optional

import click

from ingestomatic.models import ItemState, LoadItem

__all__ = ["echo_banner", "echo_success", "echo_item", "echo_progress", "echo_section"]

_STATE_COLOURS = {
    ItemState.READY: "green",
    ItemState.ERROR: "red",
    ItemState.NEEDS_INFO: "yellow",
    ItemState.NEEDS_DOWNLOAD: "blue",
    ItemState.LOADING: "cyan",
}


def echo_banner(text: str) -> None:
    """Print a colourful banner announcing a processing step."""
    click.secho(f"\n=== {text} ===", fg="cyan")


def echo_section(text: str) -> None:
    click.secho(f"\n  — {text} —", fg="magenta")


def echo_success(text: str) -> None:
    """Echo a green success message prefixed with a tick."""
    click.secho(f"✓ {text}", fg="green")


def echo_item(item: LoadItem) -> None:
    """Echo one bullet line with the item's state and any error or warning."""
    state = click.style(f"{item.state.value:<13}", fg=_STATE_COLOURS.get(item.state))
    click.echo(f"  • {state} {item.name} [{item.kind.value}]")
    if item.error:
        click.secho(f"      {item.error_kind.value if item.error_kind else 'error'}: {item.error}", fg="red")
    for warning in item.warnings:
        click.secho(f"      warning: {warning}", fg="yellow")


def echo_progress(fraction: float, label: Optional[str] = None) -> None:
    pct = int(round(fraction * 100))
    click.echo(f"  {label or 'progress'}: {pct}%")
