"""Shared utility functions for Mockup Sync.

Provides slug sanitising, JSON output, atomic file writes, SHA-256 helpers,
timestamp formatting, and Rich-based stage and summary output.  Every
public function is side-effect-free except the explicit writers, with clear
error messages when something goes wrong.
"""

from __future__ import annotations

import contextlib
import hashlib
import json
import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.rule import Rule
from rich.table import Table

console = Console()
err_console = Console(stderr=True)


def set_quiet(quiet: bool) -> None:
    """Silence (or restore) non-error console output."""
    console.quiet = quiet


# ---------------------------------------------------------------------------
# String / name helpers
# ---------------------------------------------------------------------------


def sanitize_name(name: str) -> str:
    """Convert an arbitrary file or feature name to a safe slug segment.

    * Lowercases the input.
    * Replaces spaces and non-alphanumeric characters (except hyphens and
      underscores) with hyphens.
    * Collapses consecutive hyphens and strips leading/trailing hyphens.

    Examples::

        sanitize_name("Order History") -> "order-history"
        sanitize_name("  2FA (TOTP)  ") -> "2fa-totp"
    """
    result = re.sub(r"[^a-zA-Z0-9_-]", "-", name.strip().lower())
    result = re.sub(r"-+", "-", result)
    return result.strip("-")


def pascal_case(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``SomeThing``."""
    parts = re.split(r"[-_\s/]+", value)
    return "".join(word[:1].upper() + word[1:] for word in parts if word)


def camel_case(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``someThing``."""
    pascal = pascal_case(value)
    return pascal[:1].lower() + pascal[1:]


# ---------------------------------------------------------------------------
# Hashing / time
# ---------------------------------------------------------------------------


def sha256_bytes(data: bytes) -> str:
    """Return the SHA-256 hex digest for raw bytes."""
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: str | Path) -> str:
    """Return the SHA-256 hex digest of a file's raw content."""
    digest = hashlib.sha256()
    with Path(path).open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def run_timestamp() -> str:
    """Sortable, filename-safe UTC timestamp used for run ids."""
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")


# ---------------------------------------------------------------------------
# JSON I/O
# ---------------------------------------------------------------------------


def dump_json(data: Any) -> str:
    """Pretty-print *data* with a stable key order and a trailing newline."""
    return json.dumps(data, indent=2, ensure_ascii=False, sort_keys=True, default=str) + "\n"


def write_json(data: Any, path: str | Path) -> None:
    """Atomically save data as pretty-printed JSON, creating parent dirs."""
    atomic_write(path, dump_json(data))


# ---------------------------------------------------------------------------
# File-system helpers
# ---------------------------------------------------------------------------


def atomic_write(path: str | Path, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """Atomically write ``data`` to ``path``.

    A temp file is created next to the target, flushed and fsynced, then
    moved over the target with ``os.replace``.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent)
    )
    temp_path = Path(temp_name)
    payload = data.encode(encoding) if isinstance(data, str) else data
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, target)
    except BaseException:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Examples::

        format_duration(3.7)    -> "3.7s"
        format_duration(65.2)   -> "1m 5s"
        format_duration(3661.0) -> "1h 1m 1s"
    """
    if seconds < 0:
        return "0.0s"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = seconds % 60

    parts: list[str] = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")

    if hours > 0 or minutes > 0:
        parts.append(f"{int(secs)}s")
    else:
        parts.append(f"{secs:.1f}s")

    return " ".join(parts)


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


STAGE_NAMES: dict[int, str] = {
    1: "SCAN",
    2: "COMPARE",
    3: "PLAN",
    4: "EXECUTE",
    5: "RECORD",
}

STAGE_COLORS: dict[int, str] = {
    1: "bright_cyan",
    2: "bright_green",
    3: "bright_yellow",
    4: "bright_magenta",
    5: "bright_blue",
}


def print_stage_header(stage: int, name: str | None = None) -> None:
    """Print a full-width rule announcing a pipeline stage."""
    label = (name or STAGE_NAMES.get(stage, "?")).upper()
    color = STAGE_COLORS.get(stage, "white")
    console.print(Rule(f"[bold {color}] {stage}. {label} [/bold {color}]", style=color))


def print_summary_table(data: dict[str, str], title: str = "Summary") -> None:
    """Print a two-column key/value summary table."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)
    console.print()


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{message}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message (never silenced by ``--quiet``)."""
    err_console.print(f"[bold red]{message}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{message}[/bold yellow]")
