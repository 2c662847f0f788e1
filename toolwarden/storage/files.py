"""Crash-safe file writes for policy and statistics files."""

from __future__ import annotations

import contextlib
import logging
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def write_atomic(path: Path, content: str) -> None:
    """Write text atomically using temp file + rename.

    Readers see either the old content or the new content, never a partial
    file.

    Args:
        path: Target file path
        content: Text to write (UTF-8)

    Raises:
        OSError: If write or rename fails
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    temp_path: Path | None = None
    try:
        # Same directory so the rename stays on one filesystem
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.stem}_",
            suffix=".tmp",
            delete=False,
        ) as tmp_file:
            temp_path = Path(tmp_file.name)
            tmp_file.write(content)
            tmp_file.flush()

        temp_path.replace(path)

    except Exception as e:
        if temp_path:
            with contextlib.suppress(OSError):
                temp_path.unlink()
        raise OSError(f"Failed to write atomically to {path}: {e}") from e


def append_line(path: Path, line: str) -> None:
    """Append one newline-terminated line, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(line.rstrip("\n") + "\n")
