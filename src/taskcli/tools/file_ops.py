"""File primitives: read and write relative to the working directory.

Errors propagate as :class:`OSError`; the task handlers decide what a
failure means for the run.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class FileContent:
    path: Path
    content: str


def resolve_path(path: str, working_dir: str | None = None) -> Path:
    p = Path(path).expanduser()
    if not p.is_absolute() and working_dir:
        p = Path(working_dir) / p
    return p.resolve()


async def read_file(working_dir: str, path: str) -> FileContent:
    resolved = resolve_path(path, working_dir)
    if not resolved.exists():
        raise FileNotFoundError(f"File not found: {resolved}")
    if not resolved.is_file():
        raise IsADirectoryError(f"Not a file: {resolved}")
    return FileContent(path=resolved, content=resolved.read_text(encoding="utf-8", errors="replace"))


async def write_file(working_dir: str, path: str, content: str) -> Path:
    """Write ``content``, creating parent directories as needed."""
    resolved = resolve_path(path, working_dir)
    resolved.parent.mkdir(parents=True, exist_ok=True)
    resolved.write_text(content, encoding="utf-8")
    return resolved
