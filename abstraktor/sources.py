#!/usr/bin/env python3

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = ["c", "h", "cc", "cpp", "hpp"]


class SourceReadError(Exception):
    """Raised when an input file or directory cannot be read."""

    def __init__(self, path: Path | str, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Cannot read {self.path}: {reason}")


def _raise_walk_error(error: OSError):
    raise SourceReadError(error.filename, error.strerror or str(error)) from error


def find_source_files(root: Path, extensions: list[str]) -> list[Path]:
    """List files under root with one of the given extensions, sorted."""
    if not root.exists():
        raise SourceReadError(root, "path does not exist")
    if root.is_file():
        return [root]

    suffixes = {f".{ext.lstrip('.')}" for ext in extensions}
    files = []
    for dirpath, _, filenames in os.walk(root, onerror=_raise_walk_error):
        for name in filenames:
            path = Path(dirpath) / name
            if path.suffix in suffixes:
                files.append(path)
    return sorted(files)


def read_source(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise SourceReadError(path, f"not valid UTF-8 ({e.reason})") from e
    except OSError as e:
        raise SourceReadError(path, e.strerror or str(e)) from e


def collect_sources(
    root: Path, extensions: list[str] | None = None, absolute: bool = False
) -> list[tuple[str, str]]:
    """Read the sources to scan as ``(content, path)`` pairs.

    A file is returned as-is whatever its extension; a directory is walked
    recursively. Any unreadable file or directory aborts the whole collection.
    """
    files = find_source_files(root, extensions or DEFAULT_EXTENSIONS)
    logger.debug("Found %d source files under %s", len(files), root)

    sources = []
    for file_path in files:
        content = read_source(file_path)
        reported = file_path.resolve() if absolute else file_path
        sources.append((content, str(reported)))
    return sources
