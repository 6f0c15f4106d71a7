"""Project walker: yields the source files of a local target."""

import logging
import os
from typing import Iterator, Optional

from pluton.config import AnalyzerConfig
from pluton.errors import InvalidInputSet

logger = logging.getLogger(__name__)


def collect_paths(root: str, config: Optional[AnalyzerConfig] = None) -> list[str]:
    """Sorted source file paths under ``root`` (or ``root`` itself for a file)."""
    config = config or AnalyzerConfig()
    root = os.path.abspath(root)
    if os.path.isfile(root):
        return [root]
    if not os.path.isdir(root):
        raise InvalidInputSet(f"Path not found: {root}")

    paths = []
    for current, dirs, files in os.walk(root):
        # Skip build artifacts and VCS metadata
        dirs[:] = [d for d in dirs if d not in config.excluded_dirs]
        for name in files:
            if name.endswith(tuple(config.extensions)):
                paths.append(os.path.join(current, name))
    return sorted(paths)


def iter_sources(root: str, config: Optional[AnalyzerConfig] = None) -> Iterator[tuple[str, str]]:
    """Yield ``(relative_path, text)`` for every source file under ``root``.

    Paths are relative to ``root`` (a file target yields its base name) and
    use ``/`` separators so reports are identical across platforms.

    Raises:
        InvalidInputSet: If ``root`` does not exist or a file cannot be read.
    """
    root = os.path.abspath(root)
    base = os.path.dirname(root) if os.path.isfile(root) else root
    for path in collect_paths(root, config):
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as fh:
                text = fh.read()
        except OSError as exc:
            raise InvalidInputSet(f"Cannot read {path}: {exc}") from exc
        rel_path = os.path.relpath(path, base).replace(os.sep, "/")
        logger.debug("Loaded %s (%d chars)", rel_path, len(text))
        yield rel_path, text
