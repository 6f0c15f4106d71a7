"""Analyzer settings and project facts read from Cargo manifests."""

import logging
import os
import re
from dataclasses import dataclass
from typing import Iterator, Optional

from pluton.model import DEFAULT_MAX_DECLARATIONS, DEFAULT_MAX_FILE_BYTES

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_DIRS = ("target", "node_modules", ".git", ".anchor")
DEFAULT_EXTENSIONS = (".rs",)

OVERFLOW_CHECKS_RE = re.compile(r"^\s*overflow-checks\s*=\s*true\b", re.MULTILINE)
ANCHOR_VERSION_RES = (
    re.compile(r'anchor-lang\s*=\s*["\']?[=^~]?([0-9]+\.[0-9]+\.[0-9]+)'),
    re.compile(r'anchor-lang\s*=\s*\{[^}]*version\s*=\s*"[=^~]?([0-9]+\.[0-9]+\.[0-9]+)"'),
)


@dataclass
class AnalyzerConfig:
    """Tunable limits of one analysis run."""

    workers: int = 4
    detector_workers: int = 1
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES
    max_declarations: int = DEFAULT_MAX_DECLARATIONS
    overflow_checks: Optional[bool] = None
    excluded_dirs: tuple = DEFAULT_EXCLUDED_DIRS
    extensions: tuple = DEFAULT_EXTENSIONS

    @classmethod
    def from_env(cls, environ=None) -> "AnalyzerConfig":
        """Build a config, overriding defaults from ``PLUTON_*`` variables."""
        environ = os.environ if environ is None else environ
        config = cls()
        config.workers = _int_env(environ, "PLUTON_WORKERS", config.workers)
        config.max_file_bytes = _int_env(environ, "PLUTON_MAX_FILE_BYTES", config.max_file_bytes)
        config.max_declarations = _int_env(
            environ, "PLUTON_MAX_DECLARATIONS", config.max_declarations
        )
        return config

    @property
    def model_limits(self) -> dict:
        return {
            "max_file_bytes": self.max_file_bytes,
            "max_declarations": self.max_declarations,
        }


def _int_env(environ, name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", name, raw)
        return default
    if value < 1:
        logger.warning("Ignoring %s=%r: must be positive", name, raw)
        return default
    return value


# ── Cargo manifests ─────────────────────────────────────────────────────────


def _manifests(path: str, excluded_dirs=DEFAULT_EXCLUDED_DIRS) -> Iterator[str]:
    """Cargo.toml files under ``path``, then in ``path`` and its ancestors."""
    path = os.path.abspath(path)
    start = path if os.path.isdir(path) else os.path.dirname(path)
    seen = set()
    if os.path.isdir(path):
        for root, dirs, files in os.walk(path):
            dirs[:] = sorted(d for d in dirs if d not in excluded_dirs)
            if "Cargo.toml" in files:
                manifest = os.path.join(root, "Cargo.toml")
                seen.add(manifest)
                yield manifest
    current = start
    while True:
        manifest = os.path.join(current, "Cargo.toml")
        if manifest not in seen and os.path.isfile(manifest):
            yield manifest
        parent = os.path.dirname(current)
        if parent == current:
            return
        current = parent


def _read(manifest: str) -> str:
    try:
        with open(manifest, "r", encoding="utf-8", errors="ignore") as fh:
            return fh.read()
    except OSError:
        logger.debug("Could not read %s", manifest)
        return ""


def detect_overflow_checks(path: str) -> bool:
    """Whether a manifest at, below or above ``path`` sets ``overflow-checks = true``."""
    for manifest in _manifests(path):
        if OVERFLOW_CHECKS_RE.search(_read(manifest)):
            logger.debug("overflow-checks enabled in %s", manifest)
            return True
    return False


def detect_anchor_version(path: str) -> Optional[str]:
    """Detect the anchor-lang version from Cargo.toml files."""
    for manifest in _manifests(path):
        content = _read(manifest)
        for pattern in ANCHOR_VERSION_RES:
            m = pattern.search(content)
            if m:
                return m.group(1)
    return None
