"""Project file listing that feeds the codemap view."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable

import pathspec  # type: ignore

from visor.errors import BackendError

_ALWAYS_SKIP = {".git"}


def _load_gitignore_patterns(directory: Path) -> list[str]:
    gitignore_path = directory / ".gitignore"
    if not gitignore_path.is_file():
        return []
    try:
        with gitignore_path.open(encoding="utf-8") as f:
            return [line.rstrip("\n") for line in f if line.strip() and not line.lstrip().startswith("#")]
    except OSError:
        return []


def _prefixed(patterns: list[str], rel_dir: Path) -> list[str]:
    """Re-anchor a nested .gitignore's patterns to the listing root."""
    if rel_dir == Path("."):
        return patterns
    prefix = rel_dir.as_posix()
    anchored: list[str] = []
    for pattern in patterns:
        negate = pattern.startswith("!")
        body = pattern[1:] if negate else pattern
        if body.startswith("/") or "/" in body.rstrip("/"):
            body = f"{prefix}/{body.lstrip('/')}"
        else:
            body = f"{prefix}/**/{body}"
        anchored.append(f"!{body}" if negate else body)
    return anchored


def _build_matcher(patterns: list[str]) -> Callable[[Path, bool], bool]:
    spec = pathspec.PathSpec.from_lines("gitwildmatch", patterns) if patterns else None

    def _match(path: Path, is_dir: bool) -> bool:
        if spec is None:
            return False
        return spec.match_file(path.as_posix() + ("/" if is_dir else ""))

    return _match


def _hidden(name: str) -> bool:
    return name.startswith(".")


def list_files(path: str) -> list[str]:
    """Relative POSIX paths of the files under ``path``.

    Hidden entries and anything matched by a ``.gitignore`` (root or nested) are
    left out. Raises ``BackendError`` if ``path`` is not a directory.
    """
    base = Path(path).expanduser()
    if not base.is_dir():
        raise BackendError("Not a directory")

    patterns: list[str] = []
    files: list[str] = []
    for root, dirs, names in os.walk(base):
        rel_root = Path(root).relative_to(base)
        nested = _load_gitignore_patterns(Path(root))
        if nested:
            patterns = patterns + _prefixed(nested, rel_root)
        matcher = _build_matcher(patterns)

        for d in list(dirs):
            rel_dir = rel_root / d
            if d in _ALWAYS_SKIP or _hidden(d) or matcher(rel_dir, True):
                dirs.remove(d)
        for name in names:
            if _hidden(name):
                continue
            rel_file = rel_root / name
            if matcher(rel_file, False):
                continue
            files.append(rel_file.as_posix())
    return sorted(files)
