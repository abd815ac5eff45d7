"""File access granted to the agent, confined to the session root."""

from __future__ import annotations

from pathlib import Path

from acp import RequestError


def resolve_in_root(root_dir: Path, path: str, *, allow_missing: bool) -> Path:
    """Resolve ``path`` against ``root_dir`` and refuse anything outside it.

    ``..`` components are rejected outright. With ``allow_missing`` the target may
    not exist yet; its nearest existing ancestor must still sit under the root.
    """
    candidate = Path(path)
    if ".." in candidate.parts:
        raise RequestError.invalid_params({"path": path, "reason": "parent directory components are not allowed"})
    root = root_dir.resolve()
    if not candidate.is_absolute():
        candidate = root / candidate

    if candidate.exists():
        resolved = candidate.resolve()
    elif allow_missing:
        anchor = candidate
        while not anchor.exists() and anchor != anchor.parent:
            anchor = anchor.parent
        resolved = anchor.resolve() / candidate.relative_to(anchor)
    else:
        raise RequestError.invalid_params({"path": path, "reason": "no such file or directory"})

    if resolved != root and root not in resolved.parents:
        raise RequestError.invalid_params({"path": path, "reason": "path is outside the session root"})
    return resolved


def read_text(root_dir: Path, path: str, line: int | None = None, limit: int | None = None) -> str:
    """Read a file; ``line`` is 1-based and ``limit`` caps the number of lines."""
    target = resolve_in_root(root_dir, path, allow_missing=False)
    try:
        content = target.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise RequestError.internal_error({"path": path, "reason": str(exc)}) from exc
    if line is None and limit is None:
        return content
    lines = content.splitlines(keepends=True)
    start = max((line or 1) - 1, 0)
    end = start + limit if limit is not None else None
    return "".join(lines[start:end])


def write_text(root_dir: Path, path: str, content: str) -> None:
    target = resolve_in_root(root_dir, path, allow_missing=True)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise RequestError.internal_error({"path": path, "reason": str(exc)}) from exc
