from __future__ import annotations

from pathlib import Path

import pytest
from acp import RequestError

from visor.backend.fs import read_text, resolve_in_root, write_text


def test_read_honours_line_and_limit(tmp_path: Path) -> None:
    (tmp_path / "notes.txt").write_text("one\ntwo\nthree\nfour\n")

    assert read_text(tmp_path, "notes.txt") == "one\ntwo\nthree\nfour\n"
    assert read_text(tmp_path, "notes.txt", line=2, limit=2) == "two\nthree\n"
    assert read_text(tmp_path, "notes.txt", line=3) == "three\nfour\n"
    assert read_text(tmp_path, str(tmp_path / "notes.txt"), limit=1) == "one\n"


def test_write_creates_parent_dirs(tmp_path: Path) -> None:
    write_text(tmp_path, "deep/nested/out.txt", "hello")
    assert (tmp_path / "deep" / "nested" / "out.txt").read_text() == "hello"


def test_parent_components_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(RequestError):
        resolve_in_root(tmp_path, "../escape.txt", allow_missing=True)
    with pytest.raises(RequestError):
        write_text(tmp_path, "sub/../../escape.txt", "x")


def test_absolute_paths_outside_root_are_rejected(tmp_path: Path) -> None:
    root = tmp_path / "root"
    root.mkdir()
    outside = tmp_path / "outside.txt"
    outside.write_text("secret")

    with pytest.raises(RequestError):
        read_text(root, str(outside))


def test_symlink_escape_is_rejected(tmp_path: Path) -> None:
    root = tmp_path / "root"
    root.mkdir()
    (tmp_path / "elsewhere").mkdir()
    (root / "link").symlink_to(tmp_path / "elsewhere")

    with pytest.raises(RequestError):
        write_text(root, "link/file.txt", "x")


def test_missing_file_read_fails(tmp_path: Path) -> None:
    with pytest.raises(RequestError):
        read_text(tmp_path, "nope.txt")
