from __future__ import annotations

import os
from pathlib import Path


def ensure_private_dir(path: str | os.PathLike) -> Path:
    directory = Path(path)
    if not directory.exists():
        directory.mkdir(parents=True, mode=0o700)
    return directory


def write_file(path: str | os.PathLike, content: str, *, mode: int = 0o644) -> Path:
    target = Path(path)
    ensure_private_dir(target.parent)
    fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
        f.write(content)
    os.chmod(target, mode)
    return target


def write_private_file(path: str | os.PathLike, content: str) -> Path:
    return write_file(path, content, mode=0o600)
