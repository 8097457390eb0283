"""
Small file helpers shared by the session store, lock registry and job queue.
"""
import os
import tempfile
from pathlib import Path


def write_temp(directory: Path, content: str) -> Path:
    """Write `content` to a fresh hidden temp file in `directory` and fsync it."""
    directory.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=directory, prefix=".", suffix=".tmp")
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(content)
        f.flush()
        os.fsync(f.fileno())
    return Path(tmp)


def write_atomic(path: Path, content: str) -> None:
    """Replace `path` in one step; readers see the old or the new content, never a mix."""
    tmp_path = write_temp(path.parent, content)
    try:
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


def link_exclusive(content: str, path: Path) -> bool:
    """
    Create `path` with `content` only if it does not exist yet.

    Returns False when the path is taken. The file appears fully written.
    """
    tmp_path = write_temp(path.parent, content)
    try:
        os.link(tmp_path, path)
        return True
    except FileExistsError:
        return False
    finally:
        tmp_path.unlink(missing_ok=True)


def tail_text(path: Path, limit: int = 2000) -> str:
    """Last `limit` characters of a text file ("" when missing)."""
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        return ""
    return data.decode("utf-8", errors="replace")[-limit:]
