import posixpath
import uuid
from pathlib import Path

from jfcase.config import settings


def ensure_data_dirs(data_path: Path | None = None) -> Path:
    path = data_path or settings.data_path
    path.mkdir(parents=True, exist_ok=True)
    (path / "objects").mkdir(exist_ok=True)
    (path / "tmp").mkdir(exist_ok=True)
    return path


def scratch_path(suffix: str = "", scratch_dir: Path | None = None) -> Path:
    """A unique, not yet existing path in the scratch directory."""
    directory = scratch_dir or settings.scratch_dir
    directory.mkdir(parents=True, exist_ok=True)
    return directory / f"{uuid.uuid4()}{suffix}"


def remove_quietly(path: Path) -> bool:
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


def normalize_key(key: str) -> str:
    """Validate an object key: relative, forward slashes, no parent references."""
    if not key or key.startswith("/") or "\\" in key:
        raise ValueError(f"invalid object key: {key!r}")
    normalized = posixpath.normpath(key)
    if normalized.startswith("..") or normalized == "." or "/../" in f"/{normalized}/":
        raise ValueError(f"invalid object key: {key!r}")
    return normalized
