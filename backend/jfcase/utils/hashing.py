import hashlib
from pathlib import Path

CHUNK_SIZE = 64 * 1024


def object_etag(file_path: Path) -> str:
    """Hex MD5 of a stored object, the same value S3-style stores report as a single-part ETag."""
    h = hashlib.md5(usedforsecurity=False)
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()
