"""
Object storage with a temporary area and a permanent area per workflow namespace.

Clients upload into the temporary area through signed PUT URLs; submitting a
case promotes (copies) the uploaded objects into the permanent area. Generated
documents are written straight to the permanent area.
"""
import json
import logging
import mimetypes
import os
import posixpath
import shutil
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator
from urllib.parse import quote, urlencode

from jfcase.utils.deadline import Deadline
from jfcase.utils.filesystem import normalize_key
from jfcase.utils.hashing import object_etag
from jfcase.utils.security import sign, verify_signature

logger = logging.getLogger("jfcase.storage")

TEMP = "temp"
PERMANENT = "perm"
AREAS = (TEMP, PERMANENT)

NAMESPACES = (
    "activity",
    "requirement",
    "dismissal",
    "promotion",
    "promotion-cpns",
    "assessment-team",
    "template",
)

# Bulk promotion refuses batches this large or larger.
MAX_BULK_FILES = 1000

ALLOWED_MIME_TYPES = {
    "application/pdf": "pdf",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "application/vnd.ms-excel": "xls",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/msword": "doc",
}

_META_DIR = ".meta"


class StorageError(Exception):
    pass


class ObjectNotFoundError(StorageError):
    def __init__(self, key: str):
        super().__init__(f"object not found: {key}")
        self.key = key


class TempFileNotFoundError(StorageError):
    def __init__(self, keys: list[str]):
        super().__init__(f"temporary file(s) not found: {', '.join(keys)}")
        self.keys = keys


class TooManyFilesError(StorageError):
    pass


class UnsupportedFileTypeError(StorageError):
    pass


@dataclass(frozen=True)
class SaveResult:
    bucket: str
    dir: str
    filename: str
    checksum: str
    created_at: str


@dataclass(frozen=True)
class ObjectMetadata:
    bucket: str
    dir: str
    filename: str
    checksum: str
    content_type: str
    last_modified: str
    content_length: int


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def generate_filename(mime_type: str) -> str:
    """A collision-resistant object name with the extension of an allowed mime type."""
    ext = ALLOWED_MIME_TYPES.get((mime_type or "").split(";")[0].strip().lower())
    if ext is None:
        raise UnsupportedFileTypeError(f"file type {mime_type!r} is not supported")
    return f"{uuid.uuid4()}.{ext}"


class UrlSigner:
    """Issues and checks time-limited URLs for direct object GET/PUT."""

    def __init__(self, secret: str, expire_seconds: int, base_url: str = "", prefix: str = "/api/v1"):
        self.secret = secret
        self.expire_seconds = expire_seconds
        self.base_url = base_url.rstrip("/")
        self.prefix = prefix

    @staticmethod
    def _message(method: str, area: str, namespace: str, key: str, expires: int, content_type: str) -> str:
        return "\n".join([method.upper(), area, namespace, key, str(expires), content_type])

    def sign_url(self, method: str, area: str, namespace: str, key: str, content_type: str = "") -> str:
        expires = int(time.time()) + self.expire_seconds
        params = {
            "expires": expires,
            "signature": sign(self.secret, self._message(method, area, namespace, key, expires, content_type)),
        }
        if content_type:
            params["content_type"] = content_type
        path = f"{self.prefix}/objects/{area}/{namespace}/{quote(key)}"
        return f"{self.base_url}{path}?{urlencode(params)}"

    def verify(self, method: str, area: str, namespace: str, key: str, expires: int, signature: str,
               content_type: str = "") -> bool:
        if expires < time.time():
            return False
        message = self._message(method, area, namespace, key, expires, content_type)
        return verify_signature(self.secret, message, signature)


class ObjectStorage(ABC):
    """Storage for one workflow namespace."""

    namespace: str

    @abstractmethod
    def put(self, key: str, content_type: str, source: Path | bytes) -> SaveResult:
        """Write an object to the permanent area."""

    @abstractmethod
    def put_temp(self, key: str, content_type: str, source: Path | bytes) -> SaveResult:
        """Write an object to the temporary area."""

    @abstractmethod
    def get(self, key: str, destination: Path):
        """Copy a permanent object to a local file. Raises ObjectNotFoundError."""

    @abstractmethod
    def copy(self, temp_key: str, permanent_key: str) -> SaveResult:
        """Copy a temporary object into the permanent area. Raises TempFileNotFoundError."""

    @abstractmethod
    def exists_temp(self, key: str) -> bool:
        ...

    @abstractmethod
    def get_metadata(self, key: str) -> ObjectMetadata:
        """Raises ObjectNotFoundError when the permanent object is absent."""

    @abstractmethod
    def get_metadata_temp(self, key: str) -> ObjectMetadata:
        ...

    @abstractmethod
    def delete(self, key: str):
        ...

    @abstractmethod
    def delete_temp_one(self, key: str):
        ...

    @abstractmethod
    def list_objects(self, area: str, prefix: str = "") -> Iterator[ObjectMetadata]:
        ...

    @abstractmethod
    def sign(self, method: str, area: str, key: str, content_type: str = "") -> str:
        ...

    def save_files(self, keys: list[str], delete_original: bool = False,
                   deadline: Deadline | None = None) -> list[SaveResult]:
        """Promote temporary objects to the same keys in the permanent area.

        Every key is resolved before anything is copied, so a single missing
        temporary object fails the whole batch and nothing is promoted.
        """
        if len(keys) >= MAX_BULK_FILES:
            raise TooManyFilesError(f"cannot save {len(keys)} files at once, limit is {MAX_BULK_FILES - 1}")
        keys = [normalize_key(k) for k in keys]
        missing = [k for k in keys if not self.exists_temp(k)]
        if missing:
            raise TempFileNotFoundError(missing)

        results = []
        for key in keys:
            if deadline is not None:
                deadline.check("saving files")
            results.append(self.copy(key, key))

        if delete_original:
            self.delete_temp(keys)
        return results

    def save_file(self, temp_key: str, permanent_key: str, delete_original: bool = True) -> SaveResult:
        """Promote one temporary object under a new permanent key."""
        result = self.copy(temp_key, permanent_key)
        if delete_original:
            self.delete_temp([temp_key])
        return result

    def delete_temp(self, keys: list[str]) -> int:
        deleted = 0
        for key in keys:
            try:
                self.delete_temp_one(key)
                deleted += 1
            except (StorageError, OSError) as exc:
                logger.warning("Cannot delete temporary object %s/%s: %s", self.namespace, key, exc)
        return deleted

    def list_permanent(self, prefix: str = "") -> Iterator[ObjectMetadata]:
        return self.list_objects(PERMANENT, prefix)

    def list_temp(self, prefix: str = "") -> Iterator[ObjectMetadata]:
        return self.list_objects(TEMP, prefix)

    def generate_filename(self, mime_type: str) -> str:
        return generate_filename(mime_type)

    def generate_put_sign(self, key: str, content_type: str) -> str:
        return self.sign("PUT", TEMP, key, content_type)

    def generate_get_sign_temp(self, key: str) -> str:
        return self.sign("GET", TEMP, key)

    def generate_get_sign(self, key: str) -> str:
        return self.sign("GET", PERMANENT, key)


class LocalObjectStorage(ObjectStorage):
    """Filesystem-backed storage: ``<root>/<area>/<namespace>/<key>`` plus JSON sidecars."""

    def __init__(self, root: Path, namespace: str, signer: UrlSigner):
        if namespace not in NAMESPACES:
            raise ValueError(f"unknown storage namespace: {namespace}")
        self.root = root
        self.namespace = namespace
        self.signer = signer

    def _area_dir(self, area: str) -> Path:
        return self.root / area / self.namespace

    def local_path(self, area: str, key: str) -> Path:
        if area not in AREAS:
            raise ValueError(f"unknown storage area: {area}")
        return self._area_dir(area) / normalize_key(key)

    def _meta_path(self, area: str, key: str) -> Path:
        return self._area_dir(area) / _META_DIR / f"{normalize_key(key)}.json"

    def _write(self, area: str, key: str, content_type: str, source: Path | bytes) -> SaveResult:
        target = self.local_path(area, key)
        target.parent.mkdir(parents=True, exist_ok=True)
        partial = target.with_name(f".{target.name}.{uuid.uuid4().hex}.part")
        try:
            if isinstance(source, (bytes, bytearray)):
                partial.write_bytes(source)
            else:
                shutil.copyfile(source, partial)
            os.replace(partial, target)
        finally:
            if partial.exists():
                partial.unlink()

        created_at = _now()
        checksum = object_etag(target)
        meta_path = self._meta_path(area, key)
        meta_path.parent.mkdir(parents=True, exist_ok=True)
        meta_path.write_text(json.dumps({
            "content_type": content_type,
            "checksum": checksum,
            "created_at": created_at,
        }))
        return SaveResult(
            bucket=f"{area}/{self.namespace}",
            dir=posixpath.dirname(normalize_key(key)),
            filename=normalize_key(key),
            checksum=checksum,
            created_at=created_at,
        )

    def put(self, key: str, content_type: str, source: Path | bytes) -> SaveResult:
        return self._write(PERMANENT, key, content_type, source)

    def put_temp(self, key: str, content_type: str, source: Path | bytes) -> SaveResult:
        return self._write(TEMP, key, content_type, source)

    def get(self, key: str, destination: Path):
        path = self.local_path(PERMANENT, key)
        if not path.is_file():
            raise ObjectNotFoundError(key)
        shutil.copyfile(path, destination)

    def copy(self, temp_key: str, permanent_key: str) -> SaveResult:
        source = self.local_path(TEMP, temp_key)
        if not source.is_file():
            raise TempFileNotFoundError([temp_key])
        content_type = self._read_metadata(TEMP, temp_key).content_type
        try:
            return self._write(PERMANENT, permanent_key, content_type, source)
        except FileNotFoundError as exc:
            # Purged between the existence check and the copy.
            raise TempFileNotFoundError([temp_key]) from exc

    def exists_temp(self, key: str) -> bool:
        return self.local_path(TEMP, key).is_file()

    def _read_metadata(self, area: str, key: str) -> ObjectMetadata:
        path = self.local_path(area, key)
        if not path.is_file():
            raise ObjectNotFoundError(key)
        stat = path.stat()
        meta_path = self._meta_path(area, key)
        if meta_path.is_file():
            try:
                sidecar = json.loads(meta_path.read_text())
            except (OSError, ValueError) as exc:
                raise StorageError(f"corrupt metadata for {key}: {exc}") from exc
        else:
            guessed, _ = mimetypes.guess_type(path.name)
            sidecar = {"content_type": guessed or "application/octet-stream", "checksum": ""}
        last_modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        normalized = normalize_key(key)
        return ObjectMetadata(
            bucket=f"{area}/{self.namespace}",
            dir=posixpath.dirname(normalized),
            filename=normalized,
            checksum=sidecar.get("checksum", ""),
            content_type=sidecar.get("content_type", ""),
            last_modified=last_modified,
            content_length=stat.st_size,
        )

    def get_metadata(self, key: str) -> ObjectMetadata:
        return self._read_metadata(PERMANENT, key)

    def get_metadata_temp(self, key: str) -> ObjectMetadata:
        return self._read_metadata(TEMP, key)

    def _delete(self, area: str, key: str):
        path = self.local_path(area, key)
        if not path.is_file():
            raise ObjectNotFoundError(key)
        path.unlink()
        meta_path = self._meta_path(area, key)
        if meta_path.is_file():
            meta_path.unlink()

    def delete(self, key: str):
        self._delete(PERMANENT, key)

    def delete_temp_one(self, key: str):
        self._delete(TEMP, key)

    def list_objects(self, area: str, prefix: str = "") -> Iterator[ObjectMetadata]:
        base = self._area_dir(area)
        if not base.is_dir():
            return
        for path in sorted(base.rglob("*")):
            if not path.is_file():
                continue
            rel = path.relative_to(base).as_posix()
            if rel.startswith(f"{_META_DIR}/") or path.name.endswith(".part"):
                continue
            if prefix and not rel.startswith(prefix):
                continue
            yield self._read_metadata(area, rel)

    def sign(self, method: str, area: str, key: str, content_type: str = "") -> str:
        return self.signer.sign_url(method, area, self.namespace, normalize_key(key), content_type)


class StorageRegistry:
    def __init__(self, root: Path, signer: UrlSigner):
        self.root = root
        self.signer = signer
        self._storages: dict[str, LocalObjectStorage] = {}

    def get(self, namespace: str) -> LocalObjectStorage:
        if namespace not in self._storages:
            self._storages[namespace] = LocalObjectStorage(self.root, namespace, self.signer)
        return self._storages[namespace]
