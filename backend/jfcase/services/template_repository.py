import logging
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Iterator

from jfcase.errors import AppError, ErrorCode
from jfcase.services.object_storage import ObjectNotFoundError, ObjectStorage, StorageError
from jfcase.services.pdf_service import placeholders, read_paragraphs
from jfcase.services.renderer import LoadTemplateError
from jfcase.utils.filesystem import remove_quietly, scratch_path

logger = logging.getLogger("jfcase.templates")

DOCX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class Template(str, Enum):
    ACTIVITY_CERTIFICATE = "template/activity/certificate.docx"
    REQUIREMENT_RECOMMENDATION_LETTER = "template/requirement/recommendation-letter.docx"
    PROMOTION_LETTER = "template/promotion/promotion-letter.docx"
    DISMISSAL_ACCEPTANCE_LETTER = "template/dismissal/acceptance-letter.docx"

    @property
    def key(self) -> str:
        """Object key inside the template namespace."""
        return self.value.removeprefix("template/")

    @classmethod
    def from_name(cls, name: str) -> "Template":
        """Accepts ``activity/certificate``, ``activity/certificate.docx`` or the full path."""
        name = name.strip("/")
        if not name.startswith("template/"):
            name = f"template/{name}"
        if not name.endswith(".docx"):
            name = f"{name}.docx"
        for template in cls:
            if template.value == name:
                return template
        raise AppError(ErrorCode.TEMPLATE_NAME_INVALID, f"unknown template {name!r}")


class TemplateRepository:
    """Templates live in the permanent area of the ``template`` namespace and are re-read on every render."""

    def __init__(self, storage: ObjectStorage, scratch_dir: Path | None = None):
        self.storage = storage
        self.scratch_dir = scratch_dir

    @contextmanager
    def load(self, template: Template) -> Iterator[Path]:
        """Download ``template`` to a fresh scratch file, removed when the block exits."""
        path = scratch_path(".docx", self.scratch_dir)
        try:
            try:
                self.storage.get(template.key, path)
            except ObjectNotFoundError as exc:
                raise LoadTemplateError(f"cannot load template: {template.value} does not exist") from exc
            except (StorageError, OSError) as exc:
                raise LoadTemplateError(f"cannot load template: {template.value}: {exc}") from exc
            yield path
        finally:
            remove_quietly(path)

    def replace(self, template: Template, content: bytes) -> list[str]:
        """Overwrite a template after checking it parses. Returns its placeholder names."""
        path = scratch_path(".docx", self.scratch_dir)
        try:
            path.write_bytes(content)
            names = sorted(placeholders(read_paragraphs(path)))
            self.storage.put(template.key, DOCX_CONTENT_TYPE, path)
        finally:
            remove_quietly(path)
        logger.info("Template %s replaced (%d placeholders)", template.value, len(names))
        return names

    def list_templates(self) -> list[dict]:
        stored = {m.filename: m for m in self.storage.list_permanent()}
        items = []
        for template in Template:
            meta = stored.get(template.key)
            items.append({
                "name": template.value,
                "present": meta is not None,
                "updated_at": meta.last_modified if meta else None,
                "size": meta.content_length if meta else None,
            })
        return items
