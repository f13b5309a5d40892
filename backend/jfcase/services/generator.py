"""
Lazy document generation.

A generated PDF is stored under a deterministic key. Downloads first ask
:func:`ensure_generated` whether a usable copy already exists and only render
on a miss (or when the caller forces regeneration).
"""
import logging

from jfcase.errors import AppError, ErrorCode
from jfcase.services.object_storage import ObjectNotFoundError, ObjectStorage, StorageError
from jfcase.services.renderer import BadTemplateError, DocumentRenderer, RendererError
from jfcase.services.template_data import TemplateData, validate_template_data
from jfcase.services.template_repository import Template, TemplateRepository
from jfcase.utils.deadline import Deadline
from jfcase.utils.filesystem import remove_quietly, scratch_path

logger = logging.getLogger("jfcase.generator")

PDF_CONTENT_TYPE = "application/pdf"


def _media_type(content_type: str) -> str:
    return (content_type or "").split(";")[0].strip().lower()


def ensure_generated(storage: ObjectStorage, key: str, force_regenerate: bool = False) -> bool:
    """True when ``key`` already holds a non-empty PDF and nothing needs rendering."""
    if force_regenerate:
        return False
    try:
        meta = storage.get_metadata(key)
    except ObjectNotFoundError:
        return False
    except (StorageError, OSError) as exc:
        raise AppError(ErrorCode.STORAGE_GET_METADATA_FAIL, f"{storage.namespace}/{key}: {exc}") from exc

    if meta.content_length > 0 and _media_type(meta.content_type) == PDF_CONTENT_TYPE:
        return True
    logger.warning(
        "Stored %s/%s is not a usable PDF (type=%r, length=%d), regenerating",
        storage.namespace, key, meta.content_type, meta.content_length,
    )
    return False


def generate_document(
    renderer: DocumentRenderer,
    templates: TemplateRepository,
    storage: ObjectStorage,
    data: TemplateData,
    template: Template,
    key: str,
    deadline: Deadline | None = None,
):
    """Render ``data`` into ``template`` and store the PDF at ``key``."""
    validate_template_data(data)
    output = scratch_path(".pdf", templates.scratch_dir)
    try:
        with templates.load(template) as template_path:
            renderer.render_as_pdf(data, template_path, output, deadline=deadline)
        if deadline is not None:
            deadline.check(f"rendering {template.value}")
        storage.put(key, PDF_CONTENT_TYPE, output)
    except BadTemplateError as exc:
        raise AppError(ErrorCode.DOCUMENT_GENERATE_BAD_TEMPLATE, str(exc)) from exc
    except RendererError as exc:
        raise AppError(ErrorCode.DOCUMENT_GENERATE, f"{template.value}: {exc}") from exc
    except (StorageError, OSError) as exc:
        raise AppError(ErrorCode.STORAGE_PUT_FAIL, f"{storage.namespace}/{key}: {exc}") from exc
    finally:
        remove_quietly(output)
    logger.info("Generated %s/%s from %s", storage.namespace, key, template.value)


class DocumentGenerator:
    """A renderer paired with the template repository it renders from."""

    def __init__(self, renderer: DocumentRenderer, templates: TemplateRepository):
        self.renderer = renderer
        self.templates = templates

    def generate(self, storage: ObjectStorage, data: TemplateData, template: Template, key: str,
                 deadline: Deadline | None = None):
        generate_document(self.renderer, self.templates, storage, data, template, key, deadline)

    def get_or_generate(self, storage: ObjectStorage, key: str, template: Template, build_data,
                        force_regenerate: bool = False, deadline: Deadline | None = None) -> bool:
        """Generate ``key`` unless a usable copy exists; ``build_data`` is only called on a miss.

        Returns True when a new document was rendered.
        """
        if ensure_generated(storage, key, force_regenerate):
            return False
        self.generate(storage, build_data(), template, key, deadline)
        return True
