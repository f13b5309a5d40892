from fastapi import APIRouter, Depends, File, UploadFile

from jfcase.config import settings
from jfcase.dependencies import get_template_repository, require_admin_token
from jfcase.errors import AppError, ErrorCode
from jfcase.services.renderer import BadTemplateError, LoadTemplateError
from jfcase.services.template_repository import Template, TemplateRepository

router = APIRouter(prefix="/templates", tags=["templates"], dependencies=[Depends(require_admin_token)])


@router.get("")
def list_templates(templates: TemplateRepository = Depends(get_template_repository)):
    return templates.list_templates()


@router.put("/{name:path}")
async def replace_template(
    name: str,
    file: UploadFile = File(...),
    templates: TemplateRepository = Depends(get_template_repository),
):
    template = Template.from_name(name)

    max_bytes = settings.max_upload_bytes
    size = 0
    chunks: list[bytes] = []
    while True:
        chunk = await file.read(1024 * 1024)
        if not chunk:
            break
        size += len(chunk)
        if size > max_bytes:
            raise AppError(ErrorCode.UPLOAD_TOO_LARGE, f"max {max_bytes} bytes")
        chunks.append(chunk)

    content = b"".join(chunks)
    if not content:
        raise AppError(ErrorCode.REQUEST_BODY_NIL)
    try:
        placeholders = templates.replace(template, content)
    except BadTemplateError as exc:
        raise AppError(ErrorCode.DOCUMENT_GENERATE_BAD_TEMPLATE, str(exc)) from exc
    except LoadTemplateError as exc:
        raise AppError(ErrorCode.MIME_TYPE_NOT_SUPPORTED, str(exc)) from exc
    return {"name": template.value, "placeholders": placeholders, "size": size}
