from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from jfcase.config import settings
from jfcase.database import get_db
from jfcase.errors import AppError, ErrorCode
from jfcase.models import Employee
from jfcase.services.auth_service import auth_service
from jfcase.services.generator import DocumentGenerator
from jfcase.services.object_storage import StorageRegistry, UrlSigner
from jfcase.services.pdf_service import FpdfRenderer
from jfcase.services.renderer import DocumentRenderer, SubprocessRenderer
from jfcase.services.template_repository import TemplateRepository
from jfcase.utils.deadline import Deadline


def get_current_user(authorization: str | None = Header(None), db: Session = Depends(get_db)) -> Employee:
    if not authorization or not authorization.startswith("Bearer "):
        raise AppError(ErrorCode.NO_API_TOKEN)
    user = auth_service.authenticate(db, authorization[7:])
    if user is None:
        raise AppError(ErrorCode.NO_API_TOKEN, "token is invalid or was rotated")
    if not user.agency_id:
        raise AppError(ErrorCode.NO_WORK_AGENCY_ID)
    return user


def require_role(*roles: str):
    """Dependency factory: the caller must hold at least one of ``roles``."""

    def dependency(user: Employee = Depends(get_current_user)) -> Employee:
        if not any(user.has_role(r) for r in roles):
            raise AppError(ErrorCode.ROLE_UNAUTHORIZED, f"{user.asn_id} needs one of {', '.join(roles)}")
        return user

    return dependency


def require_admin_token(x_admin_token: str | None = Header(None)):
    if not settings.admin_token or x_admin_token != settings.admin_token:
        raise AppError(ErrorCode.NO_API_TOKEN, "admin token missing or wrong")


def get_deadline(request: Request) -> Deadline:
    """The deadline started by the request middleware."""
    deadline = getattr(request.state, "deadline", None)
    if deadline is None:
        deadline = Deadline(settings.request_timeout_seconds)
        request.state.deadline = deadline
    return deadline


def get_storage_registry() -> StorageRegistry:
    signer = UrlSigner(
        settings.signing_secret,
        settings.sign_url_expire_seconds,
        base_url=settings.public_base_url,
        prefix=settings.api_prefix,
    )
    return StorageRegistry(settings.storage_path, signer)


def get_renderer() -> DocumentRenderer:
    if settings.renderer_backend == "fpdf":
        return FpdfRenderer(scratch_dir=settings.scratch_dir)
    return SubprocessRenderer(
        docx_cmd=settings.docx_cmd,
        docx_args=settings.docx_args,
        soffice_cmd=settings.soffice_cmd,
        soffice_args=settings.soffice_args,
        timeout=settings.renderer_timeout_seconds,
        scratch_dir=settings.scratch_dir,
    )


def get_template_repository(registry: StorageRegistry = Depends(get_storage_registry)) -> TemplateRepository:
    return TemplateRepository(registry.get("template"), scratch_dir=settings.scratch_dir)


def get_generator(
    renderer: DocumentRenderer = Depends(get_renderer),
    templates: TemplateRepository = Depends(get_template_repository),
) -> DocumentGenerator:
    return DocumentGenerator(renderer, templates)
