from pydantic import BaseModel, field_validator


class DocumentIn(BaseModel):
    """An object previously uploaded to the temporary area."""
    filename: str
    document_name: str | None = None
    document_number: str | None = None
    document_date: str | None = None
    note: str | None = None

    @field_validator("filename")
    @classmethod
    def filename_is_basename(cls, v: str) -> str:
        if not v or "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError("filename must be a plain object name")
        return v


class DocumentOut(BaseModel):
    id: str
    kind: str
    filename: str
    document_name: str | None
    document_number: str | None
    document_date: str | None
    note: str | None
    signer_id: str | None
    is_signed: bool
    created_at: str
    signed_at: str | None


class UploadUrlRequest(BaseModel):
    content_type: str


class UploadUrlResponse(BaseModel):
    filename: str
    url: str
    content_type: str
    expires_in_seconds: int


class StatusChangeResponse(BaseModel):
    id: str
    status: int
    status_ts: str


class StatisticStatus(BaseModel):
    status: int
    count: int


class RejectRequest(BaseModel):
    reason: str | None = None


def document_to_response(doc) -> DocumentOut:
    return DocumentOut(
        id=doc.id,
        kind=doc.kind,
        filename=doc.filename,
        document_name=doc.document_name,
        document_number=doc.document_number,
        document_date=doc.document_date,
        note=doc.note,
        signer_id=doc.signer_id,
        is_signed=bool(doc.is_signed),
        created_at=doc.created_at,
        signed_at=doc.signed_at,
    )
