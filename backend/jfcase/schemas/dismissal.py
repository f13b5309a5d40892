from pydantic import BaseModel

from jfcase.schemas.common import DocumentIn, DocumentOut


class DismissalCreate(BaseModel):
    asn_id: str = ""
    admission_number: str = ""
    reason: str = ""
    reason_detail: str | None = None
    decree_number: str | None = None
    decree_date: str | None = None
    dismissal_date: str | None = None
    support_documents: list[DocumentIn] = []


class DismissalAcceptance(BaseModel):
    document_name: str | None = None
    document_number: str = ""
    document_date: str = ""
    signer_asn_id: str = ""


class DismissalDenial(BaseModel):
    reason: str = ""
    support_documents: list[DocumentIn] = []


class DismissalResponse(BaseModel):
    id: str
    agency_id: str
    asn_id: str
    admission_number: str
    admission_date: str
    reason: str
    reason_detail: str | None
    decree_number: str | None
    decree_date: str | None
    dismissal_date: str | None
    deny_reason: str | None
    status: int
    status_ts: str
    status_by: str | None
    created_at: str
    documents: list[DocumentOut] = []


class DismissalListResponse(BaseModel):
    dismissals: list[DismissalResponse]
    total: int
    page: int
    per_page: int
