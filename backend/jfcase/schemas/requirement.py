from pydantic import BaseModel

from jfcase.schemas.common import DocumentIn, DocumentOut


class RequirementCountIn(BaseModel):
    organization_unit_id: str
    organization_unit: str | None = None
    count: int


class RequirementCreate(BaseModel):
    functional_position_id: str = ""
    functional_position: str | None = None
    fiscal_year: int = 0
    admission_number: str = ""
    counts: list[RequirementCountIn] = []
    estimation_documents: list[DocumentIn] = []
    cover_letter: DocumentIn | None = None


class DocumentNote(BaseModel):
    filename: str
    note: str | None = None


class RecommendationCountIn(BaseModel):
    organization_unit_id: str
    recommendation: int


class RequirementVerification(BaseModel):
    cover_letter_note: str | None = None
    estimation_document_notes: list[DocumentNote] = []
    recommendations: list[RecommendationCountIn] = []


class RequirementRevision(RequirementVerification):
    reason: str = ""


class RecommendationLetterBulkSubmit(BaseModel):
    requirement_ids: list[str] = []
    document_name: str | None = None
    document_number: str = ""
    document_date: str = ""
    note: str | None = None
    signer_asn_id: str = ""


class RecommendationLetterResponse(BaseModel):
    filename: str
    requirement_ids: list[str]


class RecommendationLetterSign(BaseModel):
    filename: str


class RequirementCountOut(BaseModel):
    organization_unit_id: str
    organization_unit: str | None
    count: int
    recommendation: int | None
    bezetting: int


class RequirementResponse(BaseModel):
    id: str
    agency_id: str
    functional_position_id: str
    functional_position: str | None
    fiscal_year: int
    admission_number: str
    admission_date: str
    status: int
    status_ts: str
    status_by: str | None
    note: str | None
    created_at: str
    counts: list[RequirementCountOut] = []
    documents: list[DocumentOut] = []


class RequirementListResponse(BaseModel):
    requirements: list[RequirementResponse]
    total: int
    page: int
    per_page: int
