from pydantic import BaseModel

from jfcase.schemas.common import DocumentIn, DocumentOut


class PromotionCreate(BaseModel):
    asn_id: str = ""
    admission_number: str = ""
    admission_date: str = ""
    promotion_type: int = 0
    promotion_position_id: str = ""
    promotion_position: str | None = None
    test_status: int = 0
    test_score: float | None = None
    pak_letter: DocumentIn | None = None
    recommendation_letter: DocumentIn | None = None
    test_certificate: DocumentIn | None = None


class PromotionAcceptance(BaseModel):
    document_name: str | None = None
    document_number: str | None = None
    document_date: str | None = None
    signer_asn_id: str | None = None


class PromotionResponse(BaseModel):
    id: str
    agency_id: str
    asn_id: str
    admission_number: str
    admission_date: str
    promotion_type: int
    promotion_position_id: str
    promotion_position: str | None
    test_status: int
    test_score: float | None
    rejection_reason: str | None
    status: int
    status_ts: str
    status_by: str | None
    created_at: str
    documents: list[DocumentOut] = []


class PromotionListResponse(BaseModel):
    promotions: list[PromotionResponse]
    total: int
    page: int
    per_page: int


class PromotionCpnsCreate(BaseModel):
    asn_id: str = ""
    admission_number: str = ""
    admission_date: str = ""
    promotion_position_id: str = ""
    promotion_position: str | None = None
    first_credit_number: int = 0
    organization_unit_id: str = ""
    organization_unit: str | None = None
    pak_letter: DocumentIn | None = None
    promotion_letter: DocumentIn | None = None


class PromotionCpnsResponse(BaseModel):
    id: str
    agency_id: str
    asn_id: str
    admission_number: str
    admission_date: str
    promotion_position_id: str
    promotion_position: str | None
    first_credit_number: int
    organization_unit_id: str
    organization_unit: str | None
    rejection_reason: str | None
    status: int
    status_ts: str
    status_by: str | None
    created_at: str
    documents: list[DocumentOut] = []


class PromotionCpnsListResponse(BaseModel):
    promotions: list[PromotionCpnsResponse]
    total: int
    page: int
    per_page: int
