"""
Error taxonomy shared by every workflow.

Codes are five digits: ``1`` (service) + module digit + three-digit kind, where
the hundreds digit of the kind tells client (4) from server (5) errors.
The table mapping codes to messages and HTTP statuses is built once with
:func:`build_error_table` and handed to whatever needs it (the HTTP error
handler); nothing mutates it afterwards.
"""
from dataclasses import dataclass
from enum import IntEnum
from types import MappingProxyType
from typing import Any, Iterator, Mapping


class ErrorCode(IntEnum):
    # Generic client errors
    REQUEST_JSON_DECODE = 10410
    REQUEST_BODY_NIL = 10411
    REQUEST_QUERY_PARAM_PARSE = 10412
    LIST_COUNT_PER_PAGE = 10413
    LIST_PAGE_NUMBER = 10414
    MIME_TYPE_NOT_SUPPORTED = 10415
    STORAGE_FILE_NOT_FOUND = 10416
    ENTRY_NOT_FOUND = 10417
    UUID_INVALID = 10418
    NO_API_TOKEN = 10419
    INVALID_USER = 10420
    NO_WORK_AGENCY_ID = 10422
    DOCUMENT_GENERATE_BAD_TEMPLATE = 10424
    DOCUMENT_TEMPLATE_DATA_INVALID = 10425
    SIGNED_URL_INVALID = 10426
    UPLOAD_TOO_LARGE = 10427
    TEMPLATE_NAME_INVALID = 10428

    # Generic server errors
    INTERNAL = 10500
    TX_COMMIT = 10502
    EXEC_FAIL = 10506
    QUERY_FAIL = 10507
    STORAGE_COPY_FAIL = 10508
    STORAGE_SIGN_FAIL = 10509
    ROLE_UNAUTHORIZED = 10512
    DOCUMENT_GENERATE = 10513
    STORAGE_PUT_FAIL = 10514
    STORAGE_GET_METADATA_FAIL = 10515
    REQUEST_TIMEOUT = 10516

    # Activity
    ACTIVITY_INSERT_ASN_NOT_FOUND = 11401
    ACTIVITY_INSERT_NO_ATTENDEES = 11402
    ACTIVITY_INSERT_NAME_EMPTY = 11403
    ACTIVITY_INSERT_TYPE_INVALID = 11404
    ACTIVITY_NO_SUPPORT_DOCS = 11405
    ACTIVITY_POSITION_GRADE_EMPTY = 11406
    ACTIVITY_DATE_PERIOD_INVALID = 11407
    ACTIVITY_TRAINING_YEAR_INVALID = 11408
    ACTIVITY_DURATION_INVALID = 11409
    ACTIVITY_ADMISSION_NUMBER_INVALID = 11410
    ACTIVITY_CSR_NOT_ACCEPTED = 11411
    ACTIVITY_CSR_ONGOING = 11412
    ACTIVITY_CSR_NO_ATTENDEES = 11413
    ACTIVITY_VERIFICATION_PROCESSED_FURTHER = 11414
    ACTIVITY_VERIFICATION_ALREADY_ACCEPTED = 11415
    ACTIVITY_VERIFICATION_NO_ATTENDEES = 11416
    ACTIVITY_CERT_NOT_REQUESTED = 11417
    ACTIVITY_CERT_PAK_UNSUPPORTED = 11418
    ACTIVITY_CERT_NO_DOCS = 11419
    ACTIVITY_CERT_TYPE_UNSUPPORTED = 11420
    ACTIVITY_FILTER_STATUS_INVALID = 11421
    ACTIVITY_FILTER_DATE_INVALID = 11422
    ACTIVITY_FILTER_TYPE_INVALID = 11423
    ACTIVITY_DETAIL_FORBIDDEN = 11425
    ACTIVITY_NO_RECOMMENDATION_LETTER = 11426

    # Promotion
    PROMOTION_FIELD_EMPTY = 13402
    PROMOTION_TYPE_INVALID = 13403
    PROMOTION_ASN_NOT_FOUND = 13404
    PROMOTION_TEST_STATUS_INVALID = 13405
    PROMOTION_PAK_LETTER_EMPTY = 13406
    PROMOTION_RECOMMENDATION_LETTER_EMPTY = 13407
    PROMOTION_POSITION_INVALID = 13408
    PROMOTION_PROCESSED_FURTHER = 13409
    PROMOTION_ALREADY_ACCEPTED = 13410
    PROMOTION_ALREADY_REJECTED = 13411
    PROMOTION_FILTER_STATUS_INVALID = 13412
    PROMOTION_FILTER_DATE_INVALID = 13413
    PROMOTION_FILTER_TYPE_INVALID = 13414
    PROMOTION_TEST_CERTIFICATE_EMPTY = 13415
    PROMOTION_DATE_INVALID = 13416
    PROMOTION_NOT_ACCEPTED = 13417

    # Promotion CPNS
    PROMOTION_CPNS_NOT_CREATED = 14402
    PROMOTION_CPNS_FIELD_INVALID = 14403
    PROMOTION_CPNS_ALREADY_ACCEPTED = 14404

    # Requirement
    REQUIREMENT_POSITION_GRADE_EMPTY = 16401
    REQUIREMENT_COUNT_INVALID = 16402
    REQUIREMENT_NO_ESTIMATION_DOCS = 16403
    REQUIREMENT_COVER_LETTER_INVALID = 16404
    REQUIREMENT_NO_FISCAL_YEAR = 16405
    REQUIREMENT_NO_ADMISSION_NUMBER = 16406
    REQUIREMENT_FILTER_STATUS_INVALID = 16407
    REQUIREMENT_FILTER_DATE_INVALID = 16408
    REQUIREMENT_PROCESSED_FURTHER = 16409
    REQUIREMENT_ALREADY_ACCEPTED = 16410
    REQUIREMENT_RECOMMENDATION_LETTER_INVALID = 16412
    REQUIREMENT_NOT_ACCEPTED = 16413
    REQUIREMENT_NOT_SAME_AGENCY = 16414
    REQUIREMENT_NOT_IN_REVISION = 16415
    REQUIREMENT_REVISION_NO_NOTE = 16416
    REQUIREMENT_BEZETTING = 16501

    # Assessment team
    ASSESSMENT_TEAM_ASSESSOR_COUNT_EVEN = 18401
    ASSESSMENT_TEAM_ASSESSOR_COUNT_INVALID = 18402
    ASSESSMENT_TEAM_ADMISSION_NUMBER_INVALID = 18403
    ASSESSMENT_TEAM_POSITION_INVALID = 18404
    ASSESSMENT_TEAM_ASSESSOR_ROLE_INVALID = 18405
    ASSESSMENT_TEAM_FILTER_STATUS_INVALID = 18406
    ASSESSMENT_TEAM_FILTER_DATE_INVALID = 18407
    ASSESSMENT_TEAM_NOT_CREATED = 18408
    ASSESSMENT_TEAM_ASSESSOR_STATUS_INVALID = 18409
    ASSESSMENT_TEAM_ALREADY_VERIFIED = 18410

    # Dismissal
    DISMISSAL_REASON_EMPTY = 19401
    DISMISSAL_NO_SUPPORT_DOCS = 19402
    DISMISSAL_ASN_NOT_FOUND = 19403
    DISMISSAL_SIGNER_NOT_FOUND = 19404
    DISMISSAL_ACCEPTANCE_NO_LETTER = 19405
    DISMISSAL_DENIAL_NO_REASON = 19406
    DISMISSAL_FILTER_STATUS_INVALID = 19407
    DISMISSAL_FILTER_DATE_INVALID = 19408
    DISMISSAL_DECREE_DATA_EMPTY = 19409
    DISMISSAL_ADMISSION_NUMBER_INVALID = 19410
    DISMISSAL_PROCESSED_FURTHER = 19411
    DISMISSAL_NOT_ACCEPTED = 19412
    DISMISSAL_ALREADY_ACCEPTED = 19413


_DATE_FORMAT_MESSAGE = "date must be in the format of YYYY-MM-DD (e.g. 2006-12-31)"

# (code, message, http status); None means derive the status from the code.
_ENTRIES: tuple[tuple[ErrorCode, str, int | None], ...] = (
    (ErrorCode.REQUEST_JSON_DECODE, "request JSON cannot be decoded", 400),
    (ErrorCode.REQUEST_BODY_NIL, "request body is nil", 400),
    (ErrorCode.REQUEST_QUERY_PARAM_PARSE, "cannot parse query parameters", 400),
    (ErrorCode.LIST_COUNT_PER_PAGE, "count must be >= 1 and <= 100", 400),
    (ErrorCode.LIST_PAGE_NUMBER, "page number must be >= 1", 400),
    (ErrorCode.MIME_TYPE_NOT_SUPPORTED, "mime type of the document is not supported/allowed", 400),
    (ErrorCode.STORAGE_FILE_NOT_FOUND, "document not found in storage", 404),
    (ErrorCode.ENTRY_NOT_FOUND, "entry cannot be found", 404),
    (ErrorCode.UUID_INVALID, "not a valid UUID string", 400),
    (ErrorCode.NO_API_TOKEN, "no valid API token present in request", 401),
    (ErrorCode.INVALID_USER, "user detail cannot be found", 403),
    (ErrorCode.NO_WORK_AGENCY_ID, "user has no work agency", 403),
    (
        ErrorCode.DOCUMENT_GENERATE_BAD_TEMPLATE,
        "unable to generate document from docx template, some placeholders have incorrect syntax, "
        "e.g. must not contain spaces between two words (`{{ nama instansi }}` is not allowed, "
        "must be `{{ nama_instansi }}`)",
        400,
    ),
    (ErrorCode.DOCUMENT_TEMPLATE_DATA_INVALID, "document data is incomplete, required fields are missing", 400),
    (ErrorCode.SIGNED_URL_INVALID, "signed URL is invalid or expired", 403),
    (ErrorCode.UPLOAD_TOO_LARGE, "uploaded file is too large", 413),
    (ErrorCode.TEMPLATE_NAME_INVALID, "template name is not one of the known templates", 400),
    (ErrorCode.INTERNAL, "internal server error", 500),
    (ErrorCode.TX_COMMIT, "failed in committing a transaction", 500),
    (ErrorCode.EXEC_FAIL, "SQL statement execution failed", 500),
    (ErrorCode.QUERY_FAIL, "SQL query failed", 500),
    (ErrorCode.STORAGE_COPY_FAIL, "copying (or moving + deleting) files in object storage failed", 500),
    (ErrorCode.STORAGE_SIGN_FAIL, "failed to create signed URL for this operation", 500),
    (ErrorCode.ROLE_UNAUTHORIZED, "user is unauthorized to do the action", 403),
    (ErrorCode.DOCUMENT_GENERATE, "unable to generate document from docx template", 500),
    (ErrorCode.STORAGE_PUT_FAIL, "unable to put file into object storage", 500),
    (ErrorCode.STORAGE_GET_METADATA_FAIL, "unable to retrieve file metadata from storage", 500),
    (ErrorCode.REQUEST_TIMEOUT, "the operation did not finish in time", 504),

    (ErrorCode.ACTIVITY_INSERT_ASN_NOT_FOUND, "some ASNs cannot be found by the given ID", None),
    (ErrorCode.ACTIVITY_INSERT_NO_ATTENDEES, "attendees are needed", None),
    (ErrorCode.ACTIVITY_INSERT_NAME_EMPTY, "activity name is needed", None),
    (ErrorCode.ACTIVITY_INSERT_TYPE_INVALID, "activity type is invalid", None),
    (ErrorCode.ACTIVITY_NO_SUPPORT_DOCS, "no support documents saved, must supply at least one filename", None),
    (ErrorCode.ACTIVITY_POSITION_GRADE_EMPTY, "position grade is empty", None),
    (ErrorCode.ACTIVITY_DATE_PERIOD_INVALID, "start/end date is invalid", None),
    (ErrorCode.ACTIVITY_TRAINING_YEAR_INVALID, "admission training year is invalid", None),
    (ErrorCode.ACTIVITY_DURATION_INVALID, "admission duration is invalid", None),
    (ErrorCode.ACTIVITY_ADMISSION_NUMBER_INVALID, "admission number is invalid", None),
    (ErrorCode.ACTIVITY_CSR_NOT_ACCEPTED,
     "cannot set activity status to certificate request, activity is not accepted yet", None),
    (ErrorCode.ACTIVITY_CSR_ONGOING, "certificate request is already ongoing for this activity", None),
    (ErrorCode.ACTIVITY_CSR_NO_ATTENDEES, "no attendees supplied", None),
    (ErrorCode.ACTIVITY_VERIFICATION_PROCESSED_FURTHER,
     "cannot set activity status to accepted, activity already processed further", None),
    (ErrorCode.ACTIVITY_VERIFICATION_ALREADY_ACCEPTED, "this activity is already accepted", None),
    (ErrorCode.ACTIVITY_VERIFICATION_NO_ATTENDEES, "no attendees supplied", None),
    (ErrorCode.ACTIVITY_CERT_NOT_REQUESTED, "activity admission status is not accepted", None),
    (ErrorCode.ACTIVITY_CERT_PAK_UNSUPPORTED, "PAK document is supported only for mutation exam activities", None),
    (ErrorCode.ACTIVITY_CERT_NO_DOCS, "no documents were uploaded", None),
    (ErrorCode.ACTIVITY_CERT_TYPE_UNSUPPORTED, "certificate type is not supported", None),
    (ErrorCode.ACTIVITY_FILTER_STATUS_INVALID, "admission status must be >= 1 and <= 5", None),
    (ErrorCode.ACTIVITY_FILTER_DATE_INVALID, _DATE_FORMAT_MESSAGE, None),
    (ErrorCode.ACTIVITY_FILTER_TYPE_INVALID, "activity type must be >= 1 and <= 3", None),
    (ErrorCode.ACTIVITY_DETAIL_FORBIDDEN, "not authorized to see the detail", 403),
    (ErrorCode.ACTIVITY_NO_RECOMMENDATION_LETTER, "no recommendation letter supplied", None),

    (ErrorCode.PROMOTION_FIELD_EMPTY, "one or more of required request field(s) is empty", None),
    (ErrorCode.PROMOTION_TYPE_INVALID,
     "promotion type can only be one of (1-perpindahan jabatan, 2-promosi, 3-inpassing)", None),
    (ErrorCode.PROMOTION_ASN_NOT_FOUND, "ASN for promotion not found", None),
    (ErrorCode.PROMOTION_TEST_STATUS_INVALID,
     "competency test status can only be one of (1-Lulus, 2-Tidak Lulus)", None),
    (ErrorCode.PROMOTION_PAK_LETTER_EMPTY, "PAK letter cannot be empty", None),
    (ErrorCode.PROMOTION_RECOMMENDATION_LETTER_EMPTY, "recommendation letter cannot be empty", None),
    (ErrorCode.PROMOTION_POSITION_INVALID, "promotion position is invalid", None),
    (ErrorCode.PROMOTION_PROCESSED_FURTHER,
     "cannot change promotion admission status, promotion already processed further", None),
    (ErrorCode.PROMOTION_ALREADY_ACCEPTED, "promotion admission already accepted", None),
    (ErrorCode.PROMOTION_ALREADY_REJECTED, "promotion admission already rejected", None),
    (ErrorCode.PROMOTION_FILTER_STATUS_INVALID, "admission status must be >= 1 and <= 3", None),
    (ErrorCode.PROMOTION_FILTER_DATE_INVALID, _DATE_FORMAT_MESSAGE, None),
    (ErrorCode.PROMOTION_FILTER_TYPE_INVALID, "promotion type must be >= 1 and <= 3", None),
    (ErrorCode.PROMOTION_TEST_CERTIFICATE_EMPTY, "competency test certificate cannot be empty", None),
    (ErrorCode.PROMOTION_DATE_INVALID, _DATE_FORMAT_MESSAGE, None),
    (ErrorCode.PROMOTION_NOT_ACCEPTED, "promotion admission is not accepted", None),

    (ErrorCode.PROMOTION_CPNS_NOT_CREATED, "CPNS promotion admission status not created (1)", None),
    (ErrorCode.PROMOTION_CPNS_FIELD_INVALID, "one or more of required request field(s) is empty", None),
    (ErrorCode.PROMOTION_CPNS_ALREADY_ACCEPTED, "CPNS promotion admission already accepted", None),

    (ErrorCode.REQUIREMENT_POSITION_GRADE_EMPTY, "functional position is required", None),
    (ErrorCode.REQUIREMENT_COUNT_INVALID, "requirement count must be > 0", None),
    (ErrorCode.REQUIREMENT_NO_ESTIMATION_DOCS,
     "no estimation docs saved, must supply at least one filename", None),
    (ErrorCode.REQUIREMENT_COVER_LETTER_INVALID, "cover letter is invalid", None),
    (ErrorCode.REQUIREMENT_NO_FISCAL_YEAR, "fiscal year is required", None),
    (ErrorCode.REQUIREMENT_NO_ADMISSION_NUMBER, "admission number is required", None),
    (ErrorCode.REQUIREMENT_FILTER_STATUS_INVALID, "admission status must be >= 1 and <= 5", None),
    (ErrorCode.REQUIREMENT_FILTER_DATE_INVALID, _DATE_FORMAT_MESSAGE, None),
    (ErrorCode.REQUIREMENT_PROCESSED_FURTHER,
     "cannot change requirement status or upload a recommendation letter, requirement already processed further",
     None),
    (ErrorCode.REQUIREMENT_ALREADY_ACCEPTED, "this requirement is already accepted", None),
    (ErrorCode.REQUIREMENT_RECOMMENDATION_LETTER_INVALID, "invalid recommendation letter", None),
    (ErrorCode.REQUIREMENT_NOT_ACCEPTED, "requirement has not been accepted", None),
    (ErrorCode.REQUIREMENT_NOT_SAME_AGENCY,
     "requirement recommendation letter generation: all requirement IDs must be from the same agency", None),
    (ErrorCode.REQUIREMENT_NOT_IN_REVISION, "requirement can only be edited while in revision", None),
    (ErrorCode.REQUIREMENT_REVISION_NO_NOTE, "revision note is required", None),
    (ErrorCode.REQUIREMENT_BEZETTING, "failed to calculate the bezetting of a requirement admission", None),

    (ErrorCode.ASSESSMENT_TEAM_ASSESSOR_COUNT_EVEN, "the number of assessors must be odd", None),
    (ErrorCode.ASSESSMENT_TEAM_ASSESSOR_COUNT_INVALID, "at least three assessors must be supplied", None),
    (ErrorCode.ASSESSMENT_TEAM_ADMISSION_NUMBER_INVALID, "admission number is invalid", None),
    (ErrorCode.ASSESSMENT_TEAM_POSITION_INVALID, "functional position id is invalid", None),
    (ErrorCode.ASSESSMENT_TEAM_ASSESSOR_ROLE_INVALID, "assessor role is invalid", None),
    (ErrorCode.ASSESSMENT_TEAM_FILTER_STATUS_INVALID, "admission status must be >= 1 and <= 2", None),
    (ErrorCode.ASSESSMENT_TEAM_FILTER_DATE_INVALID, _DATE_FORMAT_MESSAGE, None),
    (ErrorCode.ASSESSMENT_TEAM_NOT_CREATED, "assessment team status is not created", None),
    (ErrorCode.ASSESSMENT_TEAM_ASSESSOR_STATUS_INVALID,
     "assessor status supplied contains value outside the valid range (1-2)", None),
    (ErrorCode.ASSESSMENT_TEAM_ALREADY_VERIFIED, "assessment team already verified", None),

    (ErrorCode.DISMISSAL_REASON_EMPTY, "dismissal reason is empty", None),
    (ErrorCode.DISMISSAL_NO_SUPPORT_DOCS, "no support documents saved, must supply at least one filename", None),
    (ErrorCode.DISMISSAL_ASN_NOT_FOUND, "ASN not found", None),
    (ErrorCode.DISMISSAL_SIGNER_NOT_FOUND, "signer user ID not found", None),
    (ErrorCode.DISMISSAL_ACCEPTANCE_NO_LETTER,
     "valid acceptance letter number and date must be supplied for dismissal acceptance", None),
    (ErrorCode.DISMISSAL_DENIAL_NO_REASON, "dismissal is denied for no reason", None),
    (ErrorCode.DISMISSAL_FILTER_STATUS_INVALID, "admission status supplied contains value outside the valid range", None),
    (ErrorCode.DISMISSAL_FILTER_DATE_INVALID, _DATE_FORMAT_MESSAGE, None),
    (ErrorCode.DISMISSAL_DECREE_DATA_EMPTY,
     "decree date, number, and reason detail must not be empty if dismissal reason is 2 - 5", None),
    (ErrorCode.DISMISSAL_ADMISSION_NUMBER_INVALID, "admission number is invalid", None),
    (ErrorCode.DISMISSAL_PROCESSED_FURTHER, "dismissal admission already processed further", None),
    (ErrorCode.DISMISSAL_NOT_ACCEPTED, "dismissal admission is not accepted", None),
    (ErrorCode.DISMISSAL_ALREADY_ACCEPTED, "dismissal admission already accepted", None),
)


def is_client_error(code: int) -> bool:
    return code % 1000 // 100 == 4


@dataclass(frozen=True)
class ErrorKind:
    code: int
    message: str
    http_status: int

    @property
    def is_client_error(self) -> bool:
        return is_client_error(self.code)


class ErrorTable(Mapping[int, ErrorKind]):
    """Read-only code -> ErrorKind mapping."""

    def __init__(self, kinds: Mapping[int, ErrorKind]):
        self._kinds = MappingProxyType(dict(kinds))

    def __getitem__(self, code: int) -> ErrorKind:
        return self._kinds[code]

    def __iter__(self) -> Iterator[int]:
        return iter(self._kinds)

    def __len__(self) -> int:
        return len(self._kinds)

    def lookup(self, code: int) -> ErrorKind:
        kind = self._kinds.get(code)
        if kind is not None:
            return kind
        status = 400 if is_client_error(code) else 500
        return ErrorKind(code=code, message=self._kinds[ErrorCode.INTERNAL].message, http_status=status)


def build_error_table() -> ErrorTable:
    kinds: dict[int, ErrorKind] = {}
    for code, message, status in _ENTRIES:
        if code in kinds:
            raise ValueError(f"duplicate error code {int(code)}")
        if status is None:
            status = 400 if is_client_error(code) else 500
        kinds[int(code)] = ErrorKind(code=int(code), message=message, http_status=status)
    return ErrorTable(kinds)


class AppError(Exception):
    """A classified failure; ``detail`` is for logs and client errors, ``data`` is returned to clients."""

    def __init__(self, code: ErrorCode, detail: str | None = None, data: dict[str, Any] | None = None):
        self.code = code
        self.detail = detail
        self.data = data
        super().__init__(f"{int(code)}: {detail}" if detail else str(int(code)))
