from pydantic import BaseModel, field_validator

from jfcase.models.employee import ROLES


class EmployeeCreate(BaseModel):
    asn_id: str
    nip: str
    name: str
    birth_place: str | None = None
    birth_date: str | None = None
    photo: str | None = None
    functional_position_id: str | None = None
    functional_position: str | None = None
    rank: str | None = None
    organization_unit_id: str | None = None
    organization_unit: str | None = None
    agency_id: str
    agency: str | None = None
    roles: list[str] = []

    @field_validator("asn_id")
    @classmethod
    def asn_id_has_no_dot(cls, v: str) -> str:
        if not v or "." in v:
            raise ValueError("asn_id must be non-empty and must not contain '.'")
        return v

    @field_validator("roles")
    @classmethod
    def roles_are_known(cls, v: list[str]) -> list[str]:
        unknown = [r for r in v if r not in ROLES]
        if unknown:
            raise ValueError(f"unknown roles: {', '.join(unknown)}")
        return list(dict.fromkeys(v))


class EmployeeResponse(BaseModel):
    asn_id: str
    nip: str
    name: str
    functional_position_id: str | None
    functional_position: str | None
    rank: str | None
    organization_unit_id: str | None
    organization_unit: str | None
    agency_id: str
    agency: str | None
    roles: list[str]
    created_at: str


class EmployeeCreated(BaseModel):
    employee: EmployeeResponse
    token: str
