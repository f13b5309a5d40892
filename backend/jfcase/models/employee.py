from sqlalchemy import Column, Text
from jfcase.database import Base

ROLE_ADMIN = "admin"
ROLE_VERIFIER = "verifier"
ROLE_SUPERVISOR = "supervisor"
ROLES = (ROLE_ADMIN, ROLE_VERIFIER, ROLE_SUPERVISOR)


class Employee(Base):
    __tablename__ = "employees"

    asn_id = Column(Text, primary_key=True)
    nip = Column(Text, nullable=False, unique=True)
    name = Column(Text, nullable=False)
    birth_place = Column(Text)
    birth_date = Column(Text)
    photo = Column(Text)
    functional_position_id = Column(Text)
    functional_position = Column(Text)
    rank = Column(Text)
    organization_unit_id = Column(Text)
    organization_unit = Column(Text)
    agency_id = Column(Text, nullable=False)
    agency = Column(Text)
    roles = Column(Text, nullable=False, default="")
    token_hash = Column(Text)
    created_at = Column(Text, nullable=False)

    @property
    def role_list(self) -> list[str]:
        return [r for r in (self.roles or "").split(",") if r]

    def has_role(self, role: str) -> bool:
        return role in self.role_list
