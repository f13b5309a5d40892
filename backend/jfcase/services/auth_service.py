import logging
import time

from sqlalchemy.orm import Session

from jfcase.config import settings
from jfcase.models import Employee
from jfcase.schemas.employee import EmployeeCreate
from jfcase.services import workflow
from jfcase.utils.security import generate_token, hash_secret, verify_secret

logger = logging.getLogger("jfcase.auth")


class AuthService:
    """API tokens of the form ``<asn_id>.<secret>``; only an argon2 hash of the secret is stored."""

    def __init__(self):
        self._verified: dict[str, tuple[str, float]] = {}  # token -> (asn_id, expires_at)

    def _cleanup_expired(self):
        now = time.time()
        self._verified = {t: v for t, v in self._verified.items() if v[1] > now}

    def create_employee(self, db: Session, req: EmployeeCreate) -> tuple[Employee, str]:
        employee = Employee(
            asn_id=req.asn_id,
            nip=req.nip,
            name=req.name,
            birth_place=req.birth_place,
            birth_date=req.birth_date,
            photo=req.photo,
            functional_position_id=req.functional_position_id,
            functional_position=req.functional_position,
            rank=req.rank,
            organization_unit_id=req.organization_unit_id,
            organization_unit=req.organization_unit,
            agency_id=req.agency_id,
            agency=req.agency,
            roles=",".join(req.roles),
            created_at=workflow.now(),
        )
        token = self._assign_token(employee)
        db.add(employee)
        workflow.commit(db)
        logger.info("Employee %s created with roles %s", employee.asn_id, employee.roles or "-")
        return employee, token

    def rotate_token(self, db: Session, employee: Employee) -> str:
        token = self._assign_token(employee)
        workflow.commit(db)
        self.forget(employee.asn_id)
        return token

    def _assign_token(self, employee: Employee) -> str:
        secret = generate_token()
        employee.token_hash = hash_secret(secret)
        return f"{employee.asn_id}.{secret}"

    def authenticate(self, db: Session, token: str) -> Employee | None:
        asn_id, sep, secret = token.partition(".")
        if not sep or not asn_id or not secret:
            return None

        self._cleanup_expired()
        cached = self._verified.get(token)
        employee = db.query(Employee).filter(Employee.asn_id == asn_id).first()
        if employee is None or not employee.token_hash:
            return None
        if cached is not None and cached[0] == asn_id:
            return employee

        if not verify_secret(employee.token_hash, secret):
            return None
        self._verified[token] = (asn_id, time.time() + settings.token_cache_seconds)
        return employee

    def forget(self, asn_id: str):
        self._verified = {t: v for t, v in self._verified.items() if v[0] != asn_id}

    def clear(self):
        self._verified.clear()


auth_service = AuthService()
