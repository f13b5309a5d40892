from enum import IntEnum

from sqlalchemy import Column, Integer, Text
from jfcase.database import Base


class DismissalStatus(IntEnum):
    CREATED = 1
    ACCEPTED = 2
    REJECTED = 3


DISMISSAL_REASONS = ("1", "2", "3", "4", "5")
# These reasons need a decree number, decree date and reason detail.
DECREE_REASONS = ("2", "3", "4", "5")


class Dismissal(Base):
    __tablename__ = "dismissals"

    id = Column(Text, primary_key=True)
    agency_id = Column(Text, nullable=False)
    asn_id = Column(Text, nullable=False)
    admission_number = Column(Text, nullable=False)
    admission_date = Column(Text, nullable=False)
    reason = Column(Text, nullable=False)
    reason_detail = Column(Text)
    decree_number = Column(Text)
    decree_date = Column(Text)
    dismissal_date = Column(Text)
    deny_reason = Column(Text)
    status = Column(Integer, nullable=False)
    status_ts = Column(Text, nullable=False)
    status_by = Column(Text)
    created_at = Column(Text, nullable=False)
