from enum import IntEnum

from sqlalchemy import Column, Float, Integer, Text
from jfcase.database import Base


class PromotionStatus(IntEnum):
    CREATED = 1
    ACCEPTED = 2
    REJECTED = 3


class PromotionType(IntEnum):
    TRANSFER = 1
    PROMOTION = 2
    IN_PASSING = 3


class PromotionTestStatus(IntEnum):
    PASS = 1
    FAIL = 2


class Promotion(Base):
    __tablename__ = "promotions"

    id = Column(Text, primary_key=True)
    agency_id = Column(Text, nullable=False)
    asn_id = Column(Text, nullable=False)
    admission_number = Column(Text, nullable=False)
    admission_date = Column(Text, nullable=False)
    promotion_type = Column(Integer, nullable=False)
    promotion_position_id = Column(Text, nullable=False)
    promotion_position = Column(Text)
    test_status = Column(Integer, nullable=False)
    test_score = Column(Float)
    rejection_reason = Column(Text)
    status = Column(Integer, nullable=False)
    status_ts = Column(Text, nullable=False)
    status_by = Column(Text)
    created_at = Column(Text, nullable=False)


class PromotionCpns(Base):
    __tablename__ = "promotion_cpns"

    id = Column(Text, primary_key=True)
    agency_id = Column(Text, nullable=False)
    asn_id = Column(Text, nullable=False)
    admission_number = Column(Text, nullable=False)
    admission_date = Column(Text, nullable=False)
    promotion_position_id = Column(Text, nullable=False)
    promotion_position = Column(Text)
    first_credit_number = Column(Integer, nullable=False, default=0)
    organization_unit_id = Column(Text, nullable=False)
    organization_unit = Column(Text)
    rejection_reason = Column(Text)
    status = Column(Integer, nullable=False)
    status_ts = Column(Text, nullable=False)
    status_by = Column(Text)
    created_at = Column(Text, nullable=False)
