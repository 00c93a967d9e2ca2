import enum

from sqlalchemy import BigInteger, Integer

# SQLite n'auto-incrémente que les "INTEGER PRIMARY KEY"
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")


class TransactionType(str, enum.Enum):
    receipt = "receipt"
    dispense = "dispense"
    adjustment = "adjustment"
    return_ = "return"


class PrescriptionStatus(str, enum.Enum):
    draft = "draft"
    finalized = "finalized"
    dispensed = "dispensed"
    cancelled = "cancelled"


class VendorStatus(str, enum.Enum):
    active = "active"
    inactive = "inactive"


class AlertSeverity(str, enum.Enum):
    expired = "expired"
    low = "low"
    out = "out"
    expiring = "expiring"
