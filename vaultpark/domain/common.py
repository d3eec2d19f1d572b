from enum import Enum


class LotStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class SessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class InvoiceStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class MembershipType(str, Enum):
    GOLD = "GOLD"
    PLATINUM = "PLATINUM"


class ScanType(str, Enum):
    ENTRY = "ENTRY"
    EXIT = "EXIT"
