"""String enums stored in the status columns."""
from enum import Enum


class TableStatus(str, Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    OCCUPIED = "occupied"
    CLEANING = "cleaning"
    MAINTENANCE = "maintenance"


class FusionState(str, Enum):
    INDIVIDUAL = "individual"
    FUSION_MASTER = "fusion_master"
    FUSION_SLAVE = "fusion_slave"
    BLOCKED = "blocked"


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SEATED = "seated"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class ReservationOrigin(str, Enum):
    WEB = "web"
    PHONE = "phone"
    WALK_IN = "walk_in"
    THIRD_PARTY = "third_party"


# Reservations that hold their tables for their time window
ACTIVE_STATUSES = (
    ReservationStatus.PENDING.value,
    ReservationStatus.CONFIRMED.value,
    ReservationStatus.SEATED.value,
)

# Origins entered by staff start out confirmed
STAFF_ORIGINS = (ReservationOrigin.PHONE.value, ReservationOrigin.WALK_IN.value)
