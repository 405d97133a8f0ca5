"""
All database models imported here so metadata.create_all sees them.
"""
# Restaurant physical models (Zones, Tables, Table state history)
from seatplan.models.restaurant import (
    Zone, Table, TableStateLog
)

# Customer models
from seatplan.models.customer import (
    Customer
)

# Reservation models
from seatplan.models.reservation import (
    Reservation, ReservationTable, ReservationStatusHistory
)

# Audit models
from seatplan.models.audit import (
    AuditLog
)

__all__ = [
    # Restaurant
    "Zone", "Table", "TableStateLog",
    # Customer
    "Customer",
    # Reservation
    "Reservation", "ReservationTable", "ReservationStatusHistory",
    # Audit
    "AuditLog",
]
