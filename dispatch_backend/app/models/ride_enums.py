"""
Ride-related enumerations.
"""

import enum


class RideStatus(str, enum.Enum):
    """Ride lifecycle status, in lifecycle order."""
    UNASSIGNED = "unassigned"  # Created, no driver committed
    ASSIGNED = "assigned"  # Driver assigned directly or via approved claim
    ON_MY_WAY = "on_my_way"  # Driver heading to pickup
    ON_LOCATION = "on_location"  # Driver at pickup
    POB = "pob"  # Passenger on board
    COMPLETED = "completed"  # Terminal


# Canonical lifecycle order
STATUS_FLOW = [
    RideStatus.UNASSIGNED,
    RideStatus.ASSIGNED,
    RideStatus.ON_MY_WAY,
    RideStatus.ON_LOCATION,
    RideStatus.POB,
    RideStatus.COMPLETED,
]

# Statuses reachable through SetRideStatus (assign/unassign have their own paths)
FORWARD_STATUSES = frozenset(STATUS_FLOW[2:])


class RideType(str, enum.Enum):
    """Ride booking type."""
    RESERVATION = "reservation"
    ASAP = "asap"


class PaymentMethod(str, enum.Enum):
    """Payment method enumeration."""
    CASH = "cash"
    ZELLE = "zelle"
    CARD = "card"
    QR = "qr"


class ShareStatus(str, enum.Enum):
    """Ride group share status."""
    ACTIVE = "active"
    REVOKED = "revoked"
    EXPIRED = "expired"  # Reported at read time once the window has ended


class RideClaimStatus(str, enum.Enum):
    """Ride claim status. Anything but QUEUED is immutable history."""
    QUEUED = "queued"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class GroupType(str, enum.Enum):
    """Driver group type."""
    LOCAL = "local"
    CORPORATE = "corporate"
    GLOBAL = "global"
