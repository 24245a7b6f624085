"""Domain enumerations and state-transition rules."""

import enum


class TripStatus(str, enum.Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TripPhase(str, enum.Enum):
    """Fine-grained ``trip_status`` axis stored next to ``status``."""

    STARTED = "started"
    COMPLETED = "completed"
    RATED = "rated"


class TripEvent(str, enum.Enum):
    ASSIGN = "assign"
    START = "start"
    REJECT = "reject"
    CANCEL = "cancel"
    COMPLETE = "complete"
    RATE = "rate"


# State machine: current status -> {event: next status}
TRIP_TRANSITIONS: dict[TripStatus, dict[TripEvent, TripStatus]] = {
    TripStatus.PENDING: {
        TripEvent.ASSIGN: TripStatus.ASSIGNED,
        TripEvent.REJECT: TripStatus.PENDING,
        TripEvent.CANCEL: TripStatus.CANCELLED,
    },
    TripStatus.ASSIGNED: {
        TripEvent.START: TripStatus.ONGOING,
        TripEvent.REJECT: TripStatus.PENDING,
        TripEvent.CANCEL: TripStatus.CANCELLED,
    },
    TripStatus.ONGOING: {
        TripEvent.COMPLETE: TripStatus.COMPLETED,
        TripEvent.CANCEL: TripStatus.CANCELLED,
    },
    TripStatus.COMPLETED: {
        TripEvent.RATE: TripStatus.COMPLETED,
    },
    TripStatus.CANCELLED: {},
}


class RequestStatus(str, enum.Enum):
    WAITING = "waiting"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    COMPLETED = "completed"


# A request never returns to WAITING once it leaves it
REQUEST_TRANSITIONS: dict[RequestStatus, set[RequestStatus]] = {
    RequestStatus.WAITING: {
        RequestStatus.ACCEPTED,
        RequestStatus.CANCELLED,
        RequestStatus.EXPIRED,
    },
    RequestStatus.ACCEPTED: {RequestStatus.COMPLETED, RequestStatus.CANCELLED},
    RequestStatus.REJECTED: set(),
    RequestStatus.CANCELLED: set(),
    RequestStatus.EXPIRED: set(),
    RequestStatus.COMPLETED: set(),
}


class DriverStatus(str, enum.Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class CarType(str, enum.Enum):
    ECONOMY = "economy"
    FAMILY = "family"
    LUXURY = "luxury"


class UserRole(str, enum.Enum):
    PASSENGER = "passenger"
    DRIVER = "driver"
    ADMIN = "admin"
