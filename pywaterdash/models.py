"""Models for the water dashboard."""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ValveStatus(str, Enum):
    """Valve position as reported by the hardware controller."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"

    @classmethod
    def from_value(cls, value: Any) -> "ValveStatus":
        """Read a feed value. ``"OPEN"`` in any case or ``True`` is open."""
        if value is True:
            return cls.OPEN
        if isinstance(value, str) and value.strip().upper() == cls.OPEN.value:
            return cls.OPEN
        return cls.CLOSED


class ValveCommand(str, Enum):
    """Open/close intent written to the command namespace."""

    OPEN = "OPEN"
    CLOSE = "CLOSE"


class RequestStatus(str, Enum):
    """Lifecycle of a service request. Any status may move to any other."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def _missing_(cls, value):
        # Field apps have written "In Progress" and "in progress"
        if isinstance(value, str):
            normalized = value.strip().lower().replace(" ", "-")
            for member in cls:
                if member.value == normalized:
                    return member
        return None

    @property
    def label(self) -> str:
        return self.value.replace("-", " ").title()


def _local_now() -> datetime:
    return datetime.now().astimezone()


class FlowSample(BaseModel):
    """One merged inlet/outlet/valve reading. Held in memory only."""

    inlet: float = Field(0.0, ge=0, description="Inlet flow rate in L/min")
    outlet: float = Field(0.0, ge=0, description="Outlet flow rate in L/min")
    valve_open: bool = Field(True, description="Whether the valve reported OPEN")
    observed_at: datetime = Field(
        default_factory=_local_now, description="When the update arrived, in local time"
    )

    model_config = ConfigDict(frozen=True)

    @property
    def difference(self) -> float:
        """Absolute inlet/outlet difference."""
        return abs(self.inlet - self.outlet)

    @property
    def time_label(self) -> str:
        """24h clock label used on the chart axis."""
        return self.observed_at.strftime("%H:%M:%S")


class FlowState(BaseModel):
    """Derived state published by the flow monitor after every sample."""

    sample: FlowSample = Field(..., description="The sample that produced this state")
    leak_detected: bool = Field(False, description="Leak flag for this sample")
    valve_reported: bool = Field(
        False, description="Whether this sample came from a valve status report"
    )

    @property
    def difference(self) -> float:
        return self.sample.difference

    @property
    def valve_status(self) -> ValveStatus:
        return ValveStatus.OPEN if self.sample.valve_open else ValveStatus.CLOSED


class GeoPoint(BaseModel):
    """A latitude/longitude pair in degrees."""

    latitude: float = Field(..., description="Latitude in degrees")
    longitude: float = Field(..., description="Longitude in degrees")


class ServiceRequest(BaseModel):
    """A user-submitted service request stored in the document store."""

    id: str = Field(..., description="Document ID")
    user_id: Optional[str] = Field(None, alias="userId")
    user_name: str = Field("", alias="userName")
    user_email: str = Field("", alias="userEmail")
    job_description: str = Field("", alias="jobDescription")
    status: RequestStatus = Field(RequestStatus.PENDING, description="Request status")
    scheduled_date: Optional[str] = Field(None, alias="scheduledDate")
    scheduled_time: Optional[str] = Field(None, alias="scheduledTime")
    photo_url: Optional[str] = Field(None, alias="photoUrl")
    location: GeoPoint = Field(..., description="Where the service is needed")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")
    tanker_sent: bool = Field(False, alias="tankerSent")
    tanker_sent_at: Optional[datetime] = Field(None, alias="tankerSentAt")

    model_config = ConfigDict(populate_by_name=True)


class AuthUser(BaseModel):
    """The signed-in identity and its tokens."""

    uid: str = Field(..., description="Opaque user ID")
    email: Optional[str] = Field(None, description="Sign-in email")
    id_token: str = Field(..., description="Bearer token for REST calls")
    refresh_token: str = Field(..., description="Token used to mint a new id_token")
    expires_at: datetime = Field(..., description="When id_token stops being accepted")

    @property
    def expired(self) -> bool:
        return datetime.now(timezone.utc) >= self.expires_at


class UserProfile(BaseModel):
    """The ``users/{uid}`` document consulted for the role check."""

    uid: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def display_name(self) -> str:
        return self.name or self.email or "Admin"


class DispatchRoute(BaseModel):
    """What the tanker-dispatch map needs to frame a request."""

    destination: GeoPoint
    origin: Optional[GeoPoint] = None
    center: GeoPoint
    zoom: int
    distance_km: Optional[float] = None


class Zone(BaseModel):
    """A heatmap zone with its sensor and solenoid counts."""

    id: str
    name: str
    temperature: float
    sensors: int = 0
    solenoids: int = 0
    x: float = Field(..., description="Horizontal position in percent")
    y: float = Field(..., description="Vertical position in percent")


class NetworkNode(BaseModel):
    """A node in the network topology view."""

    id: str
    x: float
    y: float
    label: str
    is_valve_node: bool = False


class NetworkLink(BaseModel):
    """An edge between two network nodes."""

    source: str
    target: str


class Overview(BaseModel):
    """Landing page numbers for the signed-in admin."""

    user_name: str
    pending_requests: int = 0
