from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


CHECKOUT_COMPLETED = "checkout.session.completed"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ErrorKind(str, Enum):
    """Error taxonomy shared by the API and the client services"""
    PARSE_DEGRADED = "PARSE_DEGRADED"
    FETCH_FAILED = "FETCH_FAILED"
    AUTH_INVALID = "AUTH_INVALID"
    UNLOCK_REJECTED = "UNLOCK_REJECTED"
    VALIDATION_ERROR = "VALIDATION_ERROR"


class SavedPlaylist(BaseModel):
    """A named playlist source (built-in or user-added)"""
    id: str = Field(default_factory=lambda: uuid4().hex, description="Stable playlist id, generated once")
    name: str = Field(..., description="Display name")
    source_url: str = Field(..., description="Extended-M3U playlist URL")
    schedule_url: str | None = Field(None, description="Optional XMLTV guide URL")
    channel_count: int = Field(0, ge=0, description="Channels found on the last load")
    last_updated: datetime = Field(default_factory=_utc_now, description="Last add/edit/refresh time (UTC)")
    is_active: bool = Field(False, description="Whether this is the active playlist")

    @field_validator("schedule_url")
    @classmethod
    def blank_schedule_url_is_none(cls, v: str | None) -> str | None:
        """Treat blank guide URLs as absent"""
        if v is None or not v.strip():
            return None
        return v.strip()


class PlaylistStats(BaseModel):
    """Aggregate playlist statistics"""
    total_playlists: int
    total_channels: int
    user_playlist_count: int
    most_recent_update: datetime | None


class WatchHistoryItem(BaseModel):
    """One channel in the watch history"""
    channel_id: str = Field(..., description="Channel identity (schedule id, else name)")
    channel_name: str
    channel_url: str
    channel_group: str | None = None
    last_watched: datetime
    watch_duration: float = Field(0.0, ge=0, description="Seconds watched in the last session")


class WatchStats(BaseModel):
    """Aggregate watch statistics"""
    total_channels_watched: int
    total_watch_seconds: float
    most_watched_group: str | None
    average_session_seconds: float


class CustomerDetails(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str | None = None
    name: str | None = None


class CheckoutSession(BaseModel):
    """Subset of a provider checkout session used for license issuance"""
    model_config = ConfigDict(extra="ignore")

    id: str | None = Field(None, description="Checkout session id")
    client_reference_id: str | None = Field(None, description="Device id supplied by the client")
    customer_details: CustomerDetails | None = None
    customer_email: str | None = None


class WebhookEventData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    object: CheckoutSession = Field(default_factory=CheckoutSession)


class WebhookEvent(BaseModel):
    """Payment provider webhook envelope"""
    model_config = ConfigDict(extra="ignore")

    type: str = Field(..., description="Event type, e.g. 'checkout.session.completed'")
    data: WebhookEventData = Field(default_factory=WebhookEventData)


class WebhookAck(BaseModel):
    received: bool = True


class PaymentStatusResponse(BaseModel):
    """Payment status returned to polling clients"""
    model_config = ConfigDict(populate_by_name=True)

    paid: bool
    license_key: str | None = Field(None, serialization_alias="licenseKey", validation_alias="licenseKey")
    timestamp: int | None = Field(None, description="Issuance time in epoch milliseconds")


class ErrorDetail(BaseModel):
    """Standard error detail"""
    code: ErrorKind = Field(..., description="Error code (e.g., 'FETCH_FAILED', 'AUTH_INVALID')")
    message: str = Field(..., description="Human-readable error message")
    context: dict | None = Field(None, description="Additional context about the error")


class StandardErrorResponse(BaseModel):
    """Standardized error response for all endpoints"""
    status: str = Field("error", description="Status indicator")
    timestamp: str = Field(..., description="ISO8601 timestamp of error")
    error: ErrorDetail = Field(..., description="Error details")
