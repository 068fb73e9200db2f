"""
Pydantic models for analytics records and aggregated reports.
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Raw Event Models
# =============================================================================

class PageViewRecord(BaseModel):
    """A single page view event."""
    page: str
    timestamp: datetime
    referrer: str | None = None
    user_agent: str | None = None

    # Session
    session_id: str = Field(min_length=1)
    user_id: str | None = None

    duration_ms: float | None = Field(default=None, ge=0)  # Time spent on page

    @property
    def visitor_id(self) -> str:
        """Identity used for unique visitor counts (user, else session)."""
        return self.user_id or self.session_id


class InteractionType(str, Enum):
    """Kinds of tracked interactions."""
    CLICK = "click"
    SCROLL = "scroll"
    HOVER = "hover"
    FORM_SUBMIT = "form_submit"
    DOWNLOAD = "download"


class _Payload(BaseModel):
    # Unknown keys are kept so callers can attach arbitrary metadata
    model_config = ConfigDict(extra="allow")


class ClickPayload(_Payload):
    kind: Literal["click"] = "click"
    x: int | None = None
    y: int | None = None
    href: str | None = None


class ScrollPayload(_Payload):
    kind: Literal["scroll"] = "scroll"
    depth_percent: float | None = Field(default=None, ge=0, le=100)


class HoverPayload(_Payload):
    kind: Literal["hover"] = "hover"
    duration_ms: float | None = Field(default=None, ge=0)


class FormSubmitPayload(_Payload):
    kind: Literal["form_submit"] = "form_submit"
    form_id: str | None = None
    field_count: int | None = Field(default=None, ge=0)


class DownloadPayload(_Payload):
    kind: Literal["download"] = "download"
    file_name: str | None = None
    file_size_bytes: int | None = Field(default=None, ge=0)


class CustomPayload(_Payload):
    """Free-form metadata for interactions without a known shape."""
    kind: Literal["custom"] = "custom"
    values: dict[str, Any] = Field(default_factory=dict)


InteractionPayload = Annotated[
    Union[
        ClickPayload,
        ScrollPayload,
        HoverPayload,
        FormSubmitPayload,
        DownloadPayload,
        CustomPayload,
    ],
    Field(discriminator="kind"),
]


class InteractionRecord(BaseModel):
    """A user interaction with a page element."""
    type: InteractionType
    element: str
    page: str
    timestamp: datetime
    session_id: str = Field(min_length=1)
    data: InteractionPayload | None = None


# =============================================================================
# Aggregated Stats Models
# =============================================================================

class TopPage(BaseModel):
    """View count for a single page."""
    page: str
    count: int = Field(ge=0)


class DailyStats(BaseModel):
    """Aggregated stats for a single day bucket."""
    date: str  # YYYY-MM-DD
    page_views: int = Field(default=0, ge=0)
    unique_visitors: int = Field(default=0, ge=0)
    sessions: int = Field(default=0, ge=0)
    bounce_rate: float = Field(default=0.0, ge=0, le=100)  # As percentage (0-100)
    avg_session_duration_ms: float = Field(default=0.0, ge=0)
    top_pages: list[TopPage] = Field(default_factory=list)


class WeeklyStats(BaseModel):
    """Daily stats rolled up into a Sunday-aligned week."""
    week_starting: str  # YYYY-MM-DD of the Sunday
    total_page_views: int = Field(default=0, ge=0)
    total_unique_visitors: int = Field(default=0, ge=0)
    total_sessions: int = Field(default=0, ge=0)
    avg_bounce_rate: float = Field(default=0.0, ge=0, le=100)
    avg_session_duration_ms: float = Field(default=0.0, ge=0)
    daily_breakdown: list[DailyStats] = Field(default_factory=list)


# =============================================================================
# Funnel & Cohort Models
# =============================================================================

class FunnelStepResult(BaseModel):
    """Result for a single funnel step."""
    step: str
    users: int = Field(ge=0)  # Sessions that reached the step
    conversion_rate: float  # Percentage of the previous step's population
    drop_off_rate: float  # 100 - conversion_rate


class CohortResult(BaseModel):
    """Retention curve for users sharing a first-visit bucket."""
    cohort: str
    users: int = Field(gt=0)
    retention: dict[int, float]  # period -> percentage of cohort active


# =============================================================================
# Cache Models
# =============================================================================

class CacheStats(BaseModel):
    """Snapshot of cache occupancy and effectiveness."""
    size: int
    max_entries: int
    keys: list[str] = Field(default_factory=list)
    hits: int = 0
    misses: int = 0
    hit_rate: float = 0.0  # As percentage (0-100)
