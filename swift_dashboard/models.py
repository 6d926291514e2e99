from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PeriodType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def _missing_(cls, value):
        # The dashboard sends both "daily" and "Daily".
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value == lowered:
                    return member
        return None


class ActionKind(str, Enum):
    MESSAGE = "message"
    LOG = "log"


class Direction(str, Enum):
    INWARD = "Inward"
    OUTWARD = "Outward"
    ALL = "All"


class DashboardModel(BaseModel):
    """Base for everything handed to the route layer: camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Message(DashboardModel):
    """A translated SWIFT message, fully defaulted by the normalizer."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    ref_id: str = ""
    mt_message_type: str = ""
    mx_message_type: str = ""
    direction: str = ""
    amount: str = "0"
    currency: str = ""
    date: Optional[datetime] = None
    status: str = ""
    original_message: str = ""
    translated_message: str = ""
    field_error: str = ""
    not_supported_error: str = ""
    invalid_error: str = ""
    other_error: str = ""


class LogEntry(DashboardModel):
    model_config = ConfigDict(frozen=True)

    time: Optional[datetime] = None
    level: str = ""
    module: str = ""
    message: str = ""


class DirectionCounts(DashboardModel):
    success: int = 0
    fail: int = 0


class TimeBucket(DashboardModel):
    key: str
    display_label: str
    inward: DirectionCounts = Field(default_factory=DirectionCounts)
    outward: DirectionCounts = Field(default_factory=DirectionCounts)


class ErrorStatistics(DashboardModel):
    """Error taxonomy over failed messages; categories may overlap."""

    field_errors: int = 0
    not_supported_errors: int = 0
    invalid_errors: int = 0
    other_errors: int = 0
    total_errors: int = 0


class TypeRanking(DashboardModel):
    type: str
    count: int
    successful: Optional[int] = None
    failed: Optional[int] = None
    success_rate_int: Optional[int] = None


class CompletionCounts(DashboardModel):
    success_count: int = 0
    fail_count: int = 0
    inward_count: int = 0
    outward_count: int = 0
    total_count: int = 0
    success_percentage: int = 0
    fail_percentage: int = 0


class RecentMessage(DashboardModel):
    id: str
    ref_id: str
    time: str
    mt_message_type: str
    status: str
    direction: str


class RecentMessages(DashboardModel):
    recent_messages: List[RecentMessage] = Field(default_factory=list)
    count: int = 0
    error: Optional[str] = None


class PeriodInfo(DashboardModel):
    """The calendar window a period-scoped answer covers."""

    period: str
    date: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    month_name: Optional[str] = None


class PeriodMessages(DashboardModel):
    messages: List[Message] = Field(default_factory=list)
    total: int = 0
    info: PeriodInfo


class TopMessageTypes(DashboardModel):
    time_filter: PeriodType
    direction: str
    info: PeriodInfo
    message_types: List[TypeRanking] = Field(default_factory=list)
