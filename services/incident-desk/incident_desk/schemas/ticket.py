from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

from incident_desk.core.coerce import as_text, parse_flag, parse_timestamp, split_list

UPLOADS_URL_PREFIX = "/uploads"
CLOSED_STATUS = "Closed"
DEFAULT_STATUS = "Open"

TEXT_FIELDS = (
    "category",
    "sub_category",
    "reported_by",
    "priority",
    "building",
    "location",
    "impacted",
    "description",
    "detected_by",
    "root_cause",
    "actions_taken",
    "resolution_summary",
    "duration",
    "escalation_history",
)
TIMESTAMP_FIELDS = ("opened", "time_detected", "resolution_time", "closed")
FLAG_FIELDS = ("post_review", "sla_breach")


class TicketFields(BaseModel):
    category: str = Field("", description="Incident category, e.g. Network or Power.")
    sub_category: str = ""
    opened: Optional[datetime] = Field(None, description="When the incident was opened.")
    reported_by: str = ""
    priority: str = ""
    building: str = Field("", description="Building code, e.g. LOS1.")
    location: str = ""
    impacted: str = Field("", description="Free text list of impacted systems.")
    description: str = ""
    detected_by: str = Field("", alias="detectedBy", description="How the incident was detected.")
    time_detected: Optional[datetime] = None
    root_cause: str = ""
    actions_taken: str = ""
    status: str = Field(DEFAULT_STATUS, description="Open, In Progress, Resolved or Closed.")
    assigned_to: List[str] = Field(default_factory=list, description="Assigned engineers.")
    resolution_summary: str = ""
    resolution_time: Optional[datetime] = None
    duration: str = ""
    post_review: bool = False
    attachments: List[str] = Field(default_factory=list, description="Upload tokens, in upload order.")
    escalation_history: str = ""
    closed: Optional[datetime] = None
    sla_breach: bool = Field(False, description="Whether the SLA target was exceeded.")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator(*TEXT_FIELDS, mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return as_text(value)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> str:
        return as_text(value) or DEFAULT_STATUS

    @field_validator(*TIMESTAMP_FIELDS, mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> Optional[datetime]:
        return parse_timestamp(value)

    @field_validator(*FLAG_FIELDS, mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        return parse_flag(value)

    @field_validator("assigned_to", "attachments", mode="before")
    @classmethod
    def _list(cls, value: Any) -> List[str]:
        return split_list(value)


class TicketCreate(TicketFields):
    ticket_id: Optional[str] = Field(None, description="Generated when omitted.")

    @field_validator("ticket_id", mode="before")
    @classmethod
    def _blank_id(cls, value: Any) -> Optional[str]:
        return as_text(value).strip() or None


class TicketUpdate(BaseModel):
    """Partial update. Omitted or null fields keep their stored value."""
    category: Optional[str] = None
    sub_category: Optional[str] = None
    opened: Optional[datetime] = None
    reported_by: Optional[str] = None
    priority: Optional[str] = None
    building: Optional[str] = None
    location: Optional[str] = None
    impacted: Optional[str] = None
    description: Optional[str] = None
    detected_by: Optional[str] = Field(None, alias="detectedBy")
    time_detected: Optional[datetime] = None
    root_cause: Optional[str] = None
    actions_taken: Optional[str] = None
    status: Optional[str] = None
    assigned_to: Optional[List[str]] = None
    resolution_summary: Optional[str] = None
    resolution_time: Optional[datetime] = None
    duration: Optional[str] = None
    post_review: Optional[bool] = None
    escalation_history: Optional[str] = None
    closed: Optional[datetime] = None
    sla_breach: Optional[bool] = None
    editor: Optional[str] = Field(None, description="Who made the change; defaults to reported_by.")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator(*TEXT_FIELDS, "status", "editor", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return None if value is None else as_text(value)

    @field_validator(*TIMESTAMP_FIELDS, mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> Optional[datetime]:
        return parse_timestamp(value)

    @field_validator(*FLAG_FIELDS, mode="before")
    @classmethod
    def _flag(cls, value: Any) -> Optional[bool]:
        return None if value is None else parse_flag(value)

    @field_validator("assigned_to", mode="before")
    @classmethod
    def _list(cls, value: Any) -> Optional[List[str]]:
        return None if value is None else split_list(value)

    def changed_fields(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude_none=True, exclude={"editor"})


class TicketRecord(TicketFields):
    ticket_id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class TicketResponse(TicketRecord):
    @computed_field
    @property
    def attachment_urls(self) -> List[str]:
        return [f"{UPLOADS_URL_PREFIX}/{name}" for name in self.attachments]


class DeleteRequest(BaseModel):
    editor: Optional[str] = None


class DeleteResponse(BaseModel):
    success: bool = True
    message: str


class HistoryEntry(BaseModel):
    ticket_id: str
    timestamp: Optional[datetime] = None
    action: str = Field(..., description="create, update or delete.")
    changes: str = Field("", description="JSON snapshot of the request payload.")
    editor: str = ""

    model_config = ConfigDict(from_attributes=True)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> Optional[datetime]:
        return parse_timestamp(value)

    @field_validator("changes", "editor", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return as_text(value)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StatusCount(BaseModel):
    status: str
    count: int


class CategoryCount(BaseModel):
    category: str
    count: int


class PriorityCount(BaseModel):
    priority: str
    count: int


class DayActivity(BaseModel):
    date: str = Field(..., description="YYYY-MM-DD")
    opened: int = 0
    closed: int = 0


class SlaStats(_CamelModel):
    breached: int
    on_time: int
    compliance_rate: float


class Analytics(_CamelModel):
    top_category: str
    top_priority: str
    year_analyzed: int


class TicketStats(_CamelModel):
    total_tickets: int
    by_status: List[StatusCount]
    by_category: List[CategoryCount]
    by_priority: List[PriorityCount]
    tickets_over_time: List[DayActivity]
    sla_stats: SlaStats
    analytics: Analytics
