from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String, Text

from incident_desk.core.coerce import utcnow
from incident_desk.core.db import Base


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True)
    ticket_id = Column(String(64), nullable=False, unique=True, index=True)
    category = Column(String(100), nullable=False, default="", index=True)
    sub_category = Column(String(100), nullable=False, default="")
    opened = Column(DateTime, nullable=True)
    reported_by = Column(String(255), nullable=False, default="")
    priority = Column(String(50), nullable=False, default="", index=True)
    building = Column(String(50), nullable=False, default="")
    location = Column(String(255), nullable=False, default="")
    impacted = Column(Text, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    detected_by = Column(String(255), nullable=False, default="")
    time_detected = Column(DateTime, nullable=True)
    root_cause = Column(Text, nullable=False, default="")
    actions_taken = Column(Text, nullable=False, default="")
    status = Column(String(50), nullable=False, default="Open", index=True)
    assigned_to = Column(JSON, nullable=False, default=list)
    resolution_summary = Column(Text, nullable=False, default="")
    resolution_time = Column(DateTime, nullable=True)
    duration = Column(String(100), nullable=False, default="")
    post_review = Column(Boolean, nullable=False, default=False)
    attachments = Column(JSON, nullable=False, default=list)
    escalation_history = Column(Text, nullable=False, default="")
    closed = Column(DateTime, nullable=True)
    sla_breach = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    # set on the transition into "Closed", cleared on the way out
    closed_at = Column(DateTime, nullable=True, index=True)


class TicketHistory(Base):
    """
    Append-only change log. ticket_id is a plain reference so entries
    outlive the ticket they describe.
    """
    __tablename__ = "ticket_history"

    id = Column(Integer, primary_key=True)
    ticket_id = Column(String(64), nullable=False, index=True)
    timestamp = Column(DateTime, default=utcnow, index=True)
    action = Column(String(20), nullable=False)
    changes = Column(Text, nullable=False, default="")
    editor = Column(String(255), nullable=False, default="")
