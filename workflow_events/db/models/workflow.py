"""Workflow model — workflow definitions owned by the workflow management service.

Read-only from the event pipeline's perspective.
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, String, Text

from workflow_events.db.base import Base


class Workflow(Base):
    __tablename__ = "workflows"

    id = Column(String(255), primary_key=True)
    space_id = Column(String(255), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    enabled = Column(Boolean, nullable=False, default=True)
    valid = Column(Boolean, nullable=False, default=True)
    tags = Column(JSON, nullable=False, default=list)

    # Parsed workflow definition: {"inputs": [{name, type, required, default, options}], "steps": [...]}
    definition = Column(JSON, nullable=True)
    yaml = Column(Text, nullable=True)

    created_by = Column(String(255), nullable=True)
    last_updated_by = Column(String(255), nullable=True)

    # Audit
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
    deleted_at = Column(DateTime(timezone=True), nullable=True)  # soft delete
