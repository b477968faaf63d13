"""
Beanie document models for MongoDB collections.
These are the ORM models that map to MongoDB collections.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from beanie import Document
from pydantic import Field
from pymongo import IndexModel


class InstanceDocument(Document):
    """Stored instance record, partitioned by owning Atlas organization."""

    id: str = Field(default_factory=lambda: f"inst-{uuid4().hex[:12]}")
    org_id: str
    instance_id: str
    plan_id: str
    service_id: str
    dashboard_url: Optional[str] = None
    # Encoded resolved plan
    parameters: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "instances"
        indexes = [
            # At most one live record per (organization, instance)
            IndexModel([("org_id", 1), ("instance_id", 1)], unique=True),
            IndexModel([("instance_id", 1)]),
        ]
