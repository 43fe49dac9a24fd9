from datetime import datetime

from beanie import Document, Link
from pydantic import Field

from holidaysri.core.clock import utcnow
from holidaysri.models.user import User


class ExpirableDocument(Document):
    """Fields shared by everything the expiration sweepers walk over."""
    user: Link[User] | None = None
    expires_at: datetime
    expiration_warning_email_sent: bool = False
    expired_notification_email_sent: bool = False
    expired_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


SWEEP_INDEXES = [
    [("status", 1), ("expires_at", 1)],
    [("status", 1), ("expires_at", 1), ("expiration_warning_email_sent", 1)],
]
