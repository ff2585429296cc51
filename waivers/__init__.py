"""
Shared infrastructure for the waiver notifier.

- Domain models (PlayerRecord, TeamRecord, EmailMessage, ...)
- Realtime Database and object storage backends
- Email delivery channels (SendGrid, recording)
- The waiver email template
- Settings and logging setup
"""

from waivers.models import (
    EmailAttachment,
    EmailMessage,
    NotificationOutcome,
    OutcomeStatus,
    PlayerRecord,
    SkipReason,
    TeamRecord,
    WaiverEvent,
)
from waivers.database import Database, FirebaseDatabase, InMemoryDatabase, RecordStore
from waivers.storage import FirebaseObjectStorage, InMemoryObjectStorage, ObjectStorage
from waivers.channels import (
    DeliveryError,
    DeliveryResult,
    EmailChannel,
    RecordingEmailChannel,
    SendGridEmailChannel,
)

__all__ = [
    "EmailAttachment",
    "EmailMessage",
    "NotificationOutcome",
    "OutcomeStatus",
    "PlayerRecord",
    "SkipReason",
    "TeamRecord",
    "WaiverEvent",
    "Database",
    "FirebaseDatabase",
    "InMemoryDatabase",
    "RecordStore",
    "FirebaseObjectStorage",
    "InMemoryObjectStorage",
    "ObjectStorage",
    "DeliveryError",
    "DeliveryResult",
    "EmailChannel",
    "RecordingEmailChannel",
    "SendGridEmailChannel",
]
