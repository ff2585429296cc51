"""
Domain models for the waiver notifier.

These models mirror the records kept in the realtime database by the
waiver-signing workflow, plus the email message handed to the delivery client.

Design decisions:
- Using Pydantic for validation and serialization
- Database field names are camelCase; Python attributes are snake_case
- Records are read-only here, only the completion marker is ever written back
- A missing required field (e.g. a player without an email) fails validation
"""

import base64
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Enums
# =============================================================================

class OutcomeStatus(str, Enum):
    """Result of a single handler invocation."""
    SENT = "sent"
    SKIPPED = "skipped"


class SkipReason(str, Enum):
    """
    Why an invocation stopped before sending.

    Each corresponds to a precondition of the handler. None of these are
    errors from the host's point of view: the invocation completes normally.
    """
    NOT_CONFIGURED = "not_configured"       # No delivery credential
    PLAYER_NOT_FOUND = "player_not_found"   # Player record absent or empty
    ALREADY_NOTIFIED = "already_notified"   # Player record already marked
    TEAM_NOT_FOUND = "team_not_found"       # Team record absent or empty
    PDF_NOT_FOUND = "pdf_not_found"         # Storage object missing


# =============================================================================
# Trigger input
# =============================================================================

class WaiverEvent(BaseModel):
    """
    A waiver PDF reference written under a player.

    Built from the trigger's path parameters and the new value. Exists only
    for the duration of one invocation.
    """
    team_id: str = Field(..., min_length=1)
    player_id: str = Field(..., min_length=1)
    pdf_path: str = Field(..., min_length=1, description="Object storage path of the signed PDF")

    model_config = ConfigDict(frozen=True)


# =============================================================================
# Database records
# =============================================================================

class PlayerRecord(BaseModel):
    """
    Player entry at /teams/{teamId}/players/{playerId}.

    Owned by the registration workflow. This system reads it and appends
    ``emailSent``/``emailSentAt`` once the notification has gone out.
    """
    name: str
    email: str
    lunch_choice: Optional[str] = Field(default=None, alias="lunchChoice")
    waiver_signed_at: Optional[Union[str, int, float]] = Field(default=None, alias="waiverSignedAt")
    pdf_path: Optional[str] = Field(default=None, alias="pdfPath")
    email_sent: bool = Field(default=False, alias="emailSent")
    email_sent_at: Optional[str] = Field(default=None, alias="emailSentAt")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TeamRecord(BaseModel):
    """Team entry at /teams/{teamId}. The nested players map is ignored."""
    name: str
    league_id: Optional[str] = Field(default=None, alias="leagueId")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# =============================================================================
# Email message
# =============================================================================

class EmailAttachment(BaseModel):
    """A single base64-encoded attachment."""
    content: str = Field(..., description="Base64 encoded file content")
    filename: str
    type: str = "application/pdf"
    disposition: str = "attachment"

    @classmethod
    def from_bytes(cls, data: bytes, filename: str, **kwargs) -> "EmailAttachment":
        return cls(content=base64.b64encode(data).decode("ascii"), filename=filename, **kwargs)

    def decoded(self) -> bytes:
        """Original bytes of the attachment."""
        return base64.b64decode(self.content)


class EmailMessage(BaseModel):
    """
    Notification email as handed to the delivery client.

    Constructed fresh per invocation and discarded after sending.
    """
    to: str
    cc: Optional[str] = None
    from_email: str = Field(..., alias="from")
    subject: str
    text: str
    attachments: list[EmailAttachment] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        """Delivery-interface shape: {to, cc, from, subject, text, attachments}."""
        return self.model_dump(by_alias=True, exclude_none=True)


# =============================================================================
# Handler outcome
# =============================================================================

class NotificationOutcome(BaseModel):
    """
    What one invocation of the waiver handler did.

    Skips are reported here rather than raised, so the caller can decide
    whether silence is acceptable.
    """
    status: OutcomeStatus
    team_id: str
    player_id: str
    reason: Optional[SkipReason] = None
    recipient: Optional[str] = None
    attachment_size: Optional[int] = None
    sent_at: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True)

    @property
    def sent(self) -> bool:
        return self.status == OutcomeStatus.SENT

    @classmethod
    def skipped(cls, event: WaiverEvent, reason: SkipReason) -> "NotificationOutcome":
        return cls(
            status=OutcomeStatus.SKIPPED,
            team_id=event.team_id,
            player_id=event.player_id,
            reason=reason,
        )
