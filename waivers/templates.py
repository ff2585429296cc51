"""
Waiver notification email template.

This module turns a player and team record into the email that accompanies
the signed waiver: display-name lookups, date formatting, the body template,
and the attachment filename.

Design decisions:
- Templates are plain strings with {variable} placeholders
- Lookup tables map short codes to display strings, unknown codes pass
  through verbatim
- Tournament details are static text until the venue is announced
- Dates are rendered in English regardless of process locale
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from waivers.models import EmailAttachment, EmailMessage, PlayerRecord, TeamRecord


# =============================================================================
# Lookup tables
# =============================================================================

LEAGUE_NAMES: dict[str, str] = {
    "pro-volleyball": "Professional Volleyball League",
    "regular-volleyball": "Regular Volleyball League",
    "masters-volleyball": "Volleyball 45+ League",
    "women-throwball": "Women Throwball League",
}

LUNCH_CHOICES: dict[str, str] = {
    "veg": "Vegetarian Menu",
    "nonveg": "Non-Vegetarian Menu",
    "none": "No Food",
}

# Month names fixed to en-US, independent of the process locale
MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)

NOT_SPECIFIED = "Not specified"
NOT_RECORDED = "Not recorded"


# =============================================================================
# Tournament details
# =============================================================================

TOURNAMENT_NAME = "Republic Day Tournament 2026"
TOURNAMENT_DATE = "January 24, 2026"
TOURNAMENT_LOCATION = "[Will be announced]"
TOURNAMENT_FORMAT = "[Will be announced]"

RULE = "━" * 39


@dataclass
class WaiverTemplate:
    """
    Subject and body of the waiver confirmation email.
    """
    email_subject: str
    email_body: str

    def render_email(self, **kwargs) -> tuple[str, str]:
        """
        Render the template with provided variables.

        Returns:
            Tuple of (subject, body)
        """
        return (
            self.email_subject.format(**kwargs),
            self.email_body.format(**kwargs),
        )


WAIVER_RECEIVED = WaiverTemplate(
    email_subject="Tournament Waiver Received - {player_name} - {team_name}",
    email_body="""Dear {player_name},

Thank you for signing the waiver for {tournament_name}!

Your Registration Details:
{rule}
  Team: {team_name}
  League: {league_name}
  Date Signed: {signed_date}
  Lunch Preference: {lunch_display}
{rule}

Your signed waiver is attached to this email for your records.

Important Tournament Information:
  📅 Date: {tournament_date}
  📍 Location: {tournament_location}
  🏐 Format: {tournament_format}

If you have any questions, please contact the tournament organizers.

See you at the tournament!

Republic Day Tournament Team
{rule}

This is an automated email. The organizer has been copied on this message.""",
)


# =============================================================================
# Formatting helpers
# =============================================================================

def league_display_name(league_id: Optional[str]) -> str:
    """League code to display name, falling back to the raw code."""
    if not league_id:
        return NOT_SPECIFIED
    return LEAGUE_NAMES.get(league_id, league_id)


def lunch_display(lunch_choice: Optional[str]) -> str:
    """Lunch preference code to display string, falling back to the raw code."""
    if not lunch_choice:
        return NOT_SPECIFIED
    return LUNCH_CHOICES.get(lunch_choice, lunch_choice)


def parse_timestamp(value: Union[str, int, float]) -> Optional[datetime]:
    """Parse an ISO-8601 string or epoch milliseconds as a UTC datetime, or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        # Realtime Database server timestamps are epoch milliseconds
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_signed_date(value: Optional[Union[str, int, float]]) -> str:
    """
    Format a stored timestamp as a long calendar date, e.g. "January 24, 2026".

    Args:
        value: ISO-8601 string or epoch milliseconds

    Returns:
        The formatted UTC date. Unparseable strings are returned unchanged.
    """
    if value is None or value == "":
        return NOT_RECORDED
    parsed = parse_timestamp(value)
    if parsed is None:
        return str(value)
    return f"{MONTH_NAMES[parsed.month - 1]} {parsed.day}, {parsed.year}"


def attachment_filename(player_name: str, team_name: str) -> str:
    """
    Build the PDF attachment filename.

    Each run of whitespace becomes a single underscore:
    ("Jane Doe", "Red Hawks") -> "Waiver_Jane_Doe_Red_Hawks.pdf"
    """
    player_part = re.sub(r"\s+", "_", player_name)
    team_part = re.sub(r"\s+", "_", team_name)
    return f"Waiver_{player_part}_{team_part}.pdf"


# =============================================================================
# Message construction
# =============================================================================

def render_waiver_email(player: PlayerRecord, team: TeamRecord) -> tuple[str, str]:
    """Render (subject, body) for a player's waiver confirmation."""
    return WAIVER_RECEIVED.render_email(
        player_name=player.name,
        team_name=team.name,
        league_name=league_display_name(team.league_id),
        signed_date=format_signed_date(player.waiver_signed_at),
        lunch_display=lunch_display(player.lunch_choice),
        tournament_name=TOURNAMENT_NAME,
        tournament_date=TOURNAMENT_DATE,
        tournament_location=TOURNAMENT_LOCATION,
        tournament_format=TOURNAMENT_FORMAT,
        rule=RULE,
    )


def build_waiver_message(
    player: PlayerRecord,
    team: TeamRecord,
    pdf_bytes: bytes,
    organizer_email: str,
) -> EmailMessage:
    """
    Compose the full notification email with the signed PDF attached.

    The player is the recipient, the organizer is copied and is also the
    sender (it must be a verified sender with the delivery service).
    """
    subject, body = render_waiver_email(player, team)
    attachment = EmailAttachment.from_bytes(
        pdf_bytes,
        filename=attachment_filename(player.name, team.name),
        type="application/pdf",
        disposition="attachment",
    )
    return EmailMessage(
        to=player.email,
        cc=organizer_email,
        from_email=organizer_email,
        subject=subject,
        text=body,
        attachments=[attachment],
    )
