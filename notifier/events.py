"""
Database trigger events.

The waiver handler reacts to one event: a value being created at
/teams/{teamId}/players/{playerId}/pdfPath. The value is the object storage
path of the signed PDF.

Design decisions:
- References use the same {param} wildcard syntax as the trigger framework
- DatabaseEvent carries only what a handler needs (params and new value)
- Conversion to a WaiverEvent validates the value before any I/O happens
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from waivers.models import WaiverEvent
from waivers.database import split_path

PDF_PATH_REFERENCE = "/teams/{teamId}/players/{playerId}/pdfPath"

_WILDCARD = re.compile(r"^\{(\w+)\}$")


@dataclass
class DatabaseEvent:
    """
    A value written to the database at a concrete path.

    Attributes:
        reference: The reference pattern that matched (with wildcards)
        path: The concrete path written
        params: Wildcard values extracted from the path
        data: The new value
    """
    reference: str
    path: str
    params: dict[str, str]
    data: Any
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __str__(self) -> str:
        return f"DatabaseEvent({self.path}, id={self.event_id[:8]})"


def match_reference(reference: str, path: str) -> Optional[dict[str, str]]:
    """
    Match a concrete path against a reference pattern.

    Returns:
        The wildcard params, or None if the path does not match.

    Example:
        >>> match_reference(PDF_PATH_REFERENCE, "/teams/t1/players/p1/pdfPath")
        {'teamId': 't1', 'playerId': 'p1'}
    """
    pattern_segments = split_path(reference)
    path_segments = split_path(path)
    if len(pattern_segments) != len(path_segments):
        return None

    params: dict[str, str] = {}
    for expected, actual in zip(pattern_segments, path_segments):
        wildcard = _WILDCARD.match(expected)
        if wildcard:
            params[wildcard.group(1)] = actual
        elif expected != actual:
            return None
    return params


def pdf_path_created(team_id: str, player_id: str, pdf_path: str) -> DatabaseEvent:
    """Create the event fired when a player's pdfPath is first written."""
    return DatabaseEvent(
        reference=PDF_PATH_REFERENCE,
        path=f"/teams/{team_id}/players/{player_id}/pdfPath",
        params={"teamId": team_id, "playerId": player_id},
        data=pdf_path,
    )


def waiver_event_from(params: dict[str, str], data: Any) -> WaiverEvent:
    """
    Build a WaiverEvent from trigger params and the created value.

    Raises:
        ValueError: If the value is not a non-empty string or params are missing
    """
    if not isinstance(data, str) or not data.strip():
        raise ValueError(f"pdfPath must be a non-empty string, got {data!r}")
    try:
        return WaiverEvent(
            team_id=params["teamId"],
            player_id=params["playerId"],
            pdf_path=data,
        )
    except KeyError as exc:
        raise ValueError(f"Missing trigger parameter {exc.args[0]}") from None
