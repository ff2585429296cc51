"""
Realtime Database access for player and team records.

The waiver handler only ever touches two locations:
- /teams/{teamId}                       (read)
- /teams/{teamId}/players/{playerId}    (read, then partial update)

Design decisions:
- A small Database interface (get/set/update) with two backends:
  firebase_admin.db for deployment, a nested dict for tests and the emulator
- RecordStore sits on top and returns validated models
- Absent or empty nodes are reported as None, never raised
- The completion marker is a blind merge-write (no concurrency check)
"""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Optional

from waivers.models import PlayerRecord, TeamRecord

logger = logging.getLogger("database")

# Keys that mark a team node as holding team data (besides "players")
TEAM_FIELDS = ("name", "leagueId")


def split_path(path: str) -> list[str]:
    """'/teams/t1/players/' -> ['teams', 't1', 'players']"""
    return [segment for segment in path.split("/") if segment]


class Database:
    """Minimal hierarchical key-value interface (Realtime Database shaped)."""

    def get(self, path: str) -> Any:
        raise NotImplementedError

    def set(self, path: str, value: Any) -> None:
        raise NotImplementedError

    def update(self, path: str, values: dict[str, Any]) -> None:
        raise NotImplementedError


# Called with (path, value) when a previously absent node is created
CreateListener = Callable[[str, Any], None]


class InMemoryDatabase(Database):
    """
    Nested-dict database holding the same JSON shape as the Realtime Database.

    Used by tests and the local emulator. An optional listener is notified
    when `set` creates a node that did not exist before, which is how the
    emulator fires value-created triggers.
    """

    def __init__(self, data: Optional[dict[str, Any]] = None):
        self._root: dict[str, Any] = json.loads(json.dumps(data)) if data else {}
        self._listeners: list[CreateListener] = []

    @classmethod
    def from_json_file(cls, path: Path) -> "InMemoryDatabase":
        """Seed from an exported database JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            return cls(json.load(f))

    def on_create(self, listener: CreateListener) -> None:
        self._listeners.append(listener)

    def get(self, path: str) -> Any:
        node: Any = self._root
        for segment in split_path(path):
            if not isinstance(node, dict) or segment not in node:
                return None
            node = node[segment]
        return node

    def set(self, path: str, value: Any) -> None:
        segments = split_path(path)
        if not segments:
            raise ValueError("Cannot set the database root")

        created = self._new_nodes(segments, value)
        node = self._root
        for segment in segments[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                child = {}
                node[segment] = child
            node = child

        if value is None:
            node.pop(segments[-1], None)
            return
        node[segments[-1]] = value

        for node_path, node_value in created:
            for listener in list(self._listeners):
                listener(node_path, node_value)

    def _new_nodes(self, segments: list[str], value: Any) -> list[tuple[str, Any]]:
        """Nodes (parents first) that writing `value` at `segments` would create."""
        path = "/" + "/".join(segments)
        if value is None:
            return []
        nodes = []
        if self.get(path) is None:
            nodes.append((path, value))
        if isinstance(value, dict):
            for key, child in value.items():
                nodes.extend(self._new_nodes(segments + [key], child))
        return nodes

    def update(self, path: str, values: dict[str, Any]) -> None:
        # Children are replaced one by one; siblings are left untouched
        base = "/".join(split_path(path))
        for key, value in values.items():
            node_path = f"{base}/{key}" if base else key
            segments = split_path(node_path)
            node = self._root
            for segment in segments[:-1]:
                child = node.get(segment)
                if not isinstance(child, dict):
                    child = {}
                    node[segment] = child
                node = child
            if value is None:
                node.pop(segments[-1], None)
            else:
                node[segments[-1]] = value

    def to_dict(self) -> dict[str, Any]:
        return json.loads(json.dumps(self._root))


class FirebaseDatabase(Database):
    """
    Realtime Database backend using firebase_admin.

    Requires firebase_admin.initialize_app() to have been called, with a
    databaseURL either passed here or configured on the app.
    """

    def __init__(self, url: Optional[str] = None, app=None):
        self.url = url
        self.app = app

    def _ref(self, path: str):
        from firebase_admin import db
        return db.reference(path, app=self.app, url=self.url)

    def get(self, path: str) -> Any:
        return self._ref(path).get()

    def set(self, path: str, value: Any) -> None:
        self._ref(path).set(value)

    def update(self, path: str, values: dict[str, Any]) -> None:
        self._ref(path).update(values)


# =============================================================================
# Record access
# =============================================================================

def team_path(team_id: str) -> str:
    return f"/teams/{team_id}"


def player_path(team_id: str, player_id: str) -> str:
    return f"/teams/{team_id}/players/{player_id}"


class RecordStore:
    """
    Player and team lookups plus the completion-marker write.

    In the deployed function both reads are point reads against the
    Realtime Database; nothing is cached between invocations.
    """

    def __init__(self, database: Database):
        self.database = database

    def get_player(self, team_id: str, player_id: str) -> Optional[PlayerRecord]:
        """
        Get a player record.

        Returns:
            The parsed record, or None if the node is absent or empty.

        Raises:
            pydantic.ValidationError: If the node lacks required fields.
        """
        data = self.database.get(player_path(team_id, player_id))
        if not data:
            return None
        return PlayerRecord.model_validate(data)

    def get_team(self, team_id: str) -> Optional[TeamRecord]:
        """
        Get a team record, or None if absent.

        Players are stored under the team node, so a node holding only
        the players map has no team data and counts as absent.
        """
        data = self.database.get(team_path(team_id))
        if not isinstance(data, dict) or not any(key in data for key in TEAM_FIELDS):
            return None
        return TeamRecord.model_validate(data)

    def mark_email_sent(self, team_id: str, player_id: str, sent_at: str) -> None:
        """Merge {emailSent: true, emailSentAt: sent_at} into the player record."""
        self.database.update(
            player_path(team_id, player_id),
            {"emailSent": True, "emailSentAt": sent_at},
        )
        logger.debug(f"Marked email sent for player {player_id} in team {team_id}")
