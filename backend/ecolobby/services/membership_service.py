from collections.abc import Callable
from copy import deepcopy
from datetime import datetime
from enum import Enum
import logging

from ecolobby.services.session_registry import Player, Session, utc_now

logger = logging.getLogger(__name__)

MIN_NAME_LENGTH = 2
PLAYER_COLORS: tuple[str, ...] = (
    "#4ecdc4",
    "#ff6b6b",
    "#2ecc71",
    "#f39c12",
    "#9b59b6",
    "#3498db",
)
DEFAULT_PLAYER_STATE: dict = {
    "position": 0,
    "city": "tver",
    "coins": 100,
    "cleaningPoints": 0,
    "buildings": [],
    "level": 1,
    "completedTasks": 0,
    "currentTask": None,
    "currentDifficulty": "easy",
}
PROTECTED_PLAYER_FIELDS = frozenset({"id", "name", "color"})


class JoinErrorReason(str, Enum):
    NAME_TOO_SHORT = "NameTooShort"
    NAME_TAKEN = "NameTaken"
    SESSION_FULL = "SessionFull"


JOIN_ERROR_MESSAGES = {
    JoinErrorReason.NAME_TOO_SHORT: f"Name must contain at least {MIN_NAME_LENGTH} characters",
    JoinErrorReason.NAME_TAKEN: "A player with this name is already in the session",
    JoinErrorReason.SESSION_FULL: "Session is full",
}


class JoinError(ValueError):
    def __init__(self, reason: JoinErrorReason) -> None:
        super().__init__(JOIN_ERROR_MESSAGES[reason])
        self.reason = reason

    def to_payload(self) -> dict:
        return {"reason": self.reason.value, "message": str(self)}


def normalize_player_name(candidate_name: object) -> str:
    return candidate_name.strip() if isinstance(candidate_name, str) else ""


def validate_player_name(candidate_name: object) -> str:
    name = normalize_player_name(candidate_name)
    if len(name) < MIN_NAME_LENGTH:
        raise JoinError(JoinErrorReason.NAME_TOO_SHORT)
    return name


def player_color(index: int) -> str:
    return PLAYER_COLORS[index % len(PLAYER_COLORS)]


class MembershipService:
    """Join/leave rules for a single session.

    Nothing here notifies anyone; fan-out is the router's job.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self.clock = clock

    def check_join(self, session: Session, candidate_name: object, connection_id: str | None = None) -> str:
        """Raise ``JoinError`` if the name could not join ``session``; return the trimmed name.

        The record held by ``connection_id``, if any, is left out of the name
        and capacity checks, since a rejoin replaces it.
        """
        name = validate_player_name(candidate_name)
        if any(player.name == name for player_id, player in session.players.items() if player_id != connection_id):
            raise JoinError(JoinErrorReason.NAME_TAKEN)
        if session.is_full and connection_id not in session.players:
            raise JoinError(JoinErrorReason.SESSION_FULL)
        return name

    def join(self, session: Session, candidate_name: object, connection_id: str) -> Player:
        name = self.check_join(session, candidate_name)

        player = Player(
            id=connection_id,
            name=name,
            color=player_color(len(session.players)),
            state=deepcopy(DEFAULT_PLAYER_STATE),
        )
        session.players[connection_id] = player
        session.empty_since = None
        logger.info(
            "%s joined session %s (%d/%d)",
            name,
            session.id,
            session.player_count,
            session.max_players,
        )
        return player

    def leave(self, session: Session, connection_id: str) -> Player | None:
        player = session.players.pop(connection_id, None)
        if player is None:
            return None
        if session.is_empty:
            session.empty_since = self.clock()
        logger.info("%s left session %s", player.name, session.id)
        return player

    def update_player_state(self, session: Session, connection_id: str, fields: dict) -> Player | None:
        player = session.players.get(connection_id)
        if player is None:
            return None
        player.state.update(
            {key: value for key, value in fields.items() if key not in PROTECTED_PLAYER_FIELDS}
        )
        return player
