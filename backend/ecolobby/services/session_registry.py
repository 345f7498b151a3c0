from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import secrets
import string

from ecolobby.core.config import get_settings

logger = logging.getLogger(__name__)

CITY_KEYS: tuple[str, ...] = (
    "tver",
    "kineshma",
    "naberezhnye_chelny",
    "kazan",
    "volgograd",
    "astrakhan",
)
SESSION_ID_ALPHABET = string.digits + string.ascii_uppercase
MAX_ID_ATTEMPTS = 32


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_session_id(session_id: str | None) -> str:
    return session_id.strip().upper() if isinstance(session_id, str) else ""


@dataclass
class Player:
    id: str
    name: str
    color: str
    state: dict = field(default_factory=dict)

    def to_payload(self) -> dict:
        payload = dict(self.state)
        payload.update({"id": self.id, "name": self.name, "color": self.color})
        return payload


@dataclass
class Session:
    id: str
    max_players: int
    created_at: datetime
    players: dict[str, Player] = field(default_factory=dict)
    city_progress: dict[str, int] = field(default_factory=lambda: dict.fromkeys(CITY_KEYS, 0))
    empty_since: datetime | None = None

    @property
    def player_count(self) -> int:
        return len(self.players)

    @property
    def is_empty(self) -> bool:
        return len(self.players) == 0

    @property
    def is_full(self) -> bool:
        return len(self.players) >= self.max_players

    def player_names(self) -> list[str]:
        return [player.name for player in self.players.values()]

    def state_payload(self) -> dict:
        return {
            "players": {player_id: player.to_payload() for player_id, player in self.players.items()},
            "cityProgress": dict(self.city_progress),
        }


@dataclass(frozen=True)
class SessionSummary:
    id: str
    player_count: int
    max_players: int
    created_at: datetime
    player_names: tuple[str, ...]

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "playerCount": self.player_count,
            "maxPlayers": self.max_players,
            "createdAt": self.created_at.isoformat(),
            "playerNames": list(self.player_names),
        }


class SessionRegistry:
    """In-memory owner of every live session, keyed by session id.

    All access happens from the event loop thread, so no locking is done here.
    """

    def __init__(
        self,
        *,
        max_players: int | None = None,
        id_length: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        settings = get_settings()
        self.max_players = max_players if max_players is not None else settings.max_players
        self.id_length = id_length if id_length is not None else settings.session_id_length
        self.clock = clock
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return isinstance(session_id, str) and normalize_session_id(session_id) in self._sessions

    def _generate_id(self) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            candidate = "".join(secrets.choice(SESSION_ID_ALPHABET) for _ in range(self.id_length))
            if candidate not in self._sessions:
                return candidate
        raise RuntimeError("unable to allocate a unique session id")

    def create(self) -> Session:
        now = self.clock()
        session = Session(
            id=self._generate_id(),
            max_players=self.max_players,
            created_at=now,
            empty_since=now,
        )
        self._sessions[session.id] = session
        logger.info("session %s created", session.id)
        return session

    def get(self, session_id: str | None) -> Session | None:
        return self._sessions.get(normalize_session_id(session_id))

    def sessions(self) -> list[Session]:
        return list(self._sessions.values())

    @staticmethod
    def _summarize(session: Session) -> SessionSummary:
        return SessionSummary(
            id=session.id,
            player_count=session.player_count,
            max_players=session.max_players,
            created_at=session.created_at,
            player_names=tuple(session.player_names()),
        )

    def summary(self, session_id: str | None) -> SessionSummary | None:
        session = self.get(session_id)
        return self._summarize(session) if session else None

    def list_summaries(self) -> list[SessionSummary]:
        return [self._summarize(session) for session in self._sessions.values()]

    def delete(self, session_id: str | None) -> bool:
        removed = self._sessions.pop(normalize_session_id(session_id), None)
        if removed is not None:
            logger.info("session %s deleted", removed.id)
        return removed is not None

    def clear(self) -> None:
        self._sessions.clear()
