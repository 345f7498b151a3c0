"""Inbound event dispatch for the session coordinator.

Every handler takes the shared services, the caller's connection context and
the raw payload, applies its mutation synchronously and returns the outbound
messages the gateway must deliver. Handlers never await, so each inbound event
is applied to the registry as one atomic step on the event loop.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
import logging
from typing import Any

from pydantic import ValidationError

from ecolobby.schemas.session import ChatMessageRequest, JoinSessionRequest, ProgressUpdateRequest
from ecolobby.services.membership_service import JoinError, MembershipService, validate_player_name
from ecolobby.services.session_registry import CITY_KEYS, Player, Session, SessionRegistry

logger = logging.getLogger(__name__)


class Audience(str, Enum):
    SENDER = "sender"
    SESSION = "session"
    SESSION_OTHERS = "session_others"
    EVERYONE = "everyone"
    REPLY = "reply"


@dataclass(frozen=True)
class Outbound:
    event: str
    payload: Any
    audience: Audience
    session_id: str | None = None


@dataclass(frozen=True)
class SessionBinding:
    session_id: str
    player_id: str


@dataclass
class ConnectionContext:
    sid: str
    binding: SessionBinding | None = None

    @property
    def session_id(self) -> str | None:
        return self.binding.session_id if self.binding else None


@dataclass
class SessionServices:
    registry: SessionRegistry
    membership: MembershipService
    chat_max_length: int = 500
    delete_empty_sessions_immediately: bool = False


Handler = Callable[[SessionServices, ConnectionContext, Any], list[Outbound]]


def resolve_binding(services: SessionServices, context: ConnectionContext) -> tuple[Session, Player] | None:
    binding = context.binding
    if binding is None:
        return None
    session = services.registry.get(binding.session_id)
    player = session.players.get(binding.player_id) if session else None
    if session is None or player is None:
        context.binding = None
        return None
    return session, player


def _session_list_payload(services: SessionServices) -> list[dict]:
    return [summary.to_payload() for summary in services.registry.list_summaries()]


def _sessions_updated(services: SessionServices) -> Outbound:
    return Outbound("sessions_updated", _session_list_payload(services), Audience.EVERYONE)


def _join_error(error: JoinError) -> Outbound:
    return Outbound("join_error", error.to_payload(), Audience.SENDER)


def _leave_bound_session(
    services: SessionServices, context: ConnectionContext, *, keep_empty: bool = False
) -> Outbound | None:
    resolved = resolve_binding(services, context)
    context.binding = None
    if resolved is None:
        return None

    session, player = resolved
    services.membership.leave(session, player.id)
    if session.is_empty and services.delete_empty_sessions_immediately and not keep_empty:
        services.registry.delete(session.id)
    return Outbound(
        "player_left",
        {"playerId": player.id, "playerName": player.name},
        Audience.SESSION_OTHERS,
        session.id,
    )


def _release_membership(services: SessionServices, context: ConnectionContext) -> list[Outbound]:
    left = _leave_bound_session(services, context)
    if left is None:
        return []
    return [left, _sessions_updated(services)]


def handle_list_sessions(services: SessionServices, context: ConnectionContext, payload: Any) -> list[Outbound]:
    return [Outbound("session_list", _session_list_payload(services), Audience.SENDER)]


def handle_join_session(services: SessionServices, context: ConnectionContext, payload: Any) -> list[Outbound]:
    request = JoinSessionRequest.model_validate(payload if isinstance(payload, dict) else {})
    target = None if request.create_new else services.registry.get(request.session_id)

    # A rejected join leaves the current membership untouched.
    try:
        if target is None:
            validate_player_name(request.player_name)
        else:
            services.membership.check_join(target, request.player_name, context.sid)
    except JoinError as exc:
        logger.info("join rejected for %s: %s", context.sid, exc.reason.value)
        return [_join_error(exc)]

    rejoining = target is not None and context.session_id == target.id
    left = _leave_bound_session(services, context, keep_empty=rejoining)
    messages = [left] if left else []
    if target is None:
        target = services.registry.create()

    player = services.membership.join(target, request.player_name, context.sid)
    context.binding = SessionBinding(session_id=target.id, player_id=player.id)
    player_payload = player.to_payload()
    messages.extend(
        [
            Outbound(
                "join_success",
                {"sessionId": target.id, "playerId": player.id, "player": player_payload},
                Audience.SENDER,
            ),
            Outbound("session_state", target.state_payload(), Audience.SENDER),
            Outbound(
                "player_joined",
                {"playerId": player.id, "player": player_payload},
                Audience.SESSION_OTHERS,
                target.id,
            ),
            _sessions_updated(services),
        ]
    )
    return messages


def handle_leave_session(services: SessionServices, context: ConnectionContext, payload: Any) -> list[Outbound]:
    session_id = context.session_id
    messages = _release_membership(services, context)
    if not messages:
        return []
    return [Outbound("left_session", {"sessionId": session_id}, Audience.SENDER), *messages]


def handle_disconnect(services: SessionServices, context: ConnectionContext, payload: Any) -> list[Outbound]:
    return _release_membership(services, context)


def handle_chat_message(services: SessionServices, context: ConnectionContext, payload: Any) -> list[Outbound]:
    resolved = resolve_binding(services, context)
    if resolved is None:
        return []
    session, player = resolved

    if isinstance(payload, str):
        payload = {"message": payload}
    try:
        request = ChatMessageRequest.model_validate(payload)
    except ValidationError:
        return []

    if not request.message.strip():
        return []

    return [
        Outbound(
            "chat_broadcast",
            {
                "playerId": player.id,
                "playerName": player.name,
                "message": request.message[: services.chat_max_length],
                "timestamp": services.registry.clock().isoformat(),
            },
            Audience.SESSION,
            session.id,
        )
    ]


def handle_update_progress(services: SessionServices, context: ConnectionContext, payload: Any) -> list[Outbound]:
    resolved = resolve_binding(services, context)
    if resolved is None:
        return []
    session, _ = resolved

    try:
        request = ProgressUpdateRequest.model_validate(payload)
    except ValidationError:
        return []
    if request.city_key not in CITY_KEYS:
        logger.debug("ignoring progress for unknown city %r", request.city_key)
        return []

    session.city_progress[request.city_key] = request.progress
    return [
        Outbound(
            "progress_updated",
            {"cityKey": request.city_key, "progress": request.progress},
            Audience.SESSION_OTHERS,
            session.id,
        )
    ]


def handle_update_player(services: SessionServices, context: ConnectionContext, payload: Any) -> list[Outbound]:
    resolved = resolve_binding(services, context)
    if resolved is None or not isinstance(payload, dict):
        return []
    session, player = resolved

    services.membership.update_player_state(session, player.id, payload)
    return [
        Outbound(
            "player_updated",
            {"playerId": player.id, "player": player.to_payload()},
            Audience.SESSION_OTHERS,
            session.id,
        )
    ]


def relay_handler(outbound_event: str) -> Handler:
    def handle_relay(services: SessionServices, context: ConnectionContext, payload: Any) -> list[Outbound]:
        resolved = resolve_binding(services, context)
        if resolved is None:
            return []
        session, _ = resolved
        return [Outbound(outbound_event, payload, Audience.SESSION_OTHERS, session.id)]

    return handle_relay


def handle_ping(services: SessionServices, context: ConnectionContext, payload: Any) -> list[Outbound]:
    resolved = resolve_binding(services, context)
    server_time = services.registry.clock()
    return [
        Outbound(
            "pong",
            {
                "serverTime": int(server_time.timestamp() * 1000),
                "boundSessionId": resolved[0].id if resolved else None,
            },
            Audience.REPLY,
        )
    ]


DISCONNECT_EVENT = "disconnect"

EVENT_HANDLERS: dict[str, Handler] = {
    "list_sessions": handle_list_sessions,
    "join_session": handle_join_session,
    "leave_session": handle_leave_session,
    "chat_message": handle_chat_message,
    "update_progress": handle_update_progress,
    "update_player": handle_update_player,
    "dice_roll": relay_handler("player_dice_roll"),
    "relay_event": relay_handler("relay_event"),
    "ping": handle_ping,
    DISCONNECT_EVENT: handle_disconnect,
}


def dispatch(services: SessionServices, context: ConnectionContext, event: str, payload: Any = None) -> list[Outbound]:
    handler = EVENT_HANDLERS.get(event)
    if handler is None:
        logger.debug("no handler for event %r", event)
        return []
    return handler(services, context, payload)
