import asyncio
import logging
from typing import Any

import socketio

from ecolobby.core.config import Settings, get_settings
from ecolobby.realtime.router import (
    DISCONNECT_EVENT,
    EVENT_HANDLERS,
    Audience,
    ConnectionContext,
    Outbound,
    SessionServices,
    dispatch,
)
from ecolobby.services.membership_service import MembershipService
from ecolobby.services.reaper_service import ReaperService
from ecolobby.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


def session_room(session_id: str) -> str:
    return f"session:{session_id}"


def create_socket_server(settings: Settings | None = None) -> socketio.AsyncServer:
    settings = settings or get_settings()
    origins = "*" if "*" in settings.cors_origins else settings.cors_origins
    return socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=origins)


class SessionGateway:
    """Binds Socket.IO connections to the session services.

    Each inbound event is routed synchronously, then the resulting messages are
    pushed out in order through the Socket.IO server. Events are handled one at
    a time, so every message of one event is emitted before the next event is
    dispatched.
    """

    def __init__(
        self,
        sio: socketio.AsyncServer,
        registry: SessionRegistry,
        *,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.sio = sio
        self.services = SessionServices(
            registry=registry,
            membership=MembershipService(clock=registry.clock),
            chat_max_length=settings.chat_max_length,
            delete_empty_sessions_immediately=settings.delete_empty_sessions_immediately,
        )
        self.reaper = ReaperService(
            registry,
            grace_seconds=settings.empty_session_grace_seconds,
            interval_seconds=settings.reaper_interval_seconds,
            measure_from=settings.reaper_measure_from,
        )
        self._contexts: dict[str, ConnectionContext] = {}
        self._reaper_task: asyncio.Task | None = None
        # held from dispatch through the last emit of one event
        self._lock = asyncio.Lock()

    @property
    def registry(self) -> SessionRegistry:
        return self.services.registry

    @property
    def connection_count(self) -> int:
        return len(self._contexts)

    def context(self, sid: str) -> ConnectionContext | None:
        return self._contexts.get(sid)

    def register(self) -> None:
        self.sio.on("connect", self.connect)
        self.sio.on("disconnect", self.disconnect)
        for event in EVENT_HANDLERS:
            if event == DISCONNECT_EVENT:
                continue
            self.sio.on(event, self._event_handler(event))

    def _event_handler(self, event: str):
        async def handler(sid: str, data: Any = None) -> Any:
            return await self.handle_event(sid, event, data)

        return handler

    def _ensure_reaper_task(self) -> None:
        if self._reaper_task and not self._reaper_task.done():
            return
        self._reaper_task = self.sio.start_background_task(self.reaper.run_forever)

    async def connect(self, sid: str, environ: dict, auth: dict | None = None) -> bool:
        self._ensure_reaper_task()
        self._contexts[sid] = ConnectionContext(sid=sid)
        logger.debug("connection opened: %s", sid)
        return True

    async def disconnect(self, sid: str, reason: Any = None) -> None:
        logger.debug("connection closed: %s (%s)", sid, reason)
        async with self._lock:
            context = self._contexts.pop(sid, None)
            if context is None:
                return
            messages = dispatch(self.services, context, DISCONNECT_EVENT)
            await self._deliver(sid, messages)

    async def handle_event(self, sid: str, event: str, payload: Any = None) -> Any:
        async with self._lock:
            context = self._contexts.get(sid)
            if context is None:
                context = self._contexts[sid] = ConnectionContext(sid=sid)
            previous_session_id = context.session_id
            messages = dispatch(self.services, context, event, payload)
            await self._sync_room(context, previous_session_id)
            return await self._deliver(sid, messages)

    async def _sync_room(self, context: ConnectionContext, previous_session_id: str | None) -> None:
        current_session_id = context.session_id
        if previous_session_id == current_session_id:
            return
        if previous_session_id:
            await self.sio.leave_room(context.sid, session_room(previous_session_id))
        if current_session_id:
            await self.sio.enter_room(context.sid, session_room(current_session_id))

    async def _deliver(self, sid: str, messages: list[Outbound]) -> Any:
        reply = None
        for message in messages:
            if message.audience is Audience.REPLY:
                reply = message.payload
            elif message.audience is Audience.SENDER:
                await self.sio.emit(message.event, message.payload, room=sid)
            elif message.audience is Audience.SESSION:
                await self.sio.emit(message.event, message.payload, room=session_room(message.session_id))
            elif message.audience is Audience.SESSION_OTHERS:
                await self.sio.emit(
                    message.event,
                    message.payload,
                    room=session_room(message.session_id),
                    skip_sid=sid,
                )
            else:
                await self.sio.emit(message.event, message.payload)
        return reply


def build_socket_app(api_app, gateway: SessionGateway) -> socketio.ASGIApp:
    return socketio.ASGIApp(gateway.sio, other_asgi_app=api_app, socketio_path="socket.io")
