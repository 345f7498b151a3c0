from fastapi import Request

from ecolobby.realtime.socket_server import SessionGateway
from ecolobby.services.session_registry import SessionRegistry


def get_gateway(request: Request) -> SessionGateway:
    return request.app.state.gateway


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.gateway.registry
