from fastapi import APIRouter, Depends

from ecolobby.api.deps import get_gateway
from ecolobby.realtime.socket_server import SessionGateway
from ecolobby.schemas.session import HealthRead

router = APIRouter()


@router.get("/health", response_model=HealthRead)
def health(gateway: SessionGateway = Depends(get_gateway)) -> HealthRead:
    return HealthRead(
        status="ok",
        sessions=len(gateway.registry),
        connections=gateway.connection_count,
        server_time=gateway.registry.clock().isoformat(),
    )
