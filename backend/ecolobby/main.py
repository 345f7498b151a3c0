import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
import socketio
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from ecolobby.api.routes import router as api_router
from ecolobby.core.config import Settings, get_settings
from ecolobby.core.logging_config import configure_logging
from ecolobby.realtime.socket_server import SessionGateway, build_socket_app, create_socket_server
from ecolobby.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


class SpaStaticFiles(StaticFiles):
    """Static files that fall back to index.html for client-side routes."""

    def __init__(self, *args, api_prefix: str = "/api", spa_fallback: bool = True, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.api_prefix = api_prefix.strip("/")
        self.spa_fallback = spa_fallback

    async def get_response(self, path: str, scope):
        try:
            return await super().get_response(path, scope)
        except StarletteHTTPException as exc:
            if (
                exc.status_code != 404
                or not self.spa_fallback
                or path == self.api_prefix
                or path.startswith(f"{self.api_prefix}/")
            ):
                raise
            return await super().get_response("index.html", scope)


def create_api_app(settings: Settings | None = None, registry: SessionRegistry | None = None) -> FastAPI:
    settings = settings or get_settings()
    registry = registry or SessionRegistry(
        max_players=settings.max_players,
        id_length=settings.session_id_length,
    )
    gateway = SessionGateway(create_socket_server(settings), registry, settings=settings)
    gateway.register()

    api_app = FastAPI(title=settings.app_name, debug=settings.debug)
    api_app.state.gateway = gateway
    api_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    api_app.include_router(api_router, prefix=settings.api_prefix)

    static_dir = Path(settings.static_dir)
    if static_dir.is_dir():
        api_app.mount(
            "/",
            SpaStaticFiles(
                directory=static_dir,
                html=True,
                api_prefix=settings.api_prefix,
                spa_fallback=settings.spa_fallback and (static_dir / "index.html").is_file(),
            ),
            name="static",
        )
    return api_app


def create_app(settings: Settings | None = None) -> socketio.ASGIApp:
    api_app = create_api_app(settings)
    return build_socket_app(api_app, api_app.state.gateway)


settings = get_settings()
configure_logging(settings.log_level)
app = create_app(settings)


def run() -> None:
    logger.info("%s listening on port %s (%s)", settings.app_name, settings.port, settings.environment)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
