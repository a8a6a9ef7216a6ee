"""
DuelChess API и WebSocket.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from .config import Config, get_config
from .coordinator import Coordinator
from .ws_handlers import ws_accept_and_loop

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def create_app(config: Config | None = None, coordinator: Coordinator | None = None) -> FastAPI:
    # Без RECONNECT_TOKEN_SECRET get_config() бросает ConfigError, и сервер не стартует
    config = config or get_config()
    if config.debug:
        logging.getLogger().setLevel(logging.DEBUG)
    coordinator = coordinator or Coordinator(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await coordinator.start()
        yield
        await coordinator.stop()

    app = FastAPI(title="DuelChess API", lifespan=lifespan)
    app.state.coordinator = coordinator
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.allowed_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/status")
    def status():
        return coordinator.stats()

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket):
        logger.info("WS: connection attempt from %s", ws.client)
        await ws_accept_and_loop(ws, coordinator)

    return app


app = create_app()
