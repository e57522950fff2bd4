"""MatchChat client application.

Local HTTP surface for the MatchChat UI. The application lifespan creates
one :class:`~matchchat.context.ChatAppContext` (session store, socket
connection manager, room directory, chat view controller) and tears it down
on shutdown.

Modules:
    - session: cookie-verified identity
    - chat: socket lifecycle, rooms, messages, view controller
"""
import logging
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, List, Optional

from fastapi import Depends, FastAPI

from matchchat import __version__
from matchchat.chat.router import router as chat_router
from matchchat.config import AppConfig, get_config
from matchchat.context import ChatAppContext
from matchchat.deps import get_context
from matchchat.notices import Notice
from matchchat.session.router import router as session_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# httpx/httpcore log every TCP connection; socketio/engineio log every packet.
for _noisy in (
    "httpx",
    "httpcore",
    "httpcore.http11",
    "httpcore.connection",
    "socketio",
    "socketio.client",
    "engineio",
    "engineio.client",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

ContextFactory = Callable[[AppConfig], Awaitable[ChatAppContext]]


def create_app(
    config: Optional[AppConfig] = None,
    context_factory: Optional[ContextFactory] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Settings to use; loaded from YAML/env when omitted.
        context_factory: Coroutine building the chat context; defaults to
            :meth:`ChatAppContext.create` with the real socket transport.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create the chat context on startup and tear it down on shutdown."""
        app_config = config or get_config()

        configured_level = getattr(logging, app_config.logging.level.upper(), None)
        if configured_level is not None:
            logging.getLogger().setLevel(configured_level)
            logger.info("Root logger level set to %s", app_config.logging.level.upper())

        factory = context_factory or ChatAppContext.create
        context = await factory(app_config)
        app.state.context = context
        logger.info("Chat context ready (api=%s)", app_config.api.base_url)

        yield  # Application runs here

        app.state.context = None
        await context.teardown()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="MatchChat Client",
        description="Local API for the MatchChat real-time chat client",
        version=__version__,
        lifespan=lifespan,
    )

    app.include_router(session_router)
    app.include_router(chat_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object indicating the server is running.
        """
        return {"status": "ok"}

    @app.get("/notices", response_model=List[Notice])
    async def drain_notices(context: ChatAppContext = Depends(get_context)) -> List[Notice]:
        """Return and clear pending user-visible notices."""
        return context.notices.drain()

    return app


app = create_app()
