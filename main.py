import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from controllers.vision_controller import release_quick_vision
from routes.live_route import router as live_router
from routes.live_ws import router as live_ws_router
from routes.vision_route import router as vision_router
from services.live_session_factory import LiveSessionFactory
from services.realtime.conversation_controller import LiveConversationController
from services.realtime.session_store import ConversationStore
from utils.settings import AppSettings

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file if present

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - the settings (read once from the environment)
      - the session factory, conversation store and live controller
    and attach them to `app.state`.
    """
    settings = getattr(app.state, "settings", None) or AppSettings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.state.settings = settings

    factory = getattr(app.state, "session_factory", None) or LiveSessionFactory(settings)
    app.state.session_factory = factory
    app.state.conversation_store = ConversationStore()
    app.state.live_controller = LiveConversationController(factory, app.state.conversation_store)
    app.state.quick_vision = None
    LOGGER.info("Live assistant ready (provider=%s, language=%s)", settings.provider, settings.output_language)

    try:
        yield
    finally:
        await app.state.live_controller.disconnect()
        await release_quick_vision(app.state)


def create_app(settings: AppSettings | None = None, session_factory: LiveSessionFactory | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    `settings` and `session_factory` override what the lifespan would build
    from the environment.
    """
    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.session_factory = session_factory

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check reporting the live controller and its state.
        """
        controller = getattr(request.app.state, "live_controller", None)
        return {
            "ok": True,
            "controller_ready": controller is not None,
            "provider": controller.provider.value if controller else None,
            "status": controller.status.value if controller else None,
        }

    # Register application routers
    app.include_router(live_router)
    app.include_router(live_ws_router)
    app.include_router(vision_router)

    return app


app = create_app()
