import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from trenches_sim.api.routes import router as api_router
from trenches_sim.config import Settings, settings
from trenches_sim.services.session import GameSession
from trenches_sim.utils.json_safety import SafeJSONResponse
from trenches_sim.utils.logger import get_logger, setup_logging

logger = get_logger("main")


def create_app(
    session: Optional[GameSession] = None,
    cfg: Optional[Settings] = None,
    run_ticker: bool = True,
) -> FastAPI:
    cfg = cfg or settings
    session = session or GameSession.from_settings(cfg)

    # ── Tick loop lives for the lifetime of the app ──
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not session.started:
            session.start()
        stop_event = asyncio.Event()
        task = asyncio.create_task(session.run(stop_event)) if run_ticker else None
        try:
            yield
        finally:
            stop_event.set()
            if task is not None:
                await task
            session.save()
            logger.info("Session stopped after %d ticks", session.state.tick_count)

    app = FastAPI(
        title="Trenches Market Simulator",
        default_response_class=SafeJSONResponse,
        lifespan=lifespan,
    )
    app.state.session = session

    # ── CORS (kept for local dev convenience) ──
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── API routes ──
    app.include_router(api_router, prefix="/api")

    return app


app = create_app()


def run():
    import uvicorn

    setup_logging(settings.log_level)
    uvicorn.run(app, host=settings.host, port=settings.port)
