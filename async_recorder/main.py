from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from async_recorder.api.routes import router as api_router
from async_recorder.api.endpoints.auth import router as auth_router
from async_recorder.api.endpoints.capture import router as capture_router
from async_recorder.core.config import Settings, settings as default_settings
from async_recorder.context import AppContext
import logging

# Configure logging
logging.basicConfig(
    level=default_settings.LOG_LEVEL.upper(),
    format='%(levelname)s:     %(name)s - %(message)s'
)
logging.getLogger("async_recorder").setLevel(default_settings.LOG_LEVEL.upper())

def create_app(settings: Optional[Settings] = None, context: Optional[AppContext] = None) -> FastAPI:
    settings = settings or default_settings
    app = FastAPI(title="Async Recorder Server")
    app.state.context = context or AppContext(settings)

    # Enable CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Lifecycle Events
    @app.on_event("startup")
    async def startup_event():
        app.state.context.startup()

    @app.on_event("shutdown")
    async def shutdown_event():
        await app.state.context.shutdown()

    # Include Routes
    app.include_router(api_router, prefix="/api")
    app.include_router(auth_router, prefix="/api")
    app.include_router(capture_router, prefix="/api")

    return app
