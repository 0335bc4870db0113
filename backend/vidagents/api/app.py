"""FastAPI application setup with lifespan and exception handlers."""

from contextlib import asynccontextmanager
import logging
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vidagents import __version__, validate_backend_urls
from vidagents.api.routes import router
from vidagents.config import Settings, settings as default_settings
from vidagents.errors import VideoAgentError
from vidagents.services.video_agent_manager import VideoAgentManager

logger = logging.getLogger(__name__)


def flatten_validation_errors(errors) -> dict:
    """Shape pydantic errors as ``{formErrors: [...], fieldErrors: {field: [...]}}``.

    Errors are keyed by the top-level body field; errors about the body
    itself (missing, malformed JSON) go to ``formErrors``.
    """
    form_errors: list[str] = []
    field_errors: dict[str, list[str]] = {}
    for err in errors:
        loc = [part for part in err.get("loc", ()) if part != "body"]
        message = err.get("msg", "Invalid value")
        if loc and isinstance(loc[0], str):
            field_errors.setdefault(str(loc[0]), []).append(message)
        else:
            form_errors.append(message)
    return {"formErrors": form_errors, "fieldErrors": field_errors}


def create_app(
    settings: Optional[Settings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Create the API application.

    Args:
        settings: Application settings; defaults to the loaded singleton.
        transport: Optional httpx transport for every backend client.
    """
    cfg = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager.

        Startup:
            - Validate backend URLs
            - Build the agent manager

        Shutdown:
            - Close backend HTTP clients
        """
        logger.info("Starting Video Agents API...")
        validate_backend_urls(cfg.backends.model_dump())
        app.state.video_agents = VideoAgentManager.from_settings(cfg, transport=transport)
        logger.info("API startup complete")

        yield

        logger.info("Shutting down Video Agents API...")
        await app.state.video_agents.aclose()
        logger.info("API shutdown complete")

    app = FastAPI(
        title="Video Agents API",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.server.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.info("Rejected %s %s: %d validation error(s)", request.method, request.url.path, len(exc.errors()))
        return JSONResponse(
            status_code=400,
            content={"status": "invalid", "error": flatten_validation_errors(exc.errors())},
        )

    @app.exception_handler(VideoAgentError)
    async def video_agent_exception_handler(request: Request, exc: VideoAgentError):
        logger.error(f"Generation failed in {request.method} {request.url.path}: {type(exc).__name__}: {str(exc)}")
        return JSONResponse(status_code=500, content={"status": "error", "error": str(exc)})

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch-all exception handler to prevent stack traces in API responses."""
        logger.error(f"Unhandled exception in {request.method} {request.url.path}: {type(exc).__name__}: {str(exc)}")
        return JSONResponse(status_code=500, content={"status": "error", "error": str(exc)})

    return app


app = create_app()
