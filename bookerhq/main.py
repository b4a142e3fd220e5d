import logging
import os
import re
import secrets
from contextlib import asynccontextmanager
from typing import Callable, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .auth_context import AuthStoreRegistry
from .config import (
    APP_DESCRIPTION,
    APP_NAME,
    APP_URL,
    ENVIRONMENT,
    SESSION_COOKIE_NAME,
    SESSION_COOKIE_SECURE,
    SESSION_TOKEN_TTL_SECONDS,
    SUPABASE_ANON_KEY,
    SUPABASE_URL,
    require_supabase_config,
)
from .domain.service_options.router import router as service_options_router
from .domain.services.router import router as services_router
from .routes.auth import router as auth_router
from .routes.pages import router as pages_router
from .session_store import TokenStorage, create_token_storage
from .supabase_client import create_http_client

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{32,128}$")

# CORS Configuration
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", APP_URL).split(",")


def default_storage_factory(session_id: str) -> TokenStorage:
    return create_token_storage(session_id, default_ttl=SESSION_TOKEN_TTL_SECONDS)


def create_app(
    http_client: Optional[httpx.AsyncClient] = None,
    storage_factory: Optional[Callable[[str], TokenStorage]] = None,
    store_options: Optional[dict] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        http_client: Shared client for the remote platform; created (and closed) here when omitted
        storage_factory: Builds the token storage of one browser session
        store_options: Timeouts passed to every AuthStore
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Application starting up ({ENVIRONMENT})...")
        require_supabase_config()

        client = http_client or create_http_client()
        app.state.http_client = client
        app.state.auth_registry = AuthStoreRegistry(
            SUPABASE_URL,
            SUPABASE_ANON_KEY,
            http_client=client,
            storage_factory=storage_factory or default_storage_factory,
            store_options=store_options,
        )
        yield

        logger.info("Application shutting down...")
        await app.state.auth_registry.close()
        if http_client is None:
            await client.aclose()

    app = FastAPI(title=f"{APP_NAME} API", description=APP_DESCRIPTION, version="1.0.0", lifespan=lifespan)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
        errors = {
            ".".join(str(part) for part in error["loc"] if part != "body"): error["msg"]
            for error in exc.errors()
        }
        return JSONResponse(status_code=422, content={"detail": {"errors": errors}})

    @app.middleware("http")
    async def browser_session(request: Request, call_next):
        """Identify the browser by an opaque cookie; its auth state lives server-side"""
        session_id = request.cookies.get(SESSION_COOKIE_NAME)
        is_new = not session_id or not SESSION_ID_PATTERN.match(session_id)
        if is_new:
            session_id = secrets.token_urlsafe(32)
        request.state.session_id = session_id

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
            raise

        if is_new:
            # A browser without a cookie that did not sign in keeps no server-side state
            registry = getattr(request.app.state, "auth_registry", None)
            if registry is not None:
                registry.discard_if_anonymous(session_id)
            response.set_cookie(
                SESSION_COOKIE_NAME,
                session_id,
                max_age=SESSION_TOKEN_TTL_SECONDS,
                httponly=True,
                secure=SESSION_COOKIE_SECURE,
                samesite="lax",
            )
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
    )

    # Routes
    app.include_router(pages_router)
    app.include_router(auth_router)
    app.include_router(services_router)
    app.include_router(service_options_router)

    @app.get("/health")
    def health():
        return {"status": "healthy", "environment": ENVIRONMENT}

    # Registered last so every known route wins
    @app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"], include_in_schema=False)
    async def not_found(path: str):
        return JSONResponse(status_code=404, content={"detail": "Page not found"})

    return app


app = create_app()
