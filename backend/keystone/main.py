"""
Keystone — FastAPI Application Factory
========================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() loads the config registry (or takes one), wires the
       middleware chain, exception handlers, routers under the global prefix
       and the optional OpenAPI document.
Who:   uvicorn (`uvicorn keystone.main:app`) or the `keystone` console script.

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware Chain (outermost first):                │
    │  ┌──────────────┐ ┌────────────┐ ┌───────────────┐  │
    │  │ Proxy Headers│→│ Rate Limit │→│ Access (dev)  │  │
    │  └──────────────┘ └────────────┘ └───────────────┘  │
    │                                                     │
    │  Routes (/<GLOBAL_PREFIX>):                         │
    │  ┌──────────┐ ┌──────────────┐ ┌─────────────────┐  │
    │  │  GET /   │ │ GET /health  │ │ POST /files     │  │
    │  └──────────┘ └──────────────┘ └─────────────────┘  │
    │                                                     │
    │  Docs (SWAGGER_ENABLE): /<SWAGGER_PATH>[-json]      │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Install the logging service sinks (console + rotating files)
    2. Log "Server running" from the main process only

    Shutdown (also the hot-reload teardown: uvicorn's reloader stops the
    worker, which runs this half of the lifespan):
    1. Log shutdown
    2. Detach and close the logging sinks
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from keystone import __version__
from keystone.adapter import configure_adapter
from keystone.config import ConfigRegistry, load_config
from keystone.exceptions import KeystoneError, PayloadTooLargeError
from keystone.middleware.logging import RequestLoggingMiddleware
from keystone.middleware.rate_limit import RateLimitMiddleware
from keystone.routes import files, greeting, health
from keystone.services.logger_service import LoggerService
from keystone.swagger import docs_paths, log_document_url, setup_swagger

logger = logging.getLogger(__name__)

BOOTSTRAP_CONTEXT = "Bootstrap"


def quiet_third_party_loggers() -> None:
    """These libraries log every operation at DEBUG/INFO."""
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("python_multipart").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)


def server_url(config: ConfigRegistry) -> str:
    return f"http://127.0.0.1:{config.app.port}"


def announce_startup(config: ConfigRegistry, pid: Optional[int] = None) -> bool:
    """
    Log the bound URL once per deployment.

    Only the main process (single process, cluster primary or instance 0)
    logs; other workers stay silent. Returns True when the line was emitted.

    Runs in lifespan startup, which uvicorn completes right before it binds
    the listening socket. The URL is therefore built from APP_PORT, which
    config restricts to a fixed port (1-65535); a failed bind makes uvicorn
    exit with its own error after this line.
    """
    runtime = config.runtime
    if not runtime.is_main_process:
        return False

    pid = pid if pid is not None else os.getpid()
    tag = f"{'P' if runtime.is_primary else 'W'}{pid}"
    url = server_url(config)
    extra = {"context": BOOTSTRAP_CONTEXT}

    logger.info("[%s] Server running on %s", tag, url, extra=extra)
    if runtime.is_dev:
        logger.info("[%s] OpenAPI: %s/%s", tag, url, config.swagger.path, extra=extra)
    return True


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    config: ConfigRegistry = app.state.config

    # ── Startup ───────────────────────────────────────────────────────────
    logger_service = LoggerService(config.app.logger).install()
    quiet_third_party_loggers()
    app.state.logger_service = logger_service
    if app.state.docs_enabled:
        log_document_url(config)
    announce_startup(config)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Keystone shutting down (pid %d)", os.getpid(), extra={"context": BOOTSTRAP_CONTEXT})
    logger_service.close()


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to HTTP status codes and response bodies.

    Handler hierarchy:
        PayloadTooLargeError    → 413 Payload Too Large
        KeystoneError (base)    → 500 Internal Server Error
        Exception (fallback)    → 500 Internal Server Error
    """

    @app.exception_handler(PayloadTooLargeError)
    async def handle_payload_too_large(request: Request, exc: PayloadTooLargeError):
        logger.warning("Payload too large on %s: %s", request.url.path, exc.message)
        return JSONResponse(
            status_code=413,
            content={
                "error": "payload_too_large",
                "message": exc.message,
                "details": exc.context,
            },
        )

    @app.exception_handler(KeystoneError)
    async def handle_keystone_error(request: Request, exc: KeystoneError):
        logger.error("Application error: %s | Context: %s", exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content={
                "error": "server_error",
                "message": "An internal error occurred. Please try again later.",
            },
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        # Stack trace is logged server-side only
        logger.error("Unexpected error: %s", str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again or contact support.",
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(config: Optional[ConfigRegistry] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Pre-built registry; loaded from the environment when omitted.

    Raises:
        ConfigurationError: The environment holds an invalid value.
    """
    config = config or load_config()

    app = FastAPI(
        title=config.app.name or "Keystone",
        version=__version__,
        # Documentation is served by setup_swagger() behind SWAGGER_ENABLE
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.config = config

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added = first to execute.
    if config.runtime.is_dev:
        app.add_middleware(RequestLoggingMiddleware)

    app.add_middleware(
        RateLimitMiddleware,
        locale=config.app.locale,
        exempt_paths=docs_paths(config),
    )

    configure_adapter(app)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    prefix = f"/{config.app.global_prefix}" if config.app.global_prefix else ""
    app.include_router(greeting.router, prefix=prefix)
    app.include_router(health.router, prefix=prefix)
    app.include_router(files.router, prefix=prefix)

    # After the routers so the document lists every route
    app.state.docs_enabled = setup_swagger(app, config)

    return app


def run() -> None:
    """Start uvicorn on all interfaces; reload in development."""
    config = load_config()
    uvicorn.run(
        "keystone.main:app",
        host="0.0.0.0",
        port=config.app.port,
        reload=config.runtime.is_dev,
        # ProxyHeadersMiddleware is installed by configure_adapter()
        proxy_headers=False,
        # Keep uvicorn from replacing the logging service's handlers
        log_config=None,
    )


# uvicorn imports `keystone.main:app`
app = create_app()


if __name__ == "__main__":
    run()
