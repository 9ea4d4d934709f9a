"""
Keystone — OpenAPI Documentation Setup
========================================

What:  Builds the OpenAPI document and serves Swagger UI when SWAGGER_ENABLE
       is true. When it is false nothing is generated and no route exists.
How:   FastAPI's built-in docs are disabled in create_app(); this module
       replaces `app.openapi` with a builder that adds the bearer-token
       security scheme, then mounts:
           GET /<SWAGGER_PATH>        Swagger UI (persistAuthorization on)
           GET /<SWAGGER_PATH>-json   OpenAPI JSON document
       Documentation routes live outside the global prefix; API paths in
       the document include it.
"""

import logging
from typing import Any, Dict, Tuple

from fastapi import FastAPI, Request
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
from fastapi.responses import HTMLResponse, JSONResponse

from keystone.config import ConfigRegistry

logger = logging.getLogger(__name__)

API_SECURITY_AUTH = "auth"

BEARER_SCHEME: Dict[str, Any] = {
    "description": "输入令牌（Enter the token）",
    "type": "http",
    "scheme": "bearer",
    "bearerFormat": "JWT",
}


def docs_paths(config: ConfigRegistry) -> Tuple[str, ...]:
    """UI and JSON paths of the document, empty when docs are disabled."""
    if not config.swagger.enable:
        return ()
    path = config.swagger.path
    return (f"/{path}", f"/{path}-json")


def build_openapi(app: FastAPI, config: ConfigRegistry) -> Dict[str, Any]:
    """OpenAPI document for every route registered on `app`."""
    title = config.app.name or "Keystone"
    servers = [{"url": config.swagger.server_url}] if config.swagger.server_url else None
    schema = get_openapi(
        title=title,
        version="1.0",
        description=f"{title} API document",
        routes=app.routes,
        servers=servers,
    )
    components = schema.setdefault("components", {})
    components.setdefault("securitySchemes", {})[API_SECURITY_AUTH] = dict(BEARER_SCHEME)
    return schema


def setup_swagger(app: FastAPI, config: ConfigRegistry) -> bool:
    """
    Mount the documentation routes when the feature flag is on.

    Returns:
        True when the document is served, False when docs are disabled.
    """
    if not config.swagger.enable:
        return False

    ui_path, json_path = docs_paths(config)
    title = config.app.name or "Keystone"

    def openapi() -> Dict[str, Any]:
        if app.openapi_schema is None:
            app.openapi_schema = build_openapi(app, config)
        return app.openapi_schema

    app.openapi = openapi

    @app.get(json_path, include_in_schema=False)
    async def openapi_document() -> JSONResponse:
        return JSONResponse(app.openapi())

    @app.get(ui_path, include_in_schema=False)
    async def swagger_ui(request: Request) -> HTMLResponse:
        root_path = request.scope.get("root_path", "").rstrip("/")
        return get_swagger_ui_html(
            openapi_url=f"{root_path}{json_path}",
            title=f"{title} - Swagger UI",
            swagger_ui_parameters={"persistAuthorization": True},
        )

    return True


def log_document_url(config: ConfigRegistry) -> None:
    logger.info(
        "Document running on http://127.0.0.1:%d/%s",
        config.app.port,
        config.swagger.path,
        extra={"context": "SwaggerModule"},
    )
