"""Keystone — root greeting route."""

from fastapi import APIRouter, Request

from keystone.schemas.common import GreetingResponse

router = APIRouter(tags=["App"])


@router.get(
    "/",
    response_model=GreetingResponse,
    summary="Greeting",
    description="Returns the application name and locale.",
)
async def greeting(request: Request) -> GreetingResponse:
    app_settings = request.app.state.config.app
    name = app_settings.name or "Keystone"
    return GreetingResponse(
        message=f"Hello from {name}!",
        name=name,
        locale=app_settings.locale,
    )
