from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from scriptgraph.app.api.deps import get_container
from scriptgraph.app.core.container import AppContainer
from scriptgraph.app.models.script import ContainerKindInfo, GenerateScriptRequest, GenerateScriptResponse

router = APIRouter(prefix="/scripts", tags=["scripts"])


@router.post("/generate", response_model=GenerateScriptResponse)
async def generate_script(
    request: GenerateScriptRequest,
    container: AppContainer = Depends(get_container),
) -> GenerateScriptResponse:
    return container.script_service.generate_script(request)


@router.post("/generate/text", response_class=PlainTextResponse)
async def generate_script_text(
    request: GenerateScriptRequest,
    container: AppContainer = Depends(get_container),
) -> PlainTextResponse:
    response = container.script_service.generate_script(request)
    return PlainTextResponse(response.script, media_type="text/plain; charset=utf-8")


@router.get("/container-kinds", response_model=list[ContainerKindInfo])
async def list_container_kinds(container: AppContainer = Depends(get_container)) -> list[ContainerKindInfo]:
    return container.script_service.container_kinds()
