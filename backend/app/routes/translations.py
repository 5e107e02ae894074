from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel

router = APIRouter(prefix="/translations", tags=["translations"])


class TranslateRequest(BaseModel):
    text: str
    mode: Literal["translate", "detect"] = "translate"


@router.post("")
async def translate(request: Request, body: TranslateRequest) -> dict[str, Any]:
    orchestrator = request.app.state.orchestrator
    result = await orchestrator.orchestrate(body.text, mode=body.mode)
    return result.to_dict()


@router.get("/status")
def get_translation_status(request: Request) -> dict[str, Any]:
    orchestrator = request.app.state.orchestrator
    return orchestrator.snapshot()


@router.get("/recent")
def get_recent_translations(
    request: Request,
    limit: int = Query(default=10, ge=1, le=100),
) -> dict[str, Any]:
    orchestrator = request.app.state.orchestrator
    results = orchestrator.recent_results(limit=limit)
    return {"results": results, "count": len(results)}


@router.get("/cooldown")
def get_cooldown(request: Request) -> dict[str, Any]:
    gate = request.app.state.orchestrator.gate
    return {
        "open": gate.is_open(),
        "remaining_seconds": gate.remaining_seconds,
        "window_seconds": gate.window_seconds,
    }


@router.get("/direction")
def get_direction(request: Request) -> dict[str, Any]:
    return request.app.state.orchestrator.direction.snapshot()


@router.post("/direction/swap")
def swap_direction(request: Request) -> dict[str, Any]:
    return request.app.state.orchestrator.swap_direction()


@router.delete("/cache")
def clear_cache(request: Request) -> dict[str, Any]:
    orchestrator = request.app.state.orchestrator
    orchestrator.clear_cache()
    return {"cleared": True, "cache_size": orchestrator.cache.size()}
