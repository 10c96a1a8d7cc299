import logging

from fastapi import APIRouter, Depends

from dialogue_router.core.dependencies import get_dialogue_router
from dialogue_router.models.schemas import RecheckResponse, RouteOutcome, RouteRequest
from dialogue_router.services.dialogue_router import DialogueRouter

router = APIRouter(prefix="/v1")
logger = logging.getLogger("dialogue-router.api")


@router.post("/route", response_model=RouteOutcome)
async def route_message(request: RouteRequest, dialogue_router: DialogueRouter = Depends(get_dialogue_router)):
    """
    Маршрутизировать одно сообщение пользователя.

    Всегда возвращает 200: при недоступности всех провайдеров tier=emergency.
    """
    logger.info(
        f"[Route] Request: len={len(request.message)}, history={len(request.history)}, "
        f"admin={request.is_admin}, intent={request.intent}"
    )
    outcome = await dialogue_router.route(request.message, request.history, request.to_options())
    logger.info(f"[Route] Done: tier={outcome.tier.value}, provider={outcome.provider}")
    return outcome


@router.get("/stats")
async def get_stats(dialogue_router: DialogueRouter = Depends(get_dialogue_router)):
    return dialogue_router.get_stats()


@router.post("/providers/recheck", response_model=RecheckResponse)
async def recheck_providers(dialogue_router: DialogueRouter = Depends(get_dialogue_router)):
    logger.info("[Route] Manual provider recheck requested")
    results = await dialogue_router.recheck_providers()
    return RecheckResponse(
        results=results,
        providers=dialogue_router.get_stats()["providers"]["providers"],
    )
