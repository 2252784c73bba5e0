from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import PlainTextResponse
from functools import lru_cache
from loguru import logger
from pydantic import ValidationError
from typing import Optional

from princelab.core.memory import ConversationStore
from princelab.core.rate_limiter import RateLimiter
from princelab.core.summarizer import Summarizer
from princelab.llm import OllamaCompleter
from princelab.orchestrator import ChatOrchestrator
from princelab.schemas import StatsResponse, WebhookPayload
from princelab.settings import settings
from princelab.whatsapp import WhatsAppSender

router = APIRouter()


@lru_cache(maxsize=1)
def get_orchestrator() -> ChatOrchestrator:
    """Process-wide orchestrator wired from settings."""
    completer = OllamaCompleter()
    summary_completer = (
        OllamaCompleter(model=settings.SUMMARY_MODEL) if settings.SUMMARY_MODEL else completer
    )
    store = ConversationStore(summarizer=Summarizer(summary_completer))
    return ChatOrchestrator(RateLimiter(), store, completer, WhatsAppSender())


@router.get("/webhook")
def verify_webhook(
    mode: Optional[str] = Query(None, alias="hub.mode"),
    token: Optional[str] = Query(None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(None, alias="hub.challenge"),
):
    if mode == "subscribe" and token == settings.WHATSAPP_VERIFY_TOKEN:
        logger.info("Webhook verified.")
        return PlainTextResponse(challenge or "")
    logger.warning(f"Webhook verification refused: mode={mode}")
    return Response(status_code=403)


@router.post("/webhook")
async def receive_webhook(request: Request, orchestrator: ChatOrchestrator = Depends(get_orchestrator)):
    # Always ACK quickly; the reply is produced by a detached task
    try:
        body = await request.json()
        logger.debug(f"Webhook hit: {body}")
        payload = WebhookPayload.model_validate(body)
    except (ValueError, ValidationError) as e:
        logger.warning(f"Ignoring malformed webhook body: {e}")
        return Response(status_code=200)

    message = payload.first_message()
    if message is None:
        return Response(status_code=200)
    if message.type != "text" or message.text is None:
        logger.debug(f"Ignoring {message.type} message from {message.from_}")
        return Response(status_code=200)

    orchestrator.dispatch(message.from_, message.text.body)
    return Response(status_code=200)


@router.get("/stats", response_model=StatsResponse)
def stats(orchestrator: ChatOrchestrator = Depends(get_orchestrator)):
    store_stats = orchestrator.store.stats()
    return StatsResponse(
        conversations=store_stats["users"],
        rate_limited_users=len(orchestrator.limiter),
        turns=store_stats["turns"],
        summarised_users=store_stats["summarised_users"],
    )
