"""Model completion collaborator backed by Ollama.

``OllamaCompleter.complete`` is the only way the rest of the code talks to a
language model, both for user-facing replies and for history summaries.  It
fails closed: transport errors and empty answers raise
:class:`~princelab.errors.CompletionError` instead of returning junk text.
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

import httpx
import ollama
from loguru import logger

from princelab.core.summarizer import strip_thoughts
from princelab.errors import CompletionError
from princelab.settings import settings


class OllamaCompleter:
    def __init__(
        self,
        *,
        model: str | None = None,
        host: str | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        timeout: float | None = None,
        client: Any = None,
    ) -> None:
        self.model = model or settings.LLM_MODEL
        self.options = {
            "temperature": temperature if temperature is not None else settings.TEMPERATURE,
            "top_p": top_p if top_p is not None else settings.TOP_P,
        }
        self._client = client if client is not None else ollama.AsyncClient(
            host=host or str(settings.OLLAMA_BASE_URL),
            timeout=timeout if timeout is not None else settings.LLM_TIMEOUT,
        )

    async def complete(self, system_prompt: str | None, messages: Sequence[Dict[str, str]]) -> str:
        """Return the model's answer to *messages*.

        When *system_prompt* is given it is sent first; callers that already
        built a full prompt (``ConversationStore.build_context``) pass *None*.
        """
        payload: List[Dict[str, str]] = []
        if system_prompt:
            payload.append({"role": "system", "content": system_prompt})
        payload.extend({"role": m["role"], "content": m["content"]} for m in messages)

        logger.debug(f"[LLM] model={self.model} messages={len(payload)}")
        try:
            response = await self._client.chat(model=self.model, messages=payload, options=self.options)
        except (ollama.ResponseError, httpx.HTTPError, ConnectionError) as exc:
            logger.error(f"[LLM] request to {self.model} failed: {exc}")
            raise CompletionError(f"Model request failed: {exc}", model=self.model) from exc

        try:
            raw = response["message"]["content"] or ""
        except (KeyError, TypeError) as exc:
            raise CompletionError("Malformed model response", model=self.model) from exc

        text = strip_thoughts(raw)
        if not text:
            raise CompletionError("Model returned an empty answer", model=self.model)
        return text
