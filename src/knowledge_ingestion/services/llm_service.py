"""Thin LiteLLM wrapper shared by extraction and answer synthesis."""

import asyncio
from typing import Any, Dict, List, Optional

from litellm import acompletion

from knowledge_ingestion.config import get_settings
from knowledge_ingestion.utils.errors import ExternalServiceError
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("llm_service")
settings = get_settings()


class LLMService:
    """Non-streaming chat completions through LiteLLM."""

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Run one completion and return the message text.

        Raises:
            asyncio.TimeoutError: If the call exceeds `timeout` (LLM_TIMEOUT by default)
            ExternalServiceError: If the provider call fails
        """
        model = model or settings.llm.model
        params: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": False,
            "temperature": settings.llm.temperature if temperature is None else temperature,
        }
        if max_tokens:
            params["max_tokens"] = max_tokens

        logger.debug(f"Calling LLM model: {model}")
        try:
            response = await asyncio.wait_for(
                acompletion(**params), timeout=timeout or settings.llm.timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"LLM call timed out: model={model}")
            raise
        except Exception as e:
            logger.error(
                f"LLM call failed for model {model}: {e}",
                extra={"model": model, "error_type": type(e).__name__},
            )
            raise ExternalServiceError(
                "llm",
                message=f"LLM call failed: {str(e)}",
                details={"model": model, "error_type": type(e).__name__},
            ) from e

        content = response.choices[0].message.content
        return (content or "").strip()
