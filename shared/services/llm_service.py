"""
LLM Service: one interface for every LLM API call.

Routes calls to the configured provider (OpenAI, Anthropic, Google) and
applies one retry policy to all of them. The reflection prompt agent is the
main consumer; it only ever needs a system prompt, a user prompt and JSON
output back.
"""

import json
import time
from typing import Dict, Any, Optional
from openai import OpenAI, OpenAIError, RateLimitError, APITimeoutError
import anthropic
from google import genai
import logging

from config import Settings

logger = logging.getLogger(__name__)

_RETRYABLE_ERRORS = (
    RateLimitError,
    APITimeoutError,
    anthropic.RateLimitError,
    anthropic.APITimeoutError,
)


class LLMService:
    """
    Service for making LLM API calls with retry logic and error handling.

    Only the client for the selected provider is created.
    """

    def __init__(
        self,
        *,
        provider: str,
        model_id: str,
        api_key: str = "",
        anthropic_api_key: str = "",
        gemini_api_key: str = "",
        max_retries: int = 3,
        initial_retry_delay: float = 1.0,
        timeout: int = 60,
    ):
        self.provider = provider
        self.model_id = model_id
        self.max_retries = max_retries
        self.initial_retry_delay = initial_retry_delay
        self.timeout = timeout

        self.client = None
        self.gemini_client = None
        self.anthropic_adapter = None

        if provider == "openai":
            self.client = OpenAI(api_key=api_key)
        elif provider == "anthropic":
            from shared.services.anthropic_adapter import AnthropicAdapter
            self.anthropic_adapter = AnthropicAdapter(
                api_key=anthropic_api_key, timeout=timeout, model=model_id
            )
        elif provider == "google":
            self.gemini_client = genai.Client(api_key=gemini_api_key)
        else:
            raise LLMServiceError(f"Unknown LLM provider: {provider}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "LLMService":
        return cls(
            provider=settings.llm_provider,
            model_id=settings.llm_model,
            api_key=settings.openai_api_key,
            anthropic_api_key=settings.anthropic_api_key,
            gemini_api_key=settings.gemini_api_key,
            timeout=settings.llm_timeout_seconds,
        )

    # ─── Primary entry point ───────────────────────────────────────────

    def call(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        json_mode: bool = True,
        temperature: float = 0.7,
    ) -> Dict[str, Any]:
        """
        Generic LLM call, routed on self.provider.

        Always returns: {output_text: str, parsed: dict|None}
        """
        logger.info(json.dumps({
            "step": "LLM_CALL",
            "status": "starting",
            "provider": self.provider,
            "model": self.model_id,
            "params": {"json_mode": json_mode, "temperature": temperature},
        }))

        def _api_call():
            if self.provider == "anthropic":
                return self.anthropic_adapter.call_sync(
                    prompt=prompt, system_prompt=system_prompt, json_mode=json_mode,
                )["output_text"]
            if self.provider == "google":
                return self._gemini_text(prompt, system_prompt, json_mode, temperature)
            return self._chat_completions_text(prompt, system_prompt, json_mode, temperature)

        text = self._execute_with_retry(_api_call, self.model_id)
        parsed = self.parse_json_response(text) if json_mode else None
        return {"output_text": text, "parsed": parsed}

    # ─── Provider calls ───────────────────────────────────────────────

    def _chat_completions_text(
        self,
        prompt: str,
        system_prompt: Optional[str],
        json_mode: bool,
        temperature: float,
        max_tokens: int = 2048,
    ) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        kwargs = {
            "model": self.model_id,
            "messages": messages,
            "max_completion_tokens": max_tokens,
            "temperature": temperature,
            "timeout": self.timeout,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = self.client.chat.completions.create(**kwargs)
        return response.choices[0].message.content

    def _gemini_text(
        self,
        prompt: str,
        system_prompt: Optional[str],
        json_mode: bool,
        temperature: float,
    ) -> str:
        config = {"temperature": temperature}
        if system_prompt:
            config["system_instruction"] = system_prompt
        if json_mode:
            config["response_mime_type"] = "application/json"
        response = self.gemini_client.models.generate_content(
            model=self.model_id, contents=prompt, config=config
        )
        return response.text

    # ─── Helpers ──────────────────────────────────────────────────────

    def _execute_with_retry(self, api_call_fn, model_name: str) -> Any:
        """Execute API call with exponential backoff retry logic."""
        last_error = None
        delay = self.initial_retry_delay
        start_time = time.time()

        for attempt in range(self.max_retries):
            try:
                result = api_call_fn()
                logger.info(json.dumps({
                    "step": "LLM_CALL",
                    "status": "complete",
                    "model": model_name,
                    "output": {"response_length": len(str(result)) if result else 0},
                    "duration_ms": int((time.time() - start_time) * 1000),
                    "attempts": attempt + 1
                }))
                return result

            except _RETRYABLE_ERRORS as e:
                last_error = e
                logger.warning(
                    f"{model_name} transient error (attempt {attempt + 1}/{self.max_retries}). "
                    f"Retrying in {delay}s..."
                )
                time.sleep(delay)
                delay *= 2

            except (OpenAIError, anthropic.AnthropicError) as e:
                logger.error(f"{model_name} API error: {str(e)}")
                raise LLMServiceError(f"{model_name} API error: {str(e)}") from e

            except Exception as e:
                logger.error(f"{model_name} unexpected error: {str(e)}")
                raise LLMServiceError(f"{model_name} unexpected error: {str(e)}") from e

        logger.info(json.dumps({
            "step": "LLM_CALL",
            "status": "failed",
            "model": model_name,
            "error": str(last_error),
            "duration_ms": int((time.time() - start_time) * 1000),
            "attempts": self.max_retries
        }))
        raise LLMServiceError(
            f"{model_name} failed after {self.max_retries} attempts. Last error: {str(last_error)}"
        ) from last_error

    @staticmethod
    def parse_json_response(response: str) -> Dict[str, Any]:
        """Parse JSON response from LLM, tolerating a fenced ```json block."""
        text = (response or "").strip()
        if text.startswith("```"):
            text = text.strip("`")
            if text.lower().startswith("json"):
                text = text[4:]
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse JSON response: {text[:200]}...")
            raise LLMServiceError(f"Invalid JSON response: {str(e)}") from e


class LLMServiceError(Exception):
    """Custom exception for LLM service errors"""
    pass
