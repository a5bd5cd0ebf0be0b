"""
Anthropic (Claude) Adapter

Maps the LLMService call shape (system prompt, user prompt, JSON mode)
onto the Anthropic Messages API.
"""

import json
import logging
from typing import Dict, Any, Optional

import anthropic

logger = logging.getLogger(__name__)

DEFAULT_CLAUDE_MODEL = "claude-haiku-4-5-20251001"

JSON_ONLY_INSTRUCTION = (
    "You MUST respond with valid JSON only. No markdown, no explanation outside the JSON."
)


class AnthropicAdapter:
    """Adapter that translates LLMService calls to Anthropic's Messages API."""

    def __init__(self, api_key: str, timeout: int = 60, model: str = DEFAULT_CLAUDE_MODEL):
        self.model = model
        self.client = anthropic.Anthropic(api_key=api_key, timeout=timeout)

    def _build_kwargs(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        json_mode: bool = True,
        max_tokens: int = 4096,
    ) -> Dict[str, Any]:
        """Build kwargs for anthropic messages.create()."""
        system_parts = [system_prompt] if system_prompt else []
        if json_mode:
            system_parts.append(JSON_ONLY_INSTRUCTION)

        kwargs: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)
        return kwargs

    def _parse_response(self, response: Any, json_mode: bool = True) -> Dict[str, Any]:
        """Parse Anthropic response into the standard {output_text, parsed} dict."""
        output_text = "".join(
            block.text for block in response.content if block.type == "text"
        )

        parsed = None
        if json_mode and output_text:
            try:
                parsed = json.loads(output_text)
            except json.JSONDecodeError:
                logger.warning("Claude returned non-JSON output in JSON mode")

        return {"output_text": output_text, "parsed": parsed}

    def call_sync(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        json_mode: bool = True,
    ) -> Dict[str, Any]:
        """Sync call to Claude, returning the standard output dict."""
        kwargs = self._build_kwargs(prompt, system_prompt, json_mode)
        response = self.client.messages.create(**kwargs)
        return self._parse_response(response, json_mode)
