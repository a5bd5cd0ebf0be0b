"""
Base Agent for the Workshop

Abstract base class for LLM-backed collaborators. Uses the shared
LLMService for calls and validates replies against a Pydantic model.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Type, Optional
import json
import time
import asyncio
import logging

from pydantic import BaseModel, Field

from shared.services.llm_service import LLMService
from workshop.exceptions import AgentError, AgentExecutionError, AgentTimeoutError
from workshop.utils.schema_utils import parse_json_safely, validate_agent_output


logger = logging.getLogger("workshop.agents")


class AgentContext(BaseModel):
    """Standard context passed to all agents."""

    request_id: str
    additional_context: Dict[str, Any] = Field(default_factory=dict)


class BaseAgent(ABC):
    """
    Abstract base class for workshop agents.

    Provides logging, timeout handling, and output validation.
    """

    def __init__(
        self,
        llm_service: LLMService,
        timeout_seconds: int = 60,
        temperature: float = 0.7,
    ):
        self.llm = llm_service
        self.timeout_seconds = timeout_seconds
        self.temperature = temperature
        self._last_prompt: Optional[str] = None

    @property
    @abstractmethod
    def agent_name(self) -> str:
        ...

    @abstractmethod
    def get_output_model(self) -> Type[BaseModel]:
        ...

    @abstractmethod
    def build_prompt(self, context: AgentContext) -> str:
        ...

    def build_system_prompt(self, context: AgentContext) -> Optional[str]:
        return None

    @property
    def last_prompt(self) -> Optional[str]:
        return self._last_prompt

    async def execute(self, context: AgentContext) -> BaseModel:
        """Execute the agent and return validated output."""
        start_time = time.time()

        logger.info(json.dumps({
            "agent": self.agent_name,
            "event": "started",
            "request_id": context.request_id,
        }))

        try:
            system_prompt = self.build_system_prompt(context)
            prompt = self.build_prompt(context)
            self._last_prompt = prompt

            loop = asyncio.get_running_loop()
            result = await asyncio.wait_for(
                loop.run_in_executor(
                    None,
                    lambda: self.llm.call(
                        prompt=prompt,
                        system_prompt=system_prompt,
                        json_mode=True,
                        temperature=self.temperature,
                    ),
                ),
                timeout=self.timeout_seconds,
            )

            parsed = result.get("parsed")
            if not isinstance(parsed, dict):
                parsed = parse_json_safely(result.get("output_text", ""), self.agent_name)

            validated = validate_agent_output(
                output=parsed,
                model=self.get_output_model(),
                agent_name=self.agent_name,
            )

            logger.info(json.dumps({
                "agent": self.agent_name,
                "event": "completed",
                "request_id": context.request_id,
                "duration_ms": int((time.time() - start_time) * 1000),
            }))

            return validated

        except asyncio.TimeoutError:
            logger.warning(json.dumps({
                "agent": self.agent_name,
                "event": "timeout",
                "request_id": context.request_id,
                "duration_ms": int((time.time() - start_time) * 1000),
            }))
            raise AgentTimeoutError(self.agent_name, self.timeout_seconds)

        except AgentError:
            raise

        except Exception as e:
            logger.error(json.dumps({
                "agent": self.agent_name,
                "event": "failed",
                "request_id": context.request_id,
                "error": str(e),
                "duration_ms": int((time.time() - start_time) * 1000),
            }))
            raise AgentExecutionError(self.agent_name, str(e)) from e
