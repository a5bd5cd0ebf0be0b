"""
Shared workshop components, built once from settings.

Call reset_dependencies() between tests that change settings.
"""

import logging
from typing import Optional

from config import PROVIDER_KEYS, Settings, get_settings
from database import get_db_manager
from shared.repositories.kv_store import KeyValueStore, SqlKeyValueStore
from shared.services.llm_service import LLMService
from workshop.agents.reflection_agent import LLMReflectionPromptGenerator
from workshop.services.analysis_client import AnalysisBackendClient
from workshop.services.reflection_prompts import (
    ReflectionPromptCache,
    ReflectionPromptGenerator,
    TemplateReflectionPromptGenerator,
)
from workshop.services.version_store import VersionStore
from workshop.services.workshop_service import WorkshopService

logger = logging.getLogger("workshop.dependencies")

_kv_store: Optional[KeyValueStore] = None
_version_store: Optional[VersionStore] = None
_prompt_cache: Optional[ReflectionPromptCache] = None
_workshop_service: Optional[WorkshopService] = None


def get_kv_store() -> KeyValueStore:
    global _kv_store
    if _kv_store is None:
        db_manager = get_db_manager()
        db_manager.create_tables()
        _kv_store = SqlKeyValueStore(db_manager.session_factory)
    return _kv_store


def get_version_store() -> VersionStore:
    global _version_store
    if _version_store is None:
        _version_store = VersionStore(get_kv_store())
    return _version_store


def build_prompt_generator(settings: Settings) -> ReflectionPromptGenerator:
    """LLM-backed generator when the provider has a key, else the offline question bank."""
    key_field = PROVIDER_KEYS.get(settings.llm_provider)
    if key_field and getattr(settings, key_field):
        return LLMReflectionPromptGenerator(
            LLMService.from_settings(settings),
            prompt_count=settings.reflection_prompt_count,
            timeout_seconds=settings.llm_timeout_seconds,
        )
    logger.warning(
        f"No API key for LLM provider '{settings.llm_provider}'; using offline reflection prompts"
    )
    return TemplateReflectionPromptGenerator()


def get_prompt_cache() -> ReflectionPromptCache:
    global _prompt_cache
    if _prompt_cache is None:
        settings = get_settings()
        _prompt_cache = ReflectionPromptCache(
            build_prompt_generator(settings),
            kv_store=get_kv_store(),
            tone=settings.reflection_tone,
            prompt_count=settings.reflection_prompt_count,
            max_retries=settings.reflection_max_retries,
        )
    return _prompt_cache


def get_workshop_service() -> WorkshopService:
    global _workshop_service
    if _workshop_service is None:
        settings = get_settings()
        _workshop_service = WorkshopService(
            analysis_client=AnalysisBackendClient.from_settings(settings),
            version_store=get_version_store(),
            prompt_cache=get_prompt_cache(),
            settings=settings,
        )
    return _workshop_service


def reset_dependencies():
    """Drop every shared component (useful for testing)."""
    global _kv_store, _version_store, _prompt_cache, _workshop_service
    _kv_store = None
    _version_store = None
    _prompt_cache = None
    _workshop_service = None
