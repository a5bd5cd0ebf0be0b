"""
Reflection Prompt Cache

Generates and memoizes Socratic questions per (teaching issue, draft state).

A cache key combines the issue id with a hash of the normalized draft.
While the issue's flagged excerpt is still present in the draft only the
excerpt is hashed, so edits elsewhere in the essay keep hitting the cache.

Concurrent misses on one key share a single in-flight generation. Entries
never expire; they are dropped by clear(), invalidate_issue() or by the
key changing. Results are stored even when a caller has moved on, since
the key already pins the draft state they belong to; RequestSequencer
lets callers decide whether to apply a result.
"""

import asyncio
import hashlib
import itertools
import json
import logging
from typing import Optional, Protocol

from pydantic import ValidationError

from shared.repositories.kv_store import KeyValueStore
from shared.utils.exceptions import NarrativeWorkshopException
from workshop.exceptions import ReflectionPromptError, WorkshopError
from workshop.models.analysis import ActivityContext
from workshop.models.teaching import (
    PromptValidation,
    ReflectionPrompt,
    ReflectionPromptSet,
    TeachingIssue,
)
from workshop.prompts.reflection_fallbacks import FALLBACK_PROMPTS

logger = logging.getLogger("workshop.reflection_prompts")

KEY_PREFIX = "reflection_prompts:"

YES_NO_OPENERS = ("did you", "do you", "have you", "is ", "are ", "was ", "were ")


class ReflectionPromptGenerator(Protocol):
    """Narrative-generation collaborator."""

    async def generate(
        self,
        issue: TeachingIssue,
        activity: ActivityContext,
        draft_text: str,
        tone: str = "mentor",
        depth: str = "surface",
    ) -> ReflectionPromptSet:
        ...


def normalize_draft(text: str) -> str:
    return " ".join((text or "").lower().split())


def compute_fingerprint(issue: TeachingIssue, draft_text: str) -> str:
    normalized = normalize_draft(draft_text)
    excerpt = normalize_draft(issue.problem.from_draft)
    if excerpt.endswith("..."):
        excerpt = excerpt[:-3].rstrip()

    if excerpt and excerpt in normalized:
        material = f"excerpt:{excerpt}"
    else:
        material = f"draft:{normalized}"
    digest = hashlib.sha256(material.encode("utf-8")).hexdigest()[:16]
    return f"{issue.id}:{digest}"


def default_depth(issue: TeachingIssue) -> str:
    return "deep" if issue.severity == "critical" else "surface"


def validate_prompt_quality(prompt_set: ReflectionPromptSet, expected_count: int = 3) -> list[str]:
    """Return quality warnings; an empty list means the set is acceptable."""
    warnings = []
    if len(prompt_set.prompts) != expected_count:
        warnings.append(f"Expected {expected_count} prompts, got {len(prompt_set.prompts)}")

    questions = [p.question.strip().lower() for p in prompt_set.prompts]
    if len(set(questions)) != len(questions):
        warnings.append("Duplicate questions detected")

    for index, question in enumerate(questions, start=1):
        if not question:
            warnings.append(f"Prompt {index} is empty")
        elif question.startswith(YES_NO_OPENERS):
            warnings.append(f"Prompt {index} appears to be a yes/no question")
    return warnings


class RequestSequencer:
    """Monotonic sequence numbers per logical target (activity, issue)."""

    def __init__(self):
        self._counter = itertools.count(1)
        self._latest: dict[str, int] = {}

    def issue(self, key: str) -> int:
        seq = next(self._counter)
        self._latest[key] = seq
        return seq

    def is_latest(self, key: str, seq: int) -> bool:
        return self._latest.get(key) == seq


class TemplateReflectionPromptGenerator:
    """Offline generator built from the per-principle question bank."""

    async def generate(
        self,
        issue: TeachingIssue,
        activity: ActivityContext,
        draft_text: str,
        tone: str = "mentor",
        depth: str = "surface",
    ) -> ReflectionPromptSet:
        bank = FALLBACK_PROMPTS.get(issue.principle.key, FALLBACK_PROMPTS["ADD_SPECIFICITY"])
        prompts = [
            ReflectionPrompt(
                id=f"{issue.id}-prompt-{index}",
                question=question,
                purpose=purpose,
                answer_type=answer_type,
                validation=PromptValidation(
                    min_length=10 if answer_type == "short_text" else 40,
                    helpful_hint=hint or None,
                ),
            )
            for index, (question, purpose, answer_type, hint) in enumerate(bank, start=1)
        ]
        return ReflectionPromptSet(
            issue_id=issue.id,
            issue_title=issue.problem.title,
            fingerprint="",
            prompts=prompts,
            rationale=f"Questions drawn from the '{issue.principle.name}' principle.",
            tone=tone,
            depth=depth,
        )


class ReflectionPromptCache:
    """Memoizing, single-flight front for a ReflectionPromptGenerator."""

    def __init__(
        self,
        generator: ReflectionPromptGenerator,
        kv_store: Optional[KeyValueStore] = None,
        tone: str = "mentor",
        prompt_count: int = 3,
        max_retries: int = 3,
        initial_retry_delay: float = 1.0,
        max_retry_delay: float = 5.0,
    ):
        self._generator = generator
        self._kv = kv_store
        self.tone = tone
        self.prompt_count = prompt_count
        self.max_retries = max(1, max_retries)
        self.initial_retry_delay = initial_retry_delay
        self.max_retry_delay = max_retry_delay

        self._entries: dict[str, ReflectionPromptSet] = {}
        self._in_flight: dict[str, asyncio.Task] = {}
        self._hits = 0
        self._misses = 0

    # ── Public API ──────────────────────────────────────────────────────

    async def generate_reflection_prompts_with_cache(
        self,
        issue: TeachingIssue,
        activity: ActivityContext,
        draft_text: str,
        depth: Optional[str] = None,
        skip_cache: bool = False,
    ) -> ReflectionPromptSet:
        """
        Return prompts for the issue at this draft state, generating on a miss.

        Raises:
            ReflectionPromptError: If generation failed; nothing is cached
        """
        key = compute_fingerprint(issue, draft_text)

        if not skip_cache:
            cached = self.get_cached(key)
            if cached is not None:
                self._hits += 1
                logger.info(f"Reflection prompt cache HIT for {issue.id}")
                return cached

        task = self._in_flight.get(key)
        if task is None:
            self._misses += 1
            task = asyncio.ensure_future(
                self._generate_and_store(key, issue, activity, draft_text, depth or default_depth(issue))
            )
            self._in_flight[key] = task
            task.add_done_callback(lambda done, k=key: self._forget(k, done))
        else:
            logger.info(f"Joining in-flight reflection prompt generation for {issue.id}")

        return await asyncio.shield(task)

    async def generate_for_issues(
        self,
        issues: list[TeachingIssue],
        activity: ActivityContext,
        draft_text: str,
        max_issues: int = 5,
    ) -> dict[str, ReflectionPromptSet]:
        """
        Request prompts for the top issues concurrently.

        Returns:
            issue id -> prompt set, for the issues that succeeded
        """
        selected = sorted(issues, key=lambda i: i.priority_rank)[:max_issues]
        results = await asyncio.gather(
            *(self.generate_reflection_prompts_with_cache(i, activity, draft_text) for i in selected),
            return_exceptions=True,
        )

        prompt_sets = {}
        for issue, result in zip(selected, results):
            if isinstance(result, ReflectionPromptError):
                logger.warning(f"Skipping prompts for {issue.id}: {result.reason}")
            elif isinstance(result, BaseException):
                raise result
            else:
                prompt_sets[issue.id] = result
        return prompt_sets

    def get_cached(self, key: str) -> Optional[ReflectionPromptSet]:
        if key in self._entries:
            return self._entries[key]
        if self._kv is None:
            return None
        try:
            raw = self._kv.get(f"{KEY_PREFIX}{key}")
        except NarrativeWorkshopException as e:
            logger.warning(f"Prompt cache read failed for {key}: {e}")
            return None
        if not raw:
            return None
        try:
            prompt_set = ReflectionPromptSet.model_validate_json(raw)
        except ValidationError:
            logger.warning(f"Discarding unreadable cached prompts for {key}")
            return None
        self._entries[key] = prompt_set
        return prompt_set

    def invalidate_issue(self, issue_id: str) -> int:
        """Drop every cached draft state for one issue. Returns entries removed."""
        prefix = f"{issue_id}:"
        keys = [k for k in self._entries if k.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        removed = self._delete_persisted(f"{KEY_PREFIX}{prefix}")
        return max(len(keys), removed)

    def clear(self) -> None:
        self._entries.clear()
        self._delete_persisted(KEY_PREFIX)
        logger.info("Reflection prompt cache cleared")

    def get_stats(self) -> dict[str, int]:
        return {
            "entries": len(self._entries),
            "in_flight": len(self._in_flight),
            "hits": self._hits,
            "misses": self._misses,
        }

    # ── Internals ───────────────────────────────────────────────────────

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled():
            # Mark the exception retrieved; waiters re-raise it themselves.
            task.exception()

    async def _generate_and_store(
        self,
        key: str,
        issue: TeachingIssue,
        activity: ActivityContext,
        draft_text: str,
        depth: str,
    ) -> ReflectionPromptSet:
        last_error = "no attempts made"

        for attempt in range(1, self.max_retries + 1):
            logger.info(json.dumps({
                "step": "REFLECTION_PROMPTS",
                "status": "generating",
                "issue_id": issue.id,
                "attempt": attempt,
                "depth": depth,
            }))
            try:
                result = await self._generator.generate(
                    issue, activity, draft_text, tone=self.tone, depth=depth
                )
            except WorkshopError as e:
                result = None
                last_error = str(e)
                logger.warning(f"Reflection prompt attempt {attempt}/{self.max_retries} failed: {e}")

            if result is not None:
                warnings = validate_prompt_quality(result, self.prompt_count)
                if not result.prompts:
                    last_error = "generator returned no prompts"
                elif warnings and attempt < self.max_retries:
                    last_error = "; ".join(warnings)
                    logger.warning(f"Reflection prompt quality check failed (attempt {attempt}): {last_error}")
                else:
                    if warnings:
                        logger.warning(f"Accepting reflection prompts for {issue.id} with warnings: {warnings}")
                    prompt_set = result.model_copy(update={"fingerprint": key})
                    self._store(key, prompt_set)
                    logger.info(json.dumps({
                        "step": "REFLECTION_PROMPTS",
                        "status": "complete",
                        "issue_id": issue.id,
                        "attempts": attempt,
                        "prompt_count": len(prompt_set.prompts),
                    }))
                    return prompt_set

            if attempt < self.max_retries:
                await asyncio.sleep(self._retry_delay(attempt))

        logger.error(json.dumps({
            "step": "REFLECTION_PROMPTS",
            "status": "failed",
            "issue_id": issue.id,
            "error": last_error,
            "attempts": self.max_retries,
        }))
        raise ReflectionPromptError(issue.id, last_error, attempts=self.max_retries)

    def _retry_delay(self, attempt: int) -> float:
        return min(self.initial_retry_delay * 2 ** (attempt - 1), self.max_retry_delay)

    def _store(self, key: str, prompt_set: ReflectionPromptSet) -> None:
        self._entries[key] = prompt_set
        if self._kv is None:
            return
        try:
            self._kv.set(f"{KEY_PREFIX}{key}", prompt_set.model_dump_json())
        except NarrativeWorkshopException as e:
            logger.warning(f"Prompt cache write failed for {key}: {e}")

    def _delete_persisted(self, prefix: str) -> int:
        if self._kv is None:
            return 0
        try:
            keys = self._kv.list_by_prefix(prefix)
            for key in keys:
                self._kv.delete(key)
        except NarrativeWorkshopException as e:
            logger.warning(f"Prompt cache delete failed for prefix {prefix}: {e}")
            return 0
        return len(keys)
