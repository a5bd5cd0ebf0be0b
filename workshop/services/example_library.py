"""
Example Library

Read-only catalog of before/after excerpts from admitted students, and
the matcher that picks exemplars for a teaching issue.
"""

from pathlib import Path
from typing import Optional
import json
import logging

from workshop.models.teaching import EliteEssayExample

logger = logging.getLogger("workshop.example_library")

DEFAULT_LIBRARY_PATH = Path(__file__).parent.parent / "data" / "example_library.json"

# Preferred school tiers per severity, most preferred first.
TIER_PREFERENCE: dict[str, tuple[str, ...]] = {
    "critical": ("ivy_plus", "top_uc", "competitive"),
    "major": ("top_uc", "ivy_plus", "competitive"),
    "minor": ("competitive", "top_uc", "ivy_plus"),
}


class ExampleLibrary:
    """Static exemplar catalog. Safe to share; nothing mutates it after load."""

    def __init__(self, examples: list[EliteEssayExample]):
        self._examples = tuple(examples)

    @classmethod
    def from_file(cls, path: Optional[Path] = None) -> "ExampleLibrary":
        """
        Load the catalog from a JSON document.

        Args:
            path: Library file. If None, uses the packaged library.

        Returns:
            ExampleLibrary
        """
        library_path = path or DEFAULT_LIBRARY_PATH
        with open(library_path, "r", encoding="utf-8") as f:
            document = json.load(f)
        examples = [EliteEssayExample.model_validate(item) for item in document.get("examples", [])]
        logger.info(f"Loaded {len(examples)} examples from {library_path.name}")
        return cls(examples)

    @property
    def examples(self) -> tuple[EliteEssayExample, ...]:
        return self._examples

    def get_examples_for_issue(
        self,
        category: str,
        severity: str,
        limit: int = 3,
    ) -> list[EliteEssayExample]:
        """
        Select exemplars tagged with exactly this category.

        Higher-tier examples come first for critical issues and lower-tier,
        more attainable ones first for minor issues. Order within a tier
        follows the library. Never falls back to other categories, so an
        untagged category yields an empty list.
        """
        if limit <= 0:
            return []
        preference = TIER_PREFERENCE.get(severity, TIER_PREFERENCE["major"])
        rank = {tier: index for index, tier in enumerate(preference)}

        matching = [ex for ex in self._examples if category in ex.categories]
        matching.sort(key=lambda ex: rank.get(ex.school_tier, len(rank)))
        return matching[:limit]

    def get_examples_by_tier(self, tier: str) -> list[EliteEssayExample]:
        return [ex for ex in self._examples if ex.school_tier == tier]

    def get_examples_by_principle(self, principle_key: str, limit: int = 3) -> list[EliteEssayExample]:
        return [ex for ex in self._examples if ex.principle == principle_key][:limit]

    def categories(self) -> set[str]:
        return {category for ex in self._examples for category in ex.categories}


# Global library instance
_library: Optional[ExampleLibrary] = None


def get_example_library() -> ExampleLibrary:
    """Get or load the packaged example library."""
    global _library
    if _library is None:
        _library = ExampleLibrary.from_file()
    return _library


def get_examples_for_issue(category: str, severity: str, limit: int = 3) -> list[EliteEssayExample]:
    return get_example_library().get_examples_for_issue(category, severity, limit)
