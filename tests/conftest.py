"""Pytest configuration and shared fixtures."""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from config import Settings
from shared.models.entities import Base
from shared.repositories.kv_store import InMemoryKeyValueStore, SqlKeyValueStore
from workshop.models.analysis import ActivityContext, AnalysisResult


@pytest.fixture(scope="function")
def db_engine():
    """
    In-memory SQLite engine with the workshop tables created.

    A fresh database per test keeps tests isolated.
    """
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def sql_kv_store(db_engine):
    """Durable key-value store over the in-memory database."""
    return SqlKeyValueStore(sessionmaker(bind=db_engine))


@pytest.fixture
def kv_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def test_settings():
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        database_url="sqlite:///:memory:",
        openai_api_key="",
        analysis_api_url="http://analysis.test/api",
        analysis_max_retries=1,
        analysis_retry_delay_seconds=0.0,
        workspace_min_completion_chars=20,
    )


@pytest.fixture
def sample_activity():
    return ActivityContext(
        activity_id="act-robotics",
        name="Robotics Team",
        role="Build Lead",
        organization="Lincoln High",
        category="academic",
        hours_per_week=10,
        weeks_per_year=30,
    )


@pytest.fixture
def sample_draft():
    return (
        "I joined the robotics team as a freshman. I helped a lot of people and learned "
        "teamwork. We built a robot and went to competitions. It was a great experience."
    )


@pytest.fixture
def scenario_analysis():
    """Three categories: one critical, one minor, one healthy."""
    return AnalysisResult(
        nqi=60,
        reader_impression_label="patchy_narrative",
        categories=[
            {"category": "vulnerability", "score": 40, "max_score": 100,
             "comments": ["The essay never shows a moment of doubt or struggle."],
             "evidence": ["It was a great experience."]},
            {"category": "dialogue", "score": 78, "max_score": 100,
             "comments": ["A line of dialogue would bring the team to life."]},
            {"category": "structure", "score": 90, "max_score": 100},
        ],
        weights={"vulnerability": 0.4, "dialogue": 0.3, "structure": 0.3},
    )


@pytest.fixture
def mock_llm_service(mocker):
    """LLMService stand-in whose call() returns three well-formed reflection prompts."""
    mock_service = mocker.Mock()
    mock_service.call.return_value = {
        "output_text": "",
        "parsed": {
            "prompts": [
                {"question": "What were you holding when the match clock hit zero?", "answer_type": "short_text"},
                {"question": "Which moment made you doubt the design?", "answer_type": "long_text"},
                {"question": "How do you handle a teammate's bad idea now?", "answer_type": "long_text"},
            ],
            "rationale": "Scene, turning point, insight.",
        },
    }
    return mock_service
