"""Shared pytest fixtures and configuration."""

import os
import sys
from datetime import datetime
from pathlib import Path

import pytest

# Ensure the src/ packages are importable
REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = REPO_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

# Set required environment variables before any imports
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import settings  # noqa: E402
from db import Database, News  # noqa: E402
from llm.openai_client import load_pydantic_schema  # noqa: E402
from processors.deduplication import generate_content_hash  # noqa: E402


@pytest.fixture
def db(tmp_path, monkeypatch):
    """Database on a temporary SQLite file, also used by Database() defaults."""
    path = str(tmp_path / "test.db")
    monkeypatch.setattr(settings, "DATABASE_PATH", path)
    return Database(path)


@pytest.fixture
def session(db):
    session = db.get_session()
    yield session
    session.close()


@pytest.fixture
def make_news(session):
    """Insert a News record with sensible defaults."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        title = overrides.pop("title", f"Noticia de prueba {counter['n']}")
        description = overrides.pop("description", None)
        values = {
            "title": title,
            "description": description,
            "link": f"https://example.com/news/{counter['n']}",
            "pub_date": datetime.utcnow(),
            "source": "BetisWeb",
            "content_hash": generate_content_hash(title, description),
            "ai_probability": 50,
            "ai_analysis": "Rumor de prueba",
            "is_relevant_to_betis": True,
        }
        values.update(overrides)
        news = News(**values)
        session.add(news)
        session.commit()
        return news

    return _make


@pytest.fixture
def rumor_output():
    """Build rumor_analysis StructuredOutput instances from wire-format dicts."""
    schema = load_pydantic_schema("rumor_analysis")

    def _build(**overrides):
        payload = {
            "probability": 80,
            "reasoning": "Fuente fiable con detalles concretos.",
            "confidence": "high",
            "isTransferRumor": True,
            "isRelevantToBetis": True,
            "players": [],
        }
        payload.update(overrides)
        return schema.model_validate(payload)

    return _build
