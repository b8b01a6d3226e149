"""Tests for the rumor classifier, its schema and field derivation."""

from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

import settings
from llm import openai_client
from llm.openai_client import client_timeout, load_pydantic_schema, render_prompts
from processors.credibility import (
    CredibilityClassifier,
    ExtractedPlayer,
    RumorAnalysis,
    derive_news_fields,
)
from processors.retry import RetryPolicy
from settings import ConfigurationError


def _policy(sleeps=None, attempts=3):
    sleeps = [] if sleeps is None else sleeps
    return RetryPolicy(max_attempts=attempts, timeout_seconds=5, backoff_seconds=1, sleep=sleeps.append)


class TestStructuredOutput:
    """Tests for the rumor_analysis response schema."""

    def test_parses_camel_case_wire_format(self, rumor_output):
        output = rumor_output(
            isRelevantToBetis=False,
            irrelevanceReason="Baloncesto",
            players=[{"name": "Isco", "role": "target"}, {"name": "Fekir"}],
        )
        assert output.is_transfer_rumor is True
        assert output.is_relevant_to_betis is False
        assert output.irrelevance_reason == "Baloncesto"
        assert output.players[1].role is None

    def test_rumor_without_probability_is_malformed(self, rumor_output):
        with pytest.raises(ValidationError):
            rumor_output(probability=None)

    def test_non_rumor_may_omit_probability(self, rumor_output):
        output = rumor_output(probability=None, isTransferRumor=False)
        assert output.probability is None

    @pytest.mark.parametrize("probability", [-1, 101])
    def test_probability_range(self, rumor_output, probability):
        with pytest.raises(ValidationError):
            rumor_output(probability=probability)

    def test_missing_required_field(self):
        schema = load_pydantic_schema("rumor_analysis")
        with pytest.raises(ValidationError):
            schema.model_validate({"probability": 10, "confidence": "low"})


class TestPrompts:
    """Tests for prompt rendering."""

    def test_reassessment_context_rendered(self):
        system, user = render_prompts("rumor_analysis", {
            "title": "Isco vuelve al Betis",
            "description": "",
            "source": "BetisWeb",
            "articleContent": None,
            "adminContext": "Es el Betis de baloncesto",
            "isReassessment": True,
        })
        assert "Reevaluación" in system
        assert "Isco vuelve al Betis" in user
        assert "Es el Betis de baloncesto" in user

    def test_plain_analysis_has_no_admin_block(self):
        system, user = render_prompts("rumor_analysis", {
            "title": "Isco vuelve al Betis",
            "description": "",
            "source": "BetisWeb",
            "articleContent": "Texto del artículo",
            "adminContext": None,
            "isReassessment": False,
        })
        assert "Reevaluación" not in system
        assert "Contexto del administrador" not in user
        assert "Texto del artículo" in user


class TestDeriveNewsFields:
    """Tests for the single mapping from analysis to stored fields."""

    def test_rumor_keeps_probability(self):
        fields = derive_news_fields(RumorAnalysis(80, "ok", "high", True))
        assert fields["ai_probability"] == 80
        assert fields["is_hidden"] is False
        assert fields["ai_analyzed_at"] is not None

    def test_non_rumor_forces_zero(self):
        fields = derive_news_fields(RumorAnalysis(35, "crónica", "high", False))
        assert fields["ai_probability"] == 0

    def test_undetermined_is_none(self):
        fields = derive_news_fields(RumorAnalysis(60, "?", "low", None))
        assert fields["ai_probability"] is None

    @pytest.mark.parametrize("raw,expected", [(150, 100), (-5, 0)])
    def test_rumor_probability_clamped(self, raw, expected):
        assert derive_news_fields(RumorAnalysis(raw, "x", "high", True))["ai_probability"] == expected

    def test_irrelevant_is_hidden(self):
        analysis = RumorAnalysis(70, "x", "high", True, is_relevant_to_betis=False, irrelevance_reason="Baloncesto")
        fields = derive_news_fields(analysis)
        assert fields["is_hidden"] is True
        assert fields["irrelevance_reason"] == "Baloncesto"

    def test_not_analyzed(self):
        fields = derive_news_fields(RumorAnalysis.not_analyzed())
        assert fields["ai_probability"] is None
        assert fields["ai_analyzed_at"] is None
        assert fields["is_relevant_to_betis"] is True
        assert fields["is_hidden"] is False


class TestCredibilityClassifier:
    """Tests for the classifier with a faked LLM call."""

    def test_successful_analysis(self, rumor_output):
        structured_output = MagicMock(return_value=rumor_output(players=[{"name": "Isco", "role": "target"}]))
        classifier = CredibilityClassifier(structured_output=structured_output, policy=_policy())

        analysis = classifier.analyze("Isco vuelve al Betis", None, "BetisWeb", article_content="Texto")

        assert analysis.analyzed is True
        assert analysis.probability == 80
        assert analysis.confidence == "high"
        assert analysis.players == [ExtractedPlayer("Isco", "target")]

        task_name, data = structured_output.call_args.args
        assert task_name == "rumor_analysis"
        assert data["description"] == ""
        assert data["articleContent"] == "Texto"
        assert data["isReassessment"] is False

    def test_reassessment_passes_admin_context(self, rumor_output):
        structured_output = MagicMock(return_value=rumor_output())
        classifier = CredibilityClassifier(structured_output=structured_output, policy=_policy())

        classifier.analyze("t", "d", "s", admin_context="No es fichaje", is_reassessment=True, news_id=5)

        _, data = structured_output.call_args.args
        assert data["adminContext"] == "No es fichaje"
        assert data["isReassessment"] is True
        assert structured_output.call_args.kwargs["context_data"]["news_id"] == 5

    def test_exhausted_returns_not_analyzed(self):
        sleeps = []
        structured_output = MagicMock(side_effect=RuntimeError("quota exceeded"))
        classifier = CredibilityClassifier(structured_output=structured_output, policy=_policy(sleeps))

        analysis = classifier.analyze("t", "d", "s")

        assert structured_output.call_count == 3
        assert sleeps == [1, 1]
        assert analysis.analyzed is False
        assert analysis.probability is None
        assert analysis.is_transfer_rumor is None
        assert analysis.confidence == "low"
        assert analysis.is_relevant_to_betis is True
        assert analysis.players == []

    def test_malformed_then_valid(self, rumor_output):
        structured_output = MagicMock(side_effect=[ValueError("bad json"), rumor_output(probability=40)])
        classifier = CredibilityClassifier(structured_output=structured_output, policy=_policy())

        analysis = classifier.analyze("t", "d", "s")
        assert analysis.analyzed is True
        assert analysis.probability == 40

    def test_configuration_error_propagates(self):
        structured_output = MagicMock(side_effect=ConfigurationError("OPENAI_API_KEY environment variable is required"))
        classifier = CredibilityClassifier(structured_output=structured_output, policy=_policy())

        with pytest.raises(ConfigurationError):
            classifier.analyze("t", "d", "s")
        assert structured_output.call_count == 1


class TestClientTimeout:
    """Tests for the SDK request timeout."""

    @pytest.mark.parametrize("openai_timeout,attempt_timeout,expected", [
        (20, 30.0, 20.0),
        (30, 30.0, 24.0),
        (60, 10.0, 8.0),
    ])
    def test_stays_below_attempt_timeout(self, openai_timeout, attempt_timeout, expected):
        timeout = client_timeout(openai_timeout, attempt_timeout)
        assert timeout == pytest.approx(expected)
        assert timeout < attempt_timeout

    def test_client_uses_capped_timeout(self, monkeypatch):
        factory = MagicMock()
        monkeypatch.setattr(openai_client, "OpenAI", factory)
        monkeypatch.setattr(openai_client, "_client", None)

        openai_client.get_client()

        kwargs = factory.call_args.kwargs
        assert kwargs["max_retries"] == 0
        assert kwargs["timeout"] < settings.CLASSIFIER_TIMEOUT
