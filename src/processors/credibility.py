"""
Rumor credibility classification.

Wraps the rumor_analysis structured output call in the retry policy and maps
the answer to the fields stored on a news record.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
import logging

from llm.openai_client import openai_structured_output
from processors.retry import RetryPolicy, Success

logger = logging.getLogger(__name__)

TASK_NAME = 'rumor_analysis'
CONFIDENCE_LEVELS = ('low', 'medium', 'high')


@dataclass
class ExtractedPlayer:
    name: str
    role: Optional[str] = None


@dataclass
class RumorAnalysis:
    """
    Classification of a single news item.

    is_transfer_rumor None means the item could not be classified; analyzed
    is False only when the classifier gave up.
    """
    probability: Optional[int]
    reasoning: str
    confidence: str
    is_transfer_rumor: Optional[bool]
    is_relevant_to_betis: bool = True
    irrelevance_reason: Optional[str] = None
    players: List[ExtractedPlayer] = field(default_factory=list)
    analyzed: bool = True

    @classmethod
    def not_analyzed(cls, reason: str = 'Análisis no disponible') -> 'RumorAnalysis':
        return cls(
            probability=None,
            reasoning=reason,
            confidence='low',
            is_transfer_rumor=None,
            is_relevant_to_betis=True,
            analyzed=False,
        )

    @classmethod
    def from_output(cls, output) -> 'RumorAnalysis':
        """Build from a rumor_analysis StructuredOutput instance."""
        return cls(
            probability=output.probability,
            reasoning=output.reasoning,
            confidence=output.confidence if output.confidence in CONFIDENCE_LEVELS else 'low',
            is_transfer_rumor=output.is_transfer_rumor,
            is_relevant_to_betis=output.is_relevant_to_betis,
            irrelevance_reason=output.irrelevance_reason,
            players=[ExtractedPlayer(p.name, p.role) for p in output.players],
        )


def derive_news_fields(analysis: RumorAnalysis, now: datetime = None) -> Dict[str, Any]:
    """
    Map an analysis to News column values.

    - is_transfer_rumor None  -> ai_probability None
    - is_transfer_rumor False -> ai_probability 0 (whatever probability says)
    - is_transfer_rumor True  -> probability clamped to 0-100
    Irrelevant items are hidden.
    """
    if analysis.is_transfer_rumor is None:
        probability = None
    elif analysis.is_transfer_rumor is False:
        probability = 0
    elif analysis.probability is None:
        probability = None
    else:
        probability = max(0, min(100, int(analysis.probability)))

    return {
        'ai_probability': probability,
        'ai_analysis': analysis.reasoning,
        'ai_analyzed_at': (now or datetime.utcnow()) if analysis.analyzed else None,
        'is_relevant_to_betis': analysis.is_relevant_to_betis,
        'irrelevance_reason': None if analysis.is_relevant_to_betis else analysis.irrelevance_reason,
        'is_hidden': not analysis.is_relevant_to_betis,
    }


class CredibilityClassifier:
    """Transfer rumor classifier backed by an LLM structured output call."""

    def __init__(self, structured_output: Callable = None, policy: RetryPolicy = None):
        self.structured_output = structured_output or openai_structured_output
        self.policy = policy or RetryPolicy()

    def analyze(
        self,
        title: str,
        description: Optional[str],
        source: str,
        article_content: Optional[str] = None,
        admin_context: Optional[str] = None,
        is_reassessment: bool = False,
        news_id: Optional[int] = None
    ) -> RumorAnalysis:
        """
        Classify a news item.

        Never raises for classifier failures: once the retry policy is
        exhausted a not-analyzed result is returned.

        Raises:
            ConfigurationError: If the LLM client is not configured
        """
        data = {
            'title': title,
            'description': description or '',
            'source': source,
            'articleContent': article_content,
            'adminContext': admin_context,
            'isReassessment': is_reassessment,
        }
        context_data = {'news_id': news_id, 'title': title[:200], 'is_reassessment': is_reassessment}

        outcome = self.policy.execute(self.structured_output, TASK_NAME, data, context_data=context_data)

        if isinstance(outcome, Success):
            return RumorAnalysis.from_output(outcome.value)

        logger.warning("Rumor analysis failed for '%s' after %d attempts", title[:80], outcome.attempts)
        return RumorAnalysis.not_analyzed()
