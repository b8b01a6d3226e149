"""
Pydantic schema for transfer rumor analysis structured output.

The model reads a news item about Real Betis and decides:
- Whether it is a transfer rumor at all
- How credible the rumor is (0-100)
- Whether it is actually about Real Betis
- Which players are involved and in which direction
"""

from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator


class ExtractedPlayer(BaseModel):
    """Player mentioned in the news item."""

    name: str = Field(
        description="Player name as it appears in the news (e.g. 'Isco', 'Giovani Lo Celso')"
    )

    role: Optional[Literal['target', 'departing', 'mentioned']] = Field(
        default=None,
        description=(
            "Role of the player in the story:\n"
            "- 'target': Betis wants to sign this player\n"
            "- 'departing': this Betis player could leave the club\n"
            "- 'mentioned': named without a clear transfer direction"
        )
    )


class StructuredOutput(BaseModel):
    """
    Structured output for rumor credibility analysis.

    Wire format uses camelCase keys (isTransferRumor, isRelevantToBetis,
    irrelevanceReason). A transfer rumor must come with a probability.
    """

    model_config = ConfigDict(populate_by_name=True)

    probability: Optional[int] = Field(
        default=None,
        ge=0,
        le=100,
        description=(
            "Credibility of the transfer rumor from 0 to 100.\n"
            "- 0 when the item is not a transfer rumor\n"
            "- null only when it cannot be determined"
        )
    )

    reasoning: str = Field(
        description="Brief explanation (1-3 sentences, in Spanish) of the assessment"
    )

    confidence: Literal['low', 'medium', 'high'] = Field(
        description="Confidence in the assessment itself"
    )

    is_transfer_rumor: Optional[bool] = Field(
        default=None,
        alias='isTransferRumor',
        description="True for signings, departures, loans or contract talks; false for match reports, injuries, etc."
    )

    is_relevant_to_betis: bool = Field(
        alias='isRelevantToBetis',
        description="False when the news is about another club or sport (e.g. Betis basketball)"
    )

    irrelevance_reason: Optional[str] = Field(
        default=None,
        alias='irrelevanceReason',
        description="Why the news is not relevant to Real Betis football (only when isRelevantToBetis is false)"
    )

    players: List[ExtractedPlayer] = Field(
        default_factory=list,
        description="Players involved in the transfer story (empty for non-rumors)"
    )

    @model_validator(mode='after')
    def rumor_requires_probability(self):
        if self.is_transfer_rumor and self.probability is None:
            raise ValueError("isTransferRumor is true but probability is null")
        return self
