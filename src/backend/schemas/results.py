"""
Result schemas produced by the results aggregator.
"""

from typing import Optional

from pydantic import BaseModel, Field

from models.documents import QuestionType


class OptionTally(BaseModel):
    option_id: str
    text: str
    count: int = 0
    weighted_count: int = 0
    percentage: float = 0.0


class RankingTally(BaseModel):
    option_id: str
    text: str
    average_rank: float = 0.0
    total_votes: int = 0
    position_counts: dict[int, int] = Field(default_factory=dict)


class QuestionResult(BaseModel):
    question_id: str
    question: str
    type: QuestionType
    total_votes: int = 0
    options: Optional[list[OptionTally]] = None
    rankings: Optional[list[RankingTally]] = None
    text_answers: Optional[int] = None
    sample_answers: Optional[list[str]] = None


class ElectionResults(BaseModel):
    election_id: str
    title: str
    status: str
    total_votes: int
    ballot_version: Optional[int] = None
    questions: list[QuestionResult] = Field(default_factory=list)
    vote_statistics: Optional[dict[str, int]] = None
    participation_rate: Optional[float] = None
