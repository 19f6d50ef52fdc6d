"""
Results aggregation.

Tallies CONFIRMED votes against the active ballot. Percentages are relative
to the respondents of each question, not to the electorate.
"""

from collections import defaultdict
from typing import Optional

import structlog

from core.config import settings
from core.exceptions import AuthorizationError, NotFoundError
from models.documents import (
    BallotDocument,
    BallotKind,
    BallotQuestion,
    ElectionDocument,
    QuestionType,
    VoteChoice,
    VoteDocument,
)
from repositories.provider import (
    BallotRepositoryProtocol,
    ElectionRepositoryProtocol,
    VoteRepositoryProtocol,
)
from schemas.results import ElectionResults, OptionTally, QuestionResult, RankingTally
from services.election_state import ElectionStateMachine, utc_now

logger = structlog.get_logger(__name__)


def _percentage(count: int, respondents: int) -> float:
    if respondents == 0:
        return 0.0
    return round(count / respondents * 100, 2)


def _tally_options(question: BallotQuestion, answers: list[tuple[VoteChoice, int]]) -> QuestionResult:
    counts: dict[str, int] = defaultdict(int)
    weighted: dict[str, int] = defaultdict(int)
    respondents = 0

    for choice, weight in answers:
        if not choice.selected_options:
            continue
        respondents += 1
        for option_id in set(choice.selected_options):
            counts[option_id] += 1
            weighted[option_id] += weight

    return QuestionResult(
        question_id=question.question_id,
        question=question.question,
        type=question.type,
        total_votes=respondents,
        options=[
            OptionTally(
                option_id=option.option_id,
                text=option.text,
                count=counts[option.option_id],
                weighted_count=weighted[option.option_id],
                percentage=_percentage(counts[option.option_id], respondents),
            )
            for option in question.options
        ],
    )


def _tally_text(question: BallotQuestion, answers: list[tuple[VoteChoice, int]]) -> QuestionResult:
    texts = [choice.text_answer.strip() for choice, _ in answers if choice.text_answer and choice.text_answer.strip()]
    return QuestionResult(
        question_id=question.question_id,
        question=question.question,
        type=question.type,
        total_votes=len(texts),
        text_answers=len(texts),
        sample_answers=texts[: settings.RESULTS_TEXT_SAMPLE_SIZE],
    )


def _tally_ranking(question: BallotQuestion, answers: list[tuple[VoteChoice, int]]) -> QuestionResult:
    """Average 1-indexed position per option; lower is better, unranked options last."""
    positions: dict[str, dict[int, int]] = {o.option_id: defaultdict(int) for o in question.options}
    respondents = 0

    for choice, _ in answers:
        if not choice.ranking_order:
            continue
        respondents += 1
        for index, option_id in enumerate(choice.ranking_order, start=1):
            if option_id in positions:
                positions[option_id][index] += 1

    rankings = []
    for option in question.options:
        histogram = positions[option.option_id]
        total = sum(histogram.values())
        average = round(sum(pos * n for pos, n in histogram.items()) / total, 2) if total else 0.0
        rankings.append(
            RankingTally(
                option_id=option.option_id,
                text=option.text,
                average_rank=average,
                total_votes=total,
                position_counts=dict(sorted(histogram.items())),
            )
        )
    rankings.sort(key=lambda r: (r.total_votes == 0, r.average_rank))

    return QuestionResult(
        question_id=question.question_id,
        question=question.question,
        type=question.type,
        total_votes=respondents,
        rankings=rankings,
    )


def aggregate(ballot: BallotDocument, votes: list[VoteDocument]) -> list[QuestionResult]:
    """Tally votes per question of the ballot. Callers pass CONFIRMED votes only."""
    answers: dict[str, list[tuple[VoteChoice, int]]] = defaultdict(list)
    for vote in votes:
        for choice in vote.choices:
            answers[choice.question_id].append((choice, vote.vote_weight))

    results = []
    for question in ballot.ordered_questions():
        qtype = QuestionType(question.type)
        question_answers = answers.get(question.question_id, [])
        if qtype == QuestionType.TEXT:
            results.append(_tally_text(question, question_answers))
        elif qtype == QuestionType.RANKING:
            results.append(_tally_ranking(question, question_answers))
        else:
            results.append(_tally_options(question, question_answers))
    return results


class ResultsAggregator:
    """Serve gated election results to creators and the public."""

    def __init__(
        self,
        elections: ElectionRepositoryProtocol,
        ballots: BallotRepositoryProtocol,
        votes: VoteRepositoryProtocol,
    ):
        self.elections = elections
        self.ballots = ballots
        self.votes = votes

    async def _get_election(self, election_id: str) -> ElectionDocument:
        election = await self.elections.get_by_id(election_id)
        if election is None:
            raise NotFoundError("Election not found")
        return election

    async def _build(self, election: ElectionDocument) -> ElectionResults:
        ballot = await self.ballots.get_active(election.id, BallotKind.QUESTIONS)
        votes = await self.votes.list_confirmed(election.id)
        return ElectionResults(
            election_id=election.id,
            title=election.title,
            status=election.status,
            total_votes=len(votes),
            ballot_version=ballot.version if ballot else None,
            questions=aggregate(ballot, votes) if ballot else [],
        )

    async def get_results(self, election_id: str, creator_id: str) -> ElectionResults:
        """
        Results for the election's creator, with vote counts per status.

        Raises:
            NotFoundError: Unknown election
            AuthorizationError: Not the creator, or results are not available yet
        """
        election = await self._get_election(election_id)
        if election.creator_id != creator_id:
            raise AuthorizationError("Not authorized to view results for this election")
        ElectionStateMachine.check_results_visible(election, utc_now())

        results = await self._build(election)
        results.vote_statistics = await self.votes.count_by_status(election.id)
        logger.info("results_served", election_id=election.id, audience="creator", total_votes=results.total_votes)
        return results

    async def get_public_results(self, election_id: str) -> ElectionResults:
        election = await self._get_election(election_id)
        ElectionStateMachine.check_results_visible(election, utc_now(), public=True)

        results = await self._build(election)
        results.participation_rate = participation_rate(results.total_votes, election.max_voters_count)
        return results


def participation_rate(total_votes: int, max_voters: int) -> Optional[float]:
    if max_voters <= 0:
        return None
    return round(total_votes / max_voters * 100, 2)
