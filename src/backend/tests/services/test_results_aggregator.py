"""
Tests for results aggregation and gating.
"""

from uuid import uuid4

import pytest

from core.exceptions import AuthorizationError, NotFoundError
from models.documents import BallotDocument, ElectionStatus, VoteDocument, VoteStatus
from services.results_aggregator import ResultsAggregator, aggregate, participation_rate


def make_vote(ballot: BallotDocument, choices: list[dict], weight: int = 1, status=VoteStatus.CONFIRMED):
    return VoteDocument(
        election_id=ballot.election_id,
        voter_id=str(uuid4()),
        ballot_id=ballot.id,
        ballot_version=ballot.version,
        choices=choices,
        vote_weight=weight,
        vote_hash="0x" + "00" * 32,
        status=status,
    )


@pytest.fixture
def ballot(active_election, sample_questions) -> BallotDocument:
    return BallotDocument(election_id=active_election.id, questions=sample_questions)


def by_question(results) -> dict:
    return {r.question_id: r for r in results}


@pytest.mark.unit
class TestAggregate:
    """Pure tallying."""

    def test_single_choice_percentages_and_weights(self, ballot) -> None:
        votes = [
            make_vote(ballot, [{"question_id": "chair", "selected_options": ["alice"]}]),
            make_vote(ballot, [{"question_id": "chair", "selected_options": ["alice"]}]),
            make_vote(ballot, [{"question_id": "chair", "selected_options": ["alice"]}], weight=5),
            make_vote(ballot, [{"question_id": "chair", "selected_options": ["bob"]}]),
            make_vote(ballot, [{"question_id": "chair", "selected_options": ["bob"]}]),
        ]

        chair = by_question(aggregate(ballot, votes))["chair"]
        options = {o.option_id: o for o in chair.options}

        assert chair.total_votes == 5
        assert options["alice"].count == 3
        assert options["alice"].percentage == 60.0
        assert options["alice"].weighted_count == 7
        assert options["bob"].percentage == 40.0

    def test_multiple_choice_percentages_use_respondents(self, ballot) -> None:
        votes = [
            make_vote(ballot, [{"question_id": "committees", "selected_options": ["audit", "finance"]}]),
            make_vote(ballot, [{"question_id": "committees", "selected_options": ["audit"]}]),
            make_vote(ballot, [{"question_id": "chair", "selected_options": ["bob"]}]),
        ]

        committees = by_question(aggregate(ballot, votes))["committees"]
        options = {o.option_id: o for o in committees.options}

        assert committees.total_votes == 2
        assert options["audit"].percentage == 100.0
        assert options["finance"].percentage == 50.0
        assert options["events"].count == 0

    def test_ranking_average_positions(self, ballot) -> None:
        votes = [
            make_vote(ballot, [{"question_id": "priorities", "ranking_order": ["a", "b"]}]),
            make_vote(ballot, [{"question_id": "priorities", "ranking_order": ["a", "b"]}]),
            make_vote(ballot, [{"question_id": "priorities", "ranking_order": ["b", "a"]}]),
        ]

        priorities = by_question(aggregate(ballot, votes))["priorities"]

        assert [r.option_id for r in priorities.rankings] == ["a", "b"]
        assert priorities.rankings[0].average_rank == 1.33
        assert priorities.rankings[1].average_rank == 1.67
        assert priorities.rankings[0].position_counts == {1: 2, 2: 1}

    def test_text_answers_are_sampled(self, ballot) -> None:
        votes = [make_vote(ballot, [{"question_id": "comments", "text_answer": f"note {n}"}]) for n in range(7)]
        votes.append(make_vote(ballot, [{"question_id": "comments", "text_answer": "   "}]))

        comments = by_question(aggregate(ballot, votes))["comments"]

        assert comments.text_answers == 7
        assert comments.sample_answers == ["note 0", "note 1", "note 2", "note 3", "note 4"]

    def test_no_votes(self, ballot) -> None:
        results = aggregate(ballot, [])

        assert [r.question_id for r in results] == ["chair", "committees", "priorities", "comments"]
        assert all(r.total_votes == 0 for r in results)
        assert by_question(results)["chair"].options[0].percentage == 0.0

    @pytest.mark.parametrize("total,maximum,expected", [(5, 10, 50.0), (1, 3, 33.33), (4, 0, None)])
    def test_participation_rate(self, total, maximum, expected) -> None:
        assert participation_rate(total, maximum) == expected


@pytest.mark.unit
class TestResultsAggregator:
    """Ownership and visibility gating."""

    @pytest.fixture
    async def aggregator(self, elections, ballots, votes, active_election, ballot) -> ResultsAggregator:
        await elections.create(active_election)
        await ballots.create(ballot)
        for option in ("alice", "alice", "bob", "bob", "alice"):
            await votes.create(make_vote(ballot, [{"question_id": "chair", "selected_options": [option]}]))
        await votes.create(
            make_vote(ballot, [{"question_id": "chair", "selected_options": ["bob"]}], status=VoteStatus.PENDING)
        )
        return ResultsAggregator(elections, ballots, votes)

    async def test_creator_results_count_confirmed_only(self, aggregator, active_election, creator_id) -> None:
        results = await aggregator.get_results(active_election.id, creator_id)

        assert results.total_votes == 5
        assert results.ballot_version == 1
        assert results.vote_statistics == {"CONFIRMED": 5, "PENDING": 1}

    async def test_other_creator_is_rejected(self, aggregator, active_election) -> None:
        with pytest.raises(AuthorizationError):
            await aggregator.get_results(active_election.id, "someone-else")

    async def test_hidden_while_active_without_real_time(self, aggregator, elections, active_election, creator_id):
        elections.items[active_election.id].real_time_results = False

        with pytest.raises(AuthorizationError):
            await aggregator.get_results(active_election.id, creator_id)

    async def test_public_results_include_participation(self, aggregator, active_election) -> None:
        results = await aggregator.get_public_results(active_election.id)

        assert results.participation_rate == 50.0
        assert results.vote_statistics is None

    async def test_public_results_need_public_election(self, aggregator, elections, active_election) -> None:
        stored = elections.items[active_election.id]
        stored.is_public = False
        stored.status = ElectionStatus.COMPLETED

        with pytest.raises(AuthorizationError):
            await aggregator.get_public_results(active_election.id)

    async def test_unknown_election(self, aggregator) -> None:
        with pytest.raises(NotFoundError):
            await aggregator.get_public_results("missing")
