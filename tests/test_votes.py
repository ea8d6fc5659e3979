import threading
from datetime import UTC, datetime, timedelta

import pytest

from congress.errors import ValidationFailedError
from congress.votes import Trend, Vote, VoteLedger, VoteType, parse_vote_type


def test_last_write_wins() -> None:
    ledger = VoteLedger()
    ledger.record_vote("m1", "up", "Democrat")
    ledger.record_vote("m1", "down", "Democrat")
    stats = ledger.stats("Democrat")
    assert (stats.upvotes, stats.downvotes, stats.total) == (0, 1, 1)
    assert stats.net_score == -1


def test_none_vote_deletes() -> None:
    ledger = VoteLedger()
    ledger.record_vote("m1", "up", "Democrat")
    assert ledger.record_vote("m1", "none", "Democrat") is None
    assert "m1" not in ledger
    assert ledger.stats("Democrat").total == 0


def test_remove_vote_is_idempotent() -> None:
    ledger = VoteLedger()
    ledger.record_vote("m1", "up", "Democrat")
    first = ledger.remove_vote("m1")
    second = ledger.remove_vote("m1")
    assert first is not None
    assert first.vote_type is VoteType.UP
    assert second is None
    assert len(ledger) == 0


def test_invalid_vote_type_rejected() -> None:
    ledger = VoteLedger()
    with pytest.raises(ValidationFailedError):
        ledger.record_vote("m1", "sideways", "Democrat")
    assert len(ledger) == 0
    assert parse_vote_type("UP") is VoteType.UP


def test_stats_filters_by_topic_and_rounds_approval() -> None:
    ledger = VoteLedger()
    ledger.record_vote("m1", "up", "Republican", topic="Taxes")
    ledger.record_vote("m2", "up", "Republican", topic="Taxes")
    ledger.record_vote("m3", "down", "Republican", topic="Taxes")
    ledger.record_vote("m4", "down", "Republican", topic="Defense")
    ledger.record_vote("m5", "up", "Democrat", topic="Taxes")

    taxes = ledger.stats("Republican", "Taxes")
    assert (taxes.upvotes, taxes.downvotes, taxes.total) == (2, 1, 3)
    assert taxes.approval_rate == 66.7
    assert ledger.stats("Republican").total == 4
    assert ledger.stats("Green").approval_rate == 0.0


def test_recent_trend_uses_latest_votes() -> None:
    now = datetime.now(UTC)
    old = [
        Vote(f"old{i}", VoteType.DOWN, "Democrat", timestamp=now - timedelta(hours=1), sequence=i)
        for i in range(5)
    ]
    ledger = VoteLedger(old)
    for i in range(3):
        ledger.record_vote(f"new{i}", "up", "Democrat")

    recent = ledger.recent_trend("Democrat", count=3)
    assert recent.trend is Trend.IMPROVING
    assert (recent.upvotes, recent.downvotes) == (3, 0)
    assert ledger.recent_trend("Democrat", count=8).trend is Trend.DECLINING
    assert ledger.recent_trend("Nobody").trend is Trend.STABLE


def test_tally_by_agent_counts_live_argument_votes() -> None:
    ledger = VoteLedger()
    ledger.record_vote("arg1", "up", "Democrat", agent_id="a", debate_id="d1")
    ledger.record_vote("arg2", "down", "Democrat", agent_id="a", debate_id="d1")
    ledger.record_vote("arg3", "down", "Republican", agent_id="b", debate_id="d1")
    ledger.record_vote("arg4", "up", "Republican", agent_id="b", debate_id="d2")
    ledger.record_vote("arg2", "none", "Democrat")

    tallies = ledger.tally_by_agent("d1")
    assert tallies["a"].to_dict() == {"upvotes": 1, "downvotes": 0}
    assert tallies["b"].net == -1


def test_restored_ledger_continues_sequence() -> None:
    ledger = VoteLedger([Vote("m1", VoteType.UP, "Democrat", sequence=7)])
    vote = ledger.record_vote("m2", "down", "Democrat")
    assert vote is not None
    assert vote.sequence == 8


def test_concurrent_writers_lose_nothing() -> None:
    ledger = VoteLedger()

    def writer(prefix: str) -> None:
        for i in range(200):
            ledger.record_vote(f"{prefix}{i}", "up" if i % 2 else "down", "Independent")

    threads = [threading.Thread(target=writer, args=(p,)) for p in "abcd"]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    stats = ledger.stats("Independent")
    assert stats.total == 800
    assert stats.upvotes == stats.downvotes == 400
