from __future__ import annotations
import asyncio
from datetime import timedelta
import pytest
import pytest_asyncio

from launchspace.errors import Conflict, NotFound, ValidationFailed
from launchspace.services.voting import VotingLedger
from launchspace.store.base import APPS, COMPETITIONS, USERS, VOTES


@pytest.fixture
def ledger(store, clock, events):
    return VotingLedger(store, clock, events)


@pytest_asyncio.fixture
async def setup(factory):
    comp = await factory.competition()
    app = await factory.app(comp, upvotes=4)
    voter = await factory.user()
    return comp, app, voter


async def _counters(store, comp, app, voter):
    return (
        (await store.find_one(APPS, {"id": app["id"]}))["upvotes"],
        (await store.find_one(USERS, {"id": voter["id"]}))["total_votes"],
        (await store.find_one(COMPETITIONS, {"id": comp["id"]}))["total_votes"],
    )


@pytest.mark.asyncio
async def test_upvote_moves_all_three_counters(ledger, store, setup, events):
    comp, app, voter = setup
    outcome = await ledger.cast_vote(voter["id"], app["id"], "upvote", ip_address="10.0.0.1")
    assert outcome.to_dict() == {"appId": app["id"], "action": "upvote", "newVoteCount": 5, "userVoted": True}
    assert await _counters(store, comp, app, voter) == (5, 1, 1)
    vote = await store.find_one(VOTES, {"user_id": voter["id"]})
    assert vote["weekly_competition_id"] == comp["id"] and vote["ip_address"] == "10.0.0.1"
    assert events.names() == ["vote.cast"]


@pytest.mark.asyncio
async def test_remove_restores_counters(ledger, store, setup):
    comp, app, voter = setup
    await ledger.cast_vote(voter["id"], app["id"], "upvote")
    outcome = await ledger.cast_vote(voter["id"], app["id"], "remove")
    assert outcome.vote_count == 4 and outcome.user_voted is False
    assert await _counters(store, comp, app, voter) == (4, 0, 0)
    assert await store.count(VOTES, {}) == 0


@pytest.mark.asyncio
async def test_second_upvote_is_rejected(ledger, store, setup):
    comp, app, voter = setup
    await ledger.cast_vote(voter["id"], app["id"], "upvote")
    with pytest.raises(Conflict) as ei:
        await ledger.cast_vote(voter["id"], app["id"], "upvote")
    assert ei.value.code == "ALREADY_VOTED"
    assert await _counters(store, comp, app, voter) == (5, 1, 1)


@pytest.mark.asyncio
async def test_concurrent_upvotes_from_one_user_count_once(ledger, store, setup):
    comp, app, voter = setup
    results = await asyncio.gather(
        ledger.cast_vote(voter["id"], app["id"], "upvote"),
        ledger.cast_vote(voter["id"], app["id"], "upvote"),
        return_exceptions=True,
    )
    assert sum(1 for r in results if isinstance(r, Conflict)) == 1
    assert await _counters(store, comp, app, voter) == (5, 1, 1)


@pytest.mark.asyncio
async def test_remove_without_vote(ledger, setup):
    _, app, voter = setup
    with pytest.raises(ValidationFailed) as ei:
        await ledger.cast_vote(voter["id"], app["id"], "remove")
    assert ei.value.code == "NO_VOTE"


@pytest.mark.asyncio
async def test_only_live_projects_take_votes(ledger, factory, setup):
    comp, _, voter = setup
    pending = await factory.app(comp, status="pending")
    with pytest.raises(ValidationFailed) as ei:
        await ledger.cast_vote(voter["id"], pending["id"], "upvote")
    assert ei.value.code == "NOT_LIVE"

    orphan = await factory.app(None)
    with pytest.raises(ValidationFailed) as ei:
        await ledger.cast_vote(voter["id"], orphan["id"], "upvote")
    assert ei.value.code == "NO_COMPETITION"

    with pytest.raises(NotFound):
        await ledger.cast_vote(voter["id"], "missing", "upvote")


@pytest.mark.asyncio
async def test_voting_closes_with_the_window(ledger, setup, clock):
    comp, app, voter = setup
    await ledger.cast_vote(voter["id"], app["id"], "upvote")
    clock.set(comp["end_date"] + timedelta(milliseconds=1))
    with pytest.raises(ValidationFailed) as ei:
        await ledger.cast_vote(voter["id"], app["id"], "remove")
    assert ei.value.code == "VOTING_CLOSED"


@pytest.mark.asyncio
async def test_last_millisecond_still_counts(ledger, setup, clock):
    comp, app, voter = setup
    clock.set(comp["end_date"])
    outcome = await ledger.cast_vote(voter["id"], app["id"], "upvote")
    assert outcome.vote_count == 5


@pytest.mark.asyncio
async def test_invalid_action(ledger, setup):
    _, app, voter = setup
    with pytest.raises(ValidationFailed) as ei:
        await ledger.cast_vote(voter["id"], app["id"], "downvote")
    assert ei.value.code == "INVALID_ACTION"


@pytest.mark.asyncio
async def test_vote_status(ledger, setup):
    _, app, voter = setup
    await ledger.cast_vote(voter["id"], app["id"], "upvote")
    assert await ledger.vote_status(app["id"], voter["id"]) == {"appId": app["id"], "voteCount": 5, "userVoted": True}
    assert (await ledger.vote_status(app["id"]))["userVoted"] is False
