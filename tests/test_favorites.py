"""
Unit tests for FavoritesStore and the toggle state machine.
"""

import asyncio

import pytest

from conftest import FakeGateway, make_opportunity
from listing_engine.errors import (
    AuthenticationRequiredError,
    FavoriteMutationError,
    FavoriteTimeoutError,
    GatewayError,
)
from listing_engine.favorites import FavoritesStore, ToggleOperation, ToggleState
from listing_engine.models import OpportunityKind

JOB = OpportunityKind.JOB
INTERNSHIP = OpportunityKind.INTERNSHIP


@pytest.fixture
def store(gateway):
    return FavoritesStore(gateway, user_id="user-1")


class TestToggleOperation:
    def test_commit_path(self):
        op = ToggleOperation(kind=JOB, opportunity_id="j1", was_saved=False)
        assert op.saved is False

        op.begin()
        assert op.state is ToggleState.OPTIMISTIC
        assert op.saved is True

        op.commit()
        assert op.state is ToggleState.COMMITTED
        assert op.saved is True

    def test_rollback_path(self):
        op = ToggleOperation(kind=JOB, opportunity_id="j1", was_saved=True)
        op.begin()
        error = GatewayError("boom")

        op.roll_back(error)

        assert op.state is ToggleState.ROLLED_BACK
        assert op.saved is True
        assert op.error is error

    def test_illegal_transitions(self):
        op = ToggleOperation(kind=JOB, opportunity_id="j1", was_saved=False)
        with pytest.raises(RuntimeError):
            op.commit()
        op.begin()
        op.commit()
        with pytest.raises(RuntimeError):
            op.roll_back(GatewayError("late"))


class TestLoad:
    @pytest.mark.asyncio
    async def test_replaces_state_wholesale(self):
        gateway = FakeGateway(relations={("user-1", "j1", JOB), ("user-1", "i1", INTERNSHIP), ("user-2", "j9", JOB)})
        store = FavoritesStore(gateway, user_id="user-1")

        await store.load()

        assert store.saved_ids(JOB) == frozenset({"j1"})
        assert store.saved_ids(INTERNSHIP) == frozenset({"i1"})

        gateway.relations = {("user-1", "j2", JOB)}
        await store.load()

        assert store.saved_ids(JOB) == frozenset({"j2"})
        assert store.saved_ids(INTERNSHIP) == frozenset()

    @pytest.mark.asyncio
    async def test_no_user_clears_without_network(self):
        gateway = FakeGateway(relations={("user-1", "j1", JOB)})
        store = FavoritesStore(gateway, user_id="user-1")
        await store.load()
        gateway.calls.clear()

        await store.set_user(None)

        assert store.saved_ids(JOB) == frozenset()
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_state(self):
        gateway = FakeGateway(relations={("user-1", "j1", JOB)})
        store = FavoritesStore(gateway, user_id="user-1")
        await store.load()
        gateway.failures["fetch_favorite_relations"] = GatewayError("offline")

        with pytest.raises(GatewayError):
            await store.load()

        assert store.is_saved(JOB, "j1")

    @pytest.mark.asyncio
    async def test_failure_cancels_pending_fetch(self, monkeypatch):
        gateway = FakeGateway()
        store = FavoritesStore(gateway, user_id="user-1")
        finished = []

        async def fetch(user_id, kind):
            if kind is JOB:
                raise GatewayError("offline")
            await asyncio.sleep(0.1)
            finished.append(kind)
            return []

        monkeypatch.setattr(gateway, "fetch_favorite_relations", fetch)

        with pytest.raises(GatewayError):
            await store.load()
        await asyncio.sleep(0.2)

        assert finished == []

    @pytest.mark.asyncio
    async def test_set_user_switches_identity(self):
        gateway = FakeGateway(relations={("user-1", "j1", JOB), ("user-2", "j2", JOB)})
        store = FavoritesStore(gateway, user_id="user-1")
        await store.load()

        await store.set_user("user-2")

        assert store.user_id == "user-2"
        assert store.saved_ids(JOB) == frozenset({"j2"})


class TestToggle:
    @pytest.mark.asyncio
    async def test_happy_path_save_then_unsave(self, store, gateway):
        assert await store.toggle(JOB, "j1") is True
        assert store.is_saved(JOB, "j1") is True
        assert ("user-1", "j1", JOB) in gateway.relations

        assert await store.toggle(JOB, "j1") is False
        assert store.is_saved(JOB, "j1") is False
        assert gateway.relations == set()

    @pytest.mark.asyncio
    async def test_insert_checks_existence_first(self, store, gateway):
        await store.toggle(JOB, "j1")
        assert gateway.call_names() == ["exists_favorite_relation", "insert_favorite_relation"]

    @pytest.mark.asyncio
    async def test_existing_remote_relation_skips_insert(self, store, gateway):
        gateway.relations.add(("user-1", "j1", JOB))

        assert await store.toggle(JOB, "j1") is True

        assert gateway.call_names() == ["exists_favorite_relation"]
        assert store.is_saved(JOB, "j1")

    @pytest.mark.asyncio
    async def test_kinds_are_independent(self, store):
        await store.toggle(JOB, "42")
        assert store.is_saved(JOB, "42")
        assert not store.is_saved(INTERNSHIP, "42")

    @pytest.mark.asyncio
    async def test_rollback_on_insert_failure(self, store, gateway):
        gateway.failures["insert_favorite_relation"] = GatewayError("permission denied")

        with pytest.raises(FavoriteMutationError) as exc_info:
            await store.toggle(JOB, "j1")

        assert store.is_saved(JOB, "j1") is False
        assert exc_info.value.saved is False
        assert exc_info.value.operation.state is ToggleState.ROLLED_BACK

    @pytest.mark.asyncio
    async def test_rollback_on_delete_failure(self, store, gateway):
        await store.toggle(INTERNSHIP, "i1")
        gateway.failures["delete_favorite_relation"] = GatewayError("offline")

        with pytest.raises(FavoriteMutationError) as exc_info:
            await store.toggle(INTERNSHIP, "i1")

        assert store.is_saved(INTERNSHIP, "i1") is True
        assert exc_info.value.saved is True

    @pytest.mark.asyncio
    async def test_optimistic_state_visible_before_backend_answers(self, store, gateway):
        gateway.delays["exists_favorite_relation"] = 0.05

        task = asyncio.ensure_future(store.toggle(JOB, "j1"))
        await asyncio.sleep(0.01)
        assert store.is_saved(JOB, "j1") is True

        assert await task is True

    @pytest.mark.asyncio
    async def test_timeout_rolls_back(self, gateway):
        store = FavoritesStore(gateway, user_id="user-1", timeout_s=0.01)
        gateway.delays["exists_favorite_relation"] = 1.0

        with pytest.raises(FavoriteTimeoutError):
            await store.toggle(JOB, "j1")

        assert store.is_saved(JOB, "j1") is False

    @pytest.mark.asyncio
    async def test_requires_user(self, gateway):
        store = FavoritesStore(gateway, user_id=None)

        with pytest.raises(AuthenticationRequiredError):
            await store.toggle(JOB, "j1")

        assert gateway.calls == []
        assert store.saved_ids(JOB) == frozenset()

    @pytest.mark.asyncio
    async def test_rapid_double_toggle_is_serialized(self, store, gateway):
        gateway.delays["exists_favorite_relation"] = 0.02

        first, second = await asyncio.gather(store.toggle(JOB, "j1"), store.toggle(JOB, "j1"))

        assert (first, second) == (True, False)
        assert store.is_saved(JOB, "j1") is False
        assert gateway.relations == set()
        assert gateway.call_names() == [
            "exists_favorite_relation",
            "insert_favorite_relation",
            "delete_favorite_relation",
        ]

    @pytest.mark.asyncio
    async def test_cancelled_toggle_rolls_back(self, store, gateway):
        gateway.delays["exists_favorite_relation"] = 1.0

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(store.toggle(JOB, "j1"), timeout=0.02)

        assert store.is_saved(JOB, "j1") is False
        assert gateway.relations == set()

    @pytest.mark.asyncio
    async def test_cancelled_unsave_restores_saved_state(self, store, gateway):
        await store.toggle(JOB, "j1")
        gateway.delays["delete_favorite_relation"] = 1.0

        task = asyncio.ensure_future(store.toggle(JOB, "j1"))
        await asyncio.sleep(0.01)
        assert store.is_saved(JOB, "j1") is False
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert store.is_saved(JOB, "j1") is True

    @pytest.mark.asyncio
    async def test_item_locks_are_released(self, store, gateway):
        gateway.delays["exists_favorite_relation"] = 0.01
        await asyncio.gather(store.toggle(JOB, "j1"), store.toggle(JOB, "j1"))
        await store.toggle(INTERNSHIP, "i1")
        gateway.failures["delete_favorite_relation"] = GatewayError("offline")
        with pytest.raises(FavoriteMutationError):
            await store.toggle(INTERNSHIP, "i1")

        assert store._locks == {}
        assert store._lock_users == {}


@pytest.mark.asyncio
async def test_saved_opportunities_preserves_order(store):
    items = [
        make_opportunity("a"),
        make_opportunity("b", kind=INTERNSHIP),
        make_opportunity("c"),
    ]
    await store.toggle(JOB, "c")
    await store.toggle(INTERNSHIP, "b")

    assert [o.id for o in store.saved_opportunities(items)] == ["b", "c"]


@pytest.mark.asyncio
async def test_relations_snapshot(store):
    await store.toggle(INTERNSHIP, "i1")
    await store.toggle(JOB, "j2")
    await store.toggle(JOB, "j1")

    relations = store.relations()

    assert [(r.kind, r.opportunity_id) for r in relations] == [(JOB, "j1"), (JOB, "j2"), (INTERNSHIP, "i1")]
    assert all(r.user_id == "user-1" for r in relations)


def test_relations_empty_without_user(gateway):
    assert FavoritesStore(gateway).relations() == []
