"""
Module: test_reconciler.py
Description: Unit tests for the stale-lock reconciliation sweep.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from botocore.exceptions import ClientError

from email_queue.models.queue_item import ItemTransition, QueueStatus
from email_queue.processing.reconciler import STALE_LOCK_ERROR, Reconciler
from tests.conftest import NOW

LONG_AGO = NOW - timedelta(days=1)


@pytest.fixture
def reconciler(store, policy, clock):
    return Reconciler(store, policy, stale_after=600, clock=clock)


@pytest.fixture
def claim_at(store):
    async def _claim(item, when, token="crashed-run"):
        return await store.try_claim(item.id, token, when)

    return _claim


class TestReconciler:
    """Test cases for Reconciler.sweep."""

    @pytest.mark.asyncio
    async def test_requeues_stale_item_with_attempt_counted(self, store, reconciler, make_item, seed, claim_at):
        item = make_item(next_attempt_at=LONG_AGO, attempts=0, max_attempts=3)
        seed(item)
        await claim_at(item, NOW - timedelta(minutes=30))

        summary = await reconciler.sweep()

        assert (summary.scanned, summary.requeued, summary.dead) == (1, 1, 0)
        stored = await store.get_item(item.id)
        assert stored.status == QueueStatus.PENDING
        assert stored.attempts == 1
        assert stored.lock_token is None
        assert stored.last_error == STALE_LOCK_ERROR
        assert stored.next_attempt_at > NOW

    @pytest.mark.asyncio
    async def test_out_of_attempts_goes_dead(self, store, reconciler, make_item, seed, claim_at):
        item = make_item(next_attempt_at=LONG_AGO, attempts=2, max_attempts=3)
        seed(item)
        await claim_at(item, NOW - timedelta(hours=1))

        summary = await reconciler.sweep()

        assert summary.dead == 1
        stored = await store.get_item(item.id)
        assert stored.status == QueueStatus.DEAD
        assert stored.attempts == 3

    @pytest.mark.asyncio
    async def test_fresh_locks_are_left_alone(self, store, reconciler, make_item, seed, claim_at):
        item = make_item(next_attempt_at=LONG_AGO)
        seed(item)
        await claim_at(item, NOW - timedelta(minutes=2))

        summary = await reconciler.sweep()

        assert summary.scanned == 0
        assert (await store.get_item(item.id)).status == QueueStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_item_finalized_meanwhile_is_a_conflict(self, store, reconciler, make_item, seed, claim_at):
        item = make_item(next_attempt_at=LONG_AGO)
        seed(item)
        stale = await claim_at(item, NOW - timedelta(hours=1))
        real_find_stale = store.find_stale

        async def listed_then_reclaimed(older_than, limit):
            found = await real_find_stale(older_than, limit)
            # The late run finishes and another claim takes the item
            await store.finalize(item.id, stale.lock_token, stale_requeue(stale), NOW)
            await store.try_claim(item.id, "new-run", NOW)
            return found

        with patch.object(store, 'find_stale', side_effect=listed_then_reclaimed):
            summary = await reconciler.sweep()

        assert summary.conflicts == 1
        stored = await store.get_item(item.id)
        assert stored.status == QueueStatus.PROCESSING
        assert stored.lock_token == "new-run"

    @pytest.mark.asyncio
    async def test_store_error_counts_and_continues(self, store, reconciler, make_item, seed, claim_at):
        first, second = make_item(next_attempt_at=LONG_AGO), make_item(next_attempt_at=LONG_AGO)
        seed(first, second)
        await claim_at(first, NOW - timedelta(hours=1))
        await claim_at(second, NOW - timedelta(hours=1))
        real_finalize = store.finalize

        async def flaky_finalize(item_id, *args, **kwargs):
            if item_id == first.id:
                raise ClientError(
                    error_response={'Error': {'Code': 'InternalServerError', 'Message': 'boom'}},
                    operation_name='UpdateItem'
                )
            return await real_finalize(item_id, *args, **kwargs)

        with patch.object(store, 'finalize', side_effect=flaky_finalize):
            summary = await reconciler.sweep()

        assert (summary.scanned, summary.errors, summary.requeued) == (2, 1, 1)

    @pytest.mark.asyncio
    async def test_respects_limit(self, reconciler, make_item, seed, claim_at):
        items = [make_item(next_attempt_at=LONG_AGO) for _ in range(4)]
        seed(*items)
        for item in items:
            await claim_at(item, NOW - timedelta(hours=1))

        summary = await reconciler.sweep(limit=2)

        assert summary.scanned == 2

    def test_stale_after_must_be_positive(self, store, policy):
        with pytest.raises(ValueError, match="stale_after"):
            Reconciler(store, policy, stale_after=0)


def stale_requeue(item):
    return ItemTransition(status=QueueStatus.PENDING, attempts=item.attempts + 1, next_attempt_at=NOW)
