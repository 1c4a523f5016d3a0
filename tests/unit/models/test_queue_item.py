"""
Module: test_queue_item.py
Description: Unit tests for queue item, outcome and summary models.
"""

from datetime import timedelta

import pytest
from pydantic import TypeAdapter, ValidationError

from email_queue.models.outcome import Delivered, DeliveryOutcome, PermanentFailure, TransientFailure
from email_queue.models.queue_item import ItemTransition, QueueItem, QueueStatus
from email_queue.models.request import ProcessQueueRequest
from email_queue.models.response import Anomaly, RunSummary
from tests.conftest import NOW


class TestQueueItem:
    """Test cases for QueueItem model."""

    def test_create_is_immediately_eligible(self):
        item = QueueItem.create(
            recipient="ana@example.com",
            template_ref="welcome",
            payload={"first_name": "Ana"},
            max_attempts=4,
            campaign_id="cmp_spring",
            now=NOW
        )

        assert item.id.startswith("eml_")
        assert len(item.id) == 16
        assert item.status == QueueStatus.PENDING
        assert item.attempts == 0
        assert item.max_attempts == 4
        assert item.next_attempt_at == NOW
        assert item.created_at == item.updated_at == NOW
        assert item.lock_token is None
        assert item.attempts_remaining == 4

    def test_create_uses_configured_max_attempts(self):
        from email_queue.config.settings import settings

        item = QueueItem.create(recipient="ana@example.com", template_ref="welcome")

        assert item.max_attempts == settings.max_attempts

    def test_ids_are_unique(self):
        ids = {QueueItem.create(recipient="a@example.com", template_ref="t", max_attempts=1).id for _ in range(50)}

        assert len(ids) == 50

    def test_processing_requires_lock_token(self, make_item):
        with pytest.raises(ValidationError, match="lock_token"):
            make_item(status=QueueStatus.PROCESSING)

        assert make_item(status=QueueStatus.PROCESSING, lock_token="t1").lock_token == "t1"

    def test_attempts_cannot_be_negative(self, make_item):
        with pytest.raises(ValidationError):
            make_item(attempts=-1)

    def test_max_attempts_at_least_one(self, make_item):
        with pytest.raises(ValidationError):
            make_item(max_attempts=0)

    def test_empty_recipient(self, make_item):
        with pytest.raises(ValidationError):
            make_item(recipient="")

    def test_opaque_fields_kept_verbatim(self, make_item):
        item = make_item(recipient=" ana@example.com ", template_ref="welcome\t")

        assert item.recipient == " ana@example.com "
        assert item.template_ref == "welcome\t"

    def test_attempts_remaining_never_negative(self, make_item):
        assert make_item(attempts=5, max_attempts=3).attempts_remaining == 0

    def test_terminal_states(self):
        assert QueueStatus.SENT.is_terminal
        assert QueueStatus.DEAD.is_terminal
        assert not QueueStatus.PENDING.is_terminal
        assert not QueueStatus.PROCESSING.is_terminal


class TestItemTransition:

    @pytest.mark.parametrize("status", [QueueStatus.PROCESSING, QueueStatus.FAILED])
    def test_rejects_non_final_targets(self, status):
        with pytest.raises(ValidationError, match="cannot finalize"):
            ItemTransition(status=status, attempts=1)

    def test_requeue_needs_next_attempt(self):
        with pytest.raises(ValidationError, match="next_attempt_at"):
            ItemTransition(status=QueueStatus.PENDING, attempts=1)

        transition = ItemTransition(status=QueueStatus.PENDING, attempts=1, next_attempt_at=NOW + timedelta(seconds=30))
        assert transition.next_attempt_at > NOW


class TestDeliveryOutcome:

    @pytest.mark.parametrize("data, expected", [
        ({"kind": "delivered", "message_id": "m1"}, Delivered(message_id="m1")),
        ({"kind": "transient_failure", "reason": "HTTP 503"}, TransientFailure(reason="HTTP 503")),
        ({"kind": "permanent_failure", "reason": "bounced"}, PermanentFailure(reason="bounced")),
    ])
    def test_discriminated_on_kind(self, data, expected):
        assert TypeAdapter(DeliveryOutcome).validate_python(data) == expected

    def test_unknown_kind(self):
        with pytest.raises(ValidationError):
            TypeAdapter(DeliveryOutcome).validate_python({"kind": "deferred"})

    def test_outcomes_are_immutable(self):
        outcome = TransientFailure(reason="timeout")

        with pytest.raises(ValidationError):
            outcome.reason = "changed"


class TestRequestAndSummary:

    def test_request_accepts_camel_case(self):
        request = ProcessQueueRequest.model_validate({"batchSize": 5, "dryRun": True})

        assert request.batch_size == 5
        assert request.dry_run is True

    @pytest.mark.parametrize("batch_size", [0, 101])
    def test_request_bounds(self, batch_size):
        with pytest.raises(ValidationError):
            ProcessQueueRequest(batch_size=batch_size)

    def test_summary_serializes_camel_case(self):
        summary = RunSummary(
            run_id="run_1",
            claimed=2,
            sent=1,
            anomalies=[Anomaly(item_id="eml_1", reason="lock token mismatch")]
        )

        data = summary.model_dump(by_alias=True)

        assert data["runId"] == "run_1"
        assert data["anomalies"] == [{"itemId": "eml_1", "reason": "lock token mismatch"}]
        assert summary.accounted == 2
