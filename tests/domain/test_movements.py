"""Movement variants, DTO helpers and the deterministic clock."""

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from stock_kernel.domain.clock import DeterministicClock, SystemClock
from stock_kernel.domain.dtos import ProductPosition, StockLevel
from stock_kernel.domain.movements import (
    VARIANT_BY_STATUS,
    ReceivedMovement,
    RejectedMovement,
    ReturnedMovement,
    SentMovement,
)
from stock_kernel.domain.values import MovementStatus

T0 = datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)


def _common(**overrides):
    fields = dict(
        movement_id=uuid4(),
        batch_id=uuid4(),
        product_id="milk-1l",
        quantity=3,
        source_location_id="hub-malang",
        dest_location_id="rider-malang-01",
        created_at=T0,
        expected_delivery_at=T0 + timedelta(hours=1),
        notes=None,
        evidence_ref=None,
        created_by_id=uuid4(),
    )
    fields.update(overrides)
    return fields


class TestVariants:
    def test_status_tag_matches_type(self):
        for status, cls in VARIANT_BY_STATUS.items():
            assert cls.status is status

    def test_only_sent_is_pending(self):
        sent = SentMovement(**_common())
        received = ReceivedMovement(**_common(), actual_delivery_at=T0, resolved_by_id=None)
        assert sent.is_pending
        assert not received.is_pending

    def test_overdue_is_strictly_after_expected(self):
        sent = SentMovement(**_common())
        assert not sent.is_overdue(T0 + timedelta(hours=1))
        assert sent.is_overdue(T0 + timedelta(hours=1, seconds=1))

    def test_rejection_reason_strips_prefix(self):
        rejected = RejectedMovement(
            **_common(notes="REJECTED: box crushed"),
            actual_delivery_at=T0,
            resolved_by_id=None,
        )
        assert rejected.rejection_reason == "box crushed"

    def test_returned_points_back(self):
        original = uuid4()
        returned = ReturnedMovement(
            **_common(), actual_delivery_at=T0, returned_from_id=original
        )
        assert returned.returned_from_id == original
        assert returned.status is MovementStatus.RETURNED

    def test_variants_are_frozen(self):
        sent = SentMovement(**_common())
        with pytest.raises(FrozenInstanceError):
            sent.quantity = 4

    def test_terminal_statuses(self):
        assert not MovementStatus.SENT.is_terminal
        assert MovementStatus.RECEIVED.is_terminal
        assert MovementStatus.REJECTED.is_terminal
        assert MovementStatus.RETURNED.is_terminal


class TestDtos:
    def test_low_stock_needs_a_minimum(self):
        level = StockLevel("hub-malang", "milk-1l", 0, None, None, T0)
        assert not level.is_low

    def test_low_stock_below_minimum(self):
        assert StockLevel("hub-malang", "milk-1l", 2, 3, None, T0).is_low
        assert not StockLevel("hub-malang", "milk-1l", 3, 3, None, T0).is_low

    def test_position_total(self):
        assert ProductPosition("milk-1l", on_hand=7, in_flight=5).total == 12


class TestClock:
    def test_deterministic_clock_is_fixed(self):
        clock = DeterministicClock()
        assert clock.now() == clock.now() == T0

    def test_advance_and_tick(self):
        clock = DeterministicClock()
        clock.advance(59)
        assert clock.tick() == T0 + timedelta(minutes=1)

    def test_set_time_resets_advance(self):
        clock = DeterministicClock()
        clock.advance(10)
        later = T0 + timedelta(days=1)
        clock.set_time(later)
        assert clock.now() == later

    def test_system_clock_is_utc(self):
        assert SystemClock().now().utcoffset() == timedelta(0)
