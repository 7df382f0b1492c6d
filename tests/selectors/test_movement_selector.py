"""
MovementSelector and InventorySelector tests.

Selectors are read-only: these tests arrange state through the kernel
services and only assert on what the selectors report.
"""

from datetime import timedelta

import pytest

from stock_kernel.domain.movements import SentMovement
from stock_kernel.domain.values import Direction, LineItem, MovementStatus

HUB = "hub-malang"
OTHER_HUB = "hub-surabaya"
BRANCH = "branch-ijen"
RIDER = "rider-malang-01"

ARABICA = "arabica-250g"
ROBUSTA = "robusta-250g"
MILK = "milk-1l"
CUPS = "cup-12oz"


@pytest.fixture
def history(orchestrator, handler, ledger, deterministic_clock, test_actor_id):
    """
    Three batches, one minute apart:

        08:00  hub -> branch   arabica 5     (received)
        08:01  hub -> rider    cups 40       (pending)
        08:02  rider -> hub    cups 10       (rejected + returned)
    """
    ledger.increment(HUB, ARABICA, 20)
    ledger.increment(HUB, CUPS, 100)
    ledger.increment(RIDER, CUPS, 10)

    first = orchestrator.create_transfer(HUB, BRANCH, [LineItem(ARABICA, 5)], test_actor_id)
    handler.confirm(BRANCH, list(first.movement_ids), test_actor_id)

    deterministic_clock.advance(60)
    second = orchestrator.create_transfer(HUB, RIDER, [LineItem(CUPS, 40)], test_actor_id)

    deterministic_clock.advance(60)
    third = orchestrator.create_transfer(RIDER, HUB, [LineItem(CUPS, 10)], test_actor_id)
    rejected = handler.reject(HUB, list(third.movement_ids), "not ours", test_actor_id)

    return {
        "received": first.movement_ids[0],
        "pending": second.movement_ids[0],
        "rejected": third.movement_ids[0],
        "returned": rejected.returned_movement_ids[0],
        "start": deterministic_clock.now() - timedelta(minutes=2),
    }


class TestListMovements:
    def test_both_directions_newest_first(self, movement_selector, history):
        movements = movement_selector.list_movements(HUB)

        ids = [m.movement_id for m in movements]
        # The rejection and its returned record share a timestamp
        assert set(ids[:2]) == {history["rejected"], history["returned"]}
        assert ids[2:] == [history["pending"], history["received"]]

    def test_incoming_only(self, movement_selector, history):
        incoming = movement_selector.list_movements(HUB, direction=Direction.INCOMING)
        assert {m.movement_id for m in incoming} == {history["rejected"]}

    def test_outgoing_only(self, movement_selector, history):
        outgoing = movement_selector.list_movements(HUB, direction=Direction.OUTGOING)
        assert {m.movement_id for m in outgoing} == {
            history["received"],
            history["pending"],
            history["returned"],
        }

    def test_status_filter(self, movement_selector, history):
        sent = movement_selector.list_movements(HUB, status=MovementStatus.SENT)
        assert [m.movement_id for m in sent] == [history["pending"]]

    def test_time_window_is_half_open(self, movement_selector, history):
        start = history["start"]
        window = movement_selector.list_movements(
            HUB,
            created_from=start + timedelta(minutes=1),
            created_to=start + timedelta(minutes=2),
        )
        assert [m.movement_id for m in window] == [history["pending"]]

    def test_other_locations_not_included(self, movement_selector, history):
        assert movement_selector.list_movements(OTHER_HUB) == []


class TestListPending:
    def test_oldest_first(self, orchestrator, movement_selector, ledger, deterministic_clock, test_actor_id):
        ledger.increment(HUB, MILK, 10)
        a = orchestrator.create_transfer(HUB, BRANCH, [LineItem(MILK, 1)], test_actor_id)
        deterministic_clock.advance(5)
        b = orchestrator.create_transfer(HUB, BRANCH, [LineItem(MILK, 1)], test_actor_id)

        pending = movement_selector.list_pending(BRANCH)
        assert [m.movement_id for m in pending] == [a.movement_ids[0], b.movement_ids[0]]


class TestListOverdue:
    def test_only_past_expected_delivery(self, movement_selector, history, deterministic_clock):
        assert movement_selector.list_overdue(RIDER, deterministic_clock.now()) == []

        later = deterministic_clock.now() + timedelta(hours=1)
        overdue = movement_selector.list_overdue(RIDER, later)
        assert [m.movement_id for m in overdue] == [history["pending"]]
        assert isinstance(overdue[0], SentMovement)

    def test_outgoing_direction(self, movement_selector, history, deterministic_clock):
        later = deterministic_clock.now() + timedelta(hours=2)
        overdue = movement_selector.list_overdue(HUB, later, direction=Direction.OUTGOING)
        assert [m.movement_id for m in overdue] == [history["pending"]]

    def test_resolved_movements_never_overdue(self, movement_selector, history, deterministic_clock):
        much_later = deterministic_clock.now() + timedelta(days=30)
        assert movement_selector.list_overdue(BRANCH, much_later) == []


class TestInFlight:
    def test_in_flight_counts_sent_only(self, movement_selector, history):
        assert movement_selector.in_flight_total(CUPS) == 40
        assert movement_selector.in_flight_total(ARABICA) == 0
        assert movement_selector.in_flight_total(ROBUSTA) == 0


class TestInventorySelector:
    def test_stock_on_hand_ordered_by_product(self, inventory_selector, history):
        levels = inventory_selector.stock_on_hand(HUB)
        assert [(lv.product_id, lv.quantity) for lv in levels] == [
            (ARABICA, 15),
            (CUPS, 60),
        ]

    def test_stock_level_missing(self, inventory_selector):
        assert inventory_selector.stock_level(BRANCH, MILK) is None

    def test_low_stock(self, inventory_selector, ledger, history):
        ledger.set_levels(HUB, ARABICA, 20, None)
        ledger.set_levels(HUB, CUPS, 50, None)
        ledger.set_levels(HUB, MILK, 1, None)

        low = inventory_selector.low_stock(HUB)
        assert [(lv.product_id, lv.quantity) for lv in low] == [(ARABICA, 15), (MILK, 0)]

    def test_position_conserves_stock(self, inventory_selector, history):
        position = inventory_selector.product_position(CUPS)

        # 100 at the hub and 10 with the rider were seeded; the rider got its 10 back
        assert position.total == 110
        assert position.in_flight == 40
        assert position.on_hand == 70
        assert inventory_selector.total_on_hand(CUPS) == 70
