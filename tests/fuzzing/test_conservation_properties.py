"""
Hypothesis-based checks of the stock invariants.

Random interleavings of send / confirm / reject / shift-return are applied
to a seeded hub.  After every step:

- no quantity on hand is negative
- on hand + in flight of every product equals what was seeded

Each example runs inside a savepoint that is rolled back afterwards, so
examples never see each other's stock.
"""

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from sqlalchemy import func, select

from stock_kernel.domain.values import LineItem
from stock_kernel.exceptions import InsufficientStockError, ValidationError
from stock_kernel.models.inventory import InventoryRecord

HUB = "hub-malang"
OTHER_HUB = "hub-surabaya"
BRANCH = "branch-ijen"
RIDER = "rider-malang-01"
OTHER_RIDER = "rider-malang-02"

DESTINATIONS = (BRANCH, RIDER, OTHER_RIDER, OTHER_HUB)
SEEDED = {"arabica-250g": 100, "milk-1l": 40}
PRODUCTS = tuple(SEEDED)

_step = st.tuples(
    st.sampled_from(["send", "confirm", "reject", "return"]),
    st.integers(min_value=0, max_value=50),
    st.integers(min_value=1, max_value=40),
)


def _pending(movement_selector):
    pending = []
    for location_id in DESTINATIONS + (HUB,):
        pending.extend(movement_selector.list_pending(location_id))
    return pending


def _assert_invariants(session, inventory_selector):
    lowest = session.execute(select(func.min(InventoryRecord.quantity))).scalar_one()
    assert lowest is None or lowest >= 0

    for product_id, seeded in SEEDED.items():
        position = inventory_selector.product_position(product_id)
        assert position.total == seeded, (
            f"{product_id}: on hand {position.on_hand} + in flight "
            f"{position.in_flight} != seeded {seeded}"
        )


class TestConservationUnderRandomOperations:
    @given(steps=st.lists(_step, max_size=20))
    @settings(
        max_examples=60,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    def test_stock_is_conserved(
        self,
        session,
        ledger,
        orchestrator,
        handler,
        movement_selector,
        inventory_selector,
        test_actor_id,
        steps,
    ):
        example = session.begin_nested()
        try:
            for product_id, quantity in SEEDED.items():
                ledger.increment(HUB, product_id, quantity)

            for op, index, quantity in steps:
                if op == "send":
                    dest = DESTINATIONS[index % len(DESTINATIONS)]
                    product_id = PRODUCTS[index % len(PRODUCTS)]
                    try:
                        orchestrator.create_transfer(
                            HUB, dest, [LineItem(product_id, quantity)], test_actor_id
                        )
                    except InsufficientStockError:
                        pass
                elif op == "return":
                    try:
                        orchestrator.return_remaining_stock(RIDER, test_actor_id)
                    except ValidationError:
                        pass
                else:
                    pending = _pending(movement_selector)
                    if not pending:
                        continue
                    movement = pending[index % len(pending)]
                    if op == "confirm":
                        handler.confirm(
                            movement.dest_location_id, [movement.movement_id], test_actor_id
                        )
                    else:
                        handler.reject(
                            movement.dest_location_id,
                            [movement.movement_id],
                            "fuzz",
                            test_actor_id,
                        )

                _assert_invariants(session, inventory_selector)
        finally:
            example.rollback()


class TestInsufficientStockNeverPartial:
    @given(
        have=st.integers(min_value=0, max_value=30),
        want=st.lists(st.integers(min_value=1, max_value=30), min_size=1, max_size=2),
    )
    @settings(
        max_examples=50,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    def test_batch_applies_fully_or_not_at_all(
        self, session, ledger, orchestrator, test_actor_id, have, want
    ):
        example = session.begin_nested()
        try:
            if have:
                ledger.increment(HUB, PRODUCTS[0], have)
                ledger.increment(HUB, PRODUCTS[1], have)
            items = [LineItem(p, q) for p, q in zip(PRODUCTS, want)]

            if all(q <= have for q in want):
                orchestrator.create_transfer(HUB, BRANCH, items, test_actor_id)
                expected = [have - q for q in want]
            else:
                with pytest.raises(InsufficientStockError) as exc_info:
                    orchestrator.create_transfer(HUB, BRANCH, items, test_actor_id)
                short = [p for p, q in zip(PRODUCTS, want) if q > have]
                assert [s["product_id"] for s in exc_info.value.shortages] == short
                expected = [have for _ in want]

            actual = [ledger.get_quantity(HUB, p) for p, _ in zip(PRODUCTS, want)]
            assert actual == expected
        finally:
            example.rollback()
