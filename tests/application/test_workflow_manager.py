"""Tests for the workflow manager."""

import pytest
from conftest import fixed_now, fixed_today, make_custom_order_data, make_order_data

from cakeshop.application.facade import BusinessLogic, Repositories, build_business_logic
from cakeshop.application.workflow import WorkflowType
from cakeshop.domain.entities import Order
from cakeshop.domain.exceptions import (
    IllegalTransitionError,
    InvalidStateError,
    RuleNotFoundError,
    RuleViolationError,
    SideEffectError,
)
from cakeshop.domain.state_machines import AdvancePaymentStatus, OrderStatus, PaymentStatus
from cakeshop.infrastructure.config import Settings
from cakeshop.infrastructure.repositories import InMemoryInventoryRepository


class StubGateway:
    """Payment gateway returning a fixed status."""

    def __init__(self, status: PaymentStatus | None) -> None:
        self.status = status
        self.calls: list[str] = []

    async def get_payment_status(self, order_id: str) -> PaymentStatus | None:
        self.calls.append(order_id)
        return self.status


async def _place(logic: BusinessLogic, **overrides) -> Order:
    result = await logic.create_order(make_order_data(**overrides))
    return result.order


def _event_names(logic: BusinessLogic) -> list[str]:
    return [event.name for event in logic.get_event_history()]


class TestIllegalTransitions:
    """Tests for rejected transitions."""

    @pytest.mark.asyncio
    async def test_skipping_states_leaves_order_untouched(self, logic: BusinessLogic) -> None:
        """confirmed -> ready is rejected without side effects."""
        order = await _place(logic)
        await logic.transition_order_status(order, "confirmed")
        history_length = len(order.status_history)
        events_before = len(logic.get_event_history())
        product_before = await logic.repositories.inventory.get_product("prod-sponge")

        with pytest.raises(IllegalTransitionError) as exc_info:
            await logic.transition_order_status(order, "ready")

        assert exc_info.value.details["allowed_transitions"] == ["preparing", "cancelled"]
        assert order.status == OrderStatus.CONFIRMED
        assert len(order.status_history) == history_length
        assert len(logic.get_event_history()) == events_before
        product_after = await logic.repositories.inventory.get_product("prod-sponge")
        assert product_after.to_dict() == product_before.to_dict()

    @pytest.mark.asyncio
    async def test_terminal_state_has_no_exit(self, logic: BusinessLogic) -> None:
        """Cancelled orders cannot be confirmed."""
        order = await _place(logic)
        await logic.transition_order_status(order, "cancelled")

        with pytest.raises(IllegalTransitionError):
            await logic.transition_order_status(order, "confirmed")

    @pytest.mark.asyncio
    async def test_unknown_target_state(self, logic: BusinessLogic) -> None:
        """States outside the workflow are rejected."""
        order = await _place(logic)
        with pytest.raises(InvalidStateError) as exc_info:
            await logic.transition_order_status(order, "shipped")
        assert exc_info.value.details["which"] == "target"

    @pytest.mark.asyncio
    async def test_unknown_workflow(self, logic: BusinessLogic) -> None:
        """Unknown workflow types raise RuleNotFoundError."""
        order = await _place(logic)
        with pytest.raises(RuleNotFoundError):
            await logic.workflows.transition_state(order, "delivery", "confirmed")

    @pytest.mark.asyncio
    async def test_same_state_is_a_no_op(self, logic: BusinessLogic) -> None:
        """Moving to the current state changes nothing."""
        order = await _place(logic)
        events_before = len(logic.get_event_history())

        await logic.transition_order_status(order, "pending")

        assert order.status == OrderStatus.PENDING
        assert len(logic.get_event_history()) == events_before


class TestOrderStock:
    """Tests for stock movements driven by order transitions."""

    @pytest.mark.asyncio
    async def test_placing_reserves_stock(self, logic: BusinessLogic) -> None:
        """Pending orders hold stock without selling it."""
        await _place(logic)
        product = await logic.repositories.inventory.get_product("prod-sponge")
        assert product.stock_quantity == 10
        assert product.reserved_quantity == 2
        assert product.available_quantity == 8

    @pytest.mark.asyncio
    async def test_confirming_commits_stock(self, logic: BusinessLogic) -> None:
        """Confirmation turns the hold into a sale."""
        order = await _place(logic)
        await logic.transition_order_status(order, "confirmed")

        product = await logic.repositories.inventory.get_product("prod-sponge")
        assert product.stock_quantity == 8
        assert product.reserved_quantity == 0
        assert product.sold_count == 2
        assert "orderConfirmed" in _event_names(logic)

    @pytest.mark.asyncio
    async def test_cancelling_pending_releases_hold(self, logic: BusinessLogic) -> None:
        """Cancelling a pending order releases its reservation."""
        order = await _place(logic)
        await logic.transition_order_status(order, "cancelled", {"reason": "Changed mind"})

        product = await logic.repositories.inventory.get_product("prod-sponge")
        assert product.stock_quantity == 10
        assert product.reserved_quantity == 0
        assert "stockRestored" not in _event_names(logic)

    @pytest.mark.asyncio
    async def test_cancelling_confirmed_restores_stock(self, logic: BusinessLogic) -> None:
        """Cancelling after confirmation puts the units back on the shelf."""
        order = await _place(logic)
        await logic.transition_order_status(order, "confirmed")
        await logic.transition_order_status(order, "preparing")
        await logic.transition_order_status(order, "cancelled")

        product = await logic.repositories.inventory.get_product("prod-sponge")
        assert product.stock_quantity == 10
        assert product.sold_count == 0
        restored = logic.get_event_history(event_name="stockRestored")
        assert len(restored) == 1
        assert restored[0].data["quantity"] == 2

    @pytest.mark.asyncio
    async def test_low_stock_alert(self, logic: BusinessLogic) -> None:
        """Dropping to the threshold emits stockLow."""
        order = await _place(logic, items=[{"product_id": "prod-cupcake", "quantity": 2}])
        await logic.transition_order_status(order, "confirmed")

        low = logic.get_event_history(event_name="stockLow")
        assert len(low) == 1
        assert low[0].data["product"]["stock_quantity"] == 4
        assert logic.stock_watcher.alerts["prod-cupcake"]["level"] == "low"

    @pytest.mark.asyncio
    async def test_out_of_stock_alert(self, logic: BusinessLogic) -> None:
        """Selling the last unit emits stockOut."""
        order = await _place(logic, items=[{"product_id": "prod-cupcake", "quantity": 6}])
        await logic.transition_order_status(order, "confirmed")

        assert len(logic.get_event_history(event_name="stockOut")) == 1
        assert logic.stock_watcher.alerts["prod-cupcake"]["level"] == "out"

    @pytest.mark.asyncio
    async def test_made_to_order_products_do_not_move_stock(self, logic: BusinessLogic) -> None:
        """Products available on order never change counters."""
        order = await _place(logic, items=[{"product_id": "prod-tiered", "quantity": 3}])
        await logic.transition_order_status(order, "confirmed")

        product = await logic.repositories.inventory.get_product("prod-tiered")
        assert product.stock_quantity == 0
        assert product.sold_count == 0
        assert logic.get_event_history(event_name="stockOut") == []

    @pytest.mark.asyncio
    async def test_commit_failure_is_a_side_effect_error(self, logic: BusinessLogic) -> None:
        """Inventory failures during confirmation surface as SideEffectError."""
        order = await _place(logic)
        product = await logic.repositories.inventory.get_product("prod-sponge")
        product.stock_quantity = 1
        await logic.repositories.inventory.save_product(product)

        with pytest.raises(SideEffectError) as exc_info:
            await logic.transition_order_status(order, "confirmed")
        assert exc_info.value.action == "commit stock"


class TestPaymentChecks:
    """Tests for payment-related transition rules."""

    @pytest.mark.asyncio
    async def test_cash_on_delivery_confirms(self, logic: BusinessLogic) -> None:
        """Cash on delivery orders need no payment."""
        order = await _place(logic)
        order.payment_status = PaymentStatus.FAILED
        await logic.transition_order_status(order, "confirmed")
        assert order.status == OrderStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_failed_transfer_blocks_confirmation(self, logic: BusinessLogic) -> None:
        """Online transfers must be pending or paid."""
        order = await _place(logic, payment_method="online_transfer")
        await logic.workflows.transition_state(order, WorkflowType.PAYMENT, "failed")

        with pytest.raises(RuleViolationError) as exc_info:
            await logic.transition_order_status(order, "confirmed")

        assert exc_info.value.message == "Payment must be initiated before confirming order"
        assert order.status == OrderStatus.PENDING

    @pytest.mark.asyncio
    async def test_gateway_is_consulted(
        self, settings: Settings, inventory: InMemoryInventoryRepository
    ) -> None:
        """A configured gateway decides whether payment was initiated."""
        gateway = StubGateway(None)
        logic = build_business_logic(
            settings,
            Repositories(inventory=inventory),
            payment_gateway=gateway,
            today=fixed_today,
            clock=fixed_now,
        )
        order = await _place(logic, payment_method="online_transfer")

        with pytest.raises(RuleViolationError):
            await logic.transition_order_status(order, "confirmed")
        assert gateway.calls == [order.order_id]

        gateway.status = PaymentStatus.PAID
        await logic.transition_order_status(order, "confirmed")
        assert order.status == OrderStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_paid_order_cancellation_requests_refund(self, logic: BusinessLogic) -> None:
        """Cancelling a paid order asks for a refund."""
        order = await _place(logic)
        await logic.workflows.transition_state(order, WorkflowType.PAYMENT, "paid")
        await logic.transition_order_status(order, "cancelled")

        refunds = logic.get_event_history(event_name="refundRequested")
        assert len(refunds) == 1
        assert refunds[0].data == {
            "order_id": order.order_id,
            "amount": 8500,
            "reason": "Order cancellation",
        }

    @pytest.mark.asyncio
    async def test_payment_lifecycle_events(self, logic: BusinessLogic) -> None:
        """Payment moves emit payment events."""
        order = await _place(logic)
        await logic.workflows.transition_state(order, WorkflowType.PAYMENT, "failed")
        await logic.workflows.transition_state(order, WorkflowType.PAYMENT, "pending")

        pending = logic.get_event_history(event_name="paymentPending")
        assert pending[-1].data["payment"]["previous_status"] == "failed"
        assert pending[-1].data["payment"]["amount"] == 8500

    @pytest.mark.asyncio
    async def test_refunded_payment_is_terminal(self, logic: BusinessLogic) -> None:
        """Refunded payments cannot change again."""
        order = await _place(logic)
        await logic.workflows.transition_state(order, WorkflowType.PAYMENT, "paid")
        await logic.workflows.transition_state(order, WorkflowType.PAYMENT, "refunded")

        with pytest.raises(IllegalTransitionError):
            await logic.workflows.transition_state(order, WorkflowType.PAYMENT, "paid")


class TestCustomOrderWorkflow:
    """Tests for the custom order workflow."""

    @pytest.mark.asyncio
    async def test_confirming_requires_pricing(self, logic: BusinessLogic) -> None:
        """An unpriced custom order cannot be confirmed."""
        custom_order = await logic.create_custom_order(make_custom_order_data())

        with pytest.raises(RuleViolationError) as exc_info:
            await logic.transition_custom_order_status(custom_order, "confirmed")
        assert exc_info.value.message == "Estimated price must be set before confirming custom order"

    @pytest.mark.asyncio
    async def test_confirming_sets_advance(self, logic: BusinessLogic) -> None:
        """Confirmation fills in a required advance."""
        custom_order = await logic.create_custom_order(
            make_custom_order_data(cake_size="Multi-tier")
        )
        custom_order.estimated_price = 8000

        await logic.transition_custom_order_status(custom_order, "confirmed")

        assert custom_order.advance_amount == 2400
        assert custom_order.advance_payment_status.value == "pending"

    @pytest.mark.asyncio
    async def test_paid_advance_refunded_on_cancel(self, logic: BusinessLogic) -> None:
        """Cancelling after the advance was paid requests a refund."""
        custom_order = await logic.create_custom_order(
            make_custom_order_data(cake_size="Multi-tier")
        )
        custom_order.estimated_price = 8000
        await logic.transition_custom_order_status(custom_order, "confirmed")
        custom_order.advance_payment_status = AdvancePaymentStatus.PAID

        await logic.transition_custom_order_status(
            custom_order, "cancelled", {"cancelled_by": "staff", "reason": "Venue closed"}
        )

        refunds = logic.get_event_history(event_name="refundRequested")
        assert refunds[0].data["amount"] == 2400
        assert custom_order.status_history[-1]["actor"] == "staff"


class TestQueries:
    """Tests for the read-only workflow queries."""

    @pytest.mark.asyncio
    async def test_next_possible_states(self, logic: BusinessLogic) -> None:
        """Next states come with descriptions."""
        order = await _place(logic)
        states = logic.get_next_possible_states(order, "order")
        assert [s.state for s in states] == ["confirmed", "cancelled"]
        assert states[0].description == "Order confirmed, ready for preparation"

    def test_next_states_never_raise(self, logic: BusinessLogic) -> None:
        """Unknown workflows give an empty list."""
        assert logic.get_next_possible_states(object(), "nope") == []

    def test_workflow_states(self, logic: BusinessLogic) -> None:
        """Every state is described with its validations."""
        states = {s.name: s for s in logic.get_workflow_states("customOrder")}
        assert set(states) == {"pending", "confirmed", "in-progress", "completed", "cancelled"}
        assert states["confirmed"].validations == [
            "ensurePricingSet",
            "checkAdvancePaymentIfRequired",
        ]
        assert states["completed"].terminal

    @pytest.mark.asyncio
    async def test_can_transition(self, logic: BusinessLogic) -> None:
        """can_transition mirrors the graph."""
        order = await _place(logic)
        assert logic.workflows.can_transition(order, "order", "confirmed")
        assert not logic.workflows.can_transition(order, "order", "delivered")
        assert not logic.workflows.can_transition(order, "unknown", "confirmed")

    @pytest.mark.asyncio
    async def test_transition_is_audited(self, logic: BusinessLogic) -> None:
        """Transitions are recorded by the audit log."""
        order = await _place(logic)
        await logic.transition_order_status(order, "confirmed", {"user": "admin"})

        trail = logic.audit_log.transitions_for(order.order_id)
        assert [(t["data"]["old_state"], t["data"]["new_state"]) for t in trail] == [
            (None, "pending"),
            ("pending", "confirmed"),
        ]
        assert order.status_history[-1]["actor"] == "admin"
