"""
Order state machine: delivery, revisions, completion, cancellation,
terminal immutability and the dispute freeze.
"""
import pytest
from sqlalchemy import select, update

from order_engine.core.enums import (
    ContractStatus,
    DeliverableType,
    OrderEventType,
    OrderStatus,
    Signal,
)
from order_engine.core.exceptions import InvalidState, RevisionLimitExceeded, Unauthorized
from order_engine.models.contract import Contract
from order_engine.models.order import Order
from order_engine.services import contracts, lifecycle
from order_engine.services.lifecycle import TRANSITIONS, validate_transition


async def contract_status(db, order_id):
    res = await db.execute(select(Contract.status).where(Contract.order_id == order_id))
    return res.scalar()


async def force_status(db, order_id, status):
    await db.execute(update(Order).where(Order.id == order_id).values(status=status))
    await db.commit()


@pytest.mark.unit
class TestTransitionTable:

    def test_terminal_states_have_no_exits(self):
        assert TRANSITIONS[OrderStatus.COMPLETED] == set()
        assert TRANSITIONS[OrderStatus.CANCELLED] == set()

    def test_every_status_is_known(self):
        assert set(TRANSITIONS) == set(OrderStatus)

    @pytest.mark.parametrize("current,target", [
        (OrderStatus.PENDING_ACCEPTANCE, OrderStatus.IN_PROGRESS),
        (OrderStatus.IN_PROGRESS, OrderStatus.DELIVERED),
        (OrderStatus.DELIVERED, OrderStatus.REVISION_REQUESTED),
        (OrderStatus.REVISION_REQUESTED, OrderStatus.DELIVERED),
        (OrderStatus.DELIVERED, OrderStatus.COMPLETED),
        (OrderStatus.DISPUTED, OrderStatus.CANCELLED),
    ])
    def test_allowed(self, current, target):
        validate_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (OrderStatus.IN_PROGRESS, OrderStatus.COMPLETED),
        (OrderStatus.PENDING_ACCEPTANCE, OrderStatus.DISPUTED),
        (OrderStatus.COMPLETED, OrderStatus.CANCELLED),
        (OrderStatus.CANCELLED, OrderStatus.IN_PROGRESS),
        (OrderStatus.DISPUTED, OrderStatus.DELIVERED),
    ])
    def test_rejected(self, current, target):
        with pytest.raises(InvalidState):
            validate_transition(current, target)


@pytest.mark.lifecycle
class TestDelivery:

    @pytest.mark.asyncio
    async def test_submit_delivery(self, db, order_factory, freelancer_caller, signal_log):
        order = await order_factory()
        signal_log.clear()

        order, deliverable = await lifecycle.submit_delivery(
            db, freelancer_caller, order.id, type=DeliverableType.LINK, file_url="https://files/x.zip", message="v1"
        )

        assert order.status == OrderStatus.DELIVERED
        assert deliverable.is_revision is False
        assert deliverable.revision_number is None
        assert deliverable.file_url == "https://files/x.zip"
        assert await contract_status(db, order.id) == ContractStatus.ACTIVE

        signal, envelope = signal_log[-1]
        assert signal == str(Signal.ORDER_STATUS_CHANGED)
        assert envelope["payload"]["from"] == "in_progress"
        assert envelope["payload"]["to"] == "delivered"

    @pytest.mark.asyncio
    async def test_only_freelancer_delivers(self, db, order_factory, client_caller):
        order = await order_factory()
        with pytest.raises(Unauthorized):
            await lifecycle.submit_delivery(db, client_caller, order.id, message="done")

    @pytest.mark.asyncio
    async def test_cannot_deliver_twice(self, db, order_factory, freelancer_caller):
        order = await order_factory()
        await lifecycle.submit_delivery(db, freelancer_caller, order.id, message="v1")

        with pytest.raises(InvalidState):
            await lifecycle.submit_delivery(db, freelancer_caller, order.id, message="v1 again")

    @pytest.mark.asyncio
    async def test_accept_delivery_completes(self, db, order_factory, client_caller, freelancer_caller):
        order = await order_factory()
        _, deliverable = await lifecycle.submit_delivery(db, freelancer_caller, order.id, message="v1")

        order = await lifecycle.accept_delivery(db, client_caller, order.id)

        assert order.status == OrderStatus.COMPLETED
        assert order.completed_at is not None
        assert await contract_status(db, order.id) == ContractStatus.COMPLETED
        listed = await lifecycle.list_deliverables(db, client_caller, order.id)
        assert listed[0].id == deliverable.id
        assert listed[0].accepted_at is not None

    @pytest.mark.asyncio
    async def test_accept_requires_delivery(self, db, order_factory, client_caller):
        order = await order_factory()
        with pytest.raises(InvalidState):
            await lifecycle.accept_delivery(db, client_caller, order.id)

    @pytest.mark.asyncio
    async def test_only_client_accepts(self, db, order_factory, freelancer_caller):
        order = await order_factory()
        await lifecycle.submit_delivery(db, freelancer_caller, order.id, message="v1")
        with pytest.raises(Unauthorized):
            await lifecycle.accept_delivery(db, freelancer_caller, order.id)


@pytest.mark.lifecycle
class TestRevisions:

    @pytest.mark.asyncio
    async def test_revision_round_trip(self, db, order_factory, client_caller, freelancer_caller):
        order = await order_factory(revisions_included=2)
        await lifecycle.submit_delivery(db, freelancer_caller, order.id, message="v1")

        order = await lifecycle.request_revision(db, client_caller, order.id, "Bigger font please")
        assert order.status == OrderStatus.REVISION_REQUESTED
        assert order.revisions_used == 1

        order, deliverable = await lifecycle.submit_delivery(db, freelancer_caller, order.id, message="v2")
        assert order.status == OrderStatus.DELIVERED
        assert deliverable.is_revision is True
        assert deliverable.revision_number == 1

    @pytest.mark.asyncio
    async def test_revision_ceiling(self, db, order_factory, client_caller, freelancer_caller):
        order_id = (await order_factory(revisions_included=1)).id
        await lifecycle.submit_delivery(db, freelancer_caller, order_id, message="v1")
        await lifecycle.request_revision(db, client_caller, order_id, "Change colours")
        await lifecycle.submit_delivery(db, freelancer_caller, order_id, message="v2")

        with pytest.raises(RevisionLimitExceeded):
            await lifecycle.request_revision(db, client_caller, order_id, "One more")

        order = await lifecycle.get_order(db, client_caller, order_id)
        assert order.status == OrderStatus.DELIVERED
        assert order.revisions_used == 1

    @pytest.mark.asyncio
    async def test_no_revisions_included(self, db, order_factory, client_caller, freelancer_caller):
        order = await order_factory(revisions_included=0)
        await lifecycle.submit_delivery(db, freelancer_caller, order.id, message="v1")

        with pytest.raises(RevisionLimitExceeded):
            await lifecycle.request_revision(db, client_caller, order.id, "Please change")

    @pytest.mark.asyncio
    async def test_revision_only_from_delivered(self, db, order_factory, client_caller):
        order = await order_factory()
        with pytest.raises(InvalidState):
            await lifecycle.request_revision(db, client_caller, order.id, "Too early")


@pytest.mark.lifecycle
class TestStartRejectAndCancel:

    @pytest.mark.asyncio
    async def test_start_pending_order(self, db, order_factory, freelancer_caller):
        order = await order_factory()
        await force_status(db, order.id, OrderStatus.PENDING_ACCEPTANCE)

        order = await lifecycle.start_order(db, freelancer_caller, order.id)

        assert order.status == OrderStatus.IN_PROGRESS
        contract = await contracts.fetch_contract(db, order.id)
        await db.refresh(contract)
        assert contract.freelancer_accepted_at is not None

    @pytest.mark.asyncio
    async def test_start_only_from_pending(self, db, order_factory, freelancer_caller):
        order = await order_factory()
        with pytest.raises(InvalidState):
            await lifecycle.start_order(db, freelancer_caller, order.id)

    @pytest.mark.asyncio
    async def test_client_rejects_pending_order(self, db, order_factory, client_caller, signal_log):
        order_id = (await order_factory()).id
        await force_status(db, order_id, OrderStatus.PENDING_ACCEPTANCE)
        signal_log.clear()

        order = await lifecycle.reject_order(db, client_caller, order_id, "Terms no longer fit")

        assert order.status == OrderStatus.CANCELLED
        contract = await contracts.fetch_contract(db, order_id)
        await db.refresh(contract)
        assert contract.status == ContractStatus.CANCELLED
        assert contract.rejection_reason == "Terms no longer fit"
        assert contract.rejected_by == client_caller.id
        assert contract.rejected_at is not None

        events = await lifecycle.list_events(db, client_caller, order_id)
        assert events[-1].event_type == OrderEventType.ORDER_REJECTED
        assert events[-1].event_metadata == {"reason": "Terms no longer fit", "rejected_by": client_caller.id}
        assert [s for s, _ in signal_log] == [str(Signal.ORDER_STATUS_CHANGED)]

    @pytest.mark.asyncio
    async def test_admin_can_reject(self, db, order_factory, admin_caller):
        order_id = (await order_factory()).id
        await force_status(db, order_id, OrderStatus.PENDING_ACCEPTANCE)

        order = await lifecycle.reject_order(db, admin_caller, order_id, "Policy violation")
        assert order.status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_freelancer_cannot_reject(self, db, order_factory, freelancer_caller):
        order_id = (await order_factory()).id
        await force_status(db, order_id, OrderStatus.PENDING_ACCEPTANCE)

        with pytest.raises(Unauthorized):
            await lifecycle.reject_order(db, freelancer_caller, order_id, "Too busy")

    @pytest.mark.asyncio
    async def test_reject_only_from_pending(self, db, order_factory, client_caller):
        order_id = (await order_factory()).id

        with pytest.raises(InvalidState):
            await lifecycle.reject_order(db, client_caller, order_id, "Changed my mind")

        contract = await contracts.fetch_contract(db, order_id)
        await db.refresh(contract)
        assert contract.rejected_at is None

    @pytest.mark.asyncio
    async def test_cancel(self, db, order_factory, client_caller):
        order = await order_factory()

        order = await lifecycle.cancel_order(db, client_caller, order.id, "No longer needed")

        assert order.status == OrderStatus.CANCELLED
        assert await contract_status(db, order.id) == ContractStatus.CANCELLED
        events = await lifecycle.list_events(db, client_caller, order.id)
        assert events[-1].event_type == OrderEventType.ORDER_CANCELLED
        assert events[-1].event_metadata["previous_status"] == "in_progress"

    @pytest.mark.asyncio
    async def test_outsider_cannot_cancel(self, db, order_factory, other_client_caller):
        order = await order_factory()
        with pytest.raises(Unauthorized):
            await lifecycle.cancel_order(db, other_client_caller, order.id, "Not mine")

    @pytest.mark.asyncio
    async def test_admin_can_cancel(self, db, order_factory, admin_caller):
        order = await order_factory()
        order = await lifecycle.cancel_order(db, admin_caller, order.id, "Policy violation")
        assert order.status == OrderStatus.CANCELLED


@pytest.mark.lifecycle
class TestTerminalImmutability:

    @pytest.mark.asyncio
    async def test_completed_order_is_frozen(self, db, order_factory, client_caller, freelancer_caller):
        order_id = (await order_factory()).id
        await lifecycle.submit_delivery(db, freelancer_caller, order_id, message="v1")
        await lifecycle.accept_delivery(db, client_caller, order_id)

        with pytest.raises(InvalidState):
            await lifecycle.submit_delivery(db, freelancer_caller, order_id, message="late")
        with pytest.raises(InvalidState):
            await lifecycle.request_revision(db, client_caller, order_id, "late")
        with pytest.raises(InvalidState):
            await lifecycle.accept_delivery(db, client_caller, order_id)
        with pytest.raises(InvalidState):
            await lifecycle.cancel_order(db, client_caller, order_id, "late")

    @pytest.mark.asyncio
    async def test_cancelled_order_is_frozen(self, db, order_factory, client_caller, freelancer_caller):
        order_id = (await order_factory()).id
        await lifecycle.cancel_order(db, client_caller, order_id, "Changed my mind")

        with pytest.raises(InvalidState):
            await lifecycle.submit_delivery(db, freelancer_caller, order_id, message="v1")
        with pytest.raises(InvalidState):
            await lifecycle.cancel_order(db, freelancer_caller, order_id, "again")


@pytest.mark.lifecycle
class TestDisputeFreeze:

    @pytest.mark.asyncio
    async def test_disputed_order_rejects_lifecycle_calls(self, db, order_factory, client_caller, freelancer_caller):
        order_id = (await order_factory()).id
        await force_status(db, order_id, OrderStatus.DISPUTED)

        with pytest.raises(InvalidState):
            await lifecycle.submit_delivery(db, freelancer_caller, order_id, message="v1")
        with pytest.raises(InvalidState):
            await lifecycle.request_revision(db, client_caller, order_id, "note")
        with pytest.raises(InvalidState):
            await lifecycle.accept_delivery(db, client_caller, order_id)
        with pytest.raises(InvalidState):
            await lifecycle.cancel_order(db, client_caller, order_id, "escape")

        order = await lifecycle.get_order(db, client_caller, order_id)
        assert order.status == OrderStatus.DISPUTED


@pytest.mark.lifecycle
class TestOrderReads:

    @pytest.mark.asyncio
    async def test_list_orders_scoped_by_role(
        self, db, order_factory, client_caller, freelancer_caller, other_client_caller, admin_caller
    ):
        first = await order_factory()
        second = await order_factory()

        assert {o.id for o in await lifecycle.list_orders(db, client_caller)} == {first.id, second.id}
        assert {o.id for o in await lifecycle.list_orders(db, freelancer_caller)} == {first.id, second.id}
        assert await lifecycle.list_orders(db, other_client_caller) == []
        assert len(await lifecycle.list_orders(db, admin_caller)) == 2

    @pytest.mark.asyncio
    async def test_list_orders_status_filter(self, db, order_factory, client_caller):
        first = await order_factory()
        await order_factory()
        await lifecycle.cancel_order(db, client_caller, first.id, "Duplicate")

        cancelled = await lifecycle.list_orders(db, client_caller, status=OrderStatus.CANCELLED)
        assert [o.id for o in cancelled] == [first.id]

    @pytest.mark.asyncio
    async def test_events_are_ordered(self, db, order_factory, client_caller, freelancer_caller):
        order = await order_factory()
        await lifecycle.submit_delivery(db, freelancer_caller, order.id, message="v1")
        await lifecycle.request_revision(db, client_caller, order.id, "tweak")
        await lifecycle.submit_delivery(db, freelancer_caller, order.id, message="v2")
        await lifecycle.accept_delivery(db, client_caller, order.id)

        events = await lifecycle.list_events(db, freelancer_caller, order.id)
        assert [e.event_type for e in events] == [
            OrderEventType.ORDER_CREATED,
            OrderEventType.DELIVERY_SUBMITTED,
            OrderEventType.REVISION_REQUESTED,
            OrderEventType.DELIVERY_SUBMITTED,
            OrderEventType.DELIVERY_ACCEPTED,
        ]
        assert events[2].event_metadata == {"note": "tweak", "revisions_used": 1, "revisions_included": 1}

    @pytest.mark.asyncio
    async def test_get_order_party_only(self, db, order_factory, other_client_caller):
        order = await order_factory()
        with pytest.raises(Unauthorized):
            await lifecycle.get_order(db, other_client_caller, order.id)
