# Overview: Pytest coverage for the inter-branch transfer workflow.

import pytest

from branchstock.errors import (
    EntityNotFound,
    InsufficientSourceStock,
    InvalidQuantity,
    InvalidTransition,
    ValidationError,
)
from branchstock.models import DocumentSequence, StockMovement, Transfer, TransferItem, TransferStatus
from branchstock.services import stock_ledger, transfer_service
from branchstock.services.transfer_service import TRANSITIONS, guard
from branchstock.time_utils import business_today


@pytest.fixture
def make_transfer(db_session, branch_x, branch_y, product, actor_id):
    def _make(quantity=5, items=None):
        return transfer_service.create_transfer(
            from_branch_id=branch_x.id,
            to_branch_id=branch_y.id,
            items=items if items is not None else [{"product_id": product.id, "quantity_requested": quantity}],
            actor_id=actor_id,
            notes="restock",
        )
    return _make


def _movements(db_session, kind, transfer_id):
    return db_session.query(StockMovement).filter_by(reference_kind=kind, reference_id=transfer_id).all()


class TestTransitionTable:
    EXPECTED = {
        ("approve", "PENDING"), ("reject", "PENDING"), ("delete", "PENDING"),
        ("send", "APPROVED"), ("receive", "SENT"),
    }

    @pytest.mark.parametrize("operation", sorted(TRANSITIONS))
    @pytest.mark.parametrize("status", [s.value for s in TransferStatus])
    def test_guard(self, operation, status):
        transfer = Transfer(id=1, transfer_number="TRF/T/2024/01/001", status=status)
        if (operation, status) in self.EXPECTED:
            guard(transfer, operation)
        else:
            with pytest.raises(InvalidTransition) as exc_info:
                guard(transfer, operation)
            assert exc_info.value.details["status"] == status


class TestCreate:
    def test_create_pending_with_number(self, db_session, make_transfer, branch_x, actor_id):
        transfer = make_transfer()

        period = business_today().strftime("%Y/%m")
        assert transfer.status == "PENDING"
        assert transfer.transfer_number == f"TRF/BRX/{period}/001"
        assert transfer.requested_by == actor_id
        assert transfer.requested_at is not None
        assert transfer.notes == "restock"
        assert [(i.quantity_requested, i.quantity_sent) for i in transfer.items] == [(5, None)]
        assert make_transfer().transfer_number == f"TRF/BRX/{period}/002"

    def test_same_branch_rejected(self, db_session, branch_x, product, actor_id):
        with pytest.raises(ValidationError):
            transfer_service.create_transfer(
                from_branch_id=branch_x.id,
                to_branch_id=branch_x.id,
                items=[{"product_id": product.id, "quantity_requested": 1}],
                actor_id=actor_id,
            )

    def test_item_validation(self, db_session, make_transfer, product):
        with pytest.raises(ValidationError):
            make_transfer(items=[])
        with pytest.raises(InvalidQuantity):
            make_transfer(items=[{"product_id": product.id, "quantity_requested": 0}])
        with pytest.raises(EntityNotFound):
            make_transfer(items=[{"product_id": 999999, "quantity_requested": 1}])
        with pytest.raises(ValidationError):
            make_transfer(items=[
                {"product_id": product.id, "quantity_requested": 1},
                {"product_id": product.id, "quantity_requested": 2},
            ])
        assert db_session.query(Transfer).count() == 0


class TestHappyPath:
    def test_full_lifecycle_moves_stock(self, db_session, make_transfer, branch_x, branch_y, product, seed_stock, actor_id):
        seed_stock(branch_x, product, 10)
        transfer = make_transfer(5)

        transfer_service.approve_transfer(transfer_id=transfer.id, actor_id=actor_id)
        sent = transfer_service.send_transfer(transfer_id=transfer.id, actor_id=actor_id)

        assert sent.status == "SENT"
        assert sent.delivery_note_number.startswith("DN/BRX/")
        assert stock_ledger.current_quantity(branch_x.id, product.id) == 5
        assert stock_ledger.current_quantity(branch_y.id, product.id) == 0

        received = transfer_service.receive_transfer(
            transfer_id=transfer.id, actor_id=actor_id, receiving_notes="all good"
        )

        assert received.status == "RECEIVED"
        assert received.receiving_notes == "all good"
        assert stock_ledger.current_quantity(branch_x.id, product.id) == 5
        assert stock_ledger.current_quantity(branch_y.id, product.id) == 5
        item = received.items[0]
        assert (item.quantity_requested, item.quantity_sent, item.quantity_received) == (5, 5, 5)

        out = _movements(db_session, "TRANSFER_OUT", transfer.id)
        into = _movements(db_session, "TRANSFER_IN", transfer.id)
        assert [(m.branch_id, m.direction, m.quantity) for m in out] == [(branch_x.id, "OUT", 5)]
        assert [(m.branch_id, m.direction, m.quantity) for m in into] == [(branch_y.id, "IN", 5)]
        assert stock_ledger.verify_ledger() == []

    def test_actor_and_timestamps_recorded(self, db_session, make_transfer, product, branch_x, seed_stock):
        seed_stock(branch_x, product, 10)
        transfer = make_transfer()
        transfer_service.approve_transfer(transfer_id=transfer.id, actor_id=11)
        transfer_service.send_transfer(transfer_id=transfer.id, actor_id=12)
        transfer = transfer_service.receive_transfer(transfer_id=transfer.id, actor_id=13)

        assert (transfer.approved_by, transfer.sent_by, transfer.received_by) == (11, 12, 13)
        assert transfer.approved_at and transfer.sent_at and transfer.received_at

    def test_partial_quantities(self, db_session, make_transfer, branch_x, branch_y, product, product_b, seed_stock, actor_id):
        seed_stock(branch_x, product, 10)
        seed_stock(branch_x, product_b, 10)
        transfer = make_transfer(items=[
            {"product_id": product.id, "quantity_requested": 5},
            {"product_id": product_b.id, "quantity_requested": 4},
        ])
        first, second = transfer.items
        first_id, second_id = first.id, second.id
        transfer_service.approve_transfer(transfer_id=transfer.id, actor_id=actor_id)

        transfer_service.send_transfer(
            transfer_id=transfer.id,
            sent_quantities={str(first_id): 3, second_id: 0},
            actor_id=actor_id,
        )
        transfer_service.receive_transfer(
            transfer_id=transfer.id,
            received_quantities={first_id: 2},
            actor_id=actor_id,
        )

        assert stock_ledger.current_quantity(branch_x.id, product.id) == 7
        assert stock_ledger.current_quantity(branch_x.id, product_b.id) == 10
        assert stock_ledger.current_quantity(branch_y.id, product.id) == 2
        assert stock_ledger.get_stock(branch_y.id, product_b.id) is None
        assert len(_movements(db_session, "TRANSFER_OUT", transfer.id)) == 1
        items = db_session.query(TransferItem).filter_by(transfer_id=transfer.id).order_by(TransferItem.id).all()
        assert [(i.quantity_sent, i.quantity_received) for i in items] == [(3, 2), (0, 0)]


class TestGuards:
    def test_reject_after_approve_fails(self, db_session, make_transfer, actor_id):
        transfer = make_transfer()
        transfer_service.approve_transfer(transfer_id=transfer.id, actor_id=actor_id)

        with pytest.raises(InvalidTransition):
            transfer_service.reject_transfer(transfer_id=transfer.id, reason="late", actor_id=actor_id)

        transfer = transfer_service.get_transfer(transfer.id)
        assert transfer.status == "APPROVED"
        assert transfer.rejection_reason is None

    def test_reject_pending(self, db_session, make_transfer, actor_id):
        transfer = make_transfer()
        rejected = transfer_service.reject_transfer(transfer_id=transfer.id, reason="not needed", actor_id=actor_id)
        assert rejected.status == "REJECTED"
        assert rejected.rejection_reason == "not needed"
        assert rejected.approved_by == actor_id

        with pytest.raises(InvalidTransition):
            transfer_service.approve_transfer(transfer_id=transfer.id, actor_id=actor_id)

    def test_reject_requires_reason(self, db_session, make_transfer, actor_id):
        transfer = make_transfer()
        with pytest.raises(ValidationError):
            transfer_service.reject_transfer(transfer_id=transfer.id, reason="  ", actor_id=actor_id)

    def test_send_requires_approval(self, db_session, make_transfer, branch_x, product, seed_stock, actor_id):
        seed_stock(branch_x, product, 10)
        transfer = make_transfer()
        with pytest.raises(InvalidTransition):
            transfer_service.send_transfer(transfer_id=transfer.id, actor_id=actor_id)
        with pytest.raises(InvalidTransition):
            transfer_service.receive_transfer(transfer_id=transfer.id, actor_id=actor_id)
        assert stock_ledger.current_quantity(branch_x.id, product.id) == 10

    def test_no_second_receive(self, db_session, make_transfer, branch_x, branch_y, product, seed_stock, actor_id):
        seed_stock(branch_x, product, 10)
        transfer = make_transfer()
        transfer_service.approve_transfer(transfer_id=transfer.id, actor_id=actor_id)
        transfer_service.send_transfer(transfer_id=transfer.id, actor_id=actor_id)
        transfer_service.receive_transfer(transfer_id=transfer.id, actor_id=actor_id)

        with pytest.raises(InvalidTransition):
            transfer_service.receive_transfer(transfer_id=transfer.id, actor_id=actor_id)
        assert stock_ledger.current_quantity(branch_y.id, product.id) == 5

    def test_unknown_transfer(self, db_session, actor_id):
        with pytest.raises(EntityNotFound):
            transfer_service.approve_transfer(transfer_id=999999, actor_id=actor_id)


class TestSendStockChecks:
    def test_insufficient_source_stock_is_atomic(self, db_session, make_transfer, branch_x, product, product_b, seed_stock, actor_id):
        seed_stock(branch_x, product, 10)
        seed_stock(branch_x, product_b, 3)
        transfer = make_transfer(items=[
            {"product_id": product.id, "quantity_requested": 5},
            {"product_id": product_b.id, "quantity_requested": 5},
        ])
        transfer_service.approve_transfer(transfer_id=transfer.id, actor_id=actor_id)

        with pytest.raises(InsufficientSourceStock) as exc_info:
            transfer_service.send_transfer(transfer_id=transfer.id, actor_id=actor_id)

        shortages = exc_info.value.details["items"]
        assert [(s["product_id"], s["available"]) for s in shortages] == [(product_b.id, 3)]
        assert stock_ledger.current_quantity(branch_x.id, product.id) == 10
        assert stock_ledger.current_quantity(branch_x.id, product_b.id) == 3
        assert _movements(db_session, "TRANSFER_OUT", transfer.id) == []
        transfer = transfer_service.get_transfer(transfer.id)
        assert transfer.status == "APPROVED"
        assert transfer.delivery_note_number is None
        assert all(item.quantity_sent is None for item in transfer.items)
        assert db_session.query(DocumentSequence).filter_by(document_type="DELIVERY_NOTE").count() == 0

    def test_unknown_item_id(self, db_session, make_transfer, branch_x, product, seed_stock, actor_id):
        seed_stock(branch_x, product, 10)
        transfer = make_transfer()
        transfer_service.approve_transfer(transfer_id=transfer.id, actor_id=actor_id)
        with pytest.raises(EntityNotFound):
            transfer_service.send_transfer(transfer_id=transfer.id, sent_quantities={999999: 1}, actor_id=actor_id)

    def test_negative_sent_quantity(self, db_session, make_transfer, branch_x, product, seed_stock, actor_id):
        seed_stock(branch_x, product, 10)
        transfer = make_transfer()
        item_id = transfer.items[0].id
        transfer_service.approve_transfer(transfer_id=transfer.id, actor_id=actor_id)
        with pytest.raises(InvalidQuantity):
            transfer_service.send_transfer(transfer_id=transfer.id, sent_quantities={item_id: -1}, actor_id=actor_id)


class TestQuantityLimits:
    def _approved(self, make_transfer, branch_x, product, seed_stock, actor_id):
        seed_stock(branch_x, product, 20)
        transfer = make_transfer(5)
        transfer_service.approve_transfer(transfer_id=transfer.id, actor_id=actor_id)
        return transfer.id, transfer.items[0].id

    def test_over_send_allowed_by_default(self, db_session, make_transfer, branch_x, product, seed_stock, actor_id):
        transfer_id, item_id = self._approved(make_transfer, branch_x, product, seed_stock, actor_id)
        transfer_service.send_transfer(transfer_id=transfer_id, sent_quantities={item_id: 8}, actor_id=actor_id)
        assert stock_ledger.current_quantity(branch_x.id, product.id) == 12

    def test_over_send_blocked_when_enforced(self, app, db_session, make_transfer, branch_x, product, seed_stock, actor_id, monkeypatch):
        monkeypatch.setitem(app.config, "ENFORCE_TRANSFER_QUANTITY_LIMITS", True)
        transfer_id, item_id = self._approved(make_transfer, branch_x, product, seed_stock, actor_id)
        with pytest.raises(InvalidQuantity):
            transfer_service.send_transfer(transfer_id=transfer_id, sent_quantities={item_id: 8}, actor_id=actor_id)
        assert stock_ledger.current_quantity(branch_x.id, product.id) == 20

    def test_over_receive_blocked_when_enforced(self, app, db_session, make_transfer, branch_x, branch_y, product, seed_stock, actor_id, monkeypatch):
        monkeypatch.setitem(app.config, "ENFORCE_TRANSFER_QUANTITY_LIMITS", True)
        transfer_id, item_id = self._approved(make_transfer, branch_x, product, seed_stock, actor_id)
        transfer_service.send_transfer(transfer_id=transfer_id, sent_quantities={item_id: 4}, actor_id=actor_id)

        with pytest.raises(InvalidQuantity):
            transfer_service.receive_transfer(transfer_id=transfer_id, received_quantities={item_id: 5}, actor_id=actor_id)

        assert stock_ledger.current_quantity(branch_y.id, product.id) == 0
        assert transfer_service.get_transfer(transfer_id).status == "SENT"


class TestDelete:
    def test_delete_pending(self, db_session, make_transfer, actor_id):
        transfer = make_transfer()
        transfer_id = transfer.id
        transfer_service.delete_transfer(transfer_id=transfer_id, actor_id=actor_id)
        assert db_session.get(Transfer, transfer_id) is None
        assert db_session.query(TransferItem).filter_by(transfer_id=transfer_id).count() == 0

    def test_delete_after_approval_fails(self, db_session, make_transfer, actor_id):
        transfer = make_transfer()
        transfer_service.approve_transfer(transfer_id=transfer.id, actor_id=actor_id)
        with pytest.raises(InvalidTransition):
            transfer_service.delete_transfer(transfer_id=transfer.id, actor_id=actor_id)


def test_summary_and_listing(db_session, make_transfer, actor_id, branch_y):
    pending = make_transfer(3)
    approved = make_transfer(2)
    transfer_service.approve_transfer(transfer_id=approved.id, actor_id=actor_id)

    summary = transfer_service.get_transfer_summary(pending.id)
    assert summary["total_requested"] == 3
    assert summary["total_sent"] == 0
    assert summary["is_terminal"] is False

    assert [t.id for t in transfer_service.list_transfers(status="approved")] == [approved.id]
    assert len(transfer_service.list_transfers(branch_id=branch_y.id)) == 2
    with pytest.raises(ValidationError):
        transfer_service.list_transfers(status="LOST")
