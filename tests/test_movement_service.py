import threading
from datetime import timedelta

import pytest
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError

from clinic_inventory.config import settings
from clinic_inventory.models.transaction import ProcessedMovement, TransactionRecord, TransactionType, utcnow
from clinic_inventory.schemas.movement import Adjustment, StockIn, Transfer, Usage
from clinic_inventory.services import movement_service
from clinic_inventory.services.errors import (
    AccessDeniedError,
    ConcurrentModificationError,
    DuplicateMovementError,
    InsufficientStockError,
    PartialTransferError,
    UnknownDepartmentError,
    UnknownItemError,
)
from clinic_inventory.services.movement_service import get_stock, record_movement
from clinic_inventory.services.status import StockStatus, classify
from tests.conftest import seed_catalog


def _record_count(db) -> int:
    return db.query(TransactionRecord).count()


class TestStockIn:
    def test_first_stock_in_creates_row_with_catalog_baseline(self, db, items, admin_actor):
        [record] = record_movement(db, StockIn(item_id=items["gauze"], department="ICU", quantity=30), admin_actor)

        stock = get_stock(db, items["gauze"], "ICU")
        assert stock.quantity == 30
        assert stock.max_quantity == 100
        assert stock.status == StockStatus.VERY_LOW.value
        assert record.change == 30
        assert record.transaction_type == TransactionType.STOCK_IN
        assert record.balance_before == 0
        assert record.balance_after == 30
        assert record.actor_id == admin_actor.id

    def test_explicit_baseline_only_applies_on_first_stock_in(self, db, items, admin_actor):
        record_movement(db, StockIn(item_id=items["gauze"], department="ICU", quantity=10, max_quantity=20), admin_actor)
        record_movement(db, StockIn(item_id=items["gauze"], department="ICU", quantity=10, max_quantity=500), admin_actor)

        stock = get_stock(db, items["gauze"], "ICU")
        assert stock.max_quantity == 20
        assert stock.quantity == 20
        assert stock.status == StockStatus.GOOD.value

    def test_unknown_item_writes_nothing(self, db, items, admin_actor):
        with pytest.raises(UnknownItemError):
            record_movement(db, StockIn(item_id="missing", department="CSR", quantity=1), admin_actor)
        assert _record_count(db) == 0

    def test_unknown_department_writes_nothing(self, db, items, admin_actor):
        with pytest.raises(UnknownDepartmentError):
            record_movement(db, StockIn(item_id=items["gauze"], department="Morgue", quantity=1), admin_actor)
        assert _record_count(db) == 0

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError):
            StockIn(item_id="x", department="CSR", quantity=0)


class TestUsage:
    def test_usage_to_very_low(self, db, items, admin_actor):
        record_movement(db, StockIn(item_id=items["gauze"], department="CSR", quantity=100), admin_actor)
        assert get_stock(db, items["gauze"], "CSR").status == StockStatus.GOOD.value

        [record] = record_movement(db, Usage(item_id=items["gauze"], department="CSR", quantity=60), admin_actor)

        stock = get_stock(db, items["gauze"], "CSR")
        assert stock.quantity == 40
        assert stock.status == StockStatus.VERY_LOW.value
        assert record.change == -60
        assert record.status_before == StockStatus.GOOD.value
        assert record.status_after == StockStatus.VERY_LOW.value

    def test_stock_in_then_usage_round_trip(self, db, stocked, admin_actor):
        item_id = stocked["gauze"]
        before = get_stock(db, item_id, "CSR").quantity
        count = _record_count(db)

        new = record_movement(db, StockIn(item_id=item_id, department="CSR", quantity=25), admin_actor)
        new += record_movement(db, Usage(item_id=item_id, department="CSR", quantity=25), admin_actor)

        assert get_stock(db, item_id, "CSR").quantity == before
        assert _record_count(db) == count + 2
        assert sum(r.change for r in new) == 0

    def test_usage_beyond_stock_is_rejected_not_clamped(self, db, stocked, admin_actor):
        count = _record_count(db)
        with pytest.raises(InsufficientStockError) as exc_info:
            record_movement(db, Usage(item_id=stocked["gauze"], department="CSR", quantity=101), admin_actor)

        assert exc_info.value.available == 100
        assert exc_info.value.requested == 101
        assert get_stock(db, stocked["gauze"], "CSR").quantity == 100
        assert _record_count(db) == count

    def test_usage_where_item_never_stocked(self, db, stocked, admin_actor):
        with pytest.raises(InsufficientStockError):
            record_movement(db, Usage(item_id=stocked["gauze"], department="ER", quantity=1), admin_actor)
        assert get_stock(db, stocked["gauze"], "ER") is None

    def test_usage_to_zero_is_out_of_stock(self, db, stocked, admin_actor):
        record_movement(db, Usage(item_id=stocked["paracetamol"], department="Pharmacy", quantity=40), admin_actor)
        assert get_stock(db, stocked["paracetamol"], "Pharmacy").status == StockStatus.OUT_OF_STOCK.value


class TestAdjustment:
    def test_negative_adjustment(self, db, stocked, admin_actor):
        [record] = record_movement(
            db, Adjustment(item_id=stocked["gauze"], department="CSR", change=-5, reason="Damaged"), admin_actor
        )
        assert record.transaction_type == TransactionType.ADJUSTMENT
        assert get_stock(db, stocked["gauze"], "CSR").quantity == 95

    def test_adjustment_below_zero_rejected(self, db, stocked, admin_actor):
        with pytest.raises(InsufficientStockError):
            record_movement(db, Adjustment(item_id=stocked["gauze"], department="CSR", change=-101), admin_actor)

    def test_positive_adjustment_creates_row(self, db, stocked, admin_actor):
        record_movement(db, Adjustment(item_id=stocked["gauze"], department="ER", change=3, reason="Count"), admin_actor)
        assert get_stock(db, stocked["gauze"], "ER").quantity == 3

    def test_zero_change_is_invalid(self):
        with pytest.raises(ValidationError):
            Adjustment(item_id="x", department="CSR", change=0)


class TestTransfer:
    def test_transfer_moves_stock_and_links_records(self, db, stocked, admin_actor):
        out, in_ = record_movement(
            db,
            Transfer(item_id=stocked["gauze"], source_department="CSR", destination_department="ICU", quantity=20),
            admin_actor,
        )

        assert get_stock(db, stocked["gauze"], "CSR").quantity == 80
        icu = get_stock(db, stocked["gauze"], "ICU")
        assert icu.quantity == 20
        assert icu.max_quantity == 100
        assert out.transaction_type == TransactionType.TRANSFER_OUT
        assert in_.transaction_type == TransactionType.TRANSFER_IN
        assert out.change == -20 and in_.change == 20
        assert out.transfer_id == in_.transfer_id != ""
        assert out.destination_department == in_.destination_department == "ICU"

    def test_transfer_increments_existing_destination(self, db, stocked, admin_actor):
        transfer = Transfer(
            item_id=stocked["paracetamol"], source_department="CSR", destination_department="Pharmacy", quantity=10
        )
        record_movement(db, transfer, admin_actor)
        assert get_stock(db, stocked["paracetamol"], "Pharmacy").quantity == 50
        assert get_stock(db, stocked["paracetamol"], "CSR").quantity == 140

    def test_insufficient_source_changes_nothing(self, db, items, admin_actor):
        record_movement(db, StockIn(item_id=items["gauze"], department="CSR", quantity=3), admin_actor)
        record_movement(db, StockIn(item_id=items["gauze"], department="ICU", quantity=7), admin_actor)
        count = _record_count(db)

        with pytest.raises(InsufficientStockError):
            record_movement(
                db,
                Transfer(item_id=items["gauze"], source_department="CSR", destination_department="ICU", quantity=5),
                admin_actor,
            )

        assert get_stock(db, items["gauze"], "CSR").quantity == 3
        assert get_stock(db, items["gauze"], "ICU").quantity == 7
        assert _record_count(db) == count

    def test_same_department_is_invalid(self):
        with pytest.raises(ValidationError):
            Transfer(item_id="x", source_department="CSR", destination_department="CSR", quantity=1)

    def test_failed_destination_leg_is_reported_and_rolled_back(self, db, stocked, admin_actor, monkeypatch):
        def broken_insert(*args, **kwargs):
            raise OperationalError("INSERT INTO location_stocks", {}, Exception("disk I/O error"))

        monkeypatch.setattr(movement_service, "_new_stock", broken_insert)
        count = _record_count(db)
        item_id = stocked["gauze"]

        with pytest.raises(PartialTransferError) as exc_info:
            record_movement(
                db,
                Transfer(item_id=item_id, source_department="CSR", destination_department="ICU", quantity=10),
                admin_actor,
            )

        err = exc_info.value
        assert err.completed_legs == [f"transfer_out:{item_id}@CSR"]
        assert err.failed_leg == f"transfer_in:{item_id}@ICU"
        assert err.rolled_back
        assert "rolled back" in str(err)
        assert err.to_detail()["code"] == "partial_transfer"
        assert get_stock(db, item_id, "CSR").quantity == 100
        assert get_stock(db, item_id, "ICU") is None
        assert _record_count(db) == count


class TestPersistedStatus:
    def test_status_matches_classifier_after_every_movement(self, db, stocked, admin_actor):
        movements = [
            Usage(item_id=stocked["gauze"], department="CSR", quantity=35),
            Transfer(item_id=stocked["gauze"], source_department="CSR", destination_department="ICU", quantity=20),
            Adjustment(item_id=stocked["gauze"], department="ICU", change=-19),
            StockIn(item_id=stocked["gauze"], department="ER", quantity=1),
        ]
        for m in movements:
            record_movement(db, m, admin_actor)
            for dept in ("CSR", "ICU", "ER"):
                stock = get_stock(db, stocked["gauze"], dept)
                if stock:
                    assert stock.status == classify(stock.quantity, stock.max_quantity).value


class TestIdempotency:
    def test_repeated_key_is_rejected(self, db, stocked, admin_actor):
        movement = StockIn(item_id=stocked["gauze"], department="CSR", quantity=5, idempotency_key="req-1")
        record_movement(db, movement, admin_actor)
        count = _record_count(db)

        with pytest.raises(DuplicateMovementError):
            record_movement(db, movement, admin_actor)

        assert get_stock(db, stocked["gauze"], "CSR").quantity == 105
        assert _record_count(db) == count

    def test_key_outside_retention_window_is_reusable(self, db, stocked, admin_actor):
        db.add(ProcessedMovement(
            key="req-old",
            kind="stock_in",
            created_at=utcnow() - timedelta(hours=settings.IDEMPOTENCY_RETENTION_HOURS + 1),
        ))
        db.commit()

        record_movement(
            db, StockIn(item_id=stocked["gauze"], department="CSR", quantity=5, idempotency_key="req-old"), admin_actor
        )
        assert get_stock(db, stocked["gauze"], "CSR").quantity == 105

    def test_rejected_movement_does_not_consume_key(self, db, stocked, admin_actor):
        usage = Usage(item_id=stocked["gauze"], department="CSR", quantity=500, idempotency_key="req-2")
        with pytest.raises(InsufficientStockError):
            record_movement(db, usage, admin_actor)
        assert db.get(ProcessedMovement, "req-2") is None

    def test_conflict_while_reusing_expired_key_is_retried(self, db, stocked, admin_actor, monkeypatch):
        db.add(ProcessedMovement(
            key="req-stale",
            kind="usage",
            created_at=utcnow() - timedelta(hours=settings.IDEMPOTENCY_RETENTION_HOURS + 1),
        ))
        db.commit()

        apply_stock_in = movement_service._APPLIERS["stock_in"]
        calls = []

        def conflicting_once(*args):
            calls.append(args)
            if len(calls) == 1:
                raise IntegrityError("INSERT INTO location_stocks", {}, Exception("UNIQUE constraint failed"))
            return apply_stock_in(*args)

        monkeypatch.setitem(movement_service._APPLIERS, "stock_in", conflicting_once)
        record_movement(
            db, StockIn(item_id=stocked["gauze"], department="CSR", quantity=5, idempotency_key="req-stale"), admin_actor
        )

        assert len(calls) == 2
        assert get_stock(db, stocked["gauze"], "CSR").quantity == 105


class TestConcurrency:
    @pytest.fixture
    def seeded(self, file_sessions, admin_actor):
        session = file_sessions()
        try:
            items = seed_catalog(session)
            record_movement(session, StockIn(item_id=items["gauze"], department="CSR", quantity=10), admin_actor)
        finally:
            session.close()
        return items

    def test_stale_read_is_retried(self, file_sessions, seeded, admin_actor):
        first, second = file_sessions(), file_sessions()
        try:
            # first session caches the row at quantity 10
            assert get_stock(first, seeded["gauze"], "CSR").quantity == 10

            record_movement(second, StockIn(item_id=seeded["gauze"], department="CSR", quantity=1), admin_actor)
            [record] = record_movement(
                first, StockIn(item_id=seeded["gauze"], department="CSR", quantity=1), admin_actor
            )

            assert record.balance_before == 11
            assert record.balance_after == 12
        finally:
            first.close()
            second.close()

        check = file_sessions()
        try:
            assert get_stock(check, seeded["gauze"], "CSR").quantity == 12
        finally:
            check.close()

    def test_gives_up_after_max_retries(self, file_sessions, seeded, admin_actor, monkeypatch):
        monkeypatch.setattr(settings, "MOVEMENT_MAX_RETRIES", 1)
        first, second = file_sessions(), file_sessions()
        try:
            get_stock(first, seeded["gauze"], "CSR")
            record_movement(second, StockIn(item_id=seeded["gauze"], department="CSR", quantity=1), admin_actor)

            with pytest.raises(ConcurrentModificationError):
                record_movement(first, StockIn(item_id=seeded["gauze"], department="CSR", quantity=1), admin_actor)
        finally:
            first.close()
            second.close()

    def test_parallel_stock_ins_all_apply(self, file_sessions, seeded, admin_actor):
        errors = []

        def worker():
            session = file_sessions()
            try:
                record_movement(session, StockIn(item_id=seeded["gauze"], department="CSR", quantity=1), admin_actor)
            except Exception as exc:  # surfaced through the assertion below
                errors.append(exc)
            finally:
                session.close()

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        check = file_sessions()
        try:
            assert get_stock(check, seeded["gauze"], "CSR").quantity == 15
        finally:
            check.close()


class TestRowLockRegistry:
    def test_same_key_shares_a_lock(self):
        registry = movement_service.RowLockRegistry()
        assert registry._lock_for(("a", "CSR")) is registry._lock_for(("a", "CSR"))
        assert registry._lock_for(("a", "CSR")) is not registry._lock_for(("a", "ICU"))

    def test_hold_releases_on_error(self):
        registry = movement_service.RowLockRegistry()
        with pytest.raises(RuntimeError):
            with registry.hold([("a", "ICU"), ("a", "CSR")]):
                raise RuntimeError("boom")
        lock = registry._lock_for(("a", "CSR"))
        assert lock.acquire(blocking=False)
        lock.release()


class TestAccess:
    def test_staff_cannot_use_stock_of_another_department(self, db, stocked, icu_actor):
        count = _record_count(db)
        with pytest.raises(AccessDeniedError) as exc_info:
            record_movement(db, Usage(item_id=stocked["gauze"], department="CSR", quantity=50), icu_actor)

        assert exc_info.value.department == "CSR"
        assert exc_info.value.status_code == 403
        assert get_stock(db, stocked["gauze"], "CSR").quantity == 100
        assert _record_count(db) == count

    def test_staff_cannot_pull_stock_into_own_department(self, db, stocked, icu_actor):
        with pytest.raises(AccessDeniedError):
            record_movement(
                db,
                Transfer(item_id=stocked["gauze"], source_department="CSR", destination_department="ICU", quantity=10),
                icu_actor,
            )
        assert get_stock(db, stocked["gauze"], "ICU") is None

    def test_staff_records_usage_in_own_department(self, db, stocked, admin_actor, icu_actor):
        record_movement(
            db,
            Transfer(item_id=stocked["gauze"], source_department="CSR", destination_department="ICU", quantity=10),
            admin_actor,
        )
        [record] = record_movement(db, Usage(item_id=stocked["gauze"], department="ICU", quantity=4), icu_actor)

        assert record.actor_id == icu_actor.id
        assert get_stock(db, stocked["gauze"], "ICU").quantity == 6
