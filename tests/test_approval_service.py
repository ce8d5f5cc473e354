import pytest
from pymongo.errors import OperationFailure, PyMongoError

from agrolink.errors import (
    ForbiddenError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    RemoteUnavailableError,
)

from .conftest import FARMER_ID, LOGISTIC_ID, RETAILER_ID, WAREHOUSE_ID


def _quantity(db):
    return db.catalog_items.find_one()["quantity_available"]


def _status(db, request_row):
    from bson import ObjectId
    return db.requests.find_one({"_id": ObjectId(request_row["request_id"])})["status"]


class TestApprove:

    def test_happy_path(self, approvals, request_service, crop, db):
        req = request_service.submit("retailer", RETAILER_ID, crop["item_id"], 30)

        result = approvals.approve("farmer", FARMER_ID, req["request_id"])

        assert result["request"]["status"] == "approved"
        assert result["item"]["quantity_available"] == 70
        assert result["obligation"]["amount_due"] == 300
        assert result["obligation"]["payer_id"] == RETAILER_ID
        assert result["obligation"]["payee_id"] == FARMER_ID
        assert _quantity(db) == 70
        assert _status(db, req) == "approved"
        assert db.settlements.count_documents({"request_id": req["request_id"]}) == 1
        assert db.accepted_requests.count_documents({}) == 1

    def test_oversell_leaves_everything_untouched(self, approvals, request_service, catalog, crop, db):
        # submitted while 100 were on hand; stock then drops to 10
        req = request_service.submit("retailer", RETAILER_ID, crop["item_id"], 20)
        catalog.adjust_quantity(crop["item_id"], -90, owner_id=FARMER_ID)

        with pytest.raises(InsufficientStockError) as exc:
            approvals.approve("farmer", FARMER_ID, req["request_id"])

        assert exc.value.details == {"available": 10, "requested": 20}
        assert _quantity(db) == 10
        assert _status(db, req) == "pending"
        assert db.settlements.count_documents({}) == 0
        assert db.accepted_requests.count_documents({}) == 0

    def test_only_owner_can_approve(self, approvals, request_service, crop):
        req = request_service.submit("retailer", RETAILER_ID, crop["item_id"], 5)
        with pytest.raises(ForbiddenError):
            approvals.approve("farmer", "FRM000009", req["request_id"])
        with pytest.raises(ForbiddenError):
            approvals.approve("retailer", RETAILER_ID, req["request_id"])

    def test_approve_twice(self, approvals, request_service, crop, db):
        req = request_service.submit("retailer", RETAILER_ID, crop["item_id"], 5)
        approvals.approve("farmer", FARMER_ID, req["request_id"])

        with pytest.raises(InvalidTransitionError) as exc:
            approvals.approve("farmer", FARMER_ID, req["request_id"])
        assert exc.value.details == {"status": "approved"}
        assert _quantity(db) == 95
        assert db.settlements.count_documents({}) == 1

    def test_item_deleted_before_approval(self, approvals, request_service, catalog, crop):
        req = request_service.submit("retailer", RETAILER_ID, crop["item_id"], 5)
        catalog.remove(FARMER_ID, crop["item_id"])
        with pytest.raises(NotFoundError):
            approvals.approve("farmer", FARMER_ID, req["request_id"])

    def test_unknown_request(self, approvals):
        with pytest.raises(NotFoundError):
            approvals.approve("farmer", FARMER_ID, "5f0c0c0c0c0c0c0c0c0c0c0c")

    def test_price_snapshot_taken_at_approval(self, approvals, request_service, catalog, crop):
        req = request_service.submit("retailer", RETAILER_ID, crop["item_id"], 3)
        catalog.update("farmer", FARMER_ID, crop["item_id"], {"price": 12.5})

        result = approvals.approve("farmer", FARMER_ID, req["request_id"])
        assert result["obligation"]["unit_price"] == 12.5
        assert result["obligation"]["amount_due"] == 37.5

    def test_storage_obligation_has_due_date(self, approvals, request_service, catalog):
        unit = catalog.create("warehouse", WAREHOUSE_ID,
                              {"storage_name": "Cold room", "capacity": 10, "price_per_day": 150})
        req = request_service.submit("farmer", FARMER_ID, unit["item_id"], 4)

        obligation = approvals.approve("warehouse", WAREHOUSE_ID, req["request_id"])["obligation"]
        assert obligation["kind"] == "storage"
        assert obligation["amount_due"] == 600
        assert obligation["due_date"] is not None

    def test_vehicle_uses_its_own_rate(self, approvals, request_service, catalog):
        truck = catalog.create("logistic", LOGISTIC_ID,
                               {"vehicle_number": "MH12", "capacity": 20, "rate_per_unit": 850})
        req = request_service.submit("farmer", FARMER_ID, truck["item_id"], 2)

        obligation = approvals.approve("logistic", LOGISTIC_ID, req["request_id"])["obligation"]
        assert obligation["amount_due"] == 1700
        assert obligation["due_date"] is None


class _FailingInserts:
    """Collection proxy whose insert_one always fails."""

    def __init__(self, inner):
        self._inner = inner

    def insert_one(self, *args, **kwargs):
        raise PyMongoError("simulated write failure")

    def __getattr__(self, name):
        return getattr(self._inner, name)


def test_failed_obligation_insert_rolls_back(approvals, request_service, crop, db):
    req = request_service.submit("retailer", RETAILER_ID, crop["item_id"], 30)
    approvals.settlements = _FailingInserts(approvals.settlements)

    with pytest.raises(RemoteUnavailableError):
        approvals.approve("farmer", FARMER_ID, req["request_id"])

    assert _quantity(db) == 100
    assert _status(db, req) == "pending"
    assert db.accepted_requests.count_documents({}) == 0
    assert db.settlements.count_documents({}) == 0


class TestReject:

    def test_reject_path(self, approvals, request_service, crop, db):
        req = request_service.submit("retailer", RETAILER_ID, crop["item_id"], 5)

        row = approvals.reject("farmer", FARMER_ID, req["request_id"])

        assert row["status"] == "rejected"
        assert row["processed_at"] is not None
        assert _quantity(db) == 100
        assert db.settlements.count_documents({}) == 0
        assert db.declined_requests.count_documents({}) == 1

    def test_second_reject_changes_nothing(self, approvals, request_service, crop, db):
        req = request_service.submit("retailer", RETAILER_ID, crop["item_id"], 5)
        approvals.reject("farmer", FARMER_ID, req["request_id"])
        before = db.requests.find_one()

        with pytest.raises(InvalidTransitionError):
            approvals.reject("farmer", FARMER_ID, req["request_id"])

        assert db.requests.find_one() == before

    def test_cannot_approve_after_reject(self, approvals, request_service, crop, db):
        req = request_service.submit("retailer", RETAILER_ID, crop["item_id"], 5)
        approvals.reject("farmer", FARMER_ID, req["request_id"])

        with pytest.raises(InvalidTransitionError):
            approvals.approve("farmer", FARMER_ID, req["request_id"])
        assert _quantity(db) == 100

    def test_only_owner_can_reject(self, approvals, request_service, crop):
        req = request_service.submit("retailer", RETAILER_ID, crop["item_id"], 5)
        with pytest.raises(ForbiddenError):
            approvals.reject("retailer", RETAILER_ID, req["request_id"])


def test_replayed_approve_reports_transition_not_stock(approvals, request_service, crop, db):
    # the second call loaded the request while it was still pending
    req = request_service.submit("retailer", RETAILER_ID, crop["item_id"], 60)
    snapshot = db.requests.find_one()
    approvals.approve("farmer", FARMER_ID, req["request_id"])

    approvals._load_owned_pending = lambda *args: dict(snapshot)
    with pytest.raises(InvalidTransitionError) as exc:
        approvals.approve("farmer", FARMER_ID, req["request_id"])

    assert exc.value.details == {"status": "approved"}
    assert _quantity(db) == 40
    assert db.settlements.count_documents({}) == 1


# ------------------------------
# transaction mode
# ------------------------------
def _write_conflict():
    return OperationFailure("WriteConflict", code=112,
                            details={"errorLabels": ["TransientTransactionError"]})


class _Sessionless:
    """
    Collection proxy that drops `session` (mongomock has no sessions) and
    fails the first `conflicts` conditional decrements with a write conflict.
    """

    def __init__(self, inner, conflicts=0):
        self._inner = inner
        self.conflicts = conflicts

    def find_one_and_update(self, *args, **kwargs):
        kwargs.pop("session", None)
        if self.conflicts:
            self.conflicts -= 1
            raise _write_conflict()
        return self._inner.find_one_and_update(*args, **kwargs)

    def __getattr__(self, name):
        attr = getattr(self._inner, name)

        def call(*args, **kwargs):
            kwargs.pop("session", None)
            return attr(*args, **kwargs)
        return call


class _RetryingSession:
    """Retries the callback on TransientTransactionError like pymongo does."""

    def __init__(self, max_attempts=3):
        self.max_attempts = max_attempts
        self.attempts = 0

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def with_transaction(self, callback):
        while True:
            self.attempts += 1
            try:
                return callback(self)
            except PyMongoError as e:
                if e.has_error_label("TransientTransactionError") and self.attempts < self.max_attempts:
                    continue
                raise


class _SessionClient:
    def __init__(self, session):
        self.session = session

    def start_session(self):
        return self.session


def _transactional(approvals, conflicts, max_attempts=3):
    session = _RetryingSession(max_attempts)
    approvals.use_transactions = True
    approvals.client = _SessionClient(session)
    approvals.catalog.items = _Sessionless(approvals.catalog.items, conflicts=conflicts)
    for name in ("items", "requests", "accepted", "settlements"):
        setattr(approvals, name, _Sessionless(getattr(approvals, name)))
    return session


def test_write_conflict_in_transaction_is_retried(approvals, request_service, crop, db):
    req = request_service.submit("retailer", RETAILER_ID, crop["item_id"], 30)
    session = _transactional(approvals, conflicts=1)

    result = approvals.approve("farmer", FARMER_ID, req["request_id"])

    assert session.attempts == 2
    assert result["item"]["quantity_available"] == 70
    assert _quantity(db) == 70
    assert _status(db, req) == "approved"
    assert db.settlements.count_documents({}) == 1


def test_persistent_write_conflict_is_unavailable(approvals, request_service, crop, db):
    req = request_service.submit("retailer", RETAILER_ID, crop["item_id"], 30)
    session = _transactional(approvals, conflicts=5, max_attempts=2)

    with pytest.raises(RemoteUnavailableError):
        approvals.approve("farmer", FARMER_ID, req["request_id"])

    assert session.attempts == 2
    assert _quantity(db) == 100
    assert _status(db, req) == "pending"


def test_adjust_outside_a_transaction_still_maps_store_errors(catalog, crop):
    catalog.items = _Sessionless(catalog.items, conflicts=1)
    with pytest.raises(RemoteUnavailableError):
        catalog.adjust_quantity(crop["item_id"], -5)
