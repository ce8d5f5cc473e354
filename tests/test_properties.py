"""
Property-based checks of the request lifecycle with Hypothesis.

Random interleavings of submit / approve / reject / restock against a
single item must keep:
- quantity_available >= 0 at every step
- every request in exactly one state, terminal states final
- one obligation per approved request, amount = unit price x quantity
"""

from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from agrolink.errors import InsufficientStockError, InvalidTransitionError, ValidationError
from agrolink.services.approval_service import ApprovalService
from agrolink.services.catalog_service import CatalogService
from agrolink.services.request_service import RequestService

from .conftest import FARMER_ID, make_db

operations = st.lists(
    st.tuples(
        st.sampled_from(["submit", "approve", "reject", "restock", "write_off"]),
        st.integers(min_value=1, max_value=40),
    ),
    max_size=30,
)


@settings(max_examples=60, deadline=None, suppress_health_check=[HealthCheck.too_slow])
@given(
    initial=st.integers(min_value=1, max_value=60),
    price=st.decimals(min_value=Decimal("0.01"), max_value=Decimal("999.99"), places=2),
    ops=operations,
)
def test_lifecycle_invariants(initial, price, ops):
    db = make_db()
    catalog = CatalogService(db, read_retries=1)
    requests = RequestService(db, read_retries=1)
    approvals = ApprovalService(db, catalog=catalog, read_retries=1)

    item = catalog.create("farmer", FARMER_ID, {"crop_name": "Wheat", "quantity": initial, "price": str(price)})
    item_id = item["item_id"]
    unit_price = Decimal(str(item["unit_price"]))

    expected_qty = initial
    final_status = {}

    for n, (op, value) in enumerate(ops):
        pending = [rid for rid, s in final_status.items() if s == "pending"]

        if op == "submit":
            try:
                row = requests.submit("retailer", f"RET{n:06d}", item_id, value)
            except ValidationError:
                assert value > catalog.get(item_id)["quantity_available"]
            else:
                final_status[row["request_id"]] = "pending"

        elif op in ("approve", "reject") and pending:
            rid = pending[value % len(pending)]
            if op == "approve":
                try:
                    result = approvals.approve("farmer", FARMER_ID, rid)
                except InsufficientStockError:
                    pass
                else:
                    expected_qty -= result["obligation"]["approved_quantity"]
                    final_status[rid] = "approved"
            else:
                approvals.reject("farmer", FARMER_ID, rid)
                final_status[rid] = "rejected"

        elif op == "restock":
            catalog.adjust_quantity(item_id, value, owner_id=FARMER_ID)
            expected_qty += value

        elif op == "write_off":
            try:
                catalog.adjust_quantity(item_id, -value, owner_id=FARMER_ID)
            except InsufficientStockError:
                pass
            else:
                expected_qty -= value

        qty = catalog.get(item_id)["quantity_available"]
        assert qty >= 0
        assert qty == expected_qty

    # terminal states are final
    for rid, status in final_status.items():
        if status in ("approved", "rejected"):
            for action in (approvals.approve, approvals.reject):
                try:
                    action("farmer", FARMER_ID, rid)
                except InvalidTransitionError:
                    pass
                else:
                    raise AssertionError(f"request {rid} left {status}")

    for rid, status in final_status.items():
        stored = requests.get(rid, "farmer", FARMER_ID)
        assert stored["status"] == status

        obligations = list(db.settlements.find({"request_id": rid}))
        if status == "approved":
            assert len(obligations) == 1
            ob = obligations[0]
            expected = (unit_price * ob["approved_quantity"]).quantize(Decimal("0.01"))
            assert Decimal(str(ob["amount_due"])) == expected
            assert ob["approved_quantity"] == stored["requested_quantity"]
        else:
            assert obligations == []
