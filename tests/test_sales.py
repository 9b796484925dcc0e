import pytest

from swiftsale import customers, db, inventory, sales, shop_settings
from swiftsale.errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError

CART = [{"sku": "TEA-1", "quantity": 2}, {"sku": "MUG-1", "quantity": 1}]


def _customer_due_matches_open_sales(shop_id, customer_id):
    open_due = sum(
        s["due"] for s in customers.customer_history(shop_id, customer_id) if not s.get("cancelled")
    )
    return customers.get_customer(shop_id, customer_id)["due"] == pytest.approx(open_due)


def test_quote_totals(stocked):
    q = sales.quote(stocked, CART, discount=10, tax_rate=5, amount_paid=200)
    assert q["subtotal"] == 250
    assert q["taxable"] == 240
    assert q["gst_amount"] == 12
    assert q["grand_total"] == 252
    assert q["amount_paid"] == 200
    assert q["due"] == 52
    assert q["profit"] == 100


def test_quote_defaults_to_shop_tax_and_full_payment(stocked):
    shop_settings.update_settings(stocked, {"default_tax": 10})
    q = sales.quote(stocked, [{"sku": "MUG-1", "quantity": 2}])
    assert q["tax_rate"] == 10
    assert q["grand_total"] == 110
    assert q["amount_paid"] == 110
    assert q["due"] == 0


def test_overpayment_leaves_no_due(stocked):
    q = sales.quote(stocked, [{"sku": "MUG-1", "quantity": 1}], tax_rate=0, amount_paid=80)
    assert q["due"] == 0


def test_duplicate_cart_lines_are_merged(stocked):
    q = sales.quote(stocked, [{"sku": "MUG-1", "quantity": 1}, {"sku": "MUG-1", "quantity": 2}], tax_rate=0)
    assert len(q["items"]) == 1
    assert q["items"][0]["quantity"] == 3


@pytest.mark.parametrize(
    "kwargs",
    [
        {"items": []},
        {"items": [{"sku": "TEA-1", "quantity": 0}]},
        {"items": CART, "discount": -1},
        {"items": CART, "discount": 251},
        {"items": CART, "tax_rate": 101},
        {"items": CART, "amount_paid": -5},
    ],
)
def test_quote_validation(stocked, kwargs):
    with pytest.raises(ValidationError):
        sales.quote(stocked, **kwargs)


def test_quote_unknown_sku(stocked):
    with pytest.raises(NotFoundError):
        sales.quote(stocked, [{"sku": "NOPE", "quantity": 1}])


def test_quote_more_than_stock(stocked):
    with pytest.raises(InsufficientStockError) as exc:
        sales.quote(stocked, [{"sku": "MUG-1", "quantity": 4}])
    assert "Only 3 units of Mug available." in str(exc.value)


def test_create_sale_updates_stock_sale_and_customer(stocked):
    sale = sales.create_sale(
        stocked,
        {"name": "Asha", "phone": "999", "address": "Street 1"},
        CART,
        discount=10,
        tax_rate=5,
        amount_paid=200,
        payment_mode="upi",
        user="owner@example.com",
    )

    assert sale["sale_id"] == "INV0001"
    assert sale["payment_mode"] == "UPI"
    assert sale["due"] == 52
    assert sale["profit"] == 100
    assert sale["customer_name"] == "Asha"
    assert {i["sku"]: i["quantity"] for i in sale["items"]} == {"TEA-1": 2, "MUG-1": 1}

    assert inventory.find_by_sku(stocked, "TEA-1")["stock"] == 8
    assert inventory.find_by_sku(stocked, "MUG-1")["stock"] == 2
    assert customers.get_customer(stocked, sale["customer_id"])["due"] == 52


def test_create_sale_for_existing_customer_accumulates_due(stocked):
    c = customers.add_customer(stocked, "Ravi")
    sales.create_sale(stocked, {"customer_id": c["customer_id"]}, [{"sku": "MUG-1", "quantity": 1}], tax_rate=0, amount_paid=20)
    second = sales.create_sale(stocked, {"customer_id": c["customer_id"]}, [{"sku": "TEA-1", "quantity": 1}], tax_rate=0, amount_paid=0)

    assert second["sale_id"] == "INV0002"
    assert customers.get_customer(stocked, c["customer_id"])["due"] == 130
    assert len(customers.list_customers(stocked)) == 1


def test_create_sale_rejects_unknown_customer(stocked):
    with pytest.raises(NotFoundError):
        sales.create_sale(stocked, {"customer_id": "C0099"}, CART)


def test_new_customer_needs_name_and_nothing_is_written(stocked):
    with pytest.raises(ValidationError):
        sales.create_sale(stocked, {"phone": "999"}, CART)
    assert inventory.find_by_sku(stocked, "TEA-1")["stock"] == 10
    assert customers.list_customers(stocked) == []


def test_invalid_cart_creates_no_customer(stocked):
    with pytest.raises(InsufficientStockError):
        sales.create_sale(stocked, {"name": "Asha"}, [{"sku": "MUG-1", "quantity": 9}])
    assert customers.list_customers(stocked) == []
    assert db.collection("sales").count_documents({}) == 0


def test_bad_payment_mode(stocked):
    with pytest.raises(ValidationError):
        sales.create_sale(stocked, {"name": "Asha"}, CART, payment_mode="Cheque")


def test_failed_stock_decrement_restores_earlier_lines(stocked, monkeypatch):
    real_reduce = inventory.reduce_stock

    def flaky_reduce(shop_id, sku, qty):
        if sku == "MUG-1":
            raise InsufficientStockError("Mug", 0)
        real_reduce(shop_id, sku, qty)

    monkeypatch.setattr(inventory, "reduce_stock", flaky_reduce)
    with pytest.raises(InsufficientStockError):
        sales.create_sale(stocked, {"name": "Asha"}, CART)

    assert inventory.find_by_sku(stocked, "TEA-1")["stock"] == 10
    assert db.collection("sales").count_documents({}) == 0


def test_failed_sale_insert_drops_new_customer(stocked, monkeypatch):
    real_next = db.next_series

    def broken_next(shop_id, prefix, name):
        if name == "sales":
            raise RuntimeError("counter unavailable")
        return real_next(shop_id, prefix, name)

    monkeypatch.setattr(db, "next_series", broken_next)
    with pytest.raises(RuntimeError):
        sales.create_sale(stocked, {"name": "Asha"}, CART)

    assert customers.list_customers(stocked) == []
    assert inventory.find_by_sku(stocked, "TEA-1")["stock"] == 10
    assert inventory.find_by_sku(stocked, "MUG-1")["stock"] == 3


def test_record_payment_reduces_sale_and_customer_due(stocked):
    sale = sales.create_sale(stocked, {"name": "Asha"}, CART, discount=10, tax_rate=5, amount_paid=200)

    paid = sales.record_payment(stocked, sale["sale_id"], 30, "Card", user="owner@example.com")
    assert paid["due"] == 22
    assert paid["amount_paid"] == 230
    assert paid["last_payment_mode"] == "Card"
    assert customers.get_customer(stocked, sale["customer_id"])["due"] == 22

    settled = sales.record_payment(stocked, sale["sale_id"], 22)
    assert settled["due"] == 0
    assert customers.get_customer(stocked, sale["customer_id"])["due"] == 0

    payments = sales.sale_payments(stocked, sale["sale_id"])
    assert sorted(p["amount"] for p in payments) == [22, 30]


@pytest.mark.parametrize("amount", [0, -5, 52.01])
def test_record_payment_bounds(stocked, amount):
    sale = sales.create_sale(stocked, {"name": "Asha"}, CART, discount=10, tax_rate=5, amount_paid=200)
    with pytest.raises(ValidationError):
        sales.record_payment(stocked, sale["sale_id"], amount)
    assert sales.get_sale(stocked, sale["sale_id"])["due"] == 52


def test_payment_on_fully_paid_sale(stocked):
    sale = sales.create_sale(stocked, {"name": "Asha"}, CART)
    with pytest.raises(ValidationError):
        sales.record_payment(stocked, sale["sale_id"], 1)


def test_payment_unknown_sale(stocked):
    with pytest.raises(NotFoundError):
        sales.record_payment(stocked, "INV9999", 1)


def test_cancel_sale_restores_stock_and_due(stocked):
    sale = sales.create_sale(stocked, {"name": "Asha"}, CART, tax_rate=0, amount_paid=100)
    cancelled = sales.cancel_sale(stocked, sale["sale_id"], "customer returned goods")

    assert cancelled["cancelled"] is True
    assert cancelled["cancel_reason"] == "customer returned goods"
    assert inventory.find_by_sku(stocked, "TEA-1")["stock"] == 10
    assert inventory.find_by_sku(stocked, "MUG-1")["stock"] == 3
    assert customers.get_customer(stocked, sale["customer_id"])["due"] == 0

    with pytest.raises(ConflictError):
        sales.cancel_sale(stocked, sale["sale_id"], "again")
    with pytest.raises(ConflictError):
        sales.record_payment(stocked, sale["sale_id"], 10)


def test_customer_due_tracks_open_sales(stocked):
    c = customers.add_customer(stocked, "Asha")
    ref = {"customer_id": c["customer_id"]}
    first = sales.create_sale(stocked, ref, [{"sku": "TEA-1", "quantity": 1}], tax_rate=5, amount_paid=10)
    second = sales.create_sale(stocked, ref, [{"sku": "MUG-1", "quantity": 2}], tax_rate=5, discount=3.5, amount_paid=0)
    assert _customer_due_matches_open_sales(stocked, c["customer_id"])

    sales.record_payment(stocked, first["sale_id"], 33.33)
    assert _customer_due_matches_open_sales(stocked, c["customer_id"])

    sales.cancel_sale(stocked, second["sale_id"], "mistake")
    assert _customer_due_matches_open_sales(stocked, c["customer_id"])


def test_list_sales_newest_first(stocked):
    sales.create_sale(stocked, {"name": "Asha"}, [{"sku": "MUG-1", "quantity": 1}])
    sales.create_sale(stocked, {"name": "Ravi"}, [{"sku": "MUG-1", "quantity": 1}])
    rows = sales.list_sales(stocked)
    assert len(rows) == 2
    assert all("shop_id" not in r and "_id" not in r for r in rows)


def _pay_after_read(monkeypatch, amount):
    """Record a payment right after the next sale lookup, returning the stale row."""
    real_row = sales._sale_row
    state = {"armed": True}

    def racing_row(shop_id, sale_id):
        row = real_row(shop_id, sale_id)
        if state["armed"]:
            state["armed"] = False
            sales.record_payment(shop_id, sale_id, amount)
        return row

    monkeypatch.setattr(sales, "_sale_row", racing_row)


def test_payment_conflicts_when_due_changes_underneath(stocked, monkeypatch):
    sale = sales.create_sale(stocked, {"name": "Asha"}, CART, tax_rate=0, amount_paid=0)
    _pay_after_read(monkeypatch, 50)

    with pytest.raises(ConflictError) as exc:
        sales.record_payment(stocked, sale["sale_id"], 100)
    assert exc.value.status_code == 409

    monkeypatch.undo()
    assert sales.get_sale(stocked, sale["sale_id"])["due"] == 200
    assert _customer_due_matches_open_sales(stocked, sale["customer_id"])


def test_cancel_conflicts_when_payment_lands_first(stocked, monkeypatch):
    sale = sales.create_sale(stocked, {"name": "Asha"}, CART, tax_rate=0, amount_paid=0)
    _pay_after_read(monkeypatch, 60)

    with pytest.raises(ConflictError):
        sales.cancel_sale(stocked, sale["sale_id"], "void")

    monkeypatch.undo()
    current = sales.get_sale(stocked, sale["sale_id"])
    assert current["cancelled"] is False
    assert current["due"] == 190
    assert inventory.find_by_sku(stocked, "TEA-1")["stock"] == 8
    assert customers.get_customer(stocked, sale["customer_id"])["due"] == 190

    sales.cancel_sale(stocked, sale["sale_id"], "void")
    assert customers.get_customer(stocked, sale["customer_id"])["due"] == 0
    assert _customer_due_matches_open_sales(stocked, sale["customer_id"])
