import logging
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING

from swiftsale import config, customers, db, inventory
from swiftsale.audit_log import write_audit_log
from swiftsale.errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from swiftsale.shop_settings import get_settings
from swiftsale.utils import clean_text, money, now_iso, safe_float, safe_int, serialize_row

logger = logging.getLogger(__name__)


def _sales():
    return db.collection("sales")


def _normalize_mode(value) -> str:
    text = clean_text(value) or "Cash"
    for mode in config.PAYMENT_MODES:
        if text.lower() == mode.lower():
            return mode
    raise ValidationError(f"Payment mode must be one of {', '.join(config.PAYMENT_MODES)}.")


def _merge_cart(items: List[Dict[str, Any]]) -> Dict[str, int]:
    cart: Dict[str, int] = {}
    for rec in items or []:
        sku = clean_text(rec.get("sku"))
        qty = safe_int(rec.get("quantity"))
        if not sku:
            raise ValidationError("Every cart line needs a SKU.")
        if qty < 1:
            raise ValidationError(f"Quantity must be at least 1 for '{sku}'.")
        cart[sku] = cart.get(sku, 0) + qty
    if not cart:
        raise ValidationError("Please add items to the sale.")
    return cart


def _cart_lines(shop_id: str, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    lines = []
    for sku, qty in _merge_cart(items).items():
        product = inventory.find_by_sku(shop_id, sku)
        if qty > product["stock"]:
            raise InsufficientStockError(product["name"], product["stock"])
        lines.append(
            {
                "sku": product["sku"],
                "name": product["name"],
                "category": product.get("category", ""),
                "cost_price": product["cost_price"],
                "sale_price": product["sale_price"],
                "quantity": qty,
                "line_total": money(product["sale_price"] * qty),
            }
        )
    return lines


# -------------------------------
# Totals
# -------------------------------
def quote(shop_id: str, items, discount=0.0, tax_rate=None, amount_paid=None) -> Dict[str, Any]:
    """
    Price a cart against current stock.

    taxable = subtotal - discount, GST is charged on the taxable amount, and
    an omitted amount_paid means the bill is settled in full.
    """
    lines = _cart_lines(shop_id, items)

    discount = safe_float(discount)
    if tax_rate is None:
        tax_rate = get_settings(shop_id).get("default_tax", 0)
    tax_rate = safe_float(tax_rate)

    subtotal = money(sum(i["sale_price"] * i["quantity"] for i in lines))
    if discount < 0:
        raise ValidationError("Discount cannot be negative.")
    if discount > subtotal:
        raise ValidationError("Discount cannot exceed the subtotal.")
    if tax_rate < 0 or tax_rate > 100:
        raise ValidationError("GST rate must be between 0 and 100.")

    taxable = money(subtotal - discount)
    gst_amount = money(taxable * tax_rate / 100.0)
    grand_total = money(taxable + gst_amount)

    paid = grand_total if amount_paid is None else money(amount_paid)
    if paid < 0:
        raise ValidationError("Paid amount cannot be negative.")
    due = money(max(grand_total - paid, 0.0))
    profit = money(sum((i["sale_price"] - i["cost_price"]) * i["quantity"] for i in lines))

    return {
        "items": lines,
        "subtotal": subtotal,
        "discount": money(discount),
        "taxable": taxable,
        "tax_rate": round(tax_rate, 2),
        "gst_amount": gst_amount,
        "grand_total": grand_total,
        "amount_paid": paid,
        "due": due,
        "profit": profit,
    }


def _check_customer_choice(shop_id: str, customer: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Existing customer row, or None when new details were supplied."""
    customer = customer or {}
    customer_id = clean_text(customer.get("customer_id"))
    if customer_id:
        return customers.get_customer(shop_id, customer_id)
    if not clean_text(customer.get("name")):
        raise ValidationError("Customer name is required for new customers.")
    return None


def _rollback_stock(shop_id: str, lines: List[Dict[str, Any]]) -> None:
    for line in lines:
        inventory.restore_stock(shop_id, line["sku"], line["quantity"])


# -------------------------------
# Core sales logic
# -------------------------------
def create_sale(
    shop_id: str,
    customer: Dict[str, Any],
    items: List[Dict[str, Any]],
    discount=0.0,
    tax_rate=None,
    amount_paid=None,
    payment_mode="Cash",
    user=None,
) -> Dict[str, Any]:
    """
    Record a sale: decrement stock, store the sale and raise the customer's due.

    customer is {"customer_id": ...} for an existing customer, or
    {"name", "phone", "address"} to create one.
    """
    payment_mode = _normalize_mode(payment_mode)
    existing = _check_customer_choice(shop_id, customer)
    summary = quote(shop_id, items, discount=discount, tax_rate=tax_rate, amount_paid=amount_paid)

    # ---------------- STOCK REDUCE ----------------
    applied: List[Dict[str, Any]] = []
    try:
        for line in summary["items"]:
            inventory.reduce_stock(shop_id, line["sku"], line["quantity"])
            applied.append(line)
    except Exception:
        logger.warning("Shop %s: sale aborted, restoring %d stock lines", shop_id, len(applied))
        _rollback_stock(shop_id, applied)
        raise

    # ---------------- RECORD ----------------
    created = None
    try:
        if existing is None:
            existing = created = customers.add_customer(
                shop_id,
                customer.get("name"),
                customer.get("phone", ""),
                customer.get("address", ""),
            )
        sale_id = db.next_series(shop_id, "INV", "sales")
        record = dict(
            summary,
            shop_id=shop_id,
            sale_id=sale_id,
            customer_id=existing["customer_id"],
            customer_name=existing["name"],
            payment_mode=payment_mode,
            date=now_iso(),
            created_by=user or "system",
            cancelled=False,
        )
        _sales().insert_one(record)
    except Exception:
        logger.exception("Shop %s: failed to store sale, restoring stock", shop_id)
        _rollback_stock(shop_id, applied)
        if created is not None:
            customers.discard_customer(shop_id, created["customer_id"])
        raise

    if not customers.adjust_due(shop_id, existing["customer_id"], summary["due"]):
        logger.error("Shop %s: customer %s vanished before due update of %s", shop_id, existing["customer_id"], sale_id)

    write_audit_log(
        shop_id,
        user=user,
        module="sales",
        action="create_sale",
        reference=sale_id,
        after={"grand_total": summary["grand_total"], "amount_paid": summary["amount_paid"], "due": summary["due"]},
    )
    logger.info("Shop %s: recorded sale %s total %.2f due %.2f", shop_id, sale_id, summary["grand_total"], summary["due"])
    return get_sale(shop_id, sale_id)


def _sale_row(shop_id: str, sale_id) -> Dict[str, Any]:
    row = _sales().find_one({"shop_id": shop_id, "sale_id": clean_text(sale_id)})
    if not row:
        raise NotFoundError("Sale not found.")
    return row


def get_sale(shop_id: str, sale_id) -> Dict[str, Any]:
    return serialize_row(_sale_row(shop_id, sale_id))


def list_sales(shop_id: str, limit: int = 1000) -> List[Dict[str, Any]]:
    rows = _sales().find({"shop_id": shop_id}).sort("date", DESCENDING).limit(max(1, min(limit, 5000)))
    return [serialize_row(r) for r in rows]


def sale_payments(shop_id: str, sale_id) -> List[Dict[str, Any]]:
    sale = _sale_row(shop_id, sale_id)
    rows = db.collection("payments").find({"shop_id": shop_id, "sale_id": sale["sale_id"]}).sort("date", DESCENDING)
    return [serialize_row(r) for r in rows]


# -------------------------------
# Due payments
# -------------------------------
def record_payment(shop_id: str, sale_id, amount, payment_mode="Cash", user=None) -> Dict[str, Any]:
    sale = _sale_row(shop_id, sale_id)
    payment_mode = _normalize_mode(payment_mode)
    if sale.get("cancelled"):
        raise ConflictError("Cannot record a payment against a cancelled sale.")

    pay = money(amount)
    due_before = money(sale.get("due"))
    if due_before <= 0:
        raise ValidationError("No due available for this sale.")
    if pay <= 0 or pay > due_before:
        raise ValidationError(f"Payment must be between 0.01 and {due_before:.2f}.")

    paid_after = money(safe_float(sale.get("amount_paid")) + pay)
    due_after = money(due_before - pay)
    # Compare-and-set on the due we priced against.
    result = _sales().update_one(
        {"shop_id": shop_id, "sale_id": sale["sale_id"], "due": sale.get("due"), "cancelled": {"$ne": True}},
        {
            "$set": {
                "amount_paid": paid_after,
                "due": due_after,
                "last_payment_mode": payment_mode,
                "last_payment_at": now_iso(),
            }
        },
    )
    if not result.matched_count:
        raise ConflictError("Sale changed while recording the payment, please retry.")

    if not customers.adjust_due(shop_id, sale["customer_id"], -pay):
        logger.error("Shop %s: customer %s missing while paying %s", shop_id, sale["customer_id"], sale["sale_id"])

    db.collection("payments").insert_one(
        {
            "shop_id": shop_id,
            "sale_id": sale["sale_id"],
            "customer_id": sale["customer_id"],
            "amount": pay,
            "payment_mode": payment_mode,
            "date": now_iso(),
            "received_by": user or "system",
        }
    )
    write_audit_log(
        shop_id,
        user=user,
        module="sales",
        action="record_payment",
        reference=sale["sale_id"],
        before={"amount_paid": money(sale.get("amount_paid")), "due": due_before},
        after={"amount_paid": paid_after, "due": due_after},
        extra={"payment_mode": payment_mode},
    )
    return get_sale(shop_id, sale["sale_id"])


def cancel_sale(shop_id: str, sale_id, reason, user=None) -> Dict[str, Any]:
    sale = _sale_row(shop_id, sale_id)
    if sale.get("cancelled"):
        raise ConflictError("Sale already cancelled.")

    # Compare-and-set on the due being written off.
    result = _sales().update_one(
        {"shop_id": shop_id, "sale_id": sale["sale_id"], "due": sale.get("due"), "cancelled": {"$ne": True}},
        {
            "$set": {
                "cancelled": True,
                "cancel_reason": clean_text(reason),
                "cancelled_on": now_iso(),
            }
        },
    )
    if not result.matched_count:
        raise ConflictError("Sale changed while cancelling, please retry.")

    # STOCK REVERSE
    for line in sale.get("items", []):
        inventory.restore_stock(shop_id, line["sku"], safe_int(line["quantity"]))

    customers.adjust_due(shop_id, sale["customer_id"], -money(sale.get("due")))

    write_audit_log(
        shop_id,
        user=user,
        module="sales",
        action="cancel_sale",
        reference=sale["sale_id"],
        before={"grand_total": sale.get("grand_total"), "amount_paid": sale.get("amount_paid"), "due": sale.get("due")},
        after={"cancelled": True, "reason": clean_text(reason)},
    )
    return get_sale(shop_id, sale["sale_id"])
