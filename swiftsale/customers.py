from typing import Any, Dict, List

from pymongo import ASCENDING, DESCENDING

from swiftsale import db
from swiftsale.audit_log import write_audit_log
from swiftsale.errors import ConflictError, NotFoundError, ValidationError
from swiftsale.utils import clean_text, money, now_iso, serialize_row


def _customers():
    return db.collection("customers")


def _serialize_customer(row: Dict[str, Any]) -> Dict[str, Any]:
    out = serialize_row(row)
    out["due"] = money(out.get("due"))
    return out


def add_customer(shop_id: str, name, phone="", address="") -> Dict[str, Any]:
    name = clean_text(name)
    if not name:
        raise ValidationError("Customer name is required for new customers.")

    customer_id = db.next_series(shop_id, "C", "customers")
    _customers().insert_one(
        {
            "shop_id": shop_id,
            "customer_id": customer_id,
            "name": name,
            "phone": clean_text(phone),
            "address": clean_text(address),
            "due": 0.0,
            "created_at": now_iso(),
        }
    )
    return get_customer(shop_id, customer_id)


def get_customer(shop_id: str, customer_id) -> Dict[str, Any]:
    row = _customers().find_one({"shop_id": shop_id, "customer_id": clean_text(customer_id)})
    if not row:
        raise NotFoundError("Customer not found.")
    return _serialize_customer(row)


def list_customers(shop_id: str) -> List[Dict[str, Any]]:
    return [_serialize_customer(r) for r in _customers().find({"shop_id": shop_id}).sort("customer_id", ASCENDING)]


def update_customer(shop_id: str, customer_id, changes: Dict[str, Any]) -> Dict[str, Any]:
    current = get_customer(shop_id, customer_id)
    update = {}
    for field in ("name", "phone", "address"):
        if changes.get(field) is not None:
            update[field] = clean_text(changes[field])
    if "name" in update and not update["name"]:
        raise ValidationError("Customer name cannot be blank.")
    if update:
        _customers().update_one({"shop_id": shop_id, "customer_id": current["customer_id"]}, {"$set": update})
    return get_customer(shop_id, current["customer_id"])


def delete_customer(shop_id: str, customer_id, force: bool = False, user=None) -> None:
    current = get_customer(shop_id, customer_id)
    if current["due"] > 0 and not force:
        raise ConflictError(f"This customer has a due of {current['due']:.2f}. Confirm to delete anyway.")
    _customers().delete_one({"shop_id": shop_id, "customer_id": current["customer_id"]})
    write_audit_log(
        shop_id,
        user=user,
        module="customers",
        action="delete_customer",
        reference=current["customer_id"],
        before=current,
        extra={"forced": bool(force)},
    )


def discard_customer(shop_id: str, customer_id: str) -> None:
    """Drop a customer created for a sale that could not be stored."""
    _customers().delete_one({"shop_id": shop_id, "customer_id": customer_id, "due": 0})


def adjust_due(shop_id: str, customer_id: str, delta: float) -> bool:
    if not delta:
        return True
    result = _customers().update_one(
        {"shop_id": shop_id, "customer_id": customer_id},
        {"$inc": {"due": round(delta, 2)}},
    )
    return bool(result.matched_count)


# -------------------------------
# Customer ledger (date-wise)
# -------------------------------
def customer_history(shop_id: str, customer_id) -> List[Dict[str, Any]]:
    current = get_customer(shop_id, customer_id)
    rows = (
        db.collection("sales")
        .find({"shop_id": shop_id, "customer_id": current["customer_id"]})
        .sort("date", DESCENDING)
    )
    return [serialize_row(r) for r in rows]


# -------------------------------
# Due report
# -------------------------------
def due_customers(shop_id: str) -> List[Dict[str, Any]]:
    rows = [c for c in list_customers(shop_id) if c["due"] > 0]
    return sorted(rows, key=lambda c: c["due"], reverse=True)
