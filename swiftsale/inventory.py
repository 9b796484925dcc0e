import logging
import re
import secrets
import string
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING

from swiftsale import db
from swiftsale.audit_log import write_audit_log
from swiftsale.errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from swiftsale.utils import clean_text, money, safe_float, safe_int, serialize_row

logger = logging.getLogger(__name__)

SKU_ALPHABET = string.ascii_uppercase + string.digits
SKU_LENGTH = 13
DEFAULT_REORDER_LEVEL = 5


def _stock():
    return db.collection("stock")


def _random_part(size: int = 6) -> str:
    return "".join(secrets.choice(SKU_ALPHABET) for _ in range(size))


def _serialize_item(row: Dict[str, Any]) -> Dict[str, Any]:
    out = serialize_row(row)
    out["cost_price"] = money(out.get("cost_price"))
    out["sale_price"] = money(out.get("sale_price"))
    return out


def _check_prices(cost_price, sale_price, reorder_level):
    if cost_price < 0:
        raise ValidationError("Cost price must be non-negative.")
    if sale_price < 0:
        raise ValidationError("Sale price must be non-negative.")
    if reorder_level < 0:
        raise ValidationError("Reorder level must be non-negative.")


# -------------------------
# SKU
# -------------------------
def build_sku(name, category) -> str:
    name = clean_text(name)
    category = clean_text(category)
    if not name or not category:
        return f"PROD-{_random_part()}"
    prefix = category[:3].upper().ljust(3, "X")
    name_part = re.sub(r"\s+", "", name)[:4].upper().ljust(4, "X")
    return f"{prefix}{name_part}{_random_part()}"[:SKU_LENGTH]


def generate_sku(shop_id: str, name, category, attempts: int = 20) -> str:
    for _ in range(attempts):
        sku = build_sku(name, category)
        if not _stock().find_one({"shop_id": shop_id, "sku": sku}):
            return sku
    raise ConflictError("Could not generate a unique SKU, please enter one manually.")


# -------------------------
# Queries
# -------------------------
def find_by_sku(shop_id: str, sku) -> Dict[str, Any]:
    row = _stock().find_one({"shop_id": shop_id, "sku": clean_text(sku)})
    if not row:
        raise NotFoundError(f"SKU {clean_text(sku)} not in inventory.")
    return _serialize_item(row)


def list_stock(shop_id: str, search: Optional[str] = None) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {"shop_id": shop_id}
    term = clean_text(search)
    if term:
        pattern = re.escape(term)
        query["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"sku": {"$regex": pattern, "$options": "i"}},
        ]
    return [_serialize_item(r) for r in _stock().find(query).sort("name", ASCENDING)]


def low_stock_items(shop_id: str) -> List[Dict[str, Any]]:
    return [i for i in list_stock(shop_id) if i["stock"] <= i.get("reorder_level", 0)]


def available_products(shop_id: str) -> List[Dict[str, Any]]:
    return [i for i in list_stock(shop_id) if i["stock"] > 0]


def stock_value(shop_id: str) -> float:
    return money(sum(safe_float(i.get("sale_price")) * safe_int(i.get("stock")) for i in _stock().find({"shop_id": shop_id})))


# -------------------------
# STOCK ITEM CRUD
# -------------------------
def add_stock_item(shop_id: str, item: Dict[str, Any], quantity) -> Dict[str, Any]:
    """
    Add a product, or top up its stock when the SKU already exists.

    An existing SKU keeps its stored name and prices; only `stock` moves.
    """
    name = clean_text(item.get("name"))
    sku = clean_text(item.get("sku"))
    quantity = safe_int(quantity)
    cost_price = safe_float(item.get("cost_price"))
    sale_price = safe_float(item.get("sale_price"))
    reorder_level = safe_int(item.get("reorder_level", DEFAULT_REORDER_LEVEL))

    if len(name) < 2:
        raise ValidationError("Name is required.")
    if not sku:
        raise ValidationError("SKU is required.")
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1.")
    _check_prices(cost_price, sale_price, reorder_level)

    existing = _stock().find_one({"shop_id": shop_id, "sku": sku})
    if existing:
        _stock().update_one({"shop_id": shop_id, "sku": sku}, {"$inc": {"stock": quantity}})
        logger.info("Shop %s: topped up %s by %s", shop_id, sku, quantity)
        return find_by_sku(shop_id, sku)

    _stock().insert_one(
        {
            "shop_id": shop_id,
            "sku": sku,
            "name": name,
            "category": clean_text(item.get("category")),
            "cost_price": money(cost_price),
            "sale_price": money(sale_price),
            "stock": quantity,
            "reorder_level": reorder_level,
        }
    )
    return find_by_sku(shop_id, sku)


def update_stock_item(shop_id: str, sku, changes: Dict[str, Any]) -> Dict[str, Any]:
    current = find_by_sku(shop_id, sku)
    update: Dict[str, Any] = {}

    if changes.get("name") is not None:
        name = clean_text(changes["name"])
        if len(name) < 2:
            raise ValidationError("Name is required.")
        update["name"] = name
    if changes.get("category") is not None:
        update["category"] = clean_text(changes["category"])
    for field in ("cost_price", "sale_price"):
        if changes.get(field) is not None:
            update[field] = money(changes[field])
    if changes.get("reorder_level") is not None:
        update["reorder_level"] = safe_int(changes["reorder_level"])
    if changes.get("stock") is not None:
        stock = safe_int(changes["stock"])
        if stock < 0:
            raise ValidationError("Stock cannot be negative.")
        update["stock"] = stock

    merged = dict(current, **update)
    _check_prices(merged["cost_price"], merged["sale_price"], merged.get("reorder_level", 0))

    if update:
        _stock().update_one({"shop_id": shop_id, "sku": current["sku"]}, {"$set": update})
    return find_by_sku(shop_id, current["sku"])


def delete_stock_item(shop_id: str, sku, user=None) -> None:
    current = find_by_sku(shop_id, sku)
    _stock().delete_one({"shop_id": shop_id, "sku": current["sku"]})
    write_audit_log(
        shop_id,
        user=user,
        module="inventory",
        action="delete_item",
        reference=current["sku"],
        before=current,
    )


# -------------------------
# STOCK MOVEMENT
# -------------------------
def reduce_stock(shop_id: str, sku: str, qty: int) -> None:
    result = _stock().update_one(
        {"shop_id": shop_id, "sku": sku, "stock": {"$gte": qty}},
        {"$inc": {"stock": -qty}},
    )
    if result.matched_count:
        return
    row = _stock().find_one({"shop_id": shop_id, "sku": sku})
    if not row:
        raise NotFoundError(f"SKU {sku} not in inventory.")
    raise InsufficientStockError(row.get("name", sku), safe_int(row.get("stock")))


def restore_stock(shop_id: str, sku: str, qty: int) -> bool:
    """Put quantity back; False when the product was deleted meanwhile."""
    result = _stock().update_one({"shop_id": shop_id, "sku": sku}, {"$inc": {"stock": qty}})
    if not result.matched_count:
        logger.warning("Shop %s: cannot restore %s x%s, product no longer exists", shop_id, sku, qty)
        return False
    return True
