import logging
import re
from typing import Any, Dict, List

from swiftsale import db
from swiftsale.audit_log import write_audit_log
from swiftsale.errors import ValidationError
from swiftsale.shop_settings import get_settings
from swiftsale.utils import now_iso, serialize_row

logger = logging.getLogger(__name__)

# section -> (collection, id field, counter name)
SECTIONS = {
    "stock": ("stock", "sku", None),
    "customers": ("customers", "customer_id", "customers"),
    "sales": ("sales", "sale_id", "sales"),
    "expenses": ("expenses", "expense_id", "expenses"),
}
OPTIONAL_SECTIONS = {"payments": "payments"}


def export_backup(shop_id: str) -> Dict[str, Any]:
    data: Dict[str, Any] = {"settings": get_settings(shop_id), "exported_at": now_iso()}
    for section, (coll, key, _) in SECTIONS.items():
        data[section] = [serialize_row(r) for r in db.collection(coll).find({"shop_id": shop_id}).sort(key, 1)]
    for section, coll in OPTIONAL_SECTIONS.items():
        data[section] = [serialize_row(r) for r in db.collection(coll).find({"shop_id": shop_id})]
    return data


def _check_backup(data: Any) -> None:
    if not isinstance(data, dict):
        raise ValidationError("The selected file is not a valid backup.")
    if not isinstance(data.get("settings"), dict):
        raise ValidationError("Backup is missing its settings section.")
    for section, (_, key, _) in SECTIONS.items():
        rows = data.get(section)
        if not isinstance(rows, list):
            raise ValidationError(f"Backup section '{section}' must be a list.")
        for row in rows:
            if not isinstance(row, dict) or not str(row.get(key, "")).strip():
                raise ValidationError(f"Every '{section}' entry needs a '{key}'.")
    for section in OPTIONAL_SECTIONS:
        if section in data and not isinstance(data[section], list):
            raise ValidationError(f"Backup section '{section}' must be a list.")


def _highest_number(rows: List[Dict[str, Any]], key: str) -> int:
    highest = 0
    for row in rows:
        match = re.search(r"(\d+)$", str(row.get(key, "")))
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


def _strip(row: Dict[str, Any], shop_id: str) -> Dict[str, Any]:
    out = dict(row)
    out.pop("_id", None)
    out["shop_id"] = shop_id
    return out


def import_backup(shop_id: str, data: Dict[str, Any], user=None) -> Dict[str, int]:
    """Overwrite all of a shop's data with a previously exported backup."""
    _check_backup(data)

    settings = _strip(data["settings"], shop_id)
    db.collection("settings").replace_one({"shop_id": shop_id}, settings, upsert=True)

    counts: Dict[str, int] = {}
    for section, (coll, key, counter) in SECTIONS.items():
        rows = [_strip(r, shop_id) for r in data[section]]
        db.collection(coll).delete_many({"shop_id": shop_id})
        if rows:
            db.collection(coll).insert_many(rows)
        if counter:
            db.reset_series(shop_id, counter, _highest_number(rows, key))
        counts[section] = len(rows)

    for section, coll in OPTIONAL_SECTIONS.items():
        if section in data:
            rows = [_strip(r, shop_id) for r in data[section]]
            db.collection(coll).delete_many({"shop_id": shop_id})
            if rows:
                db.collection(coll).insert_many(rows)
            counts[section] = len(rows)

    write_audit_log(shop_id, user=user, module="backup", action="import_backup", reference=shop_id, after=counts)
    logger.info("Shop %s: restored backup %s", shop_id, counts)
    return counts
