from datetime import datetime
from typing import Any, Dict, List

from pymongo import DESCENDING

from swiftsale import db
from swiftsale.utils import serialize_row


def write_audit_log(
    shop_id,
    user=None,
    module=None,
    action=None,
    reference=None,
    before=None,
    after=None,
    extra=None
):
    log = {
        "shop_id": shop_id,
        "timestamp": datetime.now().isoformat(timespec="microseconds"),
        "user": user or "system",
        "module": module,
        "action": action,
        "reference": reference,
        "before": before,
        "after": after
    }

    if extra:
        log.update(extra)

    db.collection("audit_log").insert_one(log)


def load_audit_log(shop_id: str, limit: int = 200) -> List[Dict[str, Any]]:
    # Latest first.
    rows = (
        db.collection("audit_log")
        .find({"shop_id": shop_id})
        .sort("timestamp", DESCENDING)
        .limit(max(1, min(limit, 5000)))
    )
    return [serialize_row(r) for r in rows]
