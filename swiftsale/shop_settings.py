import base64
import binascii
import re
from typing import Any, Dict

from swiftsale import config, db
from swiftsale.audit_log import write_audit_log
from swiftsale.errors import ValidationError
from swiftsale.utils import clean_text, safe_float, serialize_row

MAX_IMAGE_BYTES = 1 * 1024 * 1024
IMAGE_DATA_URL = re.compile(r"^data:image/(png|jpeg|webp);base64,(.+)$", re.DOTALL)

TEXT_FIELDS = ("shop_name", "shop_address", "shop_phone", "shop_gstin")
IMAGE_FIELDS = ("shop_logo_url", "shop_signature_url")


def get_settings(shop_id: str) -> Dict[str, Any]:
    row = db.collection("settings").find_one({"shop_id": shop_id})
    settings = dict(config.DEFAULT_SETTINGS)
    if row:
        settings.update(serialize_row(row))
    return settings


def _check_image(field: str, value: str) -> str:
    if not value:
        return ""
    match = IMAGE_DATA_URL.match(value)
    if not match:
        raise ValidationError(f"{field} must be a PNG, JPEG or WEBP data URL.")
    try:
        raw = base64.b64decode(match.group(2), validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError(f"{field} is not valid base64 data.")
    if len(raw) > MAX_IMAGE_BYTES:
        raise ValidationError("Please select an image smaller than 1MB.")
    return value


def update_settings(shop_id: str, changes: Dict[str, Any], user=None) -> Dict[str, Any]:
    before = get_settings(shop_id)
    update: Dict[str, Any] = {}

    for field in TEXT_FIELDS:
        if field in changes and changes[field] is not None:
            update[field] = clean_text(changes[field])

    if changes.get("default_tax") is not None:
        tax = safe_float(changes["default_tax"])
        if tax < 0 or tax > 100:
            raise ValidationError("Default tax must be between 0 and 100.")
        update["default_tax"] = round(tax, 2)

    for field in IMAGE_FIELDS:
        if field in changes and changes[field] is not None:
            update[field] = _check_image(field, clean_text(changes[field]))

    if not update:
        return before

    db.collection("settings").update_one({"shop_id": shop_id}, {"$set": update}, upsert=True)

    # Images are large; keep them out of the audit trail.
    audited = [f for f in update if f not in IMAGE_FIELDS]
    write_audit_log(
        shop_id,
        user=user,
        module="settings",
        action="update_settings",
        reference=shop_id,
        before={f: before.get(f) for f in audited},
        after={f: update[f] for f in audited},
        extra={"images_changed": [f for f in update if f in IMAGE_FIELDS]},
    )
    return get_settings(shop_id)
