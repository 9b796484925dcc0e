from datetime import date, datetime
from typing import Any, Dict


def safe_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def safe_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def money(value: Any) -> float:
    return round(safe_float(value), 2)


def clean_text(value: Any) -> str:
    return str(value or "").strip()


def now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


def today_str() -> str:
    return date.today().isoformat()


def parse_day(text: str) -> date:
    """
    Parse a YYYY-MM-DD string.
    Raises ValueError on anything else.
    """
    return datetime.strptime(clean_text(text), "%Y-%m-%d").date()


def serialize_row(row: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(row)
    out.pop("_id", None)
    out.pop("shop_id", None)
    return out
