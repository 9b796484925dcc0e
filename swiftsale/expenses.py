from typing import Any, Dict, List

from pymongo import DESCENDING

from swiftsale import db
from swiftsale.errors import NotFoundError, ValidationError
from swiftsale.utils import clean_text, money, now_iso, parse_day, safe_float, serialize_row, today_str


def _expenses():
    return db.collection("expenses")


def add_expense(shop_id: str, title, category, amount, date=None) -> Dict[str, Any]:
    title = clean_text(title)
    category = clean_text(category)
    amount = safe_float(amount)
    date = clean_text(date) or today_str()

    try:
        date = parse_day(date).isoformat()
    except ValueError:
        raise ValidationError("Date must be in YYYY-MM-DD format.")
    if len(title) < 2:
        raise ValidationError("Title must be at least 2 characters.")
    if len(category) < 2:
        raise ValidationError("Category must be at least 2 characters.")
    if amount < 0.01:
        raise ValidationError("Amount must be positive.")

    expense_id = db.next_series(shop_id, "E", "expenses")
    _expenses().insert_one(
        {
            "shop_id": shop_id,
            "expense_id": expense_id,
            "date": date,
            "title": title,
            "category": category,
            "amount": money(amount),
            "created_at": now_iso(),
        }
    )
    return serialize_row(_expenses().find_one({"shop_id": shop_id, "expense_id": expense_id}))


def list_expenses(shop_id: str) -> List[Dict[str, Any]]:
    rows = _expenses().find({"shop_id": shop_id}).sort([("date", DESCENDING), ("created_at", DESCENDING)])
    return [serialize_row(r) for r in rows]


def delete_expense(shop_id: str, expense_id) -> None:
    result = _expenses().delete_one({"shop_id": shop_id, "expense_id": clean_text(expense_id)})
    if not result.deleted_count:
        raise NotFoundError("Expense not found.")
