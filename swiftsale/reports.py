from datetime import date
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING

from swiftsale import customers, db, inventory
from swiftsale.errors import ValidationError
from swiftsale.utils import clean_text, money, parse_day, safe_float, serialize_row


def _day_bounds(start: date, end: date) -> Dict[str, str]:
    # Sale dates are ISO strings; end day is inclusive.
    return {"$gte": f"{start.isoformat()}T00:00:00", "$lte": f"{end.isoformat()}T23:59:59.999"}


def _sales_between(shop_id: str, start: date, end: date) -> List[Dict[str, Any]]:
    query = {"shop_id": shop_id, "cancelled": {"$ne": True}, "date": _day_bounds(start, end)}
    return list(db.collection("sales").find(query))


def _expenses_between(shop_id: str, start: date, end: date) -> List[Dict[str, Any]]:
    query = {"shop_id": shop_id, "date": {"$gte": start.isoformat(), "$lte": end.isoformat()}}
    return list(db.collection("expenses").find(query))


def _chart_label(day: date) -> str:
    return f"{day.day} {day.strftime('%b')}"


# -------------------------------
# SALES SUMMARY (Dashboard use)
# -------------------------------
def dashboard(shop_id: str, today: Optional[date] = None) -> Dict[str, Any]:
    today = today or date.today()
    todays_sales = _sales_between(shop_id, today, today)
    todays_expenses = _expenses_between(shop_id, today, today)

    revenue = money(sum(safe_float(s.get("grand_total")) for s in todays_sales))
    gross_profit = money(sum(safe_float(s.get("profit")) for s in todays_sales))
    expenses_total = money(sum(safe_float(e.get("amount")) for e in todays_expenses))
    total_dues = money(sum(c["due"] for c in customers.list_customers(shop_id)))

    recent = []
    for row in db.collection("sales").find({"shop_id": shop_id}).sort("date", DESCENDING).limit(5):
        sale = serialize_row(row)
        recent.append(
            {
                "sale_id": sale["sale_id"],
                "customer_name": sale.get("customer_name", ""),
                "date": sale["date"],
                "grand_total": money(sale.get("grand_total")),
                "due": money(sale.get("due")),
                "cancelled": bool(sale.get("cancelled")),
            }
        )

    return {
        "date": today.isoformat(),
        "today_revenue": revenue,
        "gross_profit": gross_profit,
        "today_expenses": expenses_total,
        "net_profit": money(gross_profit - expenses_total),
        "total_dues": total_dues,
        "stock_value": inventory.stock_value(shop_id),
        "recent_sales": recent,
        "low_stock": inventory.low_stock_items(shop_id),
    }


# -------------------------------
# Date-wise revenue report
# -------------------------------
def revenue_report(shop_id: str, start, end) -> Dict[str, Any]:
    if not clean_text(start) or not clean_text(end):
        raise ValidationError("Please select both start and end dates.")
    try:
        start_day = parse_day(start)
        end_day = parse_day(end)
    except ValueError:
        raise ValidationError("Dates must be in YYYY-MM-DD format.")
    if end_day < start_day:
        raise ValidationError("End date cannot be before start date.")

    sales_rows = _sales_between(shop_id, start_day, end_day)
    expense_rows = _expenses_between(shop_id, start_day, end_day)

    revenue = money(sum(safe_float(s.get("grand_total")) for s in sales_rows))
    profit = money(sum(safe_float(s.get("profit")) for s in sales_rows))
    total_expenses = money(sum(safe_float(e.get("amount")) for e in expense_rows))

    by_day: Dict[str, float] = {}
    for s in sales_rows:
        day = str(s["date"])[:10]
        by_day[day] = by_day.get(day, 0.0) + safe_float(s.get("grand_total"))

    chart_data = [
        {"day": day, "date": _chart_label(parse_day(day)), "sales": money(by_day[day])}
        for day in sorted(by_day)
    ]

    return {
        "start": start_day.isoformat(),
        "end": end_day.isoformat(),
        "sale_count": len(sales_rows),
        "revenue": revenue,
        "gross_profit": profit,
        "total_expenses": total_expenses,
        "net_profit": money(profit - total_expenses),
        "chart_data": chart_data,
    }


# -------------------------------
# Due report
# -------------------------------
def due_report(shop_id: str) -> Dict[str, Any]:
    rows = customers.due_customers(shop_id)
    return {
        "count": len(rows),
        "total_due": money(sum(c["due"] for c in rows)),
        "customers": rows,
    }
