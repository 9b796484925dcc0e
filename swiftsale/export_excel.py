from io import BytesIO
from typing import Any, Dict, List

import pandas as pd
from pymongo import ASCENDING

from swiftsale import db
from swiftsale.utils import money

SALES_COLUMNS = [
    "Invoice", "Date", "Customer", "SKU", "Item", "Qty", "Rate", "Line Total",
    "Discount", "GST %", "Invoice Total", "Paid", "Due", "Payment Mode", "Status",
]


# -------------------------------
# Flat sales data (Excel friendly)
# -------------------------------
def get_sales_flat_rows(shop_id: str) -> List[Dict[str, Any]]:
    rows = []
    for s in db.collection("sales").find({"shop_id": shop_id}).sort("date", ASCENDING):
        for i in s.get("items", []):
            rows.append({
                "Invoice": s["sale_id"],
                "Date": s["date"],
                "Customer": s.get("customer_name", ""),
                "SKU": i["sku"],
                "Item": i["name"],
                "Qty": i["quantity"],
                "Rate": money(i["sale_price"]),
                "Line Total": money(i["sale_price"] * i["quantity"]),
                "Discount": money(s.get("discount")),
                "GST %": s.get("tax_rate", 0),
                "Invoice Total": money(s.get("grand_total")),
                "Paid": money(s.get("amount_paid")),
                "Due": money(s.get("due")),
                "Payment Mode": s.get("payment_mode", ""),
                "Status": "Cancelled" if s.get("cancelled") else "Active",
            })
    return rows


def export_sales_excel(shop_id: str) -> bytes:
    df = pd.DataFrame(get_sales_flat_rows(shop_id), columns=SALES_COLUMNS)
    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name="Sales", index=False)
    return buffer.getvalue()
