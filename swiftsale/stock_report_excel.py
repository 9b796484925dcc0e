from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from swiftsale import inventory

HEADERS = [
    "SR NO", "SKU", "NAME", "CATEGORY",
    "STOCK", "REORDER LEVEL", "COST PRICE", "SALE PRICE",
    "VALUE AT COST", "VALUE AT SALE", "MARGIN / UNIT", "LOW STOCK",
]


def export_stock_report(shop_id: str) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Stock Report"

    # ---------- Styles ----------
    header_fill = PatternFill("solid", fgColor="00B0F0")
    header_font = Font(bold=True)
    center = Alignment(horizontal="center", vertical="center")
    thin = Border(
        left=Side(style="thin"),
        right=Side(style="thin"),
        top=Side(style="thin"),
        bottom=Side(style="thin")
    )

    # ---------- Header Row ----------
    for col, title in enumerate(HEADERS, start=1):
        cell = ws.cell(row=1, column=col, value=title)
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = center
        cell.border = thin
        ws.column_dimensions[get_column_letter(col)].width = 16

    # ---------- Data Rows ----------
    for i, item in enumerate(inventory.list_stock(shop_id), start=2):
        qty = item["stock"]
        ws.cell(i, 1, i - 1)
        ws.cell(i, 2, item["sku"])
        ws.cell(i, 3, item["name"])
        ws.cell(i, 4, item.get("category", ""))
        ws.cell(i, 5, qty)
        ws.cell(i, 6, item.get("reorder_level", 0))
        ws.cell(i, 7, item["cost_price"])
        ws.cell(i, 8, item["sale_price"])
        ws.cell(i, 9, round(qty * item["cost_price"], 2))
        ws.cell(i, 10, round(qty * item["sale_price"], 2))
        ws.cell(i, 11, round(item["sale_price"] - item["cost_price"], 2))
        ws.cell(i, 12, "YES" if qty <= item.get("reorder_level", 0) else "")

        for col in range(1, len(HEADERS) + 1):
            ws.cell(i, col).border = thin
            ws.cell(i, col).alignment = center

    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
