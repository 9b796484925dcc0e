import logging
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Header, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from pydantic import BaseModel

from swiftsale import (
    auth,
    backup,
    config,
    customers,
    db,
    expenses,
    export_excel,
    inventory,
    invoice,
    reports,
    sales,
    shop_settings,
    stock_report_excel,
)
from swiftsale.audit_log import load_audit_log
from swiftsale.errors import SwiftSaleError

APP_TITLE = "SwiftSale POS API"
XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

logger = logging.getLogger(__name__)


class SignupRequest(BaseModel):
    email: str
    password: str
    confirm_password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class SettingsUpdateRequest(BaseModel):
    shop_name: Optional[str] = None
    shop_address: Optional[str] = None
    shop_phone: Optional[str] = None
    shop_gstin: Optional[str] = None
    default_tax: Optional[float] = None
    shop_logo_url: Optional[str] = None
    shop_signature_url: Optional[str] = None


class StockItemCreateRequest(BaseModel):
    sku: str
    name: str
    category: str = ""
    cost_price: float
    sale_price: float
    quantity: int
    reorder_level: int = inventory.DEFAULT_REORDER_LEVEL


class StockItemUpdateRequest(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    cost_price: Optional[float] = None
    sale_price: Optional[float] = None
    reorder_level: Optional[int] = None
    stock: Optional[int] = None


class SkuRequest(BaseModel):
    name: str = ""
    category: str = ""


class CustomerRequest(BaseModel):
    name: str
    phone: str = ""
    address: str = ""


class CustomerUpdateRequest(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class CartLine(BaseModel):
    sku: str
    quantity: int = 1


class SaleCustomer(BaseModel):
    customer_id: Optional[str] = None
    name: str = ""
    phone: str = ""
    address: str = ""


class SaleQuoteRequest(BaseModel):
    items: List[CartLine]
    discount: float = 0.0
    tax_rate: Optional[float] = None
    amount_paid: Optional[float] = None


class SaleCreateRequest(SaleQuoteRequest):
    customer: SaleCustomer
    payment_mode: str = "Cash"


class PaymentRequest(BaseModel):
    amount: float
    payment_mode: str = "Cash"


class CancelRequest(BaseModel):
    reason: str = ""


class ExpenseRequest(BaseModel):
    title: str
    category: str
    amount: float
    date: Optional[str] = None


def _configure_logging() -> None:
    level = getattr(logging, config.log_level(), logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("swiftsale").setLevel(level)


def _require_session(x_auth_token: Optional[str]) -> Dict[str, Any]:
    return auth.resolve_session(x_auth_token)


def _xlsx(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type=XLSX_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def create_app() -> FastAPI:
    _configure_logging()
    app = FastAPI(title=APP_TITLE, version="1.0.0")

    @app.exception_handler(SwiftSaleError)
    async def domain_error(request: Request, exc: SwiftSaleError) -> JSONResponse:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.status_code, exc)
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

    @app.on_event("startup")
    def startup() -> None:
        db.ensure_indexes()

    @app.get("/")
    def root() -> Dict[str, str]:
        return {"service": "swiftsale-pos-api", "status": "ok", "docs": "/docs", "app": "/app"}

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "healthy"}

    # ---------------- AUTH ----------------
    @app.post("/auth/signup")
    def auth_signup(payload: SignupRequest) -> Dict[str, Any]:
        user = auth.signup(payload.email, payload.password, payload.confirm_password)
        return {"ok": True, **user}

    @app.post("/auth/login")
    def auth_login(payload: LoginRequest) -> Dict[str, Any]:
        return {"ok": True, **auth.login(payload.email, payload.password)}

    @app.post("/auth/logout")
    def auth_logout(x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        _require_session(x_auth_token)
        auth.logout(x_auth_token)
        return {"ok": True}

    # ---------------- SETTINGS ----------------
    @app.get("/settings")
    def settings_get(x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        return shop_settings.get_settings(session["shop_id"])

    @app.put("/settings")
    def settings_update(payload: SettingsUpdateRequest, x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        return shop_settings.update_settings(session["shop_id"], payload.model_dump(), user=session["email"])

    # ---------------- STOCK ----------------
    @app.get("/stock")
    def stock_list(search: str = "", x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        rows = inventory.list_stock(session["shop_id"], search)
        return {"count": len(rows), "items": rows}

    @app.get("/stock/low")
    def stock_low(x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        rows = inventory.low_stock_items(session["shop_id"])
        return {"count": len(rows), "items": rows}

    @app.get("/stock/available")
    def stock_available(x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        rows = inventory.available_products(session["shop_id"])
        return {"count": len(rows), "items": rows}

    @app.get("/stock/sku/{sku}")
    def stock_by_sku(sku: str, x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        return inventory.find_by_sku(session["shop_id"], sku)

    @app.post("/stock")
    def stock_add(payload: StockItemCreateRequest, x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        item = payload.model_dump(exclude={"quantity"})
        return inventory.add_stock_item(session["shop_id"], item, payload.quantity)

    @app.post("/stock/generate-sku")
    def stock_generate_sku(payload: SkuRequest, x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, str]:
        session = _require_session(x_auth_token)
        return {"sku": inventory.generate_sku(session["shop_id"], payload.name, payload.category)}

    @app.put("/stock/{sku}")
    def stock_update(sku: str, payload: StockItemUpdateRequest, x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        return inventory.update_stock_item(session["shop_id"], sku, payload.model_dump())

    @app.delete("/stock/{sku}")
    def stock_delete(sku: str, x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        inventory.delete_stock_item(session["shop_id"], sku, user=session["email"])
        return {"ok": True, "sku": sku}

    # ---------------- CUSTOMERS ----------------
    @app.get("/customers")
    def customers_list(x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        rows = customers.list_customers(session["shop_id"])
        return {"count": len(rows), "customers": rows}

    @app.post("/customers")
    def customers_add(payload: CustomerRequest, x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        return customers.add_customer(session["shop_id"], payload.name, payload.phone, payload.address)

    @app.get("/customers/{customer_id}")
    def customers_get(customer_id: str, x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        return customers.get_customer(session["shop_id"], customer_id)

    @app.put("/customers/{customer_id}")
    def customers_update(customer_id: str, payload: CustomerUpdateRequest, x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        return customers.update_customer(session["shop_id"], customer_id, payload.model_dump())

    @app.delete("/customers/{customer_id}")
    def customers_delete(customer_id: str, force: bool = False, x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        customers.delete_customer(session["shop_id"], customer_id, force=force, user=session["email"])
        return {"ok": True, "customer_id": customer_id}

    @app.get("/customers/{customer_id}/sales")
    def customers_sales(customer_id: str, x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        rows = customers.customer_history(session["shop_id"], customer_id)
        return {"count": len(rows), "rows": rows}

    # ---------------- SALES ----------------
    @app.post("/sales/quote")
    def sales_quote(payload: SaleQuoteRequest, x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        return sales.quote(
            session["shop_id"],
            [i.model_dump() for i in payload.items],
            discount=payload.discount,
            tax_rate=payload.tax_rate,
            amount_paid=payload.amount_paid,
        )

    @app.post("/sales")
    def sales_create(payload: SaleCreateRequest, x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        return sales.create_sale(
            session["shop_id"],
            payload.customer.model_dump(),
            [i.model_dump() for i in payload.items],
            discount=payload.discount,
            tax_rate=payload.tax_rate,
            amount_paid=payload.amount_paid,
            payment_mode=payload.payment_mode,
            user=session["email"],
        )

    @app.get("/sales")
    def sales_list(limit: int = 1000, x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        rows = sales.list_sales(session["shop_id"], limit)
        return {"count": len(rows), "rows": rows}

    @app.get("/sales/{sale_id}")
    def sales_get(sale_id: str, x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        sale = sales.get_sale(session["shop_id"], sale_id)
        sale["payments"] = sales.sale_payments(session["shop_id"], sale_id)
        return sale

    @app.post("/sales/{sale_id}/payments")
    def sales_pay_due(sale_id: str, payload: PaymentRequest, x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        return sales.record_payment(
            session["shop_id"], sale_id, payload.amount, payload.payment_mode, user=session["email"]
        )

    @app.post("/sales/{sale_id}/cancel")
    def sales_cancel(sale_id: str, payload: CancelRequest, x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        return sales.cancel_sale(session["shop_id"], sale_id, payload.reason, user=session["email"])

    @app.get("/sales/{sale_id}/bill", response_class=HTMLResponse)
    def sales_bill(sale_id: str, x_auth_token: Optional[str] = Header(default=None)) -> HTMLResponse:
        session = _require_session(x_auth_token)
        bill = invoice.build_bill(session["shop_id"], sale_id)
        return HTMLResponse(invoice.render_bill_html(bill))

    # ---------------- EXPENSES ----------------
    @app.get("/expenses")
    def expenses_list(x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        rows = expenses.list_expenses(session["shop_id"])
        return {"count": len(rows), "rows": rows}

    @app.post("/expenses")
    def expenses_add(payload: ExpenseRequest, x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        return expenses.add_expense(session["shop_id"], payload.title, payload.category, payload.amount, payload.date)

    @app.delete("/expenses/{expense_id}")
    def expenses_delete(expense_id: str, x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        expenses.delete_expense(session["shop_id"], expense_id)
        return {"ok": True, "expense_id": expense_id}

    # ---------------- REPORTS ----------------
    @app.get("/reports/dashboard")
    def reports_dashboard(x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        return reports.dashboard(session["shop_id"], date.today())

    @app.get("/reports/revenue")
    def reports_revenue(start: str = "", end: str = "", x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        return reports.revenue_report(session["shop_id"], start, end)

    @app.get("/reports/dues")
    def reports_dues(x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        return reports.due_report(session["shop_id"])

    @app.get("/reports/sales.xlsx")
    def reports_sales_xlsx(x_auth_token: Optional[str] = Header(default=None)) -> Response:
        session = _require_session(x_auth_token)
        return _xlsx(export_excel.export_sales_excel(session["shop_id"]), "sales.xlsx")

    @app.get("/reports/stock.xlsx")
    def reports_stock_xlsx(x_auth_token: Optional[str] = Header(default=None)) -> Response:
        session = _require_session(x_auth_token)
        return _xlsx(stock_report_excel.export_stock_report(session["shop_id"]), "stock.xlsx")

    # ---------------- BACKUP / AUDIT ----------------
    @app.get("/backup")
    def backup_export(x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        return backup.export_backup(session["shop_id"])

    @app.post("/backup")
    def backup_import(payload: Dict[str, Any], x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        counts = backup.import_backup(session["shop_id"], payload, user=session["email"])
        return {"ok": True, "restored": counts}

    @app.get("/audit")
    def audit(limit: int = 200, x_auth_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        session = _require_session(x_auth_token)
        rows = load_audit_log(session["shop_id"], limit)
        return {"count": len(rows), "rows": rows}

    @app.get("/app", response_class=HTMLResponse)
    def web_app() -> HTMLResponse:
        return HTMLResponse(
            """
            <!doctype html>
            <html>
            <head>
              <meta charset="utf-8">
              <meta name="viewport" content="width=device-width, initial-scale=1">
              <title>SwiftSale POS</title>
              <style>body{font-family:Segoe UI,Tahoma,sans-serif;padding:20px;background:#f4f7fb} .card{max-width:920px;margin:0 auto;background:#fff;border:1px solid #d8e0ec;border-radius:10px;padding:16px} code{background:#eef4fc;padding:2px 6px;border-radius:6px}</style>
            </head>
            <body>
              <div class="card">
                <h2>SwiftSale POS API is running</h2>
                <p>Sign up at <code>/auth/signup</code>, log in at <code>/auth/login</code>, then send the token as <code>X-Auth-Token</code>.</p>
                <p>Use <code>/docs</code> to try every endpoint.</p>
              </div>
            </body>
            </html>
            """
        )

    return app


app = create_app()
