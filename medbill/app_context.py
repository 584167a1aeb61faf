# medbill/app_context.py
from __future__ import annotations

from functools import cached_property
import logging
import sqlite3
from pathlib import Path
from typing import Optional

from .config import LOG_PATH
from .database import get_connection
from .database.errors import NotFoundError, ValidationError
from .database.repositories.bills_repo import BillsRepo
from .database.repositories.customers_repo import CustomersRepo
from .database.repositories.inventory_repo import InventoryRepo
from .database.repositories.login_repo import LoginRepo
from .database.repositories.medicines_repo import MedicinesRepo
from .database.repositories.purchases_repo import PurchasesRepo
from .database.repositories.reporting_repo import ReportingRepo
from .database.repositories.running_bills_repo import RunningBillsRepo
from .database.repositories.sales_returns_repo import SalesReturnsRepo
from .database.repositories.settings_repo import SettingsRepo
from .database.repositories.supplier_returns_repo import SupplierReturnsRepo
from .database.repositories.suppliers_repo import SuppliersRepo
from .modules.login.controller import LoginController
from .modules.login.model import UserSession, has_permission
from .printing.invoice import export_bill_pdf, render_bill_html
from .utils.gst import split_inclusive
from .utils.loggers import get_logger

_log = logging.getLogger(__name__)


class AppContext:
    """
    Process-wide state in one place: the connection, the signed-in user and
    a settings cache. Pages and services receive the context explicitly.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.session: Optional[UserSession] = None
        self._settings: dict[str, str] | None = None
        self.last_login_error: Optional[str] = None

    @classmethod
    def open(cls, db_path: Path | str | None = None, log_file: Path | str | None = LOG_PATH) -> "AppContext":
        get_logger(log_file=log_file)
        return cls(get_connection(db_path))

    def close(self) -> None:
        self.conn.close()

    # ---- session ---------------------------------------------------------

    def login(self, username: str, password: str) -> Optional[UserSession]:
        ctl = LoginController(self.conn)
        self.session = ctl.login(username, password)
        self.last_login_error = ctl.last_error_message
        return self.session

    def logout(self) -> None:
        if self.session is not None:
            _log.info("User %s signed out", self.session.username)
        self.session = None

    def require_user(self, action: str | None = None) -> UserSession:
        if self.session is None:
            raise ValidationError("Please sign in first")
        if action is not None and not has_permission(self.session, action):
            raise ValidationError(f"You do not have permission to {action.replace(':', ' ')}")
        return self.session

    # ---- settings --------------------------------------------------------

    def setting(self, key: str, default: str | None = None) -> str | None:
        if self._settings is None:
            self._settings = self.settings_repo.all()
        return self._settings.get(key, default)

    def set_setting(self, key: str, value) -> None:
        self.require_user("settings:edit")
        self.settings_repo.set(key, value)
        self._settings = None

    # ---- repositories ----------------------------------------------------

    @cached_property
    def settings_repo(self) -> SettingsRepo:
        return SettingsRepo(self.conn)

    @cached_property
    def medicines(self) -> MedicinesRepo:
        return MedicinesRepo(self.conn)

    @cached_property
    def inventory(self) -> InventoryRepo:
        return InventoryRepo(self.conn, expiry_alert_days=int(self.setting("expiry_alert_days", "30") or 30))

    @cached_property
    def suppliers(self) -> SuppliersRepo:
        return SuppliersRepo(self.conn)

    @cached_property
    def purchases(self) -> PurchasesRepo:
        return PurchasesRepo(self.conn)

    @cached_property
    def customers(self) -> CustomersRepo:
        return CustomersRepo(self.conn)

    @cached_property
    def bills(self) -> BillsRepo:
        return BillsRepo(self.conn)

    @cached_property
    def running_bills(self) -> RunningBillsRepo:
        return RunningBillsRepo(self.conn)

    @cached_property
    def sales_returns(self) -> SalesReturnsRepo:
        return SalesReturnsRepo(self.conn)

    @cached_property
    def supplier_returns(self) -> SupplierReturnsRepo:
        return SupplierReturnsRepo(self.conn)

    @cached_property
    def reporting(self) -> ReportingRepo:
        return ReportingRepo(self.conn)

    @cached_property
    def users(self) -> LoginRepo:
        return LoginRepo(self.conn)

    # ---- printing --------------------------------------------------------

    def shop_details(self) -> dict[str, str]:
        if self._settings is None:
            self._settings = self.settings_repo.all()
        return {k: v for k, v in self._settings.items() if k.startswith("shop_")}

    def bill_html(self, bill_id: int) -> str:
        self.require_user("billing:view")
        bill = self.bills.get_bill(bill_id)
        if bill is None:
            raise NotFoundError(f"Bill #{bill_id} not found")
        pending = self.running_bills.list_running_bills(status="PENDING", bill_id=bill_id)
        items = bill["items"] + [
            {
                "medicine_name": rb["medicine_name"], "hsn_code": rb["hsn_code"], "batch_number": "",
                "expiry_date": None, "quantity": rb["quantity"], "unit_price": rb["unit_price"],
                "gst_rate": rb["gst_rate"], **self._running_line_tax(rb),
            }
            for rb in pending
        ]
        return render_bill_html(bill, self.shop_details(), items=items)

    @staticmethod
    def _running_line_tax(rb: dict) -> dict:
        g = split_inclusive(float(rb["unit_price"]) * int(rb["quantity"]), float(rb["gst_rate"]))
        return {"taxable_value": g.taxable_value, "cgst": g.cgst, "sgst": g.sgst, "total": g.total}

    def export_bill_pdf(self, bill_id: int, path: Path | str) -> Path:
        return export_bill_pdf(self.bill_html(bill_id), path)
