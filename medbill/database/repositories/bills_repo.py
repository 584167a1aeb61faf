from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
import logging
import sqlite3
from typing import Optional

from ..errors import NotFoundError, ValidationError
from ..tx import immediate_tx
from .audit_repo import AuditRepo
from .bill_numbers import next_bill_number
from .customers_repo import CustomersRepo
from .inventory_repo import InventoryRepo
from .settings_repo import SettingsRepo
from ...constants import BILL_STATUSES, DISCOUNT_TYPES, PAYMENT_MODES
from ...utils.gst import ItemCalculation, LineInput, calculate_bill, round2
from ...utils.loggers import log_event
from ...utils.validators import validate_patient

_log = logging.getLogger(__name__)


@dataclass
class CartLine:
    batch_id: int
    quantity: int
    discount_type: str | None = None
    discount_value: float = 0.0


@dataclass
class PatientInfo:
    """Schedule H/H1 register details; name, age and gender are mandatory."""
    patient_name: str
    patient_age: int
    patient_gender: str
    patient_phone: str | None = None
    patient_address: str | None = None
    doctor_name: str | None = None
    doctor_registration_number: str | None = None
    clinic_hospital_name: str | None = None
    prescription_number: str | None = None
    prescription_date: str | None = None


@dataclass
class BillInput:
    items: list[CartLine] = field(default_factory=list)
    payment_mode: str = "CASH"
    customer_id: int | None = None
    customer_name: str | None = None
    doctor_name: str | None = None
    discount_type: str | None = None
    discount_value: float = 0.0
    cash_amount: float = 0.0     # SPLIT only
    online_amount: float = 0.0   # SPLIT only
    notes: str | None = None


def split_payment(mode: str, total: float, cash: float = 0.0, online: float = 0.0) -> tuple[float, float, float]:
    """(cash, online, credit) for a bill total; SPLIT puts the remainder on credit."""
    if mode == "CASH":
        return total, 0.0, 0.0
    if mode == "ONLINE":
        return 0.0, total, 0.0
    if mode == "CREDIT":
        return 0.0, 0.0, total
    cash = round2(float(cash or 0))
    online = round2(float(online or 0))
    if cash < 0 or online < 0:
        raise ValidationError("Split amounts cannot be negative")
    credit = round2(total - cash - online)
    if credit < 0:
        raise ValidationError("Split amounts exceed the bill total")
    return cash, online, credit


class BillsRepo:
    """
    Sales bills.

    create_bill() is the stock-deduction workflow: the whole cart is checked
    first (existence, expiry, aggregate stock, Schedule H/H1 patient details,
    customer for credit), then one transaction numbers the bill, writes the
    header and the price/GST snapshot of every line, deducts stock, writes the
    Schedule H/H1 register rows and posts any credit to the customer ledger.
    """

    def __init__(self, conn: sqlite3.Connection, *, round_off: bool | None = None):
        conn.row_factory = sqlite3.Row
        self.conn = conn
        self.inventory = InventoryRepo(conn)
        self.customers = CustomersRepo(conn)
        self.audit = AuditRepo(conn)
        self._round_off = round_off

    @property
    def round_off(self) -> bool:
        if self._round_off is None:
            return SettingsRepo(self.conn).get_bool("round_off_enabled", True)
        return self._round_off

    # ---------------------------------------------------------------------
    # Validation
    # ---------------------------------------------------------------------
    def _load_cart(self, items: list[CartLine]) -> list[dict]:
        """Resolve every line to its stock row; raise on the first problem."""
        if not items:
            raise ValidationError("Add at least one item to the bill")

        wanted: "OrderedDict[int, int]" = OrderedDict()
        for ln in items:
            if ln.quantity is None or int(ln.quantity) != ln.quantity or int(ln.quantity) <= 0:
                raise ValidationError("Quantity must be a whole number greater than 0")
            if ln.discount_type is not None and ln.discount_type not in DISCOUNT_TYPES:
                raise ValidationError(f"Invalid discount type: {ln.discount_type!r}")
            wanted[ln.batch_id] = wanted.get(ln.batch_id, 0) + int(ln.quantity)

        stock: dict[int, dict] = {}
        for batch_id, qty in wanted.items():
            row = self.inventory.get_stock_item(batch_id)
            if row is None:
                raise NotFoundError(f"Batch not found: {batch_id}")
            if row["quantity"] < qty:
                raise ValidationError(
                    f"Insufficient stock for {row['medicine_name']}. Available: {row['quantity']}"
                )
            if row["expiry_status"] == "EXPIRED":
                raise ValidationError(f"Cannot sell expired medicine: {row['medicine_name']}")
            stock[batch_id] = row
        return [stock[ln.batch_id] for ln in items]

    # ---------------------------------------------------------------------
    # Shared writers (also used by running bills)
    # ---------------------------------------------------------------------
    def insert_bill_item(self, bill_id: int, batch: dict, quantity: int, calc: ItemCalculation,
                         discount_type: str | None = None, discount_value: float = 0.0) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO bill_items(bill_id, batch_id, medicine_id, medicine_name, hsn_code, batch_number,
                                   expiry_date, rack, box, quantity, unit_price, price_type,
                                   discount_type, discount_value, discount_amount, taxable_value,
                                   gst_rate, cgst, sgst, total_gst, total)
            VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)
            """,
            (
                bill_id, batch["batch_id"], batch["medicine_id"], batch["medicine_name"], batch["hsn_code"],
                batch["batch_number"], batch["expiry_date"], batch.get("rack"), batch.get("box"),
                int(quantity), calc.unit_price, calc.price_type,
                discount_type, float(discount_value or 0),
                round2(calc.discount_amount + calc.bill_discount_share), calc.taxable_value,
                calc.gst_rate, calc.cgst, calc.sgst, calc.total_gst, calc.total,
            ),
        )
        return int(cur.lastrowid)

    def insert_scheduled_record(self, bill_id: int, bill_item_id: int, batch: dict, quantity: int,
                                patient: PatientInfo) -> int:
        validate_patient(patient)
        cur = self.conn.execute(
            """
            INSERT INTO scheduled_medicine_records(
                bill_id, bill_item_id, medicine_id, batch_id, patient_name, patient_age, patient_gender,
                patient_phone, patient_address, doctor_name, doctor_registration_number,
                clinic_hospital_name, prescription_number, prescription_date, quantity)
            VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)
            """,
            (
                bill_id, bill_item_id, batch["medicine_id"], batch["batch_id"], patient.patient_name.strip(),
                int(patient.patient_age), patient.patient_gender, patient.patient_phone,
                patient.patient_address, patient.doctor_name, patient.doctor_registration_number,
                patient.clinic_hospital_name, patient.prescription_number, patient.prescription_date,
                int(quantity),
            ),
        )
        return int(cur.lastrowid)

    # ---------------------------------------------------------------------
    # Workflows
    # ---------------------------------------------------------------------
    def create_bill(self, bill: BillInput, user_id: int, patient: Optional[PatientInfo] = None,
                    on_date: date | None = None) -> int:
        """Validate and persist a bill; returns bill_id. Nothing is written on failure."""
        if bill.payment_mode not in PAYMENT_MODES:
            raise ValidationError(f"Invalid payment mode: {bill.payment_mode!r}")
        if bill.discount_type is not None and bill.discount_type not in DISCOUNT_TYPES:
            raise ValidationError(f"Invalid discount type: {bill.discount_type!r}")

        batches = self._load_cart(bill.items)
        if any(b["is_schedule"] for b in batches):
            validate_patient(patient)

        customer = self.customers.require(bill.customer_id) if bill.customer_id is not None else None

        calc = calculate_bill(
            [
                LineInput(
                    unit_price=b["selling_price"],
                    quantity=int(ln.quantity),
                    gst_rate=b["gst_rate"],
                    price_type=b["price_type"],
                    discount_type=ln.discount_type,
                    discount_value=ln.discount_value,
                )
                for ln, b in zip(bill.items, batches)
            ],
            bill.discount_type,
            bill.discount_value,
            round_off=self.round_off,
        )
        cash, online, credit = split_payment(bill.payment_mode, calc.grand_total, bill.cash_amount, bill.online_amount)
        if credit > 0 and customer is None:
            raise ValidationError("Select a customer for a credit sale")

        customer_name = bill.customer_name or (customer["name"] if customer else None)

        with immediate_tx(self.conn):
            bill_number = next_bill_number(self.conn, on_date)
            cur = self.conn.execute(
                """
                INSERT INTO bills(bill_number, customer_id, customer_name, doctor_name, user_id,
                                  subtotal, discount_type, discount_value, discount_amount,
                                  taxable_total, total_cgst, total_sgst, total_gst, round_off, grand_total,
                                  payment_mode, cash_amount, online_amount, credit_amount, notes, total_items)
                VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)
                """,
                (
                    bill_number, bill.customer_id, customer_name, bill.doctor_name, user_id,
                    calc.subtotal, bill.discount_type, float(bill.discount_value or 0), calc.discount_total,
                    calc.taxable_total, calc.total_cgst, calc.total_sgst, calc.total_gst, calc.round_off,
                    calc.grand_total, bill.payment_mode, cash, online, credit, bill.notes, len(bill.items),
                ),
            )
            bill_id = int(cur.lastrowid)

            for ln, b, item_calc in zip(bill.items, batches, calc.items):
                item_id = self.insert_bill_item(bill_id, b, ln.quantity, item_calc, ln.discount_type, ln.discount_value)
                self.inventory.deduct_stock(b["batch_id"], ln.quantity)
                if b["is_schedule"]:
                    self.insert_scheduled_record(bill_id, item_id, b, ln.quantity, patient)

            if credit > 0:
                self.customers.post_ledger_entry(
                    customer["customer_id"], "SALE", credit, user_id,
                    bill_id=bill_id, reference=bill_number,
                )

        log_event(_log, "bill", "created", f"Bill {bill_number} created",
                  {"bill_id": bill_id, "items": len(bill.items), "grand_total": calc.grand_total,
                   "payment_mode": bill.payment_mode})
        return bill_id

    def cancel_bill(self, bill_id: int, user_id: int, reason: str | None = None) -> None:
        """
        Void a COMPLETED bill: put back whatever is still out of stock, reverse
        the credit still owed on it, cancel its pending running-bill lines.
        """
        b = self.require_bill(bill_id)
        if b["status"] != "COMPLETED":
            raise ValidationError(f"Only completed bills can be cancelled (bill is {b['status']})")

        returned = {
            r["bill_item_id"]: int(r["qty"])
            for r in self.conn.execute(
                """
                SELECT sri.bill_item_id, SUM(sri.quantity) AS qty
                FROM sales_return_items sri
                JOIN sales_returns sr ON sr.return_id = sri.return_id
                WHERE sr.bill_id = ?
                GROUP BY sri.bill_item_id
                """,
                (bill_id,),
            ).fetchall()
        }

        with immediate_tx(self.conn):
            for it in self.list_items(bill_id):
                remaining = int(it["quantity"]) - returned.get(it["item_id"], 0)
                if remaining > 0:
                    self.inventory.restore_stock(it["batch_id"], remaining)

            if b["customer_id"] is not None and float(b["credit_amount"]) > 0:
                settled = self.conn.execute(
                    """
                    SELECT COALESCE(SUM(CAST(amount AS REAL)), 0) FROM credits
                    WHERE bill_id = ? AND transaction_type IN ('RETURN','ADJUSTMENT')
                    """,
                    (bill_id,),
                ).fetchone()[0]
                outstanding = round2(float(b["credit_amount"]) - float(settled))
                if outstanding > 0:
                    self.customers.post_ledger_entry(
                        b["customer_id"], "ADJUSTMENT", outstanding, user_id,
                        bill_id=bill_id, reference=b["bill_number"], notes=f"Bill cancelled: {reason or ''}".strip(),
                    )

            self.conn.execute(
                """
                UPDATE running_bills SET status='CANCELLED', updated_at=datetime('now','localtime')
                 WHERE bill_id=? AND status='PENDING'
                """,
                (bill_id,),
            )
            self.conn.execute(
                "UPDATE bills SET status='CANCELLED', updated_at=datetime('now','localtime') WHERE bill_id=?",
                (bill_id,),
            )
            self.audit.log(
                user_id, "CANCEL_BILL", "bill", bill_id,
                old_value="COMPLETED", new_value="CANCELLED", description=reason,
            )

        log_event(_log, "bill", "cancelled", f"Bill {b['bill_number']} cancelled",
                  {"bill_id": bill_id, "reason": reason})

    # ---------------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------------
    def get_header(self, bill_id: int) -> dict | None:
        r = self.conn.execute(
            """
            SELECT b.*, u.full_name AS user_name
            FROM bills b LEFT JOIN users u ON u.user_id = b.user_id
            WHERE b.bill_id = ?
            """,
            (bill_id,),
        ).fetchone()
        return dict(r) if r else None

    def require_bill(self, bill_id: int) -> dict:
        b = self.get_header(bill_id)
        if b is None:
            raise NotFoundError(f"Bill #{bill_id} not found")
        return b

    def list_items(self, bill_id: int) -> list[dict]:
        rows = self.conn.execute("SELECT * FROM bill_items WHERE bill_id=? ORDER BY item_id", (bill_id,)).fetchall()
        return [dict(r) for r in rows]

    def get_bill(self, bill_id: int) -> dict | None:
        """Header with `items` attached."""
        b = self.get_header(bill_id)
        if b is None:
            return None
        b["items"] = self.list_items(bill_id)
        return b

    def get_bill_by_number(self, bill_number: str) -> dict | None:
        r = self.conn.execute("SELECT bill_id FROM bills WHERE bill_number=?", (bill_number,)).fetchone()
        return self.get_bill(r["bill_id"]) if r else None

    def list_bills(
        self,
        *,
        date_from: str | None = None,
        date_to: str | None = None,
        customer_id: int | None = None,
        payment_mode: str | None = None,
        status: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict]:
        if status is not None and status not in BILL_STATUSES:
            raise ValidationError(f"Invalid bill status: {status!r}")
        rows = self.conn.execute(
            """
            SELECT bill_id, bill_number, bill_date, customer_id, customer_name, payment_mode, status,
                   CAST(grand_total AS REAL) AS grand_total, CAST(total_gst AS REAL) AS total_gst,
                   CAST(credit_amount AS REAL) AS credit_amount, total_items
            FROM bills
            WHERE (:df IS NULL OR date(bill_date) >= :df)
              AND (:dt IS NULL OR date(bill_date) <= :dt)
              AND (:cid IS NULL OR customer_id = :cid)
              AND (:pm IS NULL OR payment_mode = :pm)
              AND (:st IS NULL OR status = :st)
            ORDER BY bill_date DESC, bill_id DESC
            LIMIT :limit OFFSET :offset
            """,
            {"df": date_from, "dt": date_to, "cid": customer_id, "pm": payment_mode, "st": status,
             "limit": int(limit), "offset": int(offset)},
        ).fetchall()
        return [dict(r) for r in rows]

    def list_scheduled_records(self, bill_id: int) -> list[dict]:
        rows = self.conn.execute(
            """
            SELECT smr.*, m.name AS medicine_name
            FROM scheduled_medicine_records smr
            JOIN medicines m ON m.medicine_id = smr.medicine_id
            WHERE smr.bill_id = ?
            ORDER BY smr.record_id
            """,
            (bill_id,),
        ).fetchall()
        return [dict(r) for r in rows]
