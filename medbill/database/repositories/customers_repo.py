from __future__ import annotations

from dataclasses import dataclass
import logging
import sqlite3

from ..errors import NotFoundError, ValidationError
from ..tx import immediate_tx
from ...constants import CREDIT_INCREASING_TYPES, CREDIT_TYPES, PAYMENT_MODES
from ...utils.gst import round2
from ...utils.loggers import log_event
from ...utils.validators import require_choice, require_non_negative, require_positive, require_text

_log = logging.getLogger(__name__)


@dataclass
class Customer:
    customer_id: int | None
    name: str
    phone: str | None = None
    email: str | None = None
    gstin: str | None = None
    address: str | None = None
    credit_limit: float = 0.0


_SELECT = """
SELECT customer_id, name, phone, email, gstin, address,
       CAST(credit_limit AS REAL) AS credit_limit,
       CAST(current_balance AS REAL) AS current_balance,
       is_active, created_at
FROM customers
"""


class CustomersRepo:
    """
    Customers and their credit ("udhar") ledger.

    current_balance is maintained alongside an append-only ledger in `credits`;
    post_ledger_entry() is the only writer of either, so the two move together:
        current_balance == sum(SALE) - sum(PAYMENT, RETURN, ADJUSTMENT)
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---- Internal helpers -------------------------------------------------

    @staticmethod
    def _normalize_text(s: str | None) -> str | None:
        if s is None:
            return None
        return s.strip() or None

    def _values(self, c: Customer) -> tuple:
        require_text(c.name, "Name")
        limit = require_non_negative(c.credit_limit or 0, "Credit limit")
        return (
            c.name.strip(), self._normalize_text(c.phone), self._normalize_text(c.email),
            self._normalize_text(c.gstin), self._normalize_text(c.address), limit,
        )

    # ---- Queries ----------------------------------------------------------

    def get(self, customer_id: int) -> dict | None:
        r = self.conn.execute(_SELECT + " WHERE customer_id=?", (customer_id,)).fetchone()
        return dict(r) if r else None

    def require(self, customer_id: int) -> dict:
        c = self.get(customer_id)
        if c is None:
            raise NotFoundError(f"Customer #{customer_id} not found")
        return c

    def list_customers(self, active_only: bool = True) -> list[dict]:
        where = " WHERE is_active = 1" if active_only else ""
        return [dict(r) for r in self.conn.execute(_SELECT + where + " ORDER BY name").fetchall()]

    def search(self, term: str, active_only: bool = True) -> list[dict]:
        """
        Matches using LIKE on id / name / phone.
        """
        pattern = f"%{(term or '').strip()}%"
        rows = self.conn.execute(
            _SELECT
            + """
            WHERE (? = 0 OR is_active = 1)
              AND (CAST(customer_id AS TEXT) LIKE ? OR name LIKE ? OR phone LIKE ?)
            ORDER BY name
            """,
            (1 if active_only else 0, pattern, pattern, pattern),
        ).fetchall()
        return [dict(r) for r in rows]

    def outstanding_customers(self) -> list[dict]:
        """Customers who owe money, largest balance first."""
        rows = self.conn.execute(
            """
            SELECT c.customer_id, c.name, c.phone,
                   CAST(c.credit_limit AS REAL) AS credit_limit,
                   CAST(c.current_balance AS REAL) AS current_balance,
                   (SELECT COUNT(*) FROM bills b
                     WHERE b.customer_id = c.customer_id AND b.payment_mode = 'CREDIT') AS total_credit_bills,
                   (SELECT MAX(created_at) FROM credits cr
                     WHERE cr.customer_id = c.customer_id) AS last_transaction_date
            FROM customers c
            WHERE c.current_balance > 0
            ORDER BY c.current_balance DESC
            """
        ).fetchall()
        return [dict(r) for r in rows]

    def credit_history(self, customer_id: int) -> list[dict]:
        self.require(customer_id)
        rows = self.conn.execute(
            """
            SELECT cr.credit_id, cr.customer_id, cr.bill_id, b.bill_number, cr.transaction_type,
                   CAST(cr.amount AS REAL) AS amount, CAST(cr.balance_after AS REAL) AS balance_after,
                   cr.payment_mode, cr.reference, cr.notes, cr.user_id, cr.created_at
            FROM credits cr
            LEFT JOIN bills b ON b.bill_id = cr.bill_id
            WHERE cr.customer_id = ?
            ORDER BY cr.credit_id
            """,
            (customer_id,),
        ).fetchall()
        return [dict(r) for r in rows]

    def ledger_balance(self, customer_id: int) -> float:
        r = self.conn.execute(
            """
            SELECT COALESCE(SUM(CASE WHEN transaction_type = 'SALE'
                                     THEN CAST(amount AS REAL)
                                     ELSE -CAST(amount AS REAL) END), 0.0) AS bal
            FROM credits WHERE customer_id = ?
            """,
            (customer_id,),
        ).fetchone()
        return round2(r["bal"])

    def reconcile_balance(self, customer_id: int) -> dict:
        """Read-only check of the stored balance against the ledger."""
        stored = round2(self.require(customer_id)["current_balance"])
        ledger = self.ledger_balance(customer_id)
        drift = round2(stored - ledger)
        if drift:
            _log.warning("Customer %s balance %.2f differs from ledger %.2f", customer_id, stored, ledger)
        return {"current_balance": stored, "ledger_balance": ledger, "drift": drift, "ok": drift == 0}

    # ---- Mutations --------------------------------------------------------

    def create(self, c: Customer) -> int:
        vals = self._values(c)
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                "INSERT INTO customers(name, phone, email, gstin, address, credit_limit) VALUES (?,?,?,?,?,?)",
                vals,
            )
        return int(cur.lastrowid)

    def update(self, c: Customer) -> None:
        if c.customer_id is None:
            raise ValidationError("customer_id is required for update")
        self.require(c.customer_id)
        vals = self._values(c)
        with immediate_tx(self.conn):
            self.conn.execute(
                """
                UPDATE customers
                   SET name=?, phone=?, email=?, gstin=?, address=?, credit_limit=?,
                       updated_at=datetime('now','localtime')
                 WHERE customer_id=?
                """,
                (*vals, c.customer_id),
            )

    def delete(self, customer_id: int) -> None:
        """Soft delete (ledger history stays)."""
        self.require(customer_id)
        with immediate_tx(self.conn):
            self.conn.execute("UPDATE customers SET is_active=0 WHERE customer_id=?", (customer_id,))

    def post_ledger_entry(
        self,
        customer_id: int,
        transaction_type: str,
        amount: float,
        user_id: int,
        *,
        bill_id: int | None = None,
        payment_mode: str | None = None,
        reference: str | None = None,
        notes: str | None = None,
    ) -> int:
        """
        Insert one ledger row and move current_balance by the same amount
        (SALE raises it, every other type lowers it). Returns the credit_id.
        """
        require_choice(transaction_type, CREDIT_TYPES, "transaction type")
        amount = round2(require_positive(amount, "Amount"))
        sign = 1 if transaction_type in CREDIT_INCREASING_TYPES else -1

        with immediate_tx(self.conn):
            cust = self.require(customer_id)
            balance_after = round2(cust["current_balance"] + sign * amount)
            cur = self.conn.execute(
                """
                INSERT INTO credits(customer_id, bill_id, transaction_type, amount, balance_after,
                                    payment_mode, reference, notes, user_id)
                VALUES (?,?,?,?,?,?,?,?,?)
                """,
                (customer_id, bill_id, transaction_type, amount, balance_after,
                 payment_mode, reference, notes, user_id),
            )
            self.conn.execute(
                """
                UPDATE customers SET current_balance=?, updated_at=datetime('now','localtime')
                 WHERE customer_id=?
                """,
                (balance_after, customer_id),
            )
        return int(cur.lastrowid)

    def record_payment(
        self,
        customer_id: int,
        amount: float,
        user_id: int,
        payment_mode: str = "CASH",
        reference: str | None = None,
        notes: str | None = None,
    ) -> int:
        """
        Settle part or all of the outstanding balance.
        0 < amount <= current_balance, otherwise ValidationError.
        """
        cust = self.require(customer_id)
        amount = round2(require_positive(amount, "Payment amount"))
        if payment_mode not in PAYMENT_MODES or payment_mode == "CREDIT":
            raise ValidationError(f"Invalid payment mode: {payment_mode!r}")
        if amount > round2(cust["current_balance"]):
            raise ValidationError(
                f"Payment amount {amount:.2f} exceeds outstanding balance {cust['current_balance']:.2f}"
            )
        credit_id = self.post_ledger_entry(
            customer_id, "PAYMENT", amount, user_id,
            payment_mode=payment_mode, reference=reference, notes=notes,
        )
        log_event(_log, "credit_payment", "recorded", f"Payment of {amount:.2f} from customer {customer_id}",
                  {"customer_id": customer_id, "credit_id": credit_id, "amount": amount})
        return credit_id
