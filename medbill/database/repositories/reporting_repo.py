from __future__ import annotations

from datetime import date
import sqlite3

from ...utils.gst import round2


class ReportingRepo:
    """
    Read-only report data. Only COMPLETED and RETURNED bills count as sales;
    cancelled bills are excluded everywhere.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def sales_summary(self, date_from: str, date_to: str) -> dict:
        r = self.conn.execute(
            """
            SELECT COUNT(*) AS total_bills,
                   COALESCE(SUM(CAST(grand_total AS REAL)), 0)   AS total_amount,
                   COALESCE(SUM(CAST(cash_amount AS REAL)), 0)   AS cash_amount,
                   COALESCE(SUM(CAST(online_amount AS REAL)), 0) AS online_amount,
                   COALESCE(SUM(CAST(credit_amount AS REAL)), 0) AS credit_amount,
                   COALESCE(SUM(CAST(total_gst AS REAL)), 0)     AS total_gst
            FROM bills
            WHERE status != 'CANCELLED' AND date(bill_date) BETWEEN ? AND ?
            """,
            (date_from, date_to),
        ).fetchone()
        out = {k: round2(r[k]) for k in ("total_amount", "cash_amount", "online_amount", "credit_amount", "total_gst")}
        out["total_bills"] = int(r["total_bills"])
        return out

    def todays_sales_summary(self) -> dict:
        today = date.today().isoformat()
        return self.sales_summary(today, today)

    def payment_mode_breakdown(self, date_from: str | None = None, date_to: str | None = None) -> list[dict]:
        rows = self.conn.execute(
            """
            SELECT payment_mode, COUNT(*) AS bills, COALESCE(SUM(CAST(grand_total AS REAL)), 0) AS amount
            FROM bills
            WHERE status != 'CANCELLED'
              AND (:df IS NULL OR date(bill_date) >= :df)
              AND (:dt IS NULL OR date(bill_date) <= :dt)
            GROUP BY payment_mode
            ORDER BY amount DESC
            """,
            {"df": date_from, "dt": date_to},
        ).fetchall()
        return [dict(r) for r in rows]

    def top_selling_medicines(self, limit: int = 10, days: int = 30) -> list[dict]:
        rows = self.conn.execute(
            """
            SELECT bi.medicine_id, bi.medicine_name,
                   SUM(bi.quantity) AS quantity_sold,
                   COALESCE(SUM(CAST(bi.total AS REAL)), 0) AS revenue
            FROM bill_items bi
            JOIN bills b ON b.bill_id = bi.bill_id
            WHERE b.status != 'CANCELLED'
              AND date(b.bill_date) >= date('now','localtime', '-' || ? || ' days')
            GROUP BY bi.medicine_id, bi.medicine_name
            ORDER BY quantity_sold DESC, revenue DESC
            LIMIT ?
            """,
            (int(days), int(limit)),
        ).fetchall()
        return [dict(r) for r in rows]

    def gst_summary(self, date_from: str, date_to: str) -> list[dict]:
        """Taxable value and CGST/SGST per GST rate (for GSTR filing)."""
        rows = self.conn.execute(
            """
            SELECT CAST(bi.gst_rate AS REAL) AS gst_rate,
                   COALESCE(SUM(CAST(bi.taxable_value AS REAL)), 0) AS taxable_value,
                   COALESCE(SUM(CAST(bi.cgst AS REAL)), 0)          AS cgst,
                   COALESCE(SUM(CAST(bi.sgst AS REAL)), 0)          AS sgst,
                   COALESCE(SUM(CAST(bi.total_gst AS REAL)), 0)     AS total_gst,
                   COALESCE(SUM(CAST(bi.total AS REAL)), 0)         AS total
            FROM bill_items bi
            JOIN bills b ON b.bill_id = bi.bill_id
            WHERE b.status != 'CANCELLED' AND date(b.bill_date) BETWEEN ? AND ?
            GROUP BY bi.gst_rate
            ORDER BY gst_rate
            """,
            (date_from, date_to),
        ).fetchall()
        return [{k: (round2(r[k]) if k != "gst_rate" else r[k]) for k in r.keys()} for r in rows]

    def schedule_h_register(self, date_from: str, date_to: str) -> list[dict]:
        """Schedule H/H1 sales register: who bought what, on whose prescription."""
        rows = self.conn.execute(
            """
            SELECT smr.record_id, smr.created_at, b.bill_number, m.name AS medicine_name,
                   bt.batch_number, smr.quantity, smr.patient_name, smr.patient_age, smr.patient_gender,
                   smr.patient_phone, smr.doctor_name, smr.doctor_registration_number,
                   smr.prescription_number, smr.prescription_date
            FROM scheduled_medicine_records smr
            JOIN bills b     ON b.bill_id = smr.bill_id
            JOIN medicines m ON m.medicine_id = smr.medicine_id
            JOIN batches bt  ON bt.batch_id = smr.batch_id
            WHERE date(smr.created_at) BETWEEN ? AND ?
            ORDER BY smr.record_id
            """,
            (date_from, date_to),
        ).fetchall()
        return [dict(r) for r in rows]
