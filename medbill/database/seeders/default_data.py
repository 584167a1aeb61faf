from datetime import date

from ...utils.auth import hash_password
from ...utils.helpers import financial_year

DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "admin123"

# key, value, category, description
DEFAULT_SETTINGS = (
    ("shop_name", "Medical Store", "shop", "Shop name for bills"),
    ("shop_address", "", "shop", "Shop address"),
    ("shop_phone", "", "shop", "Shop phone number"),
    ("shop_gstin", "", "shop", "GST Number"),
    ("shop_drug_license", "", "shop", "Drug License Number"),
    ("shop_state", "Tamil Nadu", "shop", "State for CGST/SGST"),
    ("bill_prefix", "INV", "billing", "Bill number prefix"),
    ("round_off_enabled", "1", "billing", "Enable bill rounding"),
    ("thermal_printer_width", "80", "printing", "Thermal printer width in mm"),
    ("expiry_alert_days", "30", "alerts", "Days before expiry to alert"),
    ("low_stock_threshold", "10", "alerts", "Low stock alert threshold"),
    ("non_moving_days", "30", "alerts", "Days to consider non-moving"),
    ("default_gst_rate", "12", "gst", "Default GST rate for new medicines"),
)


def seed(conn):
    # first run: one admin account with the documented default password
    row = conn.execute("SELECT COUNT(*) AS n FROM users").fetchone()
    if row and row["n"] == 0:
        conn.execute(
            """
            INSERT INTO users(username, password_hash, full_name, role, is_active)
            VALUES (?, ?, ?, 'admin', 1)
            """,
            (DEFAULT_ADMIN_USERNAME, hash_password(DEFAULT_ADMIN_PASSWORD), "Administrator"),
        )

    conn.execute(
        "INSERT OR IGNORE INTO bill_sequence(id, prefix, current_number, financial_year) VALUES (1, 'INV', 0, ?)",
        (financial_year(date.today()),),
    )
    conn.executemany(
        "INSERT OR IGNORE INTO settings(key, value, category, description) VALUES (?, ?, ?, ?)",
        DEFAULT_SETTINGS,
    )
    conn.commit()
