# medbill/constants.py
APP_NAME = "MedBill"

DB_FILE_NAME = "medbill.db"
LOG_FILE_NAME = "medbill.log"

TABLE_SCHEMA_VERSION = "schema_version"
SCHEMA_VERSION = "1.0.0"

# ---- GST ----
GST_RATES = (0, 5, 12, 18)
DEFAULT_HSN_CODE = "3004"

PRICE_TYPES = ("INCLUSIVE", "EXCLUSIVE")
DISCOUNT_TYPES = ("PERCENTAGE", "FLAT")

# ---- Bills ----
PAYMENT_MODES = ("CASH", "ONLINE", "CREDIT", "SPLIT")
BILL_STATUSES = ("COMPLETED", "CANCELLED", "RETURNED")

# ---- Credit ledger ----
# SALE raises the balance; every other type lowers it.
CREDIT_TYPES = ("SALE", "PAYMENT", "ADJUSTMENT", "RETURN")
CREDIT_INCREASING_TYPES = ("SALE",)

# ---- Returns ----
REFUND_MODES = ("CASH", "CREDIT_NOTE", "ADJUSTMENT")
SUPPLIER_RETURN_REASONS = ("EXPIRY", "DAMAGE", "OVERSTOCK", "OTHER")
SUPPLIER_RETURN_STATUSES = ("PENDING", "APPROVED", "COMPLETED", "REJECTED")
SUPPLIER_RETURN_TRANSITIONS = {
    "PENDING": ("APPROVED", "COMPLETED", "REJECTED"),
    "APPROVED": ("COMPLETED", "REJECTED"),
    "COMPLETED": (),
    "REJECTED": (),
}

# ---- Running bills ----
RUNNING_BILL_STATUSES = ("PENDING", "STOCKED", "CANCELLED")
RUNNING_BILL_NOTE = "Running Bill - Stock pending"

# ---- Schedule H/H1 patient records ----
PATIENT_GENDERS = ("M", "F", "O")

# ---- Users ----
USER_ROLES = ("admin", "staff")

# ---- Stock alerts ----
DEFAULT_EXPIRY_ALERT_DAYS = 30
DEFAULT_NON_MOVING_DAYS = 30
