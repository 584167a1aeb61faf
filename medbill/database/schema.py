import sqlite3

SQL = r"""
PRAGMA foreign_keys = ON;

/* ======================== MASTERS ======================== */

/* -------- users -------- */
CREATE TABLE IF NOT EXISTS users (
    user_id       INTEGER PRIMARY KEY AUTOINCREMENT,
    username      TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    full_name     TEXT NOT NULL,
    role          TEXT NOT NULL CHECK (role IN ('admin','staff')),
    is_active     INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1)),
    last_login    TEXT,
    created_at    TEXT NOT NULL DEFAULT (datetime('now','localtime')),
    updated_at    TEXT NOT NULL DEFAULT (datetime('now','localtime'))
);

/* -------- medicines -------- */
CREATE TABLE IF NOT EXISTS medicines (
    medicine_id   INTEGER PRIMARY KEY AUTOINCREMENT,
    name          TEXT NOT NULL,
    generic_name  TEXT,
    manufacturer  TEXT,
    hsn_code      TEXT NOT NULL DEFAULT '3004',
    gst_rate      NUMERIC NOT NULL CHECK (gst_rate IN (0,5,12,18)),
    category      TEXT,
    drug_type     TEXT,
    unit          TEXT NOT NULL DEFAULT 'PCS',
    reorder_level INTEGER NOT NULL DEFAULT 10 CHECK (reorder_level >= 0),
    is_schedule   INTEGER NOT NULL DEFAULT 0 CHECK (is_schedule IN (0,1)),
    is_active     INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1)),
    created_at    TEXT NOT NULL DEFAULT (datetime('now','localtime')),
    updated_at    TEXT NOT NULL DEFAULT (datetime('now','localtime'))
);
CREATE INDEX IF NOT EXISTS idx_medicines_name ON medicines(name);
CREATE INDEX IF NOT EXISTS idx_medicines_schedule ON medicines(is_schedule);

/* -------- suppliers -------- */
CREATE TABLE IF NOT EXISTS suppliers (
    supplier_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    name           TEXT NOT NULL,
    contact_person TEXT,
    phone          TEXT,
    email          TEXT,
    gstin          TEXT,
    address        TEXT,
    city           TEXT,
    state          TEXT,
    pincode        TEXT,
    payment_terms  INTEGER NOT NULL DEFAULT 30,
    is_active      INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1)),
    created_at     TEXT NOT NULL DEFAULT (datetime('now','localtime')),
    updated_at     TEXT NOT NULL DEFAULT (datetime('now','localtime'))
);
CREATE INDEX IF NOT EXISTS idx_suppliers_name ON suppliers(name);

/* -------- customers -------- */
CREATE TABLE IF NOT EXISTS customers (
    customer_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    name            TEXT NOT NULL,
    phone           TEXT,
    email           TEXT,
    gstin           TEXT,
    address         TEXT,
    credit_limit    NUMERIC NOT NULL DEFAULT 0 CHECK (credit_limit >= 0),
    current_balance NUMERIC NOT NULL DEFAULT 0,
    is_active       INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1)),
    created_at      TEXT NOT NULL DEFAULT (datetime('now','localtime')),
    updated_at      TEXT NOT NULL DEFAULT (datetime('now','localtime'))
);
CREATE INDEX IF NOT EXISTS idx_customers_name ON customers(name);
CREATE INDEX IF NOT EXISTS idx_customers_phone ON customers(phone);

/* ======================== PURCHASING / STOCK ======================== */

/* -------- purchases -------- */
CREATE TABLE IF NOT EXISTS purchases (
    purchase_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    invoice_number TEXT NOT NULL,
    invoice_date   DATE NOT NULL,
    supplier_id    INTEGER NOT NULL,
    user_id        INTEGER NOT NULL,
    subtotal       NUMERIC NOT NULL DEFAULT 0,
    total_cgst     NUMERIC NOT NULL DEFAULT 0,
    total_sgst     NUMERIC NOT NULL DEFAULT 0,
    total_gst      NUMERIC NOT NULL DEFAULT 0,
    grand_total    NUMERIC NOT NULL DEFAULT 0,
    payment_status TEXT NOT NULL DEFAULT 'PENDING' CHECK (payment_status IN ('PENDING','PARTIAL','PAID')),
    paid_amount    NUMERIC NOT NULL DEFAULT 0 CHECK (paid_amount >= 0),
    due_date       DATE,
    notes          TEXT,
    created_at     TEXT NOT NULL DEFAULT (datetime('now','localtime')),
    FOREIGN KEY (supplier_id) REFERENCES suppliers(supplier_id),
    FOREIGN KEY (user_id)     REFERENCES users(user_id)
);
CREATE INDEX IF NOT EXISTS idx_purchases_supplier ON purchases(supplier_id);
CREATE INDEX IF NOT EXISTS idx_purchases_date ON purchases(invoice_date);

/* -------- batches (quantity never negative at rest) -------- */
CREATE TABLE IF NOT EXISTS batches (
    batch_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    medicine_id       INTEGER NOT NULL,
    batch_number      TEXT NOT NULL,
    expiry_date       DATE NOT NULL,
    purchase_price    NUMERIC NOT NULL CHECK (purchase_price >= 0),
    mrp               NUMERIC NOT NULL CHECK (mrp >= 0),
    selling_price     NUMERIC NOT NULL CHECK (selling_price >= 0),
    price_type        TEXT NOT NULL DEFAULT 'INCLUSIVE' CHECK (price_type IN ('INCLUSIVE','EXCLUSIVE')),
    quantity          INTEGER NOT NULL DEFAULT 0 CHECK (quantity >= 0),
    tablets_per_strip INTEGER NOT NULL DEFAULT 10,
    rack              TEXT,
    box               TEXT,
    last_sold_date    DATE,
    purchase_id       INTEGER,
    supplier_id       INTEGER,
    is_active         INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1)),
    created_at        TEXT NOT NULL DEFAULT (datetime('now','localtime')),
    updated_at        TEXT NOT NULL DEFAULT (datetime('now','localtime')),
    UNIQUE (medicine_id, batch_number),
    FOREIGN KEY (medicine_id) REFERENCES medicines(medicine_id),
    FOREIGN KEY (purchase_id) REFERENCES purchases(purchase_id),
    FOREIGN KEY (supplier_id) REFERENCES suppliers(supplier_id)
);
CREATE INDEX IF NOT EXISTS idx_batches_medicine ON batches(medicine_id);
CREATE INDEX IF NOT EXISTS idx_batches_expiry ON batches(expiry_date);
CREATE INDEX IF NOT EXISTS idx_batches_location ON batches(rack, box);
CREATE INDEX IF NOT EXISTS idx_batches_supplier ON batches(supplier_id);

/* -------- purchase_items -------- */
CREATE TABLE IF NOT EXISTS purchase_items (
    item_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    purchase_id    INTEGER NOT NULL,
    medicine_id    INTEGER NOT NULL,
    batch_id       INTEGER NOT NULL,
    quantity       INTEGER NOT NULL CHECK (quantity > 0),
    free_quantity  INTEGER NOT NULL DEFAULT 0 CHECK (free_quantity >= 0),
    purchase_price NUMERIC NOT NULL,
    mrp            NUMERIC NOT NULL,
    selling_price  NUMERIC NOT NULL,
    gst_rate       NUMERIC NOT NULL,
    cgst           NUMERIC NOT NULL DEFAULT 0,
    sgst           NUMERIC NOT NULL DEFAULT 0,
    total_gst      NUMERIC NOT NULL DEFAULT 0,
    total          NUMERIC NOT NULL,
    FOREIGN KEY (purchase_id) REFERENCES purchases(purchase_id) ON DELETE CASCADE,
    FOREIGN KEY (medicine_id) REFERENCES medicines(medicine_id),
    FOREIGN KEY (batch_id)    REFERENCES batches(batch_id)
);
CREATE INDEX IF NOT EXISTS idx_purchase_items_purchase ON purchase_items(purchase_id);

/* ======================== SALES ======================== */

/* -------- bills -------- */
CREATE TABLE IF NOT EXISTS bills (
    bill_id         INTEGER PRIMARY KEY AUTOINCREMENT,
    bill_number     TEXT NOT NULL UNIQUE,
    bill_date       TEXT NOT NULL DEFAULT (datetime('now','localtime')),
    customer_id     INTEGER,
    customer_name   TEXT,
    doctor_name     TEXT,
    user_id         INTEGER NOT NULL,
    subtotal        NUMERIC NOT NULL DEFAULT 0,
    discount_type   TEXT CHECK (discount_type IN ('PERCENTAGE','FLAT')),
    discount_value  NUMERIC NOT NULL DEFAULT 0,
    discount_amount NUMERIC NOT NULL DEFAULT 0,
    taxable_total   NUMERIC NOT NULL DEFAULT 0,
    total_cgst      NUMERIC NOT NULL DEFAULT 0,
    total_sgst      NUMERIC NOT NULL DEFAULT 0,
    total_gst       NUMERIC NOT NULL DEFAULT 0,
    round_off       NUMERIC NOT NULL DEFAULT 0,
    grand_total     NUMERIC NOT NULL DEFAULT 0,
    payment_mode    TEXT NOT NULL CHECK (payment_mode IN ('CASH','ONLINE','CREDIT','SPLIT')),
    cash_amount     NUMERIC NOT NULL DEFAULT 0,
    online_amount   NUMERIC NOT NULL DEFAULT 0,
    credit_amount   NUMERIC NOT NULL DEFAULT 0,
    status          TEXT NOT NULL DEFAULT 'COMPLETED' CHECK (status IN ('COMPLETED','CANCELLED','RETURNED')),
    notes           TEXT,
    total_items     INTEGER NOT NULL DEFAULT 0,
    created_at      TEXT NOT NULL DEFAULT (datetime('now','localtime')),
    updated_at      TEXT NOT NULL DEFAULT (datetime('now','localtime')),
    FOREIGN KEY (customer_id) REFERENCES customers(customer_id),
    FOREIGN KEY (user_id)     REFERENCES users(user_id)
);
CREATE INDEX IF NOT EXISTS idx_bills_date ON bills(bill_date);
CREATE INDEX IF NOT EXISTS idx_bills_customer ON bills(customer_id);
CREATE INDEX IF NOT EXISTS idx_bills_status ON bills(status);

/* -------- bill_items (price/GST snapshot, immutable once saved) -------- */
CREATE TABLE IF NOT EXISTS bill_items (
    item_id         INTEGER PRIMARY KEY AUTOINCREMENT,
    bill_id         INTEGER NOT NULL,
    batch_id        INTEGER NOT NULL,
    medicine_id     INTEGER NOT NULL,
    medicine_name   TEXT NOT NULL,
    hsn_code        TEXT NOT NULL,
    batch_number    TEXT NOT NULL,
    expiry_date     DATE NOT NULL,
    rack            TEXT,
    box             TEXT,
    quantity        INTEGER NOT NULL CHECK (quantity > 0),
    unit_price      NUMERIC NOT NULL,
    price_type      TEXT NOT NULL CHECK (price_type IN ('INCLUSIVE','EXCLUSIVE')),
    discount_type   TEXT CHECK (discount_type IN ('PERCENTAGE','FLAT')),
    discount_value  NUMERIC NOT NULL DEFAULT 0,
    discount_amount NUMERIC NOT NULL DEFAULT 0,
    taxable_value   NUMERIC NOT NULL,
    gst_rate        NUMERIC NOT NULL,
    cgst            NUMERIC NOT NULL DEFAULT 0,
    sgst            NUMERIC NOT NULL DEFAULT 0,
    total_gst       NUMERIC NOT NULL DEFAULT 0,
    total           NUMERIC NOT NULL,
    created_at      TEXT NOT NULL DEFAULT (datetime('now','localtime')),
    FOREIGN KEY (bill_id)     REFERENCES bills(bill_id) ON DELETE CASCADE,
    FOREIGN KEY (batch_id)    REFERENCES batches(batch_id),
    FOREIGN KEY (medicine_id) REFERENCES medicines(medicine_id)
);
CREATE INDEX IF NOT EXISTS idx_bill_items_bill ON bill_items(bill_id);
CREATE INDEX IF NOT EXISTS idx_bill_items_batch ON bill_items(batch_id);

DROP TRIGGER IF EXISTS trg_bill_items_immutable;
CREATE TRIGGER trg_bill_items_immutable
BEFORE UPDATE OF quantity, unit_price, gst_rate, taxable_value, total ON bill_items
BEGIN
    SELECT RAISE(ABORT, 'bill items are immutable');
END;

/* -------- scheduled_medicine_records (Schedule H/H1 register) -------- */
CREATE TABLE IF NOT EXISTS scheduled_medicine_records (
    record_id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    bill_id                    INTEGER NOT NULL,
    bill_item_id               INTEGER NOT NULL,
    medicine_id                INTEGER NOT NULL,
    batch_id                   INTEGER NOT NULL,
    patient_name               TEXT NOT NULL,
    patient_age                INTEGER NOT NULL CHECK (patient_age > 0),
    patient_gender             TEXT NOT NULL CHECK (patient_gender IN ('M','F','O')),
    patient_phone              TEXT,
    patient_address            TEXT,
    doctor_name                TEXT,
    doctor_registration_number TEXT,
    clinic_hospital_name       TEXT,
    prescription_number        TEXT,
    prescription_date          TEXT,
    quantity                   INTEGER NOT NULL,
    created_at                 TEXT NOT NULL DEFAULT (datetime('now','localtime')),
    FOREIGN KEY (bill_id)      REFERENCES bills(bill_id),
    FOREIGN KEY (bill_item_id) REFERENCES bill_items(item_id),
    FOREIGN KEY (medicine_id)  REFERENCES medicines(medicine_id),
    FOREIGN KEY (batch_id)     REFERENCES batches(batch_id)
);
CREATE INDEX IF NOT EXISTS idx_scheduled_bill ON scheduled_medicine_records(bill_id);
CREATE INDEX IF NOT EXISTS idx_scheduled_date ON scheduled_medicine_records(created_at);

/* -------- running_bills (sold before stock was entered) -------- */
CREATE TABLE IF NOT EXISTS running_bills (
    running_bill_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    bill_id            INTEGER NOT NULL,
    bill_item_id       INTEGER,
    medicine_name      TEXT NOT NULL,
    quantity           INTEGER NOT NULL CHECK (quantity > 0),
    unit_price         NUMERIC NOT NULL CHECK (unit_price >= 0),
    total_amount       NUMERIC NOT NULL,
    gst_rate           NUMERIC NOT NULL DEFAULT 0,
    hsn_code           TEXT NOT NULL DEFAULT '3004',
    notes              TEXT,
    user_id            INTEGER NOT NULL,
    status             TEXT NOT NULL DEFAULT 'PENDING' CHECK (status IN ('PENDING','STOCKED','CANCELLED')),
    linked_batch_id    INTEGER,
    linked_medicine_id INTEGER,
    stocked_at         TEXT,
    stocked_by         INTEGER,
    created_at         TEXT NOT NULL DEFAULT (datetime('now','localtime')),
    updated_at         TEXT NOT NULL DEFAULT (datetime('now','localtime')),
    FOREIGN KEY (bill_id)            REFERENCES bills(bill_id),
    FOREIGN KEY (bill_item_id)       REFERENCES bill_items(item_id),
    FOREIGN KEY (linked_batch_id)    REFERENCES batches(batch_id),
    FOREIGN KEY (linked_medicine_id) REFERENCES medicines(medicine_id)
);
CREATE INDEX IF NOT EXISTS idx_running_bills_status ON running_bills(status);

/* ======================== CREDIT LEDGER ======================== */

/* -------- credits (append-only) -------- */
CREATE TABLE IF NOT EXISTS credits (
    credit_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    customer_id      INTEGER NOT NULL,
    bill_id          INTEGER,
    transaction_type TEXT NOT NULL CHECK (transaction_type IN ('SALE','PAYMENT','ADJUSTMENT','RETURN')),
    amount           NUMERIC NOT NULL CHECK (amount > 0),
    balance_after    NUMERIC NOT NULL,
    payment_mode     TEXT,
    reference        TEXT,
    notes            TEXT,
    user_id          INTEGER NOT NULL,
    created_at       TEXT NOT NULL DEFAULT (datetime('now','localtime')),
    FOREIGN KEY (customer_id) REFERENCES customers(customer_id),
    FOREIGN KEY (bill_id)     REFERENCES bills(bill_id),
    FOREIGN KEY (user_id)     REFERENCES users(user_id)
);
CREATE INDEX IF NOT EXISTS idx_credits_customer ON credits(customer_id);

DROP TRIGGER IF EXISTS trg_credits_no_update;
CREATE TRIGGER trg_credits_no_update
BEFORE UPDATE ON credits
BEGIN
    SELECT RAISE(ABORT, 'credit ledger rows are immutable');
END;

DROP TRIGGER IF EXISTS trg_credits_no_delete;
CREATE TRIGGER trg_credits_no_delete
BEFORE DELETE ON credits
BEGIN
    SELECT RAISE(ABORT, 'credit ledger rows are immutable');
END;

/* ======================== RETURNS ======================== */

/* -------- sales_returns -------- */
CREATE TABLE IF NOT EXISTS sales_returns (
    return_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    return_number TEXT NOT NULL UNIQUE,
    return_date   TEXT NOT NULL DEFAULT (datetime('now','localtime')),
    bill_id       INTEGER NOT NULL,
    customer_id   INTEGER,
    user_id       INTEGER NOT NULL,
    reason        TEXT,
    refund_mode   TEXT NOT NULL CHECK (refund_mode IN ('CASH','CREDIT_NOTE','ADJUSTMENT')),
    total_amount  NUMERIC NOT NULL DEFAULT 0,
    total_gst     NUMERIC NOT NULL DEFAULT 0,
    status        TEXT NOT NULL DEFAULT 'COMPLETED',
    notes         TEXT,
    FOREIGN KEY (bill_id)     REFERENCES bills(bill_id),
    FOREIGN KEY (customer_id) REFERENCES customers(customer_id),
    FOREIGN KEY (user_id)     REFERENCES users(user_id)
);
CREATE INDEX IF NOT EXISTS idx_sales_returns_bill ON sales_returns(bill_id);

CREATE TABLE IF NOT EXISTS sales_return_items (
    item_id       INTEGER PRIMARY KEY AUTOINCREMENT,
    return_id     INTEGER NOT NULL,
    bill_item_id  INTEGER NOT NULL,
    batch_id      INTEGER NOT NULL,
    quantity      INTEGER NOT NULL CHECK (quantity > 0),
    unit_price    NUMERIC NOT NULL,
    gst_rate      NUMERIC NOT NULL,
    taxable_value NUMERIC NOT NULL DEFAULT 0,
    cgst          NUMERIC NOT NULL DEFAULT 0,
    sgst          NUMERIC NOT NULL DEFAULT 0,
    total         NUMERIC NOT NULL,
    FOREIGN KEY (return_id)    REFERENCES sales_returns(return_id) ON DELETE CASCADE,
    FOREIGN KEY (bill_item_id) REFERENCES bill_items(item_id),
    FOREIGN KEY (batch_id)     REFERENCES batches(batch_id)
);
CREATE INDEX IF NOT EXISTS idx_sales_return_items_bill_item ON sales_return_items(bill_item_id);

/* -------- supplier_returns -------- */
CREATE TABLE IF NOT EXISTS supplier_returns (
    return_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    return_number TEXT NOT NULL UNIQUE,
    return_date   TEXT NOT NULL DEFAULT (datetime('now','localtime')),
    supplier_id   INTEGER NOT NULL,
    user_id       INTEGER NOT NULL,
    reason        TEXT NOT NULL CHECK (reason IN ('EXPIRY','DAMAGE','OVERSTOCK','OTHER')),
    total_amount  NUMERIC NOT NULL DEFAULT 0,
    total_gst     NUMERIC NOT NULL DEFAULT 0,
    status        TEXT NOT NULL DEFAULT 'PENDING' CHECK (status IN ('PENDING','APPROVED','COMPLETED','REJECTED')),
    notes         TEXT,
    updated_at    TEXT NOT NULL DEFAULT (datetime('now','localtime')),
    FOREIGN KEY (supplier_id) REFERENCES suppliers(supplier_id),
    FOREIGN KEY (user_id)     REFERENCES users(user_id)
);
CREATE INDEX IF NOT EXISTS idx_supplier_returns_supplier ON supplier_returns(supplier_id);

CREATE TABLE IF NOT EXISTS supplier_return_items (
    item_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    return_id   INTEGER NOT NULL,
    batch_id    INTEGER NOT NULL,
    medicine_id INTEGER NOT NULL,
    quantity    INTEGER NOT NULL CHECK (quantity > 0),
    unit_price  NUMERIC NOT NULL,
    gst_rate    NUMERIC NOT NULL,
    cgst        NUMERIC NOT NULL DEFAULT 0,
    sgst        NUMERIC NOT NULL DEFAULT 0,
    total       NUMERIC NOT NULL,
    FOREIGN KEY (return_id)   REFERENCES supplier_returns(return_id) ON DELETE CASCADE,
    FOREIGN KEY (batch_id)    REFERENCES batches(batch_id),
    FOREIGN KEY (medicine_id) REFERENCES medicines(medicine_id)
);

/* ======================== SYSTEM ======================== */

CREATE TABLE IF NOT EXISTS audit_log (
    audit_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id     INTEGER,
    action      TEXT NOT NULL,
    entity_type TEXT NOT NULL,
    entity_id   INTEGER,
    old_value   TEXT,
    new_value   TEXT,
    description TEXT,
    created_at  TEXT NOT NULL DEFAULT (datetime('now','localtime'))
);
CREATE INDEX IF NOT EXISTS idx_audit_entity ON audit_log(entity_type, entity_id);

CREATE TABLE IF NOT EXISTS settings (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    category    TEXT NOT NULL DEFAULT 'general',
    description TEXT,
    updated_at  TEXT NOT NULL DEFAULT (datetime('now','localtime'))
);

/* single-row bill counter, reset per financial year */
CREATE TABLE IF NOT EXISTS bill_sequence (
    id             INTEGER PRIMARY KEY CHECK (id = 1),
    prefix         TEXT NOT NULL DEFAULT 'INV',
    current_number INTEGER NOT NULL DEFAULT 0,
    financial_year TEXT NOT NULL,
    updated_at     TEXT NOT NULL DEFAULT (datetime('now','localtime'))
);
"""


def init_schema(conn: sqlite3.Connection) -> None:
    """Apply the (idempotent) schema on an open connection."""
    conn.executescript(SQL)
    conn.commit()
