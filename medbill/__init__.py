"""
MedBill: pharmacy billing, batch inventory, customer credit and returns
on top of a local SQLite store.
"""

__version__ = "1.0.0"
