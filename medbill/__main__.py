# medbill/__main__.py
"""
`python -m medbill [db_path]`: create or upgrade the database and print the
stock alerts a shop opens the day with.
"""
from __future__ import annotations

import logging
import sys

from .app_context import AppContext
from .constants import APP_NAME

_log = logging.getLogger("medbill.main")


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    ctx = AppContext.open(argv[0] if argv else None)
    try:
        expiring = ctx.inventory.expiring_items()
        low = ctx.inventory.low_stock_items()
        pending = ctx.running_bills.pending_count()
        _log.info("%s ready: %d expiring batches, %d low-stock medicines, %d pending running bill lines",
                  APP_NAME, len(expiring), len(low), pending)
        for row in expiring:
            print(f"EXPIRING  {row['medicine_name']:<30} {row['batch_number']:<12} {row['expiry_date']}  qty {row['quantity']}")
        for row in low:
            print(f"LOW STOCK {row['medicine_name']:<30} on hand {row['total_quantity']} (reorder at {row['reorder_level']})")
    finally:
        ctx.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
