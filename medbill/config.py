# medbill/config.py
import os
from pathlib import Path

from .constants import DB_FILE_NAME, LOG_FILE_NAME

# MEDBILL_DATA_DIR / MEDBILL_DB_PATH override the per-user defaults.
DATA_PATH = Path(os.environ.get("MEDBILL_DATA_DIR", Path.home() / ".medbill")).expanduser()
DB_PATH = Path(os.environ.get("MEDBILL_DB_PATH", DATA_PATH / DB_FILE_NAME)).expanduser()
LOG_PATH = DATA_PATH / "logs" / LOG_FILE_NAME
