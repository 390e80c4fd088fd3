"""Runtime configuration loaded from the environment."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(override=True)

DEFAULT_DB_PATH = Path(__file__).parent / "reminders" / "adherence.db"

DB_PATH = Path(os.environ.get("ADHERENCE_DB_PATH", DEFAULT_DB_PATH))

# Minutes before scheduled_for at which a dose may be confirmed
GRACE_PERIOD_MINUTES = int(os.environ.get("GRACE_PERIOD_MINUTES", "5"))

# Pending reminders older than this are reported (and swept) as missed
MISSED_AFTER_MINUTES = int(os.environ.get("MISSED_AFTER_MINUTES", "120"))

SYNC_HORIZON_DAYS = int(os.environ.get("SYNC_HORIZON_DAYS", "30"))

DEFAULT_SNOOZE_MINUTES = int(os.environ.get("DEFAULT_SNOOZE_MINUTES", "5"))
MIN_SNOOZE_MINUTES = 1
MAX_SNOOZE_MINUTES = 60

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
