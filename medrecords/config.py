import os

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_PATH = os.getenv("DATABASE_PATH", "medrecords.db")

# Optional sqlite:/// URL; takes precedence over DATABASE_PATH when set
DATABASE_URL = os.getenv("DATABASE_URL", "")

SEED_DEMO_PATIENTS = os.getenv("SEED_DEMO_PATIENTS", "false").lower() in ("1", "true", "yes", "on")

# Pagination
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "10"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))

# Query diagnostics
OPTIMIZE_RESULT_LIMIT = int(os.getenv("OPTIMIZE_RESULT_LIMIT", "10"))
SLOW_QUERY_MILLIS = float(os.getenv("SLOW_QUERY_MILLIS", "100"))
