"""
Central configuration for the ConstructAI BOQ backend.

Single source of truth for financial defaults used by the valuation,
certificate and rate-analysis engines, plus the environment-driven runtime
settings read by main.py and the report engine.

Covers:
  - Markup / certificate percentage defaults (contingency, VAT, retention)
  - Rate build-up defaults (overhead %, profit %)
  - Heuristic cost split used when a group has no rate build-up
  - Currency display names for the amount-in-words renderer
  - Unit-system labels for takeoff sheet headers
  - Env settings: LOG_LEVEL, LOG_FORMAT, CORS_ORIGINS, DOWNLOAD_DIR
"""
import os

from dotenv import load_dotenv

load_dotenv()


# ---------------------------------------------------------------------------
# Valuation / certificate defaults (percentages, not fractions)
# ---------------------------------------------------------------------------
DEFAULT_CONTINGENCY_PCT: float = 10.0
DEFAULT_VAT_PCT: float = 15.0
DEFAULT_RETENTION_PCT: float = 5.0
DEFAULT_ADVANCE_RECOVERY: float = 0.0
DEFAULT_PREVIOUS_PAYMENTS: float = 0.0
DEFAULT_CURRENCY: str = "ETB"

# ---------------------------------------------------------------------------
# Rate build-up defaults
# ---------------------------------------------------------------------------
DEFAULT_OVERHEAD_PCT: float = 15.0
DEFAULT_PROFIT_PCT: float = 10.0

# ---------------------------------------------------------------------------
# Heuristic split of total × rate when no rate build-up exists.
# Overhead is zero here; the margin share lands in the profit bucket.
# ---------------------------------------------------------------------------
HEURISTIC_SPLIT: dict[str, float] = {
    "materials": 0.50,
    "labor": 0.30,
    "plant": 0.10,
    "overhead": 0.00,
    "profit": 0.10,
}

# ---------------------------------------------------------------------------
# Display tables
# ---------------------------------------------------------------------------
CURRENCY_NAMES: dict[str, str] = {
    "ETB": "Birr",
    "USD": "Dollars",
}
CENT_NAME: str = "Cents"

UNIT_LABELS: dict[str, dict[str, str]] = {
    "metric": {"dimension": "m", "quantity": "m2/m3"},
    "imperial": {"dimension": "ft", "quantity": "sq.ft/cu.yd"},
}

# Sort position for a category that never appeared in the item list
UNSEEN_CATEGORY_ORDER: int = 99999

# Credits charged to unlock a project for export
UNLOCK_COST_CREDITS: int = 1

# ---------------------------------------------------------------------------
# Runtime settings (environment)
# ---------------------------------------------------------------------------
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON: bool = os.getenv("LOG_FORMAT", "json").lower() != "text"
DOWNLOAD_DIR: str = os.getenv("DOWNLOAD_DIR", "/tmp/constructai-downloads")

_cors_default = "http://localhost:3000,http://localhost:5173"
CORS_ORIGINS: list[str] = [
    o.strip() for o in os.getenv("CORS_ORIGINS", _cors_default).split(",") if o.strip()
]

APP_VERSION: str = "1.0.0"
