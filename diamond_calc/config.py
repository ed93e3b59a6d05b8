import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]

# Used when GOOGLE_SHEET_ID is not set. The sheet must be published to the web
# with the "rates", "stones" and "slabs" tabs.
FALLBACK_SHEET_ID = "1KWHxzODjoqEDYpXz6FqhPzggpM2YvsRLVwgwQ-Yfgv0"
SHEET_TABS = ("rates", "stones", "slabs")


@dataclass(frozen=True)
class AppConfig:
    google_sheet_id: str
    price_sheet_provider: str
    price_sheet_dir: Path
    request_timeout_seconds: float
    data_dir: Path
    log_level: str

    @property
    def db_path(self) -> Path:
        return self.data_dir / "estimates.db"

    @property
    def image_dir(self) -> Path:
        return self.data_dir / "images"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def load_config() -> AppConfig:
    data_dir = Path(os.getenv("DATA_DIR", "").strip() or ROOT_DIR / "data")
    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    return AppConfig(
        google_sheet_id=os.getenv("GOOGLE_SHEET_ID", "").strip() or FALLBACK_SHEET_ID,
        price_sheet_provider=os.getenv("PRICE_SHEET_PROVIDER", "google").strip().lower() or "google",
        price_sheet_dir=Path(os.getenv("PRICE_SHEET_DIR", "").strip() or data_dir / "sheet"),
        request_timeout_seconds=_env_float("SHEET_REQUEST_TIMEOUT_SECONDS", 10.0),
        data_dir=data_dir,
        log_level=log_level if log_level in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
    )


@lru_cache()
def get_config() -> AppConfig:
    """Configuration read once from the environment (after .env is loaded)."""
    return load_config()
