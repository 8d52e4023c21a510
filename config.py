import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        locale: str,
        currency: str,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.locale = locale
        self.currency = currency
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("MOODLEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "moodledger.db"
    database_url = os.getenv("MOODLEDGER_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("MOODLEDGER_TIMEZONE", "Asia/Shanghai")
    locale = os.getenv("MOODLEDGER_LOCALE", "zh-CN")
    currency = os.getenv("MOODLEDGER_CURRENCY", "CNY").strip().upper()
    log_level = os.getenv("MOODLEDGER_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        locale=locale,
        currency=currency,
        log_level=log_level,
    )
