from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass(slots=True)
class Settings:
    api_base_url: str
    socket_url: str
    geocoder_url: str
    data_dir: Path
    db_path: Path
    log_file: Path | None = None
    app_name: str = "DelhiveryWay Customer"
    enable_google_oauth: bool = False
    enable_socket_notifications: bool = True
    default_delivery_fee: float = 30.0
    tax_percentage: float = 0.0
    api_timeout_sec: float = 60.0
    retry_attempts: int = 3
    retry_delay_sec: float = 1.0
    heartbeat_interval_sec: float = 25.0
    location_max_age_sec: float = 1800.0

    @classmethod
    def load(cls, base_dir: Path | None = None) -> Settings:
        load_dotenv(override=False)

        root_dir = (base_dir or Path.cwd()).resolve()
        data_dir = Path(os.getenv("SHOPPER_DATA_DIR", root_dir / "data")).expanduser().resolve()
        db_path = Path(os.getenv("SHOPPER_DB_PATH", data_dir / "shopper.sqlite")).expanduser().resolve()
        log_env = os.getenv("SHOPPER_LOG_FILE")
        log_file = Path(log_env).expanduser().resolve() if log_env else None

        retry_attempts = _env_int("SHOPPER_RETRY_ATTEMPTS", 3)
        if retry_attempts < 1:
            raise ValueError("SHOPPER_RETRY_ATTEMPTS must be at least 1")

        return cls(
            api_base_url=os.getenv("SHOPPER_API_URL", "http://localhost:5000/api").rstrip("/"),
            socket_url=os.getenv("SHOPPER_SOCKET_URL", "http://localhost:5000").rstrip("/"),
            geocoder_url=os.getenv(
                "SHOPPER_GEOCODER_URL", "https://nominatim.openstreetmap.org"
            ).rstrip("/"),
            data_dir=data_dir,
            db_path=db_path,
            log_file=log_file,
            app_name=os.getenv("SHOPPER_APP_NAME", "DelhiveryWay Customer"),
            enable_google_oauth=_env_flag("SHOPPER_ENABLE_GOOGLE_OAUTH", False),
            enable_socket_notifications=_env_flag("SHOPPER_ENABLE_SOCKET_NOTIFICATIONS", True),
            default_delivery_fee=_env_float("SHOPPER_DEFAULT_DELIVERY_FEE", 30.0),
            tax_percentage=_env_float("SHOPPER_TAX_PERCENTAGE", 0.0),
            api_timeout_sec=_env_float("SHOPPER_API_TIMEOUT", 60.0),
            retry_attempts=retry_attempts,
            retry_delay_sec=_env_float("SHOPPER_RETRY_DELAY", 1.0),
        )

    def ensure_dirs(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        if self.log_file:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
