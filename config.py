import logging
import logging.handlers
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _get_env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip() in {"1", "true", "True", "yes", "YES", "y"}


def _get_env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return int(val)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _get_env_float(name: str, default: float) -> float:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return float(val)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a float") from exc


@dataclass
class Config:
    alarms_path: Path
    fire_tolerance_seconds: float
    check_interval_ms: int
    default_snooze_min: int
    timezone_name: Optional[str]
    use_24h: bool
    debug: bool
    log_level: str


def load_config(env_path: Optional[Path] = None) -> Config:
    if env_path is None:
        env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    alarms_path = Path(os.getenv("ALARM_STORAGE_PATH", "data/alarms.json"))
    fire_tolerance_seconds = _get_env_float("ALARM_FIRE_TOLERANCE_SECONDS", 30.0)
    if fire_tolerance_seconds < 0:
        raise ValueError("ALARM_FIRE_TOLERANCE_SECONDS must not be negative")
    check_interval_ms = max(50, _get_env_int("ALARM_CHECK_INTERVAL_MS", 500))
    default_snooze_min = _get_env_int("ALARM_DEFAULT_SNOOZE_MIN", 10)
    if not 1 <= default_snooze_min <= 60:
        raise ValueError("ALARM_DEFAULT_SNOOZE_MIN must be between 1 and 60")
    timezone_name = os.getenv("ALARM_TIMEZONE") or None
    use_24h = _get_env_bool("ALARM_USE_24H", True)
    debug = _get_env_bool("DEBUG", False)
    log_level = "DEBUG" if debug else os.getenv("LOG_LEVEL", "INFO").upper()

    return Config(
        alarms_path=alarms_path,
        fire_tolerance_seconds=fire_tolerance_seconds,
        check_interval_ms=check_interval_ms,
        default_snooze_min=default_snooze_min,
        timezone_name=timezone_name,
        use_24h=use_24h,
        debug=debug,
        log_level=log_level,
    )


def setup_logging(log_level: str = "INFO", logs_dir: Path = Path("logs")) -> None:
    logs_dir.mkdir(parents=True, exist_ok=True)

    log_path = logs_dir / "alarmcore.log"
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        handlers=[file_handler, console_handler],
    )
