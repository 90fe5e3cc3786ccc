"""Environment-driven settings and logging setup."""

import logging
import os
from dataclasses import dataclass
from datetime import tzinfo
from pathlib import Path

from .clock import load_timezone
from .exceptions import ValidationError

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _env_file_locations() -> list[Path]:
    return [Path.cwd() / ".env", Path(__file__).resolve().parents[2] / ".env"]


def read_env_file(paths=None) -> dict[str, str]:
    """
    Return the ``KEY=value`` pairs of the first readable .env file.

    Blank lines, comments and lines without ``=`` are skipped; an ``export``
    prefix and surrounding quotes are dropped.
    """
    for env_path in paths if paths is not None else _env_file_locations():
        try:
            text = Path(env_path).read_text()
        except OSError:
            continue
        values: dict[str, str] = {}
        for line in (raw.strip() for raw in text.splitlines()):
            if line.startswith("export "):
                line = line[len("export ") :].lstrip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            values[key.strip()] = value.strip().strip('"').strip("'")
        return values
    return {}


def _default_db_url() -> str:
    default_path = Path.cwd() / "data" / "appointments.db"
    return f"sqlite:///{default_path}"


def _int_setting(env, name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValidationError(f"{name} must be an integer, got '{raw}'.") from exc
    if value <= 0:
        raise ValidationError(f"{name} must be positive, got {value}.")
    return value


def _float_setting(env, name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValidationError(f"{name} must be a number, got '{raw}'.") from exc
    if value <= 0:
        raise ValidationError(f"{name} must be positive, got {value}.")
    return value


def _bool_setting(env, name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ValidationError(f"{name} must be a boolean flag, got '{raw}'.")


@dataclass(frozen=True)
class Settings:
    database_url: str
    slot_minutes: int = 30
    timezone_name: str = "UTC"
    enforce_working_hours: bool = False
    store_timeout: float = 5.0
    log_level: str = "INFO"

    @property
    def timezone(self) -> tzinfo:
        return load_timezone(self.timezone_name)

    @classmethod
    def from_env(cls, env=None) -> "Settings":
        """
        Build settings from ``env``.

        Without an explicit mapping, the process environment is layered over
        the values of the local .env file.
        """
        if env is None:
            env = {**read_env_file(), **os.environ}
        settings = cls(
            database_url=env.get("APPOINTMENT_DB_URL") or _default_db_url(),
            slot_minutes=_int_setting(env, "APPOINTMENT_SLOT_MINUTES", 30),
            timezone_name=env.get("APPOINTMENT_TIMEZONE") or "UTC",
            enforce_working_hours=_bool_setting(env, "APPOINTMENT_ENFORCE_WORKING_HOURS", False),
            store_timeout=_float_setting(env, "APPOINTMENT_STORE_TIMEOUT", 5.0),
            log_level=(env.get("APPOINTMENT_LOG_LEVEL") or "INFO").upper(),
        )
        load_timezone(settings.timezone_name)
        if settings.log_level not in logging.getLevelNamesMapping():
            raise ValidationError(f"Unknown log level '{settings.log_level}'.")
        return settings


def configure_logging(level: str = "INFO") -> None:
    """Install a basic root handler for script and UI entry points."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
