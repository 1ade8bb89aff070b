from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterable

from dotenv import load_dotenv

ENV_PREFIX = "POS_FISCAL_"


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ClientConfig:
    env_name: str
    api_base_url: str
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 15.0
    fiscal_timeout_seconds: float = 30.0
    retries: int = 2
    retry_backoff_seconds: float = 0.3
    max_connections: int = 10
    verify_ssl: bool = True
    app_name: str = "pos-fiscal"
    point_of_sale: int = 1
    issuer_tax_id: str | None = None
    min_password_length: int = 6
    pin_length: int = 4

    @property
    def normalized_env(self) -> str:
        return self.env_name.lower().strip()


def _env(name: str, default: str | None = None) -> str | None:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def _require(values: dict[str, str | None], required: Iterable[str]) -> None:
    missing = [key for key in required if not values.get(key)]
    if missing:
        raise ConfigError(f"Missing required config values: {', '.join(missing)}")


def _coerce_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _read_float(name: str, default: str) -> float:
    raw = _env(name, default)
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {ENV_PREFIX}{name}: expected a number, got {raw!r}") from exc


def _read_int(name: str, default: str) -> int:
    raw = _env(name, default)
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {ENV_PREFIX}{name}: expected an integer, got {raw!r}") from exc


def _validate(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigError(message)


def load_config(env_file: str | None = None) -> ClientConfig:
    """Load config from environment with optional .env override."""
    load_dotenv(env_file)

    env_name = (_env("ENV") or "dev").strip()
    env_key = env_name.upper()

    api_base_url = (
        (_env(f"API_BASE_URL_{env_key}") or "").strip()
        or (_env("API_BASE_URL") or "").strip()
    )

    timeout_seconds = _read_float("TIMEOUT_SECONDS", "10")
    _validate(
        timeout_seconds > 0,
        f"Invalid {ENV_PREFIX}TIMEOUT_SECONDS: expected > 0, got {timeout_seconds}",
    )

    connect_timeout_seconds = _read_float("CONNECT_TIMEOUT_SECONDS", str(min(timeout_seconds, 5.0)))
    _validate(
        connect_timeout_seconds > 0,
        f"Invalid {ENV_PREFIX}CONNECT_TIMEOUT_SECONDS: expected > 0, got {connect_timeout_seconds}",
    )

    read_timeout_seconds = _read_float(
        "READ_TIMEOUT_SECONDS",
        str(max(timeout_seconds, connect_timeout_seconds)),
    )
    _validate(
        read_timeout_seconds > 0,
        f"Invalid {ENV_PREFIX}READ_TIMEOUT_SECONDS: expected > 0, got {read_timeout_seconds}",
    )

    # The fiscal call is never unbounded; a timeout surfaces as a connectivity failure.
    fiscal_timeout_seconds = _read_float("FISCAL_TIMEOUT_SECONDS", "30")
    _validate(
        fiscal_timeout_seconds > 0,
        f"Invalid {ENV_PREFIX}FISCAL_TIMEOUT_SECONDS: expected > 0, got {fiscal_timeout_seconds}",
    )

    retries = _read_int("RETRIES", "2")
    _validate(retries >= 0, f"Invalid {ENV_PREFIX}RETRIES: expected >= 0, got {retries}")

    retry_backoff_seconds = _read_float("RETRY_BACKOFF_SECONDS", "0.3")
    _validate(
        retry_backoff_seconds >= 0,
        f"Invalid {ENV_PREFIX}RETRY_BACKOFF_SECONDS: expected >= 0, got {retry_backoff_seconds}",
    )

    max_connections = _read_int("MAX_CONNECTIONS", "10")
    _validate(
        max_connections >= 1,
        f"Invalid {ENV_PREFIX}MAX_CONNECTIONS: expected >= 1, got {max_connections}",
    )

    point_of_sale = _read_int("POINT_OF_SALE", "1")
    _validate(point_of_sale >= 1, f"Invalid {ENV_PREFIX}POINT_OF_SALE: expected >= 1, got {point_of_sale}")

    min_password_length = _read_int("MIN_PASSWORD_LENGTH", "6")
    _validate(
        min_password_length >= 1,
        f"Invalid {ENV_PREFIX}MIN_PASSWORD_LENGTH: expected >= 1, got {min_password_length}",
    )

    pin_length = _read_int("PIN_LENGTH", "4")
    _validate(pin_length >= 4, f"Invalid {ENV_PREFIX}PIN_LENGTH: expected >= 4, got {pin_length}")

    issuer_tax_id = (_env("ISSUER_TAX_ID") or "").strip() or None
    if issuer_tax_id is not None:
        digits = issuer_tax_id.replace("-", "")
        _validate(
            digits.isdigit() and len(digits) == 11,
            f"Invalid {ENV_PREFIX}ISSUER_TAX_ID: expected an 11 digit CUIT, got {issuer_tax_id!r}",
        )
        issuer_tax_id = digits

    values = {f"{ENV_PREFIX}API_BASE_URL": api_base_url}
    _require(values, [f"{ENV_PREFIX}API_BASE_URL"])

    return ClientConfig(
        env_name=env_name,
        api_base_url=api_base_url.rstrip("/"),
        connect_timeout_seconds=connect_timeout_seconds,
        read_timeout_seconds=read_timeout_seconds,
        fiscal_timeout_seconds=fiscal_timeout_seconds,
        retries=retries,
        retry_backoff_seconds=retry_backoff_seconds,
        max_connections=max_connections,
        verify_ssl=_coerce_bool(_env("VERIFY_SSL"), True),
        app_name=(_env("APP_NAME") or "pos-fiscal").strip(),
        point_of_sale=point_of_sale,
        issuer_tax_id=issuer_tax_id,
        min_password_length=min_password_length,
        pin_length=pin_length,
    )
