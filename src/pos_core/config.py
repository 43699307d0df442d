"""
Ledger configuration, read once from environment variables.

Pricing rates are Decimals so that no float ever reaches a money
calculation; a malformed rate stops the service at startup.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal

WEAK_SECRETS = frozenset({"", "change-me-please", "super-secret-change-me"})

# Rates that must parse as non-negative decimals when set.
RATE_VARIABLES = (
    "TAX_RATE",
    "SERVICE_CHARGE_RATE",
    "STATUTORY_DISCOUNT_RATE",
    "LOYALTY_POINT_VALUE",
    "LOYALTY_PESOS_PER_POINT",
    "CURRENCY_QUANTUM",
    "PAYMENT_TOLERANCE",
)


@dataclass
class AppConfig:
    app_name: str
    # PostgreSQL (ignored when DATABASE_URL is set)
    db_host: str
    db_port: int
    db_user: str
    db_password: str
    db_name: str
    db_sslmode: str
    # Service
    secret_key: str
    log_level: str
    restaurant_name: str
    debug_mode: bool
    flask_debug: bool
    # Pricing
    tax_rate: Decimal
    service_charge_rate: Decimal
    statutory_discount_rate: Decimal
    loyalty_point_value: Decimal
    loyalty_pesos_per_point: Decimal
    currency_quantum: Decimal
    payment_tolerance: Decimal
    # Roles allowed to void orders and issue refunds
    void_authorized_roles: frozenset[str] = field(default_factory=lambda: frozenset({"MANAGER"}))
    jwt_access_token_expires_hours: int = 12

    @property
    def sqlalchemy_uri(self) -> str:
        """psycopg2 URL assembled from the POSTGRES_* settings."""
        query = f"?sslmode={self.db_sslmode}" if self.db_sslmode else ""
        return (
            f"postgresql+psycopg2://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}{query}"
        )


def _env(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def read_bool(name: str, default: str = "false") -> bool:
    return _env(name, default).strip().lower() in {"1", "true", "yes", "on"}


def read_decimal(name: str, default: str) -> Decimal:
    raw = _env(name, default)
    try:
        return Decimal(raw.strip())
    except ArithmeticError as exc:
        raise RuntimeError(f"{name} must be numeric, got: {raw}") from exc


def _read_roles(name: str, default: str) -> frozenset[str]:
    return frozenset(
        role.strip().upper() for role in _env(name, default).split(",") if role.strip()
    )


def validate_required_env_vars(skip_in_debug: bool = False) -> None:
    """
    Stop startup when the environment cannot run a ledger safely.

    Checks the signing secret, the database location, every pricing rate and
    the token lifetime, then raises one RuntimeError listing all problems.
    With ``skip_in_debug`` the check is bypassed while DEBUG_MODE is on.
    """
    if skip_in_debug and read_bool("DEBUG_MODE"):
        return

    problems: list[str] = []

    if os.getenv("SECRET_KEY", "") in WEAK_SECRETS:
        problems.append("SECRET_KEY is missing or still set to a placeholder")

    if not os.getenv("DATABASE_URL"):
        problems.extend(
            f"{name} is required when DATABASE_URL is not set"
            for name in ("POSTGRES_HOST", "POSTGRES_USER", "POSTGRES_PASSWORD", "POSTGRES_DB")
            if not os.getenv(name)
        )

    for name in RATE_VARIABLES:
        raw = os.getenv(name)
        if raw is None:
            continue
        try:
            if Decimal(raw) < 0:
                problems.append(f"{name} must not be negative, got: {raw}")
        except ArithmeticError:
            problems.append(f"{name} must be numeric, got: {raw}")

    hours = os.getenv("JWT_ACCESS_TOKEN_EXPIRES_HOURS")
    if hours and not hours.strip().isdigit():
        problems.append(f"JWT_ACCESS_TOKEN_EXPIRES_HOURS must be a whole number, got: {hours}")

    if problems:
        listing = "\n".join(f"  - {problem}" for problem in problems)
        raise RuntimeError(f"Ledger configuration is invalid:\n{listing}")


def load_config(app_name: str) -> AppConfig:
    """Build the config for ``app_name`` from the environment, with local defaults."""
    return AppConfig(
        app_name=app_name,
        db_host=_env("POSTGRES_HOST", "localhost"),
        db_port=int(_env("POSTGRES_PORT", "5432")),
        db_user=_env("POSTGRES_USER", "pos"),
        db_password=_env("POSTGRES_PASSWORD", "pos"),
        db_name=_env("POSTGRES_DB", "pos_ledger"),
        db_sslmode=_env("POSTGRES_SSLMODE", "disable"),
        secret_key=_env("SECRET_KEY", "super-secret-change-me"),
        log_level=_env("LOG_LEVEL", "INFO"),
        restaurant_name=_env("RESTAURANT_NAME", "pos-ledger"),
        debug_mode=read_bool("DEBUG_MODE"),
        flask_debug=read_bool("FLASK_DEBUG"),
        tax_rate=read_decimal("TAX_RATE", "0.12"),
        service_charge_rate=read_decimal("SERVICE_CHARGE_RATE", "0.10"),
        statutory_discount_rate=read_decimal("STATUTORY_DISCOUNT_RATE", "0.20"),
        loyalty_point_value=read_decimal("LOYALTY_POINT_VALUE", "0.10"),
        loyalty_pesos_per_point=read_decimal("LOYALTY_PESOS_PER_POINT", "10"),
        currency_quantum=read_decimal("CURRENCY_QUANTUM", "1"),
        payment_tolerance=read_decimal("PAYMENT_TOLERANCE", "0.01"),
        void_authorized_roles=_read_roles("VOID_AUTHORIZED_ROLES", "MANAGER"),
        jwt_access_token_expires_hours=int(_env("JWT_ACCESS_TOKEN_EXPIRES_HOURS", "12")),
    )


_active_config: AppConfig | None = None


def get_config() -> AppConfig:
    """Process-wide config, loaded from the environment on first use."""
    global _active_config
    if _active_config is None:
        _active_config = load_config("pos-ledger")
    return _active_config


def set_config(config: AppConfig | None) -> None:
    """Install ``config`` as the process-wide config; None forces a reload."""
    global _active_config
    _active_config = config
