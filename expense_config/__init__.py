"""
Configuration for the expense system.

    from expense_config import load_settings, SettingsConfigProvider

    settings = load_settings()                 # YAML + environment
    provider = SettingsConfigProvider(session, settings.rates)
    provider.get_rate_per_km()
"""

from expense_config.provider import (
    ConfigProvider,
    SettingsConfigProvider,
    StaticConfigProvider,
)
from expense_config.settings import (
    AppSettings,
    DatabaseSettings,
    LedgerSettings,
    OracleSettings,
    RateDefaults,
    load_settings,
)

__all__ = [
    "AppSettings",
    "ConfigProvider",
    "DatabaseSettings",
    "LedgerSettings",
    "OracleSettings",
    "RateDefaults",
    "SettingsConfigProvider",
    "StaticConfigProvider",
    "load_settings",
]
