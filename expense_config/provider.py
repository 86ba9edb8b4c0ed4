"""
Runtime rate lookup (``expense_config.provider``).

``ConfigProvider`` is the capability the services depend on for the
per-kilometer rate and the machine-visit charge.  ``SettingsConfigProvider``
reads the ``settings`` table and falls back to the configured defaults when a
key is unset; ``StaticConfigProvider`` serves fixed values (tests, scripts).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from expense_config.settings import RateDefaults
from expense_kernel.domain.values import as_decimal
from expense_kernel.exceptions import InvalidAmountError, UnknownSettingError
from expense_kernel.logging_config import get_logger
from expense_kernel.models.setting import COST_PER_MACHINE_VISIT, RATE_PER_KM, Setting

logger = get_logger("config.provider")

KNOWN_SETTINGS = frozenset({RATE_PER_KM, COST_PER_MACHINE_VISIT})


class ConfigProvider(ABC):
    @abstractmethod
    def get_rate_per_km(self) -> Decimal:
        """Reimbursement rate per kilometer."""

    @abstractmethod
    def get_cost_per_machine_visit(self) -> Decimal:
        """Flat charge per machine on machine visits."""


class StaticConfigProvider(ConfigProvider):
    def __init__(self, defaults: RateDefaults | None = None):
        self._defaults = defaults or RateDefaults()

    def get_rate_per_km(self) -> Decimal:
        return self._defaults.rate_per_km

    def get_cost_per_machine_visit(self) -> Decimal:
        return self._defaults.cost_per_machine_visit


class SettingsConfigProvider(ConfigProvider):
    """
    Database-backed provider over the ``settings`` table.

    Contract:
        Reads within the caller's session; ``set_setting`` flushes but never
        commits.

    Guarantees:
        - A missing or unparseable stored value yields the configured
          default and a warning log, never an exception.
    """

    def __init__(self, session: Session, defaults: RateDefaults | None = None):
        self.session = session
        self._defaults = defaults or RateDefaults()

    def _read(self, key: str, default: Decimal) -> Decimal:
        row = self.session.execute(
            select(Setting.value).where(Setting.key == key)
        ).scalar_one_or_none()
        if row is None:
            return default
        value = as_decimal(row)
        if value is None:
            logger.warning(
                "setting_unparseable",
                extra={"key": key, "stored_value": row, "default": default},
            )
            return default
        return value

    def get_rate_per_km(self) -> Decimal:
        return self._read(RATE_PER_KM, self._defaults.rate_per_km)

    def get_cost_per_machine_visit(self) -> Decimal:
        return self._read(COST_PER_MACHINE_VISIT, self._defaults.cost_per_machine_visit)

    def set_setting(
        self,
        key: str,
        value,
        actor_id: UUID | None = None,
        description: str | None = None,
    ) -> Decimal:
        """Insert or update a numeric setting; returns the stored value."""
        if key not in KNOWN_SETTINGS:
            raise UnknownSettingError(key)
        amount = as_decimal(value)
        if amount is None or amount < 0 or (key == RATE_PER_KM and amount == 0):
            raise InvalidAmountError(key, value)

        setting = self.session.execute(
            select(Setting).where(Setting.key == key)
        ).scalar_one_or_none()
        previous = setting.value if setting is not None else None
        if setting is None:
            setting = Setting(key=key, value=str(amount), description=description)
            self.session.add(setting)
        else:
            setting.value = str(amount)
            if description is not None:
                setting.description = description
        setting.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "setting_updated",
            extra={"key": key, "previous": previous, "current": str(amount)},
        )
        return amount
