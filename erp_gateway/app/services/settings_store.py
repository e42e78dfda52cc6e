"""
System settings kept in the ``system_settings`` key/value table.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ValidationError as ModelValidationError

from erp_core.cancellation import CancellationToken
from erp_core.errors import ValidationError
from erp_core.logging import get_logger
from erp_core.retry import ResilientCaller, is_schema_cache_error

from ..backend.client import BackendClient


SETTINGS_TABLE = "system_settings"
SETTINGS_CACHE_KEY = "system_settings"


class GeneralSettings(BaseModel):
    company_name: str = "Ternakmart"
    currency: Literal["USD", "IDR", "EUR"] = "IDR"
    timezone: str = "Asia/Jakarta"


class NotificationSettings(BaseModel):
    order_updates: bool = True
    low_stock_alerts: bool = True


def _merge(model, current: BaseModel, changes: Dict[str, Any]):
    try:
        return model(**{**current.model_dump(), **changes})
    except ModelValidationError as e:
        raise ValidationError("Invalid settings", details={"errors": e.errors(include_url=False, include_context=False)})


class SettingsService:
    """In-memory copy of the system settings, loaded once and written through."""

    def __init__(self,
                 backend: BackendClient,
                 caller: ResilientCaller,
                 max_retries: int = 3,
                 initial_delay: float = 1.0):
        self.backend = backend
        self.caller = caller
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.general = GeneralSettings()
        self.notifications = NotificationSettings()
        self.loading = False
        self.initialized = False
        self.logger = get_logger("gateway.settings")

    def snapshot(self) -> Dict[str, Any]:
        return {
            "general": self.general.model_dump(),
            "notifications": self.notifications.model_dump(),
            "initialized": self.initialized,
        }

    async def fetch_settings(self, signal: Optional[CancellationToken] = None) -> Dict[str, Any]:
        """Load settings, keeping defaults when the table is not reachable yet."""
        if self.loading or self.initialized:
            return self.snapshot()

        self.loading = True
        try:
            result = await self.caller.with_retry(
                lambda: self.backend.select(SETTINGS_TABLE),
                self.max_retries,
                self.initial_delay,
                SETTINGS_CACHE_KEY,
                signal,
            )

            if result.cancelled:
                return self.snapshot()

            if result.error:
                if is_schema_cache_error(result.error):
                    self.logger.warning("System settings table not found, using default settings")
                    self.initialized = True
                else:
                    self.logger.error("Error fetching settings", error=str(result.error))
                return self.snapshot()

            rows = {row.get("key"): row.get("value") for row in result.data or []}
            general = rows.get("general")
            notifications = rows.get("notifications")
            try:
                if general:
                    self.general = _merge(GeneralSettings, self.general, general)
                if notifications:
                    self.notifications = _merge(NotificationSettings, self.notifications, notifications)
            except ValidationError as e:
                self.logger.warning("Stored settings are invalid, keeping defaults", details=e.details)
            self.initialized = True
            return self.snapshot()
        finally:
            self.loading = False

    async def update_general_settings(self, **changes) -> bool:
        self.general = _merge(GeneralSettings, self.general, changes)
        return await self._save("general", self.general.model_dump())

    async def update_notification_settings(self, **changes) -> bool:
        self.notifications = _merge(NotificationSettings, self.notifications, changes)
        return await self._save("notifications", self.notifications.model_dump())

    async def _save(self, key: str, value: Dict[str, Any]) -> bool:
        # In-memory copy is already updated; a failed write is only logged
        row = {
            "key": key,
            "value": value,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        result = await self.caller.with_retry(
            lambda: self.backend.upsert(SETTINGS_TABLE, row, on_conflict="key")
        )
        self.caller.clear_query_cache()
        if result.error:
            self.logger.error("Error updating settings", key=key, error=str(result.error))
            return False
        return True
