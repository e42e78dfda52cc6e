"""
Shipping vendor management for the logistics module.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from erp_core.cancellation import CancellationToken
from erp_core.errors import AuthorizationError, ValidationError
from erp_core.logging import get_logger
from erp_core.results import QueryResult
from erp_core.retry import ResilientCaller

from ..backend.client import BackendClient


VENDORS_TABLE = "shipping_vendors"
VENDORS_CACHE_KEY = "vendors-list"
VENDOR_MAX_RETRIES = 5
VENDOR_INITIAL_DELAY = 1.0
VENDOR_EDITOR_ROLES = ("superadmin", "admin", "manager", "logistik")


class VendorPayload(BaseModel):
    name: str = ""
    coverage_area: str = ""
    service_type: str = "reguler"
    rate_per_kg: float = 0.0
    estimated_days: int = 1


def validate_vendor(payload: VendorPayload) -> None:
    """Raise ValidationError listing every invalid field."""
    problems: Dict[str, str] = {}
    if not payload.name.strip():
        problems["name"] = "Vendor name is required"
    if not payload.coverage_area.strip():
        problems["coverage_area"] = "Coverage area is required"
    if payload.rate_per_kg <= 0:
        problems["rate_per_kg"] = "Rate must be greater than 0"
    if payload.estimated_days <= 0:
        problems["estimated_days"] = "Estimated delivery must be at least 1 day"
    if problems:
        raise ValidationError("Invalid vendor", details=problems)


class VendorService:
    """Reads and writes shipping vendors through the retry wrapper."""

    def __init__(self,
                 backend: BackendClient,
                 caller: ResilientCaller,
                 max_retries: int = VENDOR_MAX_RETRIES,
                 initial_delay: float = VENDOR_INITIAL_DELAY):
        self.backend = backend
        self.caller = caller
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.logger = get_logger("gateway.vendors")

    async def list_vendors(self, signal: Optional[CancellationToken] = None) -> QueryResult:
        """Vendors ordered by name. Cancelled calls come back with a cancelled error."""
        result = await self.caller.with_retry(
            lambda: self.backend.select(VENDORS_TABLE, order="name"),
            self.max_retries,
            self.initial_delay,
            VENDORS_CACHE_KEY,
            signal,
        )
        if result.error and not result.cancelled:
            self.logger.error("Error fetching vendors", error=str(result.error))
        return result

    async def save_vendor(self,
                          payload: VendorPayload,
                          vendor_id: Optional[Any] = None,
                          role: Optional[str] = None) -> QueryResult:
        """Create the vendor, or update it when ``vendor_id`` is given.

        Raises AuthorizationError/ValidationError before touching the backend;
        backend failures are returned in the result.
        """
        if role not in VENDOR_EDITOR_ROLES:
            raise AuthorizationError("You do not have permission to manage vendors", {"role": role})
        validate_vendor(payload)

        values = payload.model_dump()
        if vendor_id is not None:
            operation = lambda: self.backend.update(VENDORS_TABLE, values, filters={"id": vendor_id})  # noqa: E731
        else:
            operation = lambda: self.backend.insert(VENDORS_TABLE, [values])  # noqa: E731

        result = await self.caller.with_retry(operation, self.max_retries, self.initial_delay)
        if result.error:
            self.logger.error("Error saving vendor", vendor_id=vendor_id, error=str(result.error))
            return result

        self.caller.clear_query_cache()
        self.logger.info("Vendor saved", vendor_id=vendor_id, created=vendor_id is None)
        return result

    @staticmethod
    def rows(result: QueryResult) -> List[Dict[str, Any]]:
        return list(result.data or [])
