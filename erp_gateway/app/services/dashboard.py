"""
Dashboard aggregates and import bookkeeping.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from erp_core.cancellation import CancellationToken
from erp_core.logging import get_logger
from erp_core.retry import ResilientCaller

from ..backend.client import BackendClient


CLOSED_ORDER_STATUSES = ("delivered", "cancelled")


def _number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


class DashboardService:
    """Summary numbers shown on the landing dashboard."""

    def __init__(self, backend: BackendClient, caller: ResilientCaller):
        self.backend = backend
        self.caller = caller
        self.logger = get_logger("gateway.dashboard")

    @staticmethod
    def empty_stats() -> Dict[str, Any]:
        return {
            "total_sales": 0.0,
            "active_orders": 0,
            "total_inventory_value": 0.0,
            "total_customers": 0,
        }

    async def get_dashboard_stats(self, signal: Optional[CancellationToken] = None) -> Dict[str, Any]:
        """Fetch orders, products and the customer count concurrently.

        Missing or failed pieces count as zero; this never raises for backend
        failures.
        """
        try:
            orders_result, products_result, customers_result = await asyncio.gather(
                self.caller.with_retry(
                    lambda: self.backend.select("orders", "total_amount,status"),
                    cache_key="dashboard:orders",
                    signal=signal,
                ),
                self.caller.with_retry(
                    lambda: self.backend.select("products", "stock_quantity,price"),
                    cache_key="dashboard:products",
                    signal=signal,
                ),
                self.caller.with_retry(
                    lambda: self.backend.select("customers", "id", count="exact", head=True),
                    cache_key="dashboard:customers",
                    signal=signal,
                ),
            )
        except Exception as e:
            self.logger.error("Error in get_dashboard_stats", error=str(e))
            return self.empty_stats()

        for name, result in (("orders", orders_result), ("products", products_result),
                             ("customers", customers_result)):
            if result.error:
                self.logger.warning("Dashboard query failed", query=name, error=str(result.error))

        orders = orders_result.data or []
        products = products_result.data or []

        total_sales = sum(_number(order.get("total_amount")) for order in orders)
        active_orders = len([o for o in orders if o.get("status") not in CLOSED_ORDER_STATUSES])
        total_inventory_value = sum(
            _number(p.get("stock_quantity")) * _number(p.get("price")) for p in products
        )

        return {
            "total_sales": total_sales,
            "active_orders": active_orders,
            "total_inventory_value": total_inventory_value,
            "total_customers": customers_result.count or 0,
        }

    async def get_recent_orders(self, limit: int = 5) -> List[Dict[str, Any]]:
        """Newest orders with the customer name joined in."""
        result = await self.caller.with_retry(
            lambda: self.backend.select(
                "orders",
                "*,customers(name)",
                order="created_at",
                ascending=False,
                limit=limit,
            )
        )
        if result.error:
            self.logger.error("Error in get_recent_orders", error=str(result.error))
            return []

        orders = []
        for order in result.data or []:
            order = dict(order)
            order["customer"] = order.get("customers") or order.get("customer")
            orders.append(order)
        return orders

    async def log_import_activity(self,
                                  module: str,
                                  total: int,
                                  success: int,
                                  failed: int,
                                  user_id: Optional[str] = None) -> bool:
        """Record a bulk import run. Failures are logged, not raised."""
        row = {
            "module": module,
            "total_rows": total,
            "success_rows": success,
            "failed_rows": failed,
            "created_by": user_id,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        result = await self.caller.with_retry(
            lambda: self.backend.insert("import_logs", row, returning=False)
        )
        if result.error:
            self.logger.error("Error logging import activity", module=module, error=str(result.error))
            return False

        self.caller.clear_query_cache()
        return True
