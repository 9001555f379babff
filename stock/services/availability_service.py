from typing import Dict, Any, Optional, List
from decimal import Decimal
import logging

from django.db import DatabaseError

from stock.models import StockBalance
from stock.services.base_service import to_decimal


logger = logging.getLogger(__name__)


class AvailabilityService:
    """Read-only stock checks. Never raises; failures read as unavailable."""

    @classmethod
    def check(cls,
              owner_id: int,
              product_id: int,
              requested_qty: Any,
              bucket: str = StockBalance.Bucket.INVENTORY) -> Dict[str, Any]:
        requested = to_decimal(requested_qty, default=None)
        try:
            available = StockBalance.objects.filter(
                owner_id=owner_id,
                product_id=product_id,
                bucket=bucket,
            ).values_list("quantity", flat=True).first()
        except (DatabaseError, ValueError, TypeError) as e:
            logger.error(f"Availability lookup failed for owner {owner_id}, product {product_id}: {e}")
            return {"sufficient": False, "available": Decimal("0")}

        available = available if available is not None else Decimal("0")

        if requested is None:
            return {"sufficient": False, "available": available}

        return {"sufficient": available >= requested, "available": available}

    @classmethod
    def check_items(cls, owner_id: int, items: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """
        Check every line of a cart against the owner's inventory.

        Returns the first short line as {product_id, requested, available},
        or None when everything is covered.
        """
        for item in items:
            result = cls.check(owner_id, item.get("product_id"), item.get("quantity"))
            if not result["sufficient"]:
                return {
                    "product_id": item.get("product_id"),
                    "requested": to_decimal(item.get("quantity"), default=None),
                    "available": result["available"],
                }
        return None
