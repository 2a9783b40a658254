"""
Alert Service - inventory alerts over Redis Pub/Sub

Publishes events to a Redis channel and keeps a bounded history list so
an operations dashboard can show recent alerts after reconnecting.

Alert types:
- low_stock: an item reached or fell below its minimum stock level
"""
import enum
import json
from datetime import datetime, timezone
from typing import Any, Optional

from app.core.logging import get_logger
from app.core.redis_client import get_redis

logger = get_logger(__name__)

INVENTORY_ALERTS_CHANNEL = "inventory_alerts"
_HISTORY_KEY = "inventory_alert_history"
_MAX_HISTORY_SIZE = 100


class AlertType(str, enum.Enum):
    LOW_STOCK = "low_stock"


_ALERT_TITLES: dict[AlertType, str] = {
    AlertType.LOW_STOCK: "Inventory item at or below minimum stock",
}


async def publish_alert(
    alert_type: AlertType,
    data: dict[str, Any],
    title: Optional[str] = None,
) -> None:
    """Publish an alert and append it to the history.

    Failures are logged and swallowed: an alert must never undo or block
    the business operation that triggered it.
    """
    try:
        payload = {
            "type": alert_type.value,
            "title": title or _ALERT_TITLES.get(alert_type, alert_type.value),
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        message = json.dumps(payload, ensure_ascii=False, default=str)

        redis = await get_redis()
        await redis.publish(INVENTORY_ALERTS_CHANNEL, message)
        await redis.lpush(_HISTORY_KEY, message)
        await redis.ltrim(_HISTORY_KEY, 0, _MAX_HISTORY_SIZE - 1)

        logger.info("Alert published", extra_data={"alert_type": alert_type.value, "data": data})
    except Exception as e:
        logger.error(
            "Failed to publish alert",
            extra_data={"alert_type": alert_type.value, "error": str(e)},
            exc_info=True,
        )


async def get_alert_history(limit: int = 50) -> list[dict[str, Any]]:
    """Most recent alerts, newest first"""
    try:
        redis = await get_redis()
        raw_items = await redis.lrange(_HISTORY_KEY, 0, limit - 1)
        return [json.loads(item) for item in raw_items]
    except Exception as e:
        logger.error(
            "Failed to read alert history",
            extra_data={"error": str(e)},
            exc_info=True,
        )
        return []


async def publish_low_stock(
    item_code: str,
    item_name: str,
    current_stock: int,
    min_stock_level: int,
    booking_id: Optional[int] = None,
) -> None:
    logger.warning(
        "Inventory item low on stock",
        extra_data={
            "item_code": item_code,
            "current_stock": current_stock,
            "min_stock_level": min_stock_level,
            "booking_id": booking_id,
        },
    )
    await publish_alert(
        AlertType.LOW_STOCK,
        {
            "item_code": item_code,
            "item_name": item_name,
            "current_stock": current_stock,
            "min_stock_level": min_stock_level,
            "booking_id": booking_id,
        },
    )
