"""
Config Service - admin-tunable runtime values

Values live in the platform_config table and are cached per process for
CONFIG_CACHE_TTL_SECONDS. A missing key returns the caller's default, so
a fresh database runs on the Settings fallbacks.
"""
import json
import math
import time
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ValidationException
from app.core.logging import get_logger
from app.db.models.audit_log import AuditAction
from app.db.models.platform_config import PlatformConfig
from app.db.unit_of_work import UnitOfWork
from app.domain.services.audit_service import AuditService

logger = get_logger(__name__)

BASE_SERVICE_FEE_KEY = "BUSINESS_CONFIG.BASE_SERVICE_FEE"
PARTNER_SHARE_PERCENTAGE_KEY = "BUSINESS_CONFIG.PARTNER_SHARE_PERCENTAGE"
WALLET_HOLD_DAYS_KEY = "BUSINESS_CONFIG.WALLET_HOLD_DAYS"
MIN_WALLET_REDEMPTION_KEY = "BUSINESS_CONFIG.MIN_WALLET_REDEMPTION"

_VALUE_TYPES = {"string", "number", "boolean", "json"}

_MISSING = object()

# key -> (minimum, maximum, whole numbers only); same bounds as the Settings validators
_NUMERIC_BOUNDS: dict[str, tuple[float, Optional[float], bool]] = {
    BASE_SERVICE_FEE_KEY: (0, None, False),
    PARTNER_SHARE_PERCENTAGE_KEY: (0, 100, False),
    WALLET_HOLD_DAYS_KEY: (0, None, True),
    MIN_WALLET_REDEMPTION_KEY: (0, None, False),
}


def parse_value(raw: str, value_type: str) -> Any:
    if value_type == "number":
        number = float(raw)
        return int(number) if number.is_integer() and "." not in raw else number
    if value_type == "boolean":
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if value_type == "json":
        return json.loads(raw)
    return raw


def serialize_value(value: Any, value_type: str) -> str:
    if value_type == "json":
        return json.dumps(value, ensure_ascii=False)
    if value_type == "boolean":
        return "true" if value else "false"
    return str(value)


def infer_value_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, (dict, list)):
        return "json"
    return "string"


def validate_business_value(key: str, value: Any) -> None:
    """Raise ValidationException when a bounded business key gets an out-of-range value."""
    bounds = _NUMERIC_BOUNDS.get(key)
    if bounds is None:
        return
    minimum, maximum, whole = bounds

    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise ValidationException(f"{key} must be a number", field="value")
    if not math.isfinite(float(value)):
        raise ValidationException(f"{key} must be a finite number", field="value")
    if value < minimum or (maximum is not None and value > maximum):
        upper = f" and at most {maximum}" if maximum is not None else ""
        raise ValidationException(
            f"{key} must be at least {minimum}{upper}",
            field="value",
            details={"key": key, "value": str(value)},
        )
    if whole and value != int(value):
        raise ValidationException(f"{key} must be a whole number", field="value")


def checked_business_value(key: str, value: Any, default: Any) -> Any:
    """
    Value read from platform_config, or the default when it is out of range.

    Rows written around ConfigService.set (manual SQL, old data) are not
    validated on the way in, so readers check again.
    """
    try:
        validate_business_value(key, value)
    except ValidationException as e:
        logger.error(
            "Config value out of range, using default",
            extra_data={"key": key, "value": str(value), "default": default, "error": e.message},
        )
        return default
    return value


class ConfigService:
    """Read-through cache over platform_config"""

    def __init__(self, ttl_seconds: Optional[float] = None, audit: Optional[AuditService] = None):
        self.ttl_seconds = settings.CONFIG_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.audit = audit or AuditService()
        # key -> (expires_at_monotonic, value or _MISSING)
        self._cache: dict[str, tuple[float, Any]] = {}

    async def get(self, db: AsyncSession, key: str, default: Any = None) -> Any:
        cached = self._cache.get(key)
        if cached and cached[0] > time.monotonic():
            value = cached[1]
            return default if value is _MISSING else value

        result = await db.execute(select(PlatformConfig).where(PlatformConfig.key == key))
        row = result.scalar_one_or_none()
        value = _MISSING
        if row:
            try:
                value = parse_value(row.value, row.value_type)
            except (ValueError, TypeError) as e:
                logger.error(
                    "Unparseable config value, using default",
                    extra_data={"key": key, "value_type": row.value_type, "error": str(e)},
                )

        self._cache[key] = (time.monotonic() + self.ttl_seconds, value)
        return default if value is _MISSING else value

    async def set(
        self,
        uow: UnitOfWork,
        key: str,
        value: Any,
        updated_by: Optional[int] = None,
        value_type: Optional[str] = None,
        description: Optional[str] = None,
    ) -> PlatformConfig:
        value_type = value_type or infer_value_type(value)
        if value_type not in _VALUE_TYPES:
            raise ValidationException(f"Unsupported value type: {value_type}", field="value_type")

        raw = serialize_value(value, value_type)
        try:
            parsed = parse_value(raw, value_type)
        except (ValueError, TypeError):
            raise ValidationException(
                f"Value does not match type {value_type}", field="value"
            )
        validate_business_value(key, parsed)

        result = await uow.session.execute(
            select(PlatformConfig).where(PlatformConfig.key == key).with_for_update()
        )
        row = result.scalar_one_or_none()
        old_value = row.value if row else None
        if row:
            row.value = raw
            row.value_type = value_type
            row.updated_by = updated_by
            if description is not None:
                row.description = description
        else:
            row = PlatformConfig(
                key=key,
                value=raw,
                value_type=value_type,
                category=key.split(".", 1)[0] if "." in key else "GENERAL",
                description=description,
                updated_by=updated_by,
            )
            uow.session.add(row)

        await self.audit.record(
            uow,
            entity_type="config",
            entity_id=key,
            action=AuditAction.CONFIG_UPDATE,
            actor_id=updated_by,
            details={"old_value": old_value, "new_value": raw, "value_type": value_type},
        )

        self.invalidate(key)
        # a concurrent reader may have re-cached the old value before commit
        uow.after_commit(lambda: self._invalidate_async(key))

        logger.info(
            "Config value updated",
            extra_data={"key": key, "value_type": value_type, "updated_by": updated_by},
        )
        return row

    def invalidate(self, key: Optional[str] = None) -> None:
        if key is None:
            self._cache.clear()
        else:
            self._cache.pop(key, None)

    async def _invalidate_async(self, key: str) -> None:
        self.invalidate(key)


config_service = ConfigService()
