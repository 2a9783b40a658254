"""
Tests for ConfigService: typed values, defaults, caching and auditing.
"""
import pytest
from sqlalchemy import select, update

from app.core.exceptions import ValidationException
from app.db.models.audit_log import AuditLog, AuditAction
from app.db.models.platform_config import PlatformConfig
from app.db.unit_of_work import UnitOfWork
from app.domain.services.config_service import (
    ConfigService,
    checked_business_value,
    infer_value_type,
    parse_value,
    serialize_value,
)


@pytest.mark.unit
@pytest.mark.parametrize(
    "raw,value_type,expected",
    [
        ("250", "number", 250),
        ("12.5", "number", 12.5),
        ("true", "boolean", True),
        ("0", "boolean", False),
        ('{"a": 1}', "json", {"a": 1}),
        ("hello", "string", "hello"),
    ],
)
def test_parse_value(raw, value_type, expected):
    assert parse_value(raw, value_type) == expected


@pytest.mark.unit
def test_infer_and_serialize():
    assert infer_value_type(True) == "boolean"
    assert infer_value_type(7) == "number"
    assert infer_value_type([1]) == "json"
    assert infer_value_type("x") == "string"
    assert serialize_value(False, "boolean") == "false"
    assert serialize_value({"a": 1}, "json") == '{"a": 1}'


@pytest.mark.unit
async def test_missing_key_returns_default(db_session):
    assert await ConfigService().get(db_session, "BUSINESS_CONFIG.NOPE", 42) == 42


@pytest.mark.unit
async def test_set_then_get(db_session):
    service = ConfigService()

    async with UnitOfWork(db_session) as uow:
        row = await service.set(uow, "BUSINESS_CONFIG.WALLET_HOLD_DAYS", 14, updated_by=9)

    assert row.value == "14"
    assert row.value_type == "number"
    assert row.category == "BUSINESS_CONFIG"
    assert await service.get(db_session, "BUSINESS_CONFIG.WALLET_HOLD_DAYS", 7) == 14

    audit = (await db_session.execute(select(AuditLog))).scalar_one()
    assert audit.action == AuditAction.CONFIG_UPDATE
    assert audit.entity_id == "BUSINESS_CONFIG.WALLET_HOLD_DAYS"
    assert audit.actor_id == 9
    assert audit.details["old_value"] is None
    assert audit.details["new_value"] == "14"


@pytest.mark.unit
async def test_update_records_old_value(db_session):
    service = ConfigService()
    async with UnitOfWork(db_session) as uow:
        await service.set(uow, "BUSINESS_CONFIG.BASE_SERVICE_FEE", 250)
    async with UnitOfWork(db_session) as uow:
        await service.set(uow, "BUSINESS_CONFIG.BASE_SERVICE_FEE", 300)

    assert await service.get(db_session, "BUSINESS_CONFIG.BASE_SERVICE_FEE") == 300
    audits = (await db_session.execute(select(AuditLog).order_by(AuditLog.id))).scalars().all()
    assert audits[-1].details["old_value"] == "250"


@pytest.mark.unit
async def test_values_are_cached_until_invalidated(db_session):
    service = ConfigService(ttl_seconds=300)
    async with UnitOfWork(db_session) as uow:
        await service.set(uow, "FEATURE.FLAG", "on")
    assert await service.get(db_session, "FEATURE.FLAG") == "on"

    # direct DB edit bypasses the service
    await db_session.execute(
        update(PlatformConfig).where(PlatformConfig.key == "FEATURE.FLAG").values(value="off")
    )
    await db_session.commit()

    assert await service.get(db_session, "FEATURE.FLAG") == "on"
    service.invalidate("FEATURE.FLAG")
    assert await service.get(db_session, "FEATURE.FLAG") == "off"


@pytest.mark.unit
async def test_missing_keys_are_cached_too(db_session):
    service = ConfigService(ttl_seconds=300)
    assert await service.get(db_session, "FEATURE.LATER", "default") == "default"

    db_session.add(PlatformConfig(key="FEATURE.LATER", value="set", value_type="string"))
    await db_session.commit()

    assert await service.get(db_session, "FEATURE.LATER", "default") == "default"
    service.invalidate()
    assert await service.get(db_session, "FEATURE.LATER", "default") == "set"


@pytest.mark.unit
async def test_zero_ttl_always_reads_through(db_session):
    service = ConfigService(ttl_seconds=0)
    db_session.add(PlatformConfig(key="K", value="1", value_type="number"))
    await db_session.commit()
    assert await service.get(db_session, "K") == 1

    await db_session.execute(update(PlatformConfig).where(PlatformConfig.key == "K").values(value="2"))
    await db_session.commit()

    assert await service.get(db_session, "K") == 2


@pytest.mark.unit
async def test_unparseable_value_falls_back_to_default(db_session):
    db_session.add(PlatformConfig(key="BROKEN", value="abc", value_type="number"))
    await db_session.commit()

    assert await ConfigService().get(db_session, "BROKEN", 5) == 5


@pytest.mark.unit
async def test_set_rejects_unknown_type(db_session):
    with pytest.raises(ValidationException):
        async with UnitOfWork(db_session) as uow:
            await ConfigService().set(uow, "K", "x", value_type="xml")


@pytest.mark.unit
@pytest.mark.parametrize(
    "key,value",
    [
        ("BUSINESS_CONFIG.PARTNER_SHARE_PERCENTAGE", -1),
        ("BUSINESS_CONFIG.PARTNER_SHARE_PERCENTAGE", 150),
        ("BUSINESS_CONFIG.BASE_SERVICE_FEE", -1),
        ("BUSINESS_CONFIG.WALLET_HOLD_DAYS", -1),
        ("BUSINESS_CONFIG.WALLET_HOLD_DAYS", 2.5),
        ("BUSINESS_CONFIG.MIN_WALLET_REDEMPTION", -100),
        ("BUSINESS_CONFIG.BASE_SERVICE_FEE", "cheap"),
        ("BUSINESS_CONFIG.PARTNER_SHARE_PERCENTAGE", True),
    ],
)
async def test_set_rejects_out_of_range_business_values(db_session, key, value):
    with pytest.raises(ValidationException):
        async with UnitOfWork(db_session) as uow:
            await ConfigService().set(uow, key, value)

    assert (await db_session.execute(select(PlatformConfig))).scalar_one_or_none() is None
    assert (await db_session.execute(select(AuditLog))).scalar_one_or_none() is None


@pytest.mark.unit
@pytest.mark.parametrize(
    "key,value",
    [
        ("BUSINESS_CONFIG.PARTNER_SHARE_PERCENTAGE", 0),
        ("BUSINESS_CONFIG.PARTNER_SHARE_PERCENTAGE", 100),
        ("BUSINESS_CONFIG.BASE_SERVICE_FEE", 0),
        ("BUSINESS_CONFIG.WALLET_HOLD_DAYS", 0),
    ],
)
async def test_set_accepts_boundary_values(db_session, key, value):
    service = ConfigService()
    async with UnitOfWork(db_session) as uow:
        await service.set(uow, key, value)

    assert await service.get(db_session, key) == value


@pytest.mark.unit
def test_out_of_range_value_is_replaced_by_default():
    assert checked_business_value("BUSINESS_CONFIG.PARTNER_SHARE_PERCENTAGE", 150, 50) == 50
    assert checked_business_value("BUSINESS_CONFIG.PARTNER_SHARE_PERCENTAGE", 40, 50) == 40
    assert checked_business_value("BUSINESS_CONFIG.WALLET_HOLD_DAYS", 1.5, 7) == 7
    assert checked_business_value("FEATURE.FLAG", -5, 0) == -5
