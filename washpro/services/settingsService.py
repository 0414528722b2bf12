"""
Platform settings: the operator letterhead printed on receipts and the
versioned fee rates.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from washpro.models import FeeSetting, PlatformSetting
from washpro.models.base import utcnow

logger = logging.getLogger(__name__)

_PLATFORM_FIELDS = ("company_name", "company_address", "vat_registration_number", "logo_url")


async def get_platform_settings(db: AsyncSession) -> PlatformSetting:
    """Return the singleton settings row, creating it with defaults."""
    result = await db.execute(
        select(PlatformSetting).order_by(PlatformSetting.created_at).limit(1)
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = PlatformSetting()
        db.add(row)
        await db.flush()
        logger.info("Created default platform settings row %s", row.id)
    return row


async def update_platform_settings(
    db: AsyncSession,
    updates: dict[str, Any],
) -> PlatformSetting:
    row = await get_platform_settings(db)
    for field_name in _PLATFORM_FIELDS:
        if field_name in updates and updates[field_name] is not None:
            setattr(row, field_name, updates[field_name])
    await db.flush()
    logger.info("Platform settings updated: %s", sorted(k for k in updates if k in _PLATFORM_FIELDS))
    return row


async def get_current_fee_setting(db: AsyncSession) -> Optional[FeeSetting]:
    """The fee row in force now: latest ``effective_from`` not in the future."""
    result = await db.execute(
        select(FeeSetting)
        .where(FeeSetting.effective_from <= utcnow())
        .order_by(FeeSetting.effective_from.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def create_fee_setting(
    db: AsyncSession,
    *,
    platform_fee_rate: Decimal,
    stripe_percent_rate: Decimal,
    stripe_fixed_fee: Decimal,
    currency: str = "AED",
    effective_from: Optional[datetime] = None,
) -> FeeSetting:
    """Append a new fee row.  Older rows are kept for history.

    Raises:
        ValueError: If any rate is negative or a percentage exceeds 1.
    """
    for name, value in (
        ("platform_fee_rate", platform_fee_rate),
        ("stripe_percent_rate", stripe_percent_rate),
    ):
        if value < 0 or value > 1:
            raise ValueError(f"{name} must be between 0 and 1")
    if stripe_fixed_fee < 0:
        raise ValueError("stripe_fixed_fee must not be negative")

    row = FeeSetting(
        id=uuid.uuid4(),
        platform_fee_rate=platform_fee_rate,
        stripe_percent_rate=stripe_percent_rate,
        stripe_fixed_fee=stripe_fixed_fee,
        currency=currency.upper(),
        effective_from=effective_from or utcnow(),
    )
    db.add(row)
    await db.flush()
    logger.info(
        "Fee setting %s created: platform=%s stripe=%s+%s",
        row.id,
        platform_fee_rate,
        stripe_percent_rate,
        stripe_fixed_fee,
    )
    return row
