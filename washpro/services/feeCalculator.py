"""
Fee Calculator
==============

Works out what a customer pays for one wash, given the company's fee
package:

- ``custom``   -- flat platform fee configured per company (default 3 AED)
- ``package1`` -- 2 AED + 5% of the car wash price
- ``package2`` -- offline payment: the company settles platform fees
  separately, so the customer pays no platform fee

VAT (``settings.vat_rate``, 5% by default) is charged on the subtotal
(price + platform fee).  All amounts are ``Decimal`` rounded half-up to two
places.  Pure functions, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from washpro.core.config import settings
from washpro.models.company import FeePackageType


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

VAT_RATE: Decimal = settings.vat_rate
DEFAULT_PLATFORM_FEE = Decimal("3.00")

PACKAGE1_FIXED_FEE = Decimal("2.00")
PACKAGE1_PERCENT = Decimal("0.05")

_CENT = Decimal("0.01")

_DISPLAY_NAMES: dict[FeePackageType, str] = {
    FeePackageType.CUSTOM: "Custom Fee",
    FeePackageType.PACKAGE1: "Package 1 (2 AED + 5%)",
    FeePackageType.PACKAGE2: "Package 2 (Offline Payment)",
}


Number = Union[Decimal, int, float, str]


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FeeBreakdown:
    """Everything a checkout screen needs to show for one wash."""
    car_wash_price: Decimal
    platform_fee: Decimal
    service_price: Decimal      # price + platform fee, before VAT
    vat: Decimal
    total: Decimal
    fee_package_type: FeePackageType
    display_breakdown: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def round2(value: Number) -> Decimal:
    """Round to two decimal places, half-up."""
    return _to_decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


def _to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() avoids binary float artefacts (0.1 -> 0.1000000000000000055...)
    return Decimal(str(value))


def normalize_package_type(
    package_type: Optional[Union[FeePackageType, str]],
) -> FeePackageType:
    """Map user input onto a known package.

    ``None``, empty strings and unknown values fall back to ``custom``;
    matching is case-insensitive.
    """
    if isinstance(package_type, FeePackageType):
        return package_type
    if not package_type:
        return FeePackageType.CUSTOM
    try:
        return FeePackageType(str(package_type).strip().lower())
    except ValueError:
        return FeePackageType.CUSTOM


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def calculate_fees(
    car_wash_price: Number,
    fee_package_type: Optional[Union[FeePackageType, str]] = None,
    platform_fee: Optional[Number] = None,
) -> FeeBreakdown:
    """Calculate the platform fee, VAT and total for a single wash.

    Args:
        car_wash_price: The company's price per wash in AED.
        fee_package_type: ``custom``, ``package1`` or ``package2`` (any
            case).  Missing or unknown values are treated as ``custom``.
        platform_fee: The flat fee used by the ``custom`` package.  Defaults
            to 3.00 AED.

    Returns:
        A ``FeeBreakdown`` with every amount rounded to two decimals.
    """
    package = normalize_package_type(fee_package_type)
    price = _to_decimal(car_wash_price)
    flat_fee = DEFAULT_PLATFORM_FEE if platform_fee is None else _to_decimal(platform_fee)

    if package == FeePackageType.PACKAGE1:
        fee = PACKAGE1_FIXED_FEE + price * PACKAGE1_PERCENT
    elif package == FeePackageType.PACKAGE2:
        fee = Decimal("0")
    else:
        fee = flat_fee
    fee = round2(fee)

    subtotal = price + fee
    vat = round2(subtotal * VAT_RATE)
    total = round2(subtotal + vat)

    if package == FeePackageType.PACKAGE2:
        display = f"{round2(price)} AED + VAT 5%"
    else:
        display = f"{round2(price)} + {fee} AED fee"

    return FeeBreakdown(
        car_wash_price=round2(price),
        platform_fee=fee,
        service_price=round2(subtotal),
        vat=vat,
        total=total,
        fee_package_type=package,
        display_breakdown=display,
    )


def get_fee_package_display_name(
    package_type: Optional[Union[FeePackageType, str]],
) -> str:
    return _DISPLAY_NAMES[normalize_package_type(package_type)]


def get_fee_package_description(
    package_type: Optional[Union[FeePackageType, str]],
    custom_amount: Optional[Number] = None,
) -> str:
    """Human-readable explanation of a package, as shown to company admins."""
    package = normalize_package_type(package_type)
    if package == FeePackageType.PACKAGE1:
        return "2 AED + 5% of car wash price + VAT"
    if package == FeePackageType.PACKAGE2:
        return "Offline payment - company pays platform fees separately"
    amount = DEFAULT_PLATFORM_FEE if custom_amount is None else _to_decimal(custom_amount)
    return f"Custom platform fee of {round2(amount)} AED + VAT"
