"""Tax-inclusive pricing used by both the cart and the order checkout.

All amounts are tax-exclusive Decimals in major currency units (Rand).
Callers are expected to pass finite, non-negative values.
"""

from decimal import ROUND_HALF_UP, Decimal

TAX_RATE = Decimal("0.15")
CURRENCY_SYMBOL = "R"

CENT = Decimal("0.01")


def as_money(value: Decimal | int | float | str) -> Decimal:
    """Coerce a numeric value to Decimal without float artefacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Decimal) -> Decimal:
    """Round to whole cents, half-up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def price_with_tax(price: Decimal | int | float) -> Decimal:
    """Return the tax-inclusive price."""
    return as_money(price) * (1 + TAX_RATE)


def tax_amount(price: Decimal | int | float) -> Decimal:
    """Return the tax portion of a tax-exclusive price."""
    return as_money(price) * TAX_RATE


def format_price(price: Decimal | int | float) -> str:
    """Format a tax-exclusive price for display, tax included (e.g. ``R276.00``)."""
    return f"{CURRENCY_SYMBOL}{round_money(price_with_tax(price))}"


def price_breakdown(price: Decimal | int | float) -> dict[str, str]:
    """Format the excl-tax amount, the tax, and the tax-inclusive total."""
    price = as_money(price)
    return {
        "excl_tax": f"{CURRENCY_SYMBOL}{round_money(price)}",
        "tax": f"{CURRENCY_SYMBOL}{round_money(tax_amount(price))}",
        "total": format_price(price),
    }


def charge_amount(subtotal: Decimal | int | float) -> Decimal:
    """Amount actually charged for a tax-exclusive subtotal, rounded to cents."""
    return round_money(price_with_tax(subtotal))
