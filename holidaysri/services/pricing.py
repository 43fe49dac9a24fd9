"""LKR value of each token kind."""

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal

from holidaysri.core.config import get_settings
from holidaysri.core.enums import TokenKind

CENTS = Decimal("0.01")


def token_value_lkr(kind: TokenKind) -> Decimal:
    s = get_settings()
    return {
        TokenKind.HSC: s.hsc_value_lkr,
        TokenKind.HSG: s.hsg_value_lkr,
        TokenKind.HSD: s.hsd_value_lkr,
    }[kind]


def price_in_lkr(kind: TokenKind, tokens: int) -> Decimal:
    """Price of ``tokens`` tokens, rounded half-up to cents."""
    return (token_value_lkr(kind) * tokens).quantize(CENTS, rounding=ROUND_HALF_UP)


def tokens_for_lkr(kind: TokenKind, amount_lkr: Decimal) -> int:
    """Whole tokens an LKR amount buys; fractions are never credited."""
    value = token_value_lkr(kind)
    if value <= 0:
        return 0
    return int((Decimal(amount_lkr) / value).to_integral_value(rounding=ROUND_DOWN))


def get_pricing() -> dict[str, str]:
    return {kind.value: str(token_value_lkr(kind)) for kind in TokenKind}
