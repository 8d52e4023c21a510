"""Locale-aware money display with bare currency symbols.

Babel renders currencies with the locale's standard symbol, which for many
locale/currency pairs is region-qualified ("US$", "CN¥"), a local variant
("元", "￥") or simply the ISO code. Locale patterns are therefore applied
without a currency and the placeholder is filled from CURRENCY_SYMBOLS. What
still comes out region-qualified is rewritten through REGION_PREFIXES, and
output that shows a code is rebuilt by hand from a symbol and a plain
localized number.
"""

from __future__ import annotations

import copy
import logging
import re
from contextlib import contextmanager
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Iterator, Optional, Union

from babel import Locale, UnknownLocaleError
from babel.numbers import format_decimal

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "zh-CN"
FALLBACK_LOCALE = "en_US"
NON_FINITE_DISPLAY = "--"
CJK_LANGUAGES = ("zh", "ja", "ko")

CURRENCY_SYMBOLS: dict[str, str] = {
    "CNY": "¥",
    "JPY": "¥",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "KRW": "₩",
    "HKD": "HK$",
    "TWD": "NT$",
    "INR": "₹",
    "RUB": "₽",
    "AUD": "A$",
    "CAD": "C$",
    "SGD": "S$",
    "THB": "฿",
    "VND": "₫",
}

REGION_PREFIXES: dict[str, str] = {
    "CN¥": "¥",
    "JP¥": "¥",
    "US$": "$",
    "CA$": "C$",
    "AU$": "A$",
    "SG$": "S$",
    "HK$": "HK$",
    "NT$": "NT$",
    "KR₩": "₩",
}

_CODE_THEN_SYMBOL = re.compile(r"^[A-Z]{2,3}[¥$€£]")
_LEADING_SYMBOL_SPACE = re.compile(
    "^("
    + "|".join(
        re.escape(s)
        for s in sorted(set(CURRENCY_SYMBOLS.values()), key=len, reverse=True)
    )
    + r")\s+"
)

_LEADING_SIGN = re.compile(r"^[\u200e\u200f\u061c]*[-+\u2212]?")

_FORMAT_ERRORS = (UnknownLocaleError, ValueError, TypeError, ArithmeticError)

Number = Union[int, float, Decimal]


def is_cjk_locale(locale: str) -> bool:
    language = re.split(r"[-_]", locale.strip().lower(), maxsplit=1)[0]
    return language in CJK_LANGUAGES


def parse_locale(locale: str) -> Locale:
    return Locale.parse(locale.strip().replace("-", "_"))


@contextmanager
def _half_up() -> Iterator[None]:
    with localcontext() as ctx:
        ctx.rounding = ROUND_HALF_UP
        yield


def _to_decimal(amount: Number) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))


def _is_finite(amount: Number) -> bool:
    try:
        return _to_decimal(amount).is_finite()
    except _FORMAT_ERRORS:
        return False


def _number_pattern(min_digits: int, max_digits: int) -> str:
    if max_digits == 0:
        return "#,##0"
    return "#,##0." + "0" * min_digits + "#" * (max_digits - min_digits)


def _display_symbol(code: str, loc: Locale) -> str:
    if code in CURRENCY_SYMBOLS:
        return CURRENCY_SYMBOLS[code]
    return loc.currency_symbols.get(code, code)


def _format_with_locale(
    amount: Number, code: str, locale: str, min_digits: int, max_digits: int
) -> str:
    loc = parse_locale(locale)
    pattern = copy.copy(loc.currency_formats["standard"])
    pattern.frac_prec = (min_digits, max_digits)
    # no currency passed, so the placeholder survives and takes the bare symbol
    with _half_up():
        text = pattern.apply(_to_decimal(amount), loc)
    return text.replace("¤", _display_symbol(code, loc))


def _format_number(
    amount: Number, locale: str, min_digits: int, max_digits: int
) -> str:
    if not _is_finite(amount):
        return NON_FINITE_DISPLAY
    try:
        loc = parse_locale(locale)
    except _FORMAT_ERRORS:
        loc = Locale.parse(FALLBACK_LOCALE)
    try:
        with _half_up():
            return format_decimal(
                _to_decimal(amount),
                format=_number_pattern(min_digits, max_digits),
                locale=loc,
            )
    except _FORMAT_ERRORS:
        return str(amount)


def _split_sign(text: str) -> tuple[str, str]:
    match = _LEADING_SIGN.match(text)
    return match.group(0), text[match.end() :]


def _format_manual(
    amount: Number, code: str, locale: str, min_digits: int, max_digits: int
) -> str:
    symbol = CURRENCY_SYMBOLS.get(code, code)
    text = _format_number(amount, locale, min_digits, max_digits)
    if text == NON_FINITE_DISPLAY:
        return f"{symbol}{text}"
    sign, number = _split_sign(text)
    # glued for every locale family, CJK or not
    return f"{sign}{symbol}{number}"


def _normalize_region_prefix(text: str) -> str:
    for prefix, bare in REGION_PREFIXES.items():
        if text.startswith(prefix):
            return bare + text[len(prefix) :]
    return text


def _shows_code(text: str, code: str) -> bool:
    if code and text.startswith(code):
        return True
    return bool(_CODE_THEN_SYMBOL.match(text))


def format_currency(
    amount: Number,
    currency_code: str,
    *,
    locale: Optional[str] = None,
    min_fraction_digits: int = 2,
    max_fraction_digits: int = 2,
) -> str:
    """Render ``amount`` as a localized string led by a bare currency symbol.

    Known currencies always use the symbol from :data:`CURRENCY_SYMBOLS`,
    whatever the locale would print. Never raises: unsupported locales or
    currencies fall back to that symbol (or the code itself) followed by the
    localized number, and non-finite amounts render as
    :data:`NON_FINITE_DISPLAY`.
    """
    code = (currency_code or "").strip().upper()
    locale = (locale or DEFAULT_LOCALE).strip() or DEFAULT_LOCALE
    min_digits = max(0, min_fraction_digits)
    max_digits = max(min_digits, max_fraction_digits)

    if not _is_finite(amount):
        logger.debug(f"currency_fallback: reason=non_finite currency={code}")
        return _format_manual(amount, code, locale, min_digits, max_digits)

    try:
        out = _format_with_locale(amount, code, locale, min_digits, max_digits)
    except _FORMAT_ERRORS as exc:
        logger.debug(
            f"currency_fallback: reason=error locale={locale} currency={code} error={exc}"
        )
        return _format_manual(amount, code, locale, min_digits, max_digits)

    sign, body = _split_sign(out)
    body = _normalize_region_prefix(body)
    if _shows_code(body, code):
        logger.debug(
            f"currency_fallback: reason=code_prefix locale={locale} currency={code} output={out!r}"
        )
        return _format_manual(amount, code, locale, min_digits, max_digits)

    if is_cjk_locale(locale):
        body = _LEADING_SYMBOL_SPACE.sub(r"\1", body)
    return sign + body
