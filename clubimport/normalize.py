"""Normalization helpers for headers, reference names and phone numbers."""

import re
import unicodedata

# Matches any sequence of whitespace (including Unicode whitespace like U+2006)
_WHITESPACE_RE = re.compile(r'\s+')
_NON_DIGIT_RE = re.compile(r'\D')

COUNTRY_CODE = '972'
MIN_PHONE_DIGITS = 9

# Arabic-Indic and Extended Arabic-Indic (Persian) digits
_DIGIT_TABLE = str.maketrans(
    '٠١٢٣٤٥٦٧٨٩۰۱۲۳۴۵۶۷۸۹',
    '01234567890123456789',
)


def normalize_whitespace(value: str) -> str:
    """Collapse any run of whitespace into a single space and strip the ends."""
    return _WHITESPACE_RE.sub(' ', value).strip()


def normalize_header(text: str) -> str:
    """Normalize a column header or field label for similarity scoring.

    Removes diacritics via NFD decomposition (Latin accents as well as
    Arabic harakat and hamza marks), drops whitespace, punctuation and
    symbols, then lowercases.

    Args:
        text: Raw header or label.

    Returns:
        Normalized string for comparison.
    """
    decomposed = unicodedata.normalize('NFD', str(text))
    kept = []
    for ch in decomposed:
        category = unicodedata.category(ch)
        # Mn: combining marks, Z*: separators, P*: punctuation, S*: symbols
        if category == 'Mn' or category[0] in ('Z', 'P', 'S') or ch.isspace():
            continue
        kept.append(ch)
    return ''.join(kept).lower()


def normalize_name(value: str) -> str:
    """Key used for case-insensitive, trimmed reference-name matching."""
    return normalize_whitespace(str(value)).lower()


def to_ascii_digits(value: str) -> str:
    """Convert Arabic-Indic and Persian digits to ASCII digits."""
    return value.translate(_DIGIT_TABLE)


def normalize_phone(value: str, country_code: str = COUNTRY_CODE) -> str:
    """Return the canonical international form of a phone number.

    Locale digits are converted, every separator (including a leading ``+``)
    is stripped and local numbers are rewritten to the international prefix:
    ``050-123-4567``, ``+972501234567`` and ``0501234567`` all become
    ``972501234567``. A nine-digit mobile number that lost its leading zero
    (``501234567``) is rewritten as well.

    Args:
        value: Raw phone number.
        country_code: Country prefix used for local numbers.

    Returns:
        Digits only; empty string for empty input.
    """
    digits = _NON_DIGIT_RE.sub('', to_ascii_digits(str(value)))
    if not digits:
        return ''
    if digits.startswith('00'):
        return digits[2:]
    if digits.startswith('0'):
        return country_code + digits[1:]
    if digits.startswith('5') and len(digits) == 9:
        return country_code + digits
    return digits


def is_valid_phone(canonical: str, country_code: str = COUNTRY_CODE) -> bool:
    """Check whether a canonical phone number is long enough to be dialable.

    The country prefix does not count towards the minimum length.
    """
    national = canonical
    if canonical.startswith(country_code):
        national = canonical[len(country_code):]
    return len(national) >= MIN_PHONE_DIGITS
