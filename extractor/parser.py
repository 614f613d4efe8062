"""
Invoice field parser.

Turns the raw text Textract recognised into an ``ExtractionRecord`` using a
handful of label-anchored, case-insensitive patterns.  Pure and
deterministic: a field that cannot be found is ``None``, never an error.
"""

import re
from datetime import date, timedelta
from typing import Optional

from extractor.models import ExtractionRecord

_DATE = r"(\d{1,2}[-/.]\d{1,2}[-/.]\d{2,4})"

_INVOICE_NUMBER_RE = re.compile(
    r"\b(?:invoice\s+number|invoice\s+no\.?|invoice\s*#|inv\s*#?)[:\s]+([A-Z0-9][A-Z0-9/-]*)",
    re.IGNORECASE,
)
_AMOUNT_RE = re.compile(
    r"\b(?:grand\s+total|total\s+amount|amount\s+due|total|amount)[:\s]+"
    r"(?:€|\$|£|EUR|USD|GBP|AED)?\s*(\d[\d.,]*)",
    re.IGNORECASE,
)
_CUSTOMER_RE = re.compile(r"\b(?:bill\s+to|customer|debtor)[:\s]+([^\n]+)", re.IGNORECASE)
_INVOICE_DATE_RE = re.compile(r"\b(?:invoice|issue)\s+date[:\s]+" + _DATE, re.IGNORECASE)
_BARE_DATE_RE = re.compile(r"(?<!due\s)\bdate[:\s]+" + _DATE, re.IGNORECASE)
_DUE_DATE_RE = re.compile(r"\b(?:due\s+date|payment\s+due)[:\s]+" + _DATE, re.IGNORECASE)
_PAYMENT_TERMS_RE = re.compile(r"\bpayment\s+within\s+(\d+)\s+days?\b", re.IGNORECASE)
_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

# Checked in order; first marker present wins.
_CURRENCY_MARKERS = [
    ("EUR", re.compile(r"\bEUR\b|€", re.IGNORECASE)),
    ("USD", re.compile(r"\bUSD\b|\$", re.IGNORECASE)),
    ("GBP", re.compile(r"\bGBP\b|£", re.IGNORECASE)),
    ("AED", re.compile(r"\bAED\b", re.IGNORECASE)),
]


def parse(raw_text: str) -> ExtractionRecord:
    """Extract invoice fields from *raw_text*."""
    text = raw_text or ""

    invoice_number = _first_group(_INVOICE_NUMBER_RE, text)
    amount_str = _first_group(_AMOUNT_RE, text)
    amount = parse_number(amount_str) if amount_str else None
    customer_name = _first_group(_CUSTOMER_RE, text)
    invoice_date = _first_group(_INVOICE_DATE_RE, text) or _first_group(_BARE_DATE_RE, text)
    due_date = _first_group(_DUE_DATE_RE, text)

    if due_date is None and invoice_date is not None:
        terms = _first_group(_PAYMENT_TERMS_RE, text)
        if terms:
            due_date = derive_due_date(invoice_date, int(terms))

    required = [invoice_number, amount, customer_name]
    found = sum(1 for f in required if f is not None)

    return ExtractionRecord(
        invoice_number=invoice_number,
        customer_name=customer_name,
        customer_email=_counterparty_email(text),
        amount=amount,
        currency=detect_currency(text),
        invoice_date=invoice_date,
        due_date=due_date,
        confidence=found / len(required) * 100,
        raw_text=text,
    )


def parse_number(value: str) -> Optional[float]:
    """
    Parse ``1,534.00`` as well as European ``1.534,00``.

    When only a comma is present it is a decimal separator if exactly two
    digits follow it, a thousands separator otherwise.
    """
    s = value.strip().rstrip(".,")
    if not s:
        return None
    if "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        if re.search(r",\d{2}$", s):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    try:
        return float(s)
    except ValueError:
        return None


def detect_currency(text: str) -> Optional[str]:
    for code, pattern in _CURRENCY_MARKERS:
        if pattern.search(text):
            return code
    return None


def derive_due_date(invoice_date: str, days: int) -> Optional[str]:
    """
    Add *days* to *invoice_date*.  The date is read day-first when its first
    component is above 12, month-first otherwise, and written back in the
    same order with the same separator.
    """
    sep = next((c for c in "-/." if c in invoice_date), "/")
    parts = invoice_date.split(sep)
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        return None
    first, second, year = (int(p) for p in parts)
    if year < 100:
        year += 2000
    day_first = first > 12
    day, month = (first, second) if day_first else (second, first)
    try:
        due = date(year, month, day) + timedelta(days=days)
    except ValueError:
        return None
    if day_first:
        return f"{due.day:02d}{sep}{due.month:02d}{sep}{due.year}"
    return f"{due.month:02d}{sep}{due.day:02d}{sep}{due.year}"


def _counterparty_email(text: str) -> Optional[str]:
    """First address at or after the bill-to / customer label, else the first one anywhere."""
    label = _CUSTOMER_RE.search(text)
    m = _EMAIL_RE.search(text, label.start()) if label else None
    m = m or _EMAIL_RE.search(text)
    return m.group(0).lower() if m else None


def _first_group(pattern: re.Pattern, text: str) -> Optional[str]:
    m = pattern.search(text)
    if not m:
        return None
    value = m.group(1).strip()
    return value or None
