"""Regex-based extraction of receipt fields from normalised text.

Used when no hosted model is configured (``EXTRACTION_MODE=regex``) and
as the fallback when the model call fails. The heuristics assume one
receipt line per text line, which ``normalize_text`` preserves.

Extracted fields:
    merchant   first plausible name line near the top
    date       labeled date first, then any recognisable date, as YYYY-MM-DD
    total      explicit "amount due" style labels, then the last TOTAL line,
               then the largest amount on the receipt
    tax        sum of tax lines
    payment    card brand / cash / wallet keywords
    number     receipt / invoice / order / transaction number
    items      lines ending in an amount that are not summary lines
"""

from __future__ import annotations

import datetime as dt
import re
from typing import Dict, List, Optional, Tuple

from receipt_api.models.schemas import ExtractedReceiptData, ReceiptItem

# ── Amounts ─────────────────────────────────────────────────────
# Matches: $1,234.56 | 1234.56 | 12.50 ; requires two decimals so years and
# quantities are not mistaken for money.
_AMOUNT_RE = re.compile(r"(?<![\d.,])\$?\s?(\d{1,3}(?:,\d{3})+|\d+)\.(\d{2})(?!\d)")
_PERCENT_RE = re.compile(r"\d+(?:\.\d+)?\s*%")

# ── Dates ───────────────────────────────────────────────────────
_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}
_MONTH_ALT = "jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec"
_ISO_DATE_RE = re.compile(r"\b(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})\b")
_SLASH_DATE_RE = re.compile(r"\b(\d{1,2})[/-](\d{1,2})[/-](\d{4}|\d{2})\b")
_DOT_DATE_RE = re.compile(r"\b(\d{1,2})\.(\d{1,2})\.(\d{4}|\d{2})\b")
_MONTH_FIRST_RE = re.compile(rf"\b({_MONTH_ALT})[a-z]*\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?,?\s+(\d{{4}})\b", re.IGNORECASE)
_DAY_FIRST_RE = re.compile(rf"\b(\d{{1,2}})(?:st|nd|rd|th)?\s+({_MONTH_ALT})[a-z]*\.?,?\s+(\d{{4}})\b", re.IGNORECASE)
_DATE_LABEL_RE = re.compile(r"\b(?:date|dated|issued|purchased)\b", re.IGNORECASE)

# ── Totals & tax ────────────────────────────────────────────────
_EXPLICIT_TOTAL_RE = re.compile(
    r"\b(?:GRAND\s+TOTAL|TOTAL\s+DUE|AMOUNT\s+DUE|BALANCE\s+DUE|TOTAL\s+AMOUNT)\b",
    re.IGNORECASE,
)
_TOTAL_WORD_RE = re.compile(r"\bTOTAL\b", re.IGNORECASE)
_NOT_GRAND_TOTAL_RE = re.compile(
    r"\b(?:SUB\s*-?\s*TOTAL|SUBTOTAL|TAX|VAT|SAVINGS|DISCOUNT|ITEMS?|QTY|TIP)\b",
    re.IGNORECASE,
)
_TAX_RE = re.compile(r"\b(SALES\s+TAX|STATE\s+TAX|TAX|VAT|GST|HST|PST)\b", re.IGNORECASE)
_TAX_PREFIX_SKIP_RE = re.compile(r"(?:PRE|BEFORE|AFTER|WITH|INCL\w*|EXCL\w*|NON)[-\s.(]*$", re.IGNORECASE)
_TAX_SUFFIX_SKIP_RE = re.compile(r"^(?:ID|EXEMPT|ABLE|NO\b|NUMBER|#|REG)", re.IGNORECASE)

# ── Payment ─────────────────────────────────────────────────────
_PAYMENT_KEYWORDS: List[Tuple[str, re.Pattern[str]]] = [
    ("Visa", re.compile(r"\bvisa\b", re.IGNORECASE)),
    ("Mastercard", re.compile(r"\bmaster\s?card\b|\bmc\b", re.IGNORECASE)),
    ("American Express", re.compile(r"\bamex\b|\bamerican\s+express\b", re.IGNORECASE)),
    ("Discover", re.compile(r"\bdiscover\b", re.IGNORECASE)),
    ("Apple Pay", re.compile(r"\bapple\s?pay\b", re.IGNORECASE)),
    ("Google Pay", re.compile(r"\bgoogle\s?pay\b|\bgpay\b", re.IGNORECASE)),
    ("PayPal", re.compile(r"\bpaypal\b", re.IGNORECASE)),
    ("Debit Card", re.compile(r"\bdebit\b", re.IGNORECASE)),
    ("Credit Card", re.compile(r"\bcredit\b", re.IGNORECASE)),
    ("Cash", re.compile(r"\bcash\b", re.IGNORECASE)),
]

# ── Receipt number ──────────────────────────────────────────────
_RECEIPT_NUMBER_RE = re.compile(
    r"\b(?:receipt|invoice|order|transaction|trans|txn|ticket)\s*"
    r"(?:no\.?|number|num|#|id)\s*[:#.]?\s*([A-Z0-9][A-Z0-9\-/]{2,})",
    re.IGNORECASE,
)

# ── Line items ──────────────────────────────────────────────────
_SKIP_ITEM_RE = re.compile(
    r"\b(?:TOTAL|SUBTOTAL|SUB\s+TOTAL|TAX|VAT|GST|HST|PST|CHANGE|CASH|TENDER(?:ED)?|PAYMENT|PAID|"
    r"VISA|MASTERCARD|AMEX|DEBIT|CREDIT|CARD|BALANCE|DUE|DISCOUNT|SAVINGS|ROUNDING|TIP|GRATUITY|"
    r"AUTH|APPROVAL|REFUND)\b",
    re.IGNORECASE,
)
_ITEM_LINE_RE = re.compile(r"^(?P<desc>.*?[A-Za-z].*?)\s+\$?(?P<amount>\d{1,3}(?:,\d{3})+\.\d{2}|\d+\.\d{2})\s*[A-Z]?$")
_QTY_AT_PRICE_RE = re.compile(r"(?<![\w.])(\d+(?:\.\d+)?)\s*(?:x|X|@)\s*\$?(\d[\d,]*\.\d{2})")
_LEADING_QTY_RE = re.compile(r"^(\d{1,3})\s*(?:x|X)?\s+(?=[A-Za-z])")

# ── Merchant ────────────────────────────────────────────────────
_MERCHANT_STOPWORDS_RE = re.compile(
    r"\b(?:receipt|invoice|tax|date|time|total|amount|subtotal|cashier|server|table|tel|phone|fax|www|http|thank|welcome|order)\b",
    re.IGNORECASE,
)
_MERCHANT_CLEAN_RE = re.compile(r"[^A-Za-z0-9 &'.,\-]")


def _to_amount(whole: str, cents: str) -> float:
    return float(f"{whole.replace(',', '')}.{cents}")


def find_amounts(line: str) -> List[float]:
    """Return every money amount on ``line`` (percentages ignored)."""
    line = _PERCENT_RE.sub(" ", line)
    return [_to_amount(whole, cents) for whole, cents in _AMOUNT_RE.findall(line)]


def _safe_date(year: int, month: int, day: int) -> Optional[str]:
    if year < 100:
        year += 2000
    try:
        return dt.date(year, month, day).isoformat()
    except ValueError:
        return None


def find_date(line: str) -> Optional[str]:
    """Return the first date on ``line`` as ``YYYY-MM-DD``."""
    m = _ISO_DATE_RE.search(line)
    if m:
        found = _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        if found:
            return found
    m = _MONTH_FIRST_RE.search(line)
    if m:
        found = _safe_date(int(m.group(3)), _MONTHS[m.group(1).lower()[:3]], int(m.group(2)))
        if found:
            return found
    m = _DAY_FIRST_RE.search(line)
    if m:
        found = _safe_date(int(m.group(3)), _MONTHS[m.group(2).lower()[:3]], int(m.group(1)))
        if found:
            return found
    m = _SLASH_DATE_RE.search(line)
    if m:
        first, second, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
        # US receipts are month-first unless that is impossible
        month, day = (first, second) if first <= 12 else (second, first)
        found = _safe_date(year, month, day)
        if found:
            return found
    m = _DOT_DATE_RE.search(line)
    if m:
        return _safe_date(int(m.group(3)), int(m.group(2)), int(m.group(1)))
    return None


def extract_date(lines: List[str]) -> Optional[str]:
    labeled = [line for line in lines if _DATE_LABEL_RE.search(line)]
    for line in labeled + lines:
        found = find_date(line)
        if found:
            return found
    return None


def extract_total(lines: List[str]) -> Optional[float]:
    # Pass 1: explicit labels (highest confidence)
    for line in lines:
        if _EXPLICIT_TOTAL_RE.search(line):
            amounts = find_amounts(line)
            if amounts:
                return amounts[-1]

    # Pass 2: last standalone TOTAL (not sub-total / tax / savings)
    last_total = None
    for line in lines:
        if not _TOTAL_WORD_RE.search(line) or _NOT_GRAND_TOTAL_RE.search(line):
            continue
        amounts = find_amounts(line)
        if amounts:
            last_total = amounts[-1]
    if last_total is not None:
        return last_total

    # Pass 3: largest amount anywhere
    every_amount = [amount for line in lines for amount in find_amounts(line)]
    return max(every_amount) if every_amount else None


def extract_tax(lines: List[str]) -> Optional[float]:
    """Sum tax amounts; one tax capture per line."""
    total_tax = 0.0
    found = False
    for line in lines:
        # "Total incl. tax" style lines are skipped by the prefix check
        for m in _TAX_RE.finditer(line):
            if _TAX_PREFIX_SKIP_RE.search(line[: m.start()]):
                continue
            if _TAX_SUFFIX_SKIP_RE.match(line[m.end():].lstrip(" :")):
                continue
            amounts = find_amounts(line[m.start():])
            if amounts:
                total_tax += amounts[-1]
                found = True
                break
    return round(total_tax, 2) if found else None


def extract_payment_method(text: str) -> str:
    for label, pattern in _PAYMENT_KEYWORDS:
        if pattern.search(text):
            return label
    return "Unknown"


def extract_receipt_number(text: str) -> Optional[str]:
    m = _RECEIPT_NUMBER_RE.search(text)
    return m.group(1) if m else None


def extract_merchant(lines: List[str]) -> Optional[str]:
    for line in lines[:6]:
        if line[:1].isdigit() or find_amounts(line) or find_date(line):
            continue
        if _MERCHANT_STOPWORDS_RE.search(line):
            continue
        compact = _MERCHANT_CLEAN_RE.sub("", line).strip(" .,-")
        if sum(ch.isalpha() for ch in compact) < 3:
            continue
        return compact[:120]
    return None


def _parse_item_line(line: str) -> Optional[ReceiptItem]:
    m = _ITEM_LINE_RE.match(line)
    if not m:
        return None
    desc = m.group("desc").strip()
    total = _to_amount(*m.group("amount").replace(",", "").split("."))
    quantity = 1.0
    price = total

    qty_match = _QTY_AT_PRICE_RE.search(desc)
    lead_match = _LEADING_QTY_RE.match(desc)
    if qty_match:
        quantity = float(qty_match.group(1))
        price = float(qty_match.group(2).replace(",", ""))
        desc = (desc[: qty_match.start()] + " " + desc[qty_match.end():]).strip()
    elif lead_match:
        quantity = float(lead_match.group(1))
        desc = desc[lead_match.end():].strip()
        price = round(total / quantity, 2) if quantity else total
    else:
        inline = find_amounts(desc)
        if inline:
            price = inline[-1]
            if price > 0:
                ratio = total / price
                if abs(ratio - round(ratio)) < 0.01 and round(ratio) >= 1:
                    quantity = float(round(ratio))

    name = re.sub(r"\s{2,}", " ", _AMOUNT_RE.sub(" ", desc)).strip(" .:-*#")
    if sum(ch.isalpha() for ch in name) < 2:
        return None
    return ReceiptItem(name=name, quantity=quantity, price=round(price, 2), total=round(total, 2))


def merge_items(items: List[ReceiptItem]) -> List[ReceiptItem]:
    """Combine items sharing a name, summing quantities and totals."""
    merged: Dict[str, ReceiptItem] = {}
    for item in items:
        key = item.name.lower()
        if key not in merged:
            merged[key] = item.model_copy()
            continue
        current = merged[key]
        current.quantity += item.quantity
        current.total = round(current.total + item.total, 2)
        current.price = round(current.total / current.quantity, 2) if current.quantity else current.price
    return list(merged.values())


def extract_items(lines: List[str], merchant: Optional[str] = None) -> List[ReceiptItem]:
    items: List[ReceiptItem] = []
    for line in lines:
        if merchant and line.strip() == merchant:
            continue
        if _SKIP_ITEM_RE.search(line) or find_date(line):
            continue
        item = _parse_item_line(line)
        if item is not None:
            items.append(item)
    return merge_items(items)


def parse_receipt_text(text: str) -> ExtractedReceiptData:
    """Extract structured receipt fields from normalised receipt text."""
    lines = [line.strip() for line in (text or "").splitlines() if line.strip()]
    merchant = extract_merchant(lines)
    return ExtractedReceiptData(
        merchant_name=merchant,
        date=extract_date(lines),
        total_amount=extract_total(lines),
        tax_amount=extract_tax(lines),
        items=extract_items(lines, merchant),
        payment_method=extract_payment_method(text or ""),
        receipt_number=extract_receipt_number(text or ""),
    )
