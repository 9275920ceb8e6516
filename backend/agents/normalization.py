"""
Post-processing of raw model output before validation.

The model is told to convert paise, drop bank fees and use ISO dates; none of
that is trusted. Everything is re-applied here on the provisional payload.
"""
import copy
import logging
import re
from datetime import date, datetime
from typing import Optional, Tuple

from dateutil import parser as date_parser

from models import Category, TransactionType

logger = logging.getLogger("StatementPipeline.Normalization")

# ─── Amounts ──────────────────────────────────────────────────────────────────

PAISE_ALWAYS_ABOVE = 1_000_000
PAISE_ABOVE = 50_000
PAISE_NO_DECIMAL_ABOVE = 10_000

_CURRENCY_RE = re.compile(r"(₹|\bINR\b|\bRs\.?)", re.I)
_DRCR_SUFFIX_RE = re.compile(r"\s*\b(CR|DR)\.?$", re.I)


def apply_paise_rule(value: float, has_decimal: bool) -> float:
    """Divide by 100 when the figure looks like paise, then round to 2 dp."""
    value = abs(value)
    if value > PAISE_ALWAYS_ABOVE or value > PAISE_ABOVE or (value > PAISE_NO_DECIMAL_ABOVE and not has_decimal):
        value = value / 100
    return round(value, 2)


def parse_number(raw) -> Tuple[Optional[float], bool]:
    """
    Parse an amount as printed ("₹2,811.94", "(1,000.00)", "281194 Dr").
    Returns (value, has_decimal). JSON integers count as having no decimal point.
    """
    if raw is None or isinstance(raw, bool):
        return None, False
    if isinstance(raw, int):
        return float(raw), False
    if isinstance(raw, float):
        return raw, True

    text = _CURRENCY_RE.sub("", str(raw)).strip()
    text = _DRCR_SUFFIX_RE.sub("", text)
    if text.startswith("(") and text.endswith(")"):
        text = text[1:-1]
    text = text.replace(",", "").replace(" ", "").lstrip("+-")
    if not text:
        return None, False
    try:
        return float(text), "." in text
    except ValueError:
        return None, False


def normalize_amount(raw) -> Optional[float]:
    """Positive rupee amount from a raw statement figure, paise rule applied."""
    value, has_decimal = parse_number(raw)
    if value is None:
        return None
    return apply_paise_rule(value, has_decimal)


def _plain_number(raw):
    """Coerce a summary/limit figure to float without the paise rule."""
    if raw is None or isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return raw
    value, _ = parse_number(raw)
    if value is None:
        return raw
    return -value if str(raw).strip().startswith("-") else value


# ─── Dates ────────────────────────────────────────────────────────────────────

_ISO_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DATE_FORMATS = (
    "%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y", "%d%m%Y",
    "%d %b %Y", "%d-%b-%Y", "%d %B %Y", "%d-%B-%Y",
    "%d/%m/%y", "%d-%m-%y", "%d %b %y", "%d-%b-%y",
)


def normalize_date(raw) -> Optional[str]:
    """ISO date (YYYY-MM-DD) from common statement formats, or None."""
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date().isoformat()
    if isinstance(raw, date):
        return raw.isoformat()

    text = str(raw).strip()
    if not text:
        return None
    if _ISO_RE.match(text):
        try:
            return date.fromisoformat(text).isoformat()
        except ValueError:
            return None

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue

    # Day-first, the way Indian statements print dates
    try:
        return date_parser.parse(text, dayfirst=True).date().isoformat()
    except (ValueError, OverflowError):
        return None


# ─── Fee / charge exclusion ───────────────────────────────────────────────────

EXCLUDED_CHARGE_PATTERNS = [
    re.compile(p, re.I) for p in (
        r"\bFIN(?:ANCE)?\.?\s*CHGS?\b",
        r"\bFINANCE\s+CHARGES?\b",
        r"\bINTEREST\b",
        r"\bLATE\s+(?:PAYMENT\s+)?(?:FEE|CHARGE)S?\b",
        r"\bANNUAL\s+(?:FEE|CHARGE)S?\b",
        r"\bMEMBERSHIP\s+FEES?\b",
        r"\b[ICS]?GST\b",
        r"\bASSESSMENT\b",
        r"\bTAX\b",
        r"\bSERVICE\s+(?:CHARGE|FEE)S?\b",
        r"\bPROCESSING\s+FEES?\b",
        r"\bOVER\s*-?\s*LIMIT\s+(?:FEE|CHARGE)S?\b",
        r"\bCASH\s*BACK\b",
        r"\bREWARDS?\b",
        r"\bFEE\s+REVERSAL\b",
    )
]


def is_excluded_charge(description: str) -> bool:
    """Bank fees, taxes on fees, interest and reward credits are not spends."""
    if not description:
        return False
    return any(p.search(description) for p in EXCLUDED_CHARGE_PATTERNS)


# ─── Payload ──────────────────────────────────────────────────────────────────

_TYPE_ALIASES = {
    "dr": TransactionType.DEBIT.value,
    "debit": TransactionType.DEBIT.value,
    "d": TransactionType.DEBIT.value,
    "cr": TransactionType.CREDIT.value,
    "credit": TransactionType.CREDIT.value,
    "c": TransactionType.CREDIT.value,
}
_CATEGORY_VALUES = {c.value for c in Category}


def _normalize_transaction(txn: dict, index: int, warnings: list) -> dict:
    txn = dict(txn)
    if isinstance(txn.get("description"), str):
        txn["description"] = txn["description"].strip()

    raw_amount = txn.get("amount")
    amount = normalize_amount(raw_amount)
    if amount is not None:
        raw_value, _ = parse_number(raw_amount)
        if raw_value is not None and round(abs(raw_value), 2) != amount:
            warnings.append(f"Transaction {index}: amount {raw_amount} read as paise, using {amount:.2f}")
        txn["amount"] = amount

    raw_type = txn.get("type")
    if isinstance(raw_type, str):
        txn["type"] = _TYPE_ALIASES.get(raw_type.strip().lower(), raw_type)

    iso = normalize_date(txn.get("date"))
    if iso:
        txn["date"] = iso

    category = txn.get("category")
    if isinstance(category, str):
        category = category.strip().lower()
        if category in _CATEGORY_VALUES:
            txn["category"] = category
        else:
            # Left for the category mapper
            warnings.append(f"Transaction {index}: unknown category {txn['category']!r}")
            txn["category"] = None
    return txn


def postprocess_content(raw) -> Tuple[dict, list]:
    """
    Re-apply amount, date, type and fee-exclusion rules to a provisional payload.

    Returns (content, warnings). Anything that cannot be fixed is left in place
    for the validator to report.
    """
    warnings = []
    if not isinstance(raw, dict):
        return raw, warnings
    content = copy.deepcopy(raw)

    if isinstance(content.get("bank"), str):
        content["bank"] = content["bank"].strip().upper()

    card = content.get("card_details")
    if isinstance(card, dict):
        for key in ("credit_limit", "available_credit"):
            card[key] = _plain_number(card.get(key))

    summary = content.get("summary")
    if isinstance(summary, dict):
        for key in ("total_dues", "minimum_due", "previous_balance", "payment_received", "purchase_amount"):
            if key in summary:
                summary[key] = _plain_number(summary[key])

    period = content.get("statement_period")
    if isinstance(period, dict):
        for key in ("start_date", "end_date", "due_date"):
            iso = normalize_date(period.get(key))
            if iso:
                period[key] = iso

    transactions = content.get("transactions")
    if isinstance(transactions, list):
        kept, excluded = [], 0
        for i, txn in enumerate(transactions):
            if not isinstance(txn, dict):
                kept.append(txn)
                continue
            if is_excluded_charge(txn.get("description") or ""):
                excluded += 1
                continue
            kept.append(_normalize_transaction(txn, i, warnings))
        if excluded:
            warnings.append(f"Removed {excluded} fee/charge/reward entries")
            logger.info(f"🧹 Removed {excluded} fee/charge entries from model output")
        content["transactions"] = kept

    return content, warnings
