"""
Password hint analyzer.

Banks usually say how to open a statement in the email that carries it
("first four letters of your name followed by DDMM ..."). This module reads
that text with regex patterns and reports which identity fields the password
uses, so candidate generation can try the matching builders first.
"""
import logging
import re
from typing import Optional

from models import FieldKind, PatternConfidence
from schemas import PasswordRequirement, PatternRecord
from services.passwords import get_policy

logger = logging.getLogger("StatementPipeline.PasswordHints")

# ─── Patterns ─────────────────────────────────────────────────────────────────

PATTERNS = {
    "dob_ddmmyyyy": re.compile(r"date of birth|dob.*ddmmyyyy|birth date.*8 digit|ddmmyyyy.*birth|birth.*ddmmyyyy", re.I),
    "dob_ddmmyy": re.compile(r"ddmmyy|6 digit.*birth|birth.*6 digit", re.I),
    "dob_ddmm": re.compile(r"ddmm(?!yy)|birth.*4 digit|4 digit.*birth|dd/mm.*format|date.*month.*birth", re.I),
    "card_last6": re.compile(r"last 6 digits|last six digits|6 digit.*card|card.*6 digit", re.I),
    "card_last4": re.compile(r"last 4 digits|last four digits|card.*\*{4}|4 digit.*card|card.*4 digit", re.I),
    "name": re.compile(r"name.*card|card.*name|cardholder name|account holder name|letters of (?:your )?name", re.I),
    "customer_id": re.compile(r"8[\s\-]*digit[\s\-]*customer[\s\-]*id|customer.*id.*8.*digit", re.I),
    "dob_plus_card": re.compile(r"ddmm.*last.*digit|birth.*\+.*card|dob.*card|card.*dob", re.I),
    "dob_plus_last4": re.compile(r"ddmmyyyy.*last.*4|birth.*last.*4|dob.*last.*4", re.I),
    "name_plus_ddmm": re.compile(r"first\s*(?:four|4)\s*letters.*name.*(?:ddmm|date.*month)", re.I),
    "lower_case": re.compile(r"lower\s*case", re.I),
}

BANK_PATTERNS = {
    "hdfc": [
        (re.compile(r"first.*four.*letter.*card.*last.*four.*digit|four.*letter.*four.*digit|first.*four.*letter.*embossed", re.I),
         [FieldKind.NAME, FieldKind.CARD_LAST4]),
        (re.compile(r"first.*four.*letter.*date.*month.*birth|four.*letter.*ddmm|first.*four.*letter.*followed.*date", re.I),
         [FieldKind.NAME, FieldKind.DOB]),
        (re.compile(r"ddmmyyyy|date.*birth.*8", re.I), [FieldKind.DOB]),
    ],
    "sbi": [
        (re.compile(r"ddmmyyyy.*last.*4.*digit|date.*birth.*last.*4.*digit|dob.*last.*4.*digit", re.I),
         [FieldKind.DOB, FieldKind.CARD_LAST4]),
    ],
    "icici": [
        (re.compile(r"first\s*four\s*letters.*name.*ddmm.*lower\s*case|password.*lower\s*case.*ddmm|lower\s*case.*ddmm", re.I),
         [FieldKind.NAME, FieldKind.DOB]),
        (re.compile(r"ddmm.*card|birth.*card", re.I), [FieldKind.DOB, FieldKind.CARD_LAST4]),
    ],
    "axis": [
        (re.compile(r"first\s*(?:four|4)\s*letters.*name.*ddmm|name.*ddmm.*password", re.I),
         [FieldKind.NAME, FieldKind.DOB]),
        (re.compile(r"first\s*(?:four|4)\s*letters.*name.*last\s*(?:four|4)", re.I),
         [FieldKind.NAME, FieldKind.CARD_LAST4]),
        (re.compile(r"dob|date.*birth", re.I), [FieldKind.DOB]),
    ],
    "hsbc": [
        (re.compile(r"ddmmyy.*last.*6.*digit|birth.*ddmmyy.*6.*digit|6.*digit.*credit card", re.I),
         [FieldKind.DOB, FieldKind.CARD_LAST6]),
    ],
    "rbl": [
        (re.compile(r"(?:date\s+of\s+birth|dob).*last\s*(?:4|four)\s*digits", re.I),
         [FieldKind.DOB, FieldKind.CARD_LAST4]),
        (re.compile(r"date\s+of\s+birth|\bdob\b", re.I), [FieldKind.DOB]),
    ],
    "indusind": [
        (re.compile(r"first\s*4\s*(?:letters|characters).*name.*ddmm.*(?:lower\s*case|lowercase)|password.*lower\s*case.*ddmm", re.I),
         [FieldKind.NAME, FieldKind.DOB]),
    ],
    "au": [
        (re.compile(r"8[\s\-]*digit[\s\-]*customer[\s\-]*id|customer.*id.*8.*digit", re.I), [FieldKind.CUSTOMER_ID]),
        (re.compile(r"first\s*4\s*letters\s*of\s*name.*date.*month\s*of\s*birth|name.*date.*month.*birth", re.I),
         [FieldKind.NAME, FieldKind.DOB]),
    ],
}
BANK_PATTERNS["sc"] = BANK_PATTERNS["hsbc"]
BANK_PATTERNS["aubank"] = BANK_PATTERNS["au"]

DEFAULT_FIELDS = {
    "hdfc": [FieldKind.DOB],
    "axis": [FieldKind.DOB],
    "sbi": [FieldKind.CARD_LAST4],
    "icici": [FieldKind.CARD_LAST4],
    "hsbc": [FieldKind.NAME, FieldKind.DOB],
    "sc": [FieldKind.NAME, FieldKind.DOB],
}

FIELD_LABELS = {
    FieldKind.NAME: "your name (as on card)",
    FieldKind.DOB: "your date of birth",
    FieldKind.CARD_LAST6: "last 6 digits of your card",
    FieldKind.CARD_LAST4: "last 4 digits of your card",
    FieldKind.CUSTOMER_ID: "your 8-digit Customer ID",
}

# Which identity field each builder part consumes
PART_FIELDS = {
    "ddmmyyyy": FieldKind.DOB,
    "ddmmyy": FieldKind.DOB,
    "ddmm": FieldKind.DOB,
    "card6": FieldKind.CARD_LAST6,
    "card4": FieldKind.CARD_LAST4,
    "name4": FieldKind.NAME,
    "name4lower": FieldKind.NAME,
    "name": FieldKind.NAME,
    "firstname": FieldKind.NAME,
    "customer_id": FieldKind.CUSTOMER_ID,
}


# ─── Field / Format Extraction ────────────────────────────────────────────────

def extract_fields(text: str) -> list[FieldKind]:
    """General (bank-agnostic) field detection."""
    fields = []
    if any(PATTERNS[k].search(text) for k in ("dob_ddmmyyyy", "dob_ddmmyy", "dob_ddmm")):
        fields.append(FieldKind.DOB)
    if PATTERNS["card_last6"].search(text):
        fields.append(FieldKind.CARD_LAST6)
    if PATTERNS["card_last4"].search(text):
        fields.append(FieldKind.CARD_LAST4)
    if PATTERNS["name"].search(text):
        fields.append(FieldKind.NAME)
    if PATTERNS["customer_id"].search(text):
        fields.append(FieldKind.CUSTOMER_ID)
    return fields


def extract_format(text: str) -> str:
    """Human-readable password format mentioned in the text."""
    if PATTERNS["name_plus_ddmm"].search(text):
        suffix = " (lower case)" if PATTERNS["lower_case"].search(text) else ""
        return f"First 4 letters of name + DDMM{suffix}"
    if PATTERNS["dob_plus_last4"].search(text):
        return "DDMMYYYY + Last 4 digits"
    if PATTERNS["dob_ddmmyyyy"].search(text) and "ddmmyyyy" in text.lower():
        return "DDMMYYYY (Date of Birth)"
    if PATTERNS["dob_ddmmyy"].search(text):
        if PATTERNS["card_last6"].search(text):
            return "DDMMYY + Last 6 digits"
        return "DDMMYY (Date of Birth)"
    if PATTERNS["dob_ddmmyyyy"].search(text):
        return "DDMMYYYY (Date of Birth)"
    if PATTERNS["card_last6"].search(text):
        return "Last 6 digits of card"
    if PATTERNS["card_last4"].search(text):
        return "Last 4 digits of card"
    if PATTERNS["dob_plus_card"].search(text):
        return "DDMM + Last 4 digits"
    if PATTERNS["customer_id"].search(text):
        return "8-digit Customer ID"
    return "Password protected (format not specified)"


def build_instructions(fields: list[FieldKind], fmt: str) -> str:
    if not fields:
        return "This statement appears to be password protected. Please provide your details to help unlock it."
    wanted = ", ".join(FIELD_LABELS[f] for f in fields)
    return f"To unlock this statement, please provide {wanted}. Format: {fmt}"


def bank_specific_fields(bank_code: str, text: str) -> list[FieldKind]:
    for pattern, fields in BANK_PATTERNS.get(bank_code, []):
        if pattern.search(text):
            return list(fields)
    return []


# ─── Analyzer ─────────────────────────────────────────────────────────────────

def analyze_hint(email_body: str, bank_code: str, store=None) -> PasswordRequirement:
    """
    Work out the password requirement for a bank from the statement email.

    A non-low-confidence pattern already in ``store`` wins; otherwise the
    bank-specific regexes are tried, then the general ones. High-confidence
    regex results are written back to the store.
    """
    code = (bank_code or "").strip().lower()

    if store is not None:
        record = store.get(code)
        if record is not None and record.confidence != PatternConfidence.LOW:
            logger.info("Using learned password pattern for %s", code)
            return PasswordRequirement(
                bank_code=code,
                fields=record.fields,
                format=record.format,
                instructions=build_instructions(record.fields, record.format),
                confidence=record.confidence,
                source="cache",
            )

    requirement = _analyze_with_regex(email_body or "", code)
    logger.info(
        "%s password hint: fields=%s format=%r confidence=%s",
        code, [f.value for f in requirement.fields], requirement.format, requirement.confidence.value,
    )

    if store is not None and requirement.confidence == PatternConfidence.HIGH:
        learned = {"fields": requirement.fields, "format": requirement.format, "confidence": requirement.confidence}
        if record is None:
            record = PatternRecord(bank_code=code, **learned)
        else:
            # Keep the winning source tag and attempt counts
            record = record.model_copy(update=learned)
        store.put(code, record)
    return requirement


def _analyze_with_regex(text: str, code: str) -> PasswordRequirement:
    fmt = extract_format(text)

    fields = bank_specific_fields(code, text)
    if fields:
        return PasswordRequirement(
            bank_code=code,
            fields=fields,
            format=fmt,
            instructions=build_instructions(fields, fmt),
            confidence=PatternConfidence.HIGH,
        )

    fields = extract_fields(text)
    if not fields:
        fallback = DEFAULT_FIELDS.get(code, [FieldKind.DOB, FieldKind.CARD_LAST4])
        return PasswordRequirement(
            bank_code=code,
            fields=fallback,
            format="Password protected (format not detected)",
            instructions=build_instructions(fallback, "not detected"),
            confidence=PatternConfidence.LOW,
        )

    specific = "DDMMYYYY" in fmt or "Last 4" in fmt
    return PasswordRequirement(
        bank_code=code,
        fields=fields,
        format=fmt,
        instructions=build_instructions(fields, fmt),
        confidence=PatternConfidence.HIGH if specific else PatternConfidence.MEDIUM,
    )


def preferred_sources(requirement: Optional[PasswordRequirement]) -> list[str]:
    """
    Builder source tags of the bank's policy that use exactly the required fields.

    Feed the result to ``passwords.generate(..., preferred_sources=...)``.
    """
    if requirement is None or not requirement.fields or requirement.confidence == PatternConfidence.LOW:
        return []
    wanted = set(requirement.fields)
    policy = get_policy(requirement.bank_code)
    sources = []
    for builder in policy.builders:
        used = {PART_FIELDS.get(part) for part in builder.source.split("+")}
        if used == wanted:
            sources.append(builder.source)
    return sources
