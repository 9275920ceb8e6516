"""Password hint analysis of bank statement emails."""
from conftest import HSBC_EMAIL
from models import FieldKind, PatternConfidence
from schemas import PatternRecord
from services.password_hints import analyze_hint, extract_fields, preferred_sources

HDFC_EMAIL = (
    "The password is the first four letters of your name (in capitals) followed by "
    "your date and month of birth in DDMM format."
)


def test_bank_specific_phrasing_is_high_confidence():
    requirement = analyze_hint(HSBC_EMAIL, "HSBC")

    assert requirement.bank_code == "hsbc"
    assert requirement.fields == [FieldKind.DOB, FieldKind.CARD_LAST6]
    assert requirement.format == "DDMMYY + Last 6 digits"
    assert requirement.confidence == PatternConfidence.HIGH
    assert "last 6 digits of your card" in requirement.instructions


def test_hdfc_name_and_ddmm():
    requirement = analyze_hint(HDFC_EMAIL, "hdfc")

    assert requirement.fields == [FieldKind.NAME, FieldKind.DOB]
    assert requirement.format == "First 4 letters of name + DDMM"
    assert preferred_sources(requirement)[:2] == ["name4+ddmm", "name4lower+ddmm"]


def test_preferred_sources_match_required_fields_exactly():
    sources = preferred_sources(analyze_hint(HSBC_EMAIL, "hsbc"))
    assert sources == ["ddmmyy+card6", "ddmmyyyy+card6", "ddmm+card6", "card6+ddmmyy"]


def test_general_phrasing_is_medium_confidence():
    requirement = analyze_hint("Your password is your name as printed on the card.", "kotak")

    assert requirement.fields == [FieldKind.NAME]
    assert requirement.confidence == PatternConfidence.MEDIUM


def test_nothing_detected_falls_back_to_low_confidence_defaults():
    requirement = analyze_hint("Please find your statement attached.", "hdfc")

    assert requirement.fields == [FieldKind.DOB]
    assert requirement.confidence == PatternConfidence.LOW
    assert preferred_sources(requirement) == []


def test_extract_fields_detects_card_and_dob():
    fields = extract_fields("Enter your DOB (DDMMYYYY) and the last 4 digits of your card")
    assert fields == [FieldKind.DOB, FieldKind.CARD_LAST4]


def test_high_confidence_result_is_cached(pattern_store):
    analyze_hint(HSBC_EMAIL, "hsbc", store=pattern_store)

    record = pattern_store.get("hsbc")
    assert record is not None
    assert record.fields == [FieldKind.DOB, FieldKind.CARD_LAST6]

    cached = analyze_hint("", "hsbc", store=pattern_store)
    assert cached.source == "cache"
    assert cached.fields == [FieldKind.DOB, FieldKind.CARD_LAST6]


def test_low_confidence_result_is_not_cached(pattern_store):
    analyze_hint("Please find your statement attached.", "sbi", store=pattern_store)
    assert pattern_store.get("sbi") is None


def test_email_hint_keeps_learned_source_and_counts(pattern_store):
    pattern_store.put("hsbc", PatternRecord(
        bank_code="hsbc",
        fields=[FieldKind.DOB],
        source="ddmm",
        confidence=PatternConfidence.LOW,
        success_count=1,
        total_attempts=5,
    ))

    analyze_hint(HSBC_EMAIL, "hsbc", store=pattern_store)

    record = pattern_store.get("hsbc")
    assert record.fields == [FieldKind.DOB, FieldKind.CARD_LAST6]
    assert record.confidence == PatternConfidence.HIGH
    assert record.source == "ddmm"
    assert (record.success_count, record.total_attempts) == (1, 5)
