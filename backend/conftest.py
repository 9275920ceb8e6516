"""Shared fixtures: fake LLM provider, fake decryptor, generated PDFs, stub qpdf."""
import copy
import os
import stat
import sys
import textwrap

import fitz  # PyMuPDF
import pytest

from schemas import BankDetection, DecryptAttemptResult, IdentityHints, LLMResponse, TokenUsage
from services.llm_client import LLMProvider
from services.pattern_store import InMemoryPatternStore

STATEMENT_TEXT = textwrap.dedent("""\
    HSBC Bank India - Credit Card Statement
    Card Number: XXXX XXXX XXXX 4400   Visa Platinum
    Statement Period: 01/01/2024 to 31/01/2024   Payment Due Date: 20/02/2024
    Credit Limit: 2,00,000.00   Available Credit: 1,50,000.00
    Total Amount Due: 12,345.00   Minimum Amount Due: 620.00
    05/01/2024  SWIGGY BANGALORE            450.00
    09/01/2024  AMAZON PAY INDIA           2,811.94
    14/01/2024  HPCL FUEL STATION          3,100.00
    20/01/2024  PAYMENT RECEIVED - THANK YOU   5,000.00 Cr
    25/01/2024  FINANCE CHARGE                 312.00
""")

HSBC_EMAIL = (
    "Your HSBC credit card statement is attached. To open it, use your date of birth "
    "in DDMMYY format followed by the last 6 digits of your credit card number."
)


def valid_content(**overrides) -> dict:
    """A payload that passes validation, in the shape the model returns."""
    content = {
        "bank": "HSBC",
        "card_details": {
            "card_type": "Visa Platinum",
            "masked_number": "XXXX XXXX XXXX 4400",
            "credit_limit": 200000.0,
            "available_credit": 150000.0,
        },
        "owner_details": {"name": "Priya Sharma", "email": None},
        "statement_period": {
            "start_date": "2024-01-01",
            "end_date": "2024-01-31",
            "due_date": "2024-02-20",
        },
        "summary": {
            "total_dues": 12345.0,
            "minimum_due": 620.0,
            "previous_balance": 9000.0,
            "payment_received": 5000.0,
            "purchase_amount": 6361.94,
        },
        "transactions": [
            {"date": "2024-01-05", "description": "SWIGGY BANGALORE", "amount": 450.0,
             "type": "Dr", "category": None, "sub_category": None},
            {"date": "2024-01-09", "description": "AMAZON PAY INDIA", "amount": 2811.94,
             "type": "Dr", "category": "amazon_spends", "sub_category": None},
            {"date": "2024-01-14", "description": "HPCL FUEL STATION", "amount": 3100.0,
             "type": "Dr", "category": "fuel", "sub_category": None},
            {"date": "2024-01-20", "description": "PAYMENT RECEIVED - THANK YOU", "amount": 5000.0,
             "type": "Cr", "category": None, "sub_category": None},
        ],
    }
    content.update(overrides)
    return copy.deepcopy(content)


def invalid_content() -> dict:
    content = valid_content()
    content["transactions"] = []
    return content


class FakeProvider(LLMProvider):
    """Scripted provider: each parse call pops the next payload (or raises it)."""

    name = "fake"

    def __init__(self, payloads=None, bank="HSBC", detect_cost=0.01, call_cost=0.1, detect_error=None):
        self.payloads = list(payloads or [])
        self.bank = bank
        self.detect_cost = detect_cost
        self.call_cost = call_cost
        self.detect_error = detect_error
        self.detect_calls = 0
        self.parse_calls = []

    async def detect_bank(self, preview):
        self.detect_calls += 1
        if self.detect_error is not None:
            raise self.detect_error
        return BankDetection(bank=self.bank, confidence=0.9, cost=self.detect_cost)

    async def parse_statement(self, text, bank_hint=None, few_shot=None, model=None):
        self.parse_calls.append({"model": model, "bank_hint": bank_hint, "few_shot": few_shot})
        payload = self.payloads.pop(0)
        if isinstance(payload, Exception):
            raise payload
        return LLMResponse(
            content=payload,
            provider=self.name,
            model=model or "fake-model",
            cost=self.call_cost,
            tokens=TokenUsage(input=1000, output=500),
        )


class FakeDecryptor:
    """Opens the statement only for ``password``; records every attempt."""

    def __init__(self, password, plain_bytes, error=None):
        self.password = password
        self.plain_bytes = plain_bytes
        self.error = error
        self.attempts = []

    async def attempt(self, pdf_bytes, password):
        self.attempts.append(password)
        if self.error is not None:
            raise self.error
        if password == self.password:
            return DecryptAttemptResult(success=True, decrypted_bytes=self.plain_bytes)
        return DecryptAttemptResult(success=False, error="invalid password", wrong_password=True)


def make_pdf(text: str = STATEMENT_TEXT, user_pw: str = None) -> bytes:
    doc = fitz.open()
    try:
        page = doc.new_page()
        page.insert_text((40, 60), text, fontsize=9)
        if user_pw:
            return doc.tobytes(encryption=fitz.PDF_ENCRYPT_AES_256, user_pw=user_pw, owner_pw=user_pw + "-owner")
        return doc.tobytes()
    finally:
        doc.close()


# ─── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture
def hsbc_hints():
    return IdentityHints(dob="15101985", card_last6="404400")


@pytest.fixture
def statement_pdf():
    return make_pdf()


@pytest.fixture
def encrypted_pdf():
    return make_pdf(user_pw="404400")


@pytest.fixture
def pattern_store():
    return InMemoryPatternStore()


QPDF_STUB = """#!/bin/sh
if [ "$1" = "--version" ]; then
  echo "qpdf version 11.9.0"
  exit 0
fi
pw="${1#--password=}"
in="$3"
out="$4"
case "$pw" in
  secret) cp "$in" "$out"; exit 0 ;;
  warn) cp "$in" "$out"; echo "WARNING: $in: object 5 0 has unexpected xref entry" >&2; exit 3 ;;
  empty) exit 0 ;;
  slow) exec sleep 10 ;;
  *) echo "qpdf: $in: invalid password" >&2; exit 2 ;;
esac
"""


@pytest.fixture
def qpdf_stub(tmp_path):
    """Executable that mimics qpdf's exit codes. POSIX shells only."""
    if sys.platform == "win32":
        pytest.skip("qpdf stub is a shell script")
    path = tmp_path / "qpdf"
    path.write_text(QPDF_STUB)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture
def work_dir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return path


def leftover(path) -> list:
    return os.listdir(path)
