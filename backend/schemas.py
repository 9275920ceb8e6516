import re
from datetime import date
from typing import Annotated, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from models import Category, FailureKind, FieldKind, ParseState, PatternConfidence, TransactionType

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _require_iso_date(value):
    """Accept only YYYY-MM-DD strings (or date objects); pydantic checks the calendar."""
    if isinstance(value, date):
        return value
    if isinstance(value, str) and ISO_DATE_RE.match(value.strip()):
        return value.strip()
    raise ValueError("Date must be YYYY-MM-DD")


IsoDate = Annotated[date, BeforeValidator(_require_iso_date)]


def _digits(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = re.sub(r"\D", "", str(value))
    return cleaned or None


# ─── Identity Hints ───────────────────────────────────────────────────────────

class IdentityHints(BaseModel):
    """Partial identity supplied by the cardholder. Never persisted."""
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    dob: Optional[str] = None  # DDMMYYYY or DDMMYY
    card_last4: Optional[str] = None
    card_last6: Optional[str] = None
    customer_id: Optional[str] = None

    @field_validator("name", "customer_id", mode="before")
    @classmethod
    def _strip_text(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("dob", mode="before")
    @classmethod
    def _normalise_dob(cls, v):
        dob = _digits(v)
        if dob is None:
            return None
        if len(dob) not in (6, 8):
            raise ValueError("dob must be DDMMYYYY or DDMMYY")
        return dob

    @field_validator("card_last4", mode="before")
    @classmethod
    def _normalise_last4(cls, v):
        digits = _digits(v)
        if digits is None:
            return None
        if len(digits) < 4:
            raise ValueError("card_last4 needs 4 digits")
        return digits[-4:]

    @field_validator("card_last6", mode="before")
    @classmethod
    def _normalise_last6(cls, v):
        digits = _digits(v)
        if digits is None:
            return None
        if len(digits) < 6:
            raise ValueError("card_last6 needs 6 digits")
        return digits[-6:]

    # ── derived forms used by password builders ──

    @property
    def ddmmyyyy(self) -> Optional[str]:
        if not self.dob:
            return None
        if len(self.dob) == 8:
            return self.dob
        # DDMMYY → assume 19YY
        return self.dob[:4] + "19" + self.dob[4:]

    @property
    def ddmmyy(self) -> Optional[str]:
        if not self.dob:
            return None
        if len(self.dob) == 8:
            return self.dob[:4] + self.dob[6:8]
        return self.dob

    @property
    def ddmm(self) -> Optional[str]:
        return self.dob[:4] if self.dob else None

    @property
    def card4(self) -> Optional[str]:
        if self.card_last4:
            return self.card_last4
        return self.card_last6[-4:] if self.card_last6 else None

    @property
    def name_letters(self) -> Optional[str]:
        if not self.name:
            return None
        letters = re.sub(r"[^A-Z]", "", self.name.upper())
        return letters or None

    @property
    def name_first4(self) -> Optional[str]:
        letters = self.name_letters
        if letters and len(letters) >= 4:
            return letters[:4]
        return None

    @property
    def first_name(self) -> Optional[str]:
        if not self.name:
            return None
        words = re.sub(r"[^A-Z\s]", "", self.name.upper()).split()
        return words[0] if words else None

    def has(self, field: FieldKind) -> bool:
        """True when the hint needed for ``field`` is present (card4 may come from card6)."""
        if field == FieldKind.NAME:
            return self.name_letters is not None
        if field == FieldKind.DOB:
            return self.dob is not None
        if field == FieldKind.CARD_LAST4:
            return self.card4 is not None
        if field == FieldKind.CARD_LAST6:
            return self.card_last6 is not None
        if field == FieldKind.CUSTOMER_ID:
            return self.customer_id is not None
        return False


# ─── Password Schemas ─────────────────────────────────────────────────────────

class PasswordCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str
    source: str  # provenance tag, e.g. "ddmmyy+card6"

    @property
    def masked(self) -> str:
        if len(self.value) <= 2:
            return "*" * len(self.value)
        return self.value[0] + "*" * (len(self.value) - 2) + self.value[-1]

    def __repr__(self) -> str:
        return f"PasswordCandidate(source={self.source!r}, value={self.masked!r})"

    __str__ = __repr__


class PasswordRequirement(BaseModel):
    """Password format a bank announced (e.g. in the statement email)."""
    bank_code: str
    fields: List[FieldKind] = []
    format: str = ""
    instructions: str = ""
    confidence: PatternConfidence = PatternConfidence.LOW
    source: str = "regex"  # regex / cache


class PatternRecord(BaseModel):
    """Learned password pattern for a bank. Contains no password values."""
    bank_code: str
    fields: List[FieldKind] = []
    source: Optional[str] = None
    format: str = ""
    confidence: PatternConfidence = PatternConfidence.MEDIUM
    success_count: int = 0
    total_attempts: int = 0

    model_config = ConfigDict(from_attributes=True)


# ─── Decrypt / Extract Schemas ────────────────────────────────────────────────

class DecryptAttemptResult(BaseModel):
    success: bool
    decrypted_bytes: Optional[bytes] = Field(default=None, repr=False)
    error: Optional[str] = None
    wrong_password: bool = False


class ExtractedText(BaseModel):
    text: str
    page_count: int
    is_likely_scanned: bool
    metadata: dict = {}


# ─── Statement Content Schemas ────────────────────────────────────────────────

class Transaction(BaseModel):
    date: IsoDate
    description: str = Field(min_length=1)
    amount: float = Field(gt=0)
    type: TransactionType
    category: Optional[Category] = None
    sub_category: Optional[str] = None


class CardDetails(BaseModel):
    card_type: str
    masked_number: str
    credit_limit: Optional[float] = Field(default=None, ge=0)
    available_credit: Optional[float] = Field(default=None, ge=0)


class OwnerDetails(BaseModel):
    name: str = Field(min_length=1)
    email: Optional[str] = None

    @field_validator("email", mode="before")
    @classmethod
    def _check_email(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        if not isinstance(v, str) or not EMAIL_RE.match(v.strip()):
            raise ValueError("Invalid email")
        return v.strip()


class StatementPeriod(BaseModel):
    start_date: IsoDate
    end_date: IsoDate
    due_date: IsoDate


class StatementSummary(BaseModel):
    total_dues: float
    minimum_due: float = Field(ge=0)
    previous_balance: float
    payment_received: Optional[float] = None
    purchase_amount: Optional[float] = Field(default=None, ge=0)


class ParsedStatement(BaseModel):
    """Canonical output of the pipeline for one statement."""
    bank: str = Field(min_length=1)
    card_details: CardDetails
    owner_details: OwnerDetails
    statement_period: StatementPeriod
    summary: StatementSummary
    transactions: List[Transaction] = Field(min_length=1)


class ValidationReport(BaseModel):
    valid: bool
    errors: List[str] = []
    warnings: List[str] = []
    content: Optional[ParsedStatement] = None


# ─── LLM Schemas ──────────────────────────────────────────────────────────────

class TokenUsage(BaseModel):
    input: int = 0
    output: int = 0


class CostTracker(BaseModel):
    """Running model spend for one statement, in rupees."""
    ceiling: float
    spent: float = 0.0
    calls: int = 0

    def add(self, cost: float) -> None:
        self.spent += cost
        self.calls += 1

    @property
    def exceeded(self) -> bool:
        return self.spent >= self.ceiling

    def can_escalate(self) -> bool:
        """Escalation to a stronger model is allowed only below half the ceiling."""
        return self.spent < self.ceiling / 2


class BankDetection(BaseModel):
    bank: str
    confidence: float = 0.0
    cost: float = 0.0
    latency_ms: float = 0.0


class LLMResponse(BaseModel):
    content: dict  # provisional, untrusted until validated
    provider: str
    model: str
    cost: float = 0.0
    latency_ms: float = 0.0
    tokens: TokenUsage = TokenUsage()


class ParseOutcome(BaseModel):
    success: bool
    content: Optional[ParsedStatement] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    bank: Optional[str] = None
    cost: float = 0.0
    latency_ms: float = 0.0
    confidence: Optional[int] = None
    warnings: List[str] = []
    errors: List[str] = []
    failure: Optional[FailureKind] = None
    error: Optional[str] = None
    state_trace: List[ParseState] = []


# ─── Pipeline Schemas ─────────────────────────────────────────────────────────

class Statement(BaseModel):
    encrypted_bytes: bytes = Field(repr=False)
    bank_code: str
    hints: IdentityHints = IdentityHints()
    filename: Optional[str] = None
    password_hint: Optional[str] = None  # body of the bank email that carried the PDF


class TriedCandidate(BaseModel):
    """A candidate as reported in failures: provenance tag and masked value only."""
    source: str
    masked: str


class PipelineFailure(BaseModel):
    kind: FailureKind
    message: str
    missing_fields: List[str] = []
    candidates_tried: List[TriedCandidate] = []
    validation_errors: List[str] = []


class PipelineResult(BaseModel):
    success: bool
    statement: Optional[ParsedStatement] = None
    confidence: Optional[int] = None
    warnings: List[str] = []
    cost: float = 0.0
    attempts: int = 0
    password_source: Optional[str] = None
    model: Optional[str] = None
    failure: Optional[PipelineFailure] = None
