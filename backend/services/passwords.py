"""
Password candidate generation for encrypted card statements.

Each bank gets a declarative policy: the identity fields it needs, a cap on
attempts, and an ordered list of small builder functions. Adding a bank is a
new table entry, never a new branch.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from models import FieldKind
from schemas import IdentityHints, PasswordCandidate

logger = logging.getLogger("StatementPipeline.Passwords")

WEAK_DEFAULTS = ("0000", "1234", "123456", "password")
GENERIC_MAX_ATTEMPTS = 10


@dataclass(frozen=True)
class CandidateBuilder:
    source: str
    build: Callable[[IdentityHints], Optional[str]]


@dataclass(frozen=True)
class BankPasswordPolicy:
    bank_code: str
    required_fields: tuple
    max_attempts: int
    builders: tuple


# ─── Builder Parts ────────────────────────────────────────────────────────────

def _hint(attr: str) -> Callable[[IdentityHints], Optional[str]]:
    return lambda hints: getattr(hints, attr)


def _lower(part: Callable[[IdentityHints], Optional[str]]) -> Callable[[IdentityHints], Optional[str]]:
    def build(hints):
        value = part(hints)
        return value.lower() if value else None
    return build


def _const(value: str) -> Callable[[IdentityHints], Optional[str]]:
    return lambda hints: value


PARTS = {
    "ddmmyyyy": _hint("ddmmyyyy"),
    "ddmmyy": _hint("ddmmyy"),
    "ddmm": _hint("ddmm"),
    "card6": _hint("card_last6"),
    "card4": _hint("card4"),
    "name4": _hint("name_first4"),
    "name4lower": _lower(_hint("name_first4")),
    "name": _hint("name_letters"),
    "firstname": _hint("first_name"),
    "customer_id": _hint("customer_id"),
}


def _builder(source: str) -> CandidateBuilder:
    """Build a candidate builder from a source tag such as ``"ddmmyy+card6"``.

    Every part named in the tag must resolve for the candidate to exist.
    """
    parts = [PARTS[name] for name in source.split("+")]

    def build(hints: IdentityHints) -> Optional[str]:
        values = [part(hints) for part in parts]
        if any(not v for v in values):
            return None
        return "".join(values)

    return CandidateBuilder(source=source, build=build)


def _builders(*sources: str) -> tuple:
    return tuple(_builder(s) for s in sources)


def _policy(bank_code, required, max_attempts, *sources) -> BankPasswordPolicy:
    return BankPasswordPolicy(
        bank_code=bank_code,
        required_fields=tuple(required),
        max_attempts=max_attempts,
        builders=_builders(*sources),
    )


# ─── Policy Table ─────────────────────────────────────────────────────────────

_HSBC_SOURCES = (
    "card6", "ddmmyyyy", "ddmmyy", "ddmm",
    "ddmmyy+card6", "ddmmyyyy+card6", "ddmm+card6", "card6+ddmmyy",
    "card4", "name4+ddmm",
)

_AU_SOURCES = (
    "name4+ddmm", "name4+ddmmyy", "customer_id", "name4lower+ddmm",
    "ddmmyyyy", "ddmm", "ddmmyy", "name4+ddmmyyyy",
)

_POLICIES = [
    _policy("hsbc", [FieldKind.DOB, FieldKind.CARD_LAST6], 10, *_HSBC_SOURCES),
    _policy("sc", [FieldKind.DOB, FieldKind.CARD_LAST6], 10, *_HSBC_SOURCES),
    _policy(
        "hdfc", [FieldKind.NAME, FieldKind.DOB], 8,
        "name4+ddmm", "name4lower+ddmm", "name4+card4", "ddmmyyyy",
        "name4+ddmmyyyy", "name4", "name+ddmmyyyy", "firstname+ddmm",
    ),
    _policy(
        "axis", [FieldKind.NAME, FieldKind.DOB], 8,
        "name4+ddmm", "name4+card4", "ddmmyyyy", "ddmmyy",
        "name4lower+ddmm", "name4+ddmmyy", "ddmm", "name4+ddmmyyyy",
    ),
    _policy(
        "icici", [FieldKind.NAME, FieldKind.DOB], 8,
        "name4lower+ddmm", "name4+ddmm", "ddmm+card4", "ddmmyyyy",
        "name4lower+ddmmyy", "ddmmyy", "card4", "ddmm",
    ),
    _policy(
        "indusind", [FieldKind.NAME, FieldKind.DOB], 8,
        "name4lower+ddmm", "name4+ddmm", "name4lower+ddmmyy", "name4+ddmmyy",
        "ddmmyyyy", "ddmmyy", "ddmm", "card4",
    ),
    _policy(
        "yes", [FieldKind.NAME, FieldKind.DOB], 8,
        "name4+ddmm", "name4lower+ddmm", "ddmmyyyy", "name4+ddmmyy",
        "ddmmyy", "ddmm", "name4+card4", "card4",
    ),
    _policy(
        "sbi", [FieldKind.DOB, FieldKind.CARD_LAST4], 8,
        "ddmmyyyy+card4", "ddmm+card4", "card4", "ddmmyyyy",
        "ddmmyy+card4", "ddmm", "ddmmyy", "name4+card4",
    ),
    _policy(
        "rbl", [FieldKind.DOB], 6,
        "ddmmyyyy", "name4+ddmmyy", "card4", "ddmmyy", "ddmm", "name4+ddmm",
    ),
    _policy("idfc", [FieldKind.DOB], 4, "ddmm", "ddmmyyyy", "ddmmyy", "name4+ddmm"),
    _policy("au", [FieldKind.NAME, FieldKind.DOB], 8, *_AU_SOURCES),
    _policy("aubank", [FieldKind.NAME, FieldKind.DOB], 8, *_AU_SOURCES),
    _policy(
        "kotak", [], 6,
        "card4", "ddmmyyyy", "ddmmyy", "ddmm", "name4+ddmm", "name4lower+ddmm",
    ),
]

POLICIES = {p.bank_code: p for p in _POLICIES}

GENERIC_POLICY = BankPasswordPolicy(
    bank_code="generic",
    required_fields=(),
    max_attempts=GENERIC_MAX_ATTEMPTS,
    builders=tuple(CandidateBuilder(source=f"default:{v}", build=_const(v)) for v in WEAK_DEFAULTS)
    + _builders("ddmmyyyy", "ddmmyy", "ddmm", "card4", "card6", "name4+ddmm"),
)


def get_policy(bank_code: str) -> BankPasswordPolicy:
    """Return the bank's policy, or the generic fallback for unknown banks."""
    return POLICIES.get((bank_code or "").strip().lower(), GENERIC_POLICY)


def supported_banks() -> list[str]:
    return sorted(POLICIES)


# ─── Generation ───────────────────────────────────────────────────────────────

def missing_required_fields(bank_code: str, hints: IdentityHints) -> list[str]:
    """Names of the policy's required fields absent from ``hints``, in policy order."""
    policy = get_policy(bank_code)
    return [field.value for field in policy.required_fields if not hints.has(field)]


def generate(
    bank_code: str,
    hints: IdentityHints,
    preferred_sources: Optional[Iterable[str]] = None,
) -> list[PasswordCandidate]:
    """
    Ordered, deduplicated, capped password candidates for one statement.

    Returns an empty list when a required field is missing; the caller reports
    that as missing input rather than trying common passwords. Candidates whose
    source tag appears in ``preferred_sources`` (learned from earlier successes)
    are moved to the front.
    """
    policy = get_policy(bank_code)
    missing = missing_required_fields(bank_code, hints)
    if missing:
        logger.info("%s policy needs %s; no candidates generated", policy.bank_code, ", ".join(missing))
        return []

    candidates = []
    seen = set()
    for builder in policy.builders:
        value = builder.build(hints)
        if not value or value in seen:
            continue
        seen.add(value)
        candidates.append(PasswordCandidate(value=value, source=builder.source))

    if not candidates and not policy.required_fields:
        # Nothing to build from; only banks without requirements fall back to weak defaults
        candidates = [PasswordCandidate(value=v, source=f"default:{v}") for v in WEAK_DEFAULTS]

    if preferred_sources:
        order = {source: i for i, source in enumerate(preferred_sources)}
        candidates.sort(key=lambda c: order.get(c.source, len(order)))

    capped = candidates[: policy.max_attempts]
    logger.debug(
        "%s: %d password candidates (%s)",
        policy.bank_code, len(capped), ", ".join(c.source for c in capped),
    )
    return capped
