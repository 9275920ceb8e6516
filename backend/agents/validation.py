"""
Statement validation: schema errors block acceptance, business checks warn.
"""
import logging
from typing import Union

from pydantic import ValidationError

from models import TransactionType
from schemas import ParsedStatement, ValidationReport

logger = logging.getLogger("StatementPipeline.Validator")

MIN_TRANSACTIONS = 2
MAX_TRANSACTIONS = 500
TOTALS_TOLERANCE = 0.10


def format_errors(exc: ValidationError) -> list[str]:
    """``path: message`` strings, e.g. ``transactions.0.amount: Input should be greater than 0``."""
    errors = []
    for err in exc.errors():
        path = ".".join(str(p) for p in err["loc"])
        errors.append(f"{path}: {err['msg']}" if path else err["msg"])
    return errors


def validate(content: Union[dict, ParsedStatement]) -> ValidationReport:
    """Validate a provisional payload (or an already-typed statement)."""
    if isinstance(content, ParsedStatement):
        statement = content
    else:
        try:
            statement = ParsedStatement.model_validate(content)
        except ValidationError as e:
            errors = format_errors(e)
            logger.debug("Schema validation failed with %d errors", len(errors))
            return ValidationReport(valid=False, errors=errors)

    errors: list[str] = []
    warnings: list[str] = []
    period = statement.statement_period
    start, end, due = period.start_date, period.end_date, period.due_date

    if start > end:
        errors.append("statement_period: start date must not be after end date")
    if end > due:
        warnings.append("Due date is before statement end date (unusual)")

    for idx, txn in enumerate(statement.transactions, start=1):
        if txn.date < start or txn.date > end:
            warnings.append(f"Transaction {idx} date {txn.date.isoformat()} outside statement period")

    count = len(statement.transactions)
    if count < MIN_TRANSACTIONS:
        warnings.append(f"Very few transactions found (< {MIN_TRANSACTIONS}), unusually sparse")
    if count > MAX_TRANSACTIONS:
        warnings.append(f"Unusually high number of transactions (> {MAX_TRANSACTIONS}), unusually dense")

    total_debits = sum(t.amount for t in statement.transactions if t.type == TransactionType.DEBIT)
    expected = statement.summary.purchase_amount
    if expected is None:
        expected = total_debits
    if abs(total_debits - expected) > expected * TOTALS_TOLERANCE:
        warnings.append(
            f"Totals mismatch: debits {total_debits:.2f} vs purchase amount {expected:.2f} (>10% difference)"
        )

    return ValidationReport(
        valid=not errors,
        errors=errors,
        warnings=warnings,
        content=statement,
    )
