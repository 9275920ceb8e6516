"""Heuristic 0-100 confidence score for a parsed statement. Advisory only."""
from schemas import ParsedStatement

UNIDENTIFIED_BANKS = {"OTHER", "UNKNOWN"}

WEIGHTS = {
    "bank": 10,
    "card": 20,
    "period": 15,
    "transactions": 40,
    "summary": 15,
}
MAX_SCORE = sum(WEIGHTS.values())


def score(content: ParsedStatement) -> int:
    points = 0.0

    # Bank identified
    if content.bank and content.bank.upper() not in UNIDENTIFIED_BANKS:
        points += 10

    # Card details
    card = content.card_details
    if card.masked_number and card.card_type:
        points += 10
    if card.credit_limit and card.credit_limit > 0:
        points += 10

    # Period consistency
    period = content.statement_period
    if period.start_date < period.end_date < period.due_date:
        points += 15

    # Transactions: count, average amount, date validity
    txns = content.transactions
    count = len(txns)
    if count >= 5:
        points += 10
    if count >= 10:
        points += 10
    if count:
        avg = sum(t.amount for t in txns) / count
        if 100 < avg < 100000:
            points += 10
        valid_dates = sum(1 for t in txns if t.date is not None)
        points += min(10.0, valid_dates / count * 10)

    # Summary plausibility
    summary = content.summary
    if summary.total_dues > 0:
        points += 5
    if 0 < summary.minimum_due < summary.total_dues:
        points += 5
    if summary.purchase_amount is not None and summary.purchase_amount > 0:
        points += 5

    return max(0, min(100, round(points / MAX_SCORE * 100)))
