"""
Statement Parser: turns extracted statement text into a validated ParsedStatement.

Runs as an explicit state machine:

    DETECTING -> EXTRACTING_PRIMARY -> VALIDATING_PRIMARY
        -> SUCCEEDED
        -> ESCALATING_RETRY -> VALIDATING_RETRY -> SUCCEEDED | FAILED
        -> FAILED

Transition guards are the validation result and the per-statement cost
ceiling. Every provider payload is post-processed and re-validated here; the
provider's own types are never trusted.
"""
from __future__ import annotations

import logging
import time
from typing import List, Optional

from agents.categorizer import map_category
from agents.confidence import score
from agents.normalization import postprocess_content
from agents.prompts import get_bank_example
from agents.validation import validate
from config import settings
from exceptions import LLMResponseError, ToolUnavailableError
from models import BankCode, FailureKind, ParseState
from schemas import CostTracker, LLMResponse, ParsedStatement, ParseOutcome
from services.llm_client import LLMProvider, get_provider
from services.pdf_processor import extract_preview, is_likely_scanned

logger = logging.getLogger("StatementPipeline.Parser")

TERMINAL_STATES = {ParseState.SUCCEEDED, ParseState.FAILED}


class _ParseRun:
    """Mutable state of a single parse() call. Never shared between statements."""

    def __init__(self, text: str, bank_hint: Optional[str], cost: CostTracker):
        self.text = text
        self.bank: Optional[str] = bank_hint.upper() if bank_hint else None
        self.cost = cost
        self.trace: List[ParseState] = []
        self.response: Optional[LLMResponse] = None
        self.content: Optional[ParsedStatement] = None
        self.warnings: List[str] = []
        self.errors: List[str] = []
        self.failure: Optional[FailureKind] = None
        self.error: Optional[str] = None
        self.model: Optional[str] = None
        self.provider: Optional[str] = None

    def fail(self, kind: FailureKind, message: str) -> ParseState:
        self.failure = kind
        self.error = message
        return ParseState.FAILED


class StatementParser:
    """LLM orchestrator with bounded escalation to a stronger model."""

    def __init__(
        self,
        provider: LLMProvider = None,
        primary_model: str = None,
        escalation_model: str = None,
        max_cost: float = None,
    ):
        self.provider = provider or get_provider()
        self.primary_model = primary_model or settings.LLM_PRIMARY_MODEL
        self.escalation_model = escalation_model or settings.LLM_ESCALATION_MODEL
        self.max_cost = settings.MAX_COST_PER_STATEMENT if max_cost is None else max_cost

    async def parse(self, text: str, bank_hint: str = None, cost: CostTracker = None) -> ParseOutcome:
        """Parse one statement's text. Failures come back as a typed outcome, never raised."""
        start = time.monotonic()
        if cost is None:
            cost = CostTracker(ceiling=self.max_cost)
        run = _ParseRun(text, bank_hint, cost)

        if is_likely_scanned(text):
            run.trace.append(ParseState.FAILED)
            run.fail(FailureKind.SCANNED_DOCUMENT, "Text looks scanned or garbled; refusing to send it to the model")
            return self._outcome(run, start)

        handlers = {
            ParseState.DETECTING: self._detect,
            ParseState.EXTRACTING_PRIMARY: self._extract_primary,
            ParseState.VALIDATING_PRIMARY: self._validate_primary,
            ParseState.ESCALATING_RETRY: self._escalate,
            ParseState.VALIDATING_RETRY: self._validate_retry,
        }
        state = ParseState.EXTRACTING_PRIMARY if run.bank else ParseState.DETECTING
        while state not in TERMINAL_STATES:
            run.trace.append(state)
            try:
                state = await handlers[state](run)
            except ToolUnavailableError as e:
                logger.error(f"❌ LLM provider unavailable: {e}")
                state = run.fail(FailureKind.TOOL_UNAVAILABLE, str(e))
        run.trace.append(state)

        if state == ParseState.SUCCEEDED:
            self._finalise(run)
            logger.info(
                f"✅ Parsed {len(run.content.transactions)} transactions "
                f"(bank={run.bank}, model={run.model}, cost=₹{run.cost.spent:.4f})"
            )
        else:
            logger.warning(f"⚠️ Parse failed ({run.failure.value}): {run.error}")
        return self._outcome(run, start)

    # ─── States ───────────────────────────────────────────────────────────────

    async def _detect(self, run: _ParseRun) -> ParseState:
        if run.cost.exceeded:
            return self._ceiling_reached(run)
        try:
            detection = await self.provider.detect_bank(extract_preview(run.text))
        except ToolUnavailableError:
            raise
        except Exception as e:
            # Detection only picks the few-shot example; carry on without it
            logger.warning(f"⚠️ Bank detection failed, continuing as OTHER: {e}")
            run.bank = BankCode.OTHER.value
            return ParseState.EXTRACTING_PRIMARY
        run.cost.add(detection.cost)
        run.bank = detection.bank or BankCode.OTHER.value
        logger.info(f"🏦 Detected bank: {run.bank} (confidence {detection.confidence:.1f})")
        return ParseState.EXTRACTING_PRIMARY

    async def _extract_primary(self, run: _ParseRun) -> ParseState:
        return await self._call_model(run, self.primary_model, ParseState.VALIDATING_PRIMARY)

    async def _validate_primary(self, run: _ParseRun) -> ParseState:
        if self._check(run):
            return ParseState.SUCCEEDED
        if not run.cost.can_escalate():
            logger.info(
                f"💸 Not escalating: spent ₹{run.cost.spent:.4f} of ₹{run.cost.ceiling:.2f} ceiling"
            )
            return run.fail(
                FailureKind.SCHEMA_VALIDATION_FAILED,
                "Primary extraction failed validation and the budget does not allow escalation",
            )
        return ParseState.ESCALATING_RETRY

    async def _escalate(self, run: _ParseRun) -> ParseState:
        logger.info(f"🔁 Escalating to {self.escalation_model}")
        return await self._call_model(run, self.escalation_model, ParseState.VALIDATING_RETRY)

    async def _validate_retry(self, run: _ParseRun) -> ParseState:
        if self._check(run):
            return ParseState.SUCCEEDED
        return run.fail(FailureKind.SCHEMA_VALIDATION_FAILED, "Escalated extraction failed validation")

    # ─── Helpers ──────────────────────────────────────────────────────────────

    def _ceiling_reached(self, run: _ParseRun) -> ParseState:
        return run.fail(
            FailureKind.COST_CEILING_EXCEEDED,
            f"Cost ceiling ₹{run.cost.ceiling:.2f} reached (spent ₹{run.cost.spent:.4f})",
        )

    async def _call_model(self, run: _ParseRun, model: str, next_state: ParseState) -> ParseState:
        if run.cost.exceeded:
            return self._ceiling_reached(run)
        run.model = model
        run.response = None
        try:
            response = await self.provider.parse_statement(
                run.text,
                bank_hint=run.bank,
                few_shot=get_bank_example(run.bank) or None,
                model=model,
            )
        except LLMResponseError as e:
            # Unparseable JSON after the provider's retries counts as invalid output
            run.cost.add(e.details.get("cost", 0.0))
            run.errors = [str(e)]
            return next_state
        run.cost.add(response.cost)
        run.response = response
        run.provider = response.provider
        return next_state

    def _check(self, run: _ParseRun) -> bool:
        """Post-process and validate the latest response; keeps errors for the failure report."""
        if run.response is None:
            return False
        content, fixes = postprocess_content(run.response.content)
        report = validate(content)
        if not report.valid:
            run.errors = report.errors
            logger.info(f"📋 {run.model} output invalid ({len(report.errors)} errors)")
            return False
        run.content = report.content
        run.errors = []
        run.warnings = fixes + report.warnings
        return True

    def _finalise(self, run: _ParseRun) -> None:
        for txn in run.content.transactions:
            if txn.category is None:
                txn.category = map_category(txn.description, amount=txn.amount, sub_category=txn.sub_category)
        if run.bank in (None, BankCode.OTHER.value) and run.content.bank:
            run.bank = run.content.bank

    def _outcome(self, run: _ParseRun, start: float) -> ParseOutcome:
        succeeded = run.content is not None and run.failure is None
        return ParseOutcome(
            success=succeeded,
            content=run.content if succeeded else None,
            provider=run.provider or self.provider.name,
            model=run.model,
            bank=run.bank,
            cost=run.cost.spent,
            latency_ms=(time.monotonic() - start) * 1000,
            confidence=score(run.content) if succeeded else None,
            warnings=run.warnings if succeeded else [],
            errors=run.errors,
            failure=run.failure,
            error=run.error,
            state_trace=run.trace,
        )
