import asyncio
import logging
import time
from typing import Iterable, List, Optional

from agents.extraction import StatementParser
from agents.prompts import BANK_CODES
from config import settings
from exceptions import (
    CostCeilingExceededError,
    ExtractionError,
    MissingRequiredFieldsError,
    PasswordNotFoundError,
    PipelineError,
    ScannedDocumentError,
    SchemaValidationError,
    ToolUnavailableError,
)
from models import BankCode, FailureKind, PatternConfidence
from schemas import (
    CostTracker,
    ParseOutcome,
    PasswordCandidate,
    PipelineFailure,
    PipelineResult,
    Statement,
    TriedCandidate,
)
from services import passwords, pdf_processor
from services.decryptor import Decryptor, is_encrypted
from services.password_hints import analyze_hint, preferred_sources
from services.pattern_store import PatternStore

logger = logging.getLogger("StatementPipeline.Orchestrator")

UNENCRYPTED_SOURCE = "unencrypted"

_PARSE_FAILURES = {
    FailureKind.SCANNED_DOCUMENT: ScannedDocumentError,
    FailureKind.COST_CEILING_EXCEEDED: CostCeilingExceededError,
    FailureKind.TOOL_UNAVAILABLE: ToolUnavailableError,
    FailureKind.EXTRACTION_FAILED: ExtractionError,
}


class _Run:
    """Per-statement state: cost accumulator, candidates tried, pattern store warnings."""

    def __init__(self, ceiling: float):
        self.cost = CostTracker(ceiling=ceiling)
        self.tried: List[PasswordCandidate] = []
        self.warnings: List[str] = []


class StatementPipeline:
    """
    Password guess → decrypt → extract → parse → validate, for one statement at a time.

    Candidates are tried strictly in order and the first one that decrypts is
    the only one whose text is parsed. ``process`` returns a PipelineResult for
    every failure in the taxonomy; only unexpected errors and cancellation
    propagate.
    """

    def __init__(
        self,
        parser: StatementParser = None,
        decryptor: Decryptor = None,
        pattern_store: Optional[PatternStore] = None,
        max_cost: float = None,
    ):
        self.parser = parser or StatementParser()
        self.decryptor = decryptor or Decryptor()
        self.pattern_store = pattern_store
        self.max_cost = settings.MAX_COST_PER_STATEMENT if max_cost is None else max_cost

    async def process(self, statement: Statement) -> PipelineResult:
        total_start = time.time()
        run = _Run(self.max_cost)
        label = statement.filename or statement.bank_code
        logger.info(f"🔮 Processing statement: {label} (bank={statement.bank_code})")

        try:
            result = await self._process(statement, run)
        except PipelineError as e:
            failure = self._failure(e, run)
            logger.warning(f"❌ {label} failed ({failure.kind.value}): {failure.message}")
            return PipelineResult(
                success=False,
                cost=run.cost.spent,
                attempts=len(run.tried),
                warnings=run.warnings,
                failure=failure,
            )

        logger.info(
            f"🏁 {label} done in {time.time() - total_start:.2f}s "
            f"({len(result.statement.transactions)} transactions, confidence {result.confidence}, "
            f"cost ₹{result.cost:.4f})"
        )
        return result

    async def process_many(self, statements: Iterable[Statement], concurrency: int = None) -> List[PipelineResult]:
        """Process statements concurrently; results keep the input order."""
        semaphore = asyncio.Semaphore(concurrency or settings.STATEMENT_CONCURRENCY)

        async def _one(statement: Statement) -> PipelineResult:
            async with semaphore:
                return await self.process(statement)

        return list(await asyncio.gather(*(_one(s) for s in statements)))

    # ─── Stages ───────────────────────────────────────────────────────────────

    async def _process(self, statement: Statement, run: _Run) -> PipelineResult:
        if not is_encrypted(statement.encrypted_bytes):
            logger.info("  📄 PDF is not encrypted, skipping password candidates")
            return await self._parse(statement, statement.encrypted_bytes, UNENCRYPTED_SOURCE, run)

        missing = passwords.missing_required_fields(statement.bank_code, statement.hints)
        if missing:
            raise MissingRequiredFieldsError(statement.bank_code, missing)

        candidates = passwords.generate(
            statement.bank_code,
            statement.hints,
            preferred_sources=self._preferred_sources(statement, run),
        )
        if not candidates:
            raise PasswordNotFoundError(f"No password candidates could be built for {statement.bank_code}")

        for index, candidate in enumerate(candidates, start=1):
            run.tried.append(candidate)
            logger.info(f"  🔑 Trying {candidate.source} ({candidate.masked}) [{index}/{len(candidates)}]")
            attempt = await self.decryptor.attempt(statement.encrypted_bytes, candidate.value)
            if not attempt.success:
                logger.debug("  Candidate %s failed: %s", candidate.source, attempt.error)
                continue

            logger.info(f"  🔓 Decrypted with {candidate.source}")
            self._record_outcome(statement.bank_code, run, True, candidate.source)
            return await self._parse(statement, attempt.decrypted_bytes, candidate.source, run)

        self._record_outcome(statement.bank_code, run, False)
        raise PasswordNotFoundError(f"None of {len(candidates)} password candidates opened the statement")

    async def _parse(self, statement: Statement, pdf_bytes: bytes, source: str, run: _Run) -> PipelineResult:
        loop = asyncio.get_running_loop()
        extracted = await loop.run_in_executor(None, pdf_processor.extract, pdf_bytes)
        if extracted.is_likely_scanned:
            raise ScannedDocumentError(
                f"Extracted text looks scanned ({len(extracted.text)} chars from {extracted.page_count} pages)"
            )

        outcome = await self.parser.parse(extracted.text, bank_hint=self._bank_hint(statement), cost=run.cost)
        if not outcome.success:
            raise self._parse_error(outcome)

        return PipelineResult(
            success=True,
            statement=outcome.content,
            confidence=outcome.confidence,
            warnings=outcome.warnings + run.warnings,
            cost=run.cost.spent,
            attempts=len(run.tried),
            password_source=source,
            model=outcome.model,
        )

    # ─── Helpers ──────────────────────────────────────────────────────────────

    def _preferred_sources(self, statement: Statement, run: _Run) -> List[str]:
        """Source tags to try first: the learned winner, then those matching the bank email."""
        sources: List[str] = []
        if self.pattern_store is not None:
            try:
                record = self.pattern_store.get(statement.bank_code)
            except Exception as e:
                record = None
                self._store_warning(run, f"Could not read learned password pattern for {statement.bank_code}: {e}")
            if record is not None and record.source and record.confidence != PatternConfidence.LOW:
                sources.append(record.source)
        if statement.password_hint:
            try:
                requirement = analyze_hint(statement.password_hint, statement.bank_code, store=self.pattern_store)
            except Exception as e:
                self._store_warning(run, f"Could not use learned password pattern for {statement.bank_code}: {e}")
                requirement = analyze_hint(statement.password_hint, statement.bank_code)
            sources.extend(s for s in preferred_sources(requirement) if s not in sources)
        return sources

    def _record_outcome(self, bank_code: str, run: _Run, success: bool, source: str = None) -> None:
        if self.pattern_store is None:
            return
        try:
            self.pattern_store.record_outcome(bank_code, success, source)
        except Exception as e:
            self._store_warning(run, f"Could not record password outcome for {bank_code}: {e}")

    @staticmethod
    def _store_warning(run: _Run, message: str) -> None:
        # Learning is best effort; a broken store must not fail the statement
        logger.warning(f"⚠️ {message}")
        run.warnings.append(message)

    @staticmethod
    def _bank_hint(statement: Statement) -> Optional[str]:
        code = (statement.bank_code or "").strip().upper()
        if code in BANK_CODES and code != BankCode.OTHER.value:
            return code
        return None

    @staticmethod
    def _parse_error(outcome: ParseOutcome) -> PipelineError:
        message = outcome.error or "Statement parsing failed"
        if outcome.failure == FailureKind.SCHEMA_VALIDATION_FAILED:
            return SchemaValidationError(message, outcome.errors)
        error_cls = _PARSE_FAILURES.get(outcome.failure, ExtractionError)
        return error_cls(message)

    @staticmethod
    def _failure(error: PipelineError, run: _Run) -> PipelineFailure:
        return PipelineFailure(
            kind=error.kind,
            message=str(error),
            missing_fields=getattr(error, "missing", []),
            candidates_tried=[TriedCandidate(source=c.source, masked=c.masked) for c in run.tried],
            validation_errors=getattr(error, "errors", []),
        )


def run_statement(statement: Statement, pipeline: StatementPipeline = None) -> PipelineResult:
    """Synchronous entry point for hosts without an event loop."""
    return asyncio.run((pipeline or StatementPipeline()).process(statement))
