"""End-to-end pipeline with a fake decryptor and a scripted LLM provider."""
import threading

import pytest

from agents.extraction import StatementParser
from conftest import HSBC_EMAIL, FakeDecryptor, FakeProvider, invalid_content, make_pdf, valid_content
from exceptions import ToolUnavailableError
from models import FailureKind
from orchestrator import StatementPipeline, run_statement
from schemas import IdentityHints, Statement
from services import pdf_processor
from services.pattern_store import PatternStore


class LockedStore(PatternStore):
    """A store whose database is permanently locked."""

    def get(self, bank_code):
        raise RuntimeError("database is locked")

    def put(self, bank_code, pattern):
        raise RuntimeError("database is locked")

    def record_outcome(self, bank_code, success, source=None):
        raise RuntimeError("database is locked")


def _pipeline(decryptor, payloads=None, store=None):
    provider = FakeProvider(payloads if payloads is not None else [valid_content()])
    parser = StatementParser(provider=provider, primary_model="small", escalation_model="large", max_cost=5.0)
    return StatementPipeline(parser=parser, decryptor=decryptor, pattern_store=store), provider


@pytest.fixture
def hsbc_statement(encrypted_pdf, hsbc_hints):
    return Statement(encrypted_bytes=encrypted_pdf, bank_code="hsbc", hints=hsbc_hints, filename="hsbc_jan.pdf")


async def test_first_candidate_opens_statement(hsbc_statement, statement_pdf):
    decryptor = FakeDecryptor("404400", statement_pdf)
    pipeline, provider = _pipeline(decryptor)

    result = await pipeline.process(hsbc_statement)

    assert result.success
    assert result.failure is None
    assert result.attempts == 1
    assert result.password_source == "card6"
    assert result.model == "small"
    assert result.confidence == 80
    assert result.cost == pytest.approx(0.1)
    assert len(result.statement.transactions) == 4
    assert provider.detect_calls == 0


async def test_candidates_are_tried_in_order_until_one_works(hsbc_statement, statement_pdf):
    decryptor = FakeDecryptor("151085404400", statement_pdf)
    pipeline, _ = _pipeline(decryptor)

    result = await pipeline.process(hsbc_statement)

    assert result.success
    assert decryptor.attempts == ["404400", "15101985", "151085", "1510", "151085404400"]
    assert result.attempts == 5
    assert result.password_source == "ddmmyy+card6"


async def test_learned_pattern_is_tried_first_next_time(hsbc_statement, statement_pdf, pattern_store):
    decryptor = FakeDecryptor("151085404400", statement_pdf)
    pipeline, _ = _pipeline(decryptor, [valid_content(), valid_content()], store=pattern_store)

    await pipeline.process(hsbc_statement)
    assert pattern_store.get("hsbc").source == "ddmmyy+card6"

    decryptor.attempts.clear()
    result = await pipeline.process(hsbc_statement)

    assert result.success
    assert decryptor.attempts == ["151085404400"]


async def test_password_hint_email_reorders_candidates(hsbc_statement, statement_pdf):
    decryptor = FakeDecryptor("151085404400", statement_pdf)
    pipeline, _ = _pipeline(decryptor)

    result = await pipeline.process(hsbc_statement.model_copy(update={"password_hint": HSBC_EMAIL}))

    assert result.success
    assert decryptor.attempts == ["151085404400"]


async def test_missing_required_fields_never_guesses(encrypted_pdf, statement_pdf):
    decryptor = FakeDecryptor("404400", statement_pdf)
    pipeline, _ = _pipeline(decryptor)
    statement = Statement(encrypted_bytes=encrypted_pdf, bank_code="hsbc", hints=IdentityHints(dob="15101985"))

    result = await pipeline.process(statement)

    assert not result.success
    assert result.failure.kind == FailureKind.MISSING_REQUIRED_FIELDS
    assert result.failure.missing_fields == ["card_last6"]
    assert decryptor.attempts == []


async def test_exhausted_candidates_report_what_was_tried(hsbc_statement, statement_pdf, pattern_store):
    decryptor = FakeDecryptor("not-derivable", statement_pdf)
    pipeline, provider = _pipeline(decryptor, store=pattern_store)

    result = await pipeline.process(hsbc_statement)

    assert result.failure.kind == FailureKind.PASSWORD_NOT_FOUND
    tried = result.failure.candidates_tried
    assert len(tried) == len(decryptor.attempts) <= 10
    assert tried[0].source == "card6"
    assert tried[0].masked == "4****0"
    assert all(t.masked not in decryptor.attempts for t in tried)
    assert provider.parse_calls == []
    assert pattern_store.get("hsbc") is None


async def test_unencrypted_pdf_skips_passwords(statement_pdf):
    decryptor = FakeDecryptor("404400", statement_pdf)
    pipeline, _ = _pipeline(decryptor)
    statement = Statement(encrypted_bytes=statement_pdf, bank_code="hsbc")

    result = await pipeline.process(statement)

    assert result.success
    assert result.password_source == "unencrypted"
    assert result.attempts == 0
    assert decryptor.attempts == []


async def test_scanned_document_stops_the_statement(hsbc_statement):
    decryptor = FakeDecryptor("404400", make_pdf("Page 1"))
    pipeline, provider = _pipeline(decryptor)

    result = await pipeline.process(hsbc_statement)

    assert result.failure.kind == FailureKind.SCANNED_DOCUMENT
    assert decryptor.attempts == ["404400"]
    assert provider.parse_calls == []


async def test_schema_failure_does_not_try_more_candidates(hsbc_statement, statement_pdf):
    decryptor = FakeDecryptor("404400", statement_pdf)
    pipeline, provider = _pipeline(decryptor, [invalid_content(), invalid_content()])

    result = await pipeline.process(hsbc_statement)

    assert result.failure.kind == FailureKind.SCHEMA_VALIDATION_FAILED
    assert result.failure.validation_errors
    assert [c["model"] for c in provider.parse_calls] == ["small", "large"]
    assert decryptor.attempts == ["404400"]
    assert result.cost == pytest.approx(0.2)


async def test_missing_decryption_tool_aborts_immediately(hsbc_statement, statement_pdf):
    decryptor = FakeDecryptor("404400", statement_pdf, error=ToolUnavailableError("qpdf not found"))
    pipeline, _ = _pipeline(decryptor)

    result = await pipeline.process(hsbc_statement)

    assert result.failure.kind == FailureKind.TOOL_UNAVAILABLE
    assert decryptor.attempts == ["404400"]


async def test_unexpected_errors_propagate(hsbc_statement, statement_pdf):
    decryptor = FakeDecryptor("404400", statement_pdf, error=RuntimeError("disk on fire"))
    pipeline, _ = _pipeline(decryptor)

    with pytest.raises(RuntimeError):
        await pipeline.process(hsbc_statement)


async def test_process_many_keeps_order_and_isolates_cost(hsbc_statement, statement_pdf):
    decryptor = FakeDecryptor("404400", statement_pdf)
    pipeline, _ = _pipeline(decryptor, [valid_content() for _ in range(3)])
    missing = Statement(encrypted_bytes=hsbc_statement.encrypted_bytes, bank_code="hsbc")

    results = await pipeline.process_many([hsbc_statement, missing, hsbc_statement], concurrency=2)

    assert [r.success for r in results] == [True, False, True]
    assert results[1].failure.kind == FailureKind.MISSING_REQUIRED_FIELDS
    assert results[0].cost == pytest.approx(0.1)
    assert results[2].cost == pytest.approx(0.1)


def test_run_statement_sync_wrapper(hsbc_statement, statement_pdf):
    pipeline, _ = _pipeline(FakeDecryptor("404400", statement_pdf))

    result = run_statement(hsbc_statement, pipeline)

    assert result.success
    assert result.password_source == "card6"


async def test_broken_pattern_store_only_adds_warnings(hsbc_statement, statement_pdf):
    decryptor = FakeDecryptor("151085404400", statement_pdf)
    pipeline, _ = _pipeline(decryptor, store=LockedStore())

    result = await pipeline.process(hsbc_statement.model_copy(update={"password_hint": HSBC_EMAIL}))

    assert result.success
    assert decryptor.attempts == ["151085404400"]
    store_warnings = [w for w in result.warnings if "database is locked" in w]
    assert len(store_warnings) == 3


async def test_broken_pattern_store_warnings_survive_failure(hsbc_statement, statement_pdf):
    decryptor = FakeDecryptor("not-derivable", statement_pdf)
    pipeline, _ = _pipeline(decryptor, store=LockedStore())

    result = await pipeline.process(hsbc_statement)

    assert result.failure.kind == FailureKind.PASSWORD_NOT_FOUND
    assert len(result.warnings) == 2
    assert all("database is locked" in w for w in result.warnings)


async def test_text_extraction_runs_off_the_event_loop(hsbc_statement, statement_pdf, monkeypatch):
    extract = pdf_processor.extract
    threads = []

    def tracking_extract(pdf_bytes):
        threads.append(threading.get_ident())
        return extract(pdf_bytes)

    monkeypatch.setattr(pdf_processor, "extract", tracking_extract)
    pipeline, _ = _pipeline(FakeDecryptor("404400", statement_pdf))

    result = await pipeline.process(hsbc_statement)

    assert result.success
    assert threads and threads[0] != threading.get_ident()
