"""Decryptor against a stub qpdf executable."""
import asyncio

import pytest

from conftest import leftover
from exceptions import ToolUnavailableError
from services.decryptor import Decryptor, is_encrypted


@pytest.fixture
def decryptor(qpdf_stub, work_dir):
    return Decryptor(qpdf_path=qpdf_stub, timeout=5, temp_dir=str(work_dir))


async def test_correct_password_returns_bytes(decryptor, work_dir, statement_pdf):
    result = await decryptor.attempt(statement_pdf, "secret")

    assert result.success
    assert result.decrypted_bytes == statement_pdf
    assert leftover(work_dir) == []


async def test_wrong_password_is_flagged(decryptor, work_dir, statement_pdf):
    result = await decryptor.attempt(statement_pdf, "nope")

    assert not result.success
    assert result.wrong_password
    assert "invalid password" in result.error
    assert result.decrypted_bytes is None
    assert leftover(work_dir) == []


async def test_exit_code_3_with_output_counts_as_success(decryptor, work_dir, statement_pdf):
    result = await decryptor.attempt(statement_pdf, "warn")

    assert result.success
    assert not result.wrong_password
    assert leftover(work_dir) == []


async def test_success_without_output_is_a_failure(decryptor, work_dir, statement_pdf):
    result = await decryptor.attempt(statement_pdf, "empty")

    assert not result.success
    assert not result.wrong_password
    assert leftover(work_dir) == []


async def test_timeout_fails_candidate_and_cleans_up(qpdf_stub, work_dir, statement_pdf):
    decryptor = Decryptor(qpdf_path=qpdf_stub, timeout=0.5, temp_dir=str(work_dir))
    result = await decryptor.attempt(statement_pdf, "slow")

    assert not result.success
    assert "timed out" in result.error
    assert leftover(work_dir) == []


async def test_cancellation_kills_process_and_cleans_up(decryptor, work_dir, statement_pdf):
    task = asyncio.create_task(decryptor.attempt(statement_pdf, "slow"))
    await asyncio.sleep(0.3)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert leftover(work_dir) == []


async def test_missing_tool_is_unavailable_not_wrong_password(tmp_path, work_dir, statement_pdf):
    decryptor = Decryptor(qpdf_path=str(tmp_path / "no-such-qpdf"), temp_dir=str(work_dir))

    with pytest.raises(ToolUnavailableError):
        await decryptor.attempt(statement_pdf, "secret")
    assert leftover(work_dir) == []


async def test_concurrent_attempts_use_separate_directories(decryptor, work_dir, statement_pdf):
    results = await asyncio.gather(*(decryptor.attempt(statement_pdf, pw) for pw in ("secret", "nope", "warn")))

    assert [r.success for r in results] == [True, False, True]
    assert leftover(work_dir) == []


async def test_probe_reports_version(decryptor):
    assert (await decryptor.probe()).startswith("qpdf version")


def test_is_encrypted(statement_pdf, encrypted_pdf):
    assert not is_encrypted(statement_pdf)
    assert is_encrypted(encrypted_pdf)
    assert is_encrypted(b"definitely not a pdf")
