"""Statement decryption via the external ``qpdf`` tool."""
import asyncio
import logging
import os
import shutil
import tempfile

import fitz  # PyMuPDF

from config import settings
from exceptions import ToolUnavailableError
from schemas import DecryptAttemptResult

logger = logging.getLogger("StatementPipeline.Decryptor")

QPDF_EXIT_OK = 0
QPDF_EXIT_WARNINGS = 3
WRONG_PASSWORD_MARKER = "invalid password"


def is_encrypted(pdf_bytes: bytes) -> bool:
    """True when the PDF needs a password to open. Unreadable input counts as encrypted."""
    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except Exception as e:
        logger.warning("Could not inspect PDF encryption (%s); assuming encrypted", e)
        return True
    try:
        return bool(doc.needs_pass)
    finally:
        doc.close()


class Decryptor:
    """
    Runs one qpdf process per candidate password.

    Every attempt owns a private temp directory that is removed before the
    attempt returns, whatever the outcome (timeout and cancellation included).
    Decrypted bytes only leave this class in memory.
    """

    def __init__(self, qpdf_path: str = None, timeout: float = None, temp_dir: str = None):
        self.qpdf_path = qpdf_path or settings.QPDF_PATH
        self.timeout = timeout or settings.DECRYPT_TIMEOUT_SECONDS
        self.temp_dir = temp_dir or settings.TEMP_DIR

    async def _spawn(self, *args: str) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(
                self.qpdf_path, *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise ToolUnavailableError(f"qpdf is not available at {self.qpdf_path!r}: {e}") from e

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        await proc.wait()

    async def probe(self) -> str:
        """Check that qpdf runs; returns its version line."""
        proc = await self._spawn("--version")
        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            await self._kill(proc)
            raise ToolUnavailableError("qpdf --version timed out") from e
        if proc.returncode != QPDF_EXIT_OK:
            raise ToolUnavailableError(f"qpdf --version exited with {proc.returncode}")
        lines = stdout.decode(errors="replace").strip().splitlines()
        return lines[0] if lines else ""

    async def attempt(self, pdf_bytes: bytes, password: str) -> DecryptAttemptResult:
        """Try one password. Raises ToolUnavailableError only when qpdf itself is missing."""
        work_dir = tempfile.mkdtemp(prefix="stmt-decrypt-", dir=self.temp_dir)
        in_path = os.path.join(work_dir, "input.pdf")
        out_path = os.path.join(work_dir, "decrypted.pdf")
        try:
            with open(in_path, "wb") as f:
                f.write(pdf_bytes)

            proc = await self._spawn(f"--password={password}", "--decrypt", in_path, out_path)
            try:
                _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
            except asyncio.TimeoutError:
                await self._kill(proc)
                logger.warning("qpdf timed out after %.0fs", self.timeout)
                return DecryptAttemptResult(success=False, error=f"qpdf timed out after {self.timeout:.0f}s")
            except asyncio.CancelledError:
                await self._kill(proc)
                raise

            stderr_text = stderr.decode(errors="replace").strip()
            wrong_password = WRONG_PASSWORD_MARKER in stderr_text.lower()
            produced = os.path.exists(out_path) and os.path.getsize(out_path) > 0

            ok = proc.returncode == QPDF_EXIT_OK or (
                proc.returncode == QPDF_EXIT_WARNINGS and produced and not wrong_password
            )
            if ok and produced:
                if proc.returncode == QPDF_EXIT_WARNINGS:
                    logger.debug("qpdf succeeded with warnings: %s", stderr_text[:200])
                with open(out_path, "rb") as f:
                    return DecryptAttemptResult(success=True, decrypted_bytes=f.read())

            error = stderr_text.splitlines()[0] if stderr_text else f"qpdf exited with {proc.returncode}"
            if ok:
                error = "qpdf reported success but wrote no output"
            return DecryptAttemptResult(success=False, error=error, wrong_password=wrong_password)
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)
