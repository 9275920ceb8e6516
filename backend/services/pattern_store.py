"""
Learned password patterns, per bank.

A store remembers which identity fields and which candidate source tag opened
a bank's statements before, so the next statement can try that first. Only
field names and source tags are kept; password values never are.
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

from models import FieldKind, PasswordPattern, PatternConfidence
from schemas import PatternRecord
from services.password_hints import PART_FIELDS

logger = logging.getLogger("StatementPipeline.PatternStore")

MAX_CACHE_SIZE = 50
HIGH_SUCCESS_RATE = 0.8
MEDIUM_SUCCESS_RATE = 0.5


def confidence_for(success_count: int, total_attempts: int) -> PatternConfidence:
    if total_attempts <= 0:
        return PatternConfidence.LOW
    rate = success_count / total_attempts
    if rate >= HIGH_SUCCESS_RATE:
        return PatternConfidence.HIGH
    if rate >= MEDIUM_SUCCESS_RATE:
        return PatternConfidence.MEDIUM
    return PatternConfidence.LOW


def fields_for_source(source: str) -> list[FieldKind]:
    """Identity fields a candidate source tag was built from, in first-use order."""
    fields = []
    for part in (source or "").split("+"):
        field = PART_FIELDS.get(part)
        if field is not None and field not in fields:
            fields.append(field)
    return fields


def _normalise(bank_code: str) -> str:
    return (bank_code or "").strip().lower()


class PatternStore(ABC):
    """Injected capability; the pipeline works the same without one."""

    @abstractmethod
    def get(self, bank_code: str) -> Optional[PatternRecord]:
        ...

    @abstractmethod
    def put(self, bank_code: str, pattern: PatternRecord) -> None:
        ...

    @abstractmethod
    def record_outcome(self, bank_code: str, success: bool, source: Optional[str] = None) -> Optional[PatternRecord]:
        """Update attempt statistics; a success also remembers the winning source tag."""

    @staticmethod
    def _apply_outcome(record: Optional[PatternRecord], bank_code: str, success: bool,
                       source: Optional[str]) -> Optional[PatternRecord]:
        if record is None:
            if not success:
                return None
            record = PatternRecord(bank_code=bank_code, fields=fields_for_source(source), source=source)
        data = record.model_dump()
        data["total_attempts"] += 1
        if success:
            data["success_count"] += 1
            if source:
                data["source"] = source
                data["fields"] = fields_for_source(source) or data["fields"]
        data["confidence"] = confidence_for(data["success_count"], data["total_attempts"])
        return PatternRecord(**data)


# ─── In-memory backend ────────────────────────────────────────────────────────

class InMemoryPatternStore(PatternStore):
    """Process-local store; oldest entries are evicted past ``max_size`` banks."""

    def __init__(self, max_size: int = MAX_CACHE_SIZE):
        self.max_size = max_size
        self._records: dict[str, PatternRecord] = {}
        self._lock = threading.Lock()

    def get(self, bank_code: str) -> Optional[PatternRecord]:
        with self._lock:
            return self._records.get(_normalise(bank_code))

    def put(self, bank_code: str, pattern: PatternRecord) -> None:
        code = _normalise(bank_code)
        with self._lock:
            self._records.pop(code, None)
            self._records[code] = pattern.model_copy(update={"bank_code": code})
            while len(self._records) > self.max_size:
                oldest = next(iter(self._records))
                del self._records[oldest]
        logger.debug("Cached password pattern for %s", code)

    def record_outcome(self, bank_code: str, success: bool, source: Optional[str] = None) -> Optional[PatternRecord]:
        code = _normalise(bank_code)
        with self._lock:
            updated = self._apply_outcome(self._records.get(code), code, success, source)
            if updated is not None:
                self._records[code] = updated
        return updated

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


# ─── SQL backend ──────────────────────────────────────────────────────────────

class SqlPatternStore(PatternStore):
    """SQLAlchemy-backed store using the ``password_patterns`` table."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    @staticmethod
    def _to_record(row: PasswordPattern) -> PatternRecord:
        return PatternRecord(
            bank_code=row.bank_code,
            fields=row.fields or [],
            source=row.source,
            format=row.format or "",
            confidence=row.confidence or PatternConfidence.MEDIUM,
            success_count=row.success_count or 0,
            total_attempts=row.total_attempts or 0,
        )

    @staticmethod
    def _write(row: PasswordPattern, record: PatternRecord) -> None:
        row.fields = [f.value for f in record.fields]
        row.source = record.source
        row.format = record.format
        row.confidence = record.confidence.value
        row.success_count = record.success_count
        row.total_attempts = record.total_attempts

    def _row(self, db, code: str) -> Optional[PasswordPattern]:
        return db.query(PasswordPattern).filter(PasswordPattern.bank_code == code).first()

    def get(self, bank_code: str) -> Optional[PatternRecord]:
        db = self.session_factory()
        try:
            row = self._row(db, _normalise(bank_code))
            return self._to_record(row) if row else None
        finally:
            db.close()

    def put(self, bank_code: str, pattern: PatternRecord) -> None:
        code = _normalise(bank_code)
        db = self.session_factory()
        try:
            row = self._row(db, code)
            if row is None:
                row = PasswordPattern(bank_code=code)
                db.add(row)
            self._write(row, pattern)
            db.commit()
            logger.debug("Stored password pattern for %s", code)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def record_outcome(self, bank_code: str, success: bool, source: Optional[str] = None) -> Optional[PatternRecord]:
        code = _normalise(bank_code)
        db = self.session_factory()
        try:
            row = self._row(db, code)
            current = self._to_record(row) if row else None
            updated = self._apply_outcome(current, code, success, source)
            if updated is None:
                return None
            if row is None:
                row = PasswordPattern(bank_code=code)
                db.add(row)
            self._write(row, updated)
            db.commit()
            return updated
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


def sql_store(url: str = None) -> SqlPatternStore:
    """SQL store on ``url`` (default ``PATTERN_DB_URL``), creating the table if needed."""
    from database import init_db, make_engine, make_session_factory

    engine = make_engine(url)
    init_db(engine)
    return SqlPatternStore(make_session_factory(engine))
