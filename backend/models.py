import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Integer, Text, DateTime, JSON
from database import Base
import enum


# ─── Enums ────────────────────────────────────────────────────────────────────

class FieldKind(str, enum.Enum):
    """Identity fields a bank may require to build its PDF password."""
    NAME = "name"
    DOB = "dob"
    CARD_LAST4 = "card_last4"
    CARD_LAST6 = "card_last6"
    CUSTOMER_ID = "customer_id"


class TransactionType(str, enum.Enum):
    DEBIT = "Dr"
    CREDIT = "Cr"


class Category(str, enum.Enum):
    AMAZON_SPENDS = "amazon_spends"
    FLIPKART_SPENDS = "flipkart_spends"
    GROCERY_SPENDS_ONLINE = "grocery_spends_online"
    ONLINE_FOOD_ORDERING = "online_food_ordering"
    DINING_OR_GOING_OUT = "dining_or_going_out"
    OTHER_ONLINE_SPENDS = "other_online_spends"
    OTHER_OFFLINE_SPENDS = "other_offline_spends"
    FLIGHTS = "flights"
    HOTELS = "hotels"
    MOBILE_PHONE_BILLS = "mobile_phone_bills"
    ELECTRICITY_BILLS = "electricity_bills"
    WATER_BILLS = "water_bills"
    OTT_CHANNELS = "ott_channels"
    FUEL = "fuel"
    SCHOOL_FEES = "school_fees"
    RENT = "rent"
    INSURANCE_HEALTH = "insurance_health"
    INSURANCE_CAR_OR_BIKE = "insurance_car_or_bike"
    LARGE_ELECTRONICS = "large_electronics"
    PHARMACY = "pharmacy"
    UPI_TRANSACTIONS = "upi_transactions"


class BankCode(str, enum.Enum):
    """Bank codes the detection prompt and extraction schema accept."""
    HDFC = "HDFC"
    AXIS = "AXIS"
    SBI = "SBI"
    ICICI = "ICICI"
    KOTAK = "KOTAK"
    AMEX = "AMEX"
    CITI = "CITI"
    SC = "SC"
    HSBC = "HSBC"
    INDUSIND = "INDUSIND"
    YES = "YES"
    RBL = "RBL"
    OTHER = "OTHER"


class FailureKind(str, enum.Enum):
    MISSING_REQUIRED_FIELDS = "missing_required_fields"
    PASSWORD_NOT_FOUND = "password_not_found"
    SCANNED_DOCUMENT = "scanned_document"
    EXTRACTION_FAILED = "extraction_failed"
    SCHEMA_VALIDATION_FAILED = "schema_validation_failed"
    COST_CEILING_EXCEEDED = "cost_ceiling_exceeded"
    TOOL_UNAVAILABLE = "tool_unavailable"


class ParseState(str, enum.Enum):
    DETECTING = "detecting"
    EXTRACTING_PRIMARY = "extracting_primary"
    VALIDATING_PRIMARY = "validating_primary"
    ESCALATING_RETRY = "escalating_retry"
    VALIDATING_RETRY = "validating_retry"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PatternConfidence(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ─── Helper ───────────────────────────────────────────────────────────────────

def generate_uuid():
    return str(uuid.uuid4())


def utcnow():
    return datetime.now(timezone.utc)


# ─── Models ───────────────────────────────────────────────────────────────────

class PasswordPattern(Base):
    """Learned password pattern per bank. Holds field names and source tags only."""
    __tablename__ = "password_patterns"

    id = Column(String, primary_key=True, default=generate_uuid)
    bank_code = Column(String, nullable=False, unique=True, index=True)
    fields = Column(JSON)  # ["dob", "card_last6"]
    source = Column(String)  # candidate source tag that opened the PDF, e.g. "ddmmyy+card6"
    format = Column(Text)  # human-readable format, e.g. "DDMMYY + Last 6 digits"
    confidence = Column(String, default=PatternConfidence.MEDIUM.value)
    success_count = Column(Integer, default=0)
    total_attempts = Column(Integer, default=0)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
