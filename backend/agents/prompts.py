"""
Prompts and the strict response schema for statement parsing.
"""
from models import BankCode, Category, TransactionType

# ─── Bank detection ───────────────────────────────────────────────────────────

BANK_DETECTION_SYSTEM_PROMPT = "You are a bank identifier. Respond only with the bank code."

BANK_CODES = [b.value for b in BankCode]


def bank_detection_prompt(preview_text: str) -> str:
    return f"""Identify the bank from this credit card statement header:

{preview_text}

Respond with ONLY the bank code from this list:
{", ".join(BANK_CODES)}

Bank code:"""


# ─── Categories ───────────────────────────────────────────────────────────────

CATEGORY_DESCRIPTIONS = """
**21 Spending Categories:**

1. **amazon_spends** - Amazon purchases
2. **flipkart_spends** - Flipkart purchases
3. **grocery_spends_online** - Blinkit, BigBasket, Zepto, Instamart, Dunzo
4. **online_food_ordering** - Swiggy, Zomato, Talabat food delivery
5. **dining_or_going_out** - Restaurants, cafes, dine-in (NOT delivery)
6. **other_online_spends** - Other e-commerce, Uber, Ola, online services
7. **other_offline_spends** - Physical stores, shopping malls, misc retail
8. **flights** - Airlines (Indigo, Vistara, Air India, Emirates, etc.)
9. **hotels** - Hotels, resorts (Marriott, OYO, Treebo, etc.)
10. **mobile_phone_bills** - Jio, Airtel, Vi, Vodafone recharge
11. **electricity_bills** - Power/electricity bills
12. **water_bills** - Water bills
13. **ott_channels** - Netflix, Prime Video, Hotstar, Disney+
14. **fuel** - Petrol pumps (IOCL, HPCL, BPCL, Shell)
15. **school_fees** - Education, tuition, school fees
16. **rent** - House rent, housing payments
17. **insurance_health** - Health insurance premiums
18. **insurance_car_or_bike** - Vehicle insurance
19. **large_electronics** - Expensive electronics (mobile, TV, laptop > ₹10,000)
20. **pharmacy** - Medicine, pharmacy, health products
21. **upi_transactions** - All UPI payments (UPI TINKU K PAYTM, UPI VIKAS, UPI PHONEPE)

**Important Category Rules:**
- Swiggy/Zomato = online_food_ordering (NOT dining_or_going_out)
- Cafe/Restaurant = dining_or_going_out (NOT online_food_ordering)
- Uber/Ola = other_online_spends (NOT flights)
- Street taxi = other_offline_spends
- MakeMyTrip/Goibibo = flights (default assumption)
- DREAMPLUG TECHNOLOGIES = rent (Cred rent payments)
- CRED app = rent (rent, maintenance, education, school fees)
- All UPI transactions = upi_transactions
- PhonePe utility = mobile_phone_bills
- If uncertain = other_offline_spends
"""

# ─── Response schema ──────────────────────────────────────────────────────────
# Strict structured outputs need every property listed in "required" and
# additionalProperties=false; optional values are expressed as nullable.

_ISO_DATE = {"type": "string", "pattern": r"^\d{4}-\d{2}-\d{2}$"}
_NULLABLE_NUMBER = {"type": ["number", "null"]}


def _object(properties: dict) -> dict:
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


STATEMENT_SCHEMA = _object({
    "bank": {"type": "string", "enum": BANK_CODES},
    "card_details": _object({
        "card_type": {"type": "string"},
        "masked_number": {"type": "string", "pattern": r"^[X\d\s]{13,19}$"},
        "credit_limit": _NULLABLE_NUMBER,
        "available_credit": _NULLABLE_NUMBER,
    }),
    "owner_details": _object({
        "name": {"type": "string"},
        "email": {"type": ["string", "null"]},
    }),
    "statement_period": _object({
        "start_date": _ISO_DATE,
        "end_date": _ISO_DATE,
        "due_date": _ISO_DATE,
    }),
    "summary": _object({
        "total_dues": {"type": "number"},
        "minimum_due": {"type": "number"},
        "previous_balance": {"type": "number"},
        "payment_received": _NULLABLE_NUMBER,
        "purchase_amount": _NULLABLE_NUMBER,
    }),
    "transactions": {
        "type": "array",
        "items": _object({
            "date": _ISO_DATE,
            "description": {"type": "string"},
            "amount": {"type": "number"},
            "type": {"type": "string", "enum": [t.value for t in TransactionType]},
            "category": {"type": "string", "enum": [c.value for c in Category]},
        }),
    },
})

RESPONSE_FORMAT = {
    "type": "json_schema",
    "json_schema": {
        "name": "statement_parser",
        "strict": True,
        "schema": STATEMENT_SCHEMA,
    },
}

# ─── Extraction ───────────────────────────────────────────────────────────────

EXTRACTION_SYSTEM_PROMPT = (
    "You are an expert credit card statement parser. "
    "Extract structured data and return only JSON that matches the schema."
)

EXCLUDED_DESCRIPTORS = [
    "FIN CHGS", "FINANCE CHARGE", "INTEREST", "LATE FEE", "ANNUAL FEE",
    "MEMBERSHIP FEE", "GST", "IGST", "CGST", "SGST", "ASSESSMENT", "TAX",
    "SERVICE CHARGE", "PROCESSING FEE", "CASHBACK", "REWARD",
]

EXTRACTION_PROMPT = """You are an expert credit card statement parser. Extract ALL transaction data from this statement.
{bank_line}
**STATEMENT TEXT:**
```
{statement_text}
```

**OUTPUT FORMAT (JSON):**
{{
  "bank": "HDFC|AXIS|SBI|ICICI|...",
  "card_details": {{"card_type": "Card variant name", "masked_number": "XXXX XXXX XXXX 1234", "credit_limit": 100000, "available_credit": 85000}},
  "owner_details": {{"name": "CARDHOLDER NAME", "email": "email@example.com"}},
  "statement_period": {{"start_date": "2024-01-01", "end_date": "2024-01-31", "due_date": "2024-02-10"}},
  "summary": {{"total_dues": 15000, "minimum_due": 750, "previous_balance": 0, "payment_received": 0, "purchase_amount": 15000}},
  "transactions": [
    {{"date": "2024-01-15", "description": "SWIGGY BANGALORE", "amount": 450.00, "type": "Dr", "category": "online_food_ordering"}}
  ]
}}
Use null for values the statement does not show.

**CRITICAL RULES:**

1. **Date Format:** Always YYYY-MM-DD (e.g., 2024-01-15)
   - 15/01/2024 → 2024-01-15
   - 15012024 → 2024-01-15

2. **Amount Handling:**
   - ALL amounts in RUPEES (₹), NOT paise, and POSITIVE (no negative signs)
   - Remove ₹, commas, spaces from amounts
   - **PAISE DETECTION RULE**:
     - If raw amount > 50,000 → divide by 100
     - If raw amount > 10,000 and contains no decimal → divide by 100
     - If raw amount > 1,000,000 → divide by 100
   - Examples: "281194" → 2811.94, "220839924" → 22083.99, "5000000" → 50000.00, "45000" → 450.00

3. **Type:** "Dr" = debit/spend/purchase, "Cr" = credit/payment/refund

4. **Category:** Assign one of the 21 categories to EVERY transaction
{categories}

5. **Extract ALL transactions:** do not skip small or similar amounts; include every line item.
   **EXCLUDE BANK FEES AND CHARGES:** finance charges, interest, late payment fees, annual and
   membership fees, GST/IGST/CGST/SGST on any charge (including "ASSESSMENT", "TAX ON"),
   over-limit, processing and service fees, cashback and reward credits, fee reversals.
   Descriptors to EXCLUDE: {excluded}

6. **Description:** use the EXACT description from the statement, keep location info (e.g. "SWIGGY BANGALORE").

7. **Card Number:** keep exactly as shown, usually XXXX XXXX XXXX 1234.

8. **Dates:** start_date = period start, end_date = statement date, due_date = payment due date.
{examples}
Return ONLY valid JSON. No markdown, no explanations."""


def extraction_prompt(statement_text: str, bank: str = None, few_shot: str = None) -> str:
    return EXTRACTION_PROMPT.format(
        bank_line=f"\n**Bank:** {bank}\n" if bank else "",
        statement_text=statement_text,
        categories=CATEGORY_DESCRIPTIONS,
        excluded=", ".join(f'"{d}"' for d in EXCLUDED_DESCRIPTORS),
        examples=f"\n**EXAMPLE OUTPUT FOR REFERENCE:**\n{few_shot}\n" if few_shot else "",
    )


# ─── Few-shot examples ────────────────────────────────────────────────────────

HDFC_EXAMPLE = """
Example for HDFC Bank Statement:

{
  "bank": "HDFC",
  "card_details": {"card_type": "HDFC Bank Regalia Credit Card", "masked_number": "XXXX XXXX XXXX 1271", "credit_limit": 500000, "available_credit": 478000},
  "owner_details": {"name": "JOHN DOE", "email": "john@example.com"},
  "statement_period": {"start_date": "2024-01-05", "end_date": "2024-02-04", "due_date": "2024-02-21"},
  "summary": {"total_dues": 22000, "minimum_due": 1100, "previous_balance": 0, "payment_received": 0, "purchase_amount": 22000},
  "transactions": [
    {"date": "2024-01-08", "description": "SWIGGY", "amount": 450.00, "type": "Dr", "category": "online_food_ordering"},
    {"date": "2024-01-10", "description": "AMAZON PAYMENTS INDIA", "amount": 2599.00, "type": "Dr", "category": "amazon_spends"},
    {"date": "2024-01-15", "description": "CAFE COFFEE DAY", "amount": 385.00, "type": "Dr", "category": "dining_or_going_out"}
  ]
}
"""

AXIS_EXAMPLE = """
Example for Axis Bank Statement:

{
  "bank": "AXIS",
  "card_details": {"card_type": "Axis Bank Magnus Credit Card", "masked_number": "XXXX XXXX XXXX 4567", "credit_limit": 1000000, "available_credit": 945000},
  "owner_details": {"name": "JANE SMITH", "email": null},
  "statement_period": {"start_date": "2024-01-01", "end_date": "2024-01-31", "due_date": "2024-02-15"},
  "summary": {"total_dues": 55000, "minimum_due": 2750, "previous_balance": 0, "payment_received": null, "purchase_amount": 55000},
  "transactions": [
    {"date": "2024-01-05", "description": "INDIGO AIRLINES", "amount": 15000.00, "type": "Dr", "category": "flights"},
    {"date": "2024-01-06", "description": "MARRIOTT HOTEL", "amount": 8500.00, "type": "Dr", "category": "hotels"},
    {"date": "2024-01-12", "description": "JIO RECHARGE", "amount": 699.00, "type": "Dr", "category": "mobile_phone_bills"}
  ]
}
"""

BANK_EXAMPLES = {
    "HDFC": HDFC_EXAMPLE,
    "AXIS": AXIS_EXAMPLE,
}


def get_bank_example(bank: str = None) -> str:
    """Few-shot example for the bank, or an empty string."""
    if not bank:
        return ""
    return BANK_EXAMPLES.get(bank.upper(), "")
