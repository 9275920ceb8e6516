"""
Deterministic spend-category mapping.

Used when the model leaves a transaction uncategorised or returns something
outside the category list. Rule order matters: named brands are checked
before generic words ("SWIGGY" before "FOOD").
"""
import re
from typing import Optional

from models import Category

LARGE_ELECTRONICS_MIN_AMOUNT = 10000

ANNUAL_CATEGORIES = {
    Category.FLIGHTS,
    Category.HOTELS,
    Category.INSURANCE_HEALTH,
    Category.INSURANCE_CAR_OR_BIKE,
    Category.LARGE_ELECTRONICS,
}

_VALID = {c.value: c for c in Category}
_BOUNDARY_CACHE: dict[str, re.Pattern] = {}


def _contains(desc: str, keywords) -> bool:
    """Substring match; keywords of four characters or fewer must match as whole words."""
    for kw in keywords:
        if len(kw) <= 4:
            pattern = _BOUNDARY_CACHE.get(kw)
            if pattern is None:
                pattern = _BOUNDARY_CACHE[kw] = re.compile(rf"(?<![a-z0-9]){re.escape(kw)}(?![a-z0-9])")
            if pattern.search(desc):
                return True
        elif kw in desc:
            return True
    return False


def map_category(
    description: str,
    model_category: Optional[str] = None,
    amount: Optional[float] = None,
    sub_category: Optional[str] = None,
) -> Category:
    """
    Category for one transaction.

    A model category that is already valid is trusted. Otherwise keyword rules
    run in order; coarse upstream labels such as ``FOOD`` or ``TRAVEL`` in
    ``model_category`` are used as extra signals.
    """
    if isinstance(model_category, Category):
        return model_category
    cat = (model_category or "").strip()
    if cat.lower() in _VALID:
        return _VALID[cat.lower()]
    cat = cat.upper()
    sub = (sub_category or "").strip().upper()
    desc = (description or "").lower()

    # Food delivery before dining
    if _contains(desc, ["swiggy", "bundl technologies", "zomato", "talabat", "ubereats", "deliveroo"]) or (
        cat == "FOOD" and sub == "FOOD_DELIVERY"
    ):
        return Category.ONLINE_FOOD_ORDERING
    if _contains(desc, ["restaurant", "cafe", "coffee", "starbucks"]) or cat == "FOOD":
        return Category.DINING_OR_GOING_OUT

    # E-commerce platforms
    if "amazon" in desc and "amazon prime" not in desc and not re.search(r"amazon\s*pay.*bill", desc):
        return Category.AMAZON_SPENDS
    if _contains(desc, ["flipkart", "fkrt"]):
        return Category.FLIPKART_SPENDS
    if _contains(desc, ["blinkit", "instamart", "bigbasket", "zepto", "dunzo", "grofers"]):
        return Category.GROCERY_SPENDS_ONLINE

    # Travel
    if _contains(desc, [
        "indigo", "vistara", "airasia", "spicejet", "air india", "goair",
        "emirates", "etihad", "qatar airways",
    ]) or (cat == "TRAVEL" and _contains(desc, ["air", "flight"])):
        return Category.FLIGHTS
    if _contains(desc, [
        "hotel", "resort", "rotana", "marriott", "hilton", "oyo", "treebo", "booking.com",
    ]) or (cat == "TRAVEL" and "accommodation" in desc):
        return Category.HOTELS
    if _contains(desc, ["uber", "ola", "rapido", "careem"]):
        return Category.OTHER_ONLINE_SPENDS
    if _contains(desc, ["taxi", "cab"]):
        return Category.OTHER_OFFLINE_SPENDS
    if _contains(desc, ["makemytrip", "goibibo", "cleartrip", "duty free"]):
        return Category.FLIGHTS

    # Utilities
    if _contains(desc, [
        "airtel", "jio", "vi", "vodafone", "bsnl", "idea",
        "mobile recharge", "prepaid", "postpaid",
    ]):
        return Category.MOBILE_PHONE_BILLS
    if _contains(desc, ["netflix", "amazon prime", "hotstar", "disney", "zee5", "sonyliv", "voot"]):
        return Category.OTT_CHANNELS
    if _contains(desc, ["electricity", "power bill", "bescom", "msedcl", "tata power"]):
        return Category.ELECTRICITY_BILLS
    if _contains(desc, ["water bill", "water supply"]):
        return Category.WATER_BILLS

    if _contains(desc, ["hpcl", "iocl", "bpcl", "shell", "petrol", "fuel"]) or cat == "FUEL":
        return Category.FUEL
    if _contains(desc, ["school", "tuition", "college", "university", "education"]) or cat == "EDUCATION":
        return Category.SCHOOL_FEES
    if _contains(desc, ["rent", "nobroker", "housing", "mygate"]):
        return Category.RENT

    # Insurance
    if _contains(desc, ["health insurance", "medical insurance"]):
        return Category.INSURANCE_HEALTH
    if _contains(desc, ["car insurance", "bike insurance", "vehicle insurance"]):
        return Category.INSURANCE_CAR_OR_BIKE
    if _contains(desc, ["insurance", "policy"]):
        return Category.INSURANCE_HEALTH

    if _contains(desc, ["pharma", "medicine", "apollo pharmacy", "medplus", "netmeds", "1mg"]):
        return Category.PHARMACY

    if amount and amount > LARGE_ELECTRONICS_MIN_AMOUNT and _contains(desc, [
        "mobile", "iphone", "samsung", "laptop", "macbook", "television", "tv",
        "electronics", "croma", "reliance digital",
    ]):
        return Category.LARGE_ELECTRONICS

    if _contains(desc, ["upi"]):
        return Category.UPI_TRANSACTIONS
    # CRED / Dreamplug are mostly rent payments
    if _contains(desc, ["dreamplug", "cred"]):
        return Category.RENT
    if "phonepe" in desc and "utility" in desc:
        return Category.MOBILE_PHONE_BILLS
    if _contains(desc, ["vps"]):
        return Category.ELECTRICITY_BILLS

    if cat == "E_COMMERCE":
        return Category.OTHER_ONLINE_SPENDS
    if cat == "SHOPPING":
        return Category.OTHER_OFFLINE_SPENDS

    if re.search(r"www|http|\.com\b|\.in\b", desc):
        return Category.OTHER_ONLINE_SPENDS
    return Category.OTHER_OFFLINE_SPENDS


def is_annual_category(category: Category) -> bool:
    """Categories counted per year rather than per month."""
    return Category(category) in ANNUAL_CATEGORIES
