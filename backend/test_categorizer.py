"""Keyword category fallback."""
import pytest

from agents.categorizer import is_annual_category, map_category
from models import Category


@pytest.mark.parametrize("description,expected", [
    ("SWIGGY BANGALORE", Category.ONLINE_FOOD_ORDERING),
    ("BUNDL TECHNOLOGIES PVT LTD", Category.ONLINE_FOOD_ORDERING),
    ("STARBUCKS COFFEE MUMBAI", Category.DINING_OR_GOING_OUT),
    ("AMAZON PAY INDIA PRIVATE", Category.AMAZON_SPENDS),
    ("AMAZON PRIME VIDEO", Category.OTT_CHANNELS),
    ("FLIPKART INTERNET", Category.FLIPKART_SPENDS),
    ("BLINKIT GURGAON", Category.GROCERY_SPENDS_ONLINE),
    ("INDIGO AIRLINES 6E", Category.FLIGHTS),
    ("MAKEMYTRIP INDIA", Category.FLIGHTS),
    ("TAJ HOTEL MUMBAI", Category.HOTELS),
    ("UBER INDIA SYSTEMS", Category.OTHER_ONLINE_SPENDS),
    ("AIRTEL PREPAID RECHARGE", Category.MOBILE_PHONE_BILLS),
    ("NETFLIX.COM", Category.OTT_CHANNELS),
    ("BESCOM ELECTRICITY", Category.ELECTRICITY_BILLS),
    ("HPCL PETROL PUMP", Category.FUEL),
    ("DPS SCHOOL FEES", Category.SCHOOL_FEES),
    ("NOBROKER RENT PAYMENT", Category.RENT),
    ("STAR HEALTH INSURANCE", Category.INSURANCE_HEALTH),
    ("ACKO CAR INSURANCE", Category.INSURANCE_CAR_OR_BIKE),
    ("APOLLO PHARMACY", Category.PHARMACY),
    ("UPI-JOHN DOE", Category.UPI_TRANSACTIONS),
    ("CRED CLUB", Category.RENT),
    ("WWW.SOMESHOP.IN", Category.OTHER_ONLINE_SPENDS),
    ("XYZ RANDOM STORE", Category.OTHER_OFFLINE_SPENDS),
])
def test_keyword_cascade(description, expected):
    assert map_category(description) == expected


def test_valid_model_category_is_trusted():
    assert map_category("SWIGGY BANGALORE", "fuel") == Category.FUEL
    assert map_category("SWIGGY BANGALORE", Category.RENT) == Category.RENT


def test_invalid_model_category_falls_back_to_rules():
    assert map_category("SWIGGY BANGALORE", "FOOD_AND_DRINK") == Category.ONLINE_FOOD_ORDERING


def test_food_delivery_checked_before_generic_food():
    assert map_category("ZOMATO ORDER", "FOOD") == Category.ONLINE_FOOD_ORDERING
    assert map_category("LOCAL DHABA", "FOOD") == Category.DINING_OR_GOING_OUT
    assert map_category("LOCAL KITCHEN", "FOOD", sub_category="FOOD_DELIVERY") == Category.ONLINE_FOOD_ORDERING


def test_upstream_travel_label_with_flight_word():
    assert map_category("REGIONAL AIR SERVICES", "TRAVEL") == Category.FLIGHTS


def test_short_keywords_match_whole_words_only():
    # "ola" inside "COCA COLA" is not a ride
    assert map_category("COCA COLA BOTTLING") == Category.OTHER_OFFLINE_SPENDS
    assert map_category("OLA CABS") == Category.OTHER_ONLINE_SPENDS


def test_large_electronics_needs_amount_threshold():
    assert map_category("CROMA RETAIL", amount=45000) == Category.LARGE_ELECTRONICS
    assert map_category("CROMA RETAIL", amount=900) == Category.OTHER_OFFLINE_SPENDS


def test_annual_categories():
    assert is_annual_category(Category.FLIGHTS)
    assert is_annual_category("insurance_health")
    assert not is_annual_category(Category.FUEL)
