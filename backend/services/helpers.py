"""
Domain constants and helper functions shared by the routers.
"""
import math
import re
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional, Union

from database import next_sequence

BLOOD_TYPES = ["A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-"]

BLOOD_COMPATIBILITY = {
    "A+": {"can_receive_from": ["A+", "A-", "O+", "O-"], "can_donate_to": ["A+", "AB+"]},
    "A-": {"can_receive_from": ["A-", "O-"], "can_donate_to": ["A+", "A-", "AB+", "AB-"]},
    "B+": {"can_receive_from": ["B+", "B-", "O+", "O-"], "can_donate_to": ["B+", "AB+"]},
    "B-": {"can_receive_from": ["B-", "O-"], "can_donate_to": ["B+", "B-", "AB+", "AB-"]},
    "AB+": {"can_receive_from": list(BLOOD_TYPES), "can_donate_to": ["AB+"]},
    "AB-": {"can_receive_from": ["A-", "B-", "AB-", "O-"], "can_donate_to": ["AB+", "AB-"]},
    "O+": {"can_receive_from": ["O+", "O-"], "can_donate_to": ["A+", "B+", "AB+", "O+"]},
    "O-": {"can_receive_from": ["O-"], "can_donate_to": list(BLOOD_TYPES)},
}

SHELF_LIFE_DAYS = {
    "whole_blood": 35,
    "red_cells": 42,
    "platelets": 5,
    "plasma": 365,
    "cryoprecipitate": 365,
}

MINIMUM_STOCK = {
    "O-": 10, "O+": 15, "A-": 8, "A+": 12,
    "B-": 6, "B+": 10, "AB-": 4, "AB+": 6,
}

STOCK_THRESHOLDS = {"critical": 5, "low": 10}

DONATION_INTERVAL_DAYS = {"male": 84, "female": 112}

DONOR_AGE_MIN = 18
DONOR_AGE_MAX = 65
DONOR_WEIGHT_MIN = 50

RESTRICTED_CONDITIONS = ["hiv", "hepatitis", "cancer", "heart disease"]

DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100

DateLike = Union[str, date, datetime]


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def today_str() -> str:
    return date.today().isoformat()


def to_date(value: DateLike) -> date:
    """Coerce an ISO string, date or datetime to a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    value = str(value)
    if "T" in value:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    return date.fromisoformat(value[:10])


def can_receive_from(blood_type: str) -> list:
    return BLOOD_COMPATIBILITY.get(blood_type, {}).get("can_receive_from", [])


def can_donate_to(blood_type: str) -> list:
    return BLOOD_COMPATIBILITY.get(blood_type, {}).get("can_donate_to", [])


def calculate_age(date_of_birth: DateLike, today: Optional[date] = None) -> int:
    born = to_date(date_of_birth)
    today = today or date.today()
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age


def calculate_expiry_date(collection_date: DateLike, component: str = "whole_blood") -> date:
    days = SHELF_LIFE_DAYS.get(component, SHELF_LIFE_DAYS["whole_blood"])
    return to_date(collection_date) + timedelta(days=days)


def days_until_expiry(expiry_date: DateLike, today: Optional[date] = None) -> int:
    today = today or date.today()
    return (to_date(expiry_date) - today).days


def next_eligible_date(last_donation: DateLike, gender: str = "male") -> date:
    interval = DONATION_INTERVAL_DAYS.get(gender, DONATION_INTERVAL_DAYS["male"])
    return to_date(last_donation) + timedelta(days=interval)


def check_donor_eligibility(donor: dict, today: Optional[date] = None) -> dict:
    """
    Evaluate a donor record against the donation rules.

    Returns {"is_eligible", "issues", "next_eligible_date"} where the date is
    an ISO string or None when the donor has never donated.
    """
    today = today or date.today()
    issues = []

    age = calculate_age(donor["date_of_birth"], today)
    if age < DONOR_AGE_MIN or age > DONOR_AGE_MAX:
        issues.append(f"Age must be between {DONOR_AGE_MIN}-{DONOR_AGE_MAX} years")

    if (donor.get("weight") or 0) < DONOR_WEIGHT_MIN:
        issues.append(f"Weight must be at least {DONOR_WEIGHT_MIN}kg")

    next_date = None
    if donor.get("last_donation_date"):
        next_date = next_eligible_date(donor["last_donation_date"], donor.get("gender", "male"))
        if today < next_date:
            issues.append(f"Not eligible until {format_date(next_date)}")

    diseases = (donor.get("medical_history") or {}).get("diseases") or []
    if any(condition in disease.lower() for disease in diseases for condition in RESTRICTED_CONDITIONS):
        issues.append("Medical history contains restricting conditions")

    return {
        "is_eligible": not issues,
        "issues": issues,
        "next_eligible_date": next_date.isoformat() if next_date else None,
    }


def are_tests_complete(test_results: dict) -> bool:
    if not test_results:
        return False
    return all(value != "pending" for value in test_results.values())


def are_tests_negative(test_results: dict) -> bool:
    return are_tests_complete(test_results) and all(value == "negative" for value in test_results.values())


def calculate_inventory_stats(units: Iterable[dict], today: Optional[date] = None) -> dict:
    today = today or date.today()
    stats = {
        "total_units": 0,
        "by_blood_type": {bt: {"units": 0, "expiring_soon": 0} for bt in BLOOD_TYPES},
        "expiring_in_7_days": 0,
        "expiring_in_3_days": 0,
        "expired": 0,
    }
    for unit in units:
        if unit.get("status") != "available":
            continue
        count = unit.get("units", 1)
        stats["total_units"] += count
        bucket = stats["by_blood_type"].setdefault(unit["blood_type"], {"units": 0, "expiring_soon": 0})
        bucket["units"] += count

        remaining = days_until_expiry(unit["expiry_date"], today)
        if remaining <= 0:
            stats["expired"] += count
        elif remaining <= 3:
            stats["expiring_in_3_days"] += count
            bucket["expiring_soon"] += count
        elif remaining <= 7:
            stats["expiring_in_7_days"] += count
    return stats


def stock_level(units: int, blood_type: str) -> str:
    if units <= STOCK_THRESHOLDS["critical"]:
        return "critical"
    if units < MINIMUM_STOCK.get(blood_type, STOCK_THRESHOLDS["low"]):
        return "low"
    return "adequate"


def paginate(page: int = 1, limit: int = DEFAULT_PAGE_LIMIT) -> dict:
    page = max(1, int(page or 1))
    limit = max(1, min(MAX_PAGE_LIMIT, int(limit or DEFAULT_PAGE_LIMIT)))
    return {"page": page, "limit": limit, "skip": (page - 1) * limit}


def pagination_meta(page: int, limit: int, total: int) -> dict:
    pages = math.ceil(total / limit) if limit else 0
    return {
        "current_page": page,
        "total_pages": pages,
        "total_items": total,
        "items_per_page": limit,
        "has_next": page < pages,
        "has_prev": page > 1,
    }


_ON_HANDLER = re.compile(r"on\w+=", re.IGNORECASE)
_JS_SCHEME = re.compile(r"javascript:", re.IGNORECASE)


def sanitize_input(value):
    if not isinstance(value, str):
        return value
    value = value.strip().replace("<", "").replace(">", "")
    value = _JS_SCHEME.sub("", value)
    return _ON_HANDLER.sub("", value)


def format_date(value: DateLike, fmt: str = "YYYY-MM-DD") -> str:
    formats = {
        "YYYY-MM-DD": "%Y-%m-%d",
        "DD/MM/YYYY": "%d/%m/%Y",
        "YYYY-MM-DD HH:mm": "%Y-%m-%d %H:%M",
        "DD/MM/YYYY HH:mm": "%d/%m/%Y %H:%M",
    }
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00")) if "T" in value else date.fromisoformat(value)
    return value.strftime(formats.get(fmt, formats["YYYY-MM-DD"]))


async def _next_code(prefix: str, counter: str) -> str:
    return f"{prefix}-{await next_sequence(counter):06d}"


async def generate_request_code() -> str:
    return await _next_code("BR", "blood_request")


async def generate_unit_code() -> str:
    return await _next_code("BU", "blood_unit")


async def generate_campaign_code() -> str:
    return await _next_code("CMP", "campaign")
