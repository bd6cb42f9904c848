from __future__ import annotations

from datetime import date


def age(birth_date: date, as_of: date | None = None) -> int:
    as_of = as_of or date.today()
    years = as_of.year - birth_date.year
    if (as_of.month, as_of.day) < (birth_date.month, birth_date.day):
        years -= 1
    return years


def annual_from_monthly(amount: int | float) -> int | float:
    return amount * 12


def annual_from_quarterly(amount: int | float) -> int | float:
    return amount * 4


def income_percentage(contribution_annual: float, income_annual: float) -> float:
    if income_annual <= 0:
        return 0.0
    return contribution_annual / income_annual * 100


def days_since(value: date, as_of: date | None = None) -> int:
    as_of = as_of or date.today()
    return (as_of - value).days


def within_days(value: date, window_days: int, as_of: date | None = None) -> bool:
    return days_since(value, as_of) <= window_days


def exceeds_cap(value: int | float, cap: int | float) -> bool:
    return value > cap


def is_disproportionate(percentage: float, threshold_pct: float) -> bool:
    return percentage > threshold_pct
