from __future__ import annotations

from datetime import date

from mirecurso.core import calculos
from mirecurso.core.utils import fecha_legal, ordinal, pesos, porcentaje


def test_age_adjusts_by_month_and_day():
    assert calculos.age(date(1966, 3, 2), date(2026, 3, 2)) == 60
    assert calculos.age(date(1966, 3, 3), date(2026, 3, 2)) == 59
    assert calculos.age(date(1966, 4, 1), date(2026, 3, 2)) == 59
    assert calculos.age(date(1960, 2, 29), date(2026, 2, 28)) == 65


def test_proportionality_below_threshold():
    anual = calculos.annual_from_quarterly(150000)
    ingreso = calculos.annual_from_monthly(850000)
    pct = calculos.income_percentage(anual, ingreso)
    assert anual == 600000
    assert ingreso == 10200000
    assert round(pct, 1) == 5.9
    assert not calculos.is_disproportionate(pct, 10)


def test_proportionality_above_threshold():
    pct = calculos.income_percentage(calculos.annual_from_quarterly(420000), calculos.annual_from_monthly(350000))
    assert round(pct, 1) == 40.0
    assert calculos.is_disproportionate(pct, 10)


def test_zero_income_percentage_falls_back_to_zero():
    assert calculos.income_percentage(600000, 0) == 0.0


def test_days_and_windows():
    assert calculos.days_since(date(2026, 2, 1), date(2026, 3, 2)) == 29
    assert calculos.within_days(date(2026, 1, 31), 30, date(2026, 3, 2))
    assert not calculos.within_days(date(2026, 1, 30), 30, date(2026, 3, 2))


def test_cap_is_strict():
    assert calculos.exceeds_cap(300_000_000, 224_000_000)
    assert not calculos.exceeds_cap(224_000_000, 224_000_000)


def test_locale_formatting():
    assert pesos(1234567) == "$1.234.567"
    assert pesos(0) == "$0"
    assert porcentaje(5.882) == "5,9%"
    assert fecha_legal(date(2026, 1, 21)) == "21 de enero de 2026"
    assert ordinal(1) == "PRIMERO"
    assert ordinal(7) == "SÉPTIMO"
