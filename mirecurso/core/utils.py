from __future__ import annotations

from datetime import date

MESES = (
    "enero",
    "febrero",
    "marzo",
    "abril",
    "mayo",
    "junio",
    "julio",
    "agosto",
    "septiembre",
    "octubre",
    "noviembre",
    "diciembre",
)

ORDINALES = (
    "PRIMERO",
    "SEGUNDO",
    "TERCERO",
    "CUARTO",
    "QUINTO",
    "SEXTO",
    "SÉPTIMO",
    "OCTAVO",
    "NOVENO",
    "DÉCIMO",
    "UNDÉCIMO",
    "DUODÉCIMO",
    "DECIMOTERCERO",
    "DECIMOCUARTO",
    "DECIMOQUINTO",
    "DECIMOSEXTO",
    "DECIMOSÉPTIMO",
    "DECIMOCTAVO",
    "DECIMONOVENO",
    "VIGÉSIMO",
)


def miles(value: int | float) -> str:
    return f"{round(value):,}".replace(",", ".")


def pesos(value: int | float) -> str:
    amount = round(value)
    sign = "-" if amount < 0 else ""
    return f"{sign}${miles(abs(amount))}"


def porcentaje(value: float, decimals: int = 1) -> str:
    return f"{value:.{decimals}f}".replace(".", ",") + "%"


def fecha_legal(value: date) -> str:
    return f"{value.day} de {MESES[value.month - 1]} de {value.year}"


def fecha_corta(value: date) -> str:
    return value.strftime("%d-%m-%Y")


def ordinal(position: int) -> str:
    if 1 <= position <= len(ORDINALES):
        return ORDINALES[position - 1]
    return f"{position}°"
