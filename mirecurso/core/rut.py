"""Chilean RUT helpers: cleaning, check digit and display format."""
from __future__ import annotations

import re

_NON_RUT_CHARS = re.compile(r"[^0-9kK]")


def limpiar_rut(value: str) -> str:
    return _NON_RUT_CHARS.sub("", value or "").upper()


def digito_verificador(cuerpo: str) -> str:
    """Modulo-11 check digit with weights cycling 2..7 from the rightmost digit."""
    digits = re.sub(r"\D", "", cuerpo or "")
    total = 0
    weight = 2
    for char in reversed(digits):
        total += int(char) * weight
        weight = 2 if weight == 7 else weight + 1
    result = 11 - (total % 11)
    if result == 11:
        return "0"
    if result == 10:
        return "K"
    return str(result)


def validar_rut(value: str) -> bool:
    rut = limpiar_rut(value)
    if len(rut) < 8 or len(rut) > 9:
        return False
    cuerpo, dv = rut[:-1], rut[-1]
    if not cuerpo.isdigit():
        return False
    return dv == digito_verificador(cuerpo)


def formatear_rut(value: str) -> str:
    rut = limpiar_rut(value)
    if len(rut) < 2:
        return rut
    cuerpo, dv = rut[:-1], rut[-1]
    grouped = f"{int(cuerpo):,}".replace(",", ".") if cuerpo.isdigit() else cuerpo
    return f"{grouped}-{dv}"


def rut_sin_puntos(value: str) -> str:
    return formatear_rut(value).replace(".", "")
