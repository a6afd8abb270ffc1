"""Chilean RUT helpers."""

import re

RUT_RE = re.compile(r"^\d{7,8}[0-9K]$")


def normalize_rut(rut: str | None) -> str:
    return (rut or "").replace(".", "").replace("-", "").strip().upper()


def check_digit(number: str) -> str:
    """Mod-11 check digit for the numeric body of a RUT."""
    total = 0
    multiplier = 2
    for ch in reversed(number):
        total += int(ch) * multiplier
        multiplier = 2 if multiplier == 7 else multiplier + 1
    dv = (11 - (total % 11)) % 11
    return "K" if dv == 10 else str(dv)


def is_valid_rut(rut: str | None) -> bool:
    clean = normalize_rut(rut)
    if not RUT_RE.match(clean):
        return False
    return check_digit(clean[:-1]) == clean[-1]
