from __future__ import annotations


def format_cents(cents: int) -> str:
    """Render integer cents as a plain decimal string, e.g. 5000 -> '50.00'."""
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}{cents // 100:,}.{cents % 100:02d}"


def percentage(part: int, whole: int) -> int:
    """Whole-number percentage, rounded half up. 0 of 0 is 0; anything of 0 is 100."""
    if whole <= 0:
        return 100 if part > 0 else 0
    return (part * 100 + whole // 2) // whole
