import math

MICROS_PER_USD = 1_000_000
MICROS_PER_TOKEN = 8
MIN_AMOUNT_MICROS = 10_000


def estimate_amount_micros(
    default_amount_usd: float,
    max_tokens: int,
    floor_micros: int = MIN_AMOUNT_MICROS,
) -> int:
    """Pre-authorization estimate in micro-units.

    Negative token budgets contribute nothing. The result never drops below
    ``floor_micros`` and a configured floor can only raise the 10,000 minimum.
    """
    floor = max(floor_micros, MIN_AMOUNT_MICROS)
    estimate = default_amount_usd * MICROS_PER_USD + max(max_tokens, 0) * MICROS_PER_TOKEN
    if not math.isfinite(estimate):
        return floor
    return max(floor, round(estimate))


def micros_to_usd(micros: int, floor_micros: int = MIN_AMOUNT_MICROS) -> float:
    floor = max(floor_micros, MIN_AMOUNT_MICROS)
    return round(max(micros, floor) / MICROS_PER_USD, 6)
