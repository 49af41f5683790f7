"""Ring/board rules that are independent from HTTP and DB.

This module is organized by *concept* (rules), not by command.

Rule of thumb:
- OK: ring arithmetic, selection validation, survey accounting.
- Not OK: touching DB sessions, FastAPI, datetime.now(), etc.
"""
from enum import Enum
from typing import Iterable, Sequence

from savanna.domain.geometry import N_SECTORS

ACTIVE_LEN = 6
SHIFT_PER_SURVEY = 2
MAX_SELECTION = 4
MAX_GUESSES = 3

# Survey length -> minutes taken off the deadline.
SURVEY_COST_MINUTES = {2: 20, 3: 15, 4: 10}


class Animal(str, Enum):
    OAK = "OAK"
    LEOPARD = "LEOPARD"
    ZEBRA = "ZEBRA"
    VULTURE = "VULTURE"
    AARDWOLF = "AARDWOLF"


SURVEYABLE = frozenset({Animal.OAK, Animal.LEOPARD, Animal.ZEBRA, Animal.VULTURE})

# Sectors 1, 3, 5, 8, 10 and 13 on the printed map (0-based here).
OAK_ALLOWED = frozenset(n - 1 for n in (1, 3, 5, 8, 10, 13))

ANIMAL_COUNTS = {
    Animal.OAK: 3,
    Animal.LEOPARD: 3,
    Animal.ZEBRA: 4,
    Animal.VULTURE: 2,
    Animal.AARDWOLF: 1,
}


def wrap(index: int) -> int:
    """Map any integer onto the ring."""
    return index % N_SECTORS


def ring_distance(a: int, b: int) -> int:
    """Shortest number of steps between two sectors, either direction."""
    d = abs(a - b) % N_SECTORS
    return min(d, N_SECTORS - d)


def active_sectors(active_start_index: int) -> list[int]:
    return [wrap(active_start_index + k) for k in range(ACTIVE_LEN)]


def is_sector_active(sector: int, active_start_index: int) -> bool:
    """Return True if sector lies in the window of ACTIVE_LEN sectors starting at active_start_index."""
    return wrap(sector - active_start_index) < ACTIVE_LEN


def contiguous_run(sectors: Sequence[int]) -> tuple[bool, list[int] | None]:
    """Canonicalize a selection into a clockwise run.

    A selection is a run when some member, walked forward len-1 steps,
    visits exactly the selected set. Only 2..4 distinct sectors qualify.

    Args:
        sectors (Sequence[int]): Selected sector indices in any order

    Returns:
        tuple[bool, list[int] | None]: (ok, ordered run starting at its first clockwise sector)
    """
    if not isinstance(sectors, (list, tuple)):
        return False, None
    unique = set(sectors)
    if len(unique) != len(sectors):
        return False, None
    n = len(sectors)
    if n < 2 or n > MAX_SELECTION:
        return False, None
    if any(not isinstance(s, int) or s < 0 or s >= N_SECTORS for s in sectors):
        return False, None

    for start in sectors:
        walk = [wrap(start + k) for k in range(n)]
        if set(walk) == unique:
            return True, walk
    return False, None


def sectors_display(ordered: Sequence[int]) -> tuple[str, bool]:
    """1-based "first to last" label; wraps when the run crosses sector 13 -> 1."""
    start, end = ordered[0], ordered[-1]
    wraps = end < start
    text = f"{start + 1} to {end + 1}"
    if wraps:
        text += " (wrap)"
    return text, wraps


def count_in_sectors(solution: Sequence[Animal], sectors: Iterable[int], animal: Animal) -> int:
    return sum(1 for s in sectors if solution[s] == animal)


def survey_cost_minutes(run_length: int) -> int | None:
    return SURVEY_COST_MINUTES.get(run_length)
