"""Pre-game hints: true negatives of the form "sector S does not hold animal A"."""
import random
from typing import Sequence

from savanna.domain.board_rules import Animal
from savanna.domain.geometry import N_SECTORS
from savanna.errors import SolutionGenerationError

HINT_ANIMALS = (
    Animal.VULTURE,
    Animal.VULTURE,
    Animal.VULTURE,
    Animal.LEOPARD,
    Animal.LEOPARD,
    Animal.ZEBRA,
)


def generate_hints(solution: Sequence[Animal], rng: random.Random | None = None) -> list[dict]:
    """Pick one distinct sector per wanted animal where that animal is absent.

    Args:
        solution (Sequence[Animal]): The hidden solution
        rng (random.Random | None): Random source, a fresh random.Random() if None

    Raises:
        SolutionGenerationError: A wanted animal has no eligible sector left

    Returns:
        list[dict]: Six {"animal": str, "sector": int} hints (0-based sectors)
    """
    rng = rng or random.Random()
    wanted = list(HINT_ANIMALS)
    rng.shuffle(wanted)
    used = set()
    hints = []
    for animal in wanted:
        candidates = [
            s for s in range(N_SECTORS)
            if s not in used and Animal(solution[s]) != animal
        ]
        if not candidates:
            raise SolutionGenerationError(f"No sector left for a {animal.value} hint.")
        sector = rng.choice(candidates)
        used.add(sector)
        hints.append({"animal": animal.value, "sector": sector})
    return hints
