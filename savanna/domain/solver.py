"""Hidden-solution generation and validation.

A solution is a list of N_SECTORS animals indexed by sector. Generation is a
randomized constructive search retried until the validator accepts it; the
search space is small enough that a handful of attempts usually suffice.
"""
import logging
import random
from collections import Counter
from dataclasses import dataclass, field
from typing import Sequence

from savanna.domain.board_rules import (
    ANIMAL_COUNTS,
    OAK_ALLOWED,
    Animal,
    ring_distance,
    wrap,
)
from savanna.domain.geometry import N_SECTORS
from savanna.errors import SolutionGenerationError

MAX_ATTEMPTS = 150_000
MIN_LEOPARD_DISTANCE = 3


@dataclass
class ValidationReport:
    valid: bool
    violations: list[str] = field(default_factory=list)


def zebra_components(zebra_sectors: Sequence[int]) -> list[list[int]]:
    """Connected components of zebra sectors under cyclic adjacency."""
    members = set(zebra_sectors)
    seen = set()
    components = []
    for start in zebra_sectors:
        if start in seen:
            continue
        seen.add(start)
        stack = [start]
        component = []
        while stack:
            v = stack.pop()
            component.append(v)
            for u in (wrap(v - 1), wrap(v + 1)):
                if u in members and u not in seen:
                    seen.add(u)
                    stack.append(u)
        components.append(component)
    return components


def _component_sizes(zebra_sectors: Sequence[int]) -> list[int]:
    return sorted(len(c) for c in zebra_components(zebra_sectors))


def validate(solution: Sequence) -> ValidationReport:
    """Check a full sector -> animal assignment against every placement rule.

    Args:
        solution (Sequence): N_SECTORS animals (Animal members or their names)

    Returns:
        ValidationReport: valid flag and human readable violations (1-based sectors)
    """
    errors = []
    if len(solution) != N_SECTORS:
        return ValidationReport(False, [f"Expected {N_SECTORS} sectors, found {len(solution)}."])
    try:
        board = [Animal(a) for a in solution]
    except ValueError as e:
        return ValidationReport(False, [f"Unknown animal: {e}"])

    counts = Counter(board)
    for animal, expected in ANIMAL_COUNTS.items():
        if counts[animal] != expected:
            errors.append(f"Expected {expected} {animal.value}, found {counts[animal]}.")

    for i, animal in enumerate(board):
        if animal == Animal.OAK and i not in OAK_ALLOWED:
            errors.append(f"Oak in invalid sector {i + 1}.")

    leopards = [i for i, a in enumerate(board) if a == Animal.LEOPARD]
    for a_idx in range(len(leopards)):
        for b_idx in range(a_idx + 1, len(leopards)):
            a, b = leopards[a_idx], leopards[b_idx]
            if ring_distance(a, b) < MIN_LEOPARD_DISTANCE:
                errors.append(f"Leopards too close at {a + 1} and {b + 1}.")

    vultures = [i for i, a in enumerate(board) if a == Animal.VULTURE]
    if len(vultures) == 2:
        # clockwise of a leopard means the leopard sits one step counter-clockwise
        all_cw = all(board[wrap(v - 1)] == Animal.LEOPARD for v in vultures)
        all_ccw = all(board[wrap(v + 1)] == Animal.LEOPARD for v in vultures)
        if not (all_cw or all_ccw):
            errors.append("Vulture directional rule violated.")

    zebras = [i for i, a in enumerate(board) if a == Animal.ZEBRA]
    if len(zebras) == 4:
        zebra_set = set(zebras)
        for i in zebras:
            if wrap(i - 1) not in zebra_set and wrap(i + 1) not in zebra_set:
                errors.append(f"Zebra at {i + 1} not adjacent to another zebra.")
        sizes = _component_sizes(zebras)
        if sizes not in ([4], [2, 2]):
            errors.append(f"Zebra grouping invalid: {','.join(str(s) for s in sizes)}")

    return ValidationReport(not errors, errors)


def _place_zebra_block(board: list, rng: random.Random) -> bool:
    starts = list(range(N_SECTORS))
    rng.shuffle(starts)
    for s in starts:
        run = [wrap(s + k) for k in range(4)]
        if all(board[i] is None for i in run):
            for i in run:
                board[i] = Animal.ZEBRA
            return True
    return False


def _place_zebra_pairs(board: list, rng: random.Random) -> bool:
    pairs = [
        (s, wrap(s + 1))
        for s in range(N_SECTORS)
        if board[s] is None and board[wrap(s + 1)] is None
    ]
    order = list(range(len(pairs)))
    rng.shuffle(order)
    for i in range(len(order)):
        for j in range(i + 1, len(order)):
            cells = set(pairs[order[i]]) | set(pairs[order[j]])
            if len(cells) != 4:
                continue
            # two pairs touching end to end would merge into a block of 4
            if _component_sizes(list(cells)) != [2, 2]:
                continue
            for c in cells:
                board[c] = Animal.ZEBRA
            return True
    return False


def _place_zebras(board: list, rng: random.Random) -> bool:
    placers = [_place_zebra_block, _place_zebra_pairs]
    rng.shuffle(placers)
    return any(place(board, rng) for place in placers)


def _attempt(rng: random.Random) -> list | None:
    board = [None] * N_SECTORS

    if not _place_zebras(board, rng):
        return None

    open_sectors = [i for i in range(N_SECTORS) if board[i] is None]
    rng.shuffle(open_sectors)
    leopards = []
    for idx in open_sectors:
        if len(leopards) == ANIMAL_COUNTS[Animal.LEOPARD]:
            break
        if all(ring_distance(l, idx) >= MIN_LEOPARD_DISTANCE for l in leopards):
            leopards.append(idx)
            board[idx] = Animal.LEOPARD
    if len(leopards) != ANIMAL_COUNTS[Animal.LEOPARD]:
        return None

    cw = sorted({wrap(l + 1) for l in leopards if board[wrap(l + 1)] is None})
    ccw = sorted({wrap(l - 1) for l in leopards if board[wrap(l - 1)] is None})
    directions = [c for c in (cw, ccw) if len(c) >= 2]
    if not directions:
        return None
    for i in rng.sample(rng.choice(directions), 2):
        board[i] = Animal.VULTURE

    oak_slots = sorted(i for i in OAK_ALLOWED if board[i] is None)
    if len(oak_slots) < ANIMAL_COUNTS[Animal.OAK]:
        return None
    for i in rng.sample(oak_slots, ANIMAL_COUNTS[Animal.OAK]):
        board[i] = Animal.OAK

    remaining = [i for i in range(N_SECTORS) if board[i] is None]
    if len(remaining) != 1:
        return None
    board[remaining[0]] = Animal.AARDWOLF
    return board


def generate(rng: random.Random | None = None, max_attempts: int = MAX_ATTEMPTS) -> list[Animal]:
    """Generate a random solution satisfying every placement rule.

    Args:
        rng (random.Random | None): Random source, a fresh random.Random() if None
        max_attempts (int): Retry budget before giving up

    Raises:
        SolutionGenerationError: No valid solution within max_attempts

    Returns:
        list[Animal]: Animal per sector
    """
    rng = rng or random.Random()
    for attempt in range(max_attempts):
        board = _attempt(rng)
        if board is None:
            continue
        if validate(board).valid:
            logging.debug(f"Solution generated after {attempt + 1} attempts")
            return board
    raise SolutionGenerationError(f"Failed to generate solution after {max_attempts} attempts.")
