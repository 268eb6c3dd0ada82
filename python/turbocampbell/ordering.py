"""Fixed-frame / blade-triplet ordering of state, input and output vectors."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Sequence

from turbocampbell.linfile import StateDescriptor, sort_descriptors

NUM_BLADES = 3

# Blade number token in a descriptor label, e.g. "blade 2", "BD_3", "PitchBearing1"
BLADE_PATTERN = re.compile(r"(blade\s+|blade root |PitchBearing|BD_|BD)(\d)", re.IGNORECASE)


@dataclass
class StateOrdering:
    """Partition of vector indices into fixed entries and blade triplets.

    Parameters
    ----------
    num : number of descriptors ordered
    num_fixed : entries kept as-is (non-rotating plus unmatched rotating)
    num_rotating : entries belonging to a blade triplet
    indices : permutation, fixed entries first then triplets
    triplets : per-quantity ``[blade1, blade2, blade3]`` indices
    """

    num: int = 0
    num_fixed: int = 0
    num_rotating: int = 0
    indices: list[int] = field(default_factory=list)
    triplets: list[list[int]] = field(default_factory=list)

    @property
    def num_triplets(self) -> int:
        return len(self.triplets)


def new_state_ordering(
    descriptors: Sequence[StateDescriptor],
    num_blades: int = NUM_BLADES,
) -> StateOrdering:
    """Order descriptors into fixed entries followed by blade triplets.

    Rotating descriptors whose labels differ only in the blade number are
    gathered into one triplet. Rotating descriptors that cannot be completed
    into a full triplet are kept with the fixed entries.
    """
    unused = {}
    for d in descriptors:
        if d.rotating:
            unused[d.sanitized_label()] = d.index

    fixed: list[int] = []
    other: list[int] = []
    rotating: list[int] = []
    triplets: list[list[int]] = []

    for d in descriptors:
        if not d.rotating:
            fixed.append(d.index)
            continue

        label = d.sanitized_label()
        if label not in unused:
            continue

        match = BLADE_PATTERN.search(label)
        if match is None:
            continue

        triplet = []
        for blade in range(1, num_blades + 1):
            candidate = label.replace(match.group(0), f"{match.group(1)}{blade}", 1)
            if candidate in unused:
                triplet.append(unused.pop(candidate))

        if len(triplet) != num_blades:
            other.extend(triplet)
            continue

        triplets.append(triplet)
        rotating.extend(triplet)

    return StateOrdering(
        num=len(descriptors),
        num_fixed=len(fixed) + len(other),
        num_rotating=len(rotating),
        indices=fixed + other + rotating,
        triplets=triplets,
    )


def combine_orderings(*orderings: StateOrdering) -> StateOrdering:
    """Concatenate orderings into one permutation."""
    combined = StateOrdering()
    for o in orderings:
        combined.num_fixed += o.num_fixed
        combined.num_rotating += o.num_rotating
        combined.indices.extend(o.indices)
        combined.triplets.extend(o.triplets)
    combined.num = len(combined.indices)
    return combined


def split_second_order(
    descriptors: Sequence[StateDescriptor],
) -> tuple[list[StateDescriptor], list[StateDescriptor], list[StateDescriptor]]:
    """Split states into second-order positions, their rates, and first-order states.

    The second-order part of the sorted list is assumed to split exactly
    in half between positions (q2) and rates (q2dot).
    """
    ordered = sort_descriptors(descriptors)
    num_x1 = sum(1 for d in ordered if d.deriv_order == 1)
    num_x2 = len(ordered) - num_x1
    half = num_x2 // 2
    return ordered[:half], ordered[half:num_x2], ordered[num_x2:]
