"""Loading categories as a fixed-width bit set.

Operations are tagged with one or more categories (bitwise OR) and listeners
filter on a category mask. Two masks match when they share at least one bit.
"""

from __future__ import annotations

from enum import IntFlag
from typing import Iterable


class LoadingCategory(IntFlag):
    """Application categories used to group loading operations.

    Values:
        NONE: Empty set. A listener filtering on NONE never responds.
        DATA: Data fetch/parse work.
        STYLING: Appearance changes.
        ANALYTICS: Analysis passes.
        MOLECULES: Molecule model loading.
        GIS: Geospatial layers.
        VISUALS: Rendering assets.
        SCENE: Scene/page transitions.
        NETWORK: Remote requests.
    """

    NONE = 0
    DATA = 1 << 0
    STYLING = 1 << 1
    ANALYTICS = 1 << 2
    MOLECULES = 1 << 3
    GIS = 1 << 4
    VISUALS = 1 << 5
    SCENE = 1 << 6
    NETWORK = 1 << 7

    @classmethod
    def all_categories(cls) -> "LoadingCategory":
        mask = cls.NONE
        for member in cls:
            mask |= member
        return mask


def categories_match(a: LoadingCategory | int, b: LoadingCategory | int) -> bool:
    """Return True if the two masks share at least one category bit."""
    return (int(a) & int(b)) != 0


def union(categories: Iterable[LoadingCategory | int]) -> LoadingCategory:
    """Combine categories into a single mask."""
    mask = LoadingCategory.NONE
    for cat in categories:
        mask |= LoadingCategory(cat)
    return mask


def category_names(mask: LoadingCategory | int) -> list[str]:
    """Names of the single-bit categories set in `mask`, in bit order."""
    value = int(mask)
    return [
        member.name
        for member in LoadingCategory
        if member.value and (value & member.value) == member.value and member.name
    ]
