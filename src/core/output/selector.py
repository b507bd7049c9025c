"""
Output Selector
===============

Resolves a global image index into one diagram unit and the index of the
image within that unit.
"""

from typing import Optional

from src.models.schemas import CompiledDocument, Selection


def select(document: CompiledDocument, index: int) -> Optional[Selection]:
    """
    Locate the image at a global index.

    Units are walked in document order, each consuming its image count from
    the remaining index. A unit whose rendering failed still holds one image.

    Returns:
        The selection, or None for a negative index, an empty document or an
        index past the last image
    """
    if index < 0 or document.is_empty:
        return None

    remaining = index
    for unit in document.units:
        if remaining < unit.image_count:
            return Selection(unit=unit, index=remaining)
        remaining -= unit.image_count

    return None
