"""Filename and path heuristics for manufacturer/category/subcategory, BPM and key.

Matching is case-insensitive. Manufacturer detection runs in two passes:

1. Prefix tier: the filename starts with ``"<manufacturer> - "`` or the
   immediate parent folder starts with the manufacturer name.
2. Substring tier (only when pass 1 found nothing): the filename or the
   parent folder contains the manufacturer name anywhere.

Within a pass the first row in repository order (primary key) wins. When
several names match in the same tier, e.g. a parent folder starting with
both ``"Vengeance"`` and ``"Vengeance Sound"``, the outcome depends on that
order; there is no longest-match rule.

Key signatures are stored normalized rather than as matched: whitespace
between note and mode is dropped, the note is upper-cased, the mode is
lower-cased and a trailing ``or`` is cut, so ``"f# Minor"`` is kept as
``"F#min"`` and ``"F maj"`` as ``"Fmaj"``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass

from sample_library.catalog.folders import folder_segments
from sample_library.catalog.repository import (
    CategoryRow,
    ManufacturerRow,
    SubcategoryRow,
    TaxonomyRepository,
)

logger = logging.getLogger(__name__)

_BPM_PATTERN = re.compile(r"(?<![\d.])(\d+(?:\.\d+)?)\s*BPM(?![a-z])", re.IGNORECASE)
_KEY_PATTERN = re.compile(r"(?<![a-z])([A-G]#?)\s*(maj|min)(?:or)?(?![a-z])", re.IGNORECASE)


@dataclass
class Classification:
    """Everything the classifier derives for one file."""

    manufacturer_id: int | None = None
    category_id: int | None = None
    subcategory_id: int | None = None
    bpm: float | None = None
    key_signature: str | None = None
    parent_folder: str | None = None


def detect_manufacturer(
    filename: str,
    parent_folder: str,
    manufacturers: Sequence[ManufacturerRow],
) -> ManufacturerRow | None:
    lower_filename = filename.lower()
    lower_parent = parent_folder.lower()
    candidates = [(m, m.name.strip().lower()) for m in manufacturers if m.name.strip()]

    for manufacturer, name in candidates:
        if lower_filename.startswith(f"{name} - ") or (
            lower_parent and lower_parent.startswith(name)
        ):
            return manufacturer

    for manufacturer, name in candidates:
        if name in lower_filename or name in lower_parent:
            return manufacturer

    return None


def detect_category(filename: str, categories: Sequence[CategoryRow]) -> CategoryRow | None:
    lower_filename = filename.lower()
    for category in categories:
        name = category.name.strip().lower()
        if name and name in lower_filename:
            return category
    return None


def detect_subcategory(
    filename: str, subcategories: Sequence[SubcategoryRow]
) -> SubcategoryRow | None:
    lower_filename = filename.lower()
    for subcategory in subcategories:
        name = subcategory.name.strip().lower()
        if name and name in lower_filename:
            return subcategory
    return None


def extract_bpm(filename: str, embedded_bpm: float | None = None) -> float | None:
    """Prefer the embedded BPM tag, else scan the filename for ``<n> BPM``."""
    if embedded_bpm is not None:
        return float(embedded_bpm)
    match = _BPM_PATTERN.search(filename)
    return float(match.group(1)) if match else None


def extract_key_signature(filename: str) -> str | None:
    """Find a key such as ``"C#min"`` or ``"F maj"`` in the filename.

    Returned in normalized form, not as matched: ``"c# MIN"`` -> ``"C#min"``.
    """
    match = _KEY_PATTERN.search(filename)
    if not match:
        return None
    return f"{match.group(1).upper()}{match.group(2).lower()}"


class TaxonomyClassifier:
    """Classifies files against taxonomy rows fetched fresh on every call."""

    def __init__(self, repository: TaxonomyRepository) -> None:
        self.repository = repository

    async def classify(
        self,
        original_filename: str,
        source_path: str | None = None,
        embedded_bpm: float | None = None,
    ) -> Classification:
        segments = folder_segments(source_path)
        parent_folder = segments[-1] if segments else ""

        manufacturer = detect_manufacturer(
            original_filename, parent_folder, await self.repository.list_manufacturers()
        )
        category = detect_category(original_filename, await self.repository.list_categories())
        subcategory = None
        if category is not None:
            subcategory = detect_subcategory(
                original_filename, await self.repository.list_subcategories(category.id)
            )

        classification = Classification(
            manufacturer_id=manufacturer.id if manufacturer else None,
            category_id=category.id if category else None,
            subcategory_id=subcategory.id if subcategory else None,
            bpm=extract_bpm(original_filename, embedded_bpm),
            key_signature=extract_key_signature(original_filename),
            parent_folder=parent_folder or None,
        )
        logger.debug(
            "Classified %s: manufacturer=%s category=%s subcategory=%s",
            original_filename,
            manufacturer.name if manufacturer else None,
            category.name if category else None,
            subcategory.name if subcategory else None,
        )
        return classification
