"""
Chapter identity and matching.

Sources and the catalog disagree on how chapter numbers look: one API
sends ``12``, another ``12.0``, the catalog may hold ``"12.000"`` or a
non-numeric label such as ``"extra"``. Everything that decides whether a
chapter is already imported goes through :func:`identifiers_match`.
"""
import logging
import math
import re
from typing import Iterable, List, Optional, Set, Union

from errors import InvalidIdentifier

logger = logging.getLogger(__name__)

Identifier = Union[int, float, str]

# Absolute tolerance for fractional chapter numbers
TOLERANCE = 0.001

_NUMERIC = re.compile(r'^\s*[-+]?(\d+(\.\d*)?|\.\d+)\s*$')


def as_number(value) -> Optional[float]:
    """Return the numeric value of an identifier, or None if it is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and _NUMERIC.match(value):
        number = float(value)
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _is_integral(number: float) -> bool:
    return number == math.floor(number)


def format_identifier(value: Identifier) -> str:
    """Canonical text form of an identifier: ``12``, ``12.5`` or the label itself."""
    if isinstance(value, str):
        return value
    number = as_number(value)
    if number is None:
        return str(value)
    if _is_integral(number):
        return str(int(number))
    return repr(number)


def identifiers_match(candidate: Identifier, existing: Identifier) -> bool:
    """
    Decide whether two chapter identifiers denote the same chapter.

    1. Either side non-numeric: case-sensitive string comparison.
    2. Both integral numbers: exact equality.
    3. Otherwise: absolute difference below ``TOLERANCE``.
    """
    candidate_number = as_number(candidate)
    existing_number = as_number(existing)

    if candidate_number is None or existing_number is None:
        return format_identifier(candidate) == format_identifier(existing)

    if _is_integral(candidate_number) and _is_integral(existing_number):
        return candidate_number == existing_number

    return abs(candidate_number - existing_number) < TOLERANCE


def is_new(candidate: Identifier, existing_identifiers: Iterable[Identifier]) -> bool:
    """True if ``candidate`` matches none of ``existing_identifiers``."""
    return not any(identifiers_match(candidate, existing) for existing in existing_identifiers)


def require_number(chapter_ref) -> float:
    """Numeric identifier of a parsed chapter; raises InvalidIdentifier when absent."""
    number = as_number(chapter_ref.number)
    if number is None:
        raise InvalidIdentifier(f"Chapter '{chapter_ref.name}' has no numeric identifier")
    return number


def select_new_chapters(chapter_refs, existing_identifiers: Iterable[Identifier]) -> list:
    """
    Filter parsed chapters down to the ones not yet in the catalog.

    Chapters without a numeric identifier are skipped (logged, not an
    error). A chapter listed twice by the source is kept once.

    Args:
        chapter_refs: Parsed ChapterRef list, in import order
        existing_identifiers: Identifiers already present for the work

    Returns:
        New ChapterRefs in the given order
    """
    known: List[Identifier] = list(existing_identifiers)
    new_chapters = []

    for ref in chapter_refs:
        try:
            number = require_number(ref)
        except InvalidIdentifier as e:
            logger.info(f"Skipping chapter: {e}")
            continue

        if not is_new(number, known):
            logger.debug(f"Chapter {format_identifier(number)} already exists")
            continue

        known.append(number)
        new_chapters.append(ref)

    logger.info(f"New chapters to import: {len(new_chapters)}")
    return new_chapters


def parse_chapter_selection(items: Iterable[str]) -> Set[int]:
    """
    Parse a chapter selection such as ``["1-5", "7"]`` into chapter numbers.

    Raises:
        ValueError: on malformed numbers or reversed ranges
    """
    numbers: Set[int] = set()
    for item in items:
        item = item.strip()
        if not item:
            continue
        if '-' in item:
            start_text, _, end_text = item.partition('-')
            try:
                start, end = int(start_text.strip()), int(end_text.strip())
            except ValueError:
                raise ValueError(f"Invalid range: {item}")
            if start > end:
                raise ValueError(f"Invalid range: {item}")
            numbers.update(range(start, end + 1))
        else:
            try:
                numbers.add(int(item))
            except ValueError:
                raise ValueError(f"Invalid number: {item}")
    return numbers


def in_selection(chapter_ref, selection: Set[int]) -> bool:
    """True if the chapter's number is one of the selected chapter numbers."""
    number = as_number(chapter_ref.number)
    if number is None:
        return False
    return any(identifiers_match(number, selected) for selected in selection)
