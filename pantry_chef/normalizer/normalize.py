"""Ingredient name normalization.

Turns raw user input or image-extraction text into an IngredientSet:
trimmed, whitespace-collapsed, de-duplicated by a case-folded comparison key,
keeping the first-seen spelling for display.
"""

import json
import re
import unicodedata
from typing import Iterable, Iterator

_WHITESPACE = re.compile(r"\s+")
_SEPARATORS = re.compile(r"[,\n;]")
# "- egg", "* egg", "• egg", "1. egg"
_BULLET = re.compile(r"^(?:[-*•]+|\d+[.)])\s*")


def clean_display(raw: str) -> str:
    """Trim and collapse internal whitespace, keeping the original casing."""
    return _WHITESPACE.sub(" ", unicodedata.normalize("NFKC", raw)).strip()


def comparison_key(raw: str) -> str:
    """Key under which two spellings of an ingredient are considered equal."""
    return clean_display(raw).casefold()


class IngredientSet:
    """Immutable, ordered set of canonical ingredient names.

    Members are unique by comparison key. Iteration and ``display()`` follow
    first-seen order; equality and hashing ignore order and casing.
    """

    __slots__ = ("_display", "_keys")

    def __init__(self, display: tuple[str, ...] = (), keys: tuple[str, ...] = ()) -> None:
        if len(display) != len(keys):
            raise ValueError("display and keys must have the same length")
        self._display = display
        self._keys = keys

    def display(self) -> list[str]:
        """Display names in first-seen order."""
        return list(self._display)

    def keys(self) -> tuple[str, ...]:
        return self._keys

    def fingerprint(self) -> str:
        return fingerprint(self)

    def __len__(self) -> int:
        return len(self._keys)

    def __bool__(self) -> bool:
        return bool(self._keys)

    def __iter__(self) -> Iterator[str]:
        return iter(self._display)

    def __contains__(self, item: object) -> bool:
        return isinstance(item, str) and comparison_key(item) in self._keys

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IngredientSet):
            return NotImplemented
        return frozenset(self._keys) == frozenset(other._keys)

    def __hash__(self) -> int:
        return hash(frozenset(self._keys))

    def __repr__(self) -> str:
        return f"IngredientSet({list(self._display)!r})"


def normalize(raw_items: Iterable[str]) -> IngredientSet:
    """Build an IngredientSet from raw strings.

    Never fails: non-string and blank items are skipped, so the worst case is
    an empty set.

    Example:
        >>> normalize(["egg", "egg", "Flour "]).display()
        ['egg', 'Flour']
    """
    display: list[str] = []
    keys: list[str] = []
    seen: set[str] = set()
    for item in raw_items:
        if not isinstance(item, str):
            continue
        shown = clean_display(item)
        if not shown:
            continue
        key = shown.casefold()
        if key in seen:
            continue
        seen.add(key)
        display.append(shown)
        keys.append(key)
    return IngredientSet(tuple(display), tuple(keys))


def fingerprint(ingredients: IngredientSet) -> str:
    """Canonical cache key: sorted comparison keys as a JSON array.

    Entry order and casing never change the result.
    """
    return json.dumps(sorted(ingredients.keys()), ensure_ascii=False, separators=(",", ":"))


def split_ingredient_text(text: str) -> list[str]:
    """Split the vision model's free-text answer into candidate names.

    The model is asked for a comma-separated list but sometimes answers with
    one item per line or a bulleted list; trailing periods are dropped.
    """
    items = []
    for part in _SEPARATORS.split(text or ""):
        part = _BULLET.sub("", part.strip()).strip().rstrip(".").strip()
        if part:
            items.append(part)
    return items
