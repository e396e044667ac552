"""Schema validation of model output into Recipe records.

Pure and synchronous. The gateway hands over raw text; this module decodes it
leniently, validates each candidate recipe on its own and keeps the ones that
pass. Only a batch with no usable recipe at all is an error.

Core Functions:
- decode_payload(): Lenient JSON decoding (direct, code fence, bracket extraction)
- validate_recipe(): One candidate → Recipe, or ValidationError(INVALID_RECIPE)
- validate_recipes(): Whole response → list of Recipe, tolerant of bad items
"""

import json
import re
import time
from typing import Any, Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from pantry_chef.models.errors import ValidationError, ValidationErrorKind
from pantry_chef.models.models import Recipe
from pantry_chef.utils.logger import logger

_CODE_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_JSON_ARRAY = re.compile(r"\[.*\]", re.DOTALL)
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def _millis() -> int:
    return int(time.time() * 1000)


def _try_json(text: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (json.JSONDecodeError, TypeError, ValueError):
        return False, None


def decode_payload(text: str) -> Any:
    """Decode model text that should contain JSON.

    Tries, in order: the whole text, the body of a Markdown code fence, the
    outermost ``[...]`` span and the outermost ``{...}`` span.

    Raises:
        ValidationError: MALFORMED_PAYLOAD if no strategy yields JSON
            (truncated output, prose only, empty text).
    """
    if not isinstance(text, str) or not text.strip():
        raise ValidationError(ValidationErrorKind.MALFORMED_PAYLOAD, "Model returned an empty response")

    ok, value = _try_json(text)
    if ok:
        return value

    candidates = []
    fence = _CODE_FENCE.search(text)
    if fence:
        candidates.append(fence.group(1))
    # Whichever bracket opens first is the outermost value
    spans = [match for match in (_JSON_ARRAY.search(text), _JSON_OBJECT.search(text)) if match]
    candidates.extend(match.group() for match in sorted(spans, key=lambda m: m.start()))

    for candidate in candidates:
        ok, value = _try_json(candidate)
        if ok:
            logger.debug("Recovered JSON embedded in model text")
            return value

    raise ValidationError(ValidationErrorKind.MALFORMED_PAYLOAD, "Model response is not valid JSON")


def _candidates(raw: Any) -> list[Any]:
    """Pull the list of candidate recipe objects out of a decoded payload."""
    if isinstance(raw, list):
        return raw
    if isinstance(raw, dict):
        wrapped = raw.get("recipes")
        if isinstance(wrapped, list):
            return wrapped
        if "title" in raw:
            return [raw]
    raise ValidationError(
        ValidationErrorKind.MALFORMED_PAYLOAD,
        f"Expected a list of recipes, got {type(raw).__name__}",
    )


def _describe(exc: PydanticValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "recipe"
        problems.append(f"{location}: {error['msg']}")
    return "; ".join(problems)


def make_recipe_id(index: int, timestamp: int) -> str:
    return f"recipe-{index}-{timestamp}"


def validate_recipe(raw: Any, index: int, timestamp: int) -> Recipe:
    """Validate one candidate recipe.

    Args:
        raw: Decoded JSON value for a single recipe.
        index: Position of the candidate in the model's batch.
        timestamp: Generation timestamp (ms) shared by the whole batch.

    Returns:
        Recipe with id ``recipe-<index>-<timestamp>``.

    Raises:
        ValidationError: INVALID_RECIPE describing every failing field.
    """
    if not isinstance(raw, dict):
        raise ValidationError(
            ValidationErrorKind.INVALID_RECIPE,
            f"Recipe {index} is a {type(raw).__name__}, not an object",
        )
    try:
        return Recipe.model_validate({**raw, "id": make_recipe_id(index, timestamp)})
    except PydanticValidationError as e:
        raise ValidationError(
            ValidationErrorKind.INVALID_RECIPE,
            f"Recipe {index} rejected: {_describe(e)}",
        ) from e


def validate_recipes(raw: Any, timestamp: Optional[int] = None, clock: Callable[[], int] = _millis) -> list[Recipe]:
    """Validate a multi-recipe model response.

    Args:
        raw: Raw model text, or an already-decoded JSON value (list of recipe
            objects, ``{"recipes": [...]}``, or a single recipe object).
        timestamp: Generation timestamp for ids; read from ``clock`` when None.
        clock: Millisecond clock, injectable for reproducible ids.

    Returns:
        The valid recipes in the order the model produced them.

    Raises:
        ValidationError: MALFORMED_PAYLOAD if the payload is not a recipe list
            at all; NO_VALID_RECIPES if every candidate was rejected.
    """
    if isinstance(raw, (str, bytes)):
        raw = decode_payload(raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw)

    candidates = _candidates(raw)
    if timestamp is None:
        timestamp = clock()

    recipes: list[Recipe] = []
    rejected = 0
    for index, candidate in enumerate(candidates):
        try:
            recipes.append(validate_recipe(candidate, index, timestamp))
        except ValidationError as e:
            rejected += 1
            logger.warning(e.message)

    if not recipes:
        raise ValidationError(
            ValidationErrorKind.NO_VALID_RECIPES,
            f"None of the {len(candidates)} recipes in the response passed validation",
            rejected=rejected,
        )

    if rejected:
        logger.info(f"Kept {len(recipes)} of {len(candidates)} recipes ({rejected} rejected)")
    return recipes
