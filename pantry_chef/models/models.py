"""Data models for the recipe pipeline.

Defines Pydantic models for validated recipes and for the request/response
envelopes exchanged with the model gateway. All models are frozen: a Recipe
is never modified after the validator builds it.
"""

import re
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

_LEADING_INTEGER = re.compile(r"^\s*(\d+)(?:\.0+)?(?!\.?\d)")


def coerce_count(value: Any) -> int:
    """Coerce a count the model may emit as a number or a numeric string.

    Accepts ints, integral floats and strings that start with an integer
    ("4", "4 servings", "250 kcal"). Booleans are rejected.
    """
    if isinstance(value, bool):
        raise ValueError("expected a number, got a boolean")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValueError(f"expected a whole number, got {value}")
    if isinstance(value, str):
        match = _LEADING_INTEGER.match(value.replace(",", ""))
        if match:
            return int(match.group(1))
        raise ValueError(f"expected a numeric string, got {value!r}")
    raise ValueError(f"expected a number, got {type(value).__name__}")


class Difficulty(str, Enum):
    """Closed set of recipe difficulty labels."""

    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"

    @classmethod
    def parse(cls, value: Any) -> "Difficulty":
        """Case-insensitive lookup; raises ValueError for anything unrecognized."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            wanted = value.strip().casefold()
            for member in cls:
                if member.value.casefold() == wanted:
                    return member
        raise ValueError(f"difficulty must be one of Easy, Medium, Hard, got {value!r}")


class Nutrition(BaseModel):
    """Per-serving nutrition estimate."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    calories: Annotated[int, Field(ge=0, description="Calories per serving")]
    protein: Annotated[str, Field(min_length=1, description="e.g. 10g")]
    carbs: Annotated[str, Field(min_length=1, description="e.g. 2g")]
    fat: Annotated[str, Field(min_length=1, description="e.g. 15g")]

    @field_validator("calories", mode="before")
    @classmethod
    def _coerce_calories(cls, v: Any) -> int:
        return coerce_count(v)

    @field_validator("protein", "carbs", "fat", mode="before")
    @classmethod
    def _magnitude_text(cls, v: Any) -> Any:
        # Bare numbers are grams
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return f"{v:g}g"
        return v


class Recipe(BaseModel):
    """A complete, validated recipe.

    Field names follow Python conventions; aliases carry the camelCase names
    the model emits and the presentation layer consumes
    (``model_dump(by_alias=True)``).
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True, populate_by_name=True)

    id: Annotated[str, Field(min_length=1, description="recipe-<index>-<timestamp>")]
    title: Annotated[str, Field(min_length=1)]
    description: str
    ingredients: Annotated[tuple[str, ...], Field(min_length=1, description="Ingredients with measurements")]
    instructions: Annotated[tuple[str, ...], Field(min_length=1, description="Ordered cooking steps")]
    prep_time: Annotated[str, Field(alias="prepTime", min_length=1)]
    cook_time: Annotated[str, Field(alias="cookTime", min_length=1)]
    servings: Annotated[int, Field(ge=1)]
    difficulty: Difficulty
    nutrition: Nutrition
    image_prompt: Annotated[str, Field(alias="imagePrompt")]

    @field_validator("ingredients", "instructions")
    @classmethod
    def _no_blank_items(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        items = tuple(item.strip() for item in v)
        if not all(items):
            raise ValueError("items must be non-empty strings")
        return items

    @field_validator("servings", mode="before")
    @classmethod
    def _coerce_servings(cls, v: Any) -> int:
        return coerce_count(v)

    @field_validator("difficulty", mode="before")
    @classmethod
    def _normalize_difficulty(cls, v: Any) -> Difficulty:
        return Difficulty.parse(v)


class RequestKind(str, Enum):
    TEXT_PROMPT = "text_prompt"
    IMAGE_EXTRACT = "image_extract"


class ResponseStatus(str, Enum):
    OK = "ok"
    RATE_LIMITED = "rateLimited"
    TRANSIENT_ERROR = "transientError"
    PERMANENT_ERROR = "permanentError"


class TextPromptRequest(BaseModel):
    """Ask the model for recipes built from the given ingredients."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[RequestKind.TEXT_PROMPT] = RequestKind.TEXT_PROMPT
    ingredients: tuple[str, ...]


class ImageExtractRequest(BaseModel):
    """Ask the model to list the ingredients visible in a photo."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[RequestKind.IMAGE_EXTRACT] = RequestKind.IMAGE_EXTRACT
    image_bytes: bytes
    mime_type: str = "image/jpeg"


GatewayRequest = Annotated[Union[TextPromptRequest, ImageExtractRequest], Field(discriminator="kind")]


class GatewayResponse(BaseModel):
    """Raw transport outcome. ``text`` is untrusted model output."""

    model_config = ConfigDict(frozen=True)

    status: ResponseStatus
    text: str = ""
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is ResponseStatus.OK
