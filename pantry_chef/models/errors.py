"""Error taxonomy for the recipe pipeline.

Each layer raises its own exception type carrying a ``kind``:

- GatewayError: transport failures (only PERMANENT and EXHAUSTED leave the gateway)
- ValidationError: model output that cannot be turned into recipes
- PipelineError: what callers of RecipePipeline see, wrapping the two above

Every PipelineError kind has its own user-facing message.
"""

from enum import Enum
from typing import Optional


class GatewayErrorKind(str, Enum):
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    PERMANENT = "permanent"
    EXHAUSTED = "exhausted"

    @property
    def retryable(self) -> bool:
        return self in (GatewayErrorKind.TIMEOUT, GatewayErrorKind.RATE_LIMITED, GatewayErrorKind.TRANSIENT)


class ValidationErrorKind(str, Enum):
    MALFORMED_PAYLOAD = "malformed_payload"
    NO_VALID_RECIPES = "no_valid_recipes"
    # Single-candidate rejection; never escapes validate_recipes
    INVALID_RECIPE = "invalid_recipe"


class PipelineErrorKind(str, Enum):
    EMPTY_INPUT = "empty_input"
    UPSTREAM_FAILED = "upstream_failed"
    NO_USABLE_RESULT = "no_usable_result"
    MALFORMED_UPSTREAM = "malformed_upstream"
    INVALID_IMAGE = "invalid_image"


PIPELINE_MESSAGES = {
    PipelineErrorKind.EMPTY_INPUT: "Add at least one ingredient to get recipe ideas.",
    PipelineErrorKind.UPSTREAM_FAILED: "The recipe service is unavailable right now, try again shortly.",
    PipelineErrorKind.NO_USABLE_RESULT: "Couldn't cook up any usable recipes from those ingredients. Please try again!",
    PipelineErrorKind.MALFORMED_UPSTREAM: "The recipe service sent back something unreadable. Please try again.",
    PipelineErrorKind.INVALID_IMAGE: "That photo couldn't be read. Please use a JPEG or PNG image.",
}

NO_INGREDIENTS_IN_PHOTO = "No usable ingredients found in the photo. Try typing them instead!"


class PantryChefError(Exception):
    """Base class for every error raised by the pipeline."""

    def __init__(self, kind: Enum, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class GatewayError(PantryChefError):
    """Failure talking to the model provider.

    ``last_failure`` records what the final attempt hit when kind is EXHAUSTED.
    """

    def __init__(
        self,
        kind: GatewayErrorKind,
        message: str,
        attempts: int = 1,
        last_failure: Optional[GatewayErrorKind] = None,
    ) -> None:
        super().__init__(kind, message)
        self.attempts = attempts
        self.last_failure = last_failure


class ValidationError(PantryChefError):
    """Model output could not be validated into recipes."""

    def __init__(self, kind: ValidationErrorKind, message: str, rejected: int = 0) -> None:
        super().__init__(kind, message)
        self.rejected = rejected


class PipelineError(PantryChefError):
    """Terminal failure of a pipeline operation, safe to show to a user."""

    def __init__(
        self,
        kind: PipelineErrorKind,
        message: Optional[str] = None,
        cause: Optional[PantryChefError] = None,
    ) -> None:
        super().__init__(kind, message or PIPELINE_MESSAGES[kind])
        self.cause = cause
