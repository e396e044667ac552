"""Recipe pipeline: the library entry point used by the presentation layer.

Composes normalizer → cache → gateway → validator and maps every failure to
a PipelineError with a user-facing message.

Operations:
- generate(): ingredient names → validated recipes (cached, single-flight)
- extract_from_image(): photo → IngredientSet (never cached)
"""

import time
from typing import Callable, Iterable, Optional

from pantry_chef.cache.request_cache import RequestCache
from pantry_chef.gateway.gateway import ModelGateway, ModelTransport
from pantry_chef.gateway.gemini import GeminiTransport
from pantry_chef.gateway.images import (
    compress_image,
    decode_image_input,
    guess_mime_type,
    validate_image_format,
    validate_image_size,
)
from pantry_chef.models.errors import (
    NO_INGREDIENTS_IN_PHOTO,
    GatewayError,
    PipelineError,
    PipelineErrorKind,
    ValidationError,
    ValidationErrorKind,
)
from pantry_chef.models.models import Recipe
from pantry_chef.normalizer.normalize import IngredientSet, normalize, split_ingredient_text
from pantry_chef.utils.config import Config, ImageSettings, load_config
from pantry_chef.utils.logger import logger
from pantry_chef.validation.validator import validate_recipes


def _millis() -> int:
    return int(time.time() * 1000)


def _upstream_failed(error: GatewayError) -> PipelineError:
    return PipelineError(PipelineErrorKind.UPSTREAM_FAILED, cause=error)


class RecipePipeline:
    """Turns ingredient lists and photos into validated results."""

    def __init__(
        self,
        gateway: ModelGateway,
        cache: Optional[RequestCache] = None,
        image_settings: Optional[ImageSettings] = None,
        clock: Callable[[], int] = _millis,
    ) -> None:
        self.gateway = gateway
        self.cache = cache if cache is not None else RequestCache()
        self.image_settings = image_settings if image_settings is not None else ImageSettings()
        self._clock = clock

    async def generate(self, raw_items: Iterable[str]) -> list[Recipe]:
        """Generate recipes for the given ingredient names.

        Args:
            raw_items: Ingredient names as typed by the user (any casing,
                duplicates and blanks allowed).

        Returns:
            Validated recipes in the order the model produced them.

        Raises:
            PipelineError: EMPTY_INPUT when no usable ingredient remains after
                normalization (no upstream call is made); UPSTREAM_FAILED,
                NO_USABLE_RESULT or MALFORMED_UPSTREAM otherwise.
        """
        ingredients = normalize(raw_items)
        if not ingredients:
            raise PipelineError(PipelineErrorKind.EMPTY_INPUT)

        key = ingredients.fingerprint()
        logger.info(f"Generating recipes for {len(ingredients)} ingredients", extra={"fingerprint": key})

        async def compute() -> list[Recipe]:
            return await self._compute(ingredients)

        recipes = await self.cache.get_or_compute(key, compute)
        return list(recipes)

    async def _compute(self, ingredients: IngredientSet) -> list[Recipe]:
        try:
            text = await self.gateway.generate_recipes(ingredients)
        except GatewayError as e:
            raise _upstream_failed(e) from e

        try:
            recipes = validate_recipes(text, timestamp=self._clock())
        except ValidationError as e:
            if e.kind is ValidationErrorKind.NO_VALID_RECIPES:
                raise PipelineError(PipelineErrorKind.NO_USABLE_RESULT, cause=e) from e
            raise PipelineError(PipelineErrorKind.MALFORMED_UPSTREAM, cause=e) from e

        logger.info(f"Generated {len(recipes)} recipes", extra={"fingerprint": ingredients.fingerprint()})
        return recipes

    def _prepare_image(self, image: bytes | str) -> tuple[bytes, str]:
        settings = self.image_settings
        image_bytes = decode_image_input(image)
        if not image_bytes:
            raise PipelineError(PipelineErrorKind.INVALID_IMAGE, "Could not read image data from the upload.")
        if not validate_image_format(image_bytes):
            raise PipelineError(PipelineErrorKind.INVALID_IMAGE, "Invalid image format. Only JPEG and PNG are supported.")
        if not validate_image_size(image_bytes, settings.max_size_mb):
            raise PipelineError(
                PipelineErrorKind.INVALID_IMAGE, f"Image too large. Maximum size is {settings.max_size_mb}MB."
            )

        if settings.compress:
            image_bytes = compress_image(
                image_bytes, threshold_kb=settings.compress_threshold_kb, max_width=settings.max_width
            )
        return image_bytes, guess_mime_type(image_bytes)

    async def extract_from_image(self, image: bytes | str) -> IngredientSet:
        """Identify the ingredients visible in a photo.

        Args:
            image: Raw JPEG/PNG bytes, a data URL or a base64 string.

        Returns:
            Non-empty IngredientSet; ``display()`` gives the names to show.

        Raises:
            PipelineError: INVALID_IMAGE for unreadable, unsupported or
                oversized photos; UPSTREAM_FAILED when the model is
                unreachable; NO_USABLE_RESULT when nothing was recognized.
        """
        image_bytes, mime_type = self._prepare_image(image)

        try:
            text = await self.gateway.extract_ingredients(image_bytes, mime_type)
        except GatewayError as e:
            raise _upstream_failed(e) from e

        ingredients = normalize(split_ingredient_text(text))
        if not ingredients:
            logger.warning("No ingredients recognized in photo")
            raise PipelineError(PipelineErrorKind.NO_USABLE_RESULT, NO_INGREDIENTS_IN_PHOTO)

        logger.info(f"Extracted {len(ingredients)} ingredients from photo: {ingredients.display()}")
        return ingredients


def initialize_recipe_pipeline(
    config: Optional[Config] = None,
    transport: Optional[ModelTransport] = None,
) -> RecipePipeline:
    """Factory wiring configuration, transport, gateway and cache.

    Args:
        config: Settings; loaded and validated from the environment when None.
        transport: Model transport; a GeminiTransport is built when None.

    Returns:
        Ready-to-use RecipePipeline.

    Raises:
        ValueError: If configuration is invalid (e.g. missing GEMINI_API_KEY).
    """
    logger.info("=== Initializing recipe pipeline ===")

    logger.info("Step 1/3: Loading configuration...")
    config = config or load_config()
    gateway_config = config.gateway_config()

    logger.info("Step 2/3: Configuring model gateway...")
    if transport is None:
        transport = GeminiTransport(gateway_config)
        logger.info(f"✓ Gemini transport ready (text: {gateway_config.text_model}, image: {gateway_config.image_model})")
    gateway = ModelGateway(transport, gateway_config.retry)
    logger.info(
        f"✓ Gateway configured: timeout {gateway_config.retry.timeout:g}s, "
        f"{gateway_config.retry.max_retries} retries"
    )

    logger.info("Step 3/3: Creating request cache...")
    cache = RequestCache(
        ttl_seconds=config.CACHE_TTL_SECONDS,
        failure_ttl_seconds=config.CACHE_FAILURE_TTL_SECONDS,
        capacity=config.CACHE_CAPACITY,
    )
    logger.info(f"✓ Cache ready (capacity {cache.capacity}, ttl {cache.ttl_seconds:g}s)")

    logger.info("=== Recipe pipeline initialization complete ===")
    return RecipePipeline(gateway, cache, config.image_settings())
