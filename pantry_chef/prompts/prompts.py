"""Prompts and response schema sent to the generative model.

The schema asks Gemini for structured JSON, but the pipeline never relies on
it: whatever comes back still goes through the validator.
"""

from google.genai import types

RECIPE_FIELDS = [
    "title",
    "description",
    "ingredients",
    "instructions",
    "prepTime",
    "cookTime",
    "servings",
    "difficulty",
    "nutrition",
    "imagePrompt",
]

RECIPE_SCHEMA = types.Schema(
    type=types.Type.ARRAY,
    items=types.Schema(
        type=types.Type.OBJECT,
        properties={
            "title": types.Schema(type=types.Type.STRING, description="Catchy recipe title"),
            "description": types.Schema(type=types.Type.STRING, description="Short appetizing summary"),
            "ingredients": types.Schema(
                type=types.Type.ARRAY,
                items=types.Schema(type=types.Type.STRING),
                description="List of ingredients with measurements",
            ),
            "instructions": types.Schema(
                type=types.Type.ARRAY,
                items=types.Schema(type=types.Type.STRING),
                description="Step-by-step cooking steps",
            ),
            "prepTime": types.Schema(type=types.Type.STRING, description="e.g., 15 mins"),
            "cookTime": types.Schema(type=types.Type.STRING, description="e.g., 30 mins"),
            "servings": types.Schema(type=types.Type.INTEGER),
            "difficulty": types.Schema(type=types.Type.STRING, description="Easy, Medium, or Hard"),
            "nutrition": types.Schema(
                type=types.Type.OBJECT,
                properties={
                    "calories": types.Schema(type=types.Type.INTEGER),
                    "protein": types.Schema(type=types.Type.STRING),
                    "carbs": types.Schema(type=types.Type.STRING),
                    "fat": types.Schema(type=types.Type.STRING),
                },
                required=["calories", "protein", "carbs", "fat"],
            ),
            "imagePrompt": types.Schema(
                type=types.Type.STRING,
                description="A detailed descriptive prompt to generate a photo of this dish",
            ),
        },
        required=RECIPE_FIELDS,
        property_ordering=RECIPE_FIELDS,
    ),
)

IMAGE_EXTRACTION_PROMPT = (
    "Identify all the food ingredients, fruits, vegetables, proteins, and pantry items visible in "
    "this image. List them as a simple comma-separated string of ingredient names only."
)


def get_recipe_prompt(ingredients: list[str], recipe_count: int = 3) -> str:
    """Build the recipe generation prompt.

    Args:
        ingredients: Display names of the user's ingredients.
        recipe_count: How many recipes to ask for.

    Returns:
        str: Prompt text for the text model.
    """
    noun = "recipe" if recipe_count == 1 else "recipes"
    return (
        f"Act as a Michelin star chef. Generate {recipe_count} creative {noun} using primarily these "
        f"ingredients: {', '.join(ingredients)}.\n"
        "You can include common pantry staples (salt, oil, pepper, water, flour).\n"
        "Focus on diverse cuisines and healthy options.\n"
        "Difficulty must be exactly one of: Easy, Medium, Hard. "
        "Servings and calories must be whole numbers."
    )
