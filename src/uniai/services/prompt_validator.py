"""Prompt validation for image generation.

Validates text prompts before a task is created.
"""

from uniai.services.exceptions import ValidationError

DEFAULT_MAX_PROMPT_LENGTH = 500


def validate_prompt(prompt: str, max_length: int = DEFAULT_MAX_PROMPT_LENGTH) -> str:
    """Validate prompt text for image generation.

    Args:
        prompt: Text prompt from the request
        max_length: Maximum allowed length for the selected model

    Returns:
        Validated prompt (unchanged if valid)

    Raises:
        ValidationError: If prompt is empty, not a string, blank, or too long
    """
    if not prompt:
        raise ValidationError("Prompt is required")

    if not isinstance(prompt, str):
        raise ValidationError(f"Prompt must be a string, got {type(prompt).__name__}")

    if not prompt.strip():
        raise ValidationError("Prompt cannot be blank")

    if len(prompt) > max_length:
        raise ValidationError(
            f"Prompt must be at most {max_length} characters (got {len(prompt)})"
        )

    return prompt
