"""Generation option validation.

The same checks run when a generation is submitted and again right before the
executor calls the inference provider, so a row altered out-of-band can never
reach the paid model.
"""

from dataclasses import dataclass
from urllib.parse import urlsplit

from headshot.models.generation import Background, Gender

ALLOWED_IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "webp", "heic")
MAX_URL_LENGTH = 2048


@dataclass(frozen=True)
class GenerationOptions:
    """Validated inputs for one headshot generation."""

    gender: Gender
    background: Background
    input_image_url: str


def validate_image_url(url: str) -> str:
    """Validate hosted input image URL.

    Args:
        url: Absolute URL of the uploaded photo

    Returns:
        Validated URL (unchanged if valid)

    Raises:
        ValueError: If URL is empty, not absolute http(s), too long, or not an image
    """
    if not url:
        raise ValueError("Input image URL cannot be empty or None")

    if not isinstance(url, str):
        raise ValueError(f"Input image URL must be a string, got {type(url).__name__}")

    if len(url) > MAX_URL_LENGTH:
        raise ValueError(
            f"Input image URL exceeds maximum length of {MAX_URL_LENGTH} characters (got {len(url)})"
        )

    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError("Input image URL must be an absolute http(s) URL")

    extension = parts.path.rsplit(".", 1)[-1].lower() if "." in parts.path else ""
    if extension not in ALLOWED_IMAGE_EXTENSIONS:
        raise ValueError(
            "Invalid image format. Only jpg, jpeg, png, webp and heic are supported."
        )

    return url


def validate_generation_options(
    gender: str, background: str, input_image_url: str
) -> GenerationOptions:
    """Validate a generation's option set.

    Raises:
        ValueError: If any option is outside the accepted values
    """
    try:
        gender_option = Gender(gender)
    except ValueError:
        allowed = ", ".join(g.value for g in Gender)
        raise ValueError(f"Invalid gender '{gender}'. Expected one of: {allowed}")

    try:
        background_option = Background(background)
    except ValueError:
        allowed = ", ".join(b.value for b in Background)
        raise ValueError(f"Invalid background '{background}'. Expected one of: {allowed}")

    return GenerationOptions(
        gender=gender_option,
        background=background_option,
        input_image_url=validate_image_url(input_image_url),
    )
