"""Replicate API client for headshot generation with error classification."""

import asyncio
from typing import Any

import replicate
from replicate.exceptions import ReplicateError as ReplicateAPIError

from headshot.services.exceptions import PermanentError, TransientError
from headshot.services.image_generation.options_validator import GenerationOptions

DEFAULT_MODEL = "flux-kontext-apps/professional-headshot"


class ContentPolicyError(PermanentError):
    """Content policy violation reported by the model (input photo rejected)."""

    pass


def classify_error(exception: Exception) -> TransientError | PermanentError:
    """Classify exception into retry category.

    Args:
        exception: Original exception from Replicate SDK or network layer

    Returns:
        Classified error instance

    Classification rules:
        - Timeout errors → TransientError
        - 429 (rate limit) → TransientError
        - 503 (service unavailable) → TransientError
        - Content policy violations → ContentPolicyError
        - Connection errors → TransientError
        - Everything else → PermanentError
    """
    error_message = str(exception)
    error_message_lower = error_message.lower()

    if "timeout" in error_message_lower:
        return TransientError(f"Network timeout: {error_message}")

    if "429" in error_message or "rate limit" in error_message_lower:
        return TransientError(f"Rate limit exceeded: {error_message}")

    if "503" in error_message or "service unavailable" in error_message_lower:
        return TransientError(f"Service unavailable: {error_message}")

    if (
        "content policy" in error_message_lower
        or "nsfw" in error_message_lower
        or "safety" in error_message_lower
    ):
        return ContentPolicyError(f"Content policy violation: {error_message}")

    if isinstance(exception, (ConnectionError, OSError)):
        return TransientError(f"Connection error: {error_message}")

    return PermanentError(f"Permanent error: {error_message}")


def extract_output_url(output: Any) -> str:
    """Extract the image URL from a model output.

    The output format varies by model and SDK version: a FileOutput, a plain
    URL string, or a list of either.

    Raises:
        PermanentError: If no URL can be extracted
    """
    if isinstance(output, list):
        if not output:
            raise PermanentError("Replicate returned an empty output list")
        output = output[0]

    if output is None:
        raise PermanentError("Replicate returned no output")

    url = getattr(output, "url", output)
    if callable(url):
        url = url()
    image_url = str(url)

    if not image_url.startswith(("http://", "https://")):
        raise PermanentError(f"Unexpected output format from Replicate: {type(output)}")
    return image_url


class ReplicateHeadshotClient:
    """Inference client for the professional headshot model.

    Holds its own ``replicate.Client`` so the API token is never read from or
    written to the process environment.
    """

    def __init__(self, api_token: str, model: str = DEFAULT_MODEL):
        """Initialize Replicate client.

        Args:
            api_token: Replicate API authentication token
            model: Model identifier (default: "flux-kontext-apps/professional-headshot")
        """
        self.api_token = api_token
        self.model = model or DEFAULT_MODEL
        self._client = replicate.Client(api_token=api_token) if api_token else None

    async def generate_headshot(self, options: GenerationOptions) -> str:
        """Generate a headshot for the given options.

        The model call is synchronous in the SDK and may take a while; it runs in
        a worker thread as one blocking unit with no retry at this layer.

        Returns:
            Temporary image URL on Replicate's CDN

        Raises:
            TransientError: Temporary failure (timeouts, rate limits)
            ContentPolicyError: Input photo rejected by the model
            PermanentError: Permanent failure, including unexpected output
        """
        if self._client is None:
            raise PermanentError("REPLICATE_API_TOKEN not configured")

        model_input = {
            "gender": options.gender.value,
            "background": options.background.value,
            "input_image": options.input_image_url,
            "aspect_ratio": "1:1",
        }

        try:
            output = await asyncio.to_thread(self._client.run, self.model, input=model_input)
        except ReplicateAPIError as e:
            raise classify_error(e) from e
        except (ConnectionError, OSError, TimeoutError) as e:
            raise classify_error(e) from e
        except Exception as e:
            # Unexpected errors are permanent so they are never retried blindly
            raise PermanentError(f"Unexpected error: {e}") from e

        return extract_output_url(output)
