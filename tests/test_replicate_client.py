"""Replicate client tests: error classification, output parsing, model input."""

from unittest.mock import MagicMock

import pytest

from headshot.models.generation import Background, Gender
from headshot.services.exceptions import PermanentError, TransientError
from headshot.services.image_generation.options_validator import GenerationOptions
from headshot.services.image_generation.replicate_client import (
    DEFAULT_MODEL,
    ContentPolicyError,
    ReplicateHeadshotClient,
    classify_error,
    extract_output_url,
)

OPTIONS = GenerationOptions(
    gender=Gender.FEMALE,
    background=Background.NEUTRAL,
    input_image_url="https://uploads.example.com/me.png",
)


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("Request timeout after 60s", TransientError),
        ("HTTP 429: too many requests", TransientError),
        ("503 Service Unavailable", TransientError),
        ("NSFW content detected", ContentPolicyError),
        ("Input flagged by safety checker", ContentPolicyError),
        ("Invalid version or not permitted", PermanentError),
    ],
)
def test_classify_error(message, expected):
    classified = classify_error(Exception(message))

    assert type(classified) is expected


def test_connection_errors_are_transient():
    assert isinstance(classify_error(ConnectionError("reset by peer")), TransientError)


class FakeFileOutput:
    def __init__(self, url: str):
        self.url = url


@pytest.mark.parametrize(
    "output",
    [
        "https://replicate.delivery/out.png",
        ["https://replicate.delivery/out.png"],
        FakeFileOutput("https://replicate.delivery/out.png"),
        [FakeFileOutput("https://replicate.delivery/out.png")],
    ],
)
def test_extract_output_url(output):
    assert extract_output_url(output) == "https://replicate.delivery/out.png"


@pytest.mark.parametrize("output", [None, [], "not a url", {"image": "x"}])
def test_extract_output_url_rejects_unexpected_output(output):
    with pytest.raises(PermanentError):
        extract_output_url(output)


@pytest.mark.asyncio
async def test_generate_headshot_calls_model_with_options():
    client = ReplicateHeadshotClient(api_token="r8_test")
    client._client = MagicMock()
    client._client.run.return_value = ["https://replicate.delivery/out.png"]

    url = await client.generate_headshot(OPTIONS)

    assert url == "https://replicate.delivery/out.png"
    client._client.run.assert_called_once_with(
        DEFAULT_MODEL,
        input={
            "gender": "female",
            "background": "neutral",
            "input_image": "https://uploads.example.com/me.png",
            "aspect_ratio": "1:1",
        },
    )


@pytest.mark.asyncio
async def test_generate_headshot_classifies_sdk_errors():
    client = ReplicateHeadshotClient(api_token="r8_test")
    client._client = MagicMock()
    client._client.run.side_effect = TimeoutError("timeout while waiting for prediction")

    with pytest.raises(TransientError):
        await client.generate_headshot(OPTIONS)


@pytest.mark.asyncio
async def test_generate_headshot_without_token_is_permanent():
    client = ReplicateHeadshotClient(api_token="")

    with pytest.raises(PermanentError, match="REPLICATE_API_TOKEN"):
        await client.generate_headshot(OPTIONS)
