"""Generation option validation tests."""

import pytest

from headshot.models.generation import Background, Gender
from headshot.services.image_generation.options_validator import (
    MAX_URL_LENGTH,
    validate_generation_options,
    validate_image_url,
)


def test_valid_options():
    options = validate_generation_options(
        "male", "office", "https://uploads.example.com/photos/me.jpg"
    )

    assert options.gender == Gender.MALE
    assert options.background == Background.OFFICE
    assert options.input_image_url == "https://uploads.example.com/photos/me.jpg"


@pytest.mark.parametrize(
    "url",
    [
        "https://uploads.example.com/a.JPG",
        "https://uploads.example.com/a.jpeg",
        "http://uploads.example.com/a.png",
        "https://uploads.example.com/a.webp?version=3",
        "https://uploads.example.com/a.heic",
    ],
)
def test_accepted_image_urls(url):
    assert validate_image_url(url) == url


@pytest.mark.parametrize(
    "url",
    [
        "",
        "ftp://uploads.example.com/a.png",
        "/relative/a.png",
        "https://uploads.example.com/a.gif",
        "https://uploads.example.com/noextension",
        "https:///a.png",
    ],
)
def test_rejected_image_urls(url):
    with pytest.raises(ValueError):
        validate_image_url(url)


def test_rejects_overlong_url():
    url = "https://uploads.example.com/" + "a" * MAX_URL_LENGTH + ".png"

    with pytest.raises(ValueError, match="maximum length"):
        validate_image_url(url)


def test_rejects_unknown_gender():
    with pytest.raises(ValueError, match="Invalid gender"):
        validate_generation_options("other", "office", "https://uploads.example.com/a.png")


def test_rejects_unknown_background():
    with pytest.raises(ValueError, match="Invalid background"):
        validate_generation_options("female", "beach", "https://uploads.example.com/a.png")
