"""Tests for request parameter validation"""

import pytest

from ytm_gateway.services.errors import ClientInputError
from ytm_gateway.services.validators import (
    extract_video_id,
    parse_limit,
    safe_filename,
    validate_media_url,
    validate_output_format,
)


@pytest.mark.parametrize("value", [
    "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
    "https://youtube.com/watch?v=dQw4w9WgXcQ&t=42s",
    "https://music.youtube.com/watch?v=dQw4w9WgXcQ&list=RDAMVM",
    "https://m.youtube.com/watch?v=dQw4w9WgXcQ",
    "https://youtu.be/dQw4w9WgXcQ",
    "https://youtu.be/dQw4w9WgXcQ?si=abc",
    "https://www.youtube.com/shorts/dQw4w9WgXcQ",
    "https://www.youtube.com/embed/dQw4w9WgXcQ",
    "http://www.youtube.com/watch?v=dQw4w9WgXcQ",
    "dQw4w9WgXcQ",
])
def test_extract_video_id_accepts(value):
    assert extract_video_id(value) == "dQw4w9WgXcQ"


@pytest.mark.parametrize("value", [
    "https://example.com/watch?v=dQw4w9WgXcQ",
    "https://www.youtube.com/watch?v=short",
    "https://www.youtube.com/watch",
    "https://www.youtube.com/channel/UC1234567890",
    "ftp://youtu.be/dQw4w9WgXcQ",
    "not a url",
])
def test_extract_video_id_rejects(value):
    assert extract_video_id(value) is None


def test_validate_media_url_canonicalises():
    assert validate_media_url("https://youtu.be/dQw4w9WgXcQ") == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


@pytest.mark.parametrize("value,label", [
    (None, "Missing URL"),
    ("", "Missing URL"),
    ("   ", "Missing URL"),
    ("https://example.com", "Invalid URL"),
])
def test_validate_media_url_errors(value, label):
    with pytest.raises(ClientInputError) as exc_info:
        validate_media_url(value)
    assert exc_info.value.error == label
    assert exc_info.value.status_code == 400


def test_validate_output_format():
    assert validate_output_format("WAV") == "wav"
    for bad in ["", "mp3;", "../x", "averyverylongext", 'mp3"']:
        with pytest.raises(ClientInputError):
            validate_output_format(bad)


def test_parse_limit():
    assert parse_limit(None, 20, 50) == 20
    assert parse_limit("", 20, 50) == 20
    assert parse_limit("2", 20, 50) == 2
    assert parse_limit("500", 20, 50) == 50
    for bad in ["0", "-1", "ten", "2.5"]:
        with pytest.raises(ClientInputError) as exc_info:
            parse_limit(bad, 20, 50)
        assert exc_info.value.error == "Invalid limit"


def test_safe_filename():
    assert safe_filename('AC/DC - "Back In Black"', "audio") == "ACDC - Back In Black"
    assert safe_filename("Beyoncé  -  Halo", "audio") == "Beyonc - Halo"
    assert safe_filename("日本語", "audio") == "audio"
    assert safe_filename(None, "audio") == "audio"
    assert safe_filename("...", "audio") == "audio"
    assert len(safe_filename("x" * 300, "audio")) == 100
