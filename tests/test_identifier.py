"""Tests for identifier extraction and artifact naming."""

import pytest
from hypothesis import given, settings, strategies as st

from ytaudio.utils.identifier import (
    artifact_name_for,
    extract_identifier,
    parse_artifact_name,
)

ID_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789_-"

identifiers = st.text(alphabet=ID_ALPHABET, min_size=11, max_size=11)

url_shapes = st.sampled_from(
    [
        "https://www.youtube.com/watch?v={id}",
        "https://youtube.com/watch?feature=share&v={id}&t=42",
        "http://m.youtube.com/watch?v={id}#comments",
        "https://youtu.be/{id}",
        "https://youtu.be/{id}?si=Xy12",
        "https://www.youtube.com/shorts/{id}",
        "https://www.youtube.com/embed/{id}?autoplay=1",
        "https://www.youtube-nocookie.com/embed/{id}",
        "https://www.youtube.com/live/{id}",
        "https://www.youtube.com/v/{id}",
    ]
)


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://www.youtube.com/watch?v=dQw4w9WgXcQ", "dQw4w9WgXcQ"),
        ("https://youtu.be/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
        ("  https://youtu.be/dQw4w9WgXcQ  ", "dQw4w9WgXcQ"),
        ("https://www.youtube.com/watch?list=PL1&v=a_b-c_d-e_f", "a_b-c_d-e_f"),
        ("https://www.youtube.com/shorts/abc12345678?feature=share", "abc12345678"),
    ],
)
def test_extracts_identifier_from_supported_urls(url, expected):
    assert extract_identifier(url) == expected


@pytest.mark.parametrize(
    "url",
    [
        "",
        "not a url",
        "https://vimeo.com/123456789",
        "https://www.youtube.com/watch?v=short",
        "https://www.youtube.com/watch?v=abc123456789",  # 12 characters
        "https://www.youtube.com/channel/UC1234567890",
        "https://youtu.be/",
    ],
)
def test_unsupported_urls_have_no_identifier(url):
    assert extract_identifier(url) is None


@pytest.mark.parametrize("value", [None, 42, b"https://youtu.be/dQw4w9WgXcQ", ["x"]])
def test_non_string_input_has_no_identifier(value):
    assert extract_identifier(value) is None


@given(identifier=identifiers, shape=url_shapes)
@settings(max_examples=200)
def test_identifier_round_trips_through_every_url_shape(identifier, shape):
    assert extract_identifier(shape.format(id=identifier)) == identifier


@given(text=st.text(max_size=200))
@settings(max_examples=200)
def test_arbitrary_text_never_raises(text):
    result = extract_identifier(text)
    assert result is None or len(result) == 11


def test_artifact_name_is_deterministic():
    assert artifact_name_for("abc12345678", "mp3") == "abc12345678.mp3"
    assert artifact_name_for("abc12345678", "mp3") == artifact_name_for(
        "abc12345678", "mp3"
    )


@pytest.mark.parametrize(
    "name, expected",
    [
        ("abc12345678.mp3", ("abc12345678", "mp3")),
        ("a-b_c.opus", ("a-b_c", "opus")),
        ("../abc12345678.mp3", None),
        ("dir/abc12345678.mp3", None),
        ("noextension", None),
        (".mp3", None),
        ("abc.", None),
        ("", None),
    ],
)
def test_parse_artifact_name(name, expected):
    assert parse_artifact_name(name) == expected
