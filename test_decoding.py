"""
Tests for the base64 decoder.
"""

import base64

import pytest

from decoding import decode, encode
from errors import DecodeError


@pytest.mark.parametrize("value", ["", "   \n", None, 123])
def test_decode_rejects_missing_input(value):
    with pytest.raises(DecodeError):
        decode(value)


def test_decode_strips_data_uri_prefix():
    assert decode("data:image/png;base64,AAAA") == b"\x00\x00\x00"


def test_decode_strips_bare_marker():
    assert decode("base64,AAAA") == b"\x00\x00\x00"


def test_decode_ignores_whitespace_and_junk():
    payload = base64.b64encode(b"hello image").decode()
    messy = "  " + payload[:4] + "\n\t" + payload[4:8] + "!*" + payload[8:] + "\r\n"
    assert decode(messy) == b"hello image"


def test_decode_accepts_missing_padding():
    assert decode("aGk") == b"hi"


def test_decode_accepts_url_safe_alphabet():
    raw = bytes([0xFB, 0xFF, 0xBF])
    assert decode(base64.urlsafe_b64encode(raw).decode()) == raw


@pytest.mark.parametrize("value", ["!!!", "====", "data:image/png;base64,", "A"])
def test_decode_rejects_empty_result(value):
    with pytest.raises(DecodeError):
        decode(value)


def test_encode_returns_plain_base64():
    assert encode(b"\x00\x00\x00") == "AAAA"
