"""Tests for `bid-pid (name)` parsing."""

from __future__ import annotations

import pytest

from nowplaying_remote.services.bundle_info import (
    BundleInfoParseError,
    parse_bundle_info,
)
from nowplaying_remote.services.track_state import BundleInfo


def test_parse_bundle_info_discards_process_id() -> None:
    info = parse_bundle_info("com.example.Music-4821 (Example Music)")
    assert info == BundleInfo(
        bundle_identifier="com.example.Music", display_name="Example Music"
    )


def test_parse_bundle_info_keeps_hyphens_inside_identifier() -> None:
    info = parse_bundle_info("com.example.my-player-77 (My Player)")
    assert info.bundle_identifier == "com.example.my-player"
    assert info.display_name == "My Player"


@pytest.mark.parametrize(
    "text",
    ["malformed", "com.example.Music (Example Music)", "com.example.Music-12 ()"],
)
def test_parse_bundle_info_rejects_malformed_text(text: str) -> None:
    with pytest.raises(BundleInfoParseError) as excinfo:
        parse_bundle_info(text)
    assert excinfo.value.text == text
    assert text in str(excinfo.value)
