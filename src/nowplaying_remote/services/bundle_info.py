"""Parser for `bid-pid (name)` application tokens reported by the backend."""

from __future__ import annotations

import re

from .track_state import BundleInfo

# token '-' digits ' (' name ')'; the process id group is not kept.
_BUNDLE_TOKEN_RE = re.compile(r"(\S+)-(\d+) \(([^)]+)\)")


class BundleInfoParseError(ValueError):
    """Text does not match the `bid-pid (name)` grammar."""

    def __init__(self, text: str) -> None:
        super().__init__(f"string didn't match pattern 'bid-pid (name)': {text!r}")
        self.text = text


def parse_bundle_info(text: str) -> BundleInfo:
    match = _BUNDLE_TOKEN_RE.search(text)
    if match is None:
        raise BundleInfoParseError(text)
    return BundleInfo(bundle_identifier=match.group(1), display_name=match.group(3))
