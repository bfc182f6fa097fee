from __future__ import annotations
import logging

logger = logging.getLogger("pfprelay.detect")

_MARKERS = (
    "captcha",
    "verify to continue",
    "verifying you are human",
    "please wait...",
    "are you a robot",
    "unusual traffic",
    "access denied",
    "tiktok-verify-page",
)


def is_human_check(html: str | None, url: str | None = None) -> bool:
    """Detect captcha/verification interstitials served instead of a profile.

    Heuristics-based: checks the final URL and common text markers. A page
    that still carries an embedded state blob is never reported as a check.
    """
    low_url = (url or "").lower()
    if any(k in low_url for k in ("/captcha", "verify", "/challenge")):
        return True
    body = (html or "").lower()
    if not body:
        return False
    if "sigi_state" in body or "__universal_data_for_rehydration__" in body:
        return False
    return any(m in body for m in _MARKERS)
