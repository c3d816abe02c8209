"""Password digests and character-composition statistics."""

import re
from typing import Optional

from Crypto.Hash import keccak

from leakguard.models import PasswordCheckResult

# Length of the digest prefix sent to remote range endpoints
DIGEST_PREFIX_LEN = 10

# Composition summary returned by the anonymous password endpoint
COMPOSITION_RE = re.compile(r"D:(\d+);A:(\d+);S:(\d+);L:(\d+)")

_DIGIT_RE = re.compile(r"[0-9]")
_ALPHA_RE = re.compile(r"[a-zA-Z]")
_SPECIAL_RE = re.compile(r"[^a-zA-Z0-9]")


def password_digest(password: str) -> str:
    """Return the hex Keccak-512 digest of *password*.

    The digest is the only form in which a password is cached or queried.
    """
    return keccak.new(digest_bits=512, data=password.encode("utf-8")).hexdigest()


def digest_prefix(digest: str) -> str:
    """Return the short prefix used for k-anonymity range queries."""
    return digest[:DIGEST_PREFIX_LEN]


def local_password_stats(password: str) -> PasswordCheckResult:
    """Count character classes directly from *password*.

    The result is non-authoritative: ``found`` is always False. Non-ASCII
    letters count as special characters, so the class counts never exceed
    the length.
    """
    return PasswordCheckResult(
        found=False,
        count=0,
        digits=len(_DIGIT_RE.findall(password)),
        alphabets=len(_ALPHA_RE.findall(password)),
        special_chars=len(_SPECIAL_RE.findall(password)),
        length=len(password),
    )


def parse_composition(text: Optional[str]) -> tuple:
    """Parse a ``D:<n>;A:<n>;S:<n>;L:<n>`` summary.

    Returns:
        ``(digits, alphabets, special_chars, length)``; all zeros when the
        text does not match.
    """
    match = COMPOSITION_RE.search(text or "")
    if not match:
        return 0, 0, 0, 0
    return tuple(int(group) for group in match.groups())
