"""
Legacy Protocol Models

A designated successor can unlock the vault with a recovery passkey
when the owner cannot. The passkey is 16 characters drawn from a
32-symbol alphabet without look-alike characters (no I, O, 0, 1),
shown as four hyphenated blocks: ABCD-EFGH-JKLM-NPQR.
"""

import re
import secrets
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


PASSKEY_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
PASSKEY_LENGTH = 16
PASSKEY_GROUP_SIZE = 4

_SEPARATORS = re.compile(r"[-\s]")


def generate_passkey() -> str:
    """Generate a new recovery passkey, e.g. 'K7QM-2XHD-9PAR-WE4T'."""
    chars = [secrets.choice(PASSKEY_ALPHABET) for _ in range(PASSKEY_LENGTH)]
    groups = [
        "".join(chars[i:i + PASSKEY_GROUP_SIZE])
        for i in range(0, PASSKEY_LENGTH, PASSKEY_GROUP_SIZE)
    ]
    return "-".join(groups)


def normalize_passkey(value: str) -> str:
    """Uppercase and drop hyphens/whitespace so typed input compares cleanly."""
    return _SEPARATORS.sub("", value.strip().upper())


def verify_passkey(candidate: str, expected: str) -> bool:
    """Case-, hyphen- and space-insensitive passkey comparison."""
    if not candidate or not expected:
        return False
    return secrets.compare_digest(
        normalize_passkey(candidate).encode("utf-8"),
        normalize_passkey(expected).encode("utf-8"),
    )


class LegacyProfile(BaseModel):
    """Emergency-access credential. At most one per vault."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        str_strip_whitespace=True,
    )

    successor_name: str = Field(..., min_length=1, max_length=200)
    recovery_passkey: str = Field(..., min_length=PASSKEY_LENGTH)
    is_configured: bool = True
    last_updated: str

    @classmethod
    def create(cls, successor_name: str) -> "LegacyProfile":
        """Configure a successor with a freshly generated passkey."""
        return cls(
            successor_name=successor_name,
            recovery_passkey=generate_passkey(),
            is_configured=True,
            last_updated=(
                datetime.now(timezone.utc)
                .isoformat(timespec="milliseconds")
                .replace("+00:00", "Z")
            ),
        )

    def unlocks_with(self, candidate: str) -> bool:
        return verify_passkey(candidate, self.recovery_passkey)
