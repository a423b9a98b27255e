"""
EngineSettings -- tunables the kernel accepts from its caller.

The kernel never reads files or environment variables.  The configuration
package builds an ``EngineSettings`` (see ``muster_config.bridges``) and the
caller hands it to ``RuleEngine``.  Without one, the defaults below apply.

The invite horizon is deliberately not a setting: no invite may live longer
than ``MAX_INVITE_LIFETIME`` whatever the configuration says.
"""

import string
from dataclasses import dataclass
from datetime import timedelta

MAX_INVITE_LIFETIME = timedelta(days=7)

MIN_INVITE_CODE_LENGTH = 6

# Width of invite_codes.code.
MAX_INVITE_CODE_LENGTH = 16

# Codes are upper-cased before lookup, so only these characters round-trip.
DEFAULT_INVITE_ALPHABET = string.ascii_uppercase + string.digits


def invite_alphabet_problem(alphabet) -> str | None:
    """Why ``alphabet`` cannot produce findable codes, or None."""
    if not isinstance(alphabet, str) or not alphabet:
        return "must be a non-empty string"
    if not set(alphabet) <= set(DEFAULT_INVITE_ALPHABET):
        return "may only contain upper-case letters A-Z and digits"
    return None


@dataclass(frozen=True)
class EngineSettings:
    invite_code_length: int = 6
    invite_code_alphabet: str = DEFAULT_INVITE_ALPHABET
    invite_default_lifetime: timedelta = MAX_INVITE_LIFETIME
    audit_list_limit: int = 50
    default_meeting_day: int = 5

    def __post_init__(self) -> None:
        if not MIN_INVITE_CODE_LENGTH <= self.invite_code_length <= MAX_INVITE_CODE_LENGTH:
            raise ValueError(
                f"invite_code_length must be between {MIN_INVITE_CODE_LENGTH} "
                f"and {MAX_INVITE_CODE_LENGTH}"
            )
        problem = invite_alphabet_problem(self.invite_code_alphabet)
        if problem:
            raise ValueError(f"invite_code_alphabet {problem}")
        if not timedelta(0) < self.invite_default_lifetime <= MAX_INVITE_LIFETIME:
            raise ValueError(
                "invite_default_lifetime must be positive and at most "
                f"{MAX_INVITE_LIFETIME.days} days"
            )
        if self.audit_list_limit < 1:
            raise ValueError("audit_list_limit must be at least 1")
        if not 0 <= self.default_meeting_day <= 6:
            raise ValueError("default_meeting_day must be 0-6")
