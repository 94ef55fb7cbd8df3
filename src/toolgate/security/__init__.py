"""Access-control layer: path confinement and the command gate."""

from toolgate.security.command_policy import (
    ALLOWED_COMMANDS,
    ALLOWED_COMMANDS_BY_CATEGORY,
    DENY_PATTERNS,
    POLICY_VERSION,
    SECONDARY_DENIED_TOKENS,
)
from toolgate.security.commands import CommandGate, denial_error, tokenize
from toolgate.security.confinement import AllowedRootSet, ConfinementChecker, is_within
from toolgate.security.paths import canonicalize, canonicalize_sync, lexical_path

__all__ = [
    "ALLOWED_COMMANDS",
    "ALLOWED_COMMANDS_BY_CATEGORY",
    "AllowedRootSet",
    "CommandGate",
    "ConfinementChecker",
    "DENY_PATTERNS",
    "POLICY_VERSION",
    "SECONDARY_DENIED_TOKENS",
    "canonicalize",
    "canonicalize_sync",
    "denial_error",
    "is_within",
    "lexical_path",
    "tokenize",
]
