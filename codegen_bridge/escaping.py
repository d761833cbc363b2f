"""
Escaping policy for engine commands.

Workspace content travels to the engine inside a single-quoted string
literal of a ``javascript:`` command. Two tiers exist:

  • MODERN: the engine evaluates the command as script text, so only the
    quote character needs escaping (``'`` becomes ``\\'``).
  • LEGACY: the engine treats the command as a navigation address and
    decodes it before evaluation, so the content is fully percent-encoded
    (spaces become ``%20``, never ``+``).
"""

import re
from enum import Enum
from typing import Tuple
from urllib.parse import quote, unquote

from .exceptions import CommandFormatError


COMMAND_PREFIX = 'javascript:'
GENERATE_FUNCTION = 'invoke'

# No characters beyond quote()'s always-safe unreserved set (A-Z a-z 0-9 _ . - ~)
LEGACY_SAFE_CHARACTERS = ''

_COMMAND_PATTERN = re.compile(
    r"^javascript:invoke\('(?P<content>.*)', (?P<namespace>[A-Za-z_$][\w$]*(?:\.[A-Za-z_$][\w$]*)*)\);$",
    re.DOTALL,
)


class EscapingTier(Enum):
    """Compatibility class of the engine receiving the commands."""
    MODERN = 'modern'
    LEGACY = 'legacy'

    @classmethod
    def for_host(cls, supports_modern_commands: bool) -> 'EscapingTier':
        return cls.MODERN if supports_modern_commands else cls.LEGACY


def encode(content: str, tier: EscapingTier) -> str:
    """Encode workspace content for embedding in a command of the given tier."""
    if tier is EscapingTier.MODERN:
        return content.replace("'", "\\'")
    return quote(content, safe=LEGACY_SAFE_CHARACTERS, encoding='utf-8', errors='surrogatepass')


def decode(encoded: str, tier: EscapingTier) -> str:
    """Inverse of encode() for the same tier."""
    if tier is EscapingTier.MODERN:
        return encoded.replace("\\'", "'")
    return unquote(encoded, encoding='utf-8', errors='surrogatepass')


def build_command(content: str, generator_namespace: str, tier: EscapingTier) -> str:
    """Build the command asking the engine to run a generator over the content.

    The namespace is a trusted identifier and is inserted without escaping.
    """
    return f"{COMMAND_PREFIX}{GENERATE_FUNCTION}('{encode(content, tier)}', {generator_namespace});"


def parse_command(command: str, tier: EscapingTier) -> Tuple[str, str]:
    """Recover ``(content, generator_namespace)`` from a command, as the engine does."""
    match = _COMMAND_PATTERN.match(command)
    if match is None:
        raise CommandFormatError(
            "Malformed engine command",
            {'command': command[:80], 'tier': tier.value},
        )
    return decode(match.group('content'), tier), match.group('namespace')
