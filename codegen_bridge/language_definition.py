"""
Language definitions for the generators loaded into the script engine.
"""

import threading
from dataclasses import dataclass
from typing import Dict, List, Tuple

from .exceptions import UnknownLanguageError


@dataclass(frozen=True)
class LanguageDefinition:
    """Describes a target language supported by the script engine.

    Attributes:
        name: Identifier of the target language, e.g. ``javascript``.
        generator_namespace: Engine-side symbol of the generator to invoke.
            It is written verbatim into engine commands, so it must never
            come from user input.
        required_scripts: Generator scripts that must be loaded before the
            generator can run, in load order.
    """
    name: str
    generator_namespace: str
    required_scripts: Tuple[str, ...] = ()

    def __post_init__(self):
        # Normalise lists to tuples so instances stay hashable
        object.__setattr__(self, 'required_scripts', tuple(self.required_scripts))


JAVASCRIPT_LANGUAGE_DEFINITION = LanguageDefinition('javascript', 'Blockly.JavaScript')
PYTHON_LANGUAGE_DEFINITION = LanguageDefinition('python', 'Blockly.Python')
LUA_LANGUAGE_DEFINITION = LanguageDefinition('lua', 'Blockly.Lua')
PHP_LANGUAGE_DEFINITION = LanguageDefinition('php', 'Blockly.PHP')
DART_LANGUAGE_DEFINITION = LanguageDefinition('dart', 'Blockly.Dart')

_registry_lock = threading.Lock()
_LANGUAGES: Dict[str, LanguageDefinition] = {
    definition.name: definition
    for definition in (
        JAVASCRIPT_LANGUAGE_DEFINITION,
        PYTHON_LANGUAGE_DEFINITION,
        LUA_LANGUAGE_DEFINITION,
        PHP_LANGUAGE_DEFINITION,
        DART_LANGUAGE_DEFINITION,
    )
}


def register_language(definition: LanguageDefinition) -> None:
    """Register (or replace) a language definition under its name."""
    with _registry_lock:
        _LANGUAGES[definition.name.lower()] = definition


def get_language(name: str) -> LanguageDefinition:
    """Look up a registered language definition by name (case-insensitive)."""
    with _registry_lock:
        definition = _LANGUAGES.get(name.strip().lower())
    if definition is None:
        raise UnknownLanguageError(name)
    return definition


def get_supported_languages() -> List[str]:
    """Return the names of all registered languages."""
    with _registry_lock:
        return sorted(_LANGUAGES)
