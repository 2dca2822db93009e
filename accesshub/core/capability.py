"""
Capability identifiers.

A capability is identified by the pair (system id, function key). The stored
function id is derived from that pair and never assigned independently.
"""

import re
from dataclasses import dataclass

_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,127}$")


def validate_identifier(value: str, label: str = "identifier") -> str:
    """Return value stripped, or raise ValueError when it is empty or malformed."""
    if not isinstance(value, str):
        raise ValueError(f"{label} must be a string")
    value = value.strip()
    if not value:
        raise ValueError(f"{label} must not be empty")
    if not _IDENTIFIER_RE.match(value):
        raise ValueError(f"{label} '{value}' contains invalid characters")
    return value


@dataclass(frozen=True)
class CapabilityKey:
    system_id: str
    key: str

    def __post_init__(self):
        object.__setattr__(self, "system_id", validate_identifier(self.system_id, "system id"))
        object.__setattr__(self, "key", validate_identifier(self.key, "function key"))

    @property
    def function_id(self) -> str:
        return f"{self.system_id}:{self.key}"

    def __str__(self) -> str:
        return self.function_id
