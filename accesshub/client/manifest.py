"""
Capability manifest of a client system.

The manifest is a JSON document kept next to the client system's code:

    {"system": {"id", "name", "description", "version", "apiUrl"},
     "functions": [{"key", "name", "category", "description", "endpoint"}]}

It is validated before anything is sent to the registry, and its content hash
lets the reconciler skip syncs when nothing changed.
"""

import hashlib
import json
from collections import Counter
from pathlib import Path
from typing import List, Optional, Tuple, Union

from pydantic import ValidationError, field_validator, model_validator

from accesshub.client.errors import ManifestError
from accesshub.core.capability import CapabilityKey, validate_identifier
from accesshub.core.schemas import CamelModel


class ManifestSystem(CamelModel):
    id: str
    name: str
    description: Optional[str] = ""
    version: Optional[str] = None
    api_url: Optional[str] = ""

    @field_validator("id")
    @classmethod
    def check_id(cls, value: str) -> str:
        return validate_identifier(value, "system id")


class ManifestFunction(CamelModel):
    key: str
    name: str
    category: Optional[str] = ""
    description: Optional[str] = ""
    endpoint: Optional[str] = ""

    @field_validator("key")
    @classmethod
    def check_key(cls, value: str) -> str:
        return validate_identifier(value, "function key")


class CapabilityManifest(CamelModel):
    system: ManifestSystem
    functions: List[ManifestFunction]

    @model_validator(mode="after")
    def check_unique_keys(self) -> "CapabilityManifest":
        duplicates = sorted(k for k, n in Counter(f.key for f in self.functions).items() if n > 1)
        if duplicates:
            raise ValueError(f"duplicate function keys: {', '.join(duplicates)}")
        return self

    def capability_keys(self) -> List[CapabilityKey]:
        return [CapabilityKey(self.system.id, f.key) for f in self.functions]

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


def manifest_hash(content: Union[str, bytes]) -> str:
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def parse_manifest(content: Union[str, bytes]) -> CapabilityManifest:
    try:
        data = json.loads(content)
    except ValueError as e:
        raise ManifestError(f"Manifest is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ManifestError("Manifest must be a JSON object")
    if not isinstance(data.get("system"), dict) or not data["system"].get("id"):
        raise ManifestError('Manifest must contain "system.id"')
    if not isinstance(data.get("functions"), list):
        raise ManifestError('Manifest must contain a "functions" array')
    try:
        return CapabilityManifest.model_validate(data)
    except ValidationError as e:
        raise ManifestError(f"Invalid manifest: {e}") from e


def load_manifest(path: Union[str, Path]) -> Tuple[CapabilityManifest, str]:
    """Read and validate a manifest file; returns it with its content hash."""
    path = Path(path)
    try:
        content = path.read_bytes()
    except FileNotFoundError as e:
        raise ManifestError(f"Manifest file not found: {path}") from e
    except OSError as e:
        raise ManifestError(f"Cannot read manifest {path}: {e}") from e
    return parse_manifest(content), manifest_hash(content)
