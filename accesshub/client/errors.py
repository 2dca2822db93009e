from typing import Optional


class IdentityClientError(Exception):
    """Base error of the client-side identity integration."""


class ManifestError(IdentityClientError):
    """The local capability manifest is missing or malformed. Never retried."""


class RegistryError(IdentityClientError):
    """The registry answered with a non-2xx status."""

    def __init__(self, status_code: int, detail: Optional[str] = None):
        self.status_code = status_code
        self.detail = detail or "Registry request failed"
        super().__init__(f"HTTP {status_code}: {self.detail}")


class RegistryUnavailableError(IdentityClientError):
    """The registry could not be reached or did not answer in time."""
