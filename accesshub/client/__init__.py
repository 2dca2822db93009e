from .errors import IdentityClientError, ManifestError, RegistryError, RegistryUnavailableError
from .gateway import AuthContext, AuthGateway, TeamMembership
from .dependencies import get_auth_context, require_auth, require_permissions, require_team_access
from .integration import IdentityIntegration
from .local_directory import LocalUserDirectory
from .manifest import CapabilityManifest, load_manifest, manifest_hash, parse_manifest
from .registry_client import RegistryClient
from .sync import SyncReconciler, SyncResult

__all__ = [
    "AuthContext",
    "AuthGateway",
    "CapabilityManifest",
    "IdentityClientError",
    "IdentityIntegration",
    "LocalUserDirectory",
    "ManifestError",
    "RegistryClient",
    "RegistryError",
    "RegistryUnavailableError",
    "SyncReconciler",
    "SyncResult",
    "TeamMembership",
    "get_auth_context",
    "load_manifest",
    "manifest_hash",
    "parse_manifest",
    "require_auth",
    "require_permissions",
    "require_team_access",
]
