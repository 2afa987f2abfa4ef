"""Trust-gated native code bridge."""

from hostbridge.native.module_bridge import ModuleBridge, validate_file_name
from hostbridge.native.sandbox import NativeSandbox, RestrictedImporter
from hostbridge.native.trust_gate import TrustGate
from hostbridge.native.trust_store import TrustStore

__all__ = [
    "ModuleBridge",
    "NativeSandbox",
    "RestrictedImporter",
    "TrustGate",
    "TrustStore",
    "validate_file_name",
]
