"""Action interception: registry, pattern-locator, patcher and host loader."""

from hostbridge.intercept.locator import locate, locate_all
from hostbridge.intercept.patcher import PatchedAction, patch_action, patch_source
from hostbridge.intercept.registry import InterceptionRegistry, Interceptor

__all__ = [
    "InterceptionRegistry",
    "Interceptor",
    "PatchedAction",
    "locate",
    "locate_all",
    "patch_action",
    "patch_source",
]
