"""hostbridge: runtime extensibility layer for a closed host application.

Three coupled subsystems:
  - Interception registry + action patcher (observe/cancel named host actions)
  - Runtime pattern-locator over opaque host code
  - Trust-gated native code bridge (content hash + persisted trust store +
    user decision over IPC, failing closed on timeout)
"""

__version__ = "0.1.0"
__description__ = "Runtime interception and trust-gated native bridge for host extensions"

from hostbridge.context import BridgeContext, create_context

__all__ = ["BridgeContext", "create_context", "__version__"]
