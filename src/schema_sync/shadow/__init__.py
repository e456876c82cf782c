"""Shadow databases seeded with desired state.

Usage:
    from schema_sync.shadow import ShadowStateBuilder, PostgresShadowEngine
"""

from schema_sync.shadow.builder import ShadowStateBuilder
from schema_sync.shadow.engine import PostgresShadowEngine, ShadowEngine

__all__ = ["ShadowStateBuilder", "PostgresShadowEngine", "ShadowEngine"]
