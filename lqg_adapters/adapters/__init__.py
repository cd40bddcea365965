from .base import ProtocolAdapter
from .registry import ADAPTER_REGISTRY, build_adapter

__all__ = ["ProtocolAdapter", "ADAPTER_REGISTRY", "build_adapter"]
