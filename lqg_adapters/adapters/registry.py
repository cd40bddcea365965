"""
(protocol, product) -> adapter class, and a factory to build one for a chain.
"""

from typing import Dict, Tuple, Type

from ..core.constants import Protocol
from .aave_v2 import AaveV2OptimizerBorrowAdapter, AaveV2OptimizerSupplyAdapter
from .base import ProtocolAdapter
from .compound_v2 import CompoundV2OptimizerBorrowAdapter, CompoundV2OptimizerSupplyAdapter
from .vault import VaultAdapter

ADAPTER_REGISTRY: Dict[Tuple[Protocol, str], Type[ProtocolAdapter]] = {
    (Protocol.LQG_COMPOUND_V2, "optimizer-supply"): CompoundV2OptimizerSupplyAdapter,
    (Protocol.LQG_COMPOUND_V2, "optimizer-borrow"): CompoundV2OptimizerBorrowAdapter,
    (Protocol.LQG_AAVE_V2, "optimizer-supply"): AaveV2OptimizerSupplyAdapter,
    (Protocol.LQG_AAVE_V2, "optimizer-borrow"): AaveV2OptimizerBorrowAdapter,
    (Protocol.LQG_BLUE, "vault"): VaultAdapter,
}


def products(protocol) -> list:
    protocol = Protocol(protocol)
    return sorted(product for (p, product) in ADAPTER_REGISTRY if p == protocol)


def build_adapter(protocol, product: str, chain, web3, cache_dir=None) -> ProtocolAdapter:
    try:
        key = (Protocol(protocol), product)
    except ValueError:
        raise ValueError(f"Unknown protocol: {protocol}") from None
    if key not in ADAPTER_REGISTRY:
        raise ValueError(f"No adapter registered for {key[0].value}/{product}")
    return ADAPTER_REGISTRY[key](web3, chain, cache_dir=cache_dir)
