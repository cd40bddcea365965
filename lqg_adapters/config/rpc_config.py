"""
RPC URL resolution and async Web3 construction.

Precedence per chain:
  1) LQG_RPC_URL_<CHAIN> environment variable (e.g. LQG_RPC_URL_ETHEREUM)
  2) Alchemy URL built from ALCHEMY_API_KEY
  3) Public RPC
"""

import os
from typing import Optional

from web3 import AsyncHTTPProvider, AsyncWeb3

from ..core.constants import Chain

# Alchemy URL patterns
ALCHEMY_PATTERNS = {
    'ethereum': 'https://eth-mainnet.g.alchemy.com/v2/{key}',
    'base': 'https://base-mainnet.g.alchemy.com/v2/{key}',
}

# Public RPCs (no auth needed)
PUBLIC_RPCS = {
    'ethereum': 'https://eth.llamarpc.com',
    'base': 'https://mainnet.base.org',
}


def get_rpc_url(chain, api_key: Optional[str] = None) -> str:
    """
    Get RPC URL for a chain.

    Args:
        chain: Chain enum, chain id or chain name (e.g., 'ethereum', 'base')
        api_key: Alchemy API key (uses ALCHEMY_API_KEY env var if not provided)

    Returns:
        Complete RPC URL
    """
    name = Chain.from_name(chain).slug

    override = os.getenv(f"LQG_RPC_URL_{name.upper()}")
    if override:
        return override

    key = api_key or os.getenv('ALCHEMY_API_KEY')
    if key and name in ALCHEMY_PATTERNS:
        return ALCHEMY_PATTERNS[name].format(key=key)

    if name in PUBLIC_RPCS:
        return PUBLIC_RPCS[name]

    raise ValueError(f"Unknown chain: {chain}")


def get_web3(chain, rpc_url: Optional[str] = None) -> AsyncWeb3:
    return AsyncWeb3(AsyncHTTPProvider(rpc_url or get_rpc_url(chain)))
