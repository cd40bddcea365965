import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from eth_utils import to_checksum_address

from ..core.constants import Chain, Protocol
from ..core.errors import UnsupportedChainError

DEFAULT_CACHE_DIR = "data/metadata"
DEFAULT_LOG_LEVEL = "WARNING"


def _contracts_path() -> Path:
    # config/contracts.yaml next to this module
    return Path(__file__).resolve().parent / "contracts.yaml"


@lru_cache(maxsize=None)
def load_contracts(path: Optional[str] = None) -> Dict[str, Dict[str, Dict[str, str]]]:
    """
    Load {protocol: {chain: {role: address}}} from YAML, checksumming every address.
    """
    cfg_path = Path(path) if path else _contracts_path()
    with cfg_path.open("r") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    contracts: Dict[str, Dict[str, Dict[str, str]]] = {}
    for protocol, chains in raw.items():
        contracts[protocol] = {
            chain: {role: to_checksum_address(addr) for role, addr in roles.items()}
            for chain, roles in (chains or {}).items()
        }
    return contracts


def get_contract_address(protocol: Protocol, chain: Chain, role: str) -> str:
    roles = load_contracts().get(protocol.value, {}).get(chain.slug)
    if not roles or role not in roles:
        raise UnsupportedChainError(
            f"No '{role}' contract configured for {protocol.value} on {chain.slug}"
        )
    return roles[role]


def supported_chains(protocol: Protocol):
    return [Chain.from_name(c) for c in load_contracts().get(protocol.value, {})]


@dataclass
class Settings:
    # None disables the metadata file cache
    cache_dir: Optional[Path] = Path(DEFAULT_CACHE_DIR)
    log_level: str = DEFAULT_LOG_LEVEL

    @staticmethod
    def from_env() -> "Settings":
        cache_dir = os.getenv("LQG_METADATA_CACHE_DIR", DEFAULT_CACHE_DIR).strip()
        log_level = os.getenv("LQG_LOG_LEVEL", DEFAULT_LOG_LEVEL).strip().upper()
        return Settings(
            cache_dir=Path(cache_dir) if cache_dir else None,
            log_level=log_level or DEFAULT_LOG_LEVEL,
        )
