# adapters/base.py
import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Iterable, List, Optional, Union

from eth_utils import is_address, to_checksum_address
from web3 import Web3

from ..core.constants import Chain, Protocol
from ..core.errors import ProtocolTokenNotFoundError
from ..core.types import (
    AdapterSettings,
    Erc20Metadata,
    Metadata,
    MovementsByBlock,
    PoolMetadata,
    ProtocolDetails,
    ProtocolPosition,
    ProtocolTokenTvl,
    Underlying,
    UnwrapExchangeRate,
)

logger = logging.getLogger(__name__)


def call_kwargs(block_number: Optional[int]) -> dict:
    return {'block_identifier': block_number} if block_number is not None else {}


def normalize_address(address: str) -> str:
    """Checksum valid addresses; leave anything else untouched so lookups fail loudly."""
    if isinstance(address, str) and is_address(address):
        return to_checksum_address(address)
    return address


class ProtocolAdapter(ABC):
    """
    Base interface for protocol adapters.

    Holds the per-instance metadata cache (protocol token -> underlying token)
    and the lookups every product shares. Concrete products implement
    `build_metadata`, `get_positions` and `get_total_value_locked`, and the
    movement getters they support.
    """
    protocol_id: Protocol
    product_id: str = ""
    adapter_settings = AdapterSettings()

    def __init__(self, web3, chain_id: Union[Chain, int, str], cache_dir: Optional[Union[str, Path]] = None):
        self.web3 = web3
        self.chain_id = Chain.from_name(chain_id)
        self.cache_dir = Path(cache_dir) if cache_dir else None
        self._metadata_cache: Optional[Metadata] = None
        self._metadata_lock = asyncio.Lock()

    @abstractmethod
    def get_protocol_details(self) -> ProtocolDetails:
        ...

    @abstractmethod
    async def build_metadata(self) -> Metadata:
        """Return {protocol token address: PoolMetadata}."""
        ...

    @abstractmethod
    async def get_positions(
        self,
        user_address: str,
        block_number: Optional[int] = None,
        protocol_token_addresses: Optional[Iterable[str]] = None,
    ) -> List[ProtocolPosition]:
        ...

    @abstractmethod
    async def get_total_value_locked(
        self,
        block_number: Optional[int] = None,
        protocol_token_addresses: Optional[Iterable[str]] = None,
    ) -> List[ProtocolTokenTvl]:
        ...

    async def get_deposits(self, user_address: str, protocol_token_address: str,
                           from_block: int, to_block: int) -> List[MovementsByBlock]:
        raise NotImplementedError(f"{type(self).__name__} has no deposits")

    async def get_withdrawals(self, user_address: str, protocol_token_address: str,
                              from_block: int, to_block: int) -> List[MovementsByBlock]:
        raise NotImplementedError(f"{type(self).__name__} has no withdrawals")

    async def get_borrows(self, user_address: str, protocol_token_address: str,
                          from_block: int, to_block: int) -> List[MovementsByBlock]:
        raise NotImplementedError(f"{type(self).__name__} has no borrows")

    async def get_repays(self, user_address: str, protocol_token_address: str,
                         from_block: int, to_block: int) -> List[MovementsByBlock]:
        raise NotImplementedError(f"{type(self).__name__} has no repays")

    async def unwrap(self, protocol_token_address: str, block_number: Optional[int] = None) -> UnwrapExchangeRate:
        raise NotImplementedError(f"{type(self).__name__} does not support unwrap")

    # -------------- Metadata lookups --------------

    async def get_protocol_tokens(self) -> List[Erc20Metadata]:
        return [entry.protocol_token for entry in (await self.build_metadata()).values()]

    async def select_protocol_tokens(self, protocol_token_addresses: Optional[Iterable[str]] = None) -> List[Erc20Metadata]:
        """All protocol tokens, or only those in `protocol_token_addresses` (case-insensitive)."""
        tokens = await self.get_protocol_tokens()
        if protocol_token_addresses is None:
            return tokens
        wanted = {a.lower() for a in protocol_token_addresses}
        return [t for t in tokens if t.address.lower() in wanted]

    async def fetch_pool_metadata(self, protocol_token_address: str) -> PoolMetadata:
        pool_metadata = (await self.build_metadata()).get(normalize_address(protocol_token_address))

        if pool_metadata is None:
            logger.error(
                f"Protocol token pool not found: {protocol_token_address} "
                f"(protocol={self.protocol_id.value}, chain={self.chain_id.slug}, product={self.product_id})"
            )
            raise ProtocolTokenNotFoundError(protocol_token_address)

        return pool_metadata

    async def fetch_protocol_token_metadata(self, protocol_token_address: str) -> Erc20Metadata:
        return (await self.fetch_pool_metadata(protocol_token_address)).protocol_token

    async def fetch_underlying_token_metadata(self, protocol_token_address: str) -> Erc20Metadata:
        return (await self.fetch_pool_metadata(protocol_token_address)).underlying_token

    # -------------- Helpers for adapter authors --------------

    @staticmethod
    def make_movement(
        log: Any,
        protocol_token: Erc20Metadata,
        underlying_token: Erc20Metadata,
        amount_field: str,
    ) -> MovementsByBlock:
        """Standardized movement record from a decoded event log."""
        return MovementsByBlock(
            protocol_token=protocol_token,
            tokens=[Underlying.of(underlying_token, int(log['args'][amount_field]))],
            block_number=int(log['blockNumber']),
            transaction_hash=Web3.to_hex(log['transactionHash']),
        )
