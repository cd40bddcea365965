"""
LQG Blue vault adapter (ERC-4626 vaults created by the MetaLQG factory).

Architecture:
- Registry: CreateMetaLQG events of the factory (vault = arg 0, asset = arg 4)
- Markets: vault shares, each wrapping one underlying ERC20

Positions: balanceOf(user) in shares, decomposed into underlying by the
decimals gap between the vault and its asset.
TVL: totalAssets() in underlying units.
Movements: ERC-4626 Deposit / Withdraw events filtered on `owner`.
"""

import asyncio
import logging
from typing import Iterable, List, Optional

from eth_utils import to_checksum_address

from ..config.settings import get_contract_address
from ..core.abis import ERC20_ABI
from ..core.cache import cache_to_file
from ..core.constants import Protocol
from ..core.token_metadata import get_token_metadata
from ..core.types import (
    AdapterSettings,
    Metadata,
    MovementsByBlock,
    PoolMetadata,
    PositionType,
    ProtocolDetails,
    ProtocolPosition,
    ProtocolTokenTvl,
    Underlying,
    UnwrapExchangeRate,
    UnwrappedTokenExchangeRate,
)
from .base import ProtocolAdapter, call_kwargs

logger = logging.getLogger(__name__)

FACTORY_ABI = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "metaLQG", "type": "address"},
            {"indexed": True, "name": "caller", "type": "address"},
            {"indexed": False, "name": "initialOwner", "type": "address"},
            {"indexed": False, "name": "initialTimelock", "type": "uint256"},
            {"indexed": True, "name": "asset", "type": "address"},
            {"indexed": False, "name": "name", "type": "string"},
            {"indexed": False, "name": "symbol", "type": "string"},
            {"indexed": False, "name": "salt", "type": "bytes32"},
        ],
        "name": "CreateMetaLQG",
        "type": "event",
    }
]

VAULT_ABI = ERC20_ABI + [
    {
        "inputs": [],
        "name": "totalAssets",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "sender", "type": "address"},
            {"indexed": True, "name": "owner", "type": "address"},
            {"indexed": False, "name": "assets", "type": "uint256"},
            {"indexed": False, "name": "shares", "type": "uint256"},
        ],
        "name": "Deposit",
        "type": "event",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "sender", "type": "address"},
            {"indexed": True, "name": "receiver", "type": "address"},
            {"indexed": True, "name": "owner", "type": "address"},
            {"indexed": False, "name": "assets", "type": "uint256"},
            {"indexed": False, "name": "shares", "type": "uint256"},
        ],
        "name": "Withdraw",
        "type": "event",
    },
]

DEPOSIT = "deposit"
WITHDRAW = "withdraw"

# movement kind -> (event name, indexed argument holding the user)
MOVEMENT_EVENTS = {
    DEPOSIT: ("Deposit", "owner"),
    WITHDRAW: ("Withdraw", "owner"),
}


def shares_to_underlying(balance_raw: int, vault_decimals: int, asset_decimals: int) -> int:
    """Rescale a share balance to the asset's decimals."""
    gap = vault_decimals - asset_decimals
    if gap >= 0:
        return balance_raw // 10**gap
    return balance_raw * 10**(-gap)


class VaultAdapter(ProtocolAdapter):
    protocol_id = Protocol.LQG_BLUE
    product_id = "vault"
    adapter_settings = AdapterSettings(
        enable_position_detection_by_protocol_token_transfer=False,
        include_in_unwrap=False,
    )

    def __init__(self, web3, chain_id, cache_dir=None):
        super().__init__(web3, chain_id, cache_dir)
        self.factory = web3.eth.contract(
            address=get_contract_address(self.protocol_id, self.chain_id, "vault_factory"),
            abi=FACTORY_ABI,
        )

    def get_protocol_details(self) -> ProtocolDetails:
        return ProtocolDetails(
            protocol_id=self.protocol_id,
            name="MetaLQG Vaults",
            description="MetaLQG Vaults adapter",
            site_url="https://app.lqg.org/",
            icon_url="https://cdn.lqg.org/images/v2/lqg/favicon.png",
            position_type=PositionType.SUPPLY,
            chain_id=self.chain_id,
            product_id=self.product_id,
        )

    def vault(self, address: str):
        return self.web3.eth.contract(address=address, abi=VAULT_ABI)

    @cache_to_file(file_key="protocol-token")
    async def build_metadata(self) -> Metadata:
        logs = await self.factory.events.CreateMetaLQG().get_logs(from_block=0, to_block="latest")
        vaults = [
            (to_checksum_address(log['args']['metaLQG']), to_checksum_address(log['args']['asset']))
            for log in logs
        ]
        logger.debug(f"{self.protocol_id.value}: building metadata for {len(vaults)} vaults")

        async def _entry(vault: str, asset: str) -> PoolMetadata:
            vault_token, underlying_token = await asyncio.gather(
                get_token_metadata(self.web3, vault, self.chain_id),
                get_token_metadata(self.web3, asset, self.chain_id),
            )
            return PoolMetadata(protocol_token=vault_token, underlying_token=underlying_token)

        entries = await asyncio.gather(*(_entry(v, a) for v, a in vaults))
        return {entry.protocol_token.address: entry for entry in entries}

    async def get_positions(
        self,
        user_address: str,
        block_number: Optional[int] = None,
        protocol_token_addresses: Optional[Iterable[str]] = None,
    ) -> List[ProtocolPosition]:
        user_address = to_checksum_address(user_address)
        tokens = await self.select_protocol_tokens(protocol_token_addresses)

        async def _position(protocol_token) -> Optional[ProtocolPosition]:
            underlying_token = await self.fetch_underlying_token_metadata(protocol_token.address)
            vault = self.vault(protocol_token.address)
            asset = self.web3.eth.contract(address=underlying_token.address, abi=ERC20_ABI)

            balance_raw, vault_decimals, asset_decimals = await asyncio.gather(
                vault.functions.balanceOf(user_address).call(**call_kwargs(block_number)),
                vault.functions.decimals().call(),
                asset.functions.decimals().call(),
            )
            if balance_raw <= 0:
                return None

            return ProtocolPosition(
                address=protocol_token.address,
                name=protocol_token.name,
                symbol=protocol_token.symbol,
                decimals=protocol_token.decimals,
                balance_raw=int(balance_raw),
                tokens=[Underlying.of(
                    underlying_token,
                    shares_to_underlying(int(balance_raw), int(vault_decimals), int(asset_decimals)),
                )],
            )

        positions = await asyncio.gather(*(_position(t) for t in tokens))
        return [p for p in positions if p is not None]

    async def get_deposits(self, user_address, protocol_token_address, from_block, to_block):
        return await self._get_movements(user_address, protocol_token_address, from_block, to_block, DEPOSIT)

    async def get_withdrawals(self, user_address, protocol_token_address, from_block, to_block):
        return await self._get_movements(user_address, protocol_token_address, from_block, to_block, WITHDRAW)

    async def get_total_value_locked(
        self,
        block_number: Optional[int] = None,
        protocol_token_addresses: Optional[Iterable[str]] = None,
    ) -> List[ProtocolTokenTvl]:
        tokens = await self.select_protocol_tokens(protocol_token_addresses)

        async def _tvl(protocol_token) -> ProtocolTokenTvl:
            underlying_token = await self.fetch_underlying_token_metadata(protocol_token.address)
            total_assets = await self.vault(protocol_token.address).functions.totalAssets().call(
                **call_kwargs(block_number)
            )
            return ProtocolTokenTvl(
                address=protocol_token.address,
                name=protocol_token.name,
                symbol=underlying_token.symbol,
                decimals=underlying_token.decimals,
                total_supply_raw=int(total_assets),
            )

        return list(await asyncio.gather(*(_tvl(t) for t in tokens)))

    async def unwrap(self, protocol_token_address: str, block_number: Optional[int] = None) -> UnwrapExchangeRate:
        """One share unwraps to one unit of the underlying asset."""
        pool = await self.fetch_pool_metadata(protocol_token_address)
        protocol_token, underlying_token = pool.protocol_token, pool.underlying_token

        return UnwrapExchangeRate(
            address=protocol_token.address,
            name=protocol_token.name,
            symbol=protocol_token.symbol,
            decimals=protocol_token.decimals,
            base_rate=1,
            tokens=[UnwrappedTokenExchangeRate(
                address=underlying_token.address,
                name=underlying_token.name,
                symbol=underlying_token.symbol,
                decimals=underlying_token.decimals,
                underlying_rate_raw=10**underlying_token.decimals,
            )],
        )

    async def _get_movements(
        self,
        user_address: str,
        protocol_token_address: str,
        from_block: int,
        to_block: int,
        kind: str,
    ) -> List[MovementsByBlock]:
        pool = await self.fetch_pool_metadata(protocol_token_address)

        event_name, user_argument = MOVEMENT_EVENTS[kind]
        event = getattr(self.vault(pool.protocol_token.address).events, event_name)()
        logs = await event.get_logs(
            argument_filters={user_argument: to_checksum_address(user_address)},
            from_block=from_block,
            to_block=to_block,
        )

        return [
            self.make_movement(log, pool.protocol_token, pool.underlying_token, "assets")
            for log in logs
        ]
