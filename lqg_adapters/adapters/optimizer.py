"""
Peer-to-pool optimizer adapters (one class for every optimizer deployment).

An optimizer sits on top of a lending pool (Compound, Aave) and matches
suppliers and borrowers peer-to-peer when possible. Every deployment exposes:

- a proxy with a market registry and Supplied/Withdrawn/Borrowed/Repaid events
- a lens with per-user balances and per-market totals

What differs between deployments lives in a `MarketFamily`:

- which registry function lists the markets
- how a market token names its underlying asset
- how market totals are expressed (Compound needs an exchange-rate correction)
- which indexed event argument carries the user for each movement kind

Leaf products (supply side / borrow side) pick a family, a position type and a
metadata file key.
"""

import asyncio
import logging
from abc import ABC
from typing import Dict, Iterable, List, Optional, Tuple, Type

from eth_utils import to_checksum_address
from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from ..config.settings import get_contract_address
from ..core.constants import ZERO_ADDRESS, Chain, Protocol
from ..core.token_metadata import get_token_metadata
from ..core.types import (
    Metadata,
    MovementsByBlock,
    PoolMetadata,
    PositionType,
    ProtocolDetails,
    ProtocolPosition,
    ProtocolTokenTvl,
    Underlying,
)
from .base import ProtocolAdapter, call_kwargs

logger = logging.getLogger(__name__)

ICON_URL = "https://cdn.lqg.org/images/v2/lqg/favicon.png"

# Events emitted by every optimizer proxy
OPTIMIZER_EVENTS_ABI = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "_from", "type": "address"},
            {"indexed": True, "name": "_onBehalf", "type": "address"},
            {"indexed": True, "name": "_poolToken", "type": "address"},
            {"indexed": False, "name": "_amount", "type": "uint256"},
            {"indexed": False, "name": "_balanceOnPool", "type": "uint256"},
            {"indexed": False, "name": "_balanceInP2P", "type": "uint256"},
        ],
        "name": "Supplied",
        "type": "event",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "_supplier", "type": "address"},
            {"indexed": True, "name": "_receiver", "type": "address"},
            {"indexed": True, "name": "_poolToken", "type": "address"},
            {"indexed": False, "name": "_amount", "type": "uint256"},
            {"indexed": False, "name": "_balanceOnPool", "type": "uint256"},
            {"indexed": False, "name": "_balanceInP2P", "type": "uint256"},
        ],
        "name": "Withdrawn",
        "type": "event",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "_borrower", "type": "address"},
            {"indexed": True, "name": "_poolToken", "type": "address"},
            {"indexed": False, "name": "_amount", "type": "uint256"},
            {"indexed": False, "name": "_balanceOnPool", "type": "uint256"},
            {"indexed": False, "name": "_balanceInP2P", "type": "uint256"},
        ],
        "name": "Borrowed",
        "type": "event",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "_repayer", "type": "address"},
            {"indexed": True, "name": "_onBehalf", "type": "address"},
            {"indexed": True, "name": "_poolToken", "type": "address"},
            {"indexed": False, "name": "_amount", "type": "uint256"},
            {"indexed": False, "name": "_balanceOnPool", "type": "uint256"},
            {"indexed": False, "name": "_balanceInP2P", "type": "uint256"},
        ],
        "name": "Repaid",
        "type": "event",
    },
]

LENS_ABI = [
    {
        "inputs": [
            {"internalType": "address", "name": "_poolToken", "type": "address"},
            {"internalType": "address", "name": "_user", "type": "address"},
        ],
        "name": "getCurrentSupplyBalanceInOf",
        "outputs": [
            {"internalType": "uint256", "name": "balanceOnPool", "type": "uint256"},
            {"internalType": "uint256", "name": "balanceInP2P", "type": "uint256"},
            {"internalType": "uint256", "name": "totalBalance", "type": "uint256"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "_poolToken", "type": "address"},
            {"internalType": "address", "name": "_user", "type": "address"},
        ],
        "name": "getCurrentBorrowBalanceInOf",
        "outputs": [
            {"internalType": "uint256", "name": "balanceOnPool", "type": "uint256"},
            {"internalType": "uint256", "name": "balanceInP2P", "type": "uint256"},
            {"internalType": "uint256", "name": "totalBalance", "type": "uint256"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "address", "name": "_poolToken", "type": "address"}],
        "name": "getTotalMarketSupply",
        "outputs": [
            {"internalType": "uint256", "name": "p2pSupplyAmount", "type": "uint256"},
            {"internalType": "uint256", "name": "poolSupplyAmount", "type": "uint256"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "address", "name": "_poolToken", "type": "address"}],
        "name": "getTotalMarketBorrow",
        "outputs": [
            {"internalType": "uint256", "name": "p2pBorrowAmount", "type": "uint256"},
            {"internalType": "uint256", "name": "poolBorrowAmount", "type": "uint256"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
]

# Movement kinds understood by every family
SUPPLIED = "supplied"
WITHDRAWN = "withdrawn"
BORROWED = "borrowed"
REPAID = "repaid"


class MarketFamily(ABC):
    """
    Capability set of one optimizer deployment: market listing, underlying
    resolution, balance lookup, market totals and movement filters.
    """
    protocol_id: Protocol
    label: str
    site_url: str
    # registry function on the optimizer proxy returning address[]
    markets_function: str
    # function on the market token returning its underlying asset
    underlying_function: str
    registry_abi: list
    market_token_abi: list
    # movement kind -> (event name, indexed argument holding the user)
    movement_events: Dict[str, Tuple[str, str]]

    def __init__(self, web3, chain_id: Chain):
        self.web3 = web3
        self.chain_id = chain_id
        self.optimizer = web3.eth.contract(
            address=get_contract_address(self.protocol_id, chain_id, "optimizer"),
            abi=self.registry_abi + OPTIMIZER_EVENTS_ABI,
        )
        self.lens = web3.eth.contract(
            address=get_contract_address(self.protocol_id, chain_id, "lens"),
            abi=LENS_ABI,
        )

    def market_token(self, market: str):
        return self.web3.eth.contract(address=market, abi=self.market_token_abi)

    async def list_markets(self) -> List[str]:
        markets = await getattr(self.optimizer.functions, self.markets_function)().call()
        return [to_checksum_address(m) for m in markets]

    async def resolve_underlying(self, market: str) -> str:
        """Underlying asset of a market; markets without one (native asset) give the zero address."""
        token = self.market_token(market)
        try:
            underlying = await getattr(token.functions, self.underlying_function)().call()
        except (ContractLogicError, BadFunctionCallOutput) as e:
            logger.debug(f"{self.underlying_function}() failed on {market}, using zero address: {e}")
            return ZERO_ADDRESS
        return to_checksum_address(underlying)

    async def balance_of(self, market: str, user: str, position_type: PositionType,
                         block_number: Optional[int] = None) -> int:
        if position_type == PositionType.SUPPLY:
            fn = self.lens.functions.getCurrentSupplyBalanceInOf
        else:
            fn = self.lens.functions.getCurrentBorrowBalanceInOf
        _on_pool, _in_p2p, total_balance = await fn(market, user).call(**call_kwargs(block_number))
        return int(total_balance)

    async def market_total(self, market: str, position_type: PositionType,
                           block_number: Optional[int] = None) -> int:
        """Peer-to-peer + pool amount of one market side."""
        if position_type == PositionType.SUPPLY:
            fn = self.lens.functions.getTotalMarketSupply
        else:
            fn = self.lens.functions.getTotalMarketBorrow
        p2p_amount, pool_amount = await fn(market).call(**call_kwargs(block_number))
        return await self.adjust_total(market, int(p2p_amount) + int(pool_amount), block_number)

    async def adjust_total(self, market: str, total: int, block_number: Optional[int] = None) -> int:
        return total

    def movement_filter(self, kind: str, user: str, market: str) -> Tuple[str, dict]:
        """(event name, argument filters) for one movement kind."""
        try:
            event_name, user_argument = self.movement_events[kind]
        except KeyError:
            raise ValueError(f"Unknown movement kind for {self.label}: {kind}") from None
        return event_name, {user_argument: user, "_poolToken": market}


class OptimizerPoolAdapter(ProtocolAdapter):
    """
    Shared optimizer logic, parameterized by `family_class`.

    Underlying decomposition is 1:1: the lens already reports balances in
    underlying units.
    """
    family_class: Type[MarketFamily]
    position_type: PositionType

    def __init__(self, web3, chain_id, cache_dir=None):
        super().__init__(web3, chain_id, cache_dir)
        self.family = self.family_class(web3, self.chain_id)

    @property
    def protocol_id(self) -> Protocol:
        return self.family_class.protocol_id

    def get_protocol_details(self) -> ProtocolDetails:
        label = self.family_class.label
        side = "supply" if self.position_type == PositionType.SUPPLY else "borrow"
        return ProtocolDetails(
            protocol_id=self.protocol_id,
            name=label,
            description=f"{label} DeFi adapter on the {side} side",
            site_url=self.family_class.site_url,
            icon_url=ICON_URL,
            position_type=self.position_type,
            chain_id=self.chain_id,
            product_id=self.product_id,
        )

    async def build_metadata(self) -> Metadata:
        markets = await self.family.list_markets()
        logger.debug(f"{self.protocol_id.value}: building metadata for {len(markets)} markets")

        entries = await asyncio.gather(*(self._market_metadata(m) for m in markets))
        return {entry.protocol_token.address: entry for entry in entries}

    async def _market_metadata(self, market: str) -> PoolMetadata:
        underlying = await self.family.resolve_underlying(market)
        protocol_token, underlying_token = await asyncio.gather(
            get_token_metadata(self.web3, market, self.chain_id),
            get_token_metadata(self.web3, underlying, self.chain_id),
        )
        return PoolMetadata(protocol_token=protocol_token, underlying_token=underlying_token)

    async def get_positions(
        self,
        user_address: str,
        block_number: Optional[int] = None,
        protocol_token_addresses: Optional[Iterable[str]] = None,
    ) -> List[ProtocolPosition]:
        user_address = to_checksum_address(user_address)
        tokens = await self.select_protocol_tokens(protocol_token_addresses)

        balances = await asyncio.gather(*(
            self.family.balance_of(token.address, user_address, self.position_type, block_number)
            for token in tokens
        ))

        positions = []
        for token, balance in zip(tokens, balances):
            if balance == 0:
                continue
            underlying_token = await self.fetch_underlying_token_metadata(token.address)
            positions.append(ProtocolPosition(
                address=token.address,
                name=token.name,
                symbol=token.symbol,
                decimals=token.decimals,
                balance_raw=balance,
                tokens=[Underlying.of(underlying_token, balance)],
            ))
        return positions

    async def get_deposits(self, user_address, protocol_token_address, from_block, to_block):
        return await self._get_movements(user_address, protocol_token_address, from_block, to_block, SUPPLIED)

    async def get_withdrawals(self, user_address, protocol_token_address, from_block, to_block):
        return await self._get_movements(user_address, protocol_token_address, from_block, to_block, WITHDRAWN)

    async def get_borrows(self, user_address, protocol_token_address, from_block, to_block):
        return await self._get_movements(user_address, protocol_token_address, from_block, to_block, BORROWED)

    async def get_repays(self, user_address, protocol_token_address, from_block, to_block):
        return await self._get_movements(user_address, protocol_token_address, from_block, to_block, REPAID)

    async def get_total_value_locked(
        self,
        block_number: Optional[int] = None,
        protocol_token_addresses: Optional[Iterable[str]] = None,
    ) -> List[ProtocolTokenTvl]:
        tokens = await self.select_protocol_tokens(protocol_token_addresses)

        totals = await asyncio.gather(*(
            self.family.market_total(token.address, self.position_type, block_number)
            for token in tokens
        ))

        return [
            ProtocolTokenTvl(
                address=token.address,
                name=token.name,
                symbol=token.symbol,
                decimals=token.decimals,
                total_supply_raw=total,
            )
            for token, total in zip(tokens, totals)
        ]

    async def _get_movements(
        self,
        user_address: str,
        protocol_token_address: str,
        from_block: int,
        to_block: int,
        kind: str,
    ) -> List[MovementsByBlock]:
        pool = await self.fetch_pool_metadata(protocol_token_address)

        event_name, argument_filters = self.family.movement_filter(
            kind, to_checksum_address(user_address), pool.protocol_token.address
        )
        event = getattr(self.family.optimizer.events, event_name)()
        logs = await event.get_logs(
            argument_filters=argument_filters,
            from_block=from_block,
            to_block=to_block,
        )

        return [
            self.make_movement(log, pool.protocol_token, pool.underlying_token, "_amount")
            for log in logs
        ]
