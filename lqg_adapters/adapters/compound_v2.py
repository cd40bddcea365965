"""
LQG Compound V2 optimizer adapters.

Markets are Compound cTokens:
- registry: getAllMarkets() on the optimizer proxy
- underlying(): reverts for cETH, which then maps to the native asset
- lens totals are in underlying units; TVL is reported in cToken units by
  dividing by exchangeRateStored() (wad division)

Movement filters (indexed arguments):
    supplied  -> Supplied(_, user, market)     _onBehalf
    withdrawn -> Withdrawn(user, _, market)    _supplier
    repaid    -> Repaid(_, user, market)       _onBehalf
    borrowed  -> Borrowed(user, market)        _borrower
"""

from typing import Optional

from ..core.cache import cache_to_file
from ..core.constants import Protocol
from ..core.maths import wad_div
from ..core.types import AdapterSettings, PositionType
from .base import call_kwargs
from .optimizer import BORROWED, REPAID, SUPPLIED, WITHDRAWN, MarketFamily, OptimizerPoolAdapter

# Minimal optimizer registry ABI
OPTIMIZER_ABI = [
    {
        "inputs": [],
        "name": "getAllMarkets",
        "outputs": [{"internalType": "address[]", "name": "marketsCreated_", "type": "address[]"}],
        "stateMutability": "view",
        "type": "function",
    }
]

# Minimal cToken ABI
CTOKEN_ABI = [
    {
        "inputs": [],
        "name": "underlying",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "exchangeRateStored",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


class CompoundOptimizerFamily(MarketFamily):
    protocol_id = Protocol.LQG_COMPOUND_V2
    label = "LQGCompoundV2"
    site_url = "https://compound.lqg.org/"
    markets_function = "getAllMarkets"
    underlying_function = "underlying"
    registry_abi = OPTIMIZER_ABI
    market_token_abi = CTOKEN_ABI
    movement_events = {
        SUPPLIED: ("Supplied", "_onBehalf"),
        WITHDRAWN: ("Withdrawn", "_supplier"),
        REPAID: ("Repaid", "_onBehalf"),
        BORROWED: ("Borrowed", "_borrower"),
    }

    async def adjust_total(self, market: str, total: int, block_number: Optional[int] = None) -> int:
        exchange_rate = await self.market_token(market).functions.exchangeRateStored().call(
            **call_kwargs(block_number)
        )
        return wad_div(total, int(exchange_rate))


class CompoundV2OptimizerSupplyAdapter(OptimizerPoolAdapter):
    family_class = CompoundOptimizerFamily
    product_id = "optimizer-supply"
    position_type = PositionType.SUPPLY
    adapter_settings = AdapterSettings(
        enable_position_detection_by_protocol_token_transfer=False,
        include_in_unwrap=False,
    )

    @cache_to_file(file_key="optimizer-supply")
    async def build_metadata(self):
        return await super().build_metadata()


class CompoundV2OptimizerBorrowAdapter(OptimizerPoolAdapter):
    family_class = CompoundOptimizerFamily
    product_id = "optimizer-borrow"
    position_type = PositionType.BORROW
    adapter_settings = AdapterSettings(
        enable_position_detection_by_protocol_token_transfer=False,
        include_in_unwrap=False,
    )

    @cache_to_file(file_key="optimizer-borrow")
    async def build_metadata(self):
        return await super().build_metadata()
