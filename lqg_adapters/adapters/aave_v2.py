"""
LQG Aave V2 optimizer adapters.

Markets are Aave V2 aTokens:
- registry: getMarketsCreated() on the optimizer proxy
- UNDERLYING_ASSET_ADDRESS() on the aToken names the asset
- aTokens are 1:1 with the underlying, so lens totals need no correction

Movement filters (indexed arguments):
    supplied  -> Supplied(_, user, market)     _onBehalf
    withdrawn -> Withdrawn(_, user, market)    _receiver
    repaid    -> Repaid(_, user, market)       _onBehalf
    borrowed  -> Borrowed(user, market)        _borrower
"""

from ..core.cache import cache_to_file
from ..core.constants import Protocol
from ..core.types import AdapterSettings, PositionType
from .optimizer import BORROWED, REPAID, SUPPLIED, WITHDRAWN, MarketFamily, OptimizerPoolAdapter

OPTIMIZER_ABI = [
    {
        "inputs": [],
        "name": "getMarketsCreated",
        "outputs": [{"internalType": "address[]", "name": "", "type": "address[]"}],
        "stateMutability": "view",
        "type": "function",
    }
]

ATOKEN_ABI = [
    {
        "inputs": [],
        "name": "UNDERLYING_ASSET_ADDRESS",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
]


class AaveOptimizerFamily(MarketFamily):
    protocol_id = Protocol.LQG_AAVE_V2
    label = "LQGAaveV2"
    site_url = "https://aave.lqg.org/"
    markets_function = "getMarketsCreated"
    underlying_function = "UNDERLYING_ASSET_ADDRESS"
    registry_abi = OPTIMIZER_ABI
    market_token_abi = ATOKEN_ABI
    movement_events = {
        SUPPLIED: ("Supplied", "_onBehalf"),
        WITHDRAWN: ("Withdrawn", "_receiver"),
        REPAID: ("Repaid", "_onBehalf"),
        BORROWED: ("Borrowed", "_borrower"),
    }


class AaveV2OptimizerSupplyAdapter(OptimizerPoolAdapter):
    family_class = AaveOptimizerFamily
    product_id = "optimizer-supply"
    position_type = PositionType.SUPPLY
    adapter_settings = AdapterSettings(
        enable_position_detection_by_protocol_token_transfer=False,
        include_in_unwrap=False,
    )

    @cache_to_file(file_key="optimizer-supply")
    async def build_metadata(self):
        return await super().build_metadata()


class AaveV2OptimizerBorrowAdapter(OptimizerPoolAdapter):
    family_class = AaveOptimizerFamily
    product_id = "optimizer-borrow"
    position_type = PositionType.BORROW
    adapter_settings = AdapterSettings(
        enable_position_detection_by_protocol_token_transfer=False,
        include_in_unwrap=False,
    )

    @cache_to_file(file_key="optimizer-borrow")
    async def build_metadata(self):
        return await super().build_metadata()
