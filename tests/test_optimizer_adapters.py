"""
Unit tests for the optimizer pool adapters (Compound and Aave families).

Each test wires a FakeChain with two markets:
- a token market backed by an ERC20 underlying
- a native-asset market whose underlying lookup reverts
"""

import asyncio

import pytest
from eth_utils import to_checksum_address

from conftest import addr, tx
from lqg_adapters.adapters.aave_v2 import AaveV2OptimizerBorrowAdapter, AaveV2OptimizerSupplyAdapter
from lqg_adapters.adapters.compound_v2 import CompoundV2OptimizerBorrowAdapter, CompoundV2OptimizerSupplyAdapter
from lqg_adapters.core.constants import ZERO_ADDRESS, Chain, Protocol
from lqg_adapters.core.errors import ProtocolTokenNotFoundError
from lqg_adapters.core.maths import wad_div
from lqg_adapters.core.types import PositionType

CDAI = to_checksum_address("0x" + "5d" * 20)
CETH = addr(102)
DAI = addr(201)

ADAI = addr(301)
AWETH = addr(302)
WETH = addr(401)

USER = addr(999)
OTHER = addr(998)

EXCHANGE_RATE = 2 * 10**26


@pytest.fixture
def compound(chain, contracts):
    roles = contracts["lqg-compound-v2"]["ethereum"]
    chain.on_call(roles["optimizer"], "getAllMarkets", [CDAI.lower(), CETH])
    chain.on_call(CDAI, "underlying", DAI)
    chain.token(CDAI, "Compound Dai", "cDAI", 8)
    chain.token(CETH, "Compound Ether", "cETH", 8)
    chain.token(DAI, "Dai Stablecoin", "DAI", 18)
    chain.on_call(CDAI, "exchangeRateStored", EXCHANGE_RATE)
    chain.on_call(CETH, "exchangeRateStored", EXCHANGE_RATE)

    supply = {CDAI.lower(): 5 * 10**18}
    borrow = {CETH.lower(): 2 * 10**18}
    chain.on_call(
        roles["lens"], "getCurrentSupplyBalanceInOf",
        lambda market, user, block: (0, 0, supply.get(market.lower(), 0) if user == USER else 0),
    )
    chain.on_call(
        roles["lens"], "getCurrentBorrowBalanceInOf",
        lambda market, user, block: (0, 0, borrow.get(market.lower(), 0) if user == USER else 0),
    )
    chain.on_call(roles["lens"], "getTotalMarketSupply", lambda market, block: (300 * 10**18, 700 * 10**18))
    chain.on_call(roles["lens"], "getTotalMarketBorrow", lambda market, block: (100 * 10**18, 100 * 10**18))
    return roles


@pytest.fixture
def aave(chain, contracts):
    roles = contracts["lqg-aave-v2"]["ethereum"]
    chain.on_call(roles["optimizer"], "getMarketsCreated", [ADAI, AWETH])
    chain.on_call(ADAI, "UNDERLYING_ASSET_ADDRESS", DAI)
    chain.on_call(AWETH, "UNDERLYING_ASSET_ADDRESS", WETH)
    chain.token(ADAI, "Aave interest bearing DAI", "aDAI", 18)
    chain.token(AWETH, "Aave interest bearing WETH", "aWETH", 18)
    chain.token(DAI, "Dai Stablecoin", "DAI", 18)
    chain.token(WETH, "Wrapped Ether", "WETH", 18)

    chain.on_call(
        roles["lens"], "getCurrentSupplyBalanceInOf",
        lambda market, user, block: (1, 2, 3) if market == AWETH else (0, 0, 0),
    )
    chain.on_call(roles["lens"], "getCurrentBorrowBalanceInOf", lambda market, user, block: (0, 0, 0))
    chain.on_call(roles["lens"], "getTotalMarketSupply", lambda market, block: (40, 60))
    chain.on_call(roles["lens"], "getTotalMarketBorrow", lambda market, block: (10, 5))
    return roles


class TestMetadata:
    """Building and reusing the protocol token -> underlying mapping."""

    def test_markets_map_to_underlying(self, chain, compound):
        adapter = CompoundV2OptimizerSupplyAdapter(chain, Chain.ETHEREUM)
        metadata = asyncio.run(adapter.build_metadata())

        assert set(metadata) == {CDAI, CETH}
        assert metadata[CDAI].protocol_token.symbol == "cDAI"
        assert metadata[CDAI].underlying_token.address == DAI
        assert metadata[CDAI].underlying_token.decimals == 18

    def test_native_market_has_native_underlying(self, chain, compound):
        """cETH has no underlying(); it resolves to the zero address and native ETH."""
        adapter = CompoundV2OptimizerSupplyAdapter(chain, Chain.ETHEREUM)
        underlying = asyncio.run(adapter.fetch_underlying_token_metadata(CETH))

        assert underlying.address == ZERO_ADDRESS
        assert (underlying.name, underlying.symbol, underlying.decimals) == ("Ethereum", "ETH", 18)

    def test_metadata_is_idempotent(self, chain, compound):
        adapter = CompoundV2OptimizerSupplyAdapter(chain, Chain.ETHEREUM)

        async def build_twice():
            first = await adapter.build_metadata()
            second = await adapter.build_metadata()
            return first, second

        first, second = asyncio.run(build_twice())
        assert first == second
        assert len(asyncio.run(adapter.get_protocol_tokens())) == 2
        assert chain.calls[(compound["optimizer"].lower(), "getAllMarkets")] == 1

    def test_concurrent_builds_query_registry_once(self, chain, compound):
        adapter = CompoundV2OptimizerSupplyAdapter(chain, Chain.ETHEREUM)

        async def build_concurrently():
            return await asyncio.gather(*(adapter.build_metadata() for _ in range(5)))

        results = asyncio.run(build_concurrently())
        assert all(r == results[0] for r in results)
        assert chain.calls[(compound["optimizer"].lower(), "getAllMarkets")] == 1

    def test_aave_markets(self, chain, aave):
        adapter = AaveV2OptimizerSupplyAdapter(chain, "ethereum")
        metadata = asyncio.run(adapter.build_metadata())

        assert metadata[ADAI].underlying_token.symbol == "DAI"
        assert metadata[AWETH].underlying_token.address == WETH


class TestLookups:
    """Unknown protocol tokens always raise the same error."""

    @pytest.mark.parametrize("address", [addr(777), "not-an-address", ""])
    def test_unknown_protocol_token(self, chain, compound, address):
        adapter = CompoundV2OptimizerSupplyAdapter(chain, Chain.ETHEREUM)

        with pytest.raises(ProtocolTokenNotFoundError) as exc:
            asyncio.run(adapter.fetch_pool_metadata(address))

        assert str(exc.value) == "Protocol token pool not found"
        assert exc.value.protocol_token_address == address

    def test_lookup_is_case_insensitive(self, chain, compound):
        adapter = CompoundV2OptimizerSupplyAdapter(chain, Chain.ETHEREUM)
        token = asyncio.run(adapter.fetch_protocol_token_metadata(CDAI.lower()))
        assert token.address == CDAI

    def test_unknown_movement_raises(self, chain, compound):
        adapter = CompoundV2OptimizerSupplyAdapter(chain, Chain.ETHEREUM)
        with pytest.raises(ProtocolTokenNotFoundError):
            asyncio.run(adapter.get_deposits(USER, addr(777), 0, "latest"))


class TestPositions:

    def test_zero_balances_are_excluded(self, chain, compound):
        adapter = CompoundV2OptimizerSupplyAdapter(chain, Chain.ETHEREUM)
        positions = asyncio.run(adapter.get_positions(USER))

        assert [p.address for p in positions] == [CDAI]
        position = positions[0]
        assert position.balance_raw == 5 * 10**18
        assert position.type.value == "protocol"
        assert len(position.tokens) == 1
        assert position.tokens[0].address == DAI
        assert position.tokens[0].balance_raw == 5 * 10**18
        assert position.tokens[0].type.value == "underlying"

    def test_user_without_positions(self, chain, compound):
        adapter = CompoundV2OptimizerSupplyAdapter(chain, Chain.ETHEREUM)
        assert asyncio.run(adapter.get_positions(OTHER)) == []

    def test_borrow_side_reads_borrow_balances(self, chain, compound):
        adapter = CompoundV2OptimizerBorrowAdapter(chain, Chain.ETHEREUM)
        positions = asyncio.run(adapter.get_positions(USER))

        assert [p.address for p in positions] == [CETH]
        assert positions[0].tokens[0].symbol == "ETH"

    def test_block_number_is_forwarded(self, chain, compound):
        seen = []
        chain.on_call(
            compound["lens"], "getCurrentSupplyBalanceInOf",
            lambda market, user, block: seen.append(block) or (0, 0, 1),
        )
        adapter = CompoundV2OptimizerSupplyAdapter(chain, Chain.ETHEREUM)
        asyncio.run(adapter.get_positions(USER, block_number=17_000_000))

        assert seen == [17_000_000, 17_000_000]

    def test_protocol_token_filter(self, chain, aave):
        adapter = AaveV2OptimizerSupplyAdapter(chain, Chain.ETHEREUM)
        assert asyncio.run(adapter.get_positions(USER, protocol_token_addresses=[ADAI])) == []

        positions = asyncio.run(adapter.get_positions(USER, protocol_token_addresses=[AWETH]))
        assert [p.balance_raw for p in positions] == [3]


class TestMovements:

    def test_deposits_match_queried_market(self, chain, compound):
        optimizer = compound["optimizer"]
        chain.add_log(optimizer, "Supplied", {"_from": USER, "_onBehalf": USER, "_poolToken": CDAI, "_amount": 100},
                      10, tx(1))
        chain.add_log(optimizer, "Supplied", {"_from": USER, "_onBehalf": USER, "_poolToken": CETH, "_amount": 200},
                      11, tx(2))
        chain.add_log(optimizer, "Supplied", {"_from": USER, "_onBehalf": OTHER, "_poolToken": CDAI, "_amount": 300},
                      12, tx(3))

        adapter = CompoundV2OptimizerSupplyAdapter(chain, Chain.ETHEREUM)
        movements = asyncio.run(adapter.get_deposits(USER, CDAI, 0, "latest"))

        assert len(movements) == 1
        movement = movements[0]
        assert movement.protocol_token.address == CDAI
        assert movement.tokens[0].address == DAI
        assert movement.tokens[0].balance_raw == 100
        assert movement.block_number == 10
        assert movement.transaction_hash == "0x" + "00" * 31 + "01"

    def test_block_range_is_applied(self, chain, compound):
        optimizer = compound["optimizer"]
        for block in (5, 15, 25):
            chain.add_log(optimizer, "Repaid",
                          {"_repayer": OTHER, "_onBehalf": USER, "_poolToken": CETH, "_amount": block},
                          block, tx(block))

        adapter = CompoundV2OptimizerBorrowAdapter(chain, Chain.ETHEREUM)
        movements = asyncio.run(adapter.get_repays(USER, CETH, 10, 20))

        assert [m.block_number for m in movements] == [15]
        assert all(m.protocol_token.address == CETH for m in movements)

    def test_compound_withdrawals_filter_on_supplier(self, chain, compound):
        optimizer = compound["optimizer"]
        chain.add_log(optimizer, "Withdrawn", {"_supplier": USER, "_receiver": OTHER, "_poolToken": CDAI, "_amount": 1},
                      1, tx(1))
        chain.add_log(optimizer, "Withdrawn", {"_supplier": OTHER, "_receiver": USER, "_poolToken": CDAI, "_amount": 2},
                      2, tx(2))

        adapter = CompoundV2OptimizerSupplyAdapter(chain, Chain.ETHEREUM)
        movements = asyncio.run(adapter.get_withdrawals(USER, CDAI, 0, "latest"))

        assert [m.tokens[0].balance_raw for m in movements] == [1]

    def test_aave_withdrawals_filter_on_receiver(self, chain, aave):
        optimizer = aave["optimizer"]
        chain.add_log(optimizer, "Withdrawn", {"_supplier": USER, "_receiver": OTHER, "_poolToken": ADAI, "_amount": 1},
                      1, tx(1))
        chain.add_log(optimizer, "Withdrawn", {"_supplier": OTHER, "_receiver": USER, "_poolToken": ADAI, "_amount": 2},
                      2, tx(2))

        adapter = AaveV2OptimizerSupplyAdapter(chain, Chain.ETHEREUM)
        movements = asyncio.run(adapter.get_withdrawals(USER, ADAI, 0, "latest"))

        assert [m.tokens[0].balance_raw for m in movements] == [2]

    def test_borrows_filter_on_borrower(self, chain, aave):
        optimizer = aave["optimizer"]
        chain.add_log(optimizer, "Borrowed", {"_borrower": USER, "_poolToken": AWETH, "_amount": 7}, 3, tx(3))
        chain.add_log(optimizer, "Borrowed", {"_borrower": USER, "_poolToken": ADAI, "_amount": 8}, 4, tx(4))

        adapter = AaveV2OptimizerBorrowAdapter(chain, Chain.ETHEREUM)
        movements = asyncio.run(adapter.get_borrows(USER, AWETH, 0, "latest"))

        assert [(m.protocol_token.symbol, m.tokens[0].symbol, m.tokens[0].balance_raw) for m in movements] == [
            ("aWETH", "WETH", 7)
        ]


class TestTotalValueLocked:

    def test_compound_tvl_is_divided_by_exchange_rate(self, chain, compound):
        adapter = CompoundV2OptimizerSupplyAdapter(chain, Chain.ETHEREUM)
        tvl = {t.address: t for t in asyncio.run(adapter.get_total_value_locked())}

        expected = wad_div(1000 * 10**18, EXCHANGE_RATE)
        assert expected == 5 * 10**12
        assert tvl[CDAI].total_supply_raw == expected
        assert tvl[CDAI].symbol == "cDAI"
        assert tvl[CETH].total_supply_raw == expected

    def test_compound_borrow_tvl(self, chain, compound):
        adapter = CompoundV2OptimizerBorrowAdapter(chain, Chain.ETHEREUM)
        tvl = asyncio.run(adapter.get_total_value_locked(protocol_token_addresses=[CETH]))

        assert [t.address for t in tvl] == [CETH]
        assert tvl[0].total_supply_raw == wad_div(200 * 10**18, EXCHANGE_RATE)

    def test_aave_tvl_is_pool_plus_p2p(self, chain, aave):
        supply = AaveV2OptimizerSupplyAdapter(chain, Chain.ETHEREUM)
        borrow = AaveV2OptimizerBorrowAdapter(chain, Chain.ETHEREUM)

        assert {t.total_supply_raw for t in asyncio.run(supply.get_total_value_locked())} == {100}
        assert {t.total_supply_raw for t in asyncio.run(borrow.get_total_value_locked())} == {15}


class TestProductSurface:

    def test_protocol_details(self, chain, compound):
        details = CompoundV2OptimizerBorrowAdapter(chain, Chain.ETHEREUM).get_protocol_details()

        assert details.protocol_id == Protocol.LQG_COMPOUND_V2
        assert details.name == "LQGCompoundV2"
        assert details.position_type == PositionType.BORROW
        assert details.chain_id == Chain.ETHEREUM
        assert details.product_id == "optimizer-borrow"

    def test_adapter_settings(self, chain, aave):
        settings = AaveV2OptimizerSupplyAdapter(chain, Chain.ETHEREUM).adapter_settings
        assert settings.enable_position_detection_by_protocol_token_transfer is False
        assert settings.include_in_unwrap is False

    def test_unwrap_is_not_supported(self, chain, compound):
        adapter = CompoundV2OptimizerSupplyAdapter(chain, Chain.ETHEREUM)
        with pytest.raises(NotImplementedError):
            asyncio.run(adapter.unwrap(CDAI))
