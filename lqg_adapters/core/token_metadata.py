"""
ERC20 metadata lookups.

- name/symbol/decimals are read concurrently
- the zero address resolves to the chain's native asset
- bytes32 name()/symbol() (MKR-style tokens) are decoded with a fallback ABI
"""

import asyncio
import logging

from eth_utils import to_checksum_address
from web3.exceptions import BadFunctionCallOutput

from .abis import ERC20_ABI, ERC20_BYTES32_ABI
from .constants import NATIVE_TOKENS, ZERO_ADDRESS, Chain
from .types import Erc20Metadata

logger = logging.getLogger(__name__)


def _decode_bytes32(raw: bytes) -> str:
    return raw.rstrip(b"\x00").decode("utf-8", errors="ignore")


async def _read_text(web3, token: str, field: str) -> str:
    contract = web3.eth.contract(address=token, abi=ERC20_ABI)
    try:
        return await getattr(contract.functions, field)().call()
    except BadFunctionCallOutput:
        logger.debug(f"{field}() of {token} is not a string, retrying as bytes32")
        legacy = web3.eth.contract(address=token, abi=ERC20_BYTES32_ABI)
        raw = await getattr(legacy.functions, field)().call()
        return _decode_bytes32(raw)


async def get_token_metadata(web3, token_address: str, chain: Chain) -> Erc20Metadata:
    token_address = to_checksum_address(token_address)

    if token_address == ZERO_ADDRESS:
        native = NATIVE_TOKENS[chain]
        return Erc20Metadata(
            address=ZERO_ADDRESS,
            name=native["name"],
            symbol=native["symbol"],
            decimals=native["decimals"],
        )

    contract = web3.eth.contract(address=token_address, abi=ERC20_ABI)
    name, symbol, decimals = await asyncio.gather(
        _read_text(web3, token_address, "name"),
        _read_text(web3, token_address, "symbol"),
        contract.functions.decimals().call(),
    )
    return Erc20Metadata(
        address=token_address,
        name=name,
        symbol=symbol,
        decimals=int(decimals),
    )
