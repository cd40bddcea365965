"""
Common schema shared by every adapter.

Raw amounts are plain ints in the token's smallest unit. Addresses are EIP-55
checksummed strings.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List

from .constants import Chain, Protocol


class TokenType(str, Enum):
    PROTOCOL = "protocol"
    UNDERLYING = "underlying"
    CLAIMABLE = "claimable"
    FIAT = "fiat"


class PositionType(str, Enum):
    SUPPLY = "supply"
    BORROW = "borrow"
    LEND = "lend"
    REWARD = "reward"


@dataclass(frozen=True)
class Erc20Metadata:
    address: str
    name: str
    symbol: str
    decimals: int

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Erc20Metadata":
        return Erc20Metadata(
            address=d["address"],
            name=d["name"],
            symbol=d["symbol"],
            decimals=int(d["decimals"]),
        )


@dataclass(frozen=True)
class PoolMetadata:
    """One metadata entry: a protocol token and the single asset it is denominated in."""
    protocol_token: Erc20Metadata
    underlying_token: Erc20Metadata

    def to_dict(self) -> Dict[str, Any]:
        return {
            "protocolToken": asdict(self.protocol_token),
            "underlyingToken": asdict(self.underlying_token),
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "PoolMetadata":
        return PoolMetadata(
            protocol_token=Erc20Metadata.from_dict(d["protocolToken"]),
            underlying_token=Erc20Metadata.from_dict(d["underlyingToken"]),
        )


Metadata = Dict[str, PoolMetadata]


@dataclass
class Underlying:
    address: str
    name: str
    symbol: str
    decimals: int
    balance_raw: int
    type: TokenType = TokenType.UNDERLYING

    @staticmethod
    def of(token: Erc20Metadata, balance_raw: int) -> "Underlying":
        return Underlying(
            address=token.address,
            name=token.name,
            symbol=token.symbol,
            decimals=token.decimals,
            balance_raw=balance_raw,
        )


@dataclass
class ProtocolPosition:
    address: str
    name: str
    symbol: str
    decimals: int
    balance_raw: int
    type: TokenType = TokenType.PROTOCOL
    tokens: List[Underlying] = field(default_factory=list)


@dataclass
class MovementsByBlock:
    protocol_token: Erc20Metadata
    tokens: List[Underlying]
    block_number: int
    transaction_hash: str


@dataclass
class ProtocolTokenTvl:
    address: str
    name: str
    symbol: str
    decimals: int
    total_supply_raw: int
    type: TokenType = TokenType.PROTOCOL


@dataclass
class UnwrappedTokenExchangeRate:
    address: str
    name: str
    symbol: str
    decimals: int
    underlying_rate_raw: int
    type: TokenType = TokenType.UNDERLYING


@dataclass
class UnwrapExchangeRate:
    address: str
    name: str
    symbol: str
    decimals: int
    base_rate: int
    type: TokenType = TokenType.PROTOCOL
    tokens: List[UnwrappedTokenExchangeRate] = field(default_factory=list)


@dataclass(frozen=True)
class ProtocolDetails:
    protocol_id: Protocol
    name: str
    description: str
    site_url: str
    icon_url: str
    position_type: PositionType
    chain_id: Chain
    product_id: str


@dataclass(frozen=True)
class AdapterSettings:
    enable_position_detection_by_protocol_token_transfer: bool = False
    include_in_unwrap: bool = False


def to_jsonable(value: Any) -> Any:
    """Dataclasses/enums -> plain JSON-friendly structures."""
    if hasattr(value, "__dataclass_fields__"):
        return {k: to_jsonable(v) for k, v in asdict(value).items()}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def flatten_rows(items: List[Any]) -> List[Dict[str, Any]]:
    """
    One flat dict per underlying token, for CSV export.

    Positions and movements fan out into their `tokens`; TVL rows pass through.
    """
    rows: List[Dict[str, Any]] = []
    for item in items:
        d = to_jsonable(item)
        if isinstance(item, MovementsByBlock):
            base = {
                "protocol_token": d["protocol_token"]["address"],
                "protocol_symbol": d["protocol_token"]["symbol"],
                "block_number": d["block_number"],
                "transaction_hash": d["transaction_hash"],
            }
        elif isinstance(item, (ProtocolPosition, UnwrapExchangeRate)):
            base = {f"protocol_{k}": v for k, v in d.items() if k != "tokens"}
        else:
            rows.append(d)
            continue
        tokens = d.get("tokens") or [{}]
        for token in tokens:
            row = dict(base)
            row.update({f"underlying_{k}": v for k, v in token.items()})
            rows.append(row)
    return rows
