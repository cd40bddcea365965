from enum import Enum, IntEnum

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

WAD = 10**18


class Chain(IntEnum):
    ETHEREUM = 1
    BASE = 8453

    @property
    def slug(self) -> str:
        return self.name.lower()

    @classmethod
    def from_name(cls, value) -> "Chain":
        """Accepts a chain id (int or numeric str) or a chain name such as 'ethereum'."""
        if isinstance(value, Chain):
            return value
        key = str(value).strip()
        if key.isdigit():
            return cls(int(key))
        try:
            return cls[key.upper()]
        except KeyError:
            raise ValueError(f"Unknown chain: {value}") from None


class Protocol(str, Enum):
    LQG_COMPOUND_V2 = "lqg-compound-v2"
    LQG_AAVE_V2 = "lqg-aave-v2"
    LQG_BLUE = "lqg-blue"


# Native asset reported for the zero address (e.g. cETH has no underlying())
NATIVE_TOKENS = {
    Chain.ETHEREUM: {"name": "Ethereum", "symbol": "ETH", "decimals": 18},
    Chain.BASE: {"name": "Ethereum", "symbol": "ETH", "decimals": 18},
}
