"""
Pytest configuration and fixtures for the LQG adapters.

`FakeChain` is an in-memory stand-in for the slice of the AsyncWeb3 API the
adapters use:

    web3.eth.contract(address=..., abi=...)
        .functions.<name>(*args).call(block_identifier=...)   (async)
        .events.<Name>().get_logs(argument_filters=..., from_block=..., to_block=...)   (async)

Calls without a registered handler revert with ContractLogicError, the way
cETH.underlying() does on chain.
"""

from collections import Counter
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from lqg_adapters.config.settings import load_contracts


def _key(address: str) -> str:
    return address.lower()


def addr(n: int) -> str:
    """Deterministic digits-only address (its checksum form is itself)."""
    return "0x" + str(n).rjust(40, "0")


def tx(n: int) -> bytes:
    return n.to_bytes(32, "big")


class FakeChain:
    def __init__(self):
        self.handlers: Dict[Tuple[str, str], Any] = {}
        self.logs: Dict[Tuple[str, str], List[dict]] = {}
        self.calls: Counter = Counter()
        self.eth = FakeEth(self)

    # -------------- setup --------------

    def on_call(self, address: str, function: str, result: Any) -> None:
        """`result` is a value, or a callable(*args, block=...) computing one."""
        self.handlers[(_key(address), function)] = result

    def token(self, address: str, name: str, symbol: str, decimals: int) -> None:
        self.on_call(address, "name", name)
        self.on_call(address, "symbol", symbol)
        self.on_call(address, "decimals", decimals)

    def add_log(self, address: str, event: str, args: dict, block_number: int, transaction_hash: bytes) -> None:
        self.logs.setdefault((_key(address), event), []).append({
            "address": address,
            "event": event,
            "args": args,
            "blockNumber": block_number,
            "transactionHash": transaction_hash,
        })

    # -------------- execution --------------

    def call(self, address: str, function: str, output_type: Optional[str], args: tuple, block) -> Any:
        self.calls[(_key(address), function)] += 1
        handler = self.handlers.get((_key(address), function))
        if handler is None:
            raise ContractLogicError(f"execution reverted: {function}() on {address}")
        result = handler(*args, block=block) if callable(handler) else handler
        if output_type == "string" and isinstance(result, bytes):
            raise BadFunctionCallOutput(f"Could not decode {function}() output of {address} as string")
        return result

    def get_logs(self, address: str, event: str, argument_filters: Optional[dict], from_block, to_block) -> List[dict]:
        self.calls[(_key(address), f"event:{event}")] += 1
        upper = float("inf") if to_block in (None, "latest") else to_block
        lower = 0 if from_block is None else from_block
        matched = []
        for log in self.logs.get((_key(address), event), []):
            if not lower <= log["blockNumber"] <= upper:
                continue
            if all(_key(str(log["args"].get(k))) == _key(str(v)) for k, v in (argument_filters or {}).items()):
                matched.append(log)
        return matched


class FakeEth:
    def __init__(self, chain: FakeChain):
        self._chain = chain

    def contract(self, address: str, abi: list) -> "FakeContract":
        return FakeContract(self._chain, address, abi)


class _Namespace:
    def __init__(self, members: Dict[str, Callable]):
        self._members = members

    def __getattr__(self, name: str):
        try:
            return self._members[name]
        except KeyError:
            raise AttributeError(f"'{name}' is not in the contract ABI") from None


class FakeCall:
    def __init__(self, chain: FakeChain, address: str, function: str, output_type: Optional[str], args: tuple):
        self._chain = chain
        self._address = address
        self._function = function
        self._output_type = output_type
        self._args = args

    async def call(self, block_identifier=None):
        return self._chain.call(self._address, self._function, self._output_type, self._args, block_identifier)


class FakeEvent:
    def __init__(self, chain: FakeChain, address: str, name: str):
        self._chain = chain
        self._address = address
        self._name = name

    async def get_logs(self, argument_filters=None, from_block=None, to_block=None):
        return self._chain.get_logs(self._address, self._name, argument_filters, from_block, to_block)


class FakeContract:
    def __init__(self, chain: FakeChain, address: str, abi: list):
        self.address = address
        functions = {}
        events = {}
        for entry in abi:
            name = entry["name"]
            if entry["type"] == "function":
                outputs = entry.get("outputs") or []
                output_type = outputs[0]["type"] if len(outputs) == 1 else None
                functions[name] = (
                    lambda *args, _n=name, _t=output_type: FakeCall(chain, address, _n, _t, args)
                )
            elif entry["type"] == "event":
                events[name] = lambda _n=name: FakeEvent(chain, address, _n)
        self.functions = _Namespace(functions)
        self.events = _Namespace(events)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def contracts() -> Dict[str, Dict[str, Dict[str, str]]]:
    """Configured contract addresses: {protocol: {chain: {role: address}}}."""
    return load_contracts()
