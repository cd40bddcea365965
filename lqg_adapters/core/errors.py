class ProtocolTokenNotFoundError(LookupError):
    """Raised when a protocol token address is absent from an adapter's metadata."""

    def __init__(self, protocol_token_address: str):
        super().__init__("Protocol token pool not found")
        self.protocol_token_address = protocol_token_address


class UnsupportedChainError(ValueError):
    """No contracts are configured for this protocol on this chain."""
