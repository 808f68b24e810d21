class ChainError(Exception):
    pass


class RpcError(ChainError):
    """Transport failure or JSON-RPC error response from the Solana node."""

    def __init__(self, method: str, message: str, code: int | None = None) -> None:
        self.method = method
        self.code = code
        super().__init__(f"{method}: {message}" if code is None else f"{method} [{code}]: {message}")


class TransactionFailedError(ChainError):
    """Transaction was rejected, errored on-chain, or never confirmed."""

    def __init__(self, message: str, signature: str | None = None) -> None:
        self.signature = signature
        super().__init__(message)
