"""Error taxonomy for the wallet bridge.

Polling errors never escape a reconciliation tick. Errors raised during an
explicit user action are either raised to the caller or recorded on the
outcome that is pushed back to the request queue.
"""

from typing import Any, Optional

# EIP-1193 / EIP-3326 provider error codes
USER_REJECTED = 4001
UNAUTHORIZED = 4100
UNSUPPORTED_METHOD = 4200
DISCONNECTED = 4900
UNRECOGNIZED_CHAIN = 4902
INTERNAL_ERROR = -32603


class BridgeError(Exception):
    """Base class for all bridge errors."""
    pass


class ProviderRejectedError(BridgeError):
    """The wallet provider rejected a request (user declined or provider failure).

    Attributes:
        code: EIP-1193 error code, if the provider supplied one
        data: Provider specific error payload
    """

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data

    @property
    def effective_code(self) -> Optional[int]:
        """Error code, looking through wrapped provider errors."""
        if self.code is not None:
            return self.code
        if isinstance(self.data, dict):
            original = self.data.get("originalError")
            if isinstance(original, dict):
                return original.get("code")
        return None

    def to_dict(self) -> dict:
        """Serialize to a JSON-RPC error object."""
        error: dict = {"code": self.code if self.code is not None else INTERNAL_ERROR,
                       "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


# Providers raise this name; it is the same type the bridge reports.
ProviderRpcError = ProviderRejectedError


class UnknownChainError(BridgeError):
    """No chain metadata is known for the requested chain id."""

    def __init__(self, chain_id: Any):
        super().__init__(f"Unknown chainId {chain_id}")
        self.chain_id = chain_id


class SenderMismatchError(BridgeError):
    """The request's declared sender is not the connected account."""

    def __init__(self, declared: str, account: str):
        super().__init__(
            f"Sender mismatch: request is from {declared} but connected account is {account}"
        )
        self.declared = declared
        self.account = account


class ChainMismatchError(BridgeError):
    """The wallet is still on a different chain than the request targets."""

    def __init__(self, want: int, have: Optional[int]):
        super().__init__(f"Wallet is on chain {have}, request targets chain {want}")
        self.want = want
        self.have = have


class NetworkTransientError(BridgeError):
    """Request queue or RPC endpoint unreachable; retried on the next tick."""
    pass


class InvalidResponseError(NetworkTransientError):
    """Request queue returned a body that could not be decoded."""
    pass


class SessionError(BridgeError):
    """A session action was attempted in a state that does not allow it."""
    pass


def describe_error(exc: BaseException) -> str:
    """Return the message reported to the request queue for a failure."""
    if isinstance(exc, ProviderRejectedError):
        return exc.message
    message = str(exc)
    return message or exc.__class__.__name__
