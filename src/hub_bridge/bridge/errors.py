"""Exception hierarchy for the bridge and wallet layers.

Every expected failure of a bridge transfer is one of these. The saga
orchestrator catches them and records them on the saga rather than letting
them escape; only precondition violations (a missing user id) are raised to
the caller as plain ``ValueError``.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for all bridge failures.

    Attributes
    ----------
    stage:
        Saga stage that could not be reached (``"burned"``, ``"minted"``...),
        or ``None`` for failures before the saga started.
    retryable:
        Whether the same operation may succeed if attempted again later.
    in_flight:
        ``True`` when funds are provably committed but the transfer has not
        finished ("still in flight"), as opposed to "did not happen".
    """

    stage: str | None = None
    retryable: bool = False
    in_flight: bool = False

    def __init__(self, message: str, *, retryable: bool | None = None) -> None:
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable

    @property
    def kind(self) -> str:
        return type(self).__name__


class ChainResolutionError(BridgeError):
    def __init__(self, chain: str) -> None:
        super().__init__(f"Unsupported or unknown chain: '{chain}'")
        self.chain = chain


class InvalidAmountError(BridgeError, ValueError):
    pass


class WalletProvisioningError(BridgeError):
    retryable = True


class AddressMismatchError(WalletProvisioningError):
    """The custody service returned different addresses for one user."""

    retryable = False

    def __init__(self, user_id: str, addresses: dict[str, str]) -> None:
        detail = ", ".join(f"{k}={v}" for k, v in sorted(addresses.items()))
        super().__init__(
            f"Custody returned inconsistent addresses for user '{user_id}': {detail}"
        )
        self.user_id = user_id
        self.addresses = addresses


class BalanceReadError(BridgeError):
    """An RPC read needed before burning failed."""

    stage = "burned"
    retryable = True


class InsufficientFundsError(BridgeError):
    stage = "burned"

    def __init__(self, chain: str, available: str, requested: str) -> None:
        super().__init__(
            f"Insufficient funds on {chain}. Have: {available} USDC, Need: {requested}"
        )
        self.chain = chain
        self.available = available
        self.requested = requested


class ApprovalFailure(BridgeError):
    stage = "burned"


class BurnFailure(BridgeError):
    stage = "burned"


class AttestationTimeout(BridgeError):
    stage = "attested"
    in_flight = True
    retryable = True

    def __init__(self, burn_tx_hash: str, attempts: int) -> None:
        super().__init__(
            f"Attestation for {burn_tx_hash} not complete after {attempts} attempts"
        )
        self.burn_tx_hash = burn_tx_hash
        self.attempts = attempts


class GasInsufficientError(BridgeError):
    stage = "minted"
    in_flight = True

    def __init__(self, chain: str, address: str, symbol: str) -> None:
        super().__init__(
            f"Insufficient gas ({symbol}) on {chain}. "
            f"Fund the wallet at {address} to complete the mint."
        )
        self.chain = chain
        self.address = address


class MintFailure(BridgeError):
    stage = "minted"


class DeliveryFailure(BridgeError):
    stage = "delivered"
    in_flight = True
    retryable = True

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class StageInterrupted(BridgeError):
    """An unexpected error stopped the saga after the burn landed."""

    in_flight = True
    retryable = True

    def __init__(self, stage: str, cause: Exception) -> None:
        super().__init__(
            f"Unexpected error before reaching {stage}: {type(cause).__name__}: {cause}"
        )
        self.stage = stage
        self.cause = cause
