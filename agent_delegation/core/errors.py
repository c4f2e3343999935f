"""
Error Classification

Every failure raised by the delegation client is a ``DelegationError``.
Errors are split into transient ones (safe to retry after re-reading
chain state) and fatal ones (retrying without changing inputs will fail
again). Provider-specific codes are mapped onto these classes at the
provider boundary; nothing above the providers inspects raw messages.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Categories of errors for retry decisions."""

    VALIDATION = "validation"          # Bad caller input
    CONFIGURATION = "configuration"    # Missing/invalid chain config
    DEPLOYMENT_RACE = "deployment_race"  # Account deployed concurrently
    NONCE = "nonce"                    # Nonce conflict / pending deployment
    TIMEOUT = "timeout"                # Receipt not observed in time
    NETWORK = "network"                # Transport failure
    RELAY_REJECTED = "relay_rejected"  # Bundler refused the operation
    REVERTED = "reverted"              # Operation included but failed
    CONTRACT_CALL = "contract_call"    # Read-only call reverted
    SIGNER = "signer"                  # Signer missing or misbehaving
    SELF_TEST = "self_test"            # Delegation redemption test failed
    EXPIRED = "expired"                # Session key outside its window
    SCOPE = "scope"                    # Call outside delegation scope
    ENCODING = "encoding"              # Unsupported framework version
    KEY_GENERATION = "key_generation"  # Entropy source unavailable
    ASSEMBLY = "assembly"              # Wrapper for assembly failures
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Additional context about an error."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    transient: bool = False
    step: Optional[str] = None
    suggested_action: Optional[str] = None
    user_op_hash: Optional[str] = None
    chain_id: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)


class DelegationError(Exception):
    """Base class for every error raised by this package."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    transient: bool = False
    suggested_action: Optional[str] = None

    def __init__(
        self,
        message: str,
        *,
        step: Optional[str] = None,
        user_op_hash: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext(
            category=self.category,
            transient=self.transient,
            step=step,
            suggested_action=self.suggested_action,
            user_op_hash=user_op_hash,
            details=dict(details or {}),
        )

    @property
    def step(self) -> Optional[str]:
        return self.context.step


class TransientError(DelegationError):
    """
    Base class for errors that can be retried.

    Retrying is safe once on-chain state has been re-read:
    - deployment races
    - nonce conflicts
    - receipt timeouts
    - transport failures
    """

    transient = True


class FatalError(DelegationError):
    """
    Base class for errors that cannot be fixed by retrying.

    These need different inputs or an operator:
    - invalid input or configuration
    - relay rejections and reverts
    - expired sessions and out-of-scope calls
    """

    transient = False


# Transient errors
class DeploymentRaceError(TransientError):
    """The account was deployed by someone else between check and submit."""

    category = ErrorCategory.DEPLOYMENT_RACE
    suggested_action = "Re-check account code and continue"


class NonceConflictError(TransientError):
    """Nonce already used, or a deployment for this sender is still pending."""

    category = ErrorCategory.NONCE
    suggested_action = "Re-read the EntryPoint nonce and resubmit"


class RelayTimeoutError(TransientError):
    """No receipt was observed before the deadline. The operation may still land."""

    category = ErrorCategory.TIMEOUT
    suggested_action = "Look up the operation hash before resubmitting"

    def __init__(
        self,
        message: str = "Timed out waiting for user operation receipt",
        user_op_hash: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", None) or {}
        if timeout_seconds is not None:
            details["timeout_seconds"] = timeout_seconds
        super().__init__(message, user_op_hash=user_op_hash, details=details, **kwargs)
        self.timeout_seconds = timeout_seconds


class NetworkError(TransientError):
    """Transport failure talking to an RPC endpoint."""

    category = ErrorCategory.NETWORK
    suggested_action = "Retry with exponential backoff"

    def __init__(self, message: str = "Network error", provider: Optional[str] = None, **kwargs: Any):
        details = kwargs.pop("details", None) or {}
        if provider:
            details["provider"] = provider
        super().__init__(message, details=details, **kwargs)


# Fatal errors
class InputValidationError(FatalError):
    """Caller supplied malformed or inconsistent input."""

    category = ErrorCategory.VALIDATION


class ConfigurationError(FatalError):
    """Chain or environment configuration is missing or invalid."""

    category = ErrorCategory.CONFIGURATION
    suggested_action = "Fix configuration before any network call"


class RelayRejectedError(FatalError):
    """The bundler refused the operation."""

    category = ErrorCategory.RELAY_REJECTED

    def __init__(
        self,
        message: str = "Relay rejected user operation",
        code: Optional[int] = None,
        aa_code: Optional[str] = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", None) or {}
        details.update({"code": code, "aa_code": aa_code})
        super().__init__(message, details=details, **kwargs)
        self.code = code
        self.aa_code = aa_code


class OperationRevertedError(FatalError):
    """The operation was included but reported failure."""

    category = ErrorCategory.REVERTED
    suggested_action = "Review call parameters"

    def __init__(
        self,
        message: str = "User operation reverted",
        user_op_hash: Optional[str] = None,
        reason: Optional[str] = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", None) or {}
        if reason:
            details["revert_reason"] = reason
        super().__init__(message, user_op_hash=user_op_hash, details=details, **kwargs)
        self.reason = reason


class ContractCallError(FatalError):
    """A read-only eth_call returned an error."""

    category = ErrorCategory.CONTRACT_CALL


class SignerUnavailableError(FatalError):
    """No signer is attached, or the signer produced an unusable signature."""

    category = ErrorCategory.SIGNER


class SelfTestFailedError(FatalError):
    """The freshly signed delegation could not be redeemed."""

    category = ErrorCategory.SELF_TEST
    suggested_action = "Check enforcer addresses, scope and framework version"


class SessionExpiredError(FatalError):
    """The session key is outside its validity window."""

    category = ErrorCategory.EXPIRED
    suggested_action = "Assemble a new session package"


class ScopeViolationError(FatalError):
    """A requested call falls outside the delegation's targets or selectors."""

    category = ErrorCategory.SCOPE


class EncodingError(FatalError):
    """Redemption encoding is not available for the configured framework version."""

    category = ErrorCategory.ENCODING


class KeyGenerationError(FatalError):
    """The system entropy source could not produce key material."""

    category = ErrorCategory.KEY_GENERATION


class AssemblyError(DelegationError):
    """
    Session package assembly aborted.

    Carries the last state the assembly reached and the step that failed.
    ``transient`` mirrors the underlying cause so callers can decide
    whether re-running the whole flow is worthwhile.
    """

    category = ErrorCategory.ASSEMBLY

    def __init__(self, message: str, *, last_state: Any, step: str, cause: BaseException):
        transient = isinstance(cause, DelegationError) and cause.context.transient
        super().__init__(
            message,
            context=ErrorContext(
                category=ErrorCategory.ASSEMBLY,
                transient=transient,
                step=step,
                details={
                    "last_state": getattr(last_state, "value", last_state),
                    "cause": type(cause).__name__,
                },
            ),
        )
        self.transient = transient
        self.last_state = last_state
        self.cause = cause


AA_CODE_PATTERN = re.compile(r"\bAA(\d{2})\b")


def classify_relay_error(code: Optional[int], message: str, data: Any = None) -> DelegationError:
    """
    Map a bundler JSON-RPC error onto the error taxonomy.

    EntryPoint failures carry an ``AAxx`` code in the message:
    AA10 means the sender was already constructed (deployment race) and
    AA25 means the nonce is stale or a deployment is still pending.
    Everything else is a relay rejection.
    """
    match = AA_CODE_PATTERN.search(message or "")
    aa_code = f"AA{match.group(1)}" if match else None
    details = {"code": code, "aa_code": aa_code}
    if data is not None:
        details["data"] = data

    if aa_code == "AA10":
        return DeploymentRaceError(message, details=details)
    if aa_code == "AA25":
        return NonceConflictError(message, details=details)
    return RelayRejectedError(message, code=code, aa_code=aa_code)
