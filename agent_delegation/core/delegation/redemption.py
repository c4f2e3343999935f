"""
Delegation redemption encoding.

Builds ``DelegationManager.redeemDelegations(bytes[],bytes32[],bytes[])``
calldata for a single delegation chain:

- permission context: ``abi.encode(Delegation[])``
- mode: ERC-7579 single or batch default
- execution calldata: packed single execution or ``abi.encode(Execution[])``
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from eth_abi import encode
from eth_utils import to_checksum_address

from ..accounts.models import SessionKey
from ..errors import EncodingError, InputValidationError, ScopeViolationError
from ..execution.userop import Call
from ..execution.userop_builder import (
    MODE_BATCH_DEFAULT,
    MODE_SINGLE_DEFAULT,
    encode_batch_executions,
    encode_single_execution,
    hex_to_bytes,
    selector_from_signature,
    selector_of,
)
from .models import SignedDelegation

REDEEM_DELEGATIONS_SIGNATURE = "redeemDelegations(bytes[],bytes32[],bytes[])"
DELEGATION_ARRAY_TYPE = "(address,address,bytes32,(address,bytes,bytes)[],uint256,bytes)[]"
SUPPORTED_FRAMEWORK_VERSIONS = frozenset({"1.3.0"})


@dataclass(frozen=True)
class Execution:
    """A call the delegate performs as the delegator."""
    target: str
    call_data: str = "0x"
    value: int = 0

    @property
    def selector(self) -> str:
        return selector_of(self.call_data)

    def as_call(self) -> Call:
        return Call(to=self.target, data=self.call_data, value=self.value)


def encode_permission_context(delegations: Sequence[SignedDelegation]) -> bytes:
    """``abi.encode(Delegation[])``, leaf delegation first."""
    return encode(
        [DELEGATION_ARRAY_TYPE],
        [[
            (
                d.delegate,
                d.delegator,
                hex_to_bytes(d.authority),
                [(c.enforcer, hex_to_bytes(c.terms), hex_to_bytes(c.args)) for c in d.caveats],
                d.salt_int,
                hex_to_bytes(d.signature),
            )
            for d in delegations
        ]],
    )


class RedemptionEncoder:
    """Encodes redemptions after checking session window and scope locally."""

    def __init__(self, framework_version: str):
        if framework_version not in SUPPORTED_FRAMEWORK_VERSIONS:
            raise EncodingError(
                f"Unsupported delegation framework version {framework_version!r} "
                f"(supported: {', '.join(sorted(SUPPORTED_FRAMEWORK_VERSIONS))})"
            )
        self.framework_version = framework_version

    def check_scope(self, signed: SignedDelegation, executions: Sequence[Execution]) -> None:
        for execution in executions:
            if not signed.scope.allows(execution.target, execution.selector):
                raise ScopeViolationError(
                    f"Call to {execution.target} with selector {execution.selector} "
                    f"is outside the delegation scope",
                    details={
                        "target": execution.target,
                        "selector": execution.selector,
                        "targets": list(signed.scope.targets),
                        "selectors": list(signed.scope.selectors),
                    },
                )

    def encode(
        self,
        signed: SignedDelegation,
        executions: Sequence[Execution],
        *,
        session_key: Optional[SessionKey] = None,
        now: Optional[float] = None,
    ) -> str:
        """
        Encode ``redeemDelegations`` calldata.

        Args:
            signed: Delegation being redeemed
            executions: Calls to perform as the delegator
            session_key: When given, its window is checked first
            now: Clock override for the window check

        Raises:
            SessionExpiredError: the session key is outside its window
            ScopeViolationError: an execution is not in the allow-lists
        """
        if not executions:
            raise InputValidationError("At least one execution is required")
        if session_key is not None:
            session_key.ensure_active(now)
        self.check_scope(signed, executions)

        if len(executions) == 1:
            execution = executions[0]
            mode = MODE_SINGLE_DEFAULT
            execution_data = encode_single_execution(execution.target, execution.value, execution.call_data)
        else:
            mode = MODE_BATCH_DEFAULT
            execution_data = encode_batch_executions([e.as_call() for e in executions])

        args = encode(
            ["bytes[]", "bytes32[]", "bytes[]"],
            [[encode_permission_context([signed])], [mode], [execution_data]],
        )
        return selector_from_signature(REDEEM_DELEGATIONS_SIGNATURE) + args.hex()

    def redemption_call(
        self,
        signed: SignedDelegation,
        executions: Sequence[Execution],
        session_account: str,
        *,
        session_key: Optional[SessionKey] = None,
        now: Optional[float] = None,
    ) -> Call:
        """Call the session account makes to itself to redeem the delegation."""
        if to_checksum_address(session_account) != signed.delegate:
            raise InputValidationError(
                f"Account {session_account} is not the delegate {signed.delegate}"
            )
        data = self.encode(signed, executions, session_key=session_key, now=now)
        return Call(to=to_checksum_address(session_account), data=data, value=0)
