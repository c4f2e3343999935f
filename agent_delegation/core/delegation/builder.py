"""
Delegation scope construction.

Allowed calls are given as ``(target, canonical function signature)``
pairs. Selectors are always derived from the signature so the selector
and the function it names cannot drift apart.
"""

import re
from typing import Iterable, List, Optional, Sequence, Tuple

from ...config import DelegationEnvironment
from ..accounts.models import checksum
from ..errors import ConfigurationError, InputValidationError
from ..execution.userop_builder import selector_from_signature
from .models import Caveat, DelegationScope

CANONICAL_SIGNATURE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*\([A-Za-z0-9_\[\](),]*\)$")
UINT128_MAX = (1 << 128) - 1


def canonical_selector(signature: str) -> str:
    """Selector of a canonical signature such as ``approve(address,uint256)``."""
    if not isinstance(signature, str) or not CANONICAL_SIGNATURE.match(signature):
        raise InputValidationError(f"Not a canonical function signature: {signature!r}")
    return selector_from_signature(signature)


def encode_allowed_targets_terms(targets: Sequence[str]) -> str:
    return "0x" + "".join(t[2:].lower() for t in targets)


def encode_allowed_methods_terms(selectors: Sequence[str]) -> str:
    return "0x" + "".join(s[2:].lower() for s in selectors)


def encode_timestamp_terms(valid_after: int, valid_until: int) -> str:
    """``abi.encodePacked(uint128 after, uint128 before)``."""
    for value in (valid_after, valid_until):
        if not 0 <= value <= UINT128_MAX:
            raise InputValidationError(f"Timestamp out of uint128 range: {value}")
    return "0x" + valid_after.to_bytes(16, "big").hex() + valid_until.to_bytes(16, "big").hex()


def _dedupe(values: Iterable[str]) -> Tuple[str, ...]:
    seen: List[str] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return tuple(seen)


class DelegationBuilder:
    """Builds a ``DelegationScope`` and the caveats enforcing it."""

    def __init__(self, environment: DelegationEnvironment):
        self.environment = environment

    def build(
        self,
        delegator: str,
        delegate: str,
        allowed_calls: Sequence[Tuple[str, str]],
        caveats: Sequence[Caveat] = (),
    ) -> DelegationScope:
        """
        Build a scope allowing ``allowed_calls``.

        Args:
            delegator: Account granting the right
            delegate: Account receiving it
            allowed_calls: (target, function signature) pairs
            caveats: Extra caveats appended after the allow-list enforcers

        Returns:
            DelegationScope whose caveats start with AllowedTargets and
            AllowedMethods
        """
        if not delegator:
            raise InputValidationError("Delegator is required")
        if not delegate:
            raise InputValidationError("Delegate is required")
        if not allowed_calls:
            raise InputValidationError("At least one allowed call is required")

        targets = _dedupe(checksum(target, "target") for target, _ in allowed_calls)
        selectors = _dedupe(canonical_selector(signature) for _, signature in allowed_calls)

        enforcer_caveats = (
            Caveat(
                enforcer=self.environment.allowed_targets_enforcer,
                terms=encode_allowed_targets_terms(targets),
            ),
            Caveat(
                enforcer=self.environment.allowed_methods_enforcer,
                terms=encode_allowed_methods_terms(selectors),
            ),
        )
        return DelegationScope(
            delegator=delegator,
            delegate=delegate,
            targets=targets,
            selectors=selectors,
            caveats=enforcer_caveats + tuple(caveats),
        )

    def timestamp_caveat(self, valid_after: int, valid_until: int) -> Caveat:
        """Caveat limiting redemption to ``[valid_after, valid_until]`` on chain."""
        enforcer: Optional[str] = self.environment.timestamp_enforcer
        if not enforcer:
            raise ConfigurationError("timestamp_enforcer is not configured")
        return Caveat(enforcer=enforcer, terms=encode_timestamp_terms(valid_after, valid_until))
