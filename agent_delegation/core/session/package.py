"""
Session package model.

The package is a capability token: whoever holds it can act for the agent
within the delegation's scope until the session key expires. Treat the
serialized form as a secret.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from eth_utils import is_address

from ...config import DelegationEnvironment
from ..accounts.models import SessionKey, checksum
from ..delegation.models import SignedDelegation, allow_lists_from_caveats
from ..errors import InputValidationError


@dataclass(frozen=True)
class SessionPackage:
    agent_id: int
    chain_id: int
    agent_account_address: str
    session_account_address: str
    allowed_selector: str
    session_key: SessionKey
    entry_point: str
    relay_url: str
    signed_delegation: SignedDelegation

    def __repr__(self) -> str:
        return (
            f"SessionPackage(agent_id={self.agent_id}, chain_id={self.chain_id}, "
            f"agent_account={self.agent_account_address}, session_account={self.session_account_address})"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agentId": self.agent_id,
            "chainId": self.chain_id,
            "aa": self.agent_account_address,
            "sessionAA": self.session_account_address,
            "selector": self.allowed_selector,
            "sessionKey": self.session_key.to_dict(),
            "entryPoint": self.entry_point,
            "bundlerUrl": self.relay_url,
            "signedDelegation": self.signed_delegation.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionPackage":
        try:
            return cls(
                agent_id=int(data["agentId"]),
                chain_id=int(data["chainId"]),
                agent_account_address=checksum(data["aa"], "agent account"),
                session_account_address=checksum(data["sessionAA"], "session account"),
                allowed_selector=str(data["selector"]).lower(),
                session_key=SessionKey.from_dict(data["sessionKey"]),
                entry_point=checksum(data["entryPoint"], "entry point"),
                relay_url=data["bundlerUrl"],
                signed_delegation=SignedDelegation.from_dict(data["signedDelegation"]),
            )
        except KeyError as exc:
            raise InputValidationError(f"Session package is missing {exc.args[0]!r}") from exc
        except (TypeError, ValueError) as exc:
            raise InputValidationError(f"Malformed session package: {exc}") from exc

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, raw: str) -> "SessionPackage":
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise InputValidationError(f"Session package is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise InputValidationError("Session package must be a JSON object")
        return cls.from_dict(data)


def validate_session_package(
    package: SessionPackage,
    environment: Optional[DelegationEnvironment] = None,
) -> List[str]:
    """
    Check a package for internal consistency.

    Args:
        package: Package to check
        environment: When given, the allow-list caveats must use its enforcers

    Returns:
        List of problems; empty when the package is usable
    """
    errors: List[str] = []
    delegation = package.signed_delegation
    scope = delegation.scope

    if package.chain_id <= 0:
        errors.append("chainId must be positive")
    if package.agent_id < 0:
        errors.append("agentId must be non-negative")
    if not package.relay_url:
        errors.append("bundlerUrl is required")
    if not is_address(package.entry_point):
        errors.append("entryPoint is not an address")
    if not package.session_key.private_key:
        errors.append("sessionKey.privateKey is required")
    if not delegation.signature or delegation.signature == "0x":
        errors.append("signedDelegation.signature is required")
    if delegation.delegator != package.agent_account_address:
        errors.append("signedDelegation.delegator does not match aa")
    if delegation.delegate != package.session_account_address:
        errors.append("signedDelegation.delegate does not match sessionAA")
    if package.allowed_selector not in scope.selectors:
        errors.append("selector is not allowed by the delegation")

    try:
        signed_targets, signed_selectors = allow_lists_from_caveats(scope.caveats)
    except InputValidationError as exc:
        errors.append(exc.message)
    else:
        if signed_targets != scope.targets:
            errors.append("delegation targets do not match the signed AllowedTargets terms")
        if signed_selectors != scope.selectors:
            errors.append("delegation selectors do not match the signed AllowedMethods terms")

    if environment is not None and len(scope.caveats) >= 2:
        if scope.caveats[0].enforcer != environment.allowed_targets_enforcer:
            errors.append("first caveat is not the configured AllowedTargets enforcer")
        if scope.caveats[1].enforcer != environment.allowed_methods_enforcer:
            errors.append("second caveat is not the configured AllowedMethods enforcer")
    return errors
