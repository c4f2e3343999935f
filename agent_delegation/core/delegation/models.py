"""
Delegation models.

A delegation lets ``delegate`` act for ``delegator`` within ``caveats``.
Targets and selectors are kept next to the caveats that enforce them so
calls can be checked client-side before anything is submitted. When a
delegation is read back, both lists are decoded from the signed caveat
terms so the client-side check matches the on-chain enforcers.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

from eth_utils import to_checksum_address

from ..errors import InputValidationError
from ..accounts.models import checksum

ROOT_AUTHORITY = "0x" + "f" * 64


def _normalize_selector(selector: str) -> str:
    value = selector.lower()
    if not value.startswith("0x") or len(value) != 10:
        raise InputValidationError(f"Selector must be 4 bytes (0x........), got {selector!r}")
    return value


def _terms_bytes(terms: str, width: int, name: str) -> bytes:
    body = terms[2:] if terms.startswith("0x") else terms
    try:
        raw = bytes.fromhex(body)
    except ValueError as exc:
        raise InputValidationError(f"{name} terms are not hex: {terms!r}") from exc
    if not raw or len(raw) % width:
        raise InputValidationError(f"{name} terms must be a non-empty run of {width}-byte entries")
    return raw


def decode_allowed_targets_terms(terms: str) -> Tuple[str, ...]:
    """Inverse of the packed AllowedTargets terms (20 bytes per address)."""
    raw = _terms_bytes(terms, 20, "AllowedTargets")
    return tuple(to_checksum_address("0x" + raw[i:i + 20].hex()) for i in range(0, len(raw), 20))


def decode_allowed_methods_terms(terms: str) -> Tuple[str, ...]:
    """Inverse of the packed AllowedMethods terms (4 bytes per selector)."""
    raw = _terms_bytes(terms, 4, "AllowedMethods")
    return tuple("0x" + raw[i:i + 4].hex() for i in range(0, len(raw), 4))


def allow_lists_from_caveats(caveats: Sequence["Caveat"]) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
    """
    Targets and selectors as signed into the leading AllowedTargets and
    AllowedMethods caveats.
    """
    if len(caveats) < 2:
        raise InputValidationError("Delegation needs AllowedTargets and AllowedMethods caveats")
    return decode_allowed_targets_terms(caveats[0].terms), decode_allowed_methods_terms(caveats[1].terms)


@dataclass(frozen=True)
class Caveat:
    """One enforcer check. ``args`` are supplied at redemption time and not signed."""
    enforcer: str
    terms: str = "0x"
    args: str = "0x"

    def to_dict(self) -> Dict[str, str]:
        return {"enforcer": self.enforcer, "terms": self.terms, "args": self.args}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Caveat":
        return cls(
            enforcer=checksum(data["enforcer"], "caveat enforcer"),
            terms=data.get("terms", "0x"),
            args=data.get("args", "0x"),
        )


@dataclass(frozen=True)
class DelegationScope:
    """
    What the delegate may do.

    A call is allowed iff its target is in ``targets`` AND its selector is
    in ``selectors``; the two lists are independent allow-lists. ``caveats``
    is the full on-chain caveat list, including the enforcers for the two
    allow-lists.
    """
    delegator: str
    delegate: str
    targets: Tuple[str, ...]
    selectors: Tuple[str, ...]
    caveats: Tuple[Caveat, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "delegator", checksum(self.delegator, "delegator"))
        object.__setattr__(self, "delegate", checksum(self.delegate, "delegate"))
        if not self.targets:
            raise InputValidationError("Delegation scope needs at least one target")
        if not self.selectors:
            raise InputValidationError("Delegation scope needs at least one selector")
        object.__setattr__(self, "targets", tuple(checksum(t, "target") for t in self.targets))
        object.__setattr__(self, "selectors", tuple(_normalize_selector(s) for s in self.selectors))
        object.__setattr__(self, "caveats", tuple(self.caveats))

    def allows(self, target: str, selector: str) -> bool:
        return (
            to_checksum_address(target) in self.targets
            and selector.lower() in self.selectors
        )


@dataclass(frozen=True)
class SignedDelegation:
    """A scope plus the delegator's EIP-712 signature over it."""
    scope: DelegationScope
    authority: str
    salt: str
    signature: str

    @property
    def delegate(self) -> str:
        return self.scope.delegate

    @property
    def delegator(self) -> str:
        return self.scope.delegator

    @property
    def caveats(self) -> Tuple[Caveat, ...]:
        return self.scope.caveats

    @property
    def salt_int(self) -> int:
        return int(self.salt, 16)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "delegate": self.scope.delegate,
            "delegator": self.scope.delegator,
            "authority": self.authority,
            "caveats": [c.to_dict() for c in self.scope.caveats],
            "salt": self.salt,
            "signature": self.signature,
            "targets": list(self.scope.targets),
            "selectors": list(self.scope.selectors),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SignedDelegation":
        """
        Rebuild a signed delegation. The allow-lists always come from the
        signed caveat terms; ``targets``/``selectors`` keys are optional and
        must agree with them when present.
        """
        try:
            caveats: List[Caveat] = [Caveat.from_dict(c) for c in data.get("caveats", [])]
            targets, selectors = allow_lists_from_caveats(caveats)
            if "targets" in data:
                listed = tuple(checksum(t, "target") for t in data["targets"])
                if listed != targets:
                    raise InputValidationError("signedDelegation.targets do not match the signed AllowedTargets terms")
            if "selectors" in data:
                listed = tuple(_normalize_selector(s) for s in data["selectors"])
                if listed != selectors:
                    raise InputValidationError("signedDelegation.selectors do not match the signed AllowedMethods terms")
            scope = DelegationScope(
                delegator=data["delegator"],
                delegate=data["delegate"],
                targets=targets,
                selectors=selectors,
                caveats=tuple(caveats),
            )
            salt = data["salt"]
            if isinstance(salt, int):
                salt = "0x" + salt.to_bytes(32, "big").hex()
            return cls(
                scope=scope,
                authority=data.get("authority", ROOT_AUTHORITY),
                salt=salt,
                signature=data["signature"],
            )
        except KeyError as exc:
            raise InputValidationError(f"Signed delegation is missing {exc.args[0]!r}") from exc
