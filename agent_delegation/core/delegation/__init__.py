"""Delegation scopes, signing and redemption"""

from .builder import DelegationBuilder
from .models import ROOT_AUTHORITY, Caveat, DelegationScope, SignedDelegation
from .redemption import Execution, RedemptionEncoder
from .signer import DelegationSigner

__all__ = [
    "ROOT_AUTHORITY",
    "Caveat",
    "DelegationBuilder",
    "DelegationScope",
    "DelegationSigner",
    "Execution",
    "RedemptionEncoder",
    "SignedDelegation",
]
