"""Session package assembly, persistence and redemption"""

from .assembler import AssemblyRequest, SessionPackageAssembler
from .package import SessionPackage, validate_session_package
from .redeemer import DelegatedExecutor
from .state_machine import AssemblyState
from .store import load_session_package, save_session_package

__all__ = [
    "AssemblyRequest",
    "AssemblyState",
    "DelegatedExecutor",
    "SessionPackage",
    "SessionPackageAssembler",
    "load_session_package",
    "save_session_package",
    "validate_session_package",
]
