"""
Session key generation.
"""

import logging
import secrets
import time
from typing import Callable, Tuple

from eth_account import Account

from ..errors import InputValidationError, KeyGenerationError
from .address import AddressDeriver, numeric_salt
from .models import SessionKey, SmartAccountRef

logger = logging.getLogger(__name__)

SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

DEFAULT_WINDOW_SECONDS = 1800
DEFAULT_SKEW_SECONDS = 60
DEFAULT_SESSION_DEPLOY_SALT = 10


def generate_private_key() -> str:
    """Return a fresh secp256k1 private key from the OS CSPRNG."""
    try:
        while True:
            candidate = secrets.token_bytes(32)
            if 0 < int.from_bytes(candidate, "big") < SECP256K1_ORDER:
                return "0x" + candidate.hex()
    except (OSError, NotImplementedError) as exc:
        raise KeyGenerationError(f"Entropy source unavailable: {exc}") from exc


class SessionKeyFactory:
    """
    Creates a session key plus the counterfactual session account it owns.

    The window is ``[valid_until - window - skew, now + window)``; the skew
    lets the key validate on chains whose clock runs behind ours.
    """

    def __init__(
        self,
        deriver: AddressDeriver,
        deploy_salt: int = DEFAULT_SESSION_DEPLOY_SALT,
        clock: Callable[[], float] = time.time,
    ):
        self.deriver = deriver
        self.deploy_salt = deploy_salt
        self.clock = clock

    def create_session(
        self,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        skew_seconds: int = DEFAULT_SKEW_SECONDS,
    ) -> Tuple[SessionKey, SmartAccountRef]:
        if window_seconds <= 0:
            raise InputValidationError(f"Session window must be positive, got {window_seconds}")
        if skew_seconds < 0:
            raise InputValidationError(f"Clock skew must be non-negative, got {skew_seconds}")

        private_key = generate_private_key()
        address = Account.from_key(private_key).address

        now = int(self.clock())
        valid_until = now + window_seconds
        valid_after = valid_until - window_seconds - skew_seconds

        session_key = SessionKey(
            private_key=private_key,
            address=address,
            valid_after=valid_after,
            valid_until=valid_until,
        )
        account = self.deriver.account_ref(address, numeric_salt(self.deploy_salt))
        logger.info(
            f"Created session key {address} for account {account.address} "
            f"(valid {valid_after}..{valid_until})"
        )
        return session_key, account
