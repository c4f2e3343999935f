"""
Delegated execution from a session package.
"""

from __future__ import annotations

import time
from typing import Callable, Optional, Sequence

import structlog

from ...config import ChainConfig
from ..accounts.capabilities import ChainReader, Relay
from ..accounts.models import SmartAccountRef
from ..accounts.signers import LocalKeySigner
from ..accounts.smart_account import HybridSmartAccount
from ..delegation.redemption import Execution, RedemptionEncoder
from ..errors import ConfigurationError, InputValidationError
from ..execution.nonce_manager import NonceTracker
from ..execution.runner import SponsoredOperationRunner
from ..execution.userop import UserOpReceipt
from ..registries import ZERO_BYTES32, encode_validation_response
from .package import SessionPackage, validate_session_package

logger = structlog.stdlib.get_logger("session.redeemer")

DEFAULT_VALIDATION_TAG = "agent-validation"


class DelegatedExecutor:
    """
    Acts for the agent through a session package.

    The session window and the delegation scope are both checked before
    anything is sent to the relay.
    """

    def __init__(
        self,
        package: SessionPackage,
        config: ChainConfig,
        chain: ChainReader,
        relay: Relay,
        *,
        clock: Callable[[], float] = time.time,
    ):
        problems = validate_session_package(package, config.environment)
        if problems:
            raise InputValidationError(
                f"Invalid session package: {'; '.join(problems)}",
                details={"problems": problems},
            )
        if package.chain_id != config.chain_id:
            raise ConfigurationError(
                f"Session package is for chain {package.chain_id}, configured for {config.chain_id}"
            )

        self.package = package
        self.config = config
        self.clock = clock
        self.encoder = RedemptionEncoder(config.environment.version)
        self.account = HybridSmartAccount(
            SmartAccountRef(
                address=package.session_account_address,
                owner=package.session_key.address,
                is_counterfactual=False,
            ),
            LocalKeySigner(package.session_key.private_key),
        )
        self.runner = SponsoredOperationRunner(
            relay,
            NonceTracker(chain, package.entry_point),
            config.receipt_timeout_seconds,
        )

    async def redeem(self, executions: Sequence[Execution]) -> UserOpReceipt:
        """
        Execute ``executions`` as the agent account.

        Raises:
            SessionExpiredError: the session key is outside its window
            ScopeViolationError: an execution is outside the delegation
        """
        call = self.encoder.redemption_call(
            self.package.signed_delegation,
            executions,
            self.account.address,
            session_key=self.package.session_key,
            now=self.clock(),
        )
        receipt = await self.runner.run(self.account, [call])
        logger.info(
            "delegation_redeemed",
            agent_account=self.package.agent_account_address,
            session_account=self.account.address,
            executions=len(executions),
            user_op_hash=receipt.user_op_hash,
        )
        return receipt

    async def submit_validation_response(
        self,
        request_hash: bytes,
        response: int,
        *,
        response_uri: str = "",
        response_hash: bytes = ZERO_BYTES32,
        tag: str = DEFAULT_VALIDATION_TAG,
        validation_registry: Optional[str] = None,
    ) -> UserOpReceipt:
        """Answer a validation request on behalf of the agent."""
        try:
            call_data = encode_validation_response(request_hash, response, response_uri, response_hash, tag)
        except ValueError as exc:
            raise InputValidationError(str(exc)) from exc

        execution = Execution(
            target=validation_registry or self.config.validation_registry,
            call_data=call_data,
        )
        return await self.redeem([execution])
