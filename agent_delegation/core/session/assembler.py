"""
Session package assembly.

Turns an agent identity into a ready-to-use session package:

1. derive and (if needed) deploy the agent account
2. create a session key and its counterfactual session account
3. deploy the session account
4. build and sign a scoped delegation agent -> session
5. self-test the delegation by redeeming a read-only call
6. optionally approve the session account as operator of the agent NFT

Each step runs only after the previous one succeeded. Failures abort
with an ``AssemblyError`` naming the step and the last completed state.
Nothing is persisted here; callers decide where the package goes.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import structlog

from ...config import ChainConfig
from ..accounts.address import AddressDeriver, namespace_salt
from ..accounts.capabilities import ChainReader, Relay, Signer
from ..accounts.deployment import DeploymentGate
from ..accounts.models import SessionKey, checksum
from ..accounts.session_keys import SessionKeyFactory
from ..accounts.signers import LocalKeySigner
from ..accounts.smart_account import HybridSmartAccount
from ..delegation.builder import DelegationBuilder, canonical_selector
from ..delegation.models import SignedDelegation
from ..delegation.redemption import Execution, RedemptionEncoder
from ..delegation.signer import DelegationSigner
from ..errors import (
    AssemblyError,
    ConfigurationError,
    DelegationError,
    InputValidationError,
    NonceConflictError,
    SelfTestFailedError,
)
from ..execution.nonce_manager import NonceTracker
from ..execution.runner import SponsoredOperationRunner
from ..execution.userop import Call
from ..registries import (
    ASSOCIATION_SIGNATURES,
    GET_IDENTITY_REGISTRY_SIGNATURE,
    IS_VALID_SIGNATURE_SIGNATURE,
    encode_approve,
    encode_function_call,
    read_identity_registry,
    read_owner_of,
)
from .package import SessionPackage
from .state_machine import AssemblyState, AssemblyStateMachine

logger = structlog.stdlib.get_logger("session.assembler")


@dataclass
class AssemblyRequest:
    """
    Inputs for one assembly.

    ``agent_account_address`` is optional; when given it must equal the
    address derived from the owner and ``agent_name``.
    """
    agent_id: int
    agent_name: str
    owner_signer: Signer
    agent_account_address: Optional[str] = None
    business_function_signature: Optional[str] = None
    approve_operator: bool = True
    bind_window_on_chain: bool = False


class SessionPackageAssembler:
    def __init__(
        self,
        config: ChainConfig,
        chain: ChainReader,
        relay: Relay,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.chain = chain
        self.relay = relay
        self.clock = clock

        environment = config.environment
        self.deriver = AddressDeriver(environment)
        self.session_keys = SessionKeyFactory(self.deriver, config.session_deploy_salt, clock=clock)
        self.builder = DelegationBuilder(environment)
        self.signer = DelegationSigner(config.chain_id, environment.delegation_manager)
        self.encoder = RedemptionEncoder(environment.version)

    def _preflight(self, request: AssemblyRequest) -> str:
        if request.agent_id < 0:
            raise InputValidationError(f"agent_id must be non-negative, got {request.agent_id}")
        if request.owner_signer is None:
            raise InputValidationError("owner_signer is required")
        if request.approve_operator and not self.config.identity_registry:
            raise ConfigurationError("identity_registry is required to approve the session operator")
        if request.bind_window_on_chain and not self.config.environment.timestamp_enforcer:
            raise ConfigurationError("timestamp_enforcer is required to bind the session window on chain")

        signature = request.business_function_signature or self.config.business_function_signature
        canonical_selector(signature)
        return signature

    def _allowed_calls(self, agent_account: str, business_signature: str) -> List[Tuple[str, str]]:
        registry = self.config.validation_registry
        calls = [
            (registry, business_signature),
            (registry, self.config.sanity_function_signature),
            (agent_account, IS_VALID_SIGNATURE_SIGNATURE),
        ]
        if self.config.associations_proxy:
            calls.extend((self.config.associations_proxy, sig) for sig in ASSOCIATION_SIGNATURES)
        return calls

    async def assemble(self, request: AssemblyRequest) -> SessionPackage:
        """
        Run every step and return the package.

        Raises:
            AssemblyError: wrapping the failing step's error; ``transient``
                mirrors the cause, ``last_state`` is the last completed state
        """
        machine = AssemblyStateMachine()
        log = logger.bind(agent_id=request.agent_id, chain_id=self.config.chain_id)
        nonces = NonceTracker(self.chain, self.config.environment.entry_point)
        runner = SponsoredOperationRunner(self.relay, nonces, self.config.receipt_timeout_seconds)
        gate = DeploymentGate(self.chain, runner)

        step = "preflight"
        try:
            business_signature = self._preflight(request)
            chain_id = await self.chain.chain_id()
            if chain_id != self.config.chain_id:
                raise ConfigurationError(
                    f"RPC endpoint serves chain {chain_id}, configured for {self.config.chain_id}"
                )

            step = "deploy_agent"
            agent_ref = self.deriver.account_ref(request.owner_signer.address, namespace_salt(request.agent_name))
            if request.agent_account_address and checksum(request.agent_account_address) != agent_ref.address:
                raise InputValidationError(
                    f"Agent account {request.agent_account_address} does not match derived "
                    f"address {agent_ref.address} for namespace {request.agent_name!r}"
                )
            agent = HybridSmartAccount(agent_ref, request.owner_signer, self.deriver)
            log = log.bind(agent_account=agent.address)
            deployed = await gate.ensure_deployed(agent)
            machine.transition_to(AssemblyState.AGENT_DEPLOYED, "deployed" if deployed else "already deployed")
            log.info("agent_account_ready", deployed=deployed)

            step = "create_session"
            session_key, session_ref = self.session_keys.create_session(
                self.config.session_window_seconds,
                self.config.session_skew_seconds,
            )
            session_account = HybridSmartAccount(
                session_ref,
                LocalKeySigner(session_key.private_key),
                self.deriver,
            )
            log = log.bind(session_account=session_account.address)
            machine.transition_to(AssemblyState.SESSION_CREATED)

            step = "deploy_session"
            deployed = await gate.ensure_deployed(session_account)
            machine.transition_to(AssemblyState.SESSION_DEPLOYED, "deployed" if deployed else "already deployed")
            log.info("session_account_ready", deployed=deployed)

            step = "delegate"
            extra_caveats = []
            if request.bind_window_on_chain:
                extra_caveats.append(
                    self.builder.timestamp_caveat(session_key.valid_after, session_key.valid_until)
                )
            scope = self.builder.build(
                delegator=agent.address,
                delegate=session_account.address,
                allowed_calls=self._allowed_calls(agent.address, business_signature),
                caveats=extra_caveats,
            )
            signed = await self.signer.sign(scope, agent)
            machine.transition_to(AssemblyState.DELEGATED)

            step = "self_test"
            redeemed = await self._self_test(runner, session_account, session_key, signed)
            machine.transition_to(AssemblyState.SELF_TESTED, "redeemed" if redeemed else "skipped")

            if request.approve_operator:
                step = "approve_operator"
                await self._approve_operator(runner, agent, session_account, request.agent_id)
                machine.transition_to(AssemblyState.OPERATOR_APPROVED)

            step = "assemble"
            package = SessionPackage(
                agent_id=request.agent_id,
                chain_id=self.config.chain_id,
                agent_account_address=agent.address,
                session_account_address=session_account.address,
                allowed_selector=canonical_selector(business_signature),
                session_key=session_key,
                entry_point=self.config.environment.entry_point,
                relay_url=self.config.bundler_url,
                signed_delegation=signed,
            )
            machine.transition_to(AssemblyState.ASSEMBLED)
        except Exception as exc:
            log.error(
                "session_assembly_failed",
                step=step,
                state=machine.current_state.value,
                error=str(exc),
                transient=isinstance(exc, DelegationError) and exc.context.transient,
            )
            raise AssemblyError(
                f"Session assembly failed at {step}: {exc}",
                last_state=machine.current_state,
                step=step,
                cause=exc,
            ) from exc

        log.info("session_package_assembled", valid_until=session_key.valid_until)
        return package

    async def _self_test(
        self,
        runner: SponsoredOperationRunner,
        session_account: HybridSmartAccount,
        session_key: SessionKey,
        signed: SignedDelegation,
    ) -> bool:
        """
        Redeem a read-only call through the new delegation.

        Returns:
            True if the redemption was included, False if it was skipped
            because of a nonce conflict or pending deployment

        Raises:
            SelfTestFailedError: for any other failure
        """
        registry = self.config.validation_registry
        sanity = Execution(
            target=registry,
            call_data=encode_function_call(self.config.sanity_function_signature),
        )
        try:
            call = self.encoder.redemption_call(
                signed,
                [sanity],
                session_account.address,
                session_key=session_key,
                now=self.clock(),
            )
            await runner.run(session_account, [call])
        except NonceConflictError as exc:
            logger.warning(
                "delegation_self_test_skipped",
                session_account=session_account.address,
                reason=exc.message,
            )
            return False
        except DelegationError as exc:
            raise SelfTestFailedError(
                f"Delegation self-test failed: {exc.message}",
                details={"cause": type(exc).__name__, "cause_transient": exc.context.transient},
            ) from exc

        if self.config.sanity_function_signature == GET_IDENTITY_REGISTRY_SIGNATURE:
            identity_registry = await read_identity_registry(self.chain, registry)
            if self.config.identity_registry and identity_registry != self.config.identity_registry:
                logger.warning(
                    "identity_registry_mismatch",
                    reported=identity_registry,
                    configured=self.config.identity_registry,
                )
            else:
                logger.info("delegation_self_test_passed", identity_registry=identity_registry)
        return True

    async def _approve_operator(
        self,
        runner: SponsoredOperationRunner,
        agent: HybridSmartAccount,
        session_account: HybridSmartAccount,
        agent_id: int,
    ) -> None:
        identity_registry = self.config.identity_registry
        approve = Call(to=identity_registry, data=encode_approve(session_account.address, agent_id))
        await runner.run(agent, [approve])

        owner = await read_owner_of(self.chain, identity_registry, agent_id)
        logger.info(
            "session_operator_approved",
            agent_id=agent_id,
            operator=session_account.address,
            nft_owner=owner,
        )
