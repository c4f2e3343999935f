"""
Tests for error classification.
"""

from agent_delegation.core.errors import (
    AssemblyError,
    ConfigurationError,
    DeploymentRaceError,
    ErrorCategory,
    NetworkError,
    NonceConflictError,
    RelayRejectedError,
    RelayTimeoutError,
    ScopeViolationError,
    classify_relay_error,
)


class TestRelayErrorClassification:
    """EntryPoint AA codes map onto typed errors."""

    def test_aa10_is_deployment_race(self):
        error = classify_relay_error(-32500, "AA10 sender already constructed")

        assert isinstance(error, DeploymentRaceError)
        assert error.context.transient is True
        assert error.context.details["aa_code"] == "AA10"

    def test_aa25_is_nonce_conflict(self):
        error = classify_relay_error(-32500, "AA25 invalid account nonce")

        assert isinstance(error, NonceConflictError)
        assert error.context.transient is True

    def test_other_aa_codes_are_rejections(self):
        error = classify_relay_error(-32500, "AA23 reverted (or OOG)")

        assert isinstance(error, RelayRejectedError)
        assert error.aa_code == "AA23"
        assert error.code == -32500
        assert error.context.transient is False

    def test_message_without_code_is_rejection(self):
        error = classify_relay_error(-32602, "invalid params")

        assert isinstance(error, RelayRejectedError)
        assert error.aa_code is None


class TestErrorContext:
    def test_transient_errors(self):
        assert NetworkError(provider="bundler").context.details["provider"] == "bundler"
        assert RelayTimeoutError(user_op_hash="0xabc", timeout_seconds=20).context.transient is True

    def test_fatal_errors(self):
        error = ScopeViolationError("outside scope")

        assert error.category == ErrorCategory.SCOPE
        assert error.context.transient is False

    def test_timeout_carries_hash(self):
        error = RelayTimeoutError(user_op_hash="0xabc", timeout_seconds=20)

        assert error.context.user_op_hash == "0xabc"
        assert error.context.details["timeout_seconds"] == 20


class TestAssemblyError:
    def test_mirrors_transient_cause(self):
        error = AssemblyError("failed", last_state="init", step="deploy_agent", cause=NetworkError())

        assert error.transient is True
        assert error.step == "deploy_agent"
        assert error.context.details["cause"] == "NetworkError"

    def test_mirrors_fatal_cause(self):
        error = AssemblyError("failed", last_state="init", step="preflight", cause=ConfigurationError("x"))

        assert error.transient is False

    def test_unclassified_cause_is_fatal(self):
        error = AssemblyError("failed", last_state="init", step="preflight", cause=RuntimeError("boom"))

        assert error.transient is False
