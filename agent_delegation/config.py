from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from eth_utils import is_address, to_checksum_address
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.errors import ConfigurationError


BASE_DIR = Path(__file__).resolve().parents[1]

ENTRY_POINT_V07 = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
SEPOLIA_CHAIN_ID = 11155111


class ChainOverrides(BaseModel):
    """Per-chain values layered over the defaults in ``Settings``."""

    rpc_url: str = ""
    bundler_url: str = ""
    paymaster_url: str = ""
    identity_registry: str = ""
    validation_registry: str = ""
    associations_proxy: str = ""


@dataclass(frozen=True)
class DelegationEnvironment:
    """Deployed addresses of the delegation framework on one chain."""

    entry_point: str
    delegation_manager: str
    account_factory: str
    hybrid_delegator_impl: str
    account_proxy_creation_code: str
    allowed_targets_enforcer: str
    allowed_methods_enforcer: str
    timestamp_enforcer: Optional[str]
    version: str


@dataclass(frozen=True)
class ChainConfig:
    """Validated, immutable configuration for a single chain."""

    chain_id: int
    rpc_url: str
    bundler_url: str
    paymaster_url: str
    paymaster_rpc_method: str
    identity_registry: Optional[str]
    validation_registry: str
    associations_proxy: Optional[str]
    environment: DelegationEnvironment
    session_window_seconds: int
    session_skew_seconds: int
    session_deploy_salt: int
    receipt_timeout_seconds: float
    receipt_poll_interval_seconds: float
    request_timeout_seconds: float
    business_function_signature: str
    sanity_function_signature: str


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AGENTIC_TRUST_",
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    log_level: str = Field(default="INFO", description="Logging level")

    # RPC Endpoints
    rpc_url: str = Field(default="", description="Chain JSON-RPC endpoint")
    bundler_url: str = Field(default="", description="ERC-4337 bundler JSON-RPC endpoint")
    paymaster_url: str = Field(
        default="",
        description="Paymaster JSON-RPC endpoint (defaults to the bundler URL)",
    )
    paymaster_rpc_method: str = Field(
        default="pm_sponsorUserOperation",
        description="Paymaster sponsorship RPC method",
    )
    default_chain_id: int = Field(default=SEPOLIA_CHAIN_ID, description="Chain used when none is given")
    entry_point_address: str = Field(default=ENTRY_POINT_V07, description="EntryPoint v0.7 address")

    # Registries
    identity_registry: str = Field(default="", description="ERC-8004 identity registry")
    validation_registry: str = Field(default="", description="ERC-8004 validation registry")
    associations_proxy: str = Field(
        default="",
        description="ERC-8092 associations proxy; added to delegation targets when set",
    )

    # Delegation Framework
    delegation_manager: str = Field(default="", description="DelegationManager address")
    account_factory: str = Field(default="", description="SimpleFactory used for CREATE2 account deployment")
    hybrid_delegator_impl: str = Field(default="", description="HybridDeleGator implementation address")
    account_proxy_creation_code: str = Field(
        default="",
        description="ERC-1967 proxy creation bytecode used in the CREATE2 init code",
    )
    allowed_targets_enforcer: str = Field(default="", description="AllowedTargetsEnforcer address")
    allowed_methods_enforcer: str = Field(default="", description="AllowedMethodsEnforcer address")
    timestamp_enforcer: str = Field(default="", description="TimestampEnforcer address (optional)")
    delegation_framework_version: str = Field(default="1.3.0", description="Delegation framework version")

    # Session Defaults
    session_window_seconds: int = Field(default=1800, description="Session key lifetime")
    session_skew_seconds: int = Field(default=60, description="Clock skew allowance before validAfter")
    session_deploy_salt: int = Field(default=10, description="CREATE2 salt of the session account")

    # Relay Timing
    receipt_timeout_seconds: float = Field(default=20.0, description="Receipt wait deadline")
    receipt_poll_interval_seconds: float = Field(default=1.0, description="Receipt poll interval")
    request_timeout_seconds: float = Field(default=30.0, description="HTTP request timeout")

    # Scope
    business_function_signature: str = Field(
        default="validationResponse(bytes32,uint8,string,bytes32,string)",
        description="Function the session is allowed to call on the validation registry",
    )
    sanity_function_signature: str = Field(
        default="getIdentityRegistry()",
        description="Read-only function used to self-test the delegation",
    )

    chains: Dict[int, ChainOverrides] = Field(default_factory=dict, description="Per-chain overrides")

    def resolve_chain(self, chain_id: Optional[int] = None) -> ChainConfig:
        """Merge per-chain overrides over the defaults and validate the result.

        Args:
            chain_id: Target chain (default: ``default_chain_id``)

        Returns:
            ChainConfig ready to be passed to providers and components

        Raises:
            ConfigurationError: listing every missing or malformed value
        """
        chain_id = chain_id if chain_id is not None else self.default_chain_id
        overrides = self.chains.get(chain_id, ChainOverrides())

        def pick(name: str) -> str:
            value = getattr(overrides, name, "") or getattr(self, name)
            return value.strip() if isinstance(value, str) else value

        missing: List[str] = []
        invalid: List[str] = []

        def require(name: str, value: str) -> str:
            if not value:
                missing.append(name)
            return value

        def address(name: str, value: str, required: bool = True) -> Optional[str]:
            if not value:
                if required:
                    missing.append(name)
                return None
            if not is_address(value):
                invalid.append(name)
                return None
            return to_checksum_address(value)

        rpc_url = require("rpc_url", pick("rpc_url"))
        bundler_url = require("bundler_url", pick("bundler_url"))
        paymaster_url = pick("paymaster_url") or bundler_url

        creation_code = require("account_proxy_creation_code", self.account_proxy_creation_code.strip())
        if creation_code and not _is_hex(creation_code):
            invalid.append("account_proxy_creation_code")

        values: Dict[str, Any] = {
            "identity_registry": address("identity_registry", pick("identity_registry"), required=False),
            "validation_registry": address("validation_registry", pick("validation_registry")),
            "associations_proxy": address("associations_proxy", pick("associations_proxy"), required=False),
            "entry_point": address("entry_point_address", self.entry_point_address),
            "delegation_manager": address("delegation_manager", self.delegation_manager),
            "account_factory": address("account_factory", self.account_factory),
            "hybrid_delegator_impl": address("hybrid_delegator_impl", self.hybrid_delegator_impl),
            "allowed_targets_enforcer": address("allowed_targets_enforcer", self.allowed_targets_enforcer),
            "allowed_methods_enforcer": address("allowed_methods_enforcer", self.allowed_methods_enforcer),
            "timestamp_enforcer": address("timestamp_enforcer", self.timestamp_enforcer, required=False),
        }

        if self.session_window_seconds <= 0:
            invalid.append("session_window_seconds")
        if self.session_skew_seconds < 0:
            invalid.append("session_skew_seconds")

        if missing or invalid:
            parts = []
            if missing:
                parts.append(f"missing: {', '.join(missing)}")
            if invalid:
                parts.append(f"invalid: {', '.join(invalid)}")
            raise ConfigurationError(
                f"Chain {chain_id} configuration incomplete ({'; '.join(parts)})",
                details={"chain_id": chain_id, "missing": missing, "invalid": invalid},
            )

        environment = DelegationEnvironment(
            entry_point=values["entry_point"],
            delegation_manager=values["delegation_manager"],
            account_factory=values["account_factory"],
            hybrid_delegator_impl=values["hybrid_delegator_impl"],
            account_proxy_creation_code=creation_code,
            allowed_targets_enforcer=values["allowed_targets_enforcer"],
            allowed_methods_enforcer=values["allowed_methods_enforcer"],
            timestamp_enforcer=values["timestamp_enforcer"],
            version=self.delegation_framework_version,
        )
        return ChainConfig(
            chain_id=chain_id,
            rpc_url=rpc_url,
            bundler_url=bundler_url,
            paymaster_url=paymaster_url,
            paymaster_rpc_method=self.paymaster_rpc_method,
            identity_registry=values["identity_registry"],
            validation_registry=values["validation_registry"],
            associations_proxy=values["associations_proxy"],
            environment=environment,
            session_window_seconds=self.session_window_seconds,
            session_skew_seconds=self.session_skew_seconds,
            session_deploy_salt=self.session_deploy_salt,
            receipt_timeout_seconds=self.receipt_timeout_seconds,
            receipt_poll_interval_seconds=self.receipt_poll_interval_seconds,
            request_timeout_seconds=self.request_timeout_seconds,
            business_function_signature=self.business_function_signature,
            sanity_function_signature=self.sanity_function_signature,
        )


def _is_hex(value: str) -> bool:
    body = value[2:] if value.startswith("0x") else value
    if not body or len(body) % 2:
        return False
    try:
        bytes.fromhex(body)
    except ValueError:
        return False
    return True
