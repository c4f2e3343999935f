"""Command line entry point for assembling and using session packages"""

import argparse
import asyncio
import os
import sys
from typing import Optional, Sequence

from .config import Settings
from .core.accounts.signers import LocalKeySigner
from .core.errors import DelegationError, InputValidationError
from .core.session.assembler import AssemblyRequest, SessionPackageAssembler
from .core.session.package import SessionPackage
from .core.session.redeemer import DelegatedExecutor
from .core.session.store import load_session_package, save_session_package
from .logging_config import bind_log_context, setup_logging
from .providers.chain import ChainRpcProvider
from .providers.relay import BundlerRelay

OWNER_KEY_ENV = "AGENTIC_TRUST_OWNER_PRIVATE_KEY"


def print_package(package: SessionPackage, path: Optional[str] = None) -> None:
    key = package.session_key
    print("\nSession Package")
    print("=" * 50)
    if path:
        print(f"File:            {path}")
    print(f"Agent ID:        {package.agent_id}")
    print(f"Chain ID:        {package.chain_id}")
    print(f"Agent account:   {package.agent_account_address}")
    print(f"Session account: {package.session_account_address}")
    print(f"Session key:     {key.address}")
    print(f"Valid:           {key.valid_after} .. {key.valid_until}")
    print(f"Selector:        {package.allowed_selector}")
    print(f"Targets:         {', '.join(package.signed_delegation.scope.targets)}")


def parse_request_hash(value: str) -> bytes:
    body = value[2:] if value.startswith("0x") else value
    try:
        data = bytes.fromhex(body)
    except ValueError as exc:
        raise InputValidationError(f"Request hash is not hex: {value!r}") from exc
    if len(data) != 32:
        raise InputValidationError(f"Request hash must be 32 bytes, got {len(data)}")
    return data


async def cli_assemble(args: argparse.Namespace, settings: Settings) -> None:
    owner_key = os.getenv(args.owner_key_env)
    if not owner_key:
        raise InputValidationError(f"Set {args.owner_key_env} to the agent owner's private key")

    config = settings.resolve_chain(args.chain_id)
    bind_log_context(chain_id=config.chain_id, agent_id=args.agent_id)
    chain = ChainRpcProvider.from_config(config)
    relay = BundlerRelay.from_config(config)
    try:
        assembler = SessionPackageAssembler(config, chain, relay)
        package = await assembler.assemble(
            AssemblyRequest(
                agent_id=args.agent_id,
                agent_name=args.agent_name,
                owner_signer=LocalKeySigner(owner_key),
                agent_account_address=args.agent_account,
                approve_operator=not args.skip_approve,
                bind_window_on_chain=args.bind_window,
            )
        )
    finally:
        await relay.aclose()
        await chain.aclose()

    path = save_session_package(package, args.out)
    print_package(package, str(path))


async def cli_show(args: argparse.Namespace) -> None:
    package = load_session_package(args.path)
    print_package(package, args.path)


async def cli_respond(args: argparse.Namespace, settings: Settings) -> None:
    package = load_session_package(args.path)
    config = settings.resolve_chain(package.chain_id)
    bind_log_context(chain_id=package.chain_id, agent_id=package.agent_id)
    chain = ChainRpcProvider.from_config(config)
    relay = BundlerRelay.from_config(config)
    try:
        executor = DelegatedExecutor(package, config, chain, relay)
        receipt = await executor.submit_validation_response(
            parse_request_hash(args.request_hash),
            args.response,
            response_uri=args.uri,
            tag=args.tag,
        )
    finally:
        await relay.aclose()
        await chain.aclose()

    print(f"✅ Validation response included: {receipt.user_op_hash}")
    if receipt.transaction_hash:
        print(f"Transaction: {receipt.transaction_hash}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Delegated session packages for ERC-4337 agents")
    parser.add_argument("--log-level", help="Override AGENTIC_TRUST_LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command")

    assemble_parser = subparsers.add_parser("assemble", help="Deploy accounts and assemble a session package")
    assemble_parser.add_argument("agent_id", type=int, help="Agent NFT id in the identity registry")
    assemble_parser.add_argument("agent_name", help="Agent namespace used as the account deploy salt")
    assemble_parser.add_argument("--chain-id", type=int, help="Target chain (default: AGENTIC_TRUST_DEFAULT_CHAIN_ID)")
    assemble_parser.add_argument("--agent-account", help="Expected agent account address")
    assemble_parser.add_argument("--out", help="Package file (default: AGENTIC_TRUST_SESSION_PACKAGE_PATH)")
    assemble_parser.add_argument("--owner-key-env", default=OWNER_KEY_ENV, help="Env var holding the owner key")
    assemble_parser.add_argument("--skip-approve", action="store_true", help="Do not approve the session operator")
    assemble_parser.add_argument("--bind-window", action="store_true", help="Add an on-chain timestamp caveat")

    show_parser = subparsers.add_parser("show", help="Validate and summarize a session package")
    show_parser.add_argument("path", nargs="?", help="Package file")

    respond_parser = subparsers.add_parser("respond", help="Submit a validation response through the delegation")
    respond_parser.add_argument("request_hash", help="32-byte request hash (hex)")
    respond_parser.add_argument("response", type=int, help="Response score 0..100")
    respond_parser.add_argument("--uri", default="", help="Response URI")
    respond_parser.add_argument("--tag", default="agent-validation", help="Response tag")
    respond_parser.add_argument("--path", help="Package file")

    return parser


async def run(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    settings = Settings()
    setup_logging(args.log_level or settings.log_level)
    bind_log_context(command=args.command)

    try:
        if args.command == "assemble":
            await cli_assemble(args, settings)
        elif args.command == "show":
            await cli_show(args)
        elif args.command == "respond":
            await cli_respond(args, settings)
    except DelegationError as exc:
        print(f"❌ {type(exc).__name__}: {exc.message}", file=sys.stderr)
        if exc.context.suggested_action:
            print(f"   {exc.context.suggested_action}", file=sys.stderr)
        return 2 if exc.context.transient else 1
    return 0


def main() -> None:
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
