"""
Registry contract calls.

Canonical signatures and calldata builders for the identity, validation
and association registries the session interacts with. Argument types
are parsed from the signature, so each function is declared once.
"""

from typing import Any, List, Sequence

from eth_abi import decode, encode
from eth_utils import to_checksum_address

from .accounts.capabilities import ChainReader
from .errors import ContractCallError
from .execution.userop_builder import hex_to_bytes, selector_from_signature

VALIDATION_RESPONSE_SIGNATURE = "validationResponse(bytes32,uint8,string,bytes32,string)"
GET_IDENTITY_REGISTRY_SIGNATURE = "getIdentityRegistry()"
APPROVE_SIGNATURE = "approve(address,uint256)"
OWNER_OF_SIGNATURE = "ownerOf(uint256)"
IS_VALID_SIGNATURE_SIGNATURE = "isValidSignature(bytes32,bytes)"

# ERC-8092 associations
STORE_ASSOCIATION_SIGNATURE = (
    "storeAssociation((uint40,bytes2,bytes2,bytes,bytes,(bytes,bytes,uint40,uint40,bytes4,bytes)))"
)
UPDATE_ASSOCIATION_SIGNATURES_SIGNATURE = "updateAssociationSignatures(bytes32,bytes,bytes)"
GET_ASSOCIATION_SIGNATURE = "getAssociation(bytes32)"

ASSOCIATION_SIGNATURES = (
    STORE_ASSOCIATION_SIGNATURE,
    UPDATE_ASSOCIATION_SIGNATURES_SIGNATURE,
    GET_ASSOCIATION_SIGNATURE,
)

ZERO_BYTES32 = b"\x00" * 32


def argument_types(signature: str) -> List[str]:
    """Split ``f(a,(b,c),d)`` into ``["a", "(b,c)", "d"]``."""
    inner = signature[signature.index("(") + 1 : signature.rindex(")")]
    types: List[str] = []
    depth = 0
    current = ""
    for char in inner:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == "," and depth == 0:
            types.append(current)
            current = ""
        else:
            current += char
    if current:
        types.append(current)
    return types


def encode_function_call(signature: str, args: Sequence[Any] = ()) -> str:
    types = argument_types(signature)
    if len(types) != len(args):
        raise ValueError(f"{signature} takes {len(types)} arguments, got {len(args)}")
    body = encode(types, list(args)).hex() if types else ""
    return selector_from_signature(signature) + body


def encode_validation_response(
    request_hash: bytes,
    response: int,
    response_uri: str = "",
    response_hash: bytes = ZERO_BYTES32,
    tag: str = "",
) -> str:
    if len(request_hash) != 32:
        raise ValueError("request_hash must be 32 bytes")
    if not 0 <= response <= 100:
        raise ValueError(f"Validation response must be 0..100, got {response}")
    return encode_function_call(
        VALIDATION_RESPONSE_SIGNATURE,
        [request_hash, response, response_uri, response_hash, tag],
    )


def encode_get_identity_registry() -> str:
    return encode_function_call(GET_IDENTITY_REGISTRY_SIGNATURE)


def encode_approve(operator: str, token_id: int) -> str:
    return encode_function_call(APPROVE_SIGNATURE, [to_checksum_address(operator), token_id])


def encode_owner_of(token_id: int) -> str:
    return encode_function_call(OWNER_OF_SIGNATURE, [token_id])


def decode_address(result: str) -> str:
    data = hex_to_bytes(result)
    if len(data) < 32:
        raise ContractCallError(f"Expected an address return value, got {result!r}")
    return to_checksum_address(decode(["address"], data)[0])


async def read_identity_registry(chain: ChainReader, validation_registry: str) -> str:
    """IdentityRegistry address the validation registry points at."""
    return decode_address(await chain.call(validation_registry, encode_get_identity_registry()))


async def read_owner_of(chain: ChainReader, identity_registry: str, agent_id: int) -> str:
    return decode_address(await chain.call(identity_registry, encode_owner_of(agent_id)))
