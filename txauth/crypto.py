from __future__ import annotations

import hashlib

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat


SEED_BYTES = 32
PUBLIC_KEY_BYTES = 32
SIGNATURE_BYTES = 64
CHAIN_ID_SEPARATOR = b"\x00"


def signing_bytes(chain_id: str, serialized_payload: bytes) -> bytes:
    return chain_id.encode("utf-8") + CHAIN_ID_SEPARATOR + serialized_payload


def signing_digest(chain_id: str, serialized_payload: bytes) -> bytes:
    return hashlib.sha3_256(signing_bytes(chain_id, serialized_payload)).digest()


def _seed_from_hex(private_key_hex: str) -> bytes:
    try:
        raw = bytes.fromhex(private_key_hex.strip())
    except ValueError as exc:
        raise ValueError("Private key contains invalid hex characters") from exc
    if len(raw) < SEED_BYTES:
        raise ValueError(f"Private key must hold at least {SEED_BYTES} bytes")
    # Expanded keys (seed || public key) sign with their leading seed.
    return raw[:SEED_BYTES]


def public_key_from_seed(seed: bytes) -> bytes:
    if len(seed) != SEED_BYTES:
        raise ValueError(f"Ed25519 seed must be {SEED_BYTES} bytes")
    private_key = Ed25519PrivateKey.from_private_bytes(seed)
    return private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)


def sign_digest(private_key_hex: str, digest: bytes) -> str:
    if len(digest) != 32:
        raise ValueError("Digest must be 32 bytes")
    private_key = Ed25519PrivateKey.from_private_bytes(_seed_from_hex(private_key_hex))
    return private_key.sign(digest).hex()


def verify_signature(public_key_hex: str, digest: bytes, signature_hex: str) -> bool:
    try:
        public_key = bytes.fromhex(public_key_hex)
        signature = bytes.fromhex(signature_hex)
        if len(public_key) != PUBLIC_KEY_BYTES or len(signature) != SIGNATURE_BYTES:
            return False
        Ed25519PublicKey.from_public_bytes(public_key).verify(signature, digest)
        return True
    except (ValueError, InvalidSignature):
        return False
