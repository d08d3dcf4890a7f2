from __future__ import annotations

import hashlib
from typing import Any, Callable

from .config import CONFIG


MASK64 = (1 << 64) - 1

HASH_FUNCTIONS: dict[str, Callable[[bytes], Any]] = {
    # SHA3-256 is the standard 24-round Keccak permutation.
    "sha3_24_rounds": hashlib.sha3_256,
}

_STOP_CHECK_EVERY = 4096


class PowSearchInterruptedError(Exception):
    pass


def _hasher(hash_function: str) -> Callable[[bytes], Any]:
    try:
        return HASH_FUNCTIONS[hash_function]
    except KeyError as exc:
        raise ValueError(f"Unsupported proof-of-work hash function: {hash_function!r}") from exc


def pow_preimage(block_hash: str, tx_id: str, nonce: int, prefix: str = CONFIG.pow_hash_prefix) -> bytes:
    return b"".join(
        (
            prefix.encode("utf-8"),
            block_hash.encode("utf-8"),
            tx_id.encode("utf-8"),
            (nonce & MASK64).to_bytes(8, "big"),
        )
    )


def pow_hash(
    block_hash: str,
    tx_id: str,
    nonce: int,
    hash_function: str = CONFIG.default_hash_function,
    prefix: str = CONFIG.pow_hash_prefix,
) -> bytes:
    return _hasher(hash_function)(pow_preimage(block_hash, tx_id, nonce, prefix)).digest()


def leading_zero_bits(digest: bytes) -> int:
    count = 0
    for byte in digest:
        if byte == 0:
            count += 8
            continue
        count += 8 - byte.bit_length()
        break
    return count


def meets_difficulty(digest: bytes, difficulty: int) -> bool:
    if difficulty < 0:
        raise ValueError("Difficulty must be non-negative")
    if difficulty > len(digest) * 8:
        return False
    return leading_zero_bits(digest) >= difficulty


def solve_pow(
    block_hash: str,
    tx_id: str,
    difficulty: int,
    hash_function: str = CONFIG.default_hash_function,
    *,
    prefix: str = CONFIG.pow_hash_prefix,
    max_nonce: int = CONFIG.max_pow_nonce,
    stop_requested: Callable[[], bool] | None = None,
) -> tuple[int, bytes]:
    """Search nonces from zero until the hash has ``difficulty`` leading zero bits.

    Returns the winning nonce and its digest. Raises PowSearchInterruptedError
    when ``stop_requested`` fires or the nonce space up to ``max_nonce`` is exhausted.
    """
    hasher = _hasher(hash_function)
    if difficulty < 0:
        raise ValueError("Difficulty must be non-negative")

    head = prefix.encode("utf-8") + block_hash.encode("utf-8") + tx_id.encode("utf-8")
    nonce = 0
    while nonce <= max_nonce:
        if stop_requested is not None and nonce % _STOP_CHECK_EVERY == 0 and stop_requested():
            raise PowSearchInterruptedError("Proof-of-work search interrupted")

        digest = hasher(head + nonce.to_bytes(8, "big")).digest()
        if meets_difficulty(digest, difficulty):
            return nonce, digest
        nonce += 1

    raise PowSearchInterruptedError(f"No proof-of-work solution below nonce {max_nonce}")


def verify_pow(
    block_hash: str,
    tx_id: str,
    nonce: int,
    difficulty: int,
    hash_function: str = CONFIG.default_hash_function,
    prefix: str = CONFIG.pow_hash_prefix,
) -> bool:
    try:
        digest = pow_hash(block_hash, tx_id, nonce, hash_function, prefix)
        return meets_difficulty(digest, difficulty)
    except ValueError:
        return False
