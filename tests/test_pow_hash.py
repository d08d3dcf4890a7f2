from __future__ import annotations

import hashlib
import unittest

from txauth.pow_hash import (
    PowSearchInterruptedError,
    leading_zero_bits,
    meets_difficulty,
    pow_hash,
    pow_preimage,
    solve_pow,
    verify_pow,
)


BLOCK_HASH = "2e7a16d9ef690a0b3a9ce3d1c1e1d7f7a84d2b9f3c5a1f0e8d6c4b2a09182736"
TX_ID = "0f3b8c3e-7b44-4c36-9d0b-1c1e6d2b5a77"


class PowHashTest(unittest.TestCase):
    def test_preimage_layout(self) -> None:
        preimage = pow_preimage("ab", "tx", 258, prefix="P")
        self.assertEqual(preimage, b"Pabtx" + (258).to_bytes(8, "big"))

    def test_hash_is_sha3_of_preimage(self) -> None:
        expected = hashlib.sha3_256(pow_preimage(BLOCK_HASH, TX_ID, 7)).digest()
        self.assertEqual(pow_hash(BLOCK_HASH, TX_ID, 7), expected)

    def test_leading_zero_bits(self) -> None:
        self.assertEqual(leading_zero_bits(b"\xff"), 0)
        self.assertEqual(leading_zero_bits(b"\x01\xff"), 7)
        self.assertEqual(leading_zero_bits(b"\x00\x10"), 11)
        self.assertEqual(leading_zero_bits(b"\x00\x00"), 16)

    def test_meets_difficulty(self) -> None:
        self.assertTrue(meets_difficulty(b"\x00\x10", 11))
        self.assertFalse(meets_difficulty(b"\x00\x10", 12))
        self.assertTrue(meets_difficulty(b"\xff", 0))
        self.assertFalse(meets_difficulty(b"\x00", 9))
        with self.assertRaises(ValueError):
            meets_difficulty(b"\x00", -1)

    def test_solve_and_verify(self) -> None:
        for difficulty in (0, 4, 9):
            nonce, digest = solve_pow(BLOCK_HASH, TX_ID, difficulty)
            self.assertGreaterEqual(leading_zero_bits(digest), difficulty)
            self.assertTrue(verify_pow(BLOCK_HASH, TX_ID, nonce, difficulty))

    def test_solution_is_bound_to_block_and_tx(self) -> None:
        nonce, _digest = solve_pow(BLOCK_HASH, TX_ID, 10)
        other_tx = "5d0c2b9a-0000-4000-8000-000000000000"
        misses = [
            verify_pow(BLOCK_HASH[::-1], TX_ID, nonce, 10),
            verify_pow(BLOCK_HASH, other_tx, nonce, 10),
        ]
        # A 10-bit puzzle passes by chance about once in a thousand tries.
        self.assertIn(False, misses)

    def test_zero_difficulty_accepts_first_nonce(self) -> None:
        nonce, _digest = solve_pow(BLOCK_HASH, TX_ID, 0)
        self.assertEqual(nonce, 0)

    def test_unknown_hash_function(self) -> None:
        with self.assertRaisesRegex(ValueError, "Unsupported"):
            solve_pow(BLOCK_HASH, TX_ID, 1, "md5")
        self.assertFalse(verify_pow(BLOCK_HASH, TX_ID, 0, 0, "md5"))

    def test_stop_request_interrupts_search(self) -> None:
        with self.assertRaisesRegex(PowSearchInterruptedError, "interrupted"):
            solve_pow(BLOCK_HASH, TX_ID, 200, stop_requested=lambda: True)

    def test_nonce_space_exhaustion(self) -> None:
        with self.assertRaisesRegex(PowSearchInterruptedError, "below nonce"):
            solve_pow(BLOCK_HASH, TX_ID, 200, max_nonce=16)


if __name__ == "__main__":
    unittest.main()
