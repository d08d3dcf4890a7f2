from __future__ import annotations

import threading
import unittest
from dataclasses import replace

from bip_utils import Bip32Slip10Ed25519
from mnemonic import Mnemonic

from txauth.config import CONFIG
from txauth.crypto import public_key_from_seed
from txauth.keyvault import DerivationError, KeyVault, UnknownIdentityError


PHRASE = "abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon about"
OTHER_PHRASE = "legal winner thank year wave sausage worth useful legal winner thank yellow"


class KeyVaultTest(unittest.TestCase):
    def test_empty_phrase_is_fatal(self) -> None:
        for phrase in ("", "   \n"):
            with self.assertRaisesRegex(ValueError, "must not be empty"):
                KeyVault(phrase)

    def test_derivation_is_deterministic(self) -> None:
        first = KeyVault(PHRASE).derive(3)
        second = KeyVault(PHRASE + "\n").derive(3)
        self.assertEqual(first, second)
        self.assertNotEqual(first, KeyVault(OTHER_PHRASE).derive(3))

    def test_second_derive_hits_cache(self) -> None:
        vault = KeyVault(PHRASE)
        first = vault.derive(0)
        second = vault.derive(0)
        self.assertIs(first, second)
        self.assertEqual(vault.derivation_count, 1)

    def test_indexes_yield_distinct_keys(self) -> None:
        vault = KeyVault(PHRASE)
        keys = vault.derive_many(4)
        self.assertEqual(len({key.public_key for key in keys}), 4)
        self.assertEqual(vault.derivation_count, 4)

    def test_key_shapes_and_consistency(self) -> None:
        key_pair = KeyVault(PHRASE).derive(0)
        self.assertEqual(len(key_pair.private_key), 64)
        self.assertEqual(len(key_pair.public_key), 64)
        self.assertEqual(key_pair.private_key, key_pair.private_key.lower())
        self.assertEqual(public_key_from_seed(bytes.fromhex(key_pair.private_key)).hex(), key_pair.public_key)

    def test_follows_hardened_path_template(self) -> None:
        seed = Mnemonic.to_seed(PHRASE, passphrase="")
        node = Bip32Slip10Ed25519.FromSeed(seed).DerivePath("m/1789'/0'/2'")
        self.assertEqual(KeyVault(PHRASE).derive(2).private_key, node.PrivateKey().Raw().ToBytes().hex())

    def test_custom_path_template(self) -> None:
        cfg = replace(CONFIG, derivation_path_template="m/44'/1789'/{index}'")
        vault = KeyVault(PHRASE, config=cfg)
        self.assertEqual(vault.derivation_path(5), "m/44'/1789'/5'")
        self.assertNotEqual(vault.derive(5), KeyVault(PHRASE).derive(5))

    def test_lookup_only_sees_derived_keys(self) -> None:
        vault = KeyVault(PHRASE)
        later = KeyVault(PHRASE).derive(1)
        vault.derive(0)

        with self.assertRaises(UnknownIdentityError):
            vault.lookup_by_public_key(later.public_key)
        self.assertEqual(vault.derivation_count, 1)

        vault.derive(1)
        self.assertEqual(vault.lookup_by_public_key(later.public_key), later)

    def test_lookup_is_case_insensitive(self) -> None:
        vault = KeyVault(PHRASE)
        key_pair = vault.derive(0)
        self.assertIs(vault.lookup_by_public_key(key_pair.public_key.upper()), key_pair)

    def test_sparse_indexes(self) -> None:
        vault = KeyVault(PHRASE)
        key_pair = vault.derive(7)
        self.assertEqual(vault.known_public_keys(), [key_pair.public_key])
        self.assertIs(vault.lookup_by_public_key(key_pair.public_key), key_pair)

    def test_highest_index_is_stored_alone(self) -> None:
        vault = KeyVault(PHRASE)
        top = CONFIG.max_derivation_index
        low = vault.derive(3)
        high = vault.derive(top)

        self.assertEqual(len(vault._keys), 2)
        self.assertIs(vault.lookup_by_public_key(high.public_key), high)
        self.assertEqual(vault.known_public_keys(), [low.public_key, high.public_key])
        expected = Bip32Slip10Ed25519.FromSeed(Mnemonic.to_seed(PHRASE, passphrase="")).DerivePath(
            f"m/1789'/0'/{top}'"
        )
        self.assertEqual(high.private_key, expected.PrivateKey().Raw().ToBytes().hex())

    def test_out_of_range_index(self) -> None:
        vault = KeyVault(PHRASE)
        for index in (-1, 2**31):
            with self.assertRaises(DerivationError):
                vault.derive(index)
        self.assertEqual(vault.derivation_count, 0)

    def test_concurrent_derivation_runs_once(self) -> None:
        vault = KeyVault(PHRASE)
        results = []
        barrier = threading.Barrier(8)

        def worker() -> None:
            barrier.wait()
            results.append(vault.derive(4))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(vault.derivation_count, 1)
        self.assertTrue(all(result is results[0] for result in results))


if __name__ == "__main__":
    unittest.main()
