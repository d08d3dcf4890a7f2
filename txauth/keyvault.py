from __future__ import annotations

import logging
import threading

from bip_utils import Bip32KeyError, Bip32PathError, Bip32Slip10Ed25519
from mnemonic import Mnemonic

from .config import CONFIG, AuthConfig
from .crypto import public_key_from_seed
from .models import KeyPair


logger = logging.getLogger(__name__)


class KeyVaultError(Exception):
    pass


class DerivationError(KeyVaultError):
    pass


class UnknownIdentityError(KeyVaultError):
    pass


class KeyVault:
    """Deterministic ed25519 signing keys derived from one recovery phrase.

    The BIP-39 seed (empty passphrase) is computed once. Each index is derived
    along ``m/1789'/0'/{index}'`` with SLIP-10 and cached for the lifetime of
    the vault. Only keys that have already been derived can be found by
    public key.
    """

    def __init__(self, recovery_phrase: str, config: AuthConfig = CONFIG) -> None:
        phrase = (recovery_phrase or "").strip()
        if not phrase:
            raise ValueError("Recovery phrase must not be empty")
        self.config = config
        self._master = Bip32Slip10Ed25519.FromSeed(Mnemonic.to_seed(phrase, passphrase=""))
        self._lock = threading.Lock()
        self._keys: dict[int, KeyPair] = {}
        self._index_by_public_key: dict[str, int] = {}
        self.derivation_count = 0

    def derivation_path(self, index: int) -> str:
        return self.config.derivation_path_template.format(index=index)

    def _derive_unlocked(self, index: int) -> KeyPair:
        path = self.derivation_path(index)
        try:
            node = self._master.DerivePath(path)
            seed = node.PrivateKey().Raw().ToBytes()
            public_key = public_key_from_seed(seed)
        except (Bip32KeyError, Bip32PathError, ValueError) as exc:
            logger.error("cannot derive key at %s: %s", path, exc)
            raise DerivationError(f"Cannot derive key at {path}: {exc}") from exc

        self.derivation_count += 1
        return KeyPair(private_key=seed.hex(), public_key=public_key.hex())

    def derive(self, index: int) -> KeyPair:
        if not 0 <= int(index) <= self.config.max_derivation_index:
            raise DerivationError(f"Derivation index out of range: {index}")
        index = int(index)

        with self._lock:
            key_pair = self._keys.get(index)
            if key_pair is not None:
                return key_pair

            key_pair = self._derive_unlocked(index)
            self._keys[index] = key_pair
            self._index_by_public_key[key_pair.public_key] = index
            return key_pair

    def derive_many(self, count: int) -> list[KeyPair]:
        return [self.derive(index) for index in range(int(count))]

    def lookup_by_public_key(self, public_key_hex: str) -> KeyPair:
        wanted = str(public_key_hex).strip().lower()
        with self._lock:
            index = self._index_by_public_key.get(wanted)
            if index is None:
                raise UnknownIdentityError(f"Cannot find key pair for public key {wanted}")
            return self._keys[index]

    def known_public_keys(self) -> list[str]:
        with self._lock:
            return [self._keys[index].public_key for index in sorted(self._keys)]
