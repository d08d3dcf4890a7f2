from __future__ import annotations

import logging
import secrets
import threading
from typing import Any, Callable, Protocol

from .config import CONFIG, AuthConfig
from .crypto import sign_digest, signing_digest
from .inventory import ChainHeadOracle, ProofOfWorkInventory
from .keyvault import KeyVault, UnknownIdentityError
from .models import ChainHead, InputData, ProofOfWork, Signature, SubmitResponse, Transaction
from .node import NetworkError, OracleUnavailableError, SubmitFailedError
from .params import ParameterSource
from .pow_hash import solve_pow


logger = logging.getLogger(__name__)


class Submitter(Protocol):
    def submit(self, tx: Transaction) -> SubmitResponse: ...


class SigningError(Exception):
    pass


class TransactionAuthenticator:
    """Turns a command payload into a signed, proof-of-work stamped transaction.

    Owns the proof-of-work inventory and the key vault handed to it. Call
    ``start()`` to run inventory maintenance in the background and ``stop()``
    to end it.
    """

    def __init__(
        self,
        oracle: ChainHeadOracle,
        vault: KeyVault,
        params: ParameterSource,
        submitter: Submitter,
        *,
        config: AuthConfig = CONFIG,
        solver: Callable[..., tuple[int, bytes]] = solve_pow,
    ) -> None:
        self.oracle = oracle
        self.vault = vault
        self.submitter = submitter
        self.config = config
        self.inventory = ProofOfWorkInventory(oracle, params, config=config, solver=solver)

    def start(self) -> None:
        self.inventory.start()

    def stop(self) -> None:
        self.inventory.stop()

    def has_pending_proof_of_work(self) -> bool:
        return self.inventory.has_unused()

    def _chain_head(self) -> ChainHead:
        try:
            return self.oracle.get_chain_head()
        except OracleUnavailableError:
            raise
        except NetworkError as exc:
            raise OracleUnavailableError(str(exc)) from exc

    def sign(
        self,
        identity: str,
        input_data: InputData,
        *,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> Transaction:
        """Stamp, sign and wrap ``input_data`` for the key whose public key is ``identity``.

        ``input_data`` is updated in place with a fresh nonce and the block
        height of the claimed proof-of-work. Without ``timeout`` or ``cancel``
        the call waits as long as it takes for the inventory to produce one.
        """
        head = self._chain_head()
        input_data.nonce = secrets.randbits(64)
        input_data.block_height = head.height

        try:
            key_pair = self.vault.lookup_by_public_key(identity)
        except UnknownIdentityError as exc:
            logger.warning("%s", exc)
            raise

        pow_ = self.inventory.wait_for_candidate(timeout=timeout, cancel=cancel)
        if pow_.block_height != head.height:
            logger.debug("signing at pow height %d, chain head was %d", pow_.block_height, head.height)
        # The transaction must reference the block its proof-of-work was computed for.
        input_data.block_height = pow_.block_height

        serialized = input_data.to_bytes()
        try:
            signature_hex = sign_digest(key_pair.private_key, signing_digest(head.chain_id, serialized))
        except ValueError as exc:
            raise SigningError(f"Cannot sign for {key_pair.public_key}: {exc}") from exc

        return Transaction(
            version=self.config.transaction_version,
            signature=Signature(
                algo=self.config.signature_algorithm,
                version=self.config.signature_version,
                value=signature_hex,
            ),
            pow=ProofOfWork(tid=pow_.tx_id, nonce=pow_.nonce),
            input_data=serialized,
            pub_key=key_pair.public_key,
        )

    def submit(self, tx: Transaction) -> SubmitResponse:
        try:
            response = self.submitter.submit(tx)
        except NetworkError as exc:
            logger.error("couldn't submit tx: %s", exc)
            if isinstance(exc, SubmitFailedError):
                raise
            raise SubmitFailedError(f"Couldn't submit tx: {exc}") from exc

        if not response.success:
            logger.warning("tx = %s; code = %d; data = %s", response.tx_hash, response.code, response.data)
        return response

    def status(self) -> dict[str, Any]:
        return {
            "has_pending_proof_of_work": self.has_pending_proof_of_work(),
            "known_public_keys": self.vault.known_public_keys(),
            "inventory": self.inventory.status(),
        }
