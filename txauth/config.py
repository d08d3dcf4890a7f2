from dataclasses import dataclass


@dataclass(frozen=True)
class AuthConfig:
    # Network parameters consulted by the proof-of-work inventory.
    number_of_past_blocks_key: str = "spam.pow.numberOfPastBlocks"
    tx_per_block_key: str = "spam.pow.numberOfTxPerBlock"
    # Inventory schedule: one batch per observed block height.
    pow_batch_size: int = 10
    refill_interval: float = 1.0
    expire_interval: float = 1.0
    # Buckets older than this share of numberOfPastBlocks are dropped.
    retain_ratio: float = 0.8
    # Longest gap between inventory re-checks while a signer waits.
    pow_wait_poll_interval: float = 1.0
    pow_hash_prefix: str = "Vega_SPAM_PoW"
    default_hash_function: str = "sha3_24_rounds"
    max_pow_nonce: int = 2**63 - 1
    # Threads by default; processes give real CPU parallelism for hard batches.
    pow_worker_processes: bool = False
    derivation_path_template: str = "m/1789'/0'/{index}'"
    # Every path level is hardened, so the index itself must fit in 31 bits.
    max_derivation_index: int = 2**31 - 1
    transaction_version: int = 3
    signature_algorithm: str = "vega/ed25519"
    signature_version: int = 1
    parameter_sync_interval: float = 15.0
    node_timeout: float = 4.0


CONFIG = AuthConfig()
