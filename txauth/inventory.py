from __future__ import annotations

import logging
import math
import threading
import time
import uuid
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from typing import Any, Callable, Protocol

from .config import CONFIG, AuthConfig
from .models import ChainHead, PowCandidate
from .node import NetworkError
from .params import ParameterSource
from .pow_hash import PowSearchInterruptedError, solve_pow


logger = logging.getLogger(__name__)


class ChainHeadOracle(Protocol):
    def get_chain_head(self) -> ChainHead: ...


class ParameterUnavailableError(ValueError):
    pass


class ProofOfWorkUnavailableError(Exception):
    pass


def round_half_away(value: float) -> int:
    magnitude = math.floor(abs(value) + 0.5)
    return int(magnitude if value >= 0 else -magnitude)


def batch_difficulties(base_difficulty: int, tx_per_block: float, batch_size: int) -> list[int]:
    """Difficulty for each batch position; later positions pay for the block's spam curve."""
    if tx_per_block <= 0:
        raise ValueError("Transactions per block must be positive")
    return [int(base_difficulty) + math.floor((i + 1) / tx_per_block) for i in range(batch_size)]


class ProofOfWorkInventory:
    """Standing supply of precomputed spam proof-of-work, bucketed by block height.

    Every read and write of the bucket map goes through one condition lock.
    Nonce searches for a batch run outside the lock and the finished batch is
    inserted in one step, so readers never see a partial bucket. A height is
    filled at most once while its bucket exists.
    """

    def __init__(
        self,
        oracle: ChainHeadOracle,
        params: ParameterSource,
        *,
        config: AuthConfig = CONFIG,
        solver: Callable[..., tuple[int, bytes]] = solve_pow,
    ) -> None:
        self.oracle = oracle
        self.params = params
        self.config = config
        self.solver = solver
        self.stop_event = threading.Event()
        self._condition = threading.Condition(threading.Lock())
        self._buckets: dict[int, list[PowCandidate]] = {}
        self._filling: set[int] = set()
        self._threads: list[threading.Thread] = []

    def _fetch_chain_head(self) -> ChainHead | None:
        try:
            return self.oracle.get_chain_head()
        except NetworkError as exc:
            logger.warning("couldn't get last block: %s", exc)
            return None

    def _read_parameter(self, key: str) -> float:
        raw = self.params.get(key)
        if raw is None:
            raise ParameterUnavailableError(f"cannot get network parameter: {key}")
        try:
            value = float(raw)
        except (TypeError, ValueError) as exc:
            raise ParameterUnavailableError(f"cannot get network parameter: {key}") from exc
        if math.isnan(value) or math.isinf(value):
            raise ParameterUnavailableError(f"cannot get network parameter: {key}")
        return value

    def _new_executor(self, workers: int) -> Executor:
        if self.config.pow_worker_processes:
            return ProcessPoolExecutor(max_workers=workers)
        return ThreadPoolExecutor(max_workers=workers, thread_name_prefix="txauth-pow")

    def _compute_batch(self, head: ChainHead, tx_per_block: float) -> list[PowCandidate]:
        difficulties = batch_difficulties(head.spam_pow_difficulty, tx_per_block, self.config.pow_batch_size)
        hash_function = head.spam_pow_hash_function or self.config.default_hash_function
        # Worker processes cannot share the stop event.
        stop_requested = None if self.config.pow_worker_processes else self.stop_event.is_set
        jobs: list[tuple[str, int, Any]] = []

        with self._new_executor(len(difficulties)) as executor:
            for difficulty in difficulties:
                tx_id = str(uuid.uuid4())
                future = executor.submit(
                    self.solver,
                    head.block_hash,
                    tx_id,
                    difficulty,
                    hash_function,
                    prefix=self.config.pow_hash_prefix,
                    max_nonce=self.config.max_pow_nonce,
                    stop_requested=stop_requested,
                )
                jobs.append((tx_id, difficulty, future))

            batch: list[PowCandidate] = []
            for tx_id, difficulty, future in jobs:
                nonce, _digest = future.result()
                batch.append(
                    PowCandidate(
                        block_hash=head.block_hash,
                        block_height=head.height,
                        difficulty=difficulty,
                        nonce=nonce,
                        tx_id=tx_id,
                    )
                )
        return batch

    def refill_tick(self) -> int:
        """Fill the bucket for the current chain head if it has never been filled.

        Returns the number of candidates inserted; zero when the tick is skipped.
        """
        head = self._fetch_chain_head()
        if head is None:
            return 0

        with self._condition:
            if self._buckets.get(head.height) or head.height in self._filling:
                return 0

        try:
            tx_per_block = self._read_parameter(self.config.tx_per_block_key)
            if tx_per_block <= 0:
                raise ParameterUnavailableError(f"cannot get network parameter: {self.config.tx_per_block_key}")
        except ParameterUnavailableError as exc:
            logger.warning("%s", exc)
            return 0

        with self._condition:
            if self._buckets.get(head.height) or head.height in self._filling:
                return 0
            self._filling.add(head.height)

        batch: list[PowCandidate] = []
        inserted = 0
        try:
            batch = self._compute_batch(head, tx_per_block)
        except (PowSearchInterruptedError, ValueError) as exc:
            logger.warning("proof-of-work batch for block %d abandoned: %s", head.height, exc)
        finally:
            with self._condition:
                self._filling.discard(head.height)
                if batch and not self._buckets.get(head.height):
                    self._buckets[head.height] = batch
                    inserted = len(batch)
                    self._condition.notify_all()

        if inserted:
            logger.debug("computed %d pow for block %d", inserted, head.height)
        return inserted

    def expire_tick(self) -> int:
        """Drop every bucket at or below the retain floor. Returns the number of buckets dropped."""
        head = self._fetch_chain_head()
        if head is None:
            return 0

        try:
            past_blocks = self._read_parameter(self.config.number_of_past_blocks_key)
        except ParameterUnavailableError as exc:
            logger.warning("%s", exc)
            return 0

        retain_floor = head.height - round_half_away(self.config.retain_ratio * past_blocks)
        with self._condition:
            stale = [height for height in self._buckets if height <= retain_floor]
            for height in stale:
                del self._buckets[height]

        if stale:
            logger.debug("expired pow for blocks %s (retain floor %d)", sorted(stale), retain_floor)
        return len(stale)

    def has_unused(self) -> bool:
        with self._condition:
            return any(not pow_.used for bucket in self._buckets.values() for pow_ in bucket)

    def _acquire_unlocked(self) -> PowCandidate | None:
        unused = [pow_ for bucket in self._buckets.values() for pow_ in bucket if not pow_.used]
        if not unused:
            return None
        chosen = min(unused, key=PowCandidate.sort_key)
        # Claimed candidates stay in their bucket until it expires.
        chosen.used = True
        return chosen

    def acquire(self) -> PowCandidate | None:
        with self._condition:
            return self._acquire_unlocked()

    def wait_for_candidate(
        self,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> PowCandidate:
        """Claim a candidate, waiting for a refill when the inventory is empty.

        The lock is released while waiting. Raises ProofOfWorkUnavailableError
        when ``timeout`` elapses or ``cancel`` is set first. A set ``cancel``
        is noticed within ``pow_wait_poll_interval``, or at once after
        ``wake_waiters()``.
        """
        deadline = None if timeout is None else time.monotonic() + max(0.0, float(timeout))
        poll_interval = max(0.01, float(self.config.pow_wait_poll_interval))

        while True:
            if cancel is not None and cancel.is_set():
                raise ProofOfWorkUnavailableError("Wait for proof-of-work was cancelled")

            with self._condition:
                candidate = self._acquire_unlocked()
                if candidate is not None:
                    return candidate

                wait_for = poll_interval
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise ProofOfWorkUnavailableError(
                            f"No proof-of-work became available within {float(timeout):.1f}s"
                        )
                    wait_for = min(wait_for, remaining)
                self._condition.wait(wait_for)

    def _tick_loop(self, action: Callable[[], int], interval: float) -> None:
        while not self.stop_event.wait(interval):
            try:
                action()
            except Exception:
                logger.exception("proof-of-work maintenance tick failed")

    def start(self) -> None:
        if self.running:
            return
        self.stop_event.clear()
        self._threads = [
            threading.Thread(
                target=self._tick_loop,
                args=(self.refill_tick, max(0.01, float(self.config.refill_interval))),
                name="txauth-pow-refill",
                daemon=True,
            ),
            threading.Thread(
                target=self._tick_loop,
                args=(self.expire_tick, max(0.01, float(self.config.expire_interval))),
                name="txauth-pow-expire",
                daemon=True,
            ),
        ]
        for thread in self._threads:
            thread.start()

    def wake_waiters(self) -> None:
        with self._condition:
            self._condition.notify_all()

    def stop(self) -> None:
        self.stop_event.set()
        self.wake_waiters()
        for thread in self._threads:
            if thread.is_alive():
                thread.join(timeout=2.0)
        self._threads = []

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def heights(self) -> list[int]:
        with self._condition:
            return sorted(self._buckets)

    def bucket(self, height: int) -> list[PowCandidate]:
        with self._condition:
            return list(self._buckets.get(height, []))

    def status(self) -> dict[str, Any]:
        with self._condition:
            used = sum(1 for bucket in self._buckets.values() for pow_ in bucket if pow_.used)
            total = sum(len(bucket) for bucket in self._buckets.values())
            heights = sorted(self._buckets)
            filling = sorted(self._filling)
        return {
            "running": self.running,
            "buckets": len(heights),
            "heights": heights,
            "filling": filling,
            "total": total,
            "used": used,
            "unused": total - used,
        }
