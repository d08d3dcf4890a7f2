from __future__ import annotations

import time
import unittest

from txauth.params import NetworkParameterStore, NetworkParameterSync


class NetworkParameterStoreTest(unittest.TestCase):
    def test_values_are_strings(self) -> None:
        store = NetworkParameterStore({"spam.pow.numberOfTxPerBlock": 2})
        self.assertEqual(store.get("spam.pow.numberOfTxPerBlock"), "2")
        self.assertIsNone(store.get("spam.pow.numberOfPastBlocks"))
        self.assertGreater(store.updated_epoch, 0)

    def test_snapshot_is_a_copy(self) -> None:
        store = NetworkParameterStore()
        store.set("a", "1")
        snapshot = store.snapshot()
        snapshot["a"] = "2"
        self.assertEqual(store.get("a"), "1")


class NetworkParameterSyncTest(unittest.TestCase):
    def test_sync_once_updates_store(self) -> None:
        store = NetworkParameterStore({"old": "1"})
        sync = NetworkParameterSync(store, lambda: {"spam.pow.numberOfPastBlocks": "100", "old": "3"})
        self.assertEqual(sync.sync_once(), 2)
        self.assertEqual(store.get("spam.pow.numberOfPastBlocks"), "100")
        self.assertEqual(store.get("old"), "3")

    def test_background_failures_are_recorded(self) -> None:
        def fetch() -> dict[str, str]:
            raise ConnectionError("node down")

        sync = NetworkParameterSync(NetworkParameterStore(), fetch)
        with self.assertLogs("txauth.params", level="WARNING"):
            sync.start()
            try:
                deadline = time.monotonic() + 2.0
                while not sync.last_sync_error and time.monotonic() < deadline:
                    time.sleep(0.01)
            finally:
                sync.stop()
        self.assertIn("node down", sync.last_sync_error)


if __name__ == "__main__":
    unittest.main()
