from __future__ import annotations

import json
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from .config import CONFIG
from .models import ChainHead, SubmitResponse, Transaction


class NetworkError(Exception):
    pass


class OracleUnavailableError(NetworkError):
    pass


class SubmitFailedError(NetworkError):
    pass


def normalize_node_url(node_url: str) -> str:
    """Reduce a node address to ``scheme://host[:port]``; bare ``host:port`` means http."""
    raw = node_url.strip()
    if not raw:
        raise ValueError("Node URL must not be empty")
    parsed = urlparse(raw if "://" in raw else f"http://{raw}")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Node URL must be http(s)://host[:port], got {node_url!r}")
    return f"{parsed.scheme}://{parsed.netloc}"


class CoreNodeClient:
    """REST client for a core node: chain head, transaction submission, network parameters."""

    def __init__(self, node_url: str, timeout: float = CONFIG.node_timeout) -> None:
        self.node_url = normalize_node_url(node_url)
        self.timeout = max(0.5, float(timeout))

    def _call(
        self,
        path: str,
        payload: dict[str, Any] | None = None,
        error: type[NetworkError] = NetworkError,
    ) -> dict[str, Any]:
        url = f"{self.node_url}{path}"
        headers = {"Accept": "application/json"}
        body = None
        if payload is not None:
            body = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"
        req = Request(url=url, data=body, method="GET" if body is None else "POST", headers=headers)

        try:
            with urlopen(req, timeout=self.timeout) as response:
                raw = response.read()
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            raise error(f"{url} answered HTTP {exc.code}: {detail}") from exc
        except URLError as exc:
            raise error(f"{url} unreachable: {exc.reason}") from exc
        except TimeoutError as exc:
            raise error(f"{url} timed out after {self.timeout:.1f}s") from exc

        if not raw:
            return {}
        try:
            decoded = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise error(f"{url} returned invalid JSON") from exc
        if not isinstance(decoded, dict):
            raise error(f"Expected JSON object from {url}, got {type(decoded).__name__}")
        return decoded

    def get_chain_head(self) -> ChainHead:
        data = self._call("/blockchain/height", error=OracleUnavailableError)
        try:
            head = ChainHead.from_dict(data)
        except (TypeError, ValueError) as exc:
            raise OracleUnavailableError(f"Malformed chain head from {self.node_url}: {exc}") from exc
        if not head.block_hash:
            raise OracleUnavailableError(f"Chain head from {self.node_url} has no block hash")
        return head

    def submit(self, tx: Transaction) -> SubmitResponse:
        data = self._call(
            "/transaction",
            payload={"tx": tx.to_dict(), "type": "TYPE_SYNC"},
            error=SubmitFailedError,
        )
        return SubmitResponse.from_dict(data)

    def list_network_parameters(self) -> dict[str, str]:
        data = self._call("/api/v2/network/parameters")
        values: dict[str, str] = {}
        container = data.get("networkParameters", data)
        edges = container.get("edges", []) if isinstance(container, dict) else []
        for edge in edges:
            node = edge.get("node", edge) if isinstance(edge, dict) else None
            if not isinstance(node, dict) or "key" not in node:
                continue
            values[str(node["key"])] = str(node.get("value", ""))
        return values
