from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from typing import Any


def canonical_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"))


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass(frozen=True)
class ChainHead:
    height: int
    block_hash: str
    spam_pow_difficulty: int
    spam_pow_hash_function: str
    chain_id: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChainHead":
        # Node JSON carries uint64 values as strings.
        return cls(
            height=int(_pick(data, "height", "blockHeight", default=0)),
            block_hash=str(_pick(data, "hash", "block_hash", "blockHash", default="")),
            spam_pow_difficulty=int(_pick(data, "spamPowDifficulty", "spam_pow_difficulty", default=0)),
            spam_pow_hash_function=str(
                _pick(data, "spamPowHashFunction", "spam_pow_hash_function", default="")
            ),
            chain_id=str(_pick(data, "chainId", "chain_id", default="")),
        )


@dataclass(frozen=True)
class KeyPair:
    private_key: str
    public_key: str

    def to_dict(self) -> dict[str, str]:
        return {"private_key": self.private_key, "public_key": self.public_key}


@dataclass
class PowCandidate:
    block_hash: str
    block_height: int
    difficulty: int
    nonce: int
    tx_id: str
    used: bool = False

    def sort_key(self) -> tuple[int, int]:
        # Oldest height first, then the cheapest solution at that height.
        return self.block_height, self.difficulty


@dataclass
class InputData:
    command: dict[str, Any] = field(default_factory=dict)
    nonce: int = 0
    block_height: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "nonce": self.nonce,
            "block_height": self.block_height,
            "command": self.command,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InputData":
        return cls(
            command=dict(data.get("command", {})),
            nonce=int(data.get("nonce", 0)),
            block_height=int(data.get("block_height", 0)),
        )

    def to_bytes(self) -> bytes:
        return canonical_json(self.to_dict()).encode("utf-8")


@dataclass(frozen=True)
class Signature:
    algo: str
    version: int
    value: str

    def to_dict(self) -> dict[str, Any]:
        return {"algo": self.algo, "version": self.version, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Signature":
        return cls(algo=data["algo"], version=int(data["version"]), value=data["value"])


@dataclass(frozen=True)
class ProofOfWork:
    tid: str
    nonce: int

    def to_dict(self) -> dict[str, Any]:
        # uint64 nonces travel as strings to survive JSON number limits.
        return {"tid": self.tid, "nonce": str(self.nonce)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProofOfWork":
        return cls(tid=data["tid"], nonce=int(data["nonce"]))


@dataclass(frozen=True)
class Transaction:
    version: int
    signature: Signature
    pow: ProofOfWork
    input_data: bytes
    pub_key: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "signature": self.signature.to_dict(),
            "pow": self.pow.to_dict(),
            "input_data": base64.b64encode(self.input_data).decode("ascii"),
            "pub_key": self.pub_key,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Transaction":
        return cls(
            version=int(data["version"]),
            signature=Signature.from_dict(data["signature"]),
            pow=ProofOfWork.from_dict(data["pow"]),
            input_data=base64.b64decode(data["input_data"]),
            pub_key=data["pub_key"],
        )


@dataclass(frozen=True)
class SubmitResponse:
    success: bool
    tx_hash: str = ""
    code: int = 0
    data: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SubmitResponse":
        return cls(
            success=bool(data.get("success", False)),
            tx_hash=str(_pick(data, "txHash", "tx_hash", default="")),
            code=int(_pick(data, "code", default=0)),
            data=str(_pick(data, "data", default="")),
        )
