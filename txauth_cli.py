from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import threading
import uuid
from pathlib import Path
from typing import Any

from txauth.authenticator import SigningError, TransactionAuthenticator
from txauth.config import CONFIG
from txauth.inventory import ProofOfWorkUnavailableError
from txauth.keyvault import KeyVault, KeyVaultError
from txauth.logging_setup import configure_logging
from txauth.models import InputData
from txauth.node import CoreNodeClient, NetworkError
from txauth.params import NetworkParameterStore, NetworkParameterSync
from txauth.pow_hash import pow_hash, solve_pow, verify_pow


logger = logging.getLogger("txauth.cli")


class CliError(Exception):
    pass


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, sort_keys=True))


def _resolve_recovery_phrase(args: argparse.Namespace) -> str:
    env_name = str(getattr(args, "secret_env", "") or "").strip()
    if env_name:
        value = os.environ.get(env_name)
        if value is None:
            raise CliError(f"Recovery phrase environment variable '{env_name}' is not set")
        if not value.strip():
            raise CliError(f"Recovery phrase environment variable '{env_name}' is empty")
        return value

    secret_path = Path(str(getattr(args, "secret", "") or ".secret"))
    try:
        phrase = secret_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CliError(f"Error loading {secret_path}: {exc}") from exc
    if not phrase.strip():
        raise CliError(f"Recovery phrase file '{secret_path}' is empty")
    return phrase


def _load_vault(args: argparse.Namespace) -> KeyVault:
    vault = KeyVault(_resolve_recovery_phrase(args))
    vault.derive_many(max(1, int(args.key_count)))
    return vault


def _build_authenticator(args: argparse.Namespace) -> tuple[TransactionAuthenticator, NetworkParameterSync]:
    client = CoreNodeClient(args.node, timeout=args.timeout)
    vault = _load_vault(args)
    store = NetworkParameterStore()
    sync = NetworkParameterSync(store, client.list_network_parameters)
    authenticator = TransactionAuthenticator(client, vault, store, client)
    return authenticator, sync


def cmd_derive(args: argparse.Namespace) -> None:
    vault = _load_vault(args)
    rows = []
    for index in range(max(1, int(args.key_count))):
        row: dict[str, Any] = {"index": index, "path": vault.derivation_path(index)}
        row.update(vault.derive(index).to_dict())
        if not args.show_private:
            row.pop("private_key")
        rows.append(row)
    _print_json(rows)


def cmd_pow_solve(args: argparse.Namespace) -> None:
    tx_id = args.tx_id or str(uuid.uuid4())
    nonce, digest = solve_pow(args.block_hash, tx_id, args.difficulty, args.hash_function)
    _print_json(
        {
            "block_hash": args.block_hash,
            "tx_id": tx_id,
            "difficulty": args.difficulty,
            "hash_function": args.hash_function,
            "nonce": nonce,
            "hash": digest.hex(),
            "verified": verify_pow(args.block_hash, tx_id, nonce, args.difficulty, args.hash_function),
        }
    )


def cmd_pow_verify(args: argparse.Namespace) -> None:
    digest = pow_hash(args.block_hash, args.tx_id, args.nonce, args.hash_function)
    _print_json(
        {
            "hash": digest.hex(),
            "verified": verify_pow(args.block_hash, args.tx_id, args.nonce, args.difficulty, args.hash_function),
        }
    )


def cmd_status(args: argparse.Namespace) -> None:
    client = CoreNodeClient(args.node, timeout=args.timeout)
    head = client.get_chain_head()
    params = client.list_network_parameters()
    _print_json(
        {
            "node": client.node_url,
            "height": head.height,
            "hash": head.block_hash,
            "chain_id": head.chain_id,
            "spam_pow_difficulty": head.spam_pow_difficulty,
            "spam_pow_hash_function": head.spam_pow_hash_function,
            CONFIG.number_of_past_blocks_key: params.get(CONFIG.number_of_past_blocks_key),
            CONFIG.tx_per_block_key: params.get(CONFIG.tx_per_block_key),
        }
    )


def cmd_sign(args: argparse.Namespace) -> None:
    try:
        command = json.loads(args.command)
    except json.JSONDecodeError as exc:
        raise CliError(f"Command must be a JSON object: {exc}") from exc
    if not isinstance(command, dict):
        raise CliError("Command must be a JSON object")

    authenticator, sync = _build_authenticator(args)
    identity = args.identity or authenticator.vault.derive(0).public_key
    sync.sync_once()
    sync.start()
    authenticator.start()
    try:
        tx = authenticator.sign(identity, InputData(command=command), timeout=args.wait)
        result: dict[str, Any] = {"tx": tx.to_dict()}
        if args.submit:
            response = authenticator.submit(tx)
            result["response"] = {
                "success": response.success,
                "tx_hash": response.tx_hash,
                "code": response.code,
                "data": response.data,
            }
        _print_json(result)
    finally:
        authenticator.stop()
        sync.stop()


def cmd_run(args: argparse.Namespace) -> None:
    authenticator, sync = _build_authenticator(args)
    stop = threading.Event()

    def _graceful_stop(signum: int, _frame: Any) -> None:
        logger.info("shutting down on user request (signal %d)", signum)
        stop.set()

    signal.signal(signal.SIGINT, _graceful_stop)
    signal.signal(signal.SIGTERM, _graceful_stop)

    for public_key in authenticator.vault.known_public_keys():
        logger.info("signing key ready: %s", public_key)

    sync.start()
    authenticator.start()
    try:
        while not stop.wait(max(1.0, float(args.status_interval))):
            logger.info(
                "status: %s; parameters updated at %d",
                json.dumps(authenticator.status()["inventory"], sort_keys=True),
                sync.store.updated_epoch,
            )
    finally:
        authenticator.stop()
        sync.stop()


def _add_secret_args(cmd: argparse.ArgumentParser) -> None:
    cmd.add_argument("--secret", default=".secret", help="File holding the recovery phrase")
    cmd.add_argument("--secret-env", help="Environment variable holding the recovery phrase")
    cmd.add_argument("--key-count", type=int, default=1, help="Number of signing keys to derive at startup")


def _add_node_args(cmd: argparse.ArgumentParser) -> None:
    cmd.add_argument("--node", default="http://127.0.0.1:3003", help="Core node REST URL")
    cmd.add_argument("--timeout", type=float, default=CONFIG.node_timeout, help="Request timeout in seconds")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Spam proof-of-work and transaction signing client")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging (same as DEBUG=1)")
    subparsers = parser.add_subparsers(dest="command_name", required=True)

    derive_cmd = subparsers.add_parser("derive", help="Derive signing keys from the recovery phrase")
    _add_secret_args(derive_cmd)
    derive_cmd.add_argument("--show-private", action="store_true", help="Also print private keys")
    derive_cmd.set_defaults(func=cmd_derive)

    solve_cmd = subparsers.add_parser("pow-solve", help="Solve one spam proof-of-work puzzle")
    solve_cmd.add_argument("--block-hash", required=True, help="Block hash the puzzle is bound to")
    solve_cmd.add_argument("--tx-id", help="Transaction id (random UUID when omitted)")
    solve_cmd.add_argument("--difficulty", type=int, required=True, help="Required leading zero bits")
    solve_cmd.add_argument("--hash-function", default=CONFIG.default_hash_function, help="Hash function name")
    solve_cmd.set_defaults(func=cmd_pow_solve)

    verify_cmd = subparsers.add_parser("pow-verify", help="Check a spam proof-of-work solution")
    verify_cmd.add_argument("--block-hash", required=True, help="Block hash the puzzle is bound to")
    verify_cmd.add_argument("--tx-id", required=True, help="Transaction id")
    verify_cmd.add_argument("--nonce", type=int, required=True, help="Candidate nonce")
    verify_cmd.add_argument("--difficulty", type=int, required=True, help="Required leading zero bits")
    verify_cmd.add_argument("--hash-function", default=CONFIG.default_hash_function, help="Hash function name")
    verify_cmd.set_defaults(func=cmd_pow_verify)

    status_cmd = subparsers.add_parser("status", help="Show chain head and spam parameters")
    _add_node_args(status_cmd)
    status_cmd.set_defaults(func=cmd_status)

    sign_cmd = subparsers.add_parser("sign", help="Sign a command with proof-of-work and optionally submit it")
    _add_node_args(sign_cmd)
    _add_secret_args(sign_cmd)
    sign_cmd.add_argument("--identity", help="Signer public key (first derived key when omitted)")
    sign_cmd.add_argument("--command", required=True, help="Command payload as a JSON object")
    sign_cmd.add_argument("--wait", type=float, default=30.0, help="Seconds to wait for proof-of-work")
    sign_cmd.add_argument("--submit", action="store_true", help="Submit the signed transaction")
    sign_cmd.set_defaults(func=cmd_sign)

    run_cmd = subparsers.add_parser("run", help="Keep a proof-of-work inventory warm until interrupted")
    _add_node_args(run_cmd)
    _add_secret_args(run_cmd)
    run_cmd.add_argument("--status-interval", type=float, default=15.0, help="Seconds between status logs")
    run_cmd.set_defaults(func=cmd_run)

    return parser


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    configure_logging(True if args.debug else None)

    try:
        args.func(args)
    except (CliError, KeyVaultError, NetworkError, ProofOfWorkUnavailableError, SigningError, ValueError) as exc:
        print(f"Error: {exc}")
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
