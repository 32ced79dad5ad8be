#!/usr/bin/env python3
"""
confidential-cli - command line driver for the confidential contract SDK.

Examples:
    confidential-cli networks
    confidential-cli --network pulsar-3 balance secret1...
    confidential-cli --network secretdev-1 faucet secret1... --target 10000000
    confidential-cli scenario calculator --stub
    confidential-cli scenario minting --key $ADMIN_KEY --address $ADMIN \\
        --tx-builder mypkg.builder:TxBuilder --minter-wasm minter.wasm ...
"""
import argparse
import importlib
import logging
import os
import sys
from typing import List, Optional

from confidential_sdk import SecretClient, ClientSettings, NetworkConfig
from confidential_sdk.chain import StubTransport, stub_wasm
from confidential_sdk.exceptions import ConfidentialSDKError, ConfigurationError
from confidential_sdk.faucet import fill_up_from_faucet
from confidential_sdk.models import Account
from confidential_sdk.scenarios import run_calculator_scenario, run_minting_scenario
from confidential_sdk.signer import LocalSigner
from confidential_sdk.version import __version__

logger = logging.getLogger("confidential-cli")

DEFAULT_NETWORK = "secretdev-1"
STUB_BALANCE = 1_000_000_000


def parse_account(value: str, label: Optional[str] = None) -> Account:
    """Parse ``HEX_KEY:ADDRESS`` into an account"""
    key, sep, address = value.partition(":")
    if not sep or not key or not address:
        raise argparse.ArgumentTypeError("accounts are given as HEX_KEY:ADDRESS")
    try:
        return Account(address=address, signer=LocalSigner(key, address), label=label)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def load_tx_builder(dotted_path: str):
    """Import ``module:attribute`` and instantiate it if it is a class"""
    module_name, sep, attribute = dotted_path.partition(":")
    if not sep:
        raise ConfigurationError("--tx-builder must look like module:attribute")
    try:
        target = getattr(importlib.import_module(module_name), attribute)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Cannot load tx builder {dotted_path}: {e}")
    return target() if isinstance(target, type) else target


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="confidential-cli",
        description="Run confidential contract scenarios and utilities"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--network", default=os.environ.get("CONFIDENTIAL_NETWORK", DEFAULT_NETWORK),
                        help=f"Network from networks.json (default: {DEFAULT_NETWORK})")
    parser.add_argument("--lcd-url", help="Override the REST endpoint of the network")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("networks", help="List known networks")

    balance = subparsers.add_parser("balance", help="Show the native balance of an address")
    balance.add_argument("address")

    faucet = subparsers.add_parser("faucet", help="Request tokens from the network faucet")
    faucet.add_argument("address")
    faucet.add_argument("--target", type=int, default=10_000_000, help="Balance to reach")
    faucet.add_argument("--faucet-url", help="Override the faucet URL")
    faucet.add_argument("--max-attempts", type=int, default=10)

    scenario = subparsers.add_parser("scenario", help="Run an end-to-end scenario")
    scenario.add_argument("name", choices=["calculator", "minting"])
    scenario.add_argument("--stub", action="store_true", help="Run against the simulated in-memory chain")
    scenario.add_argument("--key", default=os.environ.get("CONFIDENTIAL_SDK_PRIVATE_KEY"),
                          help="Hex private key of the admin account")
    scenario.add_argument("--address", default=os.environ.get("CONFIDENTIAL_SDK_ADDRESS"),
                          help="Address of the admin account")
    scenario.add_argument("--tx-builder", help="Wire encoder as module:attribute")
    scenario.add_argument("--wasm", help="Calculator contract wasm")
    scenario.add_argument("--minter-wasm", help="Minter contract wasm")
    scenario.add_argument("--nft-wasm", help="SNIP-721 contract wasm")
    scenario.add_argument("--token-wasm", help="SNIP-20 contract wasm")
    scenario.add_argument("--user", action="append", type=parse_account, default=[],
                          help="Funded-by-admin user account as HEX_KEY:ADDRESS (minting needs two)")
    return parser


def _stub_client() -> SecretClient:
    transport = StubTransport(confirm_after=0)
    admin = transport.create_account("admin", balance=STUB_BALANCE)
    settings = ClientSettings(poll_interval=0.01, max_poll_interval=0.05)
    return SecretClient(transport, account=admin, settings=settings)


def _network_client(args) -> SecretClient:
    if not args.key or not args.address:
        raise ConfigurationError("--key and --address are required outside of --stub")
    admin = parse_account(f"{args.key}:{args.address}", "admin")
    tx_builder = load_tx_builder(args.tx_builder) if args.tx_builder else None
    return SecretClient.from_network(args.network, account=admin, lcd_url=args.lcd_url, tx_builder=tx_builder)


def _require(value: Optional[str], option: str) -> str:
    if not value:
        raise ConfigurationError(f"{option} is required outside of --stub")
    return value


def run_scenario(args) -> int:
    client = _stub_client() if args.stub else _network_client(args)
    with client:
        if args.name == "calculator":
            wasm = stub_wasm("calculator") if args.stub else _require(args.wasm, "--wasm")
            report = run_calculator_scenario(client, wasm)
        else:
            if args.stub:
                wasms = [stub_wasm("minter"), stub_wasm("snip721"), stub_wasm("snip20")]
                new_account = client.transport.create_account
            else:
                wasms = [_require(args.minter_wasm, "--minter-wasm"), _require(args.nft_wasm, "--nft-wasm"),
                         _require(args.token_wasm, "--token-wasm")]
                users = list(args.user)
                if len(users) < 2:
                    raise ConfigurationError("--user must be given twice outside of --stub")

                def new_account(label: str) -> Account:
                    return users.pop(0)
            report = run_minting_scenario(client, *wasms, new_account=new_account)

    print(report.summary())
    return 0 if report.passed else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point; returns the process exit code"""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    try:
        if args.command == "networks":
            for name, network in sorted(NetworkConfig.load_networks().items()):
                print(f"{name}\tchain_id={network['chainId']}\tlcd={network['lcd']}")
            return 0

        if args.command == "balance":
            with SecretClient.from_network(args.network, lcd_url=args.lcd_url) as client:
                print(client.get_balance(args.address))
            return 0

        if args.command == "faucet":
            with SecretClient.from_network(args.network, lcd_url=args.lcd_url) as client:
                balance = fill_up_from_faucet(client, args.target, faucet_url=args.faucet_url,
                                              address=args.address, max_attempts=args.max_attempts)
            print(balance)
            return 0

        return run_scenario(args)
    except ConfidentialSDKError as e:
        logger.error(str(e))
        return 2


if __name__ == "__main__":
    sys.exit(main())
