"""
``bridge-e2e`` command line entry point.
"""
import argparse
import json
import logging
import os
import sys
from dataclasses import asdict
from typing import List, Optional

from .client import ChainClient
from .config import E2ESettings
from .exceptions import BridgeE2EError
from .fixtures import KeyRing
from .keyshare import KeyshareStore
from .scenarios import BridgeScenarioSuite
from .version import __version__

logger = logging.getLogger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="bridge-e2e",
        description="Provision and exercise a local two-chain bridge environment",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("local-setup", "Deploy and wire the bridge contracts on both chains"),
        ("run", "Deploy both chains and run the ERC20, ERC721 and generic deposit scenarios"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--rpc-url-1", help="RPC URL of the source chain")
        sub.add_argument("--rpc-url-2", help="RPC URL of the destination chain")
        sub.add_argument("--artifacts-dir", help="Directory with compiled contract artifacts")
        sub.add_argument(
            "--parallel",
            action="store_true",
            help="Deploy the per-asset token and handler pairs concurrently"
        )

    keyshare = subparsers.add_parser("keyshare", help="Inspect a relayer keyshare file")
    keyshare_sub = keyshare.add_subparsers(dest="keyshare_command", required=True)
    show = keyshare_sub.add_parser("show", help="Print threshold and peers of a keyshare")
    show.add_argument("path", help="Path of the keyshare file")

    return parser.parse_args(argv)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else os.environ.get("BRIDGE_E2E_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _settings(args: argparse.Namespace) -> E2ESettings:
    settings = E2ESettings.from_env()
    overrides = {}
    if args.rpc_url_1:
        overrides["rpc_url_1"] = args.rpc_url_1
    if args.rpc_url_2:
        overrides["rpc_url_2"] = args.rpc_url_2
    if args.artifacts_dir:
        overrides["artifacts_dir"] = args.artifacts_dir
    if args.parallel:
        overrides["parallel_deploy"] = True
    return settings.model_copy(update=overrides)


def _suite(settings: E2ESettings) -> BridgeScenarioSuite:
    return BridgeScenarioSuite(
        ChainClient(settings.rpc_url_1),
        ChainClient(settings.rpc_url_2),
        KeyRing.dev(),
        settings,
    )


def cmd_local_setup(args: argparse.Namespace) -> int:
    suite = _suite(_settings(args))
    config_a, config_b = suite.setup()
    print(json.dumps({"chain_a": config_a.model_dump(), "chain_b": config_b.model_dump()}, indent=2))
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    suite = _suite(_settings(args))
    results = suite.run_all()
    print(json.dumps([asdict(result) for result in results], indent=2))
    return 0


def cmd_keyshare_show(args: argparse.Namespace) -> int:
    keyshare = KeyshareStore(args.path).load()
    print(json.dumps({"threshold": keyshare.threshold, "peers": keyshare.peers}, indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_arguments(argv)
    _configure_logging(args.verbose)

    if args.command == "local-setup":
        handler = cmd_local_setup
    elif args.command == "run":
        handler = cmd_run
    else:
        handler = cmd_keyshare_show

    try:
        return handler(args)
    except BridgeE2EError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
