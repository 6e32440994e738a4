import json
import logging
import os
import re
import sys
from argparse import ArgumentParser, ArgumentTypeError, Namespace
from importlib.metadata import PackageNotFoundError, version
from typing import Any

from bundler_client.client import BundlerClientConfig
from bundler_client.entrypoint import (
    EntryPointVersion, get_entrypoint_version)
from bundler_client.receipt.receipt_poller import (
    DEFAULT_POLL_INTERVAL, DEFAULT_RECEIPT_TIMEOUT)
from bundler_client.rpc.transport import DEFAULT_REQUEST_TIMEOUT
from bundler_client.signer import DEFAULT_KEYSTORE_PATTERN, LocalAccountSigner
from bundler_client.user_operation.models import USER_OPERATION_CLASSES
from bundler_client.user_operation.user_operation import UserOperation

try:
    __version__ = version("bundler-client")
except PackageNotFoundError:
    __version__ = "unknown"

ENV_PREFIX = "BUNDLER_CLIENT_"


def address(ep: str):
    address_pattern = "0x[0-9a-fA-F]{40}"
    if not isinstance(ep, str) or re.fullmatch(address_pattern, ep) is None:
        raise ArgumentTypeError(f"Wrong address format : {ep}")
    return ep


def user_operation_hash(value: str):
    hash_pattern = "0x[0-9a-fA-F]{64}"
    if not isinstance(value, str) or re.fullmatch(hash_pattern, value) is None:
        raise ArgumentTypeError(f"Wrong user operation hash format : {value}")
    return value


def unsigned_int(value):
    ivalue = int(value)
    if ivalue < 0:
        raise ArgumentTypeError(
                "%s is an invalid unsigned int value" % value)
    return ivalue


def non_negative_float(value):
    fvalue = float(value)
    if fvalue < 0:
        raise ArgumentTypeError(
                "%s is an invalid non negative number" % value)
    return fvalue


def positive_float(value):
    fvalue = float(value)
    if fvalue <= 0:
        raise ArgumentTypeError(
                "%s is an invalid positive number" % value)
    return fvalue


def env_flag(value: str) -> bool:
    return value.lower() == "true"


def _get_env_or_default(env_var, default, value_type):
    """
    Helper function to get the value from an environment variable or return the default value.
    Supports single values or lists (for nargs="+" arguments).
    """
    value = os.getenv(ENV_PREFIX + env_var, None)
    if value is not None:
        if value_type == list:
            return value.split(",")
        return value_type(value)
    return default


def add_user_operation_argument(parser: ArgumentParser) -> None:
    parser.add_argument(
        "user_operation_file",
        type=str,
        help='json file holding the user operation in rpc form, "-" for stdin',
    )


def add_signer_arguments(parser: ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group(required=False)
    group.add_argument(
        "--signer_secret",
        type=str,
        help="Owner private key used to sign the user operation",
        default=_get_env_or_default("SIGNER_SECRET", None, str),
    )
    group.add_argument(
        "--keystore_file_path",
        type=str,
        help=(
            "Owner keystore file path - "
            "defaults to first file in keystore folder"
        ),
        nargs="?",
        const=DEFAULT_KEYSTORE_PATTERN,
        default=_get_env_or_default("KEYSTORE_FILE_PATH", None, str),
    )
    parser.add_argument(
        "--keystore_file_password",
        type=str,
        help="Owner keystore file password - defaults to no password",
        default=_get_env_or_default("KEYSTORE_FILE_PASSWORD", "", str),
    )


def initialize_argument_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="bundler-client",
        description="ERC-4337 bundler json-rpc client",
    )

    parser.add_argument(
        "--bundler_url",
        type=str,
        help="Bundler json-rpc url - defaults to http://127.0.0.1:3000/rpc",
        default=_get_env_or_default(
            "BUNDLER_URL", "http://127.0.0.1:3000/rpc", str),
    )

    parser.add_argument(
        "--chain_id",
        type=unsigned_int,
        help="Expected chain id - fails when the bundler reports another one",
        default=_get_env_or_default("CHAIN_ID", None, unsigned_int),
    )

    parser.add_argument(
        "--entrypoint",
        type=address,
        help=(
            "Entry point address - defaults to the first supported entry "
            "point matching the user operation version"
        ),
        default=_get_env_or_default("ENTRYPOINT", None, address),
    )

    parser.add_argument(
        "--entrypoint_version",
        type=EntryPointVersion,
        choices=list(EntryPointVersion),
        help=(
            "Entry point version of --entrypoint when it is not one of "
            "the canonical deployments - defaults to v0.7"
        ),
        default=_get_env_or_default(
            "ENTRYPOINT_VERSION", None, EntryPointVersion),
    )

    parser.add_argument(
        "--poll_interval",
        type=positive_float,
        help=f"Receipt poll interval in seconds - defaults to {DEFAULT_POLL_INTERVAL}",
        default=_get_env_or_default(
            "POLL_INTERVAL", DEFAULT_POLL_INTERVAL, positive_float),
    )

    parser.add_argument(
        "--receipt_timeout",
        type=non_negative_float,
        help=f"Receipt wait timeout in seconds - defaults to {DEFAULT_RECEIPT_TIMEOUT}",
        default=_get_env_or_default(
            "RECEIPT_TIMEOUT", DEFAULT_RECEIPT_TIMEOUT, non_negative_float),
    )

    parser.add_argument(
        "--request_timeout",
        type=positive_float,
        help=f"Json-rpc request timeout in seconds - defaults to {DEFAULT_REQUEST_TIMEOUT}",
        default=_get_env_or_default(
            "REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT, positive_float),
    )

    parser.add_argument(
        "--verbose",
        help="show debug log",
        action="store_true",
        default=_get_env_or_default("VERBOSE", False, env_flag),
    )

    parser.add_argument(
        "--metrics",
        help="enable metrics collection",
        action="store_true",
        default=_get_env_or_default("METRICS", False, env_flag),
    )

    parser.add_argument(
        "--metrics_port",
        type=unsigned_int,
        help="Metrics http server port - defaults to 8000",
        default=_get_env_or_default("METRICS_PORT", 8000, unsigned_int),
    )

    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("chain-id", help="eth_chainId")
    subparsers.add_parser(
        "supported-entrypoints", help="eth_supportedEntryPoints")
    subparsers.add_parser(
        "health", help="check the bundler answers eth_chainId and "
        "eth_supportedEntryPoints")

    hash_parser = subparsers.add_parser(
        "hash", help="compute a user operation hash locally")
    add_user_operation_argument(hash_parser)

    estimate_parser = subparsers.add_parser(
        "estimate", help="eth_estimateUserOperationGas")
    add_user_operation_argument(estimate_parser)
    estimate_parser.add_argument(
        "--state_override",
        type=str,
        help="json file holding a state override set",
        default=None,
    )

    send_parser = subparsers.add_parser(
        "send", help="eth_sendUserOperation")
    add_user_operation_argument(send_parser)
    send_parser.add_argument(
        "--estimate",
        help="fill the gas limits with eth_estimateUserOperationGas first",
        action="store_true",
    )
    send_parser.add_argument(
        "--sign",
        help="sign the user operation with the owner key before sending",
        action="store_true",
    )
    send_parser.add_argument(
        "--wait",
        help="wait for the user operation receipt",
        action="store_true",
    )
    add_signer_arguments(send_parser)

    receipt_parser = subparsers.add_parser(
        "receipt", help="eth_getUserOperationReceipt")
    receipt_parser.add_argument("user_operation_hash", type=user_operation_hash)

    wait_parser = subparsers.add_parser(
        "wait", help="poll eth_getUserOperationReceipt until a receipt or "
        "the timeout")
    wait_parser.add_argument("user_operation_hash", type=user_operation_hash)

    get_parser = subparsers.add_parser(
        "get", help="eth_getUserOperationByHash")
    get_parser.add_argument("user_operation_hash", type=user_operation_hash)

    return parser


def parse_args(cmd_args: list[str]) -> Namespace:
    argument_parser: ArgumentParser = initialize_argument_parser()
    args = argument_parser.parse_args(cmd_args)
    if args.command == "send":
        if args.sign and not args.signer_secret and not args.keystore_file_path:
            argument_parser.error(
                "--sign needs either --signer_secret or --keystore_file_path, "
                "or the BUNDLER_CLIENT_SIGNER_SECRET or "
                "BUNDLER_CLIENT_KEYSTORE_FILE_PATH environment variables."
            )
    if args.entrypoint_version is not None and args.entrypoint is None:
        argument_parser.error("--entrypoint_version needs --entrypoint")
    return args


def init_logging(args: Namespace):
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s.%(msecs)03d %(levelname)s %(message)s",
        datefmt="%b %d %H:%M:%S",
    )


def get_client_config(args: Namespace) -> BundlerClientConfig:
    entrypoint_versions = {}
    if args.entrypoint_version is not None:
        entrypoint_versions[args.entrypoint] = args.entrypoint_version
    return BundlerClientConfig(
        bundler_url=args.bundler_url,
        chain_id=args.chain_id,
        poll_interval=args.poll_interval,
        receipt_timeout=args.receipt_timeout,
        request_timeout=args.request_timeout,
        entrypoint_versions=entrypoint_versions,
    )


def get_signer(args: Namespace) -> LocalAccountSigner:
    if args.keystore_file_path is not None:
        return LocalAccountSigner.from_keystore(
            args.keystore_file_path, args.keystore_file_password)
    return LocalAccountSigner(args.signer_secret)


def load_json_file(file_path: str) -> Any:
    if file_path == "-":
        return json.load(sys.stdin)
    with open(file_path) as json_file:
        return json.load(json_file)


def load_user_operation(
    user_operation_json: Any, args: Namespace
) -> UserOperation:
    """
    The entry point address picks the version when given, otherwise the
    field set does: "initCode" is only part of v0.6 user operations.
    """
    if args.entrypoint is not None:
        entrypoint_version = get_entrypoint_version(
            args.entrypoint, get_client_config(args).entrypoint_versions)
    elif (
        isinstance(user_operation_json, dict) and
        "initCode" in user_operation_json
    ):
        entrypoint_version = EntryPointVersion.V06
    else:
        entrypoint_version = EntryPointVersion.V07
    return USER_OPERATION_CLASSES[entrypoint_version].from_json(
        user_operation_json)
