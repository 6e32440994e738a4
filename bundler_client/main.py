import json
import logging
import sys
from argparse import Namespace
from typing import Any

import uvloop

from bundler_client.cli_manager import (
    get_client_config, get_signer, init_logging, load_json_file,
    load_user_operation, parse_args)
from bundler_client.client import BundlerClient
from bundler_client.exceptions import BundlerClientException
from bundler_client.metrics.metrics import run_metrics_server
from bundler_client.rpc.health import check_bundler_health
from bundler_client.rpc.transport import RpcTransport


async def chain_id_command(client: BundlerClient, args: Namespace) -> Any:
    return await client.get_chain_id()


async def supported_entrypoints_command(
    client: BundlerClient, args: Namespace
) -> Any:
    return [
        {"address": entrypoint.address, "version": entrypoint.version.value}
        for entrypoint in await client.supported_entrypoints()
    ]


async def hash_command(client: BundlerClient, args: Namespace) -> Any:
    user_operation = load_user_operation(
        load_json_file(args.user_operation_file), args)
    return client.get_user_operation_hash(user_operation, args.entrypoint)


async def estimate_command(client: BundlerClient, args: Namespace) -> Any:
    user_operation = load_user_operation(
        load_json_file(args.user_operation_file), args)
    state_override = None
    if args.state_override is not None:
        state_override = load_json_file(args.state_override)
    gas_estimate = await client.estimate_user_operation_gas(
        user_operation, args.entrypoint, state_override)
    return gas_estimate.to_json()


async def send_command(client: BundlerClient, args: Namespace) -> Any:
    user_operation = load_user_operation(
        load_json_file(args.user_operation_file), args)
    entrypoint = client.resolve_entrypoint(user_operation, args.entrypoint)
    if args.estimate:
        user_operation = await client.prepare_user_operation(
            user_operation, entrypoint)
    if args.sign:
        user_operation = get_signer(args).sign_user_operation(
            user_operation, entrypoint, client.chain_id)

    user_operation_hash = await client.send_user_operation(
        user_operation, entrypoint)
    if not args.wait:
        return user_operation_hash
    receipt = await client.wait_for_user_operation_receipt(user_operation_hash)
    return receipt.to_json()


async def receipt_command(client: BundlerClient, args: Namespace) -> Any:
    receipt = await client.get_user_operation_receipt(args.user_operation_hash)
    return None if receipt is None else receipt.to_json()


async def wait_command(client: BundlerClient, args: Namespace) -> Any:
    receipt = await client.wait_for_user_operation_receipt(
        args.user_operation_hash)
    return receipt.to_json()


async def get_command(client: BundlerClient, args: Namespace) -> Any:
    user_operation_by_hash = await client.get_user_operation_by_hash(
        args.user_operation_hash)
    return user_operation_by_hash.to_json()


COMMANDS = {
    "chain-id": chain_id_command,
    "supported-entrypoints": supported_entrypoints_command,
    "hash": hash_command,
    "estimate": estimate_command,
    "send": send_command,
    "receipt": receipt_command,
    "wait": wait_command,
    "get": get_command,
}


async def main(cmd_args=sys.argv[1:]) -> int:
    args = parse_args(cmd_args)
    init_logging(args)
    if args.metrics:
        run_metrics_server(port=args.metrics_port)

    config = get_client_config(args)
    transport = RpcTransport(config.bundler_url, config.request_timeout)
    async with transport:
        if args.command == "health":
            is_healthy, results = await check_bundler_health(
                transport, config.chain_id)
            print(json.dumps(results, indent=2))
            return 0 if is_healthy else 1

        try:
            client = await BundlerClient.connect(config, transport)
            output = await COMMANDS[args.command](client, args)
        except (
            BundlerClientException, OSError, json.JSONDecodeError
        ) as excp:
            logging.error(f"{args.command} failed: {excp!r}")
            print(
                json.dumps({
                    "error": type(excp).__name__,
                    "message": str(excp),
                }),
                file=sys.stderr,
            )
            return 1

    print(json.dumps(output, indent=2))
    return 0


def run() -> None:
    sys.exit(uvloop.run(main()))


if __name__ == "__main__":
    run()
