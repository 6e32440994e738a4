import logging

from bundler_client.entrypoint import get_chain_id, get_supported_entrypoints
from bundler_client.exceptions import BundlerClientException
from bundler_client.rpc.transport import RpcTransport


async def check_bundler_health(
    transport: RpcTransport, target_chain_id: int | None = None
) -> tuple[bool, dict]:
    results = dict()
    all_ok = True

    chain_id_ok, message = await check_live_bundler_rpc(
        transport, target_chain_id)
    results["eth_chainId"] = {
        "status": "OK" if chain_id_ok else "ERROR", "message": message}
    all_ok = all_ok and chain_id_ok

    entrypoints_ok, message = await check_supported_entrypoints(transport)
    results["eth_supportedEntryPoints"] = {
        "status": "OK" if entrypoints_ok else "ERROR", "message": message}
    all_ok = all_ok and entrypoints_ok

    if not all_ok:
        logging.critical(f"Bundler {transport.bundler_url} is unhealthy")
    return all_ok, results


async def check_live_bundler_rpc(
    transport: RpcTransport, target_chain_id: int | None
) -> tuple[bool, str]:
    try:
        chain_id = await get_chain_id(transport)
    except BundlerClientException as excp:
        return False, f"eth_chainId failed for {transport.bundler_url}: {excp}"

    if target_chain_id is not None and chain_id != target_chain_id:
        return False, (
            f"Invalid chain id {hex(chain_id)} returned by "
            f"{transport.bundler_url}"
        )
    return True, "eth_chainId successful"


async def check_supported_entrypoints(
    transport: RpcTransport,
) -> tuple[bool, str]:
    try:
        entrypoints = await get_supported_entrypoints(transport)
    except BundlerClientException as excp:
        return False, (
            f"eth_supportedEntryPoints failed for "
            f"{transport.bundler_url}: {excp}"
        )
    return True, ", ".join(str(entrypoint) for entrypoint in entrypoints)
