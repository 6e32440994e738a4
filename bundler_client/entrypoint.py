import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from bundler_client.exceptions import (
    PreconditionException, PreconditionExceptionCode)
from bundler_client.rpc.jsonrpc import (
    load_rpc_address, load_rpc_uint, malformed_response)
from bundler_client.rpc.transport import RpcMethod, RpcTransport
from bundler_client.typing import Address
from bundler_client.utils.fields import verify_and_get_address


class EntryPointVersion(Enum):
    V06 = "v0.6"
    V07 = "v0.7"

    def __str__(self):
        return self.value


ENTRYPOINT_V06_ADDRESS = Address("0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789")
ENTRYPOINT_V07_ADDRESS = Address("0x0000000071727De22E5E9d8BAf0edAc6f37da032")

CANONICAL_ENTRYPOINT_VERSIONS: dict[str, EntryPointVersion] = {
    ENTRYPOINT_V06_ADDRESS.lower(): EntryPointVersion.V06,
    ENTRYPOINT_V07_ADDRESS.lower(): EntryPointVersion.V07,
}


@dataclass(frozen=True)
class EntryPoint:
    address: Address
    version: EntryPointVersion

    def __post_init__(self):
        object.__setattr__(
            self, "address",
            verify_and_get_address("entrypoint", self.address))

    def is_address(self, address: str) -> bool:
        return isinstance(address, str) and address.lower() == self.address.lower()

    def __str__(self):
        return f"{self.address} ({self.version})"


def get_entrypoint_version(
    address: str,
    entrypoint_versions: dict[str, EntryPointVersion] | None = None,
    default: EntryPointVersion | None = EntryPointVersion.V07,
) -> EntryPointVersion | None:
    """
    Version of the entry point at address: caller overrides first,
    then the canonical deployments. Anything else gets the default.
    """
    if entrypoint_versions is not None:
        for override_address, version in entrypoint_versions.items():
            if override_address.lower() == address.lower():
                return version
    return CANONICAL_ENTRYPOINT_VERSIONS.get(address.lower(), default)


async def get_supported_entrypoints(
    transport: RpcTransport,
    entrypoint_versions: dict[str, EntryPointVersion] | None = None,
) -> list[EntryPoint]:
    result = await transport.call(RpcMethod.SupportedEntryPoints, [])
    if not isinstance(result, list):
        raise malformed_response(
            f"eth_supportedEntryPoints returned a non list value: {result}")
    if len(result) == 0:
        raise malformed_response(
            "eth_supportedEntryPoints returned no entry points")

    entrypoints = []
    for entrypoint_address in result:
        address = load_rpc_address("entrypoint", entrypoint_address)
        entrypoints.append(
            EntryPoint(address, get_entrypoint_version(
                address, entrypoint_versions))
        )
    return entrypoints


async def get_chain_id(transport: RpcTransport) -> int:
    result = await transport.call(RpcMethod.ChainId, [])
    return load_rpc_uint("chainId", result)


@dataclass(frozen=True)
class EntryPointRegistry:
    """
    Chain id and supported entry points of a bundler, fetched once.
    """
    chain_id: int
    entrypoints: tuple[EntryPoint, ...]

    @classmethod
    async def load(
        cls,
        transport: RpcTransport,
        expected_chain_id: int | None = None,
        entrypoint_versions: dict[str, EntryPointVersion] | None = None,
    ) -> "EntryPointRegistry":
        results = await asyncio.gather(
            get_chain_id(transport),
            get_supported_entrypoints(transport, entrypoint_versions),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        chain_id, entrypoints = results
        if expected_chain_id is not None and chain_id != expected_chain_id:
            raise PreconditionException(
                PreconditionExceptionCode.ChainIdMismatch,
                f"Bundler chain id {chain_id} does not match "
                f"expected chain id {expected_chain_id}",
            )
        logging.info(
            f"Bundler chain id {chain_id}, supported entry points: "
            + ", ".join(str(entrypoint) for entrypoint in entrypoints)
        )
        return cls(chain_id, tuple(entrypoints))

    def get(self, address: str) -> EntryPoint:
        entrypoint = self.find(address)
        if entrypoint is not None:
            return entrypoint
        raise PreconditionException(
            PreconditionExceptionCode.UnsupportedEntryPoint,
            f"Entry point {address} is not supported by the bundler",
        )

    def get_for_version(self, version: EntryPointVersion) -> EntryPoint:
        for entrypoint in self.entrypoints:
            if entrypoint.version == version:
                return entrypoint
        raise PreconditionException(
            PreconditionExceptionCode.UnsupportedEntryPoint,
            f"The bundler supports no {version} entry point",
        )

    def find(self, address: str) -> EntryPoint | None:
        for entrypoint in self.entrypoints:
            if entrypoint.is_address(address):
                return entrypoint
        return None
