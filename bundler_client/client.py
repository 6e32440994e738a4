from dataclasses import dataclass, field
from typing import Any

from bundler_client.entrypoint import (
    EntryPoint, EntryPointRegistry, EntryPointVersion,
    get_chain_id, get_supported_entrypoints)
from bundler_client.exceptions import (
    PreconditionException, PreconditionExceptionCode)
from bundler_client.gas.gas_estimator import GasEstimator
from bundler_client.receipt.receipt_poller import (
    DEFAULT_POLL_INTERVAL, DEFAULT_RECEIPT_TIMEOUT, ReceiptPoller)
from bundler_client.rpc.transport import DEFAULT_REQUEST_TIMEOUT, RpcTransport
from bundler_client.typing import UserOperationHash
from bundler_client.user_operation.models import (
    GasEstimate, UserOperationByHash, UserOperationReceiptInfo,
    UserOperationType, get_user_operation_hash)
from bundler_client.user_operation.user_operation_handler import (
    UserOperationHandler, verify_user_operation_hash)


@dataclass()
class BundlerClientConfig:
    bundler_url: str
    chain_id: int | None = None
    poll_interval: float = DEFAULT_POLL_INTERVAL
    receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    entrypoint_versions: dict[str, EntryPointVersion] = field(
        default_factory=dict)


class BundlerClient:
    """
    ERC-4337 bundler client bound to one endpoint.

    connect() loads the chain id and the supported entry points once;
    they are read only afterwards. Entry point arguments take an
    EntryPoint, an address, or None for the first supported entry point
    of the user operation's version.
    """
    config: BundlerClientConfig
    transport: RpcTransport
    registry: EntryPointRegistry
    gas_estimator: GasEstimator
    user_operation_handler: UserOperationHandler

    def __init__(
        self,
        config: BundlerClientConfig,
        registry: EntryPointRegistry,
        transport: RpcTransport | None = None,
    ) -> None:
        self.config = config
        if transport is None:
            transport = RpcTransport(
                config.bundler_url, config.request_timeout)
        self.transport = transport
        self.registry = registry
        self.gas_estimator = GasEstimator(transport)
        self.user_operation_handler = UserOperationHandler(
            transport, registry, config.entrypoint_versions)

    @classmethod
    async def connect(
        cls,
        config: BundlerClientConfig,
        transport: RpcTransport | None = None,
    ) -> "BundlerClient":
        if transport is None:
            transport = RpcTransport(
                config.bundler_url, config.request_timeout)
        registry = await EntryPointRegistry.load(
            transport, config.chain_id, config.entrypoint_versions)
        return cls(config, registry, transport)

    async def __aenter__(self) -> "BundlerClient":
        await self.transport.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self.transport.close()

    @property
    def chain_id(self) -> int:
        return self.registry.chain_id

    @property
    def entrypoints(self) -> tuple[EntryPoint, ...]:
        return self.registry.entrypoints

    async def supported_entrypoints(self) -> list[EntryPoint]:
        return await get_supported_entrypoints(
            self.transport, self.config.entrypoint_versions)

    async def get_chain_id(self) -> int:
        return await get_chain_id(self.transport)

    def resolve_entrypoint(
        self,
        user_operation: UserOperationType,
        entrypoint: EntryPoint | str | None = None,
    ) -> EntryPoint:
        if entrypoint is None:
            return self.registry.get_for_version(user_operation.version)
        if isinstance(entrypoint, EntryPoint):
            entrypoint = self.registry.get(entrypoint.address)
        else:
            entrypoint = self.registry.get(entrypoint)
        if entrypoint.version != user_operation.version:
            raise PreconditionException(
                PreconditionExceptionCode.EntryPointVersionMismatch,
                f"{user_operation.version} user operation can't be used with "
                f"entry point {entrypoint}",
            )
        return entrypoint

    def get_user_operation_hash(
        self,
        user_operation: UserOperationType,
        entrypoint: EntryPoint | str | None = None,
    ) -> UserOperationHash:
        return get_user_operation_hash(
            user_operation,
            self.resolve_entrypoint(user_operation, entrypoint),
            self.chain_id,
        )

    async def estimate_user_operation_gas(
        self,
        user_operation: UserOperationType,
        entrypoint: EntryPoint | str | None = None,
        state_override: dict[str, Any] | None = None,
    ) -> GasEstimate:
        return await self.gas_estimator.estimate(
            user_operation,
            self.resolve_entrypoint(user_operation, entrypoint),
            state_override,
        )

    async def prepare_user_operation(
        self,
        user_operation: UserOperationType,
        entrypoint: EntryPoint | str | None = None,
        state_override: dict[str, Any] | None = None,
    ) -> UserOperationType:
        return await self.gas_estimator.prepare(
            user_operation,
            self.resolve_entrypoint(user_operation, entrypoint),
            state_override,
        )

    async def send_user_operation(
        self,
        user_operation: UserOperationType,
        entrypoint: EntryPoint | str | None = None,
        verify_hash: bool = True,
    ) -> UserOperationHash:
        return await self.user_operation_handler.send_user_operation(
            user_operation,
            self.resolve_entrypoint(user_operation, entrypoint),
            verify_hash,
        )

    async def get_user_operation_receipt(
        self, user_operation_hash: str
    ) -> UserOperationReceiptInfo | None:
        return await self.user_operation_handler.get_user_operation_receipt(
            user_operation_hash)

    async def wait_for_user_operation_receipt(
        self,
        user_operation_hash: str,
        timeout: float | None = None,
        poll_interval: float | None = None,
    ) -> UserOperationReceiptInfo:
        poller = ReceiptPoller(
            self.user_operation_handler.get_user_operation_receipt,
            verify_user_operation_hash(user_operation_hash),
            timeout=self.config.receipt_timeout if timeout is None else timeout,
            poll_interval=(
                self.config.poll_interval if poll_interval is None
                else poll_interval
            ),
        )
        return await poller.run()

    async def get_user_operation_by_hash(
        self, user_operation_hash: str
    ) -> UserOperationByHash:
        return await self.user_operation_handler.get_user_operation_by_hash(
            user_operation_hash)
