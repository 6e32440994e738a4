import logging
from typing import Any

from bundler_client.entrypoint import (
    EntryPoint, EntryPointRegistry, EntryPointVersion,
    get_entrypoint_version)
from bundler_client.exceptions import (
    NotFoundException, PreconditionException, PreconditionExceptionCode,
    UserOperationHashMismatchException, ValidationException)
from bundler_client.metrics.metrics import USER_OPERATIONS_SENT
from bundler_client.rpc.jsonrpc import (
    get_rpc_field, load_rpc_address, load_rpc_uint, malformed_response)
from bundler_client.rpc.transport import RpcMethod, RpcTransport
from bundler_client.typing import (
    BlockHash, TransactionHash, UserOperationHash)
from bundler_client.user_operation.models import (
    USER_OPERATION_CLASSES, UserOperationByHash, UserOperationReceiptInfo,
    UserOperationType, get_user_operation_hash)
from bundler_client.user_operation.user_operation import UserOperation
from bundler_client.utils.fields import is_user_operation_hash


def verify_user_operation_hash(user_operation_hash: str) -> UserOperationHash:
    if not is_user_operation_hash(user_operation_hash):
        raise PreconditionException(
            PreconditionExceptionCode.InvalidUserOperationHash,
            f"Invalid user operation hash : {user_operation_hash}",
        )
    return UserOperationHash(user_operation_hash)


class UserOperationHandler:
    transport: RpcTransport
    registry: EntryPointRegistry
    entrypoint_versions: dict[str, EntryPointVersion] | None

    def __init__(
        self,
        transport: RpcTransport,
        registry: EntryPointRegistry,
        entrypoint_versions: dict[str, EntryPointVersion] | None = None,
    ) -> None:
        self.transport = transport
        self.registry = registry
        self.entrypoint_versions = entrypoint_versions

    async def send_user_operation(
        self,
        user_operation: UserOperationType,
        entrypoint: EntryPoint,
        verify_hash: bool = True,
    ) -> UserOperationHash:
        """
        Submit a signed, fully populated user operation.

        Nothing is sent when the operation is incomplete or built for
        another entry point version. The hash returned by the bundler is
        checked against the locally computed one.
        """
        if not user_operation.is_complete():
            missing_gas_fields = user_operation.get_missing_gas_fields()
            raise PreconditionException(
                PreconditionExceptionCode.IncompleteUserOperation,
                "UserOperation gas fields are not populated: "
                + ", ".join(missing_gas_fields)
                if missing_gas_fields
                else "UserOperation is not signed",
            )
        local_user_operation_hash = get_user_operation_hash(
            user_operation, entrypoint, self.registry.chain_id)

        result = await self.transport.call(
            RpcMethod.SendUserOperation,
            [user_operation.get_user_operation_json(), entrypoint.address],
        )
        if not is_user_operation_hash(result):
            raise malformed_response(
                f"eth_sendUserOperation returned {result}")
        if verify_hash and result.lower() != local_user_operation_hash.lower():
            raise UserOperationHashMismatchException(
                local_user_operation_hash, result)

        USER_OPERATIONS_SENT.labels(entrypoint.version.value).inc()
        logging.info(
            f"User operation {result} from {user_operation.sender} "
            f"sent to entry point {entrypoint.address}"
        )
        return UserOperationHash(result)

    async def get_user_operation_receipt(
        self, user_operation_hash: str
    ) -> UserOperationReceiptInfo | None:
        user_operation_hash = verify_user_operation_hash(user_operation_hash)
        result = await self.transport.call(
            RpcMethod.GetUserOperationReceipt, [user_operation_hash])
        if result is None:
            return None
        return UserOperationReceiptInfo.from_json(result)

    async def get_user_operation_by_hash(
        self, user_operation_hash: str
    ) -> UserOperationByHash:
        user_operation_hash = verify_user_operation_hash(user_operation_hash)
        result = await self.transport.call(
            RpcMethod.GetUserOperationByHash, [user_operation_hash])
        if result is None:
            raise NotFoundException(user_operation_hash)

        parent = "eth_getUserOperationByHash result"
        entrypoint_address = load_rpc_address(
            "entryPoint", get_rpc_field(result, "entryPoint", parent))
        user_operation_json = get_rpc_field(result, "userOperation", parent)
        user_operation = self.load_user_operation(
            user_operation_json, entrypoint_address)

        transaction_hash = result.get("transactionHash")
        block_number = result.get("blockNumber")
        block_hash = result.get("blockHash")
        return UserOperationByHash(
            user_operation=user_operation,
            entrypoint=entrypoint_address,
            transaction_hash=(
                None if transaction_hash is None
                else TransactionHash(transaction_hash)
            ),
            block_number=(
                None if block_number is None
                else load_rpc_uint("blockNumber", block_number)
            ),
            block_hash=None if block_hash is None else BlockHash(block_hash),
        )

    def get_entrypoint_version(
        self, entrypoint_address: str, user_operation_json: Any
    ) -> EntryPointVersion:
        entrypoint = self.registry.find(entrypoint_address)
        if entrypoint is not None:
            return entrypoint.version
        version = get_entrypoint_version(
            entrypoint_address, self.entrypoint_versions, default=None)
        if version is not None:
            return version
        # unknown entry point, fall back to the field set
        if (
            isinstance(user_operation_json, dict) and
            "initCode" in user_operation_json
        ):
            return EntryPointVersion.V06
        return EntryPointVersion.V07

    def load_user_operation(
        self, user_operation_json: Any, entrypoint_address: str
    ) -> UserOperation:
        version = self.get_entrypoint_version(
            entrypoint_address, user_operation_json)
        try:
            return USER_OPERATION_CLASSES[version].from_json(
                user_operation_json)
        except ValidationException as excp:
            raise malformed_response(
                f"Invalid userOperation in response: {excp.message}"
            ) from excp
