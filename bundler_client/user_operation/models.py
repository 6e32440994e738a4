from dataclasses import dataclass
from typing import Any, TypeVar

from bundler_client.entrypoint import EntryPoint, EntryPointVersion
from bundler_client.exceptions import (
    PreconditionException, PreconditionExceptionCode)
from bundler_client.rpc.jsonrpc import (
    get_rpc_field, load_rpc_address, load_rpc_uint, malformed_response)
from bundler_client.typing import (
    Address, BlockHash, TransactionHash, UserOperationHash)
from bundler_client.user_operation.user_operation import UserOperation
from bundler_client.user_operation.v6.user_operation_v6 import UserOperationV6
from bundler_client.user_operation.v7.user_operation_v7 import UserOperationV7

UserOperationType = TypeVar(
    'UserOperationType', UserOperationV6, UserOperationV7)

USER_OPERATION_CLASSES: dict[EntryPointVersion, type[UserOperation]] = {
    EntryPointVersion.V06: UserOperationV6,
    EntryPointVersion.V07: UserOperationV7,
}


def get_user_operation_hash(
    user_operation: UserOperation, entrypoint: EntryPoint, chain_id: int
) -> UserOperationHash:
    if user_operation.version != entrypoint.version:
        raise PreconditionException(
            PreconditionExceptionCode.EntryPointVersionMismatch,
            f"{user_operation.version} user operation can't be used with "
            f"entry point {entrypoint}",
        )
    return user_operation.get_user_operation_hash(
        entrypoint.address, chain_id)


def load_optional_rpc_uint(field_name: str, value: Any) -> int | None:
    if value is None:
        return None
    return load_rpc_uint(field_name, value)


def load_rpc_str(field_name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise malformed_response(f"Invalid {field_name} value: {value}")
    return value


@dataclass(frozen=True)
class GasEstimate:
    pre_verification_gas: int
    verification_gas_limit: int
    call_gas_limit: int
    paymaster_verification_gas_limit: int | None = None
    paymaster_post_op_gas_limit: int | None = None

    def to_json(self) -> dict[str, str | None]:
        return {
            "preVerificationGas": hex(self.pre_verification_gas),
            "verificationGasLimit": hex(self.verification_gas_limit),
            "callGasLimit": hex(self.call_gas_limit),
            "paymasterVerificationGasLimit":
            None if self.paymaster_verification_gas_limit is None
            else hex(self.paymaster_verification_gas_limit),
            "paymasterPostOpGasLimit":
            None if self.paymaster_post_op_gas_limit is None
            else hex(self.paymaster_post_op_gas_limit),
        }


@dataclass(frozen=True)
class Log:
    address: Address
    topics: list[str]
    data: str
    block_number: int | None
    transaction_hash: TransactionHash | None
    log_index: int | None

    @classmethod
    def from_json(cls, log_json: Any) -> "Log":
        topics = get_rpc_field(log_json, "topics", "log")
        if not isinstance(topics, list):
            raise malformed_response(f"Invalid log topics: {topics}")
        return cls(
            address=load_rpc_address(
                "address", get_rpc_field(log_json, "address", "log")),
            topics=[load_rpc_str("topic", topic) for topic in topics],
            data=load_rpc_str("data", get_rpc_field(log_json, "data", "log")),
            block_number=load_optional_rpc_uint(
                "blockNumber", log_json.get("blockNumber")),
            transaction_hash=log_json.get("transactionHash"),
            log_index=load_optional_rpc_uint(
                "logIndex", log_json.get("logIndex")),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "topics": self.topics,
            "data": self.data,
            "blockNumber":
            None if self.block_number is None else hex(self.block_number),
            "transactionHash": self.transaction_hash,
            "logIndex": None if self.log_index is None else hex(self.log_index),
        }


def load_logs(logs_json: Any) -> list[Log]:
    if logs_json is None:
        return []
    if not isinstance(logs_json, list):
        raise malformed_response(f"Invalid logs value: {logs_json}")
    return [Log.from_json(log) for log in logs_json]


@dataclass(frozen=True)
class ReceiptInfo:
    transaction_hash: TransactionHash
    transaction_index: int | None
    block_hash: BlockHash
    block_number: int
    from_address: Address | None
    to_address: Address | None
    cumulative_gas_used: int | None
    gas_used: int | None
    status: int | None
    effective_gas_price: int | None
    logs: list[Log]

    @classmethod
    def from_json(cls, receipt_json: Any) -> "ReceiptInfo":
        transaction_hash = get_rpc_field(
            receipt_json, "transactionHash", "receipt")
        block_hash = get_rpc_field(receipt_json, "blockHash", "receipt")
        from_address = receipt_json.get("from")
        to_address = receipt_json.get("to")
        return cls(
            transaction_hash=TransactionHash(
                load_rpc_str("transactionHash", transaction_hash)),
            transaction_index=load_optional_rpc_uint(
                "transactionIndex", receipt_json.get("transactionIndex")),
            block_hash=BlockHash(load_rpc_str("blockHash", block_hash)),
            block_number=load_rpc_uint(
                "blockNumber",
                get_rpc_field(receipt_json, "blockNumber", "receipt")),
            from_address=(
                None if from_address is None
                else load_rpc_address("from", from_address)
            ),
            to_address=(
                None if to_address is None
                else load_rpc_address("to", to_address)
            ),
            cumulative_gas_used=load_optional_rpc_uint(
                "cumulativeGasUsed", receipt_json.get("cumulativeGasUsed")),
            gas_used=load_optional_rpc_uint(
                "gasUsed", receipt_json.get("gasUsed")),
            status=load_optional_rpc_uint(
                "status", receipt_json.get("status")),
            effective_gas_price=load_optional_rpc_uint(
                "effectiveGasPrice", receipt_json.get("effectiveGasPrice")),
            logs=load_logs(receipt_json.get("logs")),
        )

    def to_json(self) -> dict[str, Any]:
        receipt_info_json = {
            "transactionHash": self.transaction_hash,
            "blockHash": self.block_hash,
            "blockNumber": hex(self.block_number),
            "from": self.from_address,
            "to": self.to_address,
            "logs": [log.to_json() for log in self.logs],
        }
        for key, value in [
            ("transactionIndex", self.transaction_index),
            ("cumulativeGasUsed", self.cumulative_gas_used),
            ("gasUsed", self.gas_used),
            ("status", self.status),
            ("effectiveGasPrice", self.effective_gas_price),
        ]:
            if value is not None:
                receipt_info_json[key] = hex(value)
        return receipt_info_json


@dataclass(frozen=True)
class UserOperationReceiptInfo:
    user_operation_hash: UserOperationHash
    entrypoint: Address | None
    sender: Address
    nonce: int
    paymaster: Address | None
    actual_gas_cost: int
    actual_gas_used: int
    success: bool
    reason: str | None
    logs: list[Log]
    receipt: ReceiptInfo

    @classmethod
    def from_json(cls, receipt_json: Any) -> "UserOperationReceiptInfo":
        parent = "user operation receipt"
        success = get_rpc_field(receipt_json, "success", parent)
        if not isinstance(success, bool):
            raise malformed_response(f"Invalid success value: {success}")
        entrypoint = receipt_json.get("entryPoint")
        paymaster = receipt_json.get("paymaster")
        reason = receipt_json.get("reason")
        return cls(
            user_operation_hash=UserOperationHash(load_rpc_str(
                "userOpHash",
                get_rpc_field(receipt_json, "userOpHash", parent))),
            entrypoint=(
                None if entrypoint is None
                else load_rpc_address("entryPoint", entrypoint)
            ),
            sender=load_rpc_address(
                "sender", get_rpc_field(receipt_json, "sender", parent)),
            nonce=load_rpc_uint(
                "nonce", get_rpc_field(receipt_json, "nonce", parent)),
            paymaster=(
                None if paymaster is None
                else load_rpc_address("paymaster", paymaster)
            ),
            actual_gas_cost=load_rpc_uint(
                "actualGasCost",
                get_rpc_field(receipt_json, "actualGasCost", parent)),
            actual_gas_used=load_rpc_uint(
                "actualGasUsed",
                get_rpc_field(receipt_json, "actualGasUsed", parent)),
            success=success,
            reason=None if reason is None else load_rpc_str("reason", reason),
            logs=load_logs(receipt_json.get("logs")),
            receipt=ReceiptInfo.from_json(
                get_rpc_field(receipt_json, "receipt", parent)),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "userOpHash": self.user_operation_hash,
            "entryPoint": self.entrypoint,
            "sender": self.sender,
            "nonce": hex(self.nonce),
            "paymaster": self.paymaster,
            "actualGasCost": hex(self.actual_gas_cost),
            "actualGasUsed": hex(self.actual_gas_used),
            "success": self.success,
            "reason": self.reason,
            "logs": [log.to_json() for log in self.logs],
            "receipt": self.receipt.to_json(),
        }


@dataclass(frozen=True)
class UserOperationByHash:
    user_operation: UserOperation
    entrypoint: Address
    transaction_hash: TransactionHash | None
    block_number: int | None
    block_hash: BlockHash | None

    def to_json(self) -> dict[str, Any]:
        return {
            "userOperation": self.user_operation.get_user_operation_json(),
            "entryPoint": self.entrypoint,
            "transactionHash": self.transaction_hash,
            "blockNumber":
            None if self.block_number is None else hex(self.block_number),
            "blockHash": self.block_hash,
        }
