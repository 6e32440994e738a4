from dataclasses import dataclass
from enum import Enum
from typing import Any

from bundler_client.typing import UserOperationHash


class BundlerClientException(Exception):
    message: str

    def __str__(self) -> str:
        return self.message


class TransportExceptionCode(Enum):
    ConnectionFailed = "connection_failed"
    MalformedResponse = "malformed_response"
    RpcError = "rpc_error"


@dataclass
class TransportException(BundlerClientException):
    exception_code: TransportExceptionCode
    message: str
    rpc_code: int | None = None


class ValidationExceptionCode(Enum):
    InvalidFields = -32602
    SimulateValidation = -32500
    SimulatePaymasterValidation = -32501
    OpcodeValidation = -32502
    ExpiresShortly = -32503
    Reputation = -32504
    InsufficientStake = -32505
    UnsupportedSignatureAggregator = -32506
    InvalidSignature = -32507
    PaymasterDepositTooLow = -32508
    UserOperationReverted = -32521


@dataclass
class ValidationException(BundlerClientException):
    exception_code: ValidationExceptionCode | None
    message: str
    rpc_code: int | None = None
    data: Any = None

    @classmethod
    def from_rpc_error(
        cls, rpc_code: int, message: str, data: Any = None
    ) -> "ValidationException":
        try:
            exception_code = ValidationExceptionCode(rpc_code)
        except ValueError:
            exception_code = None
        return cls(exception_code, message, rpc_code, data)


@dataclass
class ReceiptTimeoutException(BundlerClientException):
    user_operation_hash: UserOperationHash
    timeout: float
    attempts: int

    @property
    def message(self) -> str:
        return (
            f"Timed out after {self.timeout}s ({self.attempts} attempts) "
            f"waiting for receipt of user operation {self.user_operation_hash}"
        )


@dataclass
class NotFoundException(BundlerClientException):
    user_operation_hash: UserOperationHash

    @property
    def message(self) -> str:
        return f"User operation {self.user_operation_hash} not found"


class PreconditionExceptionCode(Enum):
    IncompleteUserOperation = "incomplete_user_operation"
    EntryPointVersionMismatch = "entrypoint_version_mismatch"
    UnsupportedEntryPoint = "unsupported_entrypoint"
    InvalidUserOperationHash = "invalid_user_operation_hash"
    ChainIdMismatch = "chain_id_mismatch"


@dataclass
class PreconditionException(BundlerClientException):
    exception_code: PreconditionExceptionCode
    message: str


@dataclass
class UserOperationHashMismatchException(BundlerClientException):
    local_user_operation_hash: UserOperationHash
    remote_user_operation_hash: str

    @property
    def message(self) -> str:
        return (
            f"Bundler returned user operation hash "
            f"{self.remote_user_operation_hash} but the locally computed "
            f"hash is {self.local_user_operation_hash}"
        )
