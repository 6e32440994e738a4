from dataclasses import dataclass, replace
from typing import Any, ClassVar

from eth_abi import encode
from eth_utils import keccak

from bundler_client.entrypoint import EntryPointVersion
from bundler_client.exceptions import \
    ValidationException, ValidationExceptionCode
from bundler_client.typing import Address
from bundler_client.utils.fields import (
    UINT128_MAX, verify_and_get_address, verify_and_get_bytes,
    verify_and_get_uint, verify_bytes, verify_uint)
from ..user_operation import (
    UserOperation, get_optional_bytes, get_optional_uint, hex_or_zero,
    verify_fields_exist)

# packed into 16 bytes each by the v0.7 entry point
UINT128_FIELDS = [
    "call_gas_limit",
    "verification_gas_limit",
    "pre_verification_gas",
    "max_fee_per_gas",
    "max_priority_fee_per_gas",
    "paymaster_verification_gas_limit",
    "paymaster_post_op_gas_limit",
]


@dataclass(frozen=True)
class UserOperationV7(UserOperation):
    version: ClassVar[EntryPointVersion] = EntryPointVersion.V07

    sender: Address
    nonce: int
    call_data: bytes
    factory: Address | None = None
    factory_data: bytes | None = None
    call_gas_limit: int | None = None
    verification_gas_limit: int | None = None
    pre_verification_gas: int | None = None
    max_fee_per_gas: int = 0
    max_priority_fee_per_gas: int = 0
    paymaster: Address | None = None
    paymaster_verification_gas_limit: int | None = None
    paymaster_post_op_gas_limit: int | None = None
    paymaster_data: bytes | None = None
    signature: bytes = b""

    def __post_init__(self):
        object.__setattr__(
            self, "sender", verify_and_get_address("sender", self.sender))
        verify_uint("nonce", self.nonce)
        object.__setattr__(
            self, "call_data", verify_bytes("call_data", self.call_data))
        object.__setattr__(
            self, "signature", verify_bytes("signature", self.signature))
        for field_name in UINT128_FIELDS:
            value = getattr(self, field_name)
            if value is not None:
                verify_uint(field_name, value, UINT128_MAX)

        if self.factory is not None:
            object.__setattr__(
                self, "factory",
                verify_and_get_address("factory", self.factory))
            object.__setattr__(
                self, "factory_data",
                b"" if self.factory_data is None
                else verify_bytes("factory_data", self.factory_data))
        elif self.factory_data is not None:
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                'Invalid UserOperation, '
                '"factoryData" has to be null if "factory" is null',
            )

        if self.paymaster is not None:
            object.__setattr__(
                self, "paymaster",
                verify_and_get_address("paymaster", self.paymaster))
            object.__setattr__(
                self, "paymaster_data",
                b"" if self.paymaster_data is None
                else verify_bytes("paymaster_data", self.paymaster_data))
        elif (
            self.paymaster_verification_gas_limit is not None or
            self.paymaster_post_op_gas_limit is not None or
            self.paymaster_data is not None
        ):
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                "Invalid UserOperation, "
                '"paymasterVerificationGasLimit", "paymasterPostOpGasLimit" '
                'and "paymasterData" have to be null if "paymaster" is null',
            )

    @classmethod
    def from_json(cls, json_dict: dict[str, Any]) -> "UserOperationV7":
        verify_fields_exist(json_dict, ["sender", "nonce", "callData"])

        factory = json_dict.get("factory")
        paymaster = json_dict.get("paymaster")
        signature = get_optional_bytes(json_dict, "signature")
        max_fee_per_gas = get_optional_uint(json_dict, "maxFeePerGas")
        max_priority_fee_per_gas = get_optional_uint(
            json_dict, "maxPriorityFeePerGas")
        return cls(
            sender=verify_and_get_address("sender", json_dict["sender"]),
            nonce=verify_and_get_uint("nonce", json_dict["nonce"]),
            call_data=verify_and_get_bytes("callData", json_dict["callData"]),
            factory=(
                None if factory is None
                else verify_and_get_address("factory", factory)
            ),
            factory_data=get_optional_bytes(json_dict, "factoryData"),
            call_gas_limit=get_optional_uint(json_dict, "callGasLimit"),
            verification_gas_limit=get_optional_uint(
                json_dict, "verificationGasLimit"),
            pre_verification_gas=get_optional_uint(
                json_dict, "preVerificationGas"),
            max_fee_per_gas=0 if max_fee_per_gas is None else max_fee_per_gas,
            max_priority_fee_per_gas=(
                0 if max_priority_fee_per_gas is None
                else max_priority_fee_per_gas
            ),
            paymaster=(
                None if paymaster is None
                else verify_and_get_address("paymaster", paymaster)
            ),
            paymaster_verification_gas_limit=get_optional_uint(
                json_dict, "paymasterVerificationGasLimit"),
            paymaster_post_op_gas_limit=get_optional_uint(
                json_dict, "paymasterPostOpGasLimit"),
            paymaster_data=get_optional_bytes(json_dict, "paymasterData"),
            signature=b"" if signature is None else signature,
        )

    def get_user_operation_json(self) -> dict[str, str]:
        user_operation_json = {
            "sender": self.sender,
            "nonce": hex(self.nonce),
            "callData": "0x" + self.call_data.hex(),
            "callGasLimit": hex_or_zero(self.call_gas_limit),
            "verificationGasLimit": hex_or_zero(self.verification_gas_limit),
            "preVerificationGas": hex_or_zero(self.pre_verification_gas),
            "maxFeePerGas": hex(self.max_fee_per_gas),
            "maxPriorityFeePerGas": hex(self.max_priority_fee_per_gas),
            "signature": "0x" + self.signature.hex(),
        }
        if self.factory is not None:
            user_operation_json["factory"] = self.factory
            user_operation_json["factoryData"] = (
                "0x" + self.factory_data.hex())  # type: ignore
        if self.paymaster is not None:
            user_operation_json["paymaster"] = self.paymaster
            user_operation_json["paymasterVerificationGasLimit"] = hex_or_zero(
                self.paymaster_verification_gas_limit)
            user_operation_json["paymasterPostOpGasLimit"] = hex_or_zero(
                self.paymaster_post_op_gas_limit)
            user_operation_json["paymasterData"] = (
                "0x" + self.paymaster_data.hex())  # type: ignore
        return user_operation_json

    def to_list(self) -> list[Address | int | bytes]:
        if self.factory is None:
            init_code = bytes(0)
        else:
            init_code = (
                bytes.fromhex(self.factory[2:]) +
                self.factory_data  # type: ignore
            )
        account_gas_limits = (
            (self.verification_gas_limit or 0).to_bytes(16) +
            (self.call_gas_limit or 0).to_bytes(16)
        )

        gas_fees = (
            self.max_priority_fee_per_gas.to_bytes(16) +
            self.max_fee_per_gas.to_bytes(16)
        )

        if self.paymaster is None:
            paymaster_and_data = bytes(0)
        else:
            paymaster_and_data = (
                bytes.fromhex(self.paymaster[2:]) +
                (self.paymaster_verification_gas_limit or 0).to_bytes(16) +
                (self.paymaster_post_op_gas_limit or 0).to_bytes(16) +
                self.paymaster_data  # type: ignore
            )

        return [
            self.sender,
            self.nonce,
            init_code,
            self.call_data,
            account_gas_limits,
            self.pre_verification_gas or 0,
            gas_fees,
            paymaster_and_data,
            self.signature
        ]

    def pack_user_operation(self) -> bytes:
        user_operation_list = self.to_list()
        user_operation_list[2] = keccak(user_operation_list[2])  # initCode
        user_operation_list[3] = keccak(user_operation_list[3])  # callData
        user_operation_list[7] = keccak(user_operation_list[7])  # paymasterAndData

        return encode(
            [
                "address",
                "uint256",
                "bytes32",
                "bytes32",
                "bytes32",
                "uint256",
                "bytes32",
                "bytes32",
            ],
            user_operation_list[:-1],
        )

    def get_missing_gas_fields(self) -> list[str]:
        gas_fields = [
            "call_gas_limit",
            "verification_gas_limit",
            "pre_verification_gas",
        ]
        if self.paymaster is not None:
            gas_fields += [
                "paymaster_verification_gas_limit",
                "paymaster_post_op_gas_limit",
            ]
        return [
            field_name for field_name in gas_fields
            if getattr(self, field_name) is None
        ]

    def with_gas_estimate(self, gas_estimate) -> "UserOperationV7":
        user_operation = replace(
            self,
            call_gas_limit=gas_estimate.call_gas_limit,
            verification_gas_limit=gas_estimate.verification_gas_limit,
            pre_verification_gas=gas_estimate.pre_verification_gas,
        )
        if self.paymaster is None:
            return user_operation
        return replace(
            user_operation,
            paymaster_verification_gas_limit=(
                gas_estimate.paymaster_verification_gas_limit),
            paymaster_post_op_gas_limit=(
                gas_estimate.paymaster_post_op_gas_limit),
        )
