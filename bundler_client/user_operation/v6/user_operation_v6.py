from dataclasses import dataclass, replace
from typing import Any, ClassVar

from eth_abi import encode
from eth_utils import keccak

from bundler_client.entrypoint import EntryPointVersion
from bundler_client.typing import Address
from bundler_client.utils.fields import (
    verify_and_get_address, verify_and_get_bytes, verify_and_get_uint,
    verify_bytes, verify_uint)
from ..user_operation import (
    UserOperation, get_optional_bytes, get_optional_uint, hex_or_zero,
    verify_fields_exist)


@dataclass(frozen=True)
class UserOperationV6(UserOperation):
    version: ClassVar[EntryPointVersion] = EntryPointVersion.V06

    sender: Address
    nonce: int
    call_data: bytes
    init_code: bytes = b""
    call_gas_limit: int | None = None
    verification_gas_limit: int | None = None
    pre_verification_gas: int | None = None
    max_fee_per_gas: int = 0
    max_priority_fee_per_gas: int = 0
    paymaster_and_data: bytes = b""
    signature: bytes = b""

    def __post_init__(self):
        object.__setattr__(
            self, "sender", verify_and_get_address("sender", self.sender))
        verify_uint("nonce", self.nonce)
        for field_name in ["init_code", "call_data", "paymaster_and_data",
                           "signature"]:
            object.__setattr__(
                self, field_name,
                verify_bytes(field_name, getattr(self, field_name)))
        for field_name in ["call_gas_limit", "verification_gas_limit",
                           "pre_verification_gas"]:
            value = getattr(self, field_name)
            if value is not None:
                verify_uint(field_name, value)
        verify_uint("max_fee_per_gas", self.max_fee_per_gas)
        verify_uint("max_priority_fee_per_gas", self.max_priority_fee_per_gas)

    @classmethod
    def from_json(cls, json_dict: dict[str, Any]) -> "UserOperationV6":
        verify_fields_exist(json_dict, ["sender", "nonce", "callData"])
        init_code = get_optional_bytes(json_dict, "initCode")
        paymaster_and_data = get_optional_bytes(json_dict, "paymasterAndData")
        signature = get_optional_bytes(json_dict, "signature")
        max_fee_per_gas = get_optional_uint(json_dict, "maxFeePerGas")
        max_priority_fee_per_gas = get_optional_uint(
            json_dict, "maxPriorityFeePerGas")
        return cls(
            sender=verify_and_get_address("sender", json_dict["sender"]),
            nonce=verify_and_get_uint("nonce", json_dict["nonce"]),
            call_data=verify_and_get_bytes("callData", json_dict["callData"]),
            init_code=b"" if init_code is None else init_code,
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
            paymaster_and_data=(
                b"" if paymaster_and_data is None else paymaster_and_data),
            signature=b"" if signature is None else signature,
        )

    def get_user_operation_json(self) -> dict[str, str]:
        return {
            "sender": self.sender,
            "nonce": hex(self.nonce),
            "initCode": "0x" + self.init_code.hex(),
            "callData": "0x" + self.call_data.hex(),
            "callGasLimit": hex_or_zero(self.call_gas_limit),
            "verificationGasLimit": hex_or_zero(self.verification_gas_limit),
            "preVerificationGas": hex_or_zero(self.pre_verification_gas),
            "maxFeePerGas": hex(self.max_fee_per_gas),
            "maxPriorityFeePerGas": hex(self.max_priority_fee_per_gas),
            "paymasterAndData": "0x" + self.paymaster_and_data.hex(),
            "signature": "0x" + self.signature.hex(),
        }

    def to_list(self) -> list[Address | int | bytes]:
        return [
            self.sender,
            self.nonce,
            self.init_code,
            self.call_data,
            self.call_gas_limit or 0,
            self.verification_gas_limit or 0,
            self.pre_verification_gas or 0,
            self.max_fee_per_gas,
            self.max_priority_fee_per_gas,
            self.paymaster_and_data,
            self.signature,
        ]

    def pack_user_operation(self) -> bytes:
        user_operation_list = self.to_list()
        user_operation_list[2] = keccak(user_operation_list[2])  # initCode
        user_operation_list[3] = keccak(user_operation_list[3])  # callData
        user_operation_list[9] = keccak(user_operation_list[9])  # paymasterAndData

        return encode(
            [
                "address",
                "uint256",
                "bytes32",
                "bytes32",
                "uint256",
                "uint256",
                "uint256",
                "uint256",
                "uint256",
                "bytes32",
            ],
            user_operation_list[:-1],
        )

    def get_missing_gas_fields(self) -> list[str]:
        return [
            field_name for field_name in [
                "call_gas_limit",
                "verification_gas_limit",
                "pre_verification_gas",
            ]
            if getattr(self, field_name) is None
        ]

    def with_gas_estimate(self, gas_estimate) -> "UserOperationV6":
        return replace(
            self,
            call_gas_limit=gas_estimate.call_gas_limit,
            verification_gas_limit=gas_estimate.verification_gas_limit,
            pre_verification_gas=gas_estimate.pre_verification_gas,
        )
