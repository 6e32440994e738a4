from abc import ABC, abstractmethod
from dataclasses import fields, replace
from typing import Any, ClassVar

from eth_abi import encode
from eth_utils import keccak

from bundler_client.entrypoint import EntryPointVersion
from bundler_client.exceptions import \
    ValidationException, ValidationExceptionCode
from bundler_client.typing import Address, UserOperationHash
from bundler_client.utils.fields import \
    verify_and_get_bytes, verify_and_get_uint


class UserOperation(ABC):
    """
    Fields shared by every entry point version.

    Concrete versions are frozen dataclasses. Gas limits set to None are
    not populated yet; they are sent as 0x0 and hashed as 0.
    """
    version: ClassVar[EntryPointVersion]
    sender: Address
    nonce: int
    call_data: bytes
    call_gas_limit: int | None
    verification_gas_limit: int | None
    pre_verification_gas: int | None
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    signature: bytes

    @classmethod
    @abstractmethod
    def from_json(cls, json_dict: dict[str, Any]) -> "UserOperation":
        pass

    @abstractmethod
    def get_user_operation_json(self) -> dict[str, str]:
        pass

    @abstractmethod
    def to_list(self) -> list[Address | int | bytes]:
        pass

    @abstractmethod
    def pack_user_operation(self) -> bytes:
        pass

    @abstractmethod
    def get_missing_gas_fields(self) -> list[str]:
        pass

    @abstractmethod
    def with_gas_estimate(self, gas_estimate) -> "UserOperation":
        pass

    def is_complete(self) -> bool:
        return len(self.signature) > 0 and not self.get_missing_gas_fields()

    def get_user_operation_hash(
        self, entrypoint_address: Address, chain_id: int
    ) -> UserOperationHash:
        packed_user_operation = keccak(self.pack_user_operation())

        encoded_user_operation_hash = encode(
            ["(bytes32,address,uint256)"],
            [[packed_user_operation, entrypoint_address, chain_id]],
        )
        return UserOperationHash(
            "0x" + keccak(encoded_user_operation_hash).hex())

    def with_signature(self, signature: bytes) -> "UserOperation":
        return replace(self, signature=signature)

    def mismatched_fields(self, other: "UserOperation") -> list[str]:
        if type(other) is not type(self):
            return [field.name for field in fields(self)]
        return [
            field.name for field in fields(self)
            if getattr(self, field.name) != getattr(other, field.name)
        ]


def get_optional_uint(
    json_dict: dict[str, Any], field_name: str
) -> int | None:
    value = json_dict.get(field_name)
    if value is None:
        return None
    return verify_and_get_uint(field_name, value)


def get_optional_bytes(
    json_dict: dict[str, Any], field_name: str
) -> bytes | None:
    value = json_dict.get(field_name)
    if value is None:
        return None
    return verify_and_get_bytes(field_name, value)


def verify_fields_exist(
    json_dict: dict[str, Any], required_fields_list: list[str]
) -> None:
    if not isinstance(json_dict, dict):
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            "Invalid UserOperation",
        )
    for field in required_fields_list:
        if field not in json_dict:
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                f"UserOperation missing {field} field",
            )


def hex_or_zero(value: int | None) -> str:
    return hex(0 if value is None else value)
