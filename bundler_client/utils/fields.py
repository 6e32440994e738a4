import re

from eth_utils import to_checksum_address

from bundler_client.exceptions import \
    ValidationException, ValidationExceptionCode
from bundler_client.typing import Address

UINT256_MAX = 2**256 - 1
UINT128_MAX = 2**128 - 1


def verify_and_get_address(field_name: str, value: str | None) -> Address:
    address_pattern = "0x[0-9a-fA-F]{40}"
    if (
        isinstance(value, str) and
        re.fullmatch(address_pattern, value) is not None
    ):
        return Address(to_checksum_address(value))
    else:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid address value : {value} in field {field_name}",
        )


def verify_and_get_uint(field_name: str, value: str | None) -> int:
    if value is None:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid uint hex value in field {field_name}",
        )

    if value == "0x":
        return 0
    elif isinstance(value, str) and value[:2] == "0x":
        try:
            uint_value = int(value, 16)
        except ValueError:
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                f"Invalid uint hex value : {value} in field {field_name}",
            )
        return verify_uint(field_name, uint_value)
    else:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid uint hex value : {value} in field {field_name}",
        )


def verify_and_get_bytes(field_name: str, value: str | None) -> bytes:
    if value is None:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid bytes hex value in field {field_name}",
        )

    if isinstance(value, str) and value[:2] == "0x":
        try:
            return bytes.fromhex(value[2:])
        except ValueError:
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                f"Invalid bytes hex value : {value} in field {field_name}",
            )
    else:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid bytes hex value : {value} in field {field_name}",
        )


def verify_uint(
    field_name: str, value: int, max_value: int = UINT256_MAX
) -> int:
    # bool is an int subclass
    if (
        not isinstance(value, int) or isinstance(value, bool) or
        value < 0 or value > max_value
    ):
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid uint value : {value} in field {field_name}",
        )
    return value


def verify_bytes(field_name: str, value: bytes) -> bytes:
    if not isinstance(value, (bytes, bytearray)):
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid bytes value : {value!r} in field {field_name}",
        )
    return bytes(value)


def is_user_operation_hash(user_operation_hash: str) -> bool:
    hash_pattern = "0x[0-9a-fA-F]{64}"
    return (
        isinstance(user_operation_hash, str)
        and re.fullmatch(hash_pattern, user_operation_hash) is not None
    )
