import json
from typing import Any

from bundler_client.exceptions import (
    TransportException, TransportExceptionCode, ValidationException)
from bundler_client.typing import Address
from bundler_client.utils.fields import (
    verify_and_get_address, verify_and_get_bytes, verify_and_get_uint)

# JSON-RPC 2.0 error-codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_METHOD_PARAMS = -32602  # invalid number/type of parameters
INTERNAL_ERROR = -32603

# ERC-4337 bundlers report rejected user operations in this range
VALIDATION_ERROR_RANGE = range(-32599, -32499)


def is_validation_error_code(error_code: int) -> bool:
    return (
        error_code == INVALID_METHOD_PARAMS or
        error_code in VALIDATION_ERROR_RANGE
    )


def malformed_response(message: str) -> TransportException:
    return TransportException(
        TransportExceptionCode.MalformedResponse, message)


def validate_and_load_json_rpc_response(
    response_body: bytes | str, request_id: int
) -> Any:
    """
    Check a JSON-RPC 2.0 response envelope and return its "result".

    An "error" member is raised as ValidationException when its code is
    an ERC-4337 user operation rejection, and as a TransportException
    with the RpcError code otherwise.
    """
    try:
        response = json.loads(response_body)
    except (json.decoder.JSONDecodeError, UnicodeDecodeError):
        raise malformed_response("Invalid json response from bundler")

    if not isinstance(response, dict) or response.get("jsonrpc") != "2.0":
        raise malformed_response("Invalid json-rpc 2.0 response envelope")

    if response.get("id") is not None and response["id"] != request_id:
        raise malformed_response(
            f"Response id {response['id']} does not match "
            f"request id {request_id}"
        )

    has_result = "result" in response
    has_error = "error" in response
    if has_result == has_error:
        raise malformed_response(
            'Response must contain exactly one of "result" and "error"')

    if has_result:
        return response["result"]

    error = response["error"]
    if (
        not isinstance(error, dict) or
        not isinstance(error.get("code"), int) or
        isinstance(error.get("code"), bool) or
        not isinstance(error.get("message"), str)
    ):
        raise malformed_response(f"Invalid json-rpc error object: {error}")

    error_code = error["code"]
    if is_validation_error_code(error_code):
        raise ValidationException.from_rpc_error(
            error_code, error["message"], error.get("data"))
    raise TransportException(
        TransportExceptionCode.RpcError, error["message"], error_code)


def load_rpc_uint(field_name: str, value: Any) -> int:
    try:
        return verify_and_get_uint(field_name, value)
    except ValidationException as excp:
        raise malformed_response(excp.message) from excp


def load_rpc_address(field_name: str, value: Any) -> Address:
    try:
        return verify_and_get_address(field_name, value)
    except ValidationException as excp:
        raise malformed_response(excp.message) from excp


def load_rpc_bytes(field_name: str, value: Any) -> bytes:
    try:
        return verify_and_get_bytes(field_name, value)
    except ValidationException as excp:
        raise malformed_response(excp.message) from excp


def get_rpc_field(rpc_dict: Any, field_name: str, parent: str) -> Any:
    if not isinstance(rpc_dict, dict):
        raise malformed_response(f"Invalid {parent} object: {rpc_dict}")
    if field_name not in rpc_dict:
        raise malformed_response(f"{parent} missing {field_name} field")
    return rpc_dict[field_name]
