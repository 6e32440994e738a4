import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any

from aiohttp import web
from eth_utils import keccak

from bundler_client.entrypoint import (
    CANONICAL_ENTRYPOINT_VERSIONS, ENTRYPOINT_V06_ADDRESS,
    ENTRYPOINT_V07_ADDRESS)
from bundler_client.exceptions import ValidationException
from bundler_client.rpc.jsonrpc import (
    INVALID_METHOD_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND, PARSE_ERROR)
from bundler_client.user_operation.models import USER_OPERATION_CLASSES

BUNDLER_ADDRESS = "0x084178A5fD956e624fCb61C3c2209E3dcf42c8E8"

DEFAULT_GAS_ESTIMATE = {
    "preVerificationGas": "0xb5c8",
    "verificationGasLimit": "0x186a0",
    "callGasLimit": "0x7530",
}
DEFAULT_PAYMASTER_GAS_ESTIMATE = {
    "paymasterVerificationGasLimit": "0xc350",
    "paymasterPostOpGasLimit": "0x4e20",
}


@dataclass
class Success:
    payload: Any


@dataclass
class Error:
    error_code: int
    error_message: str
    data: Any = None


class FakeBundler:
    """
    In-memory ERC-4337 bundler served over aiohttp.

    Sent user operations stay pending until inclusion_polls receipt
    queries for them returned null; the next query includes them.
    Single methods can be made to fail through errors, raw_responses
    and delays.
    """

    def __init__(
        self,
        chain_id: int = 1337,
        entrypoints: list[str] | None = None,
        inclusion_polls: int = 1,
    ) -> None:
        self.chain_id = chain_id
        if entrypoints is None:
            entrypoints = [ENTRYPOINT_V07_ADDRESS, ENTRYPOINT_V06_ADDRESS]
        self.entrypoints = entrypoints
        self.inclusion_polls = inclusion_polls
        self.include_user_operations = True
        self.gas_estimate: dict[str, Any] | None = None
        self.returned_hash: str | None = None
        self.user_operations: dict[str, tuple[str, dict]] = {}
        self.receipt_queries: dict[str, int] = {}
        self.included: set[str] = set()
        self.requests: list[tuple[str, list]] = []
        self.errors: dict[str, Error] = {}
        self.raw_responses: dict[str, str] = {}
        self.delays: dict[str, float] = {}
        self.url = ""

        self.methods = {
            "eth_chainId": self.eth_chain_id,
            "eth_supportedEntryPoints": self.eth_supported_entrypoints,
            "eth_estimateUserOperationGas":
            self.eth_estimate_user_operation_gas,
            "eth_sendUserOperation": self.eth_send_user_operation,
            "eth_getUserOperationReceipt": self.eth_get_user_operation_receipt,
            "eth_getUserOperationByHash": self.eth_get_user_operation_by_hash,
        }
        self.app = web.Application()
        self.app.router.add_post("/rpc", self.handle)

    def count(self, method: str) -> int:
        return len([request for request in self.requests if request[0] == method])

    async def handle(self, request: web.Request) -> web.Response:
        req_str = await request.text()
        try:
            json_request = json.loads(req_str)
        except json.decoder.JSONDecodeError:
            return self.json_response(None, Error(PARSE_ERROR, "Parse error."))

        id = json_request.get("id")
        method = json_request.get("method")
        params = json_request.get("params", [])
        if json_request.get("jsonrpc") != "2.0" or not isinstance(params, list):
            return self.json_response(
                id, Error(INVALID_REQUEST, "Invalid Request."))
        self.requests.append((method, params))
        logging.debug(f"fake bundler request: {method} {params}")

        if method in self.delays:
            await asyncio.sleep(self.delays[method])
        if method in self.raw_responses:
            return web.Response(
                text=self.raw_responses[method],
                content_type="application/json",
            )
        if method in self.errors:
            return self.json_response(id, self.errors[method])
        if method not in self.methods:
            return self.json_response(
                id, Error(METHOD_NOT_FOUND, "Method not found."))

        try:
            response = self.methods[method](*params)
        except TypeError as err:
            response = Error(INVALID_METHOD_PARAMS, str(err))
        return self.json_response(id, response)

    def json_response(
        self, id: Any, response: Success | Error
    ) -> web.Response:
        json_response: dict[str, Any] = {"jsonrpc": "2.0", "id": id}
        if isinstance(response, Success):
            json_response["result"] = response.payload
        else:
            json_response["error"] = {
                "code": response.error_code,
                "message": response.error_message,
            }
            if response.data is not None:
                json_response["error"]["data"] = response.data
        return web.json_response(json_response)

    def get_supported_entrypoint(self, entrypoint: Any) -> str | None:
        for supported_entrypoint in self.entrypoints:
            if (
                isinstance(entrypoint, str) and
                supported_entrypoint.lower() == entrypoint.lower()
            ):
                return supported_entrypoint
        return None

    def load_user_operation(self, user_operation_json, entrypoint):
        version = CANONICAL_ENTRYPOINT_VERSIONS[entrypoint.lower()]
        return USER_OPERATION_CLASSES[version].from_json(user_operation_json)

    def eth_chain_id(self) -> Success:
        return Success(hex(self.chain_id))

    def eth_supported_entrypoints(self) -> Success:
        return Success(self.entrypoints)

    def eth_estimate_user_operation_gas(
        self, user_operation_json, entrypoint, state_override=None
    ) -> Success | Error:
        supported_entrypoint = self.get_supported_entrypoint(entrypoint)
        if supported_entrypoint is None:
            return Error(
                INVALID_METHOD_PARAMS,
                f"Unsupported entrypoint : {entrypoint}")
        try:
            self.load_user_operation(user_operation_json, supported_entrypoint)
        except ValidationException as excp:
            return Error(INVALID_METHOD_PARAMS, excp.message)

        if self.gas_estimate is not None:
            return Success(self.gas_estimate)
        gas_estimate = dict(DEFAULT_GAS_ESTIMATE)
        if user_operation_json.get("paymaster") is not None:
            gas_estimate.update(DEFAULT_PAYMASTER_GAS_ESTIMATE)
        return Success(gas_estimate)

    def eth_send_user_operation(
        self, user_operation_json, entrypoint
    ) -> Success | Error:
        supported_entrypoint = self.get_supported_entrypoint(entrypoint)
        if supported_entrypoint is None:
            return Error(
                INVALID_METHOD_PARAMS,
                f"Unsupported entrypoint : {entrypoint}")
        try:
            user_operation = self.load_user_operation(
                user_operation_json, supported_entrypoint)
        except ValidationException as excp:
            return Error(INVALID_METHOD_PARAMS, excp.message)
        if len(user_operation.signature) == 0:
            return Error(-32507, "Invalid UserOperation signature")

        user_operation_hash = user_operation.get_user_operation_hash(
            supported_entrypoint, self.chain_id)
        if user_operation_hash in self.user_operations:
            return Error(
                INVALID_METHOD_PARAMS,
                f"UserOperation {user_operation_hash} already in mempool",
            )
        self.user_operations[user_operation_hash] = (
            supported_entrypoint, user_operation_json)
        if self.returned_hash is not None:
            return Success(self.returned_hash)
        return Success(user_operation_hash)

    def eth_get_user_operation_receipt(
        self, user_operation_hash
    ) -> Success:
        user_operation_hash = user_operation_hash.lower()
        if user_operation_hash not in self.user_operations:
            return Success(None)
        queries = self.receipt_queries.get(user_operation_hash, 0) + 1
        self.receipt_queries[user_operation_hash] = queries
        if queries > self.inclusion_polls and self.include_user_operations:
            self.included.add(user_operation_hash)
        if user_operation_hash not in self.included:
            return Success(None)
        return Success(self.get_receipt_json(user_operation_hash))

    def eth_get_user_operation_by_hash(
        self, user_operation_hash
    ) -> Success:
        user_operation_hash = user_operation_hash.lower()
        if user_operation_hash not in self.user_operations:
            return Success(None)
        entrypoint, user_operation_json = self.user_operations[
            user_operation_hash]
        result = {
            "userOperation": user_operation_json,
            "entryPoint": entrypoint,
            "transactionHash": None,
            "blockNumber": None,
            "blockHash": None,
        }
        if user_operation_hash in self.included:
            transaction_hash, block_hash = get_inclusion_hashes(
                user_operation_hash)
            result["transactionHash"] = transaction_hash
            result["blockNumber"] = "0x10"
            result["blockHash"] = block_hash
        return Success(result)

    def get_receipt_json(self, user_operation_hash: str) -> dict:
        entrypoint, user_operation_json = self.user_operations[
            user_operation_hash]
        transaction_hash, block_hash = get_inclusion_hashes(
            user_operation_hash)
        log = {
            "address": entrypoint,
            "topics": [
                "0x49628fd1471006c1482da88028e9ce4dbb080b815c9b0344d39e5a8e6ec1419f",
                user_operation_hash,
            ],
            "data": "0x",
            "blockNumber": "0x10",
            "transactionHash": transaction_hash,
            "logIndex": "0x0",
        }
        return {
            "userOpHash": user_operation_hash,
            "entryPoint": entrypoint,
            "sender": user_operation_json["sender"],
            "nonce": user_operation_json["nonce"],
            "paymaster": user_operation_json.get("paymaster"),
            "actualGasCost": "0x2b8f4e00",
            "actualGasUsed": "0x1d4c0",
            "success": True,
            "logs": [log],
            "receipt": {
                "transactionHash": transaction_hash,
                "transactionIndex": "0x0",
                "blockHash": block_hash,
                "blockNumber": "0x10",
                "from": BUNDLER_ADDRESS,
                "to": entrypoint,
                "cumulativeGasUsed": "0x1d4c0",
                "gasUsed": "0x1d4c0",
                "logs": [log],
                "logsBloom": "0x" + "00" * 256,
                "status": "0x1",
                "effectiveGasPrice": "0x174876e800",
            },
        }


def get_inclusion_hashes(user_operation_hash: str) -> tuple[str, str]:
    transaction_hash = "0x" + keccak(text=user_operation_hash).hex()
    block_hash = "0x" + keccak(text=transaction_hash).hex()
    return transaction_hash, block_hash
