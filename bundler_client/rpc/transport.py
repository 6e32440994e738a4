import asyncio
import itertools
import json
import logging
from enum import Enum
from typing import Any

from aiohttp import ClientError, ClientSession, ClientTimeout

from bundler_client.exceptions import (
    TransportException, TransportExceptionCode, ValidationException)
from bundler_client.metrics.metrics import RPC_REQUEST_ERRORS, RPC_REQUEST_TIME
from bundler_client.rpc.jsonrpc import validate_and_load_json_rpc_response

DEFAULT_REQUEST_TIMEOUT = 30.0

HEADERS = {
    "content-type": "application/json",
    "connection": "keep-alive"
}


class RpcMethod(Enum):
    SupportedEntryPoints = "eth_supportedEntryPoints"
    ChainId = "eth_chainId"
    EstimateUserOperationGas = "eth_estimateUserOperationGas"
    SendUserOperation = "eth_sendUserOperation"
    GetUserOperationReceipt = "eth_getUserOperationReceipt"
    GetUserOperationByHash = "eth_getUserOperationByHash"

    def __str__(self):
        return self.value


class RpcTransport:
    """
    Single round trip JSON-RPC 2.0 calls to a bundler endpoint.

    Without an open session every call uses its own aiohttp session.
    open() (or "async with") keeps one session alive until close().
    A session passed in by the caller is never closed here.
    """
    bundler_url: str
    request_timeout: float
    _session: ClientSession | None
    _owns_session: bool

    def __init__(
        self,
        bundler_url: str,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        session: ClientSession | None = None,
    ) -> None:
        self.bundler_url = bundler_url
        self.request_timeout = request_timeout
        self._session = session
        self._owns_session = False
        self._request_ids = itertools.count(1)

    async def open(self) -> None:
        if self._session is None:
            self._session = ClientSession(
                timeout=ClientTimeout(total=self.request_timeout))
            self._owns_session = True

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
            self._owns_session = False

    async def __aenter__(self) -> "RpcTransport":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def call(self, method: RpcMethod, params: list | None = None) -> Any:
        if params is None:
            params = []
        request_id = next(self._request_ids)
        json_request = {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": method.value,
            "params": params,
        }
        logging.debug(f"{method} request to {self.bundler_url}: {params}")

        with RPC_REQUEST_TIME.labels(method.value).time():
            try:
                response_body = await self._post(json_request)
            except (ClientError, asyncio.TimeoutError) as excp:
                RPC_REQUEST_ERRORS.labels(method.value, "connection").inc()
                logging.warning(
                    f"{method} call to {self.bundler_url} failed: {excp!r}")
                raise TransportException(
                    TransportExceptionCode.ConnectionFailed,
                    f"{method} call to {self.bundler_url} failed: {excp!r}",
                ) from excp

        try:
            result = validate_and_load_json_rpc_response(
                response_body, request_id)
        except TransportException as excp:
            RPC_REQUEST_ERRORS.labels(
                method.value, excp.exception_code.value).inc()
            logging.warning(f"{method} failed: {excp.message}")
            raise
        except ValidationException as excp:
            RPC_REQUEST_ERRORS.labels(method.value, "validation").inc()
            logging.warning(
                f"{method} rejected with code {excp.rpc_code}: {excp.message}")
            raise

        logging.debug(f"{method} response: {json.dumps(result)}")
        return result

    async def _post(self, json_request: dict) -> bytes:
        if self._session is not None:
            return await self._post_with_session(self._session, json_request)
        async with ClientSession() as session:
            return await self._post_with_session(session, json_request)

    async def _post_with_session(
        self, session: ClientSession, json_request: dict
    ) -> bytes:
        async with session.post(
            self.bundler_url,
            json=json_request,
            headers=HEADERS,
            timeout=ClientTimeout(total=self.request_timeout),
        ) as response:
            return await response.read()
