import logging
from typing import Any

from bundler_client.entrypoint import EntryPoint
from bundler_client.exceptions import (
    PreconditionException, PreconditionExceptionCode)
from bundler_client.rpc.jsonrpc import load_rpc_uint, malformed_response
from bundler_client.rpc.transport import RpcMethod, RpcTransport
from bundler_client.user_operation.models import GasEstimate, UserOperationType
from bundler_client.user_operation.v7.user_operation_v7 import UserOperationV7

REQUIRED_GAS_FIELDS = [
    "preVerificationGas",
    "verificationGasLimit",
    "callGasLimit",
]
PAYMASTER_GAS_FIELDS = [
    "paymasterVerificationGasLimit",
    "paymasterPostOpGasLimit",
]


class GasEstimator:
    transport: RpcTransport

    def __init__(self, transport: RpcTransport) -> None:
        self.transport = transport

    async def estimate(
        self,
        user_operation: UserOperationType,
        entrypoint: EntryPoint,
        state_override: dict[str, Any] | None = None,
    ) -> GasEstimate:
        """
        Ask the bundler for the gas limits of a draft user operation.

        Every required limit must come back as a positive quantity; the
        paymaster limits are required when the draft names a paymaster.
        """
        if user_operation.version != entrypoint.version:
            raise PreconditionException(
                PreconditionExceptionCode.EntryPointVersionMismatch,
                f"{user_operation.version} user operation can't be estimated "
                f"against entry point {entrypoint}",
            )
        params: list[Any] = [
            user_operation.get_user_operation_json(),
            entrypoint.address,
        ]
        if state_override is not None:
            params.append(state_override)

        result = await self.transport.call(
            RpcMethod.EstimateUserOperationGas, params)
        if not isinstance(result, dict):
            raise malformed_response(
                f"eth_estimateUserOperationGas returned {result}")

        requires_paymaster_gas = (
            isinstance(user_operation, UserOperationV7) and
            user_operation.paymaster is not None
        )
        required_fields = REQUIRED_GAS_FIELDS
        if requires_paymaster_gas:
            required_fields = REQUIRED_GAS_FIELDS + PAYMASTER_GAS_FIELDS

        gas_values: dict[str, int | None] = {}
        for field_name in required_fields:
            gas_values[field_name] = load_positive_gas(
                field_name, result.get(field_name))
        if not requires_paymaster_gas:
            # unused without a paymaster, zero means not estimated
            for field_name in PAYMASTER_GAS_FIELDS:
                value = result.get(field_name)
                gas = None if value is None else load_rpc_uint(
                    field_name, value)
                gas_values[field_name] = gas or None

        gas_estimate = GasEstimate(
            pre_verification_gas=gas_values["preVerificationGas"],
            verification_gas_limit=gas_values["verificationGasLimit"],
            call_gas_limit=gas_values["callGasLimit"],
            paymaster_verification_gas_limit=gas_values[
                "paymasterVerificationGasLimit"],
            paymaster_post_op_gas_limit=gas_values["paymasterPostOpGasLimit"],
        )
        logging.debug(f"Gas estimate for {user_operation.sender}: {gas_estimate}")
        return gas_estimate

    async def prepare(
        self,
        user_operation: UserOperationType,
        entrypoint: EntryPoint,
        state_override: dict[str, Any] | None = None,
    ) -> UserOperationType:
        gas_estimate = await self.estimate(
            user_operation, entrypoint, state_override)
        return user_operation.with_gas_estimate(gas_estimate)


def load_positive_gas(field_name: str, value: Any) -> int:
    if value is None:
        raise malformed_response(
            f"eth_estimateUserOperationGas response missing {field_name}")
    gas = load_rpc_uint(field_name, value)
    if gas == 0:
        raise malformed_response(
            f"eth_estimateUserOperationGas returned zero {field_name}")
    return gas
