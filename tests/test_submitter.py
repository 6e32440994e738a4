import dataclasses

import pytest

from bundler_client.entrypoint import EntryPointRegistry
from bundler_client.exceptions import (
    PreconditionException, PreconditionExceptionCode,
    UserOperationHashMismatchException, ValidationException)
from bundler_client.user_operation.models import get_user_operation_hash
from bundler_client.user_operation.user_operation_handler import \
    UserOperationHandler

from utils import ENTRYPOINT_V06, ENTRYPOINT_V07


@pytest.fixture
def user_operation_handler(transport):
    registry = EntryPointRegistry(1337, (ENTRYPOINT_V07, ENTRYPOINT_V06))
    return UserOperationHandler(transport, registry)


@pytest.mark.asyncio
async def test_send_user_operation(
    fake_bundler, user_operation_handler, user_operation_v7
):
    """
    Test eth_sendUserOperation
    """
    user_operation_hash = await user_operation_handler.send_user_operation(
        user_operation_v7, ENTRYPOINT_V07)
    assert user_operation_hash == get_user_operation_hash(
        user_operation_v7, ENTRYPOINT_V07, 1337)
    assert user_operation_hash in fake_bundler.user_operations


@pytest.mark.asyncio
async def test_send_v6_user_operation(
    fake_bundler, user_operation_handler, user_operation_v6
):
    user_operation_hash = await user_operation_handler.send_user_operation(
        user_operation_v6, ENTRYPOINT_V06)
    entrypoint, _ = fake_bundler.user_operations[user_operation_hash]
    assert entrypoint == ENTRYPOINT_V06.address


@pytest.mark.asyncio
async def test_send_incomplete_user_operation_makes_no_call(
    fake_bundler, user_operation_handler, draft_user_operation_v7,
    user_operation_v7
):
    with pytest.raises(PreconditionException) as excinfo:
        await user_operation_handler.send_user_operation(
            draft_user_operation_v7, ENTRYPOINT_V07)
    assert excinfo.value.exception_code == (
        PreconditionExceptionCode.IncompleteUserOperation)
    assert excinfo.value.message.startswith(
        "UserOperation gas fields are not populated")

    with pytest.raises(PreconditionException) as excinfo:
        await user_operation_handler.send_user_operation(
            user_operation_v7.with_signature(b""), ENTRYPOINT_V07)
    assert excinfo.value.message == "UserOperation is not signed"

    with pytest.raises(PreconditionException):
        await user_operation_handler.send_user_operation(
            dataclasses.replace(
                user_operation_v7, paymaster_verification_gas_limit=None),
            ENTRYPOINT_V07)

    assert fake_bundler.count("eth_sendUserOperation") == 0


@pytest.mark.asyncio
async def test_send_to_entrypoint_of_other_version(
    fake_bundler, user_operation_handler, user_operation_v7
):
    with pytest.raises(PreconditionException) as excinfo:
        await user_operation_handler.send_user_operation(
            user_operation_v7, ENTRYPOINT_V06)
    assert excinfo.value.exception_code == (
        PreconditionExceptionCode.EntryPointVersionMismatch)
    assert fake_bundler.count("eth_sendUserOperation") == 0


@pytest.mark.asyncio
async def test_duplicate_send_is_rejected(
    user_operation_handler, user_operation_v7
):
    await user_operation_handler.send_user_operation(
        user_operation_v7, ENTRYPOINT_V07)
    with pytest.raises(ValidationException):
        await user_operation_handler.send_user_operation(
            user_operation_v7, ENTRYPOINT_V07)


@pytest.mark.asyncio
async def test_returned_hash_mismatch(
    fake_bundler, user_operation_handler, user_operation_v7
):
    fake_bundler.returned_hash = "0x" + "ab" * 32
    with pytest.raises(UserOperationHashMismatchException) as excinfo:
        await user_operation_handler.send_user_operation(
            user_operation_v7, ENTRYPOINT_V07)
    assert excinfo.value.remote_user_operation_hash == "0x" + "ab" * 32
    assert excinfo.value.local_user_operation_hash == get_user_operation_hash(
        user_operation_v7, ENTRYPOINT_V07, 1337)


@pytest.mark.asyncio
async def test_returned_hash_check_can_be_disabled(
    fake_bundler, user_operation_handler, user_operation_v7
):
    fake_bundler.returned_hash = "0x" + "ab" * 32
    user_operation_hash = await user_operation_handler.send_user_operation(
        user_operation_v7, ENTRYPOINT_V07, verify_hash=False)
    assert user_operation_hash == "0x" + "ab" * 32
