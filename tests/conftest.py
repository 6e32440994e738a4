import pytest
import pytest_asyncio
from aiohttp.test_utils import TestServer

from bundler_client.client import BundlerClient, BundlerClientConfig
from bundler_client.rpc.transport import RpcTransport
from bundler_client.user_operation.v6.user_operation_v6 import UserOperationV6
from bundler_client.user_operation.v7.user_operation_v7 import UserOperationV7

from fake_bundler import FakeBundler
from utils import FACTORY, PAYMASTER, SENDER


@pytest_asyncio.fixture
async def fake_bundler():
    bundler = FakeBundler()
    server = TestServer(bundler.app)
    await server.start_server()
    bundler.url = str(server.make_url("/rpc"))
    yield bundler
    await server.close()


@pytest_asyncio.fixture
async def transport(fake_bundler):
    async with RpcTransport(fake_bundler.url, request_timeout=5) as transport:
        yield transport


@pytest_asyncio.fixture
async def client(fake_bundler):
    config = BundlerClientConfig(
        fake_bundler.url,
        chain_id=fake_bundler.chain_id,
        poll_interval=0.01,
        receipt_timeout=2.0,
        request_timeout=5.0,
    )
    client = await BundlerClient.connect(config)
    async with client:
        yield client


@pytest.fixture
def draft_user_operation_v7() -> UserOperationV7:
    return UserOperationV7(
        sender=SENDER,
        nonce=0,
        call_data=bytes.fromhex("b61d27f6") + bytes(96),
        max_fee_per_gas=0x2b8f4e,
        max_priority_fee_per_gas=0x2b8f4e,
    )


@pytest.fixture
def user_operation_v7() -> UserOperationV7:
    return UserOperationV7(
        sender=SENDER,
        nonce=1,
        factory=FACTORY,
        factory_data=bytes.fromhex("5fbfb9cf") + bytes(64),
        call_data=bytes.fromhex("b61d27f6") + bytes(96),
        call_gas_limit=0x7530,
        verification_gas_limit=0x186a0,
        pre_verification_gas=0xb5c8,
        max_fee_per_gas=0x2b8f4e,
        max_priority_fee_per_gas=0x2b8f4e,
        paymaster=PAYMASTER,
        paymaster_verification_gas_limit=0xc350,
        paymaster_post_op_gas_limit=0x4e20,
        paymaster_data=bytes.fromhex("deadbeef"),
        signature=bytes(64) + b"\x1b",
    )


@pytest.fixture
def user_operation_v6() -> UserOperationV6:
    return UserOperationV6(
        sender=SENDER,
        nonce=1,
        init_code=b"",
        call_data=bytes.fromhex("18dfb3c7") + bytes(64),
        call_gas_limit=0x44,
        verification_gas_limit=0xffffff,
        pre_verification_gas=0x18d08,
        max_fee_per_gas=0x2b8f4e,
        max_priority_fee_per_gas=0x2b8f4e,
        paymaster_and_data=b"",
        signature=bytes(64) + b"\x1c",
    )
