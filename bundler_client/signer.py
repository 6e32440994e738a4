import glob
from typing import Protocol

from eth_abi import encode
from eth_account import Account, messages
from eth_utils import keccak

from bundler_client.entrypoint import EntryPoint
from bundler_client.typing import Address
from bundler_client.user_operation.models import (
    UserOperationType, get_user_operation_hash)

DEFAULT_KEYSTORE_PATTERN = "keystore/*"

# ecdsa shaped placeholder that lets accounts run signature checks
# during gas estimation
DUMMY_SIGNATURE = bytes.fromhex("f" * 31 + "0" * 33 + "7" + "a" * 63 + "1c")

EXECUTE_SELECTOR = keccak(text="execute(address,uint256,bytes)")[:4]


def encode_execute_call_data(to: Address, value: int, data: bytes) -> bytes:
    """Encode a SimpleAccount execute(address,uint256,bytes) call."""
    return EXECUTE_SELECTOR + encode(
        ["address", "uint256", "bytes"], [to, value, data])


class UserOperationSigner(Protocol):
    def sign_user_operation(
        self,
        user_operation: UserOperationType,
        entrypoint: EntryPoint,
        chain_id: int,
    ) -> UserOperationType:
        ...


class LocalAccountSigner:
    """
    Signs the user operation hash as an EIP-191 personal message,
    the scheme SimpleAccount style accounts check in validateUserOp.
    """

    def __init__(self, private_key: str | bytes) -> None:
        self.account = Account.from_key(private_key)

    @classmethod
    def from_keystore(
        cls, keystore_file_path: str, keystore_file_password: str
    ) -> "LocalAccountSigner":
        if keystore_file_path == DEFAULT_KEYSTORE_PATTERN:
            keystore_files = glob.glob(keystore_file_path)
            if not keystore_files:
                raise FileNotFoundError(
                    f"No keystore file matches {keystore_file_path}")
            keystore_file_path = keystore_files[0]

        with open(keystore_file_path) as keyfile:
            encrypted_key = keyfile.read()
        private_key = Account.decrypt(encrypted_key, keystore_file_password)
        return cls(bytes(private_key))

    @property
    def address(self) -> Address:
        return Address(self.account.address)

    def sign_user_operation(
        self,
        user_operation: UserOperationType,
        entrypoint: EntryPoint,
        chain_id: int,
    ) -> UserOperationType:
        user_operation_hash = get_user_operation_hash(
            user_operation, entrypoint, chain_id)
        message = messages.encode_defunct(hexstr=user_operation_hash)
        signed_message = self.account.sign_message(message)
        return user_operation.with_signature(bytes(signed_message.signature))
