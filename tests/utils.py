from bundler_client.entrypoint import (
    ENTRYPOINT_V06_ADDRESS, ENTRYPOINT_V07_ADDRESS, EntryPoint,
    EntryPointVersion)

# anvil test account 0
OWNER_PRIVATE_KEY = (
    "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80")
OWNER_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

SENDER = "0xeed01c4ffa9f88096b77d2f16c2e143a94d71298"
FACTORY = "0x9406cc6185a346906296840746125a0e44976454"
PAYMASTER = "0x3a2ed0ba5e5b1a34b87b2f0d2ffbbeb17b1b7d0d"
TARGET = "0x5af0d9827e0c53e4799bb226655a1de152a425a5"

ENTRYPOINT_V06 = EntryPoint(ENTRYPOINT_V06_ADDRESS, EntryPointVersion.V06)
ENTRYPOINT_V07 = EntryPoint(ENTRYPOINT_V07_ADDRESS, EntryPointVersion.V07)
