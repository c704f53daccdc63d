"""Vault contract ABI fragments, selectors and well-known storage slots."""

from web3 import Web3

VAULT_ABI = [
    {
        "inputs": [],
        "name": "totalAssets",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "totalSupply",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]

TOTAL_ASSETS = "totalAssets"
TOTAL_SUPPLY = "totalSupply"

# ERC-1967: bytes32(uint256(keccak256("eip1967.proxy.implementation")) - 1)
IMPLEMENTATION_SLOT = int(
    "0x360894a13ba1a3210667c828492db98dca3e2076cc3735a920a3ca505d382bbc", 16
)

TRANSFER_TOPIC = bytes(Web3.keccak(text="Transfer(address,address,uint256)"))


def function_selector(method: str) -> str:
    """Return the 0x-prefixed calldata for a no-argument view method."""
    return "0x" + bytes(Web3.keccak(text=f"{method}()")[:4]).hex()
