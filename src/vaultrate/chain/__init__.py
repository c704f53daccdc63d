"""Chain access layer -- JSON-RPC reader, Transfer decoding and explorer client."""

from vaultrate.chain.events import decode_transfer, decode_transfers
from vaultrate.chain.explorer import ExplorerClient
from vaultrate.chain.reader import ChainReader
from vaultrate.chain.web3_reader import Web3ChainReader

__all__ = [
    "ChainReader",
    "ExplorerClient",
    "Web3ChainReader",
    "decode_transfer",
    "decode_transfers",
]
