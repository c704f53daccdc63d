"""Tests for Web3ChainReader with a mocked AsyncWeb3."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from web3.exceptions import BadFunctionCallOutput, Web3Exception

from vaultrate.chain.abi import IMPLEMENTATION_SLOT, TOTAL_ASSETS
from vaultrate.chain.web3_reader import Web3ChainReader
from vaultrate.config import ChainSettings
from vaultrate.exceptions import ConnectivityError, DecodeError

from conftest import VAULT


@pytest.fixture
def w3() -> MagicMock:
    w3 = MagicMock()
    w3.eth.get_block_number = AsyncMock(return_value=5_000)
    w3.eth.get_logs = AsyncMock(return_value=[])
    w3.eth.get_block = AsyncMock(return_value={"number": 10, "timestamp": 1_700_000_000})
    w3.eth.get_storage_at = AsyncMock(return_value=b"\x00" * 32)
    w3.provider.disconnect = AsyncMock()
    return w3


@pytest.fixture
def reader(w3: MagicMock) -> Web3ChainReader:
    return Web3ChainReader(
        ChainSettings(rpc_url="http://localhost:8545", vault_address=VAULT.lower(), timeout=0.05),
        w3=w3,
    )


def _contract_call(w3: MagicMock, method: str) -> MagicMock:
    """Return the mock for contract.functions.<method>().call."""
    return getattr(w3.eth.contract.return_value.functions, method).return_value


class TestCallUint:
    @pytest.mark.asyncio
    async def test_reads_vault_at_latest(self, reader: Web3ChainReader, w3: MagicMock) -> None:
        function = _contract_call(w3, TOTAL_ASSETS)
        function.call = AsyncMock(return_value=123)

        assert await reader.call_uint(TOTAL_ASSETS) == 123
        assert w3.eth.contract.call_args.kwargs["address"].lower() == VAULT.lower()
        function.call.assert_called_once_with(block_identifier="latest")

    @pytest.mark.asyncio
    async def test_explicit_address_and_block(
        self, reader: Web3ChainReader, w3: MagicMock
    ) -> None:
        other = "0x1111111111111111111111111111111111111111"
        function = _contract_call(w3, TOTAL_ASSETS)
        function.call = AsyncMock(return_value=7)

        assert await reader.call_uint(TOTAL_ASSETS, address=other, block=99) == 7
        assert w3.eth.contract.call_args.kwargs["address"] == other
        function.call.assert_called_once_with(block_identifier=99)

    @pytest.mark.asyncio
    async def test_timeout_maps_to_connectivity_error(
        self, reader: Web3ChainReader, w3: MagicMock
    ) -> None:
        async def _hang(**kwargs):
            await asyncio.sleep(1)

        _contract_call(w3, TOTAL_ASSETS).call = _hang

        with pytest.raises(ConnectivityError, match="timed out"):
            await reader.call_uint(TOTAL_ASSETS)

    @pytest.mark.asyncio
    async def test_web3_exception_maps_to_connectivity_error(
        self, reader: Web3ChainReader, w3: MagicMock
    ) -> None:
        _contract_call(w3, TOTAL_ASSETS).call = AsyncMock(side_effect=Web3Exception("boom"))
        with pytest.raises(ConnectivityError, match="boom"):
            await reader.call_uint(TOTAL_ASSETS)

    @pytest.mark.asyncio
    async def test_transport_error_maps_to_connectivity_error(
        self, reader: Web3ChainReader, w3: MagicMock
    ) -> None:
        _contract_call(w3, TOTAL_ASSETS).call = AsyncMock(
            side_effect=aiohttp.ClientConnectionError("refused")
        )
        with pytest.raises(ConnectivityError):
            await reader.call_uint(TOTAL_ASSETS)

    @pytest.mark.asyncio
    async def test_bad_output_maps_to_decode_error(
        self, reader: Web3ChainReader, w3: MagicMock
    ) -> None:
        _contract_call(w3, TOTAL_ASSETS).call = AsyncMock(
            side_effect=BadFunctionCallOutput("empty")
        )
        with pytest.raises(DecodeError):
            await reader.call_uint(TOTAL_ASSETS)

    @pytest.mark.asyncio
    async def test_non_integer_result_rejected(
        self, reader: Web3ChainReader, w3: MagicMock
    ) -> None:
        _contract_call(w3, TOTAL_ASSETS).call = AsyncMock(return_value="12")
        with pytest.raises(DecodeError):
            await reader.call_uint(TOTAL_ASSETS)


class TestQueries:
    @pytest.mark.asyncio
    async def test_connect_reads_head(self, reader: Web3ChainReader, w3: MagicMock) -> None:
        await reader.connect()
        w3.eth.get_block_number.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_get_logs_filter(self, reader: Web3ChainReader, w3: MagicMock) -> None:
        w3.eth.get_logs.return_value = [{"blockNumber": 1, "topics": [], "data": b""}]

        logs = await reader.get_logs(VAULT.lower(), 4_000, 5_000)

        assert logs == [{"blockNumber": 1, "topics": [], "data": b""}]
        (filter_params,) = w3.eth.get_logs.await_args.args
        assert filter_params["address"].lower() == VAULT.lower()
        assert (filter_params["fromBlock"], filter_params["toBlock"]) == (4_000, 5_000)

    @pytest.mark.asyncio
    async def test_block_timestamp(self, reader: Web3ChainReader, w3: MagicMock) -> None:
        assert await reader.get_block_timestamp(10) == 1_700_000_000
        w3.eth.get_block.assert_awaited_once_with(10)

    @pytest.mark.asyncio
    async def test_block_without_timestamp(
        self, reader: Web3ChainReader, w3: MagicMock
    ) -> None:
        w3.eth.get_block.return_value = {"number": 10}
        with pytest.raises(DecodeError):
            await reader.get_block_timestamp(10)

    @pytest.mark.asyncio
    async def test_storage_at_returns_bytes(self, reader: Web3ChainReader, w3: MagicMock) -> None:
        w3.eth.get_storage_at.return_value = bytearray(b"\x01" * 32)

        raw = await reader.get_storage_at(VAULT, IMPLEMENTATION_SLOT, 42)

        assert raw == b"\x01" * 32
        assert isinstance(raw, bytes)
        call = w3.eth.get_storage_at.await_args
        assert call.args[0].lower() == VAULT.lower()
        assert call.args[1] == IMPLEMENTATION_SLOT
        assert call.kwargs == {"block_identifier": 42}

    @pytest.mark.asyncio
    async def test_close_disconnects_provider(
        self, reader: Web3ChainReader, w3: MagicMock
    ) -> None:
        await reader.close()
        w3.provider.disconnect.assert_awaited_once()
