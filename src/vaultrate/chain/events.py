"""Decoding of share-token Transfer logs into TransferEvent records."""

from collections.abc import Iterable, Mapping
from typing import Any

from web3 import Web3

from vaultrate.chain.abi import TRANSFER_TOPIC
from vaultrate.exceptions import DecodeError
from vaultrate.logging import get_logger
from vaultrate.models import TransferEvent

logger = get_logger(__name__)


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, str):
        try:
            return bytes.fromhex(value.removeprefix("0x"))
        except ValueError as exc:
            raise DecodeError(f"invalid hex value: {value!r}") from exc
    return bytes(value)


def _topic_address(topic: bytes) -> str:
    if len(topic) != 32:
        raise DecodeError(f"address topic must be 32 bytes, got {len(topic)}")
    return Web3.to_checksum_address(topic[-20:])


def decode_transfer(log: Mapping[str, Any]) -> TransferEvent:
    """Decode a raw Transfer log.

    Raises:
        DecodeError: The log is not a Transfer(address,address,uint256) with
            indexed from/to, or its payload is malformed.
    """
    try:
        topics = [_as_bytes(t) for t in log["topics"]]
        data = _as_bytes(log["data"])
        block_number = int(log["blockNumber"])
    except (KeyError, TypeError, ValueError) as exc:
        raise DecodeError(f"malformed log: {exc}") from exc

    if len(topics) != 3 or topics[0] != TRANSFER_TOPIC:
        raise DecodeError("not an indexed Transfer event")
    if not data:
        raise DecodeError("Transfer log has no amount")

    return TransferEvent(
        from_address=_topic_address(topics[1]),
        to_address=_topic_address(topics[2]),
        amount=int.from_bytes(data, "big"),
        block_number=block_number,
        log_index=int(log.get("logIndex") or 0),
    )


def decode_transfers(logs: Iterable[Mapping[str, Any]]) -> list[TransferEvent]:
    """Decode every Transfer in logs, skipping anything else the vault emitted."""
    events = []
    skipped = 0
    for log in logs:
        try:
            events.append(decode_transfer(log))
        except DecodeError as exc:
            skipped += 1
            logger.debug("skipping_non_transfer_log", reason=str(exc))
    if skipped:
        logger.debug("non_transfer_logs_skipped", count=skipped)
    return events
