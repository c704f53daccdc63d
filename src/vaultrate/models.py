"""Shared data models for the vault rate tracker.

CRITICAL: On-chain balances are Python ints (base units) end to end. Decimal is
used only to render human-readable magnitudes; float only for the derived rate.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from decimal import Decimal
from enum import Enum

from vaultrate.exceptions import DecodeError

HOUR_SECONDS = 3600
DAY_SECONDS = 24 * HOUR_SECONDS

ZERO_ADDRESS = "0x" + "0" * 40


def align_to_hour(timestamp: int) -> int:
    """Truncate an epoch-seconds timestamp to the start of its hour bucket."""
    timestamp = int(timestamp)
    return timestamp - (timestamp % HOUR_SECONDS)


def compute_rate(assets: int, supply: int) -> float:
    """Return assets per share, or 0.0 when there is no outstanding supply."""
    if supply <= 0:
        return 0.0
    return float(Decimal(assets) / Decimal(supply))


def format_amount(value: int, decimals: int = 18) -> str:
    """Render a base-unit amount as a short human-readable magnitude.

    Values are scaled by 10**decimals, then suffixed with B/M/K above a
    thousand (two decimal places) or printed with six decimal places.
    """
    scaled = Decimal(value).scaleb(-decimals)
    magnitude = abs(scaled)
    if magnitude >= 1_000_000_000:
        return f"{scaled / 1_000_000_000:.2f}B"
    if magnitude >= 1_000_000:
        return f"{scaled / 1_000_000:.2f}M"
    if magnitude >= 1_000:
        return f"{scaled / 1_000:.2f}K"
    return f"{scaled:.6f}"


@dataclass
class RateSample:
    """One exchange-rate observation, keyed by its hour bucket once stored."""

    timestamp: int
    rate: float
    assets: str
    total_supply: str

    def to_json(self) -> str:
        return json.dumps(asdict(self), separators=(",", ":"))

    @classmethod
    def from_json(cls, raw: str | bytes) -> RateSample:
        """Parse a stored payload, raising DecodeError on any malformed input."""
        try:
            data = json.loads(raw)
            return cls(
                timestamp=int(data["timestamp"]),
                rate=float(data["rate"]),
                assets=str(data["assets"]),
                total_supply=str(data["total_supply"]),
            )
        except (ValueError, TypeError, KeyError) as exc:
            raise DecodeError(f"malformed rate sample: {raw!r}") from exc


class TransferKind(str, Enum):
    """Effect of a share Transfer on the pooled totals."""

    MINT = "mint"
    BURN = "burn"
    TRANSFER = "transfer"


@dataclass(frozen=True)
class TransferEvent:
    """A decoded share-token Transfer log.

    ``block_timestamp`` is None until the containing block has been resolved.
    """

    from_address: str
    to_address: str
    amount: int
    block_number: int
    log_index: int = 0
    block_timestamp: int | None = None

    @property
    def kind(self) -> TransferKind:
        if self.from_address.lower() == ZERO_ADDRESS:
            return TransferKind.MINT
        if self.to_address.lower() == ZERO_ADDRESS:
            return TransferKind.BURN
        return TransferKind.TRANSFER


@dataclass(frozen=True)
class BalanceState:
    """Pooled vault totals in base units."""

    total_assets: int
    total_supply: int

    def reverse(self, event: TransferEvent) -> BalanceState:
        """Return the state as it was before ``event`` was applied."""
        kind = event.kind
        if kind is TransferKind.MINT:
            return BalanceState(
                self.total_assets - event.amount, self.total_supply - event.amount
            )
        if kind is TransferKind.BURN:
            return BalanceState(
                self.total_assets + event.amount, self.total_supply + event.amount
            )
        return self

    @property
    def rate(self) -> float:
        return compute_rate(self.total_assets, self.total_supply)

    def to_sample(self, timestamp: int, decimals: int = 18) -> RateSample:
        return RateSample(
            timestamp=timestamp,
            rate=self.rate,
            assets=format_amount(self.total_assets, decimals),
            total_supply=format_amount(self.total_supply, decimals),
        )
