"""Dispatch weights for the auctions and capsules pallets."""

from __future__ import annotations

from dataclasses import dataclass

WEIGHT_MAX = 2**64 - 1


def _saturating_add(a: int, b: int) -> int:
    return min(a + b, WEIGHT_MAX)


def _saturating_mul(a: int, b: int) -> int:
    return min(a * b, WEIGHT_MAX)


@dataclass(frozen=True)
class DbWeight:
    """Cost of one storage read and one storage write."""

    read: int = 25_000_000
    write: int = 100_000_000

    def reads(self, n: int) -> int:
        """Weight of ``n`` storage reads."""
        return _saturating_mul(self.read, n)

    def writes(self, n: int) -> int:
        """Weight of ``n`` storage writes."""
        return _saturating_mul(self.write, n)

    def reads_writes(self, r: int, w: int) -> int:
        """Weight of ``r`` reads and ``w`` writes."""
        return _saturating_add(self.reads(r), self.writes(w))


ROCKS_DB_WEIGHT = DbWeight()

# name -> (base weight, storage reads, storage writes)
_AUCTION_WEIGHTS: dict[str, tuple[int, int, int]] = {
    "create_auction": (39_280_000, 5, 3),
    "cancel_auction": (27_890_000, 3, 3),
    "end_auction": (80_181_000, 8, 7),
    "add_bid": (51_450_000, 3, 3),
    "remove_bid": (44_811_000, 3, 3),
    "buy_it_now": (76_360_000, 7, 6),
    "complete_auction": (76_161_000, 8, 7),
    "claim": (45_170_000, 3, 3),
}

_CAPSULE_WEIGHTS: dict[str, tuple[int, int, int]] = {
    "create": (241_761_000, 8, 8),
    "create_from_nft": (86_590_000, 6, 4),
    "remove": (101_271_000, 4, 4),
    "add_funds": (79_300_000, 3, 3),
    "set_ipfs_reference": (27_960_000, 1, 1),
    "set_capsule_mint_fee": (19_951_000, 0, 1),
}


def _lookup(table: dict[str, tuple[int, int, int]], name: str, pallet: str) -> int:
    try:
        base, reads, writes = table[name]
    except KeyError:
        raise ValueError(f"unknown {pallet} call: {name!r}") from None
    weight = _saturating_add(base, ROCKS_DB_WEIGHT.reads(reads))
    return _saturating_add(weight, ROCKS_DB_WEIGHT.writes(writes))


def auction_weight(name: str) -> int:
    """Weight of the auctions call ``name``."""
    return _lookup(_AUCTION_WEIGHTS, name, "auctions")


def capsule_weight(name: str) -> int:
    """Weight of the capsules call ``name``."""
    return _lookup(_CAPSULE_WEIGHTS, name, "capsules")