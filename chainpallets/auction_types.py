"""Data kept by the auctions pallet: auctions, bidder queues and deadlines."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, NamedTuple, Optional


class Bid(NamedTuple):
    """A bid from ``account`` for ``amount``."""

    account: Any
    amount: Any


class BidderList:
    """Queue of bids ordered from lowest to highest, bounded by ``max_size``."""

    def __init__(self, max_size: int) -> None:
        self.max_size = max_size
        self.bids: list[Bid] = []

    def insert_new_bid(self, account_id: Any, value: Any) -> Optional[Bid]:
        """Append a bid; when full, evict and return the lowest one."""
        removed = None
        if len(self.bids) >= self.max_size:
            removed = self.bids.pop(0)
        self.bids.append(Bid(account_id, value))
        return removed

    def __len__(self) -> int:
        return len(self.bids)

    def __iter__(self) -> Iterator[Bid]:
        return iter(self.bids)

    def get_highest_bid(self) -> Optional[Bid]:
        return self.bids[-1] if self.bids else None

    def get_lowest_bid(self) -> Optional[Bid]:
        return self.bids[0] if self.bids else None

    def remove_lowest_bid(self) -> Bid:
        """Remove and return the lowest bid; raises IndexError when empty."""
        if not self.bids:
            raise IndexError("remove_lowest_bid from an empty bidder list")
        return self.bids.pop(0)

    def remove_highest_bid(self) -> Optional[Bid]:
        return self.bids.pop() if self.bids else None

    def remove_bid(self, account_id: Any) -> Optional[Bid]:
        """Remove and return the bid of ``account_id`` if there is one."""
        for index, bid in enumerate(self.bids):
            if bid.account == account_id:
                return self.bids.pop(index)
        return None

    def find_bid(self, account_id: Any) -> Optional[Bid]:
        return next((bid for bid in self.bids if bid.account == account_id), None)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BidderList):
            return NotImplemented
        return self.max_size == other.max_size and self.bids == other.bids

    def __repr__(self) -> str:
        return f"BidderList(max_size={self.max_size}, bids={self.bids!r})"


@dataclass
class DeadlineList:
    """(nft_id, block) pairs kept sorted by block, earliest first."""

    entries: list[tuple[Any, Any]] = field(default_factory=list)

    def insert(self, nft_id: Any, block_number: Any) -> None:
        """Insert after every entry whose block is not later than ``block_number``."""
        index = next(
            (i for i, (_, block) in enumerate(self.entries) if block > block_number),
            len(self.entries),
        )
        self.entries.insert(index, (nft_id, block_number))

    def remove(self, nft_id: Any) -> bool:
        for index, (entry_id, _) in enumerate(self.entries):
            if entry_id == nft_id:
                del self.entries[index]
                return True
        return False

    def update(self, nft_id: Any, block_number: Any) -> bool:
        """Move ``nft_id`` to a new deadline; False if it was not present."""
        if not self.remove(nft_id):
            return False
        self.insert(nft_id, block_number)
        return True

    def next(self, block_number: Any) -> Optional[Any]:
        """The first nft whose deadline is at or before ``block_number``."""
        if not self.entries:
            return None
        nft_id, block = self.entries[0]
        return nft_id if block <= block_number else None


@dataclass
class AuctionData:
    """State of one auction."""

    creator: Any
    start_block: int
    end_block: int
    start_price: int
    buy_it_price: Optional[int]
    bidders: BidderList
    marketplace_id: int
    is_extended: bool = False