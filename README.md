# chainpallets

An in-memory model of two on-chain modules ("pallets") for NFTs, with no
dependencies beyond the standard library.

- **Auctions** (`chainpallets.auctions`): `AuctionsPallet` creates,
  cancels, ends, bids on, buys out and completes NFT auctions. Bids are
  held by the pallet's own account, outbid or leftover bids become claims
  that bidders collect with `claim`, the marketplace commission is paid on
  sale, and bidding close to the end extends the auction by a grace period.
  `run_to_block(n)` advances the block number and `on_initialize` completes
  every auction whose deadline has been reached.
- **Capsules** (`chainpallets.capsules`): `CapsulesPallet` mints an NFT as
  a capsule (`create`) or converts an existing one (`create_from_nft`),
  locking the mint fee in the pallet's account; `add_funds`,
  `set_ipfs_reference`, `remove` (refunds the deposit) and the root-only
  `set_capsule_mint_fee` manage it. `on_runtime_upgrade` stores the default
  mint fee when none is set.

Shared pieces:

- `chainpallets.runtime`: `Origin` (`Origin.signed(account)`,
  `Origin.root()`), `ensure_signed`, `ensure_root`, `Balances` (free
  balances with an existential deposit), `NFTHandler`, `MarketplaceHandler`,
  `transactional`, `check_bounds` and `pallet_account`.
- `chainpallets.auction_types`: `BidderList`, `DeadlineList`, `AuctionData`.
- `chainpallets.weights`: `DbWeight`, `auction_weight(name)` and
  `capsule_weight(name)` giving the weight of each call by name.

Failures are raised as `DispatchError` subclasses: `AuctionError` and
`CapsuleError` (each with a `kind` enum member), `BadOrigin`,
`InsufficientBalance` and `KeepAliveError`. Calls that move funds or mint
are transactional: if they raise, storage, balances, NFTs and marketplaces
are rolled back to their state before the call. Emitted events are
appended to each pallet's `events` list.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Example

```python
from chainpallets.auction_types import BidderList, DeadlineList

bids = BidderList(3)
bids.insert_new_bid(1, 101)
bids.insert_new_bid(2, 150)
print(bids.get_highest_bid())   # Bid(account=2, amount=150)

deadlines = DeadlineList()
deadlines.insert(7, 100)
deadlines.insert(8, 50)
print(deadlines.next(60))       # 8
```

An auction from creation to settlement:

```python
from chainpallets.auctions import AuctionConfig, AuctionGenesis, AuctionsPallet
from chainpallets.runtime import Balances, MarketplaceHandler, NFTHandler, Origin

balances = Balances(endowed={1: 1000, 2: 1000})
nfts = NFTHandler()
markets = MarketplaceHandler()

market_id = markets.create(owner=1, commission_fee=10)
nft_id = nfts.create_nft(1, b"ref")
nfts.set_series_completion(nfts.get_nft(nft_id).series_id, True)

config = AuctionConfig(
    min_auction_duration=100,
    max_auction_duration=1000,
    max_auction_delay=50,
    auction_grace_period=5,
    auction_ending_period=10,
)
auctions = AuctionsPallet(config, balances, nfts, markets, AuctionGenesis(bid_history_size=3))

auctions.create_auction(Origin.signed(1), nft_id, market_id, 0, 100, 100, 200)
auctions.add_bid(Origin.signed(2), nft_id, 150)
auctions.run_to_block(100)

print(nfts.owner(nft_id))          # 2
print(balances.free_balance(1))    # 1150
```

Weights for calls are available by name:

```python
from chainpallets.weights import auction_weight, capsule_weight

auction_weight("add_bid")
capsule_weight("create")
```

An unknown name raises `ValueError`.

## What this package does not do

Everything lives in Python objects in memory. There is no blockchain node,
no block production beyond the `block_number` counter of `AuctionsPallet`,
no persistent storage, no network access and no command-line program.
`NFTHandler` and `MarketplaceHandler` are minimal in-memory registries that
provide only what the two pallets need.