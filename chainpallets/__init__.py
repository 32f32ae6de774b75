"""In-memory NFT auction and capsule pallets with balances, weights and transactional calls."""

__version__ = "0.1.0"
__all__ = ["auction_types", "auctions", "capsules", "runtime", "weights"]