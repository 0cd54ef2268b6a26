"""Feed ingestion: rate normalization, pending queue, ticker polling."""

from cyclearb.feed.normalizer import PriceFeedNormalizer, edge_weight
from cyclearb.feed.queue import PendingUpdateQueue
from cyclearb.feed.ticker import BinanceTickerFeed, load_pairs, rates_from_book_ticker


__all__ = [
    "BinanceTickerFeed",
    "PendingUpdateQueue",
    "PriceFeedNormalizer",
    "edge_weight",
    "load_pairs",
    "rates_from_book_ticker",
]
