"""
Negative-Cycle Arbitrage Detection Engine.

Keeps a live log-weighted graph of one exchange's pairs, finds
negative cycles with Bellman-Ford, scores them against their own
yield history and hands approved cycles to an execution dispatcher.
"""

__version__ = "1.0.0"
__author__ = "Tim"
