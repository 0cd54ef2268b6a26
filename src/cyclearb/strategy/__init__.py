"""Strategy module: exchange graph, cycle detection, scoring and gating."""

from cyclearb.strategy.detector import CycleDetector
from cyclearb.strategy.gate import DecisionGate
from cyclearb.strategy.graph import ExchangeGraph, GraphSnapshot
from cyclearb.strategy.scorer import HistoryTable, OpportunityScorer


__all__ = [
    "CycleDetector",
    "DecisionGate",
    "ExchangeGraph",
    "GraphSnapshot",
    "HistoryTable",
    "OpportunityScorer",
]
