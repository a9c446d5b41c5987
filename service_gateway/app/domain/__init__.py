"""
Domain utilities for the Gateway Service.

Includes the gatekeeping pipeline, per-route gate policies and the account
and project services that sit behind them.
"""

from .pipeline import GateContext, GatekeepingPipeline, GatePolicy, InboundRequest, LimitPosition

__all__ = [
    "GateContext",
    "GatePolicy",
    "GatekeepingPipeline",
    "InboundRequest",
    "LimitPosition",
]
