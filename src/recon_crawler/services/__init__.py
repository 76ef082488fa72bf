"""Scope decisions and link harvesting shared by every worker."""

from .link_harvester import HarvestReport, LinkHarvester
from .scope_engine import ScopeDecision, ScopeEngine, ScopeMode


__all__ = [
    "HarvestReport",
    "LinkHarvester",
    "ScopeDecision",
    "ScopeEngine",
    "ScopeMode",
]
