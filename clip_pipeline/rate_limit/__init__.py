"""
Rate Limiting
=============
Keyed permit pools for external API budgets.
"""
from .permit_pool import Permit, PermitPool
from .registry import RateLimiterRegistry

__all__ = ["Permit", "PermitPool", "RateLimiterRegistry"]
