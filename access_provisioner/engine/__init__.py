"""
Engine Package for the Access Provisioner.

Call pacing shared by the provisioning stages.
"""

from .rate_limiter import (
    FixedDelayLimiter,
    NoDelayLimiter,
    RateLimiter,
    TokenBucketLimiter,
    create_rate_limiter,
)

__all__ = [
    "RateLimiter",
    "FixedDelayLimiter",
    "TokenBucketLimiter",
    "NoDelayLimiter",
    "create_rate_limiter",
]
