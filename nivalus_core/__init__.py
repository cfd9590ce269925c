"""
Nivalus Banking Core

Transaction-and-balance consistency core for a single-balance banking
service: policy-checked transactions, atomic balance updates, reversal and
a hash-chained admin audit log.
"""

__version__ = "1.0.0"
