"""
Runboard: leaderboard ranking engine with idempotent score accumulation.

Layers
------
- runboard.core     infrastructure (config, logging, Redis, exceptions)
- runboard.modules  engine features (leaderboard, idempotency, orders)
"""

__version__ = "1.0.0"
