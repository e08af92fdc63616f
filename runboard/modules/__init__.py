"""Engine feature modules: leaderboard, idempotency, orders, shared foundations."""
