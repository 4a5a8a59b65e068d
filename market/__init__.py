"""Market clearing and adaptive range negotiation engine."""
