"""Decision-layer services: watchdog, fusion pipeline, rules, recommendations and live state."""
