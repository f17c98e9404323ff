"""Personal anime watch-state tracker: stores, consistency rules and session auth."""
