"""Lottery ledger core: entrants, pooled value and winner selection."""
