"""Photo Ledger - construction photo classification and ledger layout."""

from photoledger.pipeline import classify_batch, load_master, normalize, plan_layout

__all__ = ["classify_batch", "load_master", "normalize", "plan_layout"]
