"""Transformer, notifications, ledger and the submission pipeline."""
