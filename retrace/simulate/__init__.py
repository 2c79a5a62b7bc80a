"""Trace-to-call reconstruction and profit detection.

Implements:
  - Account-diff analysis (balance direction, nonce consistency)
  - Profit detection for a transaction's sender and receiver
  - Call rewriting with calldata address substitution
  - Two-level call plan reconstruction from a flat trace
  - The end-to-end simulation pipeline
"""
