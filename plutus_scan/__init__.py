"""Plutus Scan - on-chain registry of reproducible smart-contract builds."""

__version__ = "0.3.0"
