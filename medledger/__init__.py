"""Consent, credential and record integrity core anchored to an EVM ledger."""

from medledger.service import HealthLedger, configure_logging

__version__ = "0.1.0"

__all__ = ["HealthLedger", "configure_logging"]
