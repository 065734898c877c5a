"""
Constants for the medledger consent and credential core.

This module defines the ledger endpoints, timeouts and issuance defaults used
throughout the package. Values are read from the environment (and a local .env
file) with sensible defaults for development.
"""

import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def is_valid_endpoint(url) -> bool:
    """Return True if url is a ws://, wss://, http:// or https:// URL."""
    if not isinstance(url, str):
        return False
    return url.startswith(("ws://", "wss://", "http://", "https://"))


# Fallback endpoints tried in order after the primary one
DEFAULT_LEDGER_ENDPOINTS = [
    "wss://ethereum-sepolia-rpc.publicnode.com",
    "https://ethereum-sepolia.publicnode.com",
    "https://rpc.sepolia.org",
]

_primary = os.getenv("LEDGER_ENDPOINT")
_override = os.getenv("LEDGER_ENDPOINTS")

if _override:
    LEDGER_ENDPOINTS = [url.strip() for url in _override.split(",") if url.strip()]
elif is_valid_endpoint(_primary):
    LEDGER_ENDPOINTS = [_primary] + [url for url in DEFAULT_LEDGER_ENDPOINTS if url != _primary]
else:
    LEDGER_ENDPOINTS = list(DEFAULT_LEDGER_ENDPOINTS)

# Seconds allowed for each endpoint handshake
LEDGER_CONNECT_TIMEOUT = float(os.getenv("LEDGER_CONNECT_TIMEOUT", "15"))

# Seconds between health pings once connected
LEDGER_HEALTH_INTERVAL = float(os.getenv("LEDGER_HEALTH_INTERVAL", "30"))

# Seconds a single operation waits for the ledger before simulating
LEDGER_SELECT_TIMEOUT = float(os.getenv("LEDGER_SELECT_TIMEOUT", "15"))

# Per-request timeout handed to the HTTP provider
LEDGER_REQUEST_TIMEOUT = float(os.getenv("LEDGER_REQUEST_TIMEOUT", "60"))

# Artificial confirmation delay (seconds) used in simulation mode
SIMULATION_DELAY_MIN = float(os.getenv("SIMULATION_DELAY_MIN", "0.1"))
SIMULATION_DELAY_MAX = float(os.getenv("SIMULATION_DELAY_MAX", "0.6"))

# Known EVM chain ids
CHAIN_NAMES = {
    1: "Ethereum Mainnet",
    17000: "Holesky",
    8453: "Base",
    84532: "Base Sepolia",
    11155111: "Sepolia",
}

# Verifiable credential defaults
CREDENTIAL_ISSUER = os.getenv("CREDENTIAL_ISSUER", "MediBridge")
CREDENTIAL_VALIDITY_DAYS = int(os.getenv("CREDENTIAL_VALIDITY_DAYS", "365"))
CREDENTIAL_PROOF_TYPE = "EcdsaSecp256k1RecoverySignature2020"

# Consent defaults
DEFAULT_CONSENT_DAYS = int(os.getenv("DEFAULT_CONSENT_DAYS", "30"))
DEFAULT_CONSENT_CONDITIONS = ["Must be used for treatment purposes only"]
ALL_DATA_TYPES = "all"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
