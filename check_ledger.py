import asyncio
import importlib
import os
import sys

# Modules medledger needs at runtime, with what each one backs
REQUIRED = [
    ("web3", "ledger connections"),
    ("eth_account", "consent and credential signatures"),
    ("eth_keys", "wallet public keys"),
    ("cryptography", "sealing data to a wallet"),
    ("pydantic", "payload models"),
    ("dotenv", "endpoint configuration"),
    ("medledger.service", "the HealthLedger facade"),
]


def missing_modules():
    """Try every required import and return the names that failed"""
    missing = []
    for name, purpose in REQUIRED:
        try:
            importlib.import_module(name)
        except ImportError as e:
            print(f"❌ {name} ({purpose}): {e}")
            missing.append(name)
        else:
            print(f"✅ {name} ({purpose})")
    return missing


async def check_ledger():
    """Connect with the configured endpoints and print the ledger status"""
    from medledger import HealthLedger, configure_logging
    from medledger.constants import LEDGER_ENDPOINTS
    from medledger.errors import ConnectionFailure

    configure_logging()
    print(f"Endpoints: {', '.join(LEDGER_ENDPOINTS)}")

    ledger = HealthLedger()
    events = []
    ledger.connector.subscribe(events.append)
    try:
        try:
            await ledger.connector.ensure_connected()
        except ConnectionFailure as e:
            print(f"⚠️ {e}")
        info = await ledger.get_blockchain_info()
    finally:
        ledger.connector.unsubscribe(events.append)
        await ledger.close()

    for event in events:
        print(f"   event: {event.value}")
    for key, value in info.to_dict().items():
        print(f"   {key}: {value}")

    if info.simulation_mode:
        print("\n❌ Ledger unreachable, running in simulation mode.")
        return False
    print(f"\n✅ Connected to {info.chain} at block {info.current_block}")
    return True


def main():
    print("Checking medledger components...")

    missing = missing_modules()

    if os.path.exists(".env"):
        print("✅ .env file exists")
    else:
        print("ℹ️ No .env file, using default endpoints")

    if missing:
        print(f"\n❌ Missing: {', '.join(missing)}")
        return False

    return asyncio.run(check_ledger())


if __name__ == "__main__":
    if not main():
        sys.exit(1)
