"""
HealthLedger: the entry point of the medledger core.

One HealthLedger is built per process. It owns the single LedgerConnector and
wires it into the record and consent services, together with the shared
contract registry, key manager and identity store.
"""

import datetime
import logging
from typing import Any, Callable, Dict, List, Optional

from medledger.access import AccessVerifier
from medledger.constants import LOG_LEVEL
from medledger.consent import ConsentService
from medledger.contracts import ContractRegistry
from medledger.credentials import CredentialService
from medledger.crypto import proofs, sealing
from medledger.crypto.key_manager import KeyManager
from medledger.identity import IdentityStore
from medledger.ledger import LedgerConnector
from medledger.models import (
    AccessLogEntry,
    AccessType,
    LedgerInfo,
    Transaction,
    parse_timestamp,
    utc_now,
)
from medledger.records import RecordService

logger = logging.getLogger(__name__)


def configure_logging(level=LOG_LEVEL):
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


class HealthLedger:
    """Async facade over the consent, credential and record services

    Args:
        connector: Ledger connection to use (a default one is built if omitted)
        clock: Source of the current time for contracts and expiry checks
    """

    def __init__(self, connector: Optional[LedgerConnector] = None, clock: Callable[[], datetime.datetime] = utc_now):
        self.clock = clock
        self.connector = connector if connector is not None else LedgerConnector()
        self.key_manager = KeyManager()
        self.identities = IdentityStore(self.key_manager)
        self.registry = ContractRegistry(clock=clock)
        self.records = RecordService(self.connector, self.registry, self.identities)
        self.consents = ConsentService(self.connector, self.registry, self.identities, clock=clock)
        self.credentials = CredentialService(self.identities, clock=clock)
        self.access = AccessVerifier(self.registry, self.identities, clock=clock)

    async def create_wallet(self) -> str:
        return self.key_manager.create_wallet()

    async def store_record(self, record) -> str:
        return await self.records.store_record(record)

    async def verify_record(self, tx_hash: str, record_data) -> bool:
        return await self.records.verify_record(tx_hash, record_data)

    async def verify_record_integrity(self, record_id: str, data) -> bool:
        return self.records.verify_record_integrity(record_id, data)

    async def store_consent(self, consent) -> str:
        return await self.consents.store_consent(consent)

    async def update_consent(self, update) -> str:
        return await self.consents.update_consent(update)

    async def create_verifiable_credential(self, user_id: int, credential_type: str, claims: Dict[str, Any]) -> str:
        return self.credentials.create_verifiable_credential(user_id, credential_type, claims)

    async def verify_credential(self, credential_id: str, user_id: int) -> bool:
        return self.credentials.verify_credential(credential_id, user_id)

    async def grant_selective_access(self, user_id: int, provider_id: int, data_types: List[str], duration_days: int) -> str:
        return await self.consents.grant_selective_access(user_id, provider_id, data_types, duration_days)

    async def verify_provider_access(self, patient_id: int, provider_id: int, data_type: str) -> bool:
        return self.access.verify_provider_access(patient_id, provider_id, data_type)

    async def verify_access(self, record_id: str, accessor_id: int, access_type=AccessType.READ) -> bool:
        """Check access to a record (by store hash or contract id); every check is logged"""
        return self.registry.verify_access(self.records.contract_id_for(record_id), accessor_id, access_type)

    async def grant_access_to_record(self, record_id: str, owner_id: int, provider_id: int) -> bool:
        return self.registry.grant_access_to_record(self.records.contract_id_for(record_id), owner_id, provider_id)

    async def get_access_logs(self, record_id: str, owner_id: int) -> List[AccessLogEntry]:
        return self.registry.get_access_logs(self.records.contract_id_for(record_id), owner_id)

    async def get_blockchain_info(self) -> LedgerInfo:
        return await self.connector.status()

    async def get_user_transactions(self, user_id: int) -> List[Transaction]:
        """Records and consents stored for a user, newest first"""
        chain = self.connector.chain if self.connector.connected else "simulation"
        transactions = []
        for tx_hash, record in self.records.cached_records().items():
            if record.user_id == user_id:
                transactions.append(Transaction(
                    hash=tx_hash,
                    type="record",
                    data=record.model_dump(),
                    timestamp=record.timestamp,
                    blockchain=chain,
                ))
        for tx_hash, consent in self.consents.cached_consents().items():
            if consent.user_id == user_id:
                transactions.append(Transaction(
                    hash=tx_hash,
                    type="consent",
                    data=consent.model_dump(),
                    timestamp=consent.timestamp,
                    blockchain=chain,
                ))

        oldest = datetime.datetime.min.replace(tzinfo=datetime.timezone.utc)
        return sorted(transactions, key=lambda tx: parse_timestamp(tx.timestamp) or oldest, reverse=True)

    async def generate_zk_proof(self, data: Dict[str, Any], property_name: str) -> proofs.DisclosureProof:
        return proofs.generate_zk_proof(data, property_name)

    async def verify_zk_proof(self, proof, expected_data_hash: str) -> bool:
        return proofs.verify_zk_proof(proof, expected_data_hash)

    async def encrypt_data(self, data, user_id: int) -> str:
        """Seal data to the wallet of user_id

        Raises:
            NoIdentity: If the user has no ledger identity yet
        """
        return sealing.seal(data, self.identities.wallet(user_id).public_key)

    async def decrypt_data(self, sealed, user_id: int) -> str:
        return sealing.unseal(sealed, self.identities.wallet(user_id).private_key)

    async def close(self):
        await self.connector.close()
