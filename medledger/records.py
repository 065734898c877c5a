import logging
from typing import Dict, Optional, Union

from medledger.contracts import ContractRegistry
from medledger.crypto.hashing import transaction_hash
from medledger.identity import IdentityStore
from medledger.ledger import LedgerConnector
from medledger.models import MedicalRecordPayload

logger = logging.getLogger(__name__)


class RecordService:
    """Stores medical record references and checks them later"""

    def __init__(self, connector: LedgerConnector, registry: ContractRegistry, identities: IdentityStore):
        self.connector = connector
        self.registry = registry
        self.identities = identities
        self.records: Dict[str, MedicalRecordPayload] = {}
        self.contract_ids: Dict[str, str] = {}

    async def store_record(self, record: Union[MedicalRecordPayload, dict]) -> str:
        """Anchor a record and create its contract

        Args:
            record: The record body; data_hash is the hash of the record content

        Returns:
            str: Transaction hash of the stored record
        """
        if not isinstance(record, MedicalRecordPayload):
            record = MedicalRecordPayload.model_validate(record)

        tx_hash = transaction_hash(record)
        anchor = await self.connector.commit("STORE_MEDICAL_RECORD", tx_hash)

        identity = self.identities.find(record.user_id)
        owner_address = identity.wallet_address if identity is not None else f"simulated-{record.user_id}"

        contract_id = self.registry.create_medical_record_contract(
            record.user_id,
            record.type,
            record.title,
            record.data_hash,
            owner_address,
            anchor=anchor,
        )

        self.records[tx_hash] = record
        self.contract_ids[tx_hash] = contract_id
        logger.info(f"Stored record {tx_hash} as contract {contract_id}")
        return tx_hash

    def contract_id_for(self, record_id: str) -> str:
        """Resolve a store hash or a contract id to a contract id"""
        return self.contract_ids.get(record_id, record_id)

    def get_record(self, tx_hash: str) -> Optional[MedicalRecordPayload]:
        return self.records.get(tx_hash)

    def cached_records(self) -> Dict[str, MedicalRecordPayload]:
        return dict(self.records)

    async def verify_record(self, tx_hash: str, record_data) -> bool:
        """Check that record_data matches the record stored under tx_hash"""
        strategy = await self.connector.select_strategy()
        if strategy.simulated:
            await strategy.anchor("VERIFY_MEDICAL_RECORD", tx_hash)

        record = self.get_record(tx_hash)
        if record is None:
            return False

        if isinstance(record_data, MedicalRecordPayload):
            record_data = record_data.model_dump()
        if not isinstance(record_data, dict):
            return False

        return (
            record.type == record_data.get("type")
            and record.title == record_data.get("title")
            and record.user_id == record_data.get("user_id")
        )

    def verify_record_integrity(self, record_id: str, data) -> bool:
        """Compare the content hash of data with the hash the record was stored with"""
        return self.registry.verify_record_integrity(self.contract_id_for(record_id), data)
