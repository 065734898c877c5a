"""
In-memory smart contracts for medical records and consent grants.

The registry keeps the contract state; anchoring to the ledger happens in the
services before a contract is created here. Every access check is appended to
the per-record access log, whether it is authorized or not.
"""

import datetime
import logging
import os
from typing import Callable, Dict, Iterable, List, Optional

from medledger.constants import DEFAULT_CONSENT_CONDITIONS
from medledger.crypto.hashing import hash_data, hash_text
from medledger.errors import ContractNotFound, NotAuthorized, NotRevocable
from medledger.models import (
    AccessControl,
    AccessLogEntry,
    AccessPeriod,
    AccessType,
    ConsentContract,
    ConsentProof,
    ConsentStatus,
    LedgerAnchor,
    MedicalRecordContract,
    VerificationStatus,
    utc_now,
)

logger = logging.getLogger(__name__)


class ContractRegistry:
    def __init__(self, clock: Callable[[], datetime.datetime] = utc_now):
        self.clock = clock
        self.medical_record_contracts: Dict[str, MedicalRecordContract] = {}
        self.consent_contracts_by_id: Dict[str, ConsentContract] = {}
        self.access_logs: Dict[str, List[AccessLogEntry]] = {}
        self._sequence = 0

    def _contract_id(self, prefix: str, user_id: int, context: str, timestamp: datetime.datetime) -> str:
        # The sequence keeps ids unique within the same clock tick
        self._sequence += 1
        return hash_text(f"{prefix}-{user_id}-{context}-{timestamp.isoformat()}-{self._sequence}")[:16]

    def create_medical_record_contract(
        self,
        owner_id: int,
        record_type: str,
        title: str,
        data_hash: str,
        owner_address: str,
        anchor: Optional[LedgerAnchor] = None,
    ) -> str:
        """Create a medical record contract and return its id"""
        now = self.clock()
        contract_id = self._contract_id("MR", owner_id, record_type, now)
        self.medical_record_contracts[contract_id] = MedicalRecordContract(
            id=contract_id,
            owner_id=owner_id,
            record_type=record_type,
            title=title,
            data_hash=data_hash,
            timestamp=now,
            access_control=AccessControl(owner_address=owner_address),
            anchor=anchor,
        )
        logger.info(f"Created medical record contract {contract_id} for user {owner_id}")
        return contract_id

    def create_consent_contract(
        self,
        patient_id: int,
        provider_id: int,
        data_types: Iterable[str],
        duration_days: int,
        conditions: Optional[List[str]] = None,
        revocable: bool = True,
        proof: Optional[ConsentProof] = None,
        anchor: Optional[LedgerAnchor] = None,
    ) -> str:
        """Create a consent contract granting provider_id access for duration_days

        Args:
            patient_id: The patient granting access
            provider_id: The provider receiving access
            data_types: Data types covered ('all' covers every type)
            duration_days: Length of the access period from now
            conditions: Usage conditions (defaults to treatment only)
            revocable: Whether the patient may revoke the consent later
            proof: Patient signature over the consent terms
            anchor: Ledger reference when the consent was anchored

        Returns:
            str: The consent contract id
        """
        now = self.clock()
        contract_id = self._contract_id("CS", patient_id, str(provider_id), now)
        self.consent_contracts_by_id[contract_id] = ConsentContract(
            id=contract_id,
            patient_id=patient_id,
            provider_id=provider_id,
            data_types=set(data_types),
            access_period=AccessPeriod(start=now, end=now + datetime.timedelta(days=duration_days)),
            status=ConsentStatus.GRANTED,
            revocable=revocable,
            conditions=list(conditions) if conditions is not None else list(DEFAULT_CONSENT_CONDITIONS),
            timestamp=now,
            proof=proof,
            anchor=anchor,
        )
        logger.info(f"Created consent contract {contract_id}: patient {patient_id} -> provider {provider_id}")
        return contract_id

    def get_medical_record_contract(self, contract_id: str) -> MedicalRecordContract:
        try:
            return self.medical_record_contracts[contract_id]
        except KeyError:
            raise ContractNotFound(f"Medical record contract {contract_id} not found") from None

    def get_consent_contract(self, contract_id: str) -> ConsentContract:
        try:
            return self.consent_contracts_by_id[contract_id]
        except KeyError:
            raise ContractNotFound(f"Consent contract {contract_id} not found") from None

    def consent_contracts(self) -> List[ConsentContract]:
        return list(self.consent_contracts_by_id.values())

    def revoke_consent(self, contract_id: str, patient_id: int) -> bool:
        """Revoke a consent contract on behalf of its patient

        Raises:
            ContractNotFound: If no consent contract has this id
            NotAuthorized: If patient_id does not own the consent
            NotRevocable: If the consent was created non-revocable
        """
        contract = self.get_consent_contract(contract_id)

        if contract.patient_id != patient_id:
            raise NotAuthorized("Not authorized to revoke this consent")
        if not contract.revocable:
            raise NotRevocable("This consent contract is not revocable")

        contract.status = ConsentStatus.REVOKED
        logger.info(f"Revoked consent contract {contract_id}")
        return True

    def verify_access(self, record_contract_id: str, accessor_id: int, access_type=AccessType.READ) -> bool:
        """Check whether accessor_id may access a record, logging the attempt

        Raises:
            ContractNotFound: If no record contract has this id
        """
        record = self.get_medical_record_contract(record_contract_id)
        access_type = AccessType(access_type)

        if record.owner_id == accessor_id or accessor_id in record.access_control.allowed_providers:
            authorized = True
        else:
            now = self.clock()
            authorized = any(
                consent.patient_id == record.owner_id
                and consent.provider_id == accessor_id
                and consent.status == ConsentStatus.GRANTED
                and not consent.is_expired(now)
                and consent.covers(record.record_type)
                for consent in self.consent_contracts_by_id.values()
            )

        self._log_access(record_contract_id, accessor_id, access_type, authorized)
        return authorized

    def _log_access(self, record_id: str, accessor_id: int, access_type: AccessType, authorized: bool):
        entry = AccessLogEntry(
            access_id=os.urandom(8).hex(),
            record_id=record_id,
            accessor_id=accessor_id,
            timestamp=self.clock(),
            access_type=access_type,
            authorized=authorized,
        )
        self.access_logs.setdefault(record_id, []).append(entry)
        if not authorized:
            logger.warning(f"Denied {access_type.value} access to {record_id} for {accessor_id}")

    def get_access_logs(self, record_id: str, owner_id: int) -> List[AccessLogEntry]:
        """Access log of a record, visible to its owner only"""
        record = self.get_medical_record_contract(record_id)
        if record.owner_id != owner_id:
            raise NotAuthorized("Not authorized to view access logs for this record")
        return list(self.access_logs.get(record_id, []))

    def verify_record_integrity(self, contract_id: str, record_data) -> bool:
        """Compare the hash of record_data with the stored hash and record the outcome"""
        record = self.get_medical_record_contract(contract_id)
        verified = hash_data(record_data) == record.data_hash
        record.verification_status = VerificationStatus.VERIFIED if verified else VerificationStatus.REJECTED
        return verified

    def grant_access_to_record(self, record_contract_id: str, owner_id: int, provider_id: int) -> bool:
        """Add provider_id to the record's allowed providers (owner only)"""
        record = self.get_medical_record_contract(record_contract_id)
        if record.owner_id != owner_id:
            raise NotAuthorized("Not authorized to grant access to this record")
        record.access_control.allowed_providers.add(provider_id)
        return True
