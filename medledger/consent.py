"""
Consent storage and revocation.

Consents are anchored to the ledger when it answers and simulated otherwise;
either way the caller gets the same kind of transaction hash back and a
consent contract is created in the registry.
"""

import datetime
import logging
import math
from typing import Callable, Dict, Iterable, List, Optional, Union

from medledger.constants import DEFAULT_CONSENT_DAYS
from medledger.contracts import ContractRegistry
from medledger.crypto.hashing import canonical_json, transaction_hash
from medledger.identity import IdentityStore
from medledger.ledger import LedgerConnector
from medledger.models import (
    AccessConditions,
    ConsentPayload,
    ConsentProof,
    ConsentStatus,
    ConsentUpdate,
    CryptographicProof,
    parse_timestamp,
    utc_now,
)

logger = logging.getLogger(__name__)


def consent_message(user_id: int, provider_id: int, data_types: Iterable[str], timestamp: str, expiry_date: str) -> str:
    """The exact text a patient signs to grant consent"""
    return canonical_json({
        "userId": user_id,
        "providerId": provider_id,
        "dataTypes": sorted(set(data_types)),
        "timestamp": timestamp,
        "expiryDate": expiry_date,
    })


def consent_duration(expiry_date: Optional[str], now: datetime.datetime) -> int:
    """Whole days until expiry_date, rounded up; the default when missing or past"""
    expiry = parse_timestamp(expiry_date)
    if expiry is None or expiry <= now:
        return DEFAULT_CONSENT_DAYS
    return math.ceil((expiry - now).total_seconds() / 86400)


class ConsentService:
    def __init__(
        self,
        connector: LedgerConnector,
        registry: ContractRegistry,
        identities: IdentityStore,
        clock: Callable[[], datetime.datetime] = utc_now,
    ):
        self.connector = connector
        self.registry = registry
        self.identities = identities
        self.clock = clock
        self.consents: Dict[str, ConsentPayload] = {}
        self.contract_ids: Dict[str, str] = {}

    async def store_consent(self, consent: Union[ConsentPayload, dict]) -> str:
        """Anchor a consent and create its contract

        Args:
            consent: The consent body

        Returns:
            str: Transaction hash of the stored consent

        Raises:
            ValueError: If the consent names no data types
        """
        if not isinstance(consent, ConsentPayload):
            consent = ConsentPayload.model_validate(consent)
        if not consent.data_types:
            raise ValueError("Consent must cover at least one data type")

        data_hash = transaction_hash(consent)
        anchor = await self.connector.commit("STORE_CONSENT", data_hash)

        proof = None
        if consent.cryptographic_proof is not None and consent.expiry_date:
            proof = ConsentProof(
                signature=consent.cryptographic_proof.signature,
                public_key=consent.cryptographic_proof.public_key,
                signed_at=consent.timestamp,
                expires_at=consent.expiry_date,
            )
        else:
            logger.warning(f"Consent from user {consent.user_id} lacks a complete cryptographic proof")

        contract_id = self.registry.create_consent_contract(
            consent.user_id,
            consent.provider_id,
            consent.data_types,
            consent_duration(consent.expiry_date, self.clock()),
            proof=proof,
            anchor=anchor,
        )

        self.consents[data_hash] = consent
        self.contract_ids[data_hash] = contract_id
        logger.info(f"Stored consent {data_hash} as contract {contract_id}")
        return data_hash

    def contract_id_for(self, consent_id: str) -> str:
        """Resolve a store hash or a contract id to a contract id"""
        return self.contract_ids.get(consent_id, consent_id)

    def get_consent(self, data_hash: str) -> Optional[ConsentPayload]:
        return self.consents.get(data_hash)

    def cached_consents(self) -> Dict[str, ConsentPayload]:
        return dict(self.consents)

    async def update_consent(self, update: Union[ConsentUpdate, dict]) -> str:
        """Apply a status change to a stored consent

        Raises:
            ContractNotFound: If the consent id resolves to no contract
            NotAuthorized: If the user does not own the consent
            NotRevocable: If the consent cannot be revoked
        """
        if not isinstance(update, ConsentUpdate):
            update = ConsentUpdate.model_validate(update)

        if update.status == ConsentStatus.REVOKED.value:
            contract_id = self.contract_id_for(update.consent_id)
            self.registry.revoke_consent(contract_id, update.user_id)
            for data_hash, cached in list(self.consents.items()):
                if self.contract_ids.get(data_hash) == contract_id:
                    self.consents[data_hash] = cached.model_copy(update={"status": ConsentStatus.REVOKED.value})

        data_hash = transaction_hash(update)
        await self.connector.commit("UPDATE_CONSENT", data_hash)
        logger.info(f"Updated consent {update.consent_id} to {update.status}")
        return data_hash

    async def grant_selective_access(self, user_id: int, provider_id: int, data_types: List[str], duration_days: int) -> str:
        """Sign and store a consent on behalf of a user

        Raises:
            NoIdentity: If the user has no ledger identity yet
        """
        wallet = self.identities.wallet(user_id)

        now = self.clock()
        timestamp = now.isoformat()
        expiry_date = (now + datetime.timedelta(days=duration_days)).isoformat()

        message = consent_message(user_id, provider_id, data_types, timestamp, expiry_date)
        signature = self.identities.key_manager.sign(wallet.address, message)

        consent = ConsentPayload(
            user_id=user_id,
            provider_id=provider_id,
            data_types=list(data_types),
            status=ConsentStatus.GRANTED.value,
            timestamp=timestamp,
            expiry_date=expiry_date,
            access_conditions=AccessConditions(purpose="medical", access_count=10),
            cryptographic_proof=CryptographicProof(signature=signature, public_key=wallet.public_key),
        )
        return await self.store_consent(consent)
