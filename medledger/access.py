import datetime
import logging
from typing import Callable, Optional

from medledger.consent import consent_message
from medledger.contracts import ContractRegistry
from medledger.crypto.key_manager import verify_signature
from medledger.identity import IdentityStore
from medledger.models import ConsentContract, ConsentStatus, parse_timestamp, utc_now

logger = logging.getLogger(__name__)


class AccessVerifier:
    """Answers whether a provider may see a type of data for a patient"""

    def __init__(
        self,
        registry: ContractRegistry,
        identities: Optional[IdentityStore] = None,
        clock: Callable[[], datetime.datetime] = utc_now,
    ):
        self.registry = registry
        self.identities = identities
        self.clock = clock

    def verify_provider_access(self, patient_id: int, provider_id: int, data_type: str) -> bool:
        now = self.clock()
        for consent in self.registry.consent_contracts():
            if consent.patient_id != patient_id or consent.provider_id != provider_id:
                continue
            if consent.status != ConsentStatus.GRANTED or consent.is_expired(now):
                continue
            if not consent.covers(data_type):
                continue
            if self._within_signed_expiry(consent, now) and self._signature_valid(consent):
                return True
        return False

    def _within_signed_expiry(self, consent: ConsentContract, now) -> bool:
        # The contract period is rounded to whole days; the signed expiry is exact
        if consent.proof is None:
            return False
        expires = parse_timestamp(consent.proof.expires_at)
        return expires is not None and now <= expires

    def _signature_valid(self, consent: ConsentContract) -> bool:
        proof = consent.proof
        if proof is None:
            return False

        # A patient with a wallet must have signed with that wallet's key
        if self.identities is not None and consent.patient_id in self.identities:
            wallet = self.identities.wallet(consent.patient_id)
            if wallet.public_key != proof.public_key:
                logger.warning(f"Consent {consent.id} was not signed by patient {consent.patient_id}")
                return False

        message = consent_message(
            consent.patient_id,
            consent.provider_id,
            consent.data_types,
            proof.signed_at,
            proof.expires_at,
        )
        return verify_signature(message, proof.signature, proof.public_key)
