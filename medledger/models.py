from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional, Set
from enum import Enum
import datetime

from medledger.constants import ALL_DATA_TYPES


def utc_now() -> datetime.datetime:
    """Default clock used by the registry and services"""
    return datetime.datetime.now(datetime.timezone.utc)


def parse_timestamp(value) -> Optional[datetime.datetime]:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC, invalid ones give None"""
    if isinstance(value, datetime.datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


class AccessType(str, Enum):
    READ = "read"
    WRITE = "write"
    UPDATE = "update"
    DELETE = "delete"


class VerificationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class ConsentStatus(str, Enum):
    GRANTED = "granted"
    REVOKED = "revoked"


class Wallet(BaseModel):
    """Key material held by the KeyManager"""
    address: str
    public_key: str
    private_key: str
    mnemonic: Optional[str] = None
    degraded: bool = False

    def __repr__(self):
        return f"Wallet(address={self.address!r}, degraded={self.degraded})"

    __str__ = __repr__


class LedgerAnchor(BaseModel):
    """Reference to the ledger state a contract was committed against"""
    operation: str
    data_hash: str
    chain: str
    block_number: int
    endpoint: str
    anchored_at: datetime.datetime


class AccessControl(BaseModel):
    owner_address: str
    allowed_providers: Set[int] = Field(default_factory=set)
    is_public: bool = False


class MedicalRecordContract(BaseModel):
    """In-memory representation of a medical record smart contract"""
    id: str
    owner_id: int
    record_type: str
    title: str
    data_hash: str
    timestamp: datetime.datetime
    access_control: AccessControl
    verification_status: VerificationStatus = VerificationStatus.PENDING
    anchor: Optional[LedgerAnchor] = None


class AccessPeriod(BaseModel):
    start: datetime.datetime
    end: datetime.datetime


class ConsentProof(BaseModel):
    """Patient signature over the consent terms"""
    signature: str
    public_key: str
    signed_at: str
    expires_at: str


class ConsentContract(BaseModel):
    """In-memory representation of a consent smart contract"""
    id: str
    patient_id: int
    provider_id: int
    data_types: Set[str]
    access_period: AccessPeriod
    status: ConsentStatus = ConsentStatus.GRANTED
    revocable: bool = True
    conditions: List[str] = Field(default_factory=list)
    timestamp: datetime.datetime
    proof: Optional[ConsentProof] = None
    anchor: Optional[LedgerAnchor] = None

    def is_expired(self, now: datetime.datetime) -> bool:
        return now > self.access_period.end

    def covers(self, data_type: str) -> bool:
        return data_type in self.data_types or ALL_DATA_TYPES in self.data_types


class AccessLogEntry(BaseModel):
    access_id: str
    record_id: str
    accessor_id: int
    timestamp: datetime.datetime
    access_type: AccessType
    authorized: bool


class EncryptionDetails(BaseModel):
    is_encrypted: bool
    recipient_ids: List[int] = Field(default_factory=list)


class MedicalRecordPayload(BaseModel):
    """Record body submitted for anchoring"""
    type: str
    title: str
    user_id: int
    timestamp: str
    data_hash: str  # Hash of the actual record data
    signature: Optional[str] = None
    encryption: Optional[EncryptionDetails] = None


class AccessConditions(BaseModel):
    purpose: str
    access_count: Optional[int] = None
    ip_restrictions: Optional[List[str]] = None


class CryptographicProof(BaseModel):
    signature: str
    public_key: str


class ConsentPayload(BaseModel):
    """Consent body submitted for anchoring"""
    user_id: int
    provider_id: int
    data_types: List[str]
    status: str = ConsentStatus.GRANTED.value
    timestamp: str
    expiry_date: Optional[str] = None
    access_conditions: AccessConditions
    cryptographic_proof: Optional[CryptographicProof] = None

    @field_validator("data_types", mode="before")
    @classmethod
    def _as_list(cls, value):
        if isinstance(value, str):
            return [value]
        return value


class ConsentUpdate(BaseModel):
    """Status change for a stored consent"""
    consent_id: str
    status: str
    user_id: int
    timestamp: str
    reason: str
    signature: Optional[str] = None


class CredentialProof(BaseModel):
    type: str
    created: str
    verification_method: str  # Holder public key
    proof_purpose: str = "assertionMethod"
    proof_value: str  # Signature over the claims hash


class Credential(BaseModel):
    id: str
    type: str
    issuer: str
    subject: int
    issuance_date: str
    expiration_date: str
    claims: Dict[str, Any]
    proof: CredentialProof


class Identity(BaseModel):
    user_id: int
    wallet_address: str
    credentials: Dict[str, Credential] = Field(default_factory=dict)


class LedgerInfo(BaseModel):
    """Snapshot of the ledger connection"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    connected: bool
    network_status: str
    chain: Optional[str] = None
    node_name: Optional[str] = None
    node_version: Optional[str] = None
    current_block: Optional[int] = None
    endpoint: Optional[str] = None
    simulation_mode: Optional[bool] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Transaction(BaseModel):
    hash: str
    type: str
    data: Dict[str, Any]
    timestamp: str
    blockchain: Optional[str] = None
