"""
Selective-disclosure proofs over record data.

These proofs are hash commitments that simulate a zero-knowledge disclosure
flow: a holder commits to a full record and discloses one property together
with the hashes of its siblings. They are NOT a zero-knowledge scheme: the
undisclosed properties are hidden only by SHA-256, low-entropy values can be
brute-forced from their hashes, and there is no soundness against a prover
who knows the data. Use them for integrity checks between parties that
already trust each other, not as cryptographic proofs.
"""

import time
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ValidationError

from medledger.crypto.hashing import hash_data, hash_text

# Numeric values are placed into one of these ranges; only the range is disclosed
RANGES = [
    {"min": 0, "max": 17, "result": False},
    {"min": 18, "max": 200, "result": True},
]


class RangeProof(BaseModel):
    range_hash: str
    result: bool
    commitment: str


class ProofCommitment(BaseModel):
    proof: str
    public_inputs: List[str]
    verification_key: str


class DisclosureProof(BaseModel):
    property: str
    property_hash: str
    data_hash: str
    merkle_path: List[str]
    range_proof: Optional[RangeProof] = None
    zk_proof: ProofCommitment
    timestamp: int


def _commitment(property_hash: str, data_hash: str, timestamp: int) -> str:
    return hash_text(f"ZKP:{property_hash}:{data_hash}:{timestamp}")


def _range_proof(value, data_hash: str) -> Optional[RangeProof]:
    # bool is an int subclass but is not a quantity
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    for bucket in RANGES:
        if bucket["min"] <= value <= bucket["max"]:
            label = f"range:{bucket['min']}-{bucket['max']}"
            return RangeProof(
                range_hash=hash_text(label),
                result=bucket["result"],
                commitment=hash_text(f"{data_hash}:{label}"),
            )
    return None


def generate_zk_proof(data: Dict[str, Any], property_name: str, timestamp: Optional[int] = None) -> DisclosureProof:
    """Create a disclosure proof for one property of data

    Args:
        data: The full record
        property_name: Top-level key to disclose
        timestamp: Milliseconds since the epoch (defaults to now)

    Raises:
        KeyError: If the property is not present in data
    """
    if property_name not in data:
        raise KeyError(f"Property {property_name} not found in data")

    value = data[property_name]
    data_hash = hash_data(data)
    property_hash = hash_data(value)
    merkle_path = [hash_data(data[key]) for key in data if key != property_name]

    if timestamp is None:
        timestamp = int(time.time() * 1000)

    return DisclosureProof(
        property=property_name,
        property_hash=property_hash,
        data_hash=data_hash,
        merkle_path=merkle_path,
        range_proof=_range_proof(value, data_hash),
        zk_proof=ProofCommitment(
            proof=_commitment(property_hash, data_hash, timestamp),
            public_inputs=[property_name, data_hash[:8]],
            verification_key="sim_verification_key_" + hash_text(f"verify:{property_name}")[:16],
        ),
        timestamp=timestamp,
    )


def verify_zk_proof(proof: Union[DisclosureProof, Dict[str, Any]], expected_data_hash: str) -> bool:
    """Check a disclosure proof against the expected hash of the full record"""
    if isinstance(proof, dict):
        try:
            proof = DisclosureProof.model_validate(proof)
        except ValidationError:
            return False
    if not isinstance(proof, DisclosureProof):
        return False

    if proof.data_hash != expected_data_hash:
        return False

    expected = _commitment(proof.property_hash, expected_data_hash, proof.timestamp)
    return proof.zk_proof.proof == expected
