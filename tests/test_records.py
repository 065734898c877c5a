import pytest

from medledger.crypto.hashing import hash_data, is_transaction_hash
from medledger.errors import ContractNotFound, NotAuthorized
from medledger.models import AccessType

LAB_RESULT = {"glucose": 5.4, "unit": "mmol/L"}


def record_body(clock, **overrides):
    body = {
        "type": "lab_results",
        "title": "Fasting glucose",
        "user_id": 1,
        "timestamp": clock().isoformat(),
        "data_hash": hash_data(LAB_RESULT),
    }
    body.update(overrides)
    return body


class TestStoreRecord:
    @pytest.mark.asyncio
    async def test_store_and_verify(self, ledger, clock):
        tx_hash = await ledger.store_record(record_body(clock))

        assert is_transaction_hash(tx_hash)
        assert await ledger.verify_record(tx_hash, {"type": "lab_results", "title": "Fasting glucose", "user_id": 1})

    @pytest.mark.asyncio
    async def test_verify_mismatch(self, ledger, clock):
        tx_hash = await ledger.store_record(record_body(clock))

        assert not await ledger.verify_record(tx_hash, {"type": "lab_results", "title": "Other", "user_id": 1})
        assert not await ledger.verify_record(tx_hash, {"type": "lab_results", "title": "Fasting glucose", "user_id": 2})
        assert not await ledger.verify_record("0x" + "0" * 40, record_body(clock))
        assert not await ledger.verify_record(tx_hash, "not a record")

    @pytest.mark.asyncio
    async def test_offline_store_and_verify(self, offline_ledger, clock):
        tx_hash = await offline_ledger.store_record(record_body(clock))

        assert is_transaction_hash(tx_hash)
        assert await offline_ledger.verify_record(tx_hash, record_body(clock))
        contract = offline_ledger.registry.get_medical_record_contract(offline_ledger.records.contract_id_for(tx_hash))
        assert contract.anchor is None

    @pytest.mark.asyncio
    async def test_contract_fields(self, ledger, clock):
        tx_hash = await ledger.store_record(record_body(clock))
        contract = ledger.registry.get_medical_record_contract(ledger.records.contract_id_for(tx_hash))

        assert contract.owner_id == 1
        assert contract.record_type == "lab_results"
        assert contract.title == "Fasting glucose"
        assert contract.data_hash == hash_data(LAB_RESULT)
        assert contract.access_control.owner_address == "simulated-1"
        assert contract.anchor.operation == "STORE_MEDICAL_RECORD"

    @pytest.mark.asyncio
    async def test_owner_address_is_identity_wallet(self, ledger, clock):
        await ledger.create_verifiable_credential(1, "patientIdentity", {"name": "Ada"})
        tx_hash = await ledger.store_record(record_body(clock))
        contract = ledger.registry.get_medical_record_contract(ledger.records.contract_id_for(tx_hash))
        assert contract.access_control.owner_address == ledger.identities.get(1).wallet_address

    @pytest.mark.asyncio
    async def test_integrity(self, ledger, clock):
        tx_hash = await ledger.store_record(record_body(clock))
        assert await ledger.verify_record_integrity(tx_hash, dict(LAB_RESULT))
        assert not await ledger.verify_record_integrity(tx_hash, dict(LAB_RESULT, glucose=11.0))

    @pytest.mark.asyncio
    async def test_record_lookup(self, ledger, clock):
        tx_hash = await ledger.store_record(record_body(clock))

        assert ledger.records.get_record(tx_hash).title == "Fasting glucose"
        assert ledger.records.get_record("0x" + "0" * 40) is None
        assert list(ledger.records.cached_records()) == [tx_hash]


class TestRecordAccess:
    @pytest.mark.asyncio
    async def test_access_follows_consent(self, ledger, clock):
        tx_hash = await ledger.store_record(record_body(clock))
        assert not await ledger.verify_access(tx_hash, 2)

        ledger.registry.create_consent_contract(1, 2, ["lab_results"], 30)
        assert await ledger.verify_access(tx_hash, 2, AccessType.READ)
        assert await ledger.verify_access(tx_hash, 1, "write")

        logs = await ledger.get_access_logs(tx_hash, 1)
        assert [(entry.accessor_id, entry.authorized) for entry in logs] == [(2, False), (2, True), (1, True)]

        with pytest.raises(NotAuthorized):
            await ledger.get_access_logs(tx_hash, 2)

    @pytest.mark.asyncio
    async def test_grant_access_to_record(self, ledger, clock):
        tx_hash = await ledger.store_record(record_body(clock))
        assert await ledger.grant_access_to_record(tx_hash, 1, 5)
        assert await ledger.verify_access(tx_hash, 5, "read")

    @pytest.mark.asyncio
    async def test_unknown_record(self, ledger):
        with pytest.raises(ContractNotFound):
            await ledger.verify_access("missing", 1)
