import pytest
import pytest_asyncio

from src.contracts.models import ContractStatus
from src.contracts.schemas import ContractCreate, VersionDraft
from src.contracts.service import ContractService
from src.shared.exceptions import StorageError
from src.shared.schemas import WriteOutcome
from src.storage.mirrored import MirroredStore, mirror_failures


@pytest.fixture
def mirrored(store, document_store):
    return MirroredStore(store, document_store)


@pytest.fixture(autouse=True)
def reset_counters():
    mirror_failures.clear()
    yield
    mirror_failures.clear()


@pytest_asyncio.fixture
async def mirrored_service(mirrored):
    service = ContractService(mirrored)
    service.actor = (await service.get_or_create_user_by_email("admin@example.com", "Admin User")).data
    return service


@pytest.mark.asyncio
async def test_writes_land_in_both_stores_under_same_id(mirrored_service, store, document_store):
    contract = (await mirrored_service.create_contract(ContractCreate(title="Supply"))).data
    await mirrored_service.create_version(contract.id, VersionDraft(content="v2"))

    primary = await store.get_contract(contract.id)
    secondary = await document_store.get_contract(contract.id)
    assert primary.status == secondary.status == ContractStatus.REVIEW
    assert [v.id for v in await store.list_versions(contract.id)] == \
        [v.id for v in await document_store.list_versions(contract.id)]
    assert await document_store.get_user(mirrored_service.actor.id) is not None


@pytest.mark.asyncio
async def test_secondary_failure_degrades_but_keeps_primary(mirrored_service, store, firestore_client):
    firestore_client.unavailable = True

    result = await mirrored_service.create_contract(ContractCreate(title="Supply"))

    assert result.outcome == WriteOutcome.DEGRADED
    assert any("create_contract" in w for w in result.warnings)
    assert await store.get_contract(result.data.id) is not None
    assert mirror_failures["create_contract"] == 1
    assert mirror_failures["insert_activity"] == 1


@pytest.mark.asyncio
async def test_warnings_are_drained_per_call(mirrored_service, firestore_client):
    firestore_client.unavailable = True
    degraded = await mirrored_service.create_contract(ContractCreate(title="Supply"))
    firestore_client.unavailable = False

    clean = await mirrored_service.update_status(degraded.data.id, ContractStatus.REVIEW)

    assert degraded.outcome == WriteOutcome.DEGRADED
    # The mirror never saw the contract, so this replay fails too; but nothing carries over.
    assert all("create_contract" not in w for w in clean.warnings)


@pytest.mark.asyncio
async def test_primary_failure_propagates(mirrored_service, store, monkeypatch, firestore_client):
    async def broken(*args):
        raise StorageError("Primary store is unavailable")

    monkeypatch.setattr(store, "create_contract", broken)

    with pytest.raises(StorageError):
        await mirrored_service.create_contract(ContractCreate(title="Supply"))
    assert not [p for p in firestore_client.docs if p[0] == "contracts"]


@pytest.mark.asyncio
async def test_reads_come_from_primary(mirrored_service, store, firestore_client):
    contract = (await mirrored_service.create_contract(ContractCreate(title="Supply"))).data
    firestore_client.docs.clear()

    assert [c.id for c in await mirrored_service.get_contracts()] == [contract.id]


@pytest.mark.asyncio
async def test_known_user_is_not_mirrored_again(mirrored_service, document_store, monkeypatch):
    calls = []

    async def tracking(user):
        calls.append(user.email)
        raise StorageError("Firestore is unavailable")

    monkeypatch.setattr(document_store, "get_or_create_user", tracking)

    again = await mirrored_service.get_or_create_user_by_email("admin@example.com", "Admin User")
    assert again.outcome == WriteOutcome.PERSISTED
    assert calls == []
    assert mirror_failures["get_or_create_user"] == 0

    created = await mirrored_service.get_or_create_user_by_email("legal@example.com", "Legal Reviewer")
    assert created.outcome == WriteOutcome.DEGRADED
    assert calls == ["legal@example.com"]
    assert mirror_failures["get_or_create_user"] == 1
