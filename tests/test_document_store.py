import asyncio

import pytest

from src.contracts.models import ContractStatus
from src.contracts.schemas import ContractCreate, VersionDraft
from src.contracts.service import ContractService
from src.shared.exceptions import InvalidStateError, StorageError


@pytest.fixture
def doc_service(document_store):
    return ContractService(document_store)


async def _actor(service):
    user = (await service.get_or_create_user_by_email("admin@example.com", "Admin User")).data
    service.actor = user
    return user


@pytest.mark.asyncio
async def test_contract_layout_uses_subcollections(doc_service, firestore_client):
    await _actor(doc_service)
    contract = (await doc_service.create_contract(ContractCreate(title="Lease", category="Real Estate"))).data

    doc = firestore_client.docs[("contracts", str(contract.id))]
    assert doc["title"] == "Lease"
    assert doc["authorName"] == "Admin User"
    assert doc["versionCount"] == 1
    assert isinstance(doc["createdAt"], str)

    version_id = str(contract.versions[0].id)
    version = firestore_client.docs[("contracts", str(contract.id), "versions", version_id)]
    assert version["versionNumber"] == 1

    logs = [p for p in firestore_client.docs if p[:3] == ("contracts", str(contract.id), "activityLogs")]
    assert len(logs) == 1


@pytest.mark.asyncio
async def test_versions_comments_and_status(doc_service, firestore_client):
    await _actor(doc_service)
    contract = (await doc_service.create_contract(ContractCreate(title="Lease", content="one"))).data
    await doc_service.create_version(contract.id, VersionDraft(content="two"))
    v1 = contract.versions[0]
    await doc_service.add_comment(contract.id, v1.id, "first comment")

    loaded = await doc_service.get_contract_by_id(contract.id)

    assert loaded.status == ContractStatus.REVIEW
    assert loaded.version_count == 2
    assert [v.version_number for v in loaded.versions] == [2, 1]
    assert [c.content for c in loaded.versions[1].comments] == ["first comment"]
    assert loaded.versions[0].comments == []


@pytest.mark.asyncio
async def test_finalized_contract_rejects_versions(doc_service):
    await _actor(doc_service)
    contract = (await doc_service.create_contract(ContractCreate(title="Lease"))).data
    await doc_service.update_status(contract.id, ContractStatus.FINALIZED, override=True)

    with pytest.raises(InvalidStateError):
        await doc_service.create_version(contract.id, VersionDraft(content="late"))


@pytest.mark.asyncio
async def test_malformed_documents_get_defaults_or_are_skipped(doc_service, firestore_client):
    actor = await _actor(doc_service)
    firestore_client.docs[("contracts", "3a0f4f6e-7d1c-4b8a-9f3e-2c1d0b9a8e7f")] = {
        "authorId": str(actor.id),
        "createdAt": "2026-01-01T10:00:00",
    }
    firestore_client.docs[("contracts", "not-a-uuid")] = {"title": "Broken"}

    contracts = await doc_service.get_contracts()

    assert len(contracts) == 1
    contract = contracts[0]
    assert contract.title == "Untitled"
    assert contract.category == "General"
    assert contract.status == ContractStatus.DRAFT
    assert contract.author_name == "Unknown"


@pytest.mark.asyncio
async def test_malformed_version_and_comment_documents_are_skipped(doc_service, firestore_client):
    await _actor(doc_service)
    contract = (await doc_service.create_contract(ContractCreate(title="Lease", content="one"))).data
    v2 = (await doc_service.create_version(contract.id, VersionDraft(content="two"))).data
    v1 = contract.versions[0]
    await doc_service.add_comment(contract.id, v2.id, "kept")

    del firestore_client.docs[("contracts", str(contract.id), "versions", str(v1.id))]["authorId"]
    firestore_client.docs[("contracts", str(contract.id), "versions", str(v2.id), "comments", "broken")] = {
        "content": "no ids",
        "createdAt": "2026-01-01T10:00:00",
    }

    loaded = await doc_service.get_contract_by_id(contract.id)

    assert [v.id for v in loaded.versions] == [v2.id]
    assert [c.content for c in loaded.versions[0].comments] == ["kept"]
    with pytest.raises(StorageError):
        await doc_service.get_version(contract.id, v1.id)


@pytest.mark.asyncio
async def test_racing_versions_cannot_share_a_number(doc_service, document_store, monkeypatch):
    await _actor(doc_service)
    contract = (await doc_service.create_contract(ContractCreate(title="Lease", content="one"))).data
    stale = await document_store.list_versions(contract.id)

    await doc_service.create_version(contract.id, VersionDraft(content="first writer"))

    # The second writer listed versions before the first one committed
    async def stale_versions(contract_id):
        return stale

    monkeypatch.setattr(document_store, "list_versions", stale_versions)
    with pytest.raises(InvalidStateError):
        await doc_service.create_version(contract.id, VersionDraft(content="second writer"))

    monkeypatch.undo()
    loaded = await doc_service.get_contract_by_id(contract.id)
    assert [(v.version_number, v.content) for v in loaded.versions] == [(2, "first writer"), (1, "one")]
    assert loaded.version_count == 2


@pytest.mark.asyncio
async def test_concurrent_get_or_create_yields_one_user(doc_service, firestore_client):
    results = await asyncio.gather(*[
        doc_service.get_or_create_user_by_email("legal@example.com", "Legal") for _ in range(5)
    ])

    assert len({r.data.id for r in results}) == 1
    users = [p for p in firestore_client.docs if p[0] == "users"]
    assert len(users) == 1


@pytest.mark.asyncio
async def test_assignment_copies_assignee_name(doc_service, firestore_client):
    await _actor(doc_service)
    legal = (await doc_service.get_or_create_user_by_email("legal@example.com", "Legal Reviewer")).data
    contract = (await doc_service.create_contract(ContractCreate(title="Lease"))).data

    await doc_service.assign_contract(contract.id, legal.id)

    doc = firestore_client.docs[("contracts", str(contract.id))]
    assert doc["assignedToId"] == str(legal.id)
    assert doc["assignedToName"] == "Legal Reviewer"


@pytest.mark.asyncio
async def test_recent_comments_span_contracts(doc_service):
    await _actor(doc_service)
    for title in ("A", "B"):
        contract = (await doc_service.create_contract(ContractCreate(title=title))).data
        await doc_service.add_comment(contract.id, contract.versions[0].id, f"note on {title}")

    comments = await doc_service.store.recent_comments(5)

    assert [c.content for c in comments] == ["note on B", "note on A"]


@pytest.mark.asyncio
async def test_unavailable_firestore_raises_storage_error(doc_service, firestore_client):
    await _actor(doc_service)
    firestore_client.unavailable = True

    with pytest.raises(StorageError):
        await doc_service.create_contract(ContractCreate(title="Lease"))
