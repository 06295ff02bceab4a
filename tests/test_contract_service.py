import pytest

from src.auth.models import User
from src.contracts.models import ContractStatus
from src.contracts.schemas import ContractCreate, VersionDraft
from src.contracts.service import ContractService, signature_digest, user_id_for
from src.shared.exceptions import InvalidStateError, NotFoundError, ValidationError
from src.shared.models import utcnow
from src.shared.schemas import WriteOutcome
from src.storage.relational import SQLAlchemyStore
from src.templates.schemas import TemplateCreate


async def _create(service, title="Service Agreement", category="Legal", content="v1 text"):
    result = await service.create_contract(ContractCreate(title=title, category=category, content=content))
    return result.data


@pytest.mark.asyncio
async def test_create_contract_starts_in_draft_with_one_version(service):
    result = await service.create_contract(ContractCreate(title="Service Agreement", category="Legal"))

    assert result.outcome == WriteOutcome.PERSISTED
    contract = await service.get_contract_by_id(result.data.id)
    assert contract.status == ContractStatus.DRAFT
    assert contract.category == "Legal"
    assert [v.version_number for v in contract.versions] == [1]
    assert contract.author_name == "Admin User"


@pytest.mark.asyncio
async def test_new_version_moves_contract_to_review(service):
    contract = await _create(service)

    result = await service.create_version(contract.id, VersionDraft(content="v2 text"))

    assert result.data.version_number == 2
    refreshed = await service.get_contract_by_id(contract.id)
    assert refreshed.status == ContractStatus.REVIEW
    assert refreshed.versions[0].content == "v2 text"
    assert refreshed.versions[1].content == "v1 text"


@pytest.mark.asyncio
@pytest.mark.parametrize("prior", [ContractStatus.REVIEW, ContractStatus.APPROVED, ContractStatus.REJECTED])
async def test_resubmission_always_resets_to_review(service, prior):
    contract = await _create(service)
    await service.update_status(contract.id, prior, override=True)

    await service.create_version(contract.id, VersionDraft(content="again"))

    assert (await service.get_contract_by_id(contract.id)).status == ContractStatus.REVIEW


@pytest.mark.asyncio
async def test_version_numbers_are_contiguous(service):
    contract = await _create(service)
    for i in range(5):
        await service.create_version(contract.id, VersionDraft(content=f"rev {i}"))

    numbers = [v.version_number for v in (await service.get_contract_by_id(contract.id)).versions]
    assert numbers == [6, 5, 4, 3, 2, 1]


@pytest.mark.asyncio
async def test_finalized_contract_rejects_new_versions(service, store):
    contract = await _create(service)
    await service.update_status(contract.id, ContractStatus.APPROVED)
    await service.finalize_contract(contract.id)

    with pytest.raises(InvalidStateError):
        await service.create_version(contract.id, VersionDraft(content="too late"))

    assert len(await store.list_versions(contract.id)) == 1


@pytest.mark.asyncio
async def test_executed_contract_rejects_edits(service):
    contract = await _create(service)
    await service.sign_contract(contract.id, "data:image/png;base64,AAAA")

    with pytest.raises(InvalidStateError):
        await service.update_contract_content(contract.id, "changed")
    with pytest.raises(InvalidStateError):
        await service.create_version(contract.id, VersionDraft(content="changed"))


@pytest.mark.asyncio
async def test_update_content_only_touches_current_version(service, store):
    contract = await _create(service)
    await service.create_version(contract.id, VersionDraft(content="v2 text"))

    result = await service.update_contract_content(contract.id, "<p>edited</p>")

    assert result.data.version_number == 2
    versions = await store.list_versions(contract.id)
    assert len(versions) == 2
    assert versions[0].content == "<p>edited</p>"
    assert versions[1].content == "v1 text"


@pytest.mark.asyncio
async def test_update_content_on_finalized_contract_leaves_content(service, store):
    contract = await _create(service)
    await service.update_status(contract.id, ContractStatus.FINALIZED, override=True)

    with pytest.raises(InvalidStateError):
        await service.update_contract_content(contract.id, "changed")

    assert (await store.list_versions(contract.id))[0].content == "v1 text"


@pytest.mark.asyncio
async def test_status_transition_table_is_enforced(service):
    contract = await _create(service)

    with pytest.raises(InvalidStateError, match="Invalid transition from DRAFT to FINALIZED"):
        await service.update_status(contract.id, ContractStatus.FINALIZED)

    result = await service.update_status(contract.id, ContractStatus.FINALIZED, override=True)
    assert result.data.status == ContractStatus.FINALIZED


@pytest.mark.asyncio
async def test_same_status_is_a_noop(service, store):
    contract = await _create(service)

    result = await service.update_status(contract.id, ContractStatus.DRAFT)

    assert result.data.status == ContractStatus.DRAFT
    actions = [log.action for log in await store.list_activity(contract.id)]
    assert actions == ["CREATED"]


@pytest.mark.asyncio
async def test_executed_is_only_reached_by_signing(service):
    contract = await _create(service)
    with pytest.raises(InvalidStateError):
        await service.update_status(contract.id, ContractStatus.EXECUTED, override=True)


@pytest.mark.asyncio
async def test_sign_finalized_contract_and_resign(service, store):
    contract = await _create(service)
    await service.update_status(contract.id, ContractStatus.APPROVED)
    await service.finalize_contract(contract.id)

    first = await service.sign_contract(contract.id, "data:image/png;base64,AAAA")
    second = await service.sign_contract(contract.id, "data:image/png;base64,BBBB")

    stored = await store.get_contract(contract.id)
    assert stored.status == ContractStatus.EXECUTED
    assert stored.signature == "data:image/png;base64,BBBB"
    assert stored.signed_at is not None
    # Same document signed twice commits to the same content
    assert first.data.signature_hash == second.data.signature_hash == stored.signature_hash


@pytest.mark.asyncio
async def test_signature_hash_commits_to_content(service):
    contract = await _create(service)
    versions = (await service.get_contract_by_id(contract.id)).versions

    receipt = (await service.sign_contract(contract.id, "sig")).data

    assert receipt.signature_hash == signature_digest(contract.id, versions[0])
    edited = versions[0].model_copy(update={"content": "tampered"})
    assert signature_digest(contract.id, edited) != receipt.signature_hash


@pytest.mark.asyncio
async def test_sign_requires_signature(service):
    contract = await _create(service)
    with pytest.raises(ValidationError):
        await service.sign_contract(contract.id, "   ")


@pytest.mark.asyncio
async def test_comment_stays_on_its_version(service):
    contract = await _create(service)
    v2 = (await service.create_version(contract.id, VersionDraft(content="v2 text"))).data
    v1 = (await service.get_contract_by_id(contract.id)).versions[1]

    await service.add_comment(contract.id, v1.id, "Clause 4 needs work")

    refreshed = await service.get_contract_by_id(contract.id)
    assert [c.content for c in refreshed.versions[1].comments] == ["Clause 4 needs work"]
    assert refreshed.versions[0].id == v2.id
    assert refreshed.versions[0].comments == []
    assert refreshed.status == ContractStatus.REVIEW


@pytest.mark.asyncio
async def test_comment_on_foreign_version_is_not_found(service):
    first = await _create(service, title="First")
    second = await _create(service, title="Second")
    foreign = (await service.get_contract_by_id(second.id)).versions[0]

    with pytest.raises(NotFoundError):
        await service.add_comment(first.id, foreign.id, "wrong contract")


@pytest.mark.asyncio
async def test_comment_length_is_validated(service):
    contract = await _create(service)
    version = (await service.get_contract_by_id(contract.id)).versions[0]

    with pytest.raises(ValidationError):
        await service.add_comment(contract.id, version.id, "x" * 2001)
    with pytest.raises(ValidationError):
        await service.add_comment(contract.id, version.id, "   ")


@pytest.mark.asyncio
async def test_assign_contract(service):
    contract = await _create(service)
    legal = (await service.get_or_create_user_by_email("legal@example.com", "Legal Reviewer")).data

    result = await service.assign_contract(contract.id, legal.id)

    assert result.data.assigned_to_name == "Legal Reviewer"
    refreshed = await service.get_contract_by_id(contract.id)
    assert refreshed.assigned_to_id == legal.id
    assert refreshed.status == ContractStatus.DRAFT


@pytest.mark.asyncio
async def test_assign_unknown_user_is_not_found(service):
    contract = await _create(service)
    with pytest.raises(NotFoundError):
        await service.assign_contract(contract.id, user_id_for("nobody@example.com"))


@pytest.mark.asyncio
async def test_missing_contract_is_not_found(service):
    with pytest.raises(NotFoundError):
        await service.get_contract_by_id(user_id_for("not-a-contract@example.com"))
    with pytest.raises(NotFoundError):
        await service.create_version(user_id_for("x@example.com"), VersionDraft(content="x"))


@pytest.mark.asyncio
async def test_contracts_listed_newest_first(service):
    await _create(service, title="Older")
    await _create(service, title="Newer")

    titles = [c.title for c in await service.get_contracts()]
    assert titles == ["Newer", "Older"]


@pytest.mark.asyncio
async def test_get_or_create_user_is_idempotent(store):
    service = ContractService(store)
    first = await service.get_or_create_user_by_email("Admin@Example.com", "Admin User")
    second = await service.get_or_create_user_by_email("admin@example.com", "Someone Else")

    assert first.data.id == second.data.id
    assert [u.email for u in await store.list_users()] == ["admin@example.com"]


class RacingStore(SQLAlchemyStore):
    """Another request inserts the same email between our lookup and our insert."""

    raced = False

    async def get_user_by_email(self, email):
        if not self.raced:
            self.raced = True
            self.db.add(User(email=email, name="Winner", created_at=utcnow()))
            await self.db.commit()
            return None
        return await super().get_user_by_email(email)


@pytest.mark.asyncio
async def test_get_or_create_user_race_keeps_one_row(db_session):
    store = RacingStore(db_session)

    result = await ContractService(store).get_or_create_user_by_email("race@example.com", "Loser")

    assert result.data.name == "Winner"
    assert len(await store.list_users()) == 1


@pytest.mark.asyncio
async def test_racing_versions_cannot_share_a_number(service, store, monkeypatch):
    contract = await _create(service, content="one")
    stale = await store.list_versions(contract.id)
    await service.create_version(contract.id, VersionDraft(content="first writer"))

    async def stale_versions(contract_id):
        return stale

    monkeypatch.setattr(store, "list_versions", stale_versions)
    with pytest.raises(InvalidStateError):
        await service.create_version(contract.id, VersionDraft(content="second writer"))

    monkeypatch.undo()
    loaded = await service.get_contract_by_id(contract.id)
    assert [(v.version_number, v.content) for v in loaded.versions] == [(2, "first writer"), (1, "one")]


@pytest.mark.asyncio
async def test_template_seeds_first_version_with_placeholders(service):
    template = (await service.create_template(TemplateCreate(
        name="NDA",
        description="Mutual NDA",
        content="{{TITLE}} ({{CATEGORY}}) by {{AUTHOR}}",
    ), file_url="/uploads/1-nda.docx")).data

    contract = (await service.create_contract(ContractCreate(
        title="Acme NDA", category="Confidentiality", template_id=str(template.id),
    ))).data

    version = contract.versions[0]
    assert version.content == "Acme NDA (Confidentiality) by Admin User"
    assert version.file_url == "/uploads/1-nda.docx"
    assert version.file_name == "Template: NDA"


@pytest.mark.asyncio
async def test_upload_wins_over_template_file(service):
    template = (await service.create_template(TemplateCreate(name="NDA", content="template body"),
                                              file_url="/uploads/1-nda.docx")).data

    contract = (await service.create_contract(
        ContractCreate(title="Acme", template_id=str(template.id), content="typed"),
        upload=VersionDraft(file_url="/uploads/2-signed.docx", file_name="signed.docx"),
    )).data

    version = contract.versions[0]
    assert version.file_url == "/uploads/2-signed.docx"
    assert version.content == "typed"


@pytest.mark.asyncio
async def test_unknown_template_is_not_found(service):
    with pytest.raises(NotFoundError):
        await service.create_contract(ContractCreate(title="X", template_id=str(user_id_for("t@example.com"))))

    with pytest.raises(NotFoundError):
        await service.create_contract(
            ContractCreate(title="X", template_id=str(user_id_for("t@example.com"))),
            upload=VersionDraft(file_url="/uploads/1-x.pdf", file_name="x.pdf"),
        )


@pytest.mark.asyncio
async def test_ensure_editable_rejects_locked_contract(service):
    contract = await _create(service)
    assert (await service.ensure_editable(contract.id)).id == contract.id

    await service.update_status(contract.id, ContractStatus.FINALIZED, override=True)
    with pytest.raises(InvalidStateError):
        await service.ensure_editable(contract.id)


@pytest.mark.asyncio
async def test_templates_listed_newest_first_and_deleted(service):
    first = (await service.create_template(TemplateCreate(name="First"))).data
    second = (await service.create_template(TemplateCreate(name="Second"))).data

    assert [t.name for t in await service.list_templates()] == ["Second", "First"]

    await service.delete_template(first.id)
    assert [t.id for t in await service.list_templates()] == [second.id]
    with pytest.raises(NotFoundError):
        await service.delete_template(first.id)


@pytest.mark.asyncio
async def test_activity_log_records_every_mutation(service):
    contract = await _create(service)
    version = (await service.get_contract_by_id(contract.id)).versions[0]
    await service.add_comment(contract.id, version.id, "Looks fine")
    await service.update_status(contract.id, ContractStatus.APPROVED)
    await service.finalize_contract(contract.id)
    await service.sign_contract(contract.id, "sig")

    logs = await service.get_activity_logs(contract.id)

    assert [log.action for log in logs] == ["EXECUTED", "FINALIZED", "UPDATED_STATUS", "COMMENTED", "CREATED"]
    assert all(log.user_name == "Admin User" for log in logs)


@pytest.mark.asyncio
async def test_activity_log_failure_degrades_result(service, store, monkeypatch):
    async def broken(log):
        raise RuntimeError("disk full")

    monkeypatch.setattr(store, "insert_activity", broken)

    result = await service.create_contract(ContractCreate(title="Still saved"))

    assert result.outcome == WriteOutcome.DEGRADED
    assert result.warnings
    assert (await store.get_contract(result.data.id)) is not None


@pytest.mark.asyncio
async def test_compare_defaults_to_previous_and_current(service):
    contract = await _create(service, content="alpha\nbeta\n")
    await service.create_version(contract.id, VersionDraft(content="alpha\ngamma\n"))

    comparison = await service.compare_versions(contract.id)

    assert (comparison.base_version, comparison.compared_version) == (1, 2)
    assert [(p.value, p.added, p.removed) for p in comparison.parts] == [
        ("alpha\n", False, False),
        ("beta\n", False, True),
        ("gamma\n", True, False),
    ]


@pytest.mark.asyncio
async def test_compare_needs_two_versions(service):
    contract = await _create(service)
    with pytest.raises(NotFoundError):
        await service.compare_versions(contract.id)
