import uuid
from datetime import timedelta, timezone

import pytest

from buyer_leads.core.config import settings
from buyer_leads.core.exceptions import ConflictError, ForbiddenError, NotFoundError
from buyer_leads.db.base import as_utc
from buyer_leads.models.enums import BHK, Source, Timeline
from buyer_leads.services.history import changed_fields, list_history
from buyer_leads.services.lead_service import create_lead, delete_lead, get_lead, update_lead
from buyer_leads.services.validation import validate_lead


def _lead(payload, **overrides):
    return validate_lead(payload(**overrides)).raise_for_errors()


@pytest.mark.asyncio
async def test_create_stores_codes_and_records_history(db_session, user_a, lead_payload):
    lead = await create_lead(db_session, _lead(lead_payload, source="Walk-in"), user_a)

    assert lead.owner_id == user_a.id
    assert lead.bhk is BHK.TWO
    assert lead.timeline is Timeline.ZERO_TO_THREE_MONTHS
    assert lead.source is Source.WALK_IN
    assert lead.tags == ["hot", "nri"]

    history = await list_history(db_session, lead.id)
    assert len(history) == 1
    assert history[0].changed_by == "a@example.com"
    assert history[0].diff["created"]["full_name"] == "Asha Verma"
    assert history[0].diff["created"]["bhk"] == "Two"


@pytest.mark.asyncio
async def test_get_enforces_ownership(db_session, user_a, user_b, admin, lead_payload):
    lead = await create_lead(db_session, _lead(lead_payload), user_a)

    assert (await get_lead(db_session, lead.id, user_a)).id == lead.id
    assert (await get_lead(db_session, lead.id, admin)).id == lead.id
    with pytest.raises(ForbiddenError):
        await get_lead(db_session, lead.id, user_b)
    with pytest.raises(NotFoundError):
        await get_lead(db_session, uuid.uuid4(), user_a)


@pytest.mark.asyncio
async def test_update_replaces_fields(db_session, user_a, lead_payload):
    lead = await create_lead(db_session, _lead(lead_payload), user_a)
    first_version = lead.updated_at

    updated = await update_lead(
        db_session,
        lead.id,
        _lead(lead_payload, propertyType="Plot", bhk=None, tags=["cold"], status="Contacted"),
        user_a,
        expected_updated_at=first_version,
    )

    assert updated.bhk is None
    assert updated.tags == ["cold"]
    assert updated.status.value == "Contacted"
    assert as_utc(updated.updated_at) > as_utc(first_version)


@pytest.mark.asyncio
async def test_update_with_stale_version_conflicts(db_session, user_a, lead_payload):
    lead = await create_lead(db_session, _lead(lead_payload), user_a)
    lead_id = lead.id
    stale = lead.updated_at

    await update_lead(db_session, lead_id, _lead(lead_payload, notes="first"), user_a, expected_updated_at=stale)

    with pytest.raises(ConflictError) as exc_info:
        await update_lead(db_session, lead_id, _lead(lead_payload, notes="second"), user_a, expected_updated_at=stale)
    assert exc_info.value.status_code == 409
    assert exc_info.value.message == "Record changed, please refresh"

    current = await get_lead(db_session, lead_id, user_a)
    assert current.notes == "first"
    assert len(await list_history(db_session, lead_id, limit=10)) == 2


@pytest.mark.asyncio
async def test_update_without_version_skips_check(db_session, user_a, lead_payload):
    lead = await create_lead(db_session, _lead(lead_payload), user_a)
    await update_lead(db_session, lead.id, _lead(lead_payload, notes="x"), user_a)

    # Last writer wins when no version is sent
    updated = await update_lead(db_session, lead.id, _lead(lead_payload, notes="y"), user_a)
    assert updated.notes == "y"


@pytest.mark.asyncio
async def test_version_check_ignores_timezone_representation(db_session, user_a, lead_payload):
    lead = await create_lead(db_session, _lead(lead_payload), user_a)
    naive = as_utc(lead.updated_at).replace(tzinfo=None)

    await update_lead(db_session, lead.id, _lead(lead_payload, notes="a"), user_a, expected_updated_at=naive)
    current = await get_lead(db_session, lead.id, user_a)
    shifted = as_utc(current.updated_at).astimezone(timezone(timedelta(hours=5, minutes=30)))
    updated = await update_lead(
        db_session, lead.id, _lead(lead_payload, notes="b"), user_a, expected_updated_at=shifted
    )
    assert updated.notes == "b"


@pytest.mark.asyncio
async def test_non_owner_cannot_update_or_delete(db_session, user_a, user_b, lead_payload):
    lead = await create_lead(db_session, _lead(lead_payload), user_a)
    lead_id = lead.id

    with pytest.raises(ForbiddenError):
        await update_lead(db_session, lead_id, _lead(lead_payload, notes="mine now"), user_b)
    with pytest.raises(ForbiddenError):
        await delete_lead(db_session, lead_id, user_b)

    assert (await get_lead(db_session, lead_id, user_a)).notes == "Prefers a corner unit"


@pytest.mark.asyncio
async def test_only_admin_reassigns_owner(db_session, user_a, user_b, admin, lead_payload):
    lead = await create_lead(db_session, _lead(lead_payload), user_a)
    lead_id = lead.id

    with pytest.raises(ForbiddenError):
        await update_lead(db_session, lead_id, _lead(lead_payload), user_a, owner_id=user_b.id)

    moved = await update_lead(db_session, lead_id, _lead(lead_payload), admin, owner_id=user_b.id)
    assert moved.owner_id == user_b.id

    history = await list_history(db_session, lead_id, limit=1)
    assert history[0].changed_by == "admin@example.com"
    assert changed_fields(history[0].diff)["owner_id"] == {
        "before": str(user_a.id),
        "after": str(user_b.id),
    }


@pytest.mark.asyncio
async def test_history_grows_by_one_per_update(db_session, user_a, lead_payload):
    lead = await create_lead(db_session, _lead(lead_payload), user_a)

    updates = 4
    for n in range(updates):
        await update_lead(db_session, lead.id, _lead(lead_payload, notes=f"call #{n}"), user_a)

    history = await list_history(db_session, lead.id, limit=100, order="asc")
    assert len(history) == updates + 1
    stamps = [as_utc(entry.changed_at) for entry in history]
    assert stamps == sorted(stamps)
    assert "created" in history[0].diff
    assert history[-1].diff["after"]["notes"] == "call #3"
    assert history[-1].diff["before"]["notes"] == "call #2"


@pytest.mark.asyncio
async def test_history_default_limit_and_order(db_session, user_a, lead_payload):
    lead = await create_lead(db_session, _lead(lead_payload), user_a)
    for n in range(7):
        await update_lead(db_session, lead.id, _lead(lead_payload, notes=str(n)), user_a)

    latest = await list_history(db_session, lead.id)
    assert len(latest) == settings.history_default_limit
    assert latest[0].diff["after"]["notes"] == "6"


@pytest.mark.asyncio
async def test_delete_keeps_history(db_session, user_a, lead_payload):
    lead = await create_lead(db_session, _lead(lead_payload), user_a)

    await delete_lead(db_session, lead.id, user_a, expected_updated_at=lead.updated_at)

    with pytest.raises(NotFoundError):
        await get_lead(db_session, lead.id, user_a)

    history = await list_history(db_session, lead.id)
    assert len(history) == 2
    assert history[0].diff["after"] is None
    assert history[0].diff["before"]["full_name"] == "Asha Verma"


@pytest.mark.asyncio
async def test_delete_with_stale_version_conflicts(db_session, user_a, lead_payload):
    lead = await create_lead(db_session, _lead(lead_payload), user_a)
    lead_id = lead.id
    stale = lead.updated_at
    await update_lead(db_session, lead_id, _lead(lead_payload, notes="newer"), user_a)

    with pytest.raises(ConflictError):
        await delete_lead(db_session, lead_id, user_a, expected_updated_at=stale)

    assert (await get_lead(db_session, lead_id, user_a)).notes == "newer"
