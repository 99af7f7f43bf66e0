import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from buyer_leads.core.exceptions import BatchTooLargeError, StorageError, ValidationError
from buyer_leads.models.enums import BHK, Source
from buyer_leads.models.lead import Lead, LeadHistory
from buyer_leads.services import lead_import
from buyer_leads.services.lead_import import coerce_import_row, import_leads, validate_batch


async def _count(session, model):
    return (await session.execute(select(func.count()).select_from(model))).scalar_one()


def _csv_row(**overrides):
    """A row as it arrives from the CSV parser: strings, tags comma-separated."""
    row = {
        "fullName": "Ravi Kumar",
        "email": "ravi@example.com",
        "phone": "9812345678",
        "city": "Mohali",
        "propertyType": "Villa",
        "bhk": "3",
        "purpose": "Buy",
        "budgetMin": "9000000",
        "budgetMax": "12000000",
        "timeline": "3-6m",
        "source": "Referral",
        "notes": None,
        "tags": "family, garden",
        "status": None,
    }
    row.update(overrides)
    return row


@pytest.mark.asyncio
async def test_valid_batch_is_imported(db_session, user_a):
    rows = [_csv_row(phone=f"98123456{n:02d}") for n in range(3)]

    result = await import_leads(db_session, rows, user_a)

    assert result.imported_count == 3
    assert await _count(db_session, Lead) == 3
    assert await _count(db_session, LeadHistory) == 3
    lead = result.leads[0]
    assert lead.owner_id == user_a.id
    assert lead.bhk is BHK.THREE
    assert lead.tags == ["family", "garden"]


@pytest.mark.asyncio
async def test_one_bad_row_rejects_the_batch(db_session, user_a):
    rows = [
        _csv_row(phone="9812345601"),
        _csv_row(phone="9812345602"),
        _csv_row(phone="12345"),
        _csv_row(phone="9812345604"),
    ]

    with pytest.raises(ValidationError) as exc_info:
        await import_leads(db_session, rows, user_a)

    assert exc_info.value.errors == [
        {"row": 4, "errors": [{"path": "phone", "message": "Phone must be 10 to 15 digits"}]}
    ]
    assert await _count(db_session, Lead) == 0
    assert await _count(db_session, LeadHistory) == 0


@pytest.mark.asyncio
async def test_every_bad_row_is_reported(db_session, user_a):
    rows = [_csv_row(fullName="J"), _csv_row(), _csv_row(timeline="someday")]

    with pytest.raises(ValidationError) as exc_info:
        await import_leads(db_session, rows, user_a)

    assert [entry["row"] for entry in exc_info.value.errors] == [2, 4]
    assert exc_info.value.errors[1]["errors"][0]["path"] == "timeline"


@pytest.mark.asyncio
async def test_batch_cap(db_session, user_a):
    rows = [_csv_row() for _ in range(201)]

    with pytest.raises(BatchTooLargeError) as exc_info:
        await import_leads(db_session, rows, user_a)

    assert exc_info.value.status_code == 413
    assert exc_info.value.details == {"row_count": 201, "max_rows": 200}
    assert await _count(db_session, Lead) == 0


@pytest.mark.asyncio
async def test_batch_at_cap_is_accepted(db_session, user_a):
    rows = [_csv_row() for _ in range(3)]
    result = await import_leads(db_session, rows, user_a, max_rows=3)
    assert result.imported_count == 3


@pytest.mark.asyncio
async def test_empty_batch(db_session, user_a):
    result = await import_leads(db_session, [], user_a)
    assert result.imported_count == 0


def test_bhk_is_dropped_for_non_residential_rows():
    row = coerce_import_row(_csv_row(propertyType="Plot", bhk="2"))
    assert row["bhk"] is None

    assert validate_batch([_csv_row(propertyType="Office", bhk="Studio")])[0].bhk is None


def test_storage_codes_are_accepted():
    row = coerce_import_row(_csv_row(bhk="Three", timeline="MoreThanSixMonths", source="WalkIn"))
    assert (row["bhk"], row["timeline"], row["source"]) == ("3", ">6m", "Walk-in")

    lead = validate_batch([_csv_row(source="WalkIn")])[0]
    assert lead.source == "Walk-in"


def test_residential_row_still_needs_bhk():
    with pytest.raises(ValidationError) as exc_info:
        validate_batch([_csv_row(bhk="-")])
    assert exc_info.value.errors[0]["errors"] == [
        {"path": "bhk", "message": "BHK is required for Apartment or Villa"}
    ]


def test_non_mapping_row():
    with pytest.raises(TypeError):
        coerce_import_row("fullName,phone")


@pytest.mark.asyncio
async def test_imported_source_round_trips(db_session, user_a):
    result = await import_leads(db_session, [_csv_row(source="Walk-in")], user_a)
    assert result.leads[0].source is Source.WALK_IN


def test_non_mapping_rows_are_reported_by_row():
    with pytest.raises(ValidationError) as exc_info:
        validate_batch([_csv_row(), "oops", ["a", "list"]])

    assert exc_info.value.errors == [
        {"row": 3, "errors": [{"path": "", "message": "Expected an object"}]},
        {"row": 4, "errors": [{"path": "", "message": "Expected an object"}]},
    ]


@pytest.mark.asyncio
async def test_storage_failure_rolls_back_the_batch(db_session, user_a, monkeypatch):
    real_insert = lead_import.insert_lead
    calls = []

    async def failing_insert(session, lead, owner):
        calls.append(lead)
        if len(calls) == 2:
            raise SQLAlchemyError("disk full")
        return await real_insert(session, lead, owner)

    monkeypatch.setattr(lead_import, "insert_lead", failing_insert)
    rows = [_csv_row(phone=f"98123456{n:02d}") for n in range(3)]

    with pytest.raises(StorageError):
        await import_leads(db_session, rows, user_a)

    assert len(calls) == 2
    assert await _count(db_session, Lead) == 0
    assert await _count(db_session, LeadHistory) == 0
