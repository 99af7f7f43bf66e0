import csv
import io

import pytest

from buyer_leads.services.lead_import import validate_batch
from buyer_leads.services.lead_service import create_lead
from buyer_leads.services.validation import validate_lead
from buyer_leads.utils.csv_export import leads_to_csv
from buyer_leads.utils.csv_parser import CSV_FIELDS, parse_csv_rows

HEADER = ",".join(CSV_FIELDS)


def test_parse_rows():
    content = (
        HEADER + "\n"
        "Ravi Kumar,ravi@example.com,9812345678,Mohali,Villa,3,Buy,9000000,12000000,3-6m,Referral,,\"family,garden\",\n"
        ",,,,,,,,,,,,,\n"
        "  Neha  ,,9812345679,Panchkula,Plot,,Rent,,,Exploring,Walk-in,ground floor,,New\n"
    ).encode("utf-8")

    rows = parse_csv_rows(content)

    assert len(rows) == 2
    assert rows[0]["fullName"] == "Ravi Kumar"
    assert rows[0]["notes"] is None
    assert rows[0]["tags"] == "family,garden"
    assert rows[1]["fullName"] == "Neha"
    assert rows[1]["bhk"] is None
    assert rows[1]["status"] == "New"


def test_parse_strips_bom():
    rows = parse_csv_rows(("\ufeff" + HEADER + "\nA B,,9812345678,Mohali,Plot,,Buy,,,0-3m,Call,,,\n").encode("utf-8"))
    assert "fullName" in rows[0]


def test_parse_rejects_undecodable_input():
    with pytest.raises(ValueError):
        parse_csv_rows(b"\xff\xfe\x00bad")


def test_parse_requires_header():
    with pytest.raises(ValueError):
        parse_csv_rows(b"")


def test_parsed_rows_validate():
    content = (HEADER + "\nRavi Kumar,,9812345678,Mohali,Apartment,Studio,Buy,,,>6m,Website,,,\n").encode()
    lead = validate_batch(parse_csv_rows(content))[0]
    assert lead.bhk == "Studio"
    assert lead.timeline == ">6m"


@pytest.mark.asyncio
async def test_export_writes_labels_in_column_order(db_session, user_a, lead_payload):
    office = await create_lead(
        db_session,
        validate_lead(lead_payload(propertyType="Office", bhk=None, email=None, budgetMin=None)).raise_for_errors(),
        user_a,
    )

    reader = csv.DictReader(io.StringIO(leads_to_csv([office])))
    assert reader.fieldnames == CSV_FIELDS
    [row] = list(reader)
    assert row["bhk"] == ""
    assert row["email"] == ""
    assert row["budgetMin"] == ""
    assert row["timeline"] == "0-3m"
    assert row["tags"] == "hot,nri"


@pytest.mark.asyncio
async def test_export_then_import_preserves_leads(db_session, user_a, lead_payload):
    created = await create_lead(
        db_session,
        validate_lead(lead_payload(source="Walk-in", timeline=">6m", bhk="Studio")).raise_for_errors(),
        user_a,
    )

    content = leads_to_csv([created])
    assert content.splitlines()[0] == HEADER

    [lead] = validate_batch(parse_csv_rows(content.encode("utf-8")))
    assert lead.source == "Walk-in"
    assert lead.timeline == ">6m"
    assert lead.bhk == "Studio"
    assert lead.tags == ["hot", "nri"]
    assert lead.full_name == created.full_name
