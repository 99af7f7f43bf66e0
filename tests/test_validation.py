import pytest

from buyer_leads.core.exceptions import ValidationError
from buyer_leads.models.enums import City, PropertyType, Status
from buyer_leads.services.validation import normalize_tags, validate_lead


def _paths(result):
    return [error.path for error in result.errors]


def test_valid_lead(lead_payload):
    result = validate_lead(lead_payload())

    assert result.ok
    assert result.errors == []
    lead = result.lead
    assert lead.full_name == "Asha Verma"
    assert lead.city is City.CHANDIGARH
    assert lead.property_type is PropertyType.APARTMENT
    assert lead.bhk == "2"
    assert lead.status is Status.NEW
    assert lead.tags == ["hot", "nri"]


def test_accepts_attribute_names(lead_payload):
    data = lead_payload()
    data["full_name"] = data.pop("fullName")
    data["property_type"] = data.pop("propertyType")

    assert validate_lead(data).ok


def test_short_name_on_plot_with_bhk_reports_bhk_only(lead_payload):
    result = validate_lead(lead_payload(fullName="Jo", propertyType="Plot", bhk="2"))

    assert not result.ok
    assert _paths(result) == ["bhk"]
    assert result.errors[0].message == "BHK is only allowed for Apartment or Villa"


def test_single_character_name_fails(lead_payload):
    result = validate_lead(lead_payload(fullName="J"))

    assert _paths(result) == ["fullName"]
    assert result.errors[0].message == "Full name must be at least 2 characters"


def test_name_is_trimmed_before_length_check(lead_payload):
    result = validate_lead(lead_payload(fullName="  J  "))
    assert _paths(result) == ["fullName"]


@pytest.mark.parametrize("property_type", ["Apartment", "Villa"])
@pytest.mark.parametrize("bhk", [None, "", "-"])
def test_residential_requires_bhk(lead_payload, property_type, bhk):
    result = validate_lead(lead_payload(propertyType=property_type, bhk=bhk))

    assert _paths(result) == ["bhk"]
    assert result.errors[0].message == "BHK is required for Apartment or Villa"


@pytest.mark.parametrize("property_type", ["Plot", "Office", "Retail"])
def test_non_residential_without_bhk_is_valid(lead_payload, property_type):
    result = validate_lead(lead_payload(propertyType=property_type, bhk=None))

    assert result.ok
    assert result.lead.bhk is None


def test_budget_order(lead_payload):
    result = validate_lead(lead_payload(budgetMin=8000000, budgetMax=5000000))

    assert _paths(result) == ["budgetMax"]
    assert result.errors[0].message == "Max budget must be greater than or equal to Min budget"


def test_equal_budgets_are_valid(lead_payload):
    assert validate_lead(lead_payload(budgetMin=5000000, budgetMax=5000000)).ok


def test_empty_optional_fields_become_absent(lead_payload):
    result = validate_lead(lead_payload(email="", budgetMin="", budgetMax="", notes="", status=""))

    assert result.ok
    lead = result.lead
    assert lead.email is None
    assert lead.budget_min is None
    assert lead.budget_max is None
    assert lead.notes is None
    assert lead.status is Status.NEW


def test_numeric_strings_are_coerced(lead_payload):
    result = validate_lead(lead_payload(budgetMin="100", budgetMax="200"))

    assert result.ok
    assert (result.lead.budget_min, result.lead.budget_max) == (100, 200)


@pytest.mark.parametrize("phone", ["12345", "98765abc10", "+919876543210", "1234567890123456"])
def test_bad_phone(lead_payload, phone):
    result = validate_lead(lead_payload(phone=phone))

    assert _paths(result) == ["phone"]
    assert result.errors[0].message == "Phone must be 10 to 15 digits"


def test_bad_email(lead_payload):
    result = validate_lead(lead_payload(email="not-an-email"))

    assert _paths(result) == ["email"]
    assert result.errors[0].message == "Invalid email"


def test_notes_limit(lead_payload):
    assert validate_lead(lead_payload(notes="x" * 1000)).ok

    result = validate_lead(lead_payload(notes="x" * 1001))
    assert _paths(result) == ["notes"]


def test_full_name_and_email_fit_their_columns(lead_payload):
    assert validate_lead(lead_payload(fullName="x" * 200)).ok

    result = validate_lead(lead_payload(fullName="x" * 201, email="a" * 310 + "@example.com"))
    assert _paths(result) == ["fullName", "email"]
    assert result.errors[0].message == "Full name must be 200 characters or less"


def test_budget_bounds(lead_payload):
    large = validate_lead(lead_payload(budgetMin=5_000_000_000, budgetMax=6_000_000_000))
    assert large.ok
    assert large.lead.budget_max == 6_000_000_000

    result = validate_lead(lead_payload(budgetMin=-1, budgetMax=2**63))
    assert _paths(result) == ["budgetMin", "budgetMax"]
    assert result.errors[0].message == "Budget must be a non-negative amount"


def test_fractional_budget_is_rejected(lead_payload):
    result = validate_lead(lead_payload(budgetMin=1500000.5))
    assert _paths(result) == ["budgetMin"]


def test_every_field_error_is_reported(lead_payload):
    result = validate_lead(
        lead_payload(fullName="J", phone="123", city="Delhi", timeline="soon", source="WalkIn")
    )

    assert set(_paths(result)) == {"fullName", "phone", "city", "timeline", "source"}


def test_missing_required_fields():
    result = validate_lead({})

    assert {"fullName", "phone", "city", "propertyType", "purpose", "timeline", "source"} <= set(
        _paths(result)
    )


def test_cross_field_rules_wait_for_valid_fields(lead_payload):
    result = validate_lead(lead_payload(phone="1", propertyType="Plot", bhk="2"))
    assert _paths(result) == ["phone"]


def test_tags_are_unwrapped_and_distinct(lead_payload):
    result = validate_lead(lead_payload(tags=["hot", {"value": "nri"}, "hot", ""]))
    assert result.lead.tags == ["hot", "nri"]


def test_normalize_tags_leaves_non_lists_alone():
    assert normalize_tags(None) is None
    assert normalize_tags([{"value": "a"}, "b"]) == ["a", "b"]


def test_non_mapping_is_a_programming_error():
    with pytest.raises(TypeError):
        validate_lead(["not", "a", "mapping"])


def test_raise_for_errors(lead_payload):
    with pytest.raises(ValidationError) as exc_info:
        validate_lead(lead_payload(fullName="J")).raise_for_errors()

    assert exc_info.value.status_code == 422
    assert exc_info.value.errors == [
        {"path": "fullName", "message": "Full name must be at least 2 characters"}
    ]
