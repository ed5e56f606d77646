import pytest

from app.services.duplicate_detector import DuplicateDetector, normalize_name, phones_match
from app.services.entity_repository import InMemoryEntityRepository

pytestmark = pytest.mark.anyio

CLIENT_ID = "client-1"
COMPANY_ID = "company-1"


@pytest.fixture()
def detector():
    repo = InMemoryEntityRepository()
    repo.add(
        "guest",
        {
            "id": "g-1",
            "client_id": CLIENT_ID,
            "first_name": "John",
            "last_name": "Smith",
            "email": "John.Smith@example.com",
            "phone": "+1 (555) 123-4567",
            "group_name": "College Friends",
        },
    )
    repo.add("guest", {"id": "g-2", "client_id": CLIENT_ID, "first_name": "Meera", "last_name": "Iyer"})
    repo.add("guest", {"id": "g-3", "client_id": "client-2", "first_name": "Jane", "last_name": "Doe"})
    repo.add("vendor", {"id": "v-1", "company_id": COMPANY_ID, "name": "Bloom Florals", "category": "florals"})
    repo.add(
        "vendor",
        {"id": "v-2", "company_id": COMPANY_ID, "name": "Sound Wave DJ", "category": "dj", "email": "book@soundwave.io"},
    )
    return DuplicateDetector(repo)


def test_normalize_name_collapses_whitespace_and_case():
    assert normalize_name("  John   SMITH ") == "john smith"
    assert normalize_name(None) == ""


def test_phones_match_on_last_ten_digits():
    assert phones_match("+1 (555) 123-4567", "555.123.4567") is True
    assert phones_match("555-1234", "555-1234") is False
    assert phones_match(None, "5551234567") is False


async def test_exact_name_match(detector):
    result = await detector.check_guest_duplicates("john", "SMITH", None, None, CLIENT_ID)

    assert result.has_potential_duplicates is True
    assert result.candidates[0].match_type == "exact_name"
    assert result.candidates[0].details == "Group: College Friends"
    assert result.message == 'Potential duplicate detected: Exact name match with "John Smith". Is this the same person?'


async def test_similar_name_match(detector):
    result = await detector.check_guest_duplicates("Jon", "Smith", None, None, CLIENT_ID)

    candidate = result.candidates[0]
    assert candidate.match_type == "similar_name"
    assert candidate.similarity == pytest.approx(0.9)
    assert candidate.details == "90% name match, Group: College Friends"
    assert "Similar to \"John Smith\"" in result.message


async def test_email_match_is_case_insensitive(detector):
    result = await detector.check_guest_duplicates("Johnny", "Appleseed", "john.smith@EXAMPLE.com", None, CLIENT_ID)

    assert [c.match_type for c in result.candidates] == ["same_email"]
    assert result.message == (
        "Potential duplicate detected: Same email: John.Smith@example.com. Is this the same person?"
    )


async def test_phone_match(detector):
    result = await detector.check_guest_duplicates("Alexandra", "Quinn", None, "555 123 4567", CLIENT_ID)

    assert [c.match_type for c in result.candidates] == ["same_phone"]


async def test_no_duplicates_outside_client_scope(detector):
    result = await detector.check_guest_duplicates("Jane", "Doe", None, None, CLIENT_ID)

    assert result.has_potential_duplicates is False
    assert result.candidates == []
    assert result.message == "No duplicates found"


async def test_vendor_exact_match(detector):
    result = await detector.check_vendor_duplicates("bloom florals", None, None, COMPANY_ID)

    assert result.candidates[0].match_type == "exact_name"
    assert result.message == (
        'Potential duplicate vendor: "Bloom Florals (florals)" already exists. Is this the same vendor?'
    )


async def test_vendor_email_match(detector):
    result = await detector.check_vendor_duplicates("Harmony Events", "BOOK@soundwave.io", None, COMPANY_ID)

    assert result.candidates[0].id == "v-2"
    assert result.message.startswith('Potential duplicate vendor: Similar to "Sound Wave DJ (dj)"')


async def test_candidates_are_capped_at_five():
    repo = InMemoryEntityRepository()
    for idx in range(7):
        repo.add("guest", {"id": f"g-{idx}", "client_id": CLIENT_ID, "first_name": "Sam", "last_name": "Lee"})
    detector = DuplicateDetector(repo)

    result = await detector.check_guest_duplicates("Sam", "Lee", None, None, CLIENT_ID)

    assert len(result.candidates) == 5
