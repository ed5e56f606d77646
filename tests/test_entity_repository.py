import asyncio

import pytest

from app.services.entity_repository import InMemoryEntityRepository


def _repository():
    repo = InMemoryEntityRepository()
    repo.add("client", {"id": "c-1", "company_id": "company-1", "partner1_first_name": "Aisha"})
    repo.add("guest", {"id": "g-1", "client_id": "c-1", "first_name": "Anna", "last_name": "Lee"})
    repo.add(
        "guest",
        {"id": "g-2", "client_id": "c-1", "first_name": "Annabel", "last_name": "Cho", "deleted_at": "2026-01-01"},
    )
    return repo


def test_soft_deleted_rows_are_hidden():
    repo = _repository()

    assert [row["id"] for row in asyncio.run(repo.search("guest", "c-1", "ann"))] == ["g-1"]
    assert asyncio.run(repo.get("guest", "c-1", "g-2")) is None
    assert len(asyncio.run(repo.list("guest", "c-1"))) == 1


def test_client_ownership():
    repo = _repository()

    assert asyncio.run(repo.client_belongs_to_company("c-1", "company-1")) is True
    assert asyncio.run(repo.client_belongs_to_company("c-1", "company-2")) is False
    assert asyncio.run(repo.client_belongs_to_company("", "company-1")) is False


def test_unknown_entity_type_is_rejected():
    with pytest.raises(ValueError):
        _repository().add("hotel", {"id": "h-1"})
