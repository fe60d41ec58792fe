"""Pytest configuration and fixtures."""

import pytest

from fakes import (
    FakeInvoiceLookup,
    FakeOccurrenceCodeStore,
    FakeOccurrenceStore,
)
from service_codes import OccurrenceCodeService
from service_occurrences import OccurrenceService

KNOWN_INVOICES = (100, 200, 99999)


@pytest.fixture
def catalog() -> dict:
    """Catalog rows keyed by code, as joined by the occurrence store."""
    return {
        1: {"code": 1, "description": "Em trânsito", "tipo": "status", "finalizadora": False},
        4: {"code": 4, "description": "Entregue", "tipo": "entrega", "finalizadora": True},
        5: {"code": 5, "description": "Tentativa de entrega", "tipo": "entrega", "finalizadora": False},
    }


@pytest.fixture
def occurrence_store(catalog: dict) -> FakeOccurrenceStore:
    return FakeOccurrenceStore(catalog)


@pytest.fixture
def invoices() -> FakeInvoiceLookup:
    return FakeInvoiceLookup(KNOWN_INVOICES)


@pytest.fixture
def occurrence_service(
    occurrence_store: FakeOccurrenceStore, invoices: FakeInvoiceLookup
) -> OccurrenceService:
    return OccurrenceService(occurrence_store, invoices)


@pytest.fixture
def code_store(occurrence_store: FakeOccurrenceStore) -> FakeOccurrenceCodeStore:
    return FakeOccurrenceCodeStore(occurrence_store)


@pytest.fixture
def code_service(code_store: FakeOccurrenceCodeStore) -> OccurrenceCodeService:
    return OccurrenceCodeService(code_store)
