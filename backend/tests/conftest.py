"""
conftest.py — Shared pytest fixtures for the ConstructAI BOQ backend test suite.

No database or external service fixtures are defined here. Engine tests are
pure unit tests; API tests run the FastAPI app in-process through TestClient
with a fresh session registry and wallet per test.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``app.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import sys
import os
import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any app imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ---------------------------------------------------------------------------
# Line item factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_item():
    """
    Factory for LineItem with sensible defaults. Pass bill= for the bill
    wording; any other keyword overrides the LineItem field.
    """
    from app.models.boq_schema import LineItem

    counter = {"n": 0}

    def _make(bill="Sub Structure: Excavation - Trenching", quantity=10.0, unit="m3",
              category="Sub Structure", **kwargs):
        counter["n"] += 1
        fields = {
            "id": f"T-{counter['n']:03d}",
            "description": bill,
            "bill_item_description": bill,
            "timesing": 1.0,
            "dimension": "",
            "quantity": quantity,
            "unit": unit,
            "category": category,
        }
        fields.update(kwargs)
        return LineItem(**fields)

    return _make


@pytest.fixture
def estimation_items(make_item):
    """
    Five items over three categories, interleaved:
      0  Sub Structure   Excavation - Trenching      m3   10   est 100
      1  Super Structure Concrete - Columns          m3    4   est 5000
      2  Sub Structure   Excavation - Trenching      m3    5
      3  Sub Structure   Excavation - Trenching      m3   -3   (deduction)
      4  Finishing Works Floor - Ceramic Tiles       m2   60   est 800
    """
    return [
        make_item(quantity=10.0, estimated_rate=100.0, source_ref="Drg-01"),
        make_item("Super Structure: Concrete - Columns", 4.0, "m3", "Super Structure",
                  estimated_rate=5000.0, source_ref="Drg-02"),
        make_item("X: Excavation - Trenching", 5.0, source_ref="Drg-01"),
        make_item(quantity=-3.0, location_description="Deduct pit", source_ref="Drg-01"),
        make_item("Finishing Works: Floor - Ceramic Tiles", 60.0, "m2", "Finishing Works",
                  estimated_rate=800.0),
    ]


@pytest.fixture
def payment_items(make_item):
    """
    Payment batch: current measured quantities plus contract/previous
    quantities from the contract BOQ on the first item of each group.
      Excavation  m3  executed 30 (20 + 10), contract 100, previous 40, rate 200
      Blockwork   m2  executed 50, no contract qty, rate 300
    """
    return [
        make_item(quantity=20.0, contract_rate=200.0, contract_quantity=100.0, previous_quantity=40.0),
        make_item(quantity=10.0),
        make_item("Masonry & Partitioning: Walls - Blockwork", 50.0, "m2", "Masonry & Partitioning",
                  contract_rate=300.0),
    ]


@pytest.fixture
def project_factory():
    from app.models.boq_schema import TakeoffResult

    def _make(items, **kwargs):
        return TakeoffResult(project_name="Test Project", items=items, **kwargs)

    return _make


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------

@pytest.fixture
def api(tmp_path, monkeypatch):
    """
    TestClient with an isolated registry and wallet; downloads go to tmp_path.
    Yields (client, registry, wallet).
    """
    from fastapi.testclient import TestClient
    from app.main import app
    from app.api import deps
    from app.services import report_engine
    from app.services.session_store import SessionRegistry
    from app.services.wallet_service import InMemoryKeyValueStore, WalletService

    registry = SessionRegistry()
    wallet = WalletService(InMemoryKeyValueStore())
    monkeypatch.setattr(report_engine, "DOWNLOAD_DIR", str(tmp_path))
    app.dependency_overrides[deps.get_registry] = lambda: registry
    app.dependency_overrides[deps.get_wallet] = lambda: wallet
    with TestClient(app) as client:
        yield client, registry, wallet
    app.dependency_overrides.clear()
