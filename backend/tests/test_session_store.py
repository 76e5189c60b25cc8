"""
test_session_store.py — Unit tests for project sessions and the session registry.

Tests cover:
  - Override seeding from contract / previous quantities (payment mode only)
  - Batch merge (items, rebar, sources, summary separator, kept identity)
  - Unit prices, rate suggestions and saved build-ups feeding valuation
  - Payment override edits and settings updates
  - Full recompute snapshot (payment certificate end to end)
  - Registry create / get / delete and newest-first listing
  - Sessions always start locked, whatever the payload says
"""

import pytest

from app.models.boq_schema import AppMode, RateBreakdown, RateComponent, RebarItem
from app.services.grouping_engine import GroupKey
from app.services.perf_monitor import tracker
from app.services.session_store import BATCH_SEPARATOR, ProjectSession, SessionRegistry

EXCAVATION = GroupKey("Excavation - Trenching", "m3", "Sub Structure")
COLUMNS = GroupKey("Concrete - Columns", "m3", "Super Structure")


def approx(a, b, tol=1e-6):
    return abs(a - b) < tol


# ===========================================================================
# Class 1: Override seeding
# ===========================================================================

class TestOverrideSeeding:

    def test_payment_mode_seeds_from_items(self, payment_items, project_factory):
        session = ProjectSession(project_factory(payment_items), AppMode.PAYMENT)
        assert session.overrides[EXCAVATION].contract == 100.0
        assert session.overrides[EXCAVATION].previous == 40.0
        assert len(session.overrides) == 1

    def test_estimation_mode_does_not_seed(self, payment_items, project_factory):
        session = ProjectSession(project_factory(payment_items), AppMode.ESTIMATION)
        assert session.overrides == {}

    def test_merge_seeds_new_groups(self, payment_items, project_factory, make_item):
        session = ProjectSession(project_factory(payment_items), "PAYMENT")
        batch = project_factory([make_item("R: Roof Sheets", 8.0, "m2", "Roofing", contract_quantity=20.0)])
        session.merge_batch(batch)
        assert session.overrides[GroupKey("Roof Sheets", "m2", "Roofing")].contract == 20.0


# ===========================================================================
# Class 2: Batch merge
# ===========================================================================

class TestMergeBatch:

    def test_concatenates_and_keeps_identity(self, estimation_items, project_factory, make_item):
        project = project_factory(estimation_items, id="P-1", summary="First", source_files=["a.pdf"])
        session = ProjectSession(project)
        session.is_paid = True
        rebar = RebarItem(id="01", member="C1", bar_type="Y16", shape_code="21", no_of_members=1,
                          bars_per_member=4, total_bars=4, length_per_bar=3, total_length=12,
                          total_weight=18.96)
        batch = project_factory([make_item()], id="P-2", is_paid=False, summary="Second",
                                source_files=["b.pdf"], rebar_items=[rebar])
        added = session.merge_batch(batch)

        assert added == 1
        assert len(session.items) == 6
        assert session.id == "P-1"
        assert session.is_paid is True
        assert session.source_files == ["a.pdf", "b.pdf"]
        assert len(session.rebar_items) == 1
        assert session.summary == "First" + BATCH_SEPARATOR + "Second"

    def test_paid_flag_in_payload_is_ignored(self, estimation_items, project_factory):
        session = ProjectSession(project_factory(estimation_items, is_paid=True))
        assert session.is_paid is False
        assert session.summary_dict()["is_paid"] is False

    def test_empty_batch_summary_leaves_summary(self, estimation_items, project_factory):
        session = ProjectSession(project_factory(estimation_items, summary="Only"))
        session.merge_batch(project_factory([]))
        assert session.summary == "Only"


# ===========================================================================
# Class 3: Rates
# ===========================================================================

class TestRates:

    def test_unit_price_drives_valuation(self, estimation_items, project_factory):
        session = ProjectSession(project_factory(estimation_items))
        session.set_unit_price("Concrete - Columns", 6000.0)
        snap = session.recompute()
        assert snap.valuation.groups[1].rate == 6000.0
        session.clear_unit_price("Concrete - Columns")
        assert session.recompute().valuation.groups[1].rate == 5000.0

    def test_rate_suggestion(self, estimation_items, project_factory):
        session = ProjectSession(project_factory(estimation_items))
        assert session.apply_rate_suggestion("Floor - Ceramic Tiles", "1,200 - 1,500 ETB") == 1200.0
        assert session.unit_prices["Floor - Ceramic Tiles"] == 1200.0

    def test_unparseable_suggestion_leaves_price(self, estimation_items, project_factory):
        session = ProjectSession(project_factory(estimation_items))
        session.set_unit_price("Floor - Ceramic Tiles", 900.0)
        assert session.apply_rate_suggestion("Floor - Ceramic Tiles", "on request") is None
        assert session.unit_prices["Floor - Ceramic Tiles"] == 900.0

    def test_saved_build_up_sets_rounded_price(self, estimation_items, project_factory):
        """final 5 692.5 becomes the Columns unit price; analytics turns explicit."""
        session = ProjectSession(project_factory(estimation_items))
        bd = RateBreakdown(
            materials=[RateComponent(cost=3000)],
            labor=[RateComponent(cost=1000)],
            plant=[RateComponent(cost=500)],
        )
        assert session.save_rate_breakdown(COLUMNS, bd) == 5692.5
        assert session.unit_prices["Concrete - Columns"] == 5692.5
        snap = session.recompute()
        assert snap.valuation.groups[1].rate == 5692.5
        assert snap.analytics.explicit_groups == 1

    def test_blank_breakdown_for_unknown_group(self, estimation_items, project_factory):
        session = ProjectSession(project_factory(estimation_items))
        bd = session.rate_breakdown_for(COLUMNS)
        assert bd.final_rate == 0.0
        assert len(bd.materials) == 1


# ===========================================================================
# Class 4: Payment overrides and settings
# ===========================================================================

class TestOverridesAndSettings:

    def test_override_edit_keeps_other_field(self, payment_items, project_factory):
        session = ProjectSession(project_factory(payment_items), AppMode.PAYMENT)
        updated = session.set_payment_override(EXCAVATION, "previous", 50.0)
        assert updated.contract == 100.0
        assert updated.previous == 50.0

    def test_bad_override_field(self, payment_items, project_factory):
        session = ProjectSession(project_factory(payment_items), AppMode.PAYMENT)
        with pytest.raises(ValueError):
            session.set_payment_override(EXCAVATION, "executed", 1.0)

    def test_settings_update(self, estimation_items, project_factory):
        session = ProjectSession(project_factory(estimation_items))
        s = session.update_settings(vat_pct=0.0, project_currency="USD")
        assert s.vat_pct == 0.0
        assert s.project_currency == "USD"
        assert s.retention_pct == 5.0

    def test_unit_system_taken_from_project(self, estimation_items, project_factory):
        session = ProjectSession(project_factory(estimation_items, unit_system="imperial"))
        assert session.settings.unit_system == "imperial"


# ===========================================================================
# Class 5: Recompute pipeline
# ===========================================================================

class TestRecompute:

    def test_payment_certificate_end_to_end(self, payment_items, project_factory):
        """
        cumulative 29 000 -> retention 1 450 -> net 27 550
                          -> VAT 4 132.5 -> total 31 682.5 -> due 31 682.5
        """
        session = ProjectSession(project_factory(payment_items), AppMode.PAYMENT)
        snap = session.recompute()
        assert approx(snap.valuation.totals.cumulative, 29000.0)
        assert approx(snap.certificate.retention_amount, 1450.0)
        assert approx(snap.certificate.net_valuation, 27550.0)
        assert approx(snap.certificate.vat_amount, 4132.5)
        assert approx(snap.certificate.amount_due, 31682.5)
        assert snap.group(EXCAVATION).total_quantity == 100.0

    def test_item_edit_flows_through(self, payment_items, project_factory):
        session = ProjectSession(project_factory(payment_items), AppMode.PAYMENT)
        session.update_item(1, quantity=30.0)
        snap = session.recompute()
        assert snap.group(EXCAVATION).executed_quantity == 50.0

    def test_records_metrics(self, estimation_items, project_factory):
        tracker.reset()
        ProjectSession(project_factory(estimation_items)).recompute()
        m = tracker.get_metrics()
        assert m["recomputes"] == 1
        assert set(m["stage_avg_durations_ms"]) == {"grouping", "valuation", "certificate", "analytics"}

    def test_summary_dict(self, estimation_items, project_factory):
        d = ProjectSession(project_factory(estimation_items)).summary_dict()
        assert d["item_count"] == 5
        assert d["mode"] == "ESTIMATION"
        assert d["settings"]["vatPct"] == 15.0


# ===========================================================================
# Class 6: Registry
# ===========================================================================

class TestRegistry:

    def test_create_get_delete(self, estimation_items, project_factory):
        registry = SessionRegistry()
        session = registry.create(project_factory(estimation_items, id="abc"))
        assert registry.get("abc") is session
        assert registry.list_ids() == ["abc"]
        assert len(registry) == 1
        assert registry.delete("abc") is True
        assert registry.get("abc") is None
        assert registry.delete("abc") is False

    def test_generated_id(self, estimation_items, project_factory):
        session = SessionRegistry().create(project_factory(estimation_items))
        assert len(session.id) == 36

    def test_list_sessions_newest_first(self, estimation_items, project_factory):
        registry = SessionRegistry()
        registry.create(project_factory(estimation_items, id="old", date="2024-01-01T00:00:00+00:00"))
        registry.create(project_factory(estimation_items, id="new", date="2024-06-01T00:00:00+00:00"))
        assert [s.id for s in registry.list_sessions()] == ["new", "old"]

    def test_merge_moves_session_to_front(self, estimation_items, project_factory):
        registry = SessionRegistry()
        registry.create(project_factory(estimation_items, id="old", date="2024-01-01T00:00:00+00:00"))
        registry.create(project_factory(estimation_items, id="new", date="2024-06-01T00:00:00+00:00"))
        registry.get("old").merge_batch(project_factory([]))
        assert [s.id for s in registry.list_sessions()] == ["old", "new"]
