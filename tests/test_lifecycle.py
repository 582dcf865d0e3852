"""Tests for the scenario lifecycle: create, edit, duplicate, export, import."""

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from data.errors import ScenarioNotFound
from data.repository import HourTypeRepository, ScenarioRepository
from data.store import TreeStore
from models.hour_type import HourType
from planning.errors import ImportFormatError, ValidationFailed
from planning.ids import IdMap, generate_id_number
from planning.ledger import HourTypeEntry, replace_teacher_allocations
from planning.lifecycle import (
    DUPLICATE_SUFFIX,
    IMPORT_SUFFIX,
    MAX_NAME,
    ScenarioLifecycle,
    export_filename,
    parse_export,
    read_export_file,
)
from planning.registry import HourTypeRegistry, add_class, add_teacher


@pytest.fixture
def env():
    store = TreeStore()
    registry = HourTypeRegistry(HourTypeRepository(store, "u1"))
    teaching = registry.create("שעות הוראה", color="#3B82F6", is_class_hour=True)
    coord = registry.create("שעות תיאום", color="#10B981")
    scenarios = ScenarioRepository(store, "u1")
    return {
        "store": store,
        "registry": registry,
        "scenarios": scenarios,
        "lifecycle": ScenarioLifecycle(scenarios, registry),
        "teaching": teaching,
        "coord": coord,
    }


def _populated(env):
    """Scenario with two teachers, two classes and allocations, saved."""
    lc, repo = env["lifecycle"], env["scenarios"]
    s = lc.create("תשפ״ה", "שנה רגילה", {env["teaching"]: 40, env["coord"]: 10})
    s, t1 = add_teacher(s, "דנה כהן", "123456789", max_hours=30)
    s, t2 = add_teacher(s, "רון לוי", "987654321", max_hours=30)
    s, c1 = add_class(s, "א1", "א", homeroom_teacher_id=t1.id)
    s, c2 = add_class(s, "א2", "א")
    s = replace_teacher_allocations(s, t1.id, {
        env["teaching"]: HourTypeEntry(general_hours=2, class_hours={c1.id: 4, c2.id: 3}),
        env["coord"]: HourTypeEntry(general_hours=2),
    })
    s = replace_teacher_allocations(s, t2.id, {
        env["teaching"]: HourTypeEntry(class_hours={c2.id: 5}),
    })
    repo.replace(s)
    return repo.load(s.id)


# ─── Ids ──────────────────────────────────────────────────────────────────────

class TestIds:
    def test_id_number_unique(self):
        existing = {generate_id_number(set()) for _ in range(5)}
        new = generate_id_number(existing)
        assert len(new) == 9
        assert new not in existing

    def test_id_map_bidirectional(self):
        m = IdMap("teacher")
        new = m.assign("t1")
        assert m.new("t1") == new
        assert m.old(new) == "t1"
        assert m.assign("t1") == new
        assert "t1" in m
        assert len(m) == 1

    def test_id_map_remap(self):
        m = IdMap("class")
        m.assign("c1", "x1")
        assert m.remap("c1") == "x1"
        assert m.remap("c9") == "c9"
        assert m.remap_all(["c1", "c9"]) == ["x1"]

    def test_id_map_shared_target(self):
        """Two old ids may resolve to the same existing id."""
        m = IdMap("hourType")
        m.assign("a", "same")
        assert m.assign("b", "same") == "same"
        assert m.remap("b") == "same"
        assert m.old("same") == "a"


# ─── Create / edit ────────────────────────────────────────────────────────────

class TestCreateAndEdit:
    def test_create_one_bank_per_hour_type(self, env):
        s = env["lifecycle"].create("תרחיש", "", {env["teaching"]: 30})
        assert len(s.hour_banks) == 2
        bank = s.get_bank(env["teaching"])
        assert bank.total_hours == 30
        assert bank.remaining_hours == 30
        assert s.get_bank(env["coord"]).total_hours == 0
        assert not s.is_active

    def test_create_requires_bank_hours(self, env):
        with pytest.raises(ValidationFailed) as exc:
            env["lifecycle"].create("תרחיש", "", {})
        assert "hourBanks" in exc.value.errors

    def test_create_duplicate_name(self, env):
        env["lifecycle"].create("תרחיש", "", {env["teaching"]: 1})
        with pytest.raises(ValidationFailed) as exc:
            env["lifecycle"].create("תרחיש", "", {env["teaching"]: 1})
        assert "name" in exc.value.errors

    def test_create_long_description(self, env):
        with pytest.raises(ValidationFailed) as exc:
            env["lifecycle"].create("תרחיש", "x" * 301, {env["teaching"]: 1})
        assert "description" in exc.value.errors

    def test_update_details_keeps_allocated(self, env):
        """Bank totals change; allocated hours stay."""
        s = _populated(env)
        updated, warnings = env["lifecycle"].update_details(
            s, name="תשפ״ו", bank_totals={env["teaching"]: 50}
        )
        bank = updated.get_bank(env["teaching"])
        assert updated.name == "תשפ״ו"
        assert bank.allocated_hours == 14
        assert bank.remaining_hours == 36
        assert warnings == []

    def test_update_details_warns_below_allocated(self, env):
        s = _populated(env)
        updated, warnings = env["lifecycle"].update_details(s, bank_totals={env["teaching"]: 10})
        assert len(warnings) == 1
        assert updated.get_bank(env["teaching"]).remaining_hours == -4

    def test_update_details_adds_bank_for_new_hour_type(self, env):
        s = _populated(env)
        new_type = env["registry"].create("שעות הכנה")
        updated, _ = env["lifecycle"].update_details(s, bank_totals={new_type: 6})
        assert updated.get_bank(new_type).total_hours == 6

    def test_update_details_own_name_allowed(self, env):
        s = _populated(env)
        env["lifecycle"].update_details(s, name=s.name)

    def test_set_active(self, env):
        lc = env["lifecycle"]
        a = lc.create("תרחיש א", "", {env["teaching"]: 1})
        b = lc.create("תרחיש ב", "", {env["teaching"]: 1})
        lc.set_active(a.id)
        lc.set_active(b.id)
        active = {s.name: s.is_active for s in env["scenarios"].list()}
        assert active == {"תרחיש א": False, "תרחיש ב": True}

    def test_delete(self, env):
        s = env["lifecycle"].create("תרחיש", "", {env["teaching"]: 1})
        env["lifecycle"].delete(s.id)
        with pytest.raises(ScenarioNotFound):
            env["scenarios"].load(s.id)


# ─── Duplicate ────────────────────────────────────────────────────────────────

class TestDuplicate:
    def test_fresh_ids_and_name(self, env):
        s = _populated(env)
        copy = env["lifecycle"].duplicate(s.id)
        assert copy.id != s.id
        assert copy.name == f"{s.name}{DUPLICATE_SUFFIX}"
        assert not copy.is_active
        assert not {t.id for t in copy.teachers} & {t.id for t in s.teachers}
        assert not {c.id for c in copy.classes} & {c.id for c in s.classes}
        assert not {a.id for a in copy.allocations} & {a.id for a in s.allocations}

    def test_references_remapped(self, env):
        s = _populated(env)
        copy = env["lifecycle"].duplicate(s.id)
        teacher_ids = {t.id for t in copy.teachers}
        class_ids = {c.id for c in copy.classes}
        for a in copy.allocations:
            assert a.teacher_id in teacher_ids
            assert set(a.class_ids) <= class_ids
        homeroom = next(c for c in copy.classes if c.name == "א1")
        assert homeroom.homeroom_teacher_id in teacher_ids
        teacher = copy.get_teacher(homeroom.homeroom_teacher_id)
        assert teacher.homeroom_class_ids == [homeroom.id]

    def test_aggregates_recomputed(self, env):
        """Bank counters equal the copy's own ledger, not stale values."""
        s = _populated(env)
        stale = s.model_copy(update={"hour_banks": [
            b.model_copy(update={"allocated_hours": 999, "remaining_hours": -1}) for b in s.hour_banks
        ]})
        env["scenarios"].replace(stale)
        copy = env["lifecycle"].duplicate(s.id)
        by_type = copy.ledger_hours_by_type()
        for bank in copy.hour_banks:
            assert bank.allocated_hours == by_type.get(bank.hour_type_id, 0)
            assert bank.remaining_hours == bank.total_hours - bank.allocated_hours
        assert copy.check_consistency().is_consistent

    def test_second_copy_gets_unique_name(self, env):
        s = _populated(env)
        first = env["lifecycle"].duplicate(s.id)
        second = env["lifecycle"].duplicate(s.id)
        assert first.name != second.name

    def test_missing_source(self, env):
        with pytest.raises(ScenarioNotFound):
            env["lifecycle"].duplicate("nope")


# ─── Export / import ──────────────────────────────────────────────────────────

class TestExport:
    def test_export_payload(self, env):
        s = _populated(env)
        payload = env["lifecycle"].export(s.id)
        assert payload.version == "1.0"
        assert {ht.name for ht in payload.hour_types} == {"שעות הוראה", "שעות תיאום"}
        doc = json.loads(payload.to_json())
        assert set(doc) == {"scenario", "hourTypes", "exportedAt", "version"}
        assert doc["scenario"]["allocations"][0]["classIds"] is not None

    def test_zero_banks_left_out(self, env):
        s = env["lifecycle"].create("חלקי", "", {env["teaching"]: 5})
        payload = env["lifecycle"].export(s.id)
        assert [b.hour_type_id for b in payload.scenario.hour_banks] == [env["teaching"]]
        assert [ht.name for ht in payload.hour_types] == ["שעות הוראה"]

    def test_export_to_file(self, env, tmp_path: Path):
        s = _populated(env)
        path = env["lifecycle"].export_to_file(s.id, tmp_path)
        assert path.name.startswith(f"{s.name}-")
        assert path.suffix == ".json"
        assert read_export_file(path).scenario.name == s.name

    def test_export_filename(self):
        day = datetime(2024, 9, 1, tzinfo=timezone.utc)
        assert export_filename("תשפ״ה", day) == "תשפ״ה-2024-09-01.json"
        assert export_filename("a/b", day) == "a_b-2024-09-01.json"


class TestImport:
    def test_round_trip(self, env):
        """Counts and per-hour-type totals survive export → import."""
        s = _populated(env)
        payload = parse_export(env["lifecycle"].export(s.id).to_json())
        imported = env["lifecycle"].import_(payload)

        assert imported.id != s.id
        assert imported.name == f"{s.name}{IMPORT_SUFFIX}"
        assert len(imported.teachers) == len(s.teachers)
        assert len(imported.classes) == len(s.classes)
        assert len(imported.allocations) == len(s.allocations)
        assert imported.ledger_hours_by_type() == s.ledger_hours_by_type()
        assert not {t.id for t in imported.teachers} & {t.id for t in s.teachers}
        assert imported.check_consistency().is_consistent

    def test_existing_hour_types_reused(self, env):
        s = _populated(env)
        before = len(env["registry"].list())
        env["lifecycle"].import_(env["lifecycle"].export(s.id))
        assert len(env["registry"].list()) == before

    def test_missing_hour_types_created(self, env):
        """Hour types unknown to this user are created and remapped."""
        s = _populated(env)
        payload = env["lifecycle"].export(s.id)
        other = ScenarioLifecycle(
            ScenarioRepository(env["store"], "u2"),
            HourTypeRegistry(HourTypeRepository(env["store"], "u2")),
        )
        check = other.validate_import(payload)
        assert check.is_valid
        assert len(check.missing_hour_types) == 2

        imported = other.import_(payload)
        names = {ht.id: ht.name for ht in other.hour_types.list()}
        assert set(names.values()) == {"שעות הוראה", "שעות תיאום"}
        assert all(b.hour_type_id in names for b in imported.hour_banks)
        assert all(a.hour_type_id in names for a in imported.allocations)

    def test_missing_hour_types_not_created(self, env):
        s = _populated(env)
        payload = env["lifecycle"].export(s.id)
        other = ScenarioLifecycle(
            ScenarioRepository(env["store"], "u2"),
            HourTypeRegistry(HourTypeRepository(env["store"], "u2")),
        )
        imported = other.import_(payload, create_missing=False)
        assert other.hour_types.list() == []
        assert len(imported.allocations) == len(s.allocations)

    def test_match_by_name_case_insensitive(self, env):
        s = _populated(env)
        payload = env["lifecycle"].export(s.id)
        renamed = payload.model_copy(update={"hour_types": [
            ht.model_copy(update={"id": f"other-{ht.id}"}) for ht in payload.hour_types
        ]})
        check = env["lifecycle"].validate_import(renamed)
        assert check.missing_hour_types == []
        assert len(check.existing_hour_types) == 2

    def test_validate_import_warns_on_differences(self, env):
        s = _populated(env)
        payload = env["lifecycle"].export(s.id)
        recolored = payload.model_copy(update={"hour_types": [
            ht.model_copy(update={"color": "#000000"}) for ht in payload.hour_types
        ]})
        assert env["lifecycle"].validate_import(recolored).warnings

    def test_bad_json(self):
        with pytest.raises(ImportFormatError):
            parse_export("{not json")

    def test_bad_schema(self):
        with pytest.raises(ImportFormatError):
            parse_export({"scenario": {"name": "x"}, "version": "1.0"})

    def test_legacy_class_id_in_import(self, env):
        """A singular classId in an import file is migrated."""
        s = _populated(env)
        doc = env["lifecycle"].export(s.id).to_document()
        for a in doc["scenario"]["allocations"]:
            ids = a.pop("classIds")
            if len(ids) == 1:
                a["classId"] = ids[0]
        imported = env["lifecycle"].import_(parse_export(doc))
        assert sum(1 for a in imported.allocations if not a.is_general) == 3

    def test_two_hour_types_resolving_to_one(self, env):
        """One payload hour type matches by name, another by id; both map to it."""
        s = _populated(env)
        payload = env["lifecycle"].export(s.id)
        env["registry"].delete(env["teaching"])
        env["registry"].update(env["coord"], name="שעות הוראה")

        imported = env["lifecycle"].import_(payload)
        assert {a.hour_type_id for a in imported.allocations} == {env["coord"]}
        [bank] = imported.hour_banks
        assert bank.total_hours == 50
        assert bank.allocated_hours == 16
        assert imported.check_consistency().is_consistent
        assert len(env["registry"].list()) == 1

    def test_invalid_new_hour_type_blocks_whole_import(self, env):
        """Nothing is written when any hour type to be created is invalid."""
        s = _populated(env)
        payload = env["lifecycle"].export(s.id)
        bad = payload.model_copy(update={"hour_types": payload.hour_types + [
            HourType(id="n1", name="חדש א", color="#123456"),
            HourType(id="n2", name="ב", color="#123456"),
        ]})
        before = env["registry"].list()

        with pytest.raises(ValidationFailed) as exc:
            env["lifecycle"].import_(bad)
        assert "hourTypes.n2.name" in exc.value.errors
        assert env["registry"].list() == before
        assert len(env["scenarios"].list()) == 1

    def test_same_new_name_twice_in_payload(self, env):
        s = _populated(env)
        payload = env["lifecycle"].export(s.id)
        bad = payload.model_copy(update={"hour_types": payload.hour_types + [
            HourType(id="n1", name="שעות הכנה"),
            HourType(id="n2", name="שעות הכנה"),
        ]})
        with pytest.raises(ValidationFailed) as exc:
            env["lifecycle"].import_(bad)
        assert list(exc.value.errors) == ["hourTypes.n2.name"]
        assert len(env["registry"].list()) == 2

    def test_long_name_stays_within_limit(self, env):
        lc = env["lifecycle"]
        s = lc.create("ש" * MAX_NAME, "", {env["teaching"]: 1})

        first = lc.import_(lc.export(s.id))
        second = lc.import_(lc.export(s.id))
        copy = lc.duplicate(s.id)
        assert first.name.endswith(IMPORT_SUFFIX)
        assert second.name.endswith(f"{IMPORT_SUFFIX} 2")
        assert copy.name.endswith(DUPLICATE_SUFFIX)
        for scenario in (first, second, copy):
            assert len(scenario.name) <= MAX_NAME
            lc.update_details(scenario)
