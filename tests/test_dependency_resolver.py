"""
tests/test_dependency_resolver.py — PWBS dependency resolution and edits.

Covers:
    1.  Pure merge: override replaces default on exact key, output sorted
    2.  No project → defaults only
    3.  Override shadows default for its own project only
    4.  Never both a default and an override for the same key
    5.  get_dependencies_for_pwbs filters on from_pwbs after merging
    6.  Upsert returns (dep, created) and updates in place
    7.  Invalid type / self-edge / missing fields rejected
    8.  Removing an override re-exposes the default
    9.  Removing an absent edge raises NotFoundError
    10. Database rejects a second default / project override for a key;
        an upsert that loses the insert race updates the existing row
    11. HTTP: PUT 201/200, GET effective set, DELETE 404, 400 on missing fields
"""

import pytest
from sqlalchemy.exc import IntegrityError

from installplan.core.exceptions import NotFoundError, ValidationError
from installplan.models import db
from installplan.models.scheduling import DependencyType, PwbsDependency
from installplan.services import dependency_service as deps
from installplan.services.dependency_service import EffectiveDependency, merge_dependencies


def _edge(from_pwbs, to_pwbs, dep_type=DependencyType.FINISH_TO_START, *, project=None):
    return EffectiveDependency(
        from_pwbs=from_pwbs,
        to_pwbs=to_pwbs,
        dependency_type=dep_type,
        is_default=project is None,
        project_number=project,
    )


def _default(from_pwbs, to_pwbs, dep_type="finish_to_start"):
    dep = PwbsDependency(from_pwbs=from_pwbs, to_pwbs=to_pwbs,
                         dependency_type=dep_type, is_default=True)
    db.session.add(dep)
    db.session.commit()
    return dep


def _override(project_number, from_pwbs, to_pwbs, dep_type="finish_to_start"):
    dep = PwbsDependency(from_pwbs=from_pwbs, to_pwbs=to_pwbs, dependency_type=dep_type,
                         is_default=False, project_number=project_number)
    db.session.add(dep)
    db.session.commit()
    return dep


# ═════════════════════════════════════════════════════════════════════════════
# Pure merge
# ═════════════════════════════════════════════════════════════════════════════


class TestMergeDependencies:
    def test_override_replaces_default_on_exact_key(self):
        defaults = {("K", "F"): _edge("K", "F"), ("K", "M"): _edge("K", "M")}
        overrides = {("K", "F"): _edge("K", "F", DependencyType.NONE, project="P1")}

        merged = merge_dependencies(defaults, overrides)

        assert [d.key for d in merged] == [("K", "F"), ("K", "M")]
        assert merged[0].dependency_type is DependencyType.NONE
        assert merged[0].is_default is False
        assert merged[1].is_default is True

    def test_no_partial_matching(self):
        defaults = {("K", "F"): _edge("K", "F")}
        overrides = {("K", "G"): _edge("K", "G", project="P1")}

        merged = merge_dependencies(defaults, overrides)

        assert {d.key for d in merged} == {("K", "F"), ("K", "G")}

    def test_output_sorted_by_key(self):
        defaults = {("Z", "A"): _edge("Z", "A"), ("A", "Z"): _edge("A", "Z")}
        assert [d.key for d in merge_dependencies(defaults, {})] == [("A", "Z"), ("Z", "A")]


# ═════════════════════════════════════════════════════════════════════════════
# Resolution against the store
# ═════════════════════════════════════════════════════════════════════════════


class TestResolveDependencies:
    def test_without_project_returns_defaults_only(self):
        _default("K", "F")
        _override("P1", "K", "M")

        result = deps.resolve_dependencies()

        assert [d.key for d in result] == [("K", "F")]
        assert all(d.is_default for d in result)

    def test_override_shadows_default_for_its_project(self):
        _default("K", "F", "finish_to_start")
        _override("P1", "K", "F", "start_to_start")

        p1 = {d.key: d for d in deps.resolve_dependencies("P1")}
        p2 = {d.key: d for d in deps.resolve_dependencies("P2")}

        assert p1[("K", "F")].dependency_type is DependencyType.START_TO_START
        assert p1[("K", "F")].is_default is False
        assert p2[("K", "F")].dependency_type is DependencyType.FINISH_TO_START

    def test_never_returns_default_and_override_for_same_key(self):
        for pair in (("K", "F"), ("F", "M"), ("M", "E")):
            _default(*pair)
            _override("P1", *pair, "none")

        keys = [d.key for d in deps.resolve_dependencies("P1")]

        assert len(keys) == len(set(keys)) == 3

    def test_dependencies_for_pwbs(self):
        _default("K", "F")
        _default("K", "M")
        _default("F", "M")
        _override("P1", "K", "E")

        result = deps.get_dependencies_for_pwbs("K", "P1")

        assert [d.to_pwbs for d in result] == ["E", "F", "M"]

    def test_project_overrides_listing(self):
        _default("K", "F")
        _override("P1", "K", "F")
        _override("P2", "K", "M")

        rows = deps.get_project_overrides("P1")

        assert [(r.from_pwbs, r.to_pwbs, r.project_number) for r in rows] == [("K", "F", "P1")]


# ═════════════════════════════════════════════════════════════════════════════
# Mutations
# ═════════════════════════════════════════════════════════════════════════════


class TestDependencyMutations:
    def test_set_default_creates_then_updates(self):
        dep, created = deps.set_default_dependency("K", "F", "finish_to_start")
        assert created is True

        again, created_again = deps.set_default_dependency("K", "F", "start_to_start")

        assert created_again is False
        assert again.id == dep.id
        assert again.dependency_type == "start_to_start"
        assert len(deps.get_default_dependencies()) == 1

    def test_set_project_dependency_is_scoped(self):
        dep, created = deps.set_project_dependency("P1", "K", "F", "none")

        assert created is True
        assert dep.is_default is False
        assert dep.project_number == "P1"
        assert deps.get_default_dependencies() == []

    @pytest.mark.parametrize("from_pwbs,to_pwbs,dep_type,field", [
        ("K", "F", "before", "dependency_type"),
        ("K", "K", "finish_to_start", "to_pwbs"),
        ("", "F", "finish_to_start", "from_pwbs"),
    ])
    def test_invalid_edges_rejected(self, from_pwbs, to_pwbs, dep_type, field):
        with pytest.raises(ValidationError) as exc:
            deps.set_default_dependency(from_pwbs, to_pwbs, dep_type)
        assert field in exc.value.details
        assert db.session.query(PwbsDependency).count() == 0

    def test_removing_override_reexposes_default(self):
        _default("K", "F", "finish_to_start")
        _override("P1", "K", "F", "none")

        deps.remove_project_dependency("P1", "K", "F")

        result = deps.resolve_dependencies("P1")
        assert len(result) == 1
        assert result[0].is_default is True
        assert result[0].dependency_type is DependencyType.FINISH_TO_START

    def test_remove_absent_edge_raises(self):
        _override("P1", "K", "F")
        with pytest.raises(NotFoundError):
            deps.remove_default_dependency("K", "F")
        with pytest.raises(NotFoundError):
            deps.remove_project_dependency("P2", "K", "F")

    def test_duplicate_default_rejected_by_database(self):
        _default("K", "F")
        with pytest.raises(IntegrityError):
            _default("K", "F", "none")
        db.session.rollback()

    def test_duplicate_override_rejected_by_database(self):
        _override("P1", "K", "F")
        _override("P2", "K", "F")
        _default("K", "F")
        with pytest.raises(IntegrityError):
            _override("P1", "K", "F", "none")
        db.session.rollback()

    def test_lost_insert_race_updates_existing_row(self, monkeypatch):
        winner = _default("K", "F", "finish_to_start")
        real_find = deps._find_edge
        calls = []

        def _stale_then_real(*args):
            calls.append(args)
            return None if len(calls) == 1 else real_find(*args)

        monkeypatch.setattr(deps, "_find_edge", _stale_then_real)

        dep, created = deps.set_default_dependency("K", "F", "start_to_start")

        assert created is False
        assert dep.id == winner.id
        assert dep.dependency_type == "start_to_start"
        assert db.session.query(PwbsDependency).count() == 1


# ═════════════════════════════════════════════════════════════════════════════
# HTTP
# ═════════════════════════════════════════════════════════════════════════════


class TestDependencyAPI:
    def test_put_default_created_then_updated(self, client):
        body = {"from_pwbs": "K", "to_pwbs": "F", "dependency_type": "finish_to_start"}
        res = client.put("/api/v1/pwbs-dependencies/defaults", json=body)
        assert res.status_code == 201
        assert res.get_json()["is_default"] is True

        body["dependency_type"] = "start_to_start"
        res = client.put("/api/v1/pwbs-dependencies/defaults", json=body)
        assert res.status_code == 200
        assert res.get_json()["dependency_type"] == "start_to_start"

    def test_effective_set_for_project(self, client):
        _default("K", "F")
        client.put("/api/v1/projects/P1/pwbs-dependencies",
                   json={"from_pwbs": "K", "to_pwbs": "F", "dependency_type": "none"})

        res = client.get("/api/v1/pwbs-dependencies?project_number=P1")

        assert res.status_code == 200
        data = res.get_json()
        assert data["total"] == 1
        assert data["items"][0]["dependency_type"] == "none"
        assert data["items"][0]["project_number"] == "P1"

    def test_for_pwbs_endpoint(self, client):
        _default("K", "F")
        _default("M", "F")

        res = client.get("/api/v1/pwbs-dependencies/for/K")

        assert [d["to_pwbs"] for d in res.get_json()["items"]] == ["F"]

    def test_invalid_type_is_422(self, client):
        res = client.put("/api/v1/pwbs-dependencies/defaults",
                         json={"from_pwbs": "K", "to_pwbs": "F", "dependency_type": "sometime"})
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_missing_fields_is_400(self, client):
        res = client.put("/api/v1/projects/P1/pwbs-dependencies", json={"from_pwbs": "K"})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_delete_missing_is_404(self, client):
        res = client.delete("/api/v1/pwbs-dependencies/defaults/K/F")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_delete_override(self, client):
        _override("P1", "K", "F")
        res = client.delete("/api/v1/projects/P1/pwbs-dependencies/K/F")
        assert res.status_code == 200
        assert res.get_json()["deleted"] is True
        assert deps.get_project_overrides("P1") == []
