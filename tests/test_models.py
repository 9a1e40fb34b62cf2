"""Tests for CredentialEntry / Vault: field rules, timestamps, sections, JSON shape."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from pearanoid.errors import ValidationError
from pearanoid.vault.models import CredentialEntry, Vault, extract_sections


class TestAdd:
    def test_assigns_id_and_timestamps(self):
        v = Vault()
        e = v.add({"name": "Bank", "password": "pw"})
        assert e.id
        assert e.created_at == e.updated_at
        assert e.created_at.tzinfo is not None

    def test_ids_unique(self):
        v = Vault()
        ids = {v.add({"name": f"n{i}", "password": "pw"}).id for i in range(50)}
        assert len(ids) == 50

    def test_insertion_order_kept(self):
        v = Vault()
        for name in ("c", "a", "b"):
            v.add({"name": name, "password": "pw"})
        assert [e.name for e in v.entries] == ["c", "a", "b"]

    @pytest.mark.parametrize(
        "values",
        [
            {"password": "pw"},
            {"name": "", "password": "pw"},
            {"name": None},
            {"name": "Bank", "password": None},
        ],
    )
    def test_required_fields(self, values):
        with pytest.raises(ValidationError):
            Vault().add(values)

    def test_name_is_the_only_required_field(self):
        e = Vault().add({"name": "Bank"})
        assert e.password == ""
        assert e.username is None

    @pytest.mark.parametrize("field", ["id", "created_at", "updated_at"])
    def test_system_fields_rejected(self, field):
        with pytest.raises(ValidationError, match="set by the vault"):
            Vault().add({"name": "x", "password": "y", field: "z"})

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError, match="Unknown"):
            Vault().add({"name": "x", "password": "y", "colour": "red"})


class TestUpdate:
    def test_merges_and_bumps_updated_at(self):
        v = Vault()
        e = v.add({"name": "Bank", "password": "pw"})
        created = e.created_at
        v.update(e.id, {"username": "alice"})
        assert e.name == "Bank"
        assert e.username == "alice"
        assert e.created_at == created
        assert e.updated_at > e.created_at

    def test_updated_at_monotonic_even_if_clock_is_behind(self):
        e = CredentialEntry(name="x", password="y")
        future = datetime.now(timezone.utc) + timedelta(days=1)
        e.updated_at = future
        e.touch()
        assert e.updated_at > future

    def test_unknown_id_returns_none(self):
        assert Vault().update("nope", {"name": "x"}) is None

    @pytest.mark.parametrize("changes", [{"name": ""}, {"password": None}])
    def test_rejects_blank_name_and_null_password(self, changes):
        v = Vault()
        e = v.add({"name": "Bank", "password": "pw"})
        with pytest.raises(ValidationError):
            v.update(e.id, changes)
        assert e.name == "Bank"
        assert e.password == "pw"

    def test_password_may_be_cleared(self):
        v = Vault()
        e = v.add({"name": "Bank", "password": "pw"})
        v.update(e.id, {"password": ""})
        assert e.password == ""

    def test_cannot_change_id(self):
        v = Vault()
        e = v.add({"name": "Bank", "password": "pw"})
        with pytest.raises(ValidationError):
            v.update(e.id, {"id": "other"})


class TestRemove:
    def test_remove(self):
        v = Vault()
        e = v.add({"name": "Bank", "password": "pw"})
        assert v.remove(e.id)
        assert v.entries == []

    def test_remove_missing_is_noop(self):
        v = Vault()
        v.add({"name": "Bank", "password": "pw"})
        assert not v.remove("missing")
        assert len(v.entries) == 1


class TestSections:
    def test_dedup_sorted_non_empty(self):
        v = Vault()
        for section in ["Work", "", "Work", "Home"]:
            v.add({"name": "n", "password": "p", "section": section})
        v.add({"name": "n", "password": "p"})
        assert extract_sections(v.entries) == ["Home", "Work"]

    def test_empty(self):
        assert extract_sections([]) == []


class TestSerialisation:
    def test_wire_field_names(self):
        v = Vault()
        v.add({"name": "Bank", "password": "pw", "email": "a@b.c"})
        data = v.to_dict()
        assert data["version"] == 1
        entry = data["entries"][0]
        assert set(entry) == {"id", "name", "password", "email", "createdAt", "updatedAt"}
        assert entry["createdAt"].endswith("Z")

    def test_roundtrip(self):
        v = Vault()
        e = v.add({"name": "Bank", "password": "pw", "section": "", "notes": "n"})
        v.update(e.id, {"username": "alice"})
        assert Vault.from_dict(v.to_dict()) == v

    def test_reads_browser_timestamps(self):
        data = {
            "version": 1,
            "entries": [
                {
                    "id": "abc",
                    "name": "Bank",
                    "password": "pw",
                    "createdAt": "2024-05-01T10:00:00.000Z",
                    "updatedAt": "2024-05-02T10:00:00.000Z",
                }
            ],
        }
        e = Vault.from_dict(data).entries[0]
        assert e.created_at == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)
        assert e.updated_at > e.created_at

    def test_copy_is_detached(self):
        v = Vault()
        v.add({"name": "Bank", "password": "pw"})
        c = v.copy()
        c.entries[0].name = "Changed"
        assert v.entries[0].name == "Bank"
