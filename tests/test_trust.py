"""Tests for the trust store of remembered approvals."""

import json
from datetime import timedelta

import pytest

from execguard.guard.trust import TrustStore, hash_command


class TestTrustStore:
    def test_add_and_lookup(self, trust_store, now):
        entry = trust_store.add("terraform plan -out=tfplan", now=now)
        assert entry.command_hash == hash_command("terraform plan -out=tfplan")
        assert trust_store.is_trusted("terraform plan -out=tfplan", now)
        assert not trust_store.is_trusted("terraform apply tfplan", now)

    def test_persisted_as_json_list(self, trust_store, now):
        trust_store.add("make deploy", note="weekly release", now=now)
        data = json.loads(trust_store.path.read_text())
        assert [e["command"] for e in data] == ["make deploy"]
        assert data[0]["note"] == "weekly release"
        assert TrustStore(trust_store.path).is_trusted("make deploy", now)

    def test_expiry(self, trust_store, now):
        trust_store.add("npm publish", duration=timedelta(hours=1), now=now)
        assert trust_store.is_trusted("npm publish", now + timedelta(minutes=59))
        assert not trust_store.is_trusted("npm publish", now + timedelta(hours=2))

    def test_record_use(self, trust_store, now):
        trust_store.add("make deploy", now=now)
        trust_store.record_use("make deploy", now)
        trust_store.record_use("make deploy", now)
        assert trust_store.get("make deploy").use_count == 2

    def test_record_use_unknown(self, trust_store):
        with pytest.raises(KeyError):
            trust_store.record_use("never added")

    def test_remove(self, trust_store, now):
        trust_store.add("make deploy", now=now)
        assert trust_store.remove("make deploy")
        assert not trust_store.remove("make deploy")
        assert not trust_store.is_trusted("make deploy", now)

    def test_list_and_clean_expired(self, trust_store, now):
        trust_store.add("a", duration=timedelta(minutes=1), now=now)
        trust_store.add("b", now=now)
        later = now + timedelta(minutes=5)
        assert [e.command for e in trust_store.list(later)] == ["b"]
        assert trust_store.clean_expired(later) == 1
        assert TrustStore(trust_store.path).get("a") is None

    def test_unreadable_file_is_empty(self, tmp_path, now):
        path = tmp_path / "trust.json"
        path.write_text("{not json")
        assert not TrustStore(path).is_trusted("anything", now)
