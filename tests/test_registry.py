from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

import pytest

from schemareg.config import RegistryConfig
from schemareg.exceptions import (
    ConcurrencyConflictError,
    DuplicateSchemaError,
    InvalidArgumentError,
    SchemaNotFoundError,
    StoreUnavailableError,
)
from schemareg.registry import SchemaRegistry
from schemareg.schema import ObjectSchema, schema_id
from schemareg.stores.base import SearchPage

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
BILLING = "ns://acme.io/billing"


@pytest.fixture
def config(tmp_path) -> RegistryConfig:
    return RegistryConfig(url=str(tmp_path))


@pytest.fixture
def registry(config) -> SchemaRegistry:
    return SchemaRegistry(config, clock=lambda: NOW)


def _schema(namespace: str = BILLING, version: str = "1.0.0", **kwargs: Any) -> ObjectSchema:
    return ObjectSchema(namespace=namespace, version=version, **kwargs)


def _spy_searches(registry: SchemaRegistry, monkeypatch) -> list[dict[str, Any]]:
    """Record the paging arguments of every search the registry issues."""
    calls: list[dict[str, Any]] = []
    original = registry.store.search_by_fields

    def spy(filters, offset=0, size=None, return_fields=None):
        calls.append({"offset": offset, "size": size})
        return original(filters, offset=offset, size=size, return_fields=return_fields)

    monkeypatch.setattr(registry.store, "search_by_fields", spy)
    return calls


class RecordingStore:
    """Store stand-in that records every call and fails the test if used."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def __getattr__(self, name: str):
        def record(*args: Any, **kwargs: Any) -> Any:
            self.calls.append(name)
            raise AssertionError(f"unexpected store call: {name}")

        return record


class TestCreateSchema:
    def test_first_create_succeeds(self, registry):
        result = registry.create_schema(_schema(description="Billing"))

        assert result.id == schema_id(BILLING, "1.0.0")
        assert result.revision == 1
        assert result.created is True

        stored = registry.get_schema(result.id)
        assert stored.schema.description == "Billing"
        assert stored.schema.created_on == NOW
        assert stored.schema.updated_on == NOW

    def test_second_create_is_duplicate(self, registry):
        registry.create_schema(_schema(description="original"))

        with pytest.raises(DuplicateSchemaError) as exc_info:
            registry.create_schema(_schema(description="second"))

        assert exc_info.value.existing is not None
        assert exc_info.value.existing.description == "original"
        assert registry.get_schema(schema_id(BILLING, "1.0.0")).schema.description == "original"

    def test_other_version_is_not_duplicate(self, registry):
        registry.create_schema(_schema(version="1.0.0"))
        result = registry.create_schema(_schema(version="1.1.0"))
        assert result.created is True

    def test_caller_timestamps_are_replaced(self, registry):
        stale = datetime(2000, 1, 1, tzinfo=timezone.utc)
        registry.create_schema(_schema(created_on=stale, updated_on=stale))

        stored = registry.find_by_namespace_version(BILLING, "1.0.0")

        assert stored.schema.created_on == NOW
        assert stored.schema.updated_on == NOW

    def test_does_not_mutate_input(self, registry):
        schema = _schema()
        registry.create_schema(schema)
        assert schema.created_on is None

    def test_lost_race_is_reported_as_duplicate(self, registry, monkeypatch):
        registry.create_schema(_schema(description="winner"))
        # A concurrent creator whose existence check ran before the winner's write
        monkeypatch.setattr(
            registry.store, "search_by_fields", lambda *args, **kwargs: SearchPage(total=0)
        )

        with pytest.raises(DuplicateSchemaError) as exc_info:
            registry.create_schema(_schema(description="loser"))

        assert exc_info.value.existing is not None
        assert exc_info.value.existing.description == "winner"


class TestLookups:
    def test_find_by_namespace_version(self, registry):
        registry.create_schema(_schema(types={"Invoice": {"type": "object"}}))

        stored = registry.find_by_namespace_version(BILLING, "1.0.0")

        assert stored.schema.get_type("Invoice") == {"type": "object"}
        assert stored.revision == 1

    def test_find_missing(self, registry):
        with pytest.raises(SchemaNotFoundError):
            registry.find_by_namespace_version(BILLING, "9.9.9")

    @pytest.mark.parametrize(
        "namespace, version",
        [(None, "1.0.0"), ("", "1.0.0"), ("  ", "1.0.0"), (BILLING, None), (BILLING, " ")],
    )
    def test_find_rejects_blank_keys_without_store_calls(self, config, namespace, version):
        store = RecordingStore()
        registry = SchemaRegistry(config, store=store)  # type: ignore[arg-type]

        with pytest.raises(InvalidArgumentError):
            registry.find_by_namespace_version(namespace, version)

        assert store.calls == []

    def test_get_schema_rejects_blank_id(self, config):
        store = RecordingStore()
        registry = SchemaRegistry(config, store=store)  # type: ignore[arg-type]
        with pytest.raises(InvalidArgumentError):
            registry.get_schema("")
        assert store.calls == []

    def test_get_schemas(self, registry):
        registry.create_schema(_schema(version="1.0.0"))
        registry.create_schema(_schema(version="2.0.0"))

        found = registry.get_schemas(
            [schema_id(BILLING, "1.0.0"), schema_id(BILLING, "2.0.0"), schema_id(BILLING, "3.0.0")]
        )

        assert set(found) == {schema_id(BILLING, "1.0.0"), schema_id(BILLING, "2.0.0")}

    def test_get_schemas_empty(self, config):
        store = RecordingStore()
        registry = SchemaRegistry(config, store=store)  # type: ignore[arg-type]
        assert registry.get_schemas([]) == {}
        assert store.calls == []

    def test_find_schemas_by_field(self, registry):
        registry.create_schema(_schema(version="1.0.0"))
        registry.create_schema(_schema(version="2.0.0"))
        registry.create_schema(_schema(namespace="ns://acme.io/crm"))

        page = registry.find_schemas_by_field("namespace", BILLING)

        assert page.total == 2
        assert sorted(s.schema.version for s in page.schemas) == ["1.0.0", "2.0.0"]


class TestSetSchema:
    def test_upsert_creates_missing_schema(self, registry):
        result = registry.set_schema(_schema(), updated_by="alice")

        stored = registry.get_schema(result.id)

        assert result.created is True
        assert stored.revision == 1
        assert stored.schema.updated_by == "alice"
        assert stored.schema.created_on == NOW

    def test_updated_on_is_always_set(self, config, registry):
        registry.create_schema(_schema())
        stored = registry.get_schema(schema_id(BILLING, "1.0.0"))
        caller_value = datetime(1999, 1, 1, tzinfo=timezone.utc)
        later = datetime(2024, 6, 1, tzinfo=timezone.utc)
        later_registry = SchemaRegistry(config, clock=lambda: later)

        later_registry.set_schema(replace(stored.schema, updated_on=caller_value))

        updated = registry.get_schema(schema_id(BILLING, "1.0.0")).schema
        assert updated.updated_on == later
        assert updated.created_on == NOW

    def test_upsert_keeps_stored_creation_time(self, config, registry):
        registry.create_schema(_schema(description="v1"))
        later = datetime(2024, 6, 1, tzinfo=timezone.utc)
        later_registry = SchemaRegistry(config, clock=lambda: later)

        later_registry.set_schema(_schema(description="v2"))

        updated = registry.get_schema(schema_id(BILLING, "1.0.0")).schema
        assert updated.description == "v2"
        assert updated.created_on == NOW
        assert updated.updated_on == later

    def test_caller_creation_time_is_ignored_on_create(self, registry):
        backdated = datetime(1990, 1, 1, tzinfo=timezone.utc)

        result = registry.set_schema(_schema(created_on=backdated))

        assert registry.get_schema(result.id).schema.created_on == NOW

    def test_current_revision_succeeds_and_advances(self, registry):
        registry.create_schema(_schema())
        stored = registry.find_by_namespace_version(BILLING, "1.0.0")
        stored.schema.add_type("Invoice", {"type": "object"})

        result = registry.set_schema(stored.schema, expected_revision=stored.revision)

        assert result.revision == stored.revision + 1
        assert registry.get_schema(result.id).schema.get_type("Invoice") == {"type": "object"}

    def test_stale_revision_conflicts(self, registry):
        registry.create_schema(_schema())
        first_reader = registry.find_by_namespace_version(BILLING, "1.0.0")
        second_reader = registry.find_by_namespace_version(BILLING, "1.0.0")

        registry.set_schema(first_reader.schema, expected_revision=first_reader.revision)

        with pytest.raises(ConcurrencyConflictError):
            registry.set_schema(second_reader.schema, expected_revision=second_reader.revision)

    def test_no_revision_overwrites(self, registry):
        registry.create_schema(_schema(description="v1"))
        result = registry.set_schema(_schema(description="v2"))
        assert result.revision == 2
        assert registry.get_schema(result.id).schema.description == "v2"


class TestDelete:
    def test_delete_then_get_is_not_found(self, registry):
        result = registry.create_schema(_schema())

        assert registry.delete_schema(result.id) is True

        with pytest.raises(SchemaNotFoundError):
            registry.get_schema(result.id)

    def test_delete_missing_is_noop(self, registry):
        assert registry.delete_schema(schema_id(BILLING, "1.0.0")) is False

    def test_delete_missing_strict(self, registry):
        with pytest.raises(SchemaNotFoundError):
            registry.delete_schema(schema_id(BILLING, "1.0.0"), missing_ok=False)

    def test_delete_losing_race_is_noop(self, registry, monkeypatch):
        result = registry.create_schema(_schema())
        fs = registry.store.documents.fs
        original_rm = fs.rm

        def racing_rm(path, *args, **kwargs):
            original_rm(path)
            raise FileNotFoundError(path)

        monkeypatch.setattr(fs, "rm", racing_rm)

        assert registry.delete_schema(result.id) is False

    def test_delete_schemas(self, registry):
        registry.create_schema(_schema(version="1.0.0"))
        registry.create_schema(_schema(version="2.0.0"))

        result = registry.delete_schemas(
            [schema_id(BILLING, "1.0.0"), schema_id(BILLING, "2.0.0"), schema_id(BILLING, "3.0.0")]
        )

        assert result.deleted == {schema_id(BILLING, "1.0.0"), schema_id(BILLING, "2.0.0")}
        assert result.missing == {schema_id(BILLING, "3.0.0")}
        assert registry.get_versions_for_namespace(BILLING) == []

    def test_deleted_schema_can_be_created_again(self, registry):
        result = registry.create_schema(_schema())
        registry.delete_schema(result.id)
        assert registry.create_schema(_schema()).created is True


class TestVersionsForNamespace:
    @pytest.mark.parametrize("count, expected_requests", [(5, 1), (10, 1), (15, 2)])
    def test_returns_every_version(self, registry, monkeypatch, count, expected_requests):
        expected = {f"1.{i}.0" for i in range(count)}
        for version in expected:
            registry.create_schema(_schema(version=version))
        registry.create_schema(_schema(namespace="ns://acme.io/crm"))
        calls = _spy_searches(registry, monkeypatch)

        versions = registry.get_versions_for_namespace(BILLING)

        assert len(versions) == count
        assert set(versions) == expected
        assert len(calls) == expected_requests

    def test_follow_up_is_sized_to_remainder(self, registry, monkeypatch):
        for i in range(25):
            registry.create_schema(_schema(version=f"1.{i}.0"))
        calls = _spy_searches(registry, monkeypatch)

        versions = registry.get_versions_for_namespace(BILLING)

        assert len(versions) == 25
        assert calls == [{"offset": 0, "size": 10}, {"offset": 10, "size": 15}]

    def test_capped_pages_are_still_complete(self, tmp_path, monkeypatch):
        config = RegistryConfig(url=str(tmp_path), max_page_size=4)
        registry = SchemaRegistry(config)
        expected = {f"1.{i}.0" for i in range(15)}
        for version in expected:
            registry.create_schema(_schema(version=version))
        calls = _spy_searches(registry, monkeypatch)

        versions = registry.get_versions_for_namespace(BILLING)

        assert len(versions) == 15
        assert set(versions) == expected
        assert [c["offset"] for c in calls] == [0, 4, 8, 12]

    def test_custom_default_page_size(self, tmp_path, monkeypatch):
        registry = SchemaRegistry(RegistryConfig(url=str(tmp_path), default_page_size=3))
        for i in range(5):
            registry.create_schema(_schema(version=f"1.{i}.0"))
        calls = _spy_searches(registry, monkeypatch)

        assert len(registry.get_versions_for_namespace(BILLING)) == 5
        assert calls == [{"offset": 0, "size": 3}, {"offset": 3, "size": 2}]

    def test_unknown_namespace(self, registry):
        assert registry.get_versions_for_namespace("ns://nobody") == []

    def test_namespace_shrinking_between_pages(self, registry, monkeypatch):
        for i in range(12):
            registry.create_schema(_schema(version=f"1.{i}.0"))
        original = registry.store.search_by_fields

        def search(filters, offset=0, size=None, return_fields=None):
            if offset > 0:
                return SearchPage(total=0)
            return original(filters, offset=offset, size=size, return_fields=return_fields)

        monkeypatch.setattr(registry.store, "search_by_fields", search)

        assert len(registry.get_versions_for_namespace(BILLING)) == 10

    @pytest.mark.parametrize("namespace", [None, "", "   ", 42])
    def test_rejects_invalid_namespace(self, config, namespace):
        store = RecordingStore()
        registry = SchemaRegistry(config, store=store)  # type: ignore[arg-type]
        with pytest.raises(InvalidArgumentError):
            registry.get_versions_for_namespace(namespace)
        assert store.calls == []


class TestNamespaceSummary:
    def test_counts_versions_per_namespace(self, registry):
        registry.create_schema(_schema(namespace="ns://a", version="1.0.0"))
        registry.create_schema(_schema(namespace="ns://a", version="2.0.0"))
        registry.create_schema(_schema(namespace="ns://b", version="1.0.0"))

        assert registry.get_namespace_summary() == {"ns://a": 2, "ns://b": 1}

    def test_empty_registry(self, registry):
        assert registry.get_namespace_summary() == {}

    def test_no_truncation(self, registry):
        for i in range(30):
            registry.create_schema(_schema(namespace=f"ns://n{i}", version="1.0.0"))

        summary = registry.get_namespace_summary()

        assert len(summary) == 30
        assert set(summary.values()) == {1}

    def test_counts_come_from_store(self, config):
        class AggregatingStore:
            def search_aggregate_by_field(self, field_name, size=None):
                assert field_name == "namespace"
                return {"ns://a": 7, "ns://b": 3}

        registry = SchemaRegistry(config, store=AggregatingStore())  # type: ignore[arg-type]

        assert registry.get_namespace_summary() == {"ns://a": 7, "ns://b": 3}


class FailingStore:
    """Store stand-in whose every call fails as if the backend were down."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def __getattr__(self, name: str):
        def fail(*args: Any, **kwargs: Any) -> Any:
            self.calls.append(name)
            raise StoreUnavailableError("connection refused")

        return fail


class TestStoreFailures:
    @pytest.fixture
    def store(self) -> FailingStore:
        return FailingStore()

    @pytest.fixture
    def failing_registry(self, config, store) -> SchemaRegistry:
        return SchemaRegistry(config, store=store, clock=lambda: NOW)  # type: ignore[arg-type]

    def test_create_schema(self, failing_registry, store):
        with pytest.raises(StoreUnavailableError, match="connection refused"):
            failing_registry.create_schema(_schema())
        assert store.calls == ["search_by_fields"]

    def test_set_schema(self, failing_registry, store):
        with pytest.raises(StoreUnavailableError):
            failing_registry.set_schema(_schema(), expected_revision=1)
        assert store.calls == ["put"]

    def test_get_versions_for_namespace(self, failing_registry, store):
        with pytest.raises(StoreUnavailableError):
            failing_registry.get_versions_for_namespace(BILLING)
        assert store.calls == ["search_by_fields"]

    def test_get_namespace_summary(self, failing_registry, store):
        with pytest.raises(StoreUnavailableError):
            failing_registry.get_namespace_summary()
        assert store.calls == ["search_aggregate_by_field"]
