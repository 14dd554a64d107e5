"""Tests for table declaration and descriptor resolution."""

import pytest

from sqltable.common.exceptions import ConfigurationError, ErrorCode
from sqltable.mapping import Column, get_registry, get_table_metadata, sql_column, sql_table


class TestSqlTableDecorator:
    """Test the @sql_table decorator."""

    def test_decorator_attaches_metadata_and_registers(self, registry):
        @sql_table("Person", schema="hr", registry=registry)
        class Person:
            id: int = sql_column("Id", primary_key=True)

        metadata = get_table_metadata(Person)
        assert metadata.table_name == "Person"
        assert metadata.schema_name == "hr"
        assert Person in registry.get_registered_types()

    def test_default_schema_is_dbo(self, registry):
        @sql_table("Person", registry=registry)
        class Person:
            id: int = sql_column("Id", primary_key=True)

        assert registry.resolve(Person).schema_name == "dbo"

    def test_default_registry_is_process_wide(self):
        @sql_table("Widget")
        class Widget:
            id: int = sql_column("Id", primary_key=True)

        assert Widget in get_registry().get_registered_types()

    def test_empty_table_name_rejected(self, registry):
        with pytest.raises(ValueError):
            @sql_table("", registry=registry)
            class Nameless:
                pass

    def test_metadata_is_not_inherited(self, registry):
        @sql_table("Base", registry=registry)
        class Base:
            id: int = sql_column("Id", primary_key=True)

        class Derived(Base):
            pass

        assert get_table_metadata(Derived) is None
        assert registry.is_mapped(Base)
        assert not registry.is_mapped(Derived)


class TestColumnDescriptor:
    """Test sql_column attribute behaviour."""

    def test_unassigned_column_returns_default(self, registry):
        @sql_table("Person", registry=registry)
        class Person:
            id: int = sql_column("Id", primary_key=True)
            tags: list = sql_column("Tags", default_factory=list)
            status: str = sql_column("Status", default="new")

        first, second = Person(), Person()
        first.tags.append("x")

        assert first.id is None
        assert first.status == "new"
        assert second.tags == []

    def test_class_access_returns_descriptor(self, registry):
        @sql_table("Person", registry=registry)
        class Person:
            id: int = sql_column("Id", primary_key=True)

        assert isinstance(Person.id, Column)
        assert Person.id.column_name == "Id"
        assert Person.id.primary_key is True

    def test_values_are_per_instance(self, registry):
        @sql_table("Person", registry=registry)
        class Person:
            id: int = sql_column("Id", primary_key=True)

        a, b = Person(), Person()
        a.id = 1
        b.id = 2

        assert (a.id, b.id) == (1, 2)


class TestResolve:
    """Test MetadataRegistry.resolve."""

    def test_resolve_is_deterministic(self, registry):
        @sql_table("Person", registry=registry)
        class Person:
            id: int = sql_column("Id", primary_key=True)
            name: str = sql_column("Name")

        first = registry.resolve(Person)
        second = registry.resolve(Person)

        assert first is second
        assert first.column_names == ["Id", "Name"]
        assert [c.name for c in first.key_columns] == ["Id"]

    def test_descriptor_contents(self, registry):
        @sql_table("Person", schema="hr", registry=registry)
        class Person:
            id: int = sql_column("Id", primary_key=True)
            full_name: str = sql_column(type_=bytes)
            age = sql_column("Age")

        descriptor = registry.resolve(Person)

        assert descriptor.entity_type is Person
        assert descriptor.qualified_name == "hr.Person"
        assert [(c.name, c.attribute, c.python_type, c.primary_key) for c in descriptor.columns] == [
            ("Id", "id", int, True),
            ("full_name", "full_name", bytes, False),
            ("Age", "age", None, False),
        ]

    def test_column_lookup_ignores_case(self, registry):
        @sql_table("Person", registry=registry)
        class Person:
            id: int = sql_column("Id", primary_key=True)

        descriptor = registry.resolve(Person)

        assert descriptor.column("ID").attribute == "id"
        assert descriptor.column("missing") is None

    def test_composite_key_order(self, registry):
        @sql_table("OrderLine", registry=registry)
        class OrderLine:
            sku: str = sql_column("Sku")
            line_no: int = sql_column("LineNo", primary_key=True)
            order_id: int = sql_column("OrderId", primary_key=True)

        line = OrderLine()
        line.order_id, line.line_no = 10, 2
        descriptor = registry.resolve(OrderLine)

        assert [c.name for c in descriptor.key_columns] == ["LineNo", "OrderId"]
        assert descriptor.key_values(line) == (2, 10)

    def test_inherited_columns_come_first(self, registry):
        class Audited:
            id: int = sql_column("Id", primary_key=True)
            created: str = sql_column("Created")

        @sql_table("Document", registry=registry)
        class Document(Audited):
            title: str = sql_column("Title")

        assert registry.resolve(Document).column_names == ["Id", "Created", "Title"]

    def test_missing_table_metadata(self, registry):
        class Plain:
            id: int = sql_column("Id", primary_key=True)

        with pytest.raises(ConfigurationError) as exc_info:
            registry.resolve(Plain)

        assert exc_info.value.error_code == ErrorCode.CONFIG_MISSING_TABLE

    def test_missing_primary_key(self, registry):
        @sql_table("Keyless", registry=registry)
        class Keyless:
            name: str = sql_column("Name")

        with pytest.raises(ConfigurationError) as exc_info:
            registry.resolve(Keyless)

        assert exc_info.value.error_code == ErrorCode.CONFIG_MISSING_KEY

    def test_no_columns(self, registry):
        @sql_table("Empty", registry=registry)
        class Empty:
            pass

        with pytest.raises(ConfigurationError) as exc_info:
            registry.resolve(Empty)

        assert exc_info.value.error_code == ErrorCode.CONFIG_INVALID

    def test_duplicate_column_names(self, registry):
        @sql_table("Person", registry=registry)
        class Person:
            id: int = sql_column("Id", primary_key=True)
            name: str = sql_column("Name")
            alias: str = sql_column("name")

        with pytest.raises(ConfigurationError) as exc_info:
            registry.resolve(Person)

        assert exc_info.value.error_code == ErrorCode.CONFIG_INVALID
        assert "mapped twice" in exc_info.value.message

    def test_unicode_column_name_resolves(self, registry):
        @sql_table("Personne", registry=registry)
        class Personne:
            id: int = sql_column("Id", primary_key=True)
            first_name: str = sql_column("Prénom")

        assert registry.resolve(Personne).column_names == ["Id", "Prénom"]

    @pytest.mark.parametrize("column_name", ["Bad;Name", "a--b", "1st", "x'y"])
    def test_unquotable_column_name(self, registry, column_name):
        @sql_table("Person", registry=registry)
        class Person:
            id: int = sql_column("Id", primary_key=True)
            other: str = sql_column(column_name)

        with pytest.raises(ConfigurationError) as exc_info:
            registry.resolve(Person)

        assert exc_info.value.error_code == ErrorCode.CONFIG_INVALID
        assert column_name in exc_info.value.message

    def test_unquotable_table_name(self, registry):
        @sql_table("Person;DROP", registry=registry)
        class Person:
            id: int = sql_column("Id", primary_key=True)

        with pytest.raises(ConfigurationError) as exc_info:
            registry.resolve(Person)

        assert exc_info.value.error_code == ErrorCode.CONFIG_INVALID

    def test_staging_name_over_temp_table_limit(self, registry):
        @sql_table("T" * 112, registry=registry)
        class Wide:
            id: int = sql_column("Id", primary_key=True)

        with pytest.raises(ConfigurationError) as exc_info:
            registry.resolve(Wide)

        assert exc_info.value.error_code == ErrorCode.CONFIG_INVALID
        assert "116" in exc_info.value.message

    def test_staging_name_at_temp_table_limit(self, registry):
        @sql_table("T" * 111, registry=registry)
        class Wide:
            id: int = sql_column("Id", primary_key=True)

        assert len(registry.resolve(Wide).staging_name) == 116

    def test_non_class_rejected(self, registry):
        with pytest.raises(ConfigurationError):
            registry.resolve("Person")

    def test_register_again_rebuilds_descriptor(self, registry):
        @sql_table("Person", registry=registry)
        class Person:
            id: int = sql_column("Id", primary_key=True)

        first = registry.resolve(Person)
        registry.register(Person)
        second = registry.resolve(Person)

        assert first is not second
        assert first == second

    def test_clear_drops_cache(self, registry):
        @sql_table("Person", registry=registry)
        class Person:
            id: int = sql_column("Id", primary_key=True)

        first = registry.resolve(Person)
        registry.clear()

        assert registry.resolve(Person) is not first
