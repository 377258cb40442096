"""
Tests for the dependency sequencer.

Tests verify:
- Section dependencies point at the section that defined the object
- Prerequisites replay creates, column additions and seed rows
- Forward references are detected
- Execution order is topological with ties broken by section number
"""

import pytest

from sqlguide.config import GuideConfig
from sqlguide.errors import SequencingError
from sqlguide.sequencer import Catalog, DependencySequencer, SectionDependency


class TestSectionDependencies:
    def test_mini_guide_dependencies(self, mini_plan):
        assert mini_plan.section_dependencies[1] == []

        data = mini_plan.section_dependencies[2]
        assert [d.depends_on for d in data] == [1]
        assert set(data[0].objects) == {"departments", "employees"}

        queries = mini_plan.section_dependencies[3]
        assert [d.depends_on for d in queries] == [1]

    def test_self_contained_section(self, make_plan):
        plan = make_plan("""
            ## 1. Tables

            ```sql
            CREATE TABLE t (id INT);
            SELECT id FROM t;
            ```
        """)
        assert plan.section_dependencies[1] == []
        assert plan.missing_names(1) == []

    def test_dependency_on_renamed_table(self, make_plan):
        plan = make_plan("""
            ## 1. Tables

            ```sql
            CREATE TABLE employees (id INT);
            ALTER TABLE employees RENAME TO staff;
            ```

            ## 2. Queries

            ```sql
            SELECT id FROM staff;
            ```
        """)
        assert plan.section_dependencies[2] == [SectionDependency(section=2, depends_on=1, objects=["staff"])]

    def test_function_calls_are_dependencies(self, make_plan):
        plan = make_plan("""
            ## 1. Functions

            ```sql
            CREATE FUNCTION add_one(x INTEGER) RETURNS INTEGER AS $$ SELECT x + 1 $$ LANGUAGE sql;
            ```

            ## 2. Calls

            ```sql
            SELECT add_one(41);
            ```
        """)
        assert [d.depends_on for d in plan.section_dependencies[2]] == [1]

    def test_ignored_objects(self, make_plan):
        config = GuideConfig(ignored_objects=["employees"])
        plan = make_plan("""
            ## 1. Tables

            ```sql
            CREATE TABLE employees (id INT);
            ```

            ## 2. Queries

            ```sql
            SELECT id FROM employees;
            ```
        """, config)
        assert plan.section_dependencies[2] == []
        assert plan.prerequisites(2) == []


class TestForwardReferences:
    def test_use_before_definition(self, make_plan):
        plan = make_plan("""
            ## 1. Queries

            ```sql
            SELECT * FROM orders;
            ```

            ## 2. Tables

            ```sql
            CREATE TABLE orders (id INT, total INT);
            ```
        """)
        assert len(plan.forward_references) == 1
        forward = plan.forward_references[0]
        assert (forward.section, forward.name, forward.defined_in) == (1, "orders", 2)
        assert forward.statement == "S1.B1.#1"
        assert plan.section_dependencies[1] == []

    def test_never_defined_is_not_forward(self, make_plan):
        plan = make_plan("""
            ## 1. Queries

            ```sql
            SELECT * FROM ghosts;
            ```
        """)
        assert plan.forward_references == []
        assert [name for name, _ in plan.missing_names(1)] == ["ghosts"]


class TestPrerequisites:
    def test_creates_only_for_second_section(self, mini_plan):
        refs = [s.ref for s in mini_plan.prerequisites(2)]
        assert refs == ["S1.B1.#1", "S1.B2.#1"]

    def test_seed_rows_and_column_additions(self, mini_plan):
        refs = [s.ref for s in mini_plan.prerequisites(3)]
        assert refs == ["S1.B1.#1", "S1.B2.#1", "S2.B1.#1", "S2.B1.#2", "S2.B2.#1"]

    def test_without_seed_data(self, mini_guide):
        plan = DependencySequencer(mini_guide, config=GuideConfig(include_seed_data=False)).build()
        refs = [s.ref for s in plan.prerequisites(3)]
        assert refs == ["S1.B1.#1", "S1.B2.#1", "S2.B2.#1"]

    def test_first_section_has_none(self, mini_plan):
        assert mini_plan.prerequisites(1) == []

    def test_closure_over_prerequisite_references(self, make_plan):
        plan = make_plan("""
            ## 1. Base

            ```sql
            CREATE TABLE departments (id INT PRIMARY KEY);
            ```

            ## 2. Dependent

            ```sql
            CREATE TABLE employees (id INT, department_id INT REFERENCES departments(id));
            ```

            ## 3. Queries

            ```sql
            SELECT id FROM employees;
            ```
        """)
        refs = [s.ref for s in plan.prerequisites(3)]
        assert refs == ["S1.B1.#1", "S2.B1.#1"]

    def test_drops_and_server_level_are_never_setup(self, make_plan):
        plan = make_plan("""
            ## 1. Setup

            ```sql
            CREATE DATABASE tutorial;
            CREATE TABLE t (id INT);
            INSERT INTO t VALUES (1);
            DROP TABLE t;
            ```

            ## 2. Again

            ```sql
            SELECT id FROM t;
            ```
        """)
        texts = [s.text for s in plan.prerequisites(2)]
        assert texts == ["CREATE TABLE t (id INT)", "INSERT INTO t VALUES (1)"]


class TestExecutionOrder:
    def test_numbered_order(self, mini_plan):
        assert mini_plan.execution_order() == [1, 2, 3]
        assert mini_plan.is_pedagogically_ordered is True

    def test_sections_out_of_document_order(self, make_plan):
        plan = make_plan("""
            ## 2. Queries (written first)

            ```sql
            CREATE TABLE t (id INT);
            ```

            ## 1. Uses it

            ```sql
            SELECT id FROM t;
            ```
        """)
        assert plan.execution_order() == [2, 1]
        assert plan.is_pedagogically_ordered is False

    def test_cycle_raises(self, mini_plan):
        mini_plan.section_dependencies[1] = [SectionDependency(section=1, depends_on=3, objects=["x"])]
        with pytest.raises(SequencingError) as exc_info:
            mini_plan.execution_order()
        assert "cycle" in str(exc_info.value)


class TestCatalog:
    def test_tracks_columns_through_alters(self, mini_plan):
        catalog = Catalog()
        for entry in mini_plan.entries:
            catalog.apply(entry.info)
        assert "employees" in catalog
        assert catalog.columns_of("employees") == ["id", "name", "salary", "department_id", "email"]

    def test_rename_and_drop(self, make_plan):
        plan = make_plan("""
            ## 1. Tables

            ```sql
            CREATE TABLE employees (id INT, name TEXT);
            ALTER TABLE employees RENAME COLUMN name TO full_name;
            ALTER TABLE employees RENAME TO staff;
            CREATE TABLE scratch (id INT);
            DROP TABLE scratch;
            ```
        """)
        catalog = Catalog()
        for entry in plan.entries:
            catalog.apply(entry.info)
        assert "employees" not in catalog
        assert "scratch" not in catalog
        assert catalog.columns_of("staff") == ["id", "full_name"]


class TestGraph:
    def test_dependency_graph(self, mini_plan):
        graph = mini_plan.to_dict()
        assert [node["section"] for node in graph["nodes"]] == [1, 2, 3]
        assert graph["nodes"][0]["defines"] == ["departments", "employees"]
        assert {edge["section"] for edge in graph["edges"]} == {2, 3}
        assert graph["execution_order"] == [1, 2, 3]
        assert graph["is_pedagogically_ordered"] is True

    def test_defined_objects(self, mini_plan):
        assert mini_plan.defined_objects() == {"table": 2}
