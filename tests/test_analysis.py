"""
Tests for statement analysis.

Tests verify:
- Definitions, drops and renames are extracted per statement
- References skip system catalogs and derived sources
- Statements sqlglot keeps as opaque commands fall back to regexes
"""

import pytest

from sqlguide.analysis import (
    ColumnRef,
    ObjectKind,
    analyze_statement,
    check_syntax,
    fold_identifier,
    is_server_level,
)
from sqlguide.parser.models import Statement, StatementKind


def analyze(text: str):
    return analyze_statement(Statement(text=text, line=1))


class TestFoldIdentifier:
    @pytest.mark.parametrize(
        "raw,folded",
        [
            ("Employees", "employees"),
            ("public.Employees", "employees"),
            ('"MixedCase"', "MixedCase"),
            ('public."Odd.Name"', "Odd.Name"),
        ],
    )
    def test_fold(self, raw, folded):
        assert fold_identifier(raw) == folded


class TestDefinitions:
    def test_create_table_columns(self):
        info = analyze("CREATE TABLE employees (id SERIAL PRIMARY KEY, name VARCHAR(100), salary DECIMAL(10, 2))")
        assert info.action == "create"
        assert info.defines == {"employees": ObjectKind.TABLE}
        assert info.columns == {"employees": ["id", "name", "salary"]}
        assert info.verified is True

    def test_foreign_key_is_a_reference(self):
        info = analyze("CREATE TABLE orders (id SERIAL PRIMARY KEY, customer_id INTEGER REFERENCES customers(id))")
        assert info.references == ["customers"]

    def test_create_table_as_select_star(self):
        info = analyze("CREATE TABLE employees_copy AS SELECT * FROM employees")
        assert info.defines == {"employees_copy": ObjectKind.TABLE}
        assert info.columns["employees_copy"] is None
        assert info.references == ["employees"]

    def test_create_view_columns(self):
        info = analyze("CREATE VIEW high_earners AS SELECT name, salary AS pay FROM employees WHERE salary > 60000")
        assert info.defines == {"high_earners": ObjectKind.VIEW}
        assert info.columns["high_earners"] == ["name", "pay"]
        assert info.references == ["employees"]

    def test_create_index(self):
        info = analyze("CREATE INDEX idx_employee_email ON employees (email)")
        assert info.defines == {"idx_employee_email": ObjectKind.INDEX}
        assert info.references == ["employees"]

    def test_partition_inherits_parent(self):
        info = analyze("CREATE TABLE sales_2024 PARTITION OF sales FOR VALUES FROM ('2024-01-01') TO ('2025-01-01')")
        assert info.defines == {"sales_2024": ObjectKind.TABLE}
        assert info.inherits == {"sales_2024": "sales"}
        assert "sales" in info.references

    def test_create_function(self):
        info = analyze(
            "CREATE OR REPLACE FUNCTION get_employee_count() RETURNS INTEGER AS $$\n"
            "BEGIN\n    RETURN (SELECT COUNT(*) FROM employees);\nEND;\n$$ LANGUAGE plpgsql"
        )
        assert info.defines == {"get_employee_count": ObjectKind.FUNCTION}
        assert info.procedural is True

    def test_create_trigger(self):
        info = analyze(
            "CREATE TRIGGER employee_audit_trigger\n"
            "AFTER INSERT OR UPDATE OR DELETE ON employees\n"
            "FOR EACH ROW\n"
            "EXECUTE FUNCTION log_employee_changes()"
        )
        assert info.defines == {"employee_audit_trigger": ObjectKind.TRIGGER}
        assert "employees" in info.references
        assert "log_employee_changes" in info.function_calls


class TestChanges:
    def test_drop_table(self):
        info = analyze("DROP TABLE employees")
        assert info.drops == {"employees": ObjectKind.TABLE}
        assert info.references == ["employees"]

    def test_drop_if_exists_needs_nothing(self):
        info = analyze("DROP TABLE IF EXISTS employees")
        assert info.drops == {"employees": ObjectKind.TABLE}
        assert info.references == []

    def test_drop_several_tables(self):
        info = analyze("DROP TABLE scratch, staging CASCADE")
        assert info.drops == {"scratch": ObjectKind.TABLE, "staging": ObjectKind.TABLE}
        assert info.references == ["scratch", "staging"]

    def test_drop_qualified_view(self):
        info = analyze("DROP VIEW hr.active_employees")
        assert info.drops == {"active_employees": ObjectKind.VIEW}

    def test_rename_table(self):
        info = analyze("ALTER TABLE employees RENAME TO staff")
        assert info.action == "alter"
        assert info.renames == {"employees": "staff"}
        assert info.references == ["employees"]

    def test_add_and_drop_columns(self):
        info = analyze("ALTER TABLE employees ADD COLUMN phone VARCHAR(20), DROP COLUMN is_active")
        assert info.added_columns == {"employees": ["phone"]}
        assert info.dropped_columns == {"employees": ["is_active"]}
        assert ColumnRef("employees", "is_active") in info.column_refs

    def test_add_constraint_is_not_a_column(self):
        info = analyze(
            "ALTER TABLE employees ADD CONSTRAINT fk_department FOREIGN KEY (department_id) REFERENCES departments(id)"
        )
        assert info.added_columns == {}
        assert info.references == ["employees", "departments"]

    def test_rename_column(self):
        info = analyze("ALTER TABLE employees RENAME COLUMN name TO full_name")
        assert info.column_renames == {"employees": {"name": "full_name"}}

    def test_insert_target(self):
        info = analyze("INSERT INTO employees (name, salary) VALUES ('Alice', 70000)")
        assert info.target == "employees"
        assert ColumnRef("employees", "salary") in info.column_refs


class TestReferences:
    def test_aliases(self):
        info = analyze("SELECT e.name FROM employees e")
        assert info.references == ["employees"]
        assert info.column_refs == [ColumnRef("e", "name")]
        assert info.source_aliases["e"] == "employees"

    def test_join_references(self):
        info = analyze("SELECT e.name, d.name FROM employees e JOIN departments d ON e.department_id = d.id")
        assert sorted(info.references) == ["departments", "employees"]

    def test_cte_is_not_a_relation(self):
        info = analyze(
            "WITH high_salary AS (SELECT * FROM employees WHERE salary > 60000) SELECT name FROM high_salary"
        )
        assert info.references == ["employees"]
        assert "high_salary" in info.output_aliases
        assert info.opaque_sources is True

    def test_subquery_alias_is_opaque(self):
        info = analyze("SELECT t.total FROM (SELECT SUM(salary) AS total FROM employees) t")
        assert info.references == ["employees"]
        assert info.source_aliases["t"] is None

    def test_system_catalogs_are_skipped(self):
        assert analyze("SELECT * FROM pg_stat_activity").references == []
        assert analyze("SELECT table_name FROM information_schema.tables").references == []

    def test_user_function_calls(self):
        info = analyze("SELECT give_raise(1, 5000)")
        assert info.function_calls == ["give_raise"]


class TestClassification:
    @pytest.mark.parametrize(
        "text",
        [
            "CREATE DATABASE my_database",
            "DROP DATABASE my_database",
            "CREATE USER john_doe WITH PASSWORD 'secure_password'",
            "GRANT SELECT, INSERT ON employees TO john_doe",
            "REVOKE INSERT ON employees FROM john_doe",
            "COPY employees TO '/path/to/employees.csv' WITH CSV HEADER",
        ],
    )
    def test_server_level(self, text):
        assert is_server_level(text) is True
        assert analyze(text).server_level is True

    @pytest.mark.parametrize(
        "text",
        [
            "SELECT * FROM employees",
            "CREATE TABLE grants (id INT)",
            "COPY employees FROM STDIN",
        ],
    )
    def test_not_server_level(self, text):
        assert is_server_level(text) is False

    def test_meta_statements_are_not_analysed(self):
        info = analyze_statement(Statement(text="\\dt", line=1, kind=StatementKind.META))
        assert info.action == StatementKind.META
        assert info.verified is False
        assert info.references == []


class TestSyntax:
    def test_valid_statement(self):
        assert check_syntax(Statement(text="SELECT name FROM employees", line=1)) is None

    def test_unbalanced_parenthesis(self):
        statement = Statement(text="SELECT (1 + 2 FROM employees", line=1)
        assert check_syntax(statement) is not None
        assert analyze_statement(statement).syntax_error is not None
