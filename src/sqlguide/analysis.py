"""
Statement analysis on top of sqlglot.

Extracts what a guide statement defines, changes and reads so that the
sequencer can infer cross-section dependencies and the reference check can
verify that names were introduced before use.

sqlglot is lenient: statements it does not model come back as
``exp.Command``. Those are marked ``verified=False`` and their names are
recovered with regular expressions instead.

Example:
    >>> info = analyze_statement(Statement("SELECT e.name FROM employees e", line=1))
    >>> info.references
    ['employees']
    >>> info.column_refs
    [ColumnRef(qualifier='e', name='name')]
"""

import re
from dataclasses import dataclass, field
from collections.abc import Iterable
from typing import Any

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from sqlguide.parser.models import Statement, StatementKind


class ObjectKind:
    """Kinds of database object a statement can define."""

    TABLE = "table"
    VIEW = "view"
    INDEX = "index"
    SEQUENCE = "sequence"
    FUNCTION = "function"
    PROCEDURE = "procedure"
    TRIGGER = "trigger"
    ROLE = "role"
    DATABASE = "database"
    OTHER = "other"


RELATION_KINDS = {ObjectKind.TABLE, ObjectKind.VIEW, ObjectKind.SEQUENCE}
SYSTEM_SCHEMAS = ("information_schema", "pg_catalog", "pg_toast")

_CREATE_KINDS = {
    "TABLE": ObjectKind.TABLE,
    "VIEW": ObjectKind.VIEW,
    "INDEX": ObjectKind.INDEX,
    "SEQUENCE": ObjectKind.SEQUENCE,
    "FUNCTION": ObjectKind.FUNCTION,
    "PROCEDURE": ObjectKind.PROCEDURE,
    "DATABASE": ObjectKind.DATABASE,
}

_NAME = r"((?:\"[^\"]+\"|[\w$]+)(?:\.(?:\"[^\"]+\"|[\w$]+))*)"

_SERVER_LEVEL = re.compile(
    r"^\s*(?:"
    r"(?:CREATE|DROP|ALTER)\s+(?:DATABASE|USER|ROLE|GROUP|TABLESPACE)\b"
    r"|ALTER\s+SYSTEM\b"
    r"|(?:GRANT|REVOKE)\b"
    r"|COPY\b.*\b(?:TO|FROM)\s+(?:PROGRAM\s+)?'"
    r")",
    re.IGNORECASE | re.DOTALL,
)
_PROCEDURAL = re.compile(
    r"^\s*(?:CREATE\s+(?:OR\s+REPLACE\s+)?(?:CONSTRAINT\s+)?(?:FUNCTION|PROCEDURE|TRIGGER)|DO)\b",
    re.IGNORECASE,
)

_ALTER_TABLE = re.compile(
    r"^ALTER\s+TABLE\s+(?:IF\s+EXISTS\s+)?(?:ONLY\s+)?" + _NAME + r"\s+(.*)$",
    re.IGNORECASE | re.DOTALL,
)
_ADD_COLUMN = re.compile(
    r"^ADD\s+(?:COLUMN\s+)?(?:IF\s+NOT\s+EXISTS\s+)?(?!(?:CONSTRAINT|PRIMARY|FOREIGN|UNIQUE|CHECK|EXCLUDE)\b)" + _NAME,
    re.IGNORECASE,
)
_DROP_COLUMN = re.compile(
    r"^DROP\s+(?:COLUMN\s+)?(?:IF\s+EXISTS\s+)?(?!(?:CONSTRAINT)\b)" + _NAME,
    re.IGNORECASE,
)
_RENAME_COLUMN = re.compile(
    r"^RENAME\s+(?:COLUMN\s+)?(?!(?:CONSTRAINT|TO)\b)" + _NAME + r"\s+TO\s+" + _NAME,
    re.IGNORECASE,
)
_RENAME_TABLE = re.compile(r"^RENAME\s+TO\s+" + _NAME, re.IGNORECASE)
_ALTER_COLUMN = re.compile(r"^ALTER\s+(?:COLUMN\s+)?" + _NAME, re.IGNORECASE)
_REFERENCES = re.compile(r"\bREFERENCES\s+" + _NAME, re.IGNORECASE)

_CREATE_FALLBACK = re.compile(
    r"^CREATE\s+(?:OR\s+REPLACE\s+)?(?:(?:GLOBAL|LOCAL)\s+)?(?:TEMP(?:ORARY)?\s+|UNLOGGED\s+)?"
    r"(?:UNIQUE\s+)?(?:MATERIALIZED\s+)?(TABLE|VIEW|SEQUENCE|INDEX|FUNCTION|PROCEDURE)\s+"
    r"(?:CONCURRENTLY\s+)?(?:IF\s+NOT\s+EXISTS\s+)?" + _NAME,
    re.IGNORECASE,
)
_CREATE_INDEX_ON = re.compile(r"\bON\s+(?:ONLY\s+)?" + _NAME, re.IGNORECASE)
_CREATE_TRIGGER = re.compile(
    r"^CREATE\s+(?:OR\s+REPLACE\s+)?(?:CONSTRAINT\s+)?TRIGGER\s+" + _NAME + r".*?\bON\s+" + _NAME,
    re.IGNORECASE | re.DOTALL,
)
_DROP_TRIGGER = re.compile(
    r"^DROP\s+TRIGGER\s+(?:IF\s+EXISTS\s+)?" + _NAME + r"\s+ON\s+" + _NAME,
    re.IGNORECASE,
)
_CREATE_ROLE = re.compile(r"^CREATE\s+(?:USER|ROLE|GROUP)\s+" + _NAME, re.IGNORECASE)
_EXECUTE_FUNCTION = re.compile(r"\bEXECUTE\s+(?:FUNCTION|PROCEDURE)\s+" + _NAME, re.IGNORECASE)
_CALL = re.compile(r"^CALL\s+" + _NAME, re.IGNORECASE)
_COMMAND_REFERENCES = [
    re.compile(r"^REFRESH\s+MATERIALIZED\s+VIEW\s+(?:CONCURRENTLY\s+)?" + _NAME, re.IGNORECASE),
    re.compile(r"^VACUUM\s+(?:FULL\s+|FREEZE\s+|VERBOSE\s+|ANALYZE\s+|\([^)]*\)\s*)*" + _NAME, re.IGNORECASE),
    re.compile(r"^ANALYZE\s+(?:VERBOSE\s+)?" + _NAME, re.IGNORECASE),
    re.compile(r"^REINDEX\s+(?:TABLE|INDEX)\s+(?:CONCURRENTLY\s+)?" + _NAME, re.IGNORECASE),
    re.compile(r"^COPY\s+" + _NAME, re.IGNORECASE),
    re.compile(r"^TRUNCATE\s+(?:TABLE\s+)?(?:ONLY\s+)?" + _NAME, re.IGNORECASE),
    re.compile(r"^LOCK\s+(?:TABLE\s+)?(?:ONLY\s+)?" + _NAME, re.IGNORECASE),
    re.compile(r"^COMMENT\s+ON\s+(?:TABLE|VIEW|COLUMN)\s+" + _NAME, re.IGNORECASE),
]
_LINE_COMMENT = re.compile(r"--[^\n]*")

# Pseudo-relations and keywords that are never user objects
PSEUDO_QUALIFIERS = {"excluded", "new", "old"}
_NON_KEYWORD_NAMES = {"all", "verbose", "full", "freeze"}


@dataclass
class ColumnRef:
    """A column named by a statement, with its qualifier (alias or table)."""

    qualifier: str | None
    name: str


@dataclass
class StatementInfo:
    """What one statement defines, changes and reads.

    Attributes:
        statement: The analysed statement
        action: Leading verb (create, drop, alter, insert, select, ...)
        object_kind: Kind of object for create/drop/alter
        defines: Objects created (name -> ObjectKind)
        columns: Columns of created tables/views (None when unknown)
        inherits: Partition child -> parent
        drops: Objects dropped (name -> ObjectKind)
        renames: Relation renames (old -> new)
        column_renames: table -> {old column: new column}
        added_columns: table -> columns added by ALTER TABLE
        dropped_columns: table -> columns dropped by ALTER TABLE
        references: Relations read or written, in first-seen order
        target: Relation written by INSERT, UPDATE or DELETE
        function_calls: User functions/procedures called
        column_refs: Columns named in DML/queries
        output_aliases: Projection aliases and CTE names
        source_aliases: Alias -> relation name (None for derived sources)
        opaque_sources: True when CTEs, subqueries or table functions feed the statement
        verified: False when sqlglot could not model the statement
        syntax_error: Parser error message
        server_level: Acts outside the current database
        procedural: Function/procedure/trigger body or DO block
    """

    statement: Statement
    action: str = ""
    object_kind: str = ""
    defines: dict[str, str] = field(default_factory=dict)
    columns: dict[str, list[str] | None] = field(default_factory=dict)
    inherits: dict[str, str] = field(default_factory=dict)
    drops: dict[str, str] = field(default_factory=dict)
    renames: dict[str, str] = field(default_factory=dict)
    column_renames: dict[str, dict[str, str]] = field(default_factory=dict)
    added_columns: dict[str, list[str]] = field(default_factory=dict)
    dropped_columns: dict[str, list[str]] = field(default_factory=dict)
    references: list[str] = field(default_factory=list)
    target: str = ""
    function_calls: list[str] = field(default_factory=list)
    column_refs: list[ColumnRef] = field(default_factory=list)
    output_aliases: set[str] = field(default_factory=set)
    source_aliases: dict[str, str | None] = field(default_factory=dict)
    opaque_sources: bool = False
    verified: bool = True
    syntax_error: str | None = None
    server_level: bool = False
    procedural: bool = False

    def add_reference(self, name: str) -> None:
        if name and name not in self.references:
            self.references.append(name)

    def to_dict(self) -> dict[str, Any]:
        """Convert analysis to dictionary."""
        return {
            "ref": self.statement.ref,
            "action": self.action,
            "object_kind": self.object_kind,
            "defines": dict(self.defines),
            "drops": dict(self.drops),
            "renames": dict(self.renames),
            "references": list(self.references),
            "function_calls": list(self.function_calls),
            "verified": self.verified,
            "syntax_error": self.syntax_error,
            "server_level": self.server_level,
        }


def fold_identifier(raw: str) -> str:
    """Fold an SQL name the way PostgreSQL does; keep only its last part.

    Example:
        >>> fold_identifier('public.Employees')
        'employees'
        >>> fold_identifier('"MixedCase"')
        'MixedCase'
    """
    last = re.split(r"\.(?=(?:[^\"]*\"[^\"]*\")*[^\"]*$)", raw.strip())[-1]
    if len(last) >= 2 and last.startswith('"') and last.endswith('"'):
        return last[1:-1]
    return last.lower()


def _ident(node: Any) -> str:
    """Folded name of an Identifier (or of whatever holds one)."""
    if node is None:
        return ""
    if isinstance(node, exp.Identifier):
        return node.this if node.args.get("quoted") else node.this.lower()
    if isinstance(node, (exp.Schema, exp.UserDefinedFunction, exp.Index)):
        return _ident(node.this)
    if isinstance(node, exp.Table):
        return _ident(node.this) if isinstance(node.this, exp.Identifier) else ""
    if isinstance(node, exp.Expression):
        return node.name.lower()
    return str(node).lower()


def normalize(text: str) -> str:
    """Strip line comments and collapse whitespace."""
    return " ".join(_LINE_COMMENT.sub(" ", text).split())


def is_server_level(text: str) -> bool:
    """True for statements that act outside the current database."""
    return bool(_SERVER_LEVEL.match(normalize(text)))


def check_syntax(statement: Statement, dialect: str = "postgres") -> str | None:
    """Return the parser's error message, or None when the statement parses."""
    try:
        sqlglot.parse(statement.text, read=dialect)
    except SqlglotError as e:
        return _error_message(e)
    return None


def _error_message(error: SqlglotError) -> str:
    errors = getattr(error, "errors", None)
    if errors:
        first = errors[0]
        return first.get("description") or str(error)
    return str(error).splitlines()[0] if str(error) else error.__class__.__name__


def analyze_statement(
    statement: Statement,
    dialect: str = "postgres",
    system_schemas: Iterable[str] = SYSTEM_SCHEMAS,
) -> StatementInfo:
    """Analyse one statement.

    Args:
        statement: Statement to analyse (meta and shell statements yield an
            empty, unverified StatementInfo)
        dialect: sqlglot read dialect
        system_schemas: Schemas whose relations are not user objects

    Returns:
        StatementInfo
    """
    info = StatementInfo(statement=statement)
    if statement.kind != StatementKind.SQL:
        info.action = statement.kind
        info.verified = False
        return info

    text = normalize(statement.text)
    info.action = text.split(" ", 1)[0].lower() if text else ""
    info.server_level = bool(_SERVER_LEVEL.match(text))
    info.procedural = bool(_PROCEDURAL.match(text))

    tree = None
    try:
        trees = [t for t in sqlglot.parse(statement.text, read=dialect) if t is not None]
        tree = trees[0] if trees else None
    except SqlglotError as e:
        info.syntax_error = _error_message(e)
        info.verified = False

    if tree is None or isinstance(tree, exp.Command):
        info.verified = False
        _analyze_text(info, text)
        _drop_system_references(info, system_schemas)
        return info

    if isinstance(tree, exp.Create):
        _analyze_create(info, tree, text)
    elif isinstance(tree, exp.Drop):
        _analyze_drop(info, tree)
    elif info.action == "alter":
        _analyze_text(info, text)
    else:
        _collect_references(info, tree)
        _collect_columns(info, tree)
        if isinstance(tree, (exp.Insert, exp.Update, exp.Delete)):
            info.target = _ident(tree.this)
        if isinstance(tree, exp.Insert):
            _collect_insert_columns(info, tree)

    _collect_function_calls(info, tree)
    _drop_system_references(info, system_schemas)
    return info


def _drop_system_references(info: StatementInfo, system_schemas: Iterable[str]) -> None:
    schemas = {s.lower() for s in system_schemas}
    kept = []
    for name in info.references:
        schema, _, relation = name.rpartition(".")
        if schema in schemas or relation.startswith("pg_"):
            continue
        # objects are tracked by unqualified name
        if relation not in kept:
            kept.append(relation)
    info.references = kept


def _analyze_create(info: StatementInfo, tree: exp.Create, text: str) -> None:
    kind = _CREATE_KINDS.get(str(tree.args.get("kind") or "").upper(), ObjectKind.OTHER)
    info.object_kind = kind
    target = tree.this

    if kind == ObjectKind.OTHER:
        _analyze_text(info, text)
        return

    name = _ident(target)
    if kind == ObjectKind.INDEX:
        if name:
            info.defines[name] = kind
        table = target.args.get("table") if isinstance(target, exp.Index) else None
        table_name = _ident(table) if table is not None else ""
        if not table_name:
            match = _CREATE_INDEX_ON.search(text)
            table_name = fold_identifier(match.group(1)) if match else ""
        info.add_reference(table_name)
        return

    if kind in (ObjectKind.FUNCTION, ObjectKind.PROCEDURE):
        if not name:
            match = _CREATE_FALLBACK.match(text)
            name = fold_identifier(match.group(2)) if match else ""
        if name:
            info.defines[name] = kind
        return

    if not name:
        return
    info.defines[name] = kind

    if isinstance(target, exp.Schema):
        info.columns[name] = [
            _ident(col.this) for col in target.expressions if isinstance(col, exp.ColumnDef)
        ]
    else:
        info.columns[name] = None

    parent = tree.find(exp.PartitionedOfProperty)
    if parent is not None:
        parent_name = _ident(parent.this)
        if parent_name:
            info.inherits[name] = parent_name
            info.add_reference(parent_name)

    query = tree.expression
    if isinstance(query, exp.Query):
        selects = query.named_selects
        info.columns[name] = None if not selects or "*" in selects or not all(selects) else [s.lower() for s in selects]

    _collect_references(info, tree, exclude={name})
    if isinstance(query, exp.Query):
        _collect_columns(info, query)


def _analyze_drop(info: StatementInfo, tree: exp.Drop) -> None:
    kind = _CREATE_KINDS.get(str(tree.args.get("kind") or "").upper(), ObjectKind.OTHER)
    info.object_kind = kind
    # Newer sqlglot keeps every dropped object in "tables"; older keeps one in "this"
    for target in tree.args.get("tables") or [tree.this]:
        name = _ident(target)
        if not name:
            continue
        info.drops[name] = kind
        if kind in RELATION_KINDS and not tree.args.get("exists"):
            info.add_reference(name)


def _analyze_text(info: StatementInfo, text: str) -> None:
    """Recover names from statements sqlglot keeps as opaque commands."""
    match = _ALTER_TABLE.match(text)
    if match:
        _analyze_alter_table(info, fold_identifier(match.group(1)), match.group(2))
        return

    match = _CREATE_TRIGGER.match(text)
    if match:
        info.object_kind = ObjectKind.TRIGGER
        info.defines[fold_identifier(match.group(1))] = ObjectKind.TRIGGER
        info.add_reference(fold_identifier(match.group(2)))
        called = _EXECUTE_FUNCTION.search(text)
        if called:
            info.function_calls.append(fold_identifier(called.group(1)))
        return

    match = _DROP_TRIGGER.match(text)
    if match:
        info.object_kind = ObjectKind.TRIGGER
        info.drops[fold_identifier(match.group(1))] = ObjectKind.TRIGGER
        info.add_reference(fold_identifier(match.group(2)))
        return

    match = _CREATE_ROLE.match(text)
    if match:
        info.object_kind = ObjectKind.ROLE
        info.defines[fold_identifier(match.group(1))] = ObjectKind.ROLE
        return

    match = _CREATE_FALLBACK.match(text)
    if match:
        kind = _CREATE_KINDS.get(match.group(1).upper(), ObjectKind.OTHER)
        name = fold_identifier(match.group(2))
        info.object_kind = kind
        info.defines[name] = kind
        if kind in (ObjectKind.TABLE, ObjectKind.VIEW):
            info.columns[name] = None
        if kind == ObjectKind.INDEX:
            on = _CREATE_INDEX_ON.search(text, match.end())
            if on:
                info.add_reference(fold_identifier(on.group(1)))
        for ref in _REFERENCES.finditer(text):
            info.add_reference(fold_identifier(ref.group(1)))
        return

    match = _CALL.match(text)
    if match:
        info.function_calls.append(fold_identifier(match.group(1)))
        return

    for pattern in _COMMAND_REFERENCES:
        match = pattern.match(text)
        if match:
            name = fold_identifier(match.group(1))
            if name not in _NON_KEYWORD_NAMES:
                info.add_reference(name)
            return


def _split_actions(rest: str) -> list[str]:
    """Split ALTER TABLE actions on top-level commas."""
    actions, depth, current = [], 0, []
    for ch in rest:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            actions.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
    if "".join(current).strip():
        actions.append("".join(current).strip())
    return actions


def _analyze_alter_table(info: StatementInfo, table: str, rest: str) -> None:
    info.action = "alter"
    info.object_kind = ObjectKind.TABLE
    info.add_reference(table)

    for action in _split_actions(rest):
        match = _RENAME_TABLE.match(action)
        if match:
            info.renames[table] = fold_identifier(match.group(1))
            continue
        match = _RENAME_COLUMN.match(action)
        if match:
            old, new = fold_identifier(match.group(1)), fold_identifier(match.group(2))
            info.column_renames.setdefault(table, {})[old] = new
            info.column_refs.append(ColumnRef(table, old))
            continue
        match = _ADD_COLUMN.match(action)
        if match:
            info.added_columns.setdefault(table, []).append(fold_identifier(match.group(1)))
        else:
            match = _DROP_COLUMN.match(action)
            if match:
                column = fold_identifier(match.group(1))
                info.dropped_columns.setdefault(table, []).append(column)
                info.column_refs.append(ColumnRef(table, column))
                continue
            match = _ALTER_COLUMN.match(action)
            if match:
                info.column_refs.append(ColumnRef(table, fold_identifier(match.group(1))))
        for ref in _REFERENCES.finditer(action):
            info.add_reference(fold_identifier(ref.group(1)))


def _collect_references(info: StatementInfo, tree: exp.Expression, exclude: set[str] | None = None) -> None:
    exclude = set(exclude or ())
    cte_names = {cte.alias_or_name.lower() for cte in tree.find_all(exp.CTE)}
    info.output_aliases.update(cte_names)
    if cte_names:
        info.opaque_sources = True

    for table in tree.find_all(exp.Table):
        alias = table.alias.lower() if table.alias else ""
        if not isinstance(table.this, exp.Identifier):
            info.opaque_sources = True
            if alias:
                info.source_aliases[alias] = None
            continue
        name = _ident(table)
        if name in exclude:
            continue
        if name in cte_names:
            info.source_aliases[alias or name] = None
            continue
        if alias:
            info.source_aliases[alias] = name
        info.source_aliases.setdefault(name, name)
        schema = table.db.lower() if table.db else ""
        if schema:
            info.source_aliases.setdefault(f"{schema}.{name}", name)
        info.add_reference(f"{schema}.{name}" if schema else name)

    for subquery in tree.find_all(exp.Subquery, exp.Lateral, exp.Unnest):
        if subquery.alias:
            info.opaque_sources = True
            info.source_aliases[subquery.alias.lower()] = None


def _collect_columns(info: StatementInfo, tree: exp.Expression) -> None:
    for select in tree.find_all(exp.Select):
        for projection in select.expressions:
            if isinstance(projection, exp.Alias) and projection.alias:
                info.output_aliases.add(projection.alias.lower())

    for table_alias in tree.find_all(exp.TableAlias):
        if table_alias.name:
            info.output_aliases.add(table_alias.name.lower())

    for column in tree.find_all(exp.Column):
        if isinstance(column.this, exp.Star):
            continue
        name = _ident(column.this)
        if not name:
            continue
        qualifier = column.table.lower() if column.table else None
        info.column_refs.append(ColumnRef(qualifier, name))


def _collect_insert_columns(info: StatementInfo, tree: exp.Insert) -> None:
    target = tree.this
    if isinstance(target, exp.Schema):
        table = _ident(target.this)
        for column in target.expressions:
            name = _ident(column)
            if name:
                info.column_refs.append(ColumnRef(table, name))


def _collect_function_calls(info: StatementInfo, tree: exp.Expression) -> None:
    for call in tree.find_all(exp.Anonymous):
        name = call.name.lower()
        if name and name not in info.function_calls:
            info.function_calls.append(name)


def transpile(statement: Statement, read: str, write: str) -> list[str]:
    """Rewrite a statement from one dialect to another (one string per output statement).

    Raises:
        SqlglotError: The statement cannot be parsed or generated
    """
    return sqlglot.transpile(statement.text, read=read, write=write)


__all__ = [
    "ColumnRef",
    "ObjectKind",
    "PSEUDO_QUALIFIERS",
    "RELATION_KINDS",
    "StatementInfo",
    "analyze_statement",
    "check_syntax",
    "fold_identifier",
    "is_server_level",
    "normalize",
    "transpile",
]
