"""
Operator data tooling: export, import and backups of the clinic tables.

Table and column names never come straight from the caller.  They are
checked against ``SchemaRegistry``, which only knows the tables of the
clinic models that are also present in the live database catalog, and
are quoted by the connection before they reach SQL text.  Values always
travel as query parameters, except in SQL dumps where they are written
as escaped literals.
"""
from __future__ import annotations

import csv
import json
import logging
import re
import xml.etree.ElementTree as ET
from datetime import date, datetime, time
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Optional

from django.conf import settings
from django.core.management.color import no_style
from django.db import DatabaseError, connections, transaction
from django.utils import timezone

from clinic import models

logger = logging.getLogger('clinic.data')

EXPORT_FORMATS = ('csv', 'json', 'xml', 'sql')
IMPORT_FORMATS = ('csv', 'json', 'xml')
BACKUP_FORMATS = ('sql', 'json')

# NULL marker in CSV cells, the same one MySQL's INTO OUTFILE uses.
CSV_NULL = '\\N'

DUMP_HEADER = '-- consultorio dump'

REGISTERED_MODELS = (
    models.Doctor,
    models.Patient,
    models.PatientNote,
    models.Appointment,
    models.Prescription,
    models.LoginAttempt,
)


class SchemaError(Exception):
    """A table or format outside what the registry allows."""


class SchemaRegistry:

    def __init__(self, model_classes: Iterable = REGISTERED_MODELS, using: str = 'default'):
        self.using = using
        self.allowed = {m._meta.db_table: m for m in model_classes}

    @property
    def connection(self):
        return connections[self.using]

    def tables(self) -> list[str]:
        """Registered tables that exist in the database, in model order."""
        with self.connection.cursor() as cursor:
            live = set(self.connection.introspection.table_names(cursor))
        return [t for t in self.allowed if t in live]

    def resolve(self, table: str) -> str:
        if table not in self.allowed or table not in self.tables():
            raise SchemaError(f"Tabla no permitida: {table}")
        return table

    def resolve_many(self, tables: Optional[Iterable[str]]) -> list[str]:
        if not tables:
            return self.tables()
        return [self.resolve(t) for t in tables]

    def columns(self, table: str) -> list[str]:
        with self.connection.cursor() as cursor:
            description = self.connection.introspection.get_table_description(cursor, self.resolve(table))
        return [col.name for col in description]

    def primary_key(self, table: str) -> Optional[str]:
        with self.connection.cursor() as cursor:
            return self.connection.introspection.get_primary_key_column(cursor, self.resolve(table))

    def quote(self, name: str) -> str:
        return self.connection.ops.quote_name(name)


def plain(value):
    """Column value as a JSON/CSV/XML friendly scalar."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        return value.isoformat(sep=' ')
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def read_table(registry: SchemaRegistry, table: str) -> dict:
    columns = registry.columns(table)
    pk = registry.primary_key(table)
    sql = 'SELECT {cols} FROM {table}'.format(
        cols=', '.join(registry.quote(c) for c in columns),
        table=registry.quote(table),
    )
    if pk:
        sql += f' ORDER BY {registry.quote(pk)}'
    with registry.connection.cursor() as cursor:
        cursor.execute(sql)
        rows = [dict(zip(columns, (plain(v) for v in row))) for row in cursor.fetchall()]
    return {'columns': columns, 'rows': rows, 'count': len(rows)}


def read_tables(registry: SchemaRegistry, tables=None) -> dict[str, dict]:
    return {table: read_table(registry, table) for table in registry.resolve_many(tables)}


# ---------------------------------------------------------------------------
# Writers
# ---------------------------------------------------------------------------

def _stamp() -> str:
    return timezone.localtime().strftime('%Y-%m-%d_%H-%M-%S')


def write_json(data: dict, path: Path) -> list[Path]:
    payload = {
        'export_info': {
            'date': timezone.localtime().strftime('%Y-%m-%d %H:%M:%S'),
            'tables': list(data),
            'total_rows': sum(t['count'] for t in data.values()),
        },
        'data': data,
    }
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2, default=str), encoding='utf-8')
    return [path]


def write_xml(data: dict, path: Path) -> list[Path]:
    root = ET.Element('medical_data', {
        'export_date': timezone.localtime().strftime('%Y-%m-%d %H:%M:%S'),
        'total_tables': str(len(data)),
    })
    for table, content in data.items():
        table_el = ET.SubElement(root, table)
        for row in content['rows']:
            row_el = ET.SubElement(table_el, 'row')
            for column, value in row.items():
                col_el = ET.SubElement(row_el, column)
                if value is None:
                    col_el.set('null', 'true')
                else:
                    col_el.text = str(value)
    ET.indent(root)
    ET.ElementTree(root).write(path, encoding='utf-8', xml_declaration=True)
    return [path]


def write_csv(data: dict, path: Path) -> list[Path]:
    """One file per table, named ``<stem>.<table>.csv``."""
    written = []
    for table, content in data.items():
        target = path.with_name(f'{path.stem}.{table}.csv')
        with target.open('w', newline='', encoding='utf-8') as fh:
            writer = csv.DictWriter(fh, fieldnames=content['columns'])
            writer.writeheader()
            for row in content['rows']:
                writer.writerow({k: CSV_NULL if v is None else v for k, v in row.items()})
        written.append(target)
    return written


def sql_literal(value) -> str:
    if value is None:
        return 'NULL'
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return "'" + str(plain(value)).replace("'", "''") + "'"


def write_sql(data: dict, path: Path, registry: SchemaRegistry) -> list[Path]:
    lines = [
        f'{DUMP_HEADER} {timezone.localtime():%Y-%m-%d %H:%M:%S}',
        f'-- tables: {", ".join(data)}',
        '',
    ]
    for table, content in data.items():
        qtable = registry.quote(table)
        cols = ', '.join(registry.quote(c) for c in content['columns'])
        lines.append(f'-- {table}: {content["count"]} rows')
        lines.append(f'DELETE FROM {qtable};')
        for row in content['rows']:
            values = ', '.join(sql_literal(row[c]) for c in content['columns'])
            lines.append(f'INSERT INTO {qtable} ({cols}) VALUES ({values});')
        lines.append('')
    path.write_text('\n'.join(lines), encoding='utf-8')
    return [path]


def export_tables(tables=None, fmt: str = 'json', *, directory: Optional[Path] = None,
                  filename: Optional[str] = None, registry: Optional[SchemaRegistry] = None) -> dict:
    if fmt not in EXPORT_FORMATS:
        raise SchemaError(f'Formato no soportado: {fmt}')
    registry = registry or SchemaRegistry()
    data = read_tables(registry, tables)

    directory = Path(directory or settings.EXPORT_DIR)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / (filename or f'export_{_stamp()}.{fmt}')

    if fmt == 'json':
        files = write_json(data, path)
    elif fmt == 'xml':
        files = write_xml(data, path)
    elif fmt == 'csv':
        files = write_csv(data, path)
    else:
        files = write_sql(data, path, registry)

    result = {
        'success': True,
        'format': fmt,
        'files': [f.as_posix() for f in files],
        'size': sum(f.stat().st_size for f in files),
        'tables': list(data),
        'total_rows': sum(t['count'] for t in data.values()),
    }
    logger.info('export completed', extra={'export': result})
    return result


# ---------------------------------------------------------------------------
# Readers and import
# ---------------------------------------------------------------------------

def load_json(path: Path) -> dict[str, list[dict]]:
    try:
        raw = json.loads(Path(path).read_text(encoding='utf-8'))
    except json.JSONDecodeError as exc:
        raise SchemaError(f'JSON inválido: {exc}') from exc
    if isinstance(raw, dict) and 'data' in raw:
        raw = raw['data']
    if not isinstance(raw, dict):
        raise SchemaError('JSON inválido: se esperaba un objeto por tabla')
    return {
        table: (content['rows'] if isinstance(content, dict) else content)
        for table, content in raw.items()
    }


def load_xml(path: Path) -> dict[str, list[dict]]:
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as exc:
        raise SchemaError(f'XML inválido: {exc}') from exc
    data = {}
    for table_el in root:
        rows = []
        for row_el in table_el.findall('row'):
            rows.append({
                col.tag: None if col.get('null') == 'true' else (col.text or '')
                for col in row_el
            })
        data[table_el.tag] = rows
    return data


def load_csv(path: Path, table: Optional[str] = None) -> dict[str, list[dict]]:
    """Rows of one table; the name comes from ``table`` or ``<stem>.<table>.csv``."""
    path = Path(path)
    if table is None:
        parts = path.name.split('.')
        if len(parts) < 3:
            raise SchemaError('No se pudo determinar la tabla del CSV')
        table = parts[-2]
    with path.open(newline='', encoding='utf-8') as fh:
        rows = [
            {k: None if v == CSV_NULL else v for k, v in row.items()}
            for row in csv.DictReader(fh)
        ]
    return {table: rows}


def load_file(path, fmt: str, table: Optional[str] = None) -> dict[str, list[dict]]:
    if fmt not in IMPORT_FORMATS:
        raise SchemaError(f'Formato no soportado: {fmt}')
    if fmt == 'json':
        return load_json(path)
    if fmt == 'xml':
        return load_xml(path)
    return load_csv(path, table)


class _Abort(Exception):
    pass


def import_rows(data: dict[str, list[dict]], registry: Optional[SchemaRegistry] = None) -> dict:
    """Upsert rows keyed on each table's primary key.

    Rows sharing no column with the table are skipped.  The whole import
    is one transaction: the first failing table or row rolls it all back.
    """
    registry = registry or SchemaRegistry()
    report = {'imported': 0, 'updated': 0, 'skipped': 0, 'errors': [], 'rolled_back': False}
    try:
        with transaction.atomic(using=registry.using):
            for table, rows in data.items():
                try:
                    registry.resolve(table)
                except SchemaError as exc:
                    report['errors'].append(str(exc))
                    raise _Abort()
                columns = registry.columns(table)
                pk = registry.primary_key(table)
                with registry.connection.cursor() as cursor:
                    for index, row in enumerate(rows):
                        try:
                            _upsert(cursor, registry, table, columns, pk, row, report)
                        except DatabaseError as exc:
                            report['errors'].append(f'{table} fila {index}: {exc}')
                            raise _Abort()
    except _Abort:
        # Nothing was written.
        report.update(imported=0, updated=0, skipped=0, rolled_back=True)
    report['success'] = not report['errors']
    level = logging.INFO if report['success'] else logging.WARNING
    logger.log(level, 'import finished', extra={'import': report})
    return report


def _upsert(cursor, registry, table, columns, pk, row, report) -> None:
    values = {k: v for k, v in row.items() if k in columns}
    if not values:
        report['skipped'] += 1
        return
    qtable = registry.quote(table)

    exists = False
    if pk and values.get(pk) not in (None, ''):
        cursor.execute(f'SELECT COUNT(*) FROM {qtable} WHERE {registry.quote(pk)} = %s', [values[pk]])
        exists = cursor.fetchone()[0] > 0

    if exists:
        assignments = ', '.join(f'{registry.quote(c)} = %s' for c in values)
        cursor.execute(
            f'UPDATE {qtable} SET {assignments} WHERE {registry.quote(pk)} = %s',
            [*values.values(), values[pk]],
        )
        report['updated'] += 1
    else:
        if pk and values.get(pk) in (None, ''):
            values.pop(pk, None)
        cols = ', '.join(registry.quote(c) for c in values)
        marks = ', '.join(['%s'] * len(values))
        cursor.execute(f'INSERT INTO {qtable} ({cols}) VALUES ({marks})', list(values.values()))
        report['imported'] += 1


def import_file(path, fmt: str, *, table: Optional[str] = None,
                registry: Optional[SchemaRegistry] = None) -> dict:
    return import_rows(load_file(path, fmt, table), registry)


# ---------------------------------------------------------------------------
# Backups
# ---------------------------------------------------------------------------

def create_backup(tables=None, fmt: str = 'sql', *, directory: Optional[Path] = None,
                  keep: Optional[int] = None, registry: Optional[SchemaRegistry] = None) -> dict:
    if fmt not in BACKUP_FORMATS:
        raise SchemaError(f'Formato no soportado: {fmt}')
    directory = Path(directory or settings.BACKUP_DIR)
    kind = 'partial' if tables else 'full'
    result = export_tables(
        tables, fmt, directory=directory,
        filename=f'backup_{kind}_{_stamp()}.{fmt}', registry=registry,
    )
    result['removed'] = [p.as_posix() for p in prune_backups(directory, keep)]
    return result


def prune_backups(directory: Path, keep: Optional[int] = None) -> list[Path]:
    keep = settings.BACKUP_KEEP if keep is None else keep
    backups = sorted(
        (p for p in Path(directory).glob('backup_*') if p.is_file()),
        key=lambda p: (p.stat().st_mtime, p.name),
        reverse=True,
    )
    stale = backups[keep:]
    for p in stale:
        p.unlink()
    return stale


# ---------------------------------------------------------------------------
# Restore
# ---------------------------------------------------------------------------

_ROW_COUNT = re.compile(r'-- (\w+): (\d+) rows')
_NUMBER = re.compile(r'-?\d+(\.\d+)?')


class _SqlDumpReader:
    """Reads back the statements ``write_sql`` emits and nothing else.

    Nothing from the file is executed: identifiers must match what the
    registry quotes for its own tables and columns, and literals are
    decoded into values that are later sent as query parameters.
    """

    def __init__(self, text: str, registry: SchemaRegistry):
        self.text = text
        self.pos = 0
        self.registry = registry
        self.quoted_tables = {registry.quote(t): t for t in registry.tables()}
        self.rows: dict[str, list[dict]] = {}
        self.declared: dict[str, int] = {}
        self._quoted_columns: dict[str, dict[str, str]] = {}

    def read(self) -> '_SqlDumpReader':
        if not self.text.startswith(DUMP_HEADER):
            raise SchemaError('Respaldo sin cabecera reconocible')
        current = None
        while self._skip_space():
            if self._at('--'):
                match = _ROW_COUNT.fullmatch(self._line())
                if match:
                    self.declared[match.group(1)] = int(match.group(2))
            elif self._at('DELETE FROM '):
                current = self._table('DELETE FROM ')
                self._expect(';')
                self.rows[current] = []
            elif self._at('INSERT INTO '):
                table = self._table('INSERT INTO ')
                if table != current:
                    raise SchemaError(f'INSERT fuera de su bloque: {table}')
                self._expect(' (')
                columns = self._columns(table)
                self._expect(') VALUES (')
                values = self._literals()
                self._expect(';')
                if len(values) != len(columns):
                    raise SchemaError(f'{table}: número de valores incorrecto')
                self.rows[table].append(dict(zip(columns, values)))
            else:
                raise SchemaError(f'Sentencia no reconocida en la posición {self.pos}')
        return self

    def _skip_space(self) -> bool:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1
        return self.pos < len(self.text)

    def _at(self, prefix: str) -> bool:
        return self.text.startswith(prefix, self.pos)

    def _expect(self, token: str) -> None:
        if not self._at(token):
            raise SchemaError(f'Respaldo mal formado en la posición {self.pos}')
        self.pos += len(token)

    def _line(self) -> str:
        end = self.text.find('\n', self.pos)
        end = len(self.text) if end == -1 else end
        line, self.pos = self.text[self.pos:end], end
        return line.rstrip()

    def _table(self, keyword: str) -> str:
        self.pos += len(keyword)
        for quoted, table in self.quoted_tables.items():
            if self._at(quoted):
                self.pos += len(quoted)
                return table
        raise SchemaError(f'Tabla no permitida en el respaldo (posición {self.pos})')

    def _columns(self, table: str) -> list[str]:
        allowed = self._quoted_columns.get(table)
        if allowed is None:
            allowed = {self.registry.quote(c): c for c in self.registry.columns(table)}
            self._quoted_columns[table] = allowed
        end = self.text.find(')', self.pos)
        names = self.text[self.pos:end].split(', ') if end != -1 else []
        if not names or any(n not in allowed for n in names):
            raise SchemaError(f'{table}: columnas desconocidas en el respaldo')
        self.pos = end
        return [allowed[n] for n in names]

    def _literals(self) -> list:
        values = []
        while True:
            if self._at('NULL'):
                values.append(None)
                self.pos += 4
            elif self._at("'"):
                values.append(self._string())
            else:
                match = _NUMBER.match(self.text, self.pos)
                if not match:
                    raise SchemaError(f'Valor no reconocido en la posición {self.pos}')
                values.append(float(match.group()) if match.group(1) else int(match.group()))
                self.pos = match.end()
            if self._at(', '):
                self.pos += 2
            elif self._at(')'):
                self.pos += 1
                return values
            else:
                raise SchemaError(f'Respaldo mal formado en la posición {self.pos}')

    def _string(self) -> str:
        end = self.pos + 1
        while True:
            end = self.text.find("'", end)
            if end == -1:
                raise SchemaError('Cadena sin cerrar en el respaldo')
            if self.text.startswith("''", end):
                end += 2
                continue
            value = self.text[self.pos + 1:end].replace("''", "'")
            self.pos = end + 1
            return value


def _read_json_backup(path: Path) -> tuple[dict[str, list[dict]], dict[str, int]]:
    try:
        payload = json.loads(path.read_text(encoding='utf-8'))
    except json.JSONDecodeError as exc:
        raise SchemaError(f'JSON inválido: {exc}') from exc
    data = payload.get('data') if isinstance(payload, dict) else None
    if not isinstance(data, dict) or 'export_info' not in payload:
        raise SchemaError('Respaldo sin cabecera reconocible')
    rows, declared = {}, {}
    for table, content in data.items():
        if not isinstance(content, dict) or not isinstance(content.get('rows'), list):
            raise SchemaError(f'{table}: contenido inválido')
        rows[table] = content['rows']
        declared[table] = content.get('count')
    return rows, declared


def read_backup(path, registry: Optional[SchemaRegistry] = None) -> dict[str, list[dict]]:
    """Rows per table of a ``backup_db`` file, after checking its integrity.

    A backup is accepted only when every table is registered, every
    column belongs to its table and each table holds as many rows as
    the file declares for it.
    """
    registry = registry or SchemaRegistry()
    path = Path(path)
    if not path.is_file():
        raise SchemaError(f'Respaldo no encontrado: {path}')
    if path.suffix == '.sql':
        reader = _SqlDumpReader(path.read_text(encoding='utf-8'), registry).read()
        rows, declared = reader.rows, reader.declared
    elif path.suffix == '.json':
        rows, declared = _read_json_backup(path)
    else:
        raise SchemaError(f'Formato no soportado: {path.suffix}')

    if not rows:
        raise SchemaError('El respaldo no contiene tablas')
    for table, table_rows in rows.items():
        columns = set(registry.columns(table))
        if any(not isinstance(row, dict) or not row or not set(row) <= columns for row in table_rows):
            raise SchemaError(f'{table}: columnas desconocidas en el respaldo')
        if declared.get(table) != len(table_rows):
            raise SchemaError(
                f'{table}: se esperaban {declared.get(table)} filas y se encontraron {len(table_rows)}'
            )
    return rows


def verify_backup(path, registry: Optional[SchemaRegistry] = None) -> dict:
    rows = read_backup(path, registry)
    path = Path(path)
    return {
        'success': True,
        'file': path.name,
        'size': path.stat().st_size,
        'tables': list(rows),
        'total_rows': sum(len(r) for r in rows.values()),
        'integrity': 'good',
    }


def restore_backup(path, registry: Optional[SchemaRegistry] = None) -> dict:
    """Replace the contents of the backed-up tables with the file's rows.

    Runs in one transaction. Children are emptied before parents and
    parents filled before children, following the registry's model order.
    """
    registry = registry or SchemaRegistry()
    rows = read_backup(path, registry)
    ordered = [t for t in registry.allowed if t in rows]
    connection = registry.connection

    restored = 0
    with transaction.atomic(using=registry.using):
        with connection.cursor() as cursor:
            for table in reversed(ordered):
                cursor.execute(f'DELETE FROM {registry.quote(table)}')
            for table in ordered:
                qtable = registry.quote(table)
                for row in rows[table]:
                    cols = ', '.join(registry.quote(c) for c in row)
                    marks = ', '.join(['%s'] * len(row))
                    cursor.execute(f'INSERT INTO {qtable} ({cols}) VALUES ({marks})', list(row.values()))
                    restored += 1
            models_restored = [registry.allowed[t] for t in ordered]
            for sql in connection.ops.sequence_reset_sql(no_style(), models_restored):
                cursor.execute(sql)

    result = {
        'success': True,
        'file': Path(path).name,
        'tables': ordered,
        'restored_rows': restored,
    }
    logger.info('restore completed', extra={'restore': result})
    return result
