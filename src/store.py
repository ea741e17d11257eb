"""
Row stores for bracket data.

Every table is a list of flat dict rows addressed by table name. Filters are
{column: value} equality matches. YamlRowStore keeps one YAML file per table
in a data directory; RestRowStore talks to a hosted PostgREST-style API.
"""
import logging
import os
import uuid
from typing import Dict, Iterable, List, Optional

import requests
import yaml
from filelock import FileLock, Timeout

logger = logging.getLogger(__name__)

STORE_KINDS = ('yaml', 'rest')


class StoreError(Exception):
    """A read or write against the row store failed."""


def _matches(row: Dict, filters: Optional[Dict]) -> bool:
    if not filters:
        return True
    return all(row.get(column) == value for column, value in filters.items())


def _sort_rows(rows: List[Dict], order_by: Optional[str]) -> List[Dict]:
    if not order_by:
        return rows
    descending = order_by.startswith('-')
    column = order_by.lstrip('-')

    def key(row):
        value = row.get(column)
        # None sorts first ascending, last descending
        return (value is not None, value if value is not None else '')

    return sorted(rows, key=key, reverse=descending)


class RowStore:
    """Interface shared by the backends."""

    def select(self, table: str, filters: Optional[Dict] = None, order_by: Optional[str] = None) -> List[Dict]:
        raise NotImplementedError

    def insert(self, table: str, rows: Iterable[Dict]) -> List[Dict]:
        raise NotImplementedError

    def update(self, table: str, patch: Dict, filters: Dict) -> int:
        raise NotImplementedError

    def delete(self, table: str, filters: Dict) -> int:
        raise NotImplementedError

    def exists(self, table: str, filters: Dict) -> bool:
        return len(self.select(table, filters)) > 0


class YamlRowStore(RowStore):
    def __init__(self, data_dir: str, lock_timeout: float = 10):
        self.data_dir = data_dir
        os.makedirs(data_dir, exist_ok=True)
        self._lock = FileLock(os.path.join(data_dir, '.lock'), timeout=lock_timeout)

    def _table_path(self, table: str) -> str:
        return os.path.join(self.data_dir, f'{table}.yaml')

    def _load(self, table: str) -> List[Dict]:
        path = self._table_path(table)
        if not os.path.exists(path):
            return []
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.warning(f'Failed to parse {path}: {e}')
            raise StoreError(f'Table {table} is unreadable') from e
        except OSError as e:
            raise StoreError(f'Failed to read table {table}: {e}') from e
        return data if data else []

    def _save(self, table: str, rows: List[Dict]):
        try:
            with open(self._table_path(table), 'w', encoding='utf-8') as f:
                yaml.dump(rows, f, default_flow_style=False, sort_keys=False)
        except (OSError, yaml.YAMLError) as e:
            raise StoreError(f'Failed to write table {table}: {e}') from e

    def select(self, table, filters=None, order_by=None):
        try:
            with self._lock:
                rows = [row for row in self._load(table) if _matches(row, filters)]
        except Timeout as e:
            raise StoreError(f'Timed out waiting for lock on {self.data_dir}') from e
        return _sort_rows(rows, order_by)

    def insert(self, table, rows):
        new_rows = []
        for row in rows:
            new_row = dict(row)
            new_row.setdefault('id', uuid.uuid4().hex)
            new_rows.append(new_row)
        try:
            with self._lock:
                existing = self._load(table)
                existing.extend(new_rows)
                self._save(table, existing)
        except Timeout as e:
            raise StoreError(f'Timed out waiting for lock on {self.data_dir}') from e
        return [dict(row) for row in new_rows]

    def update(self, table, patch, filters):
        changed = 0
        try:
            with self._lock:
                rows = self._load(table)
                for row in rows:
                    if _matches(row, filters):
                        row.update(patch)
                        changed += 1
                if changed:
                    self._save(table, rows)
        except Timeout as e:
            raise StoreError(f'Timed out waiting for lock on {self.data_dir}') from e
        return changed

    def delete(self, table, filters):
        try:
            with self._lock:
                rows = self._load(table)
                kept = [row for row in rows if not _matches(row, filters)]
                removed = len(rows) - len(kept)
                if removed:
                    self._save(table, kept)
        except Timeout as e:
            raise StoreError(f'Timed out waiting for lock on {self.data_dir}') from e
        return removed


class RestRowStore(RowStore):
    """Row store backed by a PostgREST endpoint (e.g. a hosted Postgres project)."""

    def __init__(self, base_url: str, api_key: Optional[str] = None, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        if api_key:
            self.session.headers.update({
                'apikey': api_key,
                'Authorization': f'Bearer {api_key}',
            })

    def _url(self, table: str) -> str:
        return f'{self.base_url}/rest/v1/{table}'

    @staticmethod
    def _filter_params(filters: Optional[Dict]) -> Dict[str, str]:
        params = {}
        for column, value in (filters or {}).items():
            if value is None:
                params[column] = 'is.null'
            elif isinstance(value, bool):
                params[column] = f'eq.{str(value).lower()}'
            else:
                params[column] = f'eq.{value}'
        return params

    def _request(self, method: str, table: str, **kwargs) -> requests.Response:
        try:
            response = self.session.request(method, self._url(table), **kwargs)
        except requests.RequestException as e:
            logger.error(f'{method} {table} failed: {e}')
            raise StoreError(f'{method} {table} failed: {e}') from e
        if not response.ok:
            logger.error(f'{method} {table} returned {response.status_code}: {response.text}')
            raise StoreError(f'{method} {table} returned {response.status_code}')
        return response

    def select(self, table, filters=None, order_by=None):
        params = self._filter_params(filters)
        params['select'] = '*'
        if order_by:
            direction = 'desc' if order_by.startswith('-') else 'asc'
            params['order'] = f"{order_by.lstrip('-')}.{direction}"
        return self._request('GET', table, params=params).json()

    def insert(self, table, rows):
        response = self._request('POST', table, json=list(rows),
                                 headers={'Prefer': 'return=representation'})
        return response.json()

    def update(self, table, patch, filters):
        response = self._request('PATCH', table, params=self._filter_params(filters), json=patch,
                                 headers={'Prefer': 'return=representation'})
        return len(response.json())

    def delete(self, table, filters):
        response = self._request('DELETE', table, params=self._filter_params(filters),
                                 headers={'Prefer': 'return=representation'})
        return len(response.json())


def create_store(kind: str = 'yaml', data_dir: Optional[str] = None,
                 url: Optional[str] = None, api_key: Optional[str] = None) -> RowStore:
    """Build the configured backend."""
    if kind == 'yaml':
        if not data_dir:
            raise ValueError('yaml store needs a data directory')
        return YamlRowStore(data_dir)
    if kind == 'rest':
        if not url:
            raise ValueError('rest store needs BRACKET_STORE_URL')
        return RestRowStore(url, api_key)
    raise ValueError(f'Unknown store kind {kind!r}, expected one of {STORE_KINDS}')
