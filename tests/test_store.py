"""
Tests for the YAML and REST row stores.
"""
import pytest
import sys
import os
from unittest.mock import Mock

import requests

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from store import RestRowStore, StoreError, YamlRowStore, create_store


def make_response(status=200, payload=None):
    response = Mock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.text = 'error body'
    response.json.return_value = payload if payload is not None else []
    return response


class TestYamlRowStore:
    """Tests for the YAML file backend."""

    def test_missing_table_is_empty(self, store):
        """Test a table without a file reads as empty."""
        assert store.select('participants') == []

    def test_insert_assigns_ids(self, store):
        """Test inserted rows get an id unless they carry one."""
        inserted = store.insert('participants', [{'name': 'Ana'}, {'id': 'fixed', 'name': 'Bo'}])
        assert inserted[0]['id']
        assert inserted[1]['id'] == 'fixed'
        assert len(store.select('participants')) == 2

    def test_rows_persist_as_yaml(self, store):
        """Test rows are written to a YAML file per table."""
        store.insert('scopes', [{'id': 's1', 'title': 'Open'}])
        path = os.path.join(store.data_dir, 'scopes.yaml')
        assert os.path.exists(path)
        assert YamlRowStore(store.data_dir).select('scopes') == [{'id': 's1', 'title': 'Open'}]

    def test_select_filters_and_orders(self, store):
        """Test equality filters and ascending/descending order."""
        store.insert('participants', [
            {'scope_id': 'a', 'name': 'Cy', 'weight': 70},
            {'scope_id': 'a', 'name': 'Ana', 'weight': None},
            {'scope_id': 'b', 'name': 'Bo', 'weight': 60},
        ])
        names = [r['name'] for r in store.select('participants', {'scope_id': 'a'}, order_by='name')]
        assert names == ['Ana', 'Cy']

        weights = [r['weight'] for r in store.select('participants', order_by='-weight')]
        assert weights == [70, 60, None]

    def test_update_and_delete_return_counts(self, store):
        """Test update and delete report how many rows they touched."""
        store.insert('match_results', [
            {'scope_id': 'a', 'match_stage': 'final', 'winner_id': 'p1'},
            {'scope_id': 'b', 'match_stage': 'final', 'winner_id': 'p2'},
        ])
        assert store.update('match_results', {'winner_id': 'p3'}, {'scope_id': 'a'}) == 1
        assert store.select('match_results', {'scope_id': 'a'})[0]['winner_id'] == 'p3'
        assert store.update('match_results', {'winner_id': 'p3'}, {'scope_id': 'zzz'}) == 0

        assert store.delete('match_results', {'match_stage': 'final'}) == 2
        assert store.select('match_results') == []

    def test_exists(self, store):
        store.insert('summary_results', [{'scope_id': 'a', 'result_type': 'final'}])
        assert store.exists('summary_results', {'scope_id': 'a', 'result_type': 'final'})
        assert not store.exists('summary_results', {'scope_id': 'b'})

    def test_corrupt_file_raises_store_error(self, store):
        """Test an unparsable table file raises StoreError."""
        with open(os.path.join(store.data_dir, 'scopes.yaml'), 'w') as f:
            f.write('- id: [unclosed\n')
        with pytest.raises(StoreError):
            store.select('scopes')


class TestRestRowStore:
    """Tests for the PostgREST backend with a mocked session."""

    def _store(self, response):
        session = Mock()
        session.headers = {}
        session.request.return_value = response
        return RestRowStore('https://db.example.org/', api_key='secret', session=session), session

    def test_auth_headers(self):
        """Test the API key is sent as apikey and bearer token."""
        _, session = self._store(make_response())
        assert session.headers['apikey'] == 'secret'
        assert session.headers['Authorization'] == 'Bearer secret'

    def test_select_builds_filter_params(self):
        """Test filters and ordering become PostgREST query params."""
        store, session = self._store(make_response(payload=[{'id': '1'}]))

        rows = store.select('participants', {'scope_id': 's1', 'weight': None, 'active': True}, order_by='-name')

        assert rows == [{'id': '1'}]
        method, url = session.request.call_args.args
        assert (method, url) == ('GET', 'https://db.example.org/rest/v1/participants')
        assert session.request.call_args.kwargs['params'] == {
            'scope_id': 'eq.s1',
            'weight': 'is.null',
            'active': 'eq.true',
            'select': '*',
            'order': 'name.desc',
        }

    def test_insert_posts_rows(self):
        """Test insert posts the rows and asks for them back."""
        store, session = self._store(make_response(201, [{'id': 'new', 'name': 'Ana'}]))

        inserted = store.insert('participants', [{'name': 'Ana'}])

        assert inserted == [{'id': 'new', 'name': 'Ana'}]
        assert session.request.call_args.args[0] == 'POST'
        assert session.request.call_args.kwargs['json'] == [{'name': 'Ana'}]
        assert session.request.call_args.kwargs['headers'] == {'Prefer': 'return=representation'}

    def test_update_and_delete_count_returned_rows(self):
        """Test update and delete count the rows the server returns."""
        store, session = self._store(make_response(payload=[{'id': '1'}, {'id': '2'}]))

        assert store.update('match_results', {'winner_id': 'p1'}, {'match_stage': 'final'}) == 2
        assert session.request.call_args.args[0] == 'PATCH'
        assert session.request.call_args.kwargs['params'] == {'match_stage': 'eq.final'}

        assert store.delete('match_results', {'scope_id': 's1'}) == 2
        assert session.request.call_args.args[0] == 'DELETE'

    def test_error_status_raises_store_error(self):
        """Test a non-2xx response raises StoreError."""
        store, _ = self._store(make_response(409))
        with pytest.raises(StoreError):
            store.insert('clubbed_results', [{'rank': '1st'}])

    def test_connection_error_raises_store_error(self):
        """Test a transport error raises StoreError."""
        store, session = self._store(make_response())
        session.request.side_effect = requests.ConnectionError('refused')
        with pytest.raises(StoreError):
            store.select('scopes')


class TestCreateStore:
    """Tests for backend selection."""

    def test_yaml(self, tmp_path):
        """Test building the YAML backend."""
        assert isinstance(create_store('yaml', data_dir=str(tmp_path)), YamlRowStore)

    def test_rest(self):
        """Test building the REST backend."""
        store = create_store('rest', url='https://db.example.org')
        assert isinstance(store, RestRowStore)
        assert store.base_url == 'https://db.example.org'

    @pytest.mark.parametrize('kind,kwargs', [
        ('yaml', {}),
        ('rest', {}),
        ('sqlite', {'data_dir': '/tmp'}),
    ])
    def test_invalid_configuration(self, kind, kwargs):
        """Test unknown kinds and missing settings are rejected."""
        with pytest.raises(ValueError):
            create_store(kind, **kwargs)
