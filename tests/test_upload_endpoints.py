"""Tests for upload API endpoints."""

import pytest
from fastapi.testclient import TestClient

from common.exceptions import DatabaseError
from controller.main import create_app
from conftest import md5_hex

CSV_BYTES = b"id,name\n1,alpha\n2,beta\n"


@pytest.fixture
def client(settings):
    """Create FastAPI test client around a temporary storage root."""
    with TestClient(create_app(settings)) as test_client:
        yield test_client


def post_chunk(client, identity, index, total, data, name="data.bin"):
    return client.post(
        '/uploads/chunks',
        files={'file': (name, data)},
        data={
            'upload_identity': identity,
            'chunk_index': str(index),
            'total_chunks': str(total),
            'name': name,
        },
    )


def test_root_endpoint(client):
    """Test health check endpoint."""
    response = client.get('/')
    assert response.status_code == 200
    assert response.json()['status'] == 'running'
    assert 'X-Request-ID' in response.headers


def test_chunked_csv_upload(client):
    identity = md5_hex(CSV_BYTES)

    first = post_chunk(client, identity, 1, 2, CSV_BYTES[10:], name='people.csv')
    assert first.status_code == 200
    assert first.json()['status'] == 'received'

    progress = client.get(f'/uploads/{identity}/progress')
    assert progress.status_code == 200
    assert progress.json() == {
        'upload_identity': identity,
        'total_chunks': 2,
        'received_chunks': [1],
        'complete': False,
    }

    last = post_chunk(client, identity, 0, 2, CSV_BYTES[:10], name='people.csv')
    body = last.json()
    assert last.status_code == 200
    assert body['status'] == 'completed'
    assert body['file']['name'] == 'people.csv'
    assert body['file']['size'] == len(CSV_BYTES)
    assert body['ingestion']['status'] == 'loaded'
    assert body['ingestion']['table_name'] == 'people'
    assert body['ingestion']['rows_loaded'] == 2
    assert body['ingestion']['columns'] == [
        {'name': 'id', 'type': 'INTEGER'},
        {'name': 'name', 'type': 'TEXT'},
    ]

    check = client.get(f'/uploads/{identity}')
    assert check.json() == {'upload_identity': identity, 'uploaded': True}
    assert client.get(f'/uploads/{identity}/progress').status_code == 404


def test_check_unknown_upload(client):
    response = client.get('/uploads/unknown')
    assert response.status_code == 200
    assert response.json()['uploaded'] is False


def test_invalid_chunk_index(client):
    response = post_chunk(client, 'abc', 5, 3, b'x')
    assert response.status_code == 400
    assert response.json()['code'] == 'INVALID_CHUNK_INDEX'


def test_negative_chunk_index_fails_validation(client):
    response = post_chunk(client, 'abc', -1, 3, b'x')
    assert response.status_code == 422


def test_invalid_identity(client):
    response = post_chunk(client, 'bad.identity', 0, 1, b'x')
    assert response.status_code == 400
    assert response.json()['code'] == 'INVALID_UPLOAD_IDENTITY'


def test_inconsistent_total(client):
    post_chunk(client, 'abc', 0, 3, b'x')
    response = post_chunk(client, 'abc', 1, 4, b'y')
    assert response.status_code == 409
    assert response.json()['code'] == 'INCONSISTENT_UPLOAD_METADATA'


def test_failed_ingestion_is_reported_separately(client):
    data = b'a,b\n1\n'
    response = post_chunk(client, md5_hex(data), 0, 1, data, name='broken.csv')
    body = response.json()
    assert response.status_code == 200
    assert body['status'] == 'completed'
    assert body['ingestion']['status'] == 'failed'
    assert body['ingestion']['error_code'] == 'ROW_ARITY_MISMATCH'


def test_whole_file_upload(client):
    identity = md5_hex(CSV_BYTES)
    response = client.post(
        '/uploads',
        files={'file': ('whole.csv', CSV_BYTES)},
        data={'upload_identity': identity},
    )
    assert response.status_code == 201
    body = response.json()
    assert body['status'] == 'completed'
    assert body['file']['name'] == 'whole.csv'
    assert body['ingestion']['rows_loaded'] == 2

    again = client.post(
        '/uploads',
        files={'file': ('whole.csv', CSV_BYTES)},
        data={'upload_identity': identity},
    )
    assert again.json()['status'] == 'already_uploaded'


def test_metadata_store_failure(client, monkeypatch):
    def unavailable(upload_identity):
        raise DatabaseError("unable to open database file", upload_identity=upload_identity)

    monkeypatch.setattr(client.app.state.upload_service.file_repo, 'exists_by_identity', unavailable)

    response = post_chunk(client, 'abc', 0, 1, b'x')
    assert response.status_code == 500
    assert response.json()['code'] == 'DATABASE_ERROR'
