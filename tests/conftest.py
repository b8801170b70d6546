"""Shared fixtures: in-memory Motor database, fake MinIO signer, ASGI test client."""
from unittest.mock import MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from resumable_upload.core.config import MinioConfig
from resumable_upload.main import create_application
from resumable_upload.services.db_service import ensure_indexes
from resumable_upload.services.ledger_service import MongoSessionLedger
from resumable_upload.services.minio_service import MinioService

PRESIGN_BASE = "http://minio.test:9000/chunked-uploads"


def fake_presign(bucket_name, object_name, expires=None):
    return f"{PRESIGN_BASE}/{object_name}?X-Amz-Signature=abc%2Fdef"


@pytest.fixture
async def db():
    client = AsyncMongoMockClient()
    database = client["resumable_uploads_test"]
    await ensure_indexes(database)
    return database


@pytest.fixture
def ledger(db):
    return MongoSessionLedger(db)


@pytest.fixture
def minio_client():
    client = MagicMock()
    client.presigned_put_object.side_effect = fake_presign
    return client


@pytest.fixture
def broker(minio_client):
    config = MinioConfig(
        endpoint="minio.test:9000",
        access_key="test",
        secret_key="test-secret",
        bucket_name="chunked-uploads",
        grant_expiry_seconds=3600
    )
    return MinioService(config=config, client=minio_client)


@pytest.fixture
def app(ledger, broker):
    return create_application(ledger=ledger, broker=broker)


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as http_client:
        yield http_client
