import asyncio
import io

import pytest
from PIL import Image

from examdesk.config.settings import Settings
from examdesk.services import (
    AccessGate,
    ExamCatalogService,
    GridFSObjectStorage,
    NotificationService,
    PaymentRequestService,
    SubmissionRecorder,
    WalletLedger,
)
from fakes import FakeBucket, FakeDB
from main import _create_indexes


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def db():
    fake = FakeDB()
    run(_create_indexes(fake))
    return fake


@pytest.fixture
def test_settings():
    settings = Settings()
    settings.PUSH_ENABLED = False
    settings.PURCHASE_MAX_RETRIES = 3
    return settings


@pytest.fixture
def bucket():
    return FakeBucket()


@pytest.fixture
def storage(bucket, test_settings):
    return GridFSObjectStorage(bucket, test_settings)


@pytest.fixture
def catalog(db):
    return ExamCatalogService(db)


@pytest.fixture
def ledger(db, test_settings):
    return WalletLedger(db, test_settings)


@pytest.fixture
def gate(db, catalog, ledger):
    return AccessGate(db, catalog, ledger)


@pytest.fixture
def recorder(db, catalog, storage):
    return SubmissionRecorder(db, catalog, storage)


@pytest.fixture
def notifier(db, test_settings):
    return NotificationService(db, test_settings)


@pytest.fixture
def payments(db, ledger, storage, notifier):
    return PaymentRequestService(db, ledger, storage, notifier)


def _image_bytes(fmt):
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), "white").save(buf, fmt)
    return buf.getvalue()


@pytest.fixture
def png_bytes():
    return _image_bytes("PNG")


@pytest.fixture
def jpeg_bytes():
    return _image_bytes("JPEG")
