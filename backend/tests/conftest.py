"""
Pytest fixtures for PackLoop backend tests.

Provides test database setup, reference-data factories, and test client.
"""

from datetime import datetime
from itertools import count

import pytest

from packloop import create_app
from packloop.extensions import db
from packloop.services import instance_service, ledger_service, reference_service


T0 = datetime(2026, 3, 2, 9, 0, 0)

_seq = count(1)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_location(db_session):
    def _make(kind="retailer", name=None, **fields):
        return reference_service.create_location(
            name=name or f"{kind}-{next(_seq)}", kind=kind, **fields
        )
    return _make


@pytest.fixture(scope='function')
def retailer(make_location):
    loc = make_location("retailer", name="Corner Cafe")
    return reference_service.create_retailer(location_id=loc.id, contact_email="ops@corner.test")


@pytest.fixture(scope='function')
def hub(make_location):
    loc = make_location("hub", name="North Wash Hub")
    return reference_service.create_hub(location_id=loc.id, washer_model="WX-200")


@pytest.fixture(scope='function')
def dropbox(make_location):
    return make_location("dropbox", name="Station Dropbox")


@pytest.fixture(scope='function')
def make_customer(db_session):
    def _make(name="Ada", funded_cents=1000, **fields):
        customer = reference_service.create_customer(name=name, now=T0, **fields)
        if funded_cents:
            ledger_service.post_adjustment(customer.id, funded_cents, note="top-up", now=T0)
        return customer
    return _make


@pytest.fixture(scope='function')
def customer(make_customer):
    return make_customer()


@pytest.fixture(scope='function')
def cup(db_session):
    """Catalog entry with a 150 cent deposit."""
    return reference_service.create_catalog_entry(
        sku="CUP-300", kind="cup", material="pp", capacity_ml=300, deposit_amount_cents=150
    )


@pytest.fixture(scope='function')
def make_instance(cup):
    def _make(catalog=None, uid=None):
        catalog_id = catalog.id if catalog is not None else cup.id
        return instance_service.register_instance(
            catalog_id=catalog_id, uid_code=uid or f"QR-{next(_seq):05d}", now=T0
        )
    return _make


@pytest.fixture(scope='function')
def instance(make_instance):
    return make_instance()
