"""
Pytest fixtures for barberpos backend tests.

Provides test database setup, catalog factories, actor headers, and test client.
"""

import pytest
from barberpos import create_app
from barberpos.extensions import db
from barberpos.models import Product, ServiceOffering, SaleRecord
from barberpos.services.events import event_bus
from barberpos.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TAX_REGISTERED': False,
        'TAX_RATE_BPS': 1900,
        'PAYMENT_METHODS': [
            {"id": "cash", "display_name": "Efectivo", "enabled": True},
            {"id": "card", "display_name": "Tarjeta", "enabled": True},
            {"id": "nequi", "display_name": "Nequi", "enabled": True},
            {"id": "cheque", "display_name": "Cheque", "enabled": False},
        ],
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
        event_bus.clear()


@pytest.fixture(scope='function')
def tax_registered(app):
    """Flip the store to tax-registered for one test."""
    app.config['TAX_REGISTERED'] = True
    yield
    app.config['TAX_REGISTERED'] = False


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(initial_stock=10, price_cents=2500, **overrides)."""
    counter = {"n": 0}

    def _make(initial_stock=10, price_cents=2500, **overrides):
        counter["n"] += 1
        fields = {
            "code": f"PRD-{counter['n']:03d}",
            "name": f"Product {counter['n']}",
            "category": "cuidado",
            "initial_stock": initial_stock,
            "entries": 0,
            "exits": 0,
            "sales": 0,
            "min_stock": 2,
            "price_cents": price_cents,
            "is_active": True,
        }
        fields.update(overrides)
        product = Product(**fields)
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_service(db_session):
    counter = {"n": 0}

    def _make(price_cents=30000, **overrides):
        counter["n"] += 1
        fields = {
            "name": f"Corte {counter['n']}",
            "price_cents": price_cents,
            "duration_minutes": 30,
            "is_active": True,
        }
        fields.update(overrides)
        service = ServiceOffering(**fields)
        db_session.add(service)
        db_session.commit()
        return service

    return _make


@pytest.fixture(scope='function')
def make_legacy_sale(db_session):
    """
    Factory for imported sale rows that carry no cart_id.

    Used to exercise the (barber_id, minute) grouping fallback.
    """
    def _make(service, *, sale_date=None, barber_id=1, quantity=1, unit_price_cents=None,
              payment_method="cash", client_data=None):
        unit = unit_price_cents or service.price_cents
        record = SaleRecord(
            cart_id=None,
            line_kind="SERVICE",
            service_id=service.id,
            item_name=service.name,
            barber_id=barber_id,
            quantity=quantity,
            unit_price_cents=unit,
            total_amount_cents=quantity * unit,
            payment_method=payment_method,
            status="ACTIVE",
            sale_date=sale_date or utcnow(),
            client_data=client_data,
            original_quantity=quantity,
            original_total_cents=quantity * unit,
        )
        db_session.add(record)
        db_session.commit()
        return record

    return _make


@pytest.fixture
def admin_headers():
    return {"X-Actor-Id": "1", "X-Actor-Role": "ADMIN"}


@pytest.fixture
def barber_headers():
    return {"X-Actor-Id": "7", "X-Actor-Role": "BARBER"}
