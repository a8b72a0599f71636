"""Pytest configuration and fixtures for the test suite."""
import pytest
from decimal import Decimal
from unittest.mock import Mock, patch
from sqlalchemy.orm import sessionmaker

from eskimo_sync.config import EskimoSettings
from eskimo_sync.database import build_engine
from eskimo_sync.models import Base
from eskimo_sync.services.eskimo_api_service import EskimoAPIService
from eskimo_sync.services.eskimo_models import EskimoCategory, EskimoProduct, EskimoSKU


@pytest.fixture
def engine():
    """In-memory SQLite database, created fresh for each test."""
    engine = build_engine('sqlite:///:memory:')
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Create a database session for a test."""
    Session = sessionmaker(bind=engine, expire_on_commit=False)
    session = Session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def settings():
    """Engine settings with no write-back delay."""
    return EskimoSettings(
        domain='https://epos.test/',
        username='tester',
        password='secret',
        customer_prefix='WEB-',
        guest_email='guest@example.com',
        writeback_batch_size=25,
        writeback_delay=0,
        writeback_retries=1,
    )


@pytest.fixture
def mock_api():
    """Mock EPOS API client; Web_ID write-back succeeds by default."""
    api = Mock(spec=EskimoAPIService)
    api.categories_update_cart_ids.return_value = 200
    api.products_update_cart_ids.return_value = 200
    api.skus_specific_identifier.return_value = []
    return api


@pytest.fixture
def make_category():
    """Factory for remote categories."""
    def _make(category_id, parent_id='', short='Shirts', long='', web_id=''):
        return EskimoCategory(
            eskimo_category_id=category_id,
            parent_id=parent_id,
            short_description=short,
            long_description=long,
            web_id=web_id,
        )
    return _make


@pytest.fixture
def make_sku():
    """Factory for remote SKUs."""
    def _make(code, product='1|STY01|', stock=5, price='10.00', colour='Navy', size='M', tax='1'):
        return EskimoSKU(
            sku_code=code,
            eskimo_product_identifier=product,
            stock_amount=stock,
            sell_price=Decimal(price),
            colour_name=colour,
            size=size,
            tax_code_id=tax,
        )
    return _make


@pytest.fixture
def make_product():
    """Factory for remote products."""
    def _make(identifier='1|STY01|', category='10|product', title='School Polo', skus=None,
              web_category_id='5', web_id='', from_price='12.50', short='Polo shirt', long=''):
        return EskimoProduct(
            eskimo_identifier=identifier,
            eskimo_category_id=category,
            title=title,
            short_description=short,
            long_description=long,
            from_price=Decimal(from_price),
            web_category_id=web_category_id,
            web_id=web_id,
            skus=list(skus or []),
        )
    return _make


@pytest.fixture
def app(mock_redis):
    """Create the Flask application with the testing configuration."""
    from eskimo_sync.app import create_app
    return create_app('testing')


@pytest.fixture
def client(app):
    """Create a test client for API testing."""
    with app.test_client() as client:
        with app.app_context():
            yield client


@pytest.fixture
def auth_headers(app):
    """Create authentication headers for API testing."""
    with app.app_context():
        from flask_jwt_extended import create_access_token
        access_token = create_access_token(identity="test-user")
        return {"Authorization": f"Bearer {access_token}"}


@pytest.fixture(autouse=True)
def mock_redis():
    """Mock Redis for tests that don't need actual Redis."""
    with patch('redis.from_url') as mock_redis_client:
        mock_client = Mock()
        mock_client.ping.return_value = True
        mock_client.get.return_value = None
        mock_client.set.return_value = True
        mock_client.delete.return_value = True
        mock_redis_client.return_value = mock_client
        yield mock_client
