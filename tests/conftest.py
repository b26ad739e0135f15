import pytest
from jewelquote import create_app
from jewelquote.database import Base, create_all, get_session
from jewelquote.services.customer_service import create_customer
from jewelquote.services.quote_service import create_quote
from jewelquote.services.settings_service import StaticSettingsProvider


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (SQLite in memory)."""
    app = create_app('config.TestingConfig')
    create_all()
    return app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session for testing."""
    session = get_session()
    yield session
    session.rollback()


@pytest.fixture(autouse=True)
def _empty_tables(app):
    """Every test starts from empty tables."""
    yield
    session = get_session()
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.remove()


@pytest.fixture
def settings():
    """Fixed business defaults so pricing never depends on stored rows."""
    return StaticSettingsProvider({'default_labour_rate': '350', 'default_markup_pct': '30'})


@pytest.fixture
def customer(session):
    """Create a test customer."""
    return create_customer(session, {
        'name': 'Thandi Nkosi',
        'company': 'Nkosi Designs',
        'email': 'thandi@example.com',
        'phone': '082 555 0101'
    })


@pytest.fixture
def quote(session, customer, settings):
    """Create an empty DRAFT quote with 30% markup."""
    return create_quote(session, {'customer_id': customer.id, 'markup_pct': '30'}, settings=settings)


@pytest.fixture
def labour_line():
    """Two hours at 450: line total 900."""
    return {'description': 'Ring sizing and polish', 'labour_hours': 2, 'labour_rate': 450}


@pytest.fixture
def metal_line():
    """5 g of 18ct gold at 1000 per gram: line total 5000."""
    return {
        'description': '18ct gold band',
        'metal_type': 'gold',
        'metal_karat': 18,
        'metal_grams': 5,
        'metal_price': 1000,
        'quantity': 1
    }
