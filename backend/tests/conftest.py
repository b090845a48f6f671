"""
Pytest fixtures for Athar backend tests.

Provides the test app (in-memory SQLite), a per-test clean database, a
recording stand-in for the bot channel, and an authenticated operator.
"""

import pytest
from athar import create_app
from athar.extensions import db, channel
from athar.models import Donation, InventoryItem, User
from athar.services.auth_service import hash_password
from athar.services.messaging import DeliveryResult, MessagingChannel


TEST_PASSWORD = "Password123!"


class FakeChannel(MessagingChannel):
    """
    Records every outbound call. Individual methods can be made to fail by
    adding their Telegram method name to fail_methods.
    """

    enabled = True

    def __init__(self, chat_id="-100200300"):
        self._chat_id = chat_id
        self.calls = []
        self.fail_methods = set()
        self.raise_methods = set()
        self._next_message_id = 1000

    @property
    def default_chat_id(self):
        return self._chat_id

    def _record(self, method, **kwargs):
        self.calls.append((method, kwargs))
        if method in self.raise_methods:
            raise RuntimeError(f"{method} exploded")
        if method in self.fail_methods:
            return DeliveryResult.failed(method, "Bad Request: simulated failure")
        self._next_message_id += 1
        return DeliveryResult(
            ok=True,
            method=method,
            message_id=self._next_message_id,
            chat_id=str(kwargs.get("chat_id", self._chat_id)),
        )

    def send_photo(self, chat_id, photo_url, caption, reply_markup=None):
        return self._record("sendPhoto", chat_id=chat_id, photo=photo_url, caption=caption, reply_markup=reply_markup)

    def send_message(self, chat_id, text, reply_markup=None):
        return self._record("sendMessage", chat_id=chat_id, text=text, reply_markup=reply_markup)

    def edit_caption(self, chat_id, message_id, caption):
        return self._record("editMessageCaption", chat_id=chat_id, message_id=message_id, caption=caption)

    def edit_text(self, chat_id, message_id, text):
        return self._record("editMessageText", chat_id=chat_id, message_id=message_id, text=text)

    def answer_callback(self, callback_id, text, show_alert=True):
        return self._record("answerCallbackQuery", callback_query_id=callback_id, text=text)

    def methods(self):
        return [method for method, _ in self.calls]

    def calls_to(self, method):
        return [kwargs for name, kwargs in self.calls if name == method]


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'UPLOAD_FOLDER': str(tmp_path_factory.mktemp("uploads")),
        'PUBLIC_BASE_URL': 'https://athar.test',
        'TELEGRAM_BOT_TOKEN': '',
        'TELEGRAM_CHAT_ID': '',
        'TELEGRAM_WEBHOOK_SECRET': '',
        'BOX_COST': 250,
        'TARGET_BOXES': 500,
        'CAMPAIGN_TIMEZONE': 'Africa/Cairo',
        'PAYMENT_METHODS': ['InstaPay', 'Telda', 'Bank transfer'],
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
def fake_channel(app):
    """Install a recording channel for the duration of one test."""
    fake = FakeChannel()
    with app.app_context():
        channel.override(fake)
    yield fake
    with app.app_context():
        channel.override(None)


@pytest.fixture(scope='function')
def operator(db_session):
    """Dashboard operator account."""
    user = User(
        email="operator@athar.test",
        display_name="Operator",
        password_hash=hash_password(TEST_PASSWORD),
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def operator_headers(client, operator):
    token = get_auth_token(client, operator.email, TEST_PASSWORD)
    assert token, "login failed for test operator"
    return auth_headers(token)


@pytest.fixture(scope='function')
def make_donation(db_session):
    """Insert a donation directly (bypasses the lifecycle service)."""
    def _make(**overrides) -> Donation:
        fields = {
            "amount": 500,
            "boxes": 2,
            "payment_method": "InstaPay",
            "receipt_url": "https://athar.test/uploads/screenshots/1_receipt.jpg",
            "status": "pending",
        }
        fields.update(overrides)
        donation = Donation(**fields)
        db_session.add(donation)
        db_session.commit()
        return donation

    return _make


@pytest.fixture(scope='function')
def make_item(db_session):
    """
    Insert an inventory item with zero stock. Stock is added through
    inventory_service.add_stock so the ledger stays consistent.
    """
    def _make(code, per_box, name=None, unit="kg") -> InventoryItem:
        item = InventoryItem(
            code=code,
            name=name or code.title(),
            quantity_per_box=per_box,
            unit=unit,
            current_stock=0.0,
            cost_per_unit=0.0,
            min_stock_alert=0.0,
        )
        db_session.add(item)
        db_session.commit()
        return item

    return _make


def get_auth_token(client, email: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
