"""
Pytest configuration and fixtures for the water truck dispatch tests
"""
import uuid

import pytest

from watertruck import create_app, db
from watertruck import push_notifications
from watertruck.models import (
    Job, JobRequest, Operator, PushSubscription, Truck, User, utcnow,
)
from watertruck.push_notifications import PushReport


class FakeNotifier:
    """Records every push instead of calling a push service."""

    def __init__(self):
        self.sent = []
        self.fail_with = None
        self.raise_error = False

    def send(self, subscription_info, title, body, data=None):
        if self.raise_error:
            raise RuntimeError("push service unreachable")
        self.sent.append({
            "endpoint": subscription_info["endpoint"],
            "title": title,
            "body": body,
            "data": data or {},
        })
        if self.fail_with is not None:
            return self.fail_with
        return PushReport(True, status_code=201)


@pytest.fixture
def app():
    """Create application instance for testing"""
    app = create_app('testing')
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture(autouse=True)
def notifier(monkeypatch):
    """Every test gets a recording notifier in place of Web Push."""
    fake = FakeNotifier()
    monkeypatch.setattr(push_notifications, "_notifier", fake)
    return fake


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

@pytest.fixture
def user_factory(app):
    def create_user(**kwargs):
        defaults = {
            'device_token': str(uuid.uuid4()),
            'role': 'customer',
        }
        defaults.update(kwargs)
        user = User(**defaults)
        db.session.add(user)
        db.session.commit()
        return user
    return create_user


@pytest.fixture
def truck_factory(app, user_factory):
    """Active, recently seen truck with a complete profile."""
    def create_truck(**kwargs):
        user = kwargs.pop('user', None) or user_factory(role='truck')
        defaults = {
            'user_id': user.id,
            'name': 'Truck',
            'phone': '555-0100',
            'capacity_gallons': 1000,
            'price_fixed': 50.0,
            'avg_job_minutes': 30,
            'is_active': True,
            'last_seen_at': utcnow(),
        }
        defaults.update(kwargs)
        truck = Truck(**defaults)
        db.session.add(truck)
        db.session.commit()
        return truck
    return create_truck


@pytest.fixture
def operator_factory(app, user_factory):
    def create_operator(**kwargs):
        user = kwargs.pop('user', None) or user_factory(role='operator', name='Fleet Co')
        defaults = {'user_id': user.id, 'mode': 'delegated'}
        defaults.update(kwargs)
        operator = Operator(**defaults)
        db.session.add(operator)
        db.session.commit()
        return operator
    return create_operator


@pytest.fixture
def job_factory(app, user_factory):
    """Pending job offered to the given trucks."""
    def create_job(trucks=(), **kwargs):
        customer = kwargs.pop('customer', None) or user_factory(name='Customer')
        defaults = {
            'customer_user_id': customer.id,
            'location': '123 Main St',
            'status': 'pending',
        }
        defaults.update(kwargs)
        job = Job(**defaults)
        db.session.add(job)
        db.session.flush()
        for truck in trucks:
            db.session.add(JobRequest(job_id=job.id, truck_id=truck.id, status='pending'))
        db.session.commit()
        return job
    return create_job


@pytest.fixture
def subscription_factory(app):
    def create_subscription(user, endpoint=None):
        sub = PushSubscription(
            user_id=user.id,
            endpoint=endpoint or f'https://push.example.com/send/{user.id}',
            p256dh='BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA_0QTpQtUbVlUls0VJXg7A8u-Ts1XbjhazAkj7I99e8QcYP7DkM',
            auth='tBHItJI5svbpez7KI4CCXg',
        )
        db.session.add(sub)
        db.session.commit()
        return sub
    return create_subscription


@pytest.fixture
def headers_for():
    def make_headers(user):
        return {'X-Device-Token': user.device_token}
    return make_headers