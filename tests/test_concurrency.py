"""
Concurrent accept / reject tests
Every candidate truck races on the same job from its own thread and
database connection: exactly one accept may win, and rejects by all
candidates must leave the job expired.
"""
import threading

import pytest

from watertruck import create_app, db
from watertruck.dispatch import accept_job, create_job, reject_job
from watertruck.errors import ConflictError
from watertruck.models import Job, JobRequest, Truck, User, utcnow


@pytest.fixture
def file_app(tmp_path):
    """App on a file-backed SQLite database so threads get real connections."""
    app = create_app('testing', {
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'race.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30}},
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _seed(app, truck_count):
    with app.app_context():
        customer = User(device_token='9b2f3c1e-7d4a-4c8b-9e6f-0a1b2c3d4e5f', role='customer')
        db.session.add(customer)
        db.session.flush()
        truck_ids = []
        for i in range(truck_count):
            owner = User(device_token=f'00000000-0000-4000-8000-{i:012d}', role='truck')
            db.session.add(owner)
            db.session.flush()
            truck = Truck(
                user_id=owner.id, name=f'Racer {i}', phone='555-0100',
                capacity_gallons=500, price_fixed=30.0 + i,
                is_active=True, last_seen_at=utcnow(),
            )
            db.session.add(truck)
            db.session.flush()
            truck_ids.append(truck.id)
        db.session.commit()
        job = create_job(customer.id, '123 Main St', truck_ids)
        return job['id'], truck_ids


@pytest.mark.parametrize('truck_count', [2, 5, 8])
def test_exactly_one_concurrent_accept_wins(file_app, truck_count):
    job_id, truck_ids = _seed(file_app, truck_count)
    barrier = threading.Barrier(truck_count)
    results = []
    lock = threading.Lock()

    def attempt(truck_id):
        with file_app.app_context():
            try:
                barrier.wait()
                accept_job(job_id, truck_id)
                outcome = ('accepted', truck_id)
            except ConflictError:
                outcome = ('conflict', truck_id)
            except Exception as e:
                outcome = ('error', repr(e))
            finally:
                db.session.remove()
            with lock:
                results.append(outcome)

    threads = [threading.Thread(target=attempt, args=(truck_id,)) for truck_id in truck_ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    errors = [r for r in results if r[0] == 'error']
    winners = [r[1] for r in results if r[0] == 'accepted']
    conflicts = [r for r in results if r[0] == 'conflict']
    assert errors == []
    assert len(winners) == 1
    assert len(conflicts) == truck_count - 1

    winner = winners[0]
    with file_app.app_context():
        job = db.session.get(Job, job_id)
        assert job.status == 'accepted'
        assert job.truck_id == winner
        assert job.price == db.session.get(Truck, winner).price_fixed

        statuses = {r.truck_id: r.status for r in JobRequest.query.filter_by(job_id=job_id)}
        assert statuses.pop(winner) == 'accepted'
        assert set(statuses.values()) == {'expired'}


@pytest.mark.parametrize('truck_count', [2, 5, 8])
def test_concurrent_rejects_expire_the_job(file_app, truck_count):
    job_id, truck_ids = _seed(file_app, truck_count)
    barrier = threading.Barrier(truck_count)
    results = []
    lock = threading.Lock()

    def attempt(truck_id):
        with file_app.app_context():
            try:
                barrier.wait()
                reject_job(job_id, truck_id)
                outcome = ('rejected', truck_id)
            except Exception as e:
                outcome = ('error', repr(e))
            finally:
                db.session.remove()
            with lock:
                results.append(outcome)

    threads = [threading.Thread(target=attempt, args=(truck_id,)) for truck_id in truck_ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert [r for r in results if r[0] == 'error'] == []
    assert len(results) == truck_count

    with file_app.app_context():
        assert db.session.get(Job, job_id).status == 'expired'
        statuses = {r.status for r in JobRequest.query.filter_by(job_id=job_id)}
        assert statuses == {'rejected'}
