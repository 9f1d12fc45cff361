"""
Truck availability tests: stale sweep, eligibility, queue ordering,
distance filtering and ETA annotation
"""
import math
from datetime import timedelta

from watertruck import db
from watertruck.availability import deactivate_stale_trucks, list_available, queue_length
from watertruck.models import Truck, utcnow

KM_PER_DEGREE = math.pi * 6371.0 / 180


def _queue_jobs(job_factory, truck, count, status='accepted'):
    for _ in range(count):
        job_factory(truck_id=truck.id, status=status, price=truck.price_fixed)


class TestStaleSweep:
    """Lazy deactivation of trucks that stopped sending heartbeats"""

    def test_stale_truck_is_deactivated(self, app, truck_factory):
        stale = truck_factory(name='Stale', last_seen_at=utcnow() - timedelta(minutes=31))
        fresh = truck_factory(name='Fresh', last_seen_at=utcnow() - timedelta(minutes=5))

        assert deactivate_stale_trucks() == 1

        assert db.session.get(Truck, stale.id).is_active is False
        assert db.session.get(Truck, fresh.id).is_active is True

    def test_sweep_is_idempotent(self, app, truck_factory):
        truck_factory(last_seen_at=utcnow() - timedelta(hours=2))
        assert deactivate_stale_trucks() == 1
        assert deactivate_stale_trucks() == 0

    def test_never_seen_truck_is_left_alone_but_not_listed(self, app, truck_factory):
        truck = truck_factory(last_seen_at=None)

        assert deactivate_stale_trucks() == 0
        assert db.session.get(Truck, truck.id).is_active is True
        assert list_available() == []

    def test_listing_runs_the_sweep(self, app, truck_factory):
        stale = truck_factory(last_seen_at=utcnow() - timedelta(minutes=45))
        list_available()
        assert db.session.get(Truck, stale.id).is_active is False


class TestEligibility:
    """Only active, complete, recently seen trucks are listed"""

    def test_inactive_truck_excluded(self, app, truck_factory):
        truck_factory(is_active=False)
        assert list_available() == []

    def test_incomplete_profile_excluded(self, app, truck_factory):
        truck_factory(name='No phone', phone=None)
        truck_factory(name='', phone='555-0101')
        truck_factory(name='No capacity', capacity_gallons=None)
        assert list_available() == []

    def test_complete_active_truck_listed(self, app, truck_factory):
        truck = truck_factory(name='Blue Water')
        trucks = list_available()
        assert [t['id'] for t in trucks] == [truck.id]
        assert trucks[0]['queue_length'] == 0
        assert trucks[0]['eta_text'] == 'Available now'


class TestOrdering:
    """Shortest queue first, alphabetical tie-break"""

    def test_queue_then_name(self, app, truck_factory, job_factory):
        busy = truck_factory(name='Alpha')
        idle_b = truck_factory(name='Bravo')
        idle_c = truck_factory(name='Charlie')
        _queue_jobs(job_factory, busy, 1)

        names = [t['name'] for t in list_available()]
        assert names == ['Bravo', 'Charlie', 'Alpha']
        assert [t['id'] for t in list_available()] == [idle_b.id, idle_c.id, busy.id]

    def test_only_accepted_and_en_route_count(self, app, truck_factory, job_factory):
        truck = truck_factory()
        _queue_jobs(job_factory, truck, 1, status='accepted')
        _queue_jobs(job_factory, truck, 1, status='en_route')
        _queue_jobs(job_factory, truck, 2, status='delivered')
        _queue_jobs(job_factory, truck, 1, status='cancelled')

        assert queue_length(truck.id) == 2


class TestEtaAnnotation:
    """estimated_delay_minutes and eta_text"""

    def test_two_jobs_at_twenty_minutes(self, app, truck_factory, job_factory):
        truck = truck_factory(avg_job_minutes=20)
        _queue_jobs(job_factory, truck, 2)

        listed = list_available()[0]
        assert listed['queue_length'] == 2
        assert listed['estimated_delay_minutes'] == 40
        assert listed['eta_text'] == '40-60 minutes'

    def test_empty_queue_available_now(self, app, truck_factory):
        truck_factory(avg_job_minutes=20)
        listed = list_available()[0]
        assert listed['estimated_delay_minutes'] == 0
        assert listed['eta_text'] == 'Available now'


class TestDistanceFilter:
    """Max-distance filtering around the customer's position"""

    def test_boundary(self, app, truck_factory):
        max_km = app.config['TRUCK_MAX_DISTANCE_KM']
        inside = truck_factory(name='Inside', current_lat=(max_km - 0.01) / KM_PER_DEGREE, current_lng=0.0)
        truck_factory(name='Outside', current_lat=(max_km + 0.01) / KM_PER_DEGREE, current_lng=0.0)

        trucks = list_available(0.0, 0.0)

        assert [t['id'] for t in trucks] == [inside.id]
        assert trucks[0]['distance_km'] == round(max_km - 0.01, 2)

    def test_truck_without_location_never_excluded(self, app, truck_factory):
        no_gps = truck_factory(name='No GPS', current_lat=None, current_lng=None)

        trucks = list_available(45.0, 90.0)

        assert [t['id'] for t in trucks] == [no_gps.id]
        assert 'distance_km' not in trucks[0]

    def test_no_filter_without_customer_location(self, app, truck_factory):
        far = truck_factory(current_lat=40.0, current_lng=-70.0)

        trucks = list_available()

        assert [t['id'] for t in trucks] == [far.id]
        assert 'distance_km' not in trucks[0]

    def test_partial_coordinates_ignored(self, app, truck_factory):
        far = truck_factory(current_lat=40.0, current_lng=-70.0)
        assert [t['id'] for t in list_available(0.0, None)] == [far.id]
