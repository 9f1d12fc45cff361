"""
Operator management and dashboard tests
"""
import pytest

from watertruck import db
from watertruck.errors import ConflictError, NotFoundError, ValidationError
from watertruck.models import Operator, User, utcnow
from watertruck.operators import (
    create_operator, get_dashboard, get_fleet, get_operator_details, set_mode,
    update_service_area,
)


class TestOperatorProfile:

    def test_create_defaults_to_delegated(self, app, user_factory):
        user = user_factory(name='Kingston Water')

        operator = create_operator(user, service_area='  Kingston  ')

        assert operator['mode'] == 'delegated'
        assert operator['service_area'] == 'Kingston'
        assert operator['name'] == 'Kingston Water'
        assert operator['truck_count'] == 0
        assert db.session.get(User, user.id).role == 'operator'

    def test_create_twice_conflicts(self, app, user_factory):
        user = user_factory()
        create_operator(user)
        with pytest.raises(ConflictError):
            create_operator(user)
        assert Operator.query.count() == 1

    def test_switch_mode(self, app, operator_factory):
        operator = operator_factory()
        assert set_mode(operator.id, 'dispatcher')['mode'] == 'dispatcher'
        assert set_mode(operator.id, 'delegated')['mode'] == 'delegated'

    def test_invalid_mode(self, app, operator_factory):
        operator = operator_factory()
        with pytest.raises(ValidationError):
            set_mode(operator.id, 'autopilot')
        assert db.session.get(Operator, operator.id).mode == 'delegated'

    def test_mode_for_missing_operator(self, app):
        with pytest.raises(NotFoundError):
            set_mode(4242, 'dispatcher')

    def test_service_area(self, app, operator_factory):
        operator = operator_factory()
        assert update_service_area(operator.id, 'St Andrew')['service_area'] == 'St Andrew'
        assert update_service_area(operator.id, '')['service_area'] is None

    def test_details_count_trucks(self, app, operator_factory, truck_factory):
        operator = operator_factory()
        truck_factory(operator_id=operator.id)
        truck_factory(operator_id=operator.id)
        truck_factory()

        assert get_operator_details(operator.id)['truck_count'] == 2
        assert get_operator_details(4242) is None


class TestFleet:

    def test_fleet_lists_only_owned_trucks_with_queue(self, app, operator_factory, truck_factory, job_factory):
        operator = operator_factory(mode='dispatcher')
        busy = truck_factory(operator_id=operator.id, name='Alpha')
        truck_factory(operator_id=operator.id, name='Bravo', is_active=False)
        truck_factory(name='Independent')
        job_factory(truck_id=busy.id, status='accepted')
        job_factory(truck_id=busy.id, status='delivered')

        fleet = get_fleet(operator.id)

        assert [t['name'] for t in fleet] == ['Alpha', 'Bravo']
        assert fleet[0]['queue_length'] == 1
        assert fleet[0]['operator_mode'] == 'dispatcher'
        assert fleet[1]['queue_length'] == 0
        assert fleet[1]['eta_text'] == 'Available now'


class TestDashboard:

    def test_pending_jobs_group_fleet_trucks(self, app, operator_factory, truck_factory, job_factory):
        operator = operator_factory()
        one = truck_factory(operator_id=operator.id, name='One')
        two = truck_factory(operator_id=operator.id, name='Two')
        outsider = truck_factory(name='Outsider')
        job = job_factory(trucks=[one, two, outsider], customer_name='Dana')

        dashboard = get_dashboard(operator.id)

        assert dashboard['mode'] == 'delegated'
        assert len(dashboard['pending']) == 1
        pending = dashboard['pending'][0]
        assert pending['id'] == job.id
        assert pending['customer_display_name'] == 'Dana'
        assert [t['truck_name'] for t in pending['requested_trucks']] == ['One', 'Two']
        assert dashboard['active'] == []

    def test_jobs_outside_fleet_are_hidden(self, app, operator_factory, truck_factory, job_factory):
        operator = operator_factory()
        truck_factory(operator_id=operator.id)
        outsider = truck_factory()
        job_factory(trucks=[outsider])
        job_factory(truck_id=outsider.id, status='accepted')

        dashboard = get_dashboard(operator.id)

        assert dashboard['pending'] == []
        assert dashboard['active'] == []

    def test_active_jobs_newest_acceptance_first(self, app, operator_factory, truck_factory, job_factory):
        from datetime import timedelta

        operator = operator_factory()
        truck = truck_factory(operator_id=operator.id, name='Hauler')
        now = utcnow()
        older = job_factory(truck_id=truck.id, status='accepted', accepted_at=now - timedelta(minutes=20))
        newer = job_factory(truck_id=truck.id, status='en_route', accepted_at=now - timedelta(minutes=5))
        job_factory(truck_id=truck.id, status='delivered', accepted_at=now)

        active = get_dashboard(operator.id)['active']

        assert [j['id'] for j in active] == [newer.id, older.id]
        assert active[0]['truck_name'] == 'Hauler'

    def test_empty_fleet(self, app, operator_factory):
        operator = operator_factory(mode='dispatcher')
        assert get_dashboard(operator.id) == {'pending': [], 'active': [], 'mode': 'dispatcher'}

    def test_missing_operator(self, app):
        with pytest.raises(NotFoundError):
            get_dashboard(4242)
