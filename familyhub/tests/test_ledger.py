"""Tests for the gamification ledger."""

import pytest
from decimal import Decimal
from unittest.mock import patch
from sqlalchemy import text

from familyhub.auth import Caller
from familyhub.models import db, AwardEvent, Notification
from familyhub.services.errors import (
    InvalidAmountError, GamificationDisabledError, DuplicateAwardError,
    ForbiddenError, ValidationError, NotFoundError
)
from familyhub.services.ledger_service import (
    LedgerService, compute_level, compute_progress
)


def _caller(member):
    return Caller(member_id=member.id, role=member.role, family_id=member.family_id)


class TestLevelFormulas:
    """Level and progress are derived from lifetime points only."""

    def test_zero_points(self):
        assert compute_level(0) == 1
        assert compute_progress(0) == (0.0, Decimal('100'))

    def test_150_points(self):
        assert compute_level(150) == 2
        progress, to_next = compute_progress(150)
        assert progress == 50.0
        assert to_next == Decimal('50')

    def test_299_points(self):
        assert compute_level(299) == 3
        progress, to_next = compute_progress(299)
        assert progress == 99.0
        assert to_next == Decimal('1')

    def test_level_boundary(self):
        assert compute_level(Decimal('99.99')) == 1
        assert compute_level(100) == 2
        assert compute_progress(100) == (0.0, Decimal('100'))

    def test_fractional_points(self):
        progress, to_next = compute_progress('12.50')
        assert progress == 12.5
        assert to_next == Decimal('87.50')


class TestAwardPoints:
    """Tests for LedgerService.award_points."""

    def test_award_increments_both_balances(self, db_session, child, parent):
        event = LedgerService.award_points(child, 15, 'manual_award', created_by=parent.id)
        db_session.commit()

        assert event.amount == Decimal('15.00')
        assert child.family_bucks == Decimal('15.00')
        assert child.total_points_earned == Decimal('15.00')

    def test_lifetime_points_never_decrease(self, db_session, child):
        totals = []
        for amount in (5, '2.50', Decimal('10')):
            LedgerService.award_points(child, amount, 'manual_award')
            db_session.commit()
            totals.append(child.total_points_earned)

        assert totals == sorted(totals)
        assert totals[-1] == Decimal('17.50')

    def test_amount_is_quantized(self, db_session, child):
        event = LedgerService.award_points(child, '3.333', 'manual_award')
        db_session.commit()

        assert event.amount == Decimal('3.33')

    @pytest.mark.parametrize('amount', [
        0, -5, '0.001', 'abc', True, None, '1e30', 1e30, '100000000.00'
    ])
    def test_invalid_amount(self, db_session, child, amount):
        with pytest.raises(InvalidAmountError):
            LedgerService.award_points(child, amount, 'manual_award')

        assert AwardEvent.query.count() == 0

    def test_disabled_gamification_guard(self, db_session, child_2):
        with pytest.raises(GamificationDisabledError):
            LedgerService.award_points(child_2, 10, 'manual_award')

        db_session.refresh(child_2)
        assert child_2.family_bucks == Decimal('0')
        assert AwardEvent.query.count() == 0

    def test_unknown_reason(self, db_session, child):
        with pytest.raises(ValidationError):
            LedgerService.award_points(child, 10, 'birthday')

    def test_duplicate_task_reference(self, db_session, child):
        LedgerService.award_points(child, 10, 'task_completed', source_ref='todo-1')
        db_session.commit()

        with pytest.raises(DuplicateAwardError):
            LedgerService.award_points(child, 10, 'task_completed', source_ref='todo-1')

        db_session.rollback()
        db_session.refresh(child)
        assert child.family_bucks == Decimal('10.00')

    def test_duplicate_leaves_rollback_to_caller(self, db_session, child):
        LedgerService.award_points(child, 10, 'task_completed', source_ref='todo-2')
        db_session.commit()

        with patch.object(db.session, 'rollback') as mock_rollback:
            with pytest.raises(DuplicateAwardError):
                LedgerService.award_points(child, 10, 'task_completed', source_ref='todo-2')

        mock_rollback.assert_not_called()
        db_session.rollback()
        assert AwardEvent.query.count() == 1

    def test_amount_at_column_limit(self, db_session, child):
        event = LedgerService.award_points(child, '99999999.99', 'manual_award')
        db_session.commit()

        assert event.amount == Decimal('99999999.99')

    def test_no_lost_update_with_stale_member(self, db_session, child):
        # Load the balance, then let another writer credit the row underneath us
        assert child.family_bucks == Decimal('0')
        db_session.execute(
            text('UPDATE members SET family_bucks = family_bucks + 10, '
                 'total_points_earned = total_points_earned + 10 WHERE id = :id'),
            {'id': child.id}
        )

        LedgerService.award_points(child, 5, 'manual_award')
        db_session.commit()

        db_session.refresh(child)
        assert child.family_bucks == Decimal('15.00')
        assert child.total_points_earned == Decimal('15.00')


class TestAwardManual:
    """Tests for POST /api/members/<id>/award-points."""

    def test_parent_awards_points(self, client, db_session, parent_headers, child):
        response = client.post(f'/api/members/{child.id}/award-points', headers=parent_headers,
                               json={'amount': 12, 'note': 'Helped with groceries'})

        assert response.status_code == 201
        body = response.get_json()['data']
        assert body['award']['amount'] == '12.00'
        assert body['award']['reason'] == 'manual_award'
        assert body['award']['description'] == 'Helped with groceries'
        assert body['member']['family_bucks'] == '12.00'

        assert Notification.query.filter_by(member_id=child.id, type='points_awarded').count() == 1

    def test_child_cannot_award(self, client, child_headers, child):
        response = client.post(f'/api/members/{child.id}/award-points',
                               headers=child_headers, json={'amount': 100})

        assert response.status_code == 403

    def test_invalid_amount_response(self, client, parent_headers, child):
        response = client.post(f'/api/members/{child.id}/award-points',
                               headers=parent_headers, json={'amount': -3})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'InvalidAmount'

    @pytest.mark.parametrize('amount', ['1e30', 1e30, '100000000'])
    def test_oversized_amount_response(self, client, db_session, parent_headers, child, amount):
        response = client.post(f'/api/members/{child.id}/award-points',
                               headers=parent_headers, json={'amount': amount})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'InvalidAmount'

        db_session.refresh(child)
        assert child.family_bucks == Decimal('0')
        assert AwardEvent.query.count() == 0

    def test_disabled_response(self, client, parent_headers, child_2):
        response = client.post(f'/api/members/{child_2.id}/award-points',
                               headers=parent_headers, json={'amount': 5})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'GamificationDisabled'

    def test_missing_amount(self, client, parent_headers, child):
        response = client.post(f'/api/members/{child.id}/award-points',
                               headers=parent_headers, json={})

        assert response.status_code == 400

    def test_member_of_other_family(self, client, parent_headers, outsider):
        response = client.post(f'/api/members/{outsider.id}/award-points',
                               headers=parent_headers, json={'amount': 5})

        assert response.status_code == 404


class TestTaskCompletion:
    """Tests for POST /api/points/task-completed."""

    def test_task_pays_points_per_task_once(self, client, db_session, child_headers, child):
        first = client.post('/api/points/task-completed', headers=child_headers,
                            json={'task_ref': 'todo-42', 'task_title': 'Unload dishwasher'})
        second = client.post('/api/points/task-completed', headers=child_headers,
                             json={'task_ref': 'todo-42'})

        assert first.status_code == 201
        assert first.get_json()['data']['award']['amount'] == '10.00'
        assert first.get_json()['data']['award']['description'] == 'Completed task: Unload dishwasher'
        assert second.status_code == 409
        assert second.get_json()['error'] == 'DuplicateAward'

        db_session.refresh(child)
        assert child.total_points_earned == Decimal('10.00')

    def test_task_credit_notifies_member(self, client, child_headers, child):
        client.post('/api/points/task-completed', headers=child_headers,
                    json={'task_ref': 'todo-9', 'task_title': 'Feed the cat'})

        notifications = Notification.query.filter_by(member_id=child.id, type='points_awarded').all()
        assert len(notifications) == 1
        assert notifications[0].message == 'You earned 10.00 points: Completed task: Feed the cat'

    def test_task_requires_reference(self, client, child_headers):
        response = client.post('/api/points/task-completed', headers=child_headers, json={})

        assert response.status_code == 400

    def test_child_cannot_credit_sibling(self, client, child_headers, child_2):
        response = client.post('/api/points/task-completed', headers=child_headers,
                               json={'member_id': child_2.id, 'task_ref': 'todo-1'})

        assert response.status_code == 403

    def test_parent_credits_child(self, client, parent_headers, child):
        response = client.post('/api/points/task-completed', headers=parent_headers,
                               json={'member_id': child.id, 'task_ref': 'todo-7'})

        assert response.status_code == 201
        assert response.get_json()['data']['member']['member_id'] == child.id


class TestConfigureMember:
    """Tests for GET/PATCH /api/members/<id>/settings."""

    def test_partial_update(self, client, db_session, parent_headers, child_2):
        response = client.patch(f'/api/members/{child_2.id}/settings', headers=parent_headers,
                                json={'gamification_enabled': True, 'points_per_task': 20})

        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['gamification_enabled'] is True
        assert data['points_per_task'] == 20
        assert data['allowed_pages'] is None

    @pytest.mark.parametrize('value', [0, 101, 2.5, '10', True])
    def test_points_per_task_bounds(self, client, parent_headers, child, value):
        response = client.patch(f'/api/members/{child.id}/settings',
                                headers=parent_headers, json={'points_per_task': value})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'ValidationError'

    @pytest.mark.parametrize('key', ['family_bucks', 'total_points_earned', 'role'])
    def test_ledger_fields_not_configurable(self, client, db_session, parent_headers, child, key):
        response = client.patch(f'/api/members/{child.id}/settings',
                                headers=parent_headers, json={key: 1000})

        assert response.status_code == 400
        assert 'allowed' in response.get_json()['details']
        db_session.refresh(child)
        assert child.family_bucks == Decimal('0')

    def test_empty_body(self, client, parent_headers, child):
        response = client.patch(f'/api/members/{child.id}/settings', headers=parent_headers, json={})

        assert response.status_code == 400

    def test_child_cannot_configure(self, client, child_headers, child):
        response = client.patch(f'/api/members/{child.id}/settings',
                                headers=child_headers, json={'points_per_task': 100})

        assert response.status_code == 403

    def test_child_reads_own_settings(self, client, child_headers, child):
        response = client.get(f'/api/members/{child.id}/settings', headers=child_headers)

        assert response.status_code == 200
        assert response.get_json()['data']['points_per_task'] == 10

    def test_child_cannot_read_sibling_settings(self, client, child_headers, child_2):
        response = client.get(f'/api/members/{child_2.id}/settings', headers=child_headers)

        assert response.status_code == 403

    def test_allowed_pages(self, db_session, parent, child):
        member = LedgerService.configure_member(_caller(parent), child.id,
                                                {'allowed_pages': ['chores', 'rewards']})
        assert member.allowed_pages == ['chores', 'rewards']

        with pytest.raises(ValidationError):
            LedgerService.configure_member(_caller(parent), child.id, {'allowed_pages': 'chores'})

    def test_other_family_member(self, db_session, parent, outsider):
        with pytest.raises(NotFoundError):
            LedgerService.configure_member(_caller(parent), outsider.id, {'points_per_task': 5})

    def test_child_caller_forbidden(self, db_session, child):
        with pytest.raises(ForbiddenError):
            LedgerService.configure_member(_caller(child), child.id, {'points_per_task': 5})


class TestGamificationState:
    """Tests for GET /api/members/<id>/gamification."""

    def test_state_after_awards(self, client, db_session, child_headers, child):
        LedgerService.award_points(child, 150, 'manual_award')
        db.session.commit()

        response = client.get(f'/api/members/{child.id}/gamification', headers=child_headers)

        assert response.status_code == 200
        state = response.get_json()['data']
        assert state['level'] == 2
        assert state['progress_percent'] == 50.0
        assert state['points_to_next_level'] == '50.00'
        assert state['current_streak'] == 0

    def test_list_members(self, client, parent_headers, child, child_2, outsider):
        response = client.get('/api/members', headers=parent_headers)

        names = [m['name'] for m in response.get_json()['data']]
        assert 'Outside Parent' not in names
        assert set(names) == {'Test Parent', 'Test Child', 'Second Child'}
