"""Tests for points history, leaderboard and allowance endpoints."""

from datetime import timedelta
from decimal import Decimal

from familyhub.models import db, AwardEvent, AllowancePayment, MemberStreak
from familyhub.services.ledger_service import LedgerService
from familyhub.utils.timezone import local_today, utc_now


def _award(member, amount, reason='manual_award', source_ref=None):
    event = LedgerService.award_points(member, amount, reason, source_ref=source_ref)
    db.session.commit()
    return event


class TestPointsHistory:
    """Tests for GET /api/points/history/<member_id>."""

    def test_history_newest_first(self, client, db_session, child_headers, child):
        base_time = utc_now() - timedelta(hours=3)
        for offset, amount in enumerate((10, 15, 25)):
            event = _award(child, amount)
            event.created_at = base_time + timedelta(hours=offset)
        db_session.commit()

        response = client.get(f'/api/points/history/{child.id}', headers=child_headers)

        body = response.get_json()
        assert response.status_code == 200
        assert body['total'] == 3
        assert [e['amount'] for e in body['data']] == ['25.00', '15.00', '10.00']

    def test_history_pagination(self, client, db_session, parent_headers, child):
        for amount in (1, 2, 3, 4, 5):
            _award(child, amount)

        response = client.get(f'/api/points/history/{child.id}?limit=2&offset=1',
                              headers=parent_headers)

        body = response.get_json()
        assert body['total'] == 5
        assert body['limit'] == 2
        assert body['offset'] == 1
        assert len(body['data']) == 2

    def test_history_invalid_limit(self, client, parent_headers, child):
        response = client.get(f'/api/points/history/{child.id}?limit=0', headers=parent_headers)

        assert response.status_code == 400

    def test_child_cannot_view_sibling_history(self, client, child_headers, child_2):
        response = client.get(f'/api/points/history/{child_2.id}', headers=child_headers)

        assert response.status_code == 403

    def test_history_of_other_family(self, client, parent_headers, outsider):
        response = client.get(f'/api/points/history/{outsider.id}', headers=parent_headers)

        assert response.status_code == 404


class TestLeaderboard:
    """Tests for GET /api/points/leaderboard."""

    def test_sorted_by_points(self, client, db_session, child_headers, parent, child, child_2):
        child_2.gamification_enabled = True
        db_session.commit()
        _award(child, 30)
        _award(child_2, 70)

        response = client.get('/api/points/leaderboard', headers=child_headers)

        board = response.get_json()['data']
        assert [entry['member_id'] for entry in board] == [child_2.id, child.id, parent.id]
        assert [entry['rank'] for entry in board] == [1, 2, 3]
        assert board[1]['is_current_member'] is True
        assert board[0]['total_points_earned'] == '70.00'

    def test_sorted_by_streak(self, client, db_session, parent_headers, parent, child, child_2):
        _award(child, 50)
        db_session.add(MemberStreak(member_id=child_2.id, current_streak=4, longest_streak=4,
                                    last_activity_date=local_today()))
        db_session.commit()

        response = client.get('/api/points/leaderboard?sort_by=streak', headers=parent_headers)

        board = response.get_json()['data']
        assert board[0]['member_id'] == child_2.id
        assert board[0]['current_streak'] == 4
        assert board[1]['member_id'] == child.id

    def test_invalid_sort(self, client, parent_headers):
        response = client.get('/api/points/leaderboard?sort_by=age', headers=parent_headers)

        assert response.status_code == 400

    def test_family_scoped(self, client, outsider_headers, child, outsider):
        board = client.get('/api/points/leaderboard', headers=outsider_headers).get_json()['data']

        assert [entry['member_id'] for entry in board] == [outsider.id]


class TestAllowancePayments:
    """Tests for GET /api/members/<id>/allowance-payments."""

    def test_payments_listed_after_verification(self, client, db_session, parent_headers,
                                                child_headers, sample_chore, completed, child):
        sample_chore.allowance_cents = 200
        db_session.commit()
        client.post(f'/api/assignments/{completed.id}/verify',
                    headers=parent_headers, json={'approved': True})

        response = client.get(f'/api/members/{child.id}/allowance-payments', headers=child_headers)

        payments = response.get_json()['data']
        assert response.status_code == 200
        assert len(payments) == 1
        assert payments[0]['amount_cents'] == 200
        assert payments[0]['payment_method'] == 'pending'

    def test_no_payment_without_allowance(self, client, db_session, parent_headers, completed):
        client.post(f'/api/assignments/{completed.id}/verify',
                    headers=parent_headers, json={'approved': True})

        assert AllowancePayment.query.count() == 0

    def test_child_cannot_view_sibling_payments(self, client, child_headers, child_2):
        response = client.get(f'/api/members/{child_2.id}/allowance-payments', headers=child_headers)

        assert response.status_code == 403


class TestLedgerInvariant:
    """Balances always equal the award log."""

    def test_mixed_sources_reconcile(self, client, db_session, parent_headers, child_headers,
                                     completed, child):
        client.post(f'/api/assignments/{completed.id}/verify',
                    headers=parent_headers, json={'approved': True})
        client.post(f'/api/members/{child.id}/award-points',
                    headers=parent_headers, json={'amount': '7.25'})
        client.post('/api/points/task-completed', headers=child_headers, json={'task_ref': 't-1'})

        db_session.refresh(child)
        assert child.total_points_earned == Decimal('42.25')
        assert child.family_bucks == child.total_points_earned
        assert child.calculate_awarded_total() == Decimal('42.25')
        assert AwardEvent.query.filter_by(member_id=child.id).count() == 3
