"""Tests for Chore Management API endpoints."""

import pytest
from decimal import Decimal

from familyhub.models import db, Chore, ChoreAssignment, AwardEvent


class TestCreateChore:
    """Tests for POST /api/chores."""

    def test_create_chore(self, client, parent_headers, family, parent):
        response = client.post('/api/chores', headers=parent_headers, json={
            'title': 'Feed the cat',
            'description': 'Half a can',
            'points_reward': 5,
            'allowance_cents': 50,
            'category': 'pets',
            'difficulty': 'easy',
            'estimated_minutes': 5,
            'icon': 'cat'
        })

        assert response.status_code == 201
        data = response.get_json()['data']
        assert data['title'] == 'Feed the cat'
        assert data['family_id'] == family.id
        assert data['created_by'] == parent.id
        assert data['points_reward'] == 5
        assert data['difficulty'] == 'easy'

    def test_create_defaults(self, client, parent_headers):
        response = client.post('/api/chores', headers=parent_headers, json={'title': 'Sweep'})

        data = response.get_json()['data']
        assert data['points_reward'] is None
        assert data['allowance_cents'] == 0
        assert data['category'] == 'general'
        assert data['difficulty'] == 'medium'

    def test_create_requires_title(self, client, parent_headers):
        response = client.post('/api/chores', headers=parent_headers, json={'points_reward': 5})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'ValidationError'

    @pytest.mark.parametrize('field,value', [
        ('points_reward', -1),
        ('allowance_cents', -100),
        ('estimated_minutes', 'soon'),
        ('difficulty', 'impossible'),
        ('category', ''),
        ('colour', 'red'),
    ])
    def test_create_validation(self, client, parent_headers, field, value):
        response = client.post('/api/chores', headers=parent_headers,
                               json={'title': 'Sweep', field: value})

        assert response.status_code == 400

    def test_child_cannot_create(self, client, child_headers):
        response = client.post('/api/chores', headers=child_headers, json={'title': 'Nap'})

        assert response.status_code == 403

    def test_create_without_body(self, client, parent_headers):
        response = client.post('/api/chores', headers=parent_headers)

        assert response.status_code == 400


class TestReadChores:
    """Tests for GET /api/chores and GET /api/chores/<id>."""

    def test_list_chores(self, client, child_headers, sample_chore):
        response = client.get('/api/chores', headers=child_headers)

        body = response.get_json()
        assert response.status_code == 200
        assert body['total'] == 1
        assert body['limit'] == 50
        assert body['offset'] == 0
        assert body['data'][0]['title'] == 'Take out trash'
        assert body['data'][0]['assignment_count'] == 0

    def test_list_filters_by_category(self, client, db_session, parent_headers, family, sample_chore):
        db_session.add(Chore(family_id=family.id, title='Weed garden', category='outdoor'))
        db_session.commit()

        response = client.get('/api/chores?category=outdoor', headers=parent_headers)

        body = response.get_json()
        assert body['total'] == 1
        assert body['data'][0]['title'] == 'Weed garden'

    def test_other_family_cannot_see_chore(self, client, outsider_headers, sample_chore):
        assert client.get('/api/chores', headers=outsider_headers).get_json()['total'] == 0

        response = client.get(f'/api/chores/{sample_chore.id}', headers=outsider_headers)
        assert response.status_code == 404

    def test_get_chore_counts(self, client, child_headers, sample_chore, completed):
        response = client.get(f'/api/chores/{sample_chore.id}', headers=child_headers)

        data = response.get_json()['data']
        assert data['assignment_count'] == 1
        assert data['outstanding_count'] == 1


class TestUpdateChore:
    """Tests for PUT /api/chores/<id>."""

    def test_partial_update(self, client, parent_headers, sample_chore):
        response = client.put(f'/api/chores/{sample_chore.id}', headers=parent_headers,
                              json={'points_reward': 30, 'difficulty': 'hard'})

        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['points_reward'] == 30
        assert data['difficulty'] == 'hard'
        assert data['title'] == 'Take out trash'

    def test_update_blank_title(self, client, parent_headers, sample_chore):
        response = client.put(f'/api/chores/{sample_chore.id}', headers=parent_headers,
                              json={'title': '   '})

        assert response.status_code == 400

    def test_child_cannot_update(self, client, child_headers, sample_chore):
        response = client.put(f'/api/chores/{sample_chore.id}', headers=child_headers,
                              json={'points_reward': 1000})

        assert response.status_code == 403

    def test_updated_reward_applies_on_verify(self, client, db_session, parent_headers,
                                              sample_chore, completed, child):
        client.put(f'/api/chores/{sample_chore.id}', headers=parent_headers,
                   json={'points_reward': 40})

        response = client.post(f'/api/assignments/{completed.id}/verify',
                               headers=parent_headers, json={'approved': True})

        assert response.get_json()['data']['ledger_delta']['amount'] == '40.00'


class TestDeleteChore:
    """Tests for DELETE /api/chores/<id>."""

    def test_delete_unused_chore(self, client, parent_headers, sample_chore):
        chore_id = sample_chore.id
        response = client.delete(f'/api/chores/{chore_id}', headers=parent_headers)

        assert response.status_code == 200
        assert response.get_json()['data']['assignments_removed'] == 0
        assert db.session.get(Chore, chore_id) is None

    def test_delete_refused_with_outstanding_assignments(self, client, parent_headers,
                                                         sample_chore, assigned):
        response = client.delete(f'/api/chores/{sample_chore.id}', headers=parent_headers)

        assert response.status_code == 409
        body = response.get_json()
        assert body['error'] == 'ChoreInUse'
        assert body['details']['outstanding_assignments'] == 1
        assert db.session.get(Chore, sample_chore.id) is not None

    def test_force_delete_cascades(self, client, parent_headers, sample_chore, assigned):
        response = client.delete(f'/api/chores/{sample_chore.id}?force=true', headers=parent_headers)

        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['assignments_removed'] == 1
        assert data['outstanding_discarded'] == 1
        assert ChoreAssignment.query.count() == 0

    def test_delete_keeps_award_history(self, client, db_session, parent_headers,
                                        sample_chore, completed, child):
        client.post(f'/api/assignments/{completed.id}/verify',
                    headers=parent_headers, json={'approved': True})

        # Only verified assignments remain, so no force is needed
        response = client.delete(f'/api/chores/{sample_chore.id}', headers=parent_headers)
        assert response.status_code == 200

        event = AwardEvent.query.one()
        assert event.description == 'Verified: Take out trash'
        db_session.refresh(child)
        assert child.family_bucks == Decimal('25.00')
        assert child.verify_ledger_balance()

    def test_child_cannot_delete(self, client, child_headers, sample_chore):
        response = client.delete(f'/api/chores/{sample_chore.id}', headers=child_headers)

        assert response.status_code == 403
