"""Pytest configuration and fixtures for familyhub tests."""

import pytest
from decimal import Decimal

from familyhub.app import create_app
from familyhub.models import db, Family, Member, Chore, ChoreAssignment


@pytest.fixture(scope='function')
def app():
    """Create application instance for testing."""
    app = create_app('testing')

    # Create database tables
    with app.app_context():
        db.create_all()

    yield app

    # Clean up
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client for making requests."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create database session for tests."""
    with app.app_context():
        yield db.session


@pytest.fixture
def family(db_session):
    family = Family(name='The Testers')
    db_session.add(family)
    db_session.commit()
    return family


@pytest.fixture
def other_family(db_session):
    family = Family(name='The Neighbours')
    db_session.add(family)
    db_session.commit()
    return family


@pytest.fixture
def parent(db_session, family):
    """Create a parent member for testing."""
    member = Member(
        external_id='parent-001',
        family_id=family.id,
        name='Test Parent',
        role='parent'
    )
    db_session.add(member)
    db_session.commit()
    return member


@pytest.fixture
def child(db_session, family):
    """Create a child with gamification enabled and an empty ledger."""
    member = Member(
        external_id='child-001',
        family_id=family.id,
        name='Test Child',
        role='child',
        gamification_enabled=True,
        family_bucks=Decimal('0'),
        total_points_earned=Decimal('0'),
        points_per_task=10
    )
    db_session.add(member)
    db_session.commit()
    return member


@pytest.fixture
def child_2(db_session, family):
    """Create a second child with gamification left disabled."""
    member = Member(
        external_id='child-002',
        family_id=family.id,
        name='Second Child',
        role='child'
    )
    db_session.add(member)
    db_session.commit()
    return member


@pytest.fixture
def outsider(db_session, other_family):
    """Create a parent who belongs to a different family."""
    member = Member(
        external_id='outsider-001',
        family_id=other_family.id,
        name='Outside Parent',
        role='parent'
    )
    db_session.add(member)
    db_session.commit()
    return member


@pytest.fixture
def parent_headers(parent):
    """Create headers for parent authentication."""
    return {'X-Remote-User': parent.external_id}


@pytest.fixture
def child_headers(child):
    """Create headers for child authentication."""
    return {'X-Remote-User': child.external_id}


@pytest.fixture
def child_2_headers(child_2):
    return {'X-Remote-User': child_2.external_id}


@pytest.fixture
def outsider_headers(outsider):
    return {'X-Remote-User': outsider.external_id}


@pytest.fixture
def sample_chore(db_session, family, parent):
    """Create a sample chore worth 25 points."""
    chore = Chore(
        family_id=family.id,
        title='Take out trash',
        description='Roll bins to curb',
        points_reward=25,
        created_by=parent.id
    )
    db_session.add(chore)
    db_session.commit()
    return chore


@pytest.fixture
def assigned(db_session, sample_chore, child, parent):
    """An 'assigned' assignment of the sample chore to the child."""
    assignment = ChoreAssignment(
        chore_id=sample_chore.id,
        assigned_to=child.id,
        assigned_by=parent.id,
        status='assigned'
    )
    db_session.add(assignment)
    db_session.commit()
    return assignment


@pytest.fixture
def completed(db_session, assigned):
    """The sample assignment moved to 'completed'."""
    from familyhub.utils.timezone import utc_now
    assigned.status = 'completed'
    assigned.completed_at = utc_now()
    db_session.commit()
    return assigned
