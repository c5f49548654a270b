"""
Unit tests for in-memory import sessions.

Run: pytest tests/unit/test_import_session_service.py -v
"""

from datetime import datetime, timedelta

import pytest

from exceptions import ImportInProgressError, ImportSessionNotFoundError
from services import import_session_service as sessions
from services.reconciliation_service import ReconciliationPlan
from tests.factories import ParsedProductFactory


@pytest.fixture(autouse=True)
def clean_sessions():
    sessions.clear_sessions()
    yield
    sessions.clear_sessions()


def new_session(**kwargs):
    plan = ReconciliationPlan([ParsedProductFactory.create(category="Lighting")])
    return sessions.create_session(plan, business_id="biz-1", user_id="user-1", **kwargs)


class TestSessionStore:
    """Tests for create / get / delete"""

    def test_create_and_get(self):
        session = new_session(preview=[{"Product Code": "S-1"}])

        fetched = sessions.get_session(session.session_id)

        assert fetched is session
        assert fetched.preview == [{"Product Code": "S-1"}]

    def test_unknown_session(self):
        with pytest.raises(ImportSessionNotFoundError):
            sessions.get_session("missing")

    def test_expired_session_removed(self):
        session = new_session()
        session.expires_at = datetime.now() - timedelta(seconds=1)

        with pytest.raises(ImportSessionNotFoundError):
            sessions.get_session(session.session_id)
        with pytest.raises(ImportSessionNotFoundError):
            sessions.get_session(session.session_id)

    def test_running_session_outlives_ttl(self):
        session = new_session()
        session.start()
        session.expires_at = datetime.now() - timedelta(seconds=1)

        assert sessions.get_session(session.session_id) is session

    def test_delete(self):
        session = new_session()

        sessions.delete_session(session.session_id)

        with pytest.raises(ImportSessionNotFoundError):
            sessions.get_session(session.session_id)

    def test_delete_running_session_refused(self):
        session = new_session()
        session.start()

        with pytest.raises(ImportInProgressError):
            sessions.delete_session(session.session_id)


class TestImportSession:
    """Tests for run state and responses"""

    def test_second_start_rejected(self):
        session = new_session()
        session.start()

        with pytest.raises(ImportInProgressError):
            session.start()

        session.finish(None)
        session.start()
        assert session.running is True

    def test_ensure_idle(self):
        session = new_session()
        session.ensure_idle()
        session.start()

        with pytest.raises(ImportInProgressError):
            session.ensure_idle()

    def test_progress_tracking(self):
        session = new_session()
        session.start()

        session.report_progress("products", 2, 5)

        progress = session.progress()
        assert progress.running is True
        assert (progress.phase, progress.completed, progress.total) == ("products", 2, 5)

    def test_response_includes_proposals_with_choices(self):
        session = new_session()
        session.plan.set_category_choice("lighting", False)

        response = session.to_response()

        assert response.business_id == "biz-1"
        assert len(response.products) == 1
        assert response.proposed_categories[0].key == "lighting"
        assert response.proposed_categories[0].create is False
        assert response.summary.unresolved_count == 1
