"""
Unit Tests for SessionState
"""

import pytest

from eduvane_orchestrator.intent_classifier import IdentityClaim
from eduvane_orchestrator.models import UserProfile, UserRole
from eduvane_orchestrator.session_state import SessionState


class TestSessionState:

    @pytest.fixture
    def state(self):
        return SessionState()

    def test_fresh_state(self, state):
        assert state.stage == "uninitialized"
        assert state.has_introduced_self is False
        assert state.user_role is None

    def test_hydrate_with_role(self, state):
        state.hydrate(UserProfile(name="Grace Hopper", role="teacher"))
        assert state.initialized is True
        assert state.role_confirmed is True
        assert state.user_role == UserRole.TEACHER
        assert state.first_name == "Grace"
        assert state.stage == "role_confirmed"

    def test_hydrate_legacy_profile_without_name(self, state):
        state.hydrate(UserProfile(name=None, role="STUDENT"))
        assert state.user_name is None
        assert state.first_name is None
        assert state.user_role == UserRole.STUDENT

    def test_hydrate_without_profile(self, state):
        state.hydrate(None)
        assert state.initialized is True
        assert state.role_confirmed is False
        assert state.stage == "role_unknown"

    def test_role_inquiry_cycle(self, state):
        state.hydrate(None)
        state.mark_role_asked()
        assert state.stage == "role_asked"
        state.confirm_role(UserRole.STUDENT)
        assert state.role_asked is False
        assert state.stage == "role_confirmed"

    def test_apply_identity(self, state):
        assert state.apply_identity(IdentityClaim(name="Ada", role=UserRole.STUDENT)) is True
        assert state.user_name == "Ada"
        assert state.role_confirmed is True

    def test_apply_empty_identity_changes_nothing(self, state):
        assert state.apply_identity(IdentityClaim()) is False
        assert state == SessionState()
