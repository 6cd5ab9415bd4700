"""
Session State Data Model

Defines the SessionState dataclass tracking the identity/role negotiation
for one active conversation.

Stages:
1. Uninitialized - profile not hydrated yet
2. Role unknown - nobody said whether they teach or study
3. Role asked - the role question was just put to the user
4. Role confirmed - role known, greetings become role-aware

Session state is process-local and ephemeral; resetting a session replaces
it with a fresh instance.
"""

from dataclasses import dataclass
from typing import Optional

from eduvane_orchestrator.intent_classifier import IdentityClaim
from eduvane_orchestrator.models import UserProfile, UserRole


@dataclass
class SessionState:
    """Minimal conversational state for one session."""
    has_introduced_self: bool = False
    role_confirmed: bool = False
    user_role: Optional[UserRole] = None
    user_name: Optional[str] = None
    role_asked: bool = False
    initialized: bool = False  # Profile hydration has run

    @property
    def stage(self) -> str:
        if not self.initialized:
            return "uninitialized"
        if self.role_confirmed:
            return "role_confirmed"
        if self.role_asked:
            return "role_asked"
        return "role_unknown"

    @property
    def first_name(self) -> Optional[str]:
        if not self.user_name:
            return None
        return self.user_name.split()[0]

    def hydrate(self, profile: Optional[UserProfile]):
        """Load role and name from a stored profile and mark initialized."""
        if profile:
            self.user_role = profile.role
            self.user_name = profile.name or None
            self.role_confirmed = profile.role is not None
        self.initialized = True

    def confirm_role(self, role: UserRole):
        self.user_role = role
        self.role_confirmed = True
        self.role_asked = False

    def mark_role_asked(self):
        self.role_asked = True

    def clear_role_inquiry(self):
        self.role_asked = False

    def apply_identity(self, claim: IdentityClaim) -> bool:
        """
        Record whatever a turn revealed about the user.

        Returns True if the turn carried any identity signal.
        """
        if claim.name:
            self.user_name = claim.name
        if claim.role:
            self.confirm_role(claim.role)
        return claim.is_present
