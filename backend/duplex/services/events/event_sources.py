# backend/duplex/services/events/event_sources.py
"""
Collaborator seams for the evaluation pipeline.

The engine never talks to the 2FA provider or the helpdesk system itself.
Whoever schedules a run hands it an AuthEventSource and a ProfileSource; the
in-memory versions below are what tests and offline replays use.
"""
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Protocol

from duplex.schemas.auth_event import AuthEvent, UserProfile
from duplex.schemas.evaluation import EvaluationWindow


class AuthEventSource(Protocol):
    async def list_users(self, window: EvaluationWindow) -> List[str]:
        ...

    async def fetch_events(self, user_id: str, window: EvaluationWindow) -> List[AuthEvent]:
        ...


class ProfileSource(Protocol):
    async def fetch_profile(self, user_id: str) -> Optional[UserProfile]:
        ...


class InMemoryAuthEventSource:
    """Serves a fixed batch of already-parsed events."""

    def __init__(self, events: Iterable[AuthEvent] = ()) -> None:
        self._by_user: Dict[str, List[AuthEvent]] = defaultdict(list)
        for ev in events:
            self.add(ev)

    def add(self, event: AuthEvent) -> None:
        self._by_user[event.user_id].append(event)

    async def list_users(self, window: EvaluationWindow) -> List[str]:
        return sorted(
            user
            for user, events in self._by_user.items()
            if any(window.contains(e.timestamp) for e in events)
        )

    async def fetch_events(self, user_id: str, window: EvaluationWindow) -> List[AuthEvent]:
        return [e for e in self._by_user.get(user_id, []) if window.contains(e.timestamp)]


class InMemoryProfileSource:
    def __init__(self, profiles: Iterable[UserProfile] = ()) -> None:
        self._profiles: Dict[str, UserProfile] = {p.user_id: p for p in profiles}

    def add(self, profile: UserProfile) -> None:
        self._profiles[profile.user_id] = profile

    async def fetch_profile(self, user_id: str) -> Optional[UserProfile]:
        return self._profiles.get(user_id)
