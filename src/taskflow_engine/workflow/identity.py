"""Actor identity and role lookups supplied by the authentication layer.

The engine does not trust a caller-supplied ``actor_id`` on its own: it is
checked against the session identity bound by the auth layer and resolved
through the actor directory before any transition guard runs.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from enum import StrEnum
from typing import Protocol

from pydantic import BaseModel

from taskflow_engine.storage.models import TaskRecord


class UserRole(StrEnum):
    ADMIN = "admin"
    TEAM_LEADER = "team_leader"
    USER = "user"


class Actor(BaseModel):
    user_id: str
    role: UserRole = UserRole.USER
    team_id: str | None = None


class ActorDirectory(Protocol):
    def get_actor(self, user_id: str) -> Actor | None: ...


class SessionIdentity(Protocol):
    def current_user_id(self) -> str | None: ...


class InMemoryActorDirectory:
    """Directory backed by a dict; the CRUD layer keeps it in sync."""

    def __init__(self, actors: Iterable[Actor] = ()) -> None:
        self._actors: dict[str, Actor] = {actor.user_id: actor for actor in actors}

    def add(self, actor: Actor) -> None:
        self._actors[actor.user_id] = actor

    def get_actor(self, user_id: str) -> Actor | None:
        return self._actors.get(user_id)


_session_user: ContextVar[str | None] = ContextVar("taskflow_session_user", default=None)


class ContextSessionIdentity:
    """Reads the authenticated user bound to the current execution context."""

    def current_user_id(self) -> str | None:
        return _session_user.get()


@contextmanager
def authenticated_as(user_id: str) -> Iterator[None]:
    """Bind ``user_id`` as the authenticated session for the enclosed block."""
    token = _session_user.set(user_id)
    try:
        yield
    finally:
        _session_user.reset(token)


def is_assignee(actor: Actor, task: TaskRecord) -> bool:
    return actor.user_id == task.assigned_user_id


def is_approver(actor: Actor, task: TaskRecord) -> bool:
    """Creator, lead of the task's team, or an admin."""
    if actor.role is UserRole.ADMIN:
        return True
    if actor.user_id == task.created_by_id:
        return True
    return actor.role is UserRole.TEAM_LEADER and actor.team_id == task.team_id


def is_participant(actor: Actor, task: TaskRecord) -> bool:
    return is_assignee(actor, task) or is_approver(actor, task)


def can_create_for_team(actor: Actor, team_id: str) -> bool:
    if actor.role is UserRole.ADMIN:
        return True
    return actor.role is UserRole.TEAM_LEADER and actor.team_id == team_id
