from __future__ import annotations

from enum import Enum
from typing import Any

from listings_client.services.resources import MutationResult, ProfileResource

PROFILE_FIELDS = ("name", "description", "website", "email", "country", "city", "founded_year")


class ProfileState(str, Enum):
    EMPTY = "Empty"
    SAVED_READ_ONLY = "SavedReadOnly"
    EDITING = "Editing"


class InvalidProfileTransition(Exception):
    """Raised when an event is not valid in the current profile state."""


class ProfileForm:
    """Organization profile editor.

    ``Empty`` is editable until the first save. A successful load with data
    seeds the fields once and moves to ``SavedReadOnly``; later loads never
    overwrite what the user is editing.
    """

    def __init__(self, resource: ProfileResource) -> None:
        self.resource = resource
        self.state = ProfileState.EMPTY
        self.fields: dict[str, Any] = {name: None for name in PROFILE_FIELDS}
        self._seeded = False

    @property
    def read_only(self) -> bool:
        return self.state is ProfileState.SAVED_READ_ONLY

    async def load(self) -> ProfileState:
        data = await self.resource.load()
        if data and not self._seeded:
            self.fields = {name: data.get(name) for name in PROFILE_FIELDS}
            self._seeded = True
            if self.state is ProfileState.EMPTY:
                self.state = ProfileState.SAVED_READ_ONLY
        return self.state

    def edit(self) -> None:
        if self.state is not ProfileState.SAVED_READ_ONLY:
            raise InvalidProfileTransition(f"cannot start editing from {self.state.value}")
        self.state = ProfileState.EDITING

    def set_field(self, name: str, value: Any) -> None:
        if self.read_only:
            raise InvalidProfileTransition("profile is read-only; click edit first")
        if name not in PROFILE_FIELDS:
            raise KeyError(f"unknown profile field: {name}")
        self.fields[name] = value

    async def save(self) -> MutationResult:
        if self.read_only:
            raise InvalidProfileTransition("profile is read-only; click edit first")
        result = await self.resource.save(dict(self.fields))
        if result.ok:
            self.fields = {name: result.data.get(name) for name in PROFILE_FIELDS}
            self._seeded = True
            self.state = ProfileState.SAVED_READ_ONLY
        return result
