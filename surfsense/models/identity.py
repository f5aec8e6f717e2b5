"""Pydantic models for the signed-in identity and recording status."""

from __future__ import annotations

from pydantic import Field

from surfsense.models.base import SurfSenseBase


class UserIdentity(SurfSenseBase):
    """The identity a caller signs in with.

    Display fields (``username``, ``email``) may be overridden by the remote
    ``users`` profile once it has been fetched.
    """

    user_id: str = Field(min_length=1, max_length=128)
    username: str = "User"
    email: str | None = None


class RecordingStatus(SurfSenseBase):
    is_recording: bool
    session_id: str | None = None
    point_count: int = 0
