"""
PROFILE STORE MODULE
====================

Holds the signed-in user's profile and mirrors it to the remote store without
a write per keystroke.

DEBOUNCE:
  Every update() cancels the pending timer and starts a new one. Only when the
  profile has been quiet for `delay` seconds does a write happen, and it sends
  the profile as it is at that moment (i.e. the values of the last update).
  A burst of edits therefore produces exactly one write.

ORDERING:
  Writes go through OutboundSync under the "profile" key, so a slow upsert
  finishes before the next one starts and the newest snapshot always lands last.

SAVING FLAG:
  is_saving is True from the moment a write is queued until `min_saving`
  seconds after it completes, so a near-instant write still shows visible
  feedback. A failed write is logged, not retried, and the flag still drops.

Without a remote store (or before sign-in) updates are purely local. With one,
update() needs a running event loop for the timer and raises before touching
the profile when there is none.
"""

import asyncio
import logging
from typing import Any, Optional, Set

from pydantic import ValidationError

from config import MIN_SAVING_INDICATOR_SECONDS, PROFILE_SYNC_DELAY_SECONDS
from zysculpt.models import AuthUser, UserProfile
from zysculpt.services.remote_store import RemoteStore, profile_fields_from_row, profile_to_row
from zysculpt.services.sync import OutboundSync

logger = logging.getLogger("Zysculpt")

PROFILE_SYNC_KEY = "profile"


class ProfileStore:
    """One mutable profile per process, debounced into the remote store."""

    def __init__(
        self,
        remote: Optional[RemoteStore] = None,
        delay: float = PROFILE_SYNC_DELAY_SECONDS,
        min_saving: float = MIN_SAVING_INDICATOR_SECONDS,
        profile: Optional[UserProfile] = None,
        user_id: Optional[str] = None,
        sync: Optional[OutboundSync] = None,
    ):
        self.remote = remote
        self.delay = delay
        self.min_saving = min_saving
        self.user_id = user_id
        self.sync = sync or OutboundSync(enabled=remote is not None)
        self._profile = profile or UserProfile()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._writes: Set[asyncio.Task] = set()
        self._in_flight = 0

    @property
    def profile(self) -> UserProfile:
        return self._profile

    @property
    def is_saving(self) -> bool:
        return self._in_flight > 0

    @property
    def has_pending_write(self) -> bool:
        return self._timer is not None

    @property
    def _remote_ready(self) -> bool:
        return self.remote is not None and self.user_id is not None

    # ------------------------------------------------------------------ edits

    def update(self, **fields: Any) -> UserProfile:
        """Apply an edit locally right away, then (re)start the debounce timer."""
        profile = UserProfile.model_validate({**self._profile.model_dump(), **fields})
        loop = asyncio.get_running_loop() if self._remote_ready else None
        self._profile = profile
        if loop is not None:
            self._schedule(loop)
        return self._profile

    def _schedule(self, loop: asyncio.AbstractEventLoop) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self.delay, self._fire)

    def _fire(self) -> None:
        self._timer = None
        profile = self._profile
        self._in_flight += 1
        write = self.sync.submit(PROFILE_SYNC_KEY, "profile save", lambda: self._upsert(profile))
        task = asyncio.ensure_future(self._settle(write))
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)

    async def _upsert(self, profile: UserProfile) -> None:
        await self.remote.upsert_profile(profile_to_row(profile, self.user_id))
        logger.info("Profile saved")

    async def _settle(self, write: Optional[asyncio.Task]) -> None:
        try:
            if write is not None:
                await asyncio.wait([write])
            await asyncio.sleep(self.min_saving)
        finally:
            self._in_flight -= 1

    async def flush(self) -> None:
        """Write now if an edit is still waiting for its timer, then wait for all writes."""
        if self._timer is not None:
            self._timer.cancel()
            self._fire()
        await self.drain()

    async def drain(self) -> None:
        while self._writes:
            await asyncio.wait(list(self._writes))

    # -------------------------------------------------------------- bootstrap

    async def bootstrap(self, user: AuthUser) -> UserProfile:
        """
        Build the profile after sign-in: seed from the auth metadata, then let
        the stored remote row (if any) override it field by field.
        """
        self.user_id = user.id
        meta = user.metadata or {}
        seeded = {
            "full_name": meta.get("full_name") or meta.get("name") or "",
            "email": user.email or meta.get("email") or "",
        }
        data = {**self._profile.model_dump(), **{k: v for k, v in seeded.items() if v}}

        if self.remote is not None:
            try:
                row = await self.remote.fetch_profile(user.id)
            except Exception as e:
                logger.error("Could not fetch profile for %s: %s", user.id, e)
                row = None
            if row:
                data.update(profile_fields_from_row(row))

        try:
            self._profile = UserProfile.model_validate(data)
        except ValidationError as e:
            logger.warning("Stored profile is invalid, using auth metadata only: %s", e)
            self._profile = UserProfile.model_validate(
                {**self._profile.model_dump(), **{k: v for k, v in seeded.items() if v}}
            )
        return self._profile
