"""Simple in-memory store for analysis sessions."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Optional
from uuid import uuid4

from models.session_models import PhaseSnapshot
from services.analysis.session import AnalysisSession

LOGGER = logging.getLogger(__name__)

SessionFactory = Callable[[], AnalysisSession]


class AnalysisSessionStore:
	"""Own analysis sessions by opaque handle for the presentation layer."""

	def __init__(
		self,
		session_factory: SessionFactory,
		idle_ttl: Optional[float] = None,
		clock: Callable[[], float] = time.time,
	) -> None:
		self._session_factory = session_factory
		self._idle_ttl = idle_ttl
		self._clock = clock
		self._sessions: Dict[str, AnalysisSession] = {}

	def __len__(self) -> int:
		return len(self._sessions)

	def create(self) -> str:
		"""Create an idle session and return its handle."""
		self.evict_idle()
		handle = uuid4().hex
		self._sessions[handle] = self._session_factory()
		return handle

	def evict_idle(self) -> int:
		"""Forget sessions that have sat outside an analysis for longer than the idle TTL."""
		if self._idle_ttl is None:
			return 0
		now = self._clock()
		stale = [
			handle
			for handle, session in self._sessions.items()
			if not session.in_flight and now - session.phase.updated_at > self._idle_ttl
		]
		for handle in stale:
			del self._sessions[handle]
		if stale:
			LOGGER.info("Evicted %s idle analysis session(s)", len(stale))
		return len(stale)

	def get(self, handle: str) -> AnalysisSession:
		"""Return a session or raise KeyError if missing."""
		session = self._sessions.get(handle)
		if session is None:
			raise KeyError(f"Analysis session {handle} not found")
		return session

	def start_analysis(self, image_bytes: bytes, api_key: str, handle: Optional[str] = None) -> str:
		"""Start an analysis and return the handle of the session running it.

		Passing the handle of an existing session supersedes whatever that session is doing.
		"""
		if handle is None:
			handle = self.create()
		session = self.get(handle)
		session.start(image_bytes, api_key)
		return handle

	def get_phase(self, handle: str) -> PhaseSnapshot:
		return self.get(handle).phase

	def cancel(self, handle: str) -> PhaseSnapshot:
		return self.get(handle).cancel()

	def reset(self, handle: str) -> PhaseSnapshot:
		return self.get(handle).reset()

	async def discard(self, handle: str) -> None:
		"""Cancel and forget a session."""
		session = self._sessions.pop(handle, None)
		if session is None:
			raise KeyError(f"Analysis session {handle} not found")
		await session.close()

	async def close_all(self) -> None:
		"""Cancel every session; used on application shutdown."""
		sessions = list(self._sessions.values())
		self._sessions.clear()
		if sessions:
			LOGGER.info("Closing %s analysis session(s)", len(sessions))
			await asyncio.gather(*(session.close() for session in sessions))
