"""State machine coordinating one avalanche analysis at a time."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, List, Optional

from models.errors import AnalysisError, AnalysisFailure, ErrorKind
from models.session_models import PhaseName, PhaseSnapshot
from services.image_codec import ImageCodec
from services.openai.analysis_client import RemoteAnalysisClient
from services.openai.prompt_builder import PromptBuilder
from services.openai.response_parser import ResponseParser
from utils.settings import AnalyzerSettings

LOGGER = logging.getLogger(__name__)

PhaseListener = Callable[[PhaseSnapshot], None]


class AnalysisCancelled(Exception):
	"""Raised inside a pipeline whose request was cancelled or superseded."""


class CancellationToken:
	"""Cooperative cancellation flag checked by the pipeline after every suspension point."""

	def __init__(self) -> None:
		self._cancelled = False

	@property
	def cancelled(self) -> bool:
		return self._cancelled

	def cancel(self) -> None:
		self._cancelled = True

	def raise_if_cancelled(self) -> None:
		if self._cancelled:
			raise AnalysisCancelled()


class AnalysisSession:
	"""Run the decode, encode, request, parse pipeline for one image at a time.

	The session is the single writer of its phase. Every write made by a pipeline
	task is tagged with the sequence number the task was started with; once a newer
	request has been started (or the current one cancelled), writes carrying an older
	sequence number are dropped.

	`start`, `cancel` and `reset` must be called from the event loop thread.
	"""

	def __init__(
		self,
		codec: ImageCodec,
		prompt_builder: PromptBuilder,
		client: RemoteAnalysisClient,
		parser: ResponseParser,
		*,
		timeout: Optional[float] = None,
	) -> None:
		self.codec = codec
		self.prompt_builder = prompt_builder
		self.client = client
		self.parser = parser
		self.timeout = timeout
		self._phase = PhaseSnapshot.idle()
		self._sequence = 0
		self._task: Optional[asyncio.Task] = None
		self._token: Optional[CancellationToken] = None
		self._listeners: List[PhaseListener] = []

	@classmethod
	def from_settings(
		cls,
		settings: AnalyzerSettings,
		client: Optional[RemoteAnalysisClient] = None,
	) -> "AnalysisSession":
		"""Create a session wired with components configured from *settings*."""
		return cls(
			codec=ImageCodec(
				max_dimension=settings.max_image_dimension,
				jpeg_quality=settings.jpeg_quality,
				max_transport_bytes=settings.max_transport_bytes,
			),
			prompt_builder=PromptBuilder(
				model=settings.openai_model,
				max_tokens=settings.max_tokens,
				detail=settings.image_detail,
			),
			client=client
			or RemoteAnalysisClient(base_url=settings.openai_base_url, default_timeout=settings.request_timeout),
			parser=ResponseParser(),
			timeout=settings.request_timeout,
		)

	@property
	def phase(self) -> PhaseSnapshot:
		return self._phase

	@property
	def sequence(self) -> int:
		return self._sequence

	@property
	def in_flight(self) -> bool:
		return self._phase.in_flight

	def subscribe(self, listener: PhaseListener) -> Callable[[], None]:
		"""Register a callback invoked with every new phase; returns an unsubscribe function."""
		self._listeners.append(listener)

		def unsubscribe() -> None:
			if listener in self._listeners:
				self._listeners.remove(listener)

		return unsubscribe

	def start(self, image_bytes: bytes, api_key: str) -> int:
		"""Begin analysing *image_bytes*, superseding any request still in flight.

		Returns:
			The sequence number identifying the new request.
		"""
		if self._phase.in_flight:
			LOGGER.info("Superseding analysis %s", self._sequence)
			self._abort_in_flight()
		elif self._phase.name.terminal:
			self._set_phase(PhaseSnapshot.idle(self._sequence))

		self._sequence += 1
		sequence = self._sequence
		token = CancellationToken()
		self._token = token
		self._set_phase(PhaseSnapshot(name=PhaseName.ENCODING, sequence=sequence))
		self._task = asyncio.get_running_loop().create_task(
			self._run(sequence, token, image_bytes, api_key),
			name=f"avalanche-analysis-{sequence}",
		)
		return sequence

	def cancel(self) -> PhaseSnapshot:
		"""Abort the in-flight request, if any, and return to Idle."""
		if not self._phase.in_flight:
			return self._phase
		LOGGER.info("Cancelling analysis %s", self._sequence)
		self._abort_in_flight()
		self._sequence += 1
		self._set_phase(PhaseSnapshot.idle(self._sequence))
		return self._phase

	def reset(self) -> PhaseSnapshot:
		"""Return a finished session to Idle; an in-flight request is cancelled."""
		if self._phase.in_flight:
			return self.cancel()
		if self._phase.name.terminal:
			self._set_phase(PhaseSnapshot.idle(self._sequence))
		return self._phase

	async def wait(self) -> PhaseSnapshot:
		"""Wait until no pipeline task is running and return the resulting phase."""
		while self._task is not None and not self._task.done():
			await asyncio.wait({self._task})
		return self._phase

	async def close(self) -> None:
		"""Cancel any in-flight request and wait for its task to unwind."""
		task = self._task
		self.cancel()
		if task is not None and not task.done():
			await asyncio.wait({task})
		self._listeners.clear()

	def _abort_in_flight(self) -> None:
		if self._token is not None:
			self._token.cancel()
		if self._task is not None and not self._task.done():
			self._task.cancel()

	async def _run(self, sequence: int, token: CancellationToken, image_bytes: bytes, api_key: str) -> None:
		start_time = time.monotonic()
		try:
			bitmap = await asyncio.to_thread(self.codec.decode, image_bytes)
			token.raise_if_cancelled()
			payload = await asyncio.to_thread(self.codec.encode_for_transport, bitmap)
			token.raise_if_cancelled()
			request = self.prompt_builder.build(payload)

			self._publish(sequence, PhaseSnapshot(name=PhaseName.REQUESTING, sequence=sequence))
			reply = await self.client.send(request, api_key, timeout=self.timeout)
			token.raise_if_cancelled()

			self._publish(sequence, PhaseSnapshot(name=PhaseName.PARSING, sequence=sequence))
			assessment = await asyncio.to_thread(self.parser.parse, reply)
			token.raise_if_cancelled()
		except AnalysisCancelled:
			LOGGER.debug("Analysis %s stopped after cancellation", sequence)
			return
		except AnalysisError as exc:
			LOGGER.warning("Analysis %s failed with %s: %s", sequence, exc.kind.value, exc.message)
			self._publish(
				sequence,
				PhaseSnapshot.failed(sequence, exc.to_failure(), latency=time.monotonic() - start_time),
			)
			return
		except Exception:
			LOGGER.exception("Unexpected error during analysis %s", sequence)
			failure = AnalysisFailure(
				kind=ErrorKind.INTERNAL_ERROR,
				message="An unexpected error interrupted the analysis.",
			)
			self._publish(sequence, PhaseSnapshot.failed(sequence, failure, latency=time.monotonic() - start_time))
			return

		usage = reply.usage()
		self._publish(
			sequence,
			PhaseSnapshot.succeeded(
				sequence,
				assessment,
				input_tokens=usage["input_tokens"],
				output_tokens=usage["output_tokens"],
				latency=time.monotonic() - start_time,
			),
		)
		LOGGER.info(
			"Analysis %s succeeded: risk=%s confidence=%.2f",
			sequence,
			assessment.overall_risk.value,
			assessment.confidence,
		)

	def _publish(self, sequence: int, snapshot: PhaseSnapshot) -> bool:
		"""Replace the phase unless *sequence* belongs to a superseded request."""
		if sequence != self._sequence:
			LOGGER.debug(
				"Dropping stale %s result of analysis %s (current is %s)",
				snapshot.name.value,
				sequence,
				self._sequence,
			)
			return False
		self._set_phase(snapshot)
		return True

	def _set_phase(self, snapshot: PhaseSnapshot) -> None:
		LOGGER.debug("Analysis %s phase -> %s", snapshot.sequence, snapshot.name.value)
		self._phase = snapshot
		for listener in list(self._listeners):
			try:
				listener(snapshot)
			except Exception:  # pylint: disable=broad-exception-caught
				LOGGER.exception("Phase listener raised; continuing")
