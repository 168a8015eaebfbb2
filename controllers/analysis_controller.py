"""Analysis session helpers for the HTTP layer."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException, Request

from services.analysis.session_store import AnalysisSessionStore


def _store(request: Request) -> AnalysisSessionStore:
	store = getattr(request.app.state, "session_store", None)
	if store is None:
		raise HTTPException(status_code=500, detail="Analysis session store not initialized.")
	return store


async def start_analysis(
	request: Request,
	image_bytes: bytes,
	api_key: Optional[str],
	session_id: Optional[str] = None,
	wait: bool = False,
) -> Dict[str, Any]:
	"""Start (or supersede) an analysis and return its handle and current phase."""
	if not image_bytes:
		raise HTTPException(status_code=400, detail="Uploaded image is empty.")
	if not api_key or not api_key.strip():
		raise HTTPException(status_code=401, detail="An OpenAI API key is required.")

	store = _store(request)
	try:
		handle = store.start_analysis(image_bytes, api_key, handle=session_id)
	except KeyError as exc:
		raise HTTPException(status_code=404, detail=str(exc)) from exc

	session = store.get(handle)
	snapshot = await session.wait() if wait else session.phase
	return {"session_id": handle, **snapshot.to_dict()}


async def get_analysis(request: Request, session_id: str) -> Dict[str, Any]:
	"""Return the current phase snapshot of a session."""
	try:
		snapshot = _store(request).get_phase(session_id)
	except KeyError as exc:
		raise HTTPException(status_code=404, detail=str(exc)) from exc
	return {"session_id": session_id, **snapshot.to_dict()}


async def cancel_analysis(request: Request, session_id: str) -> Dict[str, Any]:
	"""Cancel the in-flight request of a session."""
	try:
		snapshot = _store(request).cancel(session_id)
	except KeyError as exc:
		raise HTTPException(status_code=404, detail=str(exc)) from exc
	return {"session_id": session_id, **snapshot.to_dict()}


async def reset_analysis(request: Request, session_id: str) -> Dict[str, Any]:
	"""Return a finished session to idle."""
	try:
		snapshot = _store(request).reset(session_id)
	except KeyError as exc:
		raise HTTPException(status_code=404, detail=str(exc)) from exc
	return {"session_id": session_id, **snapshot.to_dict()}


async def discard_analysis(request: Request, session_id: str) -> Dict[str, Any]:
	"""Cancel and forget a session."""
	try:
		await _store(request).discard(session_id)
	except KeyError as exc:
		raise HTTPException(status_code=404, detail=str(exc)) from exc
	return {"session_id": session_id, "discarded": True}
