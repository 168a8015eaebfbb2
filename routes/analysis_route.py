"""FastAPI routes for avalanche analysis sessions."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, File, Form, Header, HTTPException, Request, UploadFile
from pydantic import BaseModel

from controllers.analysis_controller import (
	cancel_analysis,
	discard_analysis,
	get_analysis,
	reset_analysis,
	start_analysis,
)

router = APIRouter(prefix="/analyses", tags=["analyses"])


class AnalysisFailureBody(BaseModel):
	kind: str
	stage: str
	message: str
	retryable: bool
	retry_after: Optional[float] = None


class AnalysisPhase(BaseModel):
	session_id: str
	phase: str
	sequence: int
	assessment: Optional[Dict[str, Any]] = None
	error: Optional[AnalysisFailureBody] = None
	input_tokens: Optional[int] = None
	output_tokens: Optional[int] = None
	latency: Optional[float] = None
	updated_at: float


class DiscardResult(BaseModel):
	session_id: str
	discarded: bool


@router.post("", response_model=AnalysisPhase)
async def start_analysis_route(
	request: Request,
	image: UploadFile = File(...),
	api_key: Optional[str] = Form(None),
	session_id: Optional[str] = Form(None),
	wait: bool = Form(False),
	x_openai_key: Optional[str] = Header(None),
):
	"""Upload a terrain photograph and start analysing it.

	The API key may be sent as the `api_key` form field or the `X-OpenAI-Key` header.
	It is used for this request only and never stored.
	"""
	try:
		image_bytes = await image.read()
	except Exception as exc:  # pylint: disable=broad-exception-caught
		raise HTTPException(status_code=400, detail="Unable to read uploaded image.") from exc
	try:
		return await start_analysis(request, image_bytes, api_key or x_openai_key, session_id, wait)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{session_id}", response_model=AnalysisPhase)
async def get_analysis_route(request: Request, session_id: str):
	return await get_analysis(request, session_id)


@router.post("/{session_id}/cancel", response_model=AnalysisPhase)
async def cancel_analysis_route(request: Request, session_id: str):
	return await cancel_analysis(request, session_id)


@router.post("/{session_id}/reset", response_model=AnalysisPhase)
async def reset_analysis_route(request: Request, session_id: str):
	return await reset_analysis(request, session_id)


@router.delete("/{session_id}", response_model=DiscardResult)
async def discard_analysis_route(request: Request, session_id: str):
	return await discard_analysis(request, session_id)
