"""Compose analysis requests from the fixed instruction and an encoded image."""

from models.analysis_models import AnalysisRequest
from models.image_models import EncodedPayload
from services.openai.media_inputs import build_messages
from services.openai.prompts import PROMPT_VERSION, build_system_prompt, build_user_prompt
from utils.settings import DEFAULT_MODEL


class PromptBuilder:
    """Build a fresh `AnalysisRequest` for every analysis."""

    def __init__(self, model: str = DEFAULT_MODEL, max_tokens: int = 600, detail: str = "high") -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.detail = detail
        self.system_prompt = build_system_prompt()
        self.user_prompt = build_user_prompt()

    def build(self, payload: EncodedPayload) -> AnalysisRequest:
        """Merge the versioned instruction with the image payload."""
        return AnalysisRequest(
            model=self.model,
            messages=build_messages(self.system_prompt, self.user_prompt, payload, detail=self.detail),
            max_tokens=self.max_tokens,
            prompt_version=PROMPT_VERSION,
            temperature=0.0,
            response_format={"type": "json_object"},
        )
