"""Prompt enhancement via a local or remote Ollama model.

Connects via ollama.AsyncClient and asks for structured JSON output using
format='json' with a schema instruction appended to the system prompt.
Enhancement is best-effort: when the model is unreachable or answers with
something unusable, the caller keeps the original prompt.
"""

import json
import logging
from typing import Optional

import httpx
from ollama import AsyncClient, ResponseError
from pydantic import BaseModel, Field, ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

ENHANCER_SYSTEM_PROMPT = """You are a prompt engineer for text-to-video and text-to-image diffusion models.
Rewrite the user's idea into one vivid prompt.

RULES:
1. Keep the subject, action and setting of the original idea
2. Add concrete visual detail: lighting, lens, composition, style
3. For video, describe motion explicitly (camera move, subject movement)
4. Stay under 75 words, comma-separated phrases, no sentences about yourself
5. Put things to avoid into negative_prompt, never into prompt
"""


class EnhancedPrompt(BaseModel):
    """Structured output of the enhancer model."""

    prompt: str = Field(min_length=1, description="Rewritten positive prompt")
    negative_prompt: str = Field(default="", description="Things the model should avoid")


def _schema_instruction() -> str:
    schema_json = json.dumps(EnhancedPrompt.model_json_schema(), indent=2)
    return (
        "\n\nIMPORTANT: You MUST respond with a single JSON object (no markdown, "
        "no commentary, no code fences). The JSON must conform to this schema:\n"
        f"```json\n{schema_json}\n```\n"
        "Return ONLY the JSON object."
    )


def _strip_code_fence(raw: str) -> str:
    # Some models wrap JSON in markdown code fences
    stripped = raw.strip()
    if stripped.startswith("```"):
        first_newline = stripped.find("\n")
        stripped = stripped[first_newline + 1:] if first_newline != -1 else ""
        if stripped.endswith("```"):
            stripped = stripped[:-3].rstrip()
    return stripped


class PromptEnhancer:
    """Rewrites generation prompts with an Ollama chat model.

    Strips the "ollama/" prefix from model IDs before passing to the ollama
    library and always passes stream=False.
    """

    def __init__(
        self,
        model: str = "llama3.1",
        base_url: str = "http://localhost:11434",
        *,
        temperature: float = 0.6,
        max_retries: int = 2,
        client: Optional[AsyncClient] = None,
    ) -> None:
        self.model = model.removeprefix("ollama/")
        self.temperature = temperature
        self.max_retries = max(1, max_retries)
        self._client = client or AsyncClient(host=base_url)

    async def _chat(self, prompt: str, media: str) -> EnhancedPrompt:
        @retry(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type((ResponseError, ValidationError)),
            reraise=True,
        )
        async def _call() -> EnhancedPrompt:
            response = await self._client.chat(
                model=self.model,
                messages=[
                    {"role": "system", "content": ENHANCER_SYSTEM_PROMPT + _schema_instruction()},
                    {"role": "user", "content": f"Target medium: {media}\nIdea: {prompt}"},
                ],
                format="json",
                options={"temperature": self.temperature},
                stream=False,
            )
            return EnhancedPrompt.model_validate_json(_strip_code_fence(response.message.content))

        return await _call()

    async def enhance(self, prompt: str, *, media: str = "video") -> Optional[EnhancedPrompt]:
        """Return an enhanced prompt, or None when enhancement failed."""
        try:
            enhanced = await self._chat(prompt, media)
        except (ResponseError, ValidationError, httpx.HTTPError, ConnectionError) as e:
            logger.warning(
                "Prompt enhancement with %s failed, keeping original prompt: %s: %s",
                self.model, type(e).__name__, e,
            )
            return None
        logger.info("Enhanced prompt (%d -> %d chars)", len(prompt), len(enhanced.prompt))
        return enhanced
