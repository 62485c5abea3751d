"""
Text-generation seam + defensive JSON parsing of model output.

Workflows only depend on TextGenerator.generate(); AnthropicTextGenerator is
the production implementation (Claude Messages API). Tests pass a fake.
"""

import json
import re
from typing import Any, Optional, Protocol

import anthropic

_FENCE_OPEN_RE = re.compile(r"^\s*```(?:json)?", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"```?\s*$", re.IGNORECASE)


class TextGenerator(Protocol):
    async def generate(
        self,
        instructions: str,
        input: str,
        temperature: float = 0.5,
        max_output_tokens: int = 1200,
    ) -> str: ...


class AnthropicTextGenerator:
    def __init__(self, client: anthropic.AsyncAnthropic, model: str):
        self.client = client
        self.model = model

    async def generate(
        self,
        instructions: str,
        input: str,
        temperature: float = 0.5,
        max_output_tokens: int = 1200,
    ) -> str:
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=max_output_tokens,
            temperature=temperature,
            system=instructions,
            messages=[{"role": "user", "content": input}],
        )
        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        ).strip()
        if not text:
            raise ValueError("Model returned no text output.")
        return text


def build_text_generator(api_key: str, model: str) -> Optional[AnthropicTextGenerator]:
    """None when ANTHROPIC_API_KEY is not configured."""
    if not api_key:
        return None
    return AnthropicTextGenerator(anthropic.AsyncAnthropic(api_key=api_key), model)


# ── Parsing ───────────────────────────────────────────────────────────────────

def strip_code_fences(text: str) -> str:
    return _FENCE_CLOSE_RE.sub("", _FENCE_OPEN_RE.sub("", text or "")).strip()


def extract_json_block(text: str) -> str:
    """Outermost {...} span, or the stripped text when there is none."""
    first = text.find("{")
    last = text.rfind("}")
    if first != -1 and last > first:
        return text[first:last + 1]
    return text.strip()


def safe_parse_json(text: str) -> Any:
    """
    Strip fences → parse → on failure parse the outer brace span.
    Raises ValueError (json.JSONDecodeError) when neither parses.
    """
    stripped = strip_code_fences(text)
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        return json.loads(extract_json_block(stripped))
