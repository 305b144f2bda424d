"""
Claude integration for confirming low-confidence layout classifications.

The model is shown a sample of the document and the classifier's verdict and
asked to confirm or reject it. A confirmation raises the descriptor confidence
by a fixed boost; a rejection leaves the descriptor untouched. The model never
picks the layout itself.
"""
import asyncio
import json
import time
from typing import Any, Optional, Union

import httpx
import structlog

from pricelist_engine.config.settings import ClaudeSettings
from pricelist_engine.core.exceptions import EnhancementError
from pricelist_engine.layout.enhancement import LayoutEnhancer, apply_boost
from pricelist_engine.models.domain import LayoutDescriptor, PdfContent, SpreadsheetContent

logger = structlog.get_logger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
PDF_SAMPLE_LINES = 40
SHEET_SAMPLE_ROWS = 10
MAX_SAMPLE_SHEETS = 3

SYSTEM_MESSAGE = (
    "You review the layout classification of supplier pricelists. "
    "Answer whether the proposed layout type fits the sample."
)


def build_layout_prompt(descriptor: LayoutDescriptor, content: Union[PdfContent, SpreadsheetContent]) -> str:
    """Prompt with the proposed layout and a bounded sample of the document"""
    if isinstance(content, SpreadsheetContent):
        sample_parts = []
        for name, rows in list(content.sheets.items())[:MAX_SAMPLE_SHEETS]:
            sample_parts.append(f"Sheet '{name}':")
            sample_parts.extend(
                " | ".join("" if cell is None else str(cell) for cell in row)
                for row in rows[:SHEET_SAMPLE_ROWS]
            )
        sample = "\n".join(sample_parts)
    else:
        sample = "\n".join(content.non_blank_lines[:PDF_SAMPLE_LINES])

    return f"""
    Supplier Pricelist Layout Review:

    Proposed classification:
    - Document kind: {descriptor.document_kind.value}
    - Layout type: {descriptor.layout_type.value}
    - Subtype: {descriptor.subtype}
    - Classifier confidence: {descriptor.confidence}

    Document sample:
    {sample}

    Task: Decide whether the proposed layout type describes how products and
    prices are arranged in this document.

    Respond with JSON:
    {{
        "confirmed": true,
        "reasoning": "Short explanation"
    }}
    """


def parse_confirmation(text: str) -> dict[str, Any]:
    """Extract the JSON object from a model reply, tolerating surrounding prose."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise EnhancementError(f"No JSON object in Claude response: {text[:200]}")
    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError as e:
        raise EnhancementError(f"Invalid JSON response from Claude: {e}", original_exception=e) from e
    if not isinstance(data.get("confirmed"), bool):
        raise EnhancementError("Claude response missing boolean 'confirmed'")
    return data


class ClaudeLayoutEnhancer(LayoutEnhancer):
    """
    Layout enhancer backed by the Anthropic messages API.

    Features:
    - Retries on rate limiting and timeouts
    - Minimum interval between requests
    - Token usage tracking
    """

    def __init__(
        self,
        settings: ClaudeSettings,
        boost: float = 0.1,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not settings.api_key:
            raise EnhancementError("Claude API key is not configured")

        self.settings = settings
        self.boost = boost
        self.logger = logger.bind(component="claude_layout_enhancer")

        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.timeout_seconds),
            limits=httpx.Limits(max_connections=5, max_keepalive_connections=2),
        )

        self._total_tokens_used = 0
        self._requests = 0
        self._confirmations = 0
        self._last_request_time = 0.0

        self.logger.info("Claude layout enhancer initialized", model=settings.model)

    async def enhance(
        self, descriptor: LayoutDescriptor, content: Union[PdfContent, SpreadsheetContent]
    ) -> LayoutDescriptor:
        """
        Confirm or reject the descriptor's layout.

        Raises:
            EnhancementError: If the API call fails or the reply is unusable
        """
        request_logger = self.logger.bind(
            layout_type=descriptor.layout_type.value, confidence=descriptor.confidence
        )

        reply = await self._call_claude_api(build_layout_prompt(descriptor, content))
        verdict = parse_confirmation(reply)

        if not verdict["confirmed"]:
            request_logger.info("Layout not confirmed", reasoning=verdict.get("reasoning"))
            return descriptor

        self._confirmations += 1
        enhanced = apply_boost(descriptor, self.boost)
        request_logger.info("Layout confirmed", new_confidence=enhanced.confidence)
        return enhanced

    async def _call_claude_api(self, prompt: str) -> str:
        await self._enforce_rate_limit()

        payload = {
            "model": self.settings.model,
            "max_tokens": self.settings.max_tokens,
            "temperature": self.settings.temperature,
            "system": SYSTEM_MESSAGE,
            "messages": [{"role": "user", "content": prompt + "\n\nRespond with valid JSON only."}],
        }
        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.settings.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

        for attempt in range(self.settings.max_retries + 1):
            self._requests += 1
            try:
                response = await self.client.post(self.settings.api_url, json=payload, headers=headers)
            except httpx.TimeoutException as e:
                if attempt < self.settings.max_retries:
                    self.logger.warning(
                        "Request timeout, retrying",
                        attempt=attempt + 1,
                        timeout=self.settings.timeout_seconds,
                    )
                    await asyncio.sleep(1)
                    continue
                raise EnhancementError(
                    f"Request timeout after {self.settings.timeout_seconds}s", original_exception=e
                ) from e
            except httpx.HTTPError as e:
                raise EnhancementError(f"API call failed: {e}", original_exception=e) from e

            if response.status_code == 200:
                data = response.json()
                usage = data.get("usage", {})
                tokens_used = usage.get("input_tokens", 0) + usage.get("output_tokens", 0)
                self._total_tokens_used += tokens_used
                self.logger.debug("Claude API call successful", tokens_used=tokens_used, attempt=attempt + 1)
                return (data.get("content") or [{}])[0].get("text", "")

            if response.status_code == 429 and attempt < self.settings.max_retries:
                wait_time = (attempt + 1) * 2
                self.logger.warning("Rate limited, retrying", attempt=attempt + 1, wait_time=wait_time)
                await asyncio.sleep(wait_time)
                continue

            self.logger.error("Claude API error", status_code=response.status_code)
            raise EnhancementError(
                f"HTTP {response.status_code}: {response.text[:200]}", status_code=response.status_code
            )

        raise EnhancementError("Max retries exceeded")

    async def _enforce_rate_limit(self) -> None:
        """Enforce minimum interval between requests"""
        elapsed = time.monotonic() - self._last_request_time
        if elapsed < self.settings.min_request_interval:
            await asyncio.sleep(self.settings.min_request_interval - elapsed)
        self._last_request_time = time.monotonic()

    def get_usage_statistics(self) -> dict[str, int]:
        return {
            "requests": self._requests,
            "confirmations": self._confirmations,
            "total_tokens_used": self._total_tokens_used,
        }

    async def close(self) -> None:
        """Close HTTP client"""
        await self.client.aclose()
        self.logger.info("Claude layout enhancer closed", total_tokens_used=self._total_tokens_used)
