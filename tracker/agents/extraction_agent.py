"""VisionExtractionAgent: extraction of card transactions from statement frames using a vision LLM.

This module defines the VisionExtractionAgent class, which sends batches of frames to a vision-capable chat model,
retries rate-limited calls with exponential backoff, and parses the (possibly truncated) JSON array it returns into
TransactionCandidate objects.
"""

import base64
import time
from collections.abc import Callable
from typing import Any

import httpx
from groq import Groq
from pydantic import ValidationError

from tracker.agents.base import BaseAgent
from tracker.agents.prompts import SYSTEM_PROMPT, USER_PROMPT, USER_PROMPT_LOG_LABEL
from tracker.agents.response_parser import parse_transaction_array
from tracker.core.models import TransactionCandidate
from tracker.core.retry import is_rate_limit_error, with_rate_limit_retry
from tracker.core.settings import Settings
from tracker.core.utils import get_logger

MAX_OUTPUT_LOG_LEN = 500

logger = get_logger("card-tracker.agent")


class ExtractionError(RuntimeError):
    """Raised when the vision model call fails for a reason other than rate limiting."""


def _get_color(color: str) -> str:
    try:
        from colorlog.escape_codes import escape_codes as _codes

        return _codes.get(color, "")
    except Exception:
        return ""


def frame_to_data_url(frame: bytes) -> str:
    """Encode raw image bytes as a base64 data URL for the chat API."""
    kind = _sniff_image_type(frame)
    return f"data:image/{kind};base64,{base64.b64encode(frame).decode('ascii')}"


def _sniff_image_type(frame: bytes) -> str:
    if frame.startswith(b"\x89PNG"):
        return "png"
    if frame[:4] == b"RIFF" and frame[8:12] == b"WEBP":
        return "webp"
    return "jpeg"


def build_groq_client(settings: Settings, http_client: httpx.Client | None = None) -> Groq:
    """Create the Groq client with SDK retries disabled; rate limits are retried by `with_rate_limit_retry` alone."""
    return Groq(api_key=settings.groq_api_key, max_retries=0, http_client=http_client)


def batched(frames: list[bytes], size: int) -> list[list[bytes]]:
    """Split frames into consecutive batches of at most `size` frames."""
    if size < 1:
        msg = f"Batch size must be positive, got {size}"
        raise ValueError(msg)
    return [frames[i : i + size] for i in range(0, len(frames), size)]


class VisionExtractionAgent(BaseAgent):
    """Agent responsible for calling the vision model and turning its answer into transaction candidates."""

    def __init__(
        self,
        llm_client: Any,
        settings: Settings,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the agent with an LLM client (Groq-compatible chat completions API) and settings."""
        self.llm_client = llm_client
        self.settings = settings
        self.sleep = sleep

    def extract(self, frames: list[bytes]) -> list[TransactionCandidate]:
        """Extract candidates from all frames, one model call per batch, concatenating the results."""
        batches = batched(frames, self.settings.frames_per_batch)
        candidates: list[TransactionCandidate] = []
        for index, batch in enumerate(batches, start=1):
            batch_info = f"[BATCH {index}/{len(batches)}] "
            batch_candidates = self.extract_batch(batch, batch_info)
            logger.info(f"{batch_info}Extracted {len(batch_candidates)} candidates from {len(batch)} frames")
            candidates.extend(batch_candidates)
        return candidates

    def extract_batch(self, frames: list[bytes], batch_info: str = "") -> list[TransactionCandidate]:
        """Send one batch of frames to the model and parse the response."""
        yellow = _get_color("yellow")
        green = _get_color("green")
        reset = _get_color("reset")
        logger.info(f"{yellow}{batch_info}PROMPT: {USER_PROMPT_LOG_LABEL}{reset}")
        raw_output = with_rate_limit_retry(
            lambda: self._call_model(frames, batch_info),
            max_attempts=self.settings.rate_limit_max_attempts,
            base_delay=self.settings.rate_limit_base_delay,
            sleep=self.sleep,
        )
        logger.info(f"{green}{batch_info}OUTPUT: {raw_output[:MAX_OUTPUT_LOG_LEN]}{reset}")
        return self._to_candidates(parse_transaction_array(raw_output), batch_info)

    def _build_messages(self, frames: list[bytes]) -> list[dict[str, Any]]:
        content: list[dict[str, Any]] = [{"type": "text", "text": USER_PROMPT}]
        content.extend({"type": "image_url", "image_url": {"url": frame_to_data_url(frame)}} for frame in frames)
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": content},
        ]

    def _call_model(self, frames: list[bytes], batch_info: str) -> str:
        """Make a single chat completion call; rate-limit errors propagate untouched for the retry wrapper."""
        logger.info(f"{batch_info}AGENT: Calling vision model with {len(frames)} frames...")
        try:
            completion = self.llm_client.chat.completions.create(
                model=self.settings.vision_model,
                messages=self._build_messages(frames),
                temperature=self.settings.vision_temperature,
                max_completion_tokens=self.settings.vision_max_completion_tokens,
                top_p=self.settings.vision_top_p,
                stream=self.settings.vision_stream,
            )
        except Exception as exc:
            if is_rate_limit_error(exc):
                raise
            msg = f"Vision API call failed: {exc}"
            logger.exception(msg)
            raise ExtractionError(msg) from exc
        return self._collect_llm_output(completion)

    def _collect_llm_output(self, completion: Any) -> str:
        """Collect the full text from a streamed or non-streamed completion."""
        if not self.settings.vision_stream:
            return completion.choices[0].message.content or ""
        raw_output = ""
        try:
            for chunk in completion:
                raw_output += chunk.choices[0].delta.content or ""
        except Exception as exc:
            msg = f"Vision API streaming error: {exc}"
            logger.exception(msg)
            raise ExtractionError(msg) from exc
        return raw_output

    def _to_candidates(self, rows: list[dict[str, Any]], batch_info: str) -> list[TransactionCandidate]:
        candidates = []
        for row in rows:
            try:
                candidates.append(TransactionCandidate.model_validate(row))
            except ValidationError as exc:
                logger.warning(f"{batch_info}Skipping malformed row {row}: {exc.error_count()} validation errors")
        return candidates
