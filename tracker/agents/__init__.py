"""Agents package: provides the agent base class and the vision extraction agent for statement frames."""

from .base import BaseAgent  # noqa: F401
from .extraction_agent import ExtractionError, VisionExtractionAgent  # noqa: F401
