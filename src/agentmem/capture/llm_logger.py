"""
LLM interaction logging for extraction calls.

Writes requests, responses and errors of extraction providers to a
dedicated rotating log file when LLM logging is enabled in configuration.
"""

import json
import logging
import logging.handlers
import time
from datetime import datetime, timezone
from typing import Optional

from agentmem.capture.providers.base import LLMResponse
from agentmem.config import settings

logger = logging.getLogger(__name__)


class LLMLogger:
    """
    Logger for extraction provider API interactions.

    Entries are single-line JSON payloads prefixed with their type, so the
    file can be grepped or parsed line by line.
    """

    def __init__(self):
        self.llm_logger = logging.getLogger("agentmem.llm")
        self.enabled = settings.llm_logging_enabled

        if self.enabled and settings.log_file_enabled:
            self._setup_file_handler()

    def _setup_file_handler(self) -> None:
        """Setup dedicated file handler for LLM logs."""
        llm_dir = settings.log_directory / "llm"
        llm_dir.mkdir(parents=True, exist_ok=True)

        handler = logging.handlers.RotatingFileHandler(
            llm_dir / "requests.log",
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
            encoding="utf-8",
        )
        handler.setFormatter(
            logging.Formatter(
                fmt="[%(asctime)s] [%(levelname)s] %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

        self.llm_logger.addHandler(handler)
        self.llm_logger.setLevel(logging.INFO)
        self.llm_logger.propagate = False

    def log_request(
        self,
        session_id: Optional[str],
        provider: str,
        model: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        """
        Log an extraction request.

        Returns:
            str: Request ID for correlating with the response ("" when disabled)
        """
        if not self.enabled or not settings.llm_log_requests:
            return ""

        request_id = f"{session_id or 'none'}_{int(time.time() * 1000)}"
        prompt_preview = prompt[:500] + "..." if len(prompt) > 500 else prompt

        log_entry = {
            "type": "request",
            "request_id": request_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "provider": provider,
            "model": model,
            "session_id": session_id,
            "parameters": {"max_tokens": max_tokens, "temperature": temperature},
            "prompt_preview": prompt_preview,
            "prompt_length": len(prompt),
        }

        self.llm_logger.info(f"REQUEST: {json.dumps(log_entry)}")
        return request_id

    def log_response(self, request_id: str, response: LLMResponse) -> None:
        """Log a provider response with its token usage."""
        if not self.enabled or not settings.llm_log_responses:
            return

        content = response.content or ""
        log_entry = {
            "type": "response",
            "request_id": request_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "model": response.model,
            "finish_reason": response.finish_reason,
            "content_length": len(content),
            "duration_ms": round(response.duration_ms, 2),
            "tokens": {
                "prompt": response.prompt_tokens,
                "completion": response.completion_tokens,
                "total": response.total_tokens,
            },
            "content_preview": content[:200] + "..." if len(content) > 200 else content,
        }

        self.llm_logger.info(f"RESPONSE: {json.dumps(log_entry)}")

    def log_error(
        self,
        request_id: str,
        error: Exception,
        provider: Optional[str] = None,
    ) -> None:
        """Log a failed extraction call."""
        if not self.enabled:
            return

        log_entry = {
            "type": "error",
            "request_id": request_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "provider": provider,
            "error_type": type(error).__name__,
            "error_message": str(error),
        }

        self.llm_logger.error(f"ERROR: {json.dumps(log_entry)}")


# Global LLM logger instance
llm_logger = LLMLogger()
