"""LLM interaction logger for debugging and auditing."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from agentdesk.api.models.assistant import WireTurn


class LLMLogger:
    """Logger for completion calls with detailed request/response tracking."""

    def __init__(self, log_dir: str = "logs"):
        """Initialize LLM logger.

        Args:
            log_dir: Directory to store log files
        """
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger("llm_interactions")
        self.logger.setLevel(logging.DEBUG)

        # Prevent duplicate handlers
        if not self.logger.handlers:
            log_file = self.log_dir / f"llm_interactions_{datetime.now().strftime('%Y%m%d')}.log"
            fh = logging.FileHandler(log_file, encoding='utf-8')
            fh.setLevel(logging.DEBUG)
            fh.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(fh)

    @staticmethod
    def _summarize_turns(turns: Sequence[WireTurn]) -> list:
        summary = []
        for turn in turns:
            parts = []
            for part in turn.parts:
                if part.inline_data is not None:
                    parts.append({
                        "inline_data": part.inline_data.mime_type,
                        "bytes_base64": len(part.inline_data.data),
                    })
                else:
                    parts.append({"text": part.text})
            summary.append({"role": turn.role, "parts": parts})
        return summary

    def log_interaction(
        self,
        turns: Sequence[WireTurn],
        system_instruction: str,
        response_text: str,
        model: str,
        extra_params: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log a complete completion call.

        Args:
            turns: Wire turns sent to the model
            system_instruction: System instruction sent with the turns
            response_text: Text returned by the model
            model: Model name used
            extra_params: Additional parameters worth recording
        """
        timestamp = datetime.now().isoformat()

        log_entry = {
            "timestamp": timestamp,
            "model": model,
            "request": {
                "turn_count": len(turns),
                "system_instruction": system_instruction,
                "turns": self._summarize_turns(turns),
            },
            "response": {"content": response_text},
        }
        if extra_params:
            log_entry["extra_params"] = extra_params

        separator = "=" * 80
        self.logger.debug(f"\n{separator}")
        self.logger.debug(f"LLM INTERACTION @ {timestamp}")
        self.logger.debug(separator)
        self.logger.debug(json.dumps(log_entry, ensure_ascii=False, indent=2))
        self.logger.debug(f"{separator}\n")

        self.logger.info(
            f"LLM Call | Model: {model} | "
            f"Sent: {len(turns)} turns | "
            f"Received: {len(response_text)} chars"
        )

    def log_error(self, error: Exception, context: str = "") -> None:
        """Log a failed completion call.

        Args:
            error: Exception that occurred
            context: Additional context about the error
        """
        log_entry = {
            "timestamp": datetime.now().isoformat(),
            "type": "ERROR",
            "error": {
                "type": error.__class__.__name__,
                "message": str(error),
                "context": context,
            },
        }
        self.logger.error(json.dumps(log_entry, ensure_ascii=False, indent=2))


# Global logger instance
_llm_logger = None


def get_llm_logger() -> LLMLogger:
    """Get or create the global LLM logger instance."""
    global _llm_logger
    if _llm_logger is None:
        from agentdesk.api.config import settings

        _llm_logger = LLMLogger(str(settings.logs_dir))
    return _llm_logger
