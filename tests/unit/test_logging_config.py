"""Unit tests for log rotation and the LLM interaction logger."""

from agentdesk.api.logging_config import rotate_logs
from agentdesk.api.models.assistant import InlineData, WirePart, WireTurn
from agentdesk.utils.llm_logger import LLMLogger


def test_small_log_is_not_rotated(tmp_path):
    (tmp_path / "server.log").write_text("short", encoding="utf-8")
    rotate_logs(tmp_path)
    assert (tmp_path / "server.log").exists()
    assert not (tmp_path / "server.log.1").exists()


def test_large_log_shifts_backups(tmp_path):
    (tmp_path / "server.log").write_bytes(b"x" * (10 * 1024 * 1024))
    (tmp_path / "server.log.1").write_text("older", encoding="utf-8")
    (tmp_path / "server.log.3").write_text("oldest", encoding="utf-8")

    rotate_logs(tmp_path)

    assert not (tmp_path / "server.log").exists()
    assert (tmp_path / "server.log.1").stat().st_size == 10 * 1024 * 1024
    assert (tmp_path / "server.log.2").read_text(encoding="utf-8") == "older"
    assert not (tmp_path / "server.log.4").exists()


def test_llm_logger_summarizes_binary_parts():
    turns = [
        WireTurn(role="user", parts=[
            WirePart(text="look"),
            WirePart(inline_data=InlineData(mime_type="image/png", data="AAAA")),
        ])
    ]
    summary = LLMLogger._summarize_turns(turns)
    assert summary == [{
        "role": "user",
        "parts": [{"text": "look"}, {"inline_data": "image/png", "bytes_base64": 4}],
    }]
