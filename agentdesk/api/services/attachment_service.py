"""
Attachment helpers

Builds the parts of a user wire turn from typed text and attached files,
including knowledge files stored with an assistant.
"""
import base64
import binascii
import json
import logging
import mimetypes
import re
from pathlib import Path
from typing import List, Sequence

from ..models.assistant import AttachedFile, InlineData, WirePart
from .service_contracts import FileStoreLike

logger = logging.getLogger(__name__)

_EXTENSION_MIME_OVERRIDES = {
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".csv": "text/csv",
}


def csv_to_json(csv_text: str) -> str:
    """Convert CSV text into an indented JSON array of row objects.

    Rows whose column count differs from the header are skipped.
    """
    lines = re.split(r"\r?\n", csv_text)
    if len(lines) <= 1:
        return "[]"
    headers = lines[0].split(",")
    rows = []
    for line in lines[1:]:
        values = line.split(",")
        if len(values) != len(headers):
            continue
        rows.append(dict(zip(headers, values)))
    return json.dumps(rows, ensure_ascii=False, indent=2)


def build_user_parts(text: str, files: Sequence[AttachedFile]) -> List[WirePart]:
    """Build the parts of a user turn.

    The first part is always text. CSV attachments are additionally
    transcoded to JSON and appended to that text so that the model (and the
    AutoAssist decomposer, which only sees text) can read them.
    """
    leading = WirePart(text=text)
    parts = [leading]
    for attached in files:
        if attached.mime_type == "text/csv":
            try:
                csv_text = base64.b64decode(attached.data).decode("utf-8")
                leading.text += f"\n---\nCSV→JSON:\n{csv_to_json(csv_text)}"
            except (binascii.Error, ValueError) as e:
                logger.warning(f"CSV conversion failed for {attached.name}: {e}")
                leading.text += "\n(CSV→JSON failed)"
        parts.append(WirePart(inline_data=InlineData(mime_type=attached.mime_type, data=attached.data)))
    return parts


def guess_mime_type(path: str) -> str:
    suffix = Path(path).suffix.lower()
    if suffix in _EXTENSION_MIME_OVERRIDES:
        return _EXTENSION_MIME_OVERRIDES[suffix]
    return mimetypes.guess_type(path)[0] or "application/octet-stream"


async def read_knowledge_files(paths: Sequence[str], file_store: FileStoreLike) -> List[AttachedFile]:
    """Load an assistant's knowledge files as attachments; unreadable files are skipped."""
    loaded = []
    for path in paths:
        data = await file_store.read_base64(path)
        if not data:
            continue
        name = re.split(r"[/\\]", path)[-1] or path
        loaded.append(AttachedFile(name=name, data=data, mime_type=guess_mime_type(path)))
    return loaded
