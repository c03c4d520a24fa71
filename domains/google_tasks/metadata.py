"""Embed and extract the Google Task link stored in a reminder line.

The link is a trailing HTML comment, invisible in rendered Markdown:

    - [ ] Buy milk (@2024-01-01) <!-- gtask:{"id":"T1","checksum":"1a2b3c4d"} -->
"""

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from logger import logger
from . import config
from .types import LinkMetadata

_BLOCK_PATTERN = re.compile(r"<!--\s*" + re.escape(config.METADATA_MARKER) + r":(.*?)\s*-->")


class MetadataState(str, Enum):
    """Result of parsing a line for a metadata block."""
    PRESENT = "present"
    ABSENT = "absent"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class MetadataParse:
    """Tagged parse result. ``metadata`` is set only when PRESENT."""
    state: MetadataState
    metadata: Optional[LinkMetadata] = None
    detail: Optional[str] = None


def parse_metadata(line: str) -> MetadataParse:
    """Parse the metadata block of a reminder line."""
    match = _BLOCK_PATTERN.search(line)
    if not match:
        return MetadataParse(MetadataState.ABSENT)

    payload = match.group(1).strip()
    if not (payload.startswith("{") and payload.endswith("}")):
        return MetadataParse(MetadataState.MALFORMED, detail="not a JSON object")

    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError as e:
        return MetadataParse(MetadataState.MALFORMED, detail=f"invalid JSON: {e.msg}")

    if not isinstance(parsed, dict):
        return MetadataParse(MetadataState.MALFORMED, detail="not a JSON object")

    task_id = parsed.get("id")
    checksum = parsed.get("checksum")
    if not isinstance(task_id, str) or not task_id:
        return MetadataParse(MetadataState.MALFORMED, detail="missing id")
    if not isinstance(checksum, str) or not checksum:
        return MetadataParse(MetadataState.MALFORMED, detail="missing checksum")

    return MetadataParse(MetadataState.PRESENT, LinkMetadata(id=task_id, checksum=checksum))


def read_metadata(line: str) -> Optional[LinkMetadata]:
    """Metadata of a line, or None when absent or malformed."""
    result = parse_metadata(line)
    if result.state == MetadataState.MALFORMED:
        logger.warning(f"Ignoring malformed {config.METADATA_MARKER} metadata ({result.detail}): {line.strip()}")
    return result.metadata


def strip_metadata(line: str) -> str:
    """Remove every metadata block and trailing whitespace."""
    return _BLOCK_PATTERN.sub("", line).rstrip()


def encode_metadata(line: str, metadata: Optional[LinkMetadata]) -> str:
    """Replace the line's metadata block. ``None`` removes it."""
    cleaned = strip_metadata(line)
    if metadata is None:
        return cleaned

    payload = json.dumps(
        {"id": metadata.id, "checksum": metadata.checksum},
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return f"{cleaned} <!-- {config.METADATA_MARKER}:{payload} -->"
