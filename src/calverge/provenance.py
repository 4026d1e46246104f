"""
Provenance tags: the notes-field block that marks events created by calverge.

The calendar store has no custom-field support, so the tag is appended to the
event notes as a delimited text block:

    ---
    Synced by Calverge CLI
    Config: Work mirror
    Mode: busy-only
    Source: <source calendar id>
    Original: <source event id>
    Sync ID: 0F5C...
    Synced: 2026-10-19T08:00:00+0000
    ---

Cleanup relies on this grammar to recognise its own events, so it must stay
stable across releases.
"""

import uuid
from datetime import datetime

from calverge.models import ProvenanceTag
from calverge.models import SyncConfiguration
from calverge.models import SyncMode

TAG_MARKER = "Synced by Calverge CLI"
TAG_SEPARATOR = "---"
UNKNOWN_ORIGINAL = "unknown"

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def _one_line(value: str) -> str:
    """Collapse line breaks so a value cannot inject extra tag lines."""
    return " ".join(value.splitlines()).strip()


class ProvenanceCodec:
    """Encodes, recognises and parses provenance tags in event notes."""

    @staticmethod
    def new_tag(
        config: SyncConfiguration, source_id: str, original_id: str | None, now: datetime
    ) -> ProvenanceTag:
        """Build a tag with a fresh sync id. Sync ids are never reused between runs."""
        return ProvenanceTag(
            config_name=config.display_name,
            mode=config.sync_mode,
            source_id=source_id,
            original_id=original_id or UNKNOWN_ORIGINAL,
            sync_id=str(uuid.uuid4()).upper(),
            timestamp=now.strftime(_TIMESTAMP_FORMAT),
        )

    @staticmethod
    def encode(tag: ProvenanceTag) -> str:
        lines = [
            "",
            TAG_SEPARATOR,
            TAG_MARKER,
            f"Config: {_one_line(tag.config_name)}",
            f"Mode: {tag.mode.value}",
            f"Source: {_one_line(tag.source_id)}",
            f"Original: {_one_line(tag.original_id)}",
            f"Sync ID: {tag.sync_id}",
            f"Synced: {tag.timestamp}",
            TAG_SEPARATOR,
        ]
        return "\n".join(lines)

    @classmethod
    def matches(cls, notes: str | None, source_id: str) -> bool:
        """True iff the last complete tag block in notes names ``source_id``.

        Only a delimited block counts, so hand-written notes that merely
        contain the marker or a Source line never match, and cleanup agrees
        with what decode reports.
        """
        tag = cls.decode(notes)
        return tag is not None and tag.source_id == source_id

    @staticmethod
    def append(original_notes: str | None, tag_block: str, preserve_original: bool) -> str:
        if preserve_original and original_notes:
            return original_notes + tag_block
        return tag_block

    @classmethod
    def strip(cls, notes: str | None) -> str:
        """Return notes with every provenance block removed."""
        if not notes:
            return ""
        lines = notes.split("\n")
        blocks = cls._find_blocks(lines)
        if not blocks:
            return notes

        kept: list[str] = []
        i = 0
        for start, end in blocks:
            kept.extend(lines[i:start])
            # The block's leading blank line belongs to the block.
            if kept and not kept[-1].strip():
                kept.pop()
            i = end + 1
        kept.extend(lines[i:])
        return "\n".join(kept)

    @classmethod
    def decode(cls, notes: str | None) -> ProvenanceTag | None:
        """Parse the last provenance block in notes, or return None."""
        if not notes:
            return None
        lines = notes.split("\n")
        blocks = cls._find_blocks(lines)
        if not blocks:
            return None

        start, end = blocks[-1]
        fields: dict[str, str] = {}
        for line in lines[start + 2 : end]:
            key, sep, value = line.strip().partition(": ")
            if sep:
                fields[key] = value

        source_id = fields.get("Source")
        if not source_id:
            return None
        try:
            mode = SyncMode(fields.get("Mode", SyncMode.FULL.value))
        except ValueError:
            return None

        return ProvenanceTag(
            config_name=fields.get("Config", ""),
            mode=mode,
            source_id=source_id,
            original_id=fields.get("Original", UNKNOWN_ORIGINAL),
            sync_id=fields.get("Sync ID", ""),
            timestamp=fields.get("Synced", ""),
        )

    @staticmethod
    def _find_blocks(lines: list[str]) -> list[tuple[int, int]]:
        """Return (opening, closing) separator indices of each complete block."""
        blocks = []
        i = 0
        while i < len(lines) - 1:
            if lines[i].strip() == TAG_SEPARATOR and lines[i + 1].strip() == TAG_MARKER:
                for j in range(i + 2, len(lines)):
                    if lines[j].strip() == TAG_SEPARATOR:
                        blocks.append((i, j))
                        i = j
                        break
            i += 1
        return blocks
