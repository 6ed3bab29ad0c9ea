"""Markdown parser for extracting content and metadata from .md files.

Handles:
- YAML frontmatter parsing
- Mapping frontmatter keys onto chunk metadata
- Clean text extraction
"""
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Tuple

import structlog
import yaml

from ragcore.models import Metadata

logger = structlog.get_logger()

STANDARD_FIELDS = ("title", "author", "source", "language", "content_type")


@dataclass
class MarkdownDocument:
    """Parsed markdown document with content and metadata."""

    content: str
    frontmatter: Dict[str, Any]
    text_without_frontmatter: str
    metadata: Metadata


class MarkdownParser:
    """Parser for markdown documents with frontmatter support."""

    # Regex for YAML frontmatter (must be at start of file)
    FRONTMATTER_PATTERN = re.compile(r"^---\s*\n(.*?)\n---\s*(?:\n|$)", re.DOTALL)

    def parse(self, content: str) -> MarkdownDocument:
        """Parse markdown text into indexable text and metadata."""
        frontmatter, text = self._parse_frontmatter(content)
        return MarkdownDocument(
            content=content,
            frontmatter=frontmatter,
            text_without_frontmatter=text,
            metadata=self.metadata_from_frontmatter(frontmatter),
        )

    def parse_file(self, file_path: Path) -> MarkdownDocument:
        """Parse a markdown file.

        Raises:
            FileNotFoundError: If file doesn't exist
            UnicodeDecodeError: If file encoding is invalid
        """
        content = Path(file_path).read_text(encoding="utf-8")
        doc = self.parse(content)

        logger.info(
            "markdown_parsed",
            path=str(file_path),
            has_frontmatter=bool(doc.frontmatter),
            content_length=len(doc.text_without_frontmatter),
        )

        return doc

    def _parse_frontmatter(self, content: str) -> Tuple[Dict[str, Any], str]:
        """Extract YAML frontmatter from markdown content.

        Returns:
            Tuple of (frontmatter_dict, content_without_frontmatter)
        """
        match = self.FRONTMATTER_PATTERN.match(content)

        if not match:
            return {}, content

        yaml_content = match.group(1)
        try:
            frontmatter = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            logger.warning(
                "frontmatter_parse_error",
                error=str(e),
                yaml_preview=yaml_content[:100],
            )
            frontmatter = {}

        if not isinstance(frontmatter, dict):
            frontmatter = {}

        return frontmatter, content[match.end():]

    def metadata_from_frontmatter(self, frontmatter: Dict[str, Any]) -> Metadata:
        """Map frontmatter keys onto Metadata.

        Standard keys fill the matching fields, ``tags`` accepts a list or a
        comma-separated string, and other scalar values go to ``custom``.
        """
        metadata = Metadata()

        for key, value in frontmatter.items():
            key = str(key)
            if value is None:
                continue

            if key in STANDARD_FIELDS:
                setattr(metadata, key, _scalar_to_str(value))
            elif key == "tags":
                if isinstance(value, str):
                    value = value.split(",")
                if isinstance(value, list):
                    metadata.tags = [str(tag).strip() for tag in value if str(tag).strip()]
            elif not isinstance(value, (list, dict)):
                metadata.custom[key] = _scalar_to_str(value)

        return metadata


def _scalar_to_str(value: Any) -> str:
    # Convert date/datetime objects to ISO format strings
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
