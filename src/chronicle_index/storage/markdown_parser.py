"""Markdown parsing for vault notes.

Turns the raw text of a note into a :class:`ParsedNote`: title, optional
YAML frontmatter, wiki-links with line numbers, and a word count. Parsing is
pure; nothing here touches the filesystem or the store.

The grammar is read with small explicit scanners rather than regular
expressions so each piece (frontmatter block, heading, wiki-link) can be
exercised on its own.
"""
import datetime
import logging
from typing import Any, Iterator, List, Optional, Tuple

import yaml
from frontmatter.default_handlers import YAMLHandler

from chronicle_index.models.schema import (
    NOTE_EXTENSION,
    ExtractedLink,
    Frontmatter,
    ParsedNote,
)

logger = logging.getLogger(__name__)

FRONTMATTER_DELIMITER = "---"
LINK_OPEN = "[["
LINK_CLOSE = "]]"
LINK_PIPE = "|"

# Raised while loading well-formed YAML whose values cannot be constructed,
# e.g. an impossible date such as 2024-02-30
_FRONTMATTER_ERRORS = (yaml.YAMLError, ValueError, OverflowError)

_yaml_handler = YAMLHandler()


def split_lines(text: str) -> List[str]:
    """Split on ``\\n`` and drop a trailing ``\\r`` from each line."""
    return [line[:-1] if line.endswith("\r") else line for line in text.split("\n")]


def split_frontmatter(content: str) -> Tuple[Optional[str], str]:
    """Separate a leading ``---`` block from the body.

    The first line must be exactly ``---``; the block runs to the next line
    that is exactly ``---`` and must enclose at least one character.

    Returns:
        ``(interior, body)``. ``interior`` is None when there is no complete
        block, in which case ``body`` is the whole text.
    """
    lines = content.split("\n")
    if not lines or lines[0].rstrip("\r") != FRONTMATTER_DELIMITER:
        return None, content

    for index in range(1, len(lines)):
        if lines[index].rstrip("\r") == FRONTMATTER_DELIMITER:
            interior = "\n".join(line.rstrip("\r") for line in lines[1:index])
            if not interior:
                return None, content
            return interior, "\n".join(lines[index + 1:])

    # Unterminated block
    return None, content


def _as_date_string(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    return str(value)


def _as_tag_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(tag) for tag in value if tag is not None and str(tag) != ""]


def parse_frontmatter(interior: str) -> Optional[Frontmatter]:
    """Parse the interior of a frontmatter block.

    Malformed YAML, values YAML cannot construct (impossible dates), or a
    document that is not a mapping yield None; it is never an error.
    """
    try:
        data = _yaml_handler.load(interior)
    except _FRONTMATTER_ERRORS as e:
        logger.debug(f"Ignoring malformed frontmatter: {e}")
        return None

    if not isinstance(data, dict):
        return None

    title = data.get("title")
    return Frontmatter(
        title=title if isinstance(title, str) else None,
        created=_as_date_string(data.get("created")),
        modified=_as_date_string(data.get("modified")),
        tags=_as_tag_list(data.get("tags")),
    )


def find_title(
    frontmatter: Optional[Frontmatter],
    body: str,
    filename: str,
    extension: str = NOTE_EXTENSION,
) -> str:
    """Pick the note title.

    Precedence: non-empty frontmatter title, then the first ``# Heading``
    reached before any non-blank line that is not a heading, then the
    filename without its extension.
    """
    if frontmatter is not None and frontmatter.title:
        return frontmatter.title

    for line in split_lines(body):
        trimmed = line.strip()
        if len(trimmed) > 1 and trimmed[0] == "#" and trimmed[1].isspace():
            return trimmed[1:].strip()
        if trimmed and not trimmed.startswith("#"):
            break

    if filename.endswith(extension):
        return filename[: -len(extension)]
    return filename


def scan_wikilinks(line: str) -> Iterator[Tuple[str, Optional[str]]]:
    """Yield ``(target, display)`` for every wiki-link on one line.

    Targets run up to the first ``]`` or ``|`` and cannot be empty. A
    display part, when present, cannot be empty or contain ``]``. Matching
    is non-greedy: ``[[a]] [[b]]`` gives two links. Values are returned
    untrimmed; a failed match resumes one character after its ``[[``.
    """
    pos = 0
    length = len(line)
    while True:
        start = line.find(LINK_OPEN, pos)
        if start < 0:
            return

        target_start = start + len(LINK_OPEN)
        cursor = target_start
        while cursor < length and line[cursor] not in "]|":
            cursor += 1
        if cursor == target_start:
            pos = start + 1
            continue
        target = line[target_start:cursor]

        display = None
        if cursor < length and line[cursor] == LINK_PIPE:
            display_start = cursor + 1
            cursor = display_start
            while cursor < length and line[cursor] != "]":
                cursor += 1
            if cursor == display_start:
                pos = start + 1
                continue
            display = line[display_start:cursor]

        if not line.startswith(LINK_CLOSE, cursor):
            pos = start + 1
            continue

        yield target, display
        pos = cursor + len(LINK_CLOSE)


def extract_links(content: str) -> List[ExtractedLink]:
    """Extract wiki-links from the whole text with 1-indexed line numbers."""
    links = []
    for line_number, line in enumerate(split_lines(content), start=1):
        for raw_target, raw_display in scan_wikilinks(line):
            target = raw_target.strip()
            if not target:
                continue
            links.append(
                ExtractedLink(
                    target=target,
                    display=raw_display.strip() if raw_display is not None else None,
                    line_number=line_number,
                )
            )
    return links


def count_words(text: str) -> int:
    """Count whitespace-delimited tokens."""
    return len(text.split())


def parse_note(
    content: str, filename: str, extension: str = NOTE_EXTENSION
) -> ParsedNote:
    """Parse one note.

    Args:
        content: Full text of the note file.
        filename: Base name of the file, used as the last-resort title.
        extension: Note extension stripped from ``filename``.

    Returns:
        The parsed note. Links are taken from the whole text (frontmatter
        included) and the word count covers the whole text as well.
    """
    interior, body = split_frontmatter(content)
    frontmatter = parse_frontmatter(interior) if interior is not None else None

    return ParsedNote(
        title=find_title(frontmatter, body, filename, extension),
        frontmatter=frontmatter,
        links=extract_links(content),
        word_count=count_words(content),
        content=content,
    )


class MarkdownParser:
    """Parses note files for one vault's note extension."""

    def __init__(self, note_extension: str = NOTE_EXTENSION):
        self.note_extension = note_extension

    def parse(self, content: str, filename: str) -> ParsedNote:
        return parse_note(content, filename, self.note_extension)
