"""Gemtext parser.

To allow a flexible rendering of the content, the parser produces a Document
holding a tuple of "lines", each being an instance of one of the dataclasses
defined in this module. A renderer can then completely abstract the original
document.

Line types are recognized by their prefix, in this order: "=>" links, "#"
headings, "*" list items, "```" preformatted toggles, ">" quotes; anything
else is text. Inside a preformatted block every line is kept verbatim until
the closing toggle line.

Carriage returns ending lines are removed before parsing, so CRLF documents
produce the same lines as LF ones.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple, Union

from gemlink.errors import MissingUriInLink
from gemlink.navigation import join_url


@dataclass(frozen=True)
class Text:
    text: str


@dataclass(frozen=True)
class Link:
    url: str
    name: Optional[str] = None
    PREFIX = "=>"


@dataclass(frozen=True)
class Heading:
    level: int
    text: str
    PREFIX = "#"


@dataclass(frozen=True)
class ListItem:
    text: str
    PREFIX = "*"


@dataclass(frozen=True)
class Quote:
    text: str
    PREFIX = ">"


@dataclass(frozen=True)
class Preformatted:
    text: str
    alt: str = ""
    FENCE = "```"


Line = Union[Text, Link, Heading, ListItem, Quote, Preformatted]


@dataclass(frozen=True)
class Document:
    url: str
    lines: Tuple[Line, ...] = ()

    @property
    def title(self) -> Optional[str]:
        """Return the text of the first level 1 heading, if any."""
        for line in self.lines:
            if isinstance(line, Heading) and line.level == 1:
                return line.text
        return None


class ParserState(Enum):
    NORMAL = 0
    PREFORMATTED = 1


def split_lines(text: str) -> List[str]:
    """Split text on line feeds, removing one trailing carriage return.

    A final line without line feed is kept; the empty string that would
    follow a final line feed is not a line.
    """
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def parse_link(base_url: str, line: str) -> Link:
    link_content = line[len(Link.PREFIX):].strip()
    if not link_content:
        raise MissingUriInLink(f"Link line without URI: {line!r}")
    parts = link_content.split(maxsplit=1)
    url = join_url(base_url, parts[0])
    name = parts[1].strip() if len(parts) > 1 else None
    return Link(url, name)


def parse_heading(line: str) -> Heading:
    stripped = line.lstrip(Heading.PREFIX)
    level = len(line) - len(stripped)
    return Heading(level, stripped.lstrip())


def parse_line(base_url: str, line: str) -> Optional[Line]:
    """Parse a line outside of a preformatted block.

    Return None for a preformatted toggle line.
    """
    if line.startswith(Link.PREFIX):
        return parse_link(base_url, line)
    if line.startswith(Heading.PREFIX):
        return parse_heading(line)
    if line.startswith(ListItem.PREFIX):
        return ListItem(line[len(ListItem.PREFIX):].strip())
    if line.startswith(Preformatted.FENCE):
        return None
    if line.startswith(Quote.PREFIX):
        return Quote(line[len(Quote.PREFIX):].strip())
    return Text(line)


def parse_gemtext(base_url: str, text: str) -> Document:
    """Parse a string of Gemtext into a Document.

    Link URLs are resolved against base_url. Raises MissingUriInLink if a link
    line has no URI, or UrlJoinError if a link can't be resolved.
    """
    lines = []
    state = ParserState.NORMAL
    buffer = []
    alt = ""
    for line in split_lines(text):
        if state == ParserState.PREFORMATTED:
            if line.startswith(Preformatted.FENCE):
                lines.append(Preformatted("".join(buffer), alt))
                state = ParserState.NORMAL
            else:
                buffer.append(line + "\n")
            continue

        parsed = parse_line(base_url, line)
        if parsed is None:
            state = ParserState.PREFORMATTED
            buffer = []
            alt = line[len(Preformatted.FENCE):].strip()
        else:
            lines.append(parsed)

    # If a preformatted block is not closed before the file ends, consider it
    # closed anyway.
    if state == ParserState.PREFORMATTED:
        lines.append(Preformatted("".join(buffer), alt))

    return Document(base_url, tuple(lines))


def clamp_heading_level(level: int, max_level: int =3) -> int:
    """Return a heading level usable as index in a table of max_level styles.

    Levels start at 1; deeper headings are rendered as the deepest level.
    """
    return max(1, min(level, max_level))
