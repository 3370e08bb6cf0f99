"""Plain-text extraction and tokenization for lexical similarity.

Model bodies are rich text (HTML). Only their visible text takes part in
similarity scoring; tags, scripts and styles are dropped.
"""

from __future__ import annotations

import re
import unicodedata
from html import unescape
from html.parser import HTMLParser
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..library.models import Candidate, Model

CONTENT_PREFIX_CHARS = 2000
MIN_TOKEN_LENGTH = 3

# Portuguese function words plus boilerplate common to labor-court decisions
STOPWORDS: frozenset[str] = frozenset(
    """
    de da do das dos em na no nas nos para por com sem sob sobre entre ate
    o a os as um uma uns umas e ou mas porem contudo todavia que qual quais
    quando onde como porque ser estar ter haver fazer ir vir foi era sido
    sendo seja foram sao ao aos pela pelo pelas pelos este esta estes estas
    esse essa esses essas isso isto aquilo aquele aquela se nao sim mais
    menos muito pouco art artigo paragrafo inciso alinea fls folhas pag
    pagina id processo autos requerente requerido reclamante reclamada autor
    reu parte partes assim ainda ja tambem apenas mesmo so entao pois
    """.split()
)

# Tags whose text content is never visible
SKIP_TAGS = {"script", "style", "head", "title", "noscript", "template"}

# Tags that separate words visually
BLOCK_TAGS = {
    "p",
    "div",
    "br",
    "li",
    "ul",
    "ol",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "tr",
    "td",
    "th",
    "table",
    "blockquote",
    "section",
    "article",
    "hr",
}

_TAG_RE = re.compile(r"<[^>]+>")
_NON_WORD_RE = re.compile(r"[^\w\s]")
_DIGITS_RE = re.compile(r"\d+")
_UNDERSCORE_RE = re.compile(r"_+")
_SPACE_RE = re.compile(r"\s+")


class _TextExtractor(HTMLParser):
    """Collects visible text from an HTML fragment."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.parts: list[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag: str, attrs) -> None:
        if tag in SKIP_TAGS:
            self._skip_depth += 1
        elif tag in BLOCK_TAGS:
            self.parts.append(" ")

    def handle_startendtag(self, tag: str, attrs) -> None:
        if tag in BLOCK_TAGS:
            self.parts.append(" ")

    def handle_endtag(self, tag: str) -> None:
        if tag in SKIP_TAGS and self._skip_depth:
            self._skip_depth -= 1
        elif tag in BLOCK_TAGS:
            self.parts.append(" ")

    def handle_data(self, data: str) -> None:
        if not self._skip_depth:
            self.parts.append(data)


def strip_markup(content: str | None) -> str:
    """Return the visible text of a rich-text body, whitespace-collapsed.

    Malformed markup degrades to a regex tag strip rather than failing.
    """
    if not content:
        return ""
    parser = _TextExtractor()
    try:
        parser.feed(content)
        parser.close()
        text = "".join(parser.parts)
    except (AssertionError, ValueError):
        text = unescape(_TAG_RE.sub(" ", content))
    return _SPACE_RE.sub(" ", text).strip()


def fold_accents(text: str) -> str:
    """Lowercase and strip combining diacritics (NFD)."""
    decomposed = unicodedata.normalize("NFD", text.lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def tokenize(text: str | None) -> list[str]:
    """Split text into comparable terms.

    Lowercases, folds accents, drops tags, punctuation, digits, stop-words
    and tokens shorter than three characters.
    """
    if not text:
        return []
    folded = fold_accents(text)
    folded = _TAG_RE.sub(" ", folded)
    folded = _NON_WORD_RE.sub(" ", folded)
    folded = _UNDERSCORE_RE.sub(" ", folded)
    folded = _DIGITS_RE.sub(" ", folded)
    return [
        token
        for token in folded.split()
        if len(token) >= MIN_TOKEN_LENGTH and token not in STOPWORDS
    ]


def build_document_text(
    title: str,
    keywords: str | list[str] | None,
    content: str | None,
) -> str:
    """Compose the text a model is compared on.

    Title, keywords and the first 2000 characters of the stripped body.
    """
    if isinstance(keywords, list):
        keywords = " ".join(k for k in keywords if k)
    body = strip_markup(content)[:CONTENT_PREFIX_CHARS]
    return " ".join(part for part in (title or "", keywords or "", body) if part)


def document_text_for(item: Model | Candidate) -> str:
    """Document text of a stored model or candidate."""
    return build_document_text(item.title, item.keywords, item.content)


__all__ = [
    "CONTENT_PREFIX_CHARS",
    "STOPWORDS",
    "build_document_text",
    "document_text_for",
    "fold_accents",
    "strip_markup",
    "tokenize",
]
