"""Document preprocessing.

Cleans raw judgment text and detects document-level metadata
(document type, court, case number, judgment date, page count, language).
"""

import logging
import re
import unicodedata
from dataclasses import dataclass, field

from .models import DocumentMetadata
from .patterns import (
    CASE_NUMBER_PATTERN,
    COURT_PATTERN,
    JUDGMENT_DATE_PATTERN,
    classify_document_type,
    to_iso_date,
)

logger = logging.getLogger(__name__)

CHARS_PER_PAGE = 1500
CHINESE_RATIO_THRESHOLD = 0.3


@dataclass
class PreprocessedDocument:
    """Cleaned text plus detected metadata.

    ``offsets[i]`` is the index in the raw text of cleaned character ``i``.
    """

    text: str
    metadata: DocumentMetadata
    offsets: list[int] = field(default_factory=list)
    source_length: int = 0

    def source_span(self, span: tuple[int, int]) -> tuple[int, int]:
        """Translate a span over the cleaned text into raw-text offsets."""
        if not self.offsets:
            return span
        start, end = span
        if start >= len(self.offsets):
            return self.source_length, self.source_length
        raw_end = self.offsets[end - 1] + 1 if end > start else self.offsets[start]
        return self.offsets[start], raw_end


def _substitute(
    pattern: re.Pattern, repl: str, text: str, offsets: list[int]
) -> tuple[str, list[int]]:
    """``pattern.sub`` that keeps each character's raw offset.

    Replacement characters take the offset of the start of their match.
    """
    parts: list[str] = []
    kept: list[int] = []
    last = 0
    for match in pattern.finditer(text):
        replacement = match.expand(repl)
        parts.append(text[last:match.start()])
        kept.extend(offsets[last:match.start()])
        parts.append(replacement)
        kept.extend([offsets[match.start()]] * len(replacement))
        last = match.end()
    parts.append(text[last:])
    kept.extend(offsets[last:])
    return "".join(parts), kept


class DocumentPreprocessor:
    """Normalizes judgment text before extraction.

    Cleaning:
    - Unify line endings and drop zero-width / control characters
    - Fold full-width digits, letters and spaces to half-width (NFKC),
      keeping Chinese punctuation intact
    - Collapse runs of spaces, blank lines and repeated punctuation
    """

    LINE_BREAK_PATTERN = re.compile(r"\r\n?")
    ZERO_WIDTH_PATTERN = re.compile(r"[\u200b-\u200f\u2060\ufeff]")
    CONTROL_PATTERN = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
    SPACES_PATTERN = re.compile(r"[ \t\u3000\xa0]+")
    BLANK_LINES_PATTERN = re.compile(r"\n\s*\n+")
    LINE_EDGE_PATTERN = re.compile(r"[^\S\n]*\n[^\S\n]*")
    REPEATED_PUNCT_PATTERN = re.compile(r"([。，；！？、])\1+")
    CHINESE_CHAR_PATTERN = re.compile(r"[一-龥]")

    # Full-width forms NFKC would otherwise fold into ASCII punctuation
    _KEEP_FULL_WIDTH = set("，。；：！？（）《》【】“”‘’、")

    def process(self, text: str) -> PreprocessedDocument:
        """Clean the text and detect its metadata."""
        cleaned, offsets = self.clean_with_offsets(text)
        return PreprocessedDocument(
            text=cleaned,
            metadata=self.detect_metadata(cleaned),
            offsets=offsets,
            source_length=len(text),
        )

    def clean_text(self, text: str) -> str:
        """Return normalized text."""
        return self.clean_with_offsets(text)[0]

    def clean_with_offsets(self, text: str) -> tuple[str, list[int]]:
        """Return normalized text and the raw offset of each of its characters."""
        offsets = list(range(len(text)))
        text, offsets = _substitute(self.LINE_BREAK_PATTERN, "\n", text, offsets)
        text, offsets = _substitute(self.ZERO_WIDTH_PATTERN, "", text, offsets)
        text, offsets = _substitute(self.CONTROL_PATTERN, "", text, offsets)

        folded: list[str] = []
        folded_offsets: list[int] = []
        for ch, origin in zip(text, offsets):
            ch = ch if ch in self._KEEP_FULL_WIDTH else unicodedata.normalize("NFKC", ch)
            folded.append(ch)
            folded_offsets.extend([origin] * len(ch))
        text, offsets = "".join(folded), folded_offsets

        text, offsets = _substitute(self.SPACES_PATTERN, " ", text, offsets)
        text, offsets = _substitute(self.BLANK_LINES_PATTERN, "\n", text, offsets)
        text, offsets = _substitute(self.REPEATED_PUNCT_PATTERN, r"\1", text, offsets)
        text, offsets = _substitute(self.LINE_EDGE_PATTERN, "\n", text, offsets)

        start = len(text) - len(text.lstrip())
        end = len(text.rstrip())
        return text[start:end], offsets[start:end]

    def detect_metadata(self, text: str) -> DocumentMetadata:
        """Detect document-level metadata from cleaned text."""
        court_match = COURT_PATTERN.search(text)
        case_match = CASE_NUMBER_PATTERN.search(text)

        judgment_date = None
        date_match = JUDGMENT_DATE_PATTERN.search(text)
        if date_match:
            judgment_date = to_iso_date(*date_match.groups())

        metadata = DocumentMetadata(
            document_type=classify_document_type(text),
            court=court_match.group(1) if court_match else None,
            case_number=case_match.group(0) if case_match else None,
            judgment_date=judgment_date,
            page_count=self.estimate_page_count(text),
            language=self.detect_language(text),
        )
        logger.debug(
            "Detected document metadata",
            extra={"document_type": metadata.document_type, "court": metadata.court},
        )
        return metadata

    def estimate_page_count(self, text: str) -> int:
        """Estimate pages at a fixed number of characters per page."""
        if not text:
            return 0
        return max(1, -(-len(text) // CHARS_PER_PAGE))

    def detect_language(self, text: str) -> str:
        """Return 'zh' when Chinese characters exceed the ratio threshold."""
        if not text:
            return "zh"
        ratio = len(self.CHINESE_CHAR_PATTERN.findall(text)) / len(text)
        return "zh" if ratio > CHINESE_RATIO_THRESHOLD else "en"
