import re

MAX_ABSTRACT_LENGTH = 200
MAX_SENTENCES = 3
MIN_SENTENCE_LENGTH = 20
TRUNCATION_MARKER = "..."

_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")
# A terminator only ends a sentence when followed by whitespace or the end,
# so version numbers like "1.30" stay in one piece.
_SENTENCE_END_RE = re.compile(r"[.!?]+(?=\s|$)")


def clean_markup(content: str) -> str:
    """Replace tags with spaces and collapse whitespace."""
    text = _TAG_RE.sub(" ", content or "")
    return _WS_RE.sub(" ", text).strip()


def split_sentences(text: str) -> list:
    """Split on sentence terminators, dropping fragments too short to be sentences."""
    return [s.strip() for s in _SENTENCE_END_RE.split(text) if len(s.strip()) > MIN_SENTENCE_LENGTH]


def generate_abstract(content: str, title: str = "") -> str:
    """
    Build a short extractive abstract from raw (possibly HTML) item content.

    Takes up to the first three sentences while the running length stays within
    200 characters. When no sentence fits, falls back to the first 200 characters
    of the cleaned text plus a truncation marker. Empty content gives "".
    """
    if not content:
        return ""

    clean_content = clean_markup(content)
    if not clean_content:
        return ""

    abstract = ""
    for sentence in split_sentences(clean_content)[:MAX_SENTENCES]:
        if len(abstract) + len(sentence) > MAX_ABSTRACT_LENGTH:
            break
        abstract += sentence + ". "

    return abstract.strip() or clean_content[:MAX_ABSTRACT_LENGTH] + TRUNCATION_MARKER
