"""
Documentation retrieval for the assistant.

Markdown/MDX files under the docs directory are split into header sections,
indexed with TF-IDF and searched in memory. The index is built lazily on
first use and can be rebuilt with ``reload()``.
"""
import math
import re
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

from insider.core.config import get_settings
from insider.core.logging_config import LoggingConfig
from insider.core.metrics import rag_index_chunks

logger = LoggingConfig.get_logger(__name__)

STOP_WORDS = frozenset("""
the a an and or but in on at to for of with by from as is was are were been be have has had do
does did will would could should may might can this that these those it its you your we our they
their he she his her what which who whom when where why how all each every both few more most
other some such no nor not only own same so than too very just also now here there then once if
""".split())

CATEGORY_NAMES = {
    "getting-started": "Getting Started",
    "configuration": "Configuration",
    "tips-and-tricks": "Tips & Tricks",
    "api": "API Reference",
    "integrations": "Integrations",
}

KEYWORDS_PER_CHUNK = 10

_FRONTMATTER_RE = re.compile(r'\A---\s*\n(.*?)\n---\s*\n?', re.DOTALL)
_HEADER_SPLIT_RE = re.compile(r'(?=^#{2,3}\s)', re.MULTILINE)
_HEADER_RE = re.compile(r'^#{2,3}\s+(.+?)$', re.MULTILINE)


@dataclass
class DocumentChunk:
    id: str
    title: str
    section: str
    content: str
    url: str
    category: str
    keywords: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "title": self.title,
            "section": self.section,
            "url": self.url,
            "category": self.category,
        }


@dataclass
class SearchResult:
    chunk: DocumentChunk
    score: float


def tokenize(text: str) -> List[str]:
    """Lowercase words longer than two characters, without stop words"""
    words = re.sub(r'[^\w\s]', ' ', text.lower()).split()
    return [w for w in words if len(w) > 2 and w not in STOP_WORDS]


def clean_markup(content: str) -> str:
    """Strip JSX tags, code, expressions and import/export statements"""
    content = re.sub(r'```[\s\S]*?```', '[code block]', content)
    content = re.sub(r'<[^>]+>', ' ', content)
    content = re.sub(r'`[^`]+`', ' ', content)
    content = re.sub(r'\{[^}]+\}', ' ', content)
    content = re.sub(r'import\s+.*?from\s+[\'"][^\'"]+[\'"]', '', content)
    return re.sub(r'export\s+', '', content)


def split_frontmatter(text: str) -> Tuple[Dict, str]:
    match = _FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        meta = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError:
        logger.warning("Invalid front matter, ignoring it")
        meta = {}
    if not isinstance(meta, dict):
        meta = {}
    return meta, text[match.end():]


def _top_keywords(text: str) -> List[str]:
    return [word for word, _ in Counter(tokenize(text)).most_common(KEYWORDS_PER_CHUNK)]


def chunk_document(
    content: str,
    title: str,
    url: str,
    category: str,
    min_section_chars: int = 50,
    max_chunk_chars: int = 1500
) -> List[DocumentChunk]:
    """Split a document on ``##``/``###`` headers into chunks"""
    cleaned = clean_markup(content)
    chunks = []

    for index, raw in enumerate(_HEADER_SPLIT_RE.split(cleaned)):
        section = raw.strip()
        if not section:
            continue
        header = _HEADER_RE.match(section)
        if header:
            section_title = header.group(1).strip()
            body = section[header.end():].strip()
        else:
            section_title = title
            body = section
        if len(body) < min_section_chars:
            continue
        chunks.append(DocumentChunk(
            id=f"{url}#{index}",
            title=title,
            section=section_title,
            content=body[:max_chunk_chars],
            url=url,
            category=category,
            keywords=_top_keywords(body),
        ))

    if not chunks and len(cleaned.strip()) > min_section_chars:
        body = cleaned.strip()
        chunks.append(DocumentChunk(
            id=f"{url}#0",
            title=title,
            section=title,
            content=body[:max_chunk_chars],
            url=url,
            category=category,
            keywords=_top_keywords(body),
        ))
    return chunks


class DocumentIndex:
    """In-memory TF-IDF index over documentation chunks"""

    def __init__(self, docs_dir: Optional[Path] = None):
        settings = get_settings()
        self.docs_dir = Path(docs_dir) if docs_dir else settings.rag_docs_path
        self.min_section_chars = settings.rag_min_section_chars
        self.max_chunk_chars = settings.rag_max_chunk_chars
        self.default_limit = settings.rag_top_k
        self._chunks: Optional[List[DocumentChunk]] = None
        self._tf: Dict[str, Dict[str, float]] = {}
        self._idf: Dict[str, float] = {}

    @property
    def chunks(self) -> List[DocumentChunk]:
        if self._chunks is None:
            self.reload()
        return self._chunks

    def reload(self) -> int:
        chunks = []
        if not self.docs_dir.exists():
            logger.warning(f"Docs directory {self.docs_dir} not found, RAG index is empty")
        else:
            for path in sorted(self.docs_dir.rglob("*")):
                if path.suffix not in (".md", ".mdx") or not path.is_file():
                    continue
                try:
                    chunks.extend(self._load_file(path))
                except (OSError, UnicodeDecodeError) as e:
                    logger.error(f"Error processing {path}: {e}")

        self._chunks = chunks
        self._build_tfidf(chunks)
        rag_index_chunks.set(len(chunks))
        logger.info(f"RAG index built with {len(chunks)} chunks from {self.docs_dir}")
        return len(chunks)

    def _load_file(self, path: Path) -> List[DocumentChunk]:
        meta, body = split_frontmatter(path.read_text(encoding="utf-8"))
        relative = path.relative_to(self.docs_dir)
        slug = relative.with_suffix("").as_posix()
        if slug.endswith("/index"):
            slug = slug[:-len("/index")]
        category_dir = relative.parts[0] if len(relative.parts) > 1 else ""
        title = str(meta.get("title") or slug.split("/")[-1] or "Untitled")
        return chunk_document(
            body,
            title=title,
            url=f"/docs/{slug}",
            category=CATEGORY_NAMES.get(category_dir, category_dir),
            min_section_chars=self.min_section_chars,
            max_chunk_chars=self.max_chunk_chars,
        )

    def _build_tfidf(self, chunks: List[DocumentChunk]) -> None:
        self._tf = {}
        doc_freq: Counter = Counter()
        for chunk in chunks:
            words = tokenize(f"{chunk.content} {chunk.title} {chunk.section}")
            counts = Counter(words)
            if not counts:
                self._tf[chunk.id] = {}
                continue
            max_freq = max(counts.values())
            self._tf[chunk.id] = {term: freq / max_freq for term, freq in counts.items()}
            doc_freq.update(set(words))

        total = len(chunks)
        self._idf = {term: math.log(total / (1 + df)) for term, df in doc_freq.items()}

    def search(self, query: str, limit: Optional[int] = None) -> List[SearchResult]:
        chunks = self.chunks
        terms = tokenize(query)
        if not terms:
            return []

        query_lower = query.lower()
        results = []
        for chunk in chunks:
            tf = self._tf.get(chunk.id, {})
            score = sum(tf.get(t, 0.0) * self._idf.get(t, 0.0) for t in terms)

            title = chunk.title.lower()
            section = chunk.section.lower()
            for term in terms:
                if term in title:
                    score *= 1.5
                if term in section:
                    score *= 1.3
                if term in chunk.keywords:
                    score *= 1.2
            if query_lower in chunk.content.lower():
                score *= 2

            if score > 0:
                results.append(SearchResult(chunk=chunk, score=score))

        results.sort(key=lambda r: r.score, reverse=True)
        return results[:limit or self.default_limit]

    def context_for(self, query: str, max_chunks: int = 3) -> str:
        """Prompt block with the best matching documentation, or an empty string"""
        results = self.search(query, max_chunks)
        if not results:
            return ""

        parts = ["\n\nRELEVANT DOCUMENTATION:\n"]
        for result in results:
            chunk = result.chunk
            heading = f"[{chunk.category}] {chunk.title}"
            if chunk.section != chunk.title:
                heading += f" > {chunk.section}"
            parts.append(f"\n---\n{heading}\nURL: {chunk.url}\n\n{chunk.content}\n")
        return "".join(parts)

    def stats(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for chunk in self.chunks:
            counts[chunk.category] = counts.get(chunk.category, 0) + 1
        return counts


_document_index: Optional[DocumentIndex] = None


def get_document_index() -> DocumentIndex:
    """Get global documentation index"""
    global _document_index
    if _document_index is None:
        _document_index = DocumentIndex()
    return _document_index


def reset_document_index() -> None:
    global _document_index
    _document_index = None
