"""
Tests for the documentation index
"""
from insider.services.rag_service import (DocumentIndex, chunk_document,
                                          clean_markup, split_frontmatter,
                                          tokenize)


def test_tokenize_drops_stop_words_and_short_words():
    assert tokenize("How do I use the MCP servers, ok?") == ["use", "mcp", "servers"]


def test_clean_markup():
    content = "import X from 'y'\n<Callout type=\"info\">Note</Callout>\n```bash\nnpm i\n```\nUse `code` {expr} here"
    cleaned = clean_markup(content)
    assert "import" not in cleaned
    assert "<Callout" not in cleaned
    assert "[code block]" in cleaned
    assert "npm i" not in cleaned
    assert "{expr}" not in cleaned
    assert "Note" in cleaned


def test_split_frontmatter():
    meta, body = split_frontmatter("---\ntitle: Hooks\ndescription: Run commands\n---\n# Body\n")
    assert meta == {"title": "Hooks", "description": "Run commands"}
    assert body == "# Body\n"


def test_split_frontmatter_without_block():
    meta, body = split_frontmatter("# Just content")
    assert meta == {}
    assert body == "# Just content"


def test_invalid_frontmatter_is_ignored():
    meta, _ = split_frontmatter("---\ntitle: [unclosed\n---\nbody")
    assert meta == {}


class TestChunkDocument:
    """Test header-based chunking"""

    def test_splits_on_second_and_third_level_headers(self):
        content = (
            "## First section\n\n" + "alpha " * 20 + "\n\n"
            "### Nested section\n\n" + "beta " * 20 + "\n\n"
            "## Short\n\ntiny\n"
        )
        chunks = chunk_document(content, title="Doc", url="/docs/doc", category="API Reference")
        assert [c.section for c in chunks] == ["First section", "Nested section"]
        assert all(c.title == "Doc" and c.category == "API Reference" for c in chunks)
        assert chunks[0].keywords[0] == "alpha"
        assert len({c.id for c in chunks}) == 2

    def test_document_without_headers_becomes_one_chunk(self):
        content = "Plain documentation text without any headers at all, long enough to keep."
        chunks = chunk_document(content, title="Doc", url="/docs/doc", category="")
        assert len(chunks) == 1
        assert chunks[0].section == "Doc"

    def test_chunk_content_is_capped(self):
        content = "## Big\n\n" + "word " * 1000
        chunks = chunk_document(content, title="Doc", url="/docs/doc", category="", max_chunk_chars=200)
        assert len(chunks[0].content) == 200


class TestDocumentIndex:
    """Test loading and searching the docs directory"""

    def test_loads_markdown_files(self, docs_dir):
        index = DocumentIndex(docs_dir)
        assert len(index.chunks) == 4
        assert index.stats() == {"Getting Started": 2, "Configuration": 2}
        urls = {c.url for c in index.chunks}
        assert urls == {"/docs/getting-started/installation", "/docs/configuration/settings"}
        assert {c.title for c in index.chunks} == {"Installation", "Settings Files"}

    def test_search_ranks_matching_section_first(self, docs_dir):
        index = DocumentIndex(docs_dir)
        results = index.search("permission rules")
        assert results[0].chunk.section == "Permission rules"
        assert all(r.score > 0 for r in results)

    def test_search_without_terms(self, docs_dir):
        assert DocumentIndex(docs_dir).search("the and of") == []

    def test_context_for(self, docs_dir):
        index = DocumentIndex(docs_dir)
        context = index.context_for("environment variables")
        assert context.startswith("\n\nRELEVANT DOCUMENTATION:\n")
        assert "[Configuration] Settings Files > Environment variables" in context
        assert "URL: /docs/configuration/settings" in context
        assert index.context_for("zzzz qqqq") == ""

    def test_missing_directory_gives_empty_index(self, tmp_path):
        index = DocumentIndex(tmp_path / "missing")
        assert index.chunks == []
        assert index.search("anything") == []

    def test_reload_picks_up_new_files(self, docs_dir):
        index = DocumentIndex(docs_dir)
        assert len(index.chunks) == 4
        (docs_dir / "api").mkdir()
        (docs_dir / "api" / "index.md").write_text(
            "## Messages endpoint\n\nThe messages endpoint accepts a list of turns and returns a completion.\n",
            encoding="utf-8",
        )
        assert index.reload() == 5
        new = [c for c in index.chunks if c.category == "API Reference"]
        assert new[0].url == "/docs/api"
