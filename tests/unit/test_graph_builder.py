"""Unit tests for the knowledge graph builder."""

import uuid

from backend.app.graph.builder import (
    QUESTION_NODE_ID,
    build_graph,
    extract_keywords,
)
from backend.app.models.answer import ChunkRef, DocLink, GraphPlan, KnowledgeGraph
from backend.app.models.docs import RetrievedChunk

VACATION_ID = uuid.uuid4()
HANDBOOK_ID = uuid.uuid4()
EXPENSES_ID = uuid.uuid4()


def _chunk(
    doc_id: uuid.UUID,
    title: str,
    index: int,
    text: str,
    *,
    tags: list[str] | None = None,
    category: str = "other",
) -> RetrievedChunk:
    return RetrievedChunk(
        text=text,
        chunk_index=index,
        document_id=doc_id,
        document_title=title,
        document_hash="H" + title[:2].upper(),
        document_tags=tags or [],
        document_category=category,
    )


def _sample_chunks() -> list[RetrievedChunk]:
    return [
        _chunk(
            VACATION_ID,
            "Vacation Policy",
            0,
            "Employees accrue vacation days monthly. Vacation requests need approval.",
            tags=["leave", "benefits"],
            category="policy",
        ),
        _chunk(
            VACATION_ID,
            "Vacation Policy",
            1,
            "Unused vacation days carry over until March.",
            tags=["leave", "benefits"],
            category="policy",
        ),
        _chunk(
            HANDBOOK_ID,
            "Employee Handbook",
            0,
            "The handbook describes benefits including vacation and health insurance.",
            tags=["benefits"],
            category="hr",
        ),
        _chunk(
            EXPENSES_ID,
            "Expense Rules",
            4,
            "Travel expenses require receipts and manager approval.",
            category="policy",
        ),
    ]


def _assert_edges_valid(graph: KnowledgeGraph) -> None:
    node_ids = {node.id for node in graph.nodes}
    for edge in graph.edges:
        assert edge.source in node_ids, edge
        assert edge.target in node_ids, edge


def test_extract_keywords_by_frequency() -> None:
    text = "Vacation vacation days. Approval for vacation days and the approval flow."

    assert extract_keywords(text, limit=3) == ["vacation", "days", "approval"]


def test_extract_keywords_skips_short_and_stop_words() -> None:
    assert extract_keywords("the and with from a an it is HR IT pay") == []


def test_layers_and_node_ids() -> None:
    graph = build_graph("How many vacation days?", _sample_chunks())

    question = graph.nodes[0]
    assert question.id == QUESTION_NODE_ID
    assert question.layer == 0
    assert question.label == "How many vacation days?"

    documents = [n for n in graph.nodes if n.type == "document"]
    assert [d.id for d in documents] == [
        f"doc:{VACATION_ID}",
        f"doc:{HANDBOOK_ID}",
        f"doc:{EXPENSES_ID}",
    ]
    assert all(d.layer == 1 for d in documents)

    chunks = [n for n in graph.nodes if n.type == "chunk"]
    assert [c.id for c in chunks] == [
        f"chunk:{VACATION_ID}:0",
        f"chunk:{VACATION_ID}:1",
        f"chunk:{HANDBOOK_ID}:0",
        f"chunk:{EXPENSES_ID}:4",
    ]
    assert all(c.layer == 2 for c in chunks)

    keywords = [n for n in graph.nodes if n.type == "keyword"]
    assert keywords
    assert all(k.layer == 3 and k.id == f"kw:{k.label}" for k in keywords)

    _assert_edges_valid(graph)


def test_document_relevance_follows_first_chunk_rank() -> None:
    graph = build_graph("q", _sample_chunks())

    documents = {n.id: n for n in graph.nodes if n.type == "document"}
    assert documents[f"doc:{VACATION_ID}"].relevance == 1.0
    assert documents[f"doc:{HANDBOOK_ID}"].relevance == 0.9
    assert documents[f"doc:{EXPENSES_ID}"].relevance == 0.85
    assert documents[f"doc:{VACATION_ID}"].distance == 0.7
    assert [d.angle for d in documents.values()] == [0.0, 120.0, 240.0]


def test_question_links_every_document() -> None:
    graph = build_graph("q", _sample_chunks())

    question_edges = [e for e in graph.edges if e.type == "question-doc"]
    assert {e.target for e in question_edges} == {
        f"doc:{VACATION_ID}",
        f"doc:{HANDBOOK_ID}",
        f"doc:{EXPENSES_ID}",
    }


def test_keyword_edges_only_where_word_occurs() -> None:
    chunks = _sample_chunks()
    graph = build_graph("q", chunks)

    text_by_chunk = {f"chunk:{c.document_id}:{c.chunk_index}": c.text.lower() for c in chunks}
    for edge in graph.edges:
        if edge.type == "chunk-keyword":
            word = edge.target.removeprefix("kw:")
            assert word in text_by_chunk[edge.source]


def test_heuristic_document_links() -> None:
    graph = build_graph("q", _sample_chunks())

    links = {(e.source, e.target): e for e in graph.edges if e.type == "doc-doc"}

    shared = links[(f"doc:{VACATION_ID}", f"doc:{HANDBOOK_ID}")]
    assert shared.reason == "Shared tags: benefits"
    assert shared.strength == 0.3

    category = links[(f"doc:{VACATION_ID}", f"doc:{EXPENSES_ID}")]
    assert category.reason == "Same category: policy"
    assert category.strength == 0.5

    assert (f"doc:{HANDBOOK_ID}", f"doc:{EXPENSES_ID}") not in links


def test_shared_tag_strength_is_capped() -> None:
    tags = ["a", "b", "c", "d"]
    chunks = [
        _chunk(VACATION_ID, "One", 0, "text one", tags=tags),
        _chunk(HANDBOOK_ID, "Two", 0, "text two", tags=tags),
    ]

    graph = build_graph("q", chunks)

    link = next(e for e in graph.edges if e.type == "doc-doc")
    assert link.strength == 1.0


def test_caps_drop_nodes_and_dangling_edges() -> None:
    doc_id = uuid.uuid4()
    chunks = [
        _chunk(doc_id, "Big Doc", i, f"alpha{i} beta{i} gamma{i} delta{i}") for i in range(20)
    ]

    graph = build_graph("q", chunks, max_chunks=5, max_keywords=4)

    assert len([n for n in graph.nodes if n.type == "chunk"]) == 5
    assert len([n for n in graph.nodes if n.type == "keyword"]) == 4
    assert len([e for e in graph.edges if e.type == "doc-chunk"]) == 5
    _assert_edges_valid(graph)


def test_empty_chunks_give_question_only_graph() -> None:
    graph = build_graph("Anything?", [])

    assert [n.id for n in graph.nodes] == [QUESTION_NODE_ID]
    assert graph.edges == []


def test_plan_restricts_chunks_and_sets_keywords() -> None:
    plan = GraphPlan(
        keywords=["vacation", "approval"],
        chunk_refs=[
            ChunkRef(document_title="Vacation Policy", chunk_index=0),
            ChunkRef(document_title="Expense Rules", chunk_index=4),
        ],
        doc_links=[
            DocLink(source_title="Vacation Policy", target_title="Expense Rules", reason="approval"),
            DocLink(source_title="Vacation Policy", target_title="Unknown Doc", reason="dangling"),
        ],
    )

    graph = build_graph("q", _sample_chunks(), plan)

    chunk_ids = [n.id for n in graph.nodes if n.type == "chunk"]
    assert chunk_ids == [f"chunk:{VACATION_ID}:0", f"chunk:{EXPENSES_ID}:4"]
    assert {n.label for n in graph.nodes if n.type == "keyword"} == {"vacation", "approval"}

    doc_links = [e for e in graph.edges if e.type == "doc-doc"]
    assert len(doc_links) == 1
    assert doc_links[0].source == f"doc:{VACATION_ID}"
    assert doc_links[0].target == f"doc:{EXPENSES_ID}"
    assert doc_links[0].strength == 0.6
    assert doc_links[0].reason == "approval"

    _assert_edges_valid(graph)


def test_plan_keyword_count_is_chunks_containing_it() -> None:
    plan = GraphPlan(keywords=["vacation", "insurance", "payroll"])

    graph = build_graph("q", _sample_chunks(), plan)

    keywords = [(n.label, n.count) for n in graph.nodes if n.type == "keyword"]
    assert keywords == [("vacation", 3), ("insurance", 1), ("payroll", 0)]
    assert not [e for e in graph.edges if e.target == "kw:payroll"]
    _assert_edges_valid(graph)


def test_plan_accepts_camel_case_json() -> None:
    plan = GraphPlan.model_validate(
        {
            "keywords": ["days"],
            "chunkRefs": [{"documentTitle": "Vacation Policy", "chunkIndex": 1}],
            "docLinks": [],
        }
    )

    graph = build_graph("q", _sample_chunks(), plan)

    assert [n.id for n in graph.nodes if n.type == "chunk"] == [f"chunk:{VACATION_ID}:1"]
