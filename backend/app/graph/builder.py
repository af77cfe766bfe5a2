"""Knowledge graph builder - question, documents, chunks and keywords in layers.

Layer 0 holds the question, layer 1 one node per document, layer 2 the
chunks and layer 3 the keywords. An optional model-proposed GraphPlan can
pick the keywords, restrict the chunks and name explicit document links;
without one, documents are linked by shared tags or category.
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from backend.app.models.answer import GraphEdge, GraphNode, GraphPlan, KnowledgeGraph
from backend.app.models.docs import RetrievedChunk

QUESTION_NODE_ID = "question:root"

MAX_CHUNK_NODES = 16
MAX_KEYWORD_NODES = 24
KEYWORDS_PER_CHUNK = 3
PLAN_LINK_STRENGTH = 0.6
CATEGORY_LINK_STRENGTH = 0.5
KEYWORD_DISTANCE = 0.9

KEYWORD_STOPWORDS: frozenset[str] = frozenset(
    """
    the and for with that this from into over under about your you are was were
    have has had will shall may can could would should not but also than then
    their there what when where which who whom why how all any each few more most
    other some such no nor too very is in on at of to by as an or if it its be
    """.split()
)

_NON_WORD_RE = re.compile(r"[^a-z0-9\s]")


def extract_keywords(text: str, limit: int = 4) -> list[str]:
    """Most frequent words longer than 3 chars, stop words removed.

    Ties keep first-occurrence order.
    """
    tokens = [
        t
        for t in _NON_WORD_RE.sub(" ", text.lower()).split()
        if len(t) > 3 and t not in KEYWORD_STOPWORDS
    ]
    counts: dict[str, int] = {}
    for token in tokens:
        counts[token] = counts.get(token, 0) + 1

    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [word for word, _ in ranked[:limit]]


def _shorten(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


@dataclass
class _DocumentInfo:
    node_id: str
    document_id: str
    title: str
    hash: str
    tags: list[str]
    category: str
    relevance: float
    excerpts: list[str] = field(default_factory=list)


def link_documents(documents: Sequence[_DocumentInfo]) -> list[GraphEdge]:
    """Heuristic document links, at most one per pair.

    Shared tags win (strength 0.3 per tag, capped at 1); otherwise the same
    category links with strength 0.5.
    """
    edges: list[GraphEdge] = []
    for i, first in enumerate(documents):
        for second in documents[i + 1 :]:
            shared = [tag for tag in first.tags if tag in second.tags]
            if shared:
                edges.append(
                    GraphEdge(
                        source=first.node_id,
                        target=second.node_id,
                        type="doc-doc",
                        strength=min(1.0, round(0.3 * len(shared), 1)),
                        reason=f"Shared tags: {', '.join(shared)}",
                    )
                )
                continue

            if first.category and first.category == second.category:
                edges.append(
                    GraphEdge(
                        source=first.node_id,
                        target=second.node_id,
                        type="doc-doc",
                        strength=CATEGORY_LINK_STRENGTH,
                        reason=f"Same category: {first.category}",
                    )
                )
    return edges


def build_graph(
    question: str,
    chunks: Sequence[RetrievedChunk],
    plan: GraphPlan | None = None,
    *,
    max_chunks: int = MAX_CHUNK_NODES,
    max_keywords: int = MAX_KEYWORD_NODES,
) -> KnowledgeGraph:
    """Build the layered graph for an answer.

    Every returned edge references nodes present in the node list; edges to
    chunks or keywords dropped by the caps are removed.

    Args:
        question: Question text (label of the root node)
        chunks: Chunks behind the answer, in rank order
        plan: Optional model-proposed selection
        max_chunks: Cap on chunk nodes
        max_keywords: Cap on keyword nodes (most frequent kept)

    Returns:
        KnowledgeGraph with nodes and edges
    """
    plan_keywords = list(dict.fromkeys(plan.keywords)) if plan and plan.keywords else []
    allowed_chunks = (
        {(ref.document_title, ref.chunk_index) for ref in plan.chunk_refs} if plan else set()
    )

    documents: dict[str, _DocumentInfo] = {}
    chunk_nodes: list[GraphNode] = []
    keyword_counts: dict[str, int] = {}
    keyword_edges: list[GraphEdge] = []

    for index, chunk in enumerate(chunks):
        if allowed_chunks and (chunk.document_title, chunk.chunk_index) not in allowed_chunks:
            continue

        doc_key = str(chunk.document_id)
        if doc_key not in documents:
            documents[doc_key] = _DocumentInfo(
                node_id=f"doc:{doc_key}",
                document_id=doc_key,
                title=chunk.document_title,
                hash=chunk.document_hash,
                tags=list(chunk.document_tags),
                category=chunk.document_category,
                relevance=round(1 - index * 0.05, 2),
            )
        documents[doc_key].excerpts.append(_shorten(chunk.text, 150))

        chunk_id = f"chunk:{doc_key}:{chunk.chunk_index}"
        chunk_nodes.append(
            GraphNode(
                id=chunk_id,
                type="chunk",
                label=_shorten(chunk.text, 60),
                layer=2,
                document_id=doc_key,
                excerpt=_shorten(chunk.text, 180),
            )
        )

        text_lower = chunk.text.lower()
        keywords = plan_keywords or extract_keywords(chunk.text, KEYWORDS_PER_CHUNK)
        for word in keywords:
            # Plan keywords keep a node even when no chunk contains them
            keyword_counts.setdefault(word, 0)
            if word.lower() in text_lower:
                keyword_counts[word] += 1
                keyword_edges.append(
                    GraphEdge(source=chunk_id, target=f"kw:{word}", type="chunk-keyword")
                )

    doc_infos = list(documents.values())
    doc_nodes = [
        GraphNode(
            id=info.node_id,
            type="document",
            label=info.title,
            layer=1,
            document_id=info.document_id,
            angle=(360 / len(doc_infos)) * i,
            distance=round(1 - info.relevance * 0.3, 4),
            relevance=info.relevance,
            hash=info.hash,
            tags=info.tags,
            category=info.category,
            excerpt=info.excerpts[0] if info.excerpts else None,
        )
        for i, info in enumerate(doc_infos)
    ]

    ranked_keywords = sorted(keyword_counts.items(), key=lambda item: item[1], reverse=True)
    ranked_keywords = ranked_keywords[:max_keywords]
    keyword_nodes = [
        GraphNode(
            id=f"kw:{word}",
            type="keyword",
            label=word,
            layer=3,
            angle=(360 / len(ranked_keywords)) * i,
            distance=KEYWORD_DISTANCE,
            count=count,
        )
        for i, (word, count) in enumerate(ranked_keywords)
    ]

    kept_chunks = chunk_nodes[:max_chunks]

    nodes = [
        GraphNode(id=QUESTION_NODE_ID, type="question", label=question, layer=0),
        *doc_nodes,
        *kept_chunks,
        *keyword_nodes,
    ]

    edges: list[GraphEdge] = [
        GraphEdge(source=QUESTION_NODE_ID, target=node.id, type="question-doc")
        for node in doc_nodes
    ]
    edges.extend(
        GraphEdge(source=f"doc:{node.document_id}", target=node.id, type="doc-chunk")
        for node in kept_chunks
    )
    edges.extend(keyword_edges)

    if plan and plan.doc_links:
        by_title = {info.title: info.node_id for info in doc_infos}
        for link in plan.doc_links:
            source = by_title.get(link.source_title)
            target = by_title.get(link.target_title)
            if source and target and source != target:
                edges.append(
                    GraphEdge(
                        source=source,
                        target=target,
                        type="doc-doc",
                        strength=PLAN_LINK_STRENGTH,
                        reason=link.reason,
                    )
                )
    else:
        edges.extend(link_documents(doc_infos))

    node_ids = {node.id for node in nodes}
    edges = [e for e in edges if e.source in node_ids and e.target in node_ids]

    return KnowledgeGraph(nodes=nodes, edges=edges)
