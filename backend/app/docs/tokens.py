"""Lexical tokenization shared by retrieval and keyword extraction."""

import re

_TOKEN_RE = re.compile(r"[a-z0-9]+")

STOPWORDS: frozenset[str] = frozenset(
    """
    a about above after again against all also am an and any are as at be because
    been before being below between both but by can could did do does doing down
    during each few for from further had has have having he her here hers herself
    him himself his how i if in into is it its itself just may me more most my
    myself no nor not now of off on once only or other our ours ourselves out over
    own same shall she should so some such than that the their theirs them
    themselves then there these they this those through to too under until up very
    was we were what when where which while who whom why will with would you your
    yours yourself yourselves
    """.split()
)


def tokenize(text: str) -> list[str]:
    """Lower-case alphanumeric tokens with stop words removed, in text order."""
    return [t for t in _TOKEN_RE.findall(text.lower()) if t not in STOPWORDS]


def query_terms(query: str) -> list[str]:
    """Distinct search terms of a query, first occurrence order."""
    return list(dict.fromkeys(tokenize(query)))
