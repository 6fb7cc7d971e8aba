from local_rag.infrastructure.lexical.bm25_index import BM25LexicalIndex, tokenize

ENTRIES = [
    ("c1", "Photosynthesis converts light energy into chemical energy."),
    ("c2", "Mitochondria release energy by respiration."),
    ("c3", "The Roman Empire was ruled by emperors."),
    ("c4", "Legions built roads across the provinces."),
]


def test_tokenize_lowercases_and_splits_on_non_word():
    assert tokenize("Cell-Biology, 101!") == ["cell", "biology", "101"]
    assert tokenize("a bb ccc", min_token_len=2) == ["bb", "ccc"]


def test_scores_only_chunks_sharing_query_terms():
    index = BM25LexicalIndex()
    index.rebuild(1, ENTRIES)

    scores = index.score("photosynthesis light")

    assert set(scores) == {"c1"}
    assert scores["c1"] > 0


def test_every_matching_chunk_is_scored():
    index = BM25LexicalIndex()
    index.rebuild(1, ENTRIES)

    scores = index.score("roman legions")

    assert set(scores) == {"c3", "c4"}


def test_restrict_to_filters_results():
    index = BM25LexicalIndex()
    index.rebuild(1, ENTRIES)
    assert set(index.score("roman legions", restrict_to={"c4"})) == {"c4"}


def test_revision_and_size_track_rebuilds():
    index = BM25LexicalIndex()
    assert index.revision is None
    assert index.score("anything") == {}

    index.rebuild(3, ENTRIES)
    assert index.revision == 3
    assert len(index) == 4

    index.rebuild(4, ENTRIES[:1])
    assert index.revision == 4
    assert len(index) == 1


def test_empty_corpus_and_empty_query():
    index = BM25LexicalIndex()
    index.rebuild(1, [])
    assert index.score("energy") == {}

    index.rebuild(2, ENTRIES)
    assert index.score("  ...  ") == {}


def test_single_chunk_collection_scores_matching_chunk():
    index = BM25LexicalIndex()
    index.rebuild(1, [("a", "photosynthesis light energy")])

    scores = index.score("photosynthesis")

    assert set(scores) == {"a"}
    assert scores["a"] > 0


def test_two_chunk_collection_scores_only_the_matching_chunk():
    index = BM25LexicalIndex()
    index.rebuild(1, [("a", "photosynthesis light energy"), ("b", "roman empire legions")])

    scores = index.score("photosynthesis")

    assert set(scores) == {"a"}
    assert scores["a"] > 0


def test_term_present_in_every_chunk_still_scores():
    index = BM25LexicalIndex()
    index.rebuild(1, [("a", "energy from light"), ("b", "energy from food")])

    scores = index.score("energy")

    assert set(scores) == {"a", "b"}
    assert all(s > 0 for s in scores.values())
