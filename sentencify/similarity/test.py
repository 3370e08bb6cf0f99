"""Tests for lexical similarity: text handling, TF-IDF and the index."""

import math

import pytest

from sentencify.conftest import make_candidate
from sentencify.library import Candidate, Model

from .index import DEFAULT_THRESHOLD, SimilarityIndex, SimilarityResult
from .text import (
    CONTENT_PREFIX_CHARS,
    build_document_text,
    fold_accents,
    strip_markup,
    tokenize,
)
from .vectorizer import TextVectorizer


def _model(model_id: str, title: str, content: str, keywords="") -> Model:
    return Model(id=model_id, title=title, content=content, keywords=keywords)


# =============================================================================
# Text Handling
# =============================================================================


class TestStripMarkup:
    """Tests for visible-text extraction from rich text."""

    @pytest.mark.unit
    def test_removes_tags_and_collapses_space(self):
        html = "<p>Horas <strong>extras</strong></p>\n<p>devidas</p>"
        assert strip_markup(html) == "Horas extras devidas"

    @pytest.mark.unit
    def test_block_tags_separate_words(self):
        assert strip_markup("<p>um</p><p>dois</p>") == "um dois"
        assert strip_markup("linha<br/>seguinte") == "linha seguinte"

    @pytest.mark.unit
    def test_drops_script_and_style(self):
        html = "<style>p{color:red}</style><p>texto</p><script>alert(1)</script>"
        assert strip_markup(html) == "texto"

    @pytest.mark.unit
    def test_unescapes_entities(self):
        assert strip_markup("<p>a&nbsp;&amp;&nbsp;b</p>").split() == ["a", "&", "b"]

    @pytest.mark.unit
    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_empty_input(self, value):
        assert strip_markup(value) == ""


class TestTokenize:
    """Tests for the tokenizer."""

    @pytest.mark.unit
    def test_folds_accents_and_case(self):
        assert fold_accents("Indenização AÇÃO") == "indenizacao acao"
        assert tokenize("Indenização") == ["indenizacao"]

    @pytest.mark.unit
    def test_drops_stopwords_short_tokens_and_digits(self):
        text = "O reclamante pleiteia 50 horas de trabalho no art. 7"
        assert tokenize(text) == ["pleiteia", "horas", "trabalho"]

    @pytest.mark.unit
    def test_strips_tags_and_punctuation(self):
        assert tokenize("<b>justa-causa</b>; dispensa!") == ["justa", "causa", "dispensa"]

    @pytest.mark.unit
    def test_underscores_split_words(self):
        assert tokenize("valor_devido") == ["valor", "devido"]

    @pytest.mark.unit
    def test_empty(self):
        assert tokenize("") == []
        assert tokenize(None) == []


class TestBuildDocumentText:
    """Tests for composing the compared document text."""

    @pytest.mark.unit
    def test_combines_title_keywords_and_body(self):
        text = build_document_text("Horas Extras", "jornada", "<p>corpo</p>")
        assert text == "Horas Extras jornada corpo"

    @pytest.mark.unit
    def test_keyword_list_joined(self):
        text = build_document_text("T", ["a1", "b2"], "<p>c</p>")
        assert text == "T a1 b2 c"

    @pytest.mark.unit
    def test_body_truncated_after_stripping(self):
        body = "<p>" + "x" * (CONTENT_PREFIX_CHARS + 500) + "</p>"
        text = build_document_text("T", "", body)
        assert text == "T " + "x" * CONTENT_PREFIX_CHARS


# =============================================================================
# Vectorizer
# =============================================================================


class TestTextVectorizer:
    """Tests for TF-IDF weighting."""

    @pytest.mark.unit
    def test_empty_corpus_yields_zero_vectors(self):
        vectorizer = TextVectorizer().fit([])
        assert vectorizer.corpus_size == 0
        assert vectorizer.idf("horas") == 0.0
        assert vectorizer.transform("horas extras habituais") == {}

    @pytest.mark.unit
    def test_idf_formula(self):
        vectorizer = TextVectorizer().fit(
            ["horas extras", "horas noturnas", "ferias vencidas", "aviso previo"]
        )
        assert vectorizer.idf("horas") == pytest.approx(math.log(4 / 2) + 1)
        assert vectorizer.idf("ferias") == pytest.approx(math.log(4 / 1) + 1)
        # Unseen terms count as df=1
        assert vectorizer.idf("inexistente") == pytest.approx(math.log(4) + 1)

    @pytest.mark.unit
    def test_document_frequency_counts_documents_not_occurrences(self):
        vectorizer = TextVectorizer().fit(["horas horas horas", "ferias"])
        assert vectorizer.idf("horas") == pytest.approx(math.log(2) + 1)

    @pytest.mark.unit
    def test_raw_term_frequency(self):
        vectorizer = TextVectorizer().fit(["horas extras", "ferias"])
        vec = vectorizer.transform("horas horas extras")
        idf_horas = vectorizer.idf("horas")
        idf_extras = vectorizer.idf("extras")
        assert vec["horas"] / vec["extras"] == pytest.approx(2 * idf_horas / idf_extras)

    @pytest.mark.unit
    def test_vectors_are_unit_length(self):
        vectorizer = TextVectorizer().fit(["horas extras", "ferias vencidas"])
        vec = vectorizer.transform("horas extras ferias")
        assert sum(w * w for w in vec.values()) == pytest.approx(1.0)

    @pytest.mark.unit
    def test_empty_text_is_zero_vector(self):
        vectorizer = TextVectorizer().fit(["horas extras"])
        assert vectorizer.transform("") == {}
        assert vectorizer.transform("de da do 123") == {}

    @pytest.mark.unit
    def test_cosine_bounds(self):
        vectorizer = TextVectorizer().fit(["horas extras", "ferias vencidas"])
        a = vectorizer.transform("horas extras")
        b = vectorizer.transform("ferias vencidas")
        assert TextVectorizer.cosine(a, a) == pytest.approx(1.0)
        assert TextVectorizer.cosine(a, b) == 0.0
        assert TextVectorizer.cosine(a, {}) == 0.0


# =============================================================================
# Similarity Index
# =============================================================================


class TestFindSimilar:
    """Tests for duplicate lookup against a corpus."""

    @pytest.fixture
    def index(self) -> SimilarityIndex:
        return SimilarityIndex()

    @pytest.mark.unit
    def test_empty_corpus_never_matches(self, index):
        result = index.find_similar(make_candidate("Horas Extras"), [])
        assert result == SimilarityResult(has_similar=False)

    @pytest.mark.unit
    def test_identical_candidate_scores_one(self, index):
        corpus = [_model("model:1", "Horas Extras", "pagamento de horas extras habituais")]
        candidate = Candidate(
            title="Horas Extras", content="pagamento de horas extras habituais"
        )
        result = index.find_similar(candidate, corpus)
        assert result.has_similar
        assert result.matched_model.id == "model:1"
        assert result.score == pytest.approx(1.0)

    @pytest.mark.unit
    def test_disjoint_vocabulary_scores_zero(self, index):
        corpus = [_model("model:1", "Horas Extras", "pagamento habitual de sobrejornada")]
        candidate = Candidate(title="Ferias", content="dobra das ferias vencidas")
        scores = index.scores(candidate, corpus)
        assert scores[0][1] == 0.0
        assert not index.find_similar(candidate, corpus).has_similar

    @pytest.mark.unit
    def test_empty_text_candidate_never_matches(self, index):
        corpus = [_model("model:1", "Dano", "dano moral")]
        candidate = Candidate(title="123", content="<p>de da do</p>")
        assert not index.find_similar(candidate, corpus, threshold=0.0).has_similar

    @pytest.mark.unit
    def test_threshold_is_inclusive_and_monotonic(self, index):
        corpus = [
            _model("model:1", "Horas Extras", "pagamento de horas extras habituais"),
            _model("model:2", "Ferias", "ferias vencidas em dobro"),
        ]
        candidate = Candidate(title="Horas Extras", content="horas extras noturnas")
        score = dict((m.id, s) for m, s in index.scores(candidate, corpus))["model:1"]
        assert 0.0 < score < 1.0

        assert index.find_similar(candidate, corpus, threshold=score).has_similar
        assert not index.find_similar(candidate, corpus, threshold=min(1.0, score + 1e-6)).has_similar
        for low in (0.0, score / 2, score):
            assert index.find_similar(candidate, corpus, threshold=low).has_similar

    @pytest.mark.unit
    def test_tie_goes_to_first_in_corpus_order(self, index):
        corpus = [
            _model("model:b", "Horas Extras", "horas extras habituais"),
            _model("model:a", "Horas Extras", "horas extras habituais"),
        ]
        candidate = Candidate(title="Horas Extras", content="horas extras habituais")
        assert index.find_similar(candidate, corpus).matched_model.id == "model:b"
        assert index.find_similar(candidate, corpus[::-1]).matched_model.id == "model:a"

    @pytest.mark.unit
    def test_returns_best_match(self, index):
        corpus = [
            _model("model:1", "Horas", "horas extras noturnas adicional"),
            _model("model:2", "Horas Extras", "horas extras habituais"),
        ]
        candidate = Candidate(title="Horas Extras", content="horas extras habituais")
        result = index.find_similar(candidate, corpus, threshold=0.1)
        assert result.matched_model.id == "model:2"

    @pytest.mark.unit
    def test_member_with_candidate_identity_is_skipped(self, index):
        candidate = Candidate(title="Horas Extras", content="horas extras habituais")
        corpus = [candidate.as_provisional_model()]
        assert index.scores(candidate, corpus) == []
        assert not index.find_similar(candidate, corpus).has_similar

    @pytest.mark.unit
    def test_lookup_failure_reports_no_match(self, index):
        result = index.find_similar(make_candidate("Horas"), [object()])
        assert result.has_similar is False

    @pytest.mark.unit
    @pytest.mark.parametrize("threshold", [-0.1, 1.5])
    def test_threshold_out_of_range(self, index, threshold):
        with pytest.raises(ValueError):
            index.find_similar(make_candidate("Horas"), [], threshold=threshold)

    @pytest.mark.unit
    def test_default_threshold(self):
        assert DEFAULT_THRESHOLD == 0.80


class TestIndexCache:
    """Tests for vector caching and invalidation."""

    @pytest.mark.unit
    def test_reuses_vectors_for_same_corpus(self):
        index = SimilarityIndex()
        corpus = [_model("model:1", "Horas", "horas extras")]
        index.find_similar(make_candidate("Ferias"), corpus)
        index.find_similar(make_candidate("Aviso"), corpus)
        assert index.builds == 1

    @pytest.mark.unit
    def test_rebuilds_when_corpus_changes(self):
        index = SimilarityIndex()
        corpus = [_model("model:1", "Horas", "horas extras")]
        index.find_similar(make_candidate("Ferias"), corpus)
        changed = [_model("model:1", "Horas", "horas extras noturnas")]
        index.find_similar(make_candidate("Ferias"), changed)
        assert index.builds == 2

    @pytest.mark.unit
    def test_invalidate_drops_cache_and_records_generation(self):
        index = SimilarityIndex()
        corpus = [_model("model:1", "Horas", "horas extras")]
        index.find_similar(make_candidate("Ferias"), corpus)
        assert index.is_valid

        index.invalidate(7)
        assert not index.is_valid
        assert index.generation == 7

        index.find_similar(make_candidate("Ferias"), corpus)
        assert index.builds == 2
