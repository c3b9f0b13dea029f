"""
Tests for the Jelly stream encoder.
"""

import pytest
from pyoxigraph import BlankNode, DefaultGraph, Literal, NamedNode, Quad, Triple

from rdf_jelly.encoder import JellyEncoder
from rdf_jelly.errors import ProtocolViolationError, ResourceLimitError
from rdf_jelly.options import PhysicalStreamType, StreamOptions
from rdf_jelly.rows import decode_row, slot_kind

XSD_INTEGER = "http://www.w3.org/2001/XMLSchema#integer"

EX_S = NamedNode("http://ex.org/s")
EX_P = NamedNode("http://ex.org/p")
EX_P2 = NamedNode("http://ex.org/p2")
EX_G = NamedNode("http://ex.org/g")


def row_kinds(rows):
    return [row.WhichOneof("row") for row in rows]


@pytest.fixture
def encoder():
    return JellyEncoder()


class TestStreamStart:
    """Test the options row discipline."""

    def test_options_row_first(self, encoder):
        rows = encoder.encode(Quad(EX_S, EX_P, Literal("Hello Jelly")))
        assert rows[0].WhichOneof("row") == "options"
        assert rows[0].options.physical_type == PhysicalStreamType.QUADS

    def test_options_row_only_once(self, encoder):
        encoder.encode(Quad(EX_S, EX_P, Literal("a")))
        rows = encoder.encode(Quad(EX_S, EX_P, Literal("b")))
        assert "options" not in row_kinds(rows)

    def test_options_row_after_reset(self, encoder):
        encoder.encode(Quad(EX_S, EX_P, Literal("a")))
        encoder.reset()
        rows = encoder.encode(Quad(EX_S, EX_P, Literal("a")))
        assert row_kinds(rows) == ["options", "name", "name", "quad"]

    def test_finish_on_empty_stream(self, encoder):
        rows = [decode_row(data) for data in encoder.finish()]
        assert row_kinds(rows) == ["options"]
        assert encoder.finish() == []

    def test_write_returns_bytes(self, encoder):
        buffers = encoder.write(Quad(EX_S, EX_P, Literal("a")))
        assert all(isinstance(b, bytes) for b in buffers)
        assert row_kinds([decode_row(b) for b in buffers]) == ["options", "name", "name", "quad"]


class TestLookupRows:
    """Test table update rows."""

    def test_example_stream(self, encoder):
        """Two statements sharing a subject, the second in a named graph."""
        first = encoder.encode(Quad(EX_S, EX_P, Literal("Hello Jelly"), DefaultGraph()))
        assert row_kinds(first) == ["options", "name", "name", "quad"]
        assert [r.name.value for r in first[1:3]] == ["http://ex.org/s", "http://ex.org/p"]
        assert [r.name.id for r in first[1:3]] == [1, 2]

        second = encoder.encode(Quad(EX_S, EX_P2, Literal("Another Value"), EX_G))
        assert row_kinds(second) == ["name", "name", "quad"]
        assert [r.name.value for r in second[:2]] == ["http://ex.org/p2", "http://ex.org/g"]
        assert [r.name.id for r in second[:2]] == [3, 4]

    def test_no_update_for_known_iri(self, encoder):
        encoder.encode(Quad(EX_S, EX_P, EX_G))
        rows = encoder.encode(Quad(EX_G, EX_P, EX_S))
        assert row_kinds(rows) == ["quad"]

    def test_typed_literal_uses_datatype_table(self, encoder):
        rows = encoder.encode(Quad(EX_S, EX_P, Literal("42", datatype=NamedNode(XSD_INTEGER))))
        datatype_rows = [r for r in rows if r.WhichOneof("row") == "datatype"]
        assert len(datatype_rows) == 1
        assert datatype_rows[0].datatype.value == XSD_INTEGER
        assert datatype_rows[0].datatype.id == 1

        literal = rows[-1].quad.o_literal
        assert literal.lex == "42"
        assert literal.HasField("datatype")
        assert literal.datatype == 1
        assert rows.index(datatype_rows[0]) < len(rows) - 1

    def test_plain_literal_has_no_datatype(self, encoder):
        rows = encoder.encode(Quad(EX_S, EX_P, Literal("plain")))
        assert "datatype" not in row_kinds(rows)
        literal = rows[-1].quad.o_literal
        assert not literal.HasField("datatype")
        assert not literal.HasField("langtag")

    def test_language_literal_has_no_datatype(self, encoder):
        rows = encoder.encode(Quad(EX_S, EX_P, Literal("bonjour", language="fr")))
        assert "datatype" not in row_kinds(rows)
        literal = rows[-1].quad.o_literal
        assert literal.langtag == "fr"
        assert not literal.HasField("datatype")

    def test_table_monotonicity(self, encoder):
        """IDs are never reused for different values."""
        seen = {}
        for i in range(20):
            rows = encoder.encode(Quad(
                NamedNode(f"http://ex.org/s{i % 7}"),
                NamedNode(f"http://ex.org/p{i % 3}"),
                NamedNode(f"http://ex.org/o{i}"),
            ))
            for row in rows:
                if row.WhichOneof("row") == "name":
                    assert row.name.id not in seen
                    assert row.name.value not in seen.values()
                    seen[row.name.id] = row.name.value
        assert sorted(seen) == list(range(1, len(seen) + 1))
        assert encoder.stats()["names"] == len(seen)


class TestIriElision:
    """Test prefix/name ID elision on IRIs."""

    def test_sequential_names_use_zero(self, encoder):
        quad = encoder.encode(Quad(EX_S, EX_P, EX_G))[-1].quad
        assert quad.s_iri.name_id == 0
        assert quad.p_iri.name_id == 0
        assert quad.o_iri.name_id == 0

    def test_out_of_order_name_is_explicit(self, encoder):
        encoder.encode(Quad(EX_S, EX_P, EX_G))
        quad = encoder.encode(Quad(EX_G, EX_S, EX_P))[-1].quad
        assert quad.s_iri.name_id == 3
        # name 1 after name 3 is explicit, name 2 after name 1 is not
        assert quad.p_iri.name_id == 1
        assert quad.o_iri.name_id == 0

    def test_prefix_disabled_writes_zero_prefix(self, encoder):
        quad = encoder.encode(Quad(EX_S, EX_P, EX_G))[-1].quad
        assert quad.s_iri.prefix_id == 0
        assert quad.p_iri.prefix_id == 0

    def test_prefix_table(self):
        encoder = JellyEncoder(StreamOptions(max_prefix_table_size=16))
        rows = encoder.encode(Quad(EX_S, EX_P, NamedNode("http://other.org/o")))
        assert row_kinds(rows) == ["options", "prefix", "name", "name", "prefix", "name", "quad"]
        assert rows[1].prefix.value == "http://ex.org/"
        assert [r.name.value for r in rows if r.WhichOneof("row") == "name"] == ["s", "p", "o"]

        quad = rows[-1].quad
        assert quad.s_iri.prefix_id == 1
        assert quad.p_iri.prefix_id == 0  # same prefix as previous IRI
        assert quad.o_iri.prefix_id == 2
        assert quad.o_iri.name_id == 0


class TestTermElision:
    """Test repeated-term elision."""

    def test_repeated_graph_is_omitted(self, encoder):
        encoder.encode(Quad(EX_S, EX_P, Literal("a"), EX_G))
        quad = encoder.encode(Quad(EX_P, EX_S, Literal("b"), EX_G))[-1].quad
        assert slot_kind(quad, "g") is None
        assert slot_kind(quad, "s") is not None

    def test_repeated_subject_and_predicate(self, encoder):
        encoder.encode(Quad(EX_S, EX_P, Literal("a")))
        quad = encoder.encode(Quad(EX_S, EX_P, Literal("b")))[-1].quad
        assert slot_kind(quad, "s") is None
        assert slot_kind(quad, "p") is None
        assert quad.o_literal.lex == "b"
        assert slot_kind(quad, "g") is None

    def test_first_statement_is_complete(self, encoder):
        quad = encoder.encode(Quad(EX_S, EX_P, Literal("a")))[-1].quad
        for slot in ("s", "p", "o", "g"):
            assert slot_kind(quad, slot) is not None

    def test_blank_nodes(self, encoder):
        quad = encoder.encode(Quad(BlankNode("b1"), EX_P, BlankNode("b2"), BlankNode("g1")))[-1].quad
        assert quad.s_bnode == "b1"
        assert quad.o_bnode == "b2"
        assert quad.g_bnode == "g1"


class TestStreamShapes:
    """Test TRIPLES and GRAPHS streams."""

    def test_triples_stream(self):
        encoder = JellyEncoder(StreamOptions(physical_type=PhysicalStreamType.TRIPLES))
        rows = encoder.encode(Triple(EX_S, EX_P, Literal("a")))
        assert row_kinds(rows) == ["options", "name", "name", "triple"]

    def test_triples_stream_named_graph_uses_quad_row(self):
        encoder = JellyEncoder(StreamOptions(physical_type=PhysicalStreamType.TRIPLES))
        encoder.encode(Triple(EX_S, EX_P, Literal("a")))
        rows = encoder.encode(Quad(EX_S, EX_P, Literal("b"), EX_G))
        assert row_kinds(rows) == ["name", "quad"]
        quad = rows[-1].quad
        assert quad.HasField("g_iri")
        assert not quad.HasField("s_iri")

        back = encoder.encode(Triple(EX_S, EX_P, Literal("b")))
        assert row_kinds(back) == ["triple"]
        assert slot_kind(back[-1].triple, "o") is None

    def test_graphs_stream(self):
        encoder = JellyEncoder(StreamOptions(physical_type=PhysicalStreamType.GRAPHS))
        first = encoder.encode(Quad(EX_S, EX_P, Literal("a"), EX_G))
        assert row_kinds(first) == ["options", "name", "graph_start", "name", "name", "triple"]

        same_graph = encoder.encode(Quad(EX_S, EX_P, Literal("b"), EX_G))
        assert row_kinds(same_graph) == ["triple"]

        other_graph = encoder.encode(Quad(EX_S, EX_P, Literal("c")))
        assert row_kinds(other_graph) == ["graph_end", "graph_start", "triple"]
        assert other_graph[1].graph_start.HasField("g_default_graph")

        closing = [decode_row(b) for b in encoder.finish()]
        assert row_kinds(closing) == ["graph_end"]

    def test_namespace_declaration(self, encoder):
        rows = [decode_row(b) for b in encoder.declare_namespace("ex", "http://ex.org/")]
        assert row_kinds(rows) == ["options", "name", "namespace"]
        assert rows[-1].namespace.name == "ex"

    def test_invalid_namespace_iri(self, encoder):
        with pytest.raises(ProtocolViolationError, match="Invalid namespace IRI"):
            encoder.declare_namespace("ex", "not an iri")
        with pytest.raises(ProtocolViolationError, match="failed state"):
            encoder.declare_namespace("ex", "http://ex.org/")


class TestValidation:
    """Test rejection of terms the stream cannot carry."""

    def test_literal_subject_requires_generalized(self, encoder):
        with pytest.raises(ProtocolViolationError, match="generalized"):
            encoder.encode((Literal("x"), EX_P, EX_S))

    def test_literal_subject_with_generalized(self):
        encoder = JellyEncoder(StreamOptions(generalized_statements=True))
        quad = encoder.encode((Literal("x"), BlankNode("b"), EX_S))[-1].quad
        assert quad.s_literal.lex == "x"
        assert quad.p_bnode == "b"

    def test_quoted_triple_requires_rdf_star(self, encoder):
        with pytest.raises(ProtocolViolationError, match="rdf_star"):
            encoder.encode(Quad(EX_S, EX_P, Triple(EX_S, EX_P, Literal("a"))))

    def test_quoted_triple(self):
        encoder = JellyEncoder(StreamOptions(rdf_star=True))
        quoted = Triple(EX_S, EX_P, Literal("a"))
        encoder.encode(Quad(EX_S, EX_P, Literal("a")))
        quad = encoder.encode(Quad(EX_G, EX_P, quoted))[-1].quad
        nested = quad.o_triple_term
        # Nested terms are never elided even when they repeat
        for slot in ("s", "p", "o"):
            assert slot_kind(nested, slot) is not None

    def test_quoted_triple_subject(self):
        encoder = JellyEncoder(StreamOptions(rdf_star=True))
        quoted = Triple(EX_S, EX_P, Literal("a"))
        quad = encoder.encode((quoted, EX_P, Literal("b")))[-1].quad
        assert quad.s_triple_term.o_literal.lex == "a"

    def test_directional_literal(self, encoder):
        try:
            literal = Literal("x", language="ar", direction="rtl")
        except TypeError:
            pytest.skip("pyoxigraph build without base direction support")
        with pytest.raises(ProtocolViolationError, match="base direction"):
            encoder.encode(Quad(EX_S, EX_P, literal))
        assert encoder.stats()["names"] == 0

    def test_not_a_statement(self, encoder):
        with pytest.raises(TypeError):
            encoder.encode("not a statement")

    def test_failed_encoder_refuses_work(self, encoder):
        with pytest.raises(ProtocolViolationError):
            encoder.encode((Literal("x"), EX_P, EX_S))
        with pytest.raises(ProtocolViolationError, match="failed state"):
            encoder.encode(Quad(EX_S, EX_P, EX_G))
        encoder.reset()
        assert row_kinds(encoder.encode(Quad(EX_S, EX_P, EX_G)))[0] == "options"


class TestCeilings:
    """Test table ceilings."""

    def test_name_table_ceiling(self):
        encoder = JellyEncoder(StreamOptions(max_name_table_size=8))
        for i in range(4):
            encoder.encode(Quad(NamedNode(f"http://ex.org/s{i}"), NamedNode(f"http://ex.org/p{i}"), Literal("x")))
        with pytest.raises(ResourceLimitError, match="name table"):
            encoder.encode(Quad(NamedNode("http://ex.org/s9"), EX_P, Literal("x")))

    def test_datatype_table_disabled(self):
        encoder = JellyEncoder(StreamOptions(max_datatype_table_size=0))
        with pytest.raises(ResourceLimitError, match="datatype table"):
            encoder.encode(Quad(EX_S, EX_P, Literal("1", datatype=NamedNode(XSD_INTEGER))))
