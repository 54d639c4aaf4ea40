"""Tests for ascii_format.py - ASCII CMOD grammar read/write."""

import numpy as np
import os
import tempfile
import pytest

from cmod.ascii_format import loads, dumps, split_tokens, unquote, read_cmod_ascii, write_cmod_ascii
from cmod.errors import (
    ContextError,
    CountMismatchError,
    GrammarError,
    HeaderError,
    TruncationError,
)
from cmod.model import Material, Mesh, Model, PrimitiveGroup, VertexAttribute, VertexBuffer
from cmod.tokens import BlendMode, TextureSemantic, VertexFormat, VertexSemantic


TRIANGLE = """#celmodel__ascii
material
diffuse 1.000000 0.000000 0.000000
end_material

mesh
vertexdesc
position f3
end_vertexdesc
vertices 3
0.000000 0.000000 0.000000
1.000000 0.000000 0.000000
0.000000 1.000000 0.000000
trilist 0 3
0 1 2
end_mesh

"""


def mesh_block(body):
    return "#celmodel__ascii\nmesh\n" + body + "end_mesh\n"


class TestTokenizer:
    """Test line tokenization."""

    def test_whitespace_split(self):
        """Test tabs and repeated spaces separate tokens."""
        assert split_tokens("diffuse  1\t0 0") == ["diffuse", "1", "0", "0"]

    def test_quoted_token_kept_whole(self):
        """Test quoted strings with spaces stay one token."""
        tokens = split_tokens('texture0 "my texture.png"')
        assert tokens == ["texture0", '"my texture.png"']
        assert unquote(tokens[1]) == "my texture.png"

    def test_unbalanced_quote(self):
        """Test an unclosed quote is a grammar error."""
        with pytest.raises(GrammarError, match="Unbalanced quote"):
            split_tokens('texture0 "broken.png', 7)


class TestAsciiRead:
    """Test parsing well-formed ASCII models."""

    def test_triangle(self):
        """Test the canonical single-triangle model."""
        model = loads(TRIANGLE)

        assert len(model.materials) == 1
        assert model.materials[0].diffuse == (1.0, 0.0, 0.0)
        assert len(model.meshes) == 1

        mesh = model.meshes[0]
        assert mesh.descriptor == [VertexAttribute(VertexSemantic.POSITION, VertexFormat.F3)]
        assert mesh.vertex_count == 3
        np.testing.assert_array_equal(
            mesh.vertices.floats,
            np.array([0, 0, 0, 1, 0, 0, 0, 1, 0], dtype=np.float32),
        )
        assert mesh.vertices.colors is None
        assert len(mesh.primitives) == 1
        assert mesh.primitives[0].material_index == 0
        np.testing.assert_array_equal(mesh.primitives[0].indices, [0, 1, 2])

    def test_all_material_fields(self):
        """Test every material keyword, including blend and quoted textures."""
        text = """#celmodel__ascii
material
diffuse 0.5 0.5 0.5
specular 1 1 1
emissive 0.1 0.2 0.3
specpower 32
opacity 0.75
blend add
texture0 "hull diffuse.png"
normalmap "hull_nrm.png"
specularmap "hull_spec.png"
emissivemap "lights.png"
end_material
"""
        material = loads(text).materials[0]

        assert material.diffuse == (0.5, 0.5, 0.5)
        assert material.specular == (1.0, 1.0, 1.0)
        assert material.emissive == pytest.approx((0.1, 0.2, 0.3))
        assert material.specular_power == 32.0
        assert material.opacity == 0.75
        assert material.blend == BlendMode.ADD
        assert material.textures == {
            TextureSemantic.DIFFUSE: "hull diffuse.png",
            TextureSemantic.NORMAL: "hull_nrm.png",
            TextureSemantic.SPECULAR: "hull_spec.png",
            TextureSemantic.EMISSIVE: "lights.png",
        }

    def test_comments_and_blank_lines(self):
        """Test comments and blank lines between statements are skipped."""
        text = "\n" + TRIANGLE.replace("mesh\n", "# the mesh\n\nmesh\n", 1)
        model = loads(text)
        assert len(model.meshes) == 1
        assert model.meshes[0].vertex_count == 3

    def test_blank_lines_inside_vertices(self):
        """Test blank lines between vertex lines do not count as vertices."""
        text = mesh_block(
            "vertexdesc\nposition f3\nend_vertexdesc\n"
            "vertices 2\n1 2 3\n\n4 5 6\n"
        )
        mesh = loads(text).meshes[0]
        np.testing.assert_array_equal(mesh.vertices.floats, [1, 2, 3, 4, 5, 6])

    def test_trilist_spans_lines(self):
        """Test trilist indices are collected across lines and surplus dropped."""
        text = mesh_block(
            "vertexdesc\nposition f3\nend_vertexdesc\n"
            "vertices 0\n"
            "trilist 2 6\n0 1\n2 3 4\n5 6 7\n"
        )
        primitive = loads(text).meshes[0].primitives[0]
        assert primitive.material_index == 2
        np.testing.assert_array_equal(primitive.indices, [0, 1, 2, 3, 4, 5])

    def test_zero_index_trilist(self):
        """Test an empty trilist reads without consuming lines."""
        text = mesh_block("vertexdesc\nend_vertexdesc\nvertices 0\ntrilist 0 0\n")
        mesh = loads(text).meshes[0]
        assert len(mesh.primitives) == 1
        assert len(mesh.primitives[0].indices) == 0

    def test_ub4_integer_and_float_tokens(self):
        """Test ub4 accepts 0..255 integers and 0..1 floats."""
        text = mesh_block(
            "vertexdesc\nposition f3\ncolor0 ub4\nend_vertexdesc\n"
            "vertices 3\n"
            "0 0 0 255 0 128 1\n"
            "0 0 0 1.0 0.0 0.5 1.0\n"
            "0 0 0 300 -4 12 7\n"
        )
        mesh = loads(text).meshes[0]
        np.testing.assert_array_equal(
            mesh.vertices.colors,
            [255, 0, 128, 1, 255, 0, 128, 255, 255, 0, 12, 7],
        )
        assert len(mesh.vertices.floats) == 9

    def test_extra_vertex_tokens_ignored(self):
        """Test tokens beyond the descriptor width are ignored."""
        text = mesh_block(
            "vertexdesc\ntexcoord0 f2\nend_vertexdesc\n"
            "vertices 1\n0.25 0.75 99 99\n"
        )
        np.testing.assert_array_equal(loads(text).meshes[0].vertices.floats, [0.25, 0.75])

    def test_utf8_bom_header(self):
        """Test a leading byte order mark does not break the header."""
        model = loads("\ufeff" + TRIANGLE)
        assert len(model.meshes) == 1


class TestAsciiErrors:
    """Test that malformed input aborts with the right error."""

    def test_bad_header(self):
        """Test the binary magic is rejected by the ASCII reader."""
        with pytest.raises(HeaderError):
            loads("#celmodel_binary\n")

    def test_empty_input(self):
        """Test empty input has no header."""
        with pytest.raises(HeaderError):
            loads("")

    def test_unknown_keyword_reports_line(self):
        """Test unknown keywords fail with the line number."""
        with pytest.raises(GrammarError, match="line 3") as exc_info:
            loads("#celmodel__ascii\n\nsparkle 1\n")
        assert exc_info.value.line == 3

    def test_malformed_number(self):
        """Test a non-numeric colour component fails."""
        with pytest.raises(GrammarError, match="Malformed number"):
            loads("#celmodel__ascii\nmaterial\ndiffuse 1 x 0\nend_material\n")

    def test_unknown_blend_mode(self):
        """Test unknown blend names fail."""
        with pytest.raises(GrammarError, match="blend"):
            loads("#celmodel__ascii\nmaterial\nblend screen\nend_material\n")

    def test_unknown_semantic(self):
        """Test unknown vertex semantics fail."""
        with pytest.raises(GrammarError, match="semantic"):
            loads(mesh_block("vertexdesc\nbinormal f3\nend_vertexdesc\n"))

    def test_unknown_format(self):
        """Test unknown vertex formats fail."""
        with pytest.raises(GrammarError, match="format"):
            loads(mesh_block("vertexdesc\nposition f5\nend_vertexdesc\n"))

    def test_trilist_count_not_multiple_of_three(self):
        """Test trilist counts must describe whole triangles."""
        with pytest.raises(GrammarError, match="multiple of 3"):
            loads(mesh_block("vertexdesc\nend_vertexdesc\nvertices 0\ntrilist 0 4\n0 1 2 3\n"))

    def test_attribute_outside_material(self):
        """Test material attributes need an open material."""
        with pytest.raises(ContextError, match="outside material"):
            loads("#celmodel__ascii\ndiffuse 1 0 0\n")

    def test_vertices_outside_mesh(self):
        """Test mesh statements need an open mesh."""
        with pytest.raises(ContextError, match="outside mesh"):
            loads("#celmodel__ascii\nvertices 0\n")

    def test_nested_material(self):
        """Test a material cannot open inside another block."""
        with pytest.raises(ContextError):
            loads("#celmodel__ascii\nmaterial\nmaterial\n")

    def test_stray_end_mesh(self):
        """Test closing a mesh that is not open."""
        with pytest.raises(ContextError):
            loads("#celmodel__ascii\nend_mesh\n")

    def test_missing_end_vertexdesc(self):
        """Test end of input inside a vertexdesc block."""
        with pytest.raises(TruncationError):
            loads("#celmodel__ascii\nmesh\nvertexdesc\nposition f3\n")

    def test_missing_vertex_lines(self):
        """Test end of input before the declared vertex count."""
        with pytest.raises(TruncationError):
            loads(mesh_block("vertexdesc\nposition f3\nend_vertexdesc\nvertices 3\n0 0 0\n").replace("end_mesh\n", ""))

    def test_unclosed_material(self):
        """Test end of input with a material still open."""
        with pytest.raises(TruncationError, match="material"):
            loads("#celmodel__ascii\nmaterial\ndiffuse 1 1 1\n")

    def test_huge_vertex_count(self):
        """Test a declared vertex count far beyond the data present."""
        text = mesh_block("vertexdesc\nposition f3\nend_vertexdesc\nvertices 4000000000\n0 0 0\n")
        with pytest.raises(TruncationError, match="vertices"):
            loads(text.replace("end_mesh\n", ""))

    def test_short_vertex_line(self):
        """Test a vertex line with too few values."""
        with pytest.raises(CountMismatchError):
            loads(mesh_block("vertexdesc\nposition f3\nend_vertexdesc\nvertices 1\n1 2\n"))


class TestAsciiWrite:
    """Test ASCII emission."""

    def test_triangle_canonical_text(self):
        """Test the writer emits the canonical layout."""
        assert dumps(loads(TRIANGLE)) == TRIANGLE

    def test_all_default_material(self):
        """Test a default material writes only its delimiters."""
        text = dumps(Model(materials=[Material(opacity=0.0)]))
        assert text == "#celmodel__ascii\nmaterial\nend_material\n\n"

    def test_material_field_order(self):
        """Test fields are written in a fixed order regardless of input order."""
        material = Material(
            emissive=(0.5, 0.5, 0.5),
            diffuse=(1, 1, 1),
            opacity=0.5,
            specular_power=8,
            blend=BlendMode.PREMULTIPLIED,
            textures={TextureSemantic.EMISSIVE: "e.png", TextureSemantic.DIFFUSE: "d.png"},
        )
        lines = dumps(Model(materials=[material])).splitlines()
        keywords = [line.split()[0] for line in lines[1:] if line]
        assert keywords == [
            "material", "diffuse", "emissive", "specpower", "opacity",
            "blend", "texture0", "emissivemap", "end_material",
        ]
        assert 'texture0 "d.png"' in lines
        assert "blend premultiplied" in lines

    def test_indices_wrap_at_twelve(self):
        """Test trilist indices are written twelve per line."""
        mesh = Mesh(primitives=[PrimitiveGroup.trilist(0, np.arange(15))])
        lines = dumps(Model(meshes=[mesh])).splitlines()
        start = lines.index("trilist 0 15")
        assert lines[start + 1].split() == [str(i) for i in range(12)]
        assert lines[start + 2] == "12 13 14"
        assert lines[start + 3] == "end_mesh"

    def test_zero_index_trilist(self):
        """Test an empty trilist writes only its header line."""
        mesh = Mesh(primitives=[PrimitiveGroup.trilist(3, [])])
        lines = dumps(Model(meshes=[mesh])).splitlines()
        assert "trilist 3 0" in lines
        assert lines[lines.index("trilist 3 0") + 1] == "end_mesh"

    def test_ub4_written_as_unit_floats(self):
        """Test byte colours are written within 1/255 of byte/255."""
        descriptor = [VertexAttribute(VertexSemantic.COLOR0, VertexFormat.UB4)]
        colors = np.array([0, 1, 127, 255], dtype=np.uint8)
        mesh = Mesh(
            descriptor=descriptor,
            vertex_count=1,
            vertices=VertexBuffer(floats=[], colors=colors),
        )
        lines = dumps(Model(meshes=[mesh])).splitlines()
        values = [float(v) for v in lines[lines.index("vertices 1") + 1].split()]
        np.testing.assert_allclose(values, colors / 255.0, atol=1.0 / 255.0)

    def test_scale_applies_to_positions_only(self):
        """Test the scale factor multiplies positions and nothing else."""
        model = loads(mesh_block(
            "vertexdesc\nposition f3\nnormal f3\nend_vertexdesc\n"
            "vertices 1\n1 2 3 0 0 1\n"
        ))
        scaled = loads(dumps(model, scale=2.5)).meshes[0]
        np.testing.assert_allclose(scaled.vertices.floats, [2.5, 5.0, 7.5, 0, 0, 1])

    def test_invalid_buffer_rejected(self):
        """Test the writer validates the vertex buffer against the descriptor."""
        mesh = Mesh(
            descriptor=[VertexAttribute(VertexSemantic.POSITION, VertexFormat.F3)],
            vertex_count=2,
            vertices=VertexBuffer(floats=[0, 0, 0]),
        )
        with pytest.raises(CountMismatchError):
            dumps(Model(meshes=[mesh]))

    def test_partial_trilist_rejected(self):
        """Test the writer refuses a trilist that is not whole triangles."""
        mesh = Mesh(primitives=[PrimitiveGroup.trilist(0, [0, 1, 2, 3])])
        with pytest.raises(CountMismatchError, match="multiple of 3"):
            dumps(Model(meshes=[mesh]))

    def test_texture_path_with_quote_rejected(self):
        """Test texture paths that the grammar cannot quote."""
        material = Material(textures={TextureSemantic.DIFFUSE: 'bad"name.png'})
        with pytest.raises(ValueError, match="double quote"):
            dumps(Model(materials=[material]))

    def test_file_roundtrip(self):
        """Test write then read through the filesystem."""
        model = loads(TRIANGLE)

        with tempfile.NamedTemporaryFile(suffix='.cmod', delete=False) as f:
            path = f.name

        try:
            write_cmod_ascii(path, model)
            with open(path, "rb") as f:
                assert f.read(16) == b"#celmodel__ascii"
            result = read_cmod_ascii(path)
            assert dumps(result) == TRIANGLE
        finally:
            os.unlink(path)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
