"""Tests for model.py and policy.py - data model and shared encoding rules."""

import numpy as np
import pytest

from cmod.errors import CountMismatchError
from cmod.model import (
    Material,
    Mesh,
    Model,
    PrimitiveGroup,
    VertexAttribute,
    VertexBuffer,
    vertex_record_dtype,
)
from cmod.policy import material_fields, quantize_colors, scaled_records
from cmod.tokens import (
    BlendMode,
    PrimitiveType,
    TextureSemantic,
    Token,
    VertexFormat,
    VertexSemantic,
)


def pos_color_uv_mesh():
    descriptor = [
        VertexAttribute(VertexSemantic.POSITION, VertexFormat.F3),
        VertexAttribute(VertexSemantic.COLOR0, VertexFormat.UB4),
        VertexAttribute(VertexSemantic.TEXCOORD0, VertexFormat.F2),
    ]
    floats = np.array([1, 2, 3, 0.5, 0.25, 4, 5, 6, 0.75, 1.0], dtype=np.float32)
    colors = np.array([10, 20, 30, 40, 50, 60, 70, 80], dtype=np.uint8)
    return Mesh(
        descriptor=descriptor,
        vertex_count=2,
        vertices=VertexBuffer(floats=floats, colors=colors),
        primitives=[PrimitiveGroup.trilist(0, [0, 1, 0])],
    )


class TestVertexLayout:
    """Test descriptor-driven record layout."""

    def test_attribute_str(self):
        """Test attributes print as their ASCII descriptor line."""
        assert str(VertexAttribute(VertexSemantic.TEXCOORD1, VertexFormat.F2)) == "texcoord1 f2"
        assert str(VertexAttribute(VertexSemantic.COLOR0, VertexFormat.UB4)) == "color0 ub4"

    def test_record_dtype_is_packed(self):
        """Test record width is the plain sum of attribute widths."""
        dtype = vertex_record_dtype(pos_color_uv_mesh().descriptor)
        assert dtype.itemsize == 12 + 4 + 8

    def test_records_interleave_stores(self):
        """Test the two stores interleave back in descriptor order."""
        records = pos_color_uv_mesh().records()
        np.testing.assert_array_equal(records["a0"], [[1, 2, 3], [4, 5, 6]])
        np.testing.assert_array_equal(records["a1"], [[10, 20, 30, 40], [50, 60, 70, 80]])
        np.testing.assert_array_equal(records["a2"], [[0.5, 0.25], [0.75, 1.0]])

    def test_from_records_splits_stores(self):
        """Test records split back into identical float and colour stores."""
        mesh = pos_color_uv_mesh()
        buffer = VertexBuffer.from_records(mesh.descriptor, mesh.records())
        np.testing.assert_array_equal(buffer.floats, mesh.vertices.floats)
        np.testing.assert_array_equal(buffer.colors, mesh.vertices.colors)

    def test_from_records_without_ub4(self):
        """Test the colour store is absent when no ub4 attribute exists."""
        descriptor = [VertexAttribute(VertexSemantic.POSITION, VertexFormat.F3)]
        records = np.zeros(4, dtype=vertex_record_dtype(descriptor))
        buffer = VertexBuffer.from_records(descriptor, records)
        assert buffer.colors is None
        assert len(buffer.floats) == 12

    def test_attribute_lookup(self):
        """Test per-semantic views and missing semantics."""
        mesh = pos_color_uv_mesh()
        np.testing.assert_array_equal(mesh.attribute(VertexSemantic.TEXCOORD0), [[0.5, 0.25], [0.75, 1.0]])
        assert mesh.attribute(VertexSemantic.NORMAL) is None
        assert mesh.has_semantic(VertexSemantic.COLOR0)


class TestMeshValidation:
    """Test store length invariants."""

    def test_valid(self):
        """Test a consistent mesh validates."""
        pos_color_uv_mesh().validate()

    def test_float_store_mismatch(self):
        """Test a short float store is rejected."""
        mesh = pos_color_uv_mesh()
        mesh.vertices.floats = mesh.vertices.floats[:-1]
        with pytest.raises(CountMismatchError, match="Float store"):
            mesh.validate()

    def test_missing_color_store(self):
        """Test a ub4 descriptor requires colour bytes."""
        mesh = pos_color_uv_mesh()
        mesh.vertices.colors = None
        with pytest.raises(CountMismatchError, match="Color store"):
            mesh.validate()


class TestPrimitiveGroup:
    """Test primitive groups."""

    def test_trilist(self):
        """Test trilist construction and index dtype."""
        group = PrimitiveGroup.trilist(2, [[0, 1, 2], [2, 1, 3]])
        assert group.kind == PrimitiveType.TRILIST
        assert group.keyword == "trilist"
        assert group.indices.dtype == np.uint32
        assert group.triangle_count == 2

    def test_mesh_trilists(self):
        """Test the mesh lists its trilist groups in order."""
        mesh = pos_color_uv_mesh()
        mesh.primitives.append(PrimitiveGroup.trilist(1, []))
        assert [p.material_index for p in mesh.trilists] == [0, 1]

    def test_partial_triangle_rejected(self):
        """Test validation rejects trilists that are not whole triangles."""
        mesh = pos_color_uv_mesh()
        mesh.primitives.append(PrimitiveGroup.trilist(1, [0, 1]))
        with pytest.raises(CountMismatchError, match="multiple of 3"):
            mesh.validate()


class TestMaterialFields:
    """Test default-value omission and field order."""

    def test_defaults_omitted(self):
        """Test default sentinels produce no fields."""
        assert material_fields(Material()) == []
        assert material_fields(Material(opacity=0.0, specular_power=-1.0)) == []
        assert material_fields(Material(textures={TextureSemantic.DIFFUSE: ""})) == []

    def test_order(self):
        """Test colours, scalars, blend then textures."""
        material = Material(
            specular=(0.5, 0.5, 0.5),
            diffuse=(1, 0, 0),
            opacity=0.25,
            specular_power=10.0,
            blend=BlendMode.ADD,
            textures={TextureSemantic.NORMAL: "n.png", TextureSemantic.DIFFUSE: "d.png"},
        )
        fields = material_fields(material)
        assert [f.token for f in fields] == [
            Token.DIFFUSE,
            Token.SPECULAR,
            Token.SPECULAR_POWER,
            Token.OPACITY,
            Token.BLEND,
            Token.TEXTURE,
            Token.TEXTURE,
        ]
        assert [f.texture for f in fields[-2:]] == [TextureSemantic.DIFFUSE, TextureSemantic.NORMAL]

    def test_material_to_dict(self):
        """Test the summary dictionary uses keyword names."""
        d = Material(blend=BlendMode.PREMULTIPLIED, textures={TextureSemantic.EMISSIVE: "glow.png"}).to_dict()
        assert d["blend"] == "premultiplied"
        assert d["textures"] == {"emissivemap": "glow.png"}


class TestEncodingPolicy:
    """Test scale and colour quantisation."""

    def test_scale_positions_only(self):
        """Test only position components are multiplied."""
        mesh = pos_color_uv_mesh()
        records = scaled_records(mesh, 2.0)
        np.testing.assert_array_equal(records["a0"], [[2, 4, 6], [8, 10, 12]])
        np.testing.assert_array_equal(records["a1"], [[10, 20, 30, 40], [50, 60, 70, 80]])
        np.testing.assert_array_equal(records["a2"], [[0.5, 0.25], [0.75, 1.0]])
        # stored data is untouched
        np.testing.assert_array_equal(mesh.vertices.floats[:3], [1, 2, 3])

    def test_scale_is_linear(self):
        """Test scaling by a then b equals scaling by a*b on exact values."""
        mesh = pos_color_uv_mesh()
        once = scaled_records(mesh, 4.0)["a0"]
        twice = scaled_records(mesh, 2.0)["a0"] * 2.0
        np.testing.assert_array_equal(once, twice)

    def test_quantize_colors(self):
        """Test rounding half to even and clamping."""
        np.testing.assert_array_equal(
            quantize_colors([0.0, 0.5, 1.0, 1.5, -0.2, 1.0 / 255.0]),
            [0, 128, 255, 255, 0, 1],
        )


class TestModel:
    """Test model-level helpers."""

    def test_textured_material_count(self):
        """Test only materials with a texture path are counted."""
        model = Model(materials=[
            Material(),
            Material(textures={TextureSemantic.DIFFUSE: "a.png"}),
            Material(textures={TextureSemantic.NORMAL: ""}),
        ])
        assert model.textured_material_count == 1

    def test_to_dict(self):
        """Test the model summary lists meshes and primitives."""
        d = Model(meshes=[pos_color_uv_mesh()]).to_dict()
        assert d["meshes"][0]["descriptor"] == ["position f3", "color0 ub4", "texcoord0 f2"]
        assert d["meshes"][0]["primitives"] == [
            {"type": "trilist", "material_index": 0, "index_count": 3}
        ]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
