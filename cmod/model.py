"""
In-memory CMOD data model.

A Model owns an ordered list of Materials and an ordered list of Meshes.
Each Mesh carries a vertex descriptor, a two-store vertex buffer and a list
of primitive groups whose material index points into Model.materials.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from cmod.errors import CountMismatchError
from cmod.tokens import (
    BLEND_NAMES,
    FORMAT_COMPONENTS,
    FORMAT_NAMES,
    PRIMITIVE_NAMES,
    SEMANTIC_NAMES,
    TEXTURE_NAMES,
    BlendMode,
    PrimitiveType,
    TextureSemantic,
    VertexFormat,
    VertexSemantic,
)

Color = Tuple[float, float, float]


@dataclass
class Material:
    """Surface appearance shared by the trilists that reference it."""
    diffuse: Color = (0.0, 0.0, 0.0)
    specular: Color = (0.0, 0.0, 0.0)
    emissive: Color = (0.0, 0.0, 0.0)
    specular_power: float = 0.0
    opacity: float = 1.0
    blend: BlendMode = BlendMode.NORMAL
    textures: Dict[TextureSemantic, str] = field(default_factory=dict)

    def has_textures(self) -> bool:
        return any(self.textures.values())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary for summaries."""
        return {
            "diffuse": list(self.diffuse),
            "specular": list(self.specular),
            "emissive": list(self.emissive),
            "specular_power": self.specular_power,
            "opacity": self.opacity,
            "blend": BLEND_NAMES[self.blend],
            "textures": {
                TEXTURE_NAMES[semantic]: path
                for semantic, path in sorted(self.textures.items())
            },
        }


@dataclass(frozen=True)
class VertexAttribute:
    """One (semantic, format) entry of a vertex descriptor."""
    semantic: VertexSemantic
    format: VertexFormat

    @property
    def is_ub4(self) -> bool:
        return self.format == VertexFormat.UB4

    @property
    def component_count(self) -> int:
        return FORMAT_COMPONENTS[self.format]

    def __str__(self) -> str:
        return f"{SEMANTIC_NAMES[self.semantic]} {FORMAT_NAMES[self.format]}"


def vertex_record_dtype(descriptor: Sequence[VertexAttribute]) -> np.dtype:
    """
    Build the packed little-endian record type for one interleaved vertex.

    Field ``a<i>`` holds descriptor entry ``i``: four uint8 for ub4, otherwise
    ``component_count`` float32.

    Args:
        descriptor: Vertex descriptor in wire order

    Returns:
        numpy structured dtype with no padding between fields
    """
    fields = []
    for i, attr in enumerate(descriptor):
        if attr.is_ub4:
            fields.append((f"a{i}", "u1", (4,)))
        else:
            fields.append((f"a{i}", "<f4", (attr.component_count,)))
    return np.dtype(fields)


@dataclass(eq=False)
class VertexBuffer:
    """
    Raw per-vertex data split into two parallel stores.

    floats: float32 values of every non-ub4 attribute, concatenated per
            vertex in descriptor order
    colors: uint8 values of every ub4 attribute (4 per vertex per
            attribute), or None when the descriptor has no ub4 entry
    """
    floats: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float32))
    colors: Optional[np.ndarray] = None

    def __post_init__(self):
        self.floats = np.ascontiguousarray(self.floats, dtype=np.float32).ravel()
        if self.colors is not None:
            self.colors = np.ascontiguousarray(self.colors, dtype=np.uint8).ravel()

    @classmethod
    def from_records(
        cls,
        descriptor: Sequence[VertexAttribute],
        records: np.ndarray,
    ) -> "VertexBuffer":
        """Split interleaved vertex records into the float and colour stores."""
        count = len(records)
        float_columns = []
        color_columns = []
        for i, attr in enumerate(descriptor):
            column = records[f"a{i}"].reshape(count, attr.component_count)
            if attr.is_ub4:
                color_columns.append(column)
            else:
                float_columns.append(column)

        if float_columns:
            floats = np.concatenate(float_columns, axis=1).astype(np.float32).ravel()
        else:
            floats = np.zeros(0, dtype=np.float32)

        colors = None
        if color_columns:
            colors = np.concatenate(color_columns, axis=1).astype(np.uint8).ravel()

        return cls(floats=floats, colors=colors)

    def to_records(
        self,
        descriptor: Sequence[VertexAttribute],
        vertex_count: int,
    ) -> np.ndarray:
        """Interleave the two stores back into one record per vertex."""
        records = np.zeros(vertex_count, dtype=vertex_record_dtype(descriptor))

        floats_per_vertex = sum(a.component_count for a in descriptor if not a.is_ub4)
        ub4_count = sum(1 for a in descriptor if a.is_ub4)

        float_rows = self.floats.reshape(vertex_count, floats_per_vertex)
        if ub4_count:
            color_rows = self.colors.reshape(vertex_count, 4 * ub4_count)

        float_offset = 0
        color_offset = 0
        for i, attr in enumerate(descriptor):
            n = attr.component_count
            if attr.is_ub4:
                records[f"a{i}"] = color_rows[:, color_offset:color_offset + 4]
                color_offset += 4
            else:
                records[f"a{i}"] = float_rows[:, float_offset:float_offset + n]
                float_offset += n

        return records


@dataclass(eq=False)
class PrimitiveGroup:
    """
    A batch of primitives sharing one material.

    Tagged variant over PrimitiveType; only TRILIST exists today, whose
    indices come in groups of three.
    """
    material_index: int
    indices: np.ndarray
    kind: PrimitiveType = PrimitiveType.TRILIST

    def __post_init__(self):
        self.indices = np.ascontiguousarray(self.indices, dtype=np.uint32).ravel()

    @classmethod
    def trilist(cls, material_index: int, indices) -> "PrimitiveGroup":
        return cls(material_index=material_index, indices=indices, kind=PrimitiveType.TRILIST)

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3

    @property
    def keyword(self) -> str:
        return PRIMITIVE_NAMES[self.kind]


@dataclass(eq=False)
class Mesh:
    """Vertex layout, vertex data and primitive groups of one mesh."""
    descriptor: List[VertexAttribute] = field(default_factory=list)
    vertex_count: int = 0
    vertices: VertexBuffer = field(default_factory=VertexBuffer)
    primitives: List[PrimitiveGroup] = field(default_factory=list)

    @property
    def floats_per_vertex(self) -> int:
        return sum(a.component_count for a in self.descriptor if not a.is_ub4)

    @property
    def ub4_count(self) -> int:
        return sum(1 for a in self.descriptor if a.is_ub4)

    @property
    def trilists(self) -> List[PrimitiveGroup]:
        return [p for p in self.primitives if p.kind == PrimitiveType.TRILIST]

    def has_semantic(self, semantic: VertexSemantic) -> bool:
        return any(a.semantic == semantic for a in self.descriptor)

    def validate(self) -> None:
        """
        Check the vertex buffer against the descriptor and the trilist
        index counts.

        Raises:
            CountMismatchError: If either store has the wrong length or a
                trilist does not hold whole triangles
        """
        expected_floats = self.vertex_count * self.floats_per_vertex
        if len(self.vertices.floats) != expected_floats:
            raise CountMismatchError(
                f"Float store holds {len(self.vertices.floats)} values, "
                f"expected {expected_floats} for {self.vertex_count} vertices"
            )

        expected_colors = self.vertex_count * 4 * self.ub4_count
        actual_colors = 0 if self.vertices.colors is None else len(self.vertices.colors)
        if actual_colors != expected_colors:
            raise CountMismatchError(
                f"Color store holds {actual_colors} bytes, "
                f"expected {expected_colors} for {self.vertex_count} vertices"
            )

        for trilist in self.trilists:
            if len(trilist.indices) % 3 != 0:
                raise CountMismatchError(
                    f"Trilist for material {trilist.material_index} has "
                    f"{len(trilist.indices)} indices, not a multiple of 3"
                )

    def records(self) -> np.ndarray:
        """Interleaved vertex records in descriptor order."""
        self.validate()
        return self.vertices.to_records(self.descriptor, self.vertex_count)

    def attribute(self, semantic: VertexSemantic) -> Optional[np.ndarray]:
        """
        Get the values of one attribute as a (vertex_count, components) array.

        Returns:
            float32 or uint8 array, or None if the descriptor lacks the semantic
        """
        for i, attr in enumerate(self.descriptor):
            if attr.semantic == semantic:
                return self.records()[f"a{i}"].reshape(self.vertex_count, attr.component_count)
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vertex_count": self.vertex_count,
            "descriptor": [str(a) for a in self.descriptor],
            "primitives": [
                {
                    "type": p.keyword,
                    "material_index": p.material_index,
                    "index_count": len(p.indices),
                }
                for p in self.primitives
            ],
        }


@dataclass(eq=False)
class Model:
    """A complete CMOD model: materials and meshes in file order."""
    materials: List[Material] = field(default_factory=list)
    meshes: List[Mesh] = field(default_factory=list)

    @property
    def textured_material_count(self) -> int:
        return sum(1 for m in self.materials if m.has_textures())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "materials": [m.to_dict() for m in self.materials],
            "meshes": [m.to_dict() for m in self.meshes],
        }
