"""
Encoding rules shared by the ASCII and binary codecs.

Both encodings must agree on which material fields are written, how the
position scale factor is applied and how float colours map to bytes, so
these rules live here and nowhere else.
"""

from typing import List, NamedTuple, Optional, Sequence, Union

import numpy as np

from cmod.model import Material, Mesh
from cmod.tokens import BlendMode, TextureSemantic, Token, VertexSemantic

DEFAULT_SCALE = 1.0


class MaterialField(NamedTuple):
    """One non-default material field, in emission order."""
    token: Token
    value: Union[Sequence[float], float, BlendMode, str]
    texture: Optional[TextureSemantic] = None


def is_default_color(color: Sequence[float]) -> bool:
    return all(c == 0 for c in color)


def is_default_opacity(opacity: float) -> bool:
    return opacity == 0 or opacity == 1


def is_default_specular_power(power: float) -> bool:
    return power <= 0


def material_fields(material: Material) -> List[MaterialField]:
    """
    List the fields of a material that must be written.

    Fields equal to their default sentinel are dropped: zero colours,
    opacity 0 or 1, non-positive specular power, normal blending and
    missing or empty texture paths.

    Args:
        material: Material to encode

    Returns:
        Fields in the order both encodings write them
    """
    fields = []
    for token, color in (
        (Token.DIFFUSE, material.diffuse),
        (Token.SPECULAR, material.specular),
        (Token.EMISSIVE, material.emissive),
    ):
        if not is_default_color(color):
            fields.append(MaterialField(token, tuple(color)))

    if not is_default_specular_power(material.specular_power):
        fields.append(MaterialField(Token.SPECULAR_POWER, material.specular_power))
    if not is_default_opacity(material.opacity):
        fields.append(MaterialField(Token.OPACITY, material.opacity))
    if material.blend != BlendMode.NORMAL:
        fields.append(MaterialField(Token.BLEND, BlendMode(material.blend)))

    for semantic in TextureSemantic:
        path = material.textures.get(semantic)
        if path:
            fields.append(MaterialField(Token.TEXTURE, path, semantic))

    return fields


def scaled_records(mesh: Mesh, scale: float = DEFAULT_SCALE) -> np.ndarray:
    """
    Interleaved vertex records ready for encoding.

    Every component of the position attribute is multiplied by ``scale``;
    other attributes are left untouched.
    """
    records = mesh.records()
    if scale != 1:
        factor = np.float32(scale)
        for i, attr in enumerate(mesh.descriptor):
            if attr.semantic == VertexSemantic.POSITION and not attr.is_ub4:
                records[f"a{i}"] *= factor
    return records


def quantize_colors(values) -> np.ndarray:
    """Map 0..1 floats to bytes: scale by 255, round half to even, clamp."""
    values = np.asarray(values, dtype=np.float64)
    return np.clip(np.rint(values * 255.0), 0, 255).astype(np.uint8)


def clamp_byte(value: int) -> int:
    return max(0, min(255, value))
