"""
CMOD token grammar.

Shared vocabulary of the two CMOD encodings:
- Header literals (16 ASCII bytes each, no terminator)
- Binary token codes (uint16)
- Datatype tags, texture semantics, vertex semantics, vertex formats,
  blend modes and primitive kinds (uint16)
- ASCII keyword spellings for every named code
"""

from enum import IntEnum
from typing import Dict

ASCII_HEADER = "#celmodel__ascii"
BINARY_HEADER = b"#celmodel_binary"
HEADER_SIZE = 16


class Token(IntEnum):
    MATERIAL = 1001
    END_MATERIAL = 1002
    DIFFUSE = 1003
    SPECULAR = 1004
    SPECULAR_POWER = 1005
    OPACITY = 1006
    TEXTURE = 1007
    MESH = 1009
    END_MESH = 1010
    VERTEX_DESC = 1011
    END_VERTEX_DESC = 1012
    VERTICES = 1013
    EMISSIVE = 1014
    BLEND = 1015


class DataType(IntEnum):
    FLOAT1 = 1
    FLOAT2 = 2
    FLOAT3 = 3
    FLOAT4 = 4
    STRING = 5
    UINT32 = 6
    COLOR = 7


class TextureSemantic(IntEnum):
    DIFFUSE = 0
    NORMAL = 1
    SPECULAR = 2
    EMISSIVE = 3


class VertexSemantic(IntEnum):
    POSITION = 0
    COLOR0 = 1
    COLOR1 = 2
    NORMAL = 3
    TANGENT = 4
    TEXCOORD0 = 5
    TEXCOORD1 = 6
    TEXCOORD2 = 7
    TEXCOORD3 = 8
    POINTSIZE = 9


class VertexFormat(IntEnum):
    F1 = 0
    F2 = 1
    F3 = 2
    F4 = 3
    UB4 = 4


class BlendMode(IntEnum):
    NORMAL = 0
    ADD = 1
    PREMULTIPLIED = 2


class PrimitiveType(IntEnum):
    TRILIST = 0


# Components per vertex format; ub4 packs 4 bytes into one attribute
FORMAT_COMPONENTS: Dict[VertexFormat, int] = {
    VertexFormat.F1: 1,
    VertexFormat.F2: 2,
    VertexFormat.F3: 3,
    VertexFormat.F4: 4,
    VertexFormat.UB4: 4,
}

MAX_TEXCOORD_CHANNELS = 4

# ASCII keywords

MATERIAL_KEYWORD = "material"
END_MATERIAL_KEYWORD = "end_material"
MESH_KEYWORD = "mesh"
END_MESH_KEYWORD = "end_mesh"
VERTEX_DESC_KEYWORD = "vertexdesc"
END_VERTEX_DESC_KEYWORD = "end_vertexdesc"
VERTICES_KEYWORD = "vertices"
BLEND_KEYWORD = "blend"

COLOR_KEYWORDS: Dict[str, Token] = {
    "diffuse": Token.DIFFUSE,
    "specular": Token.SPECULAR,
    "emissive": Token.EMISSIVE,
}

SCALAR_KEYWORDS: Dict[str, Token] = {
    "specpower": Token.SPECULAR_POWER,
    "opacity": Token.OPACITY,
}

TEXTURE_KEYWORDS: Dict[str, TextureSemantic] = {
    "texture0": TextureSemantic.DIFFUSE,
    "normalmap": TextureSemantic.NORMAL,
    "specularmap": TextureSemantic.SPECULAR,
    "emissivemap": TextureSemantic.EMISSIVE,
}

SEMANTIC_KEYWORDS: Dict[str, VertexSemantic] = {
    "position": VertexSemantic.POSITION,
    "color0": VertexSemantic.COLOR0,
    "color1": VertexSemantic.COLOR1,
    "normal": VertexSemantic.NORMAL,
    "tangent": VertexSemantic.TANGENT,
    "texcoord0": VertexSemantic.TEXCOORD0,
    "texcoord1": VertexSemantic.TEXCOORD1,
    "texcoord2": VertexSemantic.TEXCOORD2,
    "texcoord3": VertexSemantic.TEXCOORD3,
    "pointsize": VertexSemantic.POINTSIZE,
}

FORMAT_KEYWORDS: Dict[str, VertexFormat] = {
    "f1": VertexFormat.F1,
    "f2": VertexFormat.F2,
    "f3": VertexFormat.F3,
    "f4": VertexFormat.F4,
    "ub4": VertexFormat.UB4,
}

BLEND_KEYWORDS: Dict[str, BlendMode] = {
    "normal": BlendMode.NORMAL,
    "add": BlendMode.ADD,
    "premultiplied": BlendMode.PREMULTIPLIED,
}

PRIMITIVE_KEYWORDS: Dict[str, PrimitiveType] = {
    "trilist": PrimitiveType.TRILIST,
}


def _invert(table):
    return {code: keyword for keyword, code in table.items()}


COLOR_NAMES = _invert(COLOR_KEYWORDS)
SCALAR_NAMES = _invert(SCALAR_KEYWORDS)
TEXTURE_NAMES = _invert(TEXTURE_KEYWORDS)
SEMANTIC_NAMES = _invert(SEMANTIC_KEYWORDS)
FORMAT_NAMES = _invert(FORMAT_KEYWORDS)
BLEND_NAMES = _invert(BLEND_KEYWORDS)
PRIMITIVE_NAMES = _invert(PRIMITIVE_KEYWORDS)
