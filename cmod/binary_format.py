"""
Binary CMOD reader and writer.

File format:
- Magic: "#celmodel_binary" (16 bytes, no terminator)
- Then a stream of little-endian uint16 tokens:
    material (1001) ... end_material (1002)
        diffuse/specular/emissive: uint16 datatype=color(7), 3 x float32
        specpower/opacity: uint16 datatype=float1(1), float32
        blend: uint16 blend mode
        texture: uint16 texture semantic, uint16 datatype=string(5),
                 uint16 length, <length> ASCII bytes
    mesh (1009) ... end_mesh (1010)
        vertexdesc (1011): (uint16 semantic, uint16 format) pairs until
                           end_vertexdesc (1012)
        vertices (1013): uint32 count, count interleaved vertex records
                         (ub4 = 4 bytes, fN = N x float32)
        trilist (0): uint32 material index, uint32 count, count x uint32

Record widths are always derived from the descriptor of the mesh being
read. Reading aborts on the first unexpected token.
"""

import io
import logging
import struct
from pathlib import Path
from typing import BinaryIO, List, Optional, Type, TypeVar, Union

import numpy as np

from cmod.errors import HeaderError, ProtocolError, TruncationError
from cmod.layout import as_model
from cmod.model import (
    Material,
    Mesh,
    Model,
    PrimitiveGroup,
    VertexAttribute,
    VertexBuffer,
    vertex_record_dtype,
)
from cmod.policy import DEFAULT_SCALE, material_fields, scaled_records
from cmod.scene import Scene
from cmod.tokens import (
    BINARY_HEADER,
    COLOR_NAMES,
    HEADER_SIZE,
    SCALAR_NAMES,
    BlendMode,
    DataType,
    PrimitiveType,
    TextureSemantic,
    Token,
    VertexFormat,
    VertexSemantic,
)

logger = logging.getLogger(__name__)

MAX_STRING_LENGTH = 0xFFFF
READ_CHUNK_SIZE = 1 << 20
_PRIMITIVE_CODES = {int(p) for p in PrimitiveType}

E = TypeVar("E")


class _BinaryCursor:
    """Forward-only reader that turns short reads into TruncationError."""

    def __init__(self, stream: BinaryIO):
        self._stream = stream
        self.offset = 0

    def read(self, size: int, what: str) -> bytes:
        # Declared counts are untrusted: read at most READ_CHUNK_SIZE at a time
        parts = []
        remaining = size
        while remaining > 0:
            part = self._stream.read(min(remaining, READ_CHUNK_SIZE))
            if not part:
                break
            parts.append(part)
            remaining -= len(part)
        data = b"".join(parts)
        if len(data) < size:
            raise TruncationError(
                f"Unexpected end of input reading {what} at offset {self.offset + len(data)}"
            )
        self.offset += size
        return data

    def next_token(self) -> Optional[int]:
        """Next top-level token, or None at a clean end of input."""
        data = self._stream.read(2)
        if not data:
            return None
        if len(data) < 2:
            raise TruncationError(f"Unexpected end of input at offset {self.offset + 1}")
        self.offset += 2
        return struct.unpack("<H", data)[0]

    def u16(self, what: str) -> int:
        return struct.unpack("<H", self.read(2, what))[0]

    def u32(self, what: str) -> int:
        return struct.unpack("<I", self.read(4, what))[0]

    def f32(self, what: str) -> float:
        return struct.unpack("<f", self.read(4, what))[0]


class _BinaryParser:
    """State of one binary parse."""

    def __init__(self, stream: BinaryIO):
        self._stream = stream
        self.cursor = _BinaryCursor(stream)
        self.model = Model()

    def parse(self) -> Model:
        header = self._stream.read(HEADER_SIZE)
        if header != BINARY_HEADER:
            raise HeaderError(f"Bad CMOD binary header: {header!r}, expected {BINARY_HEADER!r}")
        self.cursor.offset = HEADER_SIZE

        while True:
            token = self.cursor.next_token()
            if token is None:
                break
            if token == Token.MATERIAL:
                self.model.materials.append(self._material())
            elif token == Token.MESH:
                self.model.meshes.append(self._mesh())
            else:
                raise ProtocolError(f"Unknown top-level token {token} at offset {self.cursor.offset - 2}")

        return self.model

    def _enum(self, enum_type: Type[E], value: int, what: str) -> E:
        try:
            return enum_type(value)
        except ValueError:
            raise ProtocolError(f"Unknown {what} {value} at offset {self.cursor.offset - 2}") from None

    def _expect(self, expected: DataType) -> None:
        got = self.cursor.u16("datatype")
        if got != expected:
            raise ProtocolError(
                f"Datatype mismatch at offset {self.cursor.offset - 2}. "
                f"Expected {int(expected)}, got {got}"
            )

    def _material(self) -> Material:
        material = Material()
        while True:
            token = self.cursor.u16("material token")
            if token == Token.END_MATERIAL:
                return material

            if token in COLOR_NAMES:
                self._expect(DataType.COLOR)
                color = struct.unpack("<3f", self.cursor.read(12, "color"))
                if token == Token.DIFFUSE:
                    material.diffuse = color
                elif token == Token.SPECULAR:
                    material.specular = color
                else:
                    material.emissive = color
            elif token in SCALAR_NAMES:
                self._expect(DataType.FLOAT1)
                value = self.cursor.f32("float")
                if token == Token.SPECULAR_POWER:
                    material.specular_power = value
                else:
                    material.opacity = value
            elif token == Token.BLEND:
                material.blend = self._enum(BlendMode, self.cursor.u16("blend mode"), "blend mode")
            elif token == Token.TEXTURE:
                semantic = self.cursor.u16("texture semantic")
                self._expect(DataType.STRING)
                length = self.cursor.u16("string length")
                path = self.cursor.read(length, "texture path").decode("ascii", errors="replace")
                try:
                    material.textures[TextureSemantic(semantic)] = path
                except ValueError:
                    logger.debug(f"Ignoring texture with unknown semantic {semantic}: {path}")
            else:
                raise ProtocolError(f"Unknown material token {token} at offset {self.cursor.offset - 2}")

    def _mesh(self) -> Mesh:
        mesh = Mesh()
        while True:
            token = self.cursor.u16("mesh token")
            if token == Token.END_MESH:
                logger.debug(
                    f"Mesh {len(self.model.meshes)}: {mesh.vertex_count} vertices, "
                    f"{len(mesh.primitives)} primitive groups"
                )
                return mesh

            if token == Token.VERTEX_DESC:
                mesh.descriptor = self._vertex_desc()
            elif token == Token.VERTICES:
                self._vertices(mesh)
            elif token == PrimitiveType.TRILIST:
                mesh.primitives.append(self._primitive(PrimitiveType.TRILIST))
            else:
                raise ProtocolError(f"Unknown mesh token {token} at offset {self.cursor.offset - 2}")

    def _vertex_desc(self) -> List[VertexAttribute]:
        descriptor = []
        while True:
            code = self.cursor.u16("vertex semantic")
            if code == Token.END_VERTEX_DESC:
                return descriptor
            semantic = self._enum(VertexSemantic, code, "vertex semantic")
            fmt = self._enum(VertexFormat, self.cursor.u16("vertex format"), "vertex format")
            descriptor.append(VertexAttribute(semantic, fmt))

    def _vertices(self, mesh: Mesh) -> None:
        count = self.cursor.u32("vertex count")
        dtype = vertex_record_dtype(mesh.descriptor)
        if dtype.itemsize:
            data = self.cursor.read(count * dtype.itemsize, "vertices")
            records = np.frombuffer(data, dtype=dtype, count=count)
        else:
            records = np.zeros(count, dtype=dtype)
        mesh.vertex_count = count
        mesh.vertices = VertexBuffer.from_records(mesh.descriptor, records)

    def _primitive(self, kind: PrimitiveType) -> PrimitiveGroup:
        material_index = self.cursor.u32("material index")
        count = self.cursor.u32("index count")
        if count % 3 != 0:
            raise ProtocolError(f"Trilist index count {count} is not a multiple of 3")
        indices = np.frombuffer(self.cursor.read(4 * count, "indices"), dtype="<u4")
        return PrimitiveGroup(material_index, indices, kind)


def load(stream: BinaryIO) -> Model:
    """
    Parse a binary CMOD model from a byte stream.

    Raises:
        CmodError: On a bad header, unexpected token or truncated input
    """
    return _BinaryParser(stream).parse()


def loads(data: bytes) -> Model:
    """Parse a binary CMOD model from bytes."""
    return load(io.BytesIO(data))


def _write_material(stream: BinaryIO, material: Material) -> None:
    stream.write(struct.pack("<H", Token.MATERIAL))
    for fld in material_fields(material):
        if fld.token in COLOR_NAMES:
            stream.write(struct.pack("<HH3f", fld.token, DataType.COLOR, *fld.value))
        elif fld.token in SCALAR_NAMES:
            stream.write(struct.pack("<HHf", fld.token, DataType.FLOAT1, fld.value))
        elif fld.token == Token.BLEND:
            stream.write(struct.pack("<HH", Token.BLEND, fld.value))
        elif fld.token == Token.TEXTURE:
            data = fld.value.encode("ascii", errors="replace")
            if len(data) > MAX_STRING_LENGTH:
                raise ValueError(f"Texture path too long ({len(data)} bytes): {fld.value[:64]}...")
            stream.write(struct.pack("<HHHH", Token.TEXTURE, fld.texture, DataType.STRING, len(data)))
            stream.write(data)
    stream.write(struct.pack("<H", Token.END_MATERIAL))


def _write_mesh(stream: BinaryIO, mesh: Mesh, scale: float) -> None:
    stream.write(struct.pack("<H", Token.MESH))

    stream.write(struct.pack("<H", Token.VERTEX_DESC))
    for attr in mesh.descriptor:
        stream.write(struct.pack("<HH", attr.semantic, attr.format))
    stream.write(struct.pack("<H", Token.END_VERTEX_DESC))

    records = scaled_records(mesh, scale)
    stream.write(struct.pack("<HI", Token.VERTICES, mesh.vertex_count))
    stream.write(records.tobytes())

    for primitive in mesh.primitives:
        if primitive.kind not in _PRIMITIVE_CODES:
            raise ValueError(f"Unsupported primitive type: {primitive.kind}")
        stream.write(struct.pack("<HII", primitive.kind, primitive.material_index, len(primitive.indices)))
        stream.write(primitive.indices.astype("<u4").tobytes())

    stream.write(struct.pack("<H", Token.END_MESH))


def dump(
    model: Union[Model, Scene],
    stream: BinaryIO,
    scale: float = DEFAULT_SCALE,
) -> None:
    """
    Write a model (or an imported scene) as binary CMOD.

    Args:
        model: Model, or Scene to run through the layout planner first
        stream: Byte stream to write to
        scale: Factor applied to every position component
    """
    model = as_model(model)
    stream.write(BINARY_HEADER)
    for material in model.materials:
        _write_material(stream, material)
    for mesh in model.meshes:
        _write_mesh(stream, mesh, scale)


def dumps(model: Union[Model, Scene], scale: float = DEFAULT_SCALE) -> bytes:
    """Write a model as binary CMOD bytes."""
    stream = io.BytesIO()
    dump(model, stream, scale)
    return stream.getvalue()


def read_cmod_binary(path: Union[str, Path]) -> Model:
    """
    Read a binary CMOD file.

    Args:
        path: Path to .cmod file

    Returns:
        Model with materials and meshes in file order

    Raises:
        CmodError: If the file is not valid binary CMOD
    """
    path = Path(path)
    with open(path, "rb") as f:
        model = load(f)
    logger.info(f"Read {len(model.materials)} materials, {len(model.meshes)} meshes from {path}")
    return model


def write_cmod_binary(
    path: Union[str, Path],
    model: Union[Model, Scene],
    scale: float = DEFAULT_SCALE,
) -> Path:
    """
    Write a binary CMOD file.

    Args:
        path: Output file path
        model: Model, or Scene to run through the layout planner first
        scale: Factor applied to every position component

    Returns:
        Path to the written file
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    model = as_model(model)
    with open(path, "wb") as f:
        dump(model, f, scale)
    logger.info(f"Wrote binary CMOD to {path} (scale={scale})")
    return path
