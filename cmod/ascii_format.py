"""
ASCII CMOD reader and writer.

File format:
- Header line: "#celmodel__ascii"
- material ... end_material blocks, one attribute keyword per line:
    diffuse r g b | specular r g b | emissive r g b
    specpower p | opacity a | blend normal|add|premultiplied
    texture0 | normalmap | specularmap | emissivemap "path"
- mesh ... end_mesh blocks containing:
    vertexdesc / <semantic> <format> lines / end_vertexdesc
    vertices N, followed by N lines of values in descriptor order
    trilist <material> <count>, followed by <count> indices
- Blank lines and '#' comments are ignored between statements

Reading aborts on the first error; no partial model is returned.
"""

import io
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, TextIO, Union

import numpy as np

from cmod.errors import (
    ContextError,
    CountMismatchError,
    GrammarError,
    HeaderError,
    TruncationError,
)
from cmod.layout import as_model
from cmod.model import Material, Mesh, Model, PrimitiveGroup, VertexAttribute, VertexBuffer
from cmod.policy import DEFAULT_SCALE, clamp_byte, material_fields, quantize_colors, scaled_records
from cmod.scene import Scene
from cmod.tokens import (
    ASCII_HEADER,
    BLEND_KEYWORD,
    BLEND_KEYWORDS,
    BLEND_NAMES,
    COLOR_KEYWORDS,
    COLOR_NAMES,
    END_MATERIAL_KEYWORD,
    END_MESH_KEYWORD,
    END_VERTEX_DESC_KEYWORD,
    FORMAT_KEYWORDS,
    MATERIAL_KEYWORD,
    MESH_KEYWORD,
    PRIMITIVE_KEYWORDS,
    PRIMITIVE_NAMES,
    SCALAR_KEYWORDS,
    SCALAR_NAMES,
    SEMANTIC_KEYWORDS,
    TEXTURE_KEYWORDS,
    TEXTURE_NAMES,
    VERTEX_DESC_KEYWORD,
    VERTICES_KEYWORD,
    Token,
)

logger = logging.getLogger(__name__)

FLOAT_PRECISION = 6
INDICES_PER_LINE = 12


def split_tokens(line: str, line_number: Optional[int] = None) -> List[str]:
    """
    Split a line on whitespace, keeping "quoted strings" as single tokens.

    Quoted tokens keep their quotes; use unquote() to strip them.

    Raises:
        GrammarError: If a quote is not closed on the same line
    """
    tokens = []
    i = 0
    n = len(line)
    while i < n:
        if line[i].isspace():
            i += 1
            continue
        if line[i] == '"':
            end = line.find('"', i + 1)
            if end < 0:
                raise GrammarError("Unbalanced quote", line_number)
            tokens.append(line[i:end + 1])
            i = end + 1
        else:
            j = i
            while j < n and not line[j].isspace():
                j += 1
            tokens.append(line[i:j])
            i = j
    return tokens


def unquote(token: str) -> str:
    if len(token) >= 2 and token[0] == '"' and token[-1] == '"':
        return token[1:-1]
    return token


class _AsciiParser:
    """State of one ASCII parse: input cursor, open material and open mesh."""

    def __init__(self, stream: TextIO):
        self._lines = iter(stream)
        self.line_number = 0
        self.model = Model()
        self.material: Optional[Material] = None
        self.mesh: Optional[Mesh] = None

        self._handlers: Dict[str, Callable[[List[str]], None]] = {
            MATERIAL_KEYWORD: self._open_material,
            END_MATERIAL_KEYWORD: self._close_material,
            MESH_KEYWORD: self._open_mesh,
            END_MESH_KEYWORD: self._close_mesh,
            BLEND_KEYWORD: self._blend,
            VERTEX_DESC_KEYWORD: self._vertex_desc,
            VERTICES_KEYWORD: self._vertices,
        }
        for keyword in COLOR_KEYWORDS:
            self._handlers[keyword] = self._color
        for keyword in SCALAR_KEYWORDS:
            self._handlers[keyword] = self._scalar
        for keyword in TEXTURE_KEYWORDS:
            self._handlers[keyword] = self._texture
        for keyword in PRIMITIVE_KEYWORDS:
            self._handlers[keyword] = self._primitive

    def parse(self) -> Model:
        self._read_header()

        while True:
            line = self._next_line()
            if line is None:
                break
            if not line or line.startswith("#"):
                continue

            tokens = split_tokens(line, self.line_number)
            handler = self._handlers.get(tokens[0])
            if handler is None:
                raise GrammarError(f"Unknown token '{tokens[0]}'", self.line_number)
            handler(tokens)

        if self.material is not None:
            raise TruncationError("Unexpected end of input inside material")
        if self.mesh is not None:
            raise TruncationError("Unexpected end of input inside mesh")

        return self.model

    # Input cursor

    def _next_line(self) -> Optional[str]:
        raw = next(self._lines, None)
        if raw is None:
            return None
        self.line_number += 1
        return raw.strip()

    def _next_data_line(self, block: str) -> str:
        """Next non-blank line inside a fixed-count block."""
        while True:
            line = self._next_line()
            if line is None:
                raise TruncationError(f"Unexpected end of input in {block}")
            if line:
                return line

    def _read_header(self) -> None:
        while True:
            line = self._next_line()
            if line is None:
                raise HeaderError("Empty input, expected CMOD ASCII header")
            line = line.lstrip("\ufeff").strip()
            if line:
                break
        if line != ASCII_HEADER:
            raise HeaderError(f"Bad CMOD ASCII header: '{line}'", self.line_number)

    # Value parsing

    def _argument(self, tokens: List[str], index: int) -> str:
        if index >= len(tokens):
            raise GrammarError(f"'{tokens[0]}' expects {index} argument(s)", self.line_number)
        return tokens[index]

    def _float(self, token: str) -> float:
        try:
            return float(token)
        except ValueError:
            raise GrammarError(f"Malformed number '{token}'", self.line_number) from None

    def _uint(self, token: str) -> int:
        try:
            value = int(token)
        except ValueError:
            raise GrammarError(f"Malformed integer '{token}'", self.line_number) from None
        if value < 0:
            raise GrammarError(f"Negative value '{token}'", self.line_number)
        return value

    def _color_byte(self, token: str) -> int:
        try:
            return clamp_byte(int(token))
        except ValueError:
            return int(quantize_colors(self._float(token)))

    # Context checks

    def _require_material(self, keyword: str) -> Material:
        if self.material is None:
            raise ContextError(f"'{keyword}' outside material", self.line_number)
        return self.material

    def _require_mesh(self, keyword: str) -> Mesh:
        if self.mesh is None:
            raise ContextError(f"'{keyword}' outside mesh", self.line_number)
        return self.mesh

    def _require_no_context(self, keyword: str) -> None:
        if self.material is not None:
            raise ContextError(f"'{keyword}' inside open material", self.line_number)
        if self.mesh is not None:
            raise ContextError(f"'{keyword}' inside open mesh", self.line_number)

    # Materials

    def _open_material(self, tokens: List[str]) -> None:
        self._require_no_context(tokens[0])
        self.material = Material()

    def _close_material(self, tokens: List[str]) -> None:
        material = self._require_material(tokens[0])
        self.model.materials.append(material)
        self.material = None

    def _color(self, tokens: List[str]) -> None:
        material = self._require_material(tokens[0])
        color = tuple(self._float(self._argument(tokens, i)) for i in (1, 2, 3))
        token = COLOR_KEYWORDS[tokens[0]]
        if token == Token.DIFFUSE:
            material.diffuse = color
        elif token == Token.SPECULAR:
            material.specular = color
        else:
            material.emissive = color

    def _scalar(self, tokens: List[str]) -> None:
        material = self._require_material(tokens[0])
        value = self._float(self._argument(tokens, 1))
        if SCALAR_KEYWORDS[tokens[0]] == Token.SPECULAR_POWER:
            material.specular_power = value
        else:
            material.opacity = value

    def _blend(self, tokens: List[str]) -> None:
        material = self._require_material(tokens[0])
        name = self._argument(tokens, 1)
        if name not in BLEND_KEYWORDS:
            raise GrammarError(f"Unknown blend mode '{name}'", self.line_number)
        material.blend = BLEND_KEYWORDS[name]

    def _texture(self, tokens: List[str]) -> None:
        material = self._require_material(tokens[0])
        path = unquote(self._argument(tokens, 1))
        material.textures[TEXTURE_KEYWORDS[tokens[0]]] = path

    # Meshes

    def _open_mesh(self, tokens: List[str]) -> None:
        self._require_no_context(tokens[0])
        self.mesh = Mesh()

    def _close_mesh(self, tokens: List[str]) -> None:
        mesh = self._require_mesh(tokens[0])
        self.model.meshes.append(mesh)
        logger.debug(
            f"Mesh {len(self.model.meshes) - 1}: {mesh.vertex_count} vertices, "
            f"{len(mesh.primitives)} primitive groups"
        )
        self.mesh = None

    def _vertex_desc(self, tokens: List[str]) -> None:
        mesh = self._require_mesh(tokens[0])
        descriptor = []
        while True:
            parts = split_tokens(self._next_data_line("vertexdesc"), self.line_number)
            if parts[0] == END_VERTEX_DESC_KEYWORD:
                break
            if len(parts) < 2:
                raise GrammarError(f"Vertex attribute '{parts[0]}' has no format", self.line_number)
            semantic = SEMANTIC_KEYWORDS.get(parts[0])
            if semantic is None:
                raise GrammarError(f"Unknown semantic '{parts[0]}'", self.line_number)
            fmt = FORMAT_KEYWORDS.get(parts[1])
            if fmt is None:
                raise GrammarError(f"Unknown format '{parts[1]}'", self.line_number)
            descriptor.append(VertexAttribute(semantic, fmt))
        mesh.descriptor = descriptor

    def _vertices(self, tokens: List[str]) -> None:
        mesh = self._require_mesh(tokens[0])
        count = self._uint(self._argument(tokens, 1))
        descriptor = mesh.descriptor
        values_per_line = sum(a.component_count for a in descriptor)

        # Filled line by line; the declared count is not trusted for allocation
        floats: List[float] = []
        colors: List[int] = []

        for v in range(count):
            parts = split_tokens(self._next_data_line("vertices"), self.line_number)
            if len(parts) < values_per_line:
                raise CountMismatchError(
                    f"Vertex {v} has {len(parts)} values, expected {values_per_line}",
                    self.line_number,
                )
            p = 0
            for attr in descriptor:
                n = attr.component_count
                if attr.is_ub4:
                    colors.extend(self._color_byte(t) for t in parts[p:p + 4])
                else:
                    floats.extend(self._float(t) for t in parts[p:p + n])
                p += n

        mesh.vertex_count = count
        mesh.vertices = VertexBuffer(
            floats=np.asarray(floats, dtype=np.float32),
            colors=np.asarray(colors, dtype=np.uint8) if mesh.ub4_count else None,
        )

    def _primitive(self, tokens: List[str]) -> None:
        mesh = self._require_mesh(tokens[0])
        kind = PRIMITIVE_KEYWORDS[tokens[0]]
        material_index = self._uint(self._argument(tokens, 1))
        count = self._uint(self._argument(tokens, 2))
        if count % 3 != 0:
            raise GrammarError(f"{tokens[0]} index count {count} is not a multiple of 3", self.line_number)

        indices: List[int] = []
        while len(indices) < count:
            for token in split_tokens(self._next_data_line(tokens[0]), self.line_number):
                indices.append(self._uint(token))
                if len(indices) == count:
                    break

        mesh.primitives.append(PrimitiveGroup(material_index, indices, kind))


def load(stream: TextIO) -> Model:
    """
    Parse an ASCII CMOD model from a text stream.

    Raises:
        CmodError: On the first malformed line
    """
    return _AsciiParser(stream).parse()


def loads(text: str) -> Model:
    """Parse an ASCII CMOD model from a string."""
    return load(io.StringIO(text))


def _format_floats(values) -> str:
    return " ".join(f"{v:.{FLOAT_PRECISION}f}" for v in values)


def _write_material(stream: TextIO, material: Material) -> None:
    stream.write(f"{MATERIAL_KEYWORD}\n")
    for fld in material_fields(material):
        if fld.token in COLOR_NAMES:
            stream.write(f"{COLOR_NAMES[fld.token]} {_format_floats(fld.value)}\n")
        elif fld.token in SCALAR_NAMES:
            stream.write(f"{SCALAR_NAMES[fld.token]} {fld.value:.{FLOAT_PRECISION}f}\n")
        elif fld.token == Token.BLEND:
            stream.write(f"{BLEND_KEYWORD} {BLEND_NAMES[fld.value]}\n")
        elif fld.token == Token.TEXTURE:
            if '"' in fld.value:
                raise ValueError(f"Texture path cannot contain a double quote: {fld.value}")
            stream.write(f'{TEXTURE_NAMES[fld.texture]} "{fld.value}"\n')
    stream.write(f"{END_MATERIAL_KEYWORD}\n\n")


def _write_mesh(stream: TextIO, mesh: Mesh, scale: float) -> None:
    if mesh.vertex_count and not mesh.descriptor:
        raise ValueError("Cannot write vertices without a vertex descriptor")

    stream.write(f"{MESH_KEYWORD}\n")
    stream.write(f"{VERTEX_DESC_KEYWORD}\n")
    for attr in mesh.descriptor:
        stream.write(f"{attr}\n")
    stream.write(f"{END_VERTEX_DESC_KEYWORD}\n")

    records = scaled_records(mesh, scale)
    stream.write(f"{VERTICES_KEYWORD} {mesh.vertex_count}\n")
    if mesh.descriptor and mesh.vertex_count:
        columns = []
        for i, attr in enumerate(mesh.descriptor):
            column = records[f"a{i}"].reshape(mesh.vertex_count, attr.component_count)
            if attr.is_ub4:
                columns.append(column / 255.0)
            else:
                columns.append(column.astype(np.float64))
        table = np.hstack(columns)
        row_format = " ".join([f"{{:.{FLOAT_PRECISION}f}}"] * table.shape[1])
        for row in table:
            stream.write(row_format.format(*row) + "\n")

    for primitive in mesh.primitives:
        if primitive.kind not in PRIMITIVE_NAMES:
            raise ValueError(f"Unsupported primitive type: {primitive.kind}")
        indices = primitive.indices
        stream.write(f"{PRIMITIVE_NAMES[primitive.kind]} {primitive.material_index} {len(indices)}\n")
        for start in range(0, len(indices), INDICES_PER_LINE):
            stream.write(" ".join(str(i) for i in indices[start:start + INDICES_PER_LINE]) + "\n")

    stream.write(f"{END_MESH_KEYWORD}\n\n")


def dump(
    model: Union[Model, Scene],
    stream: TextIO,
    scale: float = DEFAULT_SCALE,
) -> None:
    """
    Write a model (or an imported scene) as ASCII CMOD.

    Args:
        model: Model, or Scene to run through the layout planner first
        stream: Text stream to write to
        scale: Factor applied to every position component
    """
    model = as_model(model)
    stream.write(f"{ASCII_HEADER}\n")
    for material in model.materials:
        _write_material(stream, material)
    for mesh in model.meshes:
        _write_mesh(stream, mesh, scale)


def dumps(model: Union[Model, Scene], scale: float = DEFAULT_SCALE) -> str:
    """Write a model as an ASCII CMOD string."""
    stream = io.StringIO()
    dump(model, stream, scale)
    return stream.getvalue()


def read_cmod_ascii(path: Union[str, Path]) -> Model:
    """
    Read an ASCII CMOD file.

    Args:
        path: Path to .cmod file

    Returns:
        Model with materials and meshes in file order

    Raises:
        CmodError: If the file is not valid ASCII CMOD
    """
    path = Path(path)
    with open(path, "r", encoding="utf-8-sig") as f:
        model = load(f)
    logger.info(f"Read {len(model.materials)} materials, {len(model.meshes)} meshes from {path}")
    return model


def write_cmod_ascii(
    path: Union[str, Path],
    model: Union[Model, Scene],
    scale: float = DEFAULT_SCALE,
) -> Path:
    """
    Write an ASCII CMOD file.

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
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        dump(model, f, scale)
    logger.info(f"Wrote ASCII CMOD to {path} (scale={scale})")
    return path
