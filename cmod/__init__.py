"""
CMOD - Reader, writer and converter for Celestia model files.

A .cmod file is either:
- ASCII: "#celmodel__ascii" followed by a line-oriented keyword grammar
- Binary: "#celmodel_binary" followed by little-endian uint16 token chunks

Both encodings describe the same model: an ordered list of materials and
an ordered list of meshes, each mesh with a vertex descriptor, interleaved
vertex data and trilist primitive groups.
"""

__version__ = "0.1.0"

from cmod.model import Model, Material, Mesh, VertexAttribute, VertexBuffer, PrimitiveGroup
from cmod.ascii_format import read_cmod_ascii, write_cmod_ascii
from cmod.binary_format import read_cmod_binary, write_cmod_binary
from cmod.layout import plan_layout, model_from_scene
from cmod.convert import load_model, convert_model, probe_model_kind, get_model_info
from cmod.errors import (
    CmodError,
    HeaderError,
    GrammarError,
    ContextError,
    ProtocolError,
    TruncationError,
    CountMismatchError,
)

__all__ = [
    "Model",
    "Material",
    "Mesh",
    "VertexAttribute",
    "VertexBuffer",
    "PrimitiveGroup",
    "read_cmod_ascii",
    "write_cmod_ascii",
    "read_cmod_binary",
    "write_cmod_binary",
    "plan_layout",
    "model_from_scene",
    "load_model",
    "convert_model",
    "probe_model_kind",
    "get_model_info",
    "CmodError",
    "HeaderError",
    "GrammarError",
    "ContextError",
    "ProtocolError",
    "TruncationError",
    "CountMismatchError",
]
