"""
Format detection, loading and conversion of model files.

Inputs are classified by their first 16 bytes: the ASCII or binary CMOD
header literal, otherwise a generic asset handed to the scene importer.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Tuple, Union

from cmod.ascii_format import read_cmod_ascii, write_cmod_ascii
from cmod.binary_format import read_cmod_binary, write_cmod_binary
from cmod.model import Model
from cmod.policy import DEFAULT_SCALE
from cmod.scene import Scene, load_scene
from cmod.tokens import ASCII_HEADER, BINARY_HEADER, HEADER_SIZE, TEXTURE_NAMES, VertexSemantic

logger = logging.getLogger(__name__)

KIND_ASCII = "cmod-ascii"
KIND_BINARY = "cmod-binary"
KIND_SCENE = "scene"

ASCII_FORMATS = ("ascii",)
BINARY_FORMATS = ("bin", "binary")


def probe_model_kind(path: Union[str, Path]) -> str:
    """
    Classify a model file by its header bytes.

    Returns:
        KIND_ASCII, KIND_BINARY, or KIND_SCENE for anything else
    """
    with open(path, "rb") as f:
        header = f.read(HEADER_SIZE)
    if header == ASCII_HEADER.encode("ascii"):
        return KIND_ASCII
    if header == BINARY_HEADER:
        return KIND_BINARY
    return KIND_SCENE


def load_model(path: Union[str, Path]) -> Tuple[str, Union[Model, Scene]]:
    """
    Load any supported model file.

    Args:
        path: CMOD file (either encoding) or an asset trimesh can import

    Returns:
        Tuple of (kind, Model or Scene)
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input model not found: {path}")

    kind = probe_model_kind(path)
    logger.debug(f"Detected {kind} input: {path}")
    if kind == KIND_ASCII:
        return kind, read_cmod_ascii(path)
    if kind == KIND_BINARY:
        return kind, read_cmod_binary(path)
    return kind, load_scene(path)


def convert_model(
    input_path: Union[str, Path],
    output_path: Union[str, Path],
    target_format: str,
    scale: float = DEFAULT_SCALE,
) -> Path:
    """
    Convert a model file to ASCII or binary CMOD.

    CMOD inputs are transcoded losslessly; other assets go through the
    scene importer and layout planner.

    Args:
        input_path: Source model
        output_path: Destination .cmod file
        target_format: "ascii", "bin" or "binary"
        scale: Factor applied to every position component

    Returns:
        Path to the written file
    """
    target_format = target_format.lower()
    if target_format not in ASCII_FORMATS + BINARY_FORMATS:
        raise ValueError(f"Unknown format '{target_format}'. Use ascii or bin.")

    _, model = load_model(input_path)
    if target_format in ASCII_FORMATS:
        return write_cmod_ascii(output_path, model, scale)
    return write_cmod_binary(output_path, model, scale)


def _scene_info(scene: Scene) -> Dict[str, Any]:
    meshes = []
    for mesh in scene.meshes:
        meshes.append({
            "name": mesh.name,
            "vertex_count": mesh.vertex_count,
            "face_count": len(mesh.faces),
            "normals": mesh.normals is not None,
            "tangents": mesh.tangents is not None,
            "uv0": mesh.has_uv(0),
            "uv1": mesh.has_uv(1),
            "colors0": mesh.colors is not None,
            "material_indices": [mesh.material_index],
        })
    materials = []
    for material in scene.materials:
        materials.append({
            "name": material.name,
            "diffuse": list(material.diffuse),
            "specular": list(material.specular),
            "emissive": list(material.emissive),
            "opacity": material.opacity,
            "shininess": material.shininess,
            "textures": {TEXTURE_NAMES[k]: v for k, v in sorted(material.textures.items())},
        })
    return {
        "meshes": meshes,
        "materials": materials,
        "textures": sum(1 for m in scene.materials if m.textures),
    }


def _model_info(model: Model) -> Dict[str, Any]:
    meshes = []
    for mesh in model.meshes:
        meshes.append({
            "vertex_count": mesh.vertex_count,
            "primitive_count": len(mesh.primitives),
            "normals": mesh.has_semantic(VertexSemantic.NORMAL),
            "tangents": mesh.has_semantic(VertexSemantic.TANGENT),
            "uv0": mesh.has_semantic(VertexSemantic.TEXCOORD0),
            "uv1": mesh.has_semantic(VertexSemantic.TEXCOORD1),
            "colors0": mesh.has_semantic(VertexSemantic.COLOR0),
            "material_indices": [p.material_index for p in mesh.primitives],
            "descriptor": [str(a) for a in mesh.descriptor],
        })
    materials = []
    for material in model.materials:
        d = material.to_dict()
        d["shininess"] = d.pop("specular_power")
        materials.append(d)
    return {
        "meshes": meshes,
        "materials": materials,
        "textures": model.textured_material_count,
    }


def get_model_info(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Summarise a model file.

    Args:
        path: Any file load_model() accepts

    Returns:
        Dict with kind, per-mesh and per-material summaries
    """
    kind, model = load_model(path)
    info = _scene_info(model) if isinstance(model, Scene) else _model_info(model)
    info["kind"] = kind
    info["path"] = str(path)
    return info
