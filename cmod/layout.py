"""
Vertex layout planning for imported scenes.

Import transcoding keeps only current-frame data and writes one trilist per
mesh. The descriptor is chosen deterministically:

    position f3, normal f3, tangent f3, color0 ub4, texcoord0..3 f2

where every entry after position is included only when the mesh carries
that channel. Point size is never emitted.
"""

import logging
from pathlib import Path
from typing import List, Union

import numpy as np

from cmod.model import Material, Mesh, Model, PrimitiveGroup, VertexAttribute, VertexBuffer
from cmod.policy import quantize_colors
from cmod.scene import Scene, SceneMaterial, SceneMesh
from cmod.tokens import MAX_TEXCOORD_CHANNELS, VertexFormat, VertexSemantic

logger = logging.getLogger(__name__)


def plan_layout(mesh: SceneMesh) -> List[VertexAttribute]:
    """
    Decide the vertex descriptor for an imported mesh.

    Args:
        mesh: Scene mesh with optional normal/tangent/colour/UV channels

    Returns:
        Descriptor in the order both writers interleave vertex data
    """
    layout = [VertexAttribute(VertexSemantic.POSITION, VertexFormat.F3)]
    if mesh.normals is not None:
        layout.append(VertexAttribute(VertexSemantic.NORMAL, VertexFormat.F3))
    if mesh.tangents is not None and len(mesh.tangents) == mesh.vertex_count:
        layout.append(VertexAttribute(VertexSemantic.TANGENT, VertexFormat.F3))
    if mesh.colors is not None:
        layout.append(VertexAttribute(VertexSemantic.COLOR0, VertexFormat.UB4))
    for channel in range(MAX_TEXCOORD_CHANNELS):
        if mesh.has_uv(channel):
            semantic = VertexSemantic(VertexSemantic.TEXCOORD0 + channel)
            layout.append(VertexAttribute(semantic, VertexFormat.F2))
    return layout


def _channel(mesh: SceneMesh, semantic: VertexSemantic) -> np.ndarray:
    if semantic == VertexSemantic.POSITION:
        data = mesh.positions
    elif semantic == VertexSemantic.NORMAL:
        data = mesh.normals
    elif semantic == VertexSemantic.TANGENT:
        data = mesh.tangents
    elif semantic == VertexSemantic.COLOR0:
        data = mesh.colors
    else:
        data = mesh.uvs[semantic - VertexSemantic.TEXCOORD0]
    return np.asarray(data)


def mesh_from_scene(mesh: SceneMesh) -> Mesh:
    """
    Convert an imported mesh into a CMOD mesh using plan_layout().

    Colours are quantised to bytes; only triangular faces are kept and
    they become a single trilist referencing the mesh's material.
    """
    layout = plan_layout(mesh)
    count = mesh.vertex_count

    float_columns = [np.zeros((count, 0), dtype=np.float32)]
    color_columns = []
    for attr in layout:
        values = _channel(mesh, attr.semantic).reshape(count, attr.component_count if not count else -1)
        if attr.is_ub4:
            # Missing alpha reads as opaque
            rgba = np.ones((count, 4), dtype=np.float64)
            width = min(4, values.shape[1])
            rgba[:, :width] = values[:, :width]
            color_columns.append(quantize_colors(rgba))
        else:
            float_columns.append(values[:, :attr.component_count].astype(np.float32))

    floats = np.concatenate(float_columns, axis=1)
    colors = np.concatenate(color_columns, axis=1) if color_columns else None

    faces = np.asarray(mesh.faces)
    if faces.ndim != 2 or faces.shape[1] != 3:
        logger.debug(f"Dropping non-triangle faces of mesh '{mesh.name}'")
        faces = np.zeros((0, 3), dtype=np.uint32)

    return Mesh(
        descriptor=layout,
        vertex_count=count,
        vertices=VertexBuffer(floats=floats, colors=colors),
        primitives=[PrimitiveGroup.trilist(mesh.material_index, faces)],
    )


def material_from_scene(material: SceneMaterial) -> Material:
    """Convert imported material fields; texture paths keep only the file name."""
    return Material(
        diffuse=tuple(material.diffuse),
        specular=tuple(material.specular),
        emissive=tuple(material.emissive),
        specular_power=material.shininess,
        opacity=material.opacity,
        textures={
            semantic: Path(path).name
            for semantic, path in material.textures.items()
            if path
        },
    )


def model_from_scene(scene: Scene) -> Model:
    """
    Build a CMOD model from an imported scene.

    Args:
        scene: Scene view produced by the importer

    Returns:
        Model ready for either writer
    """
    model = Model(
        materials=[material_from_scene(m) for m in scene.materials],
        meshes=[mesh_from_scene(m) for m in scene.meshes],
    )
    logger.debug(f"Planned layouts for {len(model.meshes)} imported meshes")
    return model


def as_model(model: Union[Model, Scene]) -> Model:
    """Pass models through; run scenes through the layout planner."""
    if isinstance(model, Scene):
        return model_from_scene(model)
    return model
