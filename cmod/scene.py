"""
Generic scene view for import transcoding.

The layout planner only needs a capability view of an imported scene:
materials with colour/texture/opacity/shininess fields and meshes with
optional per-vertex channels and triangle faces. Scene, SceneMaterial and
SceneMesh describe that view; load_scene() fills it from any asset format
trimesh can open (glTF/GLB, OBJ, PLY, STL, OFF, ...).
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

try:
    import trimesh
    HAS_TRIMESH = True
except ImportError:
    HAS_TRIMESH = False

from cmod.tokens import MAX_TEXCOORD_CHANNELS, TextureSemantic

logger = logging.getLogger(__name__)

Color = Tuple[float, float, float]


@dataclass
class SceneMaterial:
    """Material fields of an imported scene (colours as 0..1 floats)."""
    diffuse: Color = (0.0, 0.0, 0.0)
    specular: Color = (0.0, 0.0, 0.0)
    emissive: Color = (0.0, 0.0, 0.0)
    opacity: float = 1.0
    shininess: float = 0.0
    textures: Dict[TextureSemantic, str] = field(default_factory=dict)
    name: str = ""


@dataclass(eq=False)
class SceneMesh:
    """
    Current-frame geometry of one imported mesh.

    positions: (N, 3) vertex positions
    normals/tangents: optional (N, 3) arrays
    colors: optional (N, 4) vertex colours as 0..1 floats
    uvs: up to four optional (N, 2) texture-coordinate channels, indexed
         by channel; a None entry means the channel is absent
    faces: (M, 3) triangle indices
    """
    positions: np.ndarray
    faces: np.ndarray
    normals: Optional[np.ndarray] = None
    tangents: Optional[np.ndarray] = None
    colors: Optional[np.ndarray] = None
    uvs: List[Optional[np.ndarray]] = field(default_factory=list)
    material_index: int = 0
    name: str = ""

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    def has_uv(self, channel: int) -> bool:
        return channel < len(self.uvs) and self.uvs[channel] is not None


@dataclass(eq=False)
class Scene:
    """Materials and meshes of an imported scene."""
    materials: List[SceneMaterial] = field(default_factory=list)
    meshes: List[SceneMesh] = field(default_factory=list)


def _unit(color) -> np.ndarray:
    """trimesh stores most colours as uint8 RGBA; map them to 0..1."""
    raw = np.asarray(color)
    values = raw.astype(np.float64)
    if raw.dtype.kind in "ui" or values.max(initial=0) > 1.0:
        values = values / 255.0
    return values


def _rgb(color) -> Color:
    c = _unit(color)
    return (float(c[0]), float(c[1]), float(c[2]))


def _alpha(color) -> float:
    c = _unit(color)
    return float(c[3]) if len(c) >= 4 else 1.0


def _texture_name(image) -> Optional[str]:
    """File name of a texture image, when the importer kept one."""
    filename = getattr(image, "filename", None) if image is not None else None
    if not filename:
        return None
    return Path(filename).name


def _convert_material(material) -> SceneMaterial:
    result = SceneMaterial(name=getattr(material, "name", None) or "")
    textures = {}

    if isinstance(material, trimesh.visual.material.PBRMaterial):
        if material.baseColorFactor is not None:
            result.diffuse = _rgb(material.baseColorFactor)
            result.opacity = _alpha(material.baseColorFactor)
        else:
            result.diffuse = (1.0, 1.0, 1.0)
        if material.emissiveFactor is not None:
            result.emissive = _rgb(material.emissiveFactor)
        textures[TextureSemantic.DIFFUSE] = _texture_name(material.baseColorTexture)
        textures[TextureSemantic.NORMAL] = _texture_name(material.normalTexture)
        textures[TextureSemantic.EMISSIVE] = _texture_name(material.emissiveTexture)
    else:
        diffuse = getattr(material, "diffuse", None)
        if diffuse is not None:
            result.diffuse = _rgb(diffuse)
            result.opacity = _alpha(diffuse)
        specular = getattr(material, "specular", None)
        if specular is not None:
            result.specular = _rgb(specular)
        glossiness = getattr(material, "glossiness", None)
        if glossiness is not None:
            result.shininess = float(glossiness)
        textures[TextureSemantic.DIFFUSE] = _texture_name(getattr(material, "image", None))

    result.textures = {k: v for k, v in textures.items() if v}
    return result


def scene_from_trimesh(obj) -> Scene:
    """
    Build a Scene from a trimesh Scene or Trimesh.

    Node transforms are baked into the vertex data. Materials are shared
    between meshes that reference the same trimesh material; meshes without
    one get a material derived from their main colour.

    Args:
        obj: trimesh.Scene or trimesh.Trimesh

    Returns:
        Scene with one SceneMesh per geometry instance
    """
    if not HAS_TRIMESH:
        raise ImportError("trimesh is required. Install with: pip install trimesh")

    if isinstance(obj, trimesh.Trimesh):
        obj = trimesh.Scene(obj)

    scene = Scene()
    material_slots: Dict[object, int] = {}

    def material_slot(key, build) -> int:
        if key not in material_slots:
            material_slots[key] = len(scene.materials)
            scene.materials.append(build())
        return material_slots[key]

    for node_name in obj.graph.nodes_geometry:
        transform, geometry_name = obj.graph[node_name]
        geometry = obj.geometry[geometry_name]
        if not isinstance(geometry, trimesh.Trimesh):
            logger.debug(f"Skipping non-mesh geometry {geometry_name}")
            continue

        mesh = geometry.copy()
        mesh.apply_transform(transform)
        visual = mesh.visual

        colors = None
        uvs: List[Optional[np.ndarray]] = []
        material = getattr(visual, "material", None)

        if visual.kind == "texture":
            if getattr(visual, "uv", None) is not None and len(visual.uv) == len(mesh.vertices):
                uvs.append(np.asarray(visual.uv, dtype=np.float32))
        elif visual.kind == "vertex":
            colors = np.asarray(visual.vertex_colors, dtype=np.float32) / 255.0

        if material is not None:
            index = material_slot(id(material), lambda: _convert_material(material))
        else:
            main_color = (255, 255, 255, 255)
            if hasattr(visual, "main_color"):
                main_color = tuple(int(c) for c in visual.main_color)
            index = material_slot(
                ("color",) + main_color,
                lambda: SceneMaterial(diffuse=_rgb(main_color), opacity=_alpha(main_color)),
            )

        scene.meshes.append(SceneMesh(
            positions=np.asarray(mesh.vertices, dtype=np.float32),
            faces=np.asarray(mesh.faces, dtype=np.uint32),
            normals=np.asarray(mesh.vertex_normals, dtype=np.float32),
            colors=colors,
            uvs=uvs[:MAX_TEXCOORD_CHANNELS],
            material_index=index,
            name=str(node_name),
        ))

    return scene


def load_scene(path: Union[str, Path]) -> Scene:
    """
    Import an asset file through trimesh.

    Args:
        path: Any mesh or scene format trimesh can load

    Returns:
        Scene view of the file

    Raises:
        ImportError: If trimesh is not installed
        ValueError: If the file contains no triangle meshes
    """
    if not HAS_TRIMESH:
        raise ImportError("trimesh is required. Install with: pip install trimesh")

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input model not found: {path}")

    loaded = trimesh.load(str(path), force="scene")
    scene = scene_from_trimesh(loaded)
    if not scene.meshes:
        raise ValueError(f"Failed to load model or no meshes found: {path}")

    logger.info(f"Imported {len(scene.meshes)} meshes, {len(scene.materials)} materials from {path}")
    return scene
