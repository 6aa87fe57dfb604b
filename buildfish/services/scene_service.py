"""Scene Service - turns CAD objects into trimesh meshes and mesh files.

Mirrors the browser viewer: every object becomes exactly one mesh, sized,
rotated and placed with the same conventions Three.js uses (Y-up, Euler XYZ
rotation in radians, cylinders and cones along +Y).
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np
import trimesh

from buildfish import config

logger = logging.getLogger(__name__)

GEOMETRY_KINDS = {
    "cube": "box",
    "sphere": "sphere",
    "cylinder": "cylinder",
    "cone": "cone",
    "csg": "group",
}

DEFAULT_COLOR = "#ffffff"

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


class SceneError(ValueError):
    """Raised when a scene cannot be exported."""


@dataclass
class SceneMesh:
    name: str
    type: Optional[str]
    geometry: Optional[str]
    mesh: trimesh.Trimesh
    color: str = DEFAULT_COLOR


def _num(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Non-numeric value {value!r}, using {default}")
        return default
    return result if np.isfinite(result) else default


def _vec3(value: Any, default: float) -> np.ndarray:
    """Read a 3-vector given as {x,y,z}, [x,y,z] or a single number."""
    if isinstance(value, dict):
        return np.array([_num(value.get(axis, default), default) for axis in "xyz"])
    if isinstance(value, (list, tuple)) and len(value) == 3:
        return np.array([_num(v, default) for v in value])
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return np.full(3, _num(value, default))
    return np.full(3, float(default))


def _rgba(color: Any) -> np.ndarray:
    match = _HEX_RE.match(color.strip()) if isinstance(color, str) else None
    if match is None:
        if color is not None:
            logger.warning(f"Unrecognised color {color!r}, using {DEFAULT_COLOR}")
        return np.array([255, 255, 255, 255], dtype=np.uint8)
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    rgb = [int(digits[i:i + 2], 16) for i in (0, 2, 4)]
    return np.array(rgb + [255], dtype=np.uint8)


def _pose_matrix(obj: dict) -> np.ndarray:
    """Translation then Euler XYZ rotation, as a Three.js Object3D applies them."""
    tf = trimesh.transformations
    rx, ry, rz = _vec3(obj.get("rotation"), 0.0)
    rotation = (
        tf.rotation_matrix(rx, [1, 0, 0])
        @ tf.rotation_matrix(ry, [0, 1, 0])
        @ tf.rotation_matrix(rz, [0, 0, 1])
    )
    return tf.translation_matrix(_vec3(obj.get("position"), 0.0)) @ rotation


def _z_to_y() -> np.ndarray:
    # trimesh builds round solids along +Z; Three.js builds them along +Y
    return trimesh.transformations.rotation_matrix(-np.pi / 2, [1, 0, 0])


def _primitive(kind: str, scale: np.ndarray) -> trimesh.Trimesh:
    sections = config.MESH_SECTIONS
    sx, sy, sz = np.abs(scale)

    if kind == "box":
        return trimesh.creation.box(extents=[sx, sy, sz])

    if kind == "sphere":
        return trimesh.creation.uv_sphere(radius=sx / 2, count=[sections, sections])

    if kind == "cylinder":
        mesh = trimesh.creation.cylinder(radius=sx / 2, height=sy, sections=sections)
        mesh.apply_transform(_z_to_y())
        return mesh

    if kind == "cone":
        mesh = trimesh.creation.cone(radius=sx / 2, height=sy, sections=sections)
        # base at z=0 -> centred on the origin, apex at +height/2
        mesh.apply_translation([0, 0, -sy / 2])
        mesh.apply_transform(_z_to_y())
        return mesh

    raise SceneError(f"Unknown geometry kind: {kind}")


def build_object_mesh(obj: Any) -> SceneMesh:
    """Build the mesh for one CAD object, always returning exactly one SceneMesh."""
    if not isinstance(obj, dict):
        logger.warning(f"Skipping non-object scene entry: {obj!r}")
        obj = {}

    obj_type = obj.get("type")
    name = str(obj.get("name") or obj_type or "object")
    color = obj.get("color") or DEFAULT_COLOR
    kind = GEOMETRY_KINDS.get(obj_type) if isinstance(obj_type, str) else None

    if kind is None:
        logger.warning(f"Unknown object type {obj_type!r} for '{name}', rendering nothing")
        return SceneMesh(name, obj_type, None, trimesh.Trimesh(), color)

    if kind == "group":
        children = obj.get("children") or []
        parts = [
            child.mesh
            for child in (build_object_mesh(c) for c in children)
            if not child.mesh.is_empty
        ]
        mesh = trimesh.util.concatenate(parts) if parts else trimesh.Trimesh()
        if not mesh.is_empty:
            mesh.apply_transform(_pose_matrix(obj))
        return SceneMesh(name, obj_type, kind, mesh, color)

    mesh = _primitive(kind, _vec3(obj.get("scale"), 1.0))
    mesh.apply_transform(_pose_matrix(obj))
    mesh.visual.face_colors = _rgba(color)
    return SceneMesh(name, obj_type, kind, mesh, color)


def build_scene(objects: list) -> list[SceneMesh]:
    """One SceneMesh per CAD object, in input order."""
    return [build_object_mesh(obj) for obj in objects]


def scene_stats(meshes: list[SceneMesh]) -> dict:
    """Summary of what the viewer would draw."""
    non_empty = [m.mesh for m in meshes if not m.mesh.is_empty]
    bounds = None
    if non_empty:
        combined = trimesh.util.concatenate(non_empty)
        bounds = combined.bounds.round(6).tolist()

    return {
        "mesh_count": len(meshes),
        "objects": [
            {
                "name": m.name,
                "type": m.type,
                "geometry": m.geometry,
                "color": m.color,
                "vertices": len(m.mesh.vertices),
                "faces": len(m.mesh.faces),
            }
            for m in meshes
        ],
        "bounds": bounds,
    }


def export_scene(objects: list, output_format: str = "stl") -> bytes:
    """Export CAD objects as STL, OBJ or GLB bytes."""
    if output_format not in config.EXPORT_FORMATS:
        raise SceneError(f"Unsupported export format: {output_format}")

    meshes = [m for m in build_scene(objects) if not m.mesh.is_empty]
    if not meshes:
        raise SceneError("Scene has no geometry to export")

    if output_format == "glb":
        scene = trimesh.Scene()
        for i, m in enumerate(meshes):
            node = f"{i}_{m.name}"
            scene.add_geometry(m.mesh, node_name=node, geom_name=node)
        data = scene.export(file_type="glb")
    else:
        combined = trimesh.util.concatenate([m.mesh for m in meshes])
        data = combined.export(file_type=output_format)

    if isinstance(data, str):
        data = data.encode("utf-8")
    logger.info(f"Exported {len(meshes)} meshes as {output_format} ({len(data)} bytes)")
    return data


def export_filename(title: str | None, output_format: str) -> str:
    """Download filename: title with whitespace runs as underscores.

    Only ASCII word characters, dots and dashes are kept so the name fits a
    Content-Disposition header; leading and trailing dots are dropped.
    """
    stem = ""
    if title:
        stem = re.sub(r"\s+", "_", title.strip())
        stem = re.sub(r"[^\w.\-]", "", stem, flags=re.ASCII)
        stem = stem.strip("._")
    return f"{stem or config.DEFAULT_FILENAME}.{output_format}"
