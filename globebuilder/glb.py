"""GLB scene assembly, pruning, dedup, quantization, and export."""

import hashlib
import json
import logging
import pathlib
import re
from dataclasses import dataclass

import numpy as np
import pygltflib
import trimesh

from .constants import QUANTIZE_BITS
from .models import MeshFragment

logger = logging.getLogger(__name__)

_INDEX_SUFFIX = re.compile(r'_\d+$')


class SceneWriteError(RuntimeError):
    """The scene could not be serialized or written."""


@dataclass
class PackStats:
    nodes: int = 0
    meshes: int = 0
    pruned: int = 0
    deduplicated: int = 0
    vertices: int = 0
    faces: int = 0


def display_name(node_name: str) -> str:
    """Human-readable region name for a ``{region}_{featureIndex}`` node."""
    base = _INDEX_SUFFIX.sub('', node_name)
    return ' '.join(word.capitalize() for word in base.split('_') if word)


# ── Finishing passes ────────────────────────────────────────────────────

def prune_fragment(fragment: MeshFragment, eps: float = 1e-14):
    """Drop zero-area triangles and the vertices only they used.

    Returns ``None`` when nothing is left.
    """
    indices = np.asarray(fragment.indices, dtype=np.int64).reshape(-1, 3)
    if len(indices) == 0:
        return None

    tri = fragment.positions[indices]
    area2 = np.linalg.norm(np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0]), axis=1)
    indices = indices[area2 > eps]
    if len(indices) == 0:
        return None

    used, remap = np.unique(indices.ravel(), return_inverse=True)
    if len(used) == fragment.vertex_count and len(indices) == fragment.face_count:
        return fragment
    return MeshFragment(
        positions=fragment.positions[used],
        normals=fragment.normals[used],
        indices=remap.reshape(-1, 3),
        color=fragment.color,
    )


def _snap(values: np.ndarray, lo, hi, bits: int) -> np.ndarray:
    steps = (1 << bits) - 1
    span = np.where(hi - lo > 0, hi - lo, 1.0)
    q = np.round((values - lo) / span * steps)
    return lo + q / steps * span


def _normal_steps(bits: int) -> int:
    """Largest signed value of the normal storage type (int8 or int16)."""
    return 127 if bits <= 8 else 32767


def quantize_fragment(fragment: MeshFragment, bits: dict) -> MeshFragment:
    """Reduce attribute precision to what the quantized encoding stores.

    Positions snap to a grid over the fragment's bounding box, normals to
    signed normalized int8 (or int16 above 8 bits), colors to
    ``bits['color']`` levels.
    """
    positions = fragment.positions
    if len(positions):
        positions = _snap(positions, positions.min(axis=0), positions.max(axis=0),
                          min(bits['position'], 16))

    steps = _normal_steps(bits['normal'])
    normals = np.round(np.clip(fragment.normals, -1.0, 1.0) * steps) / steps

    color = tuple(float(c) for c in
                  _snap(np.clip(np.asarray(fragment.color, dtype=np.float64), 0.0, 1.0),
                        0.0, 1.0, bits['color']))
    return MeshFragment(positions, normals, fragment.indices, color)


def fragment_key(fragment: MeshFragment) -> str:
    """Content hash of a fragment's buffers and color."""
    h = hashlib.sha1()
    h.update(np.ascontiguousarray(fragment.positions, dtype=np.float32).tobytes())
    h.update(np.ascontiguousarray(fragment.normals, dtype=np.float32).tobytes())
    h.update(np.ascontiguousarray(fragment.indices, dtype=np.uint32).tobytes())
    h.update(np.asarray(fragment.color, dtype=np.float32).tobytes())
    return h.hexdigest()


def fragment_to_mesh(fragment: MeshFragment) -> trimesh.Trimesh:
    """Wrap a fragment as a trimesh with normals and flat vertex colors.

    ``process=False`` keeps the unshared vertex layout.
    """
    rgb = np.round(np.clip(fragment.vertex_colors(), 0.0, 1.0) * 255).astype(np.uint8)
    rgba = np.column_stack([rgb, np.full(len(rgb), 255, dtype=np.uint8)])
    return trimesh.Trimesh(
        vertices=fragment.positions,
        faces=fragment.indices,
        vertex_normals=fragment.normals,
        vertex_colors=rgba,
        process=False,
    )


# ── Scene ───────────────────────────────────────────────────────────────

def build_scene(named_fragments, quantize: bool = True, bits: dict = QUANTIZE_BITS):
    """Collect fragments into one scene, one node per fragment.

    Bit-identical fragments share a single mesh; the duplicate node only
    references it. Returns ``(scene, PackStats)``.
    """
    scene = trimesh.Scene()
    stats = PackStats()
    by_key = {}

    for node_name, fragment in named_fragments:
        fragment = prune_fragment(fragment)
        if fragment is None:
            stats.pruned += 1
            logger.debug(f"Pruned empty fragment {node_name}")
            continue
        if quantize:
            fragment = quantize_fragment(fragment, bits)

        key = fragment_key(fragment)
        if key in by_key:
            scene.graph.update(frame_to=node_name,
                               frame_from=scene.graph.base_frame,
                               geometry=by_key[key])
            stats.deduplicated += 1
        else:
            scene.add_geometry(fragment_to_mesh(fragment),
                               geom_name=node_name, node_name=node_name)
            by_key[key] = scene.graph[node_name][1]
            stats.meshes += 1
            stats.vertices += fragment.vertex_count
            stats.faces += fragment.face_count
        stats.nodes += 1

    logger.info(f"Scene: {stats.nodes} nodes, {stats.meshes} meshes "
                f"({stats.deduplicated} deduplicated, {stats.pruned} pruned)")
    return scene, stats


# ── Quantized encoding (KHR_mesh_quantization) ──────────────────────────

QUANTIZATION_EXTENSION = 'KHR_mesh_quantization'


class _BufferWriter:
    """Packs arrays into one binary chunk, one 4-byte aligned view each."""

    def __init__(self):
        self.blob = bytearray()
        self.views = []
        self.accessors = []

    def add(self, array: np.ndarray, component_type: int, accessor_type: str,
            target: int, count: int, stride=None, normalized=False,
            bounds=None) -> int:
        self.blob.extend(b'\x00' * (-len(self.blob) % 4))
        data = np.ascontiguousarray(array).tobytes()
        view = pygltflib.BufferView(buffer=0, byteOffset=len(self.blob),
                                    byteLength=len(data), target=target)
        if stride:
            view.byteStride = stride
        self.views.append(view)
        self.blob.extend(data)

        accessor = pygltflib.Accessor(bufferView=len(self.views) - 1,
                                      componentType=component_type,
                                      count=count, type=accessor_type,
                                      normalized=normalized or None)
        if bounds is not None:
            accessor.min, accessor.max = bounds
        self.accessors.append(accessor)
        return len(self.accessors) - 1


def _padded(values: np.ndarray, dtype) -> np.ndarray:
    """VEC3 rows padded to a 4-byte multiple with a zero fourth lane."""
    out = np.zeros((len(values), 4), dtype=dtype)
    out[:, :3] = values
    return out


def _encode_mesh(writer: _BufferWriter, mesh: trimesh.Trimesh, bits: dict):
    """Write one mesh's attributes as integers.

    Returns the primitive plus the ``(translation, scale)`` that maps the
    stored uint16 positions back to model space.
    """
    vertices = np.asarray(mesh.vertices, dtype=np.float64)
    steps = (1 << min(bits['position'], 16)) - 1
    lo = vertices.min(axis=0)
    span = vertices.max(axis=0) - lo
    span = np.where(span > 0, span, 1.0)
    q_pos = np.round((vertices - lo) / span * steps).astype(np.uint16)
    position = writer.add(_padded(q_pos, np.uint16), pygltflib.UNSIGNED_SHORT,
                          pygltflib.VEC3, pygltflib.ARRAY_BUFFER, len(q_pos),
                          stride=8,
                          bounds=(q_pos.min(axis=0).tolist(), q_pos.max(axis=0).tolist()))

    n_steps = _normal_steps(bits['normal'])
    n_dtype, n_type = ((np.int8, pygltflib.BYTE) if n_steps == 127
                       else (np.int16, pygltflib.SHORT))
    q_norm = np.round(np.clip(mesh.vertex_normals, -1.0, 1.0) * n_steps).astype(n_dtype)
    normal = writer.add(_padded(q_norm, n_dtype), n_type, pygltflib.VEC3,
                        pygltflib.ARRAY_BUFFER, len(q_norm),
                        stride=4 * np.dtype(n_dtype).itemsize, normalized=True)

    rgba = np.asarray(mesh.visual.vertex_colors, dtype=np.uint8)
    color = writer.add(rgba, pygltflib.UNSIGNED_BYTE, pygltflib.VEC4,
                       pygltflib.ARRAY_BUFFER, len(rgba), normalized=True)

    faces = np.asarray(mesh.faces).ravel()
    if len(vertices) <= 0xFFFF:
        faces, i_type = faces.astype(np.uint16), pygltflib.UNSIGNED_SHORT
    else:
        faces, i_type = faces.astype(np.uint32), pygltflib.UNSIGNED_INT
    indices = writer.add(faces, i_type, pygltflib.SCALAR,
                         pygltflib.ELEMENT_ARRAY_BUFFER, len(faces))

    primitive = pygltflib.Primitive(
        attributes=pygltflib.Attributes(POSITION=position, NORMAL=normal, COLOR_0=color),
        indices=indices)
    return primitive, (lo.tolist(), (span / steps).tolist())


def encode_quantized_glb(scene: trimesh.Scene, bits: dict = QUANTIZE_BITS) -> bytes:
    """Serialize ``scene`` to GLB with integer vertex attributes.

    Positions are uint16 on the mesh's bounding-box grid with the
    dequantizing translation and scale on the node, normals are signed
    normalized int8/int16, colors normalized uint8 and indices uint16 where
    they fit. Shared geometry stays a single mesh.
    """
    writer = _BufferWriter()
    meshes, dequantize, mesh_index = [], [], {}
    nodes = []

    for node_name in scene.graph.nodes_geometry:
        transform, geom_name = scene.graph[node_name]
        if geom_name not in mesh_index:
            primitive, trs = _encode_mesh(writer, scene.geometry[geom_name], bits)
            mesh_index[geom_name] = len(meshes)
            meshes.append(pygltflib.Mesh(name=geom_name, primitives=[primitive]))
            dequantize.append(trs)

        index = mesh_index[geom_name]
        translation, scale = dequantize[index]
        node = pygltflib.Node(name=node_name, mesh=index)
        if np.allclose(transform, np.eye(4)):
            node.translation, node.scale = translation, scale
        else:
            local = np.diag(scale + [1.0])
            local[:3, 3] = translation
            node.matrix = (np.asarray(transform) @ local).T.ravel().tolist()
        nodes.append(node)

    gltf = pygltflib.GLTF2(
        asset=pygltflib.Asset(generator='globebuilder'),
        scene=0,
        scenes=[pygltflib.Scene(nodes=list(range(len(nodes))))],
        nodes=nodes,
        meshes=meshes,
        accessors=writer.accessors,
        bufferViews=writer.views,
        buffers=[pygltflib.Buffer(byteLength=len(writer.blob))],
        extensionsUsed=[QUANTIZATION_EXTENSION],
        extensionsRequired=[QUANTIZATION_EXTENSION],
    )
    gltf.set_binary_blob(bytes(writer.blob))
    return b''.join(gltf.save_to_bytes())


def write_scene(scene: trimesh.Scene, output_path, bits=None) -> pathlib.Path:
    """Serialize the scene to GLB and write it in one go.

    With ``bits`` the quantized encoding is used, otherwise trimesh's float
    exporter. Any failure raises ``SceneWriteError``.
    """
    output_path = pathlib.Path(output_path)
    if len(scene.geometry) == 0:
        raise SceneWriteError("No valid geometry to generate GLB file")

    try:
        if bits:
            data = encode_quantized_glb(scene, bits)
        else:
            data = scene.export(file_type='glb', include_normals=True)
    except Exception as e:
        raise SceneWriteError(f"GLB export failed: {e}") from e

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'wb') as f:
            f.write(data)
    except OSError as e:
        raise SceneWriteError(f"Cannot write {output_path}: {e}") from e

    size_mb = len(data) / 1024 / 1024
    logger.info(f"GLB file written: {output_path} ({size_mb:.2f} MB)")
    return output_path


def region_centroid(fragments) -> list:
    """Unit direction of the mean vertex over a region's fragments."""
    points = [frag.positions for _, frag in fragments if frag.vertex_count]
    if not points:
        return [0.0, 0.0, 0.0]
    centroid = np.concatenate(points).mean(axis=0)
    length = np.linalg.norm(centroid)
    if length == 0:
        return [0.0, 0.0, 0.0]
    return [round(float(c), 6) for c in centroid / length]


def write_manifest(region_results, output_path, radius: float) -> pathlib.Path:
    """Write ``<asset stem>.manifest.json`` describing every region."""
    output_path = pathlib.Path(output_path)
    manifest_path = output_path.with_name(f"{output_path.stem}.manifest.json")
    regions = []
    for result in region_results:
        if not result.ok or not result.fragments:
            continue
        regions.append({
            'region': result.name,
            'display_name': display_name(result.name),
            'nodes': [name for name, _ in result.fragments],
            'color': [round(float(c), 4) for c in result.color],
            'vertices': result.vertex_count,
            'centroid': region_centroid(result.fragments),
        })

    manifest = {
        'asset': output_path.name,
        'radius': radius,
        'regions': regions,
    }
    try:
        with open(manifest_path, 'w') as f:
            json.dump(manifest, f, indent=2)
    except OSError as e:
        raise SceneWriteError(f"Cannot write {manifest_path}: {e}") from e
    logger.info(f"Manifest: {manifest_path}")
    return manifest_path


def inspect_asset(path) -> list:
    """One row per node of a GLB: (node, display name, vertices, faces).

    Read with pygltflib so quantized assets are listed without decoding.
    """
    gltf = pygltflib.GLTF2().load_from_bytes(pathlib.Path(path).read_bytes())
    rows = []
    for node in gltf.nodes:
        if node.mesh is None:
            continue
        vertices = faces = 0
        for primitive in gltf.meshes[node.mesh].primitives:
            count = gltf.accessors[primitive.attributes.POSITION].count
            vertices += count
            if primitive.indices is not None:
                count = gltf.accessors[primitive.indices].count
            faces += count // 3
        rows.append((node.name, display_name(node.name), vertices, faces))
    return sorted(rows)
