import drawsvg as draw
import logging
import math
import random
import struct
from collections import namedtuple
from shapely.geometry import LineString, box
from shapely.ops import unary_union


logger = logging.getLogger(__name__)


# ============================================================================
# TRANSFORM LIBRARY
# ============================================================================

def round_half_up(value):
    """Snap a coordinate back onto the half-integer lattice tiles are authored on."""
    return float(math.ceil(math.floor(2.0 * value) * 0.5))


def _snap(x, y, z, point):
    # 4th channel (colour bits, weight, ...) is carried through untouched
    if len(point) > 3:
        return (round_half_up(x), round_half_up(y), round_half_up(z)) + tuple(point[3:])
    return (round_half_up(x), round_half_up(y), round_half_up(z))


def identity(p):
    return _snap(p[0], p[1], p[2], p)

def rotate_90x(p):
    return _snap(p[0], -p[2], p[1], p)

def rotate_180x(p):
    return _snap(p[0], -p[1], -p[2], p)

def rotate_270x(p):
    return _snap(p[0], p[2], -p[1], p)

def rotate_90y(p):
    return _snap(p[2], p[1], -p[0], p)

def rotate_180y(p):
    return _snap(-p[0], p[1], -p[2], p)

def rotate_270y(p):
    return _snap(-p[2], p[1], p[0], p)

def rotate_90z(p):
    return _snap(-p[1], p[0], p[2], p)

def rotate_180z(p):
    return _snap(-p[0], -p[1], p[2], p)

def rotate_270z(p):
    return _snap(p[1], -p[0], p[2], p)

def mirror_x(p):
    return _snap(-p[0], p[1], p[2], p)

def mirror_y(p):
    return _snap(p[0], -p[1], p[2], p)

def mirror_z(p):
    return _snap(p[0], p[1], -p[2], p)


# Bit i of a rotation mask enables TRANSFORMS[i]. Order is fixed: identity first.
TRANSFORMS = (
    ('identity', identity),
    ('r90x', rotate_90x),
    ('r180x', rotate_180x),
    ('r270x', rotate_270x),
    ('r90y', rotate_90y),
    ('r180y', rotate_180y),
    ('r270y', rotate_270y),
    ('r90z', rotate_90z),
    ('r180z', rotate_180z),
    ('r270z', rotate_270z),
    ('mirror_x', mirror_x),
    ('mirror_y', mirror_y),
    ('mirror_z', mirror_z),
)

ROTATION_NAMES = tuple(name for name, _ in TRANSFORMS)
ROTATION_BITS = {name: 1 << i for i, name in enumerate(ROTATION_NAMES)}

IDENTITY_MASK = ROTATION_BITS['identity']
ALL_ROTATIONS_MASK = (1 << 10) - 1          # identity + the 9 axis rotations
ALL_TRANSFORMS_MASK = (1 << len(TRANSFORMS)) - 1


def apply_transform(name, point):
    """Apply one named operation to a single 3D or 4D point."""
    return TRANSFORMS[ROTATION_NAMES.index(name)][1](point)


def create_rotation_cases(names):
    """Build a rotation mask from operation names, e.g. ['identity', 'r90y']."""
    mask = 0
    for name in names:
        if name not in ROTATION_BITS:
            raise ValueError("Unknown rotation '{}'. Expected one of {}".format(
                name, ', '.join(ROTATION_NAMES)))
        mask |= ROTATION_BITS[name]
    return mask


def single_bits(mask):
    """Split a rotation mask into its one-bit masks, lowest bit first."""
    return [1 << i for i in range(len(TRANSFORMS)) if mask & (1 << i)]


def create_rotations(mask, points):
    """Return one transformed copy of points per bit set in mask, in bit order.

    A zero mask yields an empty list.
    """
    result = []
    for i, (_, fn) in enumerate(TRANSFORMS):
        if mask & (1 << i):
            result.append([fn(p) for p in points])
    return result


# ============================================================================
# DIRECTIONS & FACE SIGNATURES
# ============================================================================

# Neighbor slot order used everywhere: x+, x-, y+, y-, z+, z-
DIRECTIONS = ('x+', 'x-', 'y+', 'y-', 'z+', 'z-')

DIRECTION_OFFSETS = {
    'x+': (1, 0, 0), 'x-': (-1, 0, 0),
    'y+': (0, 1, 0), 'y-': (0, -1, 0),
    'z+': (0, 0, 1), 'z-': (0, 0, -1),
}
OPPOSITE = {
    'x+': 'x-', 'x-': 'x+',
    'y+': 'y-', 'y-': 'y+',
    'z+': 'z-', 'z-': 'z+',
}
# direction -> (axis, sign)
_FACE_AXIS = {
    'x+': (0, 1), 'x-': (0, -1),
    'y+': (1, 1), 'y-': (1, -1),
    'z+': (2, 1), 'z-': (2, -1),
}


def _to_int_point(p):
    return (int(p[0]), int(p[1]), int(p[2]))


def face_points(points, direction, half_extent):
    """Integer points of `points` lying on the given bounding face, sorted."""
    axis, sign = _FACE_AXIS[direction]
    return sorted(_to_int_point(p) for p in points if p[axis] == sign * half_extent)


def inverted_face_points(points, direction, half_extent):
    """Points of the face opposite `direction`, mirrored across its axis.

    This is what a neighbor sitting in `direction` shows to us.
    """
    axis, _ = _FACE_AXIS[direction]
    result = []
    for p in face_points(points, OPPOSITE[direction], half_extent):
        q = list(p)
        q[axis] = -q[axis]
        result.append(tuple(q))
    return sorted(result)


# ============================================================================
# PROTOTYPES
# ============================================================================

# Direction slot permutation for each pure rotation, applied to a neighbor
# rule table [x+, x-, y+, y-, z+, z-].
_RULE_PERMUTATIONS = {
    'identity': (0, 1, 2, 3, 4, 5),
    'r90x': (0, 1, 5, 4, 2, 3),
    'r180x': (0, 1, 3, 2, 5, 4),
    'r270x': (0, 1, 4, 5, 3, 2),
    'r90y': (4, 5, 2, 3, 1, 0),
    'r180y': (1, 0, 2, 3, 5, 4),
    'r270y': (5, 4, 2, 3, 0, 1),
    'r90z': (3, 2, 0, 1, 4, 5),
    'r180z': (1, 0, 3, 2, 4, 5),
    'r270z': (2, 3, 1, 0, 4, 5),
}


class Prototype:
    """A tile shape: half-extent, boundary connection points and render payload.

    Face signatures are computed once here so that adjacency tests during
    propagation are plain list comparisons.
    """

    def __init__(self, prototype_id, dimension, connection_points, payload=None):
        self.id = prototype_id
        self.dimension = dimension
        self.connection_points = [tuple(p) for p in connection_points]
        self.payload = payload
        # other prototype id -> (rotation mask, [x+, x-, y+, y-, z+, z-] bitmasks)
        self.possible_neighbors = {}

        self._match_data = {
            'identity': sorted(_to_int_point(p) for p in self.connection_points),
        }
        self._match_inverted = {}
        for direction in DIRECTIONS:
            self._match_data[direction] = face_points(
                self.connection_points, direction, dimension)
            self._match_inverted[direction] = inverted_face_points(
                self.connection_points, direction, dimension)

    def __repr__(self):
        return 'Prototype(id={}, dimension={}, points={})'.format(
            self.id, self.dimension, len(self.connection_points))

    def get_match_data(self, direction):
        return self._match_data[direction]

    def get_inverted_match(self, direction):
        return self._match_inverted[direction]

    def matches(self, other, direction):
        """True if `other`, placed in `direction` from self, meets self face to face."""
        assert self.dimension == other.dimension, \
            "Prototype dimensions differ: {} vs {}".format(self.dimension, other.dimension)
        return self._match_data[direction] == other.get_inverted_match(direction)

    def create_rotation(self, rotation_bit, new_id):
        """Materialize one orientation of this prototype as a new prototype.

        rotation_bit must have exactly one bit set. The payload is shared
        with the source prototype, not rotated.
        """
        assert rotation_bit > 0 and rotation_bit & (rotation_bit - 1) == 0, \
            "create_rotation needs a single-bit mask, got {:#b}".format(rotation_bit)
        rotated = create_rotations(rotation_bit, self.connection_points)
        assert rotated, "Rotation bit {:#b} is outside the transform table".format(rotation_bit)
        return Prototype(new_id, self.dimension, rotated[0], self.payload)

    def get_all_rotations(self):
        return [create_rotations(bit, self.connection_points)[0]
                for bit in single_bits(ALL_TRANSFORMS_MASK)]

    def add_rules(self, other, rotation_mask):
        """Record which orientations of `other` may sit next to self, per direction."""
        assert self.dimension == other.dimension, \
            "Prototype dimensions differ: {} vs {}".format(self.dimension, other.dimension)
        self.possible_neighbors[other.id] = (
            rotation_mask,
            check_connections(self.connection_points, other.connection_points,
                              rotation_mask, half_extent=self.dimension),
        )

    def get_possible_neighbors(self, rotation_bit):
        """Neighbor rule tables as seen from self rotated by `rotation_bit`.

        Only the identity and the nine axis rotations are supported; the
        lowest set bit decides.
        """
        name = None
        for i, rot_name in enumerate(ROTATION_NAMES):
            if rotation_bit & (1 << i):
                name = rot_name
                break
        if name not in _RULE_PERMUTATIONS:
            raise ValueError("Rotation {:#b} not supported for neighbor rules".format(rotation_bit))
        perm = _RULE_PERMUTATIONS[name]
        result = {}
        for other_id, (_, table) in self.possible_neighbors.items():
            result[other_id] = [table[i] for i in perm]
        return result


# ============================================================================
# COMPATIBILITY TABLE
# ============================================================================

def check_connections(self_points, neighbor_points, neighbor_mask, half_extent=2):
    """Compute the per-direction compatibility bitmasks between two point sets.

    Works from raw points rather than cached Prototype signatures.

    Args:
        self_points: connection points of the center tile
        neighbor_points: connection points of the candidate neighbor
        neighbor_mask: rotation mask of orientations to try for the neighbor
        half_extent: coordinate of the bounding faces (tiles are authored on +-2)

    Returns:
        list of 6 ints, one per direction (x+, x-, y+, y-, z+, z-). Bit r of
        entry d is set when the r-th enabled neighbor orientation, placed in
        direction d, shows a face equal to self's face d.
    """
    own_faces = {d: face_points(self_points, d, half_extent) for d in DIRECTIONS}
    all_rotations = create_rotations(neighbor_mask, neighbor_points)

    result = [0, 0, 0, 0, 0, 0]
    for slot, direction in enumerate(DIRECTIONS):
        for r, rotated in enumerate(all_rotations):
            if inverted_face_points(rotated, direction, half_extent) == own_faces[direction]:
                result[slot] |= 1 << r
    return result


def build_compatibility_table(prototypes, rotation_mask=IDENTITY_MASK):
    """check_connections for every ordered prototype pair.

    Returns dict of (self_id, neighbor_id) -> list of 6 bitmasks.
    """
    table = {}
    for a in prototypes:
        for b in prototypes:
            table[(a.id, b.id)] = check_connections(
                a.connection_points, b.connection_points, rotation_mask,
                half_extent=a.dimension)
    return table


# ============================================================================
# EXPORT BOUNDARY
# ============================================================================

DEFAULT_EXPORT_PARAMS = {
    'cell_spacing': 1.0,    # tile pitch, in tile footprints (2 * dimension + 1)
    'box_size': 1.0,        # edge of the box drawn for each connection point
    'box_scale': 0.8,       # uniform scale applied to the whole export
    'color': 0x0F00FFFF,    # RGBA
}


def color_bits_to_float(bits):
    """Reinterpret a 32-bit RGBA value as the float with the same bit pattern."""
    return struct.unpack('<f', struct.pack('<I', bits & 0xFFFFFFFF))[0]


def float_to_color_bits(value):
    return struct.unpack('<I', struct.pack('<f', value))[0]


def make_aabb(min_corner, max_corner, color):
    return {
        'min': tuple(float(v) for v in min_corner),
        'max': tuple(float(v) for v in max_corner),
        'color': color,
    }


def prototype_aabbs(prototype, coord, params=None):
    """One box per connection point of `prototype` placed at grid `coord`.

    Tiles sit on a pitch of `cell_spacing * (2 * dimension + 1)` grid units,
    so neighboring tiles abut. Older debug dumps spaced tiles at
    0.8 * dimension, which made them overlap; this layout does not.
    A payload dict carrying 'color' overrides the export colour.
    """
    p = dict(DEFAULT_EXPORT_PARAMS)
    if params:
        p.update(params)

    pitch = p['cell_spacing'] * (2 * prototype.dimension + 1)
    base = [coord[0] * pitch, coord[1] * pitch, coord[2] * pitch]
    s = p['box_scale']
    size = p['box_size']
    bits = p['color']
    if isinstance(prototype.payload, dict) and 'color' in prototype.payload:
        bits = prototype.payload['color']
    color = color_bits_to_float(bits)

    boxes = []
    for pt in prototype.connection_points:
        lo = [(base[i] + pt[i]) * s for i in range(3)]
        hi = [(base[i] + pt[i] + size) * s for i in range(3)]
        boxes.append(make_aabb(lo, hi, color))
    return boxes


# ============================================================================
# SCENE GRID & BAND PROPAGATION
# ============================================================================

# Cell states. A cell only ever moves Far -> Band -> Known.
Far = namedtuple('Far', [])
Band = namedtuple('Band', ['candidates'])
Known = namedtuple('Known', ['prototype_id'])

FAR = Far()


def uvec3_to_index(x, y, z, dim_x, dim_y):
    return x + y * dim_x + z * dim_x * dim_y


def index_to_uvec3(index, dim_x, dim_y):
    z = index // (dim_x * dim_y)
    rem = index - z * dim_x * dim_y
    y = rem // dim_x
    x = rem - y * dim_x
    return (x, y, z)


class WfcScene:
    """Dense 3D grid of cell states plus the band of frontier cells.

    The band maps cell index -> candidate count for every cell currently in
    the Band state; `find_next_known_candidates` rescans it on each query.
    """

    def __init__(self, dim_x, dim_y, dim_z, rng=None, export_params=None):
        if dim_x <= 0 or dim_y <= 0 or dim_z <= 0:
            raise ValueError("Grid dimensions must be positive, got {}x{}x{}".format(
                dim_x, dim_y, dim_z))
        self.dim_x = dim_x
        self.dim_y = dim_y
        self.dim_z = dim_z
        self.scene_data = [FAR] * (dim_x * dim_y * dim_z)
        self.rng = rng if rng is not None else random.Random()
        self.export_params = export_params
        self._band = {}
        self._prototypes = []
        self._temp_aabbs = []

    @property
    def dims(self):
        return (self.dim_x, self.dim_y, self.dim_z)

    @property
    def prototypes(self):
        return list(self._prototypes)

    def __len__(self):
        return len(self.scene_data)

    def coord_to_index(self, coord):
        return uvec3_to_index(coord[0], coord[1], coord[2], self.dim_x, self.dim_y)

    def index_to_coord(self, index):
        return index_to_uvec3(index, self.dim_x, self.dim_y)

    def in_bounds(self, coord):
        return (0 <= coord[0] < self.dim_x and
                0 <= coord[1] < self.dim_y and
                0 <= coord[2] < self.dim_z)

    def cell_state(self, index):
        return self.scene_data[index]

    def band_entries(self):
        """Current band as sorted (candidate_count, cell_index) pairs."""
        return sorted((count, index) for index, count in self._band.items())

    def known_cells(self):
        """dict of cell index -> prototype id for every resolved cell."""
        return {i: s.prototype_id for i, s in enumerate(self.scene_data)
                if isinstance(s, Known)}

    # -- registration --------------------------------------------------------

    def insert_block_case(self, prototype):
        """Register a prototype; ids are dense, in call order."""
        prototype.id = len(self._prototypes)
        self._prototypes.append(prototype)
        return prototype.id

    # -- export --------------------------------------------------------------

    def get_aabb_data(self):
        """Boxes emitted since the last call. The internal buffer is cleared."""
        aabbs = self._temp_aabbs
        self._temp_aabbs = []
        return aabbs

    def _emit_aabbs(self, prototype_id, coord):
        self._temp_aabbs.extend(
            prototype_aabbs(self._prototypes[prototype_id], coord, self.export_params))

    # -- seeding -------------------------------------------------------------

    def add_seed_point(self, prototype_id, coord):
        assert self.in_bounds(coord), "Seed coordinate {} outside grid {}".format(coord, self.dims)
        assert not self._band, "Seed points can only be added while the band is empty"
        assert 0 <= prototype_id < len(self._prototypes), \
            "Unregistered prototype id {}".format(prototype_id)

        index = self.coord_to_index(coord)
        self.scene_data[index] = Known(prototype_id)
        self._emit_aabbs(prototype_id, coord)
        logger.debug("Seeded cell %s with prototype %d", tuple(coord), prototype_id)

    # -- neighborhood --------------------------------------------------------

    def find_neighbor_indices(self, coord):
        """Indices of the six axis neighbors (x+, x-, y+, y-, z+, z-), None outside."""
        neighbors = [None] * 6
        for slot, direction in enumerate(DIRECTIONS):
            dx, dy, dz = DIRECTION_OFFSETS[direction]
            n = (coord[0] + dx, coord[1] + dy, coord[2] + dz)
            if self.in_bounds(n):
                neighbors[slot] = self.coord_to_index(n)
        return neighbors

    def find_neighbor_indices_ind(self, index):
        return self.find_neighbor_indices(self.index_to_coord(index))

    # -- propagation ---------------------------------------------------------

    def update_band_node(self, index):
        """Recompute the candidate set of `index` from its Known neighbors."""
        assert isinstance(self.scene_data[index], Band), \
            "Cell {} is not in the band: {}".format(index, self.scene_data[index])
        possible_matches = {}
        known_neighbor_count = 0

        for slot, ni in enumerate(self.find_neighbor_indices_ind(index)):
            if ni is None:
                continue
            state = self.scene_data[ni]
            if not isinstance(state, Known):
                continue
            known_neighbor_count += 1
            neighbor = self._prototypes[state.prototype_id]
            direction = DIRECTIONS[slot]
            for candidate in self._prototypes:
                if candidate.matches(neighbor, direction):
                    possible_matches[candidate.id] = possible_matches.get(candidate.id, 0) + 1

        candidates = tuple(p.id for p in self._prototypes
                           if possible_matches.get(p.id) == known_neighbor_count)
        self._band[index] = len(candidates)
        self.scene_data[index] = Band(candidates)
        logger.debug("Band cell %d: %d candidate(s) from %d known neighbor(s)",
                     index, len(candidates), known_neighbor_count)

    def expand_band(self, center_index):
        """Pull the neighbors of `center_index` into the band and refresh them."""
        assert 0 <= center_index < len(self.scene_data), \
            "Index {} outside grid {}".format(center_index, self.dims)
        for ni in self.find_neighbor_indices_ind(center_index):
            if ni is None:
                continue
            state = self.scene_data[ni]
            if isinstance(state, Known):
                continue
            if isinstance(state, Far):
                self.scene_data[ni] = Band(())
            self.update_band_node(ni)

    def expand_band_uvec3(self, center_coord):
        assert self.in_bounds(center_coord), \
            "Coordinate {} outside grid {}".format(center_coord, self.dims)
        self.expand_band(self.coord_to_index(center_coord))

    def find_next_known_candidates(self):
        """Band cells with the fewest (but at least one) candidates.

        Returns None when the band is empty. Cells with zero candidates are
        never returned, so a band holding only those yields an empty list.
        """
        if not self._band:
            return None

        result = []
        smallest = 0
        for count, index in self.band_entries():
            if count == 0:
                continue
            if smallest == 0:
                smallest = count
            elif count > smallest:
                break
            result.append(index)
        return result

    def make_known(self, index):
        """Resolve a Band cell to one of its candidates, chosen uniformly."""
        state = self.scene_data[index]
        assert isinstance(state, Band), "Cell {} is not a band cell: {!r}".format(index, state)
        assert state.candidates, "Cell {} has no candidates left".format(index)

        prototype_id = self.rng.choice(state.candidates)
        self.scene_data[index] = Known(prototype_id)
        del self._band[index]

        coord = self.index_to_coord(index)
        self._emit_aabbs(prototype_id, coord)
        logger.debug("Cell %s -> prototype %d (%d candidate(s))",
                     coord, prototype_id, len(state.candidates))
        self.expand_band(index)
        return prototype_id


# ============================================================================
# TILE LIBRARY
# ============================================================================

def floor_points(h=2):
    return [(float(i), float(-h), float(k))
            for i in range(-h, h + 1) for k in range(-h, h + 1)]


def wall_points(h=2):
    return [(float(h), float(j), float(k))
            for j in range(-h, h + 1) for k in range(-h, h + 1)]


def corner_points(h=2):
    """A single vertical post along the (x+, z-) edge."""
    return [(float(h), float(j), float(-h)) for j in range(-h, h + 1)]


def double_corner_points(h=2):
    return corner_points(h) + [(float(-h), float(j), float(-h)) for j in range(-h, h + 1)]


def floor_corner_points(h=2, walls=1):
    """Floor with up to three posts rising from its corners."""
    points = floor_points(h)
    posts = [(h, -h), (-h, -h), (-h, h)][:walls]
    for px, pz in posts:
        points += [(float(px), float(j), float(pz)) for j in range(-h + 1, h + 1)]
    return points


def floor_wall_points(h=2):
    """Floor butting into a full x+ wall."""
    points = [(float(i), float(-h), float(k))
              for i in range(-h, h) for k in range(-h, h + 1)]
    return points + wall_points(h)


def empty_points(h=2):
    return []


TILE_LIBRARY = {
    'floor': floor_points,
    'wall': wall_points,
    'corner': corner_points,
    'double_corner': double_corner_points,
    'floor_corner': floor_corner_points,
    'floor_corner_2': lambda h=2: floor_corner_points(h, walls=2),
    'floor_corner_3': lambda h=2: floor_corner_points(h, walls=3),
    'floor_wall': floor_wall_points,
    'empty': empty_points,
}

# Distinct colours per tile kind, used for payloads and preview strokes
TILE_COLORS = {
    'floor': 0x4C72B0FF,
    'wall': 0xDD8452FF,
    'corner': 0x55A868FF,
    'double_corner': 0xC44E52FF,
    'floor_corner': 0x8172B3FF,
    'floor_corner_2': 0x937860FF,
    'floor_corner_3': 0xDA8BC3FF,
    'floor_wall': 0x8C8C8CFF,
    'empty': 0xCCB974FF,
}


def make_tile(name, h=2, prototype_id=0):
    if name not in TILE_LIBRARY:
        raise ValueError("Unknown tile '{}'. Expected one of {}".format(
            name, ', '.join(sorted(TILE_LIBRARY))))
    payload = {'name': name, 'color': TILE_COLORS.get(name, DEFAULT_EXPORT_PARAMS['color'])}
    return Prototype(prototype_id, h, TILE_LIBRARY[name](h), payload)


def expand_rotations(prototype, mask, next_id=0):
    """Every distinct orientation of `prototype` enabled by mask, as new prototypes.

    Orientations whose point sets coincide are kept once. Ids count up from
    next_id; they are provisional until the scene registers the prototypes.
    """
    result = []
    seen = set()
    for bit in single_bits(mask):
        rotated = prototype.create_rotation(bit, next_id + len(result))
        key = tuple(rotated.get_match_data('identity'))
        if key in seen:
            continue
        seen.add(key)
        result.append(rotated)
    return result


def build_tile_set(names, mask=IDENTITY_MASK, h=2):
    """Distinct prototypes for the named tiles in all orientations of mask."""
    result = []
    seen = set()
    for name in names:
        for p in expand_rotations(make_tile(name, h), mask, next_id=len(result)):
            key = tuple(p.get_match_data('identity'))
            if key in seen:
                continue
            seen.add(key)
            p.id = len(result)
            result.append(p)
    return result


# ============================================================================
# GENERATION DRIVER
# ============================================================================

def run_generation(scene, seed_prototype, seed_coord, max_steps=None, rng=None,
                   progress_callback=None):
    """Seed one cell and keep resolving minimum-candidate cells.

    Stops when the band is exhausted, only zero-candidate cells remain, or
    max_steps cells have been committed. There is no backtracking: cells
    that lose all candidates stay in the band and are reported as stuck.

    Args:
        scene: a WfcScene with its prototypes registered and an empty band
        seed_prototype: id of the prototype placed at seed_coord
        seed_coord: (x, y, z) of the seed cell
        max_steps: optional cap on committed cells (the seed does not count)
        rng: random.Random used to break ties between minimal cells;
             defaults to the scene's RNG
        progress_callback: fn(steps, total_cells)

    Returns:
        dict with 'steps', 'known' (index -> prototype id), 'stuck' (indices
        of zero-candidate band cells) and 'aabbs' (all boxes emitted).
    """
    rng = rng if rng is not None else scene.rng
    total_cells = len(scene)
    aabbs = []

    scene.add_seed_point(seed_prototype, seed_coord)
    scene.expand_band_uvec3(seed_coord)
    aabbs.extend(scene.get_aabb_data())
    logger.info("Generating on %dx%dx%d grid with %d prototype(s), seed %s",
                scene.dim_x, scene.dim_y, scene.dim_z, len(scene.prototypes),
                tuple(seed_coord))

    steps = 0
    while max_steps is None or steps < max_steps:
        candidates = scene.find_next_known_candidates()
        if not candidates:
            break
        scene.make_known(rng.choice(candidates))
        aabbs.extend(scene.get_aabb_data())
        steps += 1
        if progress_callback:
            progress_callback(steps, total_cells)

    stuck = [index for count, index in scene.band_entries() if count == 0]
    if stuck:
        logger.warning("%d cell(s) ran out of candidates: %s", len(stuck),
                       [scene.index_to_coord(i) for i in stuck[:10]])
    logger.info("Generation finished: %d step(s), %d known, %d in band",
                steps, len(scene.known_cells()), len(scene.band_entries()))

    return {
        'steps': steps,
        'known': scene.known_cells(),
        'stuck': stuck,
        'aabbs': aabbs,
    }


# ============================================================================
# SVG PREVIEW OF EXPORTED BOXES
# ============================================================================

DEFAULT_RENDER_PARAMS = {
    'scale': 20,            # SVG units per world unit
    'stroke_width': 0.5,
    'margin': 10,
    'plane': 'xz',          # 'xz' = top-down, 'xy' = front view
}

# plane -> (u axis, v axis, depth axis); larger depth is closer to the viewer
_PLANE_AXES = {
    'xz': (0, 2, 1),
    'xy': (0, 1, 2),
    'zy': (2, 1, 0),
}


def _plane_axes(plane):
    if plane not in _PLANE_AXES:
        raise ValueError("Unknown projection plane '{}'. Expected one of {}".format(
            plane, ', '.join(sorted(_PLANE_AXES))))
    return _PLANE_AXES[plane]


def aabb_footprint(aabb, plane='xz', scale=1.0):
    """Shapely rectangle of a box projected onto the given plane."""
    u, v, _ = _plane_axes(plane)
    lo, hi = aabb['min'], aabb['max']
    return box(min(lo[u], hi[u]) * scale, min(lo[v], hi[v]) * scale,
               max(lo[u], hi[u]) * scale, max(lo[v], hi[v]) * scale)


def clip_line_outside_polygon(x1, y1, x2, y2, occlusion_poly):
    """Clip a line segment to stay OUTSIDE the occlusion polygon.

    Returns list of (x1, y1, x2, y2) tuples for visible line segments.
    """
    if occlusion_poly is None:
        return [(x1, y1, x2, y2)]

    line = LineString([(x1, y1), (x2, y2)])
    clipped = line.difference(occlusion_poly)

    if clipped.is_empty:
        return []

    if clipped.geom_type == 'LineString':
        parts = [clipped]
    else:
        parts = [g for g in clipped.geoms if g.geom_type == 'LineString']

    result = []
    for geom in parts:
        coords = list(geom.coords)
        for i in range(len(coords) - 1):
            result.append((coords[i][0], coords[i][1], coords[i + 1][0], coords[i + 1][1]))
    return result


def _stroke_color(aabb):
    bits = float_to_color_bits(aabb['color'])
    return '#{:06x}'.format((bits >> 8) & 0xFFFFFF)


def render_aabbs_svg(aabbs, params=None, progress_callback=None):
    """Render exported boxes as a hidden-line SVG projection.

    Boxes are drawn nearest-first; each outline is clipped against the union
    of footprints already drawn, so only visible edges end up in the output.

    Args:
        aabbs: list of box dicts as produced by WfcScene.get_aabb_data
        params: overrides for DEFAULT_RENDER_PARAMS
        progress_callback: fn(current, total)

    Returns:
        SVG string
    """
    p = dict(DEFAULT_RENDER_PARAMS)
    if params:
        p.update(params)
    scale = p['scale']
    sw = p['stroke_width']
    margin = p['margin']
    _, _, depth_axis = _plane_axes(p['plane'])

    if not aabbs:
        d = draw.Drawing(2 * margin, 2 * margin, origin=(-margin, -margin))
        return d.as_svg()

    footprints = [aabb_footprint(a, p['plane'], scale) for a in aabbs]
    minx = min(f.bounds[0] for f in footprints)
    miny = min(f.bounds[1] for f in footprints)
    maxx = max(f.bounds[2] for f in footprints)
    maxy = max(f.bounds[3] for f in footprints)

    d = draw.Drawing(maxx - minx + 2 * margin, maxy - miny + 2 * margin,
                     origin=(minx - margin, miny - margin))

    order = sorted(range(len(aabbs)), key=lambda i: -aabbs[i]['max'][depth_axis])
    pad = sw * 0.5 + 0.1
    drawn = None
    total = len(order)
    for n, i in enumerate(order):
        fp = footprints[i]
        x0, y0, x1, y1 = fp.bounds
        color = _stroke_color(aabbs[i])
        edges = [(x0, y0, x1, y0), (x1, y0, x1, y1), (x1, y1, x0, y1), (x0, y1, x0, y0)]
        for ex1, ey1, ex2, ey2 in edges:
            for sx1, sy1, sx2, sy2 in clip_line_outside_polygon(ex1, ey1, ex2, ey2, drawn):
                d.append(draw.Line(sx1, sy1, sx2, sy2,
                                   stroke=color, stroke_width=sw, fill='none'))
        # Shrink slightly so coincident edges of the next box stay visible
        cover = fp.buffer(-pad, join_style=2)
        if not cover.is_empty:
            drawn = cover if drawn is None else unary_union([drawn, cover])
        if progress_callback:
            progress_callback(n + 1, total)

    return d.as_svg()
