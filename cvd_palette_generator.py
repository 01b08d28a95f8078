#!/usr/bin/env python3
"""
Generate color palettes that stay distinguishable under normal vision and
simulated color vision deficiency, using greedy maximin selection in Oklab.
"""

import argparse
import json
import logging
import math
import numbers
import re
from dataclasses import dataclass
from enum import Enum

import numpy as np
from colorspacious import cspace_convert
from scipy.spatial.distance import cdist

logger = logging.getLogger(__name__)


MIN_DELTA_E = 0.20
MIN_PALETTE_SIZE = 1
MAX_PALETTE_SIZE = 25
DEFAULT_PALETTE_SIZE = 5
DEFAULT_POOL_SIZE = 10_000
LIGHTNESS_BOUNDS = (0.20, 0.90)
CVD_SEVERITY = 100
MAX_DRAWS_FACTOR = 50

MID_GRAY = (0.5, 0.5, 0.5)

HEX_PATTERN = re.compile(r"#?([0-9A-Fa-f]{6})")
LEADING_INT_PATTERN = re.compile(r"[+-]?\d+")

# Ottosson (2020) Oklab matrices
M1_LINEAR_TO_LMS = np.array([
    [0.4122214708, 0.5363325363, 0.0514459929],
    [0.2119034982, 0.6806995451, 0.1073969566],
    [0.0883024619, 0.2817188376, 0.6299787005],
])

M2_LMS_TO_OKLAB = np.array([
    [0.2104542553, 0.7936177850, -0.0040720468],
    [1.9779984951, -2.4285922050, 0.4505937099],
    [0.0259040371, 0.7827717662, -0.8086757660],
])

M2_INV_OKLAB_TO_LMS = np.array([
    [1.0, 0.3963377774, 0.2158037573],
    [1.0, -0.1055613458, -0.0638541728],
    [1.0, -0.0894841775, -1.2914855480],
])

M1_INV_LMS_TO_LINEAR = np.array([
    [4.0767416621, -3.3077115913, 0.2309699292],
    [-1.2684380046, 2.6097574011, -0.3413193965],
    [-0.0041960863, -0.7034186147, 1.7076147010],
])


class ParseError(ValueError):
    """Raised when a string is not a 6-digit hex color."""


class SamplingError(RuntimeError):
    """Raised when the candidate sampler accepts nothing before its draw cap."""


class Mode(str, Enum):
    NORMAL = "normal"
    DEUTERANOPIA = "deuteranopia"
    PROTANOPIA = "protanopia"
    TRITANOPIA = "tritanopia"
    BOTH = "both"

    @classmethod
    def from_value(cls, value):
        """Strict lookup by enum member or case-insensitive name."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"unknown mode: {value!r}") from None


DICHROMACY_MODES = (Mode.DEUTERANOPIA, Mode.PROTANOPIA, Mode.TRITANOPIA)


@dataclass(frozen=True, eq=False)
class Color:
    """Normalized sRGB color, channels in [0, 1]."""
    r: float
    g: float
    b: float

    TOLERANCE = 1e-9

    def __eq__(self, other):
        if not isinstance(other, Color):
            return NotImplemented
        return all(
            math.isclose(x, y, rel_tol=0.0, abs_tol=self.TOLERANCE)
            for x, y in zip(self.as_tuple(), other.as_tuple())
        )

    __hash__ = None

    def __post_init__(self):
        for channel in self.as_tuple():
            if not 0.0 <= channel <= 1.0:
                raise ValueError(f"channel out of range [0, 1]: {self.as_tuple()}")

    def as_tuple(self):
        return (self.r, self.g, self.b)

    def as_array(self):
        return np.array(self.as_tuple(), dtype=float)

    @classmethod
    def from_array(cls, values):
        r, g, b = (float(v) for v in values)
        return cls(r, g, b)


@dataclass(frozen=True)
class OklabPoint:
    L: float
    a: float
    b: float

    def as_array(self):
        return np.array((self.L, self.a, self.b), dtype=float)


# ---------------------------------------------------------------------------
# Color space conversion
# ---------------------------------------------------------------------------

def srgb_to_linear(rgb):
    """Decode sRGB gamma; works elementwise on arrays."""
    rgb = np.asarray(rgb, dtype=float)
    return np.where(rgb <= 0.04045, rgb / 12.92, ((rgb + 0.055) / 1.055) ** 2.4)


def linear_to_srgb(linear):
    """Encode sRGB gamma and clamp the result to [0, 1]."""
    linear = np.clip(np.asarray(linear, dtype=float), 0.0, 1.0)
    encoded = np.where(
        linear <= 0.0031308,
        12.92 * linear,
        1.055 * linear ** (1 / 2.4) - 0.055,
    )
    return np.clip(encoded, 0.0, 1.0)


def srgb_to_oklab(rgb):
    """Convert sRGB array of shape (..., 3) in [0, 1] to Oklab."""
    lms = srgb_to_linear(rgb) @ M1_LINEAR_TO_LMS.T
    return np.cbrt(lms) @ M2_LMS_TO_OKLAB.T


def oklab_to_srgb(lab):
    """Convert Oklab array of shape (..., 3) back to clamped sRGB."""
    lms = (np.asarray(lab, dtype=float) @ M2_INV_OKLAB_TO_LMS.T) ** 3
    return linear_to_srgb(lms @ M1_INV_LMS_TO_LINEAR.T)


def hex_to_color(hex_str):
    """Parse '#RRGGBB' or 'RRGGBB' into a Color."""
    match = HEX_PATTERN.fullmatch(hex_str) if isinstance(hex_str, str) else None
    if match is None:
        raise ParseError(f"hex_to_color: couldn't parse {hex_str!r}")
    digits = match.group(1)
    return Color(*(int(digits[i:i + 2], 16) / 255.0 for i in (0, 2, 4)))


def color_to_hex(color):
    """Format a Color as lowercase '#rrggbb', clamping and rounding channels."""
    levels = []
    for channel in color.as_tuple():
        channel = min(1.0, max(0.0, float(channel)))
        levels.append(int(math.floor(channel * 255 + 0.5)))
    return "#{:02x}{:02x}{:02x}".format(*levels)


def color_to_oklab(color):
    return OklabPoint(*(float(v) for v in srgb_to_oklab(color.as_array())))


def oklab_to_color(point):
    return Color.from_array(oklab_to_srgb(point.as_array()))


# ---------------------------------------------------------------------------
# CVD simulation
# ---------------------------------------------------------------------------

class CVDSimulator:
    """Identity simulator; subclasses model a specific deficiency."""

    name = Mode.NORMAL.value

    def simulate_rgb(self, rgb):
        return np.asarray(rgb, dtype=float)

    def simulate(self, color):
        return Color.from_array(self.simulate_rgb(color.as_array()))

    def __repr__(self):
        return f"{type(self).__name__}({self.name!r})"


class MachadoSimulator(CVDSimulator):
    """Machado et al. (2009) dichromacy simulation via colorspacious."""

    _CVD_TYPES = {
        Mode.DEUTERANOPIA: "deuteranomaly",
        Mode.PROTANOPIA: "protanomaly",
        Mode.TRITANOPIA: "tritanomaly",
    }

    def __init__(self, variant, severity=CVD_SEVERITY):
        variant = Mode.from_value(variant)
        if variant not in self._CVD_TYPES:
            raise ValueError(f"{variant.value} is not a dichromacy variant")
        self.name = variant.value
        self.severity = severity
        self._cvd_space = {
            "name": "sRGB1+CVD",
            "cvd_type": self._CVD_TYPES[variant],
            "severity": severity,
        }

    def simulate_rgb(self, rgb):
        rgb = np.asarray(rgb, dtype=float)
        return np.clip(cspace_convert(rgb, self._cvd_space, "sRGB1"), 0.0, 1.0)


IDENTITY_SIMULATOR = CVDSimulator()

SIMULATORS = {variant: MachadoSimulator(variant) for variant in DICHROMACY_MODES}


def simulator_for(variant):
    """Resolve the simulator for a variant; 'normal' and 'both' are identity."""
    variant = Mode.from_value(variant)
    return SIMULATORS.get(variant, IDENTITY_SIMULATOR)


def simulate(color, variant):
    return simulator_for(variant).simulate(color)


def simulate_hex(hex_str, variant):
    """Simulate a hex color under a variant and return hex."""
    return color_to_hex(simulate(hex_to_color(hex_str), variant))


# ---------------------------------------------------------------------------
# Distance metric
# ---------------------------------------------------------------------------

_MODE_VIEWS = {
    Mode.NORMAL: (Mode.NORMAL,),
    Mode.DEUTERANOPIA: (Mode.DEUTERANOPIA,),
    Mode.PROTANOPIA: (Mode.PROTANOPIA,),
    Mode.TRITANOPIA: (Mode.TRITANOPIA,),
    Mode.BOTH: (Mode.NORMAL, Mode.DEUTERANOPIA),
}


class PerceptualMetric:
    """Worst-case Oklab distance across the simulators a mode looks through.

    Each mode has one or more views. The distance between two colors is the
    minimum over views of the Euclidean distance between their simulated
    Oklab positions. The first view is the anchor used for lightness
    filtering and seeding.
    """

    def __init__(self, mode=Mode.NORMAL):
        self.mode = Mode.from_value(mode)
        self.simulators = tuple(simulator_for(v) for v in _MODE_VIEWS[self.mode])

    @property
    def anchor(self):
        return self.simulators[0]

    def anchor_oklab(self, rgb):
        """Oklab of rgb (shape (..., 3)) as seen through the anchor view."""
        return srgb_to_oklab(self.anchor.simulate_rgb(rgb))

    def embed(self, rgb):
        """Return per-view Oklab positions, shape (views, N, 3)."""
        rgb = np.atleast_2d(np.asarray(rgb, dtype=float))
        return np.stack([srgb_to_oklab(sim.simulate_rgb(rgb)) for sim in self.simulators])

    def pairwise(self, embedded_a, embedded_b):
        """Distance matrix (Na, Nb) between two embedded sets."""
        per_view = [cdist(a, b) for a, b in zip(embedded_a, embedded_b)]
        return np.min(per_view, axis=0)

    def distance(self, c1, c2):
        return float(min(
            _oklab_distance(sim.simulate(c1), sim.simulate(c2))
            for sim in self.simulators
        ))


def _oklab_distance(c1, c2):
    diff = srgb_to_oklab(c1.as_array()) - srgb_to_oklab(c2.as_array())
    return math.sqrt(float(np.dot(diff, diff)))


def distance(c1, c2, mode=Mode.NORMAL):
    """Perceptual distance between two colors under a viewing mode."""
    return PerceptualMetric(mode).distance(c1, c2)


def distance_matrix(colors, mode=Mode.NORMAL):
    """Pairwise distance matrix for a list of Colors or hex strings."""
    colors = [hex_to_color(c) if isinstance(c, str) else c for c in colors]
    n = len(colors)
    metric = PerceptualMetric(mode)
    matrix = np.zeros((n, n))
    for i in range(n):
        for j in range(i + 1, n):
            matrix[i, j] = matrix[j, i] = metric.distance(colors[i], colors[j])
    return matrix


def palette_statistics(colors, mode=Mode.NORMAL, min_delta_e=MIN_DELTA_E):
    """Summarise pairwise distances of a palette."""
    matrix = distance_matrix(colors, mode)
    upper = matrix[np.triu_indices(len(matrix), k=1)]
    if upper.size == 0:
        return {"pairs": 0, "min": None, "max": None, "mean": None, "below_floor": 0}
    return {
        "pairs": int(upper.size),
        "min": float(upper.min()),
        "max": float(upper.max()),
        "mean": float(upper.mean()),
        "below_floor": int(np.count_nonzero(upper < min_delta_e)),
    }


# ---------------------------------------------------------------------------
# Candidate sampling
# ---------------------------------------------------------------------------

def sample_candidates(mode=Mode.NORMAL, pool_size=DEFAULT_POOL_SIZE, rng=None,
                      max_draws=None, metric=None):
    """Draw random sRGB candidates whose simulated lightness is mid-range.

    Returns an array of shape (k, 3) in acceptance order, where k equals
    pool_size unless the draw cap is reached first.
    """
    if rng is None:
        rng = np.random.default_rng()
    if metric is None:
        metric = PerceptualMetric(mode)
    if max_draws is None:
        max_draws = MAX_DRAWS_FACTOR * pool_size
    low, high = LIGHTNESS_BOUNDS
    if pool_size <= 0:
        return np.empty((0, 3))

    accepted = []
    n_accepted = 0
    n_drawn = 0
    while n_accepted < pool_size and n_drawn < max_draws:
        batch_size = min(max(pool_size - n_accepted, 256) * 2, max_draws - n_drawn)
        draws = rng.random((batch_size, 3))
        n_drawn += batch_size
        lightness = metric.anchor_oklab(draws)[:, 0]
        kept = draws[(lightness > low) & (lightness < high)]
        kept = kept[:pool_size - n_accepted]
        accepted.append(kept)
        n_accepted += len(kept)

    if n_accepted == 0:
        raise SamplingError(
            f"no candidate passed the lightness filter for mode {metric.mode.value!r} "
            f"after {n_drawn} draws"
        )
    if n_accepted < pool_size:
        logger.warning(
            "Sampler stopped after %d draws with %d/%d candidates (mode=%s)",
            n_drawn, n_accepted, pool_size, metric.mode.value,
        )
    return np.concatenate(accepted, axis=0)


class CandidatePool:
    """Index arena over sampled candidates with tombstoned removal.

    Per-view Oklab positions are computed once at construction; removal
    only flips a mask so pool order is preserved.
    """

    def __init__(self, colors, metric):
        self.colors = np.asarray(colors, dtype=float).reshape(-1, 3)
        self.metric = metric
        self.embedded = metric.embed(self.colors)
        self.alive = np.ones(len(self.colors), dtype=bool)

    def __len__(self):
        return int(np.count_nonzero(self.alive))

    @property
    def size(self):
        return len(self.colors)

    def remove(self, index):
        if not self.alive[index]:
            raise KeyError(f"candidate {index} already removed")
        self.alive[index] = False

    def color(self, index):
        return Color.from_array(self.colors[index])

    def distances_to(self, index):
        """Distances from every candidate to candidate `index`."""
        target = self.embedded[:, index:index + 1, :]
        return self.metric.pairwise(self.embedded, target)[:, 0]


# ---------------------------------------------------------------------------
# Palette building
# ---------------------------------------------------------------------------

def clamp_palette_size(n):
    if n != n:  # NaN
        return MIN_PALETTE_SIZE
    return int(max(MIN_PALETTE_SIZE, min(n, MAX_PALETTE_SIZE)))


class PaletteBuilder:
    """Seed with a vivid anchor, then grow by greedy maximin selection."""

    def __init__(self, mode=Mode.NORMAL, pool_size=DEFAULT_POOL_SIZE, rng=None,
                 min_delta_e=MIN_DELTA_E, max_draws=None):
        self.mode = Mode.from_value(mode)
        self.metric = PerceptualMetric(self.mode)
        self.pool_size = pool_size
        self.rng = rng if rng is not None else np.random.default_rng()
        self.min_delta_e = min_delta_e
        self.max_draws = max_draws

    def build_colors(self, n):
        """Return the selected Colors in selection order."""
        target = clamp_palette_size(n)
        candidates = sample_candidates(
            self.mode, self.pool_size, rng=self.rng,
            max_draws=self.max_draws, metric=self.metric,
        )
        if len(candidates) == 0:
            return []
        pool = CandidatePool(candidates, self.metric)

        selected = [self._pick_seed(pool)]
        pool.remove(selected[0])
        logger.debug("Seed candidate %d: %s", selected[0], color_to_hex(pool.color(selected[0])))

        min_dist = np.full(pool.size, np.inf)
        while len(selected) < target and len(pool) > 0:
            min_dist = np.minimum(min_dist, pool.distances_to(selected[-1]))
            chosen = self._pick_next(min_dist, pool.alive)
            pool.remove(chosen)
            selected.append(chosen)

        return [pool.color(i) for i in selected]

    def build(self, n):
        """Return the palette as hex strings in selection order."""
        return [color_to_hex(c) for c in self.build_colors(n)]

    def _pick_seed(self, pool):
        gray = self.metric.anchor_oklab(np.array(MID_GRAY))
        anchor = pool.embedded[0]
        return int(np.argmax(np.linalg.norm(anchor - gray, axis=1)))

    def _pick_next(self, min_dist, alive):
        scores = np.where(alive, min_dist, -np.inf)
        eligible = scores >= self.min_delta_e
        if eligible.any():
            chosen = int(np.argmax(np.where(eligible, scores, -np.inf)))
        else:
            # Nothing clears the floor: take the best available anyway.
            chosen = int(np.argmax(scores))
            logger.debug(
                "No candidate clears %.2f; falling back to min_dist %.4f",
                self.min_delta_e, scores[chosen],
            )
        logger.debug("Picked candidate %d with min_dist %.4f", chosen, scores[chosen])
        return chosen


def generate_palette(n, mode=Mode.NORMAL, *, pool_size=DEFAULT_POOL_SIZE, rng=None,
                     min_delta_e=MIN_DELTA_E):
    """Generate up to clamp(n, 1, 25) mutually distinct hex colors."""
    builder = PaletteBuilder(mode, pool_size=pool_size, rng=rng, min_delta_e=min_delta_e)
    return builder.build(n)


# ---------------------------------------------------------------------------
# Request / response
# ---------------------------------------------------------------------------

def _leading_int(value):
    """Integer prefix of a raw size value, parseInt-style; None if there is none."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, numbers.Integral):
        return int(value)
    if isinstance(value, numbers.Real):
        return int(value) if math.isfinite(value) else None
    match = LEADING_INT_PATTERN.match(str(value).strip())
    return int(match.group()) if match else None


def parse_palette_request(n=None, mode=None):
    """Normalise raw request values into (size, Mode) with lenient defaults."""
    size = _leading_int(n) or DEFAULT_PALETTE_SIZE
    try:
        parsed_mode = Mode.from_value(mode) if mode is not None else Mode.NORMAL
    except ValueError:
        parsed_mode = Mode.NORMAL
    return size, parsed_mode


def palette_response(n=None, mode=None, *, pool_size=DEFAULT_POOL_SIZE, rng=None):
    """Build the JSON-serialisable response body for a palette request."""
    size, parsed_mode = parse_palette_request(n, mode)
    return {"palette": generate_palette(size, parsed_mode, pool_size=pool_size, rng=rng)}


# ---------------------------------------------------------------------------
# Visualisation
# ---------------------------------------------------------------------------

def visualize_palette(hex_colors, mode=Mode.NORMAL, path=None):
    """Plot swatches per vision type and the distance matrix under `mode`."""
    import matplotlib.pyplot as plt
    from matplotlib.patches import Rectangle

    colors = [hex_to_color(h) for h in hex_colors]
    n_colors = len(colors)
    rows = (Mode.NORMAL,) + DICHROMACY_MODES

    fig, axes = plt.subplots(2, 1, figsize=(max(6, n_colors * 1.2), 9),
                             gridspec_kw={'height_ratios': [len(rows), n_colors or 1]})

    ax1 = axes[0]
    ax1.set_xlim(0, max(n_colors, 1))
    ax1.set_ylim(0, len(rows))
    for row, variant in enumerate(rows):
        y = len(rows) - row - 1
        for i, color in enumerate(colors):
            shown = simulate(color, variant)
            ax1.add_patch(Rectangle((i, y), 1, 1, facecolor=shown.as_tuple(),
                                    edgecolor='black', linewidth=1))
            if row == 0:
                text_color = 'white' if color_to_oklab(color).L < 0.6 else 'black'
                ax1.text(i + 0.5, y + 0.5, color_to_hex(color).upper(), ha='center',
                         va='center', fontsize=8, family='monospace', color=text_color)
        ax1.text(-0.05, y + 0.5, variant.value.capitalize(), ha='right', va='center', fontsize=9)
    ax1.set_xticks([])
    ax1.set_yticks([])
    ax1.set_title(f"CVD-safe palette ({Mode.from_value(mode).value})",
                  fontsize=14, fontweight='bold')

    ax2 = axes[1]
    matrix = distance_matrix(colors, mode)
    im = ax2.imshow(matrix, cmap='YlOrRd', aspect='auto')
    for i in range(n_colors):
        for j in range(n_colors):
            if i != j:
                ax2.text(j, i, f'{matrix[i, j]:.2f}', ha="center", va="center",
                         color="black", fontsize=7)
    ax2.set_xticks(range(n_colors))
    ax2.set_yticks(range(n_colors))
    ax2.set_xticklabels([h.upper() for h in hex_colors], rotation=90, fontsize=7)
    ax2.set_yticklabels([h.upper() for h in hex_colors], fontsize=7)
    ax2.set_title("Oklab distance matrix", fontsize=12, fontweight='bold')
    cbar = plt.colorbar(im, ax=ax2)
    cbar.set_label('ΔE (Oklab)', rotation=270, labelpad=20)

    plt.tight_layout()
    if path is not None:
        fig.savefig(path, dpi=150, bbox_inches='tight')
        print(f"Visualization saved to: {path}")
    return fig


def print_statistics(hex_colors, mode=Mode.NORMAL):
    """Print per-color Oklab coordinates and pairwise distance summary."""
    colors = [hex_to_color(h) for h in hex_colors]
    print("=" * 60)
    print(f"PALETTE STATISTICS (mode: {Mode.from_value(mode).value})")
    print("=" * 60)
    for i, color in enumerate(colors, 1):
        lab = color_to_oklab(color)
        print(f"Color {i:2d}: {color_to_hex(color).upper()}  "
              f"L={lab.L:.3f} a={lab.a:+.3f} b={lab.b:+.3f}")
    stats = palette_statistics(colors, mode)
    print("-" * 60)
    if stats["pairs"]:
        print(f"  Minimum: {stats['min']:.3f}")
        print(f"  Maximum: {stats['max']:.3f}")
        print(f"  Average: {stats['mean']:.3f}")
        print(f"  Pairs below {MIN_DELTA_E:.2f}: {stats['below_floor']}")
    else:
        print("  Single color, no pairwise distances.")
    print("=" * 60)


def build_parser():
    parser = argparse.ArgumentParser(
        prog="cvd-palette",
        description="Generate color palettes that stay distinct under color vision deficiency.",
    )
    parser.add_argument("-n", "--n", dest="n", default=str(DEFAULT_PALETTE_SIZE),
                        help="number of colors (clamped to 1-25)")
    parser.add_argument("-m", "--mode", default=Mode.NORMAL.value,
                        help="one of: " + ", ".join(m.value for m in Mode))
    parser.add_argument("--pool-size", type=int, default=DEFAULT_POOL_SIZE,
                        help="number of random candidates to sample")
    parser.add_argument("--seed", type=int, default=None, help="random seed")
    parser.add_argument("--stats", action="store_true", help="print distance statistics")
    parser.add_argument("--plot", metavar="PATH", default=None, help="save a visualization")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def main(argv=None):
    """Main function."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    rng = np.random.default_rng(args.seed)
    size, mode = parse_palette_request(args.n, args.mode)
    response = {"palette": generate_palette(size, mode, pool_size=args.pool_size, rng=rng)}
    print(json.dumps(response))

    if args.stats:
        print_statistics(response["palette"], mode)
    if args.plot:
        import matplotlib
        matplotlib.use("Agg")
        visualize_palette(response["palette"], mode, path=args.plot)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
