"""Glyph outline geometry and anti-aliased scanline rasterisation."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import NamedTuple, Sequence

# Outline arrays start at 64 entries and double up to this many entries.
OUTLINE_LIMIT = 0x8000

# Depth of the explicit subdivision stack used when flattening curves.
_TESSELATE_STACK = 10

# Twice the triangle area below which a quadratic curve counts as a line.
_MAX_FLAT_AREA2 = 2.0


class OutlineError(Exception):
    """Raised when an outline cannot hold any more points, lines or curves."""


class Point(NamedTuple):
    x: float
    y: float


class Line(NamedTuple):
    beg: int
    end: int


class Curve(NamedTuple):
    beg: int
    end: int
    ctrl: int


@dataclass
class Outline:
    """Points of a glyph together with the lines and quadratic curves joining them."""

    points: list[Point] = field(default_factory=list)
    curves: list[Curve] = field(default_factory=list)
    lines: list[Line] = field(default_factory=list)

    def add_point(self, point: Point) -> int:
        """Append a point and return its index."""
        if len(self.points) >= OUTLINE_LIMIT:
            raise OutlineError("too many points in outline")
        self.points.append(Point(float(point[0]), float(point[1])))
        return len(self.points) - 1

    def add_line(self, beg: int, end: int) -> None:
        """Append a straight segment between two point indices."""
        if len(self.lines) >= OUTLINE_LIMIT:
            raise OutlineError("too many lines in outline")
        self.lines.append(Line(beg, end))

    def add_curve(self, beg: int, end: int, ctrl: int) -> None:
        """Append a quadratic curve between two point indices."""
        if len(self.curves) >= OUTLINE_LIMIT:
            raise OutlineError("too many curves in outline")
        self.curves.append(Curve(beg, end, ctrl))


class Raster:
    """Accumulation cells (signed area and cover) for one glyph image."""

    def __init__(self, width: int, height: int) -> None:
        if width < 0 or height < 0:
            raise ValueError("raster dimensions must not be negative")
        self.width = width
        self.height = height
        self.area = [0.0] * (width * height)
        self.cover = [0.0] * (width * height)


def midpoint(a: Point, b: Point) -> Point:
    """Return the point halfway between ``a`` and ``b``."""
    return Point(0.5 * (a.x + b.x), 0.5 * (a.y + b.y))


def transform_points(points: Sequence[Point], transform: Sequence[float]) -> list[Point]:
    """Apply the affine matrix ``(a, b, c, d, e, f)`` to every point."""
    a, b, c, d, e, f = transform
    return [Point(p.x * a + p.y * c + e, p.x * b + p.y * d + f) for p in points]


def clip_points(points: Sequence[Point], width: int, height: int) -> list[Point]:
    """Clamp points into ``[0, width) x [0, height)``."""
    max_x = math.nextafter(float(width), 0.0)
    max_y = math.nextafter(float(height), 0.0)
    clipped = []
    for p in points:
        x, y = p.x, p.y
        if x < 0.0:
            x = 0.0
        if p.x >= width:
            x = max_x
        if y < 0.0:
            y = 0.0
        if p.y >= height:
            y = max_y
        clipped.append(Point(x, y))
    return clipped


def is_flat(outline: Outline, curve: Curve) -> bool:
    """Tell whether a curve is close enough to a straight line."""
    a = outline.points[curve.beg]
    b = outline.points[curve.ctrl]
    c = outline.points[curve.end]
    gx, gy = b.x - a.x, b.y - a.y
    hx, hy = c.x - a.x, c.y - a.y
    return abs(gx * hy - hx * gy) <= _MAX_FLAT_AREA2


def tesselate_curve(curve: Curve, outline: Outline) -> None:
    """Replace a curve by line segments appended to the outline."""
    stack: list[Curve] = []
    while True:
        if is_flat(outline, curve) or len(stack) >= _TESSELATE_STACK:
            outline.add_line(curve.beg, curve.end)
            if not stack:
                break
            curve = stack.pop()
        else:
            points = outline.points
            ctrl0 = outline.add_point(midpoint(points[curve.beg], points[curve.ctrl]))
            ctrl1 = outline.add_point(midpoint(points[curve.ctrl], points[curve.end]))
            pivot = outline.add_point(midpoint(points[ctrl0], points[ctrl1]))
            stack.append(Curve(curve.beg, pivot, ctrl0))
            curve = Curve(pivot, curve.end, ctrl1)


def tesselate_curves(outline: Outline) -> None:
    """Flatten every curve of the outline into lines."""
    for curve in list(outline.curves):
        tesselate_curve(curve, outline)


def _sign(value: float) -> int:
    return (value > 0) - (value < 0)


def draw_line(raster: Raster, origin: Point, goal: Point) -> None:
    """Accumulate the signed coverage of one line segment into the raster."""
    delta_x = goal.x - origin.x
    delta_y = goal.y - origin.y
    dir_x = _sign(delta_x)
    dir_y = _sign(delta_y)
    if not dir_y:
        return

    incr_x = abs(1.0 / delta_x) if dir_x else 1.0
    incr_y = abs(1.0 / delta_y)
    num_steps = 0

    if not dir_x:
        pixel_x = math.floor(origin.x)
        next_x = 100.0
    elif dir_x > 0:
        pixel_x = math.floor(origin.x)
        next_x = incr_x - (origin.x - pixel_x) * incr_x
        num_steps += math.ceil(goal.x) - math.floor(origin.x) - 1
    else:
        pixel_x = math.ceil(origin.x) - 1
        next_x = (origin.x - pixel_x) * incr_x
        num_steps += math.ceil(origin.x) - math.floor(goal.x) - 1

    if dir_y > 0:
        pixel_y = math.floor(origin.y)
        next_y = incr_y - (origin.y - pixel_y) * incr_y
        num_steps += math.ceil(goal.y) - math.floor(origin.y) - 1
    else:
        pixel_y = math.ceil(origin.y) - 1
        next_y = (origin.y - pixel_y) * incr_y
        num_steps += math.ceil(origin.y) - math.floor(goal.y) - 1

    prev_distance = 0.0
    next_distance = min(next_x, next_y)
    half_delta_x = 0.5 * delta_x
    width = raster.width

    for _ in range(num_steps):
        x_average = origin.x + (prev_distance + next_distance) * half_delta_x
        y_difference = (next_distance - prev_distance) * delta_y
        index = pixel_y * width + pixel_x
        raster.cover[index] += y_difference
        raster.area[index] += (1.0 - (x_average - pixel_x)) * y_difference
        prev_distance = next_distance
        if next_x < next_y:
            pixel_x += dir_x
            next_x += incr_x
        else:
            pixel_y += dir_y
            next_y += incr_y
        next_distance = min(next_x, next_y)

    x_average = origin.x + (prev_distance + 1.0) * half_delta_x
    y_difference = (1.0 - prev_distance) * delta_y
    index = pixel_y * width + pixel_x
    raster.cover[index] += y_difference
    raster.area[index] += (1.0 - (x_average - pixel_x)) * y_difference


def draw_lines(outline: Outline, raster: Raster) -> None:
    """Draw every line of the outline into the raster."""
    points = outline.points
    for line in outline.lines:
        draw_line(raster, points[line.beg], points[line.end])


def post_process(raster: Raster) -> bytes:
    """Integrate the accumulated cells into an 8-bit grayscale image."""
    image = bytearray(raster.width * raster.height)
    accum = 0.0
    for i, (area, cover) in enumerate(zip(raster.area, raster.cover)):
        value = min(abs(accum + area), 1.0)
        image[i] = int(value * 255.0 + 0.5)
        accum += cover
    return bytes(image)


def render_outline(
    outline: Outline, transform: Sequence[float], width: int, height: int
) -> bytes:
    """Transform, flatten and rasterise an outline into a grayscale image.

    The outline's points are replaced by their transformed, clipped positions
    and its curves are flattened into additional lines.
    """
    raster = Raster(width, height)
    outline.points = clip_points(transform_points(outline.points, transform), width, height)
    tesselate_curves(outline)
    draw_lines(outline, raster)
    return post_process(raster)