import pytest

from dumplingkit.raster import (
    OUTLINE_LIMIT,
    Curve,
    Line,
    Outline,
    OutlineError,
    Point,
    Raster,
    clip_points,
    draw_line,
    draw_lines,
    is_flat,
    midpoint,
    post_process,
    render_outline,
    tesselate_curve,
    tesselate_curves,
    transform_points,
)

IDENTITY = (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)


def _square(lo, hi):
    outline = Outline()
    a = outline.add_point(Point(lo, lo))
    b = outline.add_point(Point(hi, lo))
    c = outline.add_point(Point(hi, hi))
    d = outline.add_point(Point(lo, hi))
    for beg, end in ((a, b), (b, c), (c, d), (d, a)):
        outline.add_line(beg, end)
    return outline


def test_midpoint_is_equidistant():
    a, b = Point(-3.0, 7.5), Point(5.0, 1.5)
    m = midpoint(a, b)
    assert m.x - a.x == pytest.approx(b.x - m.x)
    assert m.y - a.y == pytest.approx(b.y - m.y)


def test_add_point_returns_indices():
    outline = Outline()
    assert outline.add_point(Point(0, 0)) == 0
    assert outline.add_point(Point(1, 1)) == 1
    assert outline.points[1] == Point(1.0, 1.0)


def test_outline_limit_enforced():
    outline = Outline()
    outline.points = [Point(0.0, 0.0)] * OUTLINE_LIMIT
    with pytest.raises(OutlineError):
        outline.add_point(Point(1.0, 1.0))
    outline.lines = [Line(0, 0)] * OUTLINE_LIMIT
    with pytest.raises(OutlineError):
        outline.add_line(0, 1)
    outline.curves = [Curve(0, 0, 0)] * OUTLINE_LIMIT
    with pytest.raises(OutlineError):
        outline.add_curve(0, 1, 2)


def test_transform_identity_round_trip():
    points = [Point(1.5, -2.0), Point(0.0, 9.25)]
    assert transform_points(points, IDENTITY) == points


def test_transform_scale_and_inverse():
    points = [Point(1.5, -2.0), Point(4.0, 9.25)]
    forward = transform_points(points, (2.0, 0.0, 0.0, -4.0, 3.0, 1.0))
    back = transform_points(forward, (0.5, 0.0, 0.0, -0.25, -1.5, 0.25))
    for original, restored in zip(points, back):
        assert restored.x == pytest.approx(original.x)
        assert restored.y == pytest.approx(original.y)


def test_clip_points_stay_inside():
    points = [Point(-5.0, 20.0), Point(8.0, -1.0), Point(2.5, 3.5)]
    clipped = clip_points(points, 8, 6)
    for p in clipped:
        assert 0.0 <= p.x < 8
        assert 0.0 <= p.y < 6
    assert clipped[2] == points[2]


def test_is_flat_collinear_and_bent():
    outline = Outline(points=[Point(0, 0), Point(5, 5), Point(10, 10), Point(10, 0)])
    assert is_flat(outline, Curve(0, 2, 1)) is True
    assert is_flat(outline, Curve(0, 2, 3)) is False


def test_tesselate_flat_curve_gives_single_line():
    outline = Outline(points=[Point(0, 0), Point(5, 5), Point(10, 10)])
    tesselate_curve(Curve(0, 2, 1), outline)
    assert outline.lines == [Line(0, 2)]
    assert len(outline.points) == 3


def test_tesselate_bent_curve_forms_chain():
    outline = Outline(points=[Point(0, 0), Point(40, 80), Point(80, 0)])
    tesselate_curve(Curve(0, 2, 1), outline)
    added_points = len(outline.points) - 3
    assert added_points % 3 == 0
    assert len(outline.lines) == 1 + added_points // 3
    begs = [line.beg for line in outline.lines]
    ends = [line.end for line in outline.lines]
    assert begs.count(0) == 1
    assert ends.count(2) == 1
    for end in ends:
        assert end == 2 or end in begs


def test_tesselate_curves_flattens_all():
    outline = Outline(points=[Point(0, 0), Point(5, 5), Point(10, 10)])
    outline.add_curve(0, 2, 1)
    outline.add_curve(2, 0, 1)
    tesselate_curves(outline)
    assert outline.lines == [Line(0, 2), Line(2, 0)]


def test_draw_horizontal_line_has_no_effect():
    raster = Raster(4, 4)
    draw_line(raster, Point(0.5, 1.5), Point(3.5, 1.5))
    assert all(v == 0.0 for v in raster.area + raster.cover)


def test_draw_line_cover_sums_to_height():
    raster = Raster(8, 8)
    origin, goal = Point(0.5, 0.5), Point(6.3, 7.1)
    draw_line(raster, origin, goal)
    assert sum(raster.cover) == pytest.approx(goal.y - origin.y)
    reverse = Raster(8, 8)
    draw_line(reverse, goal, origin)
    assert sum(reverse.cover) == pytest.approx(origin.y - goal.y)


def test_post_process_full_cover():
    raster = Raster(3, 1)
    raster.cover[0] = 1.0
    raster.area[0] = 1.0
    assert post_process(raster) == bytes([255, 255, 255])


def test_render_square_outline():
    outline = _square(1.0, 3.0)
    image = render_outline(outline, IDENTITY, 4, 4)
    expected = bytes(
        [0, 0, 0, 0,
         0, 255, 255, 0,
         0, 255, 255, 0,
         0, 0, 0, 0]
    )
    assert image == expected


def test_draw_lines_matches_render():
    outline = _square(1.0, 3.0)
    raster = Raster(4, 4)
    draw_lines(outline, raster)
    assert post_process(raster) == render_outline(_square(1.0, 3.0), IDENTITY, 4, 4)


def test_render_curved_outline_tesselates():
    outline = Outline()
    a = outline.add_point(Point(1.0, 1.0))
    b = outline.add_point(Point(15.0, 1.0))
    ctrl = outline.add_point(Point(8.0, 30.0))
    outline.add_line(a, b)
    outline.add_curve(b, a, ctrl)
    image = render_outline(outline, IDENTITY, 16, 16)
    assert len(image) == 16 * 16
    assert len(outline.lines) > 2
    assert max(image) == 255
    assert image[0] == 0


def test_raster_rejects_negative_size():
    with pytest.raises(ValueError):
        Raster(-1, 4)