"""Parsing of TrueType font files: tables, character maps, metrics and outlines."""

from __future__ import annotations

import struct

from .raster import Outline, OutlineError, Point, midpoint, transform_points

FILE_MAGIC_ONE = 0x00010000
FILE_MAGIC_TWO = 0x74727565

# Kerning subtable coverage flags.
HORIZONTAL_KERNING = 0x01
MINIMUM_KERNING = 0x02
CROSS_STREAM_KERNING = 0x04
OVERRIDE_KERNING = 0x08

# Simple glyph point flags.
POINT_IS_ON_CURVE = 0x01
X_CHANGE_IS_SMALL = 0x02
Y_CHANGE_IS_SMALL = 0x04
REPEAT_FLAG = 0x08
X_CHANGE_IS_ZERO = 0x10
X_CHANGE_IS_POSITIVE = 0x10
Y_CHANGE_IS_ZERO = 0x20
Y_CHANGE_IS_POSITIVE = 0x20

# Compound glyph component flags.
OFFSETS_ARE_LARGE = 0x001
ACTUAL_XY_OFFSETS = 0x002
GOT_A_SINGLE_SCALE = 0x008
THERE_ARE_MORE_COMPONENTS = 0x020
GOT_AN_X_AND_Y_SCALE = 0x040
GOT_A_SCALE_MATRIX = 0x080

# Compound glyphs nested deeper than this are rejected.
MAX_COMPOUND_DEPTH = 4

_POINT_LIMIT = 0x8000


class FontError(Exception):
    """The font data is malformed or lacks what was asked for."""


def _signed16(value: int) -> int:
    return value - 0x10000 if value & 0x8000 else value


class FontFile:
    """Read-only view of a TrueType font held in memory."""

    def __init__(self, data: bytes) -> None:
        self.data = bytes(data)
        self.size = len(self.data)
        if self.size > 0xFFFFFFFF:
            raise FontError("font data is too large")
        if not self._is_safe(0, 12):
            raise FontError("font data is too short")
        scaler_type = self._u32(0)
        if scaler_type not in (FILE_MAGIC_ONE, FILE_MAGIC_TWO):
            raise FontError("unsupported font scaler type")

        head = self.table_offset("head")
        if not self._is_safe(head, 54):
            raise FontError("head table is truncated")
        self.units_per_em = self._u16(head + 18)
        self.loca_format = self._i16(head + 50)

        hhea = self.table_offset("hhea")
        if not self._is_safe(hhea, 36):
            raise FontError("hhea table is truncated")
        self.num_long_hmtx = self._u16(hhea + 34)

    # -- low-level access -------------------------------------------------

    def _is_safe(self, offset: int, margin: int) -> bool:
        return 0 <= offset <= self.size and self.size - offset >= margin

    def _unpack(self, fmt: str, offset: int) -> int:
        if offset < 0:
            raise FontError("read before start of font data")
        try:
            return struct.unpack_from(fmt, self.data, offset)[0]
        except struct.error as exc:
            raise FontError("read past end of font data") from exc

    def _u8(self, offset: int) -> int:
        return self._unpack(">B", offset)

    def _i8(self, offset: int) -> int:
        return self._unpack(">b", offset)

    def _u16(self, offset: int) -> int:
        return self._unpack(">H", offset)

    def _i16(self, offset: int) -> int:
        return self._unpack(">h", offset)

    def _u32(self, offset: int) -> int:
        return self._unpack(">I", offset)

    def _bsearch(self, key: bytes, base: int, count: int, stride: int) -> int | None:
        """Return the offset of the record whose leading bytes equal ``key``."""
        low, high = 0, count
        width = len(key)
        while low < high:
            mid = (low + high) // 2
            record = base + mid * stride
            sample = self.data[record:record + width]
            if key < sample:
                high = mid
            elif key > sample:
                low = mid + 1
            else:
                return record
        return None

    def _csearch(self, key: bytes, base: int, count: int, stride: int) -> int | None:
        """Return the offset of the first record not below ``key``, else the last one."""
        if not count:
            return None
        low, high = 0, count - 1
        width = len(key)
        while low != high:
            mid = low + (high - low) // 2
            record = base + mid * stride
            if key > self.data[record:record + width]:
                low = mid + 1
            else:
                high = mid
        return base + low * stride

    # -- tables -----------------------------------------------------------

    def table_offset(self, tag: str | bytes) -> int:
        """Return the file offset of the table named ``tag``."""
        key = tag.encode("ascii") if isinstance(tag, str) else bytes(tag)
        if len(key) != 4:
            raise ValueError("table tags are four bytes long")
        num_tables = self._u16(4)
        if not self._is_safe(12, num_tables * 16):
            raise FontError("table directory is truncated")
        record = self._bsearch(key, 12, num_tables, 16)
        if record is None:
            raise FontError(f"font has no {key.decode('ascii', 'replace')!r} table")
        return self._u32(record + 8)

    # -- character mapping ------------------------------------------------

    def _cmap_fmt4(self, table: int, code: int) -> int:
        if code > 0xFFFF:
            return 0
        if not self._is_safe(table, 8):
            raise FontError("cmap format 4 header is truncated")
        seg_count_x2 = self._u16(table)
        if seg_count_x2 & 1 or not seg_count_x2:
            raise FontError("invalid cmap format 4 segment count")
        end_codes = table + 8
        start_codes = end_codes + seg_count_x2 + 2
        id_deltas = start_codes + seg_count_x2
        id_range_offsets = id_deltas + seg_count_x2
        if not self._is_safe(id_range_offsets, seg_count_x2):
            raise FontError("cmap format 4 segments are truncated")

        key = code.to_bytes(2, "big")
        segment = self._csearch(key, end_codes, seg_count_x2 // 2, 2)
        seg_idx_x2 = segment - end_codes
        start_code = self._u16(start_codes + seg_idx_x2)
        if start_code > code:
            return 0
        id_delta = self._u16(id_deltas + seg_idx_x2)
        id_range_offset = self._u16(id_range_offsets + seg_idx_x2)
        if not id_range_offset:
            return (code + id_delta) & 0xFFFF
        id_offset = id_range_offsets + seg_idx_x2 + id_range_offset + 2 * (code - start_code)
        if not self._is_safe(id_offset, 2):
            raise FontError("cmap format 4 glyph index is out of range")
        glyph = self._u16(id_offset)
        return (glyph + id_delta) & 0xFFFF if glyph else 0

    def _cmap_fmt6(self, table: int, code: int) -> int:
        if code > 0xFFFF:
            return 0
        if not self._is_safe(table, 4):
            raise FontError("cmap format 6 header is truncated")
        first_code = self._u16(table)
        entry_count = self._u16(table + 2)
        if not self._is_safe(table, 4 + 2 * entry_count):
            raise FontError("cmap format 6 entries are truncated")
        if code < first_code or code - first_code >= entry_count:
            raise FontError("character is outside the cmap format 6 range")
        return self._u16(table + 4 + 2 * (code - first_code))

    def _cmap_fmt12_13(self, table: int, code: int, which: int) -> int:
        if not self._is_safe(table, 16):
            raise FontError("cmap format 12 header is truncated")
        length = self._u32(table + 4)
        if length < 16 or not self._is_safe(table, length):
            raise FontError("cmap format 12 table is truncated")
        num_entries = self._u32(table + 12)
        for entry in range(table + 16, table + 16 + num_entries * 12, 12):
            first_code = self._u32(entry)
            last_code = self._u32(entry + 4)
            if first_code <= code <= last_code:
                glyph_offset = self._u32(entry + 8)
                if which == 12:
                    return (code - first_code) + glyph_offset
                return glyph_offset
        return 0

    def glyph_id(self, codepoint: int) -> int:
        """Map a Unicode code point to a glyph index (0 when unmapped)."""
        cmap = self.table_offset("cmap")
        if not self._is_safe(cmap, 4):
            raise FontError("cmap header is truncated")
        num_entries = self._u16(cmap + 2)
        if not self._is_safe(cmap, 4 + num_entries * 8):
            raise FontError("cmap encoding records are truncated")
        entries = range(cmap + 4, cmap + 4 + num_entries * 8, 8)

        for entry in entries:
            kind = self._u16(entry) * 0o100 + self._u16(entry + 2)
            if kind in (0o004, 0o312):
                table = cmap + self._u32(entry + 4)
                if not self._is_safe(table, 8):
                    raise FontError("cmap subtable is truncated")
                if self._u16(table) == 12:
                    return self._cmap_fmt12_13(table, codepoint, 12)
                raise FontError("unsupported full-repertoire cmap format")

        for entry in entries:
            kind = self._u16(entry) * 0o100 + self._u16(entry + 2)
            if kind in (0o003, 0o301):
                table = cmap + self._u32(entry + 4)
                if not self._is_safe(table, 6):
                    raise FontError("cmap subtable is truncated")
                fmt = self._u16(table)
                if fmt == 4:
                    return self._cmap_fmt4(table + 6, codepoint)
                if fmt == 6:
                    return self._cmap_fmt6(table + 6, codepoint)
                raise FontError(f"unsupported cmap format {fmt}")

        raise FontError("font has no usable Unicode cmap")

    # -- metrics ----------------------------------------------------------

    def hor_metrics(self, glyph: int) -> tuple[int, int]:
        """Return ``(advance_width, left_side_bearing)`` in font units."""
        hmtx = self.table_offset("hmtx")
        if glyph < self.num_long_hmtx:
            offset = hmtx + 4 * glyph
            if not self._is_safe(offset, 4):
                raise FontError("hmtx entry is out of range")
            return self._u16(offset), self._i16(offset + 2)

        boundary = hmtx + 4 * self.num_long_hmtx
        if boundary < 4:
            raise FontError("hmtx table has no long metrics")
        offset = boundary - 4
        if not self._is_safe(offset, 4):
            raise FontError("hmtx entry is out of range")
        advance = self._u16(offset)
        offset = boundary + 2 * (glyph - self.num_long_hmtx)
        if not self._is_safe(offset, 2):
            raise FontError("hmtx entry is out of range")
        return advance, self._i16(offset)

    def hhea_metrics(self) -> tuple[int, int, int]:
        """Return ``(ascender, descender, line_gap)`` in font units."""
        hhea = self.table_offset("hhea")
        if not self._is_safe(hhea, 36):
            raise FontError("hhea table is truncated")
        return self._i16(hhea + 4), self._i16(hhea + 6), self._i16(hhea + 8)

    def kerning(self, left_glyph: int, right_glyph: int) -> tuple[int, int]:
        """Return the ``(x_shift, y_shift)`` kerning of a glyph pair in font units."""
        try:
            offset = self.table_offset("kern")
        except FontError:
            return 0, 0
        if not self._is_safe(offset, 4):
            raise FontError("kern table header is truncated")
        if self._u16(offset) != 0:
            return 0, 0
        num_tables = self._u16(offset + 2)
        offset += 4

        x_shift = y_shift = 0
        key = struct.pack(">HH", left_glyph & 0xFFFF, right_glyph & 0xFFFF)
        for _ in range(num_tables):
            if not self._is_safe(offset, 6):
                raise FontError("kern subtable header is truncated")
            length = self._u16(offset + 2)
            fmt = self._u8(offset + 4)
            flags = self._u8(offset + 5)
            offset += 6

            if fmt == 0 and flags & HORIZONTAL_KERNING and not flags & MINIMUM_KERNING:
                if not self._is_safe(offset, 8):
                    raise FontError("kern format 0 header is truncated")
                num_pairs = self._u16(offset)
                offset += 8
                if not self._is_safe(offset, num_pairs * 6):
                    raise FontError("kern pairs are truncated")
                match = self._bsearch(key, offset, num_pairs, 6)
                if match is not None:
                    value = self._i16(match + 4)
                    if flags & CROSS_STREAM_KERNING:
                        y_shift += value
                    else:
                        x_shift += value

            offset += length
        return x_shift, y_shift

    # -- outlines ---------------------------------------------------------

    def outline_offset(self, glyph: int) -> int:
        """Return the file offset of a glyph's outline, or 0 if it has none."""
        loca = self.table_offset("loca")
        glyf = self.table_offset("glyf")
        if self.loca_format == 0:
            base = loca + 2 * glyph
            if not self._is_safe(base, 4):
                raise FontError("loca entry is out of range")
            this = 2 * self._u16(base)
            following = 2 * self._u16(base + 2)
        else:
            base = loca + 4 * glyph
            if not self._is_safe(base, 8):
                raise FontError("loca entry is out of range")
            this = self._u32(base)
            following = self._u32(base + 4)
        return 0 if this == following else glyf + this

    def bbox(self, offset: int) -> tuple[int, int, int, int]:
        """Return the ``(x_min, y_min, x_max, y_max)`` box stored with an outline."""
        if not self._is_safe(offset, 10):
            raise FontError("glyph header is truncated")
        box = (
            self._i16(offset + 2),
            self._i16(offset + 4),
            self._i16(offset + 6),
            self._i16(offset + 8),
        )
        if box[2] <= box[0] or box[3] <= box[1]:
            raise FontError("glyph bounding box is empty")
        return box

    def decode_outline(self, offset: int, outline: Outline, depth: int = 0) -> None:
        """Append the outline stored at ``offset`` to ``outline``."""
        if not self._is_safe(offset, 10):
            raise FontError("glyph header is truncated")
        num_contours = self._i16(offset)
        if num_contours > 0:
            self._simple_outline(offset + 10, num_contours, outline)
        elif num_contours < 0:
            self._compound_outline(offset + 10, depth, outline)

    def _simple_flags(self, offset: int, num_points: int) -> tuple[list[int], int]:
        flags: list[int] = []
        value = repeat = 0
        while len(flags) < num_points:
            if repeat:
                repeat -= 1
            else:
                if not self._is_safe(offset, 1):
                    raise FontError("glyph flags are truncated")
                value = self._u8(offset)
                offset += 1
                if value & REPEAT_FLAG:
                    if not self._is_safe(offset, 1):
                        raise FontError("glyph flags are truncated")
                    repeat = self._u8(offset)
                    offset += 1
            flags.append(value)
        return flags, offset

    def _coordinates(
        self, offset: int, flags: list[int], small: int, positive: int
    ) -> tuple[list[float], int]:
        coords: list[float] = []
        accum = 0
        for flag in flags:
            if flag & small:
                if not self._is_safe(offset, 1):
                    raise FontError("glyph coordinates are truncated")
                value = self._u8(offset)
                offset += 1
                accum += value if flag & positive else -value
            elif not flag & positive:
                if not self._is_safe(offset, 2):
                    raise FontError("glyph coordinates are truncated")
                accum += self._i16(offset)
                offset += 2
            coords.append(float(accum))
        return coords, offset

    def _simple_outline(self, offset: int, num_contours: int, outline: Outline) -> None:
        base_point = len(outline.points)
        if not self._is_safe(offset, num_contours * 2 + 2):
            raise FontError("glyph contour table is truncated")
        num_points = self._u16(offset + (num_contours - 1) * 2)
        if num_points >= 0xFFFF:
            raise FontError("glyph has too many points")
        num_points += 1
        if base_point + num_points > _POINT_LIMIT:
            raise OutlineError("too many points in outline")

        end_points = [self._u16(offset + 2 * i) for i in range(num_contours)]
        offset += 2 * num_contours
        if any(nxt < cur + 1 for cur, nxt in zip(end_points, end_points[1:])):
            raise FontError("glyph contour end points are not increasing")
        offset += 2 + self._u16(offset)

        flags, offset = self._simple_flags(offset, num_points)
        xs, offset = self._coordinates(offset, flags, X_CHANGE_IS_SMALL, X_CHANGE_IS_POSITIVE)
        ys, offset = self._coordinates(offset, flags, Y_CHANGE_IS_SMALL, Y_CHANGE_IS_POSITIVE)
        for x, y in zip(xs, ys):
            outline.add_point(Point(x, y))

        beg = 0
        for end in end_points:
            _decode_contour(flags[beg:end + 1], base_point + beg, outline)
            beg = end + 1

    def _compound_outline(self, offset: int, depth: int, outline: Outline) -> None:
        if depth >= MAX_COMPOUND_DEPTH:
            raise FontError("compound glyphs are nested too deeply")
        while True:
            local = [0.0] * 6
            if not self._is_safe(offset, 4):
                raise FontError("compound glyph component is truncated")
            flags = self._u16(offset)
            glyph = self._u16(offset + 2)
            offset += 4
            if not flags & ACTUAL_XY_OFFSETS:
                raise FontError("compound glyph point matching is not supported")
            if flags & OFFSETS_ARE_LARGE:
                if not self._is_safe(offset, 4):
                    raise FontError("compound glyph offsets are truncated")
                local[4] = float(self._i16(offset))
                local[5] = float(self._i16(offset + 2))
                offset += 4
            else:
                if not self._is_safe(offset, 2):
                    raise FontError("compound glyph offsets are truncated")
                local[4] = float(self._i8(offset))
                local[5] = float(self._i8(offset + 1))
                offset += 2
            if flags & GOT_A_SINGLE_SCALE:
                if not self._is_safe(offset, 2):
                    raise FontError("compound glyph scale is truncated")
                local[0] = local[3] = self._i16(offset) / 16384.0
                offset += 2
            elif flags & GOT_AN_X_AND_Y_SCALE:
                if not self._is_safe(offset, 4):
                    raise FontError("compound glyph scale is truncated")
                local[0] = self._i16(offset) / 16384.0
                local[3] = self._i16(offset + 2) / 16384.0
                offset += 4
            elif flags & GOT_A_SCALE_MATRIX:
                if not self._is_safe(offset, 8):
                    raise FontError("compound glyph matrix is truncated")
                local[0] = self._i16(offset) / 16384.0
                local[1] = self._i16(offset + 2) / 16384.0
                local[2] = self._i16(offset + 4) / 16384.0
                local[3] = self._i16(offset + 6) / 16384.0
                offset += 8
            else:
                local[0] = local[3] = 1.0

            component = self.outline_offset(glyph)
            if component:
                base_point = len(outline.points)
                self.decode_outline(component, outline, depth + 1)
                outline.points[base_point:] = transform_points(
                    outline.points[base_point:], local
                )
            if not flags & THERE_ARE_MORE_COMPONENTS:
                break


def _decode_contour(flags: list[int], base_point: int, outline: Outline) -> None:
    """Turn one contour's on/off-curve points into lines and curves."""
    count = len(flags)
    if count < 2:
        return
    points = outline.points
    if flags[0] & POINT_IS_ON_CURVE:
        loose_end = base_point
        base_point += 1
        flags = flags[1:]
    elif flags[-1] & POINT_IS_ON_CURVE:
        flags = flags[:-1]
        loose_end = base_point + len(flags)
    else:
        loose_end = outline.add_point(
            midpoint(points[base_point], points[base_point + count - 1])
        )

    beg = loose_end
    ctrl: int | None = None
    for cur, flag in enumerate(flags, start=base_point):
        if flag & POINT_IS_ON_CURVE:
            if ctrl is not None:
                outline.add_curve(beg, cur, ctrl)
            else:
                outline.add_line(beg, cur)
            beg = cur
            ctrl = None
        else:
            if ctrl is not None:
                center = outline.add_point(midpoint(points[ctrl], points[cur]))
                outline.add_curve(beg, center, ctrl)
                beg = center
            ctrl = cur
    if ctrl is not None:
        outline.add_curve(beg, loose_end, ctrl)
    else:
        outline.add_line(beg, loose_end)