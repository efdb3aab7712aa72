# dumplingkit

A small toolkit in plain Python. It has no third-party dependencies and three parts.

- **Font rendering**
  - `dumplingkit.truetype.FontFile` parses TrueType font data held in memory. It handles the table directory, the `cmap` formats 4, 6 and 12, horizontal metrics, `loca`/`glyf` outlines (simple and compound) and `kern` format 0.
  - `dumplingkit.typeface.Typeface` wraps a `FontFile` with a scale, an offset and an orientation. It provides:
    - `lookup` for glyph indices
    - `gmetrics` for `GlyphMetrics`
    - `lmetrics` for `LineMetrics`
    - `kerning` for `Kerning`
    - `render` for 8-bit coverage `GlyphImage`s
  - `dumplingkit.raster` holds the outline geometry (`Point`, `Line`, `Curve`, `Outline`) and the anti-aliased scanline rasterizer (`render_outline`).
- **Sector caching**
  - `dumplingkit.cache.SectorCache` is a fixed pool of sector buffers placed in front of a device. The device can be any object with `read_sectors(sector, count)` and `write_sectors(sector, data)`.
  - Writes stay dirty in the cache until one of these happens:
    - the sector is evicted (least recently used first)
    - `flush` is called
    - `shutdown` is called

    When dirty sectors are written back, runs of adjacent dirty sectors go to the device in one call.
  - The cache also remembers directory entry locations by short name (`create_sfn`/`find_sfn`) and by long name (`create_lfn`/`find_lfn`), and keeps the last allocated directory index.
  - `BlockDevice` is an in-memory device. It records every read and write call.
  - `Profiler` keeps thread-safe named timings and counters.
- **Log console**
  - `dumplingkit.console.LogConsole` keeps 18 lines of text of up to 128 characters each. It supports appending with scrolling, formatted lines, replacing a line at a position, and a block of lines pinned to the bottom.
  - `draw` renders the lines with a `Typeface` into a 1280×720 and an 896×480 RGBA `Framebuffer`, then swaps front and back buffers.

## Installation

```
pip install .
```

## Examples

Render a glyph:

```python
from dumplingkit.truetype import FontFile
from dumplingkit.typeface import Typeface

with open("font.ttf", "rb") as fh:
    face = Typeface(FontFile(fh.read()), x_scale=20, y_scale=20, downward_y=True)

glyph = face.lookup("A")
metrics = face.gmetrics(glyph)
image = face.render(glyph, (metrics.min_width + 3) & ~3, metrics.min_height)
print(image.width, image.height, len(image.pixels))
```

Cache sectors in front of an in-memory device:

```python
from dumplingkit.cache import BlockDevice, SectorCache

device = BlockDevice(sector_size=512)
cache = SectorCache(device, sector_size=512, sector_count=64)
cache.write_sectors(10, b"\x01" * 1024)   # two dirty sectors, nothing written yet
assert device.writes == []
cache.flush()
assert device.writes == [(10, 2)]          # written back in one call
assert cache.read_sectors(10, 2) == b"\x01" * 1024
```

Draw a console screen:

```python
from dumplingkit.console import LogConsole

console = LogConsole(face)      # sets the font to 20 pixels, downward y
console.print("Hello")
console.printf("%d files copied", 3)
console.draw()
r, g, b, a = console.shown_tv.pixel(0, 0)
```

Errors are raised as exceptions:
- `FontError` for malformed font data
- `OutlineError` for outlines that grow too large
- `CacheError` for a cache that has been shut down or a device that returned too little data

## What it does not do

- The package contains no storage backend beyond the in-memory `BlockDevice`. It cannot open disk images or physical drives, and it has no FAT filesystem layer.
- The console draws only into in-memory framebuffers. It does not show anything on a real screen.
- The package has no command-line program.

## Running the tests

```
pip install .[test]
pytest
```