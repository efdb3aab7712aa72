"""TrueType rasterizing, a write-back sector cache and a framebuffer log console."""

__version__ = "0.1.0"

__all__ = ["cache", "console", "raster", "truetype", "typeface"]