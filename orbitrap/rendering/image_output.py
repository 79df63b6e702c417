"""
Output raster and image export.

This module holds the finished pixel buffer of a render and writes it to
PNG, TIFF or JPEG files through Pillow, embedding the render parameters as
metadata.
"""

import numpy as np
from typing import Dict, Any, Optional, Tuple
from pathlib import Path
from dataclasses import dataclass, asdict, field
import json
import logging
from datetime import datetime

from PIL import Image, PngImagePlugin, TiffImagePlugin

logger = logging.getLogger(__name__)

METADATA_KEY = "FractalMetadata"
TIFF_IMAGE_DESCRIPTION = 270
TIFF_SOFTWARE = 305
TIFF_DATETIME = 306


def to_uint8(image_array: np.ndarray) -> np.ndarray:
    """Convert a 0-1 float RGB array to 8-bit, clipping out-of-range values."""
    if image_array.dtype == np.uint8:
        return image_array
    if np.issubdtype(image_array.dtype, np.floating):
        return (np.clip(image_array, 0.0, 1.0) * 255).astype(np.uint8)
    return np.clip(image_array, 0, 255).astype(np.uint8)


class OutputRaster:
    """A width x height grid of 8-bit RGB triples."""

    def __init__(self, pixels: np.ndarray):
        """
        Args:
            pixels: (height, width, 3) uint8 array
        """
        if pixels.ndim != 3 or pixels.shape[2] != 3:
            raise ValueError(f"Expected RGB image array (H, W, 3), got {pixels.shape}")
        if pixels.dtype != np.uint8:
            raise ValueError(f"Expected uint8 pixels, got {pixels.dtype}")
        self.pixels = pixels

    @classmethod
    def from_float(cls, rgb: np.ndarray) -> 'OutputRaster':
        """Create a raster from a 0-1 float RGB array."""
        return cls(to_uint8(rgb))

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    def pixel(self, col: int, row: int) -> Tuple[int, int, int]:
        """RGB triple at a pixel position."""
        r, g, b = self.pixels[row, col]
        return int(r), int(g), int(b)

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.pixels)

    def __eq__(self, other):
        return isinstance(other, OutputRaster) and np.array_equal(self.pixels, other.pixels)

    __hash__ = None

    def __repr__(self):
        return f"OutputRaster({self.width}x{self.height})"


@dataclass
class RenderMetadata:
    """Metadata for fractal renders."""

    # Fractal parameters
    fractal_type: str
    center: Tuple[float, float]
    half_height: float
    resolution: Tuple[int, int]  # width, height
    max_iterations: int
    escape_radius: float
    trap: Dict[str, Any]

    # Rendering parameters
    coloring_algorithm: str
    color_palette: str
    backend: str

    # Timing and performance
    render_time_seconds: float
    workers: int = 1

    # Generation info
    timestamp: str = ""
    software_version: str = "1.0.0"

    # Fractal-specific parameters
    fractal_parameters: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Set default timestamp if not provided."""
        if not self.timestamp:
            self.timestamp = datetime.now().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Convert metadata to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RenderMetadata':
        """Create metadata from dictionary."""
        return cls(**data)

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> 'RenderMetadata':
        """Create metadata from JSON string."""
        return cls.from_dict(json.loads(json_str))


class ImageExporter:
    """Image export with metadata support."""

    def __init__(self):
        """Initialize image exporter."""
        self.supported_formats = {
            '.png': self._save_png,
            '.tiff': self._save_tiff,
            '.tif': self._save_tiff,
            '.jpg': self._save_jpeg,
            '.jpeg': self._save_jpeg,
        }

    def save_image(self, raster: OutputRaster, filepath: Path,
                   metadata: Optional[RenderMetadata] = None,
                   quality: int = 95, compression: Optional[str] = None) -> Path:
        """
        Save a raster to file with metadata.

        Args:
            raster: Rendered raster
            filepath: Output file path; the suffix selects the format
            metadata: Render metadata to embed
            quality: JPEG quality (1-100)
            compression: PNG level name ('none', 'fast', 'high') or TIFF
                method ('none', 'lzw', 'deflate')

        Returns:
            Path of the written file
        """
        filepath = Path(filepath)
        suffix = filepath.suffix.lower()

        if suffix not in self.supported_formats:
            supported = ', '.join(self.supported_formats.keys())
            raise ValueError(f"Unsupported format '{suffix}'. Supported: {supported}")
        if not 1 <= quality <= 100:
            raise ValueError("quality must be between 1 and 100")

        filepath.parent.mkdir(parents=True, exist_ok=True)
        pil_image = raster.to_image()

        save_method = self.supported_formats[suffix]
        save_method(pil_image, filepath, metadata, quality, compression)

        logger.info(f"Saved image: {filepath} ({pil_image.size[0]}x{pil_image.size[1]})")
        return filepath

    def _save_png(self, pil_image: Image.Image, filepath: Path,
                  metadata: Optional[RenderMetadata], quality: int, compression: Optional[str]) -> None:
        """Save as PNG with metadata."""
        pnginfo = PngImagePlugin.PngInfo()

        if metadata:
            pnginfo.add_text("Title", f"Fractal: {metadata.fractal_type}")
            pnginfo.add_text("Software", f"orbitrap v{metadata.software_version}")
            pnginfo.add_text("Creation Time", metadata.timestamp)
            pnginfo.add_text(METADATA_KEY, metadata.to_json())

        # PNG compression levels: 0 (no compression) to 9 (max compression)
        compress_level = 6
        if compression:
            if compression.lower() in ['none', '0']:
                compress_level = 0
            elif compression.lower() in ['fast', 'low']:
                compress_level = 1
            elif compression.lower() in ['high', 'max']:
                compress_level = 9

        pil_image.save(filepath, "PNG", pnginfo=pnginfo, compress_level=compress_level)

    def _save_tiff(self, pil_image: Image.Image, filepath: Path,
                   metadata: Optional[RenderMetadata], quality: int, compression: Optional[str]) -> None:
        """Save as TIFF; metadata JSON goes into the ImageDescription tag."""
        compression_map = {
            'none': None,
            'lzw': 'tiff_lzw',
            'deflate': 'tiff_adobe_deflate',
            'zip': 'tiff_adobe_deflate',
        }
        tiff_compression = compression_map.get((compression or 'lzw').lower(), 'tiff_lzw')

        save_kwargs = {}
        if tiff_compression:
            save_kwargs['compression'] = tiff_compression

        if metadata:
            tags = TiffImagePlugin.ImageFileDirectory_v2()
            tags[TIFF_IMAGE_DESCRIPTION] = metadata.to_json()
            tags[TIFF_SOFTWARE] = f"orbitrap v{metadata.software_version}"
            tags[TIFF_DATETIME] = metadata.timestamp
            save_kwargs['tiffinfo'] = tags

        pil_image.save(filepath, "TIFF", **save_kwargs)

    def _save_jpeg(self, pil_image: Image.Image, filepath: Path,
                   metadata: Optional[RenderMetadata], quality: int, compression: Optional[str]) -> None:
        """Save as JPEG; metadata goes to a companion JSON file."""
        pil_image.save(filepath, "JPEG", quality=quality, optimize=True)

        if metadata:
            json_path = filepath.with_suffix('.json')
            with open(json_path, 'w') as f:
                f.write(metadata.to_json())
            logger.info(f"Saved metadata: {json_path}")

    def save_raw_data(self, raster: OutputRaster, filepath: Path,
                      metadata: Optional[RenderMetadata] = None) -> Path:
        """
        Save raw pixel data as NumPy array.

        Args:
            raster: Rendered raster
            filepath: Output file path (.npy)
            metadata: Metadata to save alongside

        Returns:
            Path of the written array
        """
        filepath = Path(filepath)
        if filepath.suffix.lower() != '.npy':
            filepath = filepath.with_suffix('.npy')

        np.save(filepath, raster.pixels)

        if metadata:
            with open(filepath.with_suffix('.json'), 'w') as f:
                f.write(metadata.to_json())

        logger.info(f"Saved raw data: {filepath}")
        return filepath

    def load_raw_data(self, filepath: Path) -> Tuple[OutputRaster, Optional[RenderMetadata]]:
        """
        Load raw pixel data and metadata.

        Args:
            filepath: Input file path (.npy)

        Returns:
            Tuple of (raster, metadata)
        """
        filepath = Path(filepath)
        raster = OutputRaster(np.load(filepath))

        metadata = None
        metadata_path = filepath.with_suffix('.json')
        if metadata_path.exists():
            with open(metadata_path, 'r') as f:
                metadata = RenderMetadata.from_json(f.read())

        return raster, metadata

    def extract_metadata_from_image(self, filepath: Path) -> Optional[RenderMetadata]:
        """
        Extract fractal metadata from saved image.

        Args:
            filepath: Path to image file

        Returns:
            Extracted metadata or None
        """
        filepath = Path(filepath)

        with Image.open(filepath) as img:
            text = getattr(img, 'text', None)
            if text and METADATA_KEY in text:
                return RenderMetadata.from_json(text[METADATA_KEY])

            tag_v2 = getattr(img, 'tag_v2', None)
            if tag_v2 is not None and TIFF_IMAGE_DESCRIPTION in tag_v2:
                try:
                    return RenderMetadata.from_json(tag_v2[TIFF_IMAGE_DESCRIPTION])
                except (ValueError, TypeError) as e:
                    logger.warning(f"Could not parse TIFF metadata in {filepath}: {e}")
                    return None

        if filepath.suffix.lower() in ['.jpg', '.jpeg']:
            json_path = filepath.with_suffix('.json')
            if json_path.exists():
                with open(json_path, 'r') as f:
                    return RenderMetadata.from_json(f.read())

        return None
