"""
Raster image container and image processing utilities

Decoding, colorspace normalization, alpha flattening and thumbnail-style
resizing with entropy-guided cropping.
"""

import io
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from PIL import Image, ImageCms, ImageOps, UnidentifiedImageError

from neural_resize.config import get_config
from neural_resize.errors import ColorNormalizationError, DecodeError, ResizeError
from neural_resize.logger import setup_logger

logger = setup_logger(__name__)
config = get_config()

# Try to import cv2, but make it optional
try:
    import cv2

    HAS_CV2 = True
except ImportError:
    HAS_CV2 = False

MODE_CHANNELS = {
    "L": 1,
    "LA": 2,
    "RGB": 3,
    "RGBA": 4,
    "CMYK": 4,
    "YCbCr": 3,
    "LAB": 3,
}

MODE_COLORSPACES = {
    "L": "b-w",
    "LA": "b-w",
    "RGB": "srgb",
    "RGBA": "srgb",
    "CMYK": "cmyk",
    "YCbCr": "ycbcr",
    "LAB": "lab",
}

ALPHA_MODES = {"LA", "RGBA"}

# Width of the strips compared while searching for the most interesting crop
ENTROPY_STEP = 8


@dataclass
class RasterImage:
    """Interleaved 8-bit image: ``pixels`` has shape (height, width, channels)."""

    pixels: np.ndarray
    mode: str = "RGB"

    def __post_init__(self) -> None:
        if self.mode not in MODE_CHANNELS:
            raise ValueError(f"Unsupported raster mode: {self.mode}")
        if self.pixels.ndim == 2:
            self.pixels = self.pixels[:, :, np.newaxis]
        if self.pixels.ndim != 3:
            raise ValueError("Raster pixels must be a (height, width, channels) array")
        if self.pixels.dtype != np.uint8:
            raise ValueError(f"Raster pixels must be uint8, got {self.pixels.dtype}")
        expected = MODE_CHANNELS[self.mode]
        if self.pixels.shape[2] != expected:
            raise ValueError(
                f"Mode {self.mode} expects {expected} channels, "
                f"got {self.pixels.shape[2]}"
            )

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def channels(self) -> int:
        return int(self.pixels.shape[2])

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def colorspace(self) -> str:
        return MODE_COLORSPACES[self.mode]

    @property
    def has_alpha(self) -> bool:
        return self.mode in ALPHA_MODES

    def freeze(self) -> "RasterImage":
        """Mark the pixel buffer read-only so borrowers cannot mutate it."""
        self.pixels.flags.writeable = False
        return self

    def copy(self) -> "RasterImage":
        return RasterImage(self.pixels.copy(), self.mode)


class RasterProcessor:
    """Image processing utilities"""

    @staticmethod
    def decode_from_bytes(image_bytes: bytes) -> RasterImage:
        """
        Decode an encoded image stream

        Args:
            image_bytes: Encoded image data (PNG, JPEG, WebP, TIFF, ...)

        Returns:
            Decoded RasterImage with EXIF orientation applied

        Raises:
            DecodeError: If no decoder accepts the data, or Pillow refuses
                it for exceeding ``Image.MAX_IMAGE_PIXELS``
        """
        if not image_bytes:
            raise DecodeError("Empty image buffer")

        image = RasterProcessor._try_decoders(image_bytes)
        if image is None:
            raise DecodeError("Unsupported or corrupted image stream")
        logger.debug(
            "Decoded %dx%d %s image", image.width, image.height, image.mode
        )
        return image

    @staticmethod
    def convert_colorspace(raster: RasterImage, target: str = "srgb") -> RasterImage:
        """
        Convert an image to the sRGB colorspace, keeping any alpha channel

        Raises:
            ColorNormalizationError: If the conversion is not possible
        """
        if target != "srgb":
            raise ColorNormalizationError(f"Unsupported target colorspace '{target}'")
        if raster.colorspace == target:
            return raster

        try:
            pil_image = RasterProcessor.to_pil(raster)
            if raster.mode == "LAB":
                transform = ImageCms.buildTransform(
                    ImageCms.createProfile("LAB"),
                    ImageCms.createProfile("sRGB"),
                    "LAB",
                    "RGB",
                )
                converted = ImageCms.applyTransform(pil_image, transform)
            else:
                converted = pil_image.convert("RGBA" if raster.has_alpha else "RGB")
        except Exception as exc:
            logger.error("Colorspace conversion from %s failed: %s", raster.mode, exc)
            raise ColorNormalizationError(
                f"Cannot convert {raster.colorspace} to {target}", detail=str(exc)
            ) from exc

        return RasterProcessor.from_pil(converted)

    @staticmethod
    def flatten_alpha(
        raster: RasterImage, background: Optional[Tuple[int, int, int]] = None
    ) -> RasterImage:
        """
        Composite an image with alpha over a solid background

        Args:
            raster: Image in LA or RGBA mode (other modes pass through)
            background: RGB background, defaults to FLATTEN_BACKGROUND

        Returns:
            Image without an alpha channel
        """
        if not raster.has_alpha:
            return raster

        bg = background if background is not None else config.flatten_background()
        try:
            color = raster.pixels[:, :, :-1].astype(np.float32)
            alpha = raster.pixels[:, :, -1:].astype(np.float32) / 255.0
            if raster.mode == "LA":
                luma = 0.299 * bg[0] + 0.587 * bg[1] + 0.114 * bg[2]
                fill = np.array([luma], dtype=np.float32)
                mode = "L"
            else:
                fill = np.array(bg, dtype=np.float32)
                mode = "RGB"
            blended = color * alpha + fill * (1.0 - alpha)
            pixels = np.clip(np.rint(blended), 0, 255).astype(np.uint8)
        except Exception as exc:
            logger.error("Alpha flattening failed: %s", exc)
            raise ColorNormalizationError(
                "Cannot flatten alpha channel", detail=str(exc)
            ) from exc

        return RasterImage(pixels, mode)

    @staticmethod
    def smart_resize(
        raster: RasterImage, width: int, height: int, crop: bool = False
    ) -> RasterImage:
        """
        Thumbnail an image to the requested box

        Without ``crop`` the image is scaled to fit inside the box, keeping its
        aspect ratio. With ``crop`` it is scaled to cover the box and the
        least interesting edges are trimmed until it matches exactly.

        Raises:
            ResizeError: If the target is invalid or resampling fails
        """
        if width <= 0 or height <= 0:
            raise ResizeError(f"Invalid target size {width}x{height}")

        src_w, src_h = raster.size
        if crop:
            scale = max(width / src_w, height / src_h)
        else:
            scale = min(width / src_w, height / src_h)

        new_w = max(1, int(round(src_w * scale)))
        new_h = max(1, int(round(src_h * scale)))
        if crop:
            new_w, new_h = max(new_w, width), max(new_h, height)
        else:
            new_w, new_h = min(new_w, width), min(new_h, height)

        try:
            resized = RasterProcessor._resize_to_dimensions(raster, new_w, new_h)
            if crop:
                resized = RasterProcessor.entropy_crop(resized, width, height)
        except Exception as exc:
            logger.error(
                "Resizing %dx%d to %dx%d failed: %s", src_w, src_h, width, height, exc
            )
            raise ResizeError(
                f"Cannot resize {src_w}x{src_h} to {width}x{height}", detail=str(exc)
            ) from exc

        return resized

    @staticmethod
    def entropy_crop(raster: RasterImage, width: int, height: int) -> RasterImage:
        """Trim the lower-entropy edge strip until the image is width x height."""
        left, right = RasterProcessor._entropy_window(
            raster.pixels, raster.width, width, axis=1
        )
        top, bottom = RasterProcessor._entropy_window(
            raster.pixels[:, left:right], raster.height, height, axis=0
        )
        cropped = np.ascontiguousarray(raster.pixels[top:bottom, left:right])
        return RasterImage(cropped, raster.mode)

    @staticmethod
    def to_pil(raster: RasterImage) -> Image.Image:
        data = np.ascontiguousarray(raster.pixels)
        return Image.frombytes(raster.mode, raster.size, data.tobytes())

    @staticmethod
    def from_pil(image: Image.Image) -> RasterImage:
        """Build a RasterImage, expanding palette, bilevel and 16-bit modes."""
        mode = image.mode
        if mode in MODE_CHANNELS:
            return RasterImage(np.array(image, dtype=np.uint8), mode)

        if mode.startswith("I"):
            values = np.asarray(image).astype(np.float64)
            if mode == "I" and values.size and values.max() <= 255:
                scaled = values
            else:
                scaled = values / 257.0
            pixels = np.clip(np.rint(scaled), 0, 255).astype(np.uint8)
            return RasterImage(pixels, "L")
        if mode == "F":
            pixels = np.clip(np.rint(np.asarray(image)), 0, 255).astype(np.uint8)
            return RasterImage(pixels, "L")

        if mode == "1":
            converted = image.convert("L")
        elif mode == "P":
            has_alpha = "transparency" in image.info
            converted = image.convert("RGBA" if has_alpha else "RGB")
        elif mode in ("PA", "RGBa", "RGBX"):
            converted = image.convert("RGBA" if mode != "RGBX" else "RGB")
        elif mode == "La":
            converted = image.convert("LA")
        else:
            converted = image.convert("RGB")
        return RasterImage(np.array(converted, dtype=np.uint8), converted.mode)

    @staticmethod
    def encode_png(raster: RasterImage) -> bytes:
        """Encode as PNG, converting colorspaces PNG cannot carry to sRGB."""
        if raster.mode not in ("L", "LA", "RGB", "RGBA"):
            raster = RasterProcessor.convert_colorspace(raster)
        buffer = io.BytesIO()
        RasterProcessor.to_pil(raster).save(buffer, format="PNG")
        return buffer.getvalue()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _try_decoders(image_bytes: bytes) -> Optional[RasterImage]:
        # OpenCV only sees formats Pillow cannot identify; it has no pixel limit
        try:
            return RasterProcessor._decode_with_pillow(image_bytes)
        except Image.DecompressionBombError as exc:
            logger.warning("Refusing oversized image: %s", exc)
            raise DecodeError(
                "Image exceeds the decoder pixel limit", detail=str(exc)
            ) from exc
        except UnidentifiedImageError as exc:
            logger.debug("Pillow cannot identify image: %s", exc)
        except (OSError, SyntaxError, ValueError) as exc:
            logger.debug("Pillow rejected image: %s", exc)
            raise DecodeError("Corrupted image stream", detail=str(exc)) from exc

        if HAS_CV2:
            return RasterProcessor._decode_with_cv2(image_bytes)
        return None

    @staticmethod
    def _decode_with_pillow(image_bytes: bytes) -> Optional[RasterImage]:
        with Image.open(io.BytesIO(image_bytes)) as pil_image:
            pil_image.load()
            oriented = ImageOps.exif_transpose(pil_image)
            return RasterProcessor.from_pil(oriented)

    @staticmethod
    def _decode_with_cv2(image_bytes: bytes) -> Optional[RasterImage]:
        buffer = np.frombuffer(image_bytes, dtype=np.uint8)
        decoded = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
        if decoded is None:
            return None
        if decoded.dtype == np.uint16:
            decoded = np.clip(np.rint(decoded / 257.0), 0, 255).astype(np.uint8)
        elif decoded.dtype != np.uint8:
            return None
        if decoded.ndim == 2:
            return RasterImage(decoded, "L")
        if decoded.shape[2] == 3:
            return RasterImage(np.ascontiguousarray(decoded[:, :, ::-1]), "RGB")
        if decoded.shape[2] == 4:
            rgba = decoded[:, :, [2, 1, 0, 3]]
            return RasterImage(np.ascontiguousarray(rgba), "RGBA")
        return None

    @staticmethod
    def _resize_to_dimensions(
        raster: RasterImage, width: int, height: int
    ) -> RasterImage:
        if raster.size == (width, height):
            return raster

        shrinking = width * height < raster.width * raster.height
        if HAS_CV2 and raster.mode != "LAB":
            interpolation = cv2.INTER_AREA if shrinking else cv2.INTER_CUBIC
            resized = cv2.resize(
                raster.pixels, (width, height), interpolation=interpolation
            )
            return RasterImage(resized, raster.mode)

        pil_image = RasterProcessor.to_pil(raster)
        resample = Image.Resampling.LANCZOS if shrinking else Image.Resampling.BICUBIC
        resized = pil_image.resize((width, height), resample)
        return RasterImage(np.array(resized, dtype=np.uint8), raster.mode)

    @staticmethod
    def _entropy_window(
        pixels: np.ndarray, length: int, target: int, axis: int
    ) -> Tuple[int, int]:
        start, end = 0, length
        trimmed_start = trimmed_end = 0
        while end - start > target:
            step = min(end - start - target, ENTROPY_STEP)
            if axis == 1:
                head = pixels[:, start : start + step]
                tail = pixels[:, end - step : end]
            else:
                head = pixels[start : start + step]
                tail = pixels[end - step : end]
            head_entropy = RasterProcessor._entropy(head)
            tail_entropy = RasterProcessor._entropy(tail)
            if head_entropy < tail_entropy or (
                head_entropy == tail_entropy and trimmed_start <= trimmed_end
            ):
                start += step
                trimmed_start += step
            else:
                end -= step
                trimmed_end += step
        return start, end

    @staticmethod
    def _entropy(region: np.ndarray) -> float:
        counts = np.bincount(region.ravel(), minlength=256).astype(np.float64)
        total = counts.sum()
        if total == 0:
            return 0.0
        probabilities = counts[counts > 0] / total
        return float(-(probabilities * np.log2(probabilities)).sum())
