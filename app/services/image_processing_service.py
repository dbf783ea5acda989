from dataclasses import dataclass
from io import BytesIO
import base64
import logging

from PIL import Image, UnidentifiedImageError

from app.core.config import settings
from app.core.exceptions import InvalidImageError
from app.schemas.skin_analysis import ALLOWED_IMAGE_FORMATS

logger = logging.getLogger(__name__)

OUTPUT_MIME_TYPE = "image/jpeg"


@dataclass(frozen=True)
class NormalizedImage:
    data: bytes
    width: int
    height: int
    mime_type: str = OUTPUT_MIME_TYPE

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    @property
    def data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"


class ImageProcessingService:
    def __init__(
        self,
        max_bytes: int = settings.MAX_IMAGE_BYTES,
        max_dimension: int = settings.MAX_IMAGE_DIMENSION,
        quality: int = settings.IMAGE_JPEG_QUALITY,
        max_pixels: int = settings.MAX_IMAGE_PIXELS,
    ):
        self.max_bytes = max_bytes
        self.max_dimension = max_dimension
        self.quality = quality
        self.max_pixels = max_pixels

    def validate_image(self, image_bytes: bytes, mime_type: str) -> None:
        """
        Check upload size and declared type. Raises InvalidImageError.
        """
        if len(image_bytes) > self.max_bytes:
            raise InvalidImageError(
                f"Image too large. Max size is {self.max_bytes // (1024 * 1024)}MB"
            )

        image_format = (mime_type or "").lower().split("/")[-1].strip()
        if image_format not in ALLOWED_IMAGE_FORMATS:
            raise InvalidImageError(
                f"Invalid image format. Allowed: {', '.join(ALLOWED_IMAGE_FORMATS)}"
            )

    def normalize(self, image_bytes: bytes, mime_type: str) -> NormalizedImage:
        """
        Validate, bound to max_dimension (never enlarging) and re-encode as JPEG.

        Same input bytes always give the same output bytes.
        """
        self.validate_image(image_bytes, mime_type)

        try:
            image = Image.open(BytesIO(image_bytes))
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
            raise InvalidImageError("Could not decode image") from e

        # Only the header has been read so far
        if image.width * image.height > self.max_pixels:
            raise InvalidImageError(
                f"Image too large. Max resolution is {self.max_pixels:,} pixels"
            )

        try:
            image.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
            raise InvalidImageError("Could not decode image") from e

        image = self._to_rgb(image)
        image = self._bound_dimensions(image)

        buffer = BytesIO()
        image.save(buffer, format="JPEG", quality=self.quality, optimize=True)
        data = buffer.getvalue()

        logger.info(f"Image processed: {len(image_bytes)} -> {len(data)} bytes ({image.width}x{image.height})")

        return NormalizedImage(data=data, width=image.width, height=image.height)

    def _to_rgb(self, image: Image.Image) -> Image.Image:
        # Flatten transparency onto white
        if image.mode in ('RGBA', 'LA', 'P'):
            if image.mode != 'RGBA':
                image = image.convert('RGBA')
            background = Image.new('RGB', image.size, (255, 255, 255))
            background.paste(image, mask=image.split()[-1])
            return background
        if image.mode != 'RGB':
            return image.convert('RGB')
        return image

    def _bound_dimensions(self, image: Image.Image) -> Image.Image:
        width, height = image.size
        longest = max(width, height)
        if longest <= self.max_dimension:
            return image

        scale = self.max_dimension / longest
        if width >= height:
            new_size = (self.max_dimension, max(1, round(height * scale)))
        else:
            new_size = (max(1, round(width * scale)), self.max_dimension)

        return image.resize(new_size, Image.Resampling.LANCZOS)


image_processing_service = ImageProcessingService()
