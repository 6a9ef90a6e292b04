"""Image processing skill - upload validation, resizing and data URL helpers."""
from .process_image import (
    ProcessedImage,
    validate_image_file,
    detect_mime_type,
    process_image_for_gemini,
    convert_to_jpeg,
    bytes_to_data_url,
    is_data_url,
    parse_data_url,
    data_url_to_bytes,
    load_image_source,
    add_watermark,
    generate_filename,
)
from .media_handles import create_media_handle, is_media_handle, release_media_handle

__all__ = [
    "create_media_handle",
    "is_media_handle",
    "release_media_handle",
    "ProcessedImage",
    "validate_image_file",
    "detect_mime_type",
    "process_image_for_gemini",
    "convert_to_jpeg",
    "bytes_to_data_url",
    "is_data_url",
    "parse_data_url",
    "data_url_to_bytes",
    "load_image_source",
    "add_watermark",
    "generate_filename",
]
