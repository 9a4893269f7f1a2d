"""Built-in in-process codecs."""

from __future__ import annotations

import importlib.util
import logging
from pathlib import Path

from doc_converter.application.results import ConversionResult
from doc_converter.types import FailureKind

logger = logging.getLogger(__name__)

IMAGE_INPUTS = ("jpg", "jpeg", "png", "gif", "bmp", "tiff", "tif")
IMAGE_TARGETS: dict[str, str] = {
    "png": "PNG",
    "jpg": "JPEG",
    "bmp": "BMP",
    "pdf": "PDF",
}
# Pillow modes that JPEG/BMP/PDF writers cannot store directly.
_NEEDS_RGB = {"RGBA", "LA", "P", "PA", "CMYK", "I", "I;16", "F"}
_ALIASES = {"jpeg": "jpg", "tif": "tiff"}


def _missing_dependency(
    import_name: str, extra: str, method: str
) -> ConversionResult | None:
    """Return a failed result if an optional dependency is not importable."""
    if importlib.util.find_spec(import_name) is not None:
        return None
    return ConversionResult.failed(
        FailureKind.MISSING_RUNTIME_DEPENDENCY,
        f"Missing optional dependency '{import_name}'. "
        f'Install extra: pip install "doc-converter[{extra}]"',
        method=method,
    )


def _missing_input(input_path: Path, method: str) -> ConversionResult | None:
    if input_path.is_file() and input_path.stat().st_size > 0:
        return None
    return ConversionResult.failed(
        FailureKind.INPUT_MISSING,
        f"Input file is missing or empty: {input_path.name}",
        method=method,
    )


class PdfTextCodec:
    """Extract plain text from a PDF, one block per page."""

    name = "pdf_text"
    method = "pypdf"
    conversions = frozenset({"pdf-txt"})

    def convert(self, input_path: Path, output_path: Path) -> ConversionResult:
        """Write the text of every page of ``input_path`` to ``output_path``."""
        failed = _missing_input(input_path, self.method) or _missing_dependency(
            "pypdf", "codecs", self.method
        )
        if failed is not None:
            return failed

        from pypdf import PdfReader
        from pypdf.errors import PdfReadError

        try:
            reader = PdfReader(str(input_path))
            pages = [(page.extract_text() or "").strip() for page in reader.pages]
        except (PdfReadError, OSError, ValueError) as exc:
            return ConversionResult.failed(
                FailureKind.HANDLER_FAILED,
                f"Cannot extract text from {input_path.name}: {exc}",
                method=self.method,
            )

        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text("\n\n".join(p for p in pages if p) + "\n", encoding="utf-8")
        logger.info("extracted text from %d page(s) of %s", len(pages), input_path.name)
        return ConversionResult.ok(output_path, method=self.method)


class ImageCodec:
    """Re-encode raster images into ``target`` with Pillow.

    Parameters
    ----------
    target : str
        One of ``IMAGE_TARGETS``.
    """

    method = "Pillow"

    def __init__(self, target: str) -> None:
        if target not in IMAGE_TARGETS:
            raise ValueError(f"unsupported image target: {target}")
        self.target = target
        self.name = f"image_{target}"
        self.conversions = frozenset(
            f"{source}-{target}"
            for source in IMAGE_INPUTS
            if _ALIASES.get(source, source) != target
        )

    def convert(self, input_path: Path, output_path: Path) -> ConversionResult:
        """Convert ``input_path`` into ``output_path`` in the target format."""
        failed = _missing_input(input_path, self.method) or _missing_dependency(
            "PIL", "codecs", self.method
        )
        if failed is not None:
            return failed

        from PIL import Image, ImageSequence, UnidentifiedImageError

        pil_format = IMAGE_TARGETS[self.target]
        output_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with Image.open(input_path) as image:
                if pil_format == "PDF" and getattr(image, "n_frames", 1) > 1:
                    frames = [
                        self._prepare(frame.copy(), pil_format)
                        for frame in ImageSequence.Iterator(image)
                    ]
                    frames[0].save(
                        output_path,
                        format=pil_format,
                        save_all=True,
                        append_images=frames[1:],
                    )
                else:
                    self._prepare(image, pil_format).save(output_path, format=pil_format)
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            return ConversionResult.failed(
                FailureKind.HANDLER_FAILED,
                f"Cannot convert {input_path.name} to {self.target}: {exc}",
                method=self.method,
            )
        return ConversionResult.ok(output_path, method=self.method)

    @staticmethod
    def _prepare(image: object, pil_format: str) -> object:
        mode = getattr(image, "mode", "RGB")
        if pil_format != "PNG" and mode in _NEEDS_RGB:
            return image.convert("RGB")  # type: ignore[attr-defined]
        return image


def builtin_codecs() -> list[PdfTextCodec | ImageCodec]:
    """Return instances of every built-in codec."""
    return [PdfTextCodec(), *(ImageCodec(target) for target in IMAGE_TARGETS)]
