"""
Builds the downloadable PDF: one A4 page per image, crop-to-fill.

Geometry (PDF points, origin bottom-left):
  - image wider than the page ratio: height = page height, width overflows,
    centered horizontally (negative x)
  - otherwise: width = page width, height overflows, centered vertically
Whatever falls outside the page box is cut off by the viewer, so there are no
borders.

Undecodable buffers are logged and skipped; the rest of the document is kept.
"""

import io
import logging
import tempfile
from dataclasses import dataclass
from typing import BinaryIO, Iterable, Iterator, Tuple

from PIL import Image
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

logger = logging.getLogger("preview.assembler")

PAGE_SIZE: Tuple[float, float] = (595.0, 842.0) # A4 at 72 dpi, whole points
CHUNK_SIZE = 64 * 1024
SPOOL_MAX = 8 * 1024 * 1024 # keep small documents in memory, spill bigger ones to disk

@dataclass(frozen=True)
class Placement:
    x: float
    y: float
    width: float
    height: float

def crop_to_fill(img_w: float, img_h: float, page_w: float, page_h: float) -> Placement:
    if img_w <= 0 or img_h <= 0:
        raise ValueError(f"invalid image size {img_w}x{img_h}")
    img_ratio = img_w / img_h
    page_ratio = page_w / page_h
    if img_ratio > page_ratio:
        height = page_h
        width = page_h * img_ratio
        return Placement(x=(page_w - width) / 2, y=0.0, width=width, height=height)
    width = page_w
    height = page_w / img_ratio
    return Placement(x=0.0, y=(page_h - height) / 2, width=width, height=height)

def _open_image(data: bytes) -> Tuple[int, int]:
    """
    Fully decode the buffer with Pillow and return its pixel size.
    Raises OSError/ValueError on anything Pillow cannot read.
    """
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        return img.size

def write_document(buffers: Iterable[bytes], out: BinaryIO,
                   page_size: Tuple[float, float] = PAGE_SIZE) -> int:
    """
    Draw each decodable buffer on its own page and write the PDF to `out`.
    Returns the number of pages written.
    """
    page_w, page_h = page_size
    c = canvas.Canvas(out, pagesize=page_size)
    pages = 0
    for i, data in enumerate(buffers):
        try:
            img_w, img_h = _open_image(data)
            box = crop_to_fill(img_w, img_h, page_w, page_h)
            c.drawImage(ImageReader(io.BytesIO(data)), box.x, box.y,
                        width=box.width, height=box.height)
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            logger.warning("Skipping image %s: %s", i, e)
            continue
        c.showPage()
        pages += 1
    c.save()
    logger.info("Assembled PDF with %s pages", pages)
    return pages

def build_document(buffers: Iterable[bytes],
                   page_size: Tuple[float, float] = PAGE_SIZE) -> BinaryIO:
    """
    Render into a spooled temp file (memory up to SPOOL_MAX, disk beyond)
    and return it rewound. The caller owns the returned file.

    The whole document is rendered before the first byte is sent: reportlab
    writes the cross-reference table only in save(), so pages cannot go out
    one by one while later pages are drawn. Streaming starts after rendering,
    in CHUNK_SIZE pieces via iter_chunks(), and large documents spill to disk
    rather than being held twice in memory.
    """
    spool = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX)
    try:
        write_document(buffers, spool, page_size)
    except BaseException:
        spool.close()
        raise
    spool.seek(0)
    return spool

def iter_chunks(fh: BinaryIO, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """
    Yield the file in chunks and close it when exhausted (or abandoned).
    """
    try:
        while True:
            chunk = fh.read(chunk_size)
            if not chunk:
                break
            yield chunk
    finally:
        fh.close()
