from __future__ import annotations

import io
import logging
import os
from typing import Callable, Iterable, Optional

from openpyxl import Workbook, load_workbook
from openpyxl.drawing.image import Image as XLImage
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet
from PIL import UnidentifiedImageError

from .config import THUMBNAIL_ROW_HEIGHT, THUMBNAIL_SIZE
from .types import DetailRow

logger = logging.getLogger(__name__)

ImageResolver = Callable[[str], Optional[bytes]]

SHEET_TITLE = "Products"

HEADERS = [
    "title",
    "brand",
    "sku",
    "price",
    "rating",
    "reviews",
    "image",
    "category/subcategory",
    "url",
]
IMAGE_COLUMN = HEADERS.index("image") + 1

HEADER_FONT = Font(bold=True, color="FFFFFF")
HEADER_FILL = PatternFill(fill_type="solid", start_color="0F172A", end_color="0F172A")
MIN_COLUMN_WIDTH = 10
MAX_COLUMN_WIDTH = 80


def _row_values(row: DetailRow) -> list:
    return [
        row.title,
        row.brand,
        row.sku,
        row.price,
        row.rating,
        row.review_count,
        "",
        row.category_label,
        row.url,
    ]


def _ensure_sheet(wb_path: Optional[str]) -> tuple[Workbook, Worksheet]:
    if wb_path and os.path.exists(wb_path):
        wb = load_workbook(wb_path)
        return wb, wb.active
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE
    return wb, ws


def _write_header(ws: Worksheet) -> None:
    for col_idx, title in enumerate(HEADERS, start=1):
        cell = ws.cell(row=1, column=col_idx, value=title)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center")
    ws.freeze_panes = "A2"


def _embed_image(ws: Worksheet, data: bytes, row_idx: int) -> bool:
    try:
        image = XLImage(io.BytesIO(data))
    except (UnidentifiedImageError, OSError, ValueError) as error:
        logger.warning("Skipping undecodable image for row %d: %s", row_idx, error)
        return False
    image.width = THUMBNAIL_SIZE
    image.height = THUMBNAIL_SIZE
    ws.add_image(image, f"{get_column_letter(IMAGE_COLUMN)}{row_idx}")
    ws.row_dimensions[row_idx].height = THUMBNAIL_ROW_HEIGHT
    return True


def _autosize_columns(ws: Worksheet) -> None:
    for col_idx, column in enumerate(ws.iter_cols(min_row=1, max_row=ws.max_row), start=1):
        longest = max((len(str(c.value)) for c in column if c.value is not None), default=0)
        width = min(max(longest, MIN_COLUMN_WIDTH), MAX_COLUMN_WIDTH) + 2
        ws.column_dimensions[get_column_letter(col_idx)].width = width
    # thumbnails are 100px wide, roughly 14 character units
    image_col = ws.column_dimensions[get_column_letter(IMAGE_COLUMN)]
    image_col.width = max(image_col.width or 0, 16)


def build_workbook(
    rows: Iterable[DetailRow],
    image_resolver: Optional[ImageResolver] = None,
    template_path: Optional[str] = None,
) -> Workbook:
    """Fill a worksheet with one row per product plus embedded thumbnails.

    A row whose image cannot be resolved is still written, just without
    the picture.
    """
    wb_path_to_open = template_path if (template_path and os.path.exists(template_path)) else None
    wb, ws = _ensure_sheet(wb_path_to_open)

    if ws.max_row == 1 and ws.max_column == 1 and ws.cell(row=1, column=1).value is None:
        _write_header(ws)

    start_row = ws.max_row + 1
    written = embedded = 0
    for row_idx, row in enumerate(rows, start=start_row):
        for col_idx, value in enumerate(_row_values(row), start=1):
            ws.cell(row=row_idx, column=col_idx).value = value
        written += 1

        if not row.image_url or image_resolver is None:
            continue
        data = image_resolver(row.image_url)
        if not data:
            logger.warning("Failed to insert image for product sku: %s", row.sku)
            continue
        if _embed_image(ws, data, row_idx):
            embedded += 1

    _autosize_columns(ws)
    logger.info("Wrote %d rows with %d images", written, embedded)
    return wb


def write(
    rows: Iterable[DetailRow],
    image_resolver: Optional[ImageResolver] = None,
    template_path: Optional[str] = None,
) -> bytes:
    wb = build_workbook(rows, image_resolver, template_path)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def write_products_to_excel(
    rows: Iterable[DetailRow],
    out_path: str,
    image_resolver: Optional[ImageResolver] = None,
    template_path: Optional[str] = None,
) -> None:
    wb = build_workbook(rows, image_resolver, template_path)
    # Always save to out_path, never over the template
    wb.save(out_path)
    logger.info("Products written to %s", out_path)
