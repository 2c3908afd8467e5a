"""Workbook layout and thumbnail embedding."""

import io
import zipfile

from openpyxl import load_workbook

from conftest import png_bytes
from takealot_export.excel_writer import HEADERS, write, write_products_to_excel
from takealot_export.types import DetailRow


def rows(count: int):
    return [
        DetailRow(
            title=f"Product {i}",
            brand="Acme",
            sku=str(1000 + i),
            price=99.0 + i,
            rating=4.5,
            review_count=i,
            image_url=f"https://media.takealot.com/covers/zoom/{i}.jpg",
            category_label="Garden",
            url=f"https://www.takealot.com/product-{i}/PLID{i}",
        )
        for i in range(count)
    ]


def media_entries(payload: bytes):
    with zipfile.ZipFile(io.BytesIO(payload)) as archive:
        return [name for name in archive.namelist() if name.startswith("xl/media/")]


class TestWrite:
    def test_one_row_per_product_and_missing_image_skipped(self):
        data = rows(10)
        images = {row.image_url: png_bytes((i * 20, 0, 0)) for i, row in enumerate(data)}
        images[data[4].image_url] = None

        payload = write(data, images.get)

        ws = load_workbook(io.BytesIO(payload)).active
        assert ws.max_row == 11
        assert len(media_entries(payload)) == 9

    def test_header_and_values(self):
        payload = write(rows(1))

        ws = load_workbook(io.BytesIO(payload)).active
        assert [c.value for c in ws[1]] == HEADERS
        assert ws["A2"].value == "Product 0"
        assert ws["C2"].value == "1000"
        assert ws["D2"].value == 99.0
        assert ws["H2"].value == "Garden"
        assert ws.freeze_panes == "A2"

    def test_undecodable_image_is_skipped(self):
        data = rows(2)
        images = {data[0].image_url: b"not an image", data[1].image_url: png_bytes()}

        payload = write(data, images.get)

        assert load_workbook(io.BytesIO(payload)).active.max_row == 3
        assert len(media_entries(payload)) == 1

    def test_row_without_image_url_never_resolved(self):
        data = rows(1)
        data[0].image_url = ""
        calls = []

        write(data, lambda url: calls.append(url))
        assert calls == []


class TestTemplate:
    def test_rows_appended_after_template_content(self, tmp_path):
        template = tmp_path / "template.xlsx"
        write_products_to_excel(rows(2), str(template))
        out = tmp_path / "out.xlsx"

        write_products_to_excel(rows(3), str(out), template_path=str(template))

        assert load_workbook(out).active.max_row == 6
        assert load_workbook(template).active.max_row == 3

    def test_missing_template_starts_fresh(self, tmp_path):
        out = tmp_path / "out.xlsx"

        write_products_to_excel(rows(1), str(out), template_path=str(tmp_path / "nope.xlsx"))

        ws = load_workbook(out).active
        assert ws.title == "Products"
        assert ws.max_row == 2
