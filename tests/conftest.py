import zipfile

import pytest

from docx_factory import base_parts, build_docx


@pytest.fixture
def parts():
    return base_parts()


@pytest.fixture
def write_docx(tmp_path):
    def _write(parts: dict, name="sample.docx", compression=zipfile.ZIP_DEFLATED):
        path = tmp_path / name
        path.write_bytes(build_docx(parts, compression))
        return path
    return _write
