import zipfile

import pytest

import docscrub
from cleanup import delete_files, find_generated_files
from docx_factory import IMAGE_TYPE, STYLES_TYPE, base_parts, rels_xml
from errors import IoFailure


def _parts_with_orphan() -> dict:
    parts = base_parts()
    parts["word/_rels/document.xml.rels"] = rels_xml(("rId1", STYLES_TYPE, "styles.xml"))
    parts["word/media/orphan.png"] = b"\x89PNG" + b"\x00" * 4096
    return parts


def _run(argv) -> int:
    with pytest.raises(SystemExit) as excinfo:
        docscrub.main(argv)
    return excinfo.value.code


def test_optimize_writes_sibling_file(write_docx, capsys):
    source = write_docx(_parts_with_orphan(), compression=zipfile.ZIP_STORED)

    assert _run(["optimize", str(source), "--remove-unused-media"]) == 0

    output = source.with_name("sample_optimized.docx")
    assert output.exists()
    with zipfile.ZipFile(output) as zf:
        assert "word/media/orphan.png" not in zf.namelist()
    out = capsys.readouterr().out
    assert "Successfully wrote file: sample_optimized.docx" in out
    assert "Written: 1" in out


def test_optimize_overwrite_asks_first(write_docx, monkeypatch, capsys):
    source = write_docx(_parts_with_orphan(), compression=zipfile.ZIP_STORED)
    original = source.read_bytes()
    monkeypatch.setattr("builtins.input", lambda _: "n")

    assert _run(["optimize", str(source), "--remove-unused-media", "--overwrite"]) == 0

    assert source.read_bytes() == original
    assert "Operation aborted by user." in capsys.readouterr().out


def test_optimize_overwrite_with_force(write_docx):
    source = write_docx(_parts_with_orphan(), compression=zipfile.ZIP_STORED)

    assert _run(["optimize", str(source), "--remove-unused-media", "--overwrite", "-y"]) == 0

    with zipfile.ZipFile(source) as zf:
        assert "word/media/orphan.png" not in zf.namelist()
    assert not source.with_name("sample_optimized.docx").exists()


def test_optimize_reports_failures(tmp_path, capsys):
    (tmp_path / "broken.docx").write_bytes(b"not a zip")

    assert _run(["optimize", str(tmp_path)]) == 1
    assert "Failed: 1" in capsys.readouterr().out


def test_optimize_missing_path(tmp_path, capsys):
    assert _run(["optimize", str(tmp_path / "nope")]) == 1
    assert "Error:" in capsys.readouterr().err


def test_optimize_rejects_bad_quality(write_docx, capsys):
    source = write_docx(base_parts())
    assert _run(["optimize", str(source), "--image-quality", "0"]) == 1
    assert "image_quality" in capsys.readouterr().err


def test_optimize_reads_config_file(tmp_path, write_docx):
    source = write_docx(_parts_with_orphan(), compression=zipfile.ZIP_STORED)
    config = tmp_path / "settings.yaml"
    config.write_text("optimize:\n  removeUnusedMedia: true\n  cleanStyles: false\n")

    assert _run(["optimize", str(source), "-c", str(config)]) == 0

    with zipfile.ZipFile(source.with_name("sample_optimized.docx")) as zf:
        assert "word/media/orphan.png" not in zf.namelist()


def test_load_config_missing_file_exits(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        docscrub.load_config(tmp_path / "missing.yaml")
    assert excinfo.value.code == 1


def test_ask_for_confirmation():
    assert docscrub.ask_for_confirmation("? ", input_fn=lambda _: " Yes ")
    assert not docscrub.ask_for_confirmation("? ", input_fn=lambda _: "")


def test_clean_deletes_generated_files(tmp_path):
    keep = tmp_path / "report.docx"
    generated = [tmp_path / "report_optimized.docx", tmp_path / "report_rebuilt.docx",
                 tmp_path / "report_03.docx"]
    for path in [keep, *generated]:
        path.write_bytes(b"")

    assert _run(["clean", str(tmp_path), "-y"]) == 0

    assert keep.exists()
    assert not any(path.exists() for path in generated)


def test_clean_aborts_without_confirmation(tmp_path, monkeypatch):
    generated = tmp_path / "report_optimized.docx"
    generated.write_bytes(b"")
    monkeypatch.setattr(docscrub, "ask_for_confirmation", lambda question: False)

    assert _run(["clean", str(tmp_path)]) == 0
    assert generated.exists()


def test_clean_requires_directory(tmp_path):
    with pytest.raises(IoFailure):
        find_generated_files(tmp_path / "report.docx")
    assert _run(["clean", str(tmp_path / "report.docx"), "-y"]) == 1


def test_delete_files_continues_after_failure(tmp_path):
    present = tmp_path / "a_optimized.docx"
    present.write_bytes(b"")
    missing = tmp_path / "b_optimized.docx"

    result = delete_files([missing, present])

    assert result.deleted == [present]
    assert [path for path, _ in result.failed] == [missing]


@pytest.mark.parametrize("content", [
    "- optimize\n- clean\n",
    "just a string\n",
    "optimize:\n  - removeUnusedMedia\n",
    "optimize:\n  jobs: many\n",
])
def test_optimize_reports_malformed_config(tmp_path, write_docx, capsys, content):
    source = write_docx(base_parts())
    config = tmp_path / "bad.yaml"
    config.write_text(content)

    assert _run(["optimize", str(source), "-c", str(config)]) == 1
    assert "Error:" in capsys.readouterr().err
    assert not source.with_name("sample_optimized.docx").exists()
