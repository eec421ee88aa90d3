import json
import sys

import pytest

from image_qc.exceptions import ToolNotFoundError, ToolTimeoutError
from image_qc.tools.correlate import correlate, normalize_tool_path
from image_qc.tools.exiftool import ExifToolAdapter
from image_qc.tools.process import run_process

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="fake tools are /bin/sh scripts")

# --- Process Runner ---

def test_run_process_captures_output_and_exit_code():
    res = run_process("sh", ["-c", "echo out; echo err >&2; exit 3"], timeout=10)

    assert res.stdout_text == "out\n"
    assert res.stderr_text == "err\n"
    assert res.exit_code == 3

def test_run_process_timeout_kills_child():
    with pytest.raises(ToolTimeoutError) as exc:
        run_process("sh", ["-c", "exec sleep 5"], timeout=0.2)
    assert "timed out" in str(exc.value)

def test_run_process_missing_binary(tmp_path):
    with pytest.raises(ToolNotFoundError):
        run_process(str(tmp_path / "no-such-tool"), [], timeout=5)

# --- Correlation ---

def test_normalize_tool_path():
    assert normalize_tool_path("file:///C:/a%20b/x.tif") == "C:/a b/x.tif"
    assert normalize_tool_path("C:\\shots\\x.tif") == "C:/shots/x.tif"
    assert normalize_tool_path("file:///data/img%231.tif") == "/data/img#1.tif"
    assert normalize_tool_path("/plain/path.tif") == "/plain/path.tif"

def test_correlate_exact_and_suffix():
    matches = correlate(
        ["a/x.tif", "b/y.tif", "/abs/z.tif"],
        ["/abs/z.tif", "/work/a/x.tif", "/work/b/y.tif"],
    )

    assert matches["a/x.tif"].key == "/work/a/x.tif"
    assert matches["a/x.tif"].method == "suffix"
    assert matches["b/y.tif"].key == "/work/b/y.tif"
    assert matches["/abs/z.tif"].method == "exact"

def test_correlate_file_urls_with_normalizer():
    matches = correlate(["/data/a b.tif"], ["file:///data/a%20b.tif"], normalize=normalize_tool_path)
    assert matches["/data/a b.tif"].key == "file:///data/a%20b.tif"

def test_correlate_ambiguous_suffix_takes_first(caplog):
    matches = correlate(["x.tif"], ["/one/x.tif", "/two/x.tif"])

    assert matches["x.tif"].key == "/one/x.tif"
    assert matches["x.tif"].ambiguous
    assert "Ambiguous correlation" in caplog.text

def test_correlate_suffix_needs_component_boundary():
    assert correlate(["x.tif"], ["/w/ax.tif"]) == {}
    assert correlate(["b/x.tif"], ["/w/ab/x.tif"]) == {}
    assert correlate(["x.tif"], ["/w/x.tif"])["x.tif"].key == "/w/x.tif"

def test_correlate_flags_reported_path_claimed_twice(caplog):
    matches = correlate(["/a/x.tif", "/b/x.tif"], ["x.tif"])

    assert matches["/a/x.tif"].key == "x.tif"
    assert matches["/b/x.tif"].key == "x.tif"
    assert matches["/a/x.tif"].ambiguous
    assert matches["/b/x.tif"].ambiguous
    assert "matches 2 requested paths" in caplog.text

def test_correlate_distinct_claims_are_not_flagged():
    matches = correlate(["/a/x.tif", "/b/y.tif"], ["/a/x.tif", "/b/y.tif"])
    assert not any(m.ambiguous for m in matches.values())

def test_correlate_leaves_unmatched_out():
    assert correlate(["/a/missing.tif"], ["/a/other.tif", ""]) == {}

# --- ExifTool adapter ---

def _exif_output(tmp_path, records):
    out = tmp_path / "exif.json"
    out.write_text(json.dumps(records), encoding="utf-8")
    return out

def test_exiftool_batch_success(tmp_path, make_tool):
    a, b = str(tmp_path / "a.jpg"), str(tmp_path / "b.jpg")
    out = _exif_output(tmp_path, [
        {"SourceFile": b, "File:ImageWidth": 100, "File:ImageHeight": 50},
        {"SourceFile": a, "File:ImageWidth": 4000, "File:ImageHeight": 3000, "IFD0:Make": "Sony"},
    ])
    args_log = tmp_path / "args.txt"
    tool = make_tool("exiftool", f'echo "$@" > "{args_log}"\ncat "{out}"')

    results = ExifToolAdapter(exiftool_path=tool).extract_batch([a, b])

    assert results[a].success and results[b].success
    assert results[a].data["IFD0:Make"] == "Sony"
    assert results[b].data["File:ImageWidth"] == 100

    args = args_log.read_text().split()
    assert args[:3] == ["-json", "-G1", "-n"]
    assert args[3] == "-@"
    # argument file is removed after the call
    assert not (tmp_path / args[4]).exists()

def test_exiftool_missing_file_in_output(tmp_path, make_tool):
    a, b = str(tmp_path / "a.jpg"), str(tmp_path / "b.jpg")
    out = _exif_output(tmp_path, [{"SourceFile": a, "File:ImageWidth": 1}])
    tool = make_tool("exiftool", f'cat "{out}"')

    results = ExifToolAdapter(exiftool_path=tool).extract_batch([a, b])

    assert results[a].success
    assert not results[b].success
    assert results[b].error == "No data returned for this file"

def test_exiftool_skipped_file_does_not_take_sibling_data(tmp_path, make_tool):
    sibling = str(tmp_path / "ax.jpg")
    out = _exif_output(tmp_path, [{"SourceFile": sibling, "File:ImageWidth": 1}])
    tool = make_tool("exiftool", f'cat "{out}"')

    results = ExifToolAdapter(exiftool_path=tool).extract_batch(["x.jpg", sibling])

    assert results[sibling].success
    assert not results["x.jpg"].success
    assert results["x.jpg"].error == "No data returned for this file"

def test_exiftool_nonzero_exit_uses_stderr(tmp_path, make_tool):
    a, b = str(tmp_path / "a.jpg"), str(tmp_path / "b.jpg")
    out = _exif_output(tmp_path, [{"SourceFile": a}])
    tool = make_tool("exiftool", f'cat "{out}"\necho "Error: File not found - {b}" >&2\nexit 1')

    results = ExifToolAdapter(exiftool_path=tool).extract_batch([a, b])

    assert results[a].success
    assert results[b].error == f"Error: File not found - {b}"

def test_exiftool_invalid_json_fails_every_file(tmp_path, make_tool):
    tool = make_tool("exiftool", 'echo "this is not json"')
    paths = ["/x/1.jpg", "/x/2.jpg"]

    results = ExifToolAdapter(exiftool_path=tool).extract_batch(paths)

    for p in paths:
        assert not results[p].success
        assert results[p].error == "Failed to parse ExifTool JSON output"
        assert "this is not json" in results[p].raw_output

def test_exiftool_not_installed(tmp_path):
    adapter = ExifToolAdapter(exiftool_path=str(tmp_path / "missing"))

    results = adapter.extract_batch(["/x/1.jpg"])

    assert results["/x/1.jpg"].error == "ExifTool not installed"
    assert not adapter.is_installed()

def test_exiftool_timeout_fails_batch(make_tool):
    tool = make_tool("exiftool", "exec sleep 5")

    results = ExifToolAdapter(exiftool_path=tool, timeout=0.2).extract_batch(["/x/1.jpg", "/x/2.jpg"])

    assert all(not r.success and "timed out" in r.error for r in results.values())

def test_exiftool_single_file_and_version(tmp_path, make_tool):
    a = str(tmp_path / "a.jpg")
    out = _exif_output(tmp_path, [{"SourceFile": a, "File:FileType": "JPEG"}])
    tool = make_tool("exiftool", f'if [ "$1" = "-ver" ]; then echo 12.76; exit 0; fi\ncat "{out}"')
    adapter = ExifToolAdapter(exiftool_path=tool)

    assert adapter.version() == "12.76"
    assert adapter.extract(a).data["File:FileType"] == "JPEG"
    assert adapter.extract_batch([]) == {}

def test_exiftool_extra_tags_are_appended():
    adapter = ExifToolAdapter(tags=["Make", "-Model", " "])
    assert adapter.build_args() == ["-json", "-G1", "-n", "-Make", "-Model"]
