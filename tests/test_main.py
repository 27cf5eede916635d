import json

import numpy as np
import pytest

import main
from main import _coerce, _infer_format_from_path, _parse_kv_pairs, read_source
from pixels import decode


@pytest.fixture
def src_png(tmp_path, png_bytes, scene_rgb):
    p = tmp_path / "render.png"
    p.write_bytes(png_bytes(scene_rgb))
    return p


def test_coerce():
    assert _coerce("3") == 3
    assert _coerce("1.25") == 1.25
    assert _coerce("-2") == -2.0
    assert _coerce("TRUE") is True
    assert _coerce("false") is False
    assert _coerce("null") is None
    assert _coerce("teal-orange") == "teal-orange"


def test_parse_kv_pairs():
    assert _parse_kv_pairs(None) == {}
    assert _parse_kv_pairs(["sharpen=1.3", "filmGrain=true", " shadow_tint = 1,2,3 "]) == {
        "sharpen": 1.3,
        "filmGrain": True,
        "shadow_tint": "1,2,3",
    }
    with pytest.raises(ValueError):
        _parse_kv_pairs(["sharpen"])


@pytest.mark.parametrize("name,fmt", [
    ("a.png", "PNG"), ("a.WEBP", "WEBP"), ("a.tif", "TIFF"), ("a.jpg", "JPEG"), ("a", "PNG"),
])
def test_infer_format_from_path(tmp_path, name, fmt):
    assert _infer_format_from_path(tmp_path / name) == fmt


def test_list(capsys):
    assert main.main(["list"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert [line.split()[0] for line in lines] == ["artistic", "cinematic", "clean", "photorealistic"]
    assert "Cinematic Polish" in lines[1]


def test_show(capsys):
    assert main.main(["show", "Cinematic"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["color_grade"] == "teal-orange"
    assert data["shadow_lift"] == 8.0
    assert data["stages"][-1] == "vignette"


def test_show_unknown_preset():
    assert main.main(["show", "nope"]) == 1


def test_run_writes_refined_png(tmp_path, src_png):
    out = tmp_path / "out" / "refined.png"
    assert main.main(["run", "--url", str(src_png), "--preset", "photorealistic", "--out", str(out)]) == 0
    buf = decode(out.read_bytes())
    assert buf.size == (40, 30)


def test_run_accepts_file_url(tmp_path, src_png):
    out = tmp_path / "refined.webp"
    assert main.main(["run", "--url", src_png.as_uri(), "--out", str(out)]) == 0
    assert out.read_bytes()[:4] == b"RIFF"


def test_run_with_grain_is_reproducible(tmp_path, src_png):
    outs = []
    for i in range(2):
        out = tmp_path / f"grain{i}.png"
        argv = ["run", "--url", str(src_png), "--out", str(out), "--seed", "3", "--extra", "film_grain=true"]
        assert main.main(argv) == 0
        outs.append(decode(out.read_bytes()).channels)
    assert np.array_equal(outs[0], outs[1])


def test_run_unknown_preset_falls_back(tmp_path, src_png):
    a, b = tmp_path / "a.png", tmp_path / "b.png"
    assert main.main(["run", "--url", str(src_png), "--out", str(a)]) == 0
    assert main.main(["run", "--url", str(src_png), "--preset", "ghost", "--out", str(b)]) == 0
    assert a.read_bytes() == b.read_bytes()


def test_run_undecodable_input(tmp_path):
    bad = tmp_path / "bad.png"
    bad.write_bytes(b"not an image")
    assert main.main(["run", "--url", str(bad), "--out", str(tmp_path / "o.png")]) == 2
    assert not (tmp_path / "o.png").exists()


def test_run_refuses_lossy_output(tmp_path, src_png):
    out = tmp_path / "o.jpg"
    assert main.main(["run", "--url", str(src_png), "--out", str(out)]) == 1
    assert not out.exists()


def test_run_bad_override(tmp_path, src_png):
    argv = ["run", "--url", str(src_png), "--out", str(tmp_path / "o.png"), "--extra", "bogus=1"]
    assert main.main(argv) == 1


def test_run_missing_input(tmp_path):
    assert main.main(["run", "--url", str(tmp_path / "missing.png"), "--out", str(tmp_path / "o.png")]) == 1


def test_presets_file(tmp_path, capsys):
    pf = tmp_path / "looks.json"
    pf.write_text(json.dumps({"Moody": {"name": "Moody Night", "contrast": 1.3, "filmGrain": True}}))
    assert main.main(["--presets-file", str(pf), "list"]) == 0
    assert "moody" in capsys.readouterr().out
    assert main.main(["--presets-file", str(pf), "show", "moody"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["label"] == "Moody Night"
    assert "film_grain" in data["stages"]


def test_bad_presets_file(tmp_path):
    pf = tmp_path / "looks.json"
    pf.write_text("[1, 2]")
    assert main.main(["--presets-file", str(pf), "list"]) == 1


def test_bench(capsys, src_png):
    assert main.main(["bench", "--url", str(src_png), "--preset", "cinematic", "--runs", "2"]) == 0
    assert "cinematic 40x30: 2 run(s)" in capsys.readouterr().out


def test_read_source_local_path_and_file_url(src_png):
    raw, ctype = read_source(str(src_png))
    assert ctype == "image/png"
    assert read_source(src_png.as_uri()) == (raw, ctype)


@pytest.mark.parametrize("url", ["https://example.com/a.png", "ftp://example.com/a.png"])
def test_read_source_rejects_remote_urls(url):
    with pytest.raises(ValueError):
        read_source(url)


def test_read_source_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_source(str(tmp_path / "nope.png"))


def test_run_remote_url_is_a_config_error(tmp_path):
    argv = ["run", "--url", "https://example.com/render.png", "--out", str(tmp_path / "o.png")]
    assert main.main(argv) == 1
    assert not (tmp_path / "o.png").exists()
