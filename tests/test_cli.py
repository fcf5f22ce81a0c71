import os

import pytest

from osu_mapping_helper import cli, osu_format
from osu_mapping_helper.osu_format import Additions

from conftest import HITSOUND_OSU, TARGET_OSU


def _run(*args: str):
    return cli.main(cli.get_parser().parse_args(list(args)))

@pytest.fixture
def files(tmp_path):
    src = tmp_path / "Artist - Title (mapper) [Hitsounds].osu"
    dst = tmp_path / "Artist - Title (mapper) [Hard].osu"
    src.write_text(HITSOUND_OSU, encoding="utf-8")
    dst.write_text(TARGET_OSU, encoding="utf-8")
    return src, dst


class TestCopyHitsounds:
    def test_copy(self, files):
        src, dst = files
        assert _run("copy-hitsounds", str(src), str(dst)) == [dst]
        result = osu_format.import_file(dst)
        assert result.hit_objects[0].additions == Additions.WHISTLE
        assert [tp.volume for tp in result.timing_points] == [60, 80]
        assert src.read_text(encoding="utf-8") == HITSOUND_OSU

    def test_source_as_destination(self, files):
        src, dst = files
        before = src.read_bytes()
        mtime = os.stat(src).st_mtime_ns
        assert _run("copy-hitsounds", str(src), str(src), str(dst)) == [dst]
        assert src.read_bytes() == before
        assert os.stat(src).st_mtime_ns == mtime

    def test_source_via_other_path(self, files, tmp_path):
        src, _ = files
        link = tmp_path / "link.osu"
        link.symlink_to(src)
        before = src.read_bytes()
        assert _run("copy-hitsounds", str(src), str(link)) == []
        assert src.read_bytes() == before

    def test_leniency(self, files):
        src, dst = files
        _run("copy-hitsounds", "--leniency", "0.0005s", str(src), str(dst))
        # circle at 2001 is 1 ms away from the slider tail at 2000
        assert osu_format.import_file(dst).hit_objects[2].additions == Additions(0)

    def test_no_volumes(self, files):
        src, dst = files
        _run("copy-hitsounds", "--no-volumes", str(src), str(dst))
        assert [tp.volume for tp in osu_format.import_file(dst).timing_points] == [100]

    def test_reset(self, files):
        src, dst = files
        dst.write_text(TARGET_OSU.replace("100,100,2800,1,0,0:0:0:0:", "100,100,2800,1,8,3:3:0:0:"), encoding="utf-8")
        _run("copy-hitsounds", "--reset", str(src), str(dst))
        unmatched = osu_format.import_file(dst).hit_objects[4]
        assert unmatched.start_time == 2800
        assert unmatched.additions == Additions(0)
        assert unmatched.sample_info == osu_format.SampleInfo()

    def test_missing_file(self, files, tmp_path):
        src, _ = files
        with pytest.raises(RuntimeError, match="not a file"):
            _run("copy-hitsounds", str(src), str(tmp_path / "missing.osu"))

    def test_invalid_file_writes_nothing(self, files, tmp_path):
        src, dst = files
        broken = tmp_path / "broken.osu"
        broken.write_text(TARGET_OSU.replace("100,100,500,1,0,0:0:0:0:", "100,100,500"), encoding="utf-8")
        with pytest.raises(RuntimeError, match="Could not parse"):
            _run("copy-hitsounds", str(src), str(dst), str(broken))
        assert dst.read_text(encoding="utf-8") == TARGET_OSU

    def test_unresolvable_slider_writes_nothing(self, files, tmp_path):
        src, dst = files
        # only an inherited timing point, slider durations cannot be calculated
        no_timing = tmp_path / "no_timing.osu"
        no_timing.write_text(TARGET_OSU.replace("0,500,4,1,0,100,1,0", "0,-100,4,1,0,100,0,0"), encoding="utf-8")
        with pytest.raises(RuntimeError, match="nothing was saved"):
            _run("copy-hitsounds", str(src), str(dst), str(no_timing))
        assert dst.read_text(encoding="utf-8") == TARGET_OSU


class TestResetHitsounds:
    def test_reset(self, files):
        src, _ = files
        assert _run("reset-hitsounds", str(src)) == [src]
        beatmap = osu_format.import_file(src)
        assert all(obj.additions == Additions(0) for obj in beatmap.hit_objects)
        assert beatmap.hit_objects[1].kind.edge_additions == [Additions(0)] * 3


class TestParser:
    def test_defaults(self):
        options = cli.get_parser().parse_args(["copy-hitsounds", "a.osu", "b.osu", "c.osu"])
        assert options.leniency == 2
        assert [p.name for p in options.dsts] == ["b.osu", "c.osu"]
        assert not options.slider_body

    @pytest.mark.parametrize(("value", "expected"), [("5", 5), ("5ms", 5), ("0.005s", 5), ("1/2", 0.5)])
    def test_leniency_formats(self, value, expected):
        options = cli.get_parser().parse_args(["copy-hitsounds", "-l", value, "a.osu", "b.osu"])
        assert options.leniency == pytest.approx(expected)

    def test_negative_leniency(self):
        with pytest.raises(SystemExit):
            cli.get_parser().parse_args(["copy-hitsounds", "--leniency=-1", "a.osu", "b.osu"])
