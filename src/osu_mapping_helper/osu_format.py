from contextlib import contextmanager
import dataclasses
from enum import IntEnum, IntFlag
import logging
import math
from pathlib import Path
from typing import Generator, Union

import numpy as np

from osu_mapping_helper.utils import ms_to_second

logger = logging.getLogger("OMH")

DEFAULT_FORMAT_VERSION = 14
DEFAULT_SLIDER_MULTIPLIER = 1.4

# sections that are parsed into objects, everything else is kept verbatim
TIMING_POINTS_SECTION = "TimingPoints"
HIT_OBJECTS_SECTION = "HitObjects"

# hit object type bits
TYPE_CIRCLE = 1
TYPE_SLIDER = 2
TYPE_NEW_COMBO = 4
TYPE_SPINNER = 8
TYPE_COMBO_SKIP_SHIFT = 4
TYPE_COMBO_SKIP_MASK = 0b111
TYPE_HOLD = 128

# timing point effect bits
EFFECT_KIAI = 1
EFFECT_OMIT_FIRST_BARLINE = 8


class SampleSet(IntEnum):
    NONE = 0  # inherit
    NORMAL = 1
    SOFT = 2
    DRUM = 3


class Additions(IntFlag):
    NORMAL = 1
    WHISTLE = 2
    FINISH = 4
    CLAP = 8


class OsuParseError(ValueError):
    def __init__(self, line: str, t: str) -> None:
        super().__init__()
        self.line = line
        self.type = t

    def __str__(self) -> str:
        return f"Error while parsing {self.type}: {self.line!r}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self})"


class SliderDurationError(ValueError):
    def __init__(self, obj: "HitObject", reason: str) -> None:
        super().__init__()
        self.obj = obj
        self.reason = reason

    def __str__(self) -> str:
        return f"Failed to get slider duration for slider at {self.obj.start_time} ms: {self.reason}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self})"


def _format_number(val: float) -> str:
    # osu writes integers without a decimal point
    if float(val).is_integer():
        return str(int(val))
    return repr(float(val))

def _parse_sample_set(val: str, line: str, t: str) -> SampleSet:
    try:
        return SampleSet(int(val))
    except ValueError as exc:
        raise OsuParseError(line, t) from exc

def _parse_additions(val: str, line: str, t: str) -> Additions:
    try:
        return Additions(int(val))
    except ValueError as exc:
        raise OsuParseError(line, t) from exc


@dataclasses.dataclass
class SampleInfo:
    sample_set: SampleSet = SampleSet.NONE
    addition_set: SampleSet = SampleSet.NONE
    index: int = 0
    volume: int = 0  # 0: use timing point volume
    filename: str = ""

    @staticmethod
    def from_osu(val: str, line: str = "") -> "SampleInfo":
        # normalSet:additionSet:index:volume:filename, trailing fields are optional
        parts = val.split(":")
        try:
            return SampleInfo(
                sample_set=_parse_sample_set(parts[0], line, "hit sample"),
                addition_set=_parse_sample_set(parts[1], line, "hit sample") if len(parts) > 1 else SampleSet.NONE,
                index=int(parts[2]) if len(parts) > 2 and parts[2] else 0,
                volume=int(parts[3]) if len(parts) > 3 and parts[3] else 0,
                filename=":".join(parts[4:]),
            )
        except OsuParseError:
            raise
        except ValueError as exc:
            raise OsuParseError(line, "hit sample") from exc

    def to_osu(self) -> str:
        return f"{int(self.sample_set)}:{int(self.addition_set)}:{self.index}:{self.volume}:{self.filename}"


@dataclasses.dataclass
class Circle:
    pass


@dataclasses.dataclass
class Slider:
    curve_type: str
    curve_points: list[tuple[int, int]]
    num_repeats: int
    pixel_length: float
    # one entry per edge (head, repeats, tail), may be shorter than num_repeats + 1
    edge_additions: list[Additions] = dataclasses.field(default_factory=list)
    edge_samplesets: list[tuple[SampleSet, SampleSet]] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class Spinner:
    end_time: int


@dataclasses.dataclass
class HitObject:
    x: int
    y: int
    start_time: int  # ms
    kind: Union[Circle, Slider, Spinner]
    new_combo: bool = False
    combo_skip: int = 0
    additions: Additions = Additions(0)
    sample_info: SampleInfo = dataclasses.field(default_factory=SampleInfo)

    @staticmethod
    def from_osu(line: str) -> "HitObject":
        try:
            x_raw, y_raw, time_raw, type_raw, hitsound_raw, *rest = line.split(",")
            x = int(float(x_raw))
            y = int(float(y_raw))
            start_time = int(float(time_raw))
            type_bits = int(type_raw)
        except ValueError as exc:
            raise OsuParseError(line, "hit object") from exc
        additions = _parse_additions(hitsound_raw, line, "hit object")
        new_combo = bool(type_bits & TYPE_NEW_COMBO)
        combo_skip = (type_bits >> TYPE_COMBO_SKIP_SHIFT) & TYPE_COMBO_SKIP_MASK

        if type_bits & TYPE_CIRCLE:
            kind: Union[Circle, Slider, Spinner] = Circle()
            sample_raw = rest[0] if rest else ""
        elif type_bits & TYPE_SLIDER:
            kind, sample_raw = _slider_from_osu(rest, line)
        elif type_bits & TYPE_SPINNER:
            try:
                kind = Spinner(end_time=int(float(rest[0])))
            except (IndexError, ValueError) as exc:
                raise OsuParseError(line, "spinner") from exc
            sample_raw = rest[1] if len(rest) > 1 else ""
        elif type_bits & TYPE_HOLD:
            raise OsuParseError(line, "hit object") from ValueError("Hold notes are not supported")
        else:
            raise OsuParseError(line, "hit object") from ValueError(f"Unexpected hit object type ({type_bits})")

        return HitObject(
            x=x,
            y=y,
            start_time=start_time,
            kind=kind,
            new_combo=new_combo,
            combo_skip=combo_skip,
            additions=additions,
            sample_info=SampleInfo.from_osu(sample_raw, line) if sample_raw else SampleInfo(),
        )

    def to_osu(self) -> str:
        type_bits = (TYPE_NEW_COMBO if self.new_combo else 0) | (self.combo_skip << TYPE_COMBO_SKIP_SHIFT)
        common = [str(self.x), str(self.y), str(self.start_time)]
        if isinstance(self.kind, Circle):
            fields = common + [str(type_bits | TYPE_CIRCLE), str(int(self.additions)), self.sample_info.to_osu()]
        elif isinstance(self.kind, Spinner):
            fields = common + [str(type_bits | TYPE_SPINNER), str(int(self.additions)), str(self.kind.end_time), self.sample_info.to_osu()]
        else:
            s = self.kind
            fields = common + [
                str(type_bits | TYPE_SLIDER),
                str(int(self.additions)),
                "|".join([s.curve_type] + [f"{px}:{py}" for px, py in s.curve_points]),
                str(s.num_repeats),
                _format_number(s.pixel_length),
            ]
            if s.edge_additions or s.edge_samplesets or self.sample_info != SampleInfo():
                # edge lists have to be the same length in the file
                edge_count = max(len(s.edge_additions), len(s.edge_samplesets), s.num_repeats + 1)
                edge_additions = s.edge_additions + [self.additions] * (edge_count - len(s.edge_additions))
                edge_samplesets = s.edge_samplesets + [(SampleSet.NONE, SampleSet.NONE)] * (edge_count - len(s.edge_samplesets))
                fields += [
                    "|".join(str(int(a)) for a in edge_additions),
                    "|".join(f"{int(n)}:{int(a)}" for n, a in edge_samplesets),
                    self.sample_info.to_osu(),
                ]
        return ",".join(fields)


def _slider_from_osu(rest: list[str], line: str) -> tuple[Slider, str]:
    try:
        curve_raw, repeats_raw, length_raw, *rest = rest
        curve_type, *raw_points = curve_raw.split("|")
        curve_points = []
        for point in raw_points:
            px, py = point.split(":")
            curve_points.append((int(float(px)), int(float(py))))
        num_repeats = int(repeats_raw)
        pixel_length = float(length_raw)
    except ValueError as exc:
        raise OsuParseError(line, "slider") from exc

    edge_additions = []
    if rest and rest[0]:
        edge_additions = [_parse_additions(a, line, "slider edge sounds") for a in rest[0].split("|")]
    edge_samplesets = []
    if len(rest) > 1 and rest[1]:
        for edge_set in rest[1].split("|"):
            normal, _, addition = edge_set.partition(":")
            edge_samplesets.append((
                _parse_sample_set(normal, line, "slider edge sets"),
                _parse_sample_set(addition or "0", line, "slider edge sets"),
            ))
    sample_raw = rest[2] if len(rest) > 2 else ""
    return Slider(
        curve_type=curve_type,
        curve_points=curve_points,
        num_repeats=num_repeats,
        pixel_length=pixel_length,
        edge_additions=edge_additions,
        edge_samplesets=edge_samplesets,
    ), sample_raw


@dataclasses.dataclass
class TimingPoint:
    time: float  # ms
    beat_length: float
    meter: int = 4
    sample_set: SampleSet = SampleSet.NONE
    sample_index: int = 0
    volume: int = 100
    uninherited: bool = True
    kiai: bool = False
    omit_first_barline: bool = False

    @property
    def slider_velocity(self) -> float:
        if self.uninherited:
            return 1.0
        return float(np.clip(-100 / self.beat_length, 0.1, 10))

    @staticmethod
    def from_osu(line: str) -> "TimingPoint":
        # time,beatLength,meter,sampleSet,sampleIndex,volume,uninherited,effects
        parts = line.split(",")
        def _get(ix: int, default: str) -> str:
            return parts[ix] if len(parts) > ix and parts[ix] != "" else default
        try:
            effects = int(_get(7, "0"))
            return TimingPoint(
                time=float(parts[0]),
                beat_length=float(parts[1]),
                meter=int(_get(2, "4")),
                sample_set=_parse_sample_set(_get(3, "0"), line, "timing point"),
                sample_index=int(_get(4, "0")),
                volume=int(_get(5, "100")),
                uninherited=bool(int(_get(6, "1"))),
                kiai=bool(effects & EFFECT_KIAI),
                omit_first_barline=bool(effects & EFFECT_OMIT_FIRST_BARLINE),
            )
        except OsuParseError:
            raise
        except (IndexError, ValueError) as exc:
            raise OsuParseError(line, "timing point") from exc

    def to_osu(self) -> str:
        effects = (EFFECT_KIAI if self.kiai else 0) | (EFFECT_OMIT_FIRST_BARLINE if self.omit_first_barline else 0)
        return ",".join([
            _format_number(self.time),
            _format_number(self.beat_length),
            str(self.meter),
            str(int(self.sample_set)),
            str(self.sample_index),
            str(self.volume),
            "1" if self.uninherited else "0",
            str(effects),
        ])

    def as_inherited(self) -> "TimingPoint":
        # copy that keeps the slider velocity in effect but does not restart the beat grid
        if not self.uninherited:
            return dataclasses.replace(self)
        return dataclasses.replace(self, beat_length=-100.0, uninherited=False, omit_first_barline=False)


@dataclasses.dataclass
class Beatmap:
    format_version: int = DEFAULT_FORMAT_VERSION
    # raw lines of every section, in file order
    sections: dict[str, list[str]] = dataclasses.field(default_factory=dict)
    timing_points: list[TimingPoint] = dataclasses.field(default_factory=list)
    hit_objects: list[HitObject] = dataclasses.field(default_factory=list)
    line_ending: str = "\r\n"

    @property
    def slider_multiplier(self) -> float:
        for line in self.sections.get("Difficulty", []):
            key, sep, value = line.partition(":")
            if sep and key.strip() == "SliderMultiplier":
                try:
                    return float(value)
                except ValueError as exc:
                    raise OsuParseError(line, "difficulty") from exc
        return DEFAULT_SLIDER_MULTIPLIER

    def get_slider_duration(self, obj: HitObject) -> float:
        """Duration in seconds from the head to the tail of a slider, including all repeats.

        Assumes timing_points is sorted by time.
        """
        if not isinstance(obj.kind, Slider):
            raise TypeError(f"Expected a slider, got {type(obj.kind).__name__}")
        if obj.kind.num_repeats < 1:
            raise SliderDurationError(obj, f"invalid repeat count ({obj.kind.num_repeats})")

        beat_tp = None
        velocity = 1.0
        for tp in self.timing_points:
            if tp.time > obj.start_time:
                break
            if tp.uninherited:
                beat_tp = tp
                velocity = 1.0
            else:
                velocity = tp.slider_velocity
        if beat_tp is None:
            # slider before the first uninherited timing point uses the first one
            beat_tp = next((tp for tp in self.timing_points if tp.uninherited), None)
        if beat_tp is None:
            raise SliderDurationError(obj, "no uninherited timing point")
        if not math.isfinite(beat_tp.beat_length) or beat_tp.beat_length <= 0:
            raise SliderDurationError(obj, f"invalid beat length ({beat_tp.beat_length})")

        pixels_per_beat = self.slider_multiplier * 100 * velocity
        duration_ms = obj.kind.pixel_length * obj.kind.num_repeats / pixels_per_beat * beat_tp.beat_length
        if not math.isfinite(duration_ms):
            raise SliderDurationError(obj, f"duration is not finite ({duration_ms})")
        return ms_to_second(duration_ms)

    @staticmethod
    def parse(text: str) -> "Beatmap":
        line_ending = "\r\n" if "\r\n" in text else "\n"
        lines = text.lstrip("\ufeff").splitlines()
        beatmap = Beatmap(line_ending=line_ending)
        section = None
        for line in lines:
            stripped = line.strip()
            if not stripped:
                continue
            if section is None and stripped.startswith("osu file format v"):
                try:
                    beatmap.format_version = int(stripped[len("osu file format v"):])
                except ValueError as exc:
                    raise OsuParseError(line, "format version") from exc
                continue
            if stripped.startswith("[") and stripped.endswith("]"):
                section = stripped[1:-1]
                beatmap.sections.setdefault(section, [])
                continue
            if section is None:
                raise OsuParseError(line, "file header")
            if section == TIMING_POINTS_SECTION:
                if not stripped.startswith("//"):
                    beatmap.timing_points.append(TimingPoint.from_osu(stripped))
            elif section == HIT_OBJECTS_SECTION:
                if not stripped.startswith("//"):
                    beatmap.hit_objects.append(HitObject.from_osu(stripped))
            else:
                beatmap.sections[section].append(line.rstrip())
        return beatmap

    def to_osu(self) -> str:
        out = [f"osu file format v{self.format_version}", ""]
        sections = dict(self.sections)
        sections.setdefault(TIMING_POINTS_SECTION, [])
        sections.setdefault(HIT_OBJECTS_SECTION, [])
        for name, raw_lines in sections.items():
            out.append(f"[{name}]")
            if name == TIMING_POINTS_SECTION:
                out.extend(tp.to_osu() for tp in self.timing_points)
            elif name == HIT_OBJECTS_SECTION:
                out.extend(obj.to_osu() for obj in self.hit_objects)
            else:
                out.extend(raw_lines)
            out.append("")
        return self.line_ending.join(out)


# file
def import_file(file_path: Path) -> Beatmap:
    return Beatmap.parse(Path(file_path).read_text(encoding="utf-8-sig"))

def export_file(beatmap: Beatmap, file_path: Path) -> None:
    # newline="" keeps the line endings of the beatmap as-is
    with open(file_path, "w", encoding="utf-8", newline="") as f:
        f.write(beatmap.to_osu())

@contextmanager
def file_data(filename: Union[str, Path], save_suffix: str|None = "_out") -> Generator[Beatmap, None, None]:
    # Usage:
    #   with osu_format.file_data("map.osu", save_suffix="") as beatmap:
    #     hitsounds.reset_hitsounds(beatmap)
    # An empty suffix overwrites the input, None does not save at all
    fp = Path(filename)
    logger.info(f"Loading {fp.absolute()}")
    beatmap = import_file(fp)
    yield beatmap
    if save_suffix is not None:
        fp_out = fp.with_stem(f"{fp.stem}{save_suffix}")
        logger.info(f"Saving {fp_out.absolute()}")
        export_file(beatmap, fp_out)
