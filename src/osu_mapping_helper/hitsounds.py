import dataclasses
import logging
from operator import attrgetter
from typing import Callable, NamedTuple, Optional, Sequence, TypeVar

import numpy as np

from osu_mapping_helper.osu_format import Additions, Beatmap, HitObject, SampleInfo, SampleSet, Slider, Spinner, TimingPoint
from osu_mapping_helper.utils import ms_to_second, second_to_ms, pretty_time

logger = logging.getLogger("OMH")

DEFAULT_LENIENCY_MS = 2
# timing points are stored in whole (or at least rounded) milliseconds, so they only need to line up exactly
TIMING_POINT_TOLERANCE = 0.0005  # seconds
# float error between instants computed from the same values
TIME_EPSILON = 1e-6  # seconds

T = TypeVar("T")


@dataclasses.dataclass
class CopyOptions:
    leniency_ms: float = DEFAULT_LENIENCY_MS
    slider_body: bool = False
    copy_volumes: bool = True
    copy_sample_index: bool = True
    reset_first: bool = False

    @property
    def leniency(self) -> float:
        return ms_to_second(self.leniency_ms)


class HitTime(NamedTuple):
    time: float  # seconds
    object_index: int
    repeat_index: Optional[int]  # only for slider edges


@dataclasses.dataclass(frozen=True)
class HitsoundInfo:
    time: float
    additions: Additions
    sample_info: SampleInfo


@dataclasses.dataclass(frozen=True)
class SectionProps:
    """Volume and sample index of a timing point section.

    kiai is only carried for information (logging, inspection), it is never applied.
    """
    time: float
    volume: int
    sample_index: int
    kiai: bool


@dataclasses.dataclass(frozen=True)
class HitsoundData:
    """Everything needed to copy hitsounds to another beatmap, without access to the original beatmap"""
    hits: tuple[HitsoundInfo, ...]
    sections: tuple[SectionProps, ...]
    # slider bodies only match slider bodies, they share their time with the slider head
    body_hits: tuple[HitsoundInfo, ...] = ()


def _is_slider_body(obj: HitObject, repeat_index: Optional[int]) -> bool:
    return repeat_index is None and isinstance(obj.kind, Slider)


def get_hit_times(beatmap: Beatmap, slider_body: bool = False) -> list[HitTime]:
    """Collect EVERY time a hitsound could be played.

    This includes circles, every edge (head, repeats and tail) of sliders and the end of spinners.
    With slider_body, the start of each slider is also included without a repeat index.

    Objects are referred to by their index in beatmap.hit_objects, so that list should not change
    while the result is in use. The result is sorted by time, with ties kept in object order.

    Raises SliderDurationError when the duration of a slider cannot be determined.
    """
    hit_times: list[HitTime] = []
    for idx, obj in enumerate(beatmap.hit_objects):
        start = ms_to_second(obj.start_time)
        if isinstance(obj.kind, Slider):
            if slider_body:
                hit_times.append(HitTime(start, idx, None))
            duration = beatmap.get_slider_duration(obj)
            repeats = obj.kind.num_repeats
            edge_times = start + np.arange(repeats + 1) * (duration / repeats)
            hit_times.extend(HitTime(float(t), idx, i) for i, t in enumerate(edge_times))
        elif isinstance(obj.kind, Spinner):
            hit_times.append(HitTime(ms_to_second(obj.kind.end_time), idx, None))
        else:
            hit_times.append(HitTime(start, idx, None))

    # sort is stable, so objects at the same time stay in order
    hit_times.sort(key=attrgetter("time"))
    return hit_times


def resolve_hitsound(obj: HitObject, repeat_index: Optional[int], timing_point: Optional[TimingPoint]) -> tuple[Additions, SampleInfo]:
    """Effective additions and sample sets of an object (or one edge of a slider).

    Sample set priority: slider edge, object, timing point.
    The addition set never comes from the timing point, it falls back to the resolved sample set instead.
    """
    additions = obj.additions
    sample_set = obj.sample_info.sample_set
    addition_set = obj.sample_info.addition_set

    if repeat_index is not None and isinstance(obj.kind, Slider):
        if repeat_index < len(obj.kind.edge_additions):
            additions = obj.kind.edge_additions[repeat_index]
        if repeat_index < len(obj.kind.edge_samplesets):
            edge_sample_set, edge_addition_set = obj.kind.edge_samplesets[repeat_index]
            if edge_sample_set != SampleSet.NONE:
                sample_set = edge_sample_set
            if edge_addition_set != SampleSet.NONE:
                addition_set = edge_addition_set

    if sample_set == SampleSet.NONE and timing_point is not None:
        sample_set = timing_point.sample_set
    if addition_set == SampleSet.NONE:
        addition_set = sample_set

    return additions, dataclasses.replace(obj.sample_info, sample_set=sample_set, addition_set=addition_set)


def collect_sections(timing_points: Sequence[TimingPoint]) -> list[SectionProps]:
    # only keep timing points that actually change volume or sample index
    sections: list[SectionProps] = []
    for tp in timing_points:
        if sections and (sections[-1].volume, sections[-1].sample_index) == (tp.volume, tp.sample_index):
            continue
        sections.append(SectionProps(
            time=ms_to_second(tp.time),
            volume=tp.volume,
            sample_index=tp.sample_index,
            kiai=tp.kiai,
        ))
    return sections


def collect_hitsounds(beatmap: Beatmap, slider_body: bool = False, log: Optional[logging.Logger] = None) -> HitsoundData:
    log = log or logger
    # work on sorted copies of the lists, the beatmap itself is not modified
    beatmap = dataclasses.replace(
        beatmap,
        hit_objects=sorted(beatmap.hit_objects, key=attrgetter("start_time")),
        timing_points=sorted(beatmap.timing_points, key=attrgetter("time")),
    )
    timing_points = beatmap.timing_points
    if not timing_points:
        log.warning("Beatmap has no timing points, sample sets cannot be inherited")

    hits: list[HitsoundInfo] = []
    body_hits: list[HitsoundInfo] = []
    tp_idx = 0
    for hit_time, obj_idx, repeat_idx in get_hit_times(beatmap, slider_body):
        # both lists are sorted, so the timing point only ever moves forward
        while tp_idx + 1 < len(timing_points) and ms_to_second(timing_points[tp_idx + 1].time) <= hit_time + TIME_EPSILON:
            tp_idx += 1
        if not 0 <= obj_idx < len(beatmap.hit_objects):
            log.debug(f"Skipping hit at {pretty_time(hit_time)}: no object #{obj_idx}")
            continue
        obj = beatmap.hit_objects[obj_idx]
        additions, sample_info = resolve_hitsound(obj, repeat_idx, timing_points[tp_idx] if timing_points else None)
        info = HitsoundInfo(time=hit_time, additions=additions, sample_info=sample_info)
        if _is_slider_body(obj, repeat_idx):
            body_hits.append(info)
        else:
            hits.append(info)

    sections = collect_sections(timing_points)
    log.debug(f"Collected {len(hits)} hitsounds, {len(body_hits)} slider bodies and {len(sections)} volume sections")
    return HitsoundData(hits=tuple(hits), sections=tuple(sections), body_hits=tuple(body_hits))


def binary_search_for(needle: float, haystack: Sequence[T], key: Callable[[T], float], leniency: float) -> tuple[bool, int]:
    """Binary search over a sorted sequence, where values less than leniency apart compare equal.

    Returns (True, index of some element within leniency) or (False, insertion point).
    """
    def cmp(a: float, b: float) -> int:
        if abs(a - b) < leniency:
            return 0
        return -1 if a < b else 1

    lo, hi = 0, len(haystack)
    while lo < hi:
        mid = (lo + hi) // 2
        order = cmp(key(haystack[mid]), needle)
        if order == 0:
            return True, mid
        if order < 0:
            lo = mid + 1
        else:
            hi = mid
    return False, lo


def find_nearest(needle: float, haystack: Sequence[T], key: Callable[[T], float], leniency: float) -> Optional[int]:
    # index of the element closest to needle, if it is at most leniency away (earlier element wins ties)
    _, idx = binary_search_for(needle, haystack, key, leniency)
    start = idx
    while start > 0 and abs(key(haystack[start - 1]) - needle) <= leniency:
        start -= 1
    end = idx
    while end < len(haystack) and abs(key(haystack[end]) - needle) <= leniency:
        end += 1
    if start == end:
        return None
    return min(range(start, end), key=lambda i: abs(key(haystack[i]) - needle))


def set_edge_hitsound(slider: Slider, repeat_index: int, additions: Additions, sample_info: SampleInfo) -> None:
    # edge lists may be shorter than needed, new entries are unset
    missing = repeat_index + 1 - len(slider.edge_samplesets)
    if missing > 0:
        slider.edge_samplesets.extend([(SampleSet.NONE, SampleSet.NONE)] * missing)
    missing = repeat_index + 1 - len(slider.edge_additions)
    if missing > 0:
        slider.edge_additions.extend([Additions(0)] * missing)

    slider.edge_samplesets[repeat_index] = (sample_info.sample_set, sample_info.addition_set)
    slider.edge_additions[repeat_index] = additions


def apply_section_props(sections: Sequence[SectionProps], beatmap: Beatmap, copy_sample_index: bool = True, log: Optional[logging.Logger] = None) -> None:
    """Copy volume (and sample index) onto the timing points of the beatmap.

    Every section gets a timing point at exactly its time, cloning the previous one if needed.
    Afterwards every timing point takes the values of the section active at its time.
    Assumes timing_points is sorted by time.
    """
    log = log or logger
    if not sections:
        return
    timing_points = beatmap.timing_points
    if not timing_points:
        log.warning("Beatmap has no timing points, volumes are not copied")
        return

    if not copy_sample_index:
        # sections that only change the sample index don't need a timing point
        by_volume: list[SectionProps] = []
        for section in sections:
            if not by_volume or by_volume[-1].volume != section.volume:
                by_volume.append(section)
        sections = by_volume

    def tp_time(tp: TimingPoint) -> float:
        return ms_to_second(tp.time)

    for section in sections:
        found, idx = binary_search_for(section.time, timing_points, tp_time, TIMING_POINT_TOLERANCE)
        if found:
            continue
        # before the first timing point there is no predecessor, use the next one instead
        template = timing_points[idx - 1] if idx > 0 else timing_points[0]
        new_tp = dataclasses.replace(template.as_inherited(), time=round(second_to_ms(section.time), 6))
        timing_points.insert(idx, new_tp)
        log.debug(f"Inserted timing point at {pretty_time(section.time)}")

    section_idx = 0
    for tp in timing_points:
        while section_idx + 1 < len(sections) and sections[section_idx + 1].time <= tp_time(tp) + TIMING_POINT_TOLERANCE:
            section_idx += 1
        tp.volume = sections[section_idx].volume
        if copy_sample_index:
            tp.sample_index = sections[section_idx].sample_index


def apply_hitsounds(hitsound_data: HitsoundData, beatmap: Beatmap, options: Optional[CopyOptions] = None, log: Optional[logging.Logger] = None) -> None:
    """Apply collected hitsounds to the beatmap in place.

    Hits without a match within leniency are left as they are.
    There is no rollback. Slider durations are all resolved before anything is written,
    so a SliderDurationError leaves the hitsounds untouched (but the lists sorted).
    """
    options = options or CopyOptions()
    log = log or logger
    # doesn't hurt to make sure these are sorted
    beatmap.hit_objects.sort(key=attrgetter("start_time"))
    beatmap.timing_points.sort(key=attrgetter("time"))

    leniency = options.leniency
    hit_key = attrgetter("time")
    applied = 0
    missed = 0
    for hit_time, obj_idx, repeat_idx in get_hit_times(beatmap, options.slider_body):
        if not 0 <= obj_idx < len(beatmap.hit_objects):
            log.debug(f"Skipping hit at {pretty_time(hit_time)}: no object #{obj_idx}")
            continue
        obj = beatmap.hit_objects[obj_idx]

        candidates = hitsound_data.body_hits if _is_slider_body(obj, repeat_idx) else hitsound_data.hits
        hit_idx = find_nearest(hit_time, candidates, hit_key, leniency)
        if hit_idx is None:
            log.info(f"Did not find hitsound for time {pretty_time(hit_time)}")
            missed += 1
            continue
        hit = candidates[hit_idx]

        if repeat_idx is None:
            obj.additions = hit.additions
            obj.sample_info = dataclasses.replace(hit.sample_info)
        elif isinstance(obj.kind, Slider):
            set_edge_hitsound(obj.kind, repeat_idx, hit.additions, hit.sample_info)
        else:
            log.debug(f"Skipping hit at {pretty_time(hit_time)}: object #{obj_idx} has no edges")
            continue
        log.debug(
            f"object #{obj_idx} @ {obj.start_time} [repeat={repeat_idx}] (time={pretty_time(hit_time)}, diff={abs(hit_time - hit.time)*1000:.3f} ms): "
            f"additions={hit.additions!r}, sets={hit.sample_info.sample_set.name}:{hit.sample_info.addition_set.name}"
        )
        applied += 1

    if options.copy_volumes:
        apply_section_props(hitsound_data.sections, beatmap, options.copy_sample_index, log)
    log.info(f"Applied {applied} hitsounds, {missed} without match")


def reset_hitsounds(beatmap: Beatmap) -> None:
    """Erases all hitsounds from a beatmap"""
    for obj in beatmap.hit_objects:
        obj.additions = Additions(0)
        obj.sample_info = SampleInfo()
        if isinstance(obj.kind, Slider):
            obj.kind.edge_additions = [Additions(0)] * len(obj.kind.edge_additions)
            obj.kind.edge_samplesets = [(SampleSet.NONE, SampleSet.NONE)] * len(obj.kind.edge_samplesets)


def copy_hitsounds(src: Beatmap, dsts: Sequence[Beatmap], options: Optional[CopyOptions] = None, log: Optional[logging.Logger] = None) -> HitsoundData:
    options = options or CopyOptions()
    log = log or logger
    hitsound_data = collect_hitsounds(src, options.slider_body, log)
    for dst in dsts:
        if dst is src:
            log.warning("Not copying hitsounds onto the source beatmap")
            continue
        if options.reset_first:
            reset_hitsounds(dst)
        apply_hitsounds(hitsound_data, dst, options, log)
    return hitsound_data
