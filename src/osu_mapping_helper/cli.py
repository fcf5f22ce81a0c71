from argparse import ArgumentParser, RawDescriptionHelpFormatter
import logging
import os
from pathlib import Path

from . import hitsounds, osu_format, utils, __version__

logger = logging.getLogger("OMH")

def get_parser():
    parser = ArgumentParser(
        formatter_class=RawDescriptionHelpFormatter,
        prog=f"python3 -m {__package__}.{Path(__file__).stem}",
        description='\n'.join([
            "Tools for the hitsounds of osu! beatmaps (.osu files)",
            "",
            "copy-hitsounds: Copy hitsounds from one difficulty to others, matching hits by time instead of by object.",
            "\tEvery circle, slider edge (head, repeats and tail) and spinner end of the destination gets the hitsound of",
            "\tthe source hit within the leniency window. Volume and sample index of the timing points are copied as well.",
            "\tDestinations that are the same file as the source are skipped.",
            "reset-hitsounds: Remove all hitsounds from the given files (in place).",
            "",
            "Times (like the leniency) can be given in milliseconds ('2' or '2ms') or seconds ('0.002s')",
        ]),
        epilog=f"Version: {__version__}",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Log every hitsound that gets copied")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors")

    subparsers = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    copy_parser = subparsers.add_parser("copy-hitsounds", help="Copy hitsounds from one beatmap to others")
    copy_parser.add_argument("src", type=Path, help="Beatmap to copy the hitsounds from")
    copy_parser.add_argument("dsts", type=Path, nargs="+", metavar="dst", help="Beatmaps to copy the hitsounds to (modified in place)")
    copy_parser.add_argument("-l", "--leniency", type=utils.parse_ms, default=hitsounds.DEFAULT_LENIENCY_MS, metavar="TIME", help=f"How far apart two hits can be and still count as the same. Default: {hitsounds.DEFAULT_LENIENCY_MS} ms")
    copy_parser.add_argument("--slider-body", action="store_true", help="Also copy the hitsound of the slider itself, not just of its edges")
    copy_parser.add_argument("--no-volumes", action="store_true", help="Do not copy volume and sample index of timing points")
    copy_parser.add_argument("--no-sample-index", action="store_true", help="Copy volume of timing points, but not the sample index")
    copy_parser.add_argument("--reset", action="store_true", help="Remove existing hitsounds from the destinations first, so hits without a match end up without hitsounds")

    reset_parser = subparsers.add_parser("reset-hitsounds", help="Remove all hitsounds from beatmaps")
    reset_parser.add_argument("files", type=Path, nargs="+", metavar="file", help="Beatmaps to reset (modified in place)")

    return parser

def abort(reason: str):
    if __name__ == "__main__":
        print("ERROR: " + reason)
        exit(1)
    else:
        raise RuntimeError(reason)

def _is_same_file(a: Path, b: Path) -> bool:
    # also catches different paths to the same file (links, relative paths, ...)
    try:
        return os.path.samefile(a, b)
    except OSError:
        return False

def _load(path: Path) -> osu_format.Beatmap:
    if not path.is_file():
        abort(f"{path} is not a file, is the path correct?")
    try:
        return osu_format.import_file(path)
    except osu_format.OsuParseError as ope:
        abort(
            f"Could not parse {path}, is this a valid .osu file?\n"
            f"\t{ope!r}\n"
            f"\tCaused by {ope.__cause__!r}"
        )

def copy_hitsounds(options) -> list[Path]:
    src = _load(options.src)
    dst_paths: list[Path] = []
    for dst in options.dsts:
        # don't overwrite the source file
        if _is_same_file(options.src, dst):
            logger.warning(f"Skipping {dst}: same file as the source")
            continue
        dst_paths.append(dst)
    dst_beatmaps = [_load(p) for p in dst_paths]

    copy_options = hitsounds.CopyOptions(
        leniency_ms=options.leniency,
        slider_body=options.slider_body,
        copy_volumes=not options.no_volumes,
        copy_sample_index=not options.no_sample_index,
        reset_first=options.reset,
    )
    try:
        hitsounds.copy_hitsounds(src, dst_beatmaps, copy_options)
    except osu_format.SliderDurationError as sde:
        abort(f"Could not determine all hit times, nothing was saved.\n\t{sde!r}")

    # only write once every destination succeeded
    for path, beatmap in zip(dst_paths, dst_beatmaps):
        osu_format.export_file(beatmap, path)
        logger.info(f"Saved {path.resolve()}")
    if dst_paths:
        logger.info(f"Copied hitsounds from {options.src.name} to {utils.pretty_list([p.name for p in dst_paths])}")
    return dst_paths

def reset_hitsounds(options) -> list[Path]:
    for path in options.files:
        if not path.is_file():
            abort(f"{path} is not a file, is the path correct?")
        try:
            with osu_format.file_data(path, save_suffix="") as beatmap:
                hitsounds.reset_hitsounds(beatmap)
        except osu_format.OsuParseError as ope:
            abort(f"Could not parse {path}, is this a valid .osu file?\n\t{ope!r}")
    return list(options.files)

def main(options) -> list[Path]:
    if options.command == "copy-hitsounds":
        return copy_hitsounds(options)
    elif options.command == "reset-hitsounds":
        return reset_hitsounds(options)
    abort(f"Unknown command: {options.command}")

def entrypoint():
    options = get_parser().parse_args()
    if options.quiet:
        level = logging.WARNING
    elif options.verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format='%(asctime)s [%(levelname)s] %(message)s')
    main(options)

if __name__ == "__main__":
    entrypoint()
