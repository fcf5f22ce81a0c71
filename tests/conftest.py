import pytest

from osu_mapping_helper import osu_format

# Source difficulty with hitsounds
#   red line at 0: soft, volume 60
#   green line at 2000: drum, sample index 1, volume 80, kiai
#   green line at 3000: double slider velocity, same volume and index
#   circle at 500 (whistle), slider at 1000 with two repeats (edges at 1000, 1500 and 2000 ms),
#   circle at 2500 (clap, normal:soft), spinner from 3000 to 3500 (finish)
HITSOUND_OSU = "\n".join([
    "osu file format v14",
    "",
    "[General]",
    "AudioFilename: audio.mp3",
    "SampleSet: Soft",
    "",
    "[Metadata]",
    "Title:Test",
    "Version:Hitsounds",
    "",
    "[Difficulty]",
    "SliderMultiplier:1.4",
    "SliderTickRate:1",
    "",
    "[TimingPoints]",
    "0,500,4,2,0,60,1,0",
    "2000,-100,4,3,1,80,0,1",
    "3000,-50,4,3,1,80,0,0",
    "",
    "[HitObjects]",
    "256,192,500,1,2,0:0:0:0:",
    "256,192,1000,2,0,B|300:200,2,140,2|0|8,1:0|0:0|0:3,0:0:0:0:",
    "256,192,2500,1,8,1:2:0:0:",
    "256,192,3000,12,4,3500,0:0:0:0:",
    "",
])

# Destination difficulty without hitsounds and with different objects
#   slider at 1000 with one repeat (edges at 1000 and 1500 ms, no edge data in the file)
#   circle at 2001 (1 ms off the source slider tail), circle at 2800 (nothing in the source)
TARGET_OSU = "\n".join([
    "osu file format v14",
    "",
    "[General]",
    "AudioFilename: audio.mp3",
    "",
    "[Metadata]",
    "Title:Test",
    "Version:Hard",
    "",
    "[Difficulty]",
    "SliderMultiplier:1.4",
    "",
    "[TimingPoints]",
    "0,500,4,1,0,100,1,0",
    "",
    "[HitObjects]",
    "100,100,500,1,0,0:0:0:0:",
    "100,100,1000,2,0,L|200:100,1,140",
    "100,100,2001,1,0,0:0:0:0:",
    "100,100,2500,1,0,0:0:0:0:",
    "100,100,2800,1,0,0:0:0:0:",
    "256,192,3000,12,0,3500,0:0:0:0:",
    "",
])

@pytest.fixture
def hitsound_beatmap() -> osu_format.Beatmap:
    return osu_format.Beatmap.parse(HITSOUND_OSU)

@pytest.fixture
def target_beatmap() -> osu_format.Beatmap:
    return osu_format.Beatmap.parse(TARGET_OSU)
