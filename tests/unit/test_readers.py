"""Test the functions in readers."""

import json
import pathlib
import zipfile

import pytest

from imusync.core import exceptions
from imusync.io.readers import readers


def test_parse_samples(sample_csv_text: str) -> None:
    """Test parsing well formed samples."""
    series = readers.parse_samples(sample_csv_text, 104.0, source_name="imu.csv")

    assert len(series) == 312
    assert series.channels == ["ax", "ay", "az", "gx", "gy", "gz", "mx", "my", "mz"]
    assert series.sample(3) == {
        "ax": 3.0,
        "ay": 4.0,
        "az": 5.0,
        "gx": 6.0,
        "gy": 7.0,
        "gz": 8.0,
        "mx": 9.0,
        "my": 10.0,
        "mz": 11.0,
    }
    assert series.time[104] == pytest.approx(1.0)
    assert series.source_name == "imu.csv"
    assert series.raw_text == sample_csv_text


def test_parse_samples_non_numeric_field() -> None:
    """Test that an unparseable field becomes 0 and the row is kept."""
    text = "ax,ay,az\n1.5,abc,3\n4,5,6\n"

    series = readers.parse_samples(text, 104.0)

    assert len(series) == 2
    assert series.sample(0) == {"ax": 1.5, "ay": 0.0, "az": 3.0}


@pytest.mark.parametrize("value", ["NaN", "inf", "-inf", ""])
def test_parse_samples_non_finite_field(value: str) -> None:
    """Test that missing and non-finite values become 0."""
    series = readers.parse_samples(f"ax,ay\n{value},2\n", 104.0)

    assert series.sample(0) == {"ax": 0.0, "ay": 2.0}


def test_parse_samples_short_row() -> None:
    """Test that a row with fewer fields than the header is padded with 0."""
    series = readers.parse_samples("ax,ay,az\n1,2\n", 104.0)

    assert series.sample(0) == {"ax": 1.0, "ay": 2.0, "az": 0.0}


def test_parse_samples_blank_lines_and_whitespace() -> None:
    """Test that blank lines are skipped and fields are trimmed."""
    text = " ax , ay \r\n\r\n 1 , 2 \r\n\n3,4\r\n"

    series = readers.parse_samples(text, 104.0)

    assert series.channels == ["ax", "ay"]
    assert series.samples["ax"].to_list() == [1.0, 3.0]


def test_parse_samples_header_only() -> None:
    """Test a source with channel names but no samples."""
    series = readers.parse_samples("ax,ay\n", 104.0)

    assert len(series) == 0
    assert series.channels == ["ax", "ay"]


def test_parse_samples_empty() -> None:
    """Test an empty source."""
    series = readers.parse_samples("\n\n", 104.0)

    assert len(series) == 0
    assert series.channels == []


def test_read_samples(sample_csv_file: pathlib.Path) -> None:
    """Test reading samples from a file."""
    series = readers.read_samples(sample_csv_file, 52.0)

    assert series.source_name == "recording.csv"
    assert series.sample_rate_hz == 52.0
    assert series.time[52] == pytest.approx(1.0)


def test_read_samples_missing_file(tmp_path: pathlib.Path) -> None:
    """Test the error when the file does not exist."""
    with pytest.raises(IOError):
        readers.read_samples(tmp_path / "missing.csv", 104.0)


def _write_bundle(path: pathlib.Path, entries: dict) -> pathlib.Path:
    with zipfile.ZipFile(path, "w") as archive:
        for name, content in entries.items():
            archive.writestr(name, content)
    return path


def test_read_bundle(tmp_path: pathlib.Path) -> None:
    """Test reading metadata, media and samples from an archive."""
    project = {
        "syncOffset": 1.5,
        "timestamps": [{"time": 2.0, "label": "jump", "eventType": "jump"}],
        "sampleRate": 104,
        "createdAt": "2024-05-02T10:00:00.000Z",
        "notes": "first trial",
    }
    path = _write_bundle(
        tmp_path / "project.zip",
        {
            "project.json": json.dumps(project),
            "video/walk.mp4": b"\x00" * 64,
            "data/imu.csv": "ax,ay\n1,2\n",
        },
    )

    bundle = readers.read_bundle(path)

    assert bundle.project.sync_offset == 1.5
    assert bundle.project.timestamps[0].label == "jump"
    assert bundle.project.notes == "first trial"
    assert bundle.media is not None
    assert bundle.media.identity.key == "project_walk.mp4_64"
    assert bundle.sample_name == "imu.csv"
    assert bundle.sample_text == "ax,ay\n1,2\n"


def test_read_bundle_first_entry_wins(tmp_path: pathlib.Path) -> None:
    """Test that the first media and the first .csv entry are used."""
    path = _write_bundle(
        tmp_path / "project.zip",
        {
            "project.json": json.dumps({"sampleRate": 104}),
            "video/": b"",
            "video/first.mp4": b"1",
            "video/second.mp4": b"22",
            "data/notes.txt": "not samples",
            "data/first.CSV": "ax\n1\n",
            "data/second.csv": "ax\n2\n",
        },
    )

    bundle = readers.read_bundle(path)

    assert bundle.media is not None
    assert bundle.media.name == "first.mp4"
    assert bundle.sample_name == "first.CSV"


def test_read_bundle_partial(tmp_path: pathlib.Path) -> None:
    """Test that an archive without media and samples still imports."""
    path = _write_bundle(
        tmp_path / "project.zip", {"project.json": json.dumps({"syncOffset": 2})}
    )

    bundle = readers.read_bundle(path, default_sample_rate=52.0)

    assert bundle.project.sync_offset == 2.0
    assert bundle.project.sample_rate == 52.0
    assert bundle.media is None
    assert bundle.sample_text is None


def test_read_bundle_samples_not_utf8(tmp_path: pathlib.Path) -> None:
    """Test that undecodable sensor bytes are recovered row by row."""
    path = _write_bundle(
        tmp_path / "project.zip",
        {
            "project.json": json.dumps({"syncOffset": 1.5, "sampleRate": 104}),
            "data/imu.csv": b"ax,ay\n1,\xff\n",
        },
    )

    bundle = readers.read_bundle(path)

    assert bundle.project.sync_offset == 1.5
    assert bundle.sample_text is not None
    series = readers.parse_samples(bundle.sample_text, 104.0)
    assert series.sample(0) == {"ax": 1.0, "ay": 0.0}


@pytest.mark.parametrize(
    "entries",
    [
        {"video/walk.mp4": b"1"},
        {"project.json": "{not json"},
        {"project.json": "[1, 2]"},
        {"project.json": json.dumps({"timestamps": [{"label": "no time"}]})},
    ],
)
def test_read_bundle_bad_metadata(tmp_path: pathlib.Path, entries: dict) -> None:
    """Test the error when the metadata entry is missing or invalid."""
    path = _write_bundle(tmp_path / "project.zip", entries)

    with pytest.raises(exceptions.FormatError):
        readers.read_bundle(path)


def test_read_bundle_not_an_archive(tmp_path: pathlib.Path) -> None:
    """Test the error when the file is not an archive."""
    path = tmp_path / "project.zip"
    path.write_text("plain text")

    with pytest.raises(exceptions.FormatError):
        readers.read_bundle(path)


def test_read_project_json(tmp_path: pathlib.Path) -> None:
    """Test reading a bare project file."""
    path = tmp_path / "project.json"
    path.write_text(json.dumps({"syncOffset": -0.75, "notes": "legacy"}))

    project = readers.read_project_json(path)

    assert project.sync_offset == -0.75
    assert project.notes == "legacy"
    assert project.sample_rate == 104.0
