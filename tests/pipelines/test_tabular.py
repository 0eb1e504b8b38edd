"""Tests for the station CSV parser."""

import logging

import pytest

from stationsync.context import WorkerContext
from stationsync.exceptions import MalformedHeaderError
from stationsync.pipelines.tabular import has_preamble, parse_file, parse_text


class TestPreamble:
    """Tests for preamble detection and removal."""

    def test_preamble_detected_without_timestamp_cell(self):
        assert has_preamble(["TOA5", "Laramie", "CR1000"])

    def test_header_row_is_not_preamble(self):
        assert not has_preamble(["TIMESTAMP", "RECORD", "AirTemp"])

    def test_preamble_dropped(self, sample_csv_text):
        """The preamble row never ends up in the header or the data."""
        header, rows = parse_text(sample_csv_text)

        assert header.identifiers[0] == "TIMESTAMP"
        assert len(rows) == 3
        assert all(row[0] != "TOA5" for row in rows)

    def test_no_preamble_keeps_first_row(self, no_site_csv_text):
        """Files starting with the identifier row lose nothing."""
        header, rows = parse_text(no_site_csv_text)

        assert header.identifiers == ("TIMESTAMP", "RECORD", "AirTemp")
        assert header.units == ("TS", "RN", "DegC")
        assert header.measurement_types == ("", "", "Avg")
        assert len(rows) == 2

    def test_only_one_row_dropped(self):
        """A second non-TIMESTAMP row is treated as the identifier row, not dropped."""
        text = "preamble,row\nA,B\nu1,u2\nt1,t2\n1,2\n"
        header, rows = parse_text(text)

        assert header.identifiers == ("A", "B")
        assert rows == [["1", "2"]]


class TestHeaderTriple:
    """Tests for header-triple extraction."""

    def test_header_is_aligned(self, sample_csv_text):
        header, _ = parse_text(sample_csv_text)

        assert len(header) == 6
        assert len(header.units) == 6
        assert len(header.measurement_types) == 6
        assert header.index_of("AirTemp") == 3
        assert header.units[3] == "DegC"
        assert header.measurement_types[3] == "Avg"

    def test_too_few_rows_raises(self):
        text = '"TIMESTAMP","AirTemp"\n"TS","DegC"\n'
        with pytest.raises(MalformedHeaderError):
            parse_text(text)

    def test_preamble_only_raises(self):
        """Preamble plus two header rows is still malformed."""
        text = '"TOA5","Laramie"\n"TIMESTAMP","AirTemp"\n"TS","DegC"\n'
        with pytest.raises(MalformedHeaderError):
            parse_text(text)

    def test_empty_file_raises(self):
        with pytest.raises(MalformedHeaderError):
            parse_text("")

    def test_header_only_has_no_rows(self):
        header, rows = parse_text('"TIMESTAMP","AirTemp"\n"TS","DegC"\n"","Avg"\n')
        assert len(header) == 2
        assert rows == []


class TestDataRows:
    """Tests for data row handling."""

    def test_rows_in_file_order(self, sample_csv_text):
        _, rows = parse_text(sample_csv_text)
        assert [row[0] for row in rows] == [
            "2021-06-01 00:00:00",
            "2021-06-01 01:00:00",
            "2021-06-01 02:00:00",
        ]

    def test_short_row_padded(self):
        text = '"TIMESTAMP","AirTemp","RH"\n"TS","DegC","%"\n"","Avg","Smp"\n"2021-06-01 00:00:00",21.4\n'
        _, rows = parse_text(text)
        assert rows == [["2021-06-01 00:00:00", "21.4", ""]]

    def test_long_row_truncated(self):
        text = '"TIMESTAMP","AirTemp"\n"TS","DegC"\n"","Avg"\n"2021-06-01 00:00:00",21.4,99\n'
        _, rows = parse_text(text)
        assert rows == [["2021-06-01 00:00:00", "21.4"]]

    def test_long_row_logged_as_warning(self, caplog):
        text = '"TIMESTAMP","AirTemp"\n"TS","DegC"\n"","Avg"\n"2021-06-01 00:00:00",21.4,99\n'

        with caplog.at_level(logging.WARNING, logger="stationsync.pipelines.tabular"):
            parse_text(text)

        assert "Line 4" in caplog.text
        assert "'99'" in caplog.text

    def test_worker_prefix_in_logs(self, caplog):
        text = '"TIMESTAMP","AirTemp"\n"TS","DegC"\n"","Avg"\n"2021-06-01 00:00:00",21.4,99\n'

        with caplog.at_level(logging.WARNING, logger="stationsync.pipelines.tabular"):
            parse_text(text, WorkerContext(name="worker-2", index=1))

        assert "[worker-2]" in caplog.text

    def test_oversized_field_raises(self):
        text = f'"TIMESTAMP","AirTemp"\n"TS","DegC"\n"","Avg"\n"2021-06-01 00:00:00","{"1" * 200000}"\n'
        with pytest.raises(MalformedHeaderError, match="Unreadable CSV"):
            parse_text(text)

    def test_blank_lines_ignored(self, no_site_csv_text):
        _, rows = parse_text(no_site_csv_text + "\n\n")
        assert len(rows) == 2

    def test_bom_stripped(self, no_site_csv_text):
        header, _ = parse_text("\ufeff" + no_site_csv_text)
        assert header.identifiers[0] == "TIMESTAMP"


class TestParseFile:
    """Tests for parsing staged files."""

    def test_parse_file(self, tmp_path, sample_csv_text):
        path = tmp_path / "Laramie.csv"
        path.write_text(sample_csv_text)

        parsed = parse_file(path)

        assert parsed.source_path == path
        assert len(parsed.rows) == 3
        assert parsed.sample_row[2] == "Laramie"

    def test_malformed_file_error_names_path(self, tmp_path):
        path = tmp_path / "Broken.csv"
        path.write_text('"TIMESTAMP"\n')

        with pytest.raises(MalformedHeaderError) as exc_info:
            parse_file(path)

        assert exc_info.value.context["path"] == str(path)

    def test_missing_file_raises_oserror(self, tmp_path):
        with pytest.raises(OSError):
            parse_file(tmp_path / "missing.csv")
