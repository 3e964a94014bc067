"""Tests for field normalization and CSV source handling."""

import io
import logging
from datetime import date

import pytest

from etc_processor.parsers.base import (
    CsvFormatError,
    DateFormatError,
    InputSourceError,
    NumericFormatError,
    RecordError,
    decode_legacy,
    field_at,
    parse_amount,
    parse_date,
    parse_int,
    parse_vehicle_class,
    read_csv_rows,
    read_legacy_text,
)


class TestFieldAt:
    def test_in_range(self):
        assert field_at(["a", "b"], 1) == "b"

    def test_out_of_range(self):
        assert field_at(["a", "b"], 2) == ""
        assert field_at([], 0) == ""

    def test_negative_index_is_empty(self):
        assert field_at(["a", "b"], -1) == ""


class TestParseAmount:
    def test_thousands_separator(self):
        assert parse_amount("1,500") == 1500

    def test_negative(self):
        assert parse_amount("-7,430") == -7430

    def test_explicit_plus(self):
        assert parse_amount("+300") == 300

    @pytest.mark.parametrize("text", ["", "12.5", "12abc", "abc", " 100", "1 000"])
    def test_rejects_non_integers(self, text):
        with pytest.raises(NumericFormatError):
            parse_amount(text)

    def test_rejects_out_of_int64_range(self):
        with pytest.raises(NumericFormatError):
            parse_amount("99999999999999999999")

    def test_numeric_error_is_record_error(self):
        with pytest.raises(RecordError):
            parse_amount("x")


class TestParseInt:
    @pytest.mark.parametrize("text, expected", [
        ("0", 0), ("1200", 1200), ("+5", 5), ("-300", -300),
        ("9223372036854775807", 2 ** 63 - 1),
    ])
    def test_valid(self, text, expected):
        assert parse_int(text) == expected

    @pytest.mark.parametrize("text", [
        "", " 12", "12 ", "1_000", "１２", "12.5", "0x10", "+", "9223372036854775808",
    ])
    def test_rejected(self, text):
        with pytest.raises(ValueError):
            parse_int(text)


class TestParseVehicleClass:
    def test_integer(self):
        assert parse_vehicle_class("2") == 2

    def test_unparsable_is_zero(self):
        assert parse_vehicle_class("普通車") == 0
        assert parse_vehicle_class("") == 0


class TestParseDate:
    def test_two_digit_year(self):
        assert parse_date("25/07/15") == date(2025, 7, 15)

    def test_four_digit_year(self):
        assert parse_date("2024/02/29") == date(2024, 2, 29)

    def test_pivot_below_fifty_is_2000s(self):
        assert parse_date("49/01/01") == date(2049, 1, 1)
        assert parse_date("00/01/01") == date(2000, 1, 1)

    def test_pivot_fifty_and_above_is_1900s(self):
        assert parse_date("50/01/01") == date(1950, 1, 1)
        assert parse_date("99/12/31") == date(1999, 12, 31)

    def test_month_overflow_rolls_into_next_year(self):
        assert parse_date("24/13/01") == date(2025, 1, 1)

    def test_month_zero_is_previous_december(self):
        assert parse_date("25/00/10") == date(2024, 12, 10)

    def test_day_overflow_rolls_into_next_month(self):
        assert parse_date("25/01/32") == date(2025, 2, 1)
        assert parse_date("25/02/30") == date(2025, 3, 2)

    def test_day_zero_is_last_day_of_previous_month(self):
        assert parse_date("25/03/00") == date(2025, 2, 28)

    @pytest.mark.parametrize("text", ["", "2025-07-15", "25/07", "25/07/15/01", "aa/bb/cc", "25/7a/01"])
    def test_rejects_malformed(self, text):
        with pytest.raises(DateFormatError):
            parse_date(text)

    def test_rejects_out_of_range_year(self):
        with pytest.raises(DateFormatError):
            parse_date("10000/01/01")


class TestDecodeLegacy:
    def test_decodes_cp932(self):
        assert decode_legacy("利用年月日（自）".encode("cp932")) == "利用年月日（自）"

    def test_invalid_bytes_replaced(self):
        text = decode_legacy(b"ok\x81 ")
        assert text.startswith("ok")
        assert "\ufffd" in text

    def test_invalid_bytes_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="etc_processor.parsers.base"):
            decode_legacy(b"ok\x81 ")
        assert "undecodable cp932" in caplog.text

    def test_clean_input_not_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="etc_processor.parsers.base"):
            decode_legacy("東京".encode("cp932"))
        assert caplog.text == ""

    def test_read_legacy_text(self, tmp_path):
        path = tmp_path / "a.csv"
        path.write_bytes("東京,横浜町田\n".encode("cp932"))
        assert read_legacy_text(path) == "東京,横浜町田\n"

    def test_read_legacy_text_missing_file(self, tmp_path):
        with pytest.raises(InputSourceError, match="failed to open file"):
            read_legacy_text(tmp_path / "missing.csv")


class TestReadCsvRows:
    def test_drops_blank_lines(self):
        assert read_csv_rows("a,b\n\nc,d\n") == [["a", "b"], ["c", "d"]]

    def test_quoted_commas_stay_in_field(self):
        assert read_csv_rows('x,"1,500"\n') == [["x", "1,500"]]

    def test_rows_may_differ_in_length(self):
        assert read_csv_rows("a\nb,c,d\n") == [["a"], ["b", "c", "d"]]

    def test_strips_bom(self):
        assert read_csv_rows("\ufeffa,b\n") == [["a", "b"]]

    def test_crlf_line_endings(self):
        assert read_csv_rows("a,b\r\nc,d\r\n") == [["a", "b"], ["c", "d"]]

    def test_stream_source(self):
        assert read_csv_rows(io.StringIO("a,b\n")) == [["a", "b"]]

    def test_utf8_bytes_source(self):
        assert read_csv_rows("東京,横浜\n".encode("utf-8-sig")) == [["東京", "横浜"]]

    def test_none_source(self):
        with pytest.raises(InputSourceError, match="reader cannot be None"):
            read_csv_rows(None)

    def test_unsupported_source(self):
        with pytest.raises(InputSourceError):
            read_csv_rows(42)

    def test_unreadable_stream(self):
        class Broken:
            def read(self):
                raise OSError("device gone")

        with pytest.raises(InputSourceError, match="device gone"):
            read_csv_rows(Broken())

    def test_text_stream_with_wrong_encoding(self):
        stream = io.TextIOWrapper(io.BytesIO("東京,横浜\n".encode("cp932")), encoding="utf-8")
        with pytest.raises(InputSourceError, match="failed to read CSV"):
            read_csv_rows(stream)

    def test_oversized_field_is_format_error(self):
        with pytest.raises(CsvFormatError):
            read_csv_rows("a," + "x" * 200_000 + "\n")
