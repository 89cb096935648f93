import io
from decimal import Decimal

import pytest

from banks2ledger.csv_parser import (
    CsvEntryError,
    all_indices,
    clip_string,
    compile_date_pattern,
    convert_amount,
    convert_date,
    drop_lines,
    format_value,
    get_col,
    parse_csv,
    parse_csv_entry,
    split_by_indices,
    unquote_string,
    valid_descr_col_spec,
)
from banks2ledger.models import ConvertOptions, Transaction


def _options(**overrides) -> ConvertOptions:
    # File-existence checks are irrelevant here; rows come from memory.
    return ConvertOptions.model_construct(**overrides)


# ---- String helpers ------------------------------------------------------------


def test_clip_string():
    assert clip_string("|", "abcdef") == "abcdef"
    assert clip_string("|", "abc|def") == "abc"
    assert clip_string("|", "|abcdef") == ""
    assert clip_string("  ", "Expenses:Food  SEK 1.00") == "Expenses:Food"


def test_unquote_string():
    assert unquote_string("abcdef") == "abcdef"
    assert unquote_string('"abcdef"') == "abcdef"
    assert unquote_string("'abcdef'") == "abcdef"
    assert unquote_string("\"abcdef'") == "\"abcdef'"
    assert unquote_string('""') == '""'
    assert unquote_string("'a'") == "a"


def test_all_indices_and_split():
    assert all_indices("abcdef", "!") == []
    assert all_indices("a!b!c", "!") == [1, 3]
    assert split_by_indices("abcdef", []) == ["abcdef"]
    assert split_by_indices("a!b!c", [1, 3]) == ["a", "b", "c"]
    assert split_by_indices("!a!", [0, 2]) == ["", "a", ""]


# ---- Column specs --------------------------------------------------------------


@pytest.mark.parametrize(
    "spec",
    ["%0", "%1", "%123", "%0 %1", "%0 %1 %2", "%1!%2", "%4!%1 %2 %3!%7", "prefix %0 suffix", "%0-%1"],
)
def test_valid_descr_col_spec(spec):
    assert valid_descr_col_spec(spec)


@pytest.mark.parametrize("spec", ["", "   ", "no refs", "%-5", "%abc", "%", "just text", "%1 %"])
def test_invalid_descr_col_spec(spec):
    assert not valid_descr_col_spec(spec)


def test_get_col_alternatives():
    cols = ["ett", "två", "tre", "", "'fem'", "  "]
    assert get_col(cols, "%0") == "ett"
    assert get_col(cols, "%0 %2") == "ett tre"
    assert get_col(cols, "%3!%1") == "två"
    assert get_col(cols, "%3!%5!%0 %1 %2") == "ett två tre"
    assert get_col(cols, "%4") == "fem"
    assert get_col(cols, "%3!%5") == ""


def test_get_col_out_of_range_raises_index_error():
    with pytest.raises(IndexError):
        get_col(["a"], "%3")


# ---- Amounts -------------------------------------------------------------------


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("-10,000.00", "-10,000.00"),
        ("10,000.00", "10,000.00"),
        ("123.45", "123.45"),
        ("-123.45", "-123.45"),
        ("12345", "12,345.00"),
        ("0.5", "0.50"),
        ("usd 10,123.45", "10,123.45"),
        ("-123.45 kr", "-123.45"),
        ("SEK -1,234,567.891", "-1,234,567.89"),
        ("2.675", "2.68"),
        ("0.005", "0.01"),
    ],
)
def test_convert_amount_default_separators(raw, expected):
    assert convert_amount(raw) == expected


def test_convert_amount_custom_separators():
    assert convert_amount("-1 234,56", ",", " ") == "-1,234.56"
    assert convert_amount("1.234,56", ",", ".") == "1,234.56"
    assert convert_amount("12,5 kr", ",", " ") == "12.50"


@pytest.mark.parametrize("raw", ["", "kr", "abc", "-", "."])
def test_convert_amount_rejects_garbage(raw):
    with pytest.raises(ValueError):
        convert_amount(raw)


def test_convert_amount_none():
    with pytest.raises(ValueError, match="nil"):
        convert_amount(None)


def test_format_value():
    assert format_value(1234.5) == "1,234.50"
    assert format_value(-38500) == "-38,500.00"
    assert format_value(Decimal("9210")) == "9,210.00"
    assert format_value(0.125) == "0.13"


# ---- Dates ---------------------------------------------------------------------


@pytest.mark.parametrize(
    "value,pattern",
    [
        ("2024-03-05", "yyyy-MM-dd"),
        ("05.03.2024", "dd.MM.yyyy"),
        ("03/05/24", "MM/dd/yy"),
        ("3/5/24", "M/d/yy"),
        (" 20240305 ", "yyyyMMdd"),
        ("2024-03-05T23:59:01", "yyyy-MM-dd'T'HH:mm:ss"),
        ("'2024.03.05", "''yyyy.MM.dd"),
    ],
)
def test_convert_date(value, pattern):
    assert convert_date(value, pattern) == "2024/03/05"


def test_convert_date_two_digit_years_are_in_this_century():
    assert convert_date("70-01-02", "yy-MM-dd") == "2070/01/02"
    assert convert_date("99-12-31", "yy-MM-dd") == "2099/12/31"


@pytest.mark.parametrize(
    "value,pattern",
    [
        ("2024-3-05", "yyyy-MM-dd"),
        ("2024-03-5", "yyyy-MM-dd"),
        ("24-03-05", "yyyy-MM-dd"),
        ("2024-13-01", "yyyy-MM-dd"),
        ("2024-02-30", "yyyy-MM-dd"),
        ("2024.03.05", "yyyy-MM-dd"),
        ("2024-03-05 extra", "yyyy-MM-dd"),
    ],
)
def test_convert_date_rejects_mismatches(value, pattern):
    with pytest.raises(ValueError):
        convert_date(value, pattern)


def test_compile_date_pattern_rejects_bad_patterns():
    with pytest.raises(ValueError, match="Unsupported"):
        compile_date_pattern("EEE yyyy-MM-dd")
    with pytest.raises(ValueError, match="Unterminated"):
        compile_date_pattern("yyyy-MM-dd'T")
    with pytest.raises(ValueError, match="Repeated"):
        compile_date_pattern("yyyy-MM-dd yyyy")
    with pytest.raises(ValueError, match="needs a year"):
        compile_date_pattern("MM-dd")


# ---- Rows ----------------------------------------------------------------------


def test_drop_lines():
    rows = [["h"], ["a"], ["b"], ["c"], ["t"]]
    assert drop_lines(rows, 0, 0) == rows
    assert drop_lines(rows, 1, 1) == [["a"], ["b"], ["c"]]
    assert drop_lines(rows, 2, 0) == [["b"], ["c"], ["t"]]
    assert drop_lines(rows, 4, 3) == []


def test_parse_csv_entry():
    opts = _options(ref_col=1, descr_col="%3")
    txn = parse_csv_entry(7, opts, ["2024-02-01", "'TX1'", "-145.20", "ICA NARA"])
    assert txn == Transaction(date="2024/02/01", amount="-145.20", descr="ICA NARA", ref="TX1")


def test_parse_csv_entry_without_ref():
    txn = parse_csv_entry(1, _options(), ["2024-02-01", "x", "10", "KIOSK"])
    assert txn.ref is None


def test_parse_csv_entry_column_out_of_bounds():
    with pytest.raises(CsvEntryError) as ei:
        parse_csv_entry(2, _options(), ["2024-02-01", "x"])
    err = ei.value
    assert err.kind == "column-out-of-bounds"
    assert err.row == 2
    assert err.column_count == 2
    assert str(err) == "CSV row 2: Column index out of bounds (index 2). Row has 2 column(s)"


def test_parse_csv_entry_descr_spec_out_of_bounds():
    with pytest.raises(CsvEntryError) as ei:
        parse_csv_entry(4, _options(descr_col="%9"), ["2024-02-01", "x", "1.00", "y"])
    assert ei.value.kind == "column-out-of-bounds"
    assert str(ei.value).startswith("CSV row 4: ")


def test_parse_csv_entry_bad_date():
    with pytest.raises(CsvEntryError) as ei:
        parse_csv_entry(3, _options(), ["01/02/2024", "x", "1.00", "y"])
    assert ei.value.kind == "date-parse-error"
    assert ei.value.value == "01/02/2024"
    assert "CSV row 3: Failed to parse date '01/02/2024' with format 'yyyy-MM-dd'" in str(ei.value)


def test_parse_csv_entry_bad_amount():
    with pytest.raises(CsvEntryError) as ei:
        parse_csv_entry(5, _options(), ["2024-02-01", "x", "n/a", "y"])
    assert ei.value.kind == "amount-parse-error"
    assert str(ei.value).startswith("CSV row 5: Failed to parse amount 'n/a'")


def test_parse_csv_with_header_trailer_and_blank_rows():
    data = (
        "Date;Ref;Amount;Text\n"
        "2024-02-01;TX1;-145,20;ICA NARA\n"
        "\n"
        '2024-02-02;TX2;"1 250,00";"LÖN; FEBRUARI"\n'
        "Summa;;;\n"
    )
    opts = _options(
        csv_field_separator=";",
        csv_skip_header_lines=1,
        csv_skip_trailer_lines=1,
        amount_decimal_separator=",",
        amount_grouping_separator=" ",
        ref_col=1,
    )
    assert list(parse_csv(io.StringIO(data), opts)) == [
        Transaction(date="2024/02/01", amount="-145.20", descr="ICA NARA", ref="TX1"),
        Transaction(date="2024/02/02", amount="1,250.00", descr="LÖN; FEBRUARI", ref="TX2"),
    ]


def test_parse_csv_reports_file_row_numbers():
    data = "Header\n2024-02-01,x,1.00,ok\n\n2024-02-30,x,1.00,bad\n"
    with pytest.raises(CsvEntryError) as ei:
        list(parse_csv(io.StringIO(data), _options(csv_skip_header_lines=1)))
    assert ei.value.row == 4
    assert ei.value.kind == "date-parse-error"
