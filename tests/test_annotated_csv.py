import pytest

from querydiff.codec.annotated_csv import AnnotatedCSVDecoder, AnnotatedCSVEncoder
from querydiff.compare.comparator import compare_results
from querydiff.errors import DecodeError, QueryResultError
from querydiff.table.model import buffer_results
from querydiff.table.types import parse_rfc3339
from tests.fakes import CountingStream

TWO_RESULTS = (
    "#datatype,string,long,dateTime:RFC3339,double,string\r\n"
    "#group,false,false,false,false,true\r\n"
    "#default,_result,,,,\r\n"
    ",result,table,_time,_value,host\r\n"
    ",,0,2018-05-22T19:53:26Z,1.5,a\r\n"
    ",,0,2018-05-22T19:53:36Z,2.5,a\r\n"
    ",,1,2018-05-22T19:53:26Z,0.5,b\r\n"
    "\r\n"
    "#datatype,string,long,string,long\r\n"
    "#group,false,false,true,false\r\n"
    "#default,other,,,\r\n"
    ",result,table,host,count\r\n"
    ",,0,a,2\r\n"
)


def _decode(text):
    return buffer_results(AnnotatedCSVDecoder().decode(CountingStream(text)))


def test_decode_groups_tables_and_results():
    results = _decode(TWO_RESULTS)

    assert [r.name for r in results] == ["_result", "other"]
    first, second = results[0].tables
    assert first.key.items() == [("host", "a")]
    assert first.column_labels() == ("_time", "_value", "host")
    assert first.rows == [
        (parse_rfc3339("2018-05-22T19:53:26Z"), 1.5, "a"),
        (parse_rfc3339("2018-05-22T19:53:36Z"), 2.5, "a"),
    ]
    assert second.key.items() == [("host", "b")]
    assert results[1].tables[0].rows == [("a", 2)]


def test_result_column_overrides_default():
    text = (
        "#datatype,string,long,long\n"
        "#default,_result,,\n"
        ",result,table,n\n"
        ",first,0,1\n"
        ",second,0,2\n"
    )

    results = _decode(text)

    assert [(r.name, r.tables[0].rows) for r in results] == [("first", [(1,)]), ("second", [(2,)])]


def test_block_without_reserved_columns_uses_default_result_name():
    results = _decode("#datatype,string,double\n,host,_value\n,a,1\n")

    assert results[0].name == "_result"
    assert results[0].tables[0].rows == [("a", 1.0)]


def test_blank_cells_take_column_defaults():
    text = (
        "#datatype,string,long,string,double\n"
        "#group,false,false,true,false\n"
        "#default,_result,,a,0\n"
        ",result,table,host,_value\n"
        ",,0,,\n"
        ",,0,a,2.5\n"
    )

    table = _decode(text)[0].tables[0]

    assert table.rows == [("a", 0.0), ("a", 2.5)]


def test_missing_cells_without_default_are_null():
    text = "#datatype,string,long,double\n,result,table,_value\n,,0,\n"

    assert _decode(text)[0].tables[0].rows == [(None,)]


def test_block_without_rows_is_an_empty_table_keyed_by_defaults():
    text = (
        "#datatype,string,long,string,double\n"
        "#group,false,false,true,false\n"
        "#default,_result,,a,\n"
        ",result,table,host,_value\n"
    )

    table = _decode(text)[0].tables[0]

    assert table.empty
    assert table.key.items() == [("host", "a")]


def test_new_annotation_block_ends_previous_table_without_blank_line():
    text = (
        "#datatype,string,long,long\n"
        ",result,table,a\n"
        ",,0,1\n"
        "#datatype,string,long,string\n"
        ",result,table,b\n"
        ",,0,x\n"
    )

    tables = _decode(text)[0].tables

    assert [t.column_labels() for t in tables] == [("a",), ("b",)]


def test_decoding_is_streaming():
    blocks = []
    for idx in range(200):
        blocks.append(
            "#datatype,string,long,long\n#group,false,false,true\n#default,_result,,\n"
            ",result,table,n\n,,%d,%d\n" % (idx, idx)
        )
    stream = CountingStream("\n".join(blocks))
    total_lines = 6 * 200 - 1

    with AnnotatedCSVDecoder().decode(stream) as results:
        result = next(results)
        table = next(result.tables())
        assert table.rows == [(0,)]
        assert stream.lines_read < 20
    assert stream.lines_read < total_lines
    assert stream.close_calls == 1


def test_stream_is_closed_once_after_full_decode():
    stream = CountingStream(TWO_RESULTS)
    results = AnnotatedCSVDecoder().decode(stream)

    buffer_results(results)
    results.release()

    assert stream.close_calls == 1


@pytest.mark.parametrize(
    "text,line,message",
    [
        ("#datatype,string,long,float64\n,result,table,x\n,,0,1\n", 1, "unknown type"),
        ("#datatype,string,long,long\n#group,false,false\n,result,table,x\n", 2, "#group annotation has 2"),
        ("#datatype,string,long,long\n#group,false,false,maybe\n,result,table,x\n", 2, "invalid #group"),
        ("#datatype,string,long,long\n#datatype,string,long,long\n", 2, "duplicate #datatype"),
        ("#datatype,string,long,long\n#units,,,s\n,result,table,x\n", 2, "unknown annotation"),
        (",result,table,x\n,,0,1\n", 1, "not preceded by a #datatype"),
        ("#datatype,string,long,long,long\n,result,table,x,x\n", 2, "duplicate column labels"),
        ("#datatype,string,long,long\n", 1, "not followed by a header"),
        ("#datatype,string,long,long\n#default,_result,,abc\n,result,table,x\n", 2, "invalid #default"),
    ],
)
def test_malformed_headers_raise_with_line_numbers(text, line, message):
    stream = CountingStream(text)

    with pytest.raises(DecodeError) as excinfo:
        AnnotatedCSVDecoder().decode(stream)

    assert excinfo.value.line == line
    assert message in str(excinfo.value)
    assert str(excinfo.value).startswith("line %d: " % line)
    assert stream.close_calls == 1


@pytest.mark.parametrize(
    "bad_row,message",
    [
        (",,1,2018-05-22T19:53:26Z,oops,b", "invalid value for column '_value'"),
        (",,1,2018-05-22T19:53:26Z,0.5", "row has 5 cells"),
        ("x,,1,2018-05-22T19:53:26Z,0.5,b", "annotation column"),
        (",,0,2018-05-22T19:53:46Z,0.5,z", "group key column 'host' changed"),
    ],
)
def test_malformed_rows_raise_with_line_numbers(bad_row, message):
    text = (
        "#datatype,string,long,dateTime:RFC3339,double,string\n"
        "#group,false,false,false,false,true\n"
        "#default,_result,,,,\n"
        ",result,table,_time,_value,host\n"
        ",,0,2018-05-22T19:53:26Z,1.5,a\n"
        ",,0,2018-05-22T19:53:36Z,2.5,a\n" + bad_row + "\n"
    )
    stream = CountingStream(text)

    with pytest.raises(DecodeError) as excinfo:
        buffer_results(AnnotatedCSVDecoder().decode(stream))

    assert excinfo.value.line == 7
    assert message in str(excinfo.value)
    assert stream.close_calls == 1


def test_error_table_raises_query_result_error():
    text = (
        "#datatype,string,string\n"
        "#group,true,true\n"
        "#default,,\n"
        ",error,reference\n"
        ",failed to initialize execute state: unknown bucket,897\n"
    )

    with pytest.raises(QueryResultError) as excinfo:
        _decode(text)

    assert excinfo.value.message == "failed to initialize execute state: unknown bucket"
    assert excinfo.value.reference == "897"
    assert excinfo.value.kind == "execution_error"


def test_encoder_writes_defaults_for_empty_tables():
    text = (
        "#datatype,string,long,string,double\n"
        "#group,false,false,true,false\n"
        "#default,_result,,a,\n"
        ",result,table,host,_value\n"
    )

    encoded = AnnotatedCSVEncoder(lineterminator="\n").encode_to_string(_decode(text))

    assert encoded == text


def test_encoder_quotes_cells_and_numbers_tables_per_result():
    text = (
        "#datatype,string,long,string\n"
        "#group,false,false,false\n"
        "#default,_result,,\n"
        ",result,table,msg\n"
        ',,3,"a,b"\n'
        "\n"
        "#datatype,string,long,long\n"
        "#group,false,false,false\n"
        "#default,_result,,\n"
        ",result,table,n\n"
        ",,7,1\n"
    )

    encoded = AnnotatedCSVEncoder(lineterminator="\n").encode_to_string(_decode(text))

    assert ',,0,"a,b"\n' in encoded
    assert ",,1,1\n" in encoded


def test_render_then_decode_is_a_fixed_point():
    encoder = AnnotatedCSVEncoder()
    once = encoder.encode_to_string(_decode(TWO_RESULTS))
    twice = encoder.encode_to_string(_decode(once))

    assert once == twice
    assert compare_results(_decode(TWO_RESULTS), _decode(once)).equal


def test_invalid_utf8_raises_decode_error_with_line():
    stream = CountingStream(b"#datatype,string,long,string\n,result,table,x\n,,0,\xff\xfe\n")

    with pytest.raises(DecodeError) as excinfo:
        AnnotatedCSVDecoder().decode(stream)

    assert excinfo.value.line == 3
    assert "invalid UTF-8" in str(excinfo.value)
    assert isinstance(excinfo.value.cause, UnicodeDecodeError)
    assert stream.close_calls == 1
