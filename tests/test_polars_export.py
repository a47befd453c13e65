import pytest

from querydiff.codec.annotated_csv import AnnotatedCSVDecoder
from querydiff.export import results_to_dataframe
from querydiff.util import deps
from tests.fakes import CountingStream

TEXT = (
    "#datatype,string,long,string,double\n"
    "#group,false,false,true,false\n"
    "#default,_result,,,\n"
    ",result,table,host,_value\n"
    ",,0,a,1.5\n"
    ",,1,b,2.5\n"
    "\n"
    "#datatype,string,long,long\n"
    "#group,false,false,false\n"
    "#default,other,,\n"
    ",result,table,count\n"
    ",,0,2\n"
)


def test_results_to_dataframe_stacks_tables():
    pytest.importorskip("polars")

    frame = results_to_dataframe(AnnotatedCSVDecoder().decode(CountingStream(TEXT)))

    assert frame.columns[:2] == ["result", "table"]
    assert frame.height == 3
    assert frame["result"].to_list() == ["_result", "_result", "other"]
    assert frame["table"].to_list() == [0, 1, 0]
    assert frame["host"].to_list() == ["a", "b", None]
    assert frame["count"].to_list() == [None, None, 2]


def test_require_polars_reports_missing_extra(monkeypatch):
    monkeypatch.setattr(deps, "optional_polars", lambda: None)

    with pytest.raises(ImportError) as excinfo:
        deps.require_polars("results_to_dataframe")

    assert "querydiff[dataframe]" in str(excinfo.value)
