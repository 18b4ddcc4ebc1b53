"""CSV parsing and employee import mapping."""

from datetime import date

import pytest

from thrive.csv_import import employees_from_frame, extract_prediction_factors, numeric_columns, parse_csv
from thrive.errors import DataPreparationError

SAMPLE = b"""\xef\xbb\xbfName , Department,Role,Tenure,Performance,Salary,Hire Date,Risk
Jane Doe, Sales ,Account Exec,3,High,52000,2020-01-15,HIGH
John Smith,Engineering,Developer,5,Medium,,2018-06-01,low

Cher,Sales,Singer,1,High,40000,not a date,unknown
Ann Lee,Engineering,Developer,
"""

EMPLOYEES = b"""\xef\xbb\xbfName , Department,Role,Salary,Hire Date,Risk
Jane Doe, Sales ,Account Exec,52000,2020-01-15,HIGH
John Smith,Engineering,Developer,,2018-06-01,low

Cher,Sales,Singer,40000,not a date,unknown
Ann Lee,Engineering,Developer,
"""


def test_parse_csv_trims_and_fills_blanks() -> None:
    df = parse_csv(SAMPLE)

    assert list(df.columns) == ["Name", "Department", "Role", "Tenure", "Performance", "Salary", "Hire Date", "Risk"]
    assert len(df) == 4
    assert df.loc[0, "Department"] == "Sales"
    assert df.loc[1, "Salary"] == ""
    assert df.loc[3, "Risk"] == ""


def test_numeric_columns_ignores_blanks() -> None:
    df = parse_csv(SAMPLE)

    assert numeric_columns(df) == ["Tenure", "Salary"]


def test_extract_prediction_factors() -> None:
    factors = extract_prediction_factors(parse_csv(SAMPLE))

    assert factors["departments"] == ["Sales", "Engineering"]
    assert factors["roles"] == ["Account Exec", "Developer", "Singer"]
    assert factors["avg_tenure"] == 3.0
    assert factors["performance_distribution"] == {"High": 2, "Medium": 1}


def test_extract_prediction_factors_without_known_columns() -> None:
    factors = extract_prediction_factors(parse_csv("a,b\n1,2\n"))

    assert factors == {"departments": [], "roles": [], "avg_tenure": 0.0, "performance_distribution": {}}


def test_employees_from_frame_maps_aliases_and_validates_rows() -> None:
    records, errors = employees_from_frame(parse_csv(EMPLOYEES))

    assert [(r["first_name"], r["last_name"]) for r in records] == [("Jane", "Doe"), ("John", "Smith"), ("Ann", "Lee")]
    jane = records[0]
    assert jane["department"] == "Sales"
    assert jane["position"] == "Account Exec"
    assert jane["salary"] == 52000.0
    assert jane["hire_date"] == date(2020, 1, 15)
    assert jane["retention_risk"] == "high"
    assert records[1]["salary"] is None
    assert records[1]["retention_risk"] == "low"
    assert [(row, e.field) for row, e in errors] == [(3, "first_name")]


@pytest.mark.parametrize(
    "row, field",
    [
        ("Ana,Lee,not-an-email,4,100", "email"),
        ("Ana,Lee,ana@example.com,9,100", "performance_score"),
        ("Ana,Lee,ana@example.com,4,-5", "salary"),
        ("Ana,Lee,ana@example.com,high,100", "performance_score"),
        ("Ana,Lee,ana@example.com,4,inf", "salary"),
    ],
)
def test_employees_from_frame_rejects_rows_the_form_would_reject(row, field) -> None:
    content = f"First Name,Last Name,Email,Performance,Salary\n{row}\nBo,Park,bo@example.com,4,50000\n"

    records, errors = employees_from_frame(parse_csv(content))

    assert [r["email"] for r in records] == ["bo@example.com"]
    assert len(errors) == 1
    assert errors[0][0] == 1
    assert errors[0][1].field == field


def test_employees_from_frame_rejects_unparseable_dates_and_risks() -> None:
    content = "Name,Hire Date,Risk\nAna Lee,someday,low\nBo Park,2019-03-01,extreme\nCy Ng,03/15/2021,medium\n"

    records, errors = employees_from_frame(parse_csv(content))

    assert [r["first_name"] for r in records] == ["Cy"]
    assert records[0]["hire_date"] == date(2021, 3, 15)
    assert [(row, e.field) for row, e in errors] == [(1, "hire_date"), (2, "retention_risk")]


def test_parse_csv_keeps_columns_aligned_for_long_rows() -> None:
    df = parse_csv("Name,Age\nAna,30,extra\nBo,40,extra,more\nCy\n")

    assert list(df.columns) == ["Name", "Age"]
    assert df["Name"].tolist() == ["Ana", "Bo", "Cy"]
    assert df["Age"].tolist() == ["30", "40", ""]


@pytest.mark.parametrize(
    "content, message",
    [
        (b"", "empty"),
        (b"   \n\n", "empty"),
        ("Name,Age\nAna,30\n".encode("utf-16"), "UTF-8"),
        (b"Name,Dept\n\xe9quipe,Sales\n", "UTF-8"),
    ],
)
def test_parse_csv_rejects_unreadable_uploads(content, message) -> None:
    with pytest.raises(DataPreparationError, match=message):
        parse_csv(content)
