import io
import logging
import warnings
from datetime import date

import pandas as pd

from thrive.directory import validate_employee_form
from thrive.errors import DataPreparationError, ValidationError

logger = logging.getLogger(__name__)

# header aliases seen in HR exports -> employee field
EMPLOYEE_COLUMN_ALIASES = {
    "first_name": ["first_name", "first name", "firstname"],
    "last_name": ["last_name", "last name", "lastname", "surname"],
    "email": ["email", "e-mail", "email address"],
    "department": ["department", "dept", "department_name"],
    "position": ["position", "role", "job_title", "job title", "title"],
    "location": ["location", "city", "city_name", "office"],
    "manager": ["manager", "reports_to"],
    "hire_date": ["hire_date", "hire date", "start_date", "start date"],
    "salary": ["salary", "compensation", "monthlyincome"],
    "performance_score": ["performance_score", "performance", "performancerating"],
    "engagement_score": ["engagement_score", "engagement"],
    "retention_risk": ["retention_risk", "risk", "risk_level"],
    "feedback": ["feedback", "comments"],
}


def parse_csv(content: str | bytes) -> pd.DataFrame:
    """Read an uploaded CSV as trimmed strings, one column per header cell.

    Cells past the header width are dropped and short rows are padded with "".
    """
    try:
        if isinstance(content, bytes):
            content = content.decode("utf-8-sig")
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", pd.errors.ParserWarning)
            df = pd.read_csv(
                io.StringIO(content),
                dtype=object,
                keep_default_na=False,
                skip_blank_lines=True,
                skipinitialspace=True,
                index_col=False,
                engine="python",
            )
    except UnicodeDecodeError as e:
        raise DataPreparationError("CSV file must be UTF-8 encoded") from e
    except pd.errors.EmptyDataError as e:
        raise DataPreparationError("CSV file is empty") from e
    except pd.errors.ParserError as e:
        raise DataPreparationError(f"Could not parse CSV: {e}") from e
    for w in caught:
        logger.warning("CSV rows were truncated to the header width: %s", w.message)

    df.columns = [str(c).strip() for c in df.columns]
    df = df.fillna("").apply(lambda col: col.str.strip())
    logger.debug("Parsed CSV with %d rows and columns %s", len(df), list(df.columns))
    return df


def numeric_columns(df: pd.DataFrame) -> list[str]:
    cols = []
    for c in df.columns:
        values = df[c].replace("", pd.NA).dropna()
        if values.empty:
            continue
        if pd.to_numeric(values, errors="coerce").notna().all():
            cols.append(c)
    return cols


def _avg_tenure(df: pd.DataFrame) -> float:
    if "Tenure" not in df.columns:
        return 0.0
    tenure = pd.to_numeric(df["Tenure"], errors="coerce").dropna()
    return float(tenure.mean()) if not tenure.empty else 0.0


def extract_prediction_factors(df: pd.DataFrame) -> dict:
    def uniques(col: str) -> list:
        if col not in df.columns:
            return []
        return list(dict.fromkeys(df[col].tolist()))

    distribution: dict[str, int] = {}
    if "Performance" in df.columns:
        for v in df["Performance"]:
            key = str(v).strip()
            if key:
                distribution[key] = distribution.get(key, 0) + 1

    return {
        "departments": uniques("Department"),
        "roles": uniques("Role"),
        "avg_tenure": _avg_tenure(df),
        "performance_distribution": distribution,
    }


def _resolve_columns(df: pd.DataFrame) -> dict[str, str]:
    lowered = {c.lower(): c for c in df.columns}
    resolved = {}
    for field, aliases in EMPLOYEE_COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in lowered:
                resolved[field] = lowered[alias]
                break
    return resolved


def _to_date(value: str) -> date | None:
    parsed = pd.to_datetime(value, errors="coerce")
    return None if pd.isna(parsed) else parsed.date()


def employees_from_frame(df: pd.DataFrame) -> tuple[list[dict], list[tuple[int, ValidationError]]]:
    """Map CSV rows onto employee fields and validate each one like the new-employee form.

    Returns the cleaned records plus (row number, error) for every rejected row.
    Rows are numbered from 1, not counting the header.
    """
    cols = _resolve_columns(df)
    name_col = next((c for c in df.columns if c.lower() in ("name", "full name", "employee")), None)

    records, errors = [], []
    for number, (_, row) in enumerate(df.iterrows(), start=1):
        if not any(row.tolist()):
            continue
        record = {field: row[col] for field, col in cols.items() if row[col] != ""}

        if ("first_name" not in record or "last_name" not in record) and name_col:
            parts = str(row[name_col]).split()
            if len(parts) >= 2:
                record["first_name"] = parts[0]
                record["last_name"] = " ".join(parts[1:])
        if "hire_date" in record:
            # exports use mixed date formats; unparseable values are left for validation to reject
            record["hire_date"] = _to_date(record["hire_date"]) or record["hire_date"]

        try:
            records.append(validate_employee_form(record))
        except ValidationError as e:
            errors.append((number, e))

    if errors:
        logger.info("Rejected %d of %d CSV rows", len(errors), len(df))
    return records, errors
