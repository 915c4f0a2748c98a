"""
Shared fixtures for the grade report tests.
Roster files come from tests/fixtures or are built in memory; the user data
directory (remembered column choices) is redirected to a temp folder.
"""
import os
from io import BytesIO
import pytest
from openpyxl import Workbook

FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "fixtures")


class FakeUpload:
    """Minimal stand-in for Streamlit's UploadedFile (name + getvalue)."""

    def __init__(self, name, data):
        self.name = name
        self._data = data

    def getvalue(self):
        return self._data


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path, monkeypatch):
    import gradereport.config as config

    user_dir = tmp_path / "user_data"
    monkeypatch.setattr(config, "USER_DATA_DIR", user_dir)
    return user_dir


@pytest.fixture
def make_upload():
    return FakeUpload


@pytest.fixture
def roster_csv_bytes():
    with open(os.path.join(FIXTURES_DIR, "roster.csv"), "rb") as fh:
        return fh.read()


@pytest.fixture
def roster_upload(roster_csv_bytes):
    return FakeUpload("roster.csv", roster_csv_bytes)


@pytest.fixture
def xlsx_bytes():
    """Workbook with two sheets; the group cell of the first two students is merged."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Midterm"
    ws.append(["Name", "Group", "Grade"])
    ws.append(["Ann", "G1", 72])
    ws.append(["Ben", None, 58])
    ws.append(["Cid", "G2", "91%"])
    ws.merge_cells("B2:B3")

    ws2 = wb.create_sheet("Final")
    ws2.append(["Name", "Tutorial", "Total"])
    ws2.append(["Ann", 1.0, 80])
    ws2.append(["Ben", 2.0, 35])

    bio = BytesIO()
    wb.save(bio)
    return bio.getvalue()
