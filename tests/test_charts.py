"""
Test: interactive figures and the PNG renditions embedded in the PDF.
"""
import pandas as pd
import pytest
from gradereport.charts import grade_histogram, group_boxplot, render_chart_images
from gradereport.stats import Thresholds, RECORD_COLUMNS

PNG_MAGIC = b"\x89PNG"


@pytest.fixture
def records():
    return pd.DataFrame(
        [
            [2, "B", 72.0],
            [3, "A", 38.0],
            [4, "B", 55.5],
            [5, "A", 91.0],
            [6, "(No group)", 60.0],
        ],
        columns=RECORD_COLUMNS,
    )


class TestGradeHistogram:
    def test_threshold_lines(self, records):
        fig = grade_histogram(records, Thresholds(passing=45, merit=60, distinction=75))
        xs = sorted(shape.x0 for shape in fig.layout.shapes)
        assert xs == [45, 60, 75]

    def test_uses_all_grades(self, records):
        fig = grade_histogram(records, Thresholds())
        assert len(fig.data) == 1
        assert sorted(fig.data[0].x) == sorted(records["grade"].tolist())


class TestGroupBoxplot:
    def test_groups_in_first_seen_order(self, records):
        fig = group_boxplot(records)
        assert list(fig.layout.xaxis.categoryarray) == ["B", "A", "(No group)"]

    def test_points_shown(self, records):
        fig = group_boxplot(records)
        assert fig.data[0].boxpoints == "all"


class TestRenderChartImages:
    def test_two_png_charts(self, records):
        images = render_chart_images(records, Thresholds())
        assert [t for t, _ in images] == ["Grade Distribution", "Grades by Group"]
        for _, png in images:
            assert png.startswith(PNG_MAGIC)

    def test_many_groups(self):
        df = pd.DataFrame(
            [[i + 2, f"Group {i % 8}", float(40 + i)] for i in range(16)],
            columns=RECORD_COLUMNS,
        )
        images = render_chart_images(df, Thresholds())
        assert images[1][1].startswith(PNG_MAGIC)

    def test_no_records(self):
        assert render_chart_images(pd.DataFrame(columns=RECORD_COLUMNS), Thresholds()) == []
