import numpy as np
import pandas as pd

from biosignal_insights.utils.plot_utils import (generate_plotly_colors,
                                                 plot_isc_series,
                                                 plot_quality_scores)


class TestColors:

    def test_cycles_past_palette(self):
        colors = generate_plotly_colors(12)
        assert len(colors) == 12
        assert colors[10] == colors[0]


class TestPlots:

    def test_one_trace_per_band(self):
        series = pd.DataFrame(
            {"timestamp": [2.5, 5.5, 8.5], "alpha": [0.2, np.nan, 0.4], "beta": [0.1, 0.3, 0.5]}
        )
        fig = plot_isc_series(series, name="Trailer")
        assert [t.name for t in fig.data] == ["alpha", "beta"]
        assert "Trailer" in fig.layout.title.text
        assert fig.data[0].connectgaps is False

    def test_quality_bars(self):
        quality = pd.DataFrame(
            {"respondent_id": ["r1", "r2"], "quality_score": [5.0, 60.0], "included": [True, False]}
        )
        fig = plot_quality_scores(quality, threshold=30)
        assert list(fig.data[0].marker.color) == ["#636EFA", "#EF553B"]
        assert len(fig.layout.shapes) == 1
