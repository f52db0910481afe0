"""
Tests for the sliding-window ISC aggregation.

Covers window arithmetic, |r| with case-wise deletion, cross-pair averaging
with missing contributions, the degenerate single-respondent result and the
timestamp reconstruction.
"""

import itertools
import math

import numpy as np
import pandas as pd
import pytest

from biosignal_insights.data_extraction.reshape import build_band_matrix
from biosignal_insights.errors import (InsufficientRespondentsWarning,
                                       MissingDataWarning)
from biosignal_insights.signal_processing.correlation import (
    aggregate_band, aggregate_isc, compute_sample_overlap,
    median_sample_interval, nanmean_rows, pearson_abs, window_count,
    window_timestamps, windowed_abs_correlation)
from conftest import make_psd_frame


class TestWindowArithmetic:

    def test_sample_overlap_half_window(self):
        assert compute_sample_overlap(5, 50) == 3
        assert compute_sample_overlap(10, 50) == 5

    def test_sample_overlap_bounds(self):
        assert compute_sample_overlap(10, 0) == 10
        assert compute_sample_overlap(10, 100) == 1
        assert compute_sample_overlap(1, 90) == 1

    @pytest.mark.parametrize("window_size, overlap, expected", [(10, 33, 7), (7, 50, 4), (3, 70, 1), (9, 10, 9)])
    def test_fractional_overlap_rounds_step_up(self, window_size, overlap, expected):
        assert compute_sample_overlap(window_size, overlap) == expected
        assert expected == max(1, math.ceil(window_size - overlap * window_size / 100))

    @pytest.mark.parametrize(
        "n, window_size, step, expected",
        [(20, 5, 3, 6), (20, 20, 1, 1), (19, 20, 1, 0), (10, 3, 2, 4), (0, 1, 1, 0)],
    )
    def test_window_count(self, n, window_size, step, expected):
        assert window_count(n, window_size, step) == expected

    def test_window_count_formula(self):
        for n, w, s in itertools.product(range(0, 30), range(1, 8), range(1, 5)):
            expected = (n - w) // s + 1 if n >= w else 0
            assert window_count(n, w, s) == expected

    def test_window_timestamps_are_window_midpoints(self):
        ts = window_timestamps(6, 1.0, 5, 3)
        np.testing.assert_allclose(ts, [2.5, 5.5, 8.5, 11.5, 14.5, 17.5])


class TestPearsonAbs:

    def test_perfect_negative_is_one(self):
        x = np.arange(10, dtype=float)
        assert pearson_abs(x, -2 * x + 3) == pytest.approx(1.0)

    def test_matches_numpy(self, rng):
        x, y = rng.normal(size=50), rng.normal(size=50)
        assert pearson_abs(x, y) == pytest.approx(abs(np.corrcoef(x, y)[0, 1]))

    def test_zero_variance_is_missing_not_zero(self):
        x = np.ones(5)
        y = np.arange(5, dtype=float)
        assert np.isnan(pearson_abs(x, y))

    def test_casewise_deletion(self):
        x = np.array([1.0, 2.0, np.nan, 4.0, 5.0])
        y = np.array([2.0, 4.0, 100.0, 8.0, np.nan])
        # only indices 0, 1, 3 are complete and perfectly correlated
        assert pearson_abs(x, y) == pytest.approx(1.0)

    def test_too_few_complete_cases(self):
        x = np.array([1.0, np.nan, 3.0])
        y = np.array([np.nan, 2.0, np.nan])
        assert np.isnan(pearson_abs(x, y))


class TestWindowedCorrelation:

    def test_truncates_to_shorter_series(self, rng):
        x, y = rng.normal(size=10), rng.normal(size=7)
        out = windowed_abs_correlation(x, y, 5, 1)
        assert len(out) == 3
        assert out[2] == pytest.approx(pearson_abs(x[2:7], y[2:7]))

    def test_shorter_than_window_gives_no_windows(self, rng):
        out = windowed_abs_correlation(rng.normal(size=4), rng.normal(size=10), 5, 1)
        assert out.size == 0

    def test_values_in_unit_interval(self, rng):
        x, y = rng.normal(size=200), rng.normal(size=200)
        out = windowed_abs_correlation(x, y, 12, 4)
        assert np.all((out >= 0) & (out <= 1))

    def test_missing_slice_gives_missing_window(self, rng):
        x = rng.normal(size=15)
        y = rng.normal(size=15)
        y[:5] = np.nan
        out = windowed_abs_correlation(x, y, 5, 5)
        assert np.isnan(out[0])
        assert not np.isnan(out[1:]).any()


class TestNanmeanRows:

    def test_missing_excluded_not_zeroed(self):
        stack = np.array([[0.5, np.nan, np.nan], [0.7, 0.2, np.nan]])
        out = nanmean_rows(stack)
        assert out[0] == pytest.approx(0.6)
        assert out[1] == pytest.approx(0.2)
        assert np.isnan(out[2])

    def test_empty(self):
        assert nanmean_rows(np.empty((0, 0))).size == 0


class TestAggregateBand:

    def test_missing_respondent_excluded_from_mean(self, rng):
        a = rng.normal(size=10)
        b = a + 0.2 * rng.normal(size=10)
        c = rng.normal(size=10)
        c[:5] = np.nan
        data = make_psd_frame({"a": {"alpha": a}, "b": {"alpha": b}, "c": {"alpha": c}})
        matrix = build_band_matrix(data, "alpha", ["a", "b", "c"])

        out = aggregate_band(matrix, window_size=5, step=5)

        assert len(out) == 2
        # pairs (a, c) and (b, c) have no data in the first window
        assert out[0] == pytest.approx(pearson_abs(a[:5], b[:5]))
        expected = np.mean(
            [pearson_abs(a[5:], b[5:]), pearson_abs(a[5:], c[5:]), pearson_abs(b[5:], c[5:])]
        )
        assert out[1] == pytest.approx(expected)

    def test_short_pair_contributes_nothing(self, rng):
        a, b = rng.normal(size=12), rng.normal(size=12)
        short = rng.normal(size=3)
        data = make_psd_frame({"a": {"alpha": a}, "b": {"alpha": b}, "s": {"alpha": short}})
        matrix = build_band_matrix(data, "alpha", ["a", "b", "s"])

        out = aggregate_band(matrix, window_size=4, step=4)

        np.testing.assert_allclose(out, windowed_abs_correlation(a, b, 4, 4))

    def test_all_pairs_missing_window_is_missing(self):
        flat = np.ones(6)
        data = make_psd_frame({"a": {"alpha": flat}, "b": {"alpha": flat * 2}})
        matrix = build_band_matrix(data, "alpha", ["a", "b"])
        out = aggregate_band(matrix, window_size=3, step=3)
        assert len(out) == 2
        assert np.isnan(out).all()


class TestAggregateISC:

    def test_end_to_end_scenario(self, three_respondent_dataset):
        data = three_respondent_dataset
        step = compute_sample_overlap(5, 50)
        out = aggregate_isc(data, ["r1", "r2", "r3"], window_size=5, step=step)

        assert list(out.columns) == ["timestamp", "alpha"]
        assert len(out) == 6
        np.testing.assert_allclose(out["timestamp"], [2.5, 5.5, 8.5, 11.5, 14.5, 17.5])

        series = {
            rid: grp.sort_values("timestamp")["value"].to_numpy()
            for rid, grp in data.groupby("respondent_id")
        }
        for k, start in enumerate(range(0, 16, 3)):
            pairs = itertools.combinations(["r1", "r2", "r3"], 2)
            expected = np.mean(
                [
                    abs(np.corrcoef(series[i][start:start + 5], series[j][start:start + 5])[0, 1])
                    for i, j in pairs
                ]
            )
            assert out["alpha"].iloc[k] == pytest.approx(expected)
        assert ((out["alpha"] >= 0) & (out["alpha"] <= 1)).all()

    def test_single_respondent_degenerate_row(self, three_respondent_dataset):
        with pytest.warns(InsufficientRespondentsWarning, match="two respondents"):
            out = aggregate_isc(three_respondent_dataset, ["r1"], window_size=5, step=3)

        assert len(out) == 1
        assert out["timestamp"].iloc[0] == 0
        assert out["alpha"].isna().all()

    def test_no_respondents_degenerate_row(self, three_respondent_dataset):
        with pytest.warns(InsufficientRespondentsWarning):
            out = aggregate_isc(three_respondent_dataset, [], window_size=5, step=3)
        assert len(out) == 1

    def test_deterministic(self, three_respondent_dataset):
        first = aggregate_isc(three_respondent_dataset, ["r1", "r2", "r3"], 5, 3)
        second = aggregate_isc(three_respondent_dataset, ["r1", "r2", "r3"], 5, 3)
        pd.testing.assert_frame_equal(first, second, check_exact=True)

    def test_bands_align_positionally(self, rng):
        values = {
            rid: {"alpha": rng.normal(size=30), "beta": rng.normal(size=30)}
            for rid in ("a", "b", "c")
        }
        data = make_psd_frame(values, cadence=0.5, channels=("Fz", "Cz"))
        out = aggregate_isc(data, ["a", "b", "c"], window_size=10, step=5)

        assert list(out.columns) == ["timestamp", "alpha", "beta"]
        assert len(out) == window_count(30, 10, 5)
        np.testing.assert_allclose(out["timestamp"], 0.5 * 5 + np.arange(len(out)) * 0.5 * 5)

    def test_series_shorter_than_window(self, rng):
        data = make_psd_frame({"a": {"alpha": rng.normal(size=4)}, "b": {"alpha": rng.normal(size=4)}})
        with pytest.warns(MissingDataWarning):
            out = aggregate_isc(data, ["a", "b"], window_size=5, step=1)
        assert out.empty
        assert list(out.columns) == ["timestamp", "alpha"]


class TestMedianSampleInterval:

    def test_uniform_cadence(self, three_respondent_dataset):
        assert median_sample_interval(three_respondent_dataset) == pytest.approx(1.0)

    def test_channels_do_not_create_zero_intervals(self, rng):
        data = make_psd_frame({"a": {"alpha": rng.normal(size=5)}}, cadence=0.25, channels=("Fz", "Cz", "Pz"))
        assert median_sample_interval(data) == pytest.approx(0.25)

    def test_single_sample(self):
        data = make_psd_frame({"a": {"alpha": [1.0]}})
        assert median_sample_interval(data) == 0.0
