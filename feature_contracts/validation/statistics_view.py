"""
Feature Contracts - Statistics View

Read-only adapter over the statistics of one dataset slice. A view decides
once, for the whole record, whether weighted or unweighted numbers are
reported, and may be linked to the view of a previous span and to the view of
serving data. Those links are only followed by the skew and drift rules.

Usage:
    training = DatasetStatsView(stats, previous=DatasetStatsView(prev_stats))

    feature = training.get_by_path(Path(("age",)))
    if feature is None:
        ...  # absent from the record
    elif feature.get_previous() is not None:
        ...  # compare against the previous span
"""

from __future__ import annotations

from functools import cached_property

from feature_contracts.validation.path import Path
from feature_contracts.validation.statistics import (
    DatasetStatistics,
    FeatureStatistics,
    HistogramBucket,
    StatsType,
    ValueFrequency,
)


class FeatureStatsView:
    """Statistics of one feature as seen through a DatasetStatsView."""

    def __init__(self, statistics: FeatureStatistics, dataset: DatasetStatsView):
        self._stats = statistics
        self._dataset = dataset

    def __repr__(self) -> str:
        return f"FeatureStatsView(path={str(self.path)!r}, type={self.type.value})"

    @property
    def path(self) -> Path:
        return self._stats.path

    @property
    def type(self) -> StatsType:
        return self._stats.type

    @property
    def statistics(self) -> FeatureStatistics:
        return self._stats

    @property
    def dataset(self) -> DatasetStatsView:
        return self._dataset

    @property
    def _weighted(self):
        # Features without a weighted variant fall back to unweighted numbers
        return self._stats.weighted if self._dataset.by_weight else None

    @property
    def num_present(self) -> float:
        weighted = self._weighted
        return weighted.num_non_missing if weighted else self._stats.num_non_missing

    @property
    def num_missing(self) -> float:
        weighted = self._weighted
        return weighted.num_missing if weighted else self._stats.num_missing

    @property
    def fraction_present(self) -> float:
        """Fraction of the dataset's examples in which this feature is present."""
        total = self._dataset.num_examples
        if total <= 0:
            return 0.0
        return min(self.num_present / total, 1.0)

    @property
    def is_all_missing(self) -> bool:
        return self.num_present <= 0

    @property
    def value_frequencies(self) -> tuple[ValueFrequency, ...]:
        """Ranked value/frequency pairs, weighted when the view is weighted."""
        weighted = self._weighted
        if weighted and weighted.top_values:
            return weighted.top_values
        return self._stats.top_values

    @property
    def distinct_count(self) -> int | None:
        """Number of distinct values, or None when the record carries no categorical stats."""
        if self._stats.unique is not None:
            return self._stats.unique
        if self._stats.top_values:
            return len(self._stats.top_values)
        return None

    @property
    def string_values(self) -> tuple[str, ...]:
        return tuple(v.value for v in self.value_frequencies)

    @property
    def histogram(self) -> tuple[HistogramBucket, ...]:
        weighted = self._weighted
        if weighted and weighted.histogram:
            return weighted.histogram
        return self._stats.histogram

    @property
    def min(self) -> float | None:
        return self._stats.min

    @property
    def max(self) -> float | None:
        return self._stats.max

    @property
    def mean(self) -> float | None:
        weighted = self._weighted
        if weighted and weighted.mean is not None:
            return weighted.mean
        return self._stats.mean

    @property
    def min_num_values(self) -> int:
        return self._stats.min_num_values

    @property
    def max_num_values(self) -> int:
        return self._stats.max_num_values

    def get_previous(self) -> FeatureStatsView | None:
        """Same feature in the linked previous-span view, if any."""
        previous = self._dataset.previous
        return previous.get_by_path(self.path) if previous is not None else None

    def get_serving(self) -> FeatureStatsView | None:
        """Same feature in the linked serving view, if any."""
        serving = self._dataset.serving
        return serving.get_by_path(self.path) if serving is not None else None

    def children(self) -> list[FeatureStatsView]:
        """Direct children of a struct feature, in path order."""
        return [
            f
            for f in self._dataset.features()
            if f.path.depth == self.path.depth + 1 and self.path.is_ancestor_of(f.path)
        ]


class DatasetStatsView:
    """
    Read-only view over the statistics of one dataset slice.

    `previous` and `serving` are references to views owned by the caller;
    this view never modifies them and they never point back.
    """

    def __init__(
        self,
        statistics: DatasetStatistics,
        by_weight: bool | None = None,
        environment: str | None = None,
        previous: DatasetStatsView | None = None,
        serving: DatasetStatsView | None = None,
    ):
        """
        Initialize the view.

        Args:
            statistics: Statistics record for the slice
            by_weight: Report weighted numbers. None picks weighted whenever
                the record carries any weighted statistics.
            environment: Environment the slice belongs to (e.g. "training")
            previous: View of the previous span, for drift comparison
            serving: View of serving data, for skew comparison
        """
        self._statistics = statistics
        self._by_weight = by_weight
        self.environment = environment
        self.previous = previous
        self.serving = serving

    def __repr__(self) -> str:
        return (
            f"DatasetStatsView(name={self._statistics.name!r}, "
            f"num_examples={self._statistics.num_examples}, by_weight={self.by_weight})"
        )

    @property
    def statistics(self) -> DatasetStatistics:
        return self._statistics

    @cached_property
    def weighted_statistics_exist(self) -> bool:
        """True when any feature in the record carries weighted statistics."""
        return any(f.weighted is not None for f in self._statistics.features)

    @property
    def by_weight(self) -> bool:
        if self._by_weight is None:
            return self.weighted_statistics_exist
        return self._by_weight

    @property
    def num_examples(self) -> float:
        """Example count, weighted when the view is weighted."""
        if self.by_weight:
            if self._statistics.weighted_num_examples is not None:
                return self._statistics.weighted_num_examples
            if self._derived_weighted_num_examples is not None:
                return self._derived_weighted_num_examples
        return self._statistics.num_examples

    @cached_property
    def _derived_weighted_num_examples(self) -> float | None:
        # Every top-level feature is either present or missing in each example
        totals = [
            f.weighted.num_non_missing + f.weighted.num_missing
            for f in self._statistics.features
            if f.weighted is not None and f.path.depth == 1
        ]
        return max(totals) if totals else None

    @cached_property
    def _views_by_path(self) -> dict[Path, FeatureStatsView]:
        ordered = sorted(self._statistics.features, key=lambda f: f.path)
        return {f.path: FeatureStatsView(f, self) for f in ordered}

    def features(self) -> list[FeatureStatsView]:
        """All feature views in path order."""
        return list(self._views_by_path.values())

    def paths(self) -> list[Path]:
        return list(self._views_by_path)

    def get_by_path(self, path: Path) -> FeatureStatsView | None:
        """Look up a feature; None when the record has no statistics for it."""
        return self._views_by_path.get(path)
