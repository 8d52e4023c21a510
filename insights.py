"""Emotion insight aggregations over an in-memory transaction snapshot.

Every function here is pure: it takes a finite sequence of
:class:`TransactionRecord` and returns a fresh, immutable result. Empty or
unmatched input never raises; each result exposes ``insufficient_data`` so
callers can render an empty state instead of dividing by zero.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Iterable, NamedTuple, Optional, Sequence, Union

from models import DistributionMetric, TransactionType

UNKNOWN_EMOTION = "Unknown"
OTHER_CATEGORY = "Other"

TOP_N = 6
TOP_DRIVERS_LIMIT = 5
BUDGET_IMPACT_LIMIT = 4
DRIVER_CONFIDENCE_SAMPLE = 20

DAYS_PER_WEEK = 7
HOURS_PER_DAY = 24
HEATMAP_SATURATION_COUNT = 3


@dataclass(frozen=True)
class EmotionLabel:
    name: str
    emoji: Optional[str] = None


Emotion = Union[str, EmotionLabel, None]


@dataclass(frozen=True)
class TransactionRecord:
    type: TransactionType
    amount: float
    date: datetime
    category: Optional[str] = None
    emotion: Emotion = None
    source: Optional[str] = None


def normalize_label(value: Optional[str], fallback: str) -> str:
    clean = (value or "").strip()
    return clean or fallback


def emotion_name(emotion: Emotion) -> Optional[str]:
    if isinstance(emotion, EmotionLabel):
        return emotion.name
    return emotion


def emotion_key(emotion: Emotion) -> str:
    return normalize_label(emotion_name(emotion), UNKNOWN_EMOTION)


def category_key(category: Optional[str]) -> str:
    return normalize_label(category, OTHER_CATEGORY)


def income_source_key(record: TransactionRecord) -> str:
    for candidate in (record.source, record.category):
        clean = (candidate or "").strip()
        if clean:
            return clean
    return OTHER_CATEGORY


def has_emotion(record: TransactionRecord) -> bool:
    return bool((emotion_name(record.emotion) or "").strip())


def _magnitude(record: TransactionRecord) -> float:
    return abs(record.amount or 0)


def _matching(
    records: Iterable[TransactionRecord], rank_type: Optional[TransactionType]
) -> Iterable[TransactionRecord]:
    if rank_type is None:
        return records
    return (r for r in records if r.type == rank_type)


class AffinityKey(NamedTuple):
    emotion: str
    category: str


class IncomeReactionKey(NamedTuple):
    source: str
    emotion: str


@dataclass(frozen=True)
class EmotionAggregate:
    emotion: str
    sum: float
    count: int
    avg: float

    @classmethod
    def from_totals(cls, emotion: str, total: float, count: int) -> "EmotionAggregate":
        avg = total / count if count else 0.0
        return cls(emotion=emotion, sum=total, count=count, avg=avg)


def _emotion_totals(
    records: Iterable[TransactionRecord], rank_type: Optional[TransactionType]
) -> list[EmotionAggregate]:
    sums: dict[str, float] = {}
    counts: dict[str, int] = {}
    for record in _matching(records, rank_type):
        key = emotion_key(record.emotion)
        sums[key] = sums.get(key, 0.0) + _magnitude(record)
        counts[key] = counts.get(key, 0) + 1
    return [
        EmotionAggregate.from_totals(key, total, counts[key])
        for key, total in sums.items()
    ]


@dataclass(frozen=True)
class EmotionDistribution:
    # first-seen order
    entries: tuple[EmotionAggregate, ...]
    total_count: int
    total_amount: float

    @property
    def insufficient_data(self) -> bool:
        return self.insufficient(DistributionMetric.count)

    def insufficient(
        self, metric: DistributionMetric = DistributionMetric.count
    ) -> bool:
        return self.total(metric) <= 0

    def total(self, metric: DistributionMetric = DistributionMetric.count) -> float:
        if metric == DistributionMetric.amount:
            return self.total_amount
        return self.total_count

    @staticmethod
    def value(
        entry: EmotionAggregate, metric: DistributionMetric = DistributionMetric.count
    ) -> float:
        if metric == DistributionMetric.amount:
            return entry.sum
        return entry.count

    def share(
        self,
        entry: EmotionAggregate,
        metric: DistributionMetric = DistributionMetric.count,
    ) -> float:
        total = self.total(metric)
        if total <= 0:
            return 0.0
        return self.value(entry, metric) / total

    def top(
        self,
        metric: DistributionMetric = DistributionMetric.count,
        limit: int = TOP_N,
    ) -> list[EmotionAggregate]:
        ranked = sorted(
            self.entries, key=lambda e: self.value(e, metric), reverse=True
        )
        return ranked[:limit]


def emotion_distribution(
    records: Sequence[TransactionRecord],
    rank_type: Optional[TransactionType] = TransactionType.expense,
) -> EmotionDistribution:
    """Group matching transactions by emotion.

    ``rank_type=None`` disables the type filter. Percentages are left to the
    caller via :meth:`EmotionDistribution.share`.
    """
    entries = tuple(_emotion_totals(records, rank_type))
    return EmotionDistribution(
        entries=entries,
        total_count=sum(e.count for e in entries),
        total_amount=sum(e.sum for e in entries),
    )


@dataclass(frozen=True)
class EmotionAmountRanking:
    entries: tuple[EmotionAggregate, ...]
    # over every emotion, not only the returned top entries
    max_avg: float

    @property
    def insufficient_data(self) -> bool:
        return not self.entries or self.max_avg <= 0

    def bar_fraction(self, entry: EmotionAggregate) -> float:
        if self.max_avg <= 0:
            return 0.0
        return entry.avg / self.max_avg


def rank_emotion_amounts(
    records: Sequence[TransactionRecord], rank_type: TransactionType
) -> EmotionAmountRanking:
    aggregates = _emotion_totals(records, rank_type)
    max_avg = max((a.avg for a in aggregates), default=0.0)
    ranked = sorted(aggregates, key=lambda a: a.avg, reverse=True)
    return EmotionAmountRanking(entries=tuple(ranked[:TOP_N]), max_avg=max_avg)


@dataclass(frozen=True)
class CategoryAffinityPair:
    emotion: str
    category: str
    count: int


@dataclass(frozen=True)
class CategoryAffinityRanking:
    pairs: tuple[CategoryAffinityPair, ...]

    @property
    def insufficient_data(self) -> bool:
        return not self.pairs


def rank_category_affinity(
    records: Sequence[TransactionRecord], rank_type: TransactionType
) -> CategoryAffinityRanking:
    counts = Counter(
        AffinityKey(emotion_key(r.emotion), category_key(r.category))
        for r in _matching(records, rank_type)
    )
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return CategoryAffinityRanking(
        pairs=tuple(
            CategoryAffinityPair(emotion=key.emotion, category=key.category, count=n)
            for key, n in ranked[:TOP_N]
        )
    )


@dataclass(frozen=True)
class IncomeEmotionPair:
    source: str
    emotion: str
    count: int


@dataclass(frozen=True)
class IncomeReactionRanking:
    pairs: tuple[IncomeEmotionPair, ...]

    @property
    def insufficient_data(self) -> bool:
        return not self.pairs


def map_income_reactions(records: Sequence[TransactionRecord]) -> IncomeReactionRanking:
    counts = Counter(
        IncomeReactionKey(income_source_key(r), emotion_key(r.emotion))
        for r in _matching(records, TransactionType.income)
    )
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return IncomeReactionRanking(
        pairs=tuple(
            IncomeEmotionPair(source=key.source, emotion=key.emotion, count=n)
            for key, n in ranked[:TOP_N]
        )
    )


@dataclass(frozen=True)
class EmotionHeatmap:
    # grid[weekday][hour], Monday = 0
    grid: tuple[tuple[int, ...], ...]
    total: int

    @property
    def insufficient_data(self) -> bool:
        return self.total == 0

    def count(self, weekday: int, hour: int) -> int:
        return self.grid[weekday][hour]

    def intensity(self, weekday: int, hour: int) -> float:
        ratio = self.count(weekday, hour) / HEATMAP_SATURATION_COUNT
        return min(1.0, max(0.0, ratio))


def build_emotion_heatmap(
    records: Sequence[TransactionRecord], *, tz: Optional[tzinfo] = None
) -> EmotionHeatmap:
    """Count emotion-tagged transactions per weekday and local hour.

    Aware datetimes are converted to ``tz`` when given; naive ones are
    taken as already local.
    """
    grid = [[0] * HOURS_PER_DAY for _ in range(DAYS_PER_WEEK)]
    total = 0
    for record in records:
        if not has_emotion(record):
            continue
        moment = record.date
        if tz is not None and moment.tzinfo is not None:
            moment = moment.astimezone(tz)
        grid[moment.weekday()][moment.hour] += 1
        total += 1
    return EmotionHeatmap(grid=tuple(tuple(row) for row in grid), total=total)


@dataclass(frozen=True)
class EmotionDriver:
    emotion: str
    emoji: Optional[str]
    category: str
    avg: float
    overall: float
    delta_pct: float


@dataclass(frozen=True)
class EmotionDrivers:
    drivers: tuple[EmotionDriver, ...]
    confidence: float

    @property
    def insufficient_data(self) -> bool:
        return not self.drivers


def emotion_top_drivers(records: Sequence[TransactionRecord]) -> EmotionDrivers:
    """Emotion/category pairs whose average spend most exceeds the category norm."""
    items = [
        r
        for r in records
        if r.type == TransactionType.expense
        and has_emotion(r)
        and (r.category or "").strip()
        and r.amount > 0
    ]
    if not items:
        return EmotionDrivers(drivers=(), confidence=0.0)

    by_category: dict[str, list[float]] = {}
    pairs: dict[AffinityKey, list[float]] = {}
    emojis: dict[AffinityKey, Optional[str]] = {}
    for item in items:
        category = item.category.strip()
        key = AffinityKey(emotion_key(item.emotion), category)
        by_category.setdefault(category, []).append(item.amount)
        pairs.setdefault(key, []).append(item.amount)
        if key not in emojis and isinstance(item.emotion, EmotionLabel):
            emojis[key] = item.emotion.emoji

    baseline = {c: sum(v) / len(v) for c, v in by_category.items()}
    drivers = []
    for key, amounts in pairs.items():
        avg = sum(amounts) / len(amounts)
        overall = baseline.get(key.category, 0.0)
        delta = (avg - overall) / overall * 100 if overall else 0.0
        drivers.append(
            EmotionDriver(
                emotion=key.emotion,
                emoji=emojis.get(key),
                category=key.category,
                avg=avg,
                overall=overall,
                delta_pct=delta,
            )
        )
    drivers.sort(key=lambda d: d.delta_pct, reverse=True)
    confidence = min(1.0, len(items) / DRIVER_CONFIDENCE_SAMPLE)
    return EmotionDrivers(
        drivers=tuple(drivers[:TOP_DRIVERS_LIMIT]), confidence=confidence
    )


@dataclass(frozen=True)
class EmotionShare:
    emotion: str
    sum: float
    count: int
    share: float


@dataclass(frozen=True)
class EmotionBudgetImpact:
    shares: tuple[EmotionShare, ...]
    # concentration of spend in the listed emotions, 0..1
    risk: float

    @property
    def insufficient_data(self) -> bool:
        return not self.shares


def emotion_budget_impact(records: Sequence[TransactionRecord]) -> EmotionBudgetImpact:
    spending = [
        r for r in records if r.type == TransactionType.expense and r.amount > 0
    ]
    aggregates = _emotion_totals(spending, None)
    total = sum(a.sum for a in aggregates)
    shares = [
        EmotionShare(
            emotion=a.emotion,
            sum=a.sum,
            count=a.count,
            share=a.sum / total if total > 0 else 0.0,
        )
        for a in aggregates
    ]
    shares.sort(key=lambda s: s.share, reverse=True)
    top = tuple(shares[:BUDGET_IMPACT_LIMIT])
    risk = min(1.0, sum(s.share for s in top))
    return EmotionBudgetImpact(shares=top, risk=risk)
