# processing/plot_state_machine.py
"""Plot thread lifecycle derived from development history."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import structlog
from config import settings

from models import (
    DevelopmentEntry,
    DevelopmentType,
    PlotCategory,
    PlotStatus,
    PlotThread,
)

logger = structlog.get_logger(__name__)

_CATEGORY_KEYWORDS: tuple[tuple[PlotCategory, tuple[str, ...]], ...] = (
    (PlotCategory.ROMANCE, ("love", "romance", "relationship", "사랑", "연애", "로맨스")),
    (PlotCategory.MYSTERY, ("mystery", "secret", "unknown", "비밀", "미스터리", "수수께끼", "흑막")),
    (PlotCategory.CONFLICT, ("conflict", "fight", "battle", "war", "갈등", "전투", "싸움", "전쟁")),
    (PlotCategory.MAIN, ("main", "primary", "central", "메인", "주요", "중심")),
)

_STATUS_URGENCY_BONUS = {
    PlotStatus.INTRODUCED: 30,
    PlotStatus.DEVELOPING: 15,
    PlotStatus.COMPLICATED: 35,
    PlotStatus.CLIMAXING: 40,
}

_STATUS_FOR_LATEST = {
    DevelopmentType.INTRODUCTION: PlotStatus.INTRODUCED,
    DevelopmentType.COMPLICATION: PlotStatus.COMPLICATED,
    DevelopmentType.RESOLUTION: PlotStatus.RESOLVED,
}

ACTIVE_STATUSES = (
    PlotStatus.INTRODUCED,
    PlotStatus.DEVELOPING,
    PlotStatus.COMPLICATED,
    PlotStatus.CLIMAXING,
)


def classify_plot_category(name: str, description: str = "") -> PlotCategory:
    """Infer a plot category from keywords in the name and description."""
    text = f"{name} {description}".lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return category
    return PlotCategory.SUBPLOT


def parse_development_type(raw: str) -> DevelopmentType | None:
    try:
        return DevelopmentType(raw.strip().lower())
    except ValueError:
        return None


def derive_status(
    history: Sequence[DevelopmentEntry],
    current: PlotStatus | None = None,
) -> PlotStatus:
    """Compute a thread's status from its development history.

    Terminal statuses are returned unchanged. A thread externally set to
    CLIMAXING keeps that status until a resolution arrives.
    """
    if current is not None and current.is_terminal:
        return current

    types = [entry.development_type for entry in history]
    if DevelopmentType.RESOLUTION in types:
        return PlotStatus.RESOLVED
    if current == PlotStatus.CLIMAXING:
        return current
    if not history:
        return PlotStatus.PLANNED

    # Stable sort keeps insertion order for entries in the same chapter.
    latest = sorted(history, key=lambda e: e.chapter_index)[-1].development_type
    if latest == DevelopmentType.ADVANCEMENT:
        advancements = types.count(DevelopmentType.ADVANCEMENT)
        return PlotStatus.DEVELOPING if advancements >= 2 else PlotStatus.INTRODUCED
    return _STATUS_FOR_LATEST[latest]


@dataclass
class StatusTransition:
    plot_thread_id: str
    name: str
    old_status: PlotStatus
    new_status: PlotStatus


@dataclass
class ProgressionAnalysis:
    plot_thread_id: str
    name: str
    current_status: PlotStatus
    suggested_status: PlotStatus
    summary: str
    recommendations: list[str] = field(default_factory=list)


@dataclass
class PlotAttention:
    plot_thread_id: str
    name: str
    status: PlotStatus
    importance: int
    chapters_since_development: int
    chapters_since_event: int
    development_count: int
    urgency: float
    needs_attention: bool


@dataclass
class PlotDistributionEntry:
    plot_thread_id: str
    name: str
    importance: int
    development_count: int
    chapters_active: int
    development_density: float
    active_ratio: float


@dataclass
class PlotDistribution:
    total_threads: int
    total_developments: int
    average_developments: float
    imbalance_score: float
    is_balanced: bool
    entries: list[PlotDistributionEntry] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


class PlotThreadStateMachine:
    """Recompute and write back plot thread statuses."""

    def advance(self, thread: PlotThread) -> StatusTransition | None:
        """Update ``thread.status`` in place; return the transition if it changed."""
        new_status = derive_status(thread.development_history, thread.status)
        if new_status == thread.status:
            return None
        transition = StatusTransition(
            plot_thread_id=thread.id,
            name=thread.name,
            old_status=thread.status,
            new_status=new_status,
        )
        thread.status = new_status
        logger.info(
            "Plot thread status changed",
            plot_thread_id=thread.id,
            old_status=transition.old_status.value,
            new_status=new_status.value,
        )
        return transition

    def update_all_statuses(self, threads: Iterable[PlotThread]) -> list[StatusTransition]:
        transitions = []
        for thread in threads:
            transition = self.advance(thread)
            if transition is not None:
                transitions.append(transition)
        return transitions


def _progression_summary(history: Sequence[DevelopmentEntry]) -> str:
    counts = Counter(entry.development_type for entry in history)
    parts = [
        f"{counts[dev_type]} {dev_type.value}(s)"
        for dev_type in DevelopmentType
        if counts[dev_type]
    ]
    return f"Total developments: {len(history)} ({', '.join(parts)})"


def analyze_progression(thread: PlotThread) -> ProgressionAnalysis:
    history = thread.development_history
    types = [entry.development_type for entry in history]
    recommendations: list[str] = []

    if DevelopmentType.COMPLICATION in types and DevelopmentType.INTRODUCTION not in types:
        recommendations.append(
            "Consider adding an introduction development to establish the plot thread foundation"
        )
    if DevelopmentType.RESOLUTION in types and DevelopmentType.COMPLICATION not in types:
        recommendations.append(
            "Plot thread resolved without complications; consider adding tension for more engaging storytelling"
        )
    if (
        types.count(DevelopmentType.ADVANCEMENT) >= 3
        and DevelopmentType.COMPLICATION not in types
    ):
        recommendations.append(
            "Multiple advancements without complications; consider adding obstacles or conflicts"
        )
    if thread.status == PlotStatus.RESOLVED and len(history) < 3:
        recommendations.append(
            "Plot thread resolved quickly; consider whether more development would benefit the story"
        )
    if not history:
        recommendations.append(
            "No developments yet; this plot thread needs to be introduced in upcoming chapters"
        )

    return ProgressionAnalysis(
        plot_thread_id=thread.id,
        name=thread.name,
        current_status=thread.status,
        suggested_status=derive_status(history),
        summary=_progression_summary(history),
        recommendations=recommendations,
    )


def calculate_urgency(
    importance: int,
    chapters_since_development: int,
    chapters_since_event: int,
    status: PlotStatus,
    development_count: int,
) -> float:
    score = importance * 15
    score += chapters_since_development * 12
    score += chapters_since_event * 8
    score += _STATUS_URGENCY_BONUS.get(status, 0)
    if development_count < 2:
        score += 25
    if chapters_since_development > 3:
        score += 20
    return float(score)


def threads_needing_attention(
    threads: Iterable[PlotThread], current_chapter: int
) -> list[PlotAttention]:
    """Urgency for every active thread, most urgent first."""
    results = []
    active = sorted(
        (t for t in threads if t.status in ACTIVE_STATUSES),
        key=lambda t: -t.importance,
    )
    for thread in active:
        since_dev = (
            current_chapter - thread.last_developed_at
            if thread.last_developed_at is not None
            else current_chapter
        )
        since_event = (
            current_chapter - thread.last_event_at
            if thread.last_event_at is not None
            else current_chapter
        )
        dev_count = len(thread.development_history)
        urgency = calculate_urgency(
            thread.importance, since_dev, since_event, thread.status, dev_count
        )
        results.append(
            PlotAttention(
                plot_thread_id=thread.id,
                name=thread.name,
                status=thread.status,
                importance=thread.importance,
                chapters_since_development=since_dev,
                chapters_since_event=since_event,
                development_count=dev_count,
                urgency=urgency,
                needs_attention=urgency > settings.PLOT_ATTENTION_URGENCY,
            )
        )
    return sorted(results, key=lambda a: a.urgency, reverse=True)


def suggest_plot_balance(
    threads: Iterable[PlotThread],
    current_chapter: int,
    max_threads: int | None = None,
) -> list[PlotAttention]:
    """Pick the threads the next chapter should touch."""
    max_threads = max_threads or settings.MAX_BALANCE_SUGGESTIONS
    activity = threads_needing_attention(threads, current_chapter)
    if not activity:
        return []

    urgent = [a for a in activity if a.urgency > settings.PLOT_URGENT_THRESHOLD]
    medium = [
        a
        for a in activity
        if settings.PLOT_MEDIUM_THRESHOLD < a.urgency <= settings.PLOT_URGENT_THRESHOLD
    ]
    if not urgent and not medium:
        return activity[:max_threads]

    if len(activity) > 3:
        selection = urgent[:2] + medium[:1]
        if len(selection) < max_threads:
            selection += [a for a in activity if a not in selection][
                : max_threads - len(selection)
            ]
        return selection[:max_threads]

    if len(urgent) > max_threads:
        return urgent[:max_threads]
    remaining = [a for a in activity if a.urgency <= settings.PLOT_URGENT_THRESHOLD]
    return urgent + remaining[: max_threads - len(urgent)]


def analyze_distribution(
    threads: Iterable[PlotThread],
    latest_chapter: int,
    window: int | None = None,
) -> PlotDistribution:
    """How development effort is spread across threads in recent chapters."""
    window = window or settings.PLOT_DISTRIBUTION_WINDOW
    first_chapter = latest_chapter - window + 1
    entries = []
    total = 0
    for thread in threads:
        recent = [
            e for e in thread.development_history if e.chapter_index >= first_chapter
        ]
        if not recent:
            continue
        chapters = {e.chapter_index for e in recent}
        total += len(recent)
        entries.append(
            PlotDistributionEntry(
                plot_thread_id=thread.id,
                name=thread.name,
                importance=thread.importance,
                development_count=len(recent),
                chapters_active=len(chapters),
                development_density=len(recent) / window,
                active_ratio=len(chapters) / window,
            )
        )

    average = total / max(len(entries), 1)
    imbalance = sum(abs(e.development_count - average) for e in entries) / max(
        len(entries), 1
    )

    recommendations = []
    under = [e.name for e in entries if e.development_count < average * 0.7]
    over = [e.name for e in entries if e.development_count > average * 1.5]
    low_activity = [e.name for e in entries if e.active_ratio < 0.3]
    if under:
        recommendations.append(
            f"Focus more on underdeveloped plot threads: {', '.join(under)}"
        )
    if over:
        recommendations.append(
            f"Consider reducing focus on overdeveloped plot threads: {', '.join(over)}"
        )
    if low_activity:
        recommendations.append(
            f"These plot threads need more frequent mentions: {', '.join(low_activity)}"
        )

    return PlotDistribution(
        total_threads=len(entries),
        total_developments=total,
        average_developments=average,
        imbalance_score=imbalance,
        is_balanced=imbalance < average * 0.5,
        entries=sorted(entries, key=lambda e: e.development_count, reverse=True),
        recommendations=recommendations,
    )
