"""
Session-level aggregation of completion telemetry
"""

from dataclasses import dataclass, asdict
from typing import Dict, Optional, Any

from .models import CompletionInfo


@dataclass
class SessionAnalytics:
    """Totals and rates over every completed response in a session"""
    total_messages: int
    prompt_tokens: int
    total_output_tokens: int
    context_tokens: int
    average_tokens_per_message: Optional[float] = None
    tokens_per_second: Optional[float] = None
    last_tokens_per_second: Optional[float] = None
    average_response_time_ms: Optional[float] = None
    last_response_time_ms: Optional[float] = None
    context_window: Optional[int] = None
    context_usage_percent: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _response_time_ms(info: CompletionInfo) -> Optional[float]:
    if isinstance(info.response_time_ms, (int, float)) and info.response_time_ms > 0:
        return float(info.response_time_ms)
    if isinstance(info.total_duration, (int, float)) and info.total_duration > 0:
        return info.total_duration / 1e6
    return None


def compute_analytics(
    completions: Dict[str, CompletionInfo],
    context_window: Optional[int] = None,
) -> SessionAnalytics:
    """
    Aggregate completion info, in insertion order.

    Context usage is taken from the most recent completion: its prompt
    tokens plus its output tokens.

    Args:
        completions: Completion info keyed by assistant message id
        context_window: Model context size in tokens, if known

    Returns:
        SessionAnalytics
    """
    entries = [info for info in completions.values() if info is not None]
    last = entries[-1] if entries else None

    prompt_tokens = last.prompt_eval_count if last and isinstance(last.prompt_eval_count, int) else 0
    last_output = last.eval_count if last and isinstance(last.eval_count, int) else 0
    total_output = sum(info.eval_count or 0 for info in entries)
    context_tokens = prompt_tokens + last_output

    eval_seconds = sum(
        info.eval_duration / 1e9
        for info in entries
        if isinstance(info.eval_duration, (int, float)) and info.eval_duration > 0
    )
    tokens_per_second = None
    if eval_seconds > 0 and total_output > 0:
        tokens_per_second = total_output / eval_seconds

    response_times = [t for t in (_response_time_ms(info) for info in entries) if t is not None]

    analytics = SessionAnalytics(
        total_messages=len(entries),
        prompt_tokens=prompt_tokens,
        total_output_tokens=total_output,
        context_tokens=context_tokens,
        context_window=context_window,
    )
    if entries:
        analytics.average_tokens_per_message = total_output / len(entries)
    analytics.tokens_per_second = tokens_per_second
    analytics.last_tokens_per_second = last.tokens_per_second if last else None
    if response_times:
        analytics.average_response_time_ms = sum(response_times) / len(response_times)
        analytics.last_response_time_ms = response_times[-1]
    if context_window and context_window > 0:
        analytics.context_usage_percent = context_tokens / context_window * 100

    return analytics
