"""
Longitudinal History Export Adapter

Pure projections of a generated longitudinal history into presentation
formats. No format performs file I/O; callers write the returned string.

Supported formats:
  - json: the full structured history (NaN/Inf rendered as null, indent 2)
  - csv: one row per event (built with pandas)
  - html: <div class="longitudinal-timeline"> fragment, one section per period
  - markdown: human-readable summary (periods, milestones, risk)

Usage:
    from longitudinal_timeline.lib.export_adapter import export_history

    text = export_history(history, 'markdown')
"""

import html
import json
import logging
import math
from typing import Any, Callable, Dict, List

import pandas as pd

from .exception_handling import UnsupportedExportFormatError

logger = logging.getLogger(__name__)


CSV_COLUMNS = ['Date', 'Kind', 'Title', 'Description', 'Category', 'Importance', 'Source']


def _as_dict(history: Any) -> Dict[str, Any]:
    if hasattr(history, 'to_dict'):
        return history.to_dict()
    return history


def _timeline_events(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [event for period in data.get('timeline', []) for event in period.get('events', [])]


def _date_part(value: Any) -> Any:
    """'2024-01-05T10:30:00' -> '2024-01-05'."""
    if isinstance(value, str):
        return value[:10]
    return value


def _json_safe(value: Any) -> Any:
    """Replace non-finite floats with None, recursively."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    return value


# ============================================================================
# FORMATS
# ============================================================================

def to_json(history: Any) -> str:
    return json.dumps(_json_safe(_as_dict(history)), indent=2, allow_nan=False, default=str)


def to_dataframe(history: Any) -> pd.DataFrame:
    """One row per event in timeline order, columns CSV_COLUMNS."""
    rows = [
        {
            'Date': _date_part(event.get('date')),
            'Kind': event.get('kind'),
            'Title': event.get('title'),
            'Description': event.get('description'),
            'Category': event.get('category'),
            'Importance': event.get('importance'),
            'Source': event.get('source_system'),
        }
        for event in _timeline_events(_as_dict(history))
    ]
    return pd.DataFrame(rows, columns=CSV_COLUMNS)


def to_csv(history: Any) -> str:
    return to_dataframe(history).to_csv(index=False)


def to_html(history: Any) -> str:
    data = _as_dict(history)
    esc = html.escape
    parts = [
        f'<div class="longitudinal-timeline" data-patient-id="{esc(str(data.get("patient_id") or ""))}">',
        f'  <h2>Longitudinal History ({data.get("total_events", 0)} events)</h2>',
    ]
    for period in data.get('timeline', []):
        parts.append('  <section class="timeline-period">')
        parts.append(f'    <h3>{esc(period["label"])}</h3>')
        parts.append(f'    <p class="period-summary">{esc(period["summary"])}</p>')
        for event in period.get('events', []):
            parts.append(
                f'    <div class="timeline-event importance-{esc(event.get("importance", ""))}" '
                f'data-kind="{esc(event.get("kind", ""))}">'
            )
            parts.append(f'      <span class="event-date">{esc(str(event.get("date", "")))}</span>')
            parts.append(f'      <span class="event-title">{esc(event.get("title", ""))}</span>')
            parts.append(f'      <p class="event-description">{esc(event.get("description", ""))}</p>')
            parts.append('    </div>')
        parts.append('  </section>')
    parts.append('</div>')
    return '\n'.join(parts) + '\n'


def to_markdown(history: Any) -> str:
    data = _as_dict(history)
    timespan = data.get('timespan') or {}
    lines = [
        f"# Longitudinal History: {data.get('patient_id') or 'unknown patient'}",
        '',
        f"- **Total events**: {data.get('total_events', 0)}",
        f"- **Timespan**: {timespan.get('start')} to {timespan.get('end')} "
        f"({timespan.get('total_days', 0)} days)",
        '',
    ]

    risk = (data.get('insights') or {}).get('risk_assessment')
    if risk:
        lines += [
            '## Risk Assessment',
            '',
            f"- **Risk score**: {risk['risk_score']} ({risk['risk_category']})",
            f"- **Prediction confidence**: {risk['prediction_confidence']}",
        ]
        lines += [f"- {f['name']} ({f['impact']}, {f['strength']}): {f['rationale']}"
                  for f in risk.get('prognostic_factors', [])]
        lines.append('')

    milestones = data.get('key_milestones') or []
    if milestones:
        lines += ['## Key Milestones', '']
        lines += [f"- {m['date']}: **{m['title']}** ({m['clinical_rationale']})" for m in milestones]
        lines.append('')

    lines += ['## Timeline', '']
    for period in data.get('timeline', []):
        lines.append(f"### {period['label']}")
        lines.append('')
        lines.append(f"_{period['summary']}_")
        lines.append('')
        lines += [f"- {e.get('date')} [{e.get('kind')}] {e.get('title')}: {e.get('description')}"
                  for e in period.get('events', [])]
        lines.append('')

    return '\n'.join(lines)


EXPORTERS: Dict[str, Callable[[Any], str]] = {
    'json': to_json,
    'csv': to_csv,
    'html': to_html,
    'markdown': to_markdown,
}


def export_history(history: Any, fmt: str = 'json') -> str:
    """
    Render a longitudinal history.

    Args:
        history: LongitudinalHistory (or its to_dict() output)
        fmt: json | csv | html | markdown

    Raises:
        UnsupportedExportFormatError: for any other format
    """
    exporter = EXPORTERS.get(str(fmt).lower())
    if exporter is None:
        raise UnsupportedExportFormatError(fmt, sorted(EXPORTERS))
    logger.debug(f"Exporting longitudinal history as {fmt}")
    return exporter(history)
