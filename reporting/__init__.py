"""portik Reporting — Public API

Renders inspection reports, history views, ancestry and scan rows as
human text or JSON.

Usage:
    from reporting import ReportRenderer
    print(ReportRenderer(as_json=False).who(report.to_dict()))
"""
from reporting.renderer import ReportRenderer, event_label

__all__ = [
    "ReportRenderer",
    "event_label",
]
