"""HTML failure report for a single failed test."""

from __future__ import annotations

import html
import os
import time

from e2eguard.executor.failure_capture import troubleshooting_suggestions
from e2eguard.models.artifacts import FailureInfo

_CSS = """
body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif; margin: 0; padding: 20px; line-height: 1.6; background: #f8fafc; color: #1e293b; }
h1 { color: #dc2626; margin-bottom: 10px; }
h2 { color: #2563eb; margin-top: 30px; border-bottom: 1px solid #cbd5e1; padding-bottom: 5px; }
pre { background: #f1f5f9; padding: 15px; border-radius: 6px; overflow: auto; font-size: 13px; }
.badge { display: inline-block; padding: 4px 10px; border-radius: 4px; font-size: 13px; font-weight: 600; color: white; background: #dc2626; }
.grid { display: flex; flex-wrap: wrap; gap: 16px; margin: 16px 0; }
.card { background: white; border: 1px solid #e2e8f0; padding: 12px; border-radius: 6px; flex: 1; min-width: 220px; }
.card h3 { margin-top: 0; font-size: 15px; }
img { max-width: 100%; border: 1px solid #cbd5e1; margin-top: 10px; }
footer { margin-top: 40px; font-size: 12px; color: #64748b; }
"""


def _rows(data: dict) -> str:
    return "".join(
        f"<p><strong>{html.escape(str(k))}:</strong> {html.escape(str(v))}</p>"
        for k, v in data.items()
        if v not in (None, "", [])
    )


def _artifact_block(name: str, path: str) -> str:
    # Report lives in reports/, artifacts in sibling category dirs.
    href = html.escape(os.path.join("..", path) if not os.path.isabs(path) else path)
    if path.endswith(".png"):
        return f'<div class="card"><h3>{html.escape(name)}</h3><img src="{href}" alt="{html.escape(name)}"></div>'
    return f'<div class="card"><h3>{html.escape(name)}</h3><a href="{href}">{html.escape(os.path.basename(path))}</a></div>'


def render_failure_report(info: FailureInfo) -> str:
    """Render a self-contained HTML page describing one failure."""
    step = f"<p><strong>Step:</strong> {html.escape(info.step_name)}</p>" if info.step_name else ""
    artifacts = "".join(_artifact_block(k, v) for k, v in info.artifacts.items() if v)
    suggestions = "\n".join(f"- {s}" for s in troubleshooting_suggestions(info))

    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8">
  <title>Test Failure Report - {html.escape(info.test_title)}</title>
  <style>{_CSS}</style>
</head>
<body>
  <h1>Test Failure Report</h1>
  <span class="badge">{html.escape(info.failure_type.value)}</span>
  <p><strong>Test:</strong> {html.escape(info.test_title)}</p>
  <p><strong>Time:</strong> {html.escape(info.timestamp)}</p>
  <p><strong>Mode:</strong> {html.escape(info.mode)} &middot; <strong>Elapsed:</strong> {info.elapsed_seconds:.1f}s</p>

  <h2>Failure</h2>
  <p><strong>Message:</strong> {html.escape(info.failure_message)}</p>
  {step}
  <h3>Stack Trace</h3>
  <pre>{html.escape(info.failure_stack or "No stack trace available")}</pre>

  <h2>Environment</h2>
  <div class="grid">
    <div class="card"><h3>Runtime</h3>{_rows(info.environment)}</div>
    <div class="card"><h3>Resources</h3>{_rows(info.resources)}</div>
  </div>

  <h2>Artifacts</h2>
  <div class="grid">{artifacts or "<p>No artifacts captured.</p>"}</div>

  <h2>Troubleshooting Suggestions</h2>
  <pre>{html.escape(suggestions)}</pre>

  <footer>Generated by e2eguard at {time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())}</footer>
</body>
</html>
"""
