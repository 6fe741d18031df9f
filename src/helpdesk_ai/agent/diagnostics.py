"""Template diagnostic plans for tier-2 troubleshooting."""

from __future__ import annotations

from helpdesk_ai.types import DiagnosticStep

_NETWORK_STEPS = (
    DiagnosticStep(
        step="Check Network Status",
        instruction="Run a network diagnostic: ping google.com and note any packet loss",
        expected_outcome="0% packet loss indicates healthy connection",
    ),
    DiagnosticStep(
        step="Verify DNS Resolution",
        instruction="Try nslookup for our service domain and check the resolved IP",
        expected_outcome="Should resolve to valid IP addresses",
    ),
    DiagnosticStep(
        step="Check Firewall/Proxy",
        instruction="Verify that ports 443 and 80 are not blocked by firewall or proxy",
        expected_outcome="Connections should not be blocked",
    ),
)

_ERROR_STEPS = (
    DiagnosticStep(
        step="Capture Error Details",
        instruction="Screenshot the exact error message including any error codes",
        expected_outcome="Full error message captured for analysis",
    ),
    DiagnosticStep(
        step="Check Application Logs",
        instruction="Navigate to Settings > Logs and export the last hour of activity",
        expected_outcome="Log file ready for review",
    ),
    DiagnosticStep(
        step="Clear Cache and Retry",
        instruction="Clear application cache, restart, and attempt the action again",
        expected_outcome="Issue may resolve after cache clear",
    ),
)

_PERFORMANCE_STEPS = (
    DiagnosticStep(
        step="Check System Resources",
        instruction="Open Task Manager/Activity Monitor and note CPU/Memory usage",
        expected_outcome="Identify if system resources are constrained",
    ),
    DiagnosticStep(
        step="Test Network Speed",
        instruction="Run a speed test and note download/upload speeds",
        expected_outcome="Minimum 10Mbps recommended for optimal performance",
    ),
    DiagnosticStep(
        step="Disable Extensions",
        instruction="Temporarily disable browser extensions and retry",
        expected_outcome="Determine if extensions are causing slowdown",
    ),
)

_GENERIC_STEPS = (
    DiagnosticStep(
        step="Document Current State",
        instruction="Note exactly what you see on screen and what you expected to see",
        expected_outcome="Clear understanding of the discrepancy",
    ),
    DiagnosticStep(
        step="Reproduce the Issue",
        instruction="Try to repeat the exact steps that led to the problem",
        expected_outcome="Confirm if issue is reproducible",
    ),
    DiagnosticStep(
        step="Try Alternative Method",
        instruction="Attempt to achieve the same goal using a different approach",
        expected_outcome="Determine if issue is specific to one method",
    ),
)


def generate_diagnostic_steps(issue: str) -> list[DiagnosticStep]:
    """Pick a plan by the first matching family: network, error, performance, generic."""

    lowered = issue.lower()
    if "connection" in lowered or "network" in lowered:
        template = _NETWORK_STEPS
    elif "error" in lowered or "crash" in lowered:
        template = _ERROR_STEPS
    elif "slow" in lowered or "performance" in lowered:
        template = _PERFORMANCE_STEPS
    else:
        template = _GENERIC_STEPS
    return [
        DiagnosticStep(step=item.step, instruction=item.instruction, expected_outcome=item.expected_outcome)
        for item in template
    ]
