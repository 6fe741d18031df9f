"""Allow list of actions the AI may take on a customer's behalf."""

from __future__ import annotations

SAFE_ACTIONS: frozenset[str] = frozenset(
    {
        "lookup_documentation",
        "execute_playbook_step",
        "analyze_error",
        "suggest_diagnostic_steps",
        "initiate_visionscreen",
        "escalate_to_l2",
        "escalate_to_human",
        "mark_resolved",
        "check_status",
        "view_logs",
    }
)

DANGEROUS_ACTIONS: frozenset[str] = frozenset(
    {
        "delete_data",
        "modify_permissions",
        "reset_password",
        "change_billing",
        "execute_command",
        "restart_service",
        "modify_config",
        "grant_access",
        "revoke_access",
    }
)


def is_action_safe(action: str) -> bool:
    """An action is safe only when it is explicitly allowed and never dangerous."""

    return action in SAFE_ACTIONS and action not in DANGEROUS_ACTIONS
