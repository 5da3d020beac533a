from ai_bridge.orchestration.cancellation import CancellationToken
from ai_bridge.orchestration.hooks import BUILTIN_HOOKS, hooks_by_name
from ai_bridge.orchestration.orchestrator import Orchestrator, RequestState
from ai_bridge.orchestration.selection import AUTO_MODEL_ID, SelectionPolicy, select_model
from ai_bridge.orchestration.usage import UsageTracker

__all__ = [
    "Orchestrator",
    "RequestState",
    "CancellationToken",
    "UsageTracker",
    "SelectionPolicy",
    "select_model",
    "AUTO_MODEL_ID",
    "BUILTIN_HOOKS",
    "hooks_by_name",
]
