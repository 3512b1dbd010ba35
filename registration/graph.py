from datetime import datetime, timezone
from typing import Any, Callable, Dict

import structlog
from langgraph.graph import StateGraph, START, END

from registration.errors import NetworkError
from registration.state import STEP1_FIELDS, STEP2_FIELDS, WizardState
from registration.submission import SubmissionGateway
from registration.validator import RegistrationValidator

logger = structlog.get_logger(__name__)


class RegistrationGraphFactory:
    """
    The wizard's step state machine.

        START -> collect -+-> validate -> gates -+-> advance -> END
                          |                      +-> submit  -> END
                          |                      +-> END
                          +-> back -> END
                          +-> END            (plain edits)

    Each invoke carries a patch (field edits plus an ``action``) that the
    checkpointer merges into the session's previous state.
    """

    def __init__(
        self,
        validator: RegistrationValidator,
        gateway: SubmissionGateway,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.validator = validator
        self.gateway = gateway
        self._now = now

    @staticmethod
    def collect_node(state: WizardState) -> Dict[str, Any]:
        """
        No-op: graph.invoke(patch, config) already merges patch into state.
        """
        return {}

    @staticmethod
    def advance_node(state: WizardState) -> Dict[str, Any]:
        completed = list(state.completed_steps)
        if 1 not in completed:
            completed.append(1)
        return {
            "current_step": "step2",
            "completed_steps": completed,
            "alert": None,
        }

    @staticmethod
    def back_node(state: WizardState) -> Dict[str, Any]:
        return {"current_step": "step1", "alert": None}

    def submit_node(self, state: WizardState) -> Dict[str, Any]:
        try:
            result = self.gateway.submit(state.step1.to_wire(), state.step2.to_wire())
        except NetworkError as e:
            return {"alert": e.message, "failure": "network"}

        if not result.success:
            step1_errors = dict(state.step1_errors)
            step2_errors = dict(state.step2_errors)
            for field, message in result.errors.items():
                if field in STEP1_FIELDS:
                    step1_errors[field] = message
                elif field in STEP2_FIELDS:
                    step2_errors[field] = message
            return {
                "step1_errors": step1_errors,
                "step2_errors": step2_errors,
                "alert": f"Registration failed: {result.message}",
                "failure": "server_validation",
            }

        completed = list(state.completed_steps)
        if 2 not in completed:
            completed.append(2)
        submitted_at = result.submitted_at or self._now()
        logger.info("wizard_completed", registration_id=result.registration_id)
        return {
            "current_step": "completed",
            "completed_steps": completed,
            "registration_id": result.registration_id,
            "submitted_at": submitted_at.isoformat(),
            "alert": result.message,
        }

    def build(self) -> StateGraph:
        g = StateGraph(WizardState)

        g.add_node("collect", self.collect_node)
        g.add_node("validate", self.validator.validate_active_step)
        g.add_node("gates", self.validator.check_gates)
        g.add_node("advance", self.advance_node)
        g.add_node("back", self.back_node)
        g.add_node("submit", self.submit_node)

        g.add_edge(START, "collect")
        g.add_conditional_edges(
            "collect",
            self.validator.route_action,
            {"validate": "validate", "back": "back", "end": END},
        )
        g.add_edge("validate", "gates")
        g.add_conditional_edges(
            "gates",
            self.validator.route_after_gates,
            {"advance": "advance", "submit": "submit", "end": END},
        )
        g.add_edge("advance", END)
        g.add_edge("back", END)
        g.add_edge("submit", END)

        return g

    def compile(self, checkpointer: Any):
        return self.build().compile(checkpointer=checkpointer)
