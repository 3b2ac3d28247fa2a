"""
Message orchestrator: the routing and dispatch pipeline.

process_message() order:
    1. /router-stats command
    2. pending confirmation / path prompt (resolve_pending) - resumes or drops
       a paused sequence
    3. open clarification question - a pick replays the original text on the
       chosen route, a fresh request drops the question
    4. sequence planner - steps re-enter route_and_dispatch one at a time
    5. route_and_dispatch

route_and_dispatch() order:
    detect -> context filter -> semantic router -> (LLM fallback) ->
    list reference + pronoun focus -> risk gate -> handler loop ->
    focus update -> telemetry
    (tied routes with no LLM answer -> "did you mean" question instead)

HARD RULES:
- Never raises for a user message: every stage contains its own failures
- Abstention flows semantic router -> LLM router -> default reply
- A failed sequence step does not roll back earlier steps
- A step that creates or replaces pending state pauses the sequence; it only
  resumes on a reply to that same record
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Union

from concierge.context.context_filter import LIST_KIND_ROUTES, FilterDecision, FilterState, build_context_filter
from concierge.context.list_context import resolve_reference
from concierge.context.session_store import (
    ChatId,
    PausedSequence,
    PendingConfirmation,
    SessionStore,
    get_session_store,
    pending_owner,
)
from concierge.core.background import IntervalLoop
from concierge.core.config import Config
from concierge.core.llm_router import LLMFallbackRouter, LLMRouteResult
from concierge.core.logger import get_logger
from concierge.core.normalizer import normalize_text
from concierge.core.routes import ROUTABLE, Candidate, Route, RouteDecision, list_route_thresholds, routes_by_priority
from concierge.core.semantic_router import SemanticRouter
from concierge.core.sequence_planner import SequencePlan, SequencePlanner, SequenceStep, materialize_step_instruction
from concierge.core.timebox import run_with_timeout
from concierge.detectors import DetectorBank, build_default_bank
from concierge.handlers.base import ConversationalHandler, Handler, HandlerRegistry, ReplyFn
from concierge.policy.clarification import request_clarification, resolve_clarification
from concierge.policy.pending_confirmation import (
    ConfirmationResolution,
    build_confirmation_prompt,
    build_path_prompt,
    check_passive_expiry,
    request_confirmation,
    request_path,
    resolve_pending,
)
from concierge.policy.risk import RiskAssessment, assess
from concierge.telemetry.dataset import RoutingDatasetSink, RoutingTelemetryEntry, read_entries
from concierge.telemetry.stats import build_stats_report

STATS_COMMAND = "/router-stats"
STATS_DEFAULT_LIMIT = 1000

FILE_ROUTES = (Route.WORKSPACE, Route.DOCUMENT)


@dataclass
class MessageOutcome:
    """What happened to one message (or one sequence step)."""
    route: Route
    handled: bool
    source: str = "chat"
    kind: str = "routed"  # routed | default | clarification | confirmation | command | empty
    params: Dict[str, Any] = field(default_factory=dict)
    semantic: Optional[RouteDecision] = None
    llm: Optional[LLMRouteResult] = None
    filter: Optional[FilterDecision] = None
    pending: Optional[str] = None  # "confirm" | "path" when the risk gate stopped here
    confirmation: Optional[ConfirmationResolution] = None
    clarification: Optional[List[str]] = None  # routes offered in a "did you mean" question
    error: Optional[str] = None


@dataclass
class StepOutcome:
    index: int
    instruction: str
    outcome: MessageOutcome


@dataclass
class SequenceOutcome:
    total: int
    steps: List[StepOutcome] = field(default_factory=list)
    paused_at: Optional[int] = None
    plan_source: str = "lexical"
    confirmation: Optional[ConfirmationResolution] = None

    @property
    def paused(self) -> bool:
        return self.paused_at is not None

    @property
    def handled_steps(self) -> int:
        return sum(1 for s in self.steps if s.outcome.handled)


Outcome = Union[MessageOutcome, SequenceOutcome]


class MessagePipeline:
    """Routes free text to a handler and runs it, one message at a time per chat."""

    def __init__(
        self,
        handlers: HandlerRegistry,
        reply_fn: ReplyFn,
        store: Optional[SessionStore] = None,
        bank: Optional[DetectorBank] = None,
        semantic_router: Optional[SemanticRouter] = None,
        llm_router: Optional[LLMFallbackRouter] = None,
        planner: Optional[SequencePlanner] = None,
        telemetry: Optional[RoutingDatasetSink] = None,
        default_handler: Optional[Handler] = None,
        handler_timeout_sec: Optional[float] = None,
    ):
        self.handlers = handlers
        self.reply_fn = reply_fn
        self.store = store or get_session_store()
        self.bank = bank or build_default_bank()
        self.semantic_router = semantic_router or SemanticRouter()
        self.llm_router = llm_router
        self.planner = planner
        self.telemetry = telemetry
        self.default_handler = default_handler or ConversationalHandler(self._reply, store=self.store)
        self.handler_timeout_sec = (
            handler_timeout_sec if handler_timeout_sec is not None else Config.HANDLER_TIMEOUT_SEC
        )
        self.logger = get_logger()
        self._sweeper: Optional[IntervalLoop] = None

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the background expiry sweep."""
        if self._sweeper is None:
            self._sweeper = IntervalLoop(
                "SessionSweep", Config.SWEEP_INTERVAL_SEC, lambda: check_passive_expiry(store=self.store)
            )
        self._sweeper.start()

    def stop(self) -> None:
        if self._sweeper is not None:
            self._sweeper.stop()
        if self.telemetry is not None:
            self.telemetry.close()

    # ------------------------------------------------------------------
    # entry point
    # ------------------------------------------------------------------

    def process_message(
        self,
        chat_id: ChatId,
        text: str,
        source: str = "chat",
        user_id: Optional[ChatId] = None,
        now: Optional[float] = None,
    ) -> Outcome:
        now = now if now is not None else time.time()
        text = (text or "").strip()
        if not text:
            return MessageOutcome(route=Route.NONE, handled=False, source=source, kind="empty")

        if text.lower().startswith(STATS_COMMAND):
            return self._handle_stats_command(chat_id, text, source)

        resolution = resolve_pending(
            chat_id,
            text,
            executor=self._execute_confirmed,
            reply_fn=lambda message: self._reply(chat_id, message),
            now=now,
            store=self.store,
        )
        if resolution.result in ("executed", "cancelled", "path-accepted"):
            self.store.append_turn(chat_id, "user", text, source, now)
            return self._after_confirmation(chat_id, resolution, now)

        clarified = resolve_clarification(chat_id, text, now=now, store=self.store)
        if clarified.result == "picked":
            self.store.append_turn(chat_id, "user", text, source, now)
            return self.route_and_dispatch(
                chat_id, clarified.pending.original_text, source=clarified.pending.source,
                user_id=user_id, now=now, persist_turn=False, forced_route=clarified.route,
            )

        if self.planner is not None:
            plan = self.planner.plan(text, self.store.recent_turns(chat_id, Config.LLM_ROUTER_RECENT_TURNS))
            if plan is not None:
                self.store.append_turn(chat_id, "user", text, source, now)
                return self.run_sequence(chat_id, text, plan, source=source, user_id=user_id, now=now)

        return self.route_and_dispatch(chat_id, text, source=source, user_id=user_id, now=now)

    def _after_confirmation(self, chat_id: ChatId, resolution: ConfirmationResolution, now: float) -> Outcome:
        route = Route.parse(resolution.pending.route) if resolution.pending else None
        outcome = MessageOutcome(
            route=route or Route.NONE,
            handled=True,
            source=resolution.pending.source if resolution.pending else "chat",
            kind="confirmation",
            confirmation=resolution,
        )
        if resolution.result == "path-accepted":
            return outcome

        paused = self.store.pop_paused_sequence(chat_id)
        if paused is None:
            return outcome
        if resolution.result == "cancelled" or paused.owner != pending_owner(resolution.pending):
            why = "cancelled" if resolution.result == "cancelled" else "not its confirmation"
            self.logger.info(f"[SEQ] chat={chat_id} paused sequence dropped ({why}, {len(paused.steps)} step(s) left)")
            return outcome
        if not paused.steps:
            return outcome

        self.logger.info(f"[SEQ] chat={chat_id} resuming sequence at step {paused.steps[0][0]}/{paused.total}")
        queue = deque(SequenceStep(index, instruction, prompt) for index, instruction, prompt in paused.steps)
        sequence = self._run_steps(
            chat_id, paused.user_text, queue, paused.total,
            source=paused.source, user_id=paused.user_id, now=now, plan_source="resumed",
        )
        sequence.confirmation = resolution
        return sequence

    # ------------------------------------------------------------------
    # sequences
    # ------------------------------------------------------------------

    def run_sequence(
        self,
        chat_id: ChatId,
        text: str,
        plan: SequencePlan,
        source: str = "chat",
        user_id: Optional[ChatId] = None,
        now: Optional[float] = None,
    ) -> SequenceOutcome:
        now = now if now is not None else time.time()
        self.logger.info(f"[SEQ] chat={chat_id} running {plan.total} step(s) source={plan.source}")
        return self._run_steps(
            chat_id, text, deque(plan.steps), plan.total,
            source=source, user_id=user_id, now=now, plan_source=plan.source,
        )

    def _run_steps(
        self,
        chat_id: ChatId,
        user_text: str,
        queue: Deque[SequenceStep],
        total: int,
        source: str,
        user_id: Optional[ChatId],
        now: float,
        plan_source: str,
    ) -> SequenceOutcome:
        sequence = SequenceOutcome(total=total, plan_source=plan_source)
        while queue:
            step = queue.popleft()
            instruction = step.instruction
            if step.ai_content_prompt and self.planner is not None:
                instruction = materialize_step_instruction(step, self.planner.generate_step_content(user_text, step))

            step_source = f"{source}:seq-step-{step.index}/{total}"
            before = self.store.current_pending_owner(chat_id, now)
            self.logger.info(f"[SEQ] chat={chat_id} step {step.index}/{total}: \"{instruction[:60]}\"")
            outcome = self.route_and_dispatch(
                chat_id, instruction, source=step_source, user_id=user_id, now=now, clarify=False
            )
            sequence.steps.append(StepOutcome(step.index, instruction, outcome))

            # only a record this step created or replaced pauses the run
            after = self.store.current_pending_owner(chat_id, now)
            if after is not None and after != before:
                sequence.paused_at = step.index
                self.store.set_paused_sequence(chat_id, PausedSequence(
                    steps=[(s.index, s.instruction, s.ai_content_prompt) for s in queue],
                    total=total,
                    paused_at=step.index,
                    source=source,
                    user_id=user_id,
                    user_text=user_text,
                    owner=after,
                ))
                self.logger.info(f"[SEQ] chat={chat_id} paused at step {step.index}/{total}")
                self._reply(chat_id, f"Paused at step {step.index} of {total}: waiting for your confirmation.")
                return sequence

        self.logger.info(f"[SEQ] chat={chat_id} done handled={sequence.handled_steps}/{total}")
        return sequence

    # ------------------------------------------------------------------
    # routing
    # ------------------------------------------------------------------

    def candidate_routes(self) -> List[Route]:
        return self.handlers.routes() or list(ROUTABLE)

    def route_and_dispatch(
        self,
        chat_id: ChatId,
        text: str,
        source: str = "chat",
        user_id: Optional[ChatId] = None,
        now: Optional[float] = None,
        persist_turn: bool = True,
        forced_route: Optional[Route] = None,
        clarify: bool = True,
    ) -> MessageOutcome:
        """
        Route one text and run the handler that accepts it.

        forced_route skips scoring (a clarification pick); clarify=False never
        asks "did you mean" (sequence steps).
        """
        now = now if now is not None else time.time()
        if persist_turn:
            self.store.append_turn(chat_id, "user", text, source, now)

        normalized = normalize_text(text)
        candidate_routes = self.candidate_routes()
        candidates: Dict[Route, Candidate] = {
            c.route: c for c in self.bank.detect_all(text, normalized) if c.route in candidate_routes
        }
        detected = [c for c in candidates.values() if c.applies]

        state = FilterState.from_store(self.store, chat_id, now)
        filter_decision = build_context_filter(text, candidate_routes, state)
        allowed = filter_decision.allowed if filter_decision else list(candidate_routes)
        boosts = filter_decision.boosts if filter_decision else {}

        semantic: Optional[RouteDecision] = None
        llm_result: Optional[LLMRouteResult] = None
        if forced_route is not None:
            allowed = [forced_route]
            route = forced_route
            self.logger.info(f"[ROUTER] route={route.value} reason=clarified")
        else:
            semantic = self.semantic_router.route(text, allowed, candidates=detected, boosts=boosts)
            if semantic is not None:
                route = semantic.route
            elif self.llm_router is not None:
                turns = self.store.recent_turns(chat_id, Config.LLM_ROUTER_RECENT_TURNS + 1)
                if persist_turn and turns:
                    turns = turns[:-1]
                llm_result = self.llm_router.classify(text, turns, allowed)
                route = llm_result.route
            else:
                route = Route.NONE

        outcome = MessageOutcome(
            route=route, handled=False, source=source, semantic=semantic, llm=llm_result, filter=filter_decision
        )

        tied: List[Route] = []
        if route is Route.NONE and clarify and forced_route is None:
            tied = [alt.route for alt in self.semantic_router.tied_routes(text, allowed, detected, boosts)]

        if tied:
            pending = request_clarification(
                chat_id, text, tied, source=source, user_id=user_id, now=now, store=self.store
            )
            self._reply(chat_id, pending.question)
            outcome.kind = "clarification"
            outcome.handled = True
            outcome.clarification = list(pending.options)
        elif route is Route.NONE:
            self._run_default(chat_id, text, source, user_id)
            outcome.kind = "default"
        else:
            candidate = candidates.get(route)
            params = dict(candidate.params) if candidate is not None and candidate.applies else {}
            outcome.params = self._enrich_params(chat_id, route, text, params, now)
            self._dispatch(chat_id, text, outcome, candidates, allowed, user_id, now, persist_turn)

        self._record(chat_id, user_id, source, text, candidate_routes, detected, filter_decision,
                     semantic, llm_result, outcome)
        return outcome

    def _enrich_params(
        self, chat_id: ChatId, route: Route, text: str, params: Dict[str, Any], now: float
    ) -> Dict[str, Any]:
        """Resolve list references and pronouns into concrete targets."""
        listing = self.store.get_list_context(chat_id, now)
        if listing is not None and route in LIST_KIND_ROUTES.get(listing.kind, ()):
            if params.get("list_reference") or not assess(route, params).items:
                reference = resolve_reference(chat_id, text, now=now, store=self.store)
                if reference is not None:
                    targets = [item.reference for item in reference.items]
                    params["list_items"] = reference.to_params()
                    params["indices"] = list(reference.indices)
                    if route is Route.WORKSPACE and not params.get("paths"):
                        params["paths"] = targets
                    elif route is Route.DOCUMENT and not params.get("path"):
                        params["path"] = targets[0]
                        params["paths"] = targets
                    elif route is Route.WEB:
                        params["urls"] = targets
                    elif route in (Route.MAIL, Route.MAIL_CONTACTS):
                        params["message_refs"] = targets
                    params.setdefault("action", reference.action)

        if params.get("refers_to_previous"):
            file_focus = self.store.get_focus(chat_id, "file", now)
            mail_focus = self.store.get_focus(chat_id, "mail", now)
            if file_focus is not None:
                if route is Route.WORKSPACE and not params.get("paths"):
                    params["paths"] = [file_focus.value]
                elif route is Route.DOCUMENT and not params.get("path"):
                    params["path"] = file_focus.value
                elif route is Route.MAIL and not params.get("attachments") and not params.get("to"):
                    params["attachments"] = [file_focus.value]
            if mail_focus is not None and route is Route.MAIL and "attachments" not in params:
                params["message_ref"] = mail_focus.value
        return params

    # ------------------------------------------------------------------
    # dispatch
    # ------------------------------------------------------------------

    def _dispatch(
        self,
        chat_id: ChatId,
        text: str,
        outcome: MessageOutcome,
        candidates: Dict[Route, Candidate],
        allowed: List[Route],
        user_id: Optional[ChatId],
        now: float,
        persist_turn: bool,
    ) -> None:
        preferred = outcome.route
        for handler in self.handlers.ordered(preferred, allowed):
            if handler.route is preferred:
                params = outcome.params
            else:
                # fallback handlers only get a turn when their own detector matched
                candidate = candidates.get(handler.route)
                if candidate is None or not candidate.applies:
                    continue
                params = self._enrich_params(chat_id, handler.route, text, dict(candidate.params), now)
            if not handler.applies(text, params):
                continue

            risk = assess(handler.route, params)
            if risk.requires_confirmation:
                self._enter_confirmation(chat_id, handler.route, risk, params, outcome.source, user_id, now)
                outcome.route = handler.route
                outcome.params = params
                outcome.handled = True
                outcome.pending = "path" if risk.needs_path else "confirm"
                return

            result = run_with_timeout(
                handler.handle,
                self.handler_timeout_sec,
                chat_id,
                text,
                label=f"handler:{handler.name}",
                source=outcome.source,
                user_id=user_id,
                persist_turn=persist_turn,
                params=params,
            )
            if not result.ok:
                outcome.route = handler.route
                outcome.error = result.error_message
                self.logger.error(f"[DISPATCH] chat={chat_id} handler={handler.name} failed: {outcome.error}")
                self._reply(chat_id, f"Sorry, something went wrong with {handler.name}. Please try again.")
                return
            if result.value:
                outcome.route = handler.route
                outcome.params = params
                outcome.handled = True
                self.logger.info(f"[DISPATCH] chat={chat_id} handled_by={handler.name} ms={result.elapsed_ms}")
                self._update_focus(chat_id, handler.route, params, now)
                return
            self.logger.debug(f"[DISPATCH] chat={chat_id} handler={handler.name} declined")

        self.logger.info(f"[DISPATCH] chat={chat_id} no handler accepted route={preferred.value}")
        outcome.route = Route.NONE
        outcome.kind = "default"
        self._run_default(chat_id, text, outcome.source, user_id)

    def _enter_confirmation(
        self,
        chat_id: ChatId,
        route: Route,
        risk: RiskAssessment,
        params: Dict[str, Any],
        source: str,
        user_id: Optional[ChatId],
        now: float,
    ) -> None:
        if risk.needs_path:
            request_path(
                chat_id, action=risk.action, route=route.value, params=params,
                source=source, user_id=user_id, now=now, store=self.store,
            )
            self._reply(chat_id, build_path_prompt(risk.action, route.value))
            return
        pending = request_confirmation(
            chat_id, risk.items, action=risk.action, route=route.value, params=params,
            source=source, user_id=user_id, now=now, store=self.store,
        )
        self._reply(chat_id, build_confirmation_prompt(pending.action, pending.paths, pending.route))

    def _execute_confirmed(self, pending: PendingConfirmation, item: str) -> Any:
        route = Route.parse(pending.route)
        handler = self.handlers.get(route)
        if handler is None:
            raise LookupError(f"no handler for route {pending.route}")
        result = run_with_timeout(
            handler.execute_confirmed,
            self.handler_timeout_sec,
            pending.chat_id,
            pending.action,
            item,
            pending.params,
            label=f"confirmed:{handler.name}",
        )
        if result.timed_out:
            raise TimeoutError(f"{handler.name} timed out")
        if not result.ok:
            raise result.error
        return result.value

    def _update_focus(self, chat_id: ChatId, route: Route, params: Dict[str, Any], now: float) -> None:
        if route in FILE_ROUTES:
            paths = params.get("paths") or ([params["path"]] if params.get("path") else [])
            if paths:
                self.store.set_focus(chat_id, "file", paths[0], now)
        elif route is Route.MAIL:
            self.store.set_focus(chat_id, "mail", params.get("message_ref") or params.get("action") or "mail", now)
        elif route is Route.CONNECTOR:
            self.store.set_focus(chat_id, "connector", params.get("service") or "connector", now)

    def _run_default(self, chat_id: ChatId, text: str, source: str, user_id: Optional[ChatId]) -> bool:
        try:
            return bool(self.default_handler.handle(chat_id, text, source=source, user_id=user_id))
        except Exception as e:
            self.logger.error(f"[DISPATCH] chat={chat_id} default handler failed: {e}")
            return False

    def _reply(self, chat_id: ChatId, text: str) -> None:
        try:
            self.reply_fn(chat_id, text)
        except Exception as e:
            self.logger.error(f"[DISPATCH] chat={chat_id} reply failed: {e}")
            return
        self.store.append_turn(chat_id, "assistant", text, "assistant")

    # ------------------------------------------------------------------
    # telemetry and stats
    # ------------------------------------------------------------------

    def _record(
        self,
        chat_id: ChatId,
        user_id: Optional[ChatId],
        source: str,
        text: str,
        candidate_routes: List[Route],
        detected: List[Candidate],
        filter_decision: Optional[FilterDecision],
        semantic: Optional[RouteDecision],
        llm_result: Optional[LLMRouteResult],
        outcome: MessageOutcome,
    ) -> None:
        if self.telemetry is None:
            return
        handled = outcome.handled and outcome.route is not Route.NONE
        entry = RoutingTelemetryEntry(
            chat_id=chat_id,
            user_id=user_id,
            source=source,
            text=text,
            route_candidates=[r.value for r in candidate_routes],
            detected=[c.route.value for c in routes_by_priority_candidates(detected)],
            route_filter_reason=filter_decision.reason if filter_decision else None,
            route_filter_allowed=[r.value for r in filter_decision.allowed] if filter_decision else None,
            semantic=semantic.to_dict() if semantic else None,
            ai={"route": llm_result.route.value, "reason": llm_result.reason} if llm_result else None,
            final_handler=outcome.route.value if handled else Route.NONE.value,
            handled=handled,
        )
        try:
            self.telemetry.append(entry)
        except Exception as e:
            self.logger.warning(f"[TELEMETRY] append failed: {e}")

    def stats_report(self, limit: int = STATS_DEFAULT_LIMIT) -> str:
        path = self.telemetry.path if self.telemetry is not None else Config.TELEMETRY_PATH
        if self.telemetry is not None:
            self.telemetry.flush()
        return build_stats_report(read_entries(path, limit), list_route_thresholds(), path)

    def _handle_stats_command(self, chat_id: ChatId, text: str, source: str) -> MessageOutcome:
        parts = text.split()
        limit = STATS_DEFAULT_LIMIT
        if len(parts) > 1 and parts[1].isdigit():
            limit = int(parts[1])
        self._reply(chat_id, self.stats_report(limit))
        return MessageOutcome(route=Route.NONE, handled=True, source=source, kind="command")


def routes_by_priority_candidates(candidates: List[Candidate]) -> List[Candidate]:
    order = routes_by_priority(c.route for c in candidates)
    by_route = {c.route: c for c in candidates}
    return [by_route[r] for r in order]
