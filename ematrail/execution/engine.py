"""
Bar-driven strategy engine.

`StrategyEngine` runs one step per closed bar and handles the execution
gateway's asynchronous callbacks.  All three entry points take the same
re-entrant lock, so a bar step, a position report and a fill never
interleave, and sinks only ever see complete snapshots.

A bar step is split into stages (signal, entry, stop, excursion, exit,
statistics, display).  Each runs through `_run_stage`, which turns an
unexpected exception into a failed `StageOutcome`; the caller logs it
and carries on with the next stage, so a broken display cannot stop a
stop-loss exit from being issued on the same bar.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, List, Optional, Sequence
import logging
import threading
import pandas as pd

from ..config.schema import Config
from ..strategy.signals import CrossSignal, detect
from ..strategy.trailing_stop import StopState, TrailingStopEngine
from ..reporting.statistics import RunningStatistics, StatisticsAggregator
from .models import (
    Bar,
    CompletedTrade,
    Direction,
    ExecutionFill,
    ExternalPositionSnapshot,
    IndicatorValues,
    OpenTrade,
    OrderIntent,
    PositionState,
    signal_exit_label,
    stop_label,
)
from .position_tracker import EntryDecision, PositionStateTracker, ReconcileOutcome
from .trade_recorder import TradeLifecycleRecorder

logger = logging.getLogger(__name__)


class ExecutionGateway:
    """Where order intents go.  Implementations report back through
    `StrategyEngine.on_position_update` and `StrategyEngine.on_execution`."""

    def submit(self, intent: OrderIntent) -> None:
        raise NotImplementedError


class EngineSink:
    """Display / persistence collaborator.  Every hook is optional."""

    def on_stop_level(self, level: Optional[float], snapshot: "EngineSnapshot") -> None:
        pass

    def on_trade(self, trade: CompletedTrade, stats: RunningStatistics, snapshot: "EngineSnapshot") -> None:
        pass

    def on_statistics(self, snapshot: "EngineSnapshot") -> None:
        pass


@dataclass(frozen=True)
class StageOutcome:
    stage: str
    ok: bool = True
    value: Any = None
    error: Optional[BaseException] = None


@dataclass
class BarResult:
    """What happened on one bar."""
    signal: CrossSignal = CrossSignal.NONE
    intents: List[OrderIntent] = field(default_factory=list)
    entry_decision: Optional[EntryDecision] = None
    stop_hit: bool = False
    stages: List[StageOutcome] = field(default_factory=list)

    @property
    def failed_stages(self) -> List[StageOutcome]:
        return [s for s in self.stages if not s.ok]


@dataclass(frozen=True)
class EngineSnapshot:
    """Consistent read-only copy of the engine state for sinks."""
    time: Optional[pd.Timestamp]
    position: PositionState
    external: ExternalPositionSnapshot
    stop: Optional[StopState]
    open_trade: Optional[OpenTrade]
    last_close: Optional[float]
    indicators: Optional[IndicatorValues]
    signal: CrossSignal
    entries_allowed: bool
    stats: RunningStatistics
    history: Sequence[CompletedTrade]


class StrategyEngine:
    """Compose the tracker, stop engine, recorder and statistics.

    Parameters
    ----------
    config : Config
        Session configuration.  Read once; never modified.
    gateway : ExecutionGateway
        Receives order intents.
    sinks : sequence of EngineSink, optional
        Display and persistence collaborators.
    clock : callable, optional
        Time source for the reconciliation debounce window.
    """

    def __init__(
        self,
        config: Config,
        gateway: ExecutionGateway,
        sinks: Optional[Sequence[EngineSink]] = None,
        clock: Optional[Callable[[], pd.Timestamp]] = None,
        history: Optional[Sequence[CompletedTrade]] = None,
    ) -> None:
        self.config = config
        self.gateway = gateway
        self.sinks: List[EngineSink] = list(sinks or [])
        strat = config.strategy
        self.tracker = PositionStateTracker(
            quantity=strat.quantity,
            trading_direction=strat.trading_direction,
            debounce_seconds=config.reconcile.debounce_seconds,
            clock=clock,
        )
        self.stops = TrailingStopEngine(strat)
        self.recorder = TradeLifecycleRecorder(
            tick_size=config.instrument.tick_size,
            point_value=config.instrument.point_value,
            commission_per_contract=config.instrument.commission_per_contract,
            initial_stop_points=strat.trailing_stop_points,
        )
        self.aggregator = StatisticsAggregator()
        if history:
            self.recorder.history.extend(history)
            self.aggregator = StatisticsAggregator.replay(history)

        self.external = ExternalPositionSnapshot.flat()
        self.stop: Optional[StopState] = None
        self.last_bar: Optional[Bar] = None
        self.last_indicators: Optional[IndicatorValues] = None
        self.last_signal = CrossSignal.NONE
        self.entries_allowed = True
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # helpers

    def _run_stage(self, result: BarResult, name: str, fn: Callable[[], Any]) -> StageOutcome:
        try:
            outcome = StageOutcome(stage=name, value=fn())
        except Exception as exc:
            logger.exception("Stage '%s' failed", name)
            outcome = StageOutcome(stage=name, ok=False, error=exc)
        result.stages.append(outcome)
        return outcome

    def _notify(self, hook: str, *args: Any) -> None:
        for sink in self.sinks:
            try:
                getattr(sink, hook)(*args)
            except Exception as exc:
                logger.error("Sink %s.%s failed: %s", type(sink).__name__, hook, exc)

    def _submit(self, intent: OrderIntent, result: Optional[BarResult] = None) -> None:
        logger.info("Submitting %s '%s' qty=%d", intent.kind.value, intent.label, intent.quantity)
        self.gateway.submit(intent)
        if result is not None:
            result.intents.append(intent)

    def _clear_position_scope(self) -> None:
        self.recorder.note_stop(self.stop)
        self.recorder.detach()
        if self.stop is not None:
            self.stop = None
            self._notify("on_stop_level", None, self.snapshot())

    @property
    def position_direction(self) -> Optional[Direction]:
        return self.tracker.state.market_position.direction

    def snapshot(self) -> EngineSnapshot:
        with self._lock:
            open_trade = self.recorder.open
            if open_trade is not None:
                open_trade = replace(open_trade)
            return EngineSnapshot(
                time=self.last_bar.time if self.last_bar else None,
                position=self.tracker.state,
                external=self.external,
                stop=self.stop,
                open_trade=open_trade,
                last_close=self.last_bar.close if self.last_bar else None,
                indicators=self.last_indicators,
                signal=self.last_signal,
                entries_allowed=self.entries_allowed,
                stats=self.aggregator.stats.copy(),
                history=tuple(self.recorder.history),
            )

    @property
    def stats(self) -> RunningStatistics:
        return self.aggregator.stats

    @property
    def history(self) -> List[CompletedTrade]:
        return self.recorder.history

    # ------------------------------------------------------------------
    # bar step

    def on_bar(self, bar: Bar, indicators: IndicatorValues, entries_allowed: bool = True) -> BarResult:
        """Process one closed bar and return the intents issued."""
        with self._lock:
            result = BarResult()
            self.last_bar = bar
            self.last_indicators = indicators
            self.entries_allowed = entries_allowed

            outcome = self._run_stage(result, "signal", lambda: detect(indicators))
            signal = outcome.value if outcome.ok else CrossSignal.NONE
            result.signal = signal
            self.last_signal = signal
            if signal is not CrossSignal.NONE:
                logger.info("Crossover detected at %s: fast=%.2f slow=%.2f %s entries_allowed=%s",
                            bar.time, indicators.fast, indicators.slow, signal.value, entries_allowed)

            if signal.direction is not None:
                self._run_stage(result, "entry", lambda: self._entry_stage(bar, signal, result))

            exited = False
            if self.position_direction is not None:
                stop_outcome = self._run_stage(result, "trailing_stop", lambda: self._stop_stage(bar, indicators, result))
                exited = bool(stop_outcome.ok and stop_outcome.value)
                if not exited:
                    point_value = self.config.instrument.point_value
                    self._run_stage(result, "excursion",
                                    lambda: self.recorder.update_excursion(bar.close, point_value))

            if not exited and signal is not CrossSignal.NONE:
                self._run_stage(result, "signal_exit", lambda: self._signal_exit_stage(signal, result))

            self._run_stage(result, "display", lambda: self._notify("on_statistics", self.snapshot()))
            return result

    def _entry_stage(self, bar: Bar, signal: CrossSignal, result: BarResult) -> None:
        direction = signal.direction
        if self.tracker.force_flat_if_external_flat(self.external):
            self._clear_position_scope()
        decision = self.tracker.try_enter(direction, self.external, self.entries_allowed)
        result.entry_decision = decision
        if not decision.allowed:
            logger.info("%s entry skipped: %s", direction.label, decision.reason.value)
            return
        try:
            self._submit(OrderIntent.enter(direction, self.config.strategy.quantity), result)
        except Exception:
            # the order never left; undo the optimistic transition
            self.tracker.mark_flat()
            raise
        self.stop = self.stops.initial_stop(direction, bar.close, bar.tick_size)
        self._notify("on_stop_level", self.stop.level, self.snapshot())
        logger.info("%s entry at %.2f - initial stop %.2f", direction.label, bar.close, self.stop.level)

    def _stop_stage(self, bar: Bar, indicators: IndicatorValues, result: BarResult) -> bool:
        direction = self.position_direction
        trade = self.recorder.open
        entry_price = trade.entry_price if trade is not None and trade.direction is direction else None
        if self.stop is None:
            if entry_price is None:
                return False
            # position adopted from the gateway without a stop of our own
            self.stop = self.stops.initial_stop(direction, entry_price, bar.tick_size)
        if entry_price is None:
            return False
        update = self.stops.update(self.stop, direction, entry_price, bar.close, indicators.atr, bar.tick_size)
        self.stop = update.state
        self.recorder.note_stop(self.stop)
        if update.changed:
            self._notify("on_stop_level", self.stop.level, self.snapshot())
        if update.breakeven_triggered:
            # the breakeven bar only moves the stop; hits are checked from the next bar
            return False

        if not self.stops.is_stop_hit(self.stop, direction, bar.high, bar.low):
            return False
        result.stop_hit = True
        logger.info("%s stop hit at %.2f (bar high %.2f low %.2f)", direction.label,
                    self.stop.level, bar.high, bar.low)
        self._exit(direction, stop_label(direction), result)
        return True

    def _signal_exit_stage(self, signal: CrossSignal, result: BarResult) -> None:
        for direction in (Direction.LONG, Direction.SHORT):
            held = (self.position_direction is direction
                    or self.external.market_position is direction.market_position)
            if held and signal.exits(direction):
                logger.info("%s crossover exit: ours=%s gateway=%s", signal.value,
                            self.tracker.state.market_position.value, self.external.market_position.value)
                self._exit(direction, signal_exit_label(direction), result)

    def _exit(self, direction: Direction, label: str, result: BarResult) -> None:
        self._submit(OrderIntent.exit(direction, label), result)
        self.tracker.mark_flat()
        self.recorder.note_stop(self.stop)
        self.stop = None
        self._notify("on_stop_level", None, self.snapshot())

    # ------------------------------------------------------------------
    # gateway callbacks

    def on_position_update(self, snapshot: ExternalPositionSnapshot) -> ReconcileOutcome:
        with self._lock:
            self.external = snapshot
            outcome = self.tracker.reconcile(snapshot)
            if outcome is ReconcileOutcome.FLATTENED:
                self._clear_position_scope()
            self._notify("on_statistics", self.snapshot())
            return outcome

    def on_execution(self, fill: ExecutionFill) -> Optional[CompletedTrade]:
        with self._lock:
            if fill.action.is_entry:
                self.recorder.open_trade(fill.action.direction, fill.price, fill.timestamp,
                                         fill.quantity, self.last_indicators)
                if self.stop is None:
                    self.stop = self.stops.initial_stop(fill.action.direction, fill.price,
                                                        self.config.instrument.tick_size)
                    self._notify("on_stop_level", self.stop.level, self.snapshot())
                self.recorder.note_stop(self.stop)
                return None

            if self.recorder.open is not None:
                self.recorder.note_stop(self.stop)
            trade = self.recorder.close_trade(fill.price, fill.timestamp, fill.quantity,
                                              fill.order_label, self.last_indicators)
            if trade is None:
                return None
            result = BarResult()
            self._run_stage(result, "statistics", lambda: self.aggregator.record(trade))
            snap = self.snapshot()
            self._notify("on_trade", trade, snap.stats, snap)
            return trade
