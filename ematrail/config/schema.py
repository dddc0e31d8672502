"""
Configuration schema and loader.

This module defines dataclasses that mirror the expected structure of
the YAML configuration file (`config.yaml`).  A helper function
`load_config()` reads a YAML file from disk and returns an instance
of `Config` populated with reasonable defaults for any missing
fields.

Strategy parameters are immutable for a session: the engine reads
them once at construction and never writes them back.  When
extending the configuration, add new fields to the appropriate
dataclass, to the defaults in `load_config()` and, where a range
applies, to `validate_config()`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any
import yaml


class TradingDirection(str, Enum):
    """Which sides of the market the strategy may enter."""

    BOTH = "Both"
    LONG_ONLY = "LongOnly"
    SHORT_ONLY = "ShortOnly"

    @classmethod
    def parse(cls, value: Any) -> "TradingDirection":
        if isinstance(value, cls):
            return value
        text = str(value).replace("_", "").replace(" ", "").lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        raise ValueError(f"Unknown trading direction: {value!r}")


@dataclass
class SessionConfig:
    """Defines the window in which new entries are allowed.

    Attributes
    ----------
    start : str
        Start time in `HH:MM` 24‑hour format, interpreted in `timezone`.
    end : str
        End time in `HH:MM` format.  The end is inclusive: a bar stamped
        exactly at the end time may still open a position.
    timezone : str
        IANA timezone name the window is expressed in.
    use_time_filter : bool
        When false, entries are allowed around the clock.  Open positions
        are always managed regardless of this window.
    """

    start: str = "08:30"
    end: str = "15:25"
    timezone: str = "America/New_York"
    use_time_filter: bool = True


@dataclass
class StrategyConfig:
    """Crossover and trailing stop parameters.

    Attributes
    ----------
    fast_period, slow_period : int
        EMA periods of the fast and slow averages.
    atr_period : int
        Look-back of the ATR volatility estimate.
    trailing_stop_points : float
        Base trailing distance, in ticks.
    atr_multiplier : float
        Multiplier applied to ATR for the volatility floor of the distance.
    profit_trigger_points : float
        Profit, in ticks, that activates breakeven protection.
    progressive_tightening_rate : float
        Fraction of the base distance removed per 5 ticks of profit beyond
        the trigger.
    quantity : int
        Contracts per entry.
    trading_direction : TradingDirection
        ``Both``, ``LongOnly`` or ``ShortOnly``.
    """

    fast_period: int = 6
    slow_period: int = 51
    atr_period: int = 14
    trailing_stop_points: float = 40
    atr_multiplier: float = 2.5
    profit_trigger_points: float = 9
    progressive_tightening_rate: float = 0.25
    quantity: int = 1
    trading_direction: TradingDirection = TradingDirection.BOTH

    @property
    def warmup_bars(self) -> int:
        return max(self.fast_period, self.slow_period, self.atr_period)


@dataclass
class InstrumentConfig:
    """The single instrument traded.

    Attributes
    ----------
    symbol : str
        Instrument symbol (e.g. ``"NQ"`` or an MT5 symbol name).
    tick_size : float
        Minimum price increment.
    point_value : float
        Currency value of a one-point move for one contract.
    commission_per_contract : float
        Round-turn commission estimate written to the trade log.
    """

    symbol: str = "NQ"
    tick_size: float = 0.25
    point_value: float = 20.0
    commission_per_contract: float = 2.5


@dataclass
class ReconcileConfig:
    """Position reconciliation tuning.

    Attributes
    ----------
    debounce_seconds : float
        Window after a local position change during which a matching
        gateway echo is ignored.
    """

    debounce_seconds: float = 2.0


@dataclass
class MT5Config:
    """Holds parameters required to connect to a MetaTrader 5 terminal."""

    login: int = 0
    password: str = ""
    server: str = ""
    path: str = ""
    timeframe: str = "M5"
    magic: int = 20250
    deviation: int = 10


@dataclass
class DataConfig:
    """Bar source for paper sessions.

    Attributes
    ----------
    csv_dir : str
        Directory containing one `{SYMBOL}.csv` file per instrument.
    timezone : str
        Timezone used to localise naive timestamps found in the CSV.
    """

    csv_dir: str = "data"
    timezone: str = "UTC"


@dataclass
class OutputConfig:
    """Where the persistence sinks write."""

    results_dir: str = "results"
    trade_log: str = "trades.csv"
    state_file: str = "state.json"


@dataclass
class Config:
    """Root configuration for the trading program."""

    session: SessionConfig = field(default_factory=SessionConfig)
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    instrument: InstrumentConfig = field(default_factory=InstrumentConfig)
    reconcile: ReconcileConfig = field(default_factory=ReconcileConfig)
    mt5: MT5Config = field(default_factory=MT5Config)
    data: DataConfig = field(default_factory=DataConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    mode: str = "paper"


def _merge_dict(defaults: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge two dictionaries.

    The values in `override` take precedence over those in `defaults`.
    This helper is used when loading YAML into nested dataclasses.
    """
    result: Dict[str, Any] = defaults.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dict(result[key], value)
        else:
            result[key] = value
    return result


def _check_range(name: str, value: float, low: float, high: float = float("inf")) -> None:
    if not (low <= value <= high):
        raise ValueError(f"{name}={value} is outside the allowed range [{low}, {high}]")


def validate_config(cfg: Config) -> Config:
    """Reject parameter values the strategy cannot run with.

    Raises
    ------
    ValueError
        If any strategy or instrument parameter is out of range.
    """
    s = cfg.strategy
    _check_range("fast_period", s.fast_period, 1)
    _check_range("slow_period", s.slow_period, 1)
    _check_range("atr_period", s.atr_period, 1)
    _check_range("trailing_stop_points", s.trailing_stop_points, 1)
    _check_range("atr_multiplier", s.atr_multiplier, 0.1, 5.0)
    _check_range("profit_trigger_points", s.profit_trigger_points, 1, 50)
    _check_range("progressive_tightening_rate", s.progressive_tightening_rate, 0.05, 0.5)
    _check_range("quantity", s.quantity, 1)
    if cfg.instrument.tick_size <= 0:
        raise ValueError("instrument.tick_size must be positive")
    if cfg.instrument.point_value <= 0:
        raise ValueError("instrument.point_value must be positive")
    _check_range("debounce_seconds", cfg.reconcile.debounce_seconds, 0)
    return cfg


def load_config(path: str) -> Config:
    """Load a configuration file from the given YAML path.

    Parameters
    ----------
    path : str
        Path to the YAML file.

    Returns
    -------
    Config
        A populated and validated configuration object.  Missing fields
        are filled with the defaults defined in the dataclasses.
    """
    with open(path, "r", encoding="utf-8") as fh:
        raw: Dict[str, Any] = yaml.safe_load(fh) or {}

    defaults: Dict[str, Any] = {
        'session': {
            'start': "08:30",
            'end': "15:25",
            'timezone': "America/New_York",
            'use_time_filter': True,
        },
        'strategy': {
            'fast_period': 6,
            'slow_period': 51,
            'atr_period': 14,
            'trailing_stop_points': 40,
            'atr_multiplier': 2.5,
            'profit_trigger_points': 9,
            'progressive_tightening_rate': 0.25,
            'quantity': 1,
            'trading_direction': "Both",
        },
        'instrument': {
            'symbol': "NQ",
            'tick_size': 0.25,
            'point_value': 20.0,
            'commission_per_contract': 2.5,
        },
        'reconcile': {
            'debounce_seconds': 2.0,
        },
        'mt5': {
            'login': 0,
            'password': "",
            'server': "",
            'path': "",
            'timeframe': "M5",
            'magic': 20250,
            'deviation': 10,
        },
        'data': {
            'csv_dir': 'data',
            'timezone': 'UTC',
        },
        'output': {
            'results_dir': 'results',
            'trade_log': 'trades.csv',
            'state_file': 'state.json',
        },
        'mode': 'paper',
    }

    merged = _merge_dict(defaults, raw)

    strategy_raw = dict(merged['strategy'])
    strategy_raw['trading_direction'] = TradingDirection.parse(strategy_raw['trading_direction'])
    strategy_cfg = StrategyConfig(
        fast_period=int(strategy_raw['fast_period']),
        slow_period=int(strategy_raw['slow_period']),
        atr_period=int(strategy_raw['atr_period']),
        trailing_stop_points=float(strategy_raw['trailing_stop_points']),
        atr_multiplier=float(strategy_raw['atr_multiplier']),
        profit_trigger_points=float(strategy_raw['profit_trigger_points']),
        progressive_tightening_rate=float(strategy_raw['progressive_tightening_rate']),
        quantity=int(strategy_raw['quantity']),
        trading_direction=strategy_raw['trading_direction'],
    )
    session_cfg = SessionConfig(
        start=str(merged['session']['start']),
        end=str(merged['session']['end']),
        timezone=str(merged['session']['timezone']),
        use_time_filter=bool(merged['session']['use_time_filter']),
    )

    cfg = Config(
        session=session_cfg,
        strategy=strategy_cfg,
        instrument=InstrumentConfig(**merged['instrument']),
        reconcile=ReconcileConfig(debounce_seconds=float(merged['reconcile']['debounce_seconds'])),
        mt5=MT5Config(**merged['mt5']),
        data=DataConfig(**merged['data']),
        output=OutputConfig(**merged['output']),
        mode=str(merged.get('mode', 'paper')).lower(),
    )
    return validate_config(cfg)
