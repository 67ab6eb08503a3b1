"""
Price engine for a single token.

Three layers stacked into one log return per tick:
  1. Geometric Brownian motion around the phase drift/volatility.
  2. Memecoin phases (pump / dump / crab ...) with asymmetric jumps.
  3. Pending trade impact left behind by user buys and sells, decaying 15%/tick.
"""

import math
from enum import Enum
from typing import Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict


class Phase(str, Enum):
    ACCUMULATION = "ACCUMULATION"
    PUMP = "PUMP"
    MEGA_PUMP = "MEGA_PUMP"
    PEAK = "PEAK"
    DUMP = "DUMP"
    CRAB = "CRAB"
    RECOVERY = "RECOVERY"


# Canonical order; transition rows and the config table are indexed by it
PHASES: Tuple[Phase, ...] = tuple(Phase)
_PHASE_INDEX = {phase: i for i, phase in enumerate(PHASES)}

# ── Tick constants ──
_DT = 1.0
PRICE_FLOOR = 0.0001
IMPACT_FACTOR = 0.02            # impact = amount_sol / liquidity * factor
IMPACT_RETENTION = 0.85         # share of pending impact kept after each tick
IMPACT_SNAP = 0.0001            # |impact| below this snaps to exactly 0
_WICK_NOISE_SCALE = 0.3
_WICK_SIZE_SCALE = 0.5

# Jumps: (probability, low, high) added to the log return
_PUMP_JUMP = (0.05, 0.02, 0.05)
_DUMP_JUMP = (0.08, -0.04, -0.015)

_VOLUME_MULTIPLIERS = {
    Phase.MEGA_PUMP: 5.0,
    Phase.PEAK: 4.0,
    Phase.DUMP: 3.5,
    Phase.PUMP: 3.0,
}


class PhaseConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    drift: float
    volatility: float
    min_duration: int
    max_duration: int
    # weights in PHASES order: A, P, MP, PK, D, C, R
    transitions: Tuple[float, float, float, float, float, float, float]


PHASE_CONFIGS: Tuple[PhaseConfig, ...] = (
    # ACCUMULATION
    PhaseConfig(drift=0.0005, volatility=0.008, min_duration=30, max_duration=120,
                transitions=(0.10, 0.55, 0.05, 0.00, 0.10, 0.15, 0.05)),
    # PUMP
    PhaseConfig(drift=0.008, volatility=0.025, min_duration=15, max_duration=80,
                transitions=(0.05, 0.10, 0.20, 0.40, 0.15, 0.05, 0.05)),
    # MEGA_PUMP
    PhaseConfig(drift=0.025, volatility=0.05, min_duration=5, max_duration=30,
                transitions=(0.00, 0.10, 0.05, 0.50, 0.25, 0.05, 0.05)),
    # PEAK
    PhaseConfig(drift=0.0, volatility=0.04, min_duration=5, max_duration=20,
                transitions=(0.00, 0.10, 0.02, 0.03, 0.60, 0.15, 0.10)),
    # DUMP
    PhaseConfig(drift=-0.012, volatility=0.035, min_duration=10, max_duration=60,
                transitions=(0.15, 0.15, 0.02, 0.00, 0.08, 0.35, 0.25)),
    # CRAB
    PhaseConfig(drift=0.0, volatility=0.006, min_duration=30, max_duration=150,
                transitions=(0.20, 0.40, 0.05, 0.00, 0.10, 0.10, 0.15)),
    # RECOVERY
    PhaseConfig(drift=0.004, volatility=0.015, min_duration=15, max_duration=60,
                transitions=(0.20, 0.45, 0.05, 0.00, 0.10, 0.15, 0.05)),
)


def _validate_phase_configs() -> None:
    if len(PHASE_CONFIGS) != len(PHASES):
        raise ValueError(f"expected {len(PHASES)} phase configs, got {len(PHASE_CONFIGS)}")
    for phase, cfg in zip(PHASES, PHASE_CONFIGS):
        if any(w < 0 for w in cfg.transitions):
            raise ValueError(f"{phase.value}: transition weights must be >= 0")
        total = sum(cfg.transitions)
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"{phase.value}: transition weights sum to {total}, expected 1.0")
        if not 0 < cfg.min_duration < cfg.max_duration:
            raise ValueError(f"{phase.value}: need 0 < min_duration < max_duration")


_validate_phase_configs()


def phase_config(phase: Phase) -> PhaseConfig:
    return PHASE_CONFIGS[_PHASE_INDEX[phase]]


class PriceState(BaseModel):
    model_config = ConfigDict(frozen=True)

    price: float
    phase: Phase = Phase.ACCUMULATION
    ticks_in_phase: int = 0
    phase_duration: int
    volume: float = 0.0
    high: float
    low: float
    open: float
    pending_impact: float = 0.0


# ── Random helpers ──

def random_normal(rng: np.random.Generator) -> float:
    """Standard normal sample via Box–Muller on two uniform draws in (0, 1)."""
    u = 0.0
    v = 0.0
    while u == 0.0:
        u = float(rng.random())
    while v == 0.0:
        v = float(rng.random())
    return math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v)


def roll_duration(phase: Phase, rng: np.random.Generator) -> int:
    cfg = phase_config(phase)
    return int(rng.integers(cfg.min_duration, cfg.max_duration))


def select_next_phase(phase: Phase, rng: np.random.Generator) -> Phase:
    """Weighted draw over the phase's transition row; CRAB if rounding leaves a gap."""
    weights = phase_config(phase).transitions
    draw = float(rng.random())
    cumulative = 0.0
    for candidate, weight in zip(PHASES, weights):
        if weight <= 0:
            continue
        cumulative += weight
        if draw <= cumulative:
            return candidate
    return Phase.CRAB


# ── State transitions ──

def create_price_state(initial_price: float, rng: np.random.Generator) -> PriceState:
    phase = Phase.ACCUMULATION
    return PriceState(
        price=initial_price,
        phase=phase,
        ticks_in_phase=0,
        phase_duration=roll_duration(phase, rng),
        volume=0.0,
        high=initial_price,
        low=initial_price,
        open=initial_price,
        pending_impact=0.0,
    )


def with_trade_impact(state: PriceState, amount_sol: float, is_buy: bool, liquidity: float) -> PriceState:
    """Queue trade pressure on the next ticks. Price itself is left untouched."""
    impact = (amount_sol / max(liquidity, 1.0)) * IMPACT_FACTOR
    return state.model_copy(
        update={"pending_impact": state.pending_impact + (impact if is_buy else -impact)}
    )


def decay_impact(impact: float) -> float:
    remaining = impact * IMPACT_RETENTION
    return 0.0 if abs(remaining) < IMPACT_SNAP else remaining


def ticks_to_settle(impact: float) -> int:
    """Number of ticks until a pending impact of this size decays to exactly 0."""
    ticks = 0
    while impact != 0.0:
        impact = decay_impact(impact)
        ticks += 1
    return ticks


def _phase_modifier(phase: Phase, rng: np.random.Generator) -> float:
    if phase in (Phase.PUMP, Phase.MEGA_PUMP):
        prob, lo, hi = _PUMP_JUMP
    elif phase == Phase.DUMP:
        prob, lo, hi = _DUMP_JUMP
    else:
        return 0.0
    if rng.random() < prob:
        return lo + float(rng.random()) * (hi - lo)
    return 0.0


def tick_price(state: PriceState, rng: np.random.Generator) -> PriceState:
    """Advance one token's price process by a single tick."""
    cfg = phase_config(state.phase)
    vol = cfg.volatility

    # GBM log return
    gbm_return = (cfg.drift - 0.5 * vol * vol) * _DT + vol * math.sqrt(_DT) * random_normal(rng)
    phase_modifier = _phase_modifier(state.phase, rng)
    wick_noise = (float(rng.random()) - 0.5) * vol * _WICK_NOISE_SCALE

    total_return = gbm_return + phase_modifier + wick_noise + state.pending_impact
    new_price = max(state.price * math.exp(total_return), PRICE_FLOOR)

    # Candle extremes for this tick
    open_ = state.price
    close = new_price
    wick_up = abs(random_normal(rng) * vol * state.price * _WICK_SIZE_SCALE)
    wick_down = abs(random_normal(rng) * vol * state.price * _WICK_SIZE_SCALE)
    high = max(open_, close) + wick_up
    low = max(min(open_, close) - wick_down, PRICE_FLOOR)

    base_volume = 100.0 + float(rng.random()) * 500.0
    volume = base_volume * _VOLUME_MULTIPLIERS.get(state.phase, 1.0) * (1.0 + float(rng.random()))

    # Phase bookkeeping
    phase = state.phase
    ticks_in_phase = state.ticks_in_phase + 1
    phase_duration = state.phase_duration
    if ticks_in_phase >= phase_duration:
        phase = select_next_phase(state.phase, rng)
        ticks_in_phase = 0
        phase_duration = roll_duration(phase, rng)

    return PriceState(
        price=new_price,
        phase=phase,
        ticks_in_phase=ticks_in_phase,
        phase_duration=phase_duration,
        volume=volume,
        high=high,
        low=low,
        open=open_,
        pending_impact=decay_impact(state.pending_impact),
    )
