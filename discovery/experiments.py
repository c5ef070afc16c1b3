"""Experiment facade and a small deterministic toy-physics world behind it."""

import logging
import math
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from discovery.models import ExperimentRecord

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 0.05


class ExperimentError(Exception):
    """Unknown experiment id or invalid parameters."""


class ExperimentFacade(Protocol):
    """What the orchestrator needs from a simulator."""

    def available_experiments(self) -> list[dict[str, Any]]: ...

    def observational_data(self, category: str | None = None) -> Any: ...

    def run_experiment(
        self,
        experiment_id: str,
        parameters: dict[str, Any] | None = None,
        expected: dict[str, Any] | None = None,
    ) -> ExperimentRecord: ...

    def advance_time(self, delta: int = 1) -> int: ...


@dataclass(frozen=True)
class ParamSpec:
    default: float | None
    minimum: float
    maximum: float
    unit: str = ""


@dataclass(frozen=True)
class ExperimentSpec:
    name: str
    params: dict[str, ParamSpec]
    run: Callable[[dict[str, float]], dict[str, Any]]


def _projectile(p: dict[str, float]) -> dict[str, Any]:
    g = p["gravity"]
    theta = math.radians(p["angle_deg"])
    vx, vy = p["speed"] * math.cos(theta), p["speed"] * math.sin(theta)
    flight_time = (vy + math.sqrt(vy * vy + 2 * g * p["height"])) / g
    return {
        "flight_time_s": flight_time,
        "range_m": vx * flight_time,
        "max_height_m": p["height"] + vy * vy / (2 * g),
        "impact_speed_m_s": math.hypot(vx, vy - g * flight_time),
    }


def _pendulum(p: dict[str, float]) -> dict[str, Any]:
    small_angle = 2 * math.pi * math.sqrt(p["length_m"] / p["gravity"])
    theta0 = math.radians(p["amplitude_deg"])
    period = small_angle * (1 + theta0 * theta0 / 16)
    return {
        "small_angle_period_s": small_angle,
        "period_s": period,
        "frequency_hz": 1 / period,
        "small_angle_error": period / small_angle - 1,
    }


def _buoyancy(p: dict[str, float]) -> dict[str, Any]:
    volume, g = p["object_volume_m3"], p["gravity"]
    weight = p["object_density"] * volume * g
    buoyant = p["fluid_density"] * volume * g
    return {
        "weight_n": weight,
        "buoyant_force_n": buoyant,
        "net_force_n": buoyant - weight,
        "floats": p["object_density"] < p["fluid_density"],
        "submerged_fraction": min(1.0, p["object_density"] / p["fluid_density"]),
    }


def _collision(p: dict[str, float]) -> dict[str, Any]:
    m1, m2, v1, v2, e = p["m1"], p["m2"], p["v1"], p["v2"], p["restitution"]
    total = m1 + m2
    v1_after = (m1 * v1 + m2 * v2 + m2 * e * (v2 - v1)) / total
    v2_after = (m1 * v1 + m2 * v2 + m1 * e * (v1 - v2)) / total
    ke_before = 0.5 * m1 * v1 ** 2 + 0.5 * m2 * v2 ** 2
    ke_after = 0.5 * m1 * v1_after ** 2 + 0.5 * m2 * v2_after ** 2
    return {
        "v1_after_m_s": v1_after,
        "v2_after_m_s": v2_after,
        "momentum_before": m1 * v1 + m2 * v2,
        "momentum_after": m1 * v1_after + m2 * v2_after,
        "kinetic_energy_before_j": ke_before,
        "kinetic_energy_after_j": ke_after,
        "energy_lost_j": ke_before - ke_after,
    }


_GRAVITY = ParamSpec(9.81, 0.01, 300.0, "m/s^2")

EXPERIMENTS: dict[str, ExperimentSpec] = {
    "projectile": ExperimentSpec(
        name="Projectile Motion",
        params={
            "speed": ParamSpec(None, 0.0, 1e5, "m/s"),
            "angle_deg": ParamSpec(45.0, 0.0, 90.0, "deg"),
            "height": ParamSpec(0.0, 0.0, 1e6, "m"),
            "gravity": _GRAVITY,
        },
        run=_projectile,
    ),
    "pendulum": ExperimentSpec(
        name="Simple Pendulum",
        params={
            "length_m": ParamSpec(None, 1e-3, 1e4, "m"),
            "amplitude_deg": ParamSpec(5.0, 0.0, 90.0, "deg"),
            "gravity": _GRAVITY,
        },
        run=_pendulum,
    ),
    "buoyancy": ExperimentSpec(
        name="Buoyancy",
        params={
            "object_volume_m3": ParamSpec(None, 1e-9, 1e6, "m^3"),
            "object_density": ParamSpec(None, 1e-3, 3e4, "kg/m^3"),
            "fluid_density": ParamSpec(1000.0, 1e-3, 3e4, "kg/m^3"),
            "gravity": _GRAVITY,
        },
        run=_buoyancy,
    ),
    "collision": ExperimentSpec(
        name="1-D Collision",
        params={
            "m1": ParamSpec(None, 1e-6, 1e9, "kg"),
            "m2": ParamSpec(None, 1e-6, 1e9, "kg"),
            "v1": ParamSpec(None, -1e5, 1e5, "m/s"),
            "v2": ParamSpec(0.0, -1e5, 1e5, "m/s"),
            "restitution": ParamSpec(1.0, 0.0, 1.0, ""),
        },
        run=_collision,
    ),
}

OBSERVATIONAL_DATA: dict[str, dict[str, float]] = {
    "gravitational_acceleration": {"earth": 9.81, "moon": 1.62, "mars": 3.71, "jupiter": 24.79},
    "fluid_densities": {"water": 1000.0, "seawater": 1025.0, "mercury": 13534.0, "air": 1.225},
    "material_densities": {"wood": 600.0, "ice": 917.0, "aluminium": 2700.0, "steel": 7850.0},
}


def _resolve_params(experiment_id: str, spec: ExperimentSpec, raw: dict[str, Any]) -> dict[str, float]:
    resolved: dict[str, float] = {}
    for name, param in spec.params.items():
        value = raw.get(name, param.default)
        if value is None:
            raise ExperimentError(f"{experiment_id}: missing required parameter '{name}'")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ExperimentError(f"{experiment_id}: parameter '{name}' must be a number, got {value!r}")
        if not param.minimum <= value <= param.maximum:
            raise ExperimentError(
                f"{experiment_id}: parameter '{name}'={value} outside "
                f"[{param.minimum}, {param.maximum}] {param.unit}".rstrip()
            )
        resolved[name] = float(value)
    return resolved


def _finite(label: str, raw: Any) -> float:
    try:
        value = float(raw)
    except OverflowError:
        value = math.inf
    if not math.isfinite(value):
        raise ExperimentError(f"{label} must be finite, got {raw!r}")
    return value


def _tolerance(quantity: str, raw: Any) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ExperimentError(f"expected.{quantity}: tolerance must be a number, got {raw!r}")
    tolerance = _finite(f"expected.{quantity}.tolerance", raw)
    if tolerance < 0:
        raise ExperimentError(f"expected.{quantity}: tolerance must not be negative, got {raw!r}")
    return tolerance


def evaluate_expectation(
    result: dict[str, Any],
    expected: dict[str, Any],
    default_tolerance: float = DEFAULT_TOLERANCE,
) -> bool:
    """True when every expected quantity matches the result within tolerance.

    Values are either a bare number/bool or {"value": x, "tolerance": rel}.
    Zero expectations are compared with an absolute tolerance.

    Raises:
        ExperimentError: A tolerance or expected value is malformed.
    """
    if not expected:
        return False
    matched = True
    for quantity, want in expected.items():
        tolerance = default_tolerance
        if isinstance(want, dict):
            if "tolerance" in want:
                tolerance = _tolerance(quantity, want["tolerance"])
            want = want.get("value")
        if isinstance(want, (int, float)) and not isinstance(want, bool):
            want = _finite(f"expected.{quantity}", want)
        if not matched or quantity not in result:
            matched = False
            continue
        got = result[quantity]
        if isinstance(want, bool) or isinstance(got, bool):
            matched = want == got
            continue
        if not isinstance(want, (int, float)) or not isinstance(got, (int, float)):
            matched = False
            continue
        scale = abs(want) if want else 1.0
        matched = abs(got - want) <= tolerance * scale
    return matched


class ToyWorld:
    """Deterministic closed-form physics. Keeps a log of every run."""

    def __init__(self) -> None:
        self.time = 0
        self.records: list[ExperimentRecord] = []

    def available_experiments(self) -> list[dict[str, Any]]:
        return [
            {
                "id": exp_id,
                "name": spec.name,
                "parameters": {
                    name: {"default": p.default, "min": p.minimum, "max": p.maximum, "unit": p.unit}
                    for name, p in spec.params.items()
                },
            }
            for exp_id, spec in EXPERIMENTS.items()
        ]

    def observational_data(self, category: str | None = None) -> Any:
        if category is None:
            return list(OBSERVATIONAL_DATA)
        if category not in OBSERVATIONAL_DATA:
            raise ExperimentError(f"Unknown data category: {category}")
        return dict(OBSERVATIONAL_DATA[category])

    def run_experiment(
        self,
        experiment_id: str,
        parameters: dict[str, Any] | None = None,
        expected: dict[str, Any] | None = None,
    ) -> ExperimentRecord:
        """Run one experiment.

        Raises:
            ExperimentError: Unknown experiment id or invalid parameters.
        """
        spec = EXPERIMENTS.get(experiment_id) if isinstance(experiment_id, str) else None
        if spec is None:
            raise ExperimentError(
                f"Unknown experiment: {experiment_id!r}; available: {', '.join(EXPERIMENTS)}"
            )
        if parameters is not None and not isinstance(parameters, dict):
            raise ExperimentError(f"{experiment_id}: parameters must be an object, got {parameters!r}")
        if expected is not None and not isinstance(expected, dict):
            raise ExperimentError(f"{experiment_id}: expected must be an object, got {expected!r}")

        parameters = dict(parameters or {})
        try:
            result = spec.run(_resolve_params(experiment_id, spec, parameters))
        except ArithmeticError as exc:
            raise ExperimentError(f"{experiment_id}: {exc}") from exc
        supports = evaluate_expectation(result, expected) if expected else None

        record = ExperimentRecord(
            id=f"exp_{uuid.uuid4().hex[:12]}",
            experiment_id=experiment_id,
            name=spec.name,
            parameters=parameters,
            result=result,
            supports=supports,
            world_time=self.time,
        )
        self.records.append(record)
        logger.debug("Experiment %s at t=%d: %s", experiment_id, self.time, result)
        return record

    def advance_time(self, delta: int = 1) -> int:
        self.time += delta
        return self.time
