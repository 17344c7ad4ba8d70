import logging
import math
import threading
from collections import deque
from typing import Callable, Optional, Tuple

import numpy as np

from .driver import RealTimeDriver
from .enums import ArdsSeverity, LungModelType, LungPreset, parse_enum
from .errors import InvalidModelState, InvalidParameters, InvalidSettings
from .metrics import BreathMetrics, compute_breath_metrics
from .recorder import DataRecorder
from .state import SimulationConfig, SimulationSnapshot
from .utils import approach_fraction
from ventsim.machine.ventilator import VentilatorSettings, VentilatorWaveformGenerator
from ventsim.patient.patient import PatientParameters
from ventsim.physiology.alveolar import MultiCompartmentLungModel
from ventsim.physiology.lung_presets import build_lung_units
from ventsim.physiology.resp_mech import SingleCompartmentLungModel

logger = logging.getLogger(__name__)


class SimulationEngine:
    """
    Main simulation orchestrator.
    Manages time, drives the waveform generator and the active lung model,
    and keeps a bounded history of snapshots.

    State management:
    - Ventilator settings, patient parameters and the lung preset are the
      last successfully applied configuration; rejected updates raise and
      leave them untouched.
    - `tick()` is the deterministic step. `start()` hands ticking to a
      RealTimeDriver thread; a lock keeps ticks, configuration changes and
      history reads from interleaving.
    """
    def __init__(self, config: SimulationConfig = None,
                 settings: VentilatorSettings = None,
                 patient: PatientParameters = None):
        self.config = config if config is not None else SimulationConfig()
        self._validate_config(self.config)

        self.model_type = parse_enum(LungModelType, self.config.model)
        self.patient = patient if patient is not None else PatientParameters()

        # Validate preset eagerly so a bad config fails at construction.
        build_lung_units(self.config.lung_preset, self.config.ards_severity,
                         unit_count=self.config.unit_count)
        self.lung_preset = parse_enum(LungPreset, self.config.lung_preset)
        self.ards_severity = (parse_enum(ArdsSeverity, self.config.ards_severity)
                              if self.config.ards_severity is not None else None)

        self._lock = threading.RLock()
        self.driver: Optional[RealTimeDriver] = None
        self.recorder: Optional[DataRecorder] = None

        self.generator = VentilatorWaveformGenerator(settings)
        self._initialize()

    @staticmethod
    def _validate_config(config: SimulationConfig):
        if not (config.dt > 0 and math.isfinite(config.dt)):
            raise InvalidSettings(f"dt must be finite and > 0 (got {config.dt})")
        if not (config.history_window_sec > 0 and math.isfinite(config.history_window_sec)):
            raise InvalidSettings(f"history_window_sec must be finite and > 0 (got {config.history_window_sec})")
        if config.pressure_response_tau < 0:
            raise InvalidSettings(f"pressure_response_tau must be >= 0 (got {config.pressure_response_tau})")
        if config.unit_count < 1:
            raise InvalidParameters(f"unit_count must be >= 1 (got {config.unit_count})")
        try:
            parse_enum(LungModelType, config.model)
        except ValueError as e:
            raise InvalidParameters(str(e)) from e

    def _initialize(self):
        """Fresh time, history, generator and lung model from current configuration."""
        self.time = 0.0
        self.history = deque()
        self.generator = VentilatorWaveformGenerator(self.generator.settings)
        self.model = self._create_model()
        # Device idles at PEEP before the first breath.
        self.paw = self.settings.peep
        self._target_pressure = self.settings.peep

    def _create_model(self):
        if self.model_type is LungModelType.BASIC:
            return SingleCompartmentLungModel(self.patient)
        rng = np.random.default_rng(self.config.rng_seed) if self.config.rng_seed is not None else None
        return MultiCompartmentLungModel.from_preset(
            self.lung_preset,
            self.ards_severity,
            unit_count=self.config.unit_count,
            rng=rng,
            baseline_volume=self.patient.residual_volume,
        )

    @property
    def settings(self) -> VentilatorSettings:
        return self.generator.settings

    @property
    def is_running(self) -> bool:
        return self.driver is not None and self.driver.is_running

    # Configuration.

    def set_ventilator_settings(self, **changes) -> VentilatorSettings:
        """
        Update ventilator settings (partial).

        Raises InvalidSettings on non-positive rate or I:E ratio; the
        previous settings and derived timing are kept.
        """
        with self._lock:
            try:
                return self.generator.update_settings(**changes)
            except InvalidSettings as e:
                logger.warning("Rejected ventilator settings %s: %s", changes, e)
                raise

    def set_patient_parameters(self, **changes) -> PatientParameters:
        """
        Update single-compartment patient parameters (partial).

        Raises InvalidParameters on non-positive compliance/resistance.
        While the advanced model is active the parameters are stored and
        used the next time the basic model is built.
        """
        with self._lock:
            try:
                if isinstance(self.model, SingleCompartmentLungModel):
                    self.patient = self.model.set_parameters(**changes)
                else:
                    self.patient = self.patient.updated(**changes)
            except InvalidParameters as e:
                logger.warning("Rejected patient parameters %s: %s", changes, e)
                raise
            return self.patient

    def apply_lung_preset(self, kind, severity=None):
        """
        Select a lung pathology preset (normal, ards, copd, asthma).

        Rebuilds the alveolar unit set when the advanced model is active;
        otherwise the preset is kept for the next advanced build.
        """
        with self._lock:
            try:
                build_lung_units(kind, severity, unit_count=self.config.unit_count)
            except InvalidParameters as e:
                logger.warning("Rejected lung preset %r/%r: %s", kind, severity, e)
                raise
            self.lung_preset = parse_enum(LungPreset, kind)
            self.ards_severity = parse_enum(ArdsSeverity, severity) if severity is not None else None
            if self.model_type is LungModelType.ADVANCED:
                self.model = self._create_model()
        logger.info("Lung preset set to %s", self.lung_preset.value)

    def select_model(self, kind):
        """Switch between 'basic' and 'advanced'; resets time and history."""
        try:
            model_type = parse_enum(LungModelType, kind)
        except ValueError as e:
            raise InvalidParameters(str(e)) from e
        with self._lock:
            self.model_type = model_type
            self._initialize()
        logger.info("Selected %s lung model", model_type.value)

    # Lifecycle.

    def start(self, on_tick: Callable[[SimulationSnapshot], None] = None):
        """Start real-time ticking; on_tick receives the latest snapshot."""
        if self.is_running:
            return
        self.driver = RealTimeDriver(
            self,
            on_tick=on_tick,
            interval=self.config.driver_interval,
            speed=self.config.simulation_speed,
        )
        self.driver.start()

    def pause(self):
        """Stop real-time ticking without losing state. Idempotent."""
        # Not under the lock: the driver thread may be waiting on it.
        if self.driver is not None:
            self.driver.stop()

    def reset(self):
        """Zero time, clear history, rebuild generator and lung model."""
        with self._lock:
            self._initialize()
        logger.info("Simulation reset")

    # Stepping.

    def tick(self, dt: float = None) -> SimulationSnapshot:
        """
        Advance simulation by dt seconds (default config.dt).

        Returns the new snapshot; dt <= 0 returns the latest snapshot.
        """
        dt = self.config.dt if dt is None else dt
        with self._lock:
            if dt <= 0:
                return self.get_latest_snapshot()
            if self.model is None:
                raise InvalidModelState("No lung model initialized")

            self.time += dt
            target = self.generator.get_target_pressure(self.time)
            self._target_pressure = target.pressure
            self.paw += (target.pressure - self.paw) * approach_fraction(dt, self.config.pressure_response_tau)

            lung = self.model.step(self.paw, dt, peep=self.settings.peep)

            snapshot = SimulationSnapshot(
                time=self.time,
                phase=target.phase,
                airway_pressure=self.paw,
                target_pressure=target.pressure,
                total_volume=lung.volume,
                total_flow=lung.flow,
                tidal_volume=lung.tidal_volume,
                units=self._unit_states(),
            )
            self.history.append(snapshot)
            self._evict_history()
            if self.recorder:
                self.recorder.log(snapshot)
            return snapshot

    def _unit_states(self):
        if isinstance(self.model, MultiCompartmentLungModel):
            return self.model.unit_states()
        return ()

    def _evict_history(self):
        cutoff = self.time - self.config.history_window_sec
        while self.history and self.history[0].time < cutoff - 1e-9:
            self.history.popleft()

    def get_history(self) -> Tuple[SimulationSnapshot, ...]:
        """Ordered snapshots (oldest first) as an immutable tuple."""
        with self._lock:
            return tuple(self.history)

    def get_latest_snapshot(self) -> SimulationSnapshot:
        """Return the most recent snapshot (the idle state before any tick)."""
        with self._lock:
            if self.history:
                return self.history[-1]
            lung = self.model.state
            return SimulationSnapshot(
                time=self.time,
                phase=self.generator.phase,
                airway_pressure=self.paw,
                target_pressure=self._target_pressure,
                total_volume=lung.volume,
                total_flow=0.0,
                tidal_volume=lung.tidal_volume,
                units=self._unit_states(),
            )

    def get_breath_metrics(self) -> BreathMetrics:
        """Monitor values over the most recent breath."""
        with self._lock:
            history = tuple(self.history)
            settings = self.settings
        return compute_breath_metrics(history, settings.peep, settings.respiratory_rate)

    # Recording.

    def start_recording(self, output_dir: str = "recordings", sample_interval_sec: float = 1.0):
        self.stop_recording()
        self.recorder = DataRecorder(output_dir=output_dir, sample_interval_sec=sample_interval_sec)
        self.recorder.start()

    def stop_recording(self):
        if self.recorder:
            self.recorder.stop()
            self.recorder = None
