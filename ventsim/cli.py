import argparse
import json
import logging
import sys
import time

from ventsim.core.engine import SimulationEngine
from ventsim.core.errors import VentSimError
from ventsim.core.metrics import history_to_frame
from ventsim.core.state import SimulationConfig
from ventsim.machine.ventilator import VentilatorSettings
from ventsim.patient.patient import PatientParameters


def build_engine(config_data: dict, args) -> SimulationEngine:
    """Create an engine from JSON config data and command-line overrides."""
    sim_config = SimulationConfig(
        dt=config_data.get('dt', 0.01),
        model=args.model or config_data.get('model', 'basic'),
        unit_count=config_data.get('unit_count', 10),
        lung_preset=args.preset or config_data.get('preset', 'normal'),
        ards_severity=args.severity or config_data.get('severity'),
        rng_seed=config_data.get('rng_seed'),
    )
    settings = VentilatorSettings()
    patient = PatientParameters(**config_data.get('patient', {}))
    engine = SimulationEngine(sim_config, settings=settings, patient=patient)
    ventilator = config_data.get('ventilator', {})
    if ventilator:
        engine.set_ventilator_settings(**ventilator)
    return engine


def run_headless(args):
    """Run simulation in headless mode."""
    print(f"Starting Headless Simulation (Duration: {args.duration}s)...")

    config_data = {}
    if args.config:
        try:
            with open(args.config, 'r') as f:
                config_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            print(f"Error loading config: {e}")
            sys.exit(1)

    try:
        engine = build_engine(config_data, args)
    except (VentSimError, TypeError) as e:
        print(f"Invalid configuration: {e}")
        sys.exit(1)

    if args.record:
        engine.start_recording(output_dir=args.record_dir, sample_interval_sec=args.record_interval)

    start_real = time.time()
    dt = engine.config.dt
    steps = int(round(args.duration / dt))
    report_every = max(1, int(round(1.0 / dt)))

    for i in range(steps):
        snap = engine.tick(dt)
        if i % report_every == 0:
            print(f"Time: {snap.time:.2f}s | {snap.phase.value:<11} | Paw: {snap.airway_pressure:5.1f} "
                  f"| Vt: {snap.tidal_volume:6.0f} mL | Flow: {snap.flow_l_min:6.1f} L/min")

    engine.stop_recording()
    end_real = time.time()

    metrics = engine.get_breath_metrics()
    print(f"Peak Paw {metrics.peak_pressure:.1f} cmH2O | Vt {metrics.tidal_volume:.0f} mL "
          f"| MV {metrics.minute_volume:.1f} L/min")
    if metrics.unit_count:
        print(f"Recruited {metrics.recruited_units}/{metrics.unit_count} | V/Q {metrics.vq_ratio:.2f}")
    if args.summary:
        print(history_to_frame(engine.get_history()).describe().to_string())
    print(f"Simulation completed in {end_real - start_real:.2f}s real time.")


def main():
    parser = argparse.ArgumentParser(description="VentSim - Mechanical Ventilation Simulator")
    parser.add_argument("--duration", type=float, default=10.0, help="Simulated duration in seconds")
    parser.add_argument("--config", type=str, help="Path to JSON configuration file")
    parser.add_argument("--model", choices=["basic", "advanced"], help="Lung model")
    parser.add_argument("--preset", choices=["normal", "ards", "copd", "asthma"], help="Lung preset (advanced)")
    parser.add_argument("--severity", choices=["mild", "moderate", "severe"], help="ARDS severity")
    parser.add_argument("--summary", action="store_true", help="Print history statistics at the end")
    parser.add_argument("--record", action="store_true", help="Enable CSV recording")
    parser.add_argument("--record-dir", type=str, default="recordings", help="Output directory for recordings")
    parser.add_argument("--record-interval", type=float, default=1.0, help="Sample interval in seconds for CSV")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    run_headless(args)


if __name__ == "__main__":
    main()
