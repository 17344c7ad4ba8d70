import csv
import itertools
import logging
import os
import time
from dataclasses import fields
from enum import Enum

from .state import SimulationSnapshot

logger = logging.getLogger(__name__)

# Per-unit detail is summarized as a recruited count in CSV rows.
_SCALAR_FIELDS = [f.name for f in fields(SimulationSnapshot) if f.name != "units"]

# Distinguishes recordings started within the same second.
_file_sequence = itertools.count(1)


class DataRecorder:
    """
    Records simulation snapshots to CSV.
    """
    def __init__(self, output_dir: str = ".", sample_interval_sec: float = 1.0):
        self.output_dir = output_dir
        self.filename = f"ventsim_log_{time.strftime('%Y%m%d_%H%M%S')}_{next(_file_sequence):03d}.csv"
        self.file_path = os.path.join(output_dir, self.filename)
        self.file = None
        self.writer = None
        self.is_recording = False
        self.sample_interval_sec = max(0.0, sample_interval_sec)
        self._last_sample_time = None

    def start(self):
        try:
            os.makedirs(self.output_dir, exist_ok=True)
            self.file = open(self.file_path, 'w', newline='')
        except OSError as e:
            logger.error("Failed to start recording to %s: %s", self.file_path, e)
            self.is_recording = False
            return
        self.writer = csv.writer(self.file)
        self.writer.writerow(_SCALAR_FIELDS + ["recruited_units", "unit_count"])
        self.is_recording = True
        self._last_sample_time = None
        logger.info("Recording to %s", self.file_path)

    def log(self, snapshot: SimulationSnapshot):
        if not self.is_recording or not self.writer:
            return

        if self.sample_interval_sec > 0.0:
            now = snapshot.time
            if self._last_sample_time is not None and (now - self._last_sample_time) < self.sample_interval_sec:
                return
            self._last_sample_time = now

        row = []
        for name in _SCALAR_FIELDS:
            value = getattr(snapshot, name)
            row.append(value.value if isinstance(value, Enum) else value)
        row += [snapshot.recruited_count, len(snapshot.units)]
        self.writer.writerow(row)

    def stop(self):
        if self.file:
            self.file.close()
            self.file = None
        self.writer = None
        self.is_recording = False
