#!/usr/bin/env python3
"""
timeattack - GPS time-trial navigation.

Reads location fixes from a serial GPS (or a simulated drive), times runs
between a start and a finish checkpoint and speaks navigation callouts or
rally pacenotes on the way.
"""

import argparse
import time
from typing import Iterator, Optional, Tuple

from config import APP_VERSION, GPS_SERIAL_PORT, GPS_SERIAL_BAUD
from copilot.audio import AudioPlayer
from copilot.gps import SerialGPSReader
from copilot.road_name import NominatimGeocoder
from copilot.session import SessionUpdate, TrackingSession
from copilot.simulator import FixSimulator, SimulatedRoute
from lap_timing.data.models import Checkpoint, CheckpointType, LapState, LocationFix
from lap_timing.utils.geometry import bearing, point_along_bearing
from utils.hardware_base import FixWorker
from utils.lap_timing_store import get_run_store
from utils.settings import get_settings

# Distance driven before the start ring in simulation (metres)
SIM_RUN_UP_M = 100.0
# Distance driven past the finish ring in simulation (metres)
SIM_RUN_OUT_M = 80.0


def parse_point(text: str) -> Tuple[float, float]:
    """Parse "lat,lon" into a coordinate pair."""
    try:
        lat_text, lon_text = text.split(",")
        return float(lat_text), float(lon_text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected LAT,LON, got {text!r}")


class TimeAttack:
    """
    Application wiring: fix source -> worker thread -> tracking session.

    The fix source runs on the calling thread and submits fixes to a
    single worker that feeds the session, so fixes are handled strictly in
    arrival order while the source keeps reading.
    """

    def __init__(self, args):
        self.args = args
        self.running = False
        self.settings = get_settings()
        if args.voice:
            self.settings.set("voice.mode", args.voice)

        self.checkpoints = [
            Checkpoint("start", CheckpointType.START, *args.start, name="Start"),
            Checkpoint("finish", CheckpointType.FINISH, *args.finish, name="Finish"),
        ]

        self.audio = AudioPlayer()
        self.session = TrackingSession.from_settings(
            self.settings,
            self.audio,
            checkpoints=self.checkpoints,
            run_sink=get_run_store(),
            geocoder=None if args.offline else NominatimGeocoder(),
        )
        self.worker = FixWorker(self._handle_fix, name="session")
        self._last_state: Optional[LapState] = None

    def _handle_fix(self, fix: LocationFix):
        update = self.session.process_fix(fix)
        if update is not None:
            self._report(update)

    def _report(self, update: SessionUpdate):
        if update.state != self._last_state:
            print(f"[{update.state.value}] {update.road_name}")
            self._last_state = update.state
        if update.completed_run is not None:
            run = update.completed_run
            print(f"Lap {run.lap_number}: {run.format_time()} "
                  f"(avg {run.average_speed:.1f} km/h, max {run.max_speed:.1f} km/h)")
        elif update.instruction is not None and self.args.verbose:
            delta = ""
            if update.ghost_delta_ms is not None:
                delta = f" ghost {update.ghost_delta_ms / 1000.0:+.2f}s"
            print(f"  {update.elapsed_ms / 1000.0:6.1f}s "
                  f"{update.instruction.type} {update.instruction.distance:.0f}m{delta}")

    def _simulated_fixes(self) -> Iterator[LocationFix]:
        start, finish = self.args.start, self.args.finish
        course_bearing = bearing(*start, *finish)
        run_up = point_along_bearing(*start, (course_bearing + 180) % 360, SIM_RUN_UP_M)
        run_out = point_along_bearing(*finish, course_bearing, SIM_RUN_OUT_M)
        route = SimulatedRoute([run_up, start, finish, run_out], speed_mps=self.args.speed)
        simulator = FixSimulator(route, start_time_ms=time.time() * 1000.0,
                                 noise_m=self.args.noise, seed=self.args.seed)
        for fix in simulator.fixes():
            if not self.running:
                return
            yield fix
            if self.args.realtime:
                time.sleep(1.0 / simulator.rate_hz)

    def run(self):
        """Run until the fix source ends or the user interrupts."""
        print(f"timeattack {APP_VERSION} starting...")
        self.running = True
        self.audio.start()
        self.worker.start()
        self.session.confirm_route()

        try:
            if self.args.simulate:
                for fix in self._simulated_fixes():
                    self.worker.submit(fix)
                self.worker.join()
            else:
                reader = SerialGPSReader(self.args.port, self.args.baud)
                reader.connect()
                try:
                    reader.stream(self.worker.submit, lambda: self.running)
                finally:
                    reader.disconnect()
        except KeyboardInterrupt:
            print("\nShutting down...")
        finally:
            self._cleanup()

    def _cleanup(self):
        self.running = False
        self.worker.stop()
        self.audio.shutdown()


def parse_args():
    parser = argparse.ArgumentParser(
        description="timeattack - GPS time-trial navigation"
    )
    parser.add_argument("--start", type=parse_point, required=True,
                        help="Start checkpoint as LAT,LON")
    parser.add_argument("--finish", type=parse_point, required=True,
                        help="Finish checkpoint as LAT,LON")
    parser.add_argument("--voice", choices=["normal", "rally", "off"],
                        help="Voice mode (saved to settings)")
    parser.add_argument("--port", default=GPS_SERIAL_PORT, help="GPS serial port")
    parser.add_argument("--baud", type=int, default=GPS_SERIAL_BAUD, help="GPS baud rate")
    parser.add_argument("--simulate", action="store_true",
                        help="Drive the course with simulated fixes instead of GPS")
    parser.add_argument("--speed", type=float, default=20.0,
                        help="Simulated speed in m/s")
    parser.add_argument("--noise", type=float, default=0.0,
                        help="Simulated position noise in metres")
    parser.add_argument("--seed", type=int, help="Simulation random seed")
    parser.add_argument("--realtime", action="store_true",
                        help="Pace simulated fixes at their real rate")
    parser.add_argument("--offline", action="store_true",
                        help="Skip reverse geocoding of road names")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Print every navigation instruction")
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    app = TimeAttack(args)
    app.run()
