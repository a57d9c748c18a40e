"""Navigation outputs built from decoded DVL reports.

Beam layout, seen from above with the LED pointing forward::

            +X
             ^
       B4    |    B3
    +Y <-----+-----
       B1    |    B2

The transducer array is rotated 45 degrees around Z, so beams sit at
azimuths of +135, -135, -45 and +45 degrees from the body X axis, each
tilted 22.5 degrees out of the plane as given by its unit vector.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from ..protocol.parser import NUM_BEAMS, DeadReckoningReport, Transducer, VelocityReport

# cos(22.5 deg) / sqrt(2) and sin(22.5 deg), kept as literals
BEAM_HORIZONTAL = 0.6532814824381883
BEAM_VERTICAL = 0.38268343236508984

BEAM_UNIT_VECTORS: tuple[tuple[float, float, float], ...] = (
    (-BEAM_HORIZONTAL, BEAM_HORIZONTAL, BEAM_VERTICAL),    # beam 1, +135 deg
    (-BEAM_HORIZONTAL, -BEAM_HORIZONTAL, BEAM_VERTICAL),   # beam 2, -135 deg
    (BEAM_HORIZONTAL, -BEAM_HORIZONTAL, BEAM_VERTICAL),    # beam 3, -45 deg
    (BEAM_HORIZONTAL, BEAM_HORIZONTAL, BEAM_VERTICAL),     # beam 4, +45 deg
)

DEFAULT_SOUND_SPEED = 1500.0
DEFAULT_FRAME_ID = "dvl_a50_link"

# Indices of the x, y, z variances in a row-major 6x6 pose covariance
POSE_POSITION_VARIANCE_SLOTS = (0, 7, 14)


@dataclass(frozen=True)
class Quaternion:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    w: float = 1.0


def quaternion_from_rpy(roll: float, pitch: float, yaw: float) -> Quaternion:
    """Convert roll/pitch/yaw (radians, fixed-axis X-Y-Z) to a quaternion."""
    cr, sr = math.cos(roll * 0.5), math.sin(roll * 0.5)
    cp, sp = math.cos(pitch * 0.5), math.sin(pitch * 0.5)
    cy, sy = math.cos(yaw * 0.5), math.sin(yaw * 0.5)
    return Quaternion(
        x=sr * cp * cy - cr * sp * sy,
        y=cr * sp * cy + sr * cp * sy,
        z=cr * cp * sy - sr * sp * cy,
        w=cr * cp * cy + sr * sp * sy,
    )


@dataclass
class VelocityOutput:
    """Bottom-track velocity with per-beam diagnostics."""

    stamp_ns: int
    frame_id: str
    velocity: tuple[float, float, float]
    velocity_covariance: tuple[float, ...]  # 9 values, row-major
    altitude: float
    course_gnd: float
    speed_gnd: float
    sound_speed: float
    beam_ranges_valid: bool
    beam_velocities_valid: bool
    num_good_beams: int
    beam_valid: tuple[bool, ...]
    beam_ranges: tuple[float, ...]
    beam_quality: tuple[float, ...]
    beam_velocities: tuple[float, ...]
    beam_unit_vectors: tuple[tuple[float, float, float], ...] = BEAM_UNIT_VECTORS

    def to_dict(self) -> dict:
        return {
            "stamp_ns": self.stamp_ns,
            "frame_id": self.frame_id,
            "velocity": list(self.velocity),
            "velocity_covariance": list(self.velocity_covariance),
            "altitude": None if math.isnan(self.altitude) else self.altitude,
            "course_gnd": self.course_gnd,
            "speed_gnd": self.speed_gnd,
            "sound_speed": self.sound_speed,
            "beam_ranges_valid": self.beam_ranges_valid,
            "beam_velocities_valid": self.beam_velocities_valid,
            "num_good_beams": self.num_good_beams,
            "beams": [
                {
                    "valid": self.beam_valid[i],
                    "range": self.beam_ranges[i],
                    "quality": self.beam_quality[i],
                    "velocity": self.beam_velocities[i],
                    "unit_vector": list(self.beam_unit_vectors[i]),
                }
                for i in range(NUM_BEAMS)
            ],
        }


@dataclass
class PoseOutput:
    """Dead-reckoned position and orientation."""

    stamp_ns: int
    frame_id: str
    position: tuple[float, float, float]
    orientation: Quaternion
    pose_covariance: list[float] = field(default_factory=lambda: [0.0] * 36)

    def to_dict(self) -> dict:
        q = self.orientation
        return {
            "stamp_ns": self.stamp_ns,
            "frame_id": self.frame_id,
            "position": list(self.position),
            "orientation": {"x": q.x, "y": q.y, "z": q.z, "w": q.w},
            "position_std": self.pose_covariance[0],
        }


def _beams(transducers: list[Transducer]) -> list[Transducer]:
    """Return exactly four beams; missing beams are reported as invalid."""
    beams = list(transducers[:NUM_BEAMS])
    for beam_id in range(len(beams), NUM_BEAMS):
        beams.append(Transducer(beam_id, 0.0, 0.0, 0.0, 0.0, beam_valid=False))
    return beams


class NavigationTranslator:
    """Builds velocity and pose outputs for one session.

    The only state is the last trusted altitude. A new altitude is trusted
    when it is non-negative and the report's velocity is valid; otherwise
    the previous trusted value is reported instead.
    """

    def __init__(
        self,
        frame_id: str = DEFAULT_FRAME_ID,
        sound_speed: float = DEFAULT_SOUND_SPEED,
    ) -> None:
        self.frame_id = frame_id
        self.sound_speed = sound_speed
        self.last_altitude = math.nan

    def reset(self) -> None:
        self.last_altitude = math.nan

    def update_altitude(self, altitude: float, velocity_valid: bool) -> float:
        if altitude >= 0.0 and velocity_valid:
            self.last_altitude = altitude
        return self.last_altitude

    def to_velocity_output(self, report: VelocityReport) -> VelocityOutput:
        vx, vy, vz = report.vx, report.vy, report.vz
        beams = _beams(report.transducers)
        return VelocityOutput(
            stamp_ns=report.time_of_validity * 1000,
            frame_id=self.frame_id,
            velocity=(vx, vy, vz),
            velocity_covariance=tuple(v for row in report.covariance for v in row),
            altitude=self.update_altitude(report.altitude, report.velocity_valid),
            course_gnd=math.atan2(vy, vx),
            speed_gnd=math.sqrt(vx * vx + vy * vy),
            sound_speed=self.sound_speed,
            beam_ranges_valid=True,
            beam_velocities_valid=report.velocity_valid,
            num_good_beams=sum(1 for b in beams if b.beam_valid),
            beam_valid=tuple(b.beam_valid for b in beams),
            beam_ranges=tuple(b.distance for b in beams),
            beam_quality=tuple(b.rssi for b in beams),
            beam_velocities=tuple(b.velocity for b in beams),
        )

    def to_pose_output(self, report: DeadReckoningReport) -> PoseOutput:
        covariance = [0.0] * 36
        for slot in POSE_POSITION_VARIANCE_SLOTS:
            covariance[slot] = report.std
        return PoseOutput(
            stamp_ns=int(report.ts * 1e9),
            frame_id=self.frame_id,
            position=(report.x, report.y, report.z),
            orientation=quaternion_from_rpy(report.roll, report.pitch, report.yaw),
            pose_covariance=covariance,
        )
