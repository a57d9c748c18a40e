"""Tests for velocity and pose outputs."""

import math

import pytest

from dvl_a50_mcp.models.navigation import (
    BEAM_UNIT_VECTORS,
    NavigationTranslator,
    quaternion_from_rpy,
)
from dvl_a50_mcp.protocol.parser import DeadReckoningReport, Transducer, VelocityReport

IDENTITY = ((1.0, 0.0, 0.0), (0.0, 2.0, 0.0), (0.0, 0.0, 3.0))


def velocity_report(altitude=5.0, valid=True, vx=3.0, vy=4.0, transducers=None):
    if transducers is None:
        transducers = [
            Transducer(i, 0.1 * i, 1.0 + i, -30.0 - i, -90.0, beam_valid=i != 1)
            for i in range(4)
        ]
    return VelocityReport(
        time_of_validity=1_000_000,
        vx=vx,
        vy=vy,
        vz=0.5,
        covariance=IDENTITY,
        altitude=altitude,
        velocity_valid=valid,
        transducers=transducers,
    )


def test_course_and_speed():
    output = NavigationTranslator().to_velocity_output(velocity_report())
    assert output.speed_gnd == pytest.approx(5.0)
    assert output.course_gnd == pytest.approx(math.atan2(4.0, 3.0))
    assert output.course_gnd == pytest.approx(0.9273, abs=1e-4)


def test_altitude_holdover():
    """Invalid altitudes never replace the last trusted altitude."""
    translator = NavigationTranslator()
    altitudes = [
        translator.to_velocity_output(velocity_report(altitude=a, valid=v)).altitude
        for a, v in ((5.0, True), (-1.0, True), (6.0, False))
    ]
    assert altitudes == [5.0, 5.0, 5.0]
    assert translator.last_altitude == 5.0


def test_altitude_before_first_trusted_sample_is_nan():
    translator = NavigationTranslator()
    output = translator.to_velocity_output(velocity_report(altitude=-1.0))
    assert math.isnan(output.altitude)
    assert output.to_dict()["altitude"] is None


def test_reset_forgets_altitude():
    translator = NavigationTranslator()
    translator.to_velocity_output(velocity_report(altitude=2.0))
    translator.reset()
    assert math.isnan(translator.last_altitude)


def test_covariance_is_row_major():
    output = NavigationTranslator().to_velocity_output(velocity_report())
    assert output.velocity_covariance == (1.0, 0.0, 0.0, 0.0, 2.0, 0.0, 0.0, 0.0, 3.0)


def test_per_beam_fields():
    output = NavigationTranslator(sound_speed=1480.0).to_velocity_output(velocity_report())
    assert output.num_good_beams == 3
    assert output.beam_valid == (True, False, True, True)
    assert output.beam_ranges == (1.0, 2.0, 3.0, 4.0)
    assert output.beam_quality == (-30.0, -31.0, -32.0, -33.0)
    assert output.beam_velocities == pytest.approx((0.0, 0.1, 0.2, 0.3))
    assert output.sound_speed == 1480.0
    assert output.beam_velocities_valid is True
    assert output.stamp_ns == 1_000_000_000


def test_missing_beams_are_invalid():
    report = velocity_report(transducers=[Transducer(0, 0.0, 1.0, -30, -90, True)])
    output = NavigationTranslator().to_velocity_output(report)
    assert output.beam_valid == (True, False, False, False)
    assert output.num_good_beams == 1
    assert len(output.to_dict()["beams"]) == 4


def test_beam_unit_vectors():
    """Four fixed unit vectors at +135, -135, -45 and +45 degrees."""
    assert BEAM_UNIT_VECTORS[0] == (-0.6532814824381883, 0.6532814824381883, 0.38268343236508984)
    assert BEAM_UNIT_VECTORS[1] == (-0.6532814824381883, -0.6532814824381883, 0.38268343236508984)
    assert BEAM_UNIT_VECTORS[2] == (0.6532814824381883, -0.6532814824381883, 0.38268343236508984)
    assert BEAM_UNIT_VECTORS[3] == (0.6532814824381883, 0.6532814824381883, 0.38268343236508984)
    for x, y, z in BEAM_UNIT_VECTORS:
        assert math.sqrt(x * x + y * y + z * z) == pytest.approx(1.0)
    assert math.degrees(math.atan2(BEAM_UNIT_VECTORS[0][1], BEAM_UNIT_VECTORS[0][0])) == pytest.approx(135.0)


def test_quaternion_identity():
    q = quaternion_from_rpy(0.0, 0.0, 0.0)
    assert (q.x, q.y, q.z, q.w) == (0.0, 0.0, 0.0, 1.0)


def test_quaternion_pure_yaw():
    q = quaternion_from_rpy(0.0, 0.0, math.pi / 2)
    assert q.z == pytest.approx(math.sqrt(0.5))
    assert q.w == pytest.approx(math.sqrt(0.5))
    assert q.x == pytest.approx(0.0)
    assert q.y == pytest.approx(0.0)


def test_quaternion_pure_roll_and_pitch():
    q = quaternion_from_rpy(math.pi, 0.0, 0.0)
    assert q.x == pytest.approx(1.0)
    q = quaternion_from_rpy(0.0, math.pi / 2, 0.0)
    assert q.y == pytest.approx(math.sqrt(0.5))


def test_quaternion_is_normalized():
    q = quaternion_from_rpy(0.3, -0.7, 2.1)
    assert q.x ** 2 + q.y ** 2 + q.z ** 2 + q.w ** 2 == pytest.approx(1.0)


def test_pose_output():
    report = DeadReckoningReport(
        ts=12.5, x=1.0, y=2.0, z=3.0, std=0.25, roll=0.0, pitch=0.0, yaw=math.pi / 2,
    )
    output = NavigationTranslator(frame_id="dvl").to_pose_output(report)
    assert output.stamp_ns == 12_500_000_000
    assert output.frame_id == "dvl"
    assert output.position == (1.0, 2.0, 3.0)
    assert [output.pose_covariance[i] for i in (0, 7, 14)] == [0.25, 0.25, 0.25]
    assert sum(output.pose_covariance) == pytest.approx(0.75)
    assert output.orientation.z == pytest.approx(math.sqrt(0.5))
    assert output.to_dict()["position_std"] == 0.25
