"""Navigation data models built from DVL reports."""

from .navigation import (
    BEAM_UNIT_VECTORS,
    NavigationTranslator,
    PoseOutput,
    Quaternion,
    VelocityOutput,
    quaternion_from_rpy,
)
