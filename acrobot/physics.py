"""
Checked accessors over MuJoCo's flat model / data arrays.

``mujoco.MjData`` exposes every runtime quantity as one flat array per field
(``qpos``, ``qvel``, ``ctrl``, ...), indexed through per-object address tables
stored in ``mujoco.MjModel``.  ``Physics`` is the only sanctioned way of
touching those arrays: every accessor takes a typed ``ObjectId`` handle,
verifies its category, and for joints verifies the declared joint kind before
reading or writing a single element.

Values handed out are always copies; no view into ``MjData`` escapes.
"""

import enum
import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import mujoco
import numpy as np

from .constants import MJ_MAXVAL
from .errors import (
    ActuatorStateless,
    BodyNotMocap,
    JointKindMismatch,
    MujocoError,
    NameNotFound,
    ObjectTypeMismatch,
    PluginStateless,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Object handles
# ---------------------------------------------------------------------------
class ObjType(enum.Enum):
    """Object namespaces of a MuJoCo model: (count attribute, mjtObj)."""

    BODY = ("nbody", mujoco.mjtObj.mjOBJ_BODY)
    JOINT = ("njnt", mujoco.mjtObj.mjOBJ_JOINT)
    DOF = ("nv", mujoco.mjtObj.mjOBJ_DOF)
    GEOM = ("ngeom", mujoco.mjtObj.mjOBJ_GEOM)
    SITE = ("nsite", mujoco.mjtObj.mjOBJ_SITE)
    CAMERA = ("ncam", mujoco.mjtObj.mjOBJ_CAMERA)
    LIGHT = ("nlight", mujoco.mjtObj.mjOBJ_LIGHT)
    TENDON = ("ntendon", mujoco.mjtObj.mjOBJ_TENDON)
    ACTUATOR = ("nu", mujoco.mjtObj.mjOBJ_ACTUATOR)
    EQUALITY = ("neq", mujoco.mjtObj.mjOBJ_EQUALITY)
    PLUGIN = ("nplugin", mujoco.mjtObj.mjOBJ_PLUGIN)

    def __init__(self, count_attr, mjt):
        self.count_attr = count_attr
        self.mjt = mjt


@dataclass(frozen=True)
class ObjectId:
    """Index into one object namespace of the model it was resolved from."""

    obj_type: ObjType
    index: int

    def __repr__(self) -> str:
        return f"ObjectId<{self.obj_type.name.lower()}>({self.index})"


# ---------------------------------------------------------------------------
# Joint kinds
# ---------------------------------------------------------------------------
class JointKind:
    """Layout of one joint kind inside ``qpos`` / ``qvel``."""

    mjt: int
    qpos_size: int
    qvel_size: int


class Free(JointKind):
    mjt = int(mujoco.mjtJoint.mjJNT_FREE)
    qpos_size = 7   # x, y, z, qw, qx, qy, qz
    qvel_size = 6   # vx, vy, vz, wx, wy, wz


class Ball(JointKind):
    mjt = int(mujoco.mjtJoint.mjJNT_BALL)
    qpos_size = 4   # qw, qx, qy, qz
    qvel_size = 3   # wx, wy, wz


class Hinge(JointKind):
    mjt = int(mujoco.mjtJoint.mjJNT_HINGE)
    qpos_size = 1   # angle [rad]
    qvel_size = 1   # angular velocity


class Slide(JointKind):
    mjt = int(mujoco.mjtJoint.mjJNT_SLIDE)
    qpos_size = 1   # position [m]
    qvel_size = 1   # linear velocity


JOINT_KINDS = {kind.mjt: kind for kind in (Free, Ball, Hinge, Slide)}


# ---------------------------------------------------------------------------
# Physics
# ---------------------------------------------------------------------------
class Physics:
    """Owns one ``MjModel`` / ``MjData`` pair and guards access to it."""

    def __init__(self, model: mujoco.MjModel, data: Optional[mujoco.MjData] = None):
        self._model = model
        self._data = data if data is not None else mujoco.MjData(model)

    @classmethod
    def from_xml(cls, xml_path):
        """Compile an MJCF file.  Engine failures are raised as ``MujocoError``."""
        try:
            model = mujoco.MjModel.from_xml_path(str(xml_path))
        except ValueError as e:
            raise MujocoError(str(e)) from e
        logger.debug(f"Loaded {xml_path}: {_model_stats(model)}")
        return cls(model)

    @classmethod
    def from_xml_string(cls, xml_string: str):
        """Compile an MJCF document given as a string."""
        try:
            model = mujoco.MjModel.from_xml_string(xml_string)
        except ValueError as e:
            raise MujocoError(str(e)) from e
        logger.debug(f"Loaded XML string: {_model_stats(model)}")
        return cls(model)

    @property
    def model(self) -> mujoco.MjModel:
        return self._model

    @property
    def data(self) -> mujoco.MjData:
        return self._data

    # ------------ simulation ----------------

    def step(self) -> None:
        """Advance the simulation by one model timestep."""
        mujoco.mj_step(self._model, self._data)

    def forward(self) -> None:
        """Recompute derived quantities without advancing time."""
        mujoco.mj_forward(self._model, self._data)

    def reset(self) -> None:
        """Reset runtime data to the model defaults (time, qpos0, zero qvel/ctrl)."""
        mujoco.mj_resetData(self._model, self._data)

    def time(self) -> float:
        return float(self._data.time)

    def set_time(self, time: float) -> None:
        self._data.time = time

    # ------------ names and handles ----------------

    def object_id_of(self, obj_type: ObjType, name: str) -> ObjectId:
        index = mujoco.mj_name2id(self._model, obj_type.mjt, name)
        if index < 0:
            raise NameNotFound(obj_type, name)
        return ObjectId(obj_type, index)

    def object_name_of(self, object_id: ObjectId) -> Optional[str]:
        return mujoco.mj_id2name(self._model, object_id.obj_type.mjt, object_id.index)

    def object_count_of(self, obj_type: ObjType) -> int:
        return int(getattr(self._model, obj_type.count_attr))

    def object_id(self, obj_type: ObjType, index: int) -> ObjectId:
        """Build a handle from a raw index, checking it against the model."""
        count = self.object_count_of(obj_type)
        if not 0 <= index < count:
            raise IndexError(f"{obj_type.name.lower()} index {index} out of range [0, {count})")
        return ObjectId(obj_type, index)

    def _index(self, object_id: ObjectId, expected: ObjType) -> int:
        if object_id.obj_type is not expected:
            raise ObjectTypeMismatch(expected, object_id.obj_type)
        return object_id.index

    # ------------ joints ----------------

    def joint_kind_of(self, joint_id: ObjectId):
        index = self._index(joint_id, ObjType.JOINT)
        return JOINT_KINDS[int(self._model.jnt_type[index])]

    def _joint_index(self, kind, joint_id: ObjectId) -> int:
        found = self.joint_kind_of(joint_id)
        if found is not kind:
            raise JointKindMismatch(kind, found)
        return joint_id.index

    def dof_ids_of(self, joint_id: ObjectId) -> List[ObjectId]:
        kind = self.joint_kind_of(joint_id)
        offset = int(self._model.jnt_dofadr[joint_id.index])
        if offset < 0:
            return []
        return [ObjectId(ObjType.DOF, offset + i) for i in range(kind.qvel_size)]

    def position_of(self, kind, joint_id: ObjectId) -> np.ndarray:
        """Copy of the joint's ``kind.qpos_size`` position coordinates."""
        index = self._joint_index(kind, joint_id)
        offset = int(self._model.jnt_qposadr[index])
        return np.array(self._data.qpos[offset:offset + kind.qpos_size])

    def set_position_of(self, kind, joint_id: ObjectId, values) -> None:
        index = self._joint_index(kind, joint_id)
        values = _as_vector(values, kind.qpos_size, kind.__name__ + " position")
        offset = int(self._model.jnt_qposadr[index])
        self._data.qpos[offset:offset + kind.qpos_size] = values

    def velocity_of(self, kind, joint_id: ObjectId) -> np.ndarray:
        """Copy of the joint's velocities; empty when the joint has no DOFs."""
        index = self._joint_index(kind, joint_id)
        offset = int(self._model.jnt_dofadr[index])
        if offset < 0:
            return np.zeros(0)
        return np.array(self._data.qvel[offset:offset + kind.qvel_size])

    def set_velocity_of(self, kind, joint_id: ObjectId, values) -> None:
        index = self._joint_index(kind, joint_id)
        values = _as_vector(values, kind.qvel_size, kind.__name__ + " velocity")
        offset = int(self._model.jnt_dofadr[index])
        if offset < 0:
            return
        self._data.qvel[offset:offset + kind.qvel_size] = values

    # ------------ actuators ----------------

    def actuators(self) -> "Actuators":
        return Actuators(self)

    def control_of(self, actuator_id: ObjectId) -> float:
        return float(self._data.ctrl[self._index(actuator_id, ObjType.ACTUATOR)])

    def set_control(self, actuator_id: ObjectId, value: float) -> None:
        # Not clamped here; actions validate against control_range_of().
        self._data.ctrl[self._index(actuator_id, ObjType.ACTUATOR)] = value

    def control_range_of(self, actuator_id: ObjectId) -> Tuple[float, float]:
        """Declared ``ctrlrange``, or ``(-MJ_MAXVAL, MJ_MAXVAL)`` when undeclared."""
        index = self._index(actuator_id, ObjType.ACTUATOR)
        low, high = (float(v) for v in self._model.actuator_ctrlrange[index])
        limited = bool(self._model.actuator_ctrllimited[index])
        if not limited or math.isnan(low) or math.isnan(high) or low == high:
            return (-MJ_MAXVAL, MJ_MAXVAL)
        return (low, high)

    def activation_of(self, actuator_id: ObjectId) -> Optional[float]:
        index = self._index(actuator_id, ObjType.ACTUATOR)
        offset = int(self._model.actuator_actadr[index])
        if offset < 0:
            return None
        return float(self._data.act[offset])

    def set_activation_of(self, actuator_id: ObjectId, value: float) -> None:
        index = self._index(actuator_id, ObjType.ACTUATOR)
        offset = int(self._model.actuator_actadr[index])
        if offset < 0:
            raise ActuatorStateless(actuator_id)
        self._data.act[offset] = value

    # ------------ dofs ----------------

    def qacc_warmstart_of(self, dof_id: ObjectId) -> float:
        return float(self._data.qacc_warmstart[self._index(dof_id, ObjType.DOF)])

    def set_qacc_warmstart_of(self, dof_id: ObjectId, value: float) -> None:
        self._data.qacc_warmstart[self._index(dof_id, ObjType.DOF)] = value

    def applied_force_of(self, dof_id: ObjectId) -> float:
        return float(self._data.qfrc_applied[self._index(dof_id, ObjType.DOF)])

    def set_applied_force_of(self, dof_id: ObjectId, value: float) -> None:
        self._data.qfrc_applied[self._index(dof_id, ObjType.DOF)] = value

    # ------------ bodies ----------------

    def applied_wrench_of(self, body_id: ObjectId) -> np.ndarray:
        """Cartesian force (3) and torque (3) applied to the body."""
        return np.array(self._data.xfrc_applied[self._index(body_id, ObjType.BODY)])

    def set_applied_wrench_of(self, body_id: ObjectId, wrench: Sequence[float]) -> None:
        index = self._index(body_id, ObjType.BODY)
        self._data.xfrc_applied[index] = _as_vector(wrench, 6, "wrench")

    def _mocap_index(self, body_id: ObjectId) -> int:
        return int(self._model.body_mocapid[self._index(body_id, ObjType.BODY)])

    def mocap_pos_of(self, body_id: ObjectId) -> Optional[np.ndarray]:
        mocap = self._mocap_index(body_id)
        if mocap < 0:
            return None
        return np.array(self._data.mocap_pos[mocap])

    def set_mocap_pos_of(self, body_id: ObjectId, pos: Sequence[float]) -> None:
        mocap = self._mocap_index(body_id)
        if mocap < 0:
            raise BodyNotMocap(body_id)
        self._data.mocap_pos[mocap] = _as_vector(pos, 3, "mocap position")

    def mocap_quat_of(self, body_id: ObjectId) -> Optional[np.ndarray]:
        mocap = self._mocap_index(body_id)
        if mocap < 0:
            return None
        return np.array(self._data.mocap_quat[mocap])

    def set_mocap_quat_of(self, body_id: ObjectId, quat: Sequence[float]) -> None:
        mocap = self._mocap_index(body_id)
        if mocap < 0:
            raise BodyNotMocap(body_id)
        self._data.mocap_quat[mocap] = _as_vector(quat, 4, "mocap quaternion")

    # ------------ equality constraints / plugins ----------------

    def equality_active(self, eq_id: ObjectId) -> bool:
        return bool(self._data.eq_active[self._index(eq_id, ObjType.EQUALITY)])

    def set_equality_active(self, eq_id: ObjectId, active: bool) -> None:
        self._data.eq_active[self._index(eq_id, ObjType.EQUALITY)] = active

    def plugin_state_of(self, plugin_id: ObjectId) -> Optional[float]:
        index = self._index(plugin_id, ObjType.PLUGIN)
        offset = int(self._model.plugin_stateadr[index])
        if offset < 0:
            return None
        return float(self._data.plugin_state[offset])

    def set_plugin_state_of(self, plugin_id: ObjectId, value: float) -> None:
        index = self._index(plugin_id, ObjType.PLUGIN)
        offset = int(self._model.plugin_stateadr[index])
        if offset < 0:
            raise PluginStateless(plugin_id)
        self._data.plugin_state[offset] = value


class Actuators:
    """Write access to actuator controls, handed to ``Action.apply``."""

    def __init__(self, physics: Physics):
        self._physics = physics

    def set(self, actuator_id: ObjectId, control: float) -> None:
        self._physics.set_control(actuator_id, control)

    def control_range_of(self, actuator_id: ObjectId) -> Tuple[float, float]:
        return self._physics.control_range_of(actuator_id)


def _as_vector(values, size: int, what: str) -> np.ndarray:
    array = np.atleast_1d(np.asarray(values, dtype=np.float64))
    if array.shape != (size,):
        raise ValueError(f"{what} must have {size} elements, got shape {array.shape}")
    return array


def _model_stats(model: mujoco.MjModel) -> str:
    return (f"{model.nbody} bodies, {model.njnt} joints, {model.nv} DOF, "
            f"{model.nu} actuators")
