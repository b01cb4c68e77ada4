"""Shared fixtures and path setup for the test suite."""

import os
import sys

import numpy as np
import pytest

# Headless runs: let MuJoCo pick its default GL backend.
os.environ.pop("MUJOCO_GL", None)

import mujoco  # noqa: E402,F401

# Make the package importable without installing it
_project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from acrobot.agent import QTableAgent, QTableAgentConfig  # noqa: E402
from acrobot.physics import Physics  # noqa: E402
from acrobot.task import Acrobot, make_environment  # noqa: E402


# Every joint kind, a mocap body, a stateful and an unlimited actuator, and a
# joint equality.
#   qpos: free 0-6, ball 7-10, slide 11, hinge 12
#   qvel: free 0-5, ball 6-8,  slide 9,  hinge 10
MIXED_XML = """
<mujoco model="mixed">
  <option timestep="0.005"/>
  <worldbody>
    <body name="box" pos="0 0 1">
      <freejoint name="free"/>
      <geom type="box" size=".1 .1 .1"/>
    </body>
    <body name="arm" pos="1 0 1">
      <joint name="ball" type="ball"/>
      <geom type="capsule" fromto="0 0 0 0 0 -.5" size=".05"/>
      <body name="slider" pos="0 0 -.5">
        <joint name="slide" type="slide" axis="1 0 0"/>
        <geom type="sphere" size=".05"/>
        <body name="hinged" pos="0 0 -.1">
          <joint name="hinge" type="hinge" axis="0 1 0"/>
          <geom type="capsule" fromto="0 0 0 0 0 -.3" size=".03"/>
        </body>
      </body>
    </body>
    <body name="target" mocap="true" pos="2 0 1">
      <geom type="sphere" size=".05" contype="0" conaffinity="0"/>
    </body>
  </worldbody>
  <equality>
    <joint name="couple" joint1="slide" joint2="hinge"/>
  </equality>
  <actuator>
    <general name="filtered" joint="slide" dyntype="filter" dynprm="0.1"
             ctrllimited="true" ctrlrange="-1 1"/>
    <motor name="unlimited" joint="hinge"/>
  </actuator>
</mujoco>
"""


@pytest.fixture
def mixed_xml():
    return MIXED_XML


@pytest.fixture
def mixed_physics():
    return Physics.from_xml_string(MIXED_XML)


@pytest.fixture
def acrobot_physics():
    return Acrobot.load()


@pytest.fixture
def rng():
    return np.random.default_rng(0)


@pytest.fixture
def env():
    return make_environment(rng=np.random.default_rng(0))


@pytest.fixture
def agent(env):
    config = QTableAgentConfig(
        action_size=env.task.action_size,
        state_size=env.task.state_size,
        initial_alpha=0.1,
        initial_epsilon=0.5,
    )
    return QTableAgent.new(config, env, rng=np.random.default_rng(1))
