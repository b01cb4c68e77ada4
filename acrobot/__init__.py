"""Tabular Q-learning harness for the MuJoCo acrobot."""
