"""
flowstate.engine

Reference executor driving an ExecutionState through its lifecycle.
"""

from flowstate.engine.executor import Program, Step, StepExecutor

__all__ = ["Program", "Step", "StepExecutor"]
