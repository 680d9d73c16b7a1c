"""
flowstate.layers

Consumers of the execution state container.

- app: run registry, progress tracking and the HTTP router
- test: recording harness for asserting on emitted states
"""
