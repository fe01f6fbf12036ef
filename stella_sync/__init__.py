#!/usr/bin/env python3
"""
stella-sync
===========

Keeps the Stellarium planetarium in sync with what the camera sees by
plate-solving each new frame and moving the view to the solved position.

Modules:
--------
- config_manager: Configuration management
- coordinates: Sky coordinate conversions and formatting
- process_gateway: External process execution and sound cues
- drivers.stellarium.client: Stellarium Remote Control client
- platesolve.solver: Local plate solvers, dispatcher and factory
- platesolve.remote: Remote solving through a peer server
- platesolve.parsing: Solver output parsers
- services.guard: Single-flight guard
- services.watcher: Directory watchers
- sync.orchestrator: Per-image workflow
- sync.peer_server: Platesolve server for peers
- exceptions: Custom exception hierarchy
- status: Status object system
"""

__version__ = "1.0.0"
__author__ = "stella-sync developers"
