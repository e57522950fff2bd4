"""MatchChat client core.

Real-time chat subsystem of the MatchChat dating client: session state,
the single live socket connection per identity, the room directory and the
chat view controller, plus a small local HTTP surface for the UI layer.

Modules:
    - session: cookie-verified identity state
    - chat: connection lifecycle, room directory, view controller
    - api: REST boundary client
    - context: application context wiring everything together
"""
__version__ = "0.1.0"
