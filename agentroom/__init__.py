"""agentroom - local AI agents and multi-agent meeting rooms.

Agents are named model + prompt configurations stored as JSON. They chat with
the user one at a time or together in a meeting room, driven against a local
model-serving HTTP endpoint.
"""

__version__ = "0.1.0"
