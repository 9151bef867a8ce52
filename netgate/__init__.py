"""
netgate - network session core for multiplayer games.

Decides whether a process is a dedicated server or a client, gives the session
stable identifiers, admits connections only after their join credential is
verified, relays allow-listed messages between verified players, and bounds
how long shutdown may take.
"""

__version__ = "0.1.0"
