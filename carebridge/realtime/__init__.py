"""Realtime gateway (Socket.IO).

One server instance carries presence, chat, consultation signaling and
notification fan-out. Handlers live in ``events``; the room, presence and
auth primitives they share live beside this module.
"""
