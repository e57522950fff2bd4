"""Real-time chat module.

Components:
    - ConnectionManager: one socket connection per identity.
    - RoomDirectory: rooms and message logs of the current identity.
    - ChatViewController: selection, optimistic sends, unmatch.
"""
