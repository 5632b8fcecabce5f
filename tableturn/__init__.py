"""
TableTurn - pool table match and queue rotation service

Responsibilities:
- Match lifecycle (start, score updates, end, archive)
- Queue rotation when a match ends (winner stays, next player up)
- Player ratings on archive and direct completion
- Turn notifications for the next player in line
- Realtime change feed per table for UI clients
"""
