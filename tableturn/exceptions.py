"""
Domain exceptions raised by the table services.

Routes translate these into JSON error responses.
"""


class TableTurnError(Exception):
    """Base class for all domain errors."""
    pass


class TableNotFound(TableTurnError):
    def __init__(self, table_id):
        self.table_id = table_id
        super().__init__(f"Table {table_id} not found")


class MatchNotFound(TableTurnError):
    def __init__(self, match_id):
        self.match_id = match_id
        super().__init__(f"Match {match_id} not found")


class PlayerNotFound(TableTurnError):
    def __init__(self, player_id):
        self.player_id = player_id
        super().__init__(f"Player {player_id} not found")


class QueueEntryNotFound(TableTurnError):
    def __init__(self, entry_id):
        self.entry_id = entry_id
        super().__init__(f"Queue entry {entry_id} not found")


class PlayerAlreadyQueued(TableTurnError):
    def __init__(self, table_id, player_id):
        self.table_id = table_id
        self.player_id = player_id
        super().__init__(f"Player {player_id} is already queued for table {table_id}")


class TableOccupied(TableTurnError):
    """The table already has an active match."""
    def __init__(self, table_id, match_id):
        self.table_id = table_id
        self.match_id = match_id
        super().__init__(f"Table {table_id} already has active match {match_id}")


class UnsupportedTeamSize(TableTurnError):
    """Rotation only handles one player per team."""
    pass
