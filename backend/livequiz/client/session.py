from dataclasses import dataclass, asdict
from typing import Optional


@dataclass
class PlayerSession:
    """Who this client is in which game. Passed to whatever needs it."""

    game_pin: str
    player_id: int
    name: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional['PlayerSession']:
        """Restore a saved session; None when the data is missing or malformed."""
        if not data:
            return None
        game_pin, player_id, name = data.get('game_pin'), data.get('player_id'), data.get('name')
        if not game_pin or not isinstance(player_id, int) or isinstance(player_id, bool) or not name:
            return None
        return cls(game_pin=str(game_pin), player_id=player_id, name=str(name))

    def belongs_to(self, game_pin: str) -> bool:
        return self.game_pin == str(game_pin)
