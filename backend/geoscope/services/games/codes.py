import random
from typing import Callable

from geoscope.errors import Conflict

CODE_ALPHABET = 'ABCDEFGHIJKLMNPQRSTUVWXYZ123456789'
CODE_LENGTH = 6


def normalize_code(raw) -> str:
    return str(raw or '').strip().upper()


def is_valid_code(code: str) -> bool:
    return len(code) == CODE_LENGTH and all(ch in CODE_ALPHABET for ch in code)


class RoomCodeGenerator:
    """Draws short room codes, retrying on collision a bounded number of times."""

    def __init__(self, exists: Callable[[str], bool], logger, attempts: int = 10, rng=None):
        self.exists = exists
        self.logger = logger
        self.attempts = attempts
        self.rng = rng or random.SystemRandom()

    def _draw(self) -> str:
        return ''.join(self.rng.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))

    def generate(self) -> str:
        for attempt in range(1, self.attempts + 1):
            code = self._draw()
            if not self.exists(code):
                return code
            self.logger.info(f"[code-collision] code={code} attempt={attempt}")
        self.logger.error(f"[code-exhausted] attempts={self.attempts}")
        raise Conflict('Failed to generate a unique room code, please try again')
