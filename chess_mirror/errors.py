"""Exceptions raised by the behavioral engine."""


class InvalidMoveError(ValueError):
    """The submitted move is not legal in the position it was played from."""

    def __init__(self, fen: str, uci: str, reason: str = "illegal move"):
        self.fen = fen
        self.uci = uci
        super().__init__(f"{reason}: {uci} in {fen}")
