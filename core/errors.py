"""
Error types shared by the chess and Runenkrieg subsystems.

Input errors (bad FEN, bad square, wrong side to move, empty hand) subclass
ValueError so callers that only know the builtin contract still catch them.
"""


class RunenkriegError(Exception):
    """Base class for all errors raised by this package"""


class InvalidFenError(RunenkriegError, ValueError):
    """A FEN string could not be parsed"""


class InvalidSquareError(RunenkriegError, ValueError):
    """Square notation outside a1..h8"""


class WrongSideToMoveError(RunenkriegError, ValueError):
    """A move was requested for the color that is not on turn"""


class EmptyHandError(RunenkriegError, ValueError):
    """A card choice was requested from an empty hand"""


class ModelFormatError(RunenkriegError, ValueError):
    """A serialized model payload has the wrong shape"""


class TrainingCancelled(RunenkriegError):
    """Raised at a chunk boundary when cancellation was requested"""

    def __init__(self, message: str = "Training was cancelled"):
        super().__init__(message)
