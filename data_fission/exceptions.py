"""
Exceptions raised by the data fission simulation harness.

Arms catch `InvalidConfiguration` and `NumericalFailure` locally and turn
them into absent results; anything else escaping a trial is isolated by
the experiment runner.
"""


class DataFissionError(Exception):
    """Base class for all harness errors."""


class InvalidConfiguration(DataFissionError, ValueError):
    """A precondition on the inputs does not hold (e.g. more folds than rows)."""


class NumericalFailure(DataFissionError, ArithmeticError):
    """A linear-algebra step cannot be carried out (e.g. singular X'X)."""


__all__ = [
    "DataFissionError",
    "InvalidConfiguration",
    "NumericalFailure",
]
