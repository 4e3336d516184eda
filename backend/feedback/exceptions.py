class FeedbackInputError(ValueError):
    """Rating or category rejected at the boundary, before any state is touched."""


class FeedbackDependencyError(RuntimeError):
    """The feedback, trust or category weight store could not be reached."""
