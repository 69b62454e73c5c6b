"""Exceptions raised at the edges of the app (trace parsing, HTTP input)."""


class GraphisualError(Exception):
    """Base class.  ``status_code`` is what the web layer answers with."""

    status_code = 400

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {"error": self.message}


class InvalidStepError(GraphisualError):
    """A recorded step could not be parsed into an AlgorithmStep."""


class InvalidRequestError(GraphisualError):
    """The request body is missing a field or has the wrong shape."""


class StepNotFoundError(GraphisualError):
    status_code = 404


class PlaybackBusyError(GraphisualError):
    """The playback loop did not get to the request in time."""

    status_code = 503
