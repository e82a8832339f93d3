"""Booking error taxonomy, rendered by FastAPI like any other HTTPException"""

from fastapi import HTTPException


class NotFoundError(HTTPException):
    """A referenced patient, doctor, service, schedule, slot or appointment does not exist"""

    def __init__(self, detail: str):
        super().__init__(status_code=404, detail=detail)


class BadRequestError(HTTPException):
    """A precondition failed: inactive entity, past time, short slot, closed window, terminal state"""

    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)


class ConflictError(HTTPException):
    """Double booking or an already claimed slot"""

    def __init__(self, detail: str):
        super().__init__(status_code=409, detail=detail)
