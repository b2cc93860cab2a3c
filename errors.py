from fastapi import HTTPException


class Unauthenticated(HTTPException):
    def __init__(self, detail: str = "Invalid token."):
        super().__init__(status_code=401, detail=detail)


class Forbidden(HTTPException):
    def __init__(self, detail: str = "Access denied"):
        super().__init__(status_code=403, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=404, detail=detail)


class InvalidInput(HTTPException):
    def __init__(self, detail: str = "Invalid input"):
        super().__init__(status_code=400, detail=detail)


class InsufficientStock(HTTPException):
    def __init__(self, name: str, available: int):
        super().__init__(status_code=400, detail=f"Insufficient stock for {name}. Available: {available}")
        self.available = available


class InvalidState(HTTPException):
    def __init__(self, detail: str = "Cannot cancel order at this stage"):
        super().__init__(status_code=400, detail=detail)
