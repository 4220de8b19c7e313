from fastapi.responses import JSONResponse


class AppError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def error_body(message: str) -> dict[str, str]:
    return {"error": message}


def error_response(status_code: int, message: str, request_id: str | None = None) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=error_body(message))
    if request_id:
        response.headers["x-request-id"] = request_id
    return response
