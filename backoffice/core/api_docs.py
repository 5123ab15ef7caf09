from backoffice.schemas.common import ErrorOut


_ERROR_EXAMPLES: dict[int, dict] = {
    400: {"code": "bad_request", "message": "end_date cannot be before start_date"},
    401: {"code": "unauthorized", "message": "Invalid token"},
    403: {"code": "forbidden", "message": "Insufficient role for this action"},
    404: {"code": "not_found", "message": "Sale not found"},
    409: {
        "code": "insufficient_stock",
        "message": "Stock of Beras Ramos 5kg is not enough (requested 150, available 100)",
        "details": {"inventory_id": "inventory-id", "requested": 150, "available": 100},
    },
    422: {
        "code": "validation_error",
        "message": "Max returnable quantity is 10",
        "details": [{"field": "items", "message": "Max returnable quantity is 10", "type": "value_error"}],
    },
    500: {"code": "consistency_error", "message": "Stock of Beras Ramos 5kg does not match its ledger"},
}

_DESCRIPTIONS = {
    400: "Bad request",
    401: "Missing or invalid bearer token",
    403: "Role not allowed",
    404: "Unknown id, or an id owned by another tenant",
    409: "Conflicting state or not enough stock",
    422: "Invalid input",
    500: "Internal or ledger consistency error",
}


def error_responses(*status_codes: int) -> dict[int, dict]:
    responses: dict[int, dict] = {}
    for status_code in status_codes:
        example = _ERROR_EXAMPLES.get(status_code, {"code": "http_error", "message": "HTTP error"})
        responses[status_code] = {
            "model": ErrorOut,
            "description": _DESCRIPTIONS.get(status_code, "HTTP error"),
            "content": {
                "application/json": {
                    "example": {
                        "error": {
                            "request_id": "request-id",
                            "path": "/sales",
                            "details": None,
                            **example,
                        }
                    }
                }
            },
        }
    return responses
