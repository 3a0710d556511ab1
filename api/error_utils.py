"""
Standardized error handling utilities for the challenge API.
Provides consistent error formats, HTTP status codes, and error codes across all endpoints.
"""

import logging
from flask import jsonify
from typing import Dict, Any, Optional

# Standard error codes for consistent API responses
ERROR_CODES = {
    # Authentication errors (400-499)
    "TOKEN_MISSING": "Authentication token is missing",
    "TOKEN_INVALID": "Authentication token is invalid or expired",
    "UNAUTHORIZED": "Invalid credentials or unauthorized access",
    "NOT_FOUND": "Resource not found",

    # Validation errors (400-499)
    "INVALID_REQUEST": "Invalid request body or parameters",
    "VALIDATION_ERROR": "Request validation failed",
    "INVALID_LOCATION": "Invalid or missing coordinates",

    # System errors (500-599)
    "SERVER_ERROR": "Internal server error",
    "MANIFEST_GENERATION_FAILED": "Could not generate the animal manifest for this region. Please try again later.",
}

def create_error_response(
    error_code: str,
    message: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    status_code: int = 500
) -> tuple:
    """
    Create a standardized error response with consistent format.

    Args:
        error_code: One of the standard ERROR_CODES keys
        message: Optional custom message (defaults to standard message)
        details: Optional additional error details
        status_code: HTTP status code

    Returns:
        Tuple of (JSON response, HTTP status code)
    """
    if error_code not in ERROR_CODES:
        logging.warning(f"Unknown error code used: {error_code}")
        error_code = "SERVER_ERROR"

    error_message = message or ERROR_CODES[error_code]

    response_data = {
        "error_code": error_code,
        "message": error_message
    }

    if details:
        response_data["details"] = details

    log = logging.error if status_code >= 500 else logging.warning
    log(f"API Error [{error_code}]: {error_message} - Status: {status_code}")

    return jsonify(response_data), status_code

def handle_exception(e: Exception, context: str = "API endpoint") -> tuple:
    """
    Handle unexpected exceptions with standardized error response.

    Args:
        e: The exception that occurred
        context: Context information for logging

    Returns:
        Tuple of (JSON response, HTTP status code)
    """
    error_type = type(e).__name__
    error_message = str(e)

    logging.error(f"Unexpected error in {context}: {error_type} - {error_message}", exc_info=True)

    return create_error_response(
        error_code="SERVER_ERROR",
        message="An unexpected error occurred",
        details={"error_type": error_type},
        status_code=500
    )

# Common error response shortcuts
def unauthorized_error(message: Optional[str] = None) -> tuple:
    return create_error_response("UNAUTHORIZED", message, status_code=401)

def not_found_error(message: Optional[str] = None) -> tuple:
    return create_error_response("NOT_FOUND", message, status_code=404)

def validation_error(message: Optional[str] = None, details: Optional[Dict] = None) -> tuple:
    return create_error_response("VALIDATION_ERROR", message, details, status_code=400)

def invalid_location_error(message: Optional[str] = None) -> tuple:
    return create_error_response("INVALID_LOCATION", message, status_code=400)

def manifest_generation_error(region_key: Optional[str] = None) -> tuple:
    details = {"regionKey": region_key} if region_key else None
    return create_error_response("MANIFEST_GENERATION_FAILED", details=details, status_code=503)
