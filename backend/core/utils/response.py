"""
Response utility for consistent API responses
"""
from typing import Any, Optional
from fastapi.responses import JSONResponse
from fastapi import status
from pydantic import BaseModel
from uuid import UUID
from datetime import datetime, date


class Response(JSONResponse):
    """
    Standardized API response envelope: {success, data, message}
    Inherits from JSONResponse to be directly returnable from FastAPI routes
    """

    def __init__(
        self,
        success: bool = True,
        data: Any = None,
        message: str = "Success",
        status_code: int = status.HTTP_200_OK,
        errors: Optional[list] = None,
        **kwargs
    ):
        response_data = {
            "success": success,
            "data": self._serialize_data(data),
            "message": message
        }

        if errors:
            response_data["errors"] = errors

        super().__init__(
            content=response_data,
            status_code=status_code,
            **kwargs
        )

    def _serialize_data(self, data: Any) -> Any:
        """
        Convert Pydantic models and other non-serializable objects to JSON-serializable format
        """
        if data is None:
            return None
        elif isinstance(data, BaseModel):
            return data.model_dump(mode='json')
        elif isinstance(data, UUID):
            return str(data)
        elif isinstance(data, (datetime, date)):
            return data.isoformat()
        elif isinstance(data, list):
            return [self._serialize_data(item) for item in data]
        elif isinstance(data, dict):
            return {key: self._serialize_data(value) for key, value in data.items()}
        else:
            return data
