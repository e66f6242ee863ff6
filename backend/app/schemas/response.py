"""Generic API response schemas"""

from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Optional, Any, Dict


class CamelModel(BaseModel):
    """Schema exchanged as camelCase JSON, populated from snake_case attributes"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class MessageResponse(CamelModel):
    """Generic API success response"""
    success: bool = True
    message: str


class ErrorResponse(BaseModel):
    """Generic API error response"""
    success: bool = False
    error: str
    details: Optional[Dict[str, Any]] = None
    path: Optional[str] = None
    timestamp: str


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    timestamp: str
    readiness: Dict[str, Any] = {}
