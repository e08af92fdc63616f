"""
Runboard Shared Module

Domain-level foundations for the engine's feature modules:
- BaseService: logging and config access for services
- Domain exceptions: caller errors (validation, unknown scope)
- Validators: raise-on-error input checks
"""

from __future__ import annotations

from .base_service import BaseService
from .exceptions import RunboardDomainException, UnknownScopeError, ValidationError
from .validators import require_text, validate_positive_number, validate_range

__all__ = [
    "BaseService",
    "RunboardDomainException",
    "ValidationError",
    "UnknownScopeError",
    "require_text",
    "validate_positive_number",
    "validate_range",
]
