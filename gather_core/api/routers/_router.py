"""
Shared router collecting the path operations of all API versions
"""

from fastapi import APIRouter


router = APIRouter()
