"""Pydantic schemas for API."""
from typing import Optional
from pydantic import BaseModel


class ScanResponse(BaseModel):
    processedCount: int
    jobRelatedCount: int
    skippedCount: int = 0
    errorCount: int = 0


class ScanErrorResponse(BaseModel):
    error: str
    message: str


class ScanStatusResponse(BaseModel):
    status: str
    lastScanAt: Optional[str] = None
    lastProcessed: int = 0
    lastJobRelated: int = 0
    error: Optional[str] = None
    connected: bool = False


class ConnectResponse(BaseModel):
    authUrl: str
